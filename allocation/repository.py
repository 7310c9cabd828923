"""
Purpose: Storage contracts for matching and allocation + an in-memory implementation.
What it does:
- AllocationStore: filtered reads, saves, the conditional request-status and donor-match writes
  and unit_of_work().
- PolicySource: the governance policies that may currently influence matching.
- InMemoryRegistry: all of the above (plus the NotificationSink) for tests, scripts and simulations.

Rule: every multi-record transition happens inside unit_of_work(). Anything that
is not an AllocationError escaping it rolls the whole unit back and surfaces as
a single DownstreamError.
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import (
    ContextManager,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
)

from donors.models import Donor, DonorStatus, normalize_organ, utcnow
from governance.models import GovernancePolicy, is_eligible_for_matching
from hospitals.models import Hospital
from recipients.models import Recipient

from .errors import AllocationError, DownstreamError
from .models import AllocationRequest, RequestStatus
from .notifications import NotificationIntent

logger = logging.getLogger(__name__)


class AllocationStore(Protocol):
    def get_hospital(self, hospital_id: str) -> Optional[Hospital]: ...

    def list_hospitals(self) -> List[Hospital]: ...

    def get_recipient(self, recipient_id: str) -> Optional[Recipient]: ...

    def save_recipient(self, recipient: Recipient) -> None: ...

    def get_donor(self, donor_id: str) -> Optional[Donor]: ...

    def save_donor(self, donor: Donor) -> None: ...

    def match_donor_if_available(
        self,
        donor_id: str,
        recipient_id: str,
        hospital_id: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Marks the donor Matched only while it is still active and Available; False otherwise."""
        ...

    def list_donors(
        self,
        organ: Optional[str] = None,
        status: Optional[DonorStatus] = None,
        active_only: bool = True,
    ) -> List[Donor]: ...

    def get_request(self, request_id: str) -> Optional[AllocationRequest]: ...

    def add_request(self, request: AllocationRequest) -> None: ...

    def find_requests(
        self,
        recipient_id: Optional[str] = None,
        donor_id: Optional[str] = None,
        origin_hospital_id: Optional[str] = None,
        target_hospital_id: Optional[str] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
    ) -> List[AllocationRequest]: ...

    def update_request_status(
        self,
        request_id: str,
        expected: RequestStatus,
        new: RequestStatus,
        response_notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        """Writes `new` only while the stored status is still `expected`; False otherwise."""
        ...

    def mark_requests_viewed(self, target_hospital_id: str, statuses: Iterable[RequestStatus]) -> int: ...

    def unit_of_work(self) -> ContextManager: ...


class PolicySource(Protocol):
    def eligible_policies(self) -> List[GovernancePolicy]: ...


@dataclass
class StoredNotification:
    intent: NotificationIntent
    created_at: datetime
    is_read: bool = False


class InMemoryRegistry:
    """
    Dict-backed store. Reads and writes hand out copies, so callers can only
    change state through save_* / update_* calls.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0

        self.hospitals: Dict[str, Hospital] = {}
        self.recipients: Dict[str, Recipient] = {}
        self.donors: Dict[str, Donor] = {}
        self.requests: Dict[str, AllocationRequest] = {}
        self.policies: Dict[str, GovernancePolicy] = {}
        self.notifications: List[StoredNotification] = []

    # --- unit of work ---

    def _snapshot(self):
        return copy.deepcopy(
            (self.recipients, self.donors, self.requests, self.notifications)
        )

    def _restore(self, snapshot) -> None:
        self.recipients, self.donors, self.requests, self.notifications = snapshot

    @contextmanager
    def unit_of_work(self) -> Iterator[InMemoryRegistry]:
        with self._lock:
            if self._depth:
                # nested units join the outer one
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
            except AllocationError:
                self._restore(snapshot)
                raise
            except Exception as exc:
                self._restore(snapshot)
                logger.error("Unit of work rolled back: %s", exc)
                raise DownstreamError(f"storage failure: {exc}") from exc
            finally:
                self._depth = 0

    # --- hospitals ---

    def add_hospital(self, hospital: Hospital) -> None:
        with self._lock:
            self.hospitals[hospital.id] = hospital

    def get_hospital(self, hospital_id: str) -> Optional[Hospital]:
        return self.hospitals.get(hospital_id)

    def list_hospitals(self) -> List[Hospital]:
        with self._lock:
            return list(self.hospitals.values())

    # --- recipients ---

    def get_recipient(self, recipient_id: str) -> Optional[Recipient]:
        with self._lock:
            return copy.deepcopy(self.recipients.get(recipient_id))

    def save_recipient(self, recipient: Recipient) -> None:
        with self._lock:
            self.recipients[recipient.id] = copy.deepcopy(recipient)

    def delete_recipient(self, recipient_id: str) -> None:
        with self._lock:
            self.recipients.pop(recipient_id, None)

    # --- donors ---

    def get_donor(self, donor_id: str) -> Optional[Donor]:
        with self._lock:
            return copy.deepcopy(self.donors.get(donor_id))

    def save_donor(self, donor: Donor) -> None:
        with self._lock:
            self.donors[donor.id] = copy.deepcopy(donor)

    def match_donor_if_available(
        self,
        donor_id: str,
        recipient_id: str,
        hospital_id: str,
        at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            donor = self.donors.get(donor_id)
            if donor is None or not donor.is_active or donor.status != DonorStatus.AVAILABLE:
                return False

            donor.status = DonorStatus.MATCHED
            donor.matched_recipient_id = recipient_id
            donor.matched_hospital_id = hospital_id
            donor.status_updated_at = at or utcnow()
            return True

    def delete_donor(self, donor_id: str) -> None:
        with self._lock:
            self.donors.pop(donor_id, None)

    def list_donors(
        self,
        organ: Optional[str] = None,
        status: Optional[DonorStatus] = None,
        active_only: bool = True,
    ) -> List[Donor]:
        with self._lock:
            donors = list(self.donors.values())

            if active_only:
                donors = [d for d in donors if d.is_active]
            if status is not None:
                donors = [d for d in donors if d.status == status]
            if organ:
                wanted = normalize_organ(organ)
                donors = [d for d in donors if d.offers(wanted)]

            return copy.deepcopy(donors)

    # --- requests ---

    def get_request(self, request_id: str) -> Optional[AllocationRequest]:
        with self._lock:
            return copy.deepcopy(self.requests.get(request_id))

    def add_request(self, request: AllocationRequest) -> None:
        with self._lock:
            self.requests[request.id] = copy.deepcopy(request)

    def find_requests(
        self,
        recipient_id: Optional[str] = None,
        donor_id: Optional[str] = None,
        origin_hospital_id: Optional[str] = None,
        target_hospital_id: Optional[str] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
    ) -> List[AllocationRequest]:
        wanted = set(statuses) if statuses is not None else None

        with self._lock:
            found = [
                r for r in self.requests.values()
                if (recipient_id is None or r.recipient_id == recipient_id)
                and (donor_id is None or r.donor_id == donor_id)
                and (origin_hospital_id is None or r.origin_hospital_id == origin_hospital_id)
                and (target_hospital_id is None or r.target_hospital_id == target_hospital_id)
                and (wanted is None or r.status in wanted)
            ]
            found.sort(key=lambda r: r.created_at, reverse=True)
            return copy.deepcopy(found)

    def update_request_status(
        self,
        request_id: str,
        expected: RequestStatus,
        new: RequestStatus,
        response_notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            request = self.requests.get(request_id)
            if request is None or request.status != expected:
                return False

            request.status = new
            if response_notes is not None:
                request.response_notes = response_notes
            request.updated_at = at or utcnow()
            return True

    def mark_requests_viewed(self, target_hospital_id: str, statuses: Iterable[RequestStatus]) -> int:
        wanted = set(statuses)
        count = 0
        with self._lock:
            for request in self.requests.values():
                if request.target_hospital_id == target_hospital_id and request.status in wanted and not request.viewed:
                    request.viewed = True
                    count += 1
        return count

    # --- policies ---

    def add_policy(self, policy: GovernancePolicy) -> None:
        with self._lock:
            self.policies[policy.id] = policy

    def eligible_policies(self) -> List[GovernancePolicy]:
        with self._lock:
            return [copy.deepcopy(p) for p in self.policies.values() if is_eligible_for_matching(p)]

    # --- notification sink ---

    def emit(self, intent: NotificationIntent) -> None:
        with self._lock:
            self.notifications.append(StoredNotification(intent=intent, created_at=utcnow()))

    def mark_read(self, hospital_id: str, related_id: str) -> int:
        count = 0
        with self._lock:
            for stored in self.notifications:
                if (
                    stored.intent.hospital_id == hospital_id
                    and stored.intent.related_id == related_id
                    and not stored.is_read
                ):
                    stored.is_read = True
                    count += 1
        return count

    def notifications_for(self, hospital_id: str, unread_only: bool = False) -> List[StoredNotification]:
        with self._lock:
            return [
                n for n in self.notifications
                if n.intent.hospital_id == hospital_id and (not unread_only or not n.is_read)
            ]
