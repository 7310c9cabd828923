"""
Purpose: Allocation Request State Machine.
What it does:

pending --respond(accept)--> accepted --complete_transplant--> completed
pending --respond(reject)--> rejected

create_request on an internal match (origin hospital == target hospital) starts
at accepted with a system note instead of waiting for a response.

Each transition re-reads the recipient / donor / request inside one unit of work,
writes all three (plus the notification intents) together, and moves the request
status with a conditional write so two responders can never both win.

Terminal: rejected, completed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from donors.models import Donor, DonorStatus, utcnow
from matching.compatibility import is_blood_compatible
from recipients.models import Recipient, RecipientStatus

from .errors import (
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from .models import (
    DEFAULT_COMPLETION_NOTE,
    INTERNAL_MATCH_NOTE,
    AllocationRequest,
    Decision,
    RequestStatus,
)
from .notifications import NotificationIntent, NotificationSink, NotificationType
from .repository import AllocationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateRequestResult:
    request_id: str
    status: RequestStatus
    auto_accepted: bool


def _require_id(name: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


class AllocationStateMachine:
    """
    The only writer of request, recipient and donor status.
    """

    def __init__(
        self,
        store: AllocationStore,
        notifications: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifications = notifications
        self.clock = clock

    # --- create ---

    def create_request(
        self,
        origin_hospital_id: str,
        target_hospital_id: str,
        recipient_id: str,
        donor_id: str,
        notes: str = "",
    ) -> CreateRequestResult:
        origin_hospital_id = _require_id("origin_hospital_id", origin_hospital_id)
        target_hospital_id = _require_id("target_hospital_id", target_hospital_id)
        recipient_id = _require_id("recipient_id", recipient_id)
        donor_id = _require_id("donor_id", donor_id)
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be text")

        with self.store.unit_of_work():
            recipient = self.store.get_recipient(recipient_id)
            if recipient is None or recipient.hospital_id != origin_hospital_id:
                raise NotFoundError(f"Recipient {recipient_id} not found for hospital {origin_hospital_id}")
            if recipient.status != RecipientStatus.WAITING:
                raise ConflictError(f"Recipient {recipient_id} is {recipient.status.value}, not Waiting")

            if self.store.get_hospital(target_hospital_id) is None:
                raise NotFoundError(f"Hospital {target_hospital_id} not found")

            donor = self.store.get_donor(donor_id)
            if donor is None:
                raise NotFoundError(f"Donor {donor_id} not found")
            self._check_live_candidate(recipient, donor, target_hospital_id)

            now = self.clock()
            request = AllocationRequest.new(
                origin_hospital_id, target_hospital_id, recipient_id, donor_id, notes or "", now=now
            )

            internal = request.is_internal
            if internal:
                request.status = RequestStatus.ACCEPTED
                request.response_notes = INTERNAL_MATCH_NOTE
            self.store.add_request(request)

            recipient.status = RecipientStatus.MATCHED if internal else RecipientStatus.IN_PROGRESS
            recipient.matched_donor_id = donor.id
            recipient.matched_hospital_id = target_hospital_id
            recipient.status_updated_at = now
            self.store.save_recipient(recipient)

            if internal:
                self._match_donor(donor, recipient, now)
                self.notifications.emit(self._internal_match_intent(request, recipient))
            else:
                self.notifications.emit(self._organ_request_intent(request, recipient))

        logger.info(
            "Request %s created: %s -> %s recipient=%s donor=%s status=%s",
            request.id, origin_hospital_id, target_hospital_id, recipient_id, donor_id, request.status.value,
        )
        return CreateRequestResult(request_id=request.id, status=request.status, auto_accepted=internal)

    def _check_live_candidate(self, recipient: Recipient, donor: Donor, target_hospital_id: str) -> None:
        if donor.hospital_id != target_hospital_id:
            raise ValidationError(f"Donor {donor.id} does not belong to hospital {target_hospital_id}")
        if not donor.is_active or donor.status != DonorStatus.AVAILABLE:
            raise ConflictError(f"Donor {donor.id} is no longer available")
        if not donor.offers(recipient.organ_needed):
            raise ValidationError(f"Donor {donor.id} does not offer {recipient.organ_needed}")
        if not is_blood_compatible(recipient.blood_type, donor.blood_type):
            raise ValidationError(
                f"Donor blood type {donor.blood_type.value} is not compatible with {recipient.blood_type.value}"
            )

    def _match_donor(self, donor: Donor, recipient: Recipient, now: datetime) -> None:
        # the donor read may be stale; only one request may take an Available donor
        if not self.store.match_donor_if_available(donor.id, recipient.id, recipient.hospital_id, at=now):
            raise ConflictError(f"Donor {donor.id} is no longer available")

    # --- respond ---

    def respond(
        self,
        request_id: str,
        responder_hospital_id: str,
        decision: Decision | str,
        notes: Optional[str] = None,
    ) -> RequestStatus:
        request_id = _require_id("request_id", request_id)
        responder_hospital_id = _require_id("responder_hospital_id", responder_hospital_id)
        try:
            decision = Decision.parse(decision)
        except ValueError as exc:
            raise ValidationError("decision must be 'accepted' or 'rejected'") from exc

        with self.store.unit_of_work():
            request = self.store.get_request(request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} not found")
            if request.target_hospital_id != responder_hospital_id:
                raise AuthorizationError(f"Hospital {responder_hospital_id} cannot respond to request {request_id}")
            if request.status != RequestStatus.PENDING:
                raise ConflictError(f"Request {request_id} was already {request.status.value}")

            recipient = self.store.get_recipient(request.recipient_id)
            donor = self.store.get_donor(request.donor_id)
            if recipient is None or donor is None:
                raise DataIntegrityError(f"Recipient or donor of request {request_id} no longer exists")

            now = self.clock()
            new_status = RequestStatus.ACCEPTED if decision == Decision.ACCEPT else RequestStatus.REJECTED
            if decision == Decision.ACCEPT and (not donor.is_active or donor.status != DonorStatus.AVAILABLE):
                raise ConflictError(f"Donor {donor.id} is no longer available")

            won = self.store.update_request_status(
                request_id, RequestStatus.PENDING, new_status, response_notes=notes, at=now
            )
            if not won:
                raise ConflictError(f"Request {request_id} was resolved concurrently")

            if decision == Decision.ACCEPT:
                recipient.status = RecipientStatus.MATCHED
                recipient.matched_donor_id = donor.id
                recipient.matched_hospital_id = request.target_hospital_id
                self._match_donor(donor, recipient, now)
            else:
                recipient.status = RecipientStatus.WAITING
                recipient.matched_donor_id = None
                recipient.matched_hospital_id = None
            recipient.status_updated_at = now
            self.store.save_recipient(recipient)

            self.notifications.emit(self._response_intent(request, recipient, new_status, notes))
            self.notifications.mark_read(responder_hospital_id, request_id)

        logger.info("Request %s %s by hospital %s", request_id, new_status.value, responder_hospital_id)
        return new_status

    # --- complete ---

    def complete_transplant(
        self,
        recipient_id: str,
        donor_id: str,
        notes: Optional[str] = None,
        hospital_id: Optional[str] = None,
    ) -> Optional[AllocationRequest]:
        """
        Closes an accepted match. Returns the completed request, or None when the
        pair was matched without a request on record.
        """
        recipient_id = _require_id("recipient_id", recipient_id)
        donor_id = _require_id("donor_id", donor_id)
        notes = notes or DEFAULT_COMPLETION_NOTE

        with self.store.unit_of_work():
            recipient = self.store.get_recipient(recipient_id)
            donor = self.store.get_donor(donor_id)
            if recipient is None or donor is None:
                raise DataIntegrityError(f"Recipient {recipient_id} or donor {donor_id} no longer exists")
            if hospital_id is not None and recipient.hospital_id != hospital_id:
                raise NotFoundError(f"Recipient {recipient_id} not found for hospital {hospital_id}")

            if recipient.status != RecipientStatus.MATCHED or recipient.matched_donor_id != donor.id:
                raise ConflictError(f"Recipient {recipient_id} is not matched to donor {donor_id}")
            if donor.status != DonorStatus.MATCHED or donor.matched_recipient_id != recipient.id:
                raise ConflictError(f"Donor {donor_id} is not matched to recipient {recipient_id}")

            now = self.clock()
            recipient.status = RecipientStatus.COMPLETED
            recipient.completed_at = now
            recipient.status_updated_at = now
            self.store.save_recipient(recipient)

            donor.status = DonorStatus.DONATED
            donor.donated_at = now
            donor.status_updated_at = now
            self.store.save_donor(donor)

            completed = None
            accepted = self.store.find_requests(
                recipient_id=recipient_id, donor_id=donor_id, statuses=[RequestStatus.ACCEPTED]
            )
            if accepted:
                request = accepted[0]
                if not self.store.update_request_status(
                    request.id, RequestStatus.ACCEPTED, RequestStatus.COMPLETED, response_notes=notes, at=now
                ):
                    raise ConflictError(f"Request {request.id} was resolved concurrently")
                completed = self.store.get_request(request.id)

        logger.info("Transplant completed: recipient=%s donor=%s", recipient_id, donor_id)
        return completed

    # --- request lists ---

    def list_outgoing(self, hospital_id: str) -> List[AllocationRequest]:
        """
        Requests this hospital sent, newest first.
        """
        hospital_id = _require_id("hospital_id", hospital_id)
        return self.store.find_requests(origin_hospital_id=hospital_id)

    def list_incoming(self, hospital_id: str) -> List[AllocationRequest]:
        """
        Pending requests waiting for this hospital's answer, newest first.
        """
        hospital_id = _require_id("hospital_id", hospital_id)
        return self.store.find_requests(target_hospital_id=hospital_id, statuses=[RequestStatus.PENDING])

    def list_received(self, hospital_id: str) -> List[AllocationRequest]:
        """
        Requests this hospital already answered, most recently answered first.
        """
        hospital_id = _require_id("hospital_id", hospital_id)
        answered = self.store.find_requests(
            target_hospital_id=hospital_id, statuses=[RequestStatus.ACCEPTED, RequestStatus.REJECTED]
        )
        return sorted(answered, key=lambda r: r.updated_at, reverse=True)


    def mark_received_viewed(self, hospital_id: str) -> int:
        hospital_id = _require_id("hospital_id", hospital_id)
        with self.store.unit_of_work():
            return self.store.mark_requests_viewed(
                hospital_id, [RequestStatus.ACCEPTED, RequestStatus.REJECTED]
            )

    # --- notification intents ---

    def _internal_match_intent(self, request: AllocationRequest, recipient: Recipient) -> NotificationIntent:
        return NotificationIntent(
            hospital_id=request.origin_hospital_id,
            type=NotificationType.INTERNAL_MATCH,
            title="Internal Match Confirmed",
            message=(
                f"Internal match successful! Patient {recipient.full_name or recipient.id} matched with "
                f"available donor for {recipient.organ_needed}. Both are in your facility - please "
                f"coordinate internally."
            ),
            related_id=request.id,
            metadata={
                "request_id": request.id,
                "organ_needed": recipient.organ_needed,
                "urgency": recipient.urgency.value,
                "donor_id": request.donor_id,
                "match_type": "internal",
                "auto_accepted": True,
            },
        )

    def _organ_request_intent(self, request: AllocationRequest, recipient: Recipient) -> NotificationIntent:
        origin = self.store.get_hospital(request.origin_hospital_id)
        origin_name = origin.name if origin else "A hospital"
        return NotificationIntent(
            hospital_id=request.target_hospital_id,
            type=NotificationType.ORGAN_REQUEST,
            title="New Organ Request",
            message=(
                f"{origin_name} has requested a {recipient.organ_needed} for a "
                f"{recipient.urgency.value.lower()} priority patient."
            ),
            related_id=request.id,
            metadata={
                "request_id": request.id,
                "organ_needed": recipient.organ_needed,
                "urgency": recipient.urgency.value,
                "from_hospital": origin_name,
                "donor_id": request.donor_id,
            },
        )

    def _response_intent(
        self,
        request: AllocationRequest,
        recipient: Recipient,
        status: RequestStatus,
        notes: Optional[str],
    ) -> NotificationIntent:
        patient = recipient.full_name or recipient.id
        if status == RequestStatus.ACCEPTED:
            title = "Request Accepted!"
            message = f"Your organ request for {patient} has been accepted. Please coordinate next steps."
        else:
            title = "Request Declined"
            message = f"Your organ request for {patient} has been declined."
            if notes:
                message += f" Reason: {notes}"

        return NotificationIntent(
            hospital_id=request.origin_hospital_id,
            type=NotificationType.REQUEST_RESPONSE,
            title=title,
            message=message,
            related_id=request.id,
            metadata={
                "request_id": request.id,
                "status": status.value,
                "response_notes": notes,
            },
        )
