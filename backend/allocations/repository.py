"""
ORM-backed implementation of the allocation store, policy source and notification sink.

unit_of_work() wraps transaction.atomic(); the request status and the donor match move
through QuerySet.filter(status=expected).update(...) so only one concurrent writer wins.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from allocation.errors import AllocationError, DownstreamError
from allocation.models import AllocationRequest, RequestStatus
from allocation.notifications import NotificationIntent
from donors.models import BloodType, Donor, DonorStatus, Gender, normalize_organ
from governance.models import GovernancePolicy, PolicyStatus, is_eligible_for_matching
from hospitals.models import Hospital
from recipients.models import Recipient, RecipientStatus, UrgencyLevel

from . import models as orm

logger = logging.getLogger(__name__)


def hospital_from_row(row: orm.Hospital) -> Hospital:
    return Hospital(
        id=row.hospital_id,
        name=row.name,
        city=row.city or None,
        region=row.region or None,
        country=row.country or None,
    )


def recipient_from_row(row: orm.Recipient) -> Recipient:
    return Recipient(
        id=row.recipient_id,
        organ_needed=row.organ_needed,
        blood_type=BloodType.parse(row.blood_type),
        urgency=UrgencyLevel.parse(row.urgency),
        age=row.age,
        hospital_id=row.hospital_id,
        full_name=row.full_name,
        gender=Gender(row.gender) if row.gender else None,
        status=RecipientStatus(row.status),
        is_active=row.is_active,
        matched_donor_id=row.matched_donor_id,
        matched_hospital_id=row.matched_hospital_id,
        registered_at=row.registered_at,
        status_updated_at=row.status_updated_at,
        completed_at=row.completed_at,
    )


def donor_from_row(row: orm.Donor) -> Donor:
    return Donor(
        id=row.donor_id,
        blood_type=BloodType.parse(row.blood_type),
        organs=frozenset(row.organs or []),
        age=row.age,
        hospital_id=row.hospital_id,
        full_name=row.full_name,
        gender=Gender(row.gender) if row.gender else None,
        status=DonorStatus(row.status),
        is_active=row.is_active,
        matched_recipient_id=row.matched_recipient_id,
        matched_hospital_id=row.matched_hospital_id,
        registered_at=row.registered_at,
        status_updated_at=row.status_updated_at,
        donated_at=row.donated_at,
    )


def request_from_row(row: orm.AllocationRequest) -> AllocationRequest:
    return AllocationRequest(
        id=row.request_id,
        origin_hospital_id=row.origin_hospital_id,
        target_hospital_id=row.target_hospital_id,
        recipient_id=row.recipient_id,
        donor_id=row.donor_id,
        status=RequestStatus(row.status),
        request_notes=row.request_notes,
        response_notes=row.response_notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
        viewed=row.viewed,
    )


def policy_from_row(row: orm.GovernancePolicy) -> GovernancePolicy:
    return GovernancePolicy(
        id=row.policy_id,
        title=row.title,
        content=row.content,
        status=PolicyStatus(row.status),
        votes_for=row.votes_for,
        votes_against=row.votes_against,
        paused_for_matching=row.paused_for_matching,
        organ=row.organ,
        criteria_weights=row.criteria_weights,
        rules=list(row.rules or []),
        proposed_by=row.proposed_by,
        created_at=row.created_at,
    )


class DjangoRegistry:
    @contextmanager
    def unit_of_work(self):
        # atomic() rolls the transaction back on any exception leaving the block
        try:
            with transaction.atomic():
                yield self
        except AllocationError:
            raise
        except Exception as exc:
            logger.error("Unit of work rolled back: %s", exc)
            raise DownstreamError(f"storage failure: {exc}") from exc

    # --- hospitals ---

    def get_hospital(self, hospital_id: str) -> Optional[Hospital]:
        row = orm.Hospital.objects.filter(pk=hospital_id).first()
        return hospital_from_row(row) if row else None

    def list_hospitals(self) -> List[Hospital]:
        return [hospital_from_row(row) for row in orm.Hospital.objects.all()]

    # --- recipients ---

    def get_recipient(self, recipient_id: str) -> Optional[Recipient]:
        row = orm.Recipient.objects.filter(pk=recipient_id).first()
        return recipient_from_row(row) if row else None

    def save_recipient(self, recipient: Recipient) -> None:
        orm.Recipient.objects.update_or_create(
            pk=recipient.id,
            defaults={
                "hospital_id": recipient.hospital_id,
                "full_name": recipient.full_name,
                "organ_needed": recipient.organ_needed,
                "blood_type": recipient.blood_type.value,
                "urgency": recipient.urgency.value,
                "age": recipient.age,
                "gender": recipient.gender.value if recipient.gender else "",
                "status": recipient.status.value,
                "is_active": recipient.is_active,
                "matched_donor_id": recipient.matched_donor_id,
                "matched_hospital_id": recipient.matched_hospital_id,
                "registered_at": recipient.registered_at,
                "status_updated_at": recipient.status_updated_at,
                "completed_at": recipient.completed_at,
            },
        )

    # --- donors ---

    def get_donor(self, donor_id: str) -> Optional[Donor]:
        row = orm.Donor.objects.filter(pk=donor_id).first()
        return donor_from_row(row) if row else None

    def save_donor(self, donor: Donor) -> None:
        orm.Donor.objects.update_or_create(
            pk=donor.id,
            defaults={
                "hospital_id": donor.hospital_id,
                "full_name": donor.full_name,
                "blood_type": donor.blood_type.value,
                "organs": sorted(donor.organs),
                "age": donor.age,
                "gender": donor.gender.value if donor.gender else "",
                "status": donor.status.value,
                "is_active": donor.is_active,
                "matched_recipient_id": donor.matched_recipient_id,
                "matched_hospital_id": donor.matched_hospital_id,
                "registered_at": donor.registered_at,
                "status_updated_at": donor.status_updated_at,
                "donated_at": donor.donated_at,
            },
        )

    def match_donor_if_available(
        self,
        donor_id: str,
        recipient_id: str,
        hospital_id: str,
        at: Optional[datetime] = None,
    ) -> bool:
        updated = orm.Donor.objects.filter(
            pk=donor_id, status=DonorStatus.AVAILABLE.value, is_active=True
        ).update(
            status=DonorStatus.MATCHED.value,
            matched_recipient_id=recipient_id,
            matched_hospital_id=hospital_id,
            status_updated_at=at or timezone.now(),
        )
        return updated == 1

    def list_donors(
        self,
        organ: Optional[str] = None,
        status: Optional[DonorStatus] = None,
        active_only: bool = True,
    ) -> List[Donor]:
        rows = orm.Donor.objects.all()
        if active_only:
            rows = rows.filter(is_active=True)
        if status is not None:
            rows = rows.filter(status=status.value)

        donors = [donor_from_row(row) for row in rows]
        # organ lists are JSON, so the singular/plural match happens here
        if organ:
            wanted = normalize_organ(organ)
            donors = [d for d in donors if d.offers(wanted)]
        return donors

    # --- requests ---

    def get_request(self, request_id: str) -> Optional[AllocationRequest]:
        row = orm.AllocationRequest.objects.filter(pk=request_id).first()
        return request_from_row(row) if row else None

    def add_request(self, request: AllocationRequest) -> None:
        orm.AllocationRequest.objects.create(
            request_id=request.id,
            origin_hospital_id=request.origin_hospital_id,
            target_hospital_id=request.target_hospital_id,
            recipient_id=request.recipient_id,
            donor_id=request.donor_id,
            status=request.status.value,
            request_notes=request.request_notes,
            response_notes=request.response_notes,
            created_at=request.created_at,
            updated_at=request.updated_at,
            viewed=request.viewed,
        )

    def find_requests(
        self,
        recipient_id: Optional[str] = None,
        donor_id: Optional[str] = None,
        origin_hospital_id: Optional[str] = None,
        target_hospital_id: Optional[str] = None,
        statuses: Optional[Iterable[RequestStatus]] = None,
    ) -> List[AllocationRequest]:
        rows = orm.AllocationRequest.objects.all()
        if recipient_id is not None:
            rows = rows.filter(recipient_id=recipient_id)
        if donor_id is not None:
            rows = rows.filter(donor_id=donor_id)
        if origin_hospital_id is not None:
            rows = rows.filter(origin_hospital_id=origin_hospital_id)
        if target_hospital_id is not None:
            rows = rows.filter(target_hospital_id=target_hospital_id)
        if statuses is not None:
            rows = rows.filter(status__in=[s.value for s in statuses])
        return [request_from_row(row) for row in rows.order_by("-created_at")]

    def update_request_status(
        self,
        request_id: str,
        expected: RequestStatus,
        new: RequestStatus,
        response_notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        changes = {"status": new.value, "updated_at": at or timezone.now()}
        if response_notes is not None:
            changes["response_notes"] = response_notes

        updated = orm.AllocationRequest.objects.filter(pk=request_id, status=expected.value).update(**changes)
        return updated == 1

    def mark_requests_viewed(self, target_hospital_id: str, statuses: Iterable[RequestStatus]) -> int:
        return orm.AllocationRequest.objects.filter(
            target_hospital_id=target_hospital_id,
            status__in=[s.value for s in statuses],
            viewed=False,
        ).update(viewed=True)

    # --- policies ---

    def eligible_policies(self) -> List[GovernancePolicy]:
        rows = orm.GovernancePolicy.objects.filter(
            status__in=[PolicyStatus.ACTIVE.value, PolicyStatus.VOTING.value],
            paused_for_matching=False,
        )
        policies = [policy_from_row(row) for row in rows]
        return [p for p in policies if is_eligible_for_matching(p)]

    # --- notification sink ---

    def emit(self, intent: NotificationIntent) -> None:
        orm.Notification.objects.create(
            hospital_id=intent.hospital_id,
            type=intent.type.value,
            title=intent.title,
            message=intent.message,
            related_id=intent.related_id,
            metadata=dict(intent.metadata),
        )

    def mark_read(self, hospital_id: str, related_id: str) -> int:
        return orm.Notification.objects.filter(
            hospital_id=hospital_id, related_id=related_id, is_read=False
        ).update(is_read=True)
