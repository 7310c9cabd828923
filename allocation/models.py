"""
Purpose: Domain models for allocation requests.
What it does:
- AllocationRequest (origin hospital, target hospital, recipient, donor, status, notes, timestamps)
- RequestStatus = pending | accepted | rejected | completed
- Decision = accepted | rejected (the target hospital's answer)

Rule: No transitions here. The state machine is the only writer of `status`.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from donors.models import utcnow


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.REJECTED, RequestStatus.COMPLETED)


class Decision(str, Enum):
    ACCEPT = "accepted"
    REJECT = "rejected"

    @classmethod
    def parse(cls, value: str | Decision) -> Decision:
        if isinstance(value, Decision):
            return value
        text = str(value or "").strip().lower()
        if text in ("accept", "accepted"):
            return cls.ACCEPT
        if text in ("reject", "rejected"):
            return cls.REJECT
        raise ValueError(f"Unknown decision: {value!r}")


INTERNAL_MATCH_NOTE = "Auto-accepted: Internal hospital match - donor and patient in same facility"
DEFAULT_COMPLETION_NOTE = "Transplant completed successfully"


@dataclass
class AllocationRequest:
    """
    One hospital asking another (or itself) for a specific donor for a specific recipient.
    Recipient and donor are weak references; either may disappear independently.
    """
    id: str
    origin_hospital_id: str
    target_hospital_id: str
    recipient_id: str
    donor_id: str

    status: RequestStatus = RequestStatus.PENDING
    request_notes: str = ""
    response_notes: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # UI hint for the target hospital's "received" list
    viewed: bool = False

    @property
    def is_internal(self) -> bool:
        return self.origin_hospital_id == self.target_hospital_id

    @staticmethod
    def new(
        origin_hospital_id: str,
        target_hospital_id: str,
        recipient_id: str,
        donor_id: str,
        request_notes: str = "",
        now: Optional[datetime] = None,
    ) -> AllocationRequest:
        now = now or utcnow()
        return AllocationRequest(
            id=str(uuid.uuid4()),
            origin_hospital_id=origin_hospital_id,
            target_hospital_id=target_hospital_id,
            recipient_id=recipient_id,
            donor_id=donor_id,
            request_notes=request_notes or "",
            created_at=now,
            updated_at=now,
        )
