"""
Purpose: Domain models for the Recipients capability.
What it does:
- Defines the Recipient waiting for an organ (blood type, urgency, owning hospital, status).
- Defines enums/constants:
- UrgencyLevel = Low | Medium | High | Critical
- RecipientStatus = Waiting | In Progress | Matched | Completed

Rule: No scoring, no state transitions. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from donors.models import BloodType, Gender, utcnow


class UrgencyLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def parse(cls, value: str | UrgencyLevel) -> UrgencyLevel:
        if isinstance(value, UrgencyLevel):
            return value
        text = str(value).strip().lower()
        for level in cls:
            if level.value.lower() == text:
                return level
        raise ValueError(f"Unknown urgency level: {value!r}")

    @property
    def rank(self) -> int:
        return _URGENCY_ORDER.index(self)


_URGENCY_ORDER = [UrgencyLevel.LOW, UrgencyLevel.MEDIUM, UrgencyLevel.HIGH, UrgencyLevel.CRITICAL]


class RecipientStatus(str, Enum):
    WAITING = "Waiting"
    IN_PROGRESS = "In Progress"
    MATCHED = "Matched"
    COMPLETED = "Completed"


@dataclass
class Recipient:
    """
    A patient on the waiting list of one hospital.
    """
    id: str
    organ_needed: str
    blood_type: BloodType
    urgency: UrgencyLevel
    age: int
    hospital_id: str

    full_name: str = ""
    gender: Optional[Gender] = None
    status: RecipientStatus = RecipientStatus.WAITING
    is_active: bool = True

    # set only while status is IN_PROGRESS or MATCHED
    matched_donor_id: Optional[str] = None
    matched_hospital_id: Optional[str] = None

    registered_at: datetime = field(default_factory=utcnow)
    status_updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_pediatric(self) -> bool:
        return self.age < 18

    @staticmethod
    def new(
        recipient_id: str,
        organ_needed: str,
        blood_type: str | BloodType,
        urgency: str | UrgencyLevel,
        age: int,
        hospital_id: str,
        full_name: str = "",
        gender: str | Gender | None = None,
        status: str | RecipientStatus = RecipientStatus.WAITING,
        registered_at: datetime | None = None,
    ) -> Recipient:
        if isinstance(status, str):
            status = RecipientStatus(status)
        if isinstance(gender, str):
            gender = Gender(gender)

        return Recipient(
            id=recipient_id,
            organ_needed=organ_needed.strip(),
            blood_type=BloodType.parse(blood_type),
            urgency=UrgencyLevel.parse(urgency),
            age=int(age),
            hospital_id=hospital_id,
            full_name=full_name,
            gender=gender,
            status=status,
            registered_at=registered_at or utcnow(),
        )
