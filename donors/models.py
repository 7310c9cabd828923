"""
Purpose: Core data models for the donors domain.
What it does:
Defines the structure of a Donor, their status, and the shared blood type / organ
vocabulary used by matching, without relying on Django ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BloodType(str, Enum):
    O_NEG = "O-"
    O_POS = "O+"
    A_NEG = "A-"
    A_POS = "A+"
    B_NEG = "B-"
    B_POS = "B+"
    AB_NEG = "AB-"
    AB_POS = "AB+"

    @classmethod
    def parse(cls, value: str | BloodType) -> BloodType:
        if isinstance(value, BloodType):
            return value
        return cls(str(value).strip().upper())

    @property
    def abo(self) -> str:
        return self.value[:-1]

    @property
    def rh_positive(self) -> bool:
        return self.value.endswith("+")


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class DonorStatus(str, Enum):
    """
    Standardizes the state a donor can be in.
    Only the allocation state machine moves a donor between these.
    """
    AVAILABLE = "Available"
    MATCHED = "Matched"
    DONATED = "Donated"


# organs whose singular form already ends in "s"
SINGULAR_S_ORGANS = frozenset({"pancreas"})


def normalize_organ(name: str) -> str:
    """
    Canonical organ key: case/whitespace insensitive and tolerant of
    singular/plural variants ("Kidneys" == "kidney", "Pancreases" == "pancreas").
    """
    key = (name or "").strip().lower()
    if key in SINGULAR_S_ORGANS:
        return key
    if key.endswith("es") and key[:-2] in SINGULAR_S_ORGANS:
        return key[:-2]
    if key.endswith("s"):
        key = key[:-1]
    return key


@dataclass
class Donor:
    """
    A registered donor at a specific point in time.
    """
    id: str
    blood_type: BloodType
    organs: FrozenSet[str]
    age: int
    hospital_id: str

    full_name: str = ""
    gender: Optional[Gender] = None
    status: DonorStatus = DonorStatus.AVAILABLE
    is_active: bool = True

    matched_recipient_id: Optional[str] = None
    matched_hospital_id: Optional[str] = None

    registered_at: datetime = field(default_factory=utcnow)
    status_updated_at: Optional[datetime] = None
    donated_at: Optional[datetime] = None

    def offers(self, organ: str) -> bool:
        wanted = normalize_organ(organ)
        return any(normalize_organ(o) == wanted for o in self.organs)

    @classmethod
    def new(
        cls,
        donor_id: str,
        blood_type: str | BloodType,
        organs: Iterable[str],
        age: int,
        hospital_id: str,
        full_name: str = "",
        gender: str | Gender | None = None,
        status: str | DonorStatus = DonorStatus.AVAILABLE,
        registered_at: datetime | None = None,
    ) -> Donor:
        if isinstance(status, str):
            status = DonorStatus(status)
        if isinstance(gender, str):
            gender = Gender(gender)

        return cls(
            id=donor_id,
            blood_type=BloodType.parse(blood_type),
            organs=frozenset(o.strip() for o in organs if o and o.strip()),
            age=int(age),
            hospital_id=hospital_id,
            full_name=full_name,
            gender=gender,
            status=status,
            registered_at=registered_at or utcnow(),
        )
