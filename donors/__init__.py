"""
Donors domain package.

Public API:
- Domain models: Donor, DonorStatus, BloodType, Gender
- Organ vocabulary: normalize_organ
"""
from .models import BloodType, Donor, DonorStatus, Gender, normalize_organ, utcnow

__all__ = [
    "BloodType",
    "Donor",
    "DonorStatus",
    "Gender",
    "normalize_organ",
    "utcnow",
]
