"""
Hospitals domain package.

Public API:
- Domain models: Hospital, Location
"""
from .models import Hospital, Location

__all__ = ["Hospital", "Location"]
