"""
Purpose: Package entry + stable exports.

Recipients domain package.

Public API:
- Domain models: Recipient, RecipientStatus, UrgencyLevel
"""
from .models import Recipient, RecipientStatus, UrgencyLevel

__all__ = ["Recipient",
           "RecipientStatus",
           "UrgencyLevel",
           ]
