"""
Allocation domain package.

Public API:
- Models: AllocationRequest, RequestStatus, Decision
- Errors: AllocationError and its subclasses
- Contracts: AllocationStore, PolicySource, NotificationSink (+ InMemoryRegistry)
- Transitions: AllocationStateMachine
"""
from .errors import (
    AllocationError,
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    DownstreamError,
    NotFoundError,
    ValidationError,
)
from .models import AllocationRequest, Decision, RequestStatus
from .notifications import NotificationIntent, NotificationSink, NotificationType
from .repository import AllocationStore, InMemoryRegistry, PolicySource
from .state_machine import AllocationStateMachine, CreateRequestResult

__all__ = [
    "AllocationError",
    "AuthorizationError",
    "ConflictError",
    "DataIntegrityError",
    "DownstreamError",
    "NotFoundError",
    "ValidationError",
    "AllocationRequest",
    "Decision",
    "RequestStatus",
    "NotificationIntent",
    "NotificationSink",
    "NotificationType",
    "AllocationStore",
    "InMemoryRegistry",
    "PolicySource",
    "AllocationStateMachine",
    "CreateRequestResult",
]
