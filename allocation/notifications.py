#Purpose: Notification intents emitted by the allocation state machine.
#Delivery (push, email, dashboards) belongs to a collaborator; the core only
#hands intents to a sink that takes part in the same unit of work as the
#request / recipient / donor writes.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol


class NotificationType(str, Enum):
    INTERNAL_MATCH = "internal_match"
    ORGAN_REQUEST = "organ_request"
    REQUEST_RESPONSE = "request_response"


@dataclass(frozen=True)
class NotificationIntent:
    hospital_id: str
    type: NotificationType
    title: str
    message: str
    related_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def emit(self, intent: NotificationIntent) -> None:
        ...

    def mark_read(self, hospital_id: str, related_id: str) -> int:
        """Marks the hospital's notifications about `related_id` as read; returns how many."""
        ...
