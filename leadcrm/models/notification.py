from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from leadcrm.models.lead import utcnow


class EventType(str, Enum):
    LEAD_ASSIGNED = "lead.assigned"
    LEAD_STATUS_UPDATED = "lead.status.updated"
    LEAD_NOTE_CREATED = "lead.note.created"

    @property
    def notification_type(self) -> "NotificationType":
        return _EVENT_TO_NOTIFICATION[self]


class NotificationType(str, Enum):
    LEAD_ASSIGNED = "lead_assigned"
    LEAD_STATUS_UPDATED = "lead_status_updated"
    LEAD_NOTE_CREATED = "lead_note_created"


_EVENT_TO_NOTIFICATION = {
    EventType.LEAD_ASSIGNED: NotificationType.LEAD_ASSIGNED,
    EventType.LEAD_STATUS_UPDATED: NotificationType.LEAD_STATUS_UPDATED,
    EventType.LEAD_NOTE_CREATED: NotificationType.LEAD_NOTE_CREATED,
}


@dataclass
class Notification:
    id: str
    type: NotificationType
    message: str
    lead_id: int
    read_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self, when: Optional[datetime] = None) -> bool:
        """Mark as read. Returns False when it was already read."""
        if self.read_at is not None:
            return False
        self.read_at = when or utcnow()
        return True
