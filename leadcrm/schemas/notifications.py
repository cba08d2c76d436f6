from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from leadcrm.models.notification import Notification, NotificationType


class NotificationData(BaseModel):
    message: str
    lead_id: int


class NotificationOut(BaseModel):
    id: str
    type: NotificationType
    data: NotificationData
    read_at: Optional[datetime] = None
    created_at: datetime

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationOut":
        return cls(
            id=notification.id,
            type=notification.type,
            data=NotificationData(message=notification.message, lead_id=notification.lead_id),
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    data: List[NotificationOut]


class UnreadCountResponse(BaseModel):
    count: int
