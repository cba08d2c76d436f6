from __future__ import annotations

from typing import Dict, List, Optional
from uuid import uuid4

from leadcrm.core.exceptions import NotFoundError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import utcnow
from leadcrm.models.notification import Notification
from leadcrm.models.user import Principal
from leadcrm.schemas.events import LeadEvent

logger = get_structlog_logger(__name__)

ADMIN_AUDIENCE = "admin"


def provider_audience(provider_id: int) -> str:
    return f"provider:{provider_id}"


def audience_for(principal: Principal) -> str:
    if principal.is_admin:
        return ADMIN_AUDIENCE
    return provider_audience(principal.provider_id)


class NotificationInbox:
    """Stored notifications per audience, newest first.

    All admins share one inbox; every provider has its own.
    """

    def __init__(self):
        self._inboxes: Dict[str, List[Notification]] = {}

    def record(self, audience: str, event: LeadEvent) -> Notification:
        notification = Notification(
            id=uuid4().hex,
            type=event.event_type.notification_type,
            message=event.display_message(),
            lead_id=event.lead_id,
        )
        self._inboxes.setdefault(audience, []).insert(0, notification)
        logger.debug(
            "notification.recorded",
            audience=audience,
            notification_id=notification.id,
            type=notification.type.value,
        )
        return notification

    def list(self, audience: str, limit: Optional[int] = None) -> List[Notification]:
        items = self._inboxes.get(audience, [])
        return list(items[:limit] if limit else items)

    def unread_count(self, audience: str) -> int:
        return sum(1 for item in self._inboxes.get(audience, []) if not item.is_read)

    def mark_read(self, audience: str, notification_id: str) -> Notification:
        for item in self._inboxes.get(audience, []):
            if item.id == notification_id:
                item.mark_read()
                return item
        raise NotFoundError(
            message="Notification not found",
            details={"notification_id": notification_id},
        )

    def mark_all_read(self, audience: str) -> int:
        now = utcnow()
        changed = sum(1 for item in self._inboxes.get(audience, []) if item.mark_read(now))
        logger.info("notification.read_all", audience=audience, changed=changed)
        return changed
