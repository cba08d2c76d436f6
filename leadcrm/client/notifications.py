"""
Dashboard notification state: the local list, the unread badge, and the
two ways they stay fresh (realtime events and a fixed-interval poll of the
unread count).
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Union
from uuid import uuid4

from leadcrm.client.http import ApiClient
from leadcrm.client.views import RefreshableView
from leadcrm.core.config import settings
from leadcrm.core.exceptions import AuthenticationError, BaseAPIException
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import utcnow
from leadcrm.models.notification import EventType
from leadcrm.schemas.events import LeadEvent
from leadcrm.schemas.notifications import NotificationData, NotificationOut
from leadcrm.services.events import EventHandler, Unsubscribe

logger = get_structlog_logger(__name__)

LOCAL_ID_PREFIX = "local-"

ToastSink = Callable[[str], None]


class Subscriber(Protocol):
    def subscribe(self, channel: str, event: Union[str, EventType], handler: EventHandler) -> Unsubscribe:
        ...


def _log_toast(message: str) -> None:
    logger.info("notification.toast", message=message)


class NotificationCenter:
    def __init__(
        self,
        api: ApiClient,
        toast: Optional[ToastSink] = None,
        poll_interval: Optional[float] = None,
    ):
        self.api = api
        self.toast = toast or _log_toast
        self.poll_interval = poll_interval or settings.notification_poll_interval_seconds
        self.notifications: List[NotificationOut] = []
        self.unread_count = 0
        self._views: Dict[EventType, List[RefreshableView]] = {}
        self._handles: List[Unsubscribe] = []
        self._poller: Optional[asyncio.Task] = None
        # Ids already marked read from this center, loaded or not
        self._acknowledged: Set[str] = set()

    # Wiring

    def bind(
        self,
        subscriber: Subscriber,
        channel: str,
        events: Iterable[Union[str, EventType]] = tuple(EventType),
    ) -> None:
        """Bind one handler per event type on ``channel``."""
        for event in dict.fromkeys(EventType(event) for event in events):
            self._handles.append(subscriber.subscribe(channel, event, self.handle_event))

    def watch(self, view: RefreshableView, events: Iterable[Union[str, EventType]] = tuple(EventType)) -> None:
        """Refetch ``view`` when any of ``events`` arrives."""
        for event in events:
            views = self._views.setdefault(EventType(event), [])
            if view not in views:
                views.append(view)

    # Events

    async def handle_event(self, event: LeadEvent) -> None:
        message = event.display_message()
        self.toast(message)

        self.notifications.insert(
            0,
            NotificationOut(
                id=f"{LOCAL_ID_PREFIX}{uuid4().hex}",
                type=event.event_type.notification_type,
                data=NotificationData(message=message, lead_id=event.lead_id),
                created_at=utcnow(),
            ),
        )
        self.unread_count += 1

        for view in self._views.get(event.event_type, []):
            try:
                await view.handle_event(event)
            except BaseAPIException as e:
                logger.warning("notification.refetch_failed", event_type=event.type, code=e.code, error=e.message)

    # Server state

    async def refresh_unread(self) -> int:
        self.unread_count = await self.api.unread_count()
        return self.unread_count

    async def load(self, limit: Optional[int] = None) -> List[NotificationOut]:
        self.notifications = await self.api.list_notifications(limit=limit)
        await self.refresh_unread()
        return self.notifications

    def find(self, notification_id: str) -> Optional[NotificationOut]:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    async def mark_read(self, notification_id: str) -> bool:
        """Mark one notification read.

        A notification already read, or already marked read through this
        center even when it was never loaded, is left alone: no request and
        no second decrement. Locally synthesized entries never reach the
        server. Returns whether anything changed.
        """
        notification = self.find(notification_id)
        if notification_id in self._acknowledged or (notification is not None and notification.is_read):
            return False

        if not notification_id.startswith(LOCAL_ID_PREFIX):
            updated = await self.api.mark_notification_read(notification_id)
            if notification is not None:
                notification.read_at = updated.read_at

        if notification is not None and notification.read_at is None:
            notification.read_at = utcnow()

        self._acknowledged.add(notification_id)
        self.unread_count = max(0, self.unread_count - 1)
        return True

    async def mark_all_read(self) -> None:
        await self.api.mark_all_notifications_read()
        now = utcnow()
        for notification in self.notifications:
            if notification.read_at is None:
                notification.read_at = now
        self.unread_count = 0

    # Polling backstop

    async def run_polling(self) -> None:
        """Refresh the unread count now and then every ``poll_interval`` seconds."""
        while True:
            try:
                await self.refresh_unread()
            except AuthenticationError:
                logger.info("notification.polling_stopped", reason="session_cleared")
                return
            except BaseAPIException as e:
                logger.warning("notification.poll_failed", code=e.code, error=e.message)
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self.run_polling())

    async def close(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            await asyncio.gather(self._poller, return_exceptions=True)
            self._poller = None

        handles, self._handles = self._handles, []
        for unsubscribe in handles:
            unsubscribe()
