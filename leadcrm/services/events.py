"""
Channel-scoped pub/sub for lead events.

Events are published to named channels: ``admin`` is shared by every admin
session and ``private-provider.{id}`` belongs to one provider. Subscribers get
an explicit ``Unsubscribe`` handle back instead of having to remember the
handler they registered.
"""

from __future__ import annotations

import asyncio
import re
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.notification import EventType
from leadcrm.schemas.events import LeadEvent

logger = get_structlog_logger(__name__)

ADMIN_CHANNEL = "admin"
PRIVATE_PREFIX = "private-"
_PROVIDER_CHANNEL_RE = re.compile(r"^private-provider\.(\d+)$")

EventHandler = Callable[[LeadEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


def provider_channel(provider_id: int) -> str:
    return f"private-provider.{provider_id}"


def parse_provider_channel(channel: str) -> Optional[int]:
    match = _PROVIDER_CHANNEL_RE.match(channel)
    return int(match.group(1)) if match else None


def is_private_channel(channel: str) -> bool:
    return channel.startswith(PRIVATE_PREFIX)


async def call_handler(handler: EventHandler, event: LeadEvent) -> None:
    result = handler(event)
    if asyncio.iscoroutine(result):
        await result


class EventBus:
    """In-process event bus keyed by (channel, event type)."""

    def __init__(self):
        self._subscribers: Dict[Tuple[str, EventType], List[EventHandler]] = {}

    def subscribe(self, channel: str, event: Union[str, EventType], handler: EventHandler) -> Unsubscribe:
        key = (channel, EventType(event))
        self._subscribers.setdefault(key, []).append(handler)
        logger.debug("events.subscribed", channel=channel, event_type=key[1].value)

        done = False

        def unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            handlers = self._subscribers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(key, None)
            logger.debug("events.unsubscribed", channel=channel, event_type=key[1].value)

        return unsubscribe

    def subscribe_all(self, channel: str, handler: EventHandler) -> Unsubscribe:
        """Subscribe one handler to every lead event type on a channel."""
        handles = [self.subscribe(channel, event, handler) for event in EventType]

        def unsubscribe() -> None:
            for handle in handles:
                handle()

        return unsubscribe

    def subscriber_count(self, channel: str, event: Union[str, EventType, None] = None) -> int:
        if event is not None:
            return len(self._subscribers.get((channel, EventType(event)), []))
        return sum(len(handlers) for (name, _), handlers in self._subscribers.items() if name == channel)

    async def publish(self, channel: str, event: LeadEvent) -> int:
        """Deliver ``event`` to the channel's subscribers.

        A failing handler is logged and skipped; the others still run.
        Returns the number of handlers that ran without error.
        """
        handlers = list(self._subscribers.get((channel, event.event_type), []))

        if not handlers:
            logger.debug("events.no_subscribers", channel=channel, event_type=event.type)
            return 0

        delivered = 0
        for handler in handlers:
            try:
                await call_handler(handler, event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "events.handler_failed",
                    channel=channel,
                    event_type=event.type,
                    lead_id=event.lead_id,
                    error=str(e),
                    exc_info=True,
                )

        logger.info("events.published", channel=channel, event_type=event.type, lead_id=event.lead_id, delivered=delivered)
        return delivered

    def clear_subscribers(self) -> None:
        self._subscribers.clear()
