"""
Pusher-protocol channel subscriber.

Connects to Pusher (or the service's own ``/app/{key}`` endpoint) with
aiohttp, signs private channel subscriptions through ``/broadcasting/auth``,
and dispatches lead events to one handler per (channel, event). Nothing
here is allowed to fail loudly: a missing configuration or a rejected
channel is logged and the caller carries on with polling. A dropped socket
is reopened with doubling delays until the session is cleared.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional, Set, Tuple, Union

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from leadcrm import __version__
from leadcrm.client.http import ApiClient
from leadcrm.core.config import settings
from leadcrm.core.exceptions import BaseAPIException, RealtimeUnavailableError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.notification import EventType
from leadcrm.schemas.events import parse_event
from leadcrm.schemas.settings import RealtimeConfig
from leadcrm.services.events import EventHandler, Unsubscribe, call_handler, is_private_channel

logger = get_structlog_logger(__name__)

PROTOCOL_VERSION = 7


def socket_url(config: RealtimeConfig) -> str:
    base = config.ws_url or f"wss://ws-{config.app_cluster}.pusher.com"
    return f"{base.rstrip('/')}/app/{config.app_key}?protocol={PROTOCOL_VERSION}&client=leadcrm-python&version={__version__}"


class RealtimeClient:
    def __init__(
        self,
        api: ApiClient,
        connect_timeout: Optional[float] = None,
        reconnect_delay: Optional[float] = None,
        max_reconnect_attempts: Optional[int] = None,
        auto_reconnect: bool = True,
    ):
        self.api = api
        self.connect_timeout = connect_timeout or settings.realtime_connect_timeout_seconds
        self.reconnect_delay = reconnect_delay or settings.realtime_reconnect_delay_seconds
        self.max_reconnect_delay = max(self.reconnect_delay, settings.realtime_max_reconnect_delay_seconds)
        self.max_reconnect_attempts = max_reconnect_attempts
        self.auto_reconnect = auto_reconnect
        self.socket_id: Optional[str] = None
        self._handlers: Dict[Tuple[str, EventType], EventHandler] = {}
        self._subscribed: Set[str] = set()
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed and self.socket_id is not None

    @property
    def channels(self) -> Set[str]:
        return {channel for channel, _ in self._handlers}

    # Subscriptions

    def subscribe(self, channel: str, event: Union[str, EventType], handler: EventHandler) -> Unsubscribe:
        """Bind ``handler`` to ``event`` on ``channel``.

        A channel carries one handler per event; binding again replaces the
        previous handler rather than stacking a second one.
        """
        key = (channel, EventType(event))
        new_channel = channel not in self.channels
        self._handlers[key] = handler

        if new_channel and self.connected:
            self._spawn(self._send_subscribe(channel))

        done = False

        def unsubscribe() -> None:
            nonlocal done
            if done:
                return
            done = True
            if self._handlers.get(key) is handler:
                del self._handlers[key]
            if channel not in self.channels:
                self._subscribed.discard(channel)
                if self.connected:
                    self._spawn(self._send({"event": "pusher:unsubscribe", "data": {"channel": channel}}))

        return unsubscribe

    # Connection

    async def connect(self) -> bool:
        """Open the socket and subscribe every bound channel.

        Returns False, never raises, when realtime cannot be used. Once
        connected, a dropped socket is reopened in the background.
        """
        if not await self._open():
            return False
        self._reader = asyncio.create_task(self._run())
        return True

    async def _open(self) -> bool:
        try:
            config = await self.api.realtime_config()
        except BaseAPIException as e:
            logger.warning("realtime.config_unavailable", code=e.code, error=e.message)
            return False

        if not config.usable:
            logger.info("realtime.disabled")
            return False

        url = socket_url(config)
        try:
            self._http = aiohttp.ClientSession()
            self._ws = await asyncio.wait_for(self._http.ws_connect(url), self.connect_timeout)
            message = await self._ws.receive_json(timeout=self.connect_timeout)
            await self.handle_frame(message)
            if self.socket_id is None:
                raise RealtimeUnavailableError(details={"frame": message.get("event")})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, TypeError, RealtimeUnavailableError) as e:
            logger.warning("realtime.connect_failed", url=url, error=str(e) or type(e).__name__)
            await self._release_socket()
            return False

        logger.info("realtime.connected", socket_id=self.socket_id)
        for channel in self.channels:
            await self._send_subscribe(channel)
        return True

    async def close(self) -> None:
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
        self._reader = None

        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        await self._release_socket()

    async def _release_socket(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._http is not None:
            await self._http.close()
            self._http = None

        self.socket_id = None
        self._subscribed.clear()

    def reconnect_backoff(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (0-based): doubling, capped."""
        return min(self.max_reconnect_delay, self.reconnect_delay * (2 ** attempt))

    async def _run(self) -> None:
        while True:
            await self._read_until_closed()
            logger.warning("realtime.connection_lost", socket_id=self.socket_id)
            await self._release_socket()

            if not await self._reconnect():
                return

    async def _reconnect(self) -> bool:
        attempt = 0
        while self.auto_reconnect:
            if not self.api.session.is_authenticated:
                logger.info("realtime.reconnect_stopped", reason="session_cleared")
                return False
            if self.max_reconnect_attempts is not None and attempt >= self.max_reconnect_attempts:
                logger.warning("realtime.reconnect_gave_up", attempts=attempt)
                return False

            delay = self.reconnect_backoff(attempt)
            attempt += 1
            logger.info("realtime.reconnecting", attempt=attempt, delay=delay)
            await asyncio.sleep(delay)
            if await self._open():
                return True
        return False

    async def _read_until_closed(self) -> None:
        try:
            async for message in self._ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(message.data)
                    except ValueError:
                        logger.warning("realtime.malformed_frame")
                        continue
                    await self.handle_frame(frame)
                elif message.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                    break
        except aiohttp.ClientError as e:
            logger.warning("realtime.read_failed", error=str(e))

    # Frames

    async def handle_frame(self, frame: Dict[str, Any]) -> None:
        event = frame.get("event")
        channel = frame.get("channel")
        data = _decode(frame.get("data"))

        if event == "pusher:connection_established":
            self.socket_id = data.get("socket_id")
        elif event == "pusher_internal:subscription_succeeded":
            self._subscribed.add(channel)
            logger.info("realtime.subscribed", channel=channel)
        elif event == "pusher:error":
            logger.warning("realtime.server_error", channel=channel, code=data.get("code"), error=data.get("message"))
        elif event == "pusher:ping":
            await self._send({"event": "pusher:pong", "data": {}})
        elif event and not event.startswith("pusher"):
            await self._dispatch(channel, event, data)

    async def _dispatch(self, channel: Optional[str], event_name: str, payload: Dict[str, Any]) -> None:
        try:
            event_type = EventType(event_name)
        except ValueError:
            logger.debug("realtime.unknown_event", channel=channel, event_type=event_name)
            return

        handler = self._handlers.get((channel, event_type))
        if handler is None:
            return

        try:
            event = parse_event(event_name, payload)
        except PydanticValidationError as e:
            logger.warning("realtime.invalid_payload", channel=channel, event_type=event_name, error=str(e))
            return

        try:
            await call_handler(handler, event)
        except Exception as e:
            logger.error("realtime.handler_failed", channel=channel, event_type=event_name, error=str(e), exc_info=True)

    async def _send_subscribe(self, channel: str) -> bool:
        auth = None
        if is_private_channel(channel):
            try:
                auth = await self.api.authorize_channel(self.socket_id, channel)
            except BaseAPIException as e:
                logger.warning("realtime.channel_auth_failed", channel=channel, code=e.code)
                return False

        data = {"channel": channel}
        if auth is not None:
            data["auth"] = auth
        return await self._send({"event": "pusher:subscribe", "data": data})

    async def _send(self, message: Dict[str, Any]) -> bool:
        if self._ws is None or self._ws.closed:
            return False
        try:
            await self._ws.send_json(message)
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.warning("realtime.send_failed", event_type=message.get("event"), error=str(e))
            return False
        return True

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _decode(data: Any) -> Dict[str, Any]:
    # Server frames carry data as a JSON string; pusher:error sends an object
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return {}
    return data if isinstance(data, dict) else {}
