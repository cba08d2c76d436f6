"""
Self-hosted Pusher-compatible websocket endpoint.

Speaks the part of Pusher protocol 7 the dashboards use: connection
handshake, channel subscribe/unsubscribe with private channel signatures,
ping/pong, and server-pushed lead events. Client events are not supported.
"""

from __future__ import annotations

import asyncio
import json
import secrets
from contextlib import suppress
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from leadcrm.core.logging import get_structlog_logger
from leadcrm.schemas.events import LeadEvent
from leadcrm.services.container import ServiceContainer
from leadcrm.services.events import Unsubscribe, is_private_channel

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["realtime"])

ACTIVITY_TIMEOUT = 120

# Pusher close/error codes
APP_DOES_NOT_EXIST = 4001
UNAUTHORIZED = 4009


def _frame(event: str, data: Any, channel: Optional[str] = None, encode: bool = True) -> str:
    # Server frames carry ``data`` as a JSON string, except pusher:error
    message: Dict[str, Any] = {"event": event, "data": json.dumps(data) if encode else data}
    if channel is not None:
        message["channel"] = channel
    return json.dumps(message)


def _error_frame(message: str, code: Optional[int] = None, channel: Optional[str] = None) -> str:
    return _frame("pusher:error", {"message": message, "code": code}, channel=channel, encode=False)


class PusherConnection:
    """One websocket session and the channels it subscribed to."""

    def __init__(self, websocket: WebSocket, container: ServiceContainer):
        self.websocket = websocket
        self.container = container
        self.socket_id = f"{secrets.randbelow(10**9)}.{secrets.randbelow(10**9)}"
        self._subscriptions: Dict[str, Unsubscribe] = {}
        self._outbox: asyncio.Queue = asyncio.Queue()

    @property
    def channels(self):
        return set(self._subscriptions)

    def enqueue(self, frame: str) -> None:
        self._outbox.put_nowait(frame)

    async def run(self) -> None:
        writer = asyncio.create_task(self._pump())
        self.enqueue(
            _frame(
                "pusher:connection_established",
                {"socket_id": self.socket_id, "activity_timeout": ACTIVITY_TIMEOUT},
            )
        )
        logger.info("realtime.connected", socket_id=self.socket_id)

        try:
            while True:
                raw = await self.websocket.receive_text()
                self.handle(raw)
        except WebSocketDisconnect:
            logger.info("realtime.disconnected", socket_id=self.socket_id)
        finally:
            self.close()
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer

    async def _pump(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self.websocket.send_text(frame)
            except Exception as e:
                logger.warning("realtime.send_failed", socket_id=self.socket_id, error=str(e))
                return

    def handle(self, raw: str) -> None:
        try:
            message = json.loads(raw)
            event = message["event"]
        except (ValueError, KeyError, TypeError):
            self.enqueue(_error_frame("Malformed message"))
            return

        data = message.get("data") or {}
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                data = {}
        if not isinstance(data, dict):
            data = {}

        if event == "pusher:ping":
            self.enqueue(_frame("pusher:pong", {}))
        elif event == "pusher:subscribe":
            self.subscribe(data.get("channel"), data.get("auth"))
        elif event == "pusher:unsubscribe":
            self.unsubscribe(data.get("channel"))
        else:
            logger.debug("realtime.ignored_event", socket_id=self.socket_id, event_type=event)

    def subscribe(self, channel: Optional[str], auth: Optional[str]) -> None:
        if not channel:
            self.enqueue(_error_frame("Missing channel"))
            return

        if is_private_channel(channel):
            authorizer = self.container.authorizer
            if authorizer is None or not authorizer.verify(self.socket_id, channel, auth):
                logger.warning("realtime.subscription_rejected", socket_id=self.socket_id, channel=channel)
                self.enqueue(_error_frame("Invalid signature", UNAUTHORIZED, channel=channel))
                return

        if channel not in self._subscriptions:
            self._subscriptions[channel] = self.container.event_bus.subscribe_all(
                channel, lambda event: self._relay(channel, event)
            )
            logger.info("realtime.subscribed", socket_id=self.socket_id, channel=channel)

        self.enqueue(_frame("pusher_internal:subscription_succeeded", {}, channel=channel))

    def unsubscribe(self, channel: Optional[str]) -> None:
        handle = self._subscriptions.pop(channel, None)
        if handle is not None:
            handle()
            logger.info("realtime.unsubscribed", socket_id=self.socket_id, channel=channel)

    def _relay(self, channel: str, event: LeadEvent) -> None:
        self.enqueue(_frame(event.type, event.to_payload(), channel=channel))

    def close(self) -> None:
        for channel in list(self._subscriptions):
            self.unsubscribe(channel)


@router.websocket("/app/{app_key}")
async def pusher_socket(websocket: WebSocket, app_key: str):
    container: ServiceContainer = websocket.app.state.container
    settings = container.settings

    await websocket.accept()

    if not settings.realtime_configured or app_key != settings.pusher_app_key:
        logger.warning("realtime.unknown_app", app_key=app_key)
        await websocket.send_text(_error_frame("Application does not exist", APP_DOES_NOT_EXIST))
        await websocket.close(code=APP_DOES_NOT_EXIST)
        return

    await PusherConnection(websocket, container).run()
