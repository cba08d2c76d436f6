import asyncio
import json

import httpx
import pytest

from leadcrm.client import ApiClient, RealtimeClient, Session
from leadcrm.client.realtime import socket_url
from leadcrm.core.config import Settings
from leadcrm.main import create_app
from leadcrm.models.notification import EventType
from leadcrm.models.user import Role
from leadcrm.schemas.settings import RealtimeConfig
from leadcrm.services.container import build_container


def lead_frame(event="lead.assigned", channel="admin", lead_id=1, **extra):
    payload = {"lead": {"id": lead_id, "name": "Jane"}, **extra}
    return {"event": event, "channel": channel, "data": json.dumps(payload)}


@pytest.fixture
def realtime(make_api, admin_token):
    return RealtimeClient(make_api(token=admin_token))


def test_socket_url():
    config = RealtimeConfig(enabled=True, app_key="abc", app_cluster="us2")
    assert socket_url(config).startswith("wss://ws-us2.pusher.com/app/abc?protocol=7&client=leadcrm-python")

    config = RealtimeConfig(enabled=True, app_key="abc", ws_url="ws://localhost:8000/")
    assert socket_url(config).startswith("ws://localhost:8000/app/abc?protocol=7")


def test_realtime_config_accepts_legacy_keys():
    config = RealtimeConfig.model_validate({"pusher_enabled": True, "pusher_app_key": "k", "cluster": "eu"})
    assert config.usable
    assert not RealtimeConfig.model_validate({"enabled": True, "app_key": "k"}).usable


@pytest.mark.asyncio
async def test_frames_dispatch_to_bound_handler(realtime):
    received = []
    realtime.subscribe("admin", EventType.LEAD_ASSIGNED, received.append)

    await realtime.handle_frame(lead_frame(lead_id=7, message="New lead assigned: Jane"))
    await realtime.handle_frame(lead_frame(channel="private-provider.1"))
    await realtime.handle_frame(lead_frame(event="lead.note.created"))

    assert [event.lead_id for event in received] == [7]
    assert received[0].display_message() == "New lead assigned: Jane"


@pytest.mark.asyncio
async def test_rebinding_replaces_handler(realtime):
    first, second = [], []
    realtime.subscribe("admin", "lead.assigned", first.append)
    realtime.subscribe("admin", "lead.assigned", second.append)

    await realtime.handle_frame(lead_frame())

    assert first == []
    assert len(second) == 1


@pytest.mark.asyncio
async def test_unsubscribe_handle(realtime):
    received = []
    unsubscribe = realtime.subscribe("admin", "lead.status.updated", received.append)
    unsubscribe()
    unsubscribe()

    await realtime.handle_frame(lead_frame(event="lead.status.updated"))

    assert received == []
    assert realtime.channels == set()


@pytest.mark.asyncio
async def test_protocol_frames(realtime):
    await realtime.handle_frame({
        "event": "pusher:connection_established",
        "data": json.dumps({"socket_id": "123.456", "activity_timeout": 120}),
    })
    assert realtime.socket_id == "123.456"

    # Errors arrive with object data and are only logged
    await realtime.handle_frame({"event": "pusher:error", "data": {"message": "Invalid signature", "code": 4009}})
    # No socket is open, so the pong goes nowhere
    await realtime.handle_frame({"event": "pusher:ping", "data": "{}"})
    assert not realtime.connected


@pytest.mark.asyncio
async def test_bad_payload_and_failing_handler_are_contained(realtime):
    calls = []

    def broken(event):
        calls.append(event)
        raise RuntimeError("handler bug")

    realtime.subscribe("admin", "lead.assigned", broken)

    await realtime.handle_frame({"event": "lead.assigned", "channel": "admin", "data": json.dumps({"message": "x"})})
    await realtime.handle_frame({"event": "lead.assigned", "channel": "admin", "data": "not json"})
    await realtime.handle_frame(lead_frame())

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_connect_false_when_realtime_disabled(store, admin_token):
    settings = Settings(ENVIRONMENT="testing", PUSHER_ENABLED=False)
    app = create_app(settings, build_container(settings, store=store))
    api = ApiClient(
        Session(Role.ADMIN, token=admin_token),
        base_url="http://testserver/api",
        transport=httpx.ASGITransport(app=app),
    )

    async with api:
        realtime = RealtimeClient(api)
        assert await realtime.connect() is False
        assert not realtime.connected


@pytest.mark.asyncio
async def test_connect_false_when_config_unreachable(make_api):
    async with make_api(token="forged") as api:
        assert await RealtimeClient(api).connect() is False


@pytest.mark.asyncio
async def test_connect_false_when_socket_refused(make_api, admin_token):
    def handler(request):
        return httpx.Response(200, json={"enabled": True, "app_key": "k", "ws_url": "ws://127.0.0.1:1"})

    async with make_api(token=admin_token, transport=httpx.MockTransport(handler)) as api:
        realtime = RealtimeClient(api, connect_timeout=2)
        assert await realtime.connect() is False
        assert not realtime.connected


def test_reconnect_backoff_doubles_up_to_cap(make_api, admin_token):
    realtime = RealtimeClient(make_api(token=admin_token), reconnect_delay=0.5)

    assert [realtime.reconnect_backoff(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]
    assert realtime.reconnect_backoff(10) == 30.0


@pytest.mark.asyncio
async def test_dropped_socket_is_reopened(make_api, admin_token, monkeypatch):
    realtime = RealtimeClient(make_api(token=admin_token), reconnect_delay=0.001)
    opens, reads = [], []

    async def fake_open():
        opens.append(len(opens))
        # Two failed attempts before the server is back
        return len(opens) >= 3

    async def fake_read():
        reads.append(len(reads))
        if len(reads) == 2:
            realtime.auto_reconnect = False

    monkeypatch.setattr(realtime, "_open", fake_open)
    monkeypatch.setattr(realtime, "_read_until_closed", fake_read)

    await asyncio.wait_for(realtime._run(), timeout=1)

    assert len(opens) == 3
    assert len(reads) == 2


@pytest.mark.asyncio
async def test_reconnect_stops_after_max_attempts(make_api, admin_token, monkeypatch):
    realtime = RealtimeClient(make_api(token=admin_token), reconnect_delay=0.001, max_reconnect_attempts=2)
    opens = []

    async def fake_open():
        opens.append(1)
        return False

    async def fake_read():
        return None

    monkeypatch.setattr(realtime, "_open", fake_open)
    monkeypatch.setattr(realtime, "_read_until_closed", fake_read)

    await asyncio.wait_for(realtime._run(), timeout=1)

    assert len(opens) == 2


@pytest.mark.asyncio
async def test_reconnect_stops_once_session_is_cleared(make_api, admin_token, monkeypatch):
    api = make_api(token=admin_token)
    realtime = RealtimeClient(api, reconnect_delay=0.001)
    opens = []

    async def fake_open():
        opens.append(1)
        return True

    async def fake_read():
        api.session.clear()

    monkeypatch.setattr(realtime, "_open", fake_open)
    monkeypatch.setattr(realtime, "_read_until_closed", fake_read)

    await asyncio.wait_for(realtime._run(), timeout=1)

    assert opens == []
