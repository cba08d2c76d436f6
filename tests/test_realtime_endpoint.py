import json

from leadcrm.services.broadcasting import generate_channel_signature

PUSHER_KEY = "test-key"
PUSHER_SECRET = "test-secret"


def handshake(ws):
    frame = ws.receive_json()
    assert frame["event"] == "pusher:connection_established"
    data = json.loads(frame["data"])
    assert data["activity_timeout"] == 120
    return data["socket_id"]


def subscribe(ws, channel, auth=None):
    data = {"channel": channel}
    if auth:
        data["auth"] = auth
    ws.send_json({"event": "pusher:subscribe", "data": data})
    return ws.receive_json()


def test_unknown_app_key_rejected(client):
    with client.websocket_connect("/app/wrong-key") as ws:
        frame = ws.receive_json()

    assert frame["event"] == "pusher:error"
    assert frame["data"]["code"] == 4001


def test_ping_pong(client):
    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        handshake(ws)
        ws.send_json({"event": "pusher:ping", "data": {}})
        assert ws.receive_json()["event"] == "pusher:pong"


def test_admin_channel_receives_new_leads(client, lead_payload):
    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        handshake(ws)
        frame = subscribe(ws, "admin")
        assert frame == {"event": "pusher_internal:subscription_succeeded", "data": "{}", "channel": "admin"}

        lead = client.post("/api/leads", json=lead_payload()).json()
        frame = ws.receive_json()

    assert frame["event"] == "lead.assigned"
    assert frame["channel"] == "admin"
    payload = json.loads(frame["data"])
    assert payload["lead"]["id"] == lead["id"]
    assert payload["message"] == "New lead assigned: Jane Homeowner"


def test_private_channel_requires_valid_signature(client):
    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        socket_id = handshake(ws)

        frame = subscribe(ws, "private-provider.1", auth=f"{PUSHER_KEY}:forged")
        assert frame["event"] == "pusher:error"
        assert frame["data"]["code"] == 4009

        signature = generate_channel_signature(PUSHER_SECRET, socket_id, "private-provider.1")
        frame = subscribe(ws, "private-provider.1", auth=f"{PUSHER_KEY}:{signature}")
        assert frame["event"] == "pusher_internal:subscription_succeeded"


def test_provider_channel_receives_status_updates(client, lead_payload, provider_headers):
    lead = client.post("/api/leads", json=lead_payload()).json()
    headers = provider_headers(1)

    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        socket_id = handshake(ws)
        auth = client.post(
            "/api/broadcasting/auth",
            json={"socket_id": socket_id, "channel_name": "private-provider.1"},
            headers=headers,
        ).json()["auth"]
        assert subscribe(ws, "private-provider.1", auth=auth)["event"] == "pusher_internal:subscription_succeeded"

        client.put(f"/api/provider/leads/{lead['id']}", json={"status": "contacted"}, headers=headers)
        frame = ws.receive_json()

    assert frame["event"] == "lead.status.updated"
    payload = json.loads(frame["data"])
    assert payload["old_status"] == "new"
    assert payload["new_status"] == "contacted"


def test_unsubscribe_stops_delivery(client, container):
    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        handshake(ws)
        subscribe(ws, "admin")
        ws.send_json({"event": "pusher:unsubscribe", "data": {"channel": "admin"}})
        ws.send_json({"event": "pusher:ping", "data": {}})
        assert ws.receive_json()["event"] == "pusher:pong"

        assert container.event_bus.subscriber_count("admin") == 0


def test_non_object_data_keeps_socket_open(client):
    with client.websocket_connect(f"/app/{PUSHER_KEY}") as ws:
        handshake(ws)

        ws.send_json({"event": "pusher:subscribe", "data": "[1]"})
        frame = ws.receive_json()
        assert frame["event"] == "pusher:error"
        assert frame["data"]["message"] == "Missing channel"

        ws.send_json({"event": "pusher:ping", "data": "[]"})
        assert ws.receive_json()["event"] == "pusher:pong"
