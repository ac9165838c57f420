import asyncio
import json

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from src.api.main import app
from src.api.routes.websocket import ws_realtime
from src.core.security import create_access_token, create_refresh_token
from src.db.models.organizations import User
from src.services.realtime import realtime_manager


class ScriptedSocket:
    """In-loop stand-in for a client socket; push() feeds client frames, None hangs up."""

    def __init__(self, **query) -> None:
        self.query_params = query
        self.sent = []
        self.closed_with = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        return None

    async def send_json(self, payload):
        self.sent.append(payload)

    async def receive_text(self):
        raw = await self._inbox.get()
        if raw is None:
            raise WebSocketDisconnect(code=1000)
        return raw

    async def close(self, code: int = 1000):
        self.closed_with = code
        self.client_state = WebSocketState.DISCONNECTED

    def push(self, message) -> None:
        self._inbox.put_nowait(None if message is None else json.dumps(message))

    async def wait_for(self, message_type: str) -> dict:
        for _ in range(200):
            for message in self.sent:
                if message["type"] == message_type:
                    return message
            await asyncio.sleep(0.01)
        raise AssertionError(f"no {message_type} message in {self.sent}")


def _rejection_code(url: str) -> int:
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(url) as ws:
            ws.receive_json()
    return exc.value.code


def test_socket_without_token_is_rejected():
    assert _rejection_code("/ws/realtime") == 4401


def test_socket_with_invalid_token_is_rejected():
    assert _rejection_code("/ws/realtime?token=garbage&organization_id=x") == 4401


def test_socket_with_invalid_organization_is_rejected():
    token = create_access_token("8d0f9e1c-3a54-4c1b-9f0e-2b7d6c5a4e31", email="someone@acme.io")
    assert _rejection_code(f"/ws/realtime?token={token}&organization_id=acme") == 4403


async def test_websocket_info(client, member):
    response = await client.get("/api/websocket", headers=member.auth)
    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is True
    assert body["endpoint"] == "/ws/realtime"
    assert body["subscription_types"] == ["dashboard", "metrics", "activity", "system", "reports"]
    assert body["stats"]["total_connections"] == 0


async def test_cleanup_requires_admin(client, owner, member, org_headers):
    assert (await client.post("/api/websocket/cleanup", headers=org_headers(member))).status_code == 403
    response = await client.post("/api/websocket/cleanup", headers=org_headers(owner))
    assert response.status_code == 200
    assert response.json()["removed"] == 0


async def test_publish_event(client, owner, org_headers, monkeypatch):
    published = []

    async def fake_handle(event, organization_id, data):
        published.append((event, organization_id, data))
        return True

    monkeypatch.setattr(realtime_manager, "handle_external_event", fake_handle)
    response = await client.post(
        "/api/websocket/events",
        json={"event": "metric_calculated", "data": {"metric_name": "completion_rate"}},
        headers=org_headers(owner),
    )
    assert response.status_code == 200
    assert response.json()["details"] == {"event": "metric_calculated"}
    assert published[0][0] == "metric_calculated"
    assert published[0][2] == {"metric_name": "completion_rate"}

    invalid = await client.post("/api/websocket/events", json={"event": "party"}, headers=org_headers(owner))
    assert invalid.status_code == 400


async def test_socket_receives_global_system_alerts(owner, organization):
    socket = ScriptedSocket(token=owner.token, organization_id=str(organization.id))
    session_task = asyncio.create_task(ws_realtime(socket))
    connected = await socket.wait_for("connected")
    assert connected["data"]["subscriptions"] == [f"dashboard:{organization.id}"]

    socket.push({"action": "subscribe", "type": "system", "scope": "global"})
    subscribed = await socket.wait_for("subscribed")
    assert subscribed["data"]["subscription"] == "system:global"

    assert await realtime_manager.send_system_alert("error", "Job Failed", "cleanup_old_data: disk full") == 1
    alert = await socket.wait_for("system_alert")
    assert alert["data"]["message"] == "cleanup_old_data: disk full"

    socket.push(None)
    await session_task
    assert realtime_manager.stats()["total_connections"] == 0


async def test_global_scope_is_only_for_system(owner, organization):
    socket = ScriptedSocket(token=owner.token, organization_id=str(organization.id))
    session_task = asyncio.create_task(ws_realtime(socket))
    await socket.wait_for("connected")

    socket.push({"action": "subscribe", "type": "dashboard", "scope": "global"})
    error = await socket.wait_for("error")
    assert error["data"]["message"] == "Only system alerts have a global scope"

    socket.push(None)
    await session_task


async def test_socket_rejects_refresh_token(owner, organization):
    socket = ScriptedSocket(token=create_refresh_token(str(owner.id)), organization_id=str(organization.id))
    await ws_realtime(socket)
    assert socket.closed_with == 4401
    assert socket.sent == []


async def test_socket_rejects_inactive_user(owner, organization, session):
    user = await session.get(User, owner.id)
    user.is_active = False
    await session.commit()

    socket = ScriptedSocket(token=owner.token, organization_id=str(organization.id))
    await ws_realtime(socket)
    assert socket.closed_with == 4403
    assert realtime_manager.stats()["total_connections"] == 0
