from datetime import timedelta
from uuid import uuid4

import pytest
from starlette.websockets import WebSocketState

from src.services.realtime import RealtimeManager, _now


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.closed_with = None
        self.fail = fail
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(payload)

    async def close(self, code: int = 1000):
        self.closed_with = code
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def manager():
    return RealtimeManager()


async def test_connect_subscribes_to_dashboard(manager):
    org = uuid4()
    conn = await manager.connect(FakeWebSocket(), uuid4(), org)
    assert conn.subscriptions == {f"dashboard:{org}"}
    stats = manager.stats()
    assert stats["total_connections"] == 1
    assert stats["active_connections"] == 1
    assert stats["subscriptions_by_type"] == {"dashboard": 1}
    assert stats["connections_by_organization"] == {str(org): 1}


async def test_subscription_keys(manager):
    org = uuid4()
    assert manager.subscription_key("metrics", org) == f"metrics:{org}"
    assert manager.subscription_key("system") == "system:global"
    conn = await manager.connect(FakeWebSocket(), uuid4(), org)
    with pytest.raises(ValueError):
        await manager.subscribe(conn.connection_id, "weather")


async def test_broadcast_targets_only_the_subscription(manager):
    org = uuid4()
    dashboard_ws, metrics_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(dashboard_ws, uuid4(), org)
    metrics_conn = await manager.connect(metrics_ws, uuid4(), org)
    await manager.unsubscribe(metrics_conn.connection_id, manager.subscription_key("dashboard", org))
    await manager.subscribe(metrics_conn.connection_id, "metrics")

    sent = await manager.send_metric_update(org, {"metric_name": "completion_rate", "metric_value": 80})
    assert sent == 1
    assert metrics_ws.sent[0]["type"] == "metric_update"
    assert metrics_ws.sent[0]["organization_id"] == str(org)
    assert dashboard_ws.sent == []


async def test_organizations_are_isolated(manager):
    org_a, org_b = uuid4(), uuid4()
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    await manager.connect(ws_a, uuid4(), org_a)
    await manager.connect(ws_b, uuid4(), org_b)
    assert await manager.send_dashboard_update(org_a, {"active_users_15min": 3}) == 1
    assert len(ws_a.sent) == 1
    assert ws_b.sent == []


async def test_dashboard_update_uses_provider(manager):
    org = uuid4()

    async def provider(organization_id):
        return {"organization_id": str(organization_id), "active_users_today": 7}

    manager.configure(dashboard_provider=provider)
    ws = FakeWebSocket()
    await manager.connect(ws, uuid4(), org)
    await manager.send_dashboard_update(org)
    assert ws.sent[0]["data"]["active_users_today"] == 7


async def test_failed_send_drops_connection(manager):
    org = uuid4()
    await manager.connect(FakeWebSocket(fail=True), uuid4(), org)
    assert await manager.send_dashboard_update(org, {}) == 0
    assert manager.stats()["total_connections"] == 0


async def test_cleanup_drops_idle_connections(manager):
    org = uuid4()
    idle_ws = FakeWebSocket()
    idle = await manager.connect(idle_ws, uuid4(), org)
    await manager.connect(FakeWebSocket(), uuid4(), org)
    idle.last_activity = _now() - timedelta(minutes=31)

    assert await manager.cleanup() == 1
    assert idle_ws.closed_with == 1000
    assert manager.get_connection(idle.connection_id) is None
    assert manager.stats()["total_connections"] == 1


async def test_external_events(manager):
    org = uuid4()
    ws = FakeWebSocket()
    conn = await manager.connect(ws, uuid4(), org)
    await manager.subscribe(conn.connection_id, "reports")
    await manager.subscribe(conn.connection_id, "system")

    assert await manager.handle_external_event("report_generated", org, {"report_id": "r1"})
    assert await manager.handle_external_event("system_error", org, {"message": "disk full"})
    assert not await manager.handle_external_event("unknown_event", org, {})

    types = [m["type"] for m in ws.sent]
    assert types == ["report_ready", "system_alert"]
    assert ws.sent[1]["data"] == {"level": "error", "title": "System Error", "message": "disk full"}


async def test_organization_system_subscription_misses_global_alerts(manager):
    ws = FakeWebSocket()
    conn = await manager.connect(ws, uuid4(), uuid4())
    await manager.subscribe(conn.connection_id, "system")
    assert await manager.send_system_alert("error", "Job Failed", "boom") == 0

    key = await manager.subscribe(conn.connection_id, "system", global_scope=True)
    assert key == "system:global"
    assert await manager.send_system_alert("error", "Job Failed", "boom") == 1


async def test_periodic_health_alert_goes_to_global_system(manager):
    ws = FakeWebSocket()
    conn = await manager.connect(ws, uuid4(), uuid4())
    await manager.subscribe(conn.connection_id, "system", global_scope=True)

    async def health():
        return {"overall_status": "warning"}

    manager.configure(health_provider=health)
    await manager.send_periodic_updates()
    alerts = [m for m in ws.sent if m["type"] == "system_alert"]
    assert alerts[0]["data"]["level"] == "warning"
    assert alerts[0]["data"]["message"] == "System status: warning"


async def test_stop_forgets_connections(manager):
    await manager.connect(FakeWebSocket(), uuid4(), uuid4())
    await manager.stop()
    assert manager.stats()["total_connections"] == 0
