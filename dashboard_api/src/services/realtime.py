from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from src.schemas.realtime import WsEnvelope

logger = logging.getLogger(__name__)

SUBSCRIPTION_TYPES = ("dashboard", "metrics", "activity", "system", "reports")
GLOBAL_SCOPE = "global"
ACTIVE_WINDOW = timedelta(minutes=5)
IDLE_TIMEOUT = timedelta(minutes=30)

DashboardProvider = Callable[[UUID], Awaitable[Dict[str, Any]]]
HealthProvider = Callable[[], Awaitable[Dict[str, Any]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Connection:
    """One live WebSocket client."""
    connection_id: str
    websocket: WebSocket
    user_id: UUID
    organization_id: Optional[UUID]
    connected_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)
    subscriptions: Set[str] = field(default_factory=set)

    def touch(self) -> None:
        self.last_activity = _now()

    def info(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "connected_at": self.connected_at,
            "last_activity": self.last_activity,
            "subscriptions": sorted(self.subscriptions),
        }


class RealtimeManager:
    """
    In-process pub-sub manager for WebSocket clients.

    Subscription keys:
      - {type}:{organization_id} for organization scoped updates
      - {type}:global when the connection has no organization
    where type is one of dashboard, metrics, activity, system, reports.
    """

    def __init__(self, update_interval_seconds: float = 30.0) -> None:
        self._connections: Dict[str, Connection] = {}
        self._subscriptions: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()
        self.update_interval_seconds = update_interval_seconds
        self._dashboard_provider: Optional[DashboardProvider] = None
        self._health_provider: Optional[HealthProvider] = None
        self._task: Optional[asyncio.Task] = None

    # PUBLIC_INTERFACE
    def configure(
        self,
        *,
        dashboard_provider: Optional[DashboardProvider] = None,
        health_provider: Optional[HealthProvider] = None,
        update_interval_seconds: Optional[float] = None,
    ) -> None:
        """Attach the callables that compute dashboard snapshots and system health."""
        if dashboard_provider is not None:
            self._dashboard_provider = dashboard_provider
        if health_provider is not None:
            self._health_provider = health_provider
        if update_interval_seconds is not None:
            self.update_interval_seconds = update_interval_seconds

    # PUBLIC_INTERFACE
    @staticmethod
    def subscription_key(subscription_type: str, organization_id: Optional[UUID | str] = None) -> str:
        """Return the subscription key for a type and organization."""
        return f"{subscription_type}:{organization_id or GLOBAL_SCOPE}"

    # PUBLIC_INTERFACE
    async def connect(
        self, websocket: WebSocket, user_id: UUID, organization_id: Optional[UUID] = None
    ) -> Connection:
        """Register an accepted websocket and subscribe it to dashboard updates."""
        conn = Connection(
            connection_id=f"conn_{uuid.uuid4().hex}",
            websocket=websocket,
            user_id=user_id,
            organization_id=organization_id,
        )
        async with self._lock:
            self._connections[conn.connection_id] = conn
        await self.subscribe(conn.connection_id, "dashboard")
        logger.info(
            "WebSocket connected id=%s user=%s org=%s; connections=%d",
            conn.connection_id,
            user_id,
            organization_id,
            len(self._connections),
        )
        return conn

    # PUBLIC_INTERFACE
    async def subscribe(self, connection_id: str, subscription_type: str, global_scope: bool = False) -> str:
        """
        Subscribe a connection to a type within its organization. Returns the key.

        global_scope subscribes to the organization independent `{type}:global` key instead,
        where platform-wide system alerts are published.
        """
        if subscription_type not in SUBSCRIPTION_TYPES:
            raise ValueError(f"Unknown subscription type: {subscription_type}")
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                raise KeyError(connection_id)
            key = self.subscription_key(subscription_type, None if global_scope else conn.organization_id)
            self._subscriptions.setdefault(key, set()).add(connection_id)
            conn.subscriptions.add(key)
            conn.touch()
        return key

    # PUBLIC_INTERFACE
    async def unsubscribe(self, connection_id: str, subscription_key: str) -> bool:
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return False
            subscribers = self._subscriptions.get(subscription_key)
            if subscribers is not None:
                subscribers.discard(connection_id)
                if not subscribers:
                    del self._subscriptions[subscription_key]
            conn.subscriptions.discard(subscription_key)
            conn.touch()
        return True

    # PUBLIC_INTERFACE
    async def disconnect(self, connection_id: str) -> bool:
        """Forget a connection and all of its subscriptions."""
        async with self._lock:
            removed = self._drop(connection_id)
        if removed:
            logger.info("WebSocket disconnected id=%s; connections=%d", connection_id, len(self._connections))
        return removed

    def _drop(self, connection_id: str) -> bool:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return False
        for key in conn.subscriptions:
            subscribers = self._subscriptions.get(key)
            if subscribers is not None:
                subscribers.discard(connection_id)
                if not subscribers:
                    del self._subscriptions[key]
        return True

    async def touch(self, connection_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.touch()

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    # PUBLIC_INTERFACE
    async def broadcast(self, message: WsEnvelope, target_subscription: Optional[str] = None) -> int:
        """
        Send the message to one subscription key, or to every key of the message organization.

        Returns the number of connections the message was delivered to.
        """
        async with self._lock:
            if target_subscription is not None:
                targets = set(self._subscriptions.get(target_subscription, set()))
            else:
                scope = str(message.organization_id or GLOBAL_SCOPE)
                targets = set()
                for key, subscribers in self._subscriptions.items():
                    if key.split(":", 1)[1] == scope:
                        targets.update(subscribers)
            connections = [self._connections[c] for c in targets if c in self._connections]

        payload = message.model_dump(mode="json")
        sent = 0
        to_drop: List[str] = []
        for conn in connections:
            ws = conn.websocket
            try:
                if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                    to_drop.append(conn.connection_id)
                    continue
                await ws.send_json(payload)
                sent += 1
            except Exception:
                logger.exception("Failed to send message to websocket %s; scheduling drop", conn.connection_id)
                to_drop.append(conn.connection_id)
        if to_drop:
            async with self._lock:
                for connection_id in to_drop:
                    self._drop(connection_id)
        logger.debug("Broadcast %s to %d connection(s)", message.type, sent)
        return sent

    # PUBLIC_INTERFACE
    async def send_dashboard_update(self, organization_id: UUID, data: Optional[Dict[str, Any]] = None) -> int:
        """Push fresh realtime dashboard data to the organization's dashboard subscribers."""
        if data is None:
            if self._dashboard_provider is None:
                return 0
            try:
                data = await self._dashboard_provider(organization_id)
            except Exception:
                logger.exception("Failed to compute dashboard update for organization %s", organization_id)
                return 0
        env = WsEnvelope(type="dashboard_update", data=data, organization_id=organization_id)
        return await self.broadcast(env, self.subscription_key("dashboard", organization_id))

    # PUBLIC_INTERFACE
    async def send_metric_update(self, organization_id: UUID, metric: Dict[str, Any]) -> int:
        env = WsEnvelope(type="metric_update", data=metric, organization_id=organization_id)
        return await self.broadcast(env, self.subscription_key("metrics", organization_id))

    # PUBLIC_INTERFACE
    async def send_system_alert(
        self,
        level: str,
        title: str,
        message: str,
        organization_id: Optional[UUID] = None,
    ) -> int:
        """Alert one organization's system subscribers, or system:global when no organization is given."""
        data = {"level": level, "title": title, "message": message}
        env = WsEnvelope(type="system_alert", data=data, organization_id=organization_id)
        return await self.broadcast(env, self.subscription_key("system", organization_id))

    # PUBLIC_INTERFACE
    async def send_user_activity(self, organization_id: UUID, activity: Dict[str, Any]) -> int:
        env = WsEnvelope(type="user_activity", data=activity, organization_id=organization_id)
        return await self.broadcast(env, self.subscription_key("activity", organization_id))

    # PUBLIC_INTERFACE
    async def send_report_ready(self, organization_id: UUID, report: Dict[str, Any]) -> int:
        env = WsEnvelope(type="report_ready", data=report, organization_id=organization_id)
        return await self.broadcast(env, self.subscription_key("reports", organization_id))

    # PUBLIC_INTERFACE
    async def handle_external_event(self, event: str, organization_id: UUID, data: Dict[str, Any]) -> bool:
        """
        Translate a domain event into realtime messages.

        Returns False for unknown events.
        """
        if event == "assessment_completed":
            await self.send_dashboard_update(organization_id)
            await self.send_user_activity(organization_id, {"type": "assessment_completed", **data})
        elif event == "report_generated":
            await self.send_report_ready(organization_id, data)
        elif event == "metric_calculated":
            await self.send_metric_update(organization_id, data)
        elif event == "system_error":
            await self.send_system_alert(
                "error", "System Error", str(data.get("message", "")), organization_id=organization_id
            )
        else:
            logger.warning("Unknown external event type: %s", event)
            return False
        return True

    # PUBLIC_INTERFACE
    def stats(self) -> Dict[str, Any]:
        """Connection counts; a connection is active when it was used in the last 5 minutes."""
        cutoff = _now() - ACTIVE_WINDOW
        active = [c for c in self._connections.values() if c.last_activity > cutoff]
        by_type: Dict[str, int] = {}
        for key, subscribers in self._subscriptions.items():
            sub_type = key.split(":", 1)[0]
            by_type[sub_type] = by_type.get(sub_type, 0) + len(subscribers)
        by_org: Dict[str, int] = {}
        for conn in active:
            org = str(conn.organization_id or GLOBAL_SCOPE)
            by_org[org] = by_org.get(org, 0) + 1
        return {
            "total_connections": len(self._connections),
            "active_connections": len(active),
            "subscriptions_by_type": by_type,
            "connections_by_organization": by_org,
        }

    # PUBLIC_INTERFACE
    def connections(self, organization_id: Optional[UUID] = None) -> List[Connection]:
        items = list(self._connections.values())
        if organization_id is not None:
            items = [c for c in items if c.organization_id == organization_id]
        return items

    # PUBLIC_INTERFACE
    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """Drop connections idle for 30 minutes or more. Returns how many were removed."""
        cutoff = (now or _now()) - IDLE_TIMEOUT
        stale = [c for c in self._connections.values() if c.last_activity <= cutoff]
        for conn in stale:
            await self.disconnect(conn.connection_id)
            try:
                if conn.websocket.client_state != WebSocketState.DISCONNECTED:
                    await conn.websocket.close(code=1000)
            except Exception:
                logger.exception("Failed to close idle websocket %s", conn.connection_id)
        return len(stale)

    # PUBLIC_INTERFACE
    async def send_periodic_updates(self) -> None:
        """Dashboard snapshots for organizations with dashboard subscribers, then a global health alert."""
        organization_ids = {c.organization_id for c in self._connections.values() if c.organization_id}
        for organization_id in organization_ids:
            if self._subscriptions.get(self.subscription_key("dashboard", organization_id)):
                await self.send_dashboard_update(organization_id)

        if self._health_provider is not None and self._subscriptions.get(self.subscription_key("system")):
            try:
                health = await self._health_provider()
            except Exception:
                logger.exception("Failed to compute system health update")
                return
            status = health.get("overall_status", "healthy")
            level = {"healthy": "info", "warning": "warning"}.get(status, "error")
            await self.send_system_alert(level, "System Health Update", f"System status: {status}")

    async def _run_cycle(self) -> None:
        while True:
            await asyncio.sleep(self.update_interval_seconds)
            try:
                await self.send_periodic_updates()
                await self.cleanup()
            except Exception:
                logger.exception("Realtime update cycle iteration failed")

    # PUBLIC_INTERFACE
    def start_update_cycle(self) -> None:
        """Start the periodic update task on the running loop (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run_cycle())
            logger.info("Realtime update cycle started (every %ss)", self.update_interval_seconds)

    # PUBLIC_INTERFACE
    async def stop(self) -> None:
        """Cancel the update task and forget all connections."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        async with self._lock:
            self._connections.clear()
            self._subscriptions.clear()


# Singleton instance
realtime_manager = RealtimeManager()
