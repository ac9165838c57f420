from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

SubscriptionType = Literal["dashboard", "metrics", "activity", "system", "reports"]


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'dashboard_update', 'metric_update').")
    data: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    organization_id: Optional[UUID] = Field(default=None, description="Target organization, None for global messages.")
    user_id: Optional[UUID] = Field(default=None, description="Originating user id, if applicable.")


class ClientMessage(BaseModel):
    """Message sent by a WebSocket client."""
    action: Literal["subscribe", "unsubscribe", "ping"] = Field(...)
    type: Optional[SubscriptionType] = Field(default=None, description="Subscription type for subscribe/unsubscribe.")
    scope: Literal["organization", "global"] = Field(
        default="organization", description="'global' targets the platform-wide system alert channel."
    )


class ConnectionInfo(BaseModel):
    connection_id: str
    user_id: UUID
    organization_id: Optional[UUID] = None
    connected_at: datetime
    last_activity: datetime
    subscriptions: List[str] = Field(default_factory=list)


class ConnectionStats(BaseModel):
    total_connections: int
    active_connections: int
    subscriptions_by_type: Dict[str, int] = Field(default_factory=dict)
    connections_by_organization: Dict[str, int] = Field(default_factory=dict)


class WebSocketInfoResponse(BaseModel):
    enabled: bool
    endpoint: str = Field("/ws/realtime")
    subscription_types: List[str]
    stats: ConnectionStats


class RealtimeEventRequest(BaseModel):
    """External event pushed into the realtime layer."""
    event: Literal["assessment_completed", "report_generated", "metric_calculated", "system_error"] = Field(...)
    data: Dict[str, Any] = Field(default_factory=dict)


class CleanupResponse(BaseModel):
    removed: int
    stats: ConnectionStats
