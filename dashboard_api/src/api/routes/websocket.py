from __future__ import annotations

import logging
from typing import Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from src.core.deps import OrgContext, get_current_user, require_org_roles, verify_access_token
from src.core.errors import ApiError
from src.core.features import is_feature_enabled
from src.db.models.organizations import User
from src.db.session import get_session_maker
from src.repositories.organizations import OrganizationRepository
from src.schemas.realtime import (
    CleanupResponse,
    ClientMessage,
    ConnectionStats,
    RealtimeEventRequest,
    WebSocketInfoResponse,
    WsEnvelope,
)
from src.schemas.common import MessageResponse
from src.services.realtime import SUBSCRIPTION_TYPES, realtime_manager

logger = logging.getLogger(__name__)

# HTTP endpoints mounted under /api
router = APIRouter(prefix="/websocket", tags=["WebSocket"])

# The socket itself lives at /ws/realtime, outside the /api prefix
ws_router = APIRouter()

WS_UNAUTHORIZED = 4401
WS_FORBIDDEN = 4403
WS_DISABLED = 4503


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=WebSocketInfoResponse,
    summary="WebSocket usage information",
    description=(
        "Connect to /ws/realtime with `token` and `organization_id` query parameters. Client messages are JSON "
        '{"action": "subscribe"|"unsubscribe"|"ping", "type": "dashboard"|"metrics"|"activity"|"system"|"reports"}; '
        'add "scope": "global" to a system subscription for platform-wide alerts.'
    ),
)
async def websocket_info(user: User = Depends(get_current_user)) -> WebSocketInfoResponse:
    return WebSocketInfoResponse(
        enabled=is_feature_enabled("realtime", str(user.id)),
        subscription_types=list(SUBSCRIPTION_TYPES),
        stats=ConnectionStats(**realtime_manager.stats()),
    )


# PUBLIC_INTERFACE
@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Drop idle connections",
    description="Close connections without activity for 30 minutes. Requires owner or admin.",
)
async def cleanup_connections(ctx: OrgContext = Depends(require_org_roles("owner", "admin"))) -> CleanupResponse:
    removed = await realtime_manager.cleanup()
    logger.info("Realtime cleanup by %s removed %d connection(s)", ctx.user_id, removed)
    return CleanupResponse(removed=removed, stats=ConnectionStats(**realtime_manager.stats()))


# PUBLIC_INTERFACE
@router.post(
    "/events",
    response_model=MessageResponse,
    summary="Publish realtime event",
    description="Fan a domain event out to the organization's subscribers.",
)
async def publish_event(
    payload: RealtimeEventRequest,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
) -> MessageResponse:
    await realtime_manager.handle_external_event(payload.event, ctx.organization_id, payload.data)
    return MessageResponse(message="Event published", details={"event": payload.event})


async def _reject(websocket: WebSocket, code: int) -> None:
    await websocket.close(code=code)
    raise WebSocketDisconnect(code=code)


async def _validate_ws(websocket: WebSocket) -> Tuple[UUID, UUID]:
    """
    Validate the 'token' and 'organization_id' query parameters of an accepted socket.

    Returns:
        (user_id, organization_id)
    Raises:
        WebSocketDisconnect after closing with 4401 (bad token or unknown user) or
        4403 (inactive user, bad organization id or no membership).
    """
    token = websocket.query_params.get("token")
    raw_org = websocket.query_params.get("organization_id") or websocket.query_params.get("organizationId")
    if not token:
        await _reject(websocket, WS_UNAUTHORIZED)

    try:
        claims = verify_access_token(token)
        user_id = UUID(str(claims["sub"]))
    except (ApiError, ValueError):
        await _reject(websocket, WS_UNAUTHORIZED)

    try:
        organization_id = UUID(str(raw_org))
    except ValueError:
        await _reject(websocket, WS_FORBIDDEN)

    async with get_session_maker()() as session:
        repo = OrganizationRepository(session)
        user = await repo.get_user_by_id(user_id)
        membership = await repo.get_membership(organization_id, user_id, active_only=True)
    if user is None:
        await _reject(websocket, WS_UNAUTHORIZED)
    if not user.is_active or membership is None:
        await _reject(websocket, WS_FORBIDDEN)

    if not is_feature_enabled("realtime", str(user_id)):
        await _reject(websocket, WS_DISABLED)

    return user_id, organization_id


async def _handle_message(websocket: WebSocket, connection_id: str, organization_id: Optional[UUID], raw: str) -> None:
    try:
        msg = ClientMessage.model_validate_json(raw)
    except ValidationError as exc:
        details = exc.errors(include_url=False, include_context=False)
        await websocket.send_json(
            WsEnvelope(type="error", data={"message": "Invalid message", "details": details}).model_dump(mode="json")
        )
        return

    if msg.action == "ping":
        await realtime_manager.touch(connection_id)
        await websocket.send_json(WsEnvelope(type="pong", organization_id=organization_id).model_dump(mode="json"))
        return

    if msg.type is None:
        await websocket.send_json(
            WsEnvelope(type="error", data={"message": f"'{msg.action}' requires a subscription type"}).model_dump(
                mode="json"
            )
        )
        return

    global_scope = msg.scope == "global"
    if global_scope and msg.type != "system":
        await websocket.send_json(
            WsEnvelope(type="error", data={"message": "Only system alerts have a global scope"}).model_dump(mode="json")
        )
        return

    if msg.action == "subscribe":
        key = await realtime_manager.subscribe(connection_id, msg.type, global_scope=global_scope)
        await websocket.send_json(WsEnvelope(type="subscribed", data={"subscription": key}).model_dump(mode="json"))
    else:
        key = realtime_manager.subscription_key(msg.type, None if global_scope else organization_id)
        await realtime_manager.unsubscribe(connection_id, key)
        await websocket.send_json(WsEnvelope(type="unsubscribed", data={"subscription": key}).model_dump(mode="json"))


# PUBLIC_INTERFACE
@ws_router.websocket("/ws/realtime")
async def ws_realtime(websocket: WebSocket):
    """
    Realtime dashboard channel.

    Security:
      - Query param 'token' must be a valid access token of a known user (close 4401 otherwise).
      - The user must be active and an active member of the 'organization_id' organization (close 4403).
    Messages:
      - Server -> Client: dashboard_update, metric_update, system_alert, user_activity, report_ready, pong.
      - Client -> Server: {"action": "subscribe"|"unsubscribe"|"ping", "type": "<subscription type>"},
        optionally with "scope": "global" for platform-wide system alerts.
    """
    await websocket.accept()
    try:
        user_id, organization_id = await _validate_ws(websocket)
    except WebSocketDisconnect:
        return

    conn = await realtime_manager.connect(websocket, user_id, organization_id)
    await websocket.send_json(
        WsEnvelope(
            type="connected",
            data={"connection_id": conn.connection_id, "subscriptions": sorted(conn.subscriptions)},
            organization_id=organization_id,
            user_id=user_id,
        ).model_dump(mode="json")
    )

    try:
        while True:
            raw = await websocket.receive_text()
            await realtime_manager.touch(conn.connection_id)
            await _handle_message(websocket, conn.connection_id, organization_id, raw)
    except WebSocketDisconnect:
        await realtime_manager.disconnect(conn.connection_id)
    except Exception:
        logger.exception("Error on ws_realtime connection %s", conn.connection_id)
        await realtime_manager.disconnect(conn.connection_id)
        await websocket.close()
