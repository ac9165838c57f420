from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import OrgContext, get_org_context, get_org_session, require_org_roles
from src.core.ratelimit import client_key
from src.schemas.dashboard import (
    ActivityCreate,
    ActivityRead,
    AggregationRead,
    CalculateMetricsRequest,
    CalculateMetricsResponse,
    DashboardSummary,
    GenerateAggregationsRequest,
    GenerateAggregationsResponse,
    MetricCreate,
    MetricHistoryRead,
    MetricListResponse,
    MetricRead,
    MetricType,
    RealtimeData,
    TrendResponse,
)
from src.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# PUBLIC_INTERFACE
@router.get(
    "/metrics",
    response_model=MetricListResponse,
    summary="List dashboard metrics",
    description="Active metrics ordered by recorded_at (newest first). count is the number of matches before limit.",
)
async def list_metrics(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    metric_type: Optional[str] = Query(None),
    metric_name: Optional[str] = Query(None),
    period_start: Optional[datetime] = Query(None),
    period_end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> MetricListResponse:
    items, total = await DashboardService(session).get_metrics(
        ctx.organization_id,
        metric_type=metric_type,
        metric_name=metric_name,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
    )
    return MetricListResponse(data=[MetricRead.model_validate(m) for m in items], count=total)


# PUBLIC_INTERFACE
@router.post(
    "/metrics",
    response_model=MetricRead,
    status_code=201,
    summary="Record metric",
)
async def record_metric(
    payload: MetricCreate,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> MetricRead:
    metric = await DashboardService(session).record_metric(ctx.organization_id, payload)
    return MetricRead.model_validate(metric)


# PUBLIC_INTERFACE
@router.post(
    "/metrics/calculate",
    response_model=CalculateMetricsResponse,
    summary="Calculate metrics",
    description="Compute and store engagement, completion and OCEAN metrics for a period (default: last 7 days).",
)
async def calculate_metrics(
    payload: Optional[CalculateMetricsRequest] = Body(None),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> CalculateMetricsResponse:
    payload = payload or CalculateMetricsRequest()
    return await DashboardService(session).calculate_metrics(
        ctx.organization_id,
        metric_type=payload.metric_type,
        period_start=payload.period_start,
        period_end=payload.period_end,
    )


# PUBLIC_INTERFACE
@router.get(
    "/metrics/history",
    response_model=List[MetricHistoryRead],
    summary="Metric history",
)
async def metric_history(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    metric_type: Optional[str] = Query(None),
    metric_name: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> List[MetricHistoryRead]:
    rows = await DashboardService(session).get_metric_history(
        ctx.organization_id, metric_type=metric_type, metric_name=metric_name, limit=limit
    )
    return [MetricHistoryRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=DashboardSummary,
    summary="Dashboard summary",
    description="User, assessment and activity statistics for the last period_days days plus the latest metrics.",
)
async def dashboard_summary(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    period_days: int = Query(7, ge=1, le=365),
) -> DashboardSummary:
    return await DashboardService(session).get_summary(ctx.organization_id, period_days=period_days)


# PUBLIC_INTERFACE
@router.get(
    "/realtime",
    response_model=RealtimeData,
    summary="Realtime dashboard data",
)
async def realtime_data(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> RealtimeData:
    return await DashboardService(session).get_realtime_data(ctx.organization_id)


# PUBLIC_INTERFACE
@router.get(
    "/trends",
    response_model=TrendResponse,
    summary="Metric trends",
    description="Weekly averages over the last `periods` weeks with week-over-week change and overall direction.",
)
async def trends(
    metric_type: MetricType = Query(...),
    metric_name: str = Query(..., min_length=1),
    periods: int = Query(4, ge=1, le=52),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> TrendResponse:
    return await DashboardService(session).get_trends(ctx.organization_id, metric_type, metric_name, periods)


# PUBLIC_INTERFACE
@router.get(
    "/aggregations",
    response_model=List[AggregationRead],
    summary="Assessment aggregations",
)
async def list_aggregations(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    aggregation_type: Optional[str] = Query(None),
    aggregation_key: Optional[str] = Query(None),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> List[AggregationRead]:
    rows = await DashboardService(session).get_aggregations(
        ctx.organization_id,
        aggregation_type=aggregation_type,
        aggregation_key=aggregation_key,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
    )
    return [AggregationRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/aggregations",
    response_model=GenerateAggregationsResponse,
    summary="Generate aggregations",
    description="Rebuild department and role aggregations for the period, replacing existing rows.",
)
async def generate_aggregations(
    payload: Optional[GenerateAggregationsRequest] = Body(None),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> GenerateAggregationsResponse:
    payload = payload or GenerateAggregationsRequest()
    return await DashboardService(session).generate_aggregations(
        ctx.organization_id, payload.period_start, payload.period_end
    )


# PUBLIC_INTERFACE
@router.get(
    "/activity",
    response_model=List[ActivityRead],
    summary="User activity",
)
async def list_activity(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    user_id: Optional[UUID] = Query(None),
    activity_type: Optional[str] = Query(None),
    period_start: Optional[datetime] = Query(None),
    period_end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> List[ActivityRead]:
    rows = await DashboardService(session).get_activity(
        ctx.organization_id,
        user_id=user_id,
        activity_type=activity_type,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
    )
    return [ActivityRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/activity",
    response_model=ActivityRead,
    status_code=201,
    summary="Track activity",
    description="Record an activity for the calling user.",
)
async def track_activity(
    payload: ActivityCreate,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> ActivityRead:
    activity = await DashboardService(session).track_activity(
        ctx.organization_id,
        ctx.user_id,
        payload,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_key(request),
    )
    return ActivityRead.model_validate(activity)
