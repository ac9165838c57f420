from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import as_utc, utcnow
from src.db.models.assessments import OCEAN_TRAITS
from src.db.models.dashboard import AssessmentAggregation, DashboardMetric, MetricsHistory, UserActivityLog
from src.db.session import get_session_maker, organization_context
from src.repositories.dashboard import DashboardRepository
from src.repositories.system import SystemRepository
from src.schemas.dashboard import (
    ActivityCreate,
    ActivityStats,
    AssessmentStats,
    CalculatedMetric,
    CalculateMetricsResponse,
    DashboardSummary,
    GenerateAggregationsResponse,
    LatestMetric,
    MetricCreate,
    MetricRead,
    RealtimeData,
    TrendPoint,
    TrendResponse,
    UserStats,
)
from src.services.base import BaseService
from src.services.realtime import realtime_manager

logger = logging.getLogger(__name__)

METRIC_TYPES = ("user_engagement", "assessment_completion", "ocean_scores")
UNKNOWN_KEY = "Unknown"


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


# PUBLIC_INTERFACE
def classify_system_status(avg_response_time_ms: float, error_rate: float) -> str:
    """degraded above 1000 ms or 5% errors, warning above 500 ms or 1% errors, else healthy."""
    if avg_response_time_ms > 1000 or error_rate > 0.05:
        return "degraded"
    if avg_response_time_ms > 500 or error_rate > 0.01:
        return "warning"
    return "healthy"


# PUBLIC_INTERFACE
def week_start(value: datetime | date) -> date:
    """Monday of the week containing value."""
    day = value.date() if isinstance(value, datetime) else value
    return day - timedelta(days=day.weekday())


# PUBLIC_INTERFACE
def build_trend(
    samples: Sequence[Tuple[datetime, float]], periods: Optional[int] = None
) -> Tuple[List[TrendPoint], str]:
    """
    Weekly averages of (recorded_at, value) samples and the overall direction.

    Only the latest `periods` weeks are kept when given. overall_trend is insufficient_data
    with fewer than two weeks; otherwise the change percentages of all weeks are averaged,
    the first week counting as 0, and classified positive above 5, negative below -5, else stable.
    """
    buckets: Dict[date, List[float]] = {}
    for recorded_at, value in samples:
        buckets.setdefault(week_start(recorded_at), []).append(float(value))

    weeks = sorted(buckets)
    if periods:
        weeks = weeks[-periods:]

    points: List[TrendPoint] = []
    previous: Optional[float] = None
    for week in weeks:
        values = buckets[week]
        avg = round(sum(values) / len(values), 4)
        change = round((avg - previous) / previous * 100, 2) if previous else 0.0
        points.append(
            TrendPoint(week_start=week, value=avg, data_points=len(values), previous_value=previous, change_percentage=change)
        )
        previous = avg

    if len(points) < 2:
        return points, "insufficient_data"
    changes = [p.change_percentage for p in points]
    avg_change = sum(changes) / len(changes)
    if avg_change > 5:
        return points, "positive"
    if avg_change < -5:
        return points, "negative"
    return points, "stable"


def _average_traits(results: Sequence[Any]) -> Dict[str, float]:
    if not results:
        return {}
    return {
        trait: round(sum(float(getattr(r, f"{trait}_score")) for r in results) / len(results), 2)
        for trait in OCEAN_TRAITS
    }


class DashboardService(BaseService):
    """Organization dashboard: metrics, summary, realtime snapshot, trends, aggregations and activity."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = DashboardRepository(session)

    # Metrics
    # PUBLIC_INTERFACE
    async def get_metrics(
        self,
        organization_id: UUID,
        *,
        metric_type: Optional[str] = None,
        metric_name: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        limit: int = 100,
    ) -> Tuple[List[DashboardMetric], int]:
        return await self.repo.list_metrics(
            organization_id,
            metric_type=metric_type,
            metric_name=metric_name,
            start=period_start,
            end=period_end,
            limit=limit,
        )

    # PUBLIC_INTERFACE
    async def record_metric(self, organization_id: UUID, payload: MetricCreate) -> DashboardMetric:
        """Insert a metric value and push it to metrics subscribers."""
        values = payload.model_dump(exclude={"metadata"})
        metric = await self.repo.add_metric(organization_id, metadata_=payload.metadata, **values)
        await self.repo.commit()
        try:
            await realtime_manager.send_metric_update(
                organization_id, MetricRead.model_validate(metric).model_dump(mode="json")
            )
        except Exception:
            logger.exception("Failed to publish metric update after record_metric")
        return metric

    # PUBLIC_INTERFACE
    async def calculate_metrics(
        self,
        organization_id: UUID,
        *,
        metric_type: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> CalculateMetricsResponse:
        """
        Compute and store weekly metrics for the period (default: the last 7 days).

        - user_engagement/active_user_percentage: distinct active users / active members
        - assessment_completion/completion_rate: completed / created in period
        - ocean_scores/average_scores: number of results, trait averages in metadata
        """
        end = as_utc(period_end) if period_end else utcnow()
        start = as_utc(period_start) if period_start else end - timedelta(days=7)
        types = (metric_type,) if metric_type else METRIC_TYPES

        computed: List[CalculatedMetric] = []
        for kind in types:
            if kind == "user_engagement":
                active = await self.repo.count_distinct_active_users(organization_id, start, end)
                total = await self.repo.count_active_members(organization_id)
                computed.append(
                    CalculatedMetric(
                        metric_type=kind,
                        metric_name="active_user_percentage",
                        metric_value=_pct(active, total),
                        metric_unit="percentage",
                        metadata={"active_users": active, "total_users": total},
                    )
                )
            elif kind == "assessment_completion":
                created = await self.repo.count_assessments(organization_id, created_from=start, created_to=end)
                completed = await self.repo.count_assessments(
                    organization_id, created_from=start, created_to=end, status="completed"
                )
                computed.append(
                    CalculatedMetric(
                        metric_type=kind,
                        metric_name="completion_rate",
                        metric_value=_pct(completed, created),
                        metric_unit="percentage",
                        metadata={"completed_assessments": completed, "total_assessments": created},
                    )
                )
            elif kind == "ocean_scores":
                averages = await self.repo.ocean_averages(organization_id, start, end)
                count = averages.pop("total_results")
                computed.append(
                    CalculatedMetric(
                        metric_type=kind,
                        metric_name="average_scores",
                        metric_value=float(count),
                        metric_unit="count",
                        metadata={k: round(float(v), 2) if v is not None else None for k, v in averages.items()},
                    )
                )

        for item in computed:
            await self.repo.add_metric(
                organization_id,
                metric_type=item.metric_type,
                metric_name=item.metric_name,
                metric_value=item.metric_value,
                metric_unit=item.metric_unit,
                dimension_1="weekly",
                metadata_=item.metadata,
                calculation_method="automated",
                data_source="calculate_metrics",
                recorded_at=end,
            )
        await self.repo.commit()
        logger.info("Calculated %d metric(s) for organization %s", len(computed), organization_id)
        return CalculateMetricsResponse(
            organization_id=organization_id, period_start=start, period_end=end, metrics=computed
        )

    # PUBLIC_INTERFACE
    async def get_summary(self, organization_id: UUID, period_days: int = 7) -> DashboardSummary:
        end = utcnow()
        start = end - timedelta(days=period_days)

        total_users = await self.repo.count_active_members(organization_id)
        active_users = await self.repo.count_members_logged_in_since(organization_id, start)

        total_assessments = await self.repo.count_assessments(organization_id)
        completed_assessments = await self.repo.count_assessments(organization_id, status="completed")
        recent_assessments = await self.repo.count_assessments(organization_id, created_from=start)

        total_activities = await self.repo.count_activities(organization_id, start, end)
        active_users_period = await self.repo.count_distinct_active_users(organization_id, start, end)
        avg_duration = await self.repo.average_session_duration(organization_id, start, end)

        metrics, _ = await self.repo.list_metrics(organization_id, limit=50)
        latest: List[LatestMetric] = []
        seen = set()
        for metric in metrics:
            key = (metric.metric_type, metric.metric_name)
            if key in seen:
                continue
            seen.add(key)
            latest.append(
                LatestMetric(
                    type=metric.metric_type,
                    name=metric.metric_name,
                    value=metric.metric_value,
                    unit=metric.metric_unit,
                    metadata=metric.metadata_ or {},
                )
            )

        return DashboardSummary(
            organization_id=organization_id,
            period_start=start,
            period_end=end,
            user_stats=UserStats(
                total_users=total_users,
                active_users=active_users,
                engagement_rate=_pct(active_users, total_users),
            ),
            assessment_stats=AssessmentStats(
                total_assessments=total_assessments,
                completed_assessments=completed_assessments,
                recent_assessments=recent_assessments,
                completion_rate=_pct(completed_assessments, total_assessments),
            ),
            activity_stats=ActivityStats(
                total_activities=total_activities,
                active_users_period=active_users_period,
                avg_session_duration=round(avg_duration, 2),
            ),
            latest_metrics=latest,
        )

    # PUBLIC_INTERFACE
    async def get_realtime_data(self, organization_id: UUID) -> RealtimeData:
        now = utcnow()
        hour_ago = now - timedelta(hours=1)
        midnight = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        system = SystemRepository(self.session)
        avg_response = await system.average_metric("response_time", now - timedelta(minutes=5)) or 0.0
        error_rate = await system.average_metric("error_rate", now - timedelta(minutes=5)) or 0.0
        return RealtimeData(
            organization_id=organization_id,
            timestamp=now,
            active_users_15min=await self.repo.count_distinct_active_users(organization_id, now - timedelta(minutes=15)),
            active_users_today=await self.repo.count_distinct_active_users(organization_id, midnight),
            activities_last_hour=await self.repo.count_activities(organization_id, hour_ago),
            assessments_started_hour=await self.repo.count_activities(
                organization_id, hour_ago, activity_type="assessment_start"
            ),
            assessments_completed_hour=await self.repo.count_activities(
                organization_id, hour_ago, activity_type="assessment_complete"
            ),
            avg_response_time_ms=round(avg_response, 2),
            current_error_rate=round(error_rate, 4),
            system_status=classify_system_status(avg_response, error_rate),
        )

    # PUBLIC_INTERFACE
    async def get_trends(
        self, organization_id: UUID, metric_type: str, metric_name: str, periods: int = 4
    ) -> TrendResponse:
        since = utcnow() - timedelta(weeks=periods)
        metrics = await self.repo.metrics_since(organization_id, metric_type, metric_name, since)
        points, overall = build_trend([(m.recorded_at, m.metric_value) for m in metrics], periods)
        return TrendResponse(
            metric_type=metric_type,
            metric_name=metric_name,
            organization_id=organization_id,
            periods_analyzed=periods,
            trends=points,
            overall_trend=overall,
        )

    # Aggregations
    # PUBLIC_INTERFACE
    async def get_aggregations(
        self,
        organization_id: UUID,
        *,
        aggregation_type: Optional[str] = None,
        aggregation_key: Optional[str] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        limit: int = 100,
    ) -> List[AssessmentAggregation]:
        return await self.repo.list_aggregations(
            organization_id,
            aggregation_type=aggregation_type,
            aggregation_key=aggregation_key,
            period_start=period_start,
            period_end=period_end,
            limit=limit,
        )

    # PUBLIC_INTERFACE
    async def generate_aggregations(
        self,
        organization_id: UUID,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> GenerateAggregationsResponse:
        """Rebuild per-department and per-role aggregations for the period (default: the last 7 days)."""
        end_day = period_end or utcnow().date()
        start_day = period_start or end_day - timedelta(days=7)
        start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
        end = datetime.combine(end_day, time.max, tzinfo=timezone.utc)

        await self.repo.delete_aggregations_in_period(organization_id, start_day, end_day)
        rows = await self.repo.assessments_with_subjects(organization_id, start, end)
        results = await self.repo.ocean_results_for_assessments([a.id for a, _, _ in rows])
        results_by_assessment: Dict[UUID, List[Any]] = {}
        for result in results:
            results_by_assessment.setdefault(result.assessment_id, []).append(result)

        created = 0
        for aggregation_type, key_index in (("ocean_department", 1), ("ocean_role", 2)):
            groups: Dict[str, List[Any]] = {}
            for row in rows:
                groups.setdefault(row[key_index] or UNKNOWN_KEY, []).append(row[0])
            for key, assessments in groups.items():
                group_results = [r for a in assessments for r in results_by_assessment.get(a.id, [])]
                await self.repo.add(
                    AssessmentAggregation(
                        organization_id=organization_id,
                        aggregation_type=aggregation_type,
                        aggregation_key=key,
                        period_start=start_day,
                        period_end=end_day,
                        total_assessments=len(assessments),
                        completed_assessments=sum(1 for a in assessments if a.status == "completed"),
                        ocean_scores=_average_traits(group_results),
                        facet_scores={},
                        metadata_={"result_count": len(group_results)},
                    )
                )
                created += 1
        await self.repo.commit()
        logger.info("Generated %d aggregation row(s) for organization %s", created, organization_id)
        return GenerateAggregationsResponse(
            organization_id=organization_id, period_start=start_day, period_end=end_day, rows_created=created
        )

    # Activity
    # PUBLIC_INTERFACE
    async def get_activity(
        self,
        organization_id: UUID,
        *,
        user_id: Optional[UUID] = None,
        activity_type: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[UserActivityLog]:
        return await self.repo.list_activity(
            organization_id,
            user_id=user_id,
            activity_type=activity_type,
            start=period_start,
            end=period_end,
            limit=limit,
        )

    # PUBLIC_INTERFACE
    async def track_activity(
        self,
        organization_id: UUID,
        user_id: UUID,
        payload: ActivityCreate,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UserActivityLog:
        activity = await self.repo.add_activity(
            organization_id,
            user_id=user_id,
            user_agent=user_agent,
            ip_address=ip_address,
            metadata_=payload.metadata,
            **payload.model_dump(exclude={"metadata"}),
        )
        await self.repo.commit()
        try:
            await realtime_manager.send_user_activity(
                organization_id,
                {
                    "id": str(activity.id),
                    "user_id": str(user_id),
                    "activity_type": activity.activity_type,
                    "activity_subtype": activity.activity_subtype,
                    "page_path": activity.page_path,
                },
            )
        except Exception:
            logger.exception("Failed to publish user activity after track_activity")
        return activity

    # PUBLIC_INTERFACE
    async def get_metric_history(
        self,
        organization_id: UUID,
        *,
        metric_type: Optional[str] = None,
        metric_name: Optional[str] = None,
        limit: int = 100,
    ) -> List[MetricsHistory]:
        return await self.repo.list_history(
            organization_id, metric_type=metric_type, metric_name=metric_name, limit=limit
        )


# PUBLIC_INTERFACE
async def realtime_snapshot(organization_id: UUID) -> Dict[str, Any]:
    """Realtime dashboard data computed in its own session (used by the realtime update cycle)."""
    async with get_session_maker()() as session:
        async with organization_context(session, organization_id):
            data = await DashboardService(session).get_realtime_data(organization_id)
    return data.model_dump(mode="json")
