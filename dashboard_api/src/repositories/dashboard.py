from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, distinct, func, select

from src.db.models.assessments import Assessment, OceanAssessmentResult
from src.db.models.dashboard import AssessmentAggregation, DashboardMetric, MetricsHistory, UserActivityLog
from src.db.models.organizations import User, UserOrganization
from .base import BaseRepository


class DashboardRepository(BaseRepository):
    """Metric, activity, aggregation and history queries for one organization at a time."""

    # Metrics
    async def list_metrics(
        self,
        organization_id: UUID,
        *,
        metric_type: Optional[str] = None,
        metric_name: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> Tuple[List[DashboardMetric], int]:
        stmt = select(DashboardMetric).where(
            DashboardMetric.organization_id == organization_id,
            DashboardMetric.is_active.is_(True),
        )
        if metric_type:
            stmt = stmt.where(DashboardMetric.metric_type == metric_type)
        if metric_name:
            stmt = stmt.where(DashboardMetric.metric_name == metric_name)
        if start:
            stmt = stmt.where(DashboardMetric.recorded_at >= start)
        if end:
            stmt = stmt.where(DashboardMetric.recorded_at <= end)
        total = await self.count(stmt)
        stmt = stmt.order_by(DashboardMetric.recorded_at.desc()).limit(limit)
        return list(await self.scalars(stmt)), total

    async def add_metric(self, organization_id: UUID, **values: Any) -> DashboardMetric:
        metric = DashboardMetric(organization_id=organization_id, **values)
        await self.add(metric)
        await self.flush()
        return metric

    async def metrics_since(
        self, organization_id: UUID, metric_type: str, metric_name: str, since: datetime
    ) -> List[DashboardMetric]:
        stmt = (
            select(DashboardMetric)
            .where(
                DashboardMetric.organization_id == organization_id,
                DashboardMetric.metric_type == metric_type,
                DashboardMetric.metric_name == metric_name,
                DashboardMetric.is_active.is_(True),
                DashboardMetric.recorded_at >= since,
            )
            .order_by(DashboardMetric.recorded_at)
        )
        return list(await self.scalars(stmt))

    async def metrics_older_than(self, cutoff: datetime) -> List[DashboardMetric]:
        stmt = select(DashboardMetric).where(DashboardMetric.recorded_at < cutoff)
        return list(await self.scalars(stmt))

    async def delete_metrics_older_than(self, cutoff: datetime) -> int:
        res = await self.execute(delete(DashboardMetric).where(DashboardMetric.recorded_at < cutoff))
        return res.rowcount or 0

    # Members and users
    async def count_active_members(self, organization_id: UUID) -> int:
        stmt = select(func.count(UserOrganization.id)).where(
            UserOrganization.organization_id == organization_id,
            UserOrganization.is_active.is_(True),
        )
        return int(await self.scalar(stmt))

    async def count_members_logged_in_since(self, organization_id: UUID, since: datetime) -> int:
        stmt = (
            select(func.count(User.id))
            .join(UserOrganization, UserOrganization.user_id == User.id)
            .where(
                UserOrganization.organization_id == organization_id,
                UserOrganization.is_active.is_(True),
                User.last_login >= since,
            )
        )
        return int(await self.scalar(stmt))

    # Activity
    async def count_distinct_active_users(
        self, organization_id: UUID, start: datetime, end: Optional[datetime] = None
    ) -> int:
        stmt = select(func.count(distinct(UserActivityLog.user_id))).where(
            UserActivityLog.organization_id == organization_id,
            UserActivityLog.recorded_at >= start,
        )
        if end:
            stmt = stmt.where(UserActivityLog.recorded_at <= end)
        return int(await self.scalar(stmt))

    async def count_activities(
        self,
        organization_id: UUID,
        start: datetime,
        end: Optional[datetime] = None,
        activity_type: Optional[str] = None,
    ) -> int:
        stmt = select(func.count(UserActivityLog.id)).where(
            UserActivityLog.organization_id == organization_id,
            UserActivityLog.recorded_at >= start,
        )
        if end:
            stmt = stmt.where(UserActivityLog.recorded_at <= end)
        if activity_type:
            stmt = stmt.where(UserActivityLog.activity_type == activity_type)
        return int(await self.scalar(stmt))

    async def average_session_duration(self, organization_id: UUID, start: datetime, end: datetime) -> float:
        stmt = select(func.avg(UserActivityLog.duration_seconds)).where(
            UserActivityLog.organization_id == organization_id,
            UserActivityLog.recorded_at >= start,
            UserActivityLog.recorded_at <= end,
        )
        return float(await self.scalar(stmt))

    async def list_activity(
        self,
        organization_id: UUID,
        *,
        user_id: Optional[UUID] = None,
        activity_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[UserActivityLog]:
        stmt = select(UserActivityLog).where(UserActivityLog.organization_id == organization_id)
        if user_id:
            stmt = stmt.where(UserActivityLog.user_id == user_id)
        if activity_type:
            stmt = stmt.where(UserActivityLog.activity_type == activity_type)
        if start:
            stmt = stmt.where(UserActivityLog.recorded_at >= start)
        if end:
            stmt = stmt.where(UserActivityLog.recorded_at <= end)
        stmt = stmt.order_by(UserActivityLog.recorded_at.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def add_activity(self, organization_id: UUID, **values: Any) -> UserActivityLog:
        activity = UserActivityLog(organization_id=organization_id, **values)
        await self.add(activity)
        await self.flush()
        return activity

    async def delete_activity_older_than(self, cutoff: datetime) -> int:
        res = await self.execute(delete(UserActivityLog).where(UserActivityLog.recorded_at < cutoff))
        return res.rowcount or 0

    # Assessments
    async def count_assessments(
        self,
        organization_id: UUID,
        *,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> int:
        stmt = select(func.count(Assessment.id)).where(Assessment.organization_id == organization_id)
        if created_from:
            stmt = stmt.where(Assessment.created_at >= created_from)
        if created_to:
            stmt = stmt.where(Assessment.created_at <= created_to)
        if status:
            stmt = stmt.where(Assessment.status == status)
        return int(await self.scalar(stmt))

    async def ocean_averages(self, organization_id: UUID, start: datetime, end: datetime) -> Dict[str, Any]:
        stmt = select(
            func.count(OceanAssessmentResult.id),
            func.avg(OceanAssessmentResult.openness_score),
            func.avg(OceanAssessmentResult.conscientiousness_score),
            func.avg(OceanAssessmentResult.extraversion_score),
            func.avg(OceanAssessmentResult.agreeableness_score),
            func.avg(OceanAssessmentResult.neuroticism_score),
        ).where(
            OceanAssessmentResult.organization_id == organization_id,
            OceanAssessmentResult.created_at >= start,
            OceanAssessmentResult.created_at <= end,
        )
        row = (await self.execute(stmt)).one()
        return {
            "total_results": int(row[0] or 0),
            "openness": row[1],
            "conscientiousness": row[2],
            "extraversion": row[3],
            "agreeableness": row[4],
            "neuroticism": row[5],
        }

    async def assessments_with_subjects(
        self, organization_id: UUID, start: datetime, end: datetime
    ) -> List[Tuple[Assessment, Optional[str], Optional[str]]]:
        """Assessments created in [start, end] with the subject's department and role."""
        stmt = (
            select(Assessment, User.department, User.role)
            .join(User, Assessment.user_id == User.id)
            .where(
                Assessment.organization_id == organization_id,
                Assessment.created_at >= start,
                Assessment.created_at <= end,
            )
        )
        res = await self.execute(stmt)
        return [(row[0], row[1], row[2]) for row in res.all()]

    async def ocean_results_for_assessments(self, assessment_ids: List[UUID]) -> List[OceanAssessmentResult]:
        if not assessment_ids:
            return []
        stmt = select(OceanAssessmentResult).where(OceanAssessmentResult.assessment_id.in_(assessment_ids))
        return list(await self.scalars(stmt))

    # Aggregations
    async def list_aggregations(
        self,
        organization_id: UUID,
        *,
        aggregation_type: Optional[str] = None,
        aggregation_key: Optional[str] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        limit: int = 100,
    ) -> List[AssessmentAggregation]:
        stmt = select(AssessmentAggregation).where(AssessmentAggregation.organization_id == organization_id)
        if aggregation_type:
            stmt = stmt.where(AssessmentAggregation.aggregation_type == aggregation_type)
        if aggregation_key:
            stmt = stmt.where(AssessmentAggregation.aggregation_key == aggregation_key)
        if period_start:
            stmt = stmt.where(AssessmentAggregation.period_start >= period_start)
        if period_end:
            stmt = stmt.where(AssessmentAggregation.period_end <= period_end)
        stmt = stmt.order_by(AssessmentAggregation.calculated_at.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def delete_aggregations_in_period(self, organization_id: UUID, start: date, end: date) -> int:
        res = await self.execute(
            delete(AssessmentAggregation).where(
                AssessmentAggregation.organization_id == organization_id,
                AssessmentAggregation.period_start >= start,
                AssessmentAggregation.period_end <= end,
            )
        )
        return res.rowcount or 0

    # History
    async def list_history(
        self,
        organization_id: UUID,
        *,
        metric_type: Optional[str] = None,
        metric_name: Optional[str] = None,
        limit: int = 100,
    ) -> List[MetricsHistory]:
        stmt = select(MetricsHistory).where(MetricsHistory.organization_id == organization_id)
        if metric_type:
            stmt = stmt.where(MetricsHistory.metric_type == metric_type)
        if metric_name:
            stmt = stmt.where(MetricsHistory.metric_name == metric_name)
        stmt = stmt.order_by(MetricsHistory.period_end.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def archived_metric_ids(self, metric_ids: List[UUID]) -> set:
        if not metric_ids:
            return set()
        stmt = select(MetricsHistory.metric_id).where(MetricsHistory.metric_id.in_(metric_ids))
        return set(await self.scalars(stmt))
