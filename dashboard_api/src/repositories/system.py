from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, func, select

from src.db.models.system import ScheduledJobConfig, ScheduledJobLog, SystemPerformanceMetric
from .base import BaseRepository


class SystemRepository(BaseRepository):
    """Performance metrics and scheduled job bookkeeping (not organization scoped)."""

    # Performance metrics
    async def list_performance_metrics(
        self,
        *,
        metric_type: Optional[str] = None,
        service_name: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[SystemPerformanceMetric]:
        stmt = select(SystemPerformanceMetric)
        if metric_type:
            stmt = stmt.where(SystemPerformanceMetric.metric_type == metric_type)
        if service_name:
            stmt = stmt.where(SystemPerformanceMetric.service_name == service_name)
        if start:
            stmt = stmt.where(SystemPerformanceMetric.recorded_at >= start)
        if end:
            stmt = stmt.where(SystemPerformanceMetric.recorded_at <= end)
        stmt = stmt.order_by(SystemPerformanceMetric.recorded_at.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def add_performance_metric(self, **values: Any) -> SystemPerformanceMetric:
        metric = SystemPerformanceMetric(**values)
        await self.add(metric)
        await self.flush()
        return metric

    async def average_metric(self, metric_type: str, since: datetime, until: Optional[datetime] = None) -> Optional[float]:
        stmt = select(func.avg(SystemPerformanceMetric.metric_value)).where(
            SystemPerformanceMetric.metric_type == metric_type,
            SystemPerformanceMetric.recorded_at >= since,
        )
        if until:
            stmt = stmt.where(SystemPerformanceMetric.recorded_at <= until)
        value = await self.scalar(stmt, default=None)
        return None if value is None else float(value)

    async def count_metrics(self, metric_type: str, since: datetime, until: datetime) -> int:
        stmt = select(func.count(SystemPerformanceMetric.id)).where(
            SystemPerformanceMetric.metric_type == metric_type,
            SystemPerformanceMetric.recorded_at >= since,
            SystemPerformanceMetric.recorded_at <= until,
        )
        return int(await self.scalar(stmt))

    async def count_requests(self, since: datetime, *, min_status: Optional[int] = None) -> int:
        stmt = select(func.count(SystemPerformanceMetric.id)).where(
            SystemPerformanceMetric.metric_type == "response_time",
            SystemPerformanceMetric.recorded_at >= since,
        )
        if min_status is not None:
            stmt = stmt.where(SystemPerformanceMetric.status_code >= min_status)
        return int(await self.scalar(stmt))

    async def recent_values(self, metric_type: str, since: datetime, until: datetime, limit: int = 10) -> List[SystemPerformanceMetric]:
        stmt = (
            select(SystemPerformanceMetric)
            .where(
                SystemPerformanceMetric.metric_type == metric_type,
                SystemPerformanceMetric.recorded_at >= since,
                SystemPerformanceMetric.recorded_at <= until,
            )
            .order_by(SystemPerformanceMetric.recorded_at.desc())
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    async def top_error_endpoints(self, since: datetime, until: datetime, limit: int = 5) -> List[Tuple[str, int, datetime]]:
        endpoint = func.coalesce(SystemPerformanceMetric.endpoint, "unknown")
        stmt = (
            select(endpoint, func.count(SystemPerformanceMetric.id), func.max(SystemPerformanceMetric.recorded_at))
            .where(
                SystemPerformanceMetric.error_message.is_not(None),
                SystemPerformanceMetric.recorded_at >= since,
                SystemPerformanceMetric.recorded_at <= until,
            )
            .group_by(endpoint)
            .order_by(func.count(SystemPerformanceMetric.id).desc())
            .limit(limit)
        )
        res = await self.execute(stmt)
        return [(row[0], int(row[1]), row[2]) for row in res.all()]

    async def delete_performance_metrics_older_than(self, cutoff: datetime) -> int:
        res = await self.execute(delete(SystemPerformanceMetric).where(SystemPerformanceMetric.recorded_at < cutoff))
        return res.rowcount or 0

    # Job logs
    async def list_job_logs(
        self,
        *,
        job_name: Optional[str] = None,
        job_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[ScheduledJobLog]:
        stmt = select(ScheduledJobLog)
        if job_name:
            stmt = stmt.where(ScheduledJobLog.job_name == job_name)
        if job_type:
            stmt = stmt.where(ScheduledJobLog.job_type == job_type)
        if status:
            stmt = stmt.where(ScheduledJobLog.status == status)
        stmt = stmt.order_by(ScheduledJobLog.started_at.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def add_job_log(self, **values: Any) -> ScheduledJobLog:
        log = ScheduledJobLog(**values)
        await self.add(log)
        await self.flush()
        return log

    async def count_jobs(self, status: str, since: datetime, until: Optional[datetime] = None) -> int:
        stmt = select(func.count(ScheduledJobLog.id)).where(
            ScheduledJobLog.status == status,
            ScheduledJobLog.started_at >= since,
        )
        if until:
            stmt = stmt.where(ScheduledJobLog.started_at <= until)
        return int(await self.scalar(stmt))

    async def delete_job_logs_older_than(self, cutoff: datetime) -> int:
        res = await self.execute(delete(ScheduledJobLog).where(ScheduledJobLog.created_at < cutoff))
        return res.rowcount or 0

    # Job configs
    async def list_job_configs(self, *, job_name: Optional[str] = None) -> List[ScheduledJobConfig]:
        stmt = select(ScheduledJobConfig)
        if job_name:
            stmt = stmt.where(ScheduledJobConfig.job_name == job_name)
        stmt = stmt.order_by(ScheduledJobConfig.job_name)
        return list(await self.scalars(stmt))

    async def get_job_config(self, job_name: str) -> Optional[ScheduledJobConfig]:
        stmt = select(ScheduledJobConfig).where(ScheduledJobConfig.job_name == job_name)
        return await self.scalar_one_or_none(stmt)

    async def add_job_config(self, **values: Any) -> ScheduledJobConfig:
        config = ScheduledJobConfig(**values)
        await self.add(config)
        await self.flush()
        return config
