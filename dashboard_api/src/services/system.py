from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ErrorResponses
from src.db.base import as_utc, utcnow
from src.db.models.system import ScheduledJobConfig, ScheduledJobLog, SystemPerformanceMetric
from src.db.session import get_session_maker
from src.repositories.system import SystemRepository
from src.schemas.system import (
    ErrorEndpoint,
    HealthCheckResult,
    JobConfigUpdate,
    PerformanceMetricCreate,
    PerformanceReport,
    PerformanceSummary,
    PerformanceTrends,
    SystemHealthResponse,
)
from src.services.base import BaseService

logger = logging.getLogger(__name__)

_SEVERITY = {"pass": "info", "warning": "warning", "fail": "critical"}


# PUBLIC_INTERFACE
def database_check(response_ms: Optional[float], error: Optional[str] = None) -> HealthCheckResult:
    """fail above 1000 ms (or when the check failed), warning above 500 ms."""
    if error is not None or response_ms is None:
        return HealthCheckResult(
            name="database_response_time",
            status="fail",
            message=f"Database check failed: {error}",
            severity="critical",
        )
    status = "fail" if response_ms > 1000 else "warning" if response_ms > 500 else "pass"
    return HealthCheckResult(
        name="database_response_time",
        status=status,
        message=f"Database responded in {response_ms:.1f}ms",
        value=round(response_ms, 2),
        severity=_SEVERITY[status],
    )


# PUBLIC_INTERFACE
def error_rate_check(error_rate: Optional[float]) -> HealthCheckResult:
    """fail above 5%, warning above 1%; no samples counts as healthy."""
    if error_rate is None:
        return HealthCheckResult(name="error_rate", status="pass", message="No recent errors recorded", value=0.0)
    status = "fail" if error_rate > 0.05 else "warning" if error_rate > 0.01 else "pass"
    return HealthCheckResult(
        name="error_rate",
        status=status,
        message=f"Error rate over the last 5 minutes is {error_rate * 100:.2f}%",
        value=round(error_rate, 4),
        severity=_SEVERITY[status],
    )


# PUBLIC_INTERFACE
def failed_jobs_check(failed_jobs: int) -> HealthCheckResult:
    """fail above 5 failed jobs in 24 hours, warning above 2."""
    status = "fail" if failed_jobs > 5 else "warning" if failed_jobs > 2 else "pass"
    return HealthCheckResult(
        name="failed_jobs",
        status=status,
        message=f"{failed_jobs} failed job(s) in the last 24 hours",
        value=float(failed_jobs),
        severity=_SEVERITY[status],
    )


# PUBLIC_INTERFACE
def overall_status(checks: List[HealthCheckResult]) -> str:
    if any(c.status == "fail" for c in checks):
        return "critical"
    if any(c.status == "warning" for c in checks):
        return "warning"
    return "healthy"


class SystemService(BaseService):
    """Performance metrics, system health and scheduled job bookkeeping."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SystemRepository(session)

    # Performance metrics
    # PUBLIC_INTERFACE
    async def list_performance_metrics(
        self,
        *,
        metric_type: Optional[str] = None,
        service_name: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[SystemPerformanceMetric]:
        return await self.repo.list_performance_metrics(
            metric_type=metric_type,
            service_name=service_name,
            start=as_utc(period_start),
            end=as_utc(period_end),
            limit=limit,
        )

    # PUBLIC_INTERFACE
    async def record_performance_metric(self, payload: PerformanceMetricCreate) -> SystemPerformanceMetric:
        metric = await self.repo.add_performance_metric(**payload.model_dump())
        await self.repo.commit()
        return metric

    # PUBLIC_INTERFACE
    async def record_request(
        self, endpoint: str, method: str, status_code: int, duration_ms: float, error_message: Optional[str] = None
    ) -> None:
        """Store one response_time sample for a handled request."""
        await self.repo.add_performance_metric(
            metric_type="response_time",
            metric_name=f"{method} {endpoint}"[:100],
            metric_value=round(duration_ms, 4),
            metric_unit="ms",
            service_name="dashboard_api",
            endpoint=endpoint[:255],
            status_code=status_code,
            error_message=error_message,
        )
        await self.repo.commit()

    # PUBLIC_INTERFACE
    async def performance_report(
        self, period_start: Optional[datetime] = None, period_end: Optional[datetime] = None
    ) -> PerformanceReport:
        """Summary, recent trend points and top error endpoints (default: the last 24 hours)."""
        end = as_utc(period_end) if period_end else utcnow()
        start = as_utc(period_start) if period_start else end - timedelta(hours=24)

        avg_response = await self.repo.average_metric("response_time", start, end) or 0.0
        error_rate = await self.repo.average_metric("error_rate", start, end) or 0.0
        total_requests = await self.repo.count_metrics("response_time", start, end)
        successful_jobs = await self.repo.count_jobs("completed", start, end)
        failed_jobs = await self.repo.count_jobs("failed", start, end)

        response_points = await self.repo.recent_values("response_time", start, end, limit=10)
        error_points = await self.repo.recent_values("error_rate", start, end, limit=10)
        top_errors = await self.repo.top_error_endpoints(start, end, limit=5)

        return PerformanceReport(
            period_start=start,
            period_end=end,
            summary=PerformanceSummary(
                avg_response_time=round(avg_response, 2),
                error_rate=round(error_rate, 4),
                total_requests=total_requests,
                successful_jobs=successful_jobs,
                failed_jobs=failed_jobs,
            ),
            trends=PerformanceTrends(
                response_time=[m.metric_value for m in reversed(response_points)],
                error_rate=[m.metric_value for m in reversed(error_points)],
            ),
            top_errors=[
                ErrorEndpoint(endpoint=endpoint, error_count=count, last_error=last)
                for endpoint, count, last in top_errors
            ],
        )

    # Health
    async def _check_database(self) -> Tuple[Optional[float], Optional[str]]:
        started = time.perf_counter()
        try:
            await self.session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.exception("Database health check failed")
            return None, str(exc)
        return (time.perf_counter() - started) * 1000.0, None

    # PUBLIC_INTERFACE
    async def health(self) -> SystemHealthResponse:
        now = utcnow()
        response_ms, error = await self._check_database()
        checks = [database_check(response_ms, error)]
        if error is None:
            checks.append(error_rate_check(await self.repo.average_metric("error_rate", now - timedelta(minutes=5))))
            checks.append(failed_jobs_check(await self.repo.count_jobs("failed", now - timedelta(hours=24))))
        return SystemHealthResponse(overall_status=overall_status(checks), checks=checks, checked_at=now)

    # Jobs
    # PUBLIC_INTERFACE
    async def list_jobs(
        self,
        *,
        job_name: Optional[str] = None,
        job_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> Tuple[List[ScheduledJobLog], List[ScheduledJobConfig]]:
        logs = await self.repo.list_job_logs(job_name=job_name, job_type=job_type, status=status, limit=limit)
        configs = await self.repo.list_job_configs(job_name=job_name)
        return logs, configs

    # PUBLIC_INTERFACE
    async def get_job_config(self, job_name: str) -> ScheduledJobConfig:
        config = await self.repo.get_job_config(job_name)
        if config is None:
            raise ErrorResponses.not_found("Job configuration not found", code="JOB_CONFIG_NOT_FOUND")
        return config

    # PUBLIC_INTERFACE
    async def update_job_config(self, job_name: str, payload: JobConfigUpdate) -> ScheduledJobConfig:
        config = await self.get_job_config(job_name)
        for field_name, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(config, field_name, value)
        await self.repo.commit()
        logger.info("Updated configuration of job %s", job_name)
        return config


# PUBLIC_INTERFACE
async def current_health() -> Dict[str, Any]:
    """System health computed in its own session (used by the realtime update cycle)."""
    async with get_session_maker()() as session:
        result = await SystemService(session).health()
    return result.model_dump(mode="json")
