from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import ApiError
from src.db.base import utcnow
from src.db.models.dashboard import MetricsHistory
from src.db.session import get_session_maker, organization_context
from src.repositories.dashboard import DashboardRepository
from src.repositories.organizations import OrganizationRepository
from src.repositories.reports import ReportRepository
from src.repositories.system import SystemRepository
from src.schemas.system import JobExecutionResult
from src.services.dashboard import DashboardService
from src.services.realtime import realtime_manager
from src.services.report_generator import ReportGenerator

logger = logging.getLogger(__name__)

ACTIVITY_RETENTION_DAYS = 90
PERFORMANCE_RETENTION_DAYS = 30
JOB_LOG_RETENTION_DAYS = 60
METRIC_RETENTION_DAYS = 30

JOB_TYPES = {
    "calculate_all_metrics": "metrics_calculation",
    "generate_all_aggregations": "data_aggregation",
    "cleanup_old_data": "maintenance",
    "generate_weekly_reports": "report_generation",
    "monitor_system_performance": "monitoring",
}

DEFAULT_SCHEDULES = {
    "calculate_all_metrics": ("0 */6 * * *", "Calculate dashboard metrics every 6 hours"),
    "generate_all_aggregations": ("0 2 * * *", "Generate assessment aggregations daily at 2 AM"),
    "cleanup_old_data": ("0 3 * * 0", "Clean up old data weekly on Sunday at 3 AM"),
    "generate_weekly_reports": ("0 8 * * 1", "Generate weekly reports every Monday at 8 AM"),
    "monitor_system_performance": ("*/5 * * * *", "Monitor system performance every 5 minutes"),
}

JobOutcome = Tuple[int, Dict[str, Any]]


# PUBLIC_INTERFACE
def previous_week(today: date) -> Tuple[date, date]:
    """Monday..Sunday of the week before the one containing today."""
    monday = today - timedelta(days=today.weekday()) - timedelta(weeks=1)
    return monday, monday + timedelta(days=6)


class JobRunner:
    """
    Runs the named maintenance jobs.

    Each run is recorded in scheduled_job_logs (running, then completed or failed) and
    updates last_run_at / failure_count of the job configuration when one exists.
    Organization-scoped work uses one session per organization.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_maker = session_maker or get_session_maker()
        self._jobs: Dict[str, Callable[[], Awaitable[JobOutcome]]] = {
            "calculate_all_metrics": self.calculate_all_metrics,
            "generate_all_aggregations": self.generate_all_aggregations,
            "cleanup_old_data": self.cleanup_old_data,
            "generate_weekly_reports": self.generate_weekly_reports,
            "monitor_system_performance": self.monitor_system_performance,
        }

    # PUBLIC_INTERFACE
    async def execute(self, job_name: str, parameters: Optional[Dict[str, Any]] = None) -> JobExecutionResult:
        """Run a job by name. Failures are recorded and returned, never raised."""
        job = self._jobs.get(job_name)
        job_type = JOB_TYPES.get(job_name, "manual")
        started = time.perf_counter()

        async with self._session_maker() as session:
            repo = SystemRepository(session)
            log = await repo.add_job_log(
                job_name=job_name, job_type=job_type, status="running", metadata_=dict(parameters or {})
            )
            await repo.commit()

            rows, details, error = 0, {}, None
            if job is None:
                error = f"Unknown job: {job_name}"
                logger.warning(error)
            else:
                try:
                    rows, details = await job()
                except Exception as exc:
                    error = str(exc) or exc.__class__.__name__
                    logger.exception("Job %s failed", job_name)

            duration = time.perf_counter() - started
            log.status = "failed" if error else "completed"
            log.completed_at = utcnow()
            log.duration_seconds = int(duration)
            log.rows_processed = rows
            log.error_message = error
            log.metadata_ = {**(parameters or {}), **details}

            config = await repo.get_job_config(job_name)
            if config is not None:
                config.last_run_at = log.completed_at
                config.failure_count = config.failure_count + 1 if error else 0
                if error and config.failure_count >= config.max_failures:
                    logger.error("Job %s reached %d consecutive failures", job_name, config.failure_count)
            await repo.commit()

        if error:
            try:
                await realtime_manager.send_system_alert("error", "Job Failed", f"{job_name}: {error}")
            except Exception:
                logger.exception("Failed to publish job failure alert")
        else:
            logger.info("Job %s completed in %.2fs (%d rows)", job_name, duration, rows)
        return JobExecutionResult(
            job_name=job_name,
            success=error is None,
            rows_processed=rows,
            duration_seconds=round(duration, 3),
            details=details,
            error=error,
        )

    async def _organization_ids(self) -> list:
        async with self._session_maker() as session:
            return [org.id for org in await OrganizationRepository(session).list_active_organizations()]

    # PUBLIC_INTERFACE
    async def calculate_all_metrics(self) -> JobOutcome:
        processed, errors = 0, 0
        for organization_id in await self._organization_ids():
            async with self._session_maker() as session:
                try:
                    async with organization_context(session, organization_id):
                        await DashboardService(session).calculate_metrics(organization_id)
                    processed += 1
                except SQLAlchemyError:
                    errors += 1
                    await session.rollback()
                    logger.exception("Metric calculation failed for organization %s", organization_id)
        return processed, {"organizations_processed": processed, "error_count": errors}

    # PUBLIC_INTERFACE
    async def generate_all_aggregations(self) -> JobOutcome:
        processed, rows, errors = 0, 0, 0
        for organization_id in await self._organization_ids():
            async with self._session_maker() as session:
                try:
                    async with organization_context(session, organization_id):
                        result = await DashboardService(session).generate_aggregations(organization_id)
                    processed += 1
                    rows += result.rows_created
                except SQLAlchemyError:
                    errors += 1
                    await session.rollback()
                    logger.exception("Aggregation failed for organization %s", organization_id)
        return rows, {"organizations_processed": processed, "rows_created": rows, "error_count": errors}

    # PUBLIC_INTERFACE
    async def cleanup_old_data(self) -> JobOutcome:
        """Delete expired activity, performance and job logs; archive then delete old dashboard metrics."""
        now = utcnow()
        async with self._session_maker() as session:
            dashboard = DashboardRepository(session)
            system = SystemRepository(session)
            deleted = await dashboard.delete_activity_older_than(now - timedelta(days=ACTIVITY_RETENTION_DAYS))
            deleted += await system.delete_performance_metrics_older_than(
                now - timedelta(days=PERFORMANCE_RETENTION_DAYS)
            )
            deleted += await system.delete_job_logs_older_than(now - timedelta(days=JOB_LOG_RETENTION_DAYS))

            metric_cutoff = now - timedelta(days=METRIC_RETENTION_DAYS)
            old_metrics = await dashboard.metrics_older_than(metric_cutoff)
            archived_ids = await dashboard.archived_metric_ids([m.id for m in old_metrics])
            archived = 0
            for metric in old_metrics:
                if metric.id in archived_ids:
                    continue
                await dashboard.add(
                    MetricsHistory(
                        organization_id=metric.organization_id,
                        metric_id=metric.id,
                        metric_type=metric.metric_type,
                        metric_name=metric.metric_name,
                        current_value=metric.metric_value,
                        period_start=metric.recorded_at - timedelta(days=1),
                        period_end=metric.recorded_at,
                        calculation_context={"archived_at": now.isoformat(), "original_metadata": metric.metadata_ or {}},
                    )
                )
                archived += 1
            await dashboard.flush()
            deleted += await dashboard.delete_metrics_older_than(metric_cutoff)
            await dashboard.commit()
        return deleted, {"deleted_records": deleted, "archived_metrics": archived}

    # PUBLIC_INTERFACE
    async def generate_weekly_reports(self) -> JobOutcome:
        """Create and generate last week's report for every active organization that lacks one."""
        week_start, week_end = previous_week(utcnow().date())
        async with self._session_maker() as session:
            organizations = [
                (org.id, org.name) for org in await OrganizationRepository(session).list_active_organizations()
            ]

        generated, errors = 0, 0
        for organization_id, name in organizations:
            async with self._session_maker() as session:
                try:
                    async with organization_context(session, organization_id):
                        reports = ReportRepository(session)
                        if await reports.find_report_for_period(organization_id, week_start, "weekly") is not None:
                            continue
                        templates = await reports.list_templates(organization_id, template_type="weekly")
                        default = next((t for t in templates if t.is_default), None)
                        report = await reports.create_report(
                            organization_id,
                            report_period_start=week_start,
                            report_period_end=week_end,
                            report_type="weekly",
                            title=f"Weekly Report - {name} - {week_start.isoformat()}",
                            status="draft",
                            template_id=default.id if default else None,
                            metadata_={"source": "generate_weekly_reports"},
                        )
                        await reports.commit()
                        await ReportGenerator(session).generate(organization_id, report.id)
                    generated += 1
                except (SQLAlchemyError, ApiError):
                    errors += 1
                    await session.rollback()
                    logger.exception("Weekly report generation failed for organization %s", organization_id)
        details = {
            "reports_generated": generated,
            "week_start": week_start.isoformat(),
            "week_end": week_end.isoformat(),
        }
        if errors:
            details["error_count"] = errors
        return generated, details

    # PUBLIC_INTERFACE
    async def monitor_system_performance(self) -> JobOutcome:
        """Record database size, active connections, slow queries and websocket connections."""
        samples = [
            ("resource_usage", "websocket_connections", float(realtime_manager.stats()["total_connections"]), "count", "realtime"),
        ]
        async with self._session_maker() as session:
            if session.get_bind().dialect.name == "postgresql":
                size = await session.scalar(text("SELECT pg_database_size(current_database())"))
                active = await session.scalar(text("SELECT COUNT(*) FROM pg_stat_activity WHERE state = 'active'"))
                slow = await session.scalar(
                    text(
                        "SELECT COUNT(*) FROM pg_stat_activity "
                        "WHERE state = 'active' AND query_start < NOW() - INTERVAL '5 seconds'"
                    )
                )
                samples += [
                    ("resource_usage", "database_size_bytes", float(size or 0), "bytes", "database"),
                    ("resource_usage", "active_connections", float(active or 0), "count", "database"),
                    ("performance", "slow_queries_count", float(slow or 0), "count", "database"),
                ]
            repo = SystemRepository(session)
            for metric_type, name, value, unit, service in samples:
                await repo.add_performance_metric(
                    metric_type=metric_type, metric_name=name, metric_value=value, metric_unit=unit, service_name=service
                )
            await repo.commit()
        return len(samples), {name: value for _, name, value, _, _ in samples}
