from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_session, require_platform_admin
from src.db.models.organizations import User
from src.schemas.system import (
    JobConfigRead,
    JobConfigUpdate,
    JobExecutionResult,
    JobLogRead,
    JobsResponse,
    PerformanceMetricCreate,
    PerformanceMetricListResponse,
    PerformanceMetricRead,
    PerformanceReport,
    SystemHealthResponse,
)
from src.services.jobs import JobRunner
from src.services.system import SystemService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["System"])


# PUBLIC_INTERFACE
@router.get(
    "/performance",
    response_model=PerformanceMetricListResponse,
    summary="List performance metrics",
    description="Service-level measurements (newest first). Requires a platform administrator.",
)
async def list_performance_metrics(
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
    metric_type: Optional[str] = Query(None),
    service_name: Optional[str] = Query(None),
    period_start: Optional[datetime] = Query(None),
    period_end: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> PerformanceMetricListResponse:
    rows = await SystemService(session).list_performance_metrics(
        metric_type=metric_type,
        service_name=service_name,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
    )
    return PerformanceMetricListResponse(data=[PerformanceMetricRead.model_validate(r) for r in rows], count=len(rows))


# PUBLIC_INTERFACE
@router.post(
    "/performance",
    response_model=PerformanceMetricRead,
    status_code=201,
    summary="Record performance metric",
)
async def record_performance_metric(
    payload: PerformanceMetricCreate,
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
) -> PerformanceMetricRead:
    metric = await SystemService(session).record_performance_metric(payload)
    return PerformanceMetricRead.model_validate(metric)


# PUBLIC_INTERFACE
@router.get(
    "/performance/report",
    response_model=PerformanceReport,
    summary="Performance report",
    description="Summary, trends and top error endpoints for a period (default: last 24 hours).",
)
async def performance_report(
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
    period_start: Optional[datetime] = Query(None),
    period_end: Optional[datetime] = Query(None),
) -> PerformanceReport:
    return await SystemService(session).performance_report(period_start, period_end)


# PUBLIC_INTERFACE
@router.get(
    "/health",
    response_model=SystemHealthResponse,
    summary="System health",
    description="Database response time, recent error rate and failed jobs with an overall status.",
)
async def system_health(
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
) -> SystemHealthResponse:
    return await SystemService(session).health()


# PUBLIC_INTERFACE
@router.get(
    "/jobs",
    response_model=JobsResponse,
    summary="Scheduled jobs",
    description="Recent job executions and job configurations.",
)
async def list_jobs(
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
    job_name: Optional[str] = Query(None),
    job_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
) -> JobsResponse:
    logs, configs = await SystemService(session).list_jobs(
        job_name=job_name, job_type=job_type, status=status, limit=limit
    )
    return JobsResponse(
        logs=[JobLogRead.model_validate(log) for log in logs],
        configs=[JobConfigRead.model_validate(c) for c in configs],
        count=len(logs),
    )


# PUBLIC_INTERFACE
@router.post(
    "/jobs/{job_name}/execute",
    response_model=JobExecutionResult,
    summary="Execute job",
    description="Run a maintenance job now. Unknown jobs and job failures are reported with success=false.",
)
async def execute_job(
    job_name: str = Path(..., min_length=1, max_length=100),
    parameters: Optional[Dict[str, Any]] = Body(None),
    admin: User = Depends(require_platform_admin),
) -> JobExecutionResult:
    logger.info("Job %s requested by %s", job_name, admin.id)
    return await JobRunner().execute(job_name, parameters)


# PUBLIC_INTERFACE
@router.get("/jobs/{job_name}/config", response_model=JobConfigRead, summary="Get job configuration")
async def get_job_config(
    job_name: str = Path(...),
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
) -> JobConfigRead:
    return JobConfigRead.model_validate(await SystemService(session).get_job_config(job_name))


# PUBLIC_INTERFACE
@router.patch("/jobs/{job_name}/config", response_model=JobConfigRead, summary="Update job configuration")
async def update_job_config(
    payload: JobConfigUpdate,
    job_name: str = Path(...),
    _: User = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_session),
) -> JobConfigRead:
    return JobConfigRead.model_validate(await SystemService(session).update_job_config(job_name, payload))
