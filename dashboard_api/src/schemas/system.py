from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class PerformanceMetricRead(BaseModel):
    id: UUID
    metric_type: str
    metric_name: str
    metric_value: float
    metric_unit: Optional[str] = None
    service_name: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    recorded_at: datetime

    class Config:
        from_attributes = True


class PerformanceMetricListResponse(BaseModel):
    data: List[PerformanceMetricRead]
    count: int


class PerformanceMetricCreate(BaseModel):
    """Record one performance sample (response_time in ms, error_rate as 0..1, ...)."""
    metric_type: str = Field(..., min_length=1, max_length=50)
    metric_name: str = Field(..., min_length=1, max_length=100)
    metric_value: float = Field(...)
    metric_unit: Optional[str] = Field(None, max_length=20)
    service_name: Optional[str] = Field(None, max_length=100)
    endpoint: Optional[str] = Field(None, max_length=255)
    status_code: Optional[int] = Field(None, ge=100, le=599)
    error_message: Optional[str] = Field(None)


class PerformanceSummary(BaseModel):
    avg_response_time: float
    error_rate: float
    total_requests: int
    successful_jobs: int
    failed_jobs: int


class PerformanceTrends(BaseModel):
    response_time: List[float] = Field(default_factory=list)
    error_rate: List[float] = Field(default_factory=list)


class ErrorEndpoint(BaseModel):
    endpoint: str
    error_count: int
    last_error: Optional[datetime] = None


class PerformanceReport(BaseModel):
    period_start: datetime
    period_end: datetime
    summary: PerformanceSummary
    trends: PerformanceTrends
    top_errors: List[ErrorEndpoint] = Field(default_factory=list)


CheckStatus = Literal["pass", "warning", "fail"]


class HealthCheckResult(BaseModel):
    name: str
    status: CheckStatus
    message: str
    value: Optional[float] = None
    severity: Literal["info", "warning", "critical"] = "info"


class SystemHealthResponse(BaseModel):
    overall_status: Literal["healthy", "warning", "critical"]
    checks: List[HealthCheckResult]
    checked_at: datetime


class JobLogRead(BaseModel):
    id: UUID
    job_name: str
    job_type: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    rows_processed: Optional[int] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))

    class Config:
        from_attributes = True


class JobConfigRead(BaseModel):
    id: UUID
    job_name: str
    job_type: str
    schedule_expression: str
    is_active: bool
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    failure_count: int
    max_failures: int
    timeout_seconds: int
    configuration: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class JobConfigUpdate(BaseModel):
    schedule_expression: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = Field(None)
    max_failures: Optional[int] = Field(None, ge=1)
    timeout_seconds: Optional[int] = Field(None, ge=1)
    configuration: Optional[Dict[str, Any]] = Field(None)


class JobsResponse(BaseModel):
    logs: List[JobLogRead]
    configs: List[JobConfigRead]
    count: int


class JobExecutionResult(BaseModel):
    job_name: str
    success: bool
    rows_processed: int = 0
    duration_seconds: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ServiceCheck(BaseModel):
    status: Literal["pass", "fail"]
    duration_ms: float
    message: Optional[str] = None


class ApiHealthResponse(BaseModel):
    """Payload of the public /api/health check."""
    status: Literal["healthy", "unhealthy"]
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: float
    checks: Dict[str, ServiceCheck]
