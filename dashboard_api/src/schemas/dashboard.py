from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

MetricType = Literal["user_engagement", "assessment_completion", "ocean_scores", "business_kpis"]


class MetricRead(BaseModel):
    """Dashboard metric read model."""
    id: UUID
    organization_id: UUID
    metric_type: str
    metric_name: str
    metric_value: float
    metric_unit: Optional[str] = None
    dimension_1: Optional[str] = None
    dimension_2: Optional[str] = None
    dimension_3: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    calculation_method: Optional[str] = None
    data_source: Optional[str] = None
    recorded_at: datetime

    class Config:
        from_attributes = True


class MetricListResponse(BaseModel):
    data: List[MetricRead]
    count: int


class MetricCreate(BaseModel):
    """Record a metric value."""
    metric_type: str = Field(..., min_length=1, max_length=50)
    metric_name: str = Field(..., min_length=1, max_length=100)
    metric_value: float = Field(...)
    metric_unit: Optional[str] = Field(None, max_length=20)
    dimension_1: Optional[str] = Field(None, max_length=100)
    dimension_2: Optional[str] = Field(None, max_length=100)
    dimension_3: Optional[str] = Field(None, max_length=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    calculation_method: Optional[str] = Field(None)
    data_source: Optional[str] = Field(None, max_length=50)


class CalculateMetricsRequest(BaseModel):
    metric_type: Optional[MetricType] = Field(None, description="Only calculate this metric type")
    period_start: Optional[datetime] = Field(None, description="Defaults to 7 days before period_end")
    period_end: Optional[datetime] = Field(None, description="Defaults to now")


class CalculatedMetric(BaseModel):
    metric_type: str
    metric_name: str
    metric_value: float
    metric_unit: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CalculateMetricsResponse(BaseModel):
    organization_id: UUID
    period_start: datetime
    period_end: datetime
    metrics: List[CalculatedMetric]


class UserStats(BaseModel):
    total_users: int
    active_users: int
    engagement_rate: float


class AssessmentStats(BaseModel):
    total_assessments: int
    completed_assessments: int
    recent_assessments: int
    completion_rate: float


class ActivityStats(BaseModel):
    total_activities: int
    active_users_period: int
    avg_session_duration: float


class LatestMetric(BaseModel):
    type: str
    name: str
    value: float
    unit: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DashboardSummary(BaseModel):
    organization_id: UUID
    period_start: datetime
    period_end: datetime
    user_stats: UserStats
    assessment_stats: AssessmentStats
    activity_stats: ActivityStats
    latest_metrics: List[LatestMetric] = Field(default_factory=list)


class RealtimeData(BaseModel):
    organization_id: UUID
    timestamp: datetime
    active_users_15min: int
    active_users_today: int
    activities_last_hour: int
    assessments_started_hour: int
    assessments_completed_hour: int
    avg_response_time_ms: float
    current_error_rate: float
    system_status: Literal["healthy", "warning", "degraded"]


class TrendPoint(BaseModel):
    week_start: date
    value: float
    data_points: int
    previous_value: Optional[float] = None
    change_percentage: float


class TrendResponse(BaseModel):
    metric_type: str
    metric_name: str
    organization_id: UUID
    periods_analyzed: int
    trends: List[TrendPoint]
    overall_trend: Literal["insufficient_data", "positive", "negative", "stable"]


class AggregationRead(BaseModel):
    id: UUID
    aggregation_type: str
    aggregation_key: str
    period_start: date
    period_end: date
    total_assessments: int
    completed_assessments: int
    ocean_scores: Dict[str, Any] = Field(default_factory=dict)
    facet_scores: Dict[str, Any] = Field(default_factory=dict)
    calculated_at: datetime

    class Config:
        from_attributes = True


class GenerateAggregationsRequest(BaseModel):
    period_start: Optional[date] = Field(None, description="Defaults to 7 days before period_end")
    period_end: Optional[date] = Field(None, description="Defaults to today")


class GenerateAggregationsResponse(BaseModel):
    organization_id: UUID
    period_start: date
    period_end: date
    rows_created: int


class ActivityRead(BaseModel):
    id: UUID
    user_id: UUID
    activity_type: str
    activity_subtype: Optional[str] = None
    page_path: Optional[str] = None
    session_id: Optional[str] = None
    duration_seconds: Optional[int] = None
    interactions_count: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    recorded_at: datetime

    class Config:
        from_attributes = True


class ActivityCreate(BaseModel):
    """Track an activity for the calling user."""
    activity_type: str = Field(..., min_length=1, max_length=50)
    activity_subtype: Optional[str] = Field(None, max_length=50)
    page_path: Optional[str] = Field(None, max_length=255)
    session_id: Optional[str] = Field(None, max_length=100)
    duration_seconds: Optional[int] = Field(None, ge=0)
    interactions_count: int = Field(0, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MetricHistoryRead(BaseModel):
    id: UUID
    metric_id: Optional[UUID] = None
    metric_type: str
    metric_name: str
    previous_value: Optional[float] = None
    current_value: float
    change_value: Optional[float] = None
    change_percentage: Optional[float] = None
    change_type: Optional[str] = None
    period_start: datetime
    period_end: datetime
    calculation_context: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
