from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, JSONType, OrganizationMixin, TimestampMixin, UUIDPkMixin, utcnow

_Decimal = Numeric(15, 4, asdecimal=False)


class DashboardMetric(UUIDPkMixin, OrganizationMixin, TimestampMixin, Base):
    """A recorded metric value (user_engagement, assessment_completion, ocean_scores, business_kpis)."""
    __tablename__ = "dashboard_metrics"
    __table_args__ = (
        Index("ix_dashboard_metrics_org_type_recorded", "organization_id", "metric_type", "recorded_at"),
    )

    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    metric_value: Mapped[float] = mapped_column(_Decimal, nullable=False)
    metric_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    dimension_1: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    dimension_2: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    dimension_3: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    calculation_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class MetricsHistory(UUIDPkMixin, OrganizationMixin, Base):
    """Archived metric values and period-over-period changes."""
    __tablename__ = "metrics_history"

    metric_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_value: Mapped[Optional[float]] = mapped_column(_Decimal, nullable=True)
    current_value: Mapped[float] = mapped_column(_Decimal, nullable=False)
    change_value: Mapped[Optional[float]] = mapped_column(_Decimal, nullable=True)
    change_percentage: Mapped[Optional[float]] = mapped_column(Numeric(8, 4, asdecimal=False), nullable=True)
    change_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    calculation_context: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class UserActivityLog(UUIDPkMixin, OrganizationMixin, Base):
    """User activity used for engagement analytics (login, dashboard_view, assessment_start, ...)."""
    __tablename__ = "user_activity_logs"
    __table_args__ = (
        Index("ix_user_activity_logs_org_recorded", "organization_id", "recorded_at"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    activity_subtype: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    page_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    interactions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class AssessmentAggregation(UUIDPkMixin, OrganizationMixin, Base):
    """Pre-calculated per-department / per-role assessment statistics for a period."""
    __tablename__ = "assessment_aggregations"

    aggregation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    aggregation_key: Mapped[str] = mapped_column(String(100), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_assessments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_assessments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ocean_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    facet_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
