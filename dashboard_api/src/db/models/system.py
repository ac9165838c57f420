from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, JSONType, TimestampMixin, UUIDPkMixin, utcnow


class SystemPerformanceMetric(UUIDPkMixin, Base):
    """Service-level measurement (response_time, error_rate, throughput, resource_usage)."""
    __tablename__ = "system_performance_metrics"
    __table_args__ = (
        Index("ix_system_performance_metrics_type_recorded", "metric_type", "recorded_at"),
    )

    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(100), nullable=False)
    metric_value: Mapped[float] = mapped_column(Numeric(15, 4, asdecimal=False), nullable=False)
    metric_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    service_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    endpoint: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ScheduledJobLog(UUIDPkMixin, Base):
    """One execution of a maintenance job."""
    __tablename__ = "scheduled_job_logs"
    __table_args__ = (
        Index("ix_scheduled_job_logs_name_started", "job_name", "started_at"),
    )

    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", server_default="running")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rows_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ScheduledJobConfig(UUIDPkMixin, TimestampMixin, Base):
    """Schedule and limits for a named job."""
    __tablename__ = "scheduled_job_config"

    job_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    schedule_expression: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=3, server_default="3")
    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=300, server_default="300")
    configuration: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
