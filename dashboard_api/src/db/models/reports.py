from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, Time, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, JSONType, OrganizationMixin, TimestampMixin, UUIDPkMixin

REPORT_STATUSES = ("draft", "generated", "reviewed", "published", "archived")


class WeeklyReport(UUIDPkMixin, OrganizationMixin, TimestampMixin, Base):
    """Periodic organization report; content lives in report_sections."""
    __tablename__ = "weekly_reports"

    report_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    report_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    report_type: Mapped[str] = mapped_column(String(50), nullable=False, default="standard", server_default="standard")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    executive_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", server_default="draft")
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("report_templates.id", ondelete="SET NULL"), nullable=True)
    generated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    sections: Mapped[list["ReportSection"]] = relationship(
        "ReportSection",
        back_populates="report",
        order_by="ReportSection.section_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ReportSection(UUIDPkMixin, TimestampMixin, Base):
    """Ordered section of a report with text, chart, table and insight payloads."""
    __tablename__ = "report_sections"

    report_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("weekly_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    section_type: Mapped[str] = mapped_column(String(50), nullable=False)
    section_title: Mapped[str] = mapped_column(String(255), nullable=False)
    section_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    charts_data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    tables_data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    insights: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    report: Mapped["WeeklyReport"] = relationship("WeeklyReport", back_populates="sections")


class ReportTemplate(UUIDPkMixin, TimestampMixin, Base):
    """Section layout for generated reports. organization_id NULL marks a shared template."""
    __tablename__ = "report_templates"

    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    template_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_audience: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sections_config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    styling_config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    export_formats: Mapped[str] = mapped_column(String(100), nullable=False, default="pdf,excel", server_default="pdf,excel")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class ReportDistributionList(UUIDPkMixin, OrganizationMixin, TimestampMixin, Base):
    """Recipients and schedule for report delivery."""
    __tablename__ = "report_distribution_lists"

    list_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recipient_emails: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    recipient_roles: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    distribution_schedule: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    schedule_day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    schedule_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
