from __future__ import annotations

from datetime import date
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import selectinload

from src.db.models.reports import ReportDistributionList, ReportSection, ReportTemplate, WeeklyReport
from .base import BaseRepository


class ReportRepository(BaseRepository):
    """Weekly reports, sections, templates and distribution lists."""

    # Reports
    async def list_reports(
        self,
        organization_id: UUID,
        *,
        report_type: Optional[str] = None,
        status: Optional[str] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        limit: int = 50,
    ) -> List[WeeklyReport]:
        stmt = select(WeeklyReport).where(
            WeeklyReport.organization_id == organization_id,
            WeeklyReport.is_active.is_(True),
        )
        if report_type:
            stmt = stmt.where(WeeklyReport.report_type == report_type)
        if status:
            stmt = stmt.where(WeeklyReport.status == status)
        if period_start:
            stmt = stmt.where(WeeklyReport.report_period_start >= period_start)
        if period_end:
            stmt = stmt.where(WeeklyReport.report_period_end <= period_end)
        stmt = stmt.order_by(WeeklyReport.report_period_start.desc()).limit(limit)
        return list(await self.scalars(stmt))

    async def get_report(
        self, organization_id: UUID, report_id: UUID, *, with_sections: bool = False
    ) -> Optional[WeeklyReport]:
        stmt = select(WeeklyReport).where(
            WeeklyReport.id == report_id,
            WeeklyReport.organization_id == organization_id,
            WeeklyReport.is_active.is_(True),
        )
        if with_sections:
            stmt = stmt.options(selectinload(WeeklyReport.sections)).execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def find_report_for_period(
        self, organization_id: UUID, period_start: date, report_type: str
    ) -> Optional[WeeklyReport]:
        stmt = select(WeeklyReport).where(
            WeeklyReport.organization_id == organization_id,
            WeeklyReport.report_period_start == period_start,
            WeeklyReport.report_type == report_type,
            WeeklyReport.is_active.is_(True),
        )
        return (await self.scalars(stmt)).first()

    async def create_report(self, organization_id: UUID, **values: Any) -> WeeklyReport:
        report = WeeklyReport(organization_id=organization_id, **values)
        await self.add(report)
        await self.flush()
        return report

    # Sections
    async def list_sections(self, report_id: UUID) -> List[ReportSection]:
        stmt = select(ReportSection).where(ReportSection.report_id == report_id).order_by(ReportSection.section_order)
        return list(await self.scalars(stmt))

    async def get_section(self, report_id: UUID, section_id: UUID) -> Optional[ReportSection]:
        stmt = select(ReportSection).where(ReportSection.id == section_id, ReportSection.report_id == report_id)
        return await self.scalar_one_or_none(stmt)

    async def add_section(self, report_id: UUID, **values: Any) -> ReportSection:
        section = ReportSection(report_id=report_id, **values)
        await self.add(section)
        await self.flush()
        return section

    async def delete_sections(self, report_id: UUID) -> None:
        await self.execute(delete(ReportSection).where(ReportSection.report_id == report_id))

    # Templates
    async def list_templates(
        self,
        organization_id: UUID,
        *,
        template_type: Optional[str] = None,
        active_only: bool = True,
    ) -> List[ReportTemplate]:
        stmt = select(ReportTemplate).where(
            or_(ReportTemplate.organization_id == organization_id, ReportTemplate.organization_id.is_(None))
        )
        if template_type:
            stmt = stmt.where(ReportTemplate.template_type == template_type)
        if active_only:
            stmt = stmt.where(ReportTemplate.is_active.is_(True))
        stmt = stmt.order_by(ReportTemplate.is_default.desc(), ReportTemplate.name)
        return list(await self.scalars(stmt))

    async def get_template(self, organization_id: UUID, template_id: UUID) -> Optional[ReportTemplate]:
        stmt = select(ReportTemplate).where(
            ReportTemplate.id == template_id,
            or_(ReportTemplate.organization_id == organization_id, ReportTemplate.organization_id.is_(None)),
        )
        return await self.scalar_one_or_none(stmt)

    async def create_template(self, **values: Any) -> ReportTemplate:
        template = ReportTemplate(**values)
        await self.add(template)
        await self.flush()
        return template

    # Distribution lists
    async def list_distribution_lists(self, organization_id: UUID, *, active_only: bool = True) -> List[ReportDistributionList]:
        stmt = select(ReportDistributionList).where(ReportDistributionList.organization_id == organization_id)
        if active_only:
            stmt = stmt.where(ReportDistributionList.is_active.is_(True))
        stmt = stmt.order_by(ReportDistributionList.list_name)
        return list(await self.scalars(stmt))

    async def create_distribution_list(self, organization_id: UUID, **values: Any) -> ReportDistributionList:
        dist = ReportDistributionList(organization_id=organization_id, **values)
        await self.add(dist)
        await self.flush()
        return dist
