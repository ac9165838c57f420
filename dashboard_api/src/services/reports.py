from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ErrorResponses
from src.db.base import utcnow
from src.db.models.reports import ReportDistributionList, ReportSection, ReportTemplate, WeeklyReport
from src.repositories.reports import ReportRepository
from src.schemas.reports import (
    DistributionListCreate,
    GenerateReportRequest,
    GenerateReportResponse,
    ReportCreate,
    ReportDetail,
    ReportUpdate,
    SectionCreate,
    SectionUpdate,
    TemplateCreate,
)
from src.services.base import BaseService
from src.services.exporter import ExportedFile
from src.services.report_generator import ReportGenerator

logger = logging.getLogger(__name__)


class ReportsService(BaseService):
    """Weekly reports with sections, templates, distribution lists, generation and export."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ReportRepository(session)

    async def _get_or_404(self, organization_id: UUID, report_id: UUID, *, with_sections: bool = False) -> WeeklyReport:
        report = await self.repo.get_report(organization_id, report_id, with_sections=with_sections)
        if report is None:
            raise ErrorResponses.not_found("Report not found", code="REPORT_NOT_FOUND")
        return report

    async def _owned_report(self, organization_id: UUID, report_id: UUID) -> WeeklyReport:
        report = await self.repo.get_report(organization_id, report_id)
        if report is None:
            raise ErrorResponses.not_found("Report not found or access denied", code="REPORT_NOT_FOUND")
        return report

    # PUBLIC_INTERFACE
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
        return await self.repo.list_reports(
            organization_id,
            report_type=report_type,
            status=status,
            period_start=period_start,
            period_end=period_end,
            limit=limit,
        )

    # PUBLIC_INTERFACE
    async def create_report(self, organization_id: UUID, payload: ReportCreate, created_by: UUID) -> WeeklyReport:
        """Create a draft report owned by the caller."""
        report = await self.repo.create_report(
            organization_id,
            report_period_start=payload.report_period_start,
            report_period_end=payload.report_period_end,
            title=payload.title,
            report_type=payload.report_type,
            template_id=payload.template_id,
            metadata_=payload.metadata,
            status="draft",
            generated_by=created_by,
        )
        await self.log_analytics_event(
            "report_created", organization_id, created_by, {"report_id": str(report.id), "report_type": report.report_type}
        )
        await self.repo.commit()
        return report

    # PUBLIC_INTERFACE
    async def get_report(self, organization_id: UUID, report_id: UUID) -> WeeklyReport:
        return await self._get_or_404(organization_id, report_id, with_sections=True)

    # PUBLIC_INTERFACE
    async def update_report(
        self, organization_id: UUID, report_id: UUID, payload: ReportUpdate, updated_by: UUID
    ) -> WeeklyReport:
        """Apply changes; status reviewed records the reviewer, status published stamps published_at."""
        report = await self._get_or_404(organization_id, report_id)
        changes = payload.model_dump(exclude_unset=True)
        for field_name in ("title", "executive_summary", "status"):
            if field_name in changes:
                setattr(report, field_name, changes[field_name])
        if changes.get("metadata") is not None:
            report.metadata_ = changes["metadata"]
        if changes.get("status") == "reviewed":
            report.reviewed_by = updated_by
        elif changes.get("status") == "published":
            report.published_at = utcnow()
        await self.repo.commit()
        return await self._get_or_404(organization_id, report_id, with_sections=True)

    # PUBLIC_INTERFACE
    async def delete_report(self, organization_id: UUID, report_id: UUID, deleted_by: UUID) -> None:
        report = await self._get_or_404(organization_id, report_id)
        report.is_active = False
        await self.log_analytics_event("report_deleted", organization_id, deleted_by, {"report_id": str(report_id)})
        await self.repo.commit()

    # Sections
    # PUBLIC_INTERFACE
    async def add_section(self, organization_id: UUID, report_id: UUID, payload: SectionCreate) -> ReportSection:
        await self._owned_report(organization_id, report_id)
        section = await self.repo.add_section(report_id, **payload.model_dump())
        await self.repo.commit()
        return section

    # PUBLIC_INTERFACE
    async def update_section(
        self, organization_id: UUID, report_id: UUID, section_id: UUID, payload: SectionUpdate
    ) -> ReportSection:
        await self._owned_report(organization_id, report_id)
        section = await self.repo.get_section(report_id, section_id)
        if section is None:
            raise ErrorResponses.not_found("Section not found", code="SECTION_NOT_FOUND")
        for field_name, value in payload.model_dump(exclude_unset=True).items():
            setattr(section, field_name, value)
        await self.repo.commit()
        return section

    # PUBLIC_INTERFACE
    async def delete_section(self, organization_id: UUID, report_id: UUID, section_id: UUID) -> None:
        await self._owned_report(organization_id, report_id)
        section = await self.repo.get_section(report_id, section_id)
        if section is None:
            raise ErrorResponses.not_found("Section not found", code="SECTION_NOT_FOUND")
        await self.repo.delete(section)
        await self.repo.commit()

    # Templates
    # PUBLIC_INTERFACE
    async def list_templates(
        self, organization_id: UUID, *, template_type: Optional[str] = None, active_only: bool = True
    ) -> List[ReportTemplate]:
        return await self.repo.list_templates(organization_id, template_type=template_type, active_only=active_only)

    # PUBLIC_INTERFACE
    async def create_template(self, organization_id: UUID, payload: TemplateCreate, created_by: UUID) -> ReportTemplate:
        template = await self.repo.create_template(organization_id=organization_id, created_by=created_by, **payload.model_dump())
        await self.repo.commit()
        return template

    # Distribution lists
    # PUBLIC_INTERFACE
    async def list_distribution_lists(self, organization_id: UUID) -> List[ReportDistributionList]:
        return await self.repo.list_distribution_lists(organization_id)

    # PUBLIC_INTERFACE
    async def create_distribution_list(
        self, organization_id: UUID, payload: DistributionListCreate
    ) -> ReportDistributionList:
        values = payload.model_dump()
        values["recipient_emails"] = [str(e).lower() for e in payload.recipient_emails]
        dist = await self.repo.create_distribution_list(organization_id, **values)
        await self.repo.commit()
        return dist

    # Generation and export
    # PUBLIC_INTERFACE
    async def generate_report(
        self, organization_id: UUID, report_id: UUID, payload: GenerateReportRequest, user_id: UUID
    ) -> GenerateReportResponse:
        report, regenerated, export = await ReportGenerator(self.session).generate(
            organization_id,
            report_id,
            force_regenerate=payload.force_regenerate,
            export_format=payload.export_format,
            template_id=payload.template_id,
        )
        await self.log_analytics_event(
            "report_generated",
            organization_id,
            user_id,
            {"report_id": str(report_id), "regenerated": regenerated, "export_format": payload.export_format},
        )
        await self.repo.commit()
        return GenerateReportResponse(
            report=ReportDetail.model_validate(report),
            regenerated=regenerated,
            export_format=payload.export_format,
            export_size_bytes=len(export.content) if export is not None else None,
        )

    # PUBLIC_INTERFACE
    async def export_report(self, organization_id: UUID, report_id: UUID, export_format: str) -> ExportedFile:
        """Render the stored report content; the report is not regenerated."""
        report = await self._get_or_404(organization_id, report_id, with_sections=True)
        logger.info("Exporting report %s as %s", report_id, export_format)
        return ReportGenerator(self.session).export(report, export_format)
