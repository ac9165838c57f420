from __future__ import annotations

import io
from datetime import date
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import OrgContext, get_org_context, get_org_session, require_org_roles
from src.core.errors import ErrorResponses
from src.core.features import is_feature_enabled
from src.schemas.common import MessageResponse
from src.schemas.reports import (
    DistributionListCreate,
    DistributionListRead,
    GenerateReportRequest,
    GenerateReportResponse,
    ReportCreate,
    ReportDetail,
    ReportListResponse,
    ReportRead,
    ReportStatus,
    ReportUpdate,
    SectionCreate,
    SectionRead,
    SectionUpdate,
    TemplateCreate,
    TemplateRead,
)
from src.services.reports import ReportsService

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)


# Templates and distribution lists are declared before /{report_id}.
# PUBLIC_INTERFACE
@router.get(
    "/templates",
    response_model=List[TemplateRead],
    summary="List report templates",
    description="Organization templates plus shared templates, default templates first.",
)
async def list_templates(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    template_type: Optional[str] = Query(None),
    active_only: bool = Query(True),
) -> List[TemplateRead]:
    rows = await ReportsService(session).list_templates(
        ctx.organization_id, template_type=template_type, active_only=active_only
    )
    return [TemplateRead.model_validate(t) for t in rows]


# PUBLIC_INTERFACE
@router.post(
    "/templates",
    response_model=TemplateRead,
    status_code=201,
    summary="Create report template",
)
async def create_template(
    payload: TemplateCreate,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> TemplateRead:
    template = await ReportsService(session).create_template(ctx.organization_id, payload, ctx.user_id)
    return TemplateRead.model_validate(template)


# PUBLIC_INTERFACE
@router.get(
    "/distribution-lists",
    response_model=List[DistributionListRead],
    summary="List distribution lists",
)
async def list_distribution_lists(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> List[DistributionListRead]:
    rows = await ReportsService(session).list_distribution_lists(ctx.organization_id)
    return [DistributionListRead.model_validate(d) for d in rows]


# PUBLIC_INTERFACE
@router.post(
    "/distribution-lists",
    response_model=DistributionListRead,
    status_code=201,
    summary="Create distribution list",
)
async def create_distribution_list(
    payload: DistributionListCreate,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> DistributionListRead:
    dist = await ReportsService(session).create_distribution_list(ctx.organization_id, payload)
    return DistributionListRead.model_validate(dist)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ReportListResponse,
    summary="List reports",
    description="Active reports ordered by period start (newest first).",
)
async def list_reports(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    report_type: Optional[str] = Query(None),
    status: Optional[ReportStatus] = Query(None),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
) -> ReportListResponse:
    rows = await ReportsService(session).list_reports(
        ctx.organization_id,
        report_type=report_type,
        status=status,
        period_start=period_start,
        period_end=period_end,
        limit=limit,
    )
    return ReportListResponse(data=[ReportRead.model_validate(r) for r in rows], count=len(rows))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ReportRead,
    status_code=201,
    summary="Create report",
    description="Create a draft report for a period. Requires owner, admin or manager.",
)
async def create_report(
    payload: ReportCreate,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> ReportRead:
    report = await ReportsService(session).create_report(ctx.organization_id, payload, ctx.user_id)
    return ReportRead.model_validate(report)


# PUBLIC_INTERFACE
@router.get("/{report_id}", response_model=ReportDetail, summary="Get report with sections")
async def get_report(
    report_id: UUID = Path(...),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> ReportDetail:
    report = await ReportsService(session).get_report(ctx.organization_id, report_id)
    return ReportDetail.model_validate(report)


# PUBLIC_INTERFACE
@router.patch(
    "/{report_id}",
    response_model=ReportDetail,
    summary="Update report",
    description="Status reviewed records the reviewer; status published sets published_at.",
)
async def update_report(
    payload: ReportUpdate,
    report_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> ReportDetail:
    report = await ReportsService(session).update_report(ctx.organization_id, report_id, payload, ctx.user_id)
    return ReportDetail.model_validate(report)


# PUBLIC_INTERFACE
@router.delete("/{report_id}", response_model=MessageResponse, summary="Delete report")
async def delete_report(
    report_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> MessageResponse:
    await ReportsService(session).delete_report(ctx.organization_id, report_id, ctx.user_id)
    return MessageResponse(message="Report deleted successfully")


# PUBLIC_INTERFACE
@router.post(
    "/{report_id}/sections",
    response_model=SectionRead,
    status_code=201,
    summary="Add report section",
)
async def add_section(
    payload: SectionCreate,
    report_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> SectionRead:
    section = await ReportsService(session).add_section(ctx.organization_id, report_id, payload)
    return SectionRead.model_validate(section)


# PUBLIC_INTERFACE
@router.patch(
    "/{report_id}/sections/{section_id}",
    response_model=SectionRead,
    summary="Update report section",
)
async def update_section(
    payload: SectionUpdate,
    report_id: UUID = Path(...),
    section_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> SectionRead:
    section = await ReportsService(session).update_section(ctx.organization_id, report_id, section_id, payload)
    return SectionRead.model_validate(section)


# PUBLIC_INTERFACE
@router.delete(
    "/{report_id}/sections/{section_id}",
    response_model=MessageResponse,
    summary="Delete report section",
)
async def delete_section(
    report_id: UUID = Path(...),
    section_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> MessageResponse:
    await ReportsService(session).delete_section(ctx.organization_id, report_id, section_id)
    return MessageResponse(message="Section deleted successfully")


# PUBLIC_INTERFACE
@router.post(
    "/{report_id}/generate",
    response_model=GenerateReportResponse,
    summary="Generate report content",
    description=(
        "Build the executive summary and sections from dashboard data. Existing content is reused unless "
        "force_regenerate is set. A non-json export_format also renders the export and reports its size."
    ),
)
async def generate_report(
    report_id: UUID = Path(...),
    payload: Optional[GenerateReportRequest] = Body(None),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> GenerateReportResponse:
    payload = payload or GenerateReportRequest()
    return await ReportsService(session).generate_report(ctx.organization_id, report_id, payload, ctx.user_id)


# PUBLIC_INTERFACE
@router.get(
    "/{report_id}/export",
    summary="Export report",
    description="Download the report as PDF, Excel, CSV or HTML. Requires the data_export feature.",
    response_description="File stream",
)
async def export_report(
    report_id: UUID = Path(...),
    format: Literal["pdf", "excel", "xlsx", "csv", "html"] = Query("pdf", description="Export format"),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> StreamingResponse:
    if not is_feature_enabled("data_export", str(ctx.user_id)):
        raise ErrorResponses.forbidden("Data export is not enabled", code="FEATURE_DISABLED")
    exported = await ReportsService(session).export_report(ctx.organization_id, report_id, format)
    headers = {"Content-Disposition": f'attachment; filename="{exported.filename}"'}
    return StreamingResponse(io.BytesIO(exported.content), media_type=exported.media_type, headers=headers)
