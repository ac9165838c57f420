from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import OrgContext, get_org_context, get_org_session, require_org_roles
from src.schemas.assessments import (
    AssessmentCreate,
    AssessmentListResponse,
    AssessmentRead,
    AssessmentResultsResponse,
    AssessmentStatus,
    AssessmentUpdate,
    SubmitAssessmentRequest,
    SubmitAssessmentResponse,
)
from src.schemas.common import MessageResponse
from src.services.assessments import AssessmentService

router = APIRouter(prefix="/assessments", tags=["Assessments"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=AssessmentListResponse,
    summary="List assessments",
    description="Assessments of the organization, newest first. user_id keeps only assessments assigned to that user.",
)
async def list_assessments(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    status: Optional[AssessmentStatus] = Query(None),
    user_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> AssessmentListResponse:
    return await AssessmentService(session).list_assessments(
        ctx.organization_id, status=status, user_id=user_id, page=page, limit=limit
    )


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=AssessmentRead,
    status_code=201,
    summary="Create assessment",
    description="Create an active assessment with questions and assignments. Requires owner, admin or manager.",
)
async def create_assessment(
    payload: AssessmentCreate,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> AssessmentRead:
    return await AssessmentService(session).create_assessment(ctx, payload)


# PUBLIC_INTERFACE
@router.get("/{assessment_id}", response_model=AssessmentRead, summary="Get assessment")
async def get_assessment(
    assessment_id: UUID = Path(...),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> AssessmentRead:
    return await AssessmentService(session).get_assessment(ctx, assessment_id)


# PUBLIC_INTERFACE
@router.patch(
    "/{assessment_id}",
    response_model=AssessmentRead,
    summary="Update assessment",
    description="Completed assessments cannot be changed.",
)
async def update_assessment(
    payload: AssessmentUpdate,
    assessment_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin", "manager")),
    session: AsyncSession = Depends(get_org_session),
) -> AssessmentRead:
    return await AssessmentService(session).update_assessment(ctx, assessment_id, payload)


# PUBLIC_INTERFACE
@router.delete(
    "/{assessment_id}",
    response_model=MessageResponse,
    summary="Archive assessment",
)
async def delete_assessment(
    assessment_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> MessageResponse:
    await AssessmentService(session).delete_assessment(ctx, assessment_id)
    return MessageResponse(message="Assessment archived successfully")


# PUBLIC_INTERFACE
@router.post(
    "/{assessment_id}/submit",
    response_model=SubmitAssessmentResponse,
    summary="Submit assessment",
    description="Score and store the caller's responses for an assigned assessment.",
)
async def submit_assessment(
    payload: SubmitAssessmentRequest,
    assessment_id: UUID = Path(...),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> SubmitAssessmentResponse:
    return await AssessmentService(session).submit_assessment(ctx, assessment_id, payload)


# PUBLIC_INTERFACE
@router.get(
    "/{assessment_id}/results",
    response_model=AssessmentResultsResponse,
    summary="Assessment results",
    description="The caller's latest submission with OCEAN trait scores when available.",
)
async def get_results(
    assessment_id: UUID = Path(...),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> AssessmentResultsResponse:
    return await AssessmentService(session).get_results(ctx, assessment_id)
