from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select

from src.db.models.assessments import (
    Assessment,
    AssessmentAssignment,
    AssessmentSubmission,
    OceanAssessmentResult,
)
from .base import BaseRepository


class AssessmentRepository(BaseRepository):
    """Assessments, assignments, submissions and OCEAN results."""

    async def list_assessments(
        self,
        organization_id: UUID,
        *,
        status: Optional[str],
        assigned_user_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> Tuple[List[Assessment], int]:
        stmt = select(Assessment).where(Assessment.organization_id == organization_id)
        if status:
            stmt = stmt.where(Assessment.status == status)
        if assigned_user_id:
            assigned = select(AssessmentAssignment.assessment_id).where(
                AssessmentAssignment.user_id == assigned_user_id
            )
            stmt = stmt.where(Assessment.id.in_(assigned))
        total = await self.count(stmt)
        stmt = stmt.order_by(Assessment.created_at.desc()).offset(offset).limit(limit)
        return list(await self.scalars(stmt)), total

    async def get_assessment(self, organization_id: UUID, assessment_id: UUID) -> Optional[Assessment]:
        stmt = select(Assessment).where(
            Assessment.id == assessment_id, Assessment.organization_id == organization_id
        )
        return await self.scalar_one_or_none(stmt)

    async def list_assignments(self, assessment_ids: List[UUID]) -> List[AssessmentAssignment]:
        if not assessment_ids:
            return []
        stmt = (
            select(AssessmentAssignment)
            .where(AssessmentAssignment.assessment_id.in_(assessment_ids))
            .order_by(AssessmentAssignment.assigned_at)
        )
        return list(await self.scalars(stmt))

    async def get_assignment(self, assessment_id: UUID, user_id: UUID) -> Optional[AssessmentAssignment]:
        stmt = select(AssessmentAssignment).where(
            AssessmentAssignment.assessment_id == assessment_id,
            AssessmentAssignment.user_id == user_id,
        )
        return await self.scalar_one_or_none(stmt)

    async def latest_submission(self, assessment_id: UUID, user_id: UUID) -> Optional[AssessmentSubmission]:
        stmt = (
            select(AssessmentSubmission)
            .where(AssessmentSubmission.assessment_id == assessment_id, AssessmentSubmission.user_id == user_id)
            .order_by(AssessmentSubmission.created_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def ocean_result_for_submission(self, submission_id: UUID) -> Optional[OceanAssessmentResult]:
        stmt = select(OceanAssessmentResult).where(OceanAssessmentResult.assessment_submission_id == submission_id)
        return await self.scalar_one_or_none(stmt)
