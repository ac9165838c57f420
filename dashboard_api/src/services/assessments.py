from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import OrgContext
from src.core.errors import ErrorResponses
from src.db.base import as_utc, utcnow
from src.db.models.assessments import Assessment, AssessmentAssignment, AssessmentSubmission, OceanAssessmentResult
from src.repositories.assessments import AssessmentRepository
from src.repositories.dashboard import DashboardRepository
from src.schemas.assessments import (
    AssessmentCreate,
    AssessmentListResponse,
    AssessmentRead,
    AssessmentResultsResponse,
    AssessmentUpdate,
    AssignmentRead,
    OceanScores,
    SubmissionRead,
    SubmitAssessmentRequest,
    SubmitAssessmentResponse,
)
from src.schemas.common import PaginationMeta
from src.services.base import BaseService
from src.services.realtime import realtime_manager

logger = logging.getLogger(__name__)


def calculate_score(responses: Sequence[Dict[str, Any]], questions: Sequence[Dict[str, Any]]) -> float:
    """Percentage of questions whose response value equals the question's correct_answer (0 when no questions)."""
    if not questions:
        return 0.0
    by_question = {str(r.get("question_id")): r.get("value") for r in responses}
    correct = 0
    for question in questions:
        expected = question.get("correct_answer")
        if expected is None:
            continue
        if str(question.get("id")) in by_question and by_question[str(question.get("id"))] == expected:
            correct += 1
    return round(correct / len(questions) * 100, 2)


class AssessmentService(BaseService):
    """Assessment lifecycle: create, assign, submit, score and archive."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = AssessmentRepository(session)

    async def _to_read(self, assessment: Assessment, assignments: Optional[List[AssessmentAssignment]] = None) -> AssessmentRead:
        if assignments is None:
            assignments = await self.repo.list_assignments([assessment.id])
        read = AssessmentRead.model_validate(assessment)
        read.assignments = [AssignmentRead.model_validate(a) for a in assignments]
        return read

    async def _get_or_404(self, organization_id: UUID, assessment_id: UUID) -> Assessment:
        assessment = await self.repo.get_assessment(organization_id, assessment_id)
        if assessment is None:
            raise ErrorResponses.not_found("Assessment not found", code="ASSESSMENT_NOT_FOUND")
        return assessment

    # PUBLIC_INTERFACE
    async def list_assessments(
        self,
        organization_id: UUID,
        *,
        status: Optional[str] = None,
        user_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AssessmentListResponse:
        """Assessments of the organization, newest first; user_id keeps only those assigned to that user."""
        items, total = await self.repo.list_assessments(
            organization_id,
            status=status,
            assigned_user_id=user_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        assignments = await self.repo.list_assignments([a.id for a in items])
        by_assessment: Dict[UUID, List[AssessmentAssignment]] = {}
        for assignment in assignments:
            by_assessment.setdefault(assignment.assessment_id, []).append(assignment)
        reads = [await self._to_read(a, by_assessment.get(a.id, [])) for a in items]
        return AssessmentListResponse(assessments=reads, pagination=PaginationMeta.build(page, limit, total))

    # PUBLIC_INTERFACE
    async def get_assessment(self, actor: OrgContext, assessment_id: UUID) -> AssessmentRead:
        """Owners/admins see every assessment of the organization; other members only assigned ones."""
        assessment = await self._get_or_404(actor.organization_id, assessment_id)
        if actor.role not in ("owner", "admin"):
            if await self.repo.get_assignment(assessment_id, actor.user_id) is None:
                raise ErrorResponses.forbidden("Access denied", code="ACCESS_DENIED")
        return await self._to_read(assessment)

    # PUBLIC_INTERFACE
    async def create_assessment(self, actor: OrgContext, payload: AssessmentCreate) -> AssessmentRead:
        assessment = Assessment(
            organization_id=actor.organization_id,
            title=payload.title,
            description=payload.description,
            type=payload.type,
            status="active",
            questions=[q.model_dump(mode="json") for q in payload.questions],
            settings=payload.settings.model_dump(),
            due_date=payload.due_date,
            user_id=payload.user_id,
            created_by=actor.user_id,
        )
        await self.repo.add(assessment)
        await self.repo.flush()
        assignments = [AssessmentAssignment(assessment_id=assessment.id, user_id=uid) for uid in dict.fromkeys(payload.assignments)]
        await self.repo.add_all(assignments)
        await self.repo.flush()
        await self.log_analytics_event(
            "assessment_created",
            actor.organization_id,
            actor.user_id,
            {
                "assessment_id": str(assessment.id),
                "type": assessment.type,
                "question_count": len(payload.questions),
                "assignment_count": len(assignments),
            },
        )
        await self.repo.commit()
        return await self._to_read(assessment, assignments)

    # PUBLIC_INTERFACE
    async def update_assessment(self, actor: OrgContext, assessment_id: UUID, payload: AssessmentUpdate) -> AssessmentRead:
        assessment = await self._get_or_404(actor.organization_id, assessment_id)
        if assessment.status == "completed":
            raise ErrorResponses.bad_request("Cannot update completed assessment", code="ASSESSMENT_COMPLETED")
        changes = payload.model_dump(exclude_unset=True, mode="json")
        for field_name in ("title", "description", "status", "questions", "settings"):
            if field_name in changes:
                setattr(assessment, field_name, changes[field_name])
        if "due_date" in changes:
            assessment.due_date = payload.due_date
        if changes.get("status") == "completed":
            assessment.completed_at = utcnow()
        await self.log_analytics_event(
            "assessment_updated",
            actor.organization_id,
            actor.user_id,
            {"assessment_id": str(assessment_id), "updated_fields": sorted(changes)},
        )
        await self.repo.commit()
        return await self._to_read(assessment)

    # PUBLIC_INTERFACE
    async def submit_assessment(
        self, actor: OrgContext, assessment_id: UUID, payload: SubmitAssessmentRequest
    ) -> SubmitAssessmentResponse:
        """
        Score and store a submission for the calling user.

        Raises:
            ApiError: 403 NOT_ASSIGNED, 400 ALREADY_COMPLETED, 400 MAX_ATTEMPTS_EXCEEDED.
        """
        assessment = await self._get_or_404(actor.organization_id, assessment_id)
        assignment = await self.repo.get_assignment(assessment_id, actor.user_id)
        if assignment is None:
            raise ErrorResponses.forbidden("User not assigned to this assessment", code="NOT_ASSIGNED")
        if assignment.completed_at is not None:
            raise ErrorResponses.bad_request("Assessment already completed", code="ALREADY_COMPLETED")
        max_attempts = int((assessment.settings or {}).get("max_attempts") or 1)
        if assignment.attempts >= max_attempts:
            raise ErrorResponses.bad_request("Maximum attempts exceeded", code="MAX_ATTEMPTS_EXCEEDED")

        responses = [r.model_dump(mode="json") for r in payload.responses]
        score = calculate_score(responses, assessment.questions or [])
        now = utcnow()
        time_taken = None
        if payload.started_at is not None:
            time_taken = max(0, int((now - as_utc(payload.started_at)).total_seconds()))

        submission = AssessmentSubmission(
            assessment_id=assessment_id,
            user_id=actor.user_id,
            responses=responses,
            score=score,
            status="completed",
            ocean_trait_scores=payload.ocean_scores.model_dump() if payload.ocean_scores else {},
            started_at=payload.started_at,
            completed_at=now,
            time_taken_seconds=time_taken,
        )
        await self.repo.add(submission)
        await self.repo.flush()

        if payload.ocean_scores is not None:
            traits = payload.ocean_scores
            await self.repo.add(
                OceanAssessmentResult(
                    organization_id=actor.organization_id,
                    assessment_id=assessment_id,
                    assessment_submission_id=submission.id,
                    user_id=actor.user_id,
                    openness_score=traits.openness,
                    conscientiousness_score=traits.conscientiousness,
                    extraversion_score=traits.extraversion,
                    agreeableness_score=traits.agreeableness,
                    neuroticism_score=traits.neuroticism,
                )
            )

        assignment.completed_at = now
        assignment.score = score
        assignment.attempts = assignment.attempts + 1

        await DashboardRepository(self.session).add_activity(
            actor.organization_id,
            user_id=actor.user_id,
            activity_type="assessment_complete",
            activity_subtype=assessment.type,
            duration_seconds=time_taken,
            metadata_={"assessment_id": str(assessment_id), "score": score},
        )
        await self.log_analytics_event(
            "assessment_submitted",
            actor.organization_id,
            actor.user_id,
            {"assessment_id": str(assessment_id), "score": score, "time_spent": time_taken},
        )
        await self.repo.commit()

        try:
            await realtime_manager.handle_external_event(
                "assessment_completed",
                actor.organization_id,
                {"assessment_id": str(assessment_id), "user_id": str(actor.user_id), "score": score},
            )
        except Exception:
            logger.exception("Failed to publish realtime update after submit_assessment")

        return SubmitAssessmentResponse(
            submission=SubmissionRead.model_validate(submission),
            score=score,
            message="Assessment submitted successfully",
        )

    # PUBLIC_INTERFACE
    async def delete_assessment(self, actor: OrgContext, assessment_id: UUID) -> None:
        """Archive the assessment (soft delete)."""
        assessment = await self._get_or_404(actor.organization_id, assessment_id)
        assessment.status = "archived"
        assessment.archived_at = utcnow()
        assessment.archived_by = actor.user_id
        await self.log_analytics_event(
            "assessment_deleted", actor.organization_id, actor.user_id, {"assessment_id": str(assessment_id)}
        )
        await self.repo.commit()

    # PUBLIC_INTERFACE
    async def get_results(self, actor: OrgContext, assessment_id: UUID) -> AssessmentResultsResponse:
        await self._get_or_404(actor.organization_id, assessment_id)
        submission = await self.repo.latest_submission(assessment_id, actor.user_id)
        if submission is None:
            raise ErrorResponses.not_found("No submission found", code="NO_SUBMISSION")
        ocean = None
        result = await self.repo.ocean_result_for_submission(submission.id)
        if result is not None:
            ocean = OceanScores(**result.trait_scores())
        elif submission.ocean_trait_scores:
            ocean = OceanScores(**submission.ocean_trait_scores)
        return AssessmentResultsResponse(
            assessment_id=assessment_id,
            submission=SubmissionRead.model_validate(submission),
            score=submission.score,
            ocean_scores=ocean,
        )
