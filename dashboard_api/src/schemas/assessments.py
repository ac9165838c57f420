from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import PaginationMeta

AssessmentStatus = Literal["draft", "active", "completed", "archived"]


class Question(BaseModel):
    """Assessment question. correct_answer is compared with the response value when scoring."""
    id: str = Field(..., description="Question id, referenced by responses")
    text: str = Field(...)
    options: List[Any] = Field(default_factory=list)
    correct_answer: Optional[Any] = Field(None)


class AssessmentSettings(BaseModel):
    max_attempts: int = Field(1, ge=1, le=100)
    time_limit_minutes: Optional[int] = Field(None, ge=1)


class AssignmentRead(BaseModel):
    user_id: UUID
    assigned_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    attempts: int = 0

    class Config:
        from_attributes = True


class AssessmentRead(BaseModel):
    """Assessment read model."""
    id: UUID
    organization_id: UUID
    title: str
    description: Optional[str] = None
    type: str
    status: str
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    due_date: Optional[datetime] = None
    user_id: Optional[UUID] = None
    created_by: Optional[UUID] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    assignments: List[AssignmentRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AssessmentListResponse(BaseModel):
    assessments: List[AssessmentRead]
    pagination: PaginationMeta


class AssessmentCreate(BaseModel):
    """Create assessment payload."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    type: str = Field("ocean", max_length=50)
    due_date: Optional[datetime] = Field(None)
    user_id: Optional[UUID] = Field(None, description="Subject of the assessment, when it is about one person")
    questions: List[Question] = Field(default_factory=list)
    settings: AssessmentSettings = Field(default_factory=AssessmentSettings)
    assignments: List[UUID] = Field(default_factory=list, description="User ids to assign")


class AssessmentUpdate(BaseModel):
    """Update assessment payload."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    status: Optional[AssessmentStatus] = Field(None)
    due_date: Optional[datetime] = Field(None)
    questions: Optional[List[Question]] = Field(None)
    settings: Optional[AssessmentSettings] = Field(None)


class ResponseItem(BaseModel):
    question_id: str = Field(...)
    value: Any = Field(None)


class OceanScores(BaseModel):
    openness: float = Field(..., ge=0, le=100)
    conscientiousness: float = Field(..., ge=0, le=100)
    extraversion: float = Field(..., ge=0, le=100)
    agreeableness: float = Field(..., ge=0, le=100)
    neuroticism: float = Field(..., ge=0, le=100)


class SubmitAssessmentRequest(BaseModel):
    responses: List[ResponseItem] = Field(..., min_length=1)
    started_at: Optional[datetime] = Field(None)
    ocean_scores: Optional[OceanScores] = Field(None, description="Trait scores computed by the client scoring engine")


class SubmissionRead(BaseModel):
    id: UUID
    assessment_id: UUID
    user_id: UUID
    responses: List[Dict[str, Any]]
    score: Optional[float] = None
    status: str
    ocean_trait_scores: Dict[str, Any] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_taken_seconds: Optional[int] = None

    class Config:
        from_attributes = True


class SubmitAssessmentResponse(BaseModel):
    submission: SubmissionRead
    score: float
    message: str


class AssessmentResultsResponse(BaseModel):
    assessment_id: UUID
    submission: SubmissionRead
    score: Optional[float] = None
    ocean_scores: Optional[OceanScores] = None
