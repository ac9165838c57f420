from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, JSONType, OrganizationMixin, TimestampMixin, UUIDPkMixin, utcnow

OCEAN_TRAITS = ("openness", "conscientiousness", "extraversion", "agreeableness", "neuroticism")


class Assessment(UUIDPkMixin, OrganizationMixin, TimestampMixin, Base):
    """Assessment definition; questions and settings are stored as JSON documents."""
    __tablename__ = "assessments"

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="ocean", server_default="ocean")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active", index=True)
    questions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    settings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Subject of the assessment, used for department/role aggregations
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class AssessmentAssignment(UUIDPkMixin, Base):
    """A user assigned to take an assessment."""
    __tablename__ = "assessment_assignments"
    __table_args__ = (
        UniqueConstraint("assessment_id", "user_id", name="uq_assessment_assignments_assessment_user"),
    )

    assessment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class AssessmentSubmission(UUIDPkMixin, TimestampMixin, Base):
    """One submitted attempt with the raw responses and computed score."""
    __tablename__ = "assessment_submissions"

    assessment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    responses: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="completed", server_default="completed")
    ocean_trait_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_taken_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class OceanAssessmentResult(UUIDPkMixin, OrganizationMixin, TimestampMixin, Base):
    """Big Five trait scores (0..100) for a completed assessment."""
    __tablename__ = "ocean_assessment_results"

    assessment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=True, index=True)
    assessment_submission_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("assessment_submissions.id", ondelete="CASCADE"), nullable=True
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    openness_score: Mapped[float] = mapped_column(Float, nullable=False)
    conscientiousness_score: Mapped[float] = mapped_column(Float, nullable=False)
    extraversion_score: Mapped[float] = mapped_column(Float, nullable=False)
    agreeableness_score: Mapped[float] = mapped_column(Float, nullable=False)
    neuroticism_score: Mapped[float] = mapped_column(Float, nullable=False)
    facet_scores: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    calculation_method: Mapped[str] = mapped_column(Text, nullable=False, default="standard", server_default="standard")

    def trait_scores(self) -> dict:
        return {trait: getattr(self, f"{trait}_score") for trait in OCEAN_TRAITS}
