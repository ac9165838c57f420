from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, EmailStr, Field, model_validator

ReportStatus = Literal["draft", "generated", "reviewed", "published", "archived"]
ExportFormat = Literal["json", "pdf", "excel", "html", "csv"]


class SectionRead(BaseModel):
    id: UUID
    report_id: UUID
    section_type: str
    section_title: str
    section_order: int
    content: Optional[str] = None
    charts_data: Dict[str, Any] = Field(default_factory=dict)
    tables_data: Dict[str, Any] = Field(default_factory=dict)
    insights: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class ReportRead(BaseModel):
    """Weekly report read model."""
    id: UUID
    organization_id: UUID
    report_period_start: date
    report_period_end: date
    report_type: str
    title: str
    executive_summary: Optional[str] = None
    status: str
    template_id: Optional[UUID] = None
    generated_by: Optional[UUID] = None
    reviewed_by: Optional[UUID] = None
    published_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReportDetail(ReportRead):
    sections: List[SectionRead] = Field(default_factory=list)


class ReportListResponse(BaseModel):
    data: List[ReportRead]
    count: int


class ReportCreate(BaseModel):
    """Create a draft report for a period."""
    report_period_start: date = Field(...)
    report_period_end: date = Field(...)
    title: str = Field(..., min_length=1, max_length=255)
    report_type: str = Field("standard", max_length=50)
    template_id: Optional[UUID] = Field(None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_period(self) -> "ReportCreate":
        if self.report_period_end < self.report_period_start:
            raise ValueError("report_period_end must not be before report_period_start")
        return self


class ReportUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    executive_summary: Optional[str] = Field(None)
    status: Optional[ReportStatus] = Field(None)
    metadata: Optional[Dict[str, Any]] = Field(None)


class SectionCreate(BaseModel):
    section_type: str = Field(..., min_length=1, max_length=50)
    section_title: str = Field(..., min_length=1, max_length=255)
    section_order: int = Field(1, ge=1)
    content: Optional[str] = Field(None)
    charts_data: Dict[str, Any] = Field(default_factory=dict)
    tables_data: Dict[str, Any] = Field(default_factory=dict)
    insights: Dict[str, Any] = Field(default_factory=dict)


class SectionUpdate(BaseModel):
    section_title: Optional[str] = Field(None, min_length=1, max_length=255)
    section_order: Optional[int] = Field(None, ge=1)
    content: Optional[str] = Field(None)
    charts_data: Optional[Dict[str, Any]] = Field(None)
    tables_data: Optional[Dict[str, Any]] = Field(None)
    insights: Optional[Dict[str, Any]] = Field(None)


class TemplateRead(BaseModel):
    id: UUID
    organization_id: Optional[UUID] = None
    name: str
    description: Optional[str] = None
    template_type: str
    target_audience: Optional[str] = None
    sections_config: Dict[str, Any] = Field(default_factory=dict)
    styling_config: Dict[str, Any] = Field(default_factory=dict)
    export_formats: str
    is_default: bool
    is_active: bool

    class Config:
        from_attributes = True


class TemplateCreate(BaseModel):
    """Report template. sections_config.sections lists {type, title} entries in order."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    template_type: str = Field(..., min_length=1, max_length=50)
    target_audience: Optional[str] = Field(None, max_length=50)
    sections_config: Dict[str, Any] = Field(default_factory=dict)
    styling_config: Dict[str, Any] = Field(default_factory=dict)
    export_formats: str = Field("pdf,excel", max_length=100)
    is_default: bool = Field(False)


class DistributionListRead(BaseModel):
    id: UUID
    organization_id: UUID
    list_name: str
    description: Optional[str] = None
    recipient_emails: List[str] = Field(default_factory=list)
    recipient_roles: List[str] = Field(default_factory=list)
    distribution_schedule: Optional[str] = None
    schedule_day_of_week: Optional[int] = None
    schedule_time: Optional[time] = None
    is_active: bool

    class Config:
        from_attributes = True


class DistributionListCreate(BaseModel):
    list_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    recipient_emails: List[EmailStr] = Field(default_factory=list)
    recipient_roles: List[str] = Field(default_factory=list)
    distribution_schedule: Optional[Literal["daily", "weekly", "monthly"]] = Field(None)
    schedule_day_of_week: Optional[int] = Field(None, ge=0, le=6)
    schedule_time: Optional[time] = Field(None)


class GenerateReportRequest(BaseModel):
    force_regenerate: bool = Field(False, description="Rebuild sections even if the report was generated before")
    export_format: ExportFormat = Field("json")
    template_id: Optional[UUID] = Field(None)


class GenerateReportResponse(BaseModel):
    report: ReportDetail
    regenerated: bool
    export_format: str
    export_size_bytes: Optional[int] = Field(None, description="Size of the rendered export when a file format was requested")
