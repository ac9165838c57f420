from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from .common import PaginationMeta

OrgRole = Literal["owner", "admin", "manager", "member"]


class MemberRead(BaseModel):
    """A user as seen from one organization."""
    id: UUID = Field(..., description="User ID")
    email: str = Field(...)
    full_name: Optional[str] = Field(None)
    department: Optional[str] = Field(None)
    role: str = Field(..., description="Organization role")
    job_title: Optional[str] = Field(None)
    joined_at: datetime = Field(...)
    is_active: bool = Field(..., description="Membership active flag")
    last_login: Optional[datetime] = Field(None)


class UserListResponse(BaseModel):
    users: List[MemberRead]
    pagination: PaginationMeta


class InviteUserRequest(BaseModel):
    """Invite a user to the organization by email."""
    email: EmailStr = Field(..., description="Invitee email")
    role: OrgRole = Field("member", description="Organization role")
    send_invitation_email: bool = Field(True)


class InviteUserResponse(BaseModel):
    user_id: UUID
    membership_id: UUID
    email: str
    role: str
    reactivated: bool = False
    message: str


class UpdateUserRequest(BaseModel):
    """Profile fields a user (or an owner/admin) may change."""
    full_name: Optional[str] = Field(None, max_length=200)
    department: Optional[str] = Field(None, max_length=100)
    role: Optional[str] = Field(None, max_length=100, description="Job title")
    avatar_url: Optional[str] = Field(None)
    preferences: Optional[Dict[str, Any]] = Field(None)
