from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TokenPair(BaseModel):
    """Access and refresh tokens."""
    token_type: str = Field("bearer", description="Token type, typically 'bearer'")
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")


class RefreshRequest(BaseModel):
    """Request to refresh an access token."""
    refresh_token: str = Field(..., description="Refresh token")


class ProfileRead(BaseModel):
    """User profile read model."""
    id: UUID = Field(..., description="User ID")
    email: EmailStr = Field(..., description="User email")
    full_name: Optional[str] = Field(None)
    department: Optional[str] = Field(None)
    role: Optional[str] = Field(None, description="Job title")
    avatar_url: Optional[str] = Field(None)
    is_active: bool = Field(..., description="Active flag")
    last_login: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class MembershipRead(BaseModel):
    """Organization membership of the current user."""
    organization_id: UUID = Field(...)
    organization_name: str = Field(...)
    role: str = Field(..., description="owner | admin | manager | member")
    joined_at: datetime = Field(...)


class EnsureProfileRequest(BaseModel):
    """Optional profile fields applied when the profile row is first created."""
    full_name: Optional[str] = Field(None, description="Overrides the token's user_metadata.full_name")
    organization_name: Optional[str] = Field(
        None,
        min_length=2,
        max_length=120,
        description="Creates a personal organization (caller as owner) when the caller has none",
    )


class EnsureProfileResponse(BaseModel):
    """Profile after ensure-profile, with memberships."""
    profile: ProfileRead
    memberships: List[MembershipRead] = Field(default_factory=list)
    created: bool = Field(..., description="True when the profile row was created by this call")


class MeResponse(BaseModel):
    profile: ProfileRead
    memberships: List[MembershipRead] = Field(default_factory=list)
