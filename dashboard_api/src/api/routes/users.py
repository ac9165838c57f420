from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import OrgContext, get_current_user, get_org_context, get_org_session, get_session, require_org_roles
from src.db.models.organizations import User
from src.schemas.auth import ProfileRead
from src.schemas.common import MessageResponse
from src.schemas.users import InviteUserRequest, InviteUserResponse, MemberRead, UpdateUserRequest, UserListResponse
from src.services.users import UserService

router = APIRouter(prefix="/users", tags=["Users"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=UserListResponse,
    summary="List organization users",
    description="Active members of the organization with search, role and department filters.",
)
async def list_users(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
    search: Optional[str] = Query(None, description="Matches email or full name (case-insensitive)"),
    role: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> UserListResponse:
    return await UserService(session).list_users(
        ctx.organization_id, search=search, role=role, department=department, page=page, limit=limit
    )


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=InviteUserResponse,
    status_code=201,
    summary="Invite user",
    description="Invite a user by email. Requires owner or admin.",
)
async def invite_user(
    payload: InviteUserRequest,
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> InviteUserResponse:
    return await UserService(session).invite_user(ctx.organization_id, payload, ctx.user_id)


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=MemberRead,
    summary="Get organization user",
)
async def get_user(
    user_id: UUID = Path(...),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_org_session),
) -> MemberRead:
    return await UserService(session).get_member(ctx.organization_id, user_id)


# PUBLIC_INTERFACE
@router.patch(
    "/{user_id}",
    response_model=ProfileRead,
    summary="Update user profile",
    description="Users may update themselves; owners and admins may update members of their organizations.",
)
async def update_user(
    payload: UpdateUserRequest,
    user_id: UUID = Path(...),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ProfileRead:
    user = await UserService(session).update_user(user_id, payload, current_user.id)
    return ProfileRead.model_validate(user)


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Remove user from organization",
    description="Deactivate the membership. The last owner cannot be removed.",
)
async def remove_user(
    user_id: UUID = Path(...),
    ctx: OrgContext = Depends(require_org_roles("owner", "admin")),
    session: AsyncSession = Depends(get_org_session),
) -> MessageResponse:
    await UserService(session).remove_user(ctx.organization_id, user_id, ctx.user_id)
    return MessageResponse(message="User removed successfully")
