from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_user, get_session, get_token_claims
from src.core.errors import ErrorResponses
from src.core.security import create_access_token, create_refresh_token, decode_token, verify_password
from src.db.base import utcnow
from src.db.models.organizations import User
from src.repositories.organizations import OrganizationRepository
from src.schemas.auth import (
    EnsureProfileRequest,
    EnsureProfileResponse,
    MembershipRead,
    MeResponse,
    ProfileRead,
    RefreshRequest,
    TokenPair,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _issue_tokens(user: User) -> TokenPair:
    access = create_access_token(
        subject=str(user.id), email=user.email, user_metadata={"full_name": user.full_name}
    )
    return TokenPair(access_token=access, refresh_token=create_refresh_token(subject=str(user.id)))


async def _memberships(repo: OrganizationRepository, user_id: UUID) -> List[MembershipRead]:
    return [
        MembershipRead(
            organization_id=org.id,
            organization_name=org.name,
            role=membership.role,
            joined_at=membership.joined_at,
        )
        for membership, org in await repo.list_memberships_for_user(user_id)
    ]


def _slugify(name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "org"
    return f"{base[:50]}-{uuid.uuid4().hex[:6]}"


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate with the OAuth2 password form (username = email) and receive access/refresh tokens.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    """Authenticate a local password account and issue tokens."""
    repo = OrganizationRepository(session)
    user = await repo.get_user_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise ErrorResponses.unauthorized("Invalid credentials", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise ErrorResponses.forbidden("Inactive user", code="USER_INACTIVE")
    await repo.touch_last_login(user.id, utcnow())
    await repo.commit()
    logger.info("User %s logged in", user.id)
    return _issue_tokens(user)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    """Validate the refresh token and issue a new pair."""
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token)
    except JWTError:
        raise ErrorResponses.unauthorized("Invalid refresh token")
    if claims.get("type") != "refresh":
        raise ErrorResponses.unauthorized("Invalid token type")
    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError:
        raise ErrorResponses.unauthorized("Invalid refresh token")
    user = await OrganizationRepository(session).get_user_by_id(user_id)
    if not user or not user.is_active:
        raise ErrorResponses.unauthorized("User not found or inactive")
    return _issue_tokens(user)


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=MeResponse,
    summary="Read current user",
    description="Return the caller's profile and active organization memberships.",
)
async def read_current_user(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> MeResponse:
    repo = OrganizationRepository(session)
    return MeResponse(profile=ProfileRead.model_validate(user), memberships=await _memberships(repo, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/ensure-profile",
    response_model=EnsureProfileResponse,
    summary="Ensure user profile",
    description=(
        "Create the profile row for the authenticated identity when missing, accept pending invitations, "
        "refresh last_login and optionally create a first organization."
    ),
)
async def ensure_profile(
    payload: Optional[EnsureProfileRequest] = Body(None),
    claims: Dict[str, Any] = Depends(get_token_claims),
    session: AsyncSession = Depends(get_session),
) -> EnsureProfileResponse:
    """
    Idempotently make sure the caller has a users row.

    - New identity: profile created from the token (email, user_metadata.full_name).
    - Invited profile under another id (created by an invitation): re-keyed to the token subject.
    - Outstanding invitations of the caller are accepted on every call.
    - organization_name given and no memberships: organization created with the caller as owner.
    """
    payload = payload or EnsureProfileRequest()
    repo = OrganizationRepository(session)
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise ErrorResponses.unauthorized("Invalid authentication token")

    metadata = claims.get("user_metadata") or {}
    full_name = payload.full_name or metadata.get("full_name") or metadata.get("name")
    user = await repo.get_user_by_id(user_id)
    created = False
    if user is None:
        email = claims.get("email")
        if not email:
            raise ErrorResponses.bad_request("Token has no email claim", code="EMAIL_REQUIRED")
        existing = await repo.get_user_by_email(email)
        if existing is not None and not repo.is_pending_invitation(existing):
            raise ErrorResponses.conflict("Email is already registered to another profile", code="EMAIL_IN_USE")
        if existing is not None:
            logger.info("Invited profile %s claimed by %s", existing.id, user_id)
            user = await repo.claim_pending_user(existing, user_id, full_name=full_name)
        else:
            user = await repo.create_user(email=str(email).lower(), full_name=full_name, user_id=user_id)
            created = True
            logger.info("Created profile for %s", user_id)
    elif repo.is_pending_invitation(user):
        user.is_active = True
        logger.info("Activated invited profile %s", user.id)

    if not user.is_active:
        raise ErrorResponses.forbidden("Inactive user", code="USER_INACTIVE")

    accepted = await repo.activate_pending_memberships(user.id)
    if accepted:
        logger.info("Accepted %d invitation(s) for %s", accepted, user.id)

    user.last_login = utcnow()
    if payload.organization_name and not await repo.list_memberships_for_user(user.id):
        org = await repo.create_organization(name=payload.organization_name, slug=_slugify(payload.organization_name))
        await repo.create_membership(organization_id=org.id, user_id=user.id, role="owner", is_active=True)
        logger.info("Created organization %s for %s", org.id, user.id)
    await repo.commit()

    return EnsureProfileResponse(
        profile=ProfileRead.model_validate(user),
        memberships=await _memberships(repo, user.id),
        created=created,
    )
