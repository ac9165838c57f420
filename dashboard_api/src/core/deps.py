from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ErrorResponses
from src.core.logging import organization_id_var
from src.core.security import decode_token
from src.db.models.organizations import User, UserOrganization
from src.db.session import get_async_session, organization_context
from src.repositories.organizations import OrganizationRepository

logger = logging.getLogger(__name__)

# OAuth2 bearer (used by docs); login endpoint path referenced here.
# auto_error=False so the auth-token cookie can be used instead.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

AUTH_COOKIE_NAME = "auth-token"
ORG_HEADER = "X-Organization-ID"


@dataclass
class OrgContext:
    """Caller identity within the organization selected for the request."""
    organization_id: UUID
    user: User
    membership: UserOrganization

    @property
    def role(self) -> str:
        return self.membership.role

    @property
    def user_id(self) -> UUID:
        return self.user.id


# PUBLIC_INTERFACE
async def get_token(request: Request, bearer: Optional[str] = Depends(oauth2_scheme)) -> str:
    """Return the raw JWT from the Authorization header or the auth-token cookie."""
    token = bearer or request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise ErrorResponses.unauthorized("Missing authentication token")
    return token


# PUBLIC_INTERFACE
def verify_access_token(token: str) -> Dict[str, Any]:
    """Decode an access token; 401 when it is invalid, expired or a refresh token."""
    try:
        claims = decode_token(token)
    except JWTError:
        raise ErrorResponses.unauthorized("Invalid authentication token")
    if not claims.get("sub") or claims.get("type", "access") != "access":
        raise ErrorResponses.unauthorized("Invalid authentication token")
    return claims


# PUBLIC_INTERFACE
async def get_token_claims(token: str = Depends(get_token)) -> Dict[str, Any]:
    """Decode and verify the bearer or cookie token."""
    return verify_access_token(token)


# PUBLIC_INTERFACE
async def get_session(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession without setting organization context.

    Used for user-level operations (profile, memberships) and system-wide tables.
    """
    yield session


# PUBLIC_INTERFACE
async def get_current_user(
    claims: Dict[str, Any] = Depends(get_token_claims),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the users row for the token subject.

    Raises 401 when the profile does not exist (call /api/auth/ensure-profile first)
    and 403 when the user is deactivated.
    """
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise ErrorResponses.unauthorized("Invalid authentication token")
    user = await OrganizationRepository(session).get_user_by_id(user_id)
    if user is None:
        raise ErrorResponses.unauthorized("User profile not found", code="PROFILE_NOT_FOUND")
    if not user.is_active:
        raise ErrorResponses.forbidden("Inactive user", code="USER_INACTIVE")
    return user


async def _organization_id_from_body(request: Request) -> Optional[str]:
    if request.method not in ("POST", "PUT", "PATCH"):
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        value = body.get("organization_id") or body.get("organizationId")
        return str(value) if value else None
    return None


# PUBLIC_INTERFACE
async def get_organization_id(request: Request) -> UUID:
    """
    Extract the organization id for the request.

    Looked up in order: `organization_id` / `organizationId` query parameter,
    `X-Organization-ID` header, then the JSON body of POST/PUT/PATCH requests.

    Raises:
        ApiError: 400 when missing or not a UUID.
    """
    raw = (
        request.query_params.get("organization_id")
        or request.query_params.get("organizationId")
        or request.headers.get(ORG_HEADER)
        or await _organization_id_from_body(request)
    )
    if not raw:
        raise ErrorResponses.bad_request("Organization ID is required", code="ORGANIZATION_REQUIRED")
    try:
        organization_id = UUID(str(raw))
    except ValueError:
        raise ErrorResponses.bad_request("Organization ID must be a valid UUID", code="INVALID_ORGANIZATION_ID")
    organization_id_var.set(str(organization_id))
    request.state.organization_id = str(organization_id)
    return organization_id


# PUBLIC_INTERFACE
async def get_org_session(
    organization_id: UUID = Depends(get_organization_id),
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession with Row-Level Security configured for the organization.

    The Postgres GUC `app.organization_id` is set while the session is in use and reset after.
    """
    async with organization_context(session, organization_id):
        yield session


# PUBLIC_INTERFACE
async def get_org_context(
    organization_id: UUID = Depends(get_organization_id),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_org_session),
) -> OrgContext:
    """Require an active membership of the caller in the requested organization."""
    membership = await OrganizationRepository(session).get_membership(organization_id, user.id, active_only=True)
    if membership is None:
        logger.info("User %s denied access to organization %s", user.id, organization_id)
        raise ErrorResponses.forbidden("Access denied to organization", code="ORGANIZATION_ACCESS_DENIED")
    return OrgContext(organization_id=organization_id, user=user, membership=membership)


# PUBLIC_INTERFACE
def require_org_roles(*required: str):
    """
    Create a dependency that requires the caller's organization role to be one of `required`.

    Returns the OrgContext so routes can use it directly.
    """

    async def _dep(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        if ctx.role not in required:
            raise ErrorResponses.forbidden("Insufficient permissions", code="INSUFFICIENT_PERMISSIONS")
        return ctx

    return _dep


# PUBLIC_INTERFACE
async def require_platform_admin(user: User = Depends(get_current_user)) -> User:
    """
    Require a platform administrator.

    System routes act on every organization, so an organization role is not enough.
    """
    if not user.is_superadmin:
        logger.info("User %s denied access to system administration", user.id)
        raise ErrorResponses.forbidden("Platform administrator access required", code="PLATFORM_ADMIN_REQUIRED")
    return user
