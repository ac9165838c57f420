from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ErrorResponses
from src.core.features import is_feature_enabled
from src.db.models.organizations import User
from src.repositories.organizations import OrganizationRepository
from src.schemas.common import PaginationMeta
from src.schemas.users import InviteUserRequest, InviteUserResponse, MemberRead, UpdateUserRequest, UserListResponse
from src.services.base import BaseService

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("owner", "admin")


class UserService(BaseService):
    """Organization members: listing, invitations, profile updates and removal."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = OrganizationRepository(session)

    # PUBLIC_INTERFACE
    async def list_users(
        self,
        organization_id: UUID,
        *,
        search: Optional[str] = None,
        role: Optional[str] = None,
        department: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> UserListResponse:
        """List active members of the organization with filters and page-based pagination."""
        rows, total = await self.repo.list_members(
            organization_id,
            search=search,
            role=role,
            department=department,
            limit=limit,
            offset=(page - 1) * limit,
        )
        users = [
            MemberRead(
                id=user.id,
                email=user.email,
                full_name=user.full_name,
                department=user.department,
                role=membership.role,
                job_title=user.role,
                joined_at=membership.joined_at,
                is_active=membership.is_active,
                last_login=user.last_login,
            )
            for user, membership in rows
        ]
        return UserListResponse(users=users, pagination=PaginationMeta.build(page, limit, total))

    # PUBLIC_INTERFACE
    async def get_member(self, organization_id: UUID, user_id: UUID) -> MemberRead:
        user = await self.repo.get_user_by_id(user_id)
        membership = await self.repo.get_membership(organization_id, user_id, active_only=True)
        if user is None or membership is None:
            raise ErrorResponses.not_found("User not found", code="USER_NOT_FOUND")
        return MemberRead(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            department=user.department,
            role=membership.role,
            job_title=user.role,
            joined_at=membership.joined_at,
            is_active=membership.is_active,
            last_login=user.last_login,
        )

    # PUBLIC_INTERFACE
    async def invite_user(
        self, organization_id: UUID, payload: InviteUserRequest, invited_by: UUID
    ) -> InviteUserResponse:
        """
        Invite a user by email.

        - Existing active member: 400 USER_ALREADY_MEMBER.
        - Existing inactive membership: reactivated with the requested role.
        - Unknown email: a pending (inactive, passwordless) user is created.
        New memberships stay inactive until the invitation is accepted.
        """
        email = str(payload.email).lower()
        user = await self.repo.get_user_by_email(email)
        if user is not None:
            membership = await self.repo.get_membership(organization_id, user.id)
            if membership is not None:
                if membership.is_active:
                    raise ErrorResponses.bad_request(
                        "User is already a member of this organization", code="USER_ALREADY_MEMBER"
                    )
                membership.is_active = True
                membership.role = payload.role
                membership.invited_by = invited_by
                await self.repo.commit()
                logger.info("Reactivated membership of %s in organization %s", user.id, organization_id)
                return InviteUserResponse(
                    user_id=user.id,
                    membership_id=membership.id,
                    email=user.email,
                    role=membership.role,
                    reactivated=True,
                    message="User membership reactivated",
                )
        else:
            user = await self.repo.create_user(email=email, is_active=False)

        membership = await self.repo.create_membership(
            organization_id=organization_id,
            user_id=user.id,
            role=payload.role,
            is_active=False,
            invited_by=invited_by,
        )
        if payload.send_invitation_email:
            self._queue_invitation_email(email, organization_id, payload.role)
        await self.log_analytics_event(
            "user_invited", organization_id, invited_by, {"invited_email": email, "role": payload.role}
        )
        await self.repo.commit()
        return InviteUserResponse(
            user_id=user.id,
            membership_id=membership.id,
            email=user.email,
            role=membership.role,
            reactivated=False,
            message="User invited successfully",
        )

    def _queue_invitation_email(self, email: str, organization_id: UUID, role: str) -> None:
        if not is_feature_enabled("email_notifications"):
            logger.info("Email notifications disabled; invitation for %s not sent", email)
            return
        # Delivery is handled by the hosted auth provider's invite flow.
        logger.info("Invitation email requested for %s (organization=%s, role=%s)", email, organization_id, role)

    # PUBLIC_INTERFACE
    async def can_update_user(self, requester_id: UUID, target_user_id: UUID) -> bool:
        """Users may update themselves; owners/admins may update members of their organizations."""
        if requester_id == target_user_id:
            return True
        return await self.repo.shares_admin_organization(requester_id, target_user_id)

    # PUBLIC_INTERFACE
    async def update_user(self, target_user_id: UUID, payload: UpdateUserRequest, updated_by: UUID) -> User:
        if not await self.can_update_user(updated_by, target_user_id):
            raise ErrorResponses.forbidden("Insufficient permissions", code="INSUFFICIENT_PERMISSIONS")
        user = await self.repo.get_user_by_id(target_user_id)
        if user is None:
            raise ErrorResponses.not_found("User not found", code="USER_NOT_FOUND")
        changes = payload.model_dump(exclude_unset=True)
        for field_name, value in changes.items():
            setattr(user, field_name, value)
        await self.log_analytics_event(
            "user_updated", None, updated_by, {"updated_user_id": str(target_user_id), "updated_fields": sorted(changes)}
        )
        await self.repo.commit()
        return user

    # PUBLIC_INTERFACE
    async def remove_user(self, organization_id: UUID, user_id: UUID, removed_by: UUID) -> None:
        """
        Deactivate the membership. The last active owner cannot be removed.

        invited_by is cleared so a later sign-in does not accept the old invitation again.
        """
        membership = await self.repo.get_membership(organization_id, user_id, active_only=True)
        if membership is None:
            raise ErrorResponses.not_found("User not found", code="USER_NOT_FOUND")
        if membership.role == "owner" and await self.repo.count_active_owners(organization_id) <= 1:
            raise ErrorResponses.bad_request("Cannot remove the last owner", code="LAST_OWNER_ERROR")
        membership.is_active = False
        membership.invited_by = None
        await self.log_analytics_event("user_removed", organization_id, removed_by, {"removed_user_id": str(user_id)})
        await self.repo.commit()
        logger.info("Removed user %s from organization %s", user_id, organization_id)
