from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update

from src.db.base import Base
from src.db.models.organizations import AnalyticsEvent, Organization, User, UserOrganization
from .base import BaseRepository


class OrganizationRepository(BaseRepository):
    """Organizations, user profiles and memberships."""

    # Organizations
    async def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        stmt = select(Organization).where(Organization.id == organization_id)
        return await self.scalar_one_or_none(stmt)

    async def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        stmt = select(Organization).where(Organization.slug == slug)
        return await self.scalar_one_or_none(stmt)

    async def list_active_organizations(self) -> List[Organization]:
        stmt = select(Organization).where(Organization.is_active.is_(True)).order_by(Organization.created_at)
        return list(await self.scalars(stmt))

    async def create_organization(self, *, name: str, slug: str) -> Organization:
        org = Organization(name=name, slug=slug)
        await self.add(org)
        await self.flush()
        return org

    # Users
    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def create_user(
        self,
        *,
        email: str,
        full_name: Optional[str] = None,
        hashed_password: Optional[str] = None,
        is_active: bool = True,
        user_id: Optional[UUID] = None,
    ) -> User:
        user = User(
            email=email,
            full_name=full_name,
            hashed_password=hashed_password,
            is_active=is_active,
        )
        if user_id is not None:
            user.id = user_id
        await self.add(user)
        await self.flush()
        return user

    @staticmethod
    def is_pending_invitation(user: User) -> bool:
        """A profile created by an invitation that nobody has signed in to yet."""
        return not user.is_active and user.last_login is None and user.hashed_password is None

    # PUBLIC_INTERFACE
    async def claim_pending_user(self, pending: User, user_id: UUID, full_name: Optional[str] = None) -> User:
        """
        Re-key an invited profile to the identity provider's subject id.

        Every row referencing the pending profile (memberships, assignments, ...) is moved to
        the new profile, then the pending row is deleted.
        """
        email = pending.email
        pending.email = f"{pending.id}@pending.invalid"
        await self.flush()
        user = await self.create_user(email=email, full_name=full_name or pending.full_name, user_id=user_id)
        for table in Base.metadata.sorted_tables:
            for column in table.columns:
                if any(fk.references(User.__table__) for fk in column.foreign_keys):
                    await self.execute(update(table).where(column == pending.id).values({column.name: user_id}))
        await self.delete(pending)
        await self.flush()
        return user

    async def touch_last_login(self, user_id: UUID, at: datetime) -> None:
        await self.execute(update(User).where(User.id == user_id).values(last_login=at))

    # Memberships
    async def get_membership(
        self, organization_id: UUID, user_id: UUID, *, active_only: bool = False
    ) -> Optional[UserOrganization]:
        stmt = select(UserOrganization).where(
            UserOrganization.organization_id == organization_id,
            UserOrganization.user_id == user_id,
        )
        if active_only:
            stmt = stmt.where(UserOrganization.is_active.is_(True))
        return await self.scalar_one_or_none(stmt)

    async def list_memberships_for_user(self, user_id: UUID) -> List[Tuple[UserOrganization, Organization]]:
        stmt = (
            select(UserOrganization, Organization)
            .join(Organization, Organization.id == UserOrganization.organization_id)
            .where(UserOrganization.user_id == user_id, UserOrganization.is_active.is_(True))
            .order_by(UserOrganization.joined_at)
        )
        res = await self.execute(stmt)
        return [(row[0], row[1]) for row in res.all()]

    async def create_membership(
        self,
        *,
        organization_id: UUID,
        user_id: UUID,
        role: str,
        is_active: bool,
        invited_by: Optional[UUID] = None,
    ) -> UserOrganization:
        membership = UserOrganization(
            organization_id=organization_id,
            user_id=user_id,
            role=role,
            is_active=is_active,
            invited_by=invited_by,
        )
        await self.add(membership)
        await self.flush()
        return membership

    async def activate_pending_memberships(self, user_id: UUID) -> int:
        """Accept outstanding invitations (inactive memberships created by an inviter)."""
        res = await self.execute(
            update(UserOrganization)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.is_active.is_(False),
                UserOrganization.invited_by.is_not(None),
            )
            .values(is_active=True)
        )
        return res.rowcount or 0

    async def count_active_owners(self, organization_id: UUID) -> int:
        stmt = select(func.count(UserOrganization.id)).where(
            UserOrganization.organization_id == organization_id,
            UserOrganization.role == "owner",
            UserOrganization.is_active.is_(True),
        )
        return int(await self.scalar(stmt))

    async def count_active_members(self, organization_id: UUID) -> int:
        stmt = select(func.count(UserOrganization.id)).where(
            UserOrganization.organization_id == organization_id,
            UserOrganization.is_active.is_(True),
        )
        return int(await self.scalar(stmt))

    async def shares_admin_organization(self, admin_id: UUID, user_id: UUID) -> bool:
        """True when admin_id is an active owner/admin of an organization user_id belongs to."""
        target_orgs = select(UserOrganization.organization_id).where(
            UserOrganization.user_id == user_id, UserOrganization.is_active.is_(True)
        )
        stmt = select(func.count(UserOrganization.id)).where(
            UserOrganization.user_id == admin_id,
            UserOrganization.is_active.is_(True),
            UserOrganization.role.in_(("owner", "admin")),
            UserOrganization.organization_id.in_(target_orgs),
        )
        return int(await self.scalar(stmt)) > 0

    async def list_members(
        self,
        organization_id: UUID,
        *,
        search: Optional[str],
        role: Optional[str],
        department: Optional[str],
        limit: int,
        offset: int,
        include_inactive: bool = False,
    ) -> Tuple[List[Tuple[User, UserOrganization]], int]:
        stmt = (
            select(User, UserOrganization)
            .join(UserOrganization, UserOrganization.user_id == User.id)
            .where(UserOrganization.organization_id == organization_id)
        )
        if not include_inactive:
            stmt = stmt.where(UserOrganization.is_active.is_(True))
        if search:
            like = f"%{search.lower()}%"
            stmt = stmt.where(or_(func.lower(User.email).like(like), func.lower(User.full_name).like(like)))
        if role:
            stmt = stmt.where(UserOrganization.role == role)
        if department:
            stmt = stmt.where(User.department == department)
        total = await self.count(stmt)
        stmt = stmt.order_by(UserOrganization.joined_at.desc()).offset(offset).limit(limit)
        res = await self.execute(stmt)
        return [(row[0], row[1]) for row in res.all()], total

    # Analytics
    async def add_analytics_event(
        self,
        *,
        organization_id: Optional[UUID],
        user_id: Optional[UUID],
        event_type: str,
        event_data: dict,
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(
            organization_id=organization_id,
            user_id=user_id,
            event_type=event_type,
            event_data=event_data,
        )
        await self.add(event)
        await self.flush()
        return event
