"""
Database seeding utilities for a usable demo installation.

Seeds:
- Demo organization (Demo Organization / demo)
- Owner account with a local password (SEED_OWNER_EMAIL / SEED_OWNER_PASSWORD)
- Shared default weekly report template
- Scheduled job configurations for every maintenance job

Every step is idempotent, so seeding twice leaves the database unchanged.

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.security import get_password_hash
from src.core.settings import get_app_settings
from src.db.models.reports import ReportTemplate
from src.db.session import get_session_maker, organization_context
from src.repositories.organizations import OrganizationRepository
from src.repositories.reports import ReportRepository
from src.repositories.system import SystemRepository
from src.services.jobs import DEFAULT_SCHEDULES, JOB_TYPES

logger = logging.getLogger(__name__)

DEMO_ORGANIZATION = ("Demo Organization", "demo")

DEFAULT_WEEKLY_SECTIONS = [
    {"type": "metrics_summary", "title": "Key Metrics Summary"},
    {"type": "ocean_insights", "title": "Personality Insights"},
    {"type": "team_performance", "title": "Team Performance"},
    {"type": "activity_trends", "title": "Activity Trends"},
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with the demo organization, its owner and shared configuration.

    Each part runs in the same session and is committed once at the end.
    """
    async with get_session_maker()() as session:
        organization_id = await _ensure_organization(session, *DEMO_ORGANIZATION)
        async with organization_context(session, organization_id):
            await _ensure_owner(session, organization_id)
        await _ensure_default_template(session)
        await _ensure_job_configs(session)
        await session.commit()


async def _ensure_organization(session: AsyncSession, name: str, slug: str) -> UUID:
    repo = OrganizationRepository(session)
    org = await repo.get_organization_by_slug(slug)
    if org is None:
        org = await repo.create_organization(name=name, slug=slug)
        logger.info("Seeded organization %s (%s)", name, org.id)
    return org.id


async def _ensure_owner(session: AsyncSession, organization_id: UUID) -> None:
    settings = get_app_settings()
    repo = OrganizationRepository(session)
    user = await repo.get_user_by_email(settings.SEED_OWNER_EMAIL)
    if user is None:
        user = await repo.create_user(
            email=settings.SEED_OWNER_EMAIL.lower(),
            full_name="Demo Owner",
            hashed_password=get_password_hash(settings.SEED_OWNER_PASSWORD),
        )
        user.is_superadmin = True
        logger.info("Seeded owner %s", user.email)
    if await repo.get_membership(organization_id, user.id) is None:
        await repo.create_membership(organization_id=organization_id, user_id=user.id, role="owner", is_active=True)


async def _ensure_default_template(session: AsyncSession) -> None:
    stmt = select(ReportTemplate).where(
        ReportTemplate.organization_id.is_(None),
        ReportTemplate.template_type == "weekly",
        ReportTemplate.is_default.is_(True),
    )
    if (await session.execute(stmt)).scalars().first() is not None:
        return
    await ReportRepository(session).create_template(
        organization_id=None,
        name="Default Weekly Report",
        description="Metrics, personality insights, team performance and activity trends",
        template_type="weekly",
        target_audience="management",
        sections_config={"sections": DEFAULT_WEEKLY_SECTIONS},
        styling_config={},
        export_formats="pdf,excel",
        is_default=True,
    )
    logger.info("Seeded default weekly report template")


async def _ensure_job_configs(session: AsyncSession) -> None:
    repo = SystemRepository(session)
    for job_name, (schedule, description) in DEFAULT_SCHEDULES.items():
        if await repo.get_job_config(job_name) is not None:
            continue
        await repo.add_job_config(
            job_name=job_name,
            job_type=JOB_TYPES[job_name],
            schedule_expression=schedule,
            configuration={"description": description},
        )
        logger.info("Seeded job config %s (%s)", job_name, schedule)


if __name__ == "__main__":
    asyncio.run(seed_all())
