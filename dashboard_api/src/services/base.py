from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.features import is_feature_enabled
from src.repositories.organizations import OrganizationRepository

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def log_analytics_event(
        self,
        event_type: str,
        organization_id: Optional[UUID],
        user_id: Optional[UUID],
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Persist an analytics event when the analytics feature is on.

        Runs in a savepoint; a failure is logged and never propagates to the caller.
        """
        if not is_feature_enabled("analytics", str(user_id) if user_id else None):
            return
        try:
            async with self.session.begin_nested():
                await OrganizationRepository(self.session).add_analytics_event(
                    organization_id=organization_id,
                    user_id=user_id,
                    event_type=event_type,
                    event_data=data or {},
                )
        except SQLAlchemyError:
            logger.exception("Failed to log analytics event %s", event_type)
