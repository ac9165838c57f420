from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import Executable, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Note:
      Repositories filter by organization_id explicitly. On Postgres the session may
      also carry the `app.organization_id` GUC (see organization_context) for RLS.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def scalar(self, statement: Executable, default: Any = 0) -> Any:
        """Execute an aggregate and return its value, or default for NULL."""
        result = await self.execute(statement)
        value = result.scalar()
        return default if value is None else value

    async def count(self, stmt: Select) -> int:
        """Row count of a select, ignoring its ordering and limits."""
        subq = stmt.order_by(None).limit(None).offset(None).subquery()
        return int(await self.scalar(select(func.count()).select_from(subq)))

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def flush(self) -> None:
        await self.session.flush()

    async def refresh(self, entity: Any) -> None:
        await self.session.refresh(entity)

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def delete(self, entity: Any) -> None:
        await self.session.delete(entity)
