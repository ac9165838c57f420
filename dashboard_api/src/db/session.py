from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings


_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None


def _ensure_engine_initialized() -> None:
    """
    Lazily initialize the AsyncEngine and session maker.
    """
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        settings = get_settings()
        options = {"echo": settings.SQL_ECHO, "pool_pre_ping": True}
        if settings.is_postgres:
            options.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
        _ENGINE = create_async_engine(settings.async_database_url, **options)
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE, expire_on_commit=False, autoflush=False, autocommit=False
        )


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the global AsyncEngine instance."""
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that runs outside a request (jobs, realtime cycle)."""
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    return _SESSION_MAKER


# PUBLIC_INTERFACE
async def dispose_engine() -> None:
    """Dispose the engine on shutdown; the next call to get_engine creates a new one."""
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is not None:
        await _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession suitable for FastAPI dependency injection.
    Ensures engine/session factory is initialized.
    """
    async with get_session_maker()() as session:
        yield session


def _is_postgres(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"


# PUBLIC_INTERFACE
async def set_current_organization(
    session: AsyncSession, organization_id: Union[str, UUID]
) -> None:
    """
    Set the current organization for the DB session using a custom GUC.

    RLS policies reference current_setting('app.organization_id', true).
    No-op on databases without GUCs (sqlite in tests).
    """
    if not _is_postgres(session):
        return
    await session.execute(
        text("SELECT set_config('app.organization_id', :organization_id, false);"),
        {"organization_id": str(organization_id)},
    )


# PUBLIC_INTERFACE
@asynccontextmanager
async def organization_context(
    session: AsyncSession, organization_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Set and reset the organization context on the session.

    Usage:
        async with organization_context(session, organization_id):
            # queries inside are filtered by RLS
            ...
    """
    await set_current_organization(session, organization_id)
    try:
        yield session
    finally:
        if _is_postgres(session):
            await session.execute(text("SELECT set_config('app.organization_id', '', false);"))
