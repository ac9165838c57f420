from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Database settings.

    Reads from environment variables (or .env via pydantic-settings):
      - POSTGRES_URL (or DATABASE_URL, e.g. the Supabase connection string)
      - POSTGRES_USER / POSTGRES_PASSWORD / POSTGRES_DB / POSTGRES_HOST / POSTGRES_PORT

    Non-Postgres URLs (sqlite+aiosqlite for tests) are used as given.
    """

    POSTGRES_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("POSTGRES_URL", "DATABASE_URL"),
        description="If provided, full database connection URL.",
    )
    POSTGRES_USER: Optional[str] = Field(default=None, description="DB username")
    POSTGRES_PASSWORD: Optional[str] = Field(default=None, description="DB password")
    POSTGRES_DB: Optional[str] = Field(default=None, description="Database name")
    POSTGRES_PORT: Optional[int] = Field(default=5432, description="Database port (default 5432)")
    POSTGRES_HOST: Optional[str] = Field(default="localhost", description="Database host (default localhost)")

    # SQLAlchemy engine options
    SQL_ECHO: bool = Field(default=False, description="Echo SQL statements for debugging (default False)")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @property
    def database_url(self) -> str:
        """
        Base database URL. Prefers POSTGRES_URL, otherwise built from POSTGRES_* parts.
        """
        if self.POSTGRES_URL:
            return self.POSTGRES_URL

        if not all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
            raise ValueError(
                "Database configuration missing. Ensure POSTGRES_URL (or DATABASE_URL) or "
                "POSTGRES_USER, POSTGRES_PASSWORD, and POSTGRES_DB are set in the environment."
            )
        host = self.POSTGRES_HOST or "localhost"
        port = self.POSTGRES_PORT or 5432
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{host}:{port}/{self.POSTGRES_DB}"

    @property
    def is_postgres(self) -> bool:
        return bool(re.match(r"^postgres(ql)?(\+\w+)?://", self.database_url))

    @property
    def async_database_url(self) -> str:
        """Asyncpg-enabled SQLAlchemy URL for Postgres; other URLs unchanged."""
        url = self.database_url
        if not self.is_postgres or url.startswith("postgresql+asyncpg://"):
            return url
        return re.sub(r"^postgres(ql)?(\+\w+)?://", "postgresql+asyncpg://", url)

    @property
    def sync_database_url(self) -> str:
        """Driver-less URL for Alembic offline mode."""
        url = self.database_url
        if not self.is_postgres:
            return url
        return re.sub(r"^postgres(ql)?(\+\w+)?://", "postgresql://", url)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide database settings."""
    return Settings()
