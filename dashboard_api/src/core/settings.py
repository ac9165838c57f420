from __future__ import annotations

import json
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_list(v, default: List[str]) -> List[str]:
    if v is None:
        return default
    if isinstance(v, str):
        stripped = v.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(p) for p in parsed] or default
        parts = [p.strip() for p in v.split(",") if p.strip()]
        return parts or default
    if isinstance(v, list):
        return v or default
    return default


class AppSettings(BaseSettings):
    """
    Application-level settings for the dashboard API.

    Database connection settings live in src.db.config.Settings.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Assessment Dashboard API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Multi-tenant assessment and reporting dashboard. Provides users, assessments, "
            "dashboard metrics, weekly reports, system monitoring and realtime updates."
        )
    )
    APP_VERSION: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("APP_VERSION", "BUILD_VERSION"),
        description="Semantic version of the deployed build. Defaults to the package version.",
    )

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed a demo organization, owner and job configs after migrations.",
    )
    SEED_OWNER_EMAIL: str = Field(default="owner@example.com")
    SEED_OWNER_PASSWORD: str = Field(default="ChangeMe123!")

    ENVIRONMENT: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
        description="development | staging | production | test",
    )
    LOG_LEVEL: str = Field(default="INFO")

    # Supabase project (database is reached directly through src.db.config)
    SUPABASE_URL: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    )
    SUPABASE_ANON_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
    )
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(default=None)
    SUPABASE_JWT_SECRET: Optional[str] = Field(default=None)

    # JWT
    JWT_SECRET_KEY: Optional[str] = Field(
        default=None, description="HS256 signing secret. Falls back to SUPABASE_JWT_SECRET."
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_AUDIENCE: Optional[str] = Field(
        default=None, description="Expected 'aud' claim (Supabase uses 'authenticated')."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # Rate limiting
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60)
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=60)

    # Realtime
    REALTIME_UPDATE_INTERVAL_SECONDS: int = Field(default=30)
    REALTIME_START_UPDATE_CYCLE: bool = Field(
        default=True, description="Start the periodic dashboard push task at startup."
    )

    # Build metadata
    BUILD_TIMESTAMP: Optional[str] = Field(default=None, description="Build time in epoch milliseconds.")
    BUILD_COMMIT_SHA: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("BUILD_COMMIT_SHA", "GITHUB_SHA")
    )
    BUILD_BRANCH: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("BUILD_BRANCH", "GITHUB_REF_NAME")
    )
    BUILD_TAG: Optional[str] = Field(default=None)

    # Feature overrides; None means "use the environment default"
    FEATURE_AUTH: Optional[bool] = None
    FEATURE_ANALYTICS: Optional[bool] = None
    FEATURE_MAINTENANCE_MODE: Optional[bool] = None
    FEATURE_DEBUG_MODE: Optional[bool] = None
    FEATURE_RATE_LIMITING: Optional[bool] = None
    FEATURE_PERFORMANCE_METRICS: Optional[bool] = None
    FEATURE_REALTIME: Optional[bool] = None
    FEATURE_DATA_EXPORT: Optional[bool] = None
    FEATURE_EMAIL_NOTIFICATIONS: Optional[bool] = None

    # Automatically load from .env at runtime.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before")
    @classmethod
    def _parse_list(cls, v):
        """Accept both JSON array format and comma-separated formats."""
        return _split_list(v, ["*"])

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def _normalize_environment(cls, v):
        if not v:
            return "development"
        aliases = {"dev": "development", "prod": "production", "stage": "staging"}
        v = str(v).strip().lower()
        return aliases.get(v, v)

    @property
    def jwt_secret(self) -> str:
        """Secret used to verify and sign HS256 tokens."""
        return self.JWT_SECRET_KEY or self.SUPABASE_JWT_SECRET or "change-me-in-production"

    def feature_override(self, env_key: str) -> Optional[bool]:
        return getattr(self, env_key, None)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return the process-wide AppSettings populated from environment variables.

    Tests that change the environment call get_app_settings.cache_clear().
    """
    return AppSettings()
