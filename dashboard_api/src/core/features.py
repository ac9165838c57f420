from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from src.core.settings import AppSettings, get_app_settings

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("production", "staging", "development", "test")
CACHE_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class FeatureDefinition:
    key: str
    name: str
    description: str
    environments: Dict[str, bool]
    rollout: Dict[str, int]
    dependencies: Tuple[str, ...] = field(default_factory=tuple)


def _per_env(production, staging, development, test) -> Dict:
    return dict(zip(ENVIRONMENTS, (production, staging, development, test)))


FEATURE_DEFINITIONS: Dict[str, FeatureDefinition] = {
    "auth": FeatureDefinition(
        key="FEATURE_AUTH",
        name="Authentication System",
        description="Enable user authentication and authorization",
        environments=_per_env(True, True, True, True),
        rollout=_per_env(100, 100, 100, 100),
    ),
    "analytics": FeatureDefinition(
        key="FEATURE_ANALYTICS",
        name="Analytics and Tracking",
        description="Persist user analytics events",
        environments=_per_env(True, True, False, False),
        rollout=_per_env(100, 100, 0, 0),
    ),
    "maintenance_mode": FeatureDefinition(
        key="FEATURE_MAINTENANCE_MODE",
        name="Maintenance Mode",
        description="Answer every API request except health and version with 503",
        environments=_per_env(False, False, False, False),
        rollout=_per_env(0, 0, 0, 0),
    ),
    "debug_mode": FeatureDefinition(
        key="FEATURE_DEBUG_MODE",
        name="Debug Mode",
        description="Enable debug logging",
        environments=_per_env(False, True, True, True),
        rollout=_per_env(0, 100, 100, 100),
    ),
    "rate_limiting": FeatureDefinition(
        key="FEATURE_RATE_LIMITING",
        name="API Rate Limiting",
        description="Enable per-client request throttling",
        environments=_per_env(True, True, False, False),
        rollout=_per_env(100, 100, 0, 0),
    ),
    "performance_metrics": FeatureDefinition(
        key="FEATURE_PERFORMANCE_METRICS",
        name="Performance Metrics",
        description="Record request timings into system_performance_metrics",
        environments=_per_env(True, True, False, False),
        rollout=_per_env(100, 100, 0, 0),
    ),
    "realtime": FeatureDefinition(
        key="FEATURE_REALTIME",
        name="Realtime Updates",
        description="Enable the dashboard WebSocket channel and periodic pushes",
        environments=_per_env(True, True, True, True),
        rollout=_per_env(100, 100, 100, 100),
        dependencies=("auth",),
    ),
    "data_export": FeatureDefinition(
        key="FEATURE_DATA_EXPORT",
        name="Data Export",
        description="Enable report file exports",
        environments=_per_env(True, True, True, True),
        rollout=_per_env(100, 100, 100, 100),
        dependencies=("auth",),
    ),
    "email_notifications": FeatureDefinition(
        key="FEATURE_EMAIL_NOTIFICATIONS",
        name="Email Notifications",
        description="Send invitation and report distribution emails",
        environments=_per_env(True, True, False, False),
        rollout=_per_env(100, 100, 0, 0),
        dependencies=("auth",),
    ),
}


def hash_user_id(user_id: str) -> int:
    """Stable 0..99 bucket for a user id (32-bit string hash)."""
    h = 0
    for ch in user_id:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h) % 100


class FeatureFlagManager:
    """Evaluate feature flags from env overrides, environment defaults, dependencies and rollout."""

    def __init__(self, settings: Optional[AppSettings] = None) -> None:
        self.settings = settings or get_app_settings()
        self.environment = self.settings.ENVIRONMENT
        self._cache: Dict[str, Tuple[bool, float]] = {}

    # PUBLIC_INTERFACE
    def is_enabled(self, feature_name: str, user_id: Optional[str] = None) -> bool:
        """Return whether the feature is on for the (optional) user. Results are cached for 5 minutes."""
        cache_key = f"{feature_name}:{user_id or 'global'}"
        cached = self._cache.get(cache_key)
        now = time.monotonic()
        if cached and now - cached[1] < CACHE_TTL_SECONDS:
            return cached[0]
        result = self._evaluate(feature_name, user_id)
        self._cache[cache_key] = (result, now)
        return result

    def _evaluate(self, feature_name: str, user_id: Optional[str]) -> bool:
        feature = FEATURE_DEFINITIONS.get(feature_name)
        if feature is None:
            logger.warning("Unknown feature flag: %s", feature_name)
            return False

        override = self.settings.feature_override(feature.key)
        if override is not None:
            return bool(override)

        if not feature.environments.get(self.environment, False):
            return False

        for dependency in feature.dependencies:
            if not self.is_enabled(dependency, user_id):
                return False

        pct = feature.rollout.get(self.environment, 0)
        if pct <= 0:
            return False
        if pct >= 100:
            return True
        bucket = hash_user_id(str(user_id)) if user_id else random.random() * 100
        return bucket < pct

    # PUBLIC_INTERFACE
    def enabled_features(self, user_id: Optional[str] = None) -> Dict[str, bool]:
        return {name: self.is_enabled(name, user_id) for name in FEATURE_DEFINITIONS}

    # PUBLIC_INTERFACE
    def analytics(self) -> Dict:
        """Summarize flag state for the current environment."""
        features: Dict[str, Dict] = {}
        for name, feature in FEATURE_DEFINITIONS.items():
            features[name] = {
                "enabled": self.is_enabled(name),
                "environment_default": feature.environments.get(self.environment),
                "rollout_percentage": feature.rollout.get(self.environment, 0),
                "dependencies": list(feature.dependencies),
            }
        enabled = sum(1 for f in features.values() if f["enabled"])
        return {
            "environment": self.environment,
            "total_features": len(features),
            "enabled_features": enabled,
            "disabled_features": len(features) - enabled,
            "features": features,
        }

    def clear_cache(self) -> None:
        self._cache.clear()

    def list_definitions(self) -> List[str]:
        return list(FEATURE_DEFINITIONS)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_feature_flags() -> FeatureFlagManager:
    """Process-wide feature flag manager bound to the current AppSettings."""
    return FeatureFlagManager(get_app_settings())


# PUBLIC_INTERFACE
def is_feature_enabled(feature_name: str, user_id: Optional[str] = None) -> bool:
    return get_feature_flags().is_enabled(feature_name, user_id)
