import time

import pytest
from starlette.requests import Request

from src.core.features import FeatureFlagManager, hash_user_id
from src.core.ratelimit import RateLimiter, client_key
from src.core.settings import AppSettings
from src.core.version import get_build_info, parse_semantic_version, version_string
from src.services.system import database_check, error_rate_check, failed_jobs_check, overall_status


def _flags(**overrides) -> FeatureFlagManager:
    return FeatureFlagManager(AppSettings(**overrides))


class TestFeatureFlags:
    def test_environment_defaults(self):
        flags = _flags(ENVIRONMENT="production")
        assert flags.is_enabled("rate_limiting")
        assert flags.is_enabled("performance_metrics")
        assert not flags.is_enabled("maintenance_mode")
        assert not flags.is_enabled("debug_mode")

    def test_override_wins(self):
        flags = _flags(ENVIRONMENT="production", FEATURE_MAINTENANCE_MODE=True, FEATURE_RATE_LIMITING=False)
        assert flags.is_enabled("maintenance_mode")
        assert not flags.is_enabled("rate_limiting")

    def test_unknown_environment_disables(self):
        assert not _flags(ENVIRONMENT="qa").is_enabled("realtime")

    def test_unknown_feature_is_disabled(self):
        assert not _flags().is_enabled("teleportation")

    def test_dependency_must_be_enabled(self):
        flags = _flags(ENVIRONMENT="development", FEATURE_AUTH=False)
        assert not flags.is_enabled("realtime")
        assert not flags.is_enabled("data_export")

    def test_results_are_cached(self):
        settings = AppSettings(ENVIRONMENT="development")
        flags = FeatureFlagManager(settings)
        assert flags.is_enabled("realtime") is True
        settings.FEATURE_REALTIME = False
        assert flags.is_enabled("realtime") is True
        flags.clear_cache()
        assert flags.is_enabled("realtime") is False

    def test_analytics_summary(self):
        summary = _flags(ENVIRONMENT="test").analytics()
        assert summary["environment"] == "test"
        assert summary["total_features"] == 9
        assert summary["enabled_features"] + summary["disabled_features"] == 9
        assert summary["features"]["realtime"]["dependencies"] == ["auth"]

    def test_user_bucket_is_stable(self):
        assert hash_user_id("user-123") == hash_user_id("user-123")
        assert 0 <= hash_user_id("user-123") < 100
        assert hash_user_id("") == 0


class TestVersion:
    def test_parse_full_version(self):
        parsed = parse_semantic_version("2.4.1-beta.2+build.7")
        assert parsed["major"] == 2
        assert parsed["minor"] == 4
        assert parsed["patch"] == 1
        assert parsed["prerelease"] == "beta.2"
        assert parsed["build"] == "build.7"

    def test_parse_plain_version(self):
        parsed = parse_semantic_version("1.0.0")
        assert parsed["prerelease"] is None
        assert parsed["build"] is None

    @pytest.mark.parametrize("value", ["1.0", "v1.0.0", "1.0.0.0", ""])
    def test_invalid_versions(self, value):
        with pytest.raises(ValueError):
            parse_semantic_version(value)

    def test_build_info_short_commit(self):
        settings = AppSettings(
            BUILD_COMMIT_SHA="0123456789abcdef", BUILD_BRANCH="main", BUILD_TIMESTAMP="1700000000000"
        )
        info = get_build_info(settings)
        assert info["commit"] == "0123456"
        assert info["commit_full"] == "0123456789abcdef"
        assert info["branch"] == "main"
        assert info["date"].startswith("2023-11-14T22:13:20")

    def test_version_string_formats(self):
        settings = AppSettings(APP_VERSION="1.2.3", BUILD_COMMIT_SHA="abcdef1234", BUILD_BRANCH="main")
        assert version_string(settings=settings) == "1.2.3"
        assert version_string("compact", settings=settings) == "1.2.3+abcdef1"
        assert version_string("full", include_branch=True, settings=settings) == "1.2.3 +abcdef1 (main)"


class TestRateLimiter:
    def test_blocks_after_budget(self):
        limiter = RateLimiter(max_requests=2, window_seconds=60)
        assert limiter.hit("1.2.3.4")[:2] == (True, 1)
        assert limiter.hit("1.2.3.4")[:2] == (True, 0)
        allowed, remaining, reset_at = limiter.hit("1.2.3.4")
        assert not allowed
        assert remaining == 0
        assert 0 < reset_at - time.time() <= 60

    def test_reset_clears_budget(self):
        limiter = RateLimiter(max_requests=1, window_seconds=10)
        assert limiter.hit("k")[0]
        assert not limiter.hit("k")[0]
        limiter.reset()
        assert limiter.hit("k")[0]

    def test_clients_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=10)
        assert limiter.hit("a")[0]
        assert limiter.hit("b")[0]

    def test_client_key_prefers_first_forwarded_hop(self):
        request = Request(
            {
                "type": "http",
                "headers": [(b"x-forwarded-for", b"10.0.0.1, 172.16.0.2")],
                "client": ("127.0.0.1", 5000),
            }
        )
        assert client_key(request) == "10.0.0.1"
        assert client_key(Request({"type": "http", "headers": [], "client": ("127.0.0.1", 5000)})) == "127.0.0.1"


class TestHealthChecks:
    def test_database_thresholds(self):
        assert database_check(120.0).status == "pass"
        assert database_check(750.0).status == "warning"
        failing = database_check(1500.0)
        assert failing.status == "fail"
        assert failing.severity == "critical"

    def test_database_check_error(self):
        result = database_check(None, "connection refused")
        assert result.status == "fail"
        assert "connection refused" in result.message

    def test_error_rate(self):
        assert error_rate_check(None).message == "No recent errors recorded"
        assert error_rate_check(0.005).status == "pass"
        assert error_rate_check(0.02).status == "warning"
        assert error_rate_check(0.06).status == "fail"

    def test_failed_jobs(self):
        assert failed_jobs_check(2).status == "pass"
        assert failed_jobs_check(3).status == "warning"
        assert failed_jobs_check(6).status == "fail"

    def test_overall(self):
        assert overall_status([database_check(10.0), failed_jobs_check(0)]) == "healthy"
        assert overall_status([database_check(600.0), failed_jobs_check(0)]) == "warning"
        assert overall_status([database_check(600.0), failed_jobs_check(9)]) == "critical"
