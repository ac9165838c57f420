import pytest

from src.core import ratelimit
from src.core.features import get_feature_flags
from src.core.settings import get_app_settings


@pytest.fixture
def flags(monkeypatch):
    """Set FEATURE_* overrides for one test and rebuild the cached settings."""

    def _set(**values):
        for name, value in values.items():
            monkeypatch.setenv(f"FEATURE_{name.upper()}", "true" if value else "false")
        get_app_settings.cache_clear()
        get_feature_flags.cache_clear()

    monkeypatch.setattr(ratelimit, "_limiter", None)
    yield _set
    monkeypatch.undo()
    get_app_settings.cache_clear()
    get_feature_flags.cache_clear()


async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert body["checks"]["database"]["status"] == "pass"
    assert body["checks"]["configuration"]["status"] == "pass"
    assert response.headers["X-Response-Time"].endswith("ms")


async def test_version(client):
    response = await client.get("/api/version")
    assert response.status_code == 200
    body = response.json()
    assert body["version"] == body["app"]
    assert body["semantic"]["major"] >= 1
    assert body["environment"] == "test"
    assert set(body["build"]) >= {"commit", "branch", "date"}


async def test_correlation_id_is_echoed(client):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Correlation-ID"] == "req-123"


async def test_error_envelope(client, owner):
    response = await client.get("/api/users", headers={**owner.auth, "X-Correlation-ID": "corr-1"})
    body = response.json()
    assert body["status"] == 400
    assert body["error"]["type"] == "ORGANIZATION_REQUIRED"
    assert body["correlation_id"] == "corr-1"
    assert body["path"] == "/api/users"
    assert body["method"] == "GET"
    assert body["timestamp"]


async def test_organization_id_from_query_is_reported(client, owner, other_organization):
    response = await client.get(
        "/api/users", params={"organization_id": str(other_organization.id)}, headers=owner.auth
    )
    assert response.status_code == 403
    assert response.json()["organization_id"] == str(other_organization.id)


async def test_validation_error_details(client, owner, org_headers):
    response = await client.post("/api/assessments", json={}, headers=org_headers(owner))
    assert response.status_code == 400
    details = response.json()["error"]["details"]
    assert details[0]["loc"] == ["body", "title"]
    assert "ctx" not in details[0]


async def test_maintenance_mode(client, owner, flags):
    flags(maintenance_mode=True)
    response = await client.get("/api/auth/me", headers=owner.auth)
    assert response.status_code == 503
    assert response.json()["error"]["type"] == "MAINTENANCE_MODE"

    assert (await client.get("/api/health")).status_code == 200
    assert (await client.get("/api/version")).status_code == 200


async def test_rate_limiting(client, owner, flags, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    flags(rate_limiting=True)

    first = await client.get("/api/auth/me", headers=owner.auth)
    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert (await client.get("/api/auth/me", headers=owner.auth)).status_code == 200

    blocked = await client.get("/api/auth/me", headers=owner.auth)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["type"] == "RATE_LIMITED"
    assert int(blocked.headers["Retry-After"]) >= 1

    assert (await client.get("/api/health")).status_code == 200

    other_client = await client.get("/api/auth/me", headers={**owner.auth, "X-Forwarded-For": "10.0.0.9"})
    assert other_client.status_code == 200


async def test_performance_metrics_are_recorded(client, owner, platform_admin, flags):
    flags(performance_metrics=True)
    await client.get("/api/auth/me", headers=owner.auth)
    flags(performance_metrics=False)

    response = await client.get(
        "/api/system/performance", params={"metric_type": "response_time"}, headers=platform_admin.auth
    )
    rows = response.json()["data"]
    assert [r["endpoint"] for r in rows] == ["/api/auth/me"]
    assert rows[0]["status_code"] == 200
