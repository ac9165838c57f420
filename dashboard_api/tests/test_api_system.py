from uuid import uuid4

from src.core.security import create_access_token
from src.db.models.system import ScheduledJobConfig
from src.services.jobs import JobRunner


async def test_system_routes_require_platform_admin(client, owner, member, org_headers):
    for account in (member, owner):
        response = await client.get("/api/system/health", headers=org_headers(account))
        assert response.status_code == 403
        assert response.json()["error"]["type"] == "PLATFORM_ADMIN_REQUIRED"


async def test_owner_of_self_created_organization_cannot_run_jobs(client, organization):
    token = create_access_token(str(uuid4()), email="newcomer@globex.io")
    headers = {"Authorization": f"Bearer {token}"}
    profile = await client.post("/api/auth/ensure-profile", json={"organization_name": "Newcomer Inc"}, headers=headers)
    own_org = profile.json()["memberships"][0]["organization_id"]

    response = await client.post(
        "/api/system/jobs/calculate_all_metrics/execute", headers={**headers, "X-Organization-ID": own_org}
    )
    assert response.status_code == 403
    assert response.json()["error"]["type"] == "PLATFORM_ADMIN_REQUIRED"


async def test_system_routes_do_not_need_an_organization(client, platform_admin):
    response = await client.get("/api/system/health", headers=platform_admin.auth)
    assert response.status_code == 200


async def test_system_health(client, platform_admin, org_headers):
    response = await client.get("/api/system/health", headers=org_headers(platform_admin))
    assert response.status_code == 200
    body = response.json()
    assert body["overall_status"] == "healthy"
    assert {c["name"] for c in body["checks"]} == {"database_response_time", "error_rate", "failed_jobs"}


async def test_record_and_report_performance(client, platform_admin, org_headers):
    for value, status_code in ((120.0, 200), (380.0, 500)):
        response = await client.post(
            "/api/system/performance",
            json={
                "metric_type": "response_time",
                "metric_name": "GET /api/users",
                "metric_value": value,
                "metric_unit": "ms",
                "endpoint": "/api/users",
                "status_code": status_code,
                "error_message": "boom" if status_code == 500 else None,
            },
            headers=org_headers(platform_admin),
        )
        assert response.status_code == 201

    listed = await client.get(
        "/api/system/performance", params={"metric_type": "response_time"}, headers=org_headers(platform_admin)
    )
    assert listed.json()["count"] == 2

    report = await client.get("/api/system/performance/report", headers=org_headers(platform_admin))
    assert report.status_code == 200
    body = report.json()
    assert body["summary"]["avg_response_time"] == 250.0
    assert body["summary"]["total_requests"] == 2
    assert len(body["trends"]["response_time"]) == 2
    assert body["top_errors"][0]["endpoint"] == "/api/users"
    assert body["top_errors"][0]["error_count"] == 1


async def test_execute_unknown_job(client, platform_admin, org_headers):
    response = await client.post("/api/system/jobs/make_coffee/execute", headers=org_headers(platform_admin))
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Unknown job: make_coffee"

    jobs = await client.get("/api/system/jobs", params={"status": "failed"}, headers=org_headers(platform_admin))
    assert [log["job_name"] for log in jobs.json()["logs"]] == ["make_coffee"]


async def test_unexpected_job_error_is_recorded(client, platform_admin, org_headers, monkeypatch):
    async def broken(self):
        raise RuntimeError("permission denied for view pg_stat_activity")

    monkeypatch.setattr(JobRunner, "monitor_system_performance", broken)
    response = await client.post(
        "/api/system/jobs/monitor_system_performance/execute", headers=org_headers(platform_admin)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "permission denied for view pg_stat_activity"

    jobs = await client.get(
        "/api/system/jobs", params={"job_name": "monitor_system_performance"}, headers=org_headers(platform_admin)
    )
    assert [log["status"] for log in jobs.json()["logs"]] == ["failed"]


async def test_execute_weekly_reports_job(client, platform_admin, org_headers):
    response = await client.post("/api/system/jobs/generate_weekly_reports/execute", headers=org_headers(platform_admin))
    body = response.json()
    assert body["success"] is True
    assert body["rows_processed"] == 1
    assert body["details"]["reports_generated"] == 1

    reports = await client.get("/api/reports", params={"report_type": "weekly"}, headers=org_headers(platform_admin))
    assert reports.json()["data"][0]["status"] == "generated"

    again = await client.post("/api/system/jobs/generate_weekly_reports/execute", headers=org_headers(platform_admin))
    assert again.json()["rows_processed"] == 0


async def test_execute_metrics_job(client, platform_admin, org_headers):
    response = await client.post("/api/system/jobs/calculate_all_metrics/execute", headers=org_headers(platform_admin))
    body = response.json()
    assert body["success"] is True
    assert body["details"] == {"organizations_processed": 1, "error_count": 0}


async def test_job_config(client, platform_admin, org_headers, session):
    missing = await client.get("/api/system/jobs/cleanup_old_data/config", headers=org_headers(platform_admin))
    assert missing.status_code == 404
    assert missing.json()["error"]["type"] == "JOB_CONFIG_NOT_FOUND"

    session.add(
        ScheduledJobConfig(job_name="cleanup_old_data", job_type="maintenance", schedule_expression="0 3 * * 0")
    )
    await session.commit()

    response = await client.patch(
        "/api/system/jobs/cleanup_old_data/config",
        json={"is_active": False, "max_failures": 5},
        headers=org_headers(platform_admin),
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert response.json()["max_failures"] == 5

    run = await client.post("/api/system/jobs/cleanup_old_data/execute", headers=org_headers(platform_admin))
    assert run.json()["success"] is True
    config = await client.get("/api/system/jobs/cleanup_old_data/config", headers=org_headers(platform_admin))
    assert config.json()["last_run_at"] is not None
    assert config.json()["failure_count"] == 0
