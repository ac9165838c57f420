async def _track(client, headers, activity_type="page_view", **extra):
    response = await client.post(
        "/api/dashboard/activity", json={"activity_type": activity_type, **extra}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


async def test_record_and_list_metrics(client, owner, member, org_headers):
    payload = {"metric_type": "business_kpis", "metric_name": "nps", "metric_value": 42.5, "metadata": {"n": 12}}
    response = await client.post("/api/dashboard/metrics", json=payload, headers=org_headers(owner))
    assert response.status_code == 201
    assert response.json()["metadata"] == {"n": 12}

    response = await client.get(
        "/api/dashboard/metrics", params={"metric_type": "business_kpis"}, headers=org_headers(member)
    )
    body = response.json()
    assert body["count"] == 1
    assert body["data"][0]["metric_value"] == 42.5

    response = await client.get("/api/dashboard/metrics", params={"metric_name": "other"}, headers=org_headers(member))
    assert response.json() == {"data": [], "count": 0}


async def test_member_cannot_record_metric(client, member, org_headers):
    payload = {"metric_type": "business_kpis", "metric_name": "nps", "metric_value": 1}
    response = await client.post("/api/dashboard/metrics", json=payload, headers=org_headers(member))
    assert response.status_code == 403


async def test_track_and_list_activity(client, owner, member, org_headers):
    tracked = await _track(client, org_headers(member), page_path="/dashboard", duration_seconds=30)
    assert tracked["user_id"] == str(member.id)
    await _track(client, org_headers(owner), activity_type="login")

    response = await client.get(
        "/api/dashboard/activity", params={"user_id": str(member.id)}, headers=org_headers(owner)
    )
    assert [a["page_path"] for a in response.json()] == ["/dashboard"]

    response = await client.get(
        "/api/dashboard/activity", params={"activity_type": "login"}, headers=org_headers(owner)
    )
    assert len(response.json()) == 1


async def test_calculate_metrics(client, owner, member, org_headers):
    await _track(client, org_headers(member))

    response = await client.post(
        "/api/dashboard/metrics/calculate", json={"metric_type": "user_engagement"}, headers=org_headers(owner)
    )
    assert response.status_code == 200
    metrics = response.json()["metrics"]
    assert len(metrics) == 1
    assert metrics[0]["metric_name"] == "active_user_percentage"
    assert metrics[0]["metric_value"] == 50.0
    assert metrics[0]["metadata"] == {"active_users": 1, "total_users": 2}

    stored = await client.get(
        "/api/dashboard/metrics", params={"metric_type": "user_engagement"}, headers=org_headers(owner)
    )
    assert stored.json()["data"][0]["calculation_method"] == "automated"


async def test_calculate_all_metric_types(client, owner, org_headers):
    response = await client.post("/api/dashboard/metrics/calculate", headers=org_headers(owner))
    assert response.status_code == 200
    names = {m["metric_name"] for m in response.json()["metrics"]}
    assert {"active_user_percentage", "completion_rate", "average_scores"} <= names


async def test_calculate_requires_owner_or_admin(client, member, org_headers):
    response = await client.post("/api/dashboard/metrics/calculate", headers=org_headers(member))
    assert response.status_code == 403


async def test_summary(client, owner, member, org_headers):
    await _track(client, org_headers(member), duration_seconds=60)
    await client.post(
        "/api/dashboard/metrics",
        json={"metric_type": "business_kpis", "metric_name": "nps", "metric_value": 10},
        headers=org_headers(owner),
    )

    response = await client.get("/api/dashboard/summary", headers=org_headers(member))
    assert response.status_code == 200
    body = response.json()
    assert body["user_stats"]["total_users"] == 2
    assert body["assessment_stats"]["total_assessments"] == 0
    assert body["assessment_stats"]["completion_rate"] == 0.0
    assert body["activity_stats"]["total_activities"] == 1
    assert body["activity_stats"]["active_users_period"] == 1
    assert body["latest_metrics"][0]["name"] == "nps"


async def test_realtime(client, member, org_headers):
    await _track(client, org_headers(member))
    response = await client.get("/api/dashboard/realtime", headers=org_headers(member))
    assert response.status_code == 200
    body = response.json()
    assert body["active_users_15min"] == 1
    assert body["activities_last_hour"] == 1
    assert body["system_status"] == "healthy"


async def test_trends(client, owner, org_headers):
    for value in (10, 20):
        await client.post(
            "/api/dashboard/metrics",
            json={"metric_type": "business_kpis", "metric_name": "nps", "metric_value": value},
            headers=org_headers(owner),
        )
    response = await client.get(
        "/api/dashboard/trends",
        params={"metric_type": "business_kpis", "metric_name": "nps", "periods": 2},
        headers=org_headers(owner),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["overall_trend"] == "insufficient_data"
    assert body["periods_analyzed"] == 2
    assert len(body["trends"]) == 1
    assert body["trends"][0]["value"] == 15.0


async def test_trends_require_metric(client, owner, org_headers):
    response = await client.get("/api/dashboard/trends", params={"metric_type": "business_kpis"}, headers=org_headers(owner))
    assert response.status_code == 400

    response = await client.get(
        "/api/dashboard/trends", params={"metric_type": "weather", "metric_name": "x"}, headers=org_headers(owner)
    )
    assert response.status_code == 400


async def test_generate_and_list_aggregations(client, owner, member, org_headers):
    created = await client.post(
        "/api/assessments",
        json={"title": "Member profile", "user_id": str(member.id), "assignments": [str(member.id)]},
        headers=org_headers(owner),
    )
    assert created.status_code == 201

    response = await client.post("/api/dashboard/aggregations", headers=org_headers(owner))
    assert response.status_code == 200
    assert response.json()["rows_created"] == 2

    response = await client.get(
        "/api/dashboard/aggregations", params={"aggregation_type": "ocean_department"}, headers=org_headers(member)
    )
    rows = response.json()
    assert [r["aggregation_key"] for r in rows] == ["Engineering"]
    assert rows[0]["total_assessments"] == 1

    again = await client.post("/api/dashboard/aggregations", headers=org_headers(owner))
    assert again.json()["rows_created"] == 2
    response = await client.get("/api/dashboard/aggregations", headers=org_headers(member))
    assert len(response.json()) == 2


async def test_metric_history_is_empty_by_default(client, member, org_headers):
    response = await client.get("/api/dashboard/metrics/history", headers=org_headers(member))
    assert response.status_code == 200
    assert response.json() == []
