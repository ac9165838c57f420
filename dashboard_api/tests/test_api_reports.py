import pytest

from src.repositories.organizations import OrganizationRepository

PERIOD = {"report_period_start": "2024-01-08", "report_period_end": "2024-01-14"}


@pytest.fixture
async def report(client, owner, org_headers):
    response = await client.post(
        "/api/reports", json={**PERIOD, "title": "Weekly Report - Acme", "report_type": "weekly"}, headers=org_headers(owner)
    )
    assert response.status_code == 201
    return response.json()


async def test_create_report_is_draft(report, owner):
    assert report["status"] == "draft"
    assert report["generated_by"] == str(owner.id)


async def test_period_must_be_ordered(client, owner, org_headers):
    response = await client.post(
        "/api/reports",
        json={"report_period_start": "2024-01-14", "report_period_end": "2024-01-08", "title": "Backwards"},
        headers=org_headers(owner),
    )
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


async def test_member_cannot_create_report(client, member, org_headers):
    response = await client.post("/api/reports", json={**PERIOD, "title": "Nope"}, headers=org_headers(member))
    assert response.status_code == 403


async def test_list_reports(client, member, report, org_headers):
    response = await client.get("/api/reports", params={"status": "draft"}, headers=org_headers(member))
    assert response.json()["count"] == 1
    response = await client.get("/api/reports", params={"report_type": "monthly"}, headers=org_headers(member))
    assert response.json() == {"data": [], "count": 0}


async def test_reports_are_scoped_to_organization(client, owner, report, other_organization, session):
    await OrganizationRepository(session).create_membership(
        organization_id=other_organization.id, user_id=owner.id, role="owner", is_active=True
    )
    await session.commit()
    headers = {**owner.auth, "X-Organization-ID": str(other_organization.id)}
    response = await client.get(f"/api/reports/{report['id']}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "REPORT_NOT_FOUND"


async def test_update_status_records_reviewer_and_publication(client, owner, report, org_headers):
    url = f"/api/reports/{report['id']}"
    response = await client.patch(url, json={"status": "reviewed"}, headers=org_headers(owner))
    assert response.json()["reviewed_by"] == str(owner.id)

    response = await client.patch(url, json={"status": "published", "title": "Final"}, headers=org_headers(owner))
    body = response.json()
    assert body["status"] == "published"
    assert body["title"] == "Final"
    assert body["published_at"] is not None


async def test_delete_report(client, owner, report, org_headers):
    url = f"/api/reports/{report['id']}"
    response = await client.delete(url, headers=org_headers(owner))
    assert response.json()["message"] == "Report deleted successfully"
    assert (await client.get(url, headers=org_headers(owner))).status_code == 404


async def test_section_lifecycle(client, owner, report, org_headers):
    base = f"/api/reports/{report['id']}/sections"
    created = await client.post(
        base,
        json={"section_type": "custom", "section_title": "Notes", "content": "Draft"},
        headers=org_headers(owner),
    )
    assert created.status_code == 201
    section_id = created.json()["id"]

    updated = await client.patch(f"{base}/{section_id}", json={"content": "Final"}, headers=org_headers(owner))
    assert updated.json()["content"] == "Final"

    detail = await client.get(f"/api/reports/{report['id']}", headers=org_headers(owner))
    assert [s["section_title"] for s in detail.json()["sections"]] == ["Notes"]

    deleted = await client.delete(f"{base}/{section_id}", headers=org_headers(owner))
    assert deleted.json()["message"] == "Section deleted successfully"
    missing = await client.delete(f"{base}/{section_id}", headers=org_headers(owner))
    assert missing.status_code == 404
    assert missing.json()["error"]["type"] == "SECTION_NOT_FOUND"


async def test_generate_builds_default_sections(client, owner, report, org_headers):
    url = f"/api/reports/{report['id']}/generate"
    response = await client.post(url, headers=org_headers(owner))
    assert response.status_code == 200
    body = response.json()
    assert body["regenerated"] is True
    assert body["export_size_bytes"] is None
    generated = body["report"]
    assert generated["status"] == "generated"
    assert generated["executive_summary"].startswith(
        "This weekly report covers the period from 2024-01-08 to 2024-01-14."
    )
    assert [s["section_type"] for s in generated["sections"]] == [
        "metrics_summary",
        "team_performance",
        "activity_trends",
    ]
    assert [s["section_order"] for s in generated["sections"]] == [1, 2, 3]

    again = await client.post(url, json={"export_format": "csv"}, headers=org_headers(owner))
    assert again.json()["regenerated"] is False
    assert again.json()["export_size_bytes"] > 0

    forced = await client.post(url, json={"force_regenerate": True}, headers=org_headers(owner))
    assert forced.json()["regenerated"] is True
    assert len(forced.json()["report"]["sections"]) == 3


async def test_generate_with_template(client, owner, report, org_headers):
    template = await client.post(
        "/api/reports/templates",
        json={
            "name": "Executive brief",
            "template_type": "weekly",
            "sections_config": {
                "sections": [
                    {"type": "metrics_summary", "title": "Headline Numbers"},
                    {"type": "custom_notes", "title": "Notes"},
                ]
            },
        },
        headers=org_headers(owner),
    )
    assert template.status_code == 201

    response = await client.post(
        f"/api/reports/{report['id']}/generate",
        json={"template_id": template.json()["id"]},
        headers=org_headers(owner),
    )
    sections = response.json()["report"]["sections"]
    assert [s["section_title"] for s in sections] == ["Headline Numbers", "Notes"]
    assert sections[1]["content"] == "Content for Notes section"
    assert response.json()["report"]["template_id"] == template.json()["id"]


async def test_generate_with_unknown_template(client, owner, report, org_headers):
    response = await client.post(
        f"/api/reports/{report['id']}/generate",
        json={"template_id": "00000000-0000-0000-0000-000000000000"},
        headers=org_headers(owner),
    )
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "TEMPLATE_NOT_FOUND"


async def test_export_csv(client, owner, member, report, org_headers):
    await client.post(f"/api/reports/{report['id']}/generate", headers=org_headers(owner))
    response = await client.get(
        f"/api/reports/{report['id']}/export", params={"format": "csv"}, headers=org_headers(member)
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="weekly_report_acme.csv"'
    assert response.text.splitlines()[0] == "order,type,title,content"


async def test_export_pdf_by_default(client, owner, report, org_headers):
    response = await client.get(f"/api/reports/{report['id']}/export", headers=org_headers(owner))
    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")


async def test_export_rejects_unknown_format(client, owner, report, org_headers):
    response = await client.get(
        f"/api/reports/{report['id']}/export", params={"format": "docx"}, headers=org_headers(owner)
    )
    assert response.status_code == 400


async def test_templates_and_distribution_lists(client, owner, member, org_headers):
    await client.post(
        "/api/reports/templates",
        json={"name": "Zeta", "template_type": "weekly", "is_default": True},
        headers=org_headers(owner),
    )
    await client.post(
        "/api/reports/templates", json={"name": "Alpha", "template_type": "monthly"}, headers=org_headers(owner)
    )
    response = await client.get("/api/reports/templates", headers=org_headers(member))
    assert [t["name"] for t in response.json()] == ["Zeta", "Alpha"]
    response = await client.get("/api/reports/templates", params={"template_type": "monthly"}, headers=org_headers(member))
    assert [t["name"] for t in response.json()] == ["Alpha"]

    forbidden = await client.post(
        "/api/reports/templates", json={"name": "X", "template_type": "weekly"}, headers=org_headers(member)
    )
    assert forbidden.status_code == 403

    created = await client.post(
        "/api/reports/distribution-lists",
        json={
            "list_name": "Leadership",
            "recipient_emails": ["CEO@Acme.io"],
            "distribution_schedule": "weekly",
            "schedule_day_of_week": 1,
            "schedule_time": "09:00:00",
        },
        headers=org_headers(owner),
    )
    assert created.status_code == 201
    assert created.json()["recipient_emails"] == ["ceo@acme.io"]

    response = await client.get("/api/reports/distribution-lists", headers=org_headers(member))
    assert [d["list_name"] for d in response.json()] == ["Leadership"]

    invalid = await client.post(
        "/api/reports/distribution-lists",
        json={"list_name": "Bad", "schedule_day_of_week": 9},
        headers=org_headers(owner),
    )
    assert invalid.status_code == 400
