import pytest

QUESTIONS = [
    {"id": "q1", "text": "I enjoy new ideas", "options": ["a", "b"], "correct_answer": "a"},
    {"id": "q2", "text": "I plan ahead", "options": ["a", "b"], "correct_answer": "b"},
]

OCEAN = {
    "openness": 72.5,
    "conscientiousness": 64.0,
    "extraversion": 40.0,
    "agreeableness": 81.0,
    "neuroticism": 22.0,
}


@pytest.fixture
async def assessment(client, owner, member, org_headers):
    response = await client.post(
        "/api/assessments",
        json={
            "title": "Personality baseline",
            "type": "ocean",
            "questions": QUESTIONS,
            "settings": {"max_attempts": 1},
            "assignments": [str(member.id), str(member.id)],
        },
        headers=org_headers(owner),
    )
    assert response.status_code == 201
    return response.json()


async def test_create_assessment(assessment, member):
    assert assessment["status"] == "active"
    assert assessment["type"] == "ocean"
    assert [a["user_id"] for a in assessment["assignments"]] == [str(member.id)]
    assert assessment["assignments"][0]["attempts"] == 0


async def test_member_cannot_create(client, member, org_headers):
    response = await client.post("/api/assessments", json={"title": "Nope"}, headers=org_headers(member))
    assert response.status_code == 403


async def test_create_requires_title(client, owner, org_headers):
    response = await client.post("/api/assessments", json={"title": ""}, headers=org_headers(owner))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


async def test_list_assessments_filtered_by_assignee(client, owner, member, assessment, org_headers):
    response = await client.get("/api/assessments", headers=org_headers(owner))
    assert response.json()["pagination"]["total"] == 1

    response = await client.get("/api/assessments", params={"user_id": str(owner.id)}, headers=org_headers(owner))
    assert response.json()["assessments"] == []

    response = await client.get(
        "/api/assessments", params={"user_id": str(member.id), "status": "active"}, headers=org_headers(owner)
    )
    assert [a["id"] for a in response.json()["assessments"]] == [assessment["id"]]


async def test_get_assessment_visibility(client, owner, member, assessment, org_headers):
    response = await client.get(f"/api/assessments/{assessment['id']}", headers=org_headers(member))
    assert response.status_code == 200
    assert response.json()["title"] == "Personality baseline"

    response = await client.get("/api/assessments/00000000-0000-0000-0000-000000000000", headers=org_headers(owner))
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "ASSESSMENT_NOT_FOUND"


async def test_submit_and_read_results(client, member, assessment, org_headers):
    response = await client.post(
        f"/api/assessments/{assessment['id']}/submit",
        json={
            "responses": [{"question_id": "q1", "value": "a"}, {"question_id": "q2", "value": "a"}],
            "ocean_scores": OCEAN,
        },
        headers=org_headers(member),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["score"] == 50.0
    assert body["message"] == "Assessment submitted successfully"
    assert body["submission"]["status"] == "completed"

    response = await client.get(f"/api/assessments/{assessment['id']}/results", headers=org_headers(member))
    assert response.status_code == 200
    results = response.json()
    assert results["score"] == 50.0
    assert results["ocean_scores"]["openness"] == 72.5

    again = await client.post(
        f"/api/assessments/{assessment['id']}/submit",
        json={"responses": [{"question_id": "q1", "value": "a"}]},
        headers=org_headers(member),
    )
    assert again.status_code == 400
    assert again.json()["error"]["type"] == "ALREADY_COMPLETED"


async def test_submit_requires_assignment(client, owner, assessment, org_headers):
    response = await client.post(
        f"/api/assessments/{assessment['id']}/submit",
        json={"responses": [{"question_id": "q1", "value": "a"}]},
        headers=org_headers(owner),
    )
    assert response.status_code == 403
    assert response.json()["error"]["type"] == "NOT_ASSIGNED"


async def test_submit_requires_responses(client, member, assessment, org_headers):
    response = await client.post(
        f"/api/assessments/{assessment['id']}/submit", json={"responses": []}, headers=org_headers(member)
    )
    assert response.status_code == 400


async def test_results_without_submission(client, member, assessment, org_headers):
    response = await client.get(f"/api/assessments/{assessment['id']}/results", headers=org_headers(member))
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "NO_SUBMISSION"


async def test_update_and_complete(client, owner, assessment, org_headers):
    url = f"/api/assessments/{assessment['id']}"
    response = await client.patch(url, json={"title": "Renamed"}, headers=org_headers(owner))
    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"

    response = await client.patch(url, json={"status": "completed"}, headers=org_headers(owner))
    assert response.json()["completed_at"] is not None

    response = await client.patch(url, json={"title": "Too late"}, headers=org_headers(owner))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "ASSESSMENT_COMPLETED"


async def test_delete_archives(client, owner, assessment, org_headers):
    url = f"/api/assessments/{assessment['id']}"
    response = await client.delete(url, headers=org_headers(owner))
    assert response.status_code == 200
    assert response.json()["message"] == "Assessment archived successfully"

    response = await client.get(url, headers=org_headers(owner))
    assert response.json()["status"] == "archived"
    assert response.json()["archived_at"] is not None
