from uuid import UUID, uuid4

from src.core.security import create_access_token, create_refresh_token
from src.db.models.organizations import User
from src.repositories.organizations import OrganizationRepository

PASSWORD = "s3cret-password"


async def test_login_issues_token_pair(client, owner):
    response = await client.post("/api/auth/login", data={"username": owner.email, "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["profile"]["email"] == owner.email
    assert me.json()["profile"]["last_login"] is not None


async def test_login_rejects_wrong_password(client, owner):
    response = await client.post("/api/auth/login", data={"username": owner.email, "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["error"]["type"] == "INVALID_CREDENTIALS"
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_login_unknown_user(client):
    response = await client.post("/api/auth/login", data={"username": "ghost@acme.io", "password": PASSWORD})
    assert response.status_code == 401


async def test_refresh(client, owner):
    response = await client.post("/api/auth/refresh", json={"refresh_token": create_refresh_token(str(owner.id))})
    assert response.status_code == 200
    assert response.json()["access_token"]


async def test_refresh_rejects_access_token(client, owner):
    response = await client.post("/api/auth/refresh", json={"refresh_token": owner.token})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid token type"


async def test_refresh_token_is_not_an_access_token(client, owner):
    headers = {"Authorization": f"Bearer {create_refresh_token(str(owner.id))}"}
    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401


async def test_me_lists_memberships(client, owner, organization):
    response = await client.get("/api/auth/me", headers=owner.auth)
    memberships = response.json()["memberships"]
    assert memberships == [
        {
            "organization_id": str(organization.id),
            "organization_name": "Acme Learning",
            "role": "owner",
            "joined_at": memberships[0]["joined_at"],
        }
    ]


async def test_ensure_profile_creates_profile_and_organization(client):
    user_id = uuid4()
    token = create_access_token(str(user_id), email="Fresh@Acme.io", user_metadata={"full_name": "Fresh Face"})
    headers = {"Authorization": f"Bearer {token}"}

    response = await client.post("/api/auth/ensure-profile", json={"organization_name": "Fresh Co"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["created"] is True
    assert body["profile"]["id"] == str(user_id)
    assert body["profile"]["email"] == "fresh@acme.io"
    assert body["profile"]["full_name"] == "Fresh Face"
    assert [(m["organization_name"], m["role"]) for m in body["memberships"]] == [("Fresh Co", "owner")]

    again = await client.post("/api/auth/ensure-profile", json={"organization_name": "Second Co"}, headers=headers)
    assert again.json()["created"] is False
    assert len(again.json()["memberships"]) == 1


async def test_ensure_profile_email_conflict(client, owner):
    token = create_access_token(str(uuid4()), email=owner.email)
    response = await client.post("/api/auth/ensure-profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 409
    assert response.json()["error"]["type"] == "EMAIL_IN_USE"


async def test_ensure_profile_claims_invitation_for_new_identity(client, owner, org_headers, organization, session):
    invited = await client.post("/api/users", json={"email": "invitee@acme.io"}, headers=org_headers(owner))
    assert invited.status_code == 201
    pending_id = invited.json()["user_id"]

    subject = uuid4()
    token = create_access_token(str(subject), email="invitee@acme.io", user_metadata={"full_name": "Ivy Invitee"})
    response = await client.post("/api/auth/ensure-profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    body = response.json()
    assert body["created"] is False
    assert body["profile"]["id"] == str(subject)
    assert body["profile"]["email"] == "invitee@acme.io"
    assert body["profile"]["full_name"] == "Ivy Invitee"
    assert body["profile"]["is_active"] is True
    assert [(m["organization_id"], m["role"]) for m in body["memberships"]] == [(str(organization.id), "member")]

    assert await session.get(User, UUID(pending_id)) is None
    users = await client.get("/api/users", headers=org_headers(owner))
    assert "invitee@acme.io" in [u["email"] for u in users.json()["users"]]


async def test_signed_in_user_accepts_invitation_to_another_organization(
    client, owner, other_organization, session
):
    other_owner_id = uuid4()
    other_owner_token = create_access_token(str(other_owner_id), email="boss@globex.io")
    await client.post("/api/auth/ensure-profile", headers={"Authorization": f"Bearer {other_owner_token}"})
    await OrganizationRepository(session).create_membership(
        organization_id=other_organization.id, user_id=other_owner_id, role="owner", is_active=True
    )
    await session.commit()

    headers = {"Authorization": f"Bearer {other_owner_token}", "X-Organization-ID": str(other_organization.id)}
    invited = await client.post("/api/users", json={"email": owner.email, "role": "manager"}, headers=headers)
    assert invited.status_code == 201

    denied = await client.get("/api/users", headers={**owner.auth, "X-Organization-ID": str(other_organization.id)})
    assert denied.status_code == 403

    response = await client.post("/api/auth/ensure-profile", headers=owner.auth)
    roles = {m["organization_name"]: m["role"] for m in response.json()["memberships"]}
    assert roles == {"Acme Learning": "owner", "Globex": "manager"}

    allowed = await client.get("/api/users", headers={**owner.auth, "X-Organization-ID": str(other_organization.id)})
    assert allowed.status_code == 200


async def test_removed_member_is_not_restored_on_sign_in(client, owner, member, org_headers):
    assert (await client.delete(f"/api/users/{member.id}", headers=org_headers(owner))).status_code == 200

    response = await client.post("/api/auth/ensure-profile", headers=member.auth)
    assert response.status_code == 200
    assert response.json()["memberships"] == []
