from sqlalchemy import select

from src.db.models.organizations import User, UserOrganization


async def test_requires_authentication(client, organization):
    response = await client.get("/api/users", headers={"X-Organization-ID": str(organization.id)})
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["message"] == "Missing authentication token"
    assert response.headers["X-Correlation-ID"]


async def test_invalid_token(client, organization):
    response = await client.get(
        "/api/users",
        headers={"Authorization": "Bearer not-a-jwt", "X-Organization-ID": str(organization.id)},
    )
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid authentication token"


async def test_organization_id_is_required(client, owner):
    response = await client.get("/api/users", headers=owner.auth)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Organization ID is required"


async def test_organization_id_must_be_uuid(client, owner):
    response = await client.get("/api/users", headers={**owner.auth, "X-Organization-ID": "acme"})
    assert response.status_code == 400


async def test_non_member_is_denied(client, owner, other_organization):
    response = await client.get("/api/users", headers={**owner.auth, "X-Organization-ID": str(other_organization.id)})
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Access denied to organization"


async def test_list_users_with_filters(client, owner, member, org_headers, organization):
    response = await client.get("/api/users", headers=org_headers(member))
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}
    assert {u["email"] for u in body["users"]} == {owner.email, member.email}

    response = await client.get(
        "/api/users", params={"search": "MAX", "organization_id": str(organization.id)}, headers=member.auth
    )
    assert [u["email"] for u in response.json()["users"]] == [member.email]

    response = await client.get("/api/users", params={"role": "owner"}, headers=org_headers(member))
    assert [u["role"] for u in response.json()["users"]] == ["owner"]

    response = await client.get("/api/users", params={"department": "Engineering"}, headers=org_headers(member))
    assert [u["department"] for u in response.json()["users"]] == ["Engineering"]


async def test_pagination_bounds(client, owner, org_headers):
    response = await client.get("/api/users", params={"limit": 101}, headers=org_headers(owner))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


async def test_invite_new_user_creates_pending_membership(client, owner, org_headers, session, organization):
    response = await client.post(
        "/api/users",
        json={"email": "New.Person@Acme.io", "role": "manager", "send_invitation_email": False},
        headers=org_headers(owner),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new.person@acme.io"
    assert body["role"] == "manager"
    assert body["reactivated"] is False

    user = (await session.execute(select(User).where(User.email == "new.person@acme.io"))).scalar_one()
    assert user.is_active is False
    assert user.hashed_password is None
    membership = (
        await session.execute(select(UserOrganization).where(UserOrganization.user_id == user.id))
    ).scalar_one()
    assert membership.is_active is False
    assert membership.invited_by == owner.id
    assert membership.organization_id == organization.id


async def test_invite_existing_member_is_rejected(client, owner, member, org_headers):
    response = await client.post("/api/users", json={"email": member.email}, headers=org_headers(owner))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "USER_ALREADY_MEMBER"


async def test_invite_reactivates_removed_member(client, owner, member, org_headers):
    removed = await client.delete(f"/api/users/{member.id}", headers=org_headers(owner))
    assert removed.status_code == 200
    assert removed.json()["message"] == "User removed successfully"

    response = await client.post(
        "/api/users", json={"email": member.email, "role": "admin"}, headers=org_headers(owner)
    )
    assert response.status_code == 201
    assert response.json()["reactivated"] is True
    assert response.json()["role"] == "admin"


async def test_invite_requires_owner_or_admin(client, member, org_headers):
    response = await client.post("/api/users", json={"email": "x@acme.io"}, headers=org_headers(member))
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Insufficient permissions"


async def test_invite_validates_email(client, owner, org_headers):
    response = await client.post("/api/users", json={"email": "not-an-email"}, headers=org_headers(owner))
    assert response.status_code == 400


async def test_get_user(client, owner, member, org_headers):
    response = await client.get(f"/api/users/{member.id}", headers=org_headers(owner))
    assert response.status_code == 200
    assert response.json()["full_name"] == "Max Member"
    assert response.json()["role"] == "member"


async def test_user_updates_own_profile(client, member):
    response = await client.patch(
        f"/api/users/{member.id}", json={"full_name": "Maxine Member", "department": "Design"}, headers=member.auth
    )
    assert response.status_code == 200
    assert response.json()["full_name"] == "Maxine Member"
    assert response.json()["department"] == "Design"


async def test_member_cannot_update_someone_else(client, owner, member):
    response = await client.patch(f"/api/users/{owner.id}", json={"full_name": "Nope"}, headers=member.auth)
    assert response.status_code == 403


async def test_admin_updates_member(client, owner, member):
    response = await client.patch(f"/api/users/{member.id}", json={"role": "Staff Engineer"}, headers=owner.auth)
    assert response.status_code == 200
    assert response.json()["role"] == "Staff Engineer"


async def test_last_owner_cannot_be_removed(client, owner, org_headers):
    response = await client.delete(f"/api/users/{owner.id}", headers=org_headers(owner))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "LAST_OWNER_ERROR"
