import os
import tempfile
from dataclasses import dataclass
from typing import Dict
from uuid import UUID

# Environment must be in place before any src module reads settings
_DB_DIR = tempfile.mkdtemp(prefix="dashboard-api-tests-")
os.environ["POSTGRES_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["AUTO_SEED"] = "false"
os.environ["REALTIME_START_UPDATE_CYCLE"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.api.main import app  # noqa: E402
from src.core.security import create_access_token, get_password_hash  # noqa: E402
from src.db.base import Base  # noqa: E402
from src.db.session import dispose_engine, get_engine, get_session_maker  # noqa: E402
from src.repositories.organizations import OrganizationRepository  # noqa: E402

PASSWORD = "s3cret-password"


@dataclass
class Account:
    id: UUID
    email: str
    token: str

    @property
    def auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture(autouse=True)
async def database():
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await dispose_engine()


@pytest.fixture
async def session():
    async with get_session_maker()() as s:
        yield s


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def _account(
    session, organization_id: UUID, email: str, role: str, full_name: str, department=None, superadmin=False
) -> Account:
    repo = OrganizationRepository(session)
    user = await repo.create_user(email=email, full_name=full_name, hashed_password=get_password_hash(PASSWORD))
    user.department = department
    user.is_superadmin = superadmin
    await repo.create_membership(organization_id=organization_id, user_id=user.id, role=role, is_active=True)
    await session.commit()
    return Account(id=user.id, email=email, token=create_access_token(str(user.id), email=email))


@pytest.fixture
async def organization(session):
    org = await OrganizationRepository(session).create_organization(name="Acme Learning", slug="acme-learning")
    await session.commit()
    return org


@pytest.fixture
async def other_organization(session):
    org = await OrganizationRepository(session).create_organization(name="Globex", slug="globex")
    await session.commit()
    return org


@pytest.fixture
async def owner(session, organization) -> Account:
    return await _account(session, organization.id, "owner@acme.io", "owner", "Olivia Owner", "Leadership")


@pytest.fixture
async def member(session, organization) -> Account:
    return await _account(session, organization.id, "member@acme.io", "member", "Max Member", "Engineering")


@pytest.fixture
async def platform_admin(session, organization) -> Account:
    return await _account(session, organization.id, "ops@acme.io", "admin", "Pat Platform", "Operations", superadmin=True)


@pytest.fixture
def org_headers(organization):
    def _headers(account: Account) -> Dict[str, str]:
        return {**account.auth, "X-Organization-ID": str(organization.id)}

    return _headers
