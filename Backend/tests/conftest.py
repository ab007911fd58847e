"""
Pytest configuration and fixtures for async database testing.

Every test gets its own throw-away SQLite database file (through aiosqlite)
with the full schema applied, so tests can commit freely without leaking
state. A second file stands in for an organization's dedicated database.
"""
import os
import sys
from pathlib import Path
from types import SimpleNamespace

# Configure before anything imports app.core.config (settings are cached)
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ZEROQ_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["NEON_API_KEY"] = ""
os.environ["DEFAULT_TIMEZONE"] = "UTC"

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from httpx import AsyncClient, ASGITransport

from app.core.db import create_engine_for_url, init_models, make_sessionmaker
from app.models import Customer, Organization, OrganizationTier, Resource, Service
from app.tenancy import resolve_tenant_database


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture(scope="function")
async def async_engine(tmp_path):
    """
    Engine on a fresh SQLite file with every table created.

    Engine is created per test to ensure clean state.
    """
    engine = create_engine_for_url(sqlite_url(tmp_path / "shared.db"))
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine):
    async with make_sessionmaker(async_engine)() as session:
        yield session


@pytest.fixture(scope="function")
async def client(async_session):
    """
    Create FastAPI AsyncClient with database session override.

    Startup hooks are not run; tables already exist in the test database.
    """
    # Import here so the environment above is in place first
    from app.main import app
    from app.core.db import get_session

    # Override database dependency to use test session
    async def override_get_session():
        yield async_session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


# ────────────────────────────────────────────────────────────────
# Data fixtures
# ────────────────────────────────────────────────────────────────

async def make_organization(session, slug: str, name: str = None, **kwargs) -> Organization:
    org = Organization(name=name or slug.title(), slug=slug, settings=kwargs.pop("settings", {}), **kwargs)
    session.add(org)
    await session.commit()
    await session.refresh(org)
    return org


@pytest.fixture
async def org(async_session) -> Organization:
    """Shared-tier organization 'acme'."""
    return await make_organization(async_session, "acme", "Acme Salon")


@pytest.fixture
async def other_org(async_session) -> Organization:
    return await make_organization(async_session, "globex", "Globex Clinic")


@pytest.fixture
async def tenant_db(async_session, org):
    db = await resolve_tenant_database(async_session, org.slug)
    yield db
    await db.close()


@pytest.fixture
async def seeded(async_session, org) -> SimpleNamespace:
    """
    Haircut (30 min) with resource "Chair 1" and customer Jane in 'acme'.

    Returned as plain ids so tests keep working after a rollback expires
    the ORM objects.
    """
    service = Service(organization_id=org.id, name="Haircut", duration_minutes=30)
    async_session.add(service)
    await async_session.flush()

    resource = Resource(organization_id=org.id, service_id=service.id, name="Chair 1")
    customer = Customer(organization_id=org.id, name="Jane Doe", email="jane@example.com")
    async_session.add_all([resource, customer])
    await async_session.commit()

    return SimpleNamespace(
        org_id=org.id,
        slug=org.slug,
        service_id=service.id,
        resource_id=resource.id,
        customer_id=customer.id,
    )


@pytest.fixture
async def dedicated_org(async_session, tmp_path) -> Organization:
    """Dedicated-tier organization whose data lives in a second SQLite file."""
    from app.provisioning import replicate_schema

    url = sqlite_url(tmp_path / "dedicated.db")
    org = await make_organization(
        async_session,
        "initech",
        "Initech",
        tier=OrganizationTier.DEDICATED,
        database_url=url,
    )
    await replicate_schema(url, org)
    return org
