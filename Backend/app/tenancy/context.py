"""
Multi-tenancy context module.

Resolves an organization slug to the database that holds its data.

Two tiers exist:
    - shared:    rows live in the platform database, isolated by organization_id
    - dedicated: the organization has its own database (schema-identical replica)

There is no process-wide "current database". Every resolution returns a new,
immutable TenantDatabase value scoped to one logical request.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..core.config import get_settings
from ..core.db import create_engine_for_url, get_session, make_sessionmaker
from ..core.errors import NotFoundError
from ..models import Organization, OrganizationTier


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable description of the organization a request operates on.

    Attributes:
        organization_id: organizations.id in the shared registry
        slug: URL-safe identifier (e.g., "acme")
        name: Human-readable organization name
        tier: Tier recorded on the organization row
        timezone: IANA zone used to read wall-clock dates and times
        is_dedicated: True when queries go to the organization's own database
    """

    organization_id: uuid.UUID
    slug: str
    name: str
    tier: OrganizationTier = OrganizationTier.SHARED
    timezone: str = "UTC"
    is_dedicated: bool = False

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class TenantDatabase:
    """
    Database handle bound to one organization.

    For shared tenants `session` is the caller's platform session. For
    dedicated tenants it is a fresh session on a private, unpooled engine
    that close() disposes.
    """

    session: AsyncSession
    ctx: TenantContext
    engine: Optional[AsyncEngine] = None

    @property
    def organization_id(self) -> uuid.UUID:
        return self.ctx.organization_id

    @property
    def is_dedicated(self) -> bool:
        return self.ctx.is_dedicated

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.session.close()
        await self.engine.dispose()


def organization_timezone(organization: Organization) -> str:
    """Timezone from organization settings, falling back to DEFAULT_TIMEZONE."""
    tz_name = (organization.settings or {}).get("timezone") or get_settings().default_timezone
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{tz_name}' for organization {organization.slug}, using UTC")
        return "UTC"
    return tz_name


def build_tenant_context(organization: Organization) -> TenantContext:
    return TenantContext(
        organization_id=organization.id,
        slug=organization.slug,
        name=organization.name,
        tier=organization.tier,
        timezone=organization_timezone(organization),
        is_dedicated=organization.is_dedicated,
    )


async def get_organization_by_slug(session: AsyncSession, slug: str) -> Optional[Organization]:
    result = await session.execute(select(Organization).where(Organization.slug == slug))
    return result.scalar_one_or_none()


async def resolve_tenant_database(shared_session: AsyncSession, slug: str) -> TenantDatabase:
    """
    Resolve the database handle for an organization slug.

    Args:
        shared_session: Session on the shared platform database
        slug: Organization slug

    Returns:
        TenantDatabase; callers must close() it when done

    Raises:
        NotFoundError: No organization with that slug
        InvalidInputError: Dedicated organization with a malformed connection
            string. This never falls back to the shared database.
    """
    organization = await get_organization_by_slug(shared_session, slug)
    if not organization:
        raise NotFoundError(f"Organization not found: {slug}")

    ctx = build_tenant_context(organization)

    if ctx.is_dedicated:
        engine = create_engine_for_url(organization.database_url, pooled=False)
        session = make_sessionmaker(engine)()
        logger.info(
            f"Resolved dedicated database for '{slug}': "
            f"{engine.url.render_as_string(hide_password=True)}"
        )
        return TenantDatabase(session=session, ctx=ctx, engine=engine)

    if organization.tier == OrganizationTier.DEDICATED:
        logger.warning(f"Organization '{slug}' is dedicated but has no database URL yet; using shared database")

    return TenantDatabase(session=shared_session, ctx=ctx)


@asynccontextmanager
async def open_tenant_database(shared_session: AsyncSession, slug: str) -> AsyncIterator[TenantDatabase]:
    """
    Resolve a tenant database and release it on exit.

        async with open_tenant_database(session, "acme") as db:
            services = await list_services(db)
    """
    tenant_db = await resolve_tenant_database(shared_session, slug)
    try:
        yield tenant_db
    except Exception:
        await tenant_db.session.rollback()
        raise
    finally:
        await tenant_db.close()


async def get_tenant_database(
    org_slug: str = Path(..., description="Organization slug (e.g., 'acme')"),
    session: AsyncSession = Depends(get_session),
) -> AsyncIterator[TenantDatabase]:
    """FastAPI dependency: tenant database for the {org_slug} path parameter."""
    async with open_tenant_database(session, org_slug) as tenant_db:
        yield tenant_db
