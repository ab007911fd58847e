"""
Organization registry.

Organizations always live in the shared platform database, whatever their
tier; these functions therefore take the shared session directly rather than
a TenantDatabase.
"""

import logging
import uuid

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.db import create_engine_for_url
from .core.errors import ConflictError, ExternalServiceError, NotFoundError
from .models import Organization, OrganizationTier
from .schemas import CreateOrganizationInput, UpdateOrganizationInput, UpdateOrganizationTierInput
from .tenancy import get_organization_by_slug

logger = logging.getLogger(__name__)


async def list_organizations(session: AsyncSession) -> list[Organization]:
    result = await session.execute(select(Organization).order_by(Organization.created_at.desc()))
    return list(result.scalars().all())


async def get_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    organization = await session.get(Organization, organization_id)
    if not organization:
        raise NotFoundError("Organization not found")
    return organization


async def require_organization_by_slug(session: AsyncSession, slug: str) -> Organization:
    organization = await get_organization_by_slug(session, slug)
    if not organization:
        raise NotFoundError(f"Organization not found: {slug}")
    return organization


async def create_organization(session: AsyncSession, data: CreateOrganizationInput) -> Organization:
    """
    Register a new organization on the shared tier.

    Raises:
        ConflictError: slug already taken
    """
    if await get_organization_by_slug(session, data.slug):
        raise ConflictError("An organization with that slug already exists")

    organization = Organization(
        name=data.name,
        slug=data.slug,
        tier=OrganizationTier.SHARED,
        settings={},
    )
    session.add(organization)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError("An organization with that slug already exists") from e
    await session.refresh(organization)

    logger.info(f"Organization created: {organization.slug} ({organization.id})")
    return organization


async def update_organization(
    session: AsyncSession,
    organization_id: uuid.UUID,
    data: UpdateOrganizationInput,
) -> Organization:
    organization = await get_organization(session, organization_id)

    if data.name is not None:
        organization.name = data.name
    if data.settings is not None:
        organization.settings = dict(data.settings)

    await session.commit()
    await session.refresh(organization)
    return organization


async def delete_organization(session: AsyncSession, organization_id: uuid.UUID) -> None:
    """Delete an organization; owned rows in the shared database cascade."""
    organization = await get_organization(session, organization_id)
    await session.delete(organization)
    await session.commit()
    logger.info(f"Organization deleted: {organization.slug} ({organization_id})")


async def test_database_connection(database_url: str) -> dict[str, str]:
    """
    Open a throw-away connection to ``database_url`` and report the server version.

    Raises:
        InvalidInputError: the URL cannot be parsed
        ExternalServiceError: the database cannot be reached
    """
    engine = create_engine_for_url(database_url, pooled=False)
    try:
        async with engine.connect() as conn:
            if conn.dialect.name == "postgresql":
                version = (await conn.execute(text("SELECT version()"))).scalar_one()
            else:
                version_info = conn.dialect.server_version_info or ()
                version = f"{conn.dialect.name} " + ".".join(str(part) for part in version_info)
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Connection test failed for {engine.url.render_as_string(hide_password=True)}: {e}")
        raise ExternalServiceError(f"Could not connect: {e}") from e
    finally:
        await engine.dispose()

    return {"version": str(version) if version else "unknown"}


async def update_organization_tier(
    session: AsyncSession,
    organization_id: uuid.UUID,
    data: UpdateOrganizationTierInput,
) -> Organization:
    """
    Switch an organization between tiers.

    Dedicated requires a database URL that answers a connection test.
    Switching back to shared clears the URL.
    """
    organization = await get_organization(session, organization_id)

    if data.tier == OrganizationTier.DEDICATED:
        try:
            await test_database_connection(data.database_url)
        except ExternalServiceError as e:
            raise ExternalServiceError(f"Cannot enable the dedicated tier: {e.message}") from e
        organization.tier = OrganizationTier.DEDICATED
        organization.database_url = data.database_url
    else:
        organization.tier = OrganizationTier.SHARED
        organization.database_url = None

    await session.commit()
    await session.refresh(organization)

    logger.info(f"Organization {organization.slug} tier set to {organization.tier.value}")
    return organization
