"""
Dedicated database provisioning.

Creates a Neon project for an organization, replicates the schema into it
and switches the organization to the dedicated tier.

Steps (each failure after the project exists deletes the project again):
1. Create the Neon project
2. Create all tables in the new database and mirror the organization row
3. Point the connection string at the pooled (-pooler) endpoint
4. Save the connection string and set tier = dedicated
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy import insert, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .core.db import create_engine_for_url, init_models
from .core.errors import ConflictError, ExternalServiceError, InvalidInputError, ZeroqError
from .models import Organization, OrganizationTier
from .organizations import get_organization

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class NeonProject:
    """Fields of a newly created Neon project that the saga needs."""
    project_id: str
    project_name: str
    connection_uri: str
    branch_id: str = ""
    database_name: str = "neondb"
    role_name: str = "neondb_owner"


@dataclass
class ProvisionedDatabase:
    project_id: str
    project_name: str
    connection_uri: str
    branch_id: str
    database_name: str
    role_name: str
    region: str


# ────────────────────────────────────────────────────────────────
# Neon API client
# ────────────────────────────────────────────────────────────────

class NeonClient:
    """
    Minimal Neon control-plane client.

    Usage:
        async with NeonClient.from_settings() as neon:
            project = await neon.create_project("zeroq-acme")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://console.neon.tech/api/v2",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise InvalidInputError(
                "NEON_API_KEY is not set. "
                "Get an API key from https://console.neon.tech/app/settings/api-keys"
            )
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "NeonClient":
        return cls(
            api_key=settings.neon_api_key,
            base_url=settings.neon_api_url,
            timeout=settings.provisioning_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "NeonClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Neon API {method} {path} failed: HTTP {e.response.status_code}")
            raise ExternalServiceError(
                f"Neon API error: HTTP {e.response.status_code}",
                details={"body": e.response.text[:500]},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Neon API {method} {path} request error: {e}")
            raise ExternalServiceError(f"Could not reach the Neon API: {e}") from e

        if not response.content:
            return {}
        return response.json()

    async def create_project(self, name: str) -> NeonProject:
        project: dict[str, Any] = {
            "name": name,
            "pg_version": settings.neon_pg_version,
            "region_id": settings.neon_region,
        }
        if settings.neon_org_id:
            project["org_id"] = settings.neon_org_id

        data = await self._request("POST", "/projects", json={"project": project})

        project_id = (data.get("project") or {}).get("id")
        uris = data.get("connection_uris") or []
        connection_uri = uris[0].get("connection_uri") if uris else None
        if not project_id or not connection_uri:
            raise ExternalServiceError("The Neon project was created but no connection URI was returned")

        databases = data.get("databases") or []
        roles = data.get("roles") or []
        return NeonProject(
            project_id=project_id,
            project_name=name,
            connection_uri=connection_uri,
            branch_id=(data.get("branch") or {}).get("id", ""),
            database_name=databases[0].get("name", "neondb") if databases else "neondb",
            role_name=roles[0].get("name", "neondb_owner") if roles else "neondb_owner",
        )

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")


# ────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────

def to_pooler_url(connection_uri: str) -> str:
    """
    Point a Neon connection string at the pooled endpoint.

    "ep-cool-123.us-east-2.aws.neon.tech" -> "ep-cool-123-pooler.us-east-2.aws.neon.tech".
    Already-pooled hosts are returned unchanged.
    """
    try:
        url = make_url(connection_uri)
    except ArgumentError as e:
        raise InvalidInputError(f"Invalid database URL: {e}") from e

    if not url.host or "-pooler" in url.host:
        return connection_uri

    endpoint, _, domain = url.host.partition(".")
    pooled_host = f"{endpoint}-pooler.{domain}" if domain else f"{endpoint}-pooler"
    return url.set(host=pooled_host).render_as_string(hide_password=False)


async def replicate_schema(database_url: str, organization: Organization) -> None:
    """
    Create every table in the target database and mirror the organization row.

    The mirror keeps organization_id foreign keys valid in the dedicated
    database. It is created on the shared tier without a URL since it only
    anchors rows locally. Safe to run twice.
    """
    engine = create_engine_for_url(database_url, pooled=False)
    try:
        await init_models(engine)
        async with engine.begin() as conn:
            existing = await conn.execute(select(Organization.id).where(Organization.id == organization.id))
            if existing.scalar_one_or_none() is None:
                await conn.execute(
                    insert(Organization).values(
                        id=organization.id,
                        name=organization.name,
                        slug=organization.slug,
                        tier=OrganizationTier.SHARED,
                        database_url=None,
                        settings=dict(organization.settings or {}),
                    )
                )
    except (SQLAlchemyError, OSError) as e:
        raise ExternalServiceError(f"Could not create the schema in the new database: {e}") from e
    finally:
        await engine.dispose()

    logger.info(f"Schema replicated for organization {organization.slug}")


async def _delete_project_quietly(neon: NeonClient, project_id: str) -> None:
    try:
        await neon.delete_project(project_id)
        logger.warning(f"Deleted Neon project {project_id} after a failed provisioning step")
    except ExternalServiceError as e:
        logger.error(f"Cleanup failed, Neon project {project_id} must be deleted by hand: {e.message}")


# ────────────────────────────────────────────────────────────────
# Saga
# ────────────────────────────────────────────────────────────────

async def provision_dedicated_database(
    session: AsyncSession,
    organization_id: uuid.UUID,
    neon: Optional[NeonClient] = None,
) -> ProvisionedDatabase:
    """
    Provision a dedicated database and switch the organization to it.

    Args:
        session: Shared platform session
        organization_id: Organization to upgrade
        neon: Client to use; one is built from settings (and closed) when omitted

    Raises:
        NotFoundError: unknown organization
        ConflictError: organization already has a dedicated database
        ExternalServiceError: Neon API or schema replication failed
    """
    organization = await get_organization(session, organization_id)
    if organization.is_dedicated:
        raise ConflictError("This organization already has a dedicated database")

    owns_client = neon is None
    if owns_client:
        neon = NeonClient.from_settings()

    project_name = f"zeroq-{organization.slug}"
    try:
        logger.info(f"Provisioning dedicated database for {organization.slug}")
        project = await neon.create_project(project_name)
        logger.info(f"Neon project created: {project.project_id}")

        try:
            await replicate_schema(project.connection_uri, organization)
            pooled_uri = to_pooler_url(project.connection_uri)

            organization.tier = OrganizationTier.DEDICATED
            organization.database_url = pooled_uri
            await session.commit()
            await session.refresh(organization)
        except (ZeroqError, SQLAlchemyError) as e:
            await session.rollback()
            await _delete_project_quietly(neon, project.project_id)
            if isinstance(e, ZeroqError):
                raise
            raise ExternalServiceError(f"Could not update the organization: {e}") from e
    finally:
        if owns_client:
            await neon.aclose()

    logger.info(f"Organization {organization.slug} is now on a dedicated database ({project.project_id})")
    return ProvisionedDatabase(
        project_id=project.project_id,
        project_name=project_name,
        connection_uri=pooled_uri,
        branch_id=project.branch_id,
        database_name=project.database_name,
        role_name=project.role_name,
        region=settings.neon_region,
    )


async def unlink_dedicated_database(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    """
    Move an organization back to the shared tier.

    The Neon project is left in place; only the link is removed.
    """
    organization = await get_organization(session, organization_id)
    organization.tier = OrganizationTier.SHARED
    organization.database_url = None
    await session.commit()
    await session.refresh(organization)
    logger.info(f"Organization {organization.slug} unlinked from its dedicated database")
    return organization
