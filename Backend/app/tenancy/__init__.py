"""
Multi-tenancy package.

This package provides tenant isolation primitives for the two-tier
architecture (shared database filtered by organization_id, or a dedicated
database per organization).

Modules:
    context: slug -> TenantDatabase resolution and the FastAPI dependency
    queries: Tenant-scoped query helpers
"""

from .context import (
    TenantContext,
    TenantDatabase,
    build_tenant_context,
    get_organization_by_slug,
    get_tenant_database,
    open_tenant_database,
    organization_timezone,
    resolve_tenant_database,
)

from .queries import (
    require_owned,
    scoped_select,
    tenant_filter,
)

__all__ = [
    # Context
    "TenantContext",
    "TenantDatabase",
    "build_tenant_context",
    "get_organization_by_slug",
    "get_tenant_database",
    "open_tenant_database",
    "organization_timezone",
    "resolve_tenant_database",
    # Query helpers
    "require_owned",
    "scoped_select",
    "tenant_filter",
]
