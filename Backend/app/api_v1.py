"""
Read-only REST API, v1.

All routes live under /api/v1/{org_slug} and require the x-api-key header
when ZEROQ_API_KEY is configured. Payloads are camelCase and wrapped in
{"success": ..., "data": ..., "error": ...}.

Endpoints:
    GET /api/v1/{org_slug}
    GET /api/v1/{org_slug}/services?includeResources=true
    GET /api/v1/{org_slug}/resources
    GET /api/v1/{org_slug}/customers
    GET /api/v1/{org_slug}/reservations
    GET /api/v1/{org_slug}/reservations/stats
    GET /api/v1/{org_slug}/collections
    GET /api/v1/{org_slug}/collections/{collection_id}
    GET /api/v1/{org_slug}/collections/{collection_id}/records?raw=true
"""

import uuid
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog, custom_collections, customers, reservations
from .core.db import get_session
from .core.errors import NotFoundError
from .core.responses import ApiResponse
from .models import Resource
from .organizations import require_organization_by_slug
from .schemas import (
    CollectionRead,
    CollectionWithFieldsRead,
    CustomerRead,
    FieldRead,
    OrganizationRead,
    RecordRead,
    ReservationDetailRead,
    ReservationStats,
    ResourceRead,
    ServiceRead,
    ServiceWithResourcesRead,
)
from .api_auth import require_api_key
from .tenancy import TenantDatabase, get_tenant_database, scoped_select

router = APIRouter(
    prefix="/api/v1/{org_slug}",
    tags=["api-v1"],
    dependencies=[Depends(require_api_key)],
)


class RecordListResponse(ApiResponse[list[RecordRead]]):
    """Records envelope; also names the collection and how many fields it has."""
    model_config = ConfigDict(populate_by_name=True)

    collection: Optional[str] = None
    field_count: Optional[int] = Field(None, alias="fieldCount")


def _collection_uuid(collection_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(collection_id)
    except ValueError as e:
        raise NotFoundError("Collection not found") from e

@router.get("", response_model=ApiResponse[OrganizationRead])
async def get_organization(
    org_slug: str = Path(..., description="Organization slug"),
    session: AsyncSession = Depends(get_session),
):
    organization = await require_organization_by_slug(session, org_slug)
    return ApiResponse(data=OrganizationRead.model_validate(organization))


@router.get("/services", response_model=ApiResponse[list[ServiceWithResourcesRead]])
async def list_services(
    include_resources: bool = Query(False, alias="includeResources"),
    db: TenantDatabase = Depends(get_tenant_database),
):
    """List services, newest first. includeResources=true nests each service's active resources."""
    services = await catalog.list_services(db)

    if not include_resources:
        return ApiResponse(
            data=[ServiceWithResourcesRead.model_validate(s) for s in services],
        )

    stmt = (
        scoped_select(Resource, db.organization_id)
        .where(Resource.is_active.is_(True))
        .order_by(Resource.name)
    )
    by_service: dict[uuid.UUID, list[ResourceRead]] = defaultdict(list)
    for resource in (await db.session.execute(stmt)).scalars():
        by_service[resource.service_id].append(ResourceRead.model_validate(resource))

    return ApiResponse(
        data=[
            ServiceWithResourcesRead(
                **ServiceRead.model_validate(s).model_dump(),
                resources=by_service.get(s.id, []),
            )
            for s in services
        ],
    )


@router.get("/resources", response_model=ApiResponse[list[ResourceRead]])
async def list_resources(db: TenantDatabase = Depends(get_tenant_database)):
    resources = await catalog.list_resources(db)
    return ApiResponse(data=[ResourceRead.model_validate(r) for r in resources])


@router.get("/customers", response_model=ApiResponse[list[CustomerRead]])
async def list_customers(db: TenantDatabase = Depends(get_tenant_database)):
    rows = await customers.list_customers(db)
    return ApiResponse(data=[CustomerRead.model_validate(c) for c in rows])


@router.get("/reservations", response_model=ApiResponse[list[ReservationDetailRead]])
async def list_reservations(db: TenantDatabase = Depends(get_tenant_database)):
    return ApiResponse(data=await reservations.list_reservations(db))


@router.get("/reservations/stats", response_model=ApiResponse[ReservationStats])
async def reservation_stats(db: TenantDatabase = Depends(get_tenant_database)):
    return ApiResponse(data=await reservations.get_reservation_counts(db))


@router.get("/collections", response_model=ApiResponse[list[CollectionRead]])
async def list_collections(db: TenantDatabase = Depends(get_tenant_database)):
    collections = await custom_collections.list_collections(db)
    return ApiResponse(data=[CollectionRead.model_validate(c) for c in collections])


@router.get("/collections/{collection_id}", response_model=ApiResponse[CollectionWithFieldsRead])
async def get_collection(
    collection_id: str,
    db: TenantDatabase = Depends(get_tenant_database),
):
    collection, fields = await custom_collections.get_collection_with_fields(db, _collection_uuid(collection_id))
    return ApiResponse(
        data=CollectionWithFieldsRead(
            collection=CollectionRead.model_validate(collection),
            fields=[FieldRead.model_validate(f) for f in fields],
        )
    )


@router.get("/collections/{collection_id}/records", response_model=RecordListResponse)
async def list_records(
    collection_id: str,
    raw: bool = Query(False, description="Keep field ids as data keys"),
    db: TenantDatabase = Depends(get_tenant_database),
):
    """
    Records of a collection, newest first.

    By default data keys are resolved to field names so consumers (e.g. an
    AI agent) get readable records. raw=true keeps the stored field ids.
    """
    collection, fields = await custom_collections.get_collection_with_fields(db, _collection_uuid(collection_id))
    records = await custom_collections.list_records(db, collection.id)

    if raw:
        data = [RecordRead.model_validate(r) for r in records]
    else:
        data = custom_collections.resolve_record_fields(records, fields)

    return RecordListResponse(data=data, collection=collection.name, field_count=len(fields))
