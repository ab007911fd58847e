"""
Action boundary for mutating operations.

Every action is addressed by organization slug (or organization id for
registry operations), validates its raw input, resolves the tenant database
once, calls the domain function and returns an ActionResult. Expected
failures (validation, not found, conflicts, upstream errors) come back as
ActionResult(success=False, error=<message>) instead of raising. Entities
come back as read models from app.schemas, never as live ORM objects.

Usage:
    result = await actions.create_reservation(session, "acme", {
        "serviceId": service_id, "resourceId": resource_id, "customerId": customer_id,
        "date": "2025-03-10", "time": "10:00",
    })
    if not result.success:
        show(result.error)
"""

import functools
import logging
import uuid
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog, custom_collections, customers, organizations, provisioning, reservations
from .core.errors import NotFoundError, ZeroqError
from .core.responses import ActionResult
from .schemas import (
    BulkImportInput,
    CollectionRead,
    CreateCollectionInput,
    CreateCustomerInput,
    CreateFieldInput,
    CreateOrganizationInput,
    CreateRecordInput,
    CreateReservationInput,
    CreateResourceInput,
    CreateResourceScheduleInput,
    CreateServiceInput,
    CustomerRead,
    FieldRead,
    OrganizationRead,
    RecordRead,
    ReservationRead,
    ResourceRead,
    ResourceScheduleRead,
    ServiceRead,
    UpdateOrganizationInput,
    UpdateOrganizationTierInput,
    UpdateReservationStatusInput,
)
from .tenancy import open_tenant_database

logger = logging.getLogger(__name__)

Payload = Union[Mapping[str, Any], BaseModel]


# ────────────────────────────────────────────────────────────────
# Boundary helpers
# ────────────────────────────────────────────────────────────────

def first_validation_message(error: ValidationError) -> str:
    """Human-readable text of the first validation error."""
    issues = error.errors()
    if not issues:
        return "Invalid input"
    issue = issues[0]
    message = issue.get("msg", "Invalid input")
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    location = ".".join(str(part) for part in issue.get("loc", ()))
    return f"{location}: {message}" if location else message


def action(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[ActionResult]]:
    """Wrap a coroutine so expected failures become ActionResult.fail."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> ActionResult:
        name = func.__name__
        try:
            data = await func(*args, **kwargs)
        except ValidationError as e:
            message = first_validation_message(e)
            logger.warning(f"[ACTIONS] {name} rejected: {message}")
            return ActionResult.fail(message)
        except ZeroqError as e:
            logger.warning(f"[ACTIONS] {name} failed: {e.code}: {e.message}")
            return ActionResult.fail(e.message)
        return ActionResult.ok(data)

    return wrapper


def _parse(model: type[BaseModel], payload: Payload) -> Any:
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    return model.model_validate(payload)


def _read(model: type[BaseModel], obj: Any) -> Any:
    """Detach an ORM result from the session it was loaded in."""
    return model.model_validate(obj)


def _as_uuid(value: Union[str, uuid.UUID], label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise NotFoundError(f"{label} not found") from e


# ────────────────────────────────────────────────────────────────
# Organizations
# ────────────────────────────────────────────────────────────────

@action
async def create_organization(session: AsyncSession, data: Payload):
    organization = await organizations.create_organization(session, _parse(CreateOrganizationInput, data))
    return _read(OrganizationRead, organization)


@action
async def update_organization(session: AsyncSession, organization_id, data: Payload):
    organization = await organizations.update_organization(
        session, _as_uuid(organization_id, "Organization"), _parse(UpdateOrganizationInput, data)
    )
    return _read(OrganizationRead, organization)


@action
async def delete_organization(session: AsyncSession, organization_id):
    await organizations.delete_organization(session, _as_uuid(organization_id, "Organization"))


@action
async def test_database_connection(database_url: str):
    return await organizations.test_database_connection(database_url)


@action
async def update_organization_tier(session: AsyncSession, organization_id, data: Payload):
    organization = await organizations.update_organization_tier(
        session, _as_uuid(organization_id, "Organization"), _parse(UpdateOrganizationTierInput, data)
    )
    return _read(OrganizationRead, organization)


@action
async def provision_dedicated_database(
    session: AsyncSession,
    organization_id,
    neon: Optional[provisioning.NeonClient] = None,
):
    return await provisioning.provision_dedicated_database(
        session, _as_uuid(organization_id, "Organization"), neon=neon
    )


@action
async def unlink_dedicated_database(session: AsyncSession, organization_id):
    organization = await provisioning.unlink_dedicated_database(session, _as_uuid(organization_id, "Organization"))
    return _read(OrganizationRead, organization)


# ────────────────────────────────────────────────────────────────
# Services & Resources
# ────────────────────────────────────────────────────────────────

@action
async def create_service(session: AsyncSession, org_slug: str, data: Payload):
    payload = _parse(CreateServiceInput, data)
    async with open_tenant_database(session, org_slug) as db:
        return _read(ServiceRead, await catalog.create_service(db, payload))


@action
async def delete_service(session: AsyncSession, org_slug: str, service_id):
    async with open_tenant_database(session, org_slug) as db:
        await catalog.delete_service(db, _as_uuid(service_id, "Service"))


@action
async def create_resource(session: AsyncSession, org_slug: str, data: Payload):
    payload = _parse(CreateResourceInput, data)
    async with open_tenant_database(session, org_slug) as db:
        return _read(ResourceRead, await catalog.create_resource(db, payload))


@action
async def delete_resource(session: AsyncSession, org_slug: str, resource_id):
    async with open_tenant_database(session, org_slug) as db:
        await catalog.delete_resource(db, _as_uuid(resource_id, "Resource"))


@action
async def add_resource_schedule(session: AsyncSession, org_slug: str, data: Payload):
    payload = _parse(CreateResourceScheduleInput, data)
    async with open_tenant_database(session, org_slug) as db:
        return _read(ResourceScheduleRead, await catalog.add_resource_schedule(db, payload))


# ────────────────────────────────────────────────────────────────
# Customers
# ────────────────────────────────────────────────────────────────

@action
async def create_customer(session: AsyncSession, org_slug: str, data: Payload):
    payload = _parse(CreateCustomerInput, data)
    async with open_tenant_database(session, org_slug) as db:
        return _read(CustomerRead, await customers.create_customer(db, payload))


@action
async def delete_customer(session: AsyncSession, org_slug: str, customer_id):
    async with open_tenant_database(session, org_slug) as db:
        await customers.delete_customer(db, _as_uuid(customer_id, "Customer"))


# ────────────────────────────────────────────────────────────────
# Reservations
# ────────────────────────────────────────────────────────────────

@action
async def create_reservation(session: AsyncSession, org_slug: str, data: Payload):
    payload = _parse(CreateReservationInput, data)
    async with open_tenant_database(session, org_slug) as db:
        return _read(ReservationRead, await reservations.book_reservation(db, payload))


@action
async def update_reservation_status(session: AsyncSession, org_slug: str, reservation_id, data: Payload):
    payload = _parse(UpdateReservationStatusInput, data)
    async with open_tenant_database(session, org_slug) as db:
        reservation = await reservations.update_reservation_status(
            db, _as_uuid(reservation_id, "Reservation"), payload.status
        )
        return _read(ReservationRead, reservation)


@action
async def delete_reservation(session: AsyncSession, org_slug: str, reservation_id):
    async with open_tenant_database(session, org_slug) as db:
        await reservations.delete_reservation(db, _as_uuid(reservation_id, "Reservation"))


# ────────────────────────────────────────────────────────────────
# Custom collections
# ────────────────────────────────────────────────────────────────

@action
async def create_collection(
    session: AsyncSession,
    org_slug: str,
    data: Payload,
    fields: Sequence[Payload] = (),
):
    payload = _parse(CreateCollectionInput, data)
    field_inputs = [_parse(CreateFieldInput, f) for f in fields]
    async with open_tenant_database(session, org_slug) as db:
        return _read(CollectionRead, await custom_collections.create_collection(db, payload, field_inputs))


@action
async def delete_collection(session: AsyncSession, org_slug: str, collection_id):
    async with open_tenant_database(session, org_slug) as db:
        await custom_collections.delete_collection(db, _as_uuid(collection_id, "Collection"))


@action
async def add_field(session: AsyncSession, org_slug: str, collection_id, data: Payload):
    payload = _parse(CreateFieldInput, data)
    async with open_tenant_database(session, org_slug) as db:
        field = await custom_collections.add_field(db, _as_uuid(collection_id, "Collection"), payload)
        return _read(FieldRead, field)


@action
async def delete_field(session: AsyncSession, org_slug: str, collection_id, field_id):
    async with open_tenant_database(session, org_slug) as db:
        await custom_collections.delete_field(
            db, _as_uuid(collection_id, "Collection"), _as_uuid(field_id, "Field")
        )


@action
async def create_record(session: AsyncSession, org_slug: str, collection_id, data: Payload):
    payload = _parse(CreateRecordInput, data)
    async with open_tenant_database(session, org_slug) as db:
        record = await custom_collections.create_record(db, _as_uuid(collection_id, "Collection"), payload)
        return _read(RecordRead, record)


@action
async def update_record(session: AsyncSession, org_slug: str, collection_id, record_id, data: Payload):
    payload = _parse(CreateRecordInput, data)
    async with open_tenant_database(session, org_slug) as db:
        record = await custom_collections.update_record(
            db, _as_uuid(collection_id, "Collection"), _as_uuid(record_id, "Record"), payload.data
        )
        return _read(RecordRead, record)


@action
async def delete_record(session: AsyncSession, org_slug: str, collection_id, record_id):
    async with open_tenant_database(session, org_slug) as db:
        await custom_collections.delete_record(
            db, _as_uuid(collection_id, "Collection"), _as_uuid(record_id, "Record")
        )


@action
async def import_records(
    session: AsyncSession,
    org_slug: str,
    collection_id,
    records: Sequence[Mapping[str, Any]],
):
    """Bulk import records whose data is already keyed by field id."""
    payload = _parse(BulkImportInput, {"records": list(records)}) if records else None
    async with open_tenant_database(session, org_slug) as db:
        return await custom_collections.bulk_import_records(
            db, _as_uuid(collection_id, "Collection"), payload.records if payload else []
        )


@action
async def import_rows(
    session: AsyncSession,
    org_slug: str,
    collection_id,
    rows: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, str],
):
    """Coerce parsed spreadsheet rows through a header -> field id mapping and import them."""
    async with open_tenant_database(session, org_slug) as db:
        return await custom_collections.import_rows(
            db, _as_uuid(collection_id, "Collection"), list(rows), dict(mapping)
        )


@action
async def update_embedding_fields(session: AsyncSession, org_slug: str, collection_id, field_ids: Sequence[str]):
    async with open_tenant_database(session, org_slug) as db:
        collection = await custom_collections.update_embedding_fields(
            db, _as_uuid(collection_id, "Collection"), list(field_ids)
        )
        return _read(CollectionRead, collection)


@action
async def regenerate_embeddings(session: AsyncSession, org_slug: str, collection_id):
    async with open_tenant_database(session, org_slug) as db:
        return await custom_collections.regenerate_embeddings(db, _as_uuid(collection_id, "Collection"))
