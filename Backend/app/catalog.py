"""
Services, resources and weekly resource schedules.

All functions are tenant-scoped through a TenantDatabase handle.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .core.errors import ConflictError, NotFoundError
from .models import Resource, ResourceSchedule, Service
from .schemas import CreateResourceInput, CreateResourceScheduleInput, CreateServiceInput
from .tenancy import TenantDatabase, require_owned, scoped_select

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Services
# ────────────────────────────────────────────────────────────────

async def list_services(db: TenantDatabase) -> list[Service]:
    stmt = scoped_select(Service, db.organization_id).order_by(Service.created_at.desc())
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def list_active_services(db: TenantDatabase) -> list[Service]:
    """Active services sorted by name (for pickers)."""
    stmt = (
        scoped_select(Service, db.organization_id)
        .where(Service.is_active.is_(True))
        .order_by(Service.name)
    )
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def get_service(db: TenantDatabase, service_id: uuid.UUID) -> Service:
    service = await require_owned(db.session, Service, service_id, db.organization_id)
    if not service:
        raise NotFoundError("Service not found")
    return service


async def create_service(db: TenantDatabase, data: CreateServiceInput) -> Service:
    service = Service(
        organization_id=db.organization_id,
        name=data.name,
        description=data.description,
        duration_minutes=data.duration_minutes,
        price=data.price,
    )
    db.session.add(service)
    await db.session.commit()
    await db.session.refresh(service)

    logger.info(f"Service created for org {db.ctx.slug}: {service.name} ({service.duration_minutes} min)")
    return service


async def delete_service(db: TenantDatabase, service_id: uuid.UUID) -> None:
    """
    Delete a service and, by cascade, its resources.

    Raises:
        ConflictError: reservations still reference the service or its resources
    """
    service = await get_service(db, service_id)
    await db.session.delete(service)
    try:
        await db.session.commit()
    except IntegrityError as e:
        await db.session.rollback()
        raise ConflictError("The service has reservations and cannot be deleted") from e
    logger.info(f"Service deleted for org {db.ctx.slug}: {service_id}")


# ────────────────────────────────────────────────────────────────
# Resources
# ────────────────────────────────────────────────────────────────

async def list_resources(db: TenantDatabase) -> list[Resource]:
    stmt = scoped_select(Resource, db.organization_id).order_by(Resource.name)
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def list_resources_by_service(db: TenantDatabase, service_id: uuid.UUID) -> list[Resource]:
    stmt = (
        scoped_select(Resource, db.organization_id)
        .where(Resource.service_id == service_id, Resource.is_active.is_(True))
        .order_by(Resource.name)
    )
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def get_resource(db: TenantDatabase, resource_id: uuid.UUID) -> Resource:
    resource = await require_owned(db.session, Resource, resource_id, db.organization_id)
    if not resource:
        raise NotFoundError("Resource not found")
    return resource


async def create_resource(db: TenantDatabase, data: CreateResourceInput) -> Resource:
    # The parent service must belong to the same organization
    await get_service(db, data.service_id)

    resource = Resource(
        organization_id=db.organization_id,
        service_id=data.service_id,
        name=data.name,
    )
    db.session.add(resource)
    await db.session.commit()
    await db.session.refresh(resource)
    return resource


async def delete_resource(db: TenantDatabase, resource_id: uuid.UUID) -> None:
    resource = await get_resource(db, resource_id)
    await db.session.delete(resource)
    try:
        await db.session.commit()
    except IntegrityError as e:
        await db.session.rollback()
        raise ConflictError("The resource has reservations and cannot be deleted") from e


# ────────────────────────────────────────────────────────────────
# Schedules
# ────────────────────────────────────────────────────────────────

async def list_resource_schedules(db: TenantDatabase, resource_id: uuid.UUID) -> list[ResourceSchedule]:
    await get_resource(db, resource_id)
    result = await db.session.execute(
        select(ResourceSchedule)
        .where(ResourceSchedule.resource_id == resource_id)
        .order_by(ResourceSchedule.day_of_week, ResourceSchedule.start_time)
    )
    return list(result.scalars().all())


async def add_resource_schedule(db: TenantDatabase, data: CreateResourceScheduleInput) -> ResourceSchedule:
    """Add a weekly window (day_of_week 0=Sunday) to a resource."""
    await get_resource(db, data.resource_id)

    schedule = ResourceSchedule(
        resource_id=data.resource_id,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        is_available=data.is_available,
    )
    db.session.add(schedule)
    await db.session.commit()
    await db.session.refresh(schedule)
    return schedule
