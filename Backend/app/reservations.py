"""
Reservation booking engine.

Bookings are made against a resource. A reservation occupies the half-open
interval [start_time, end_time): back-to-back bookings share a boundary
without conflicting. Cancelled and no-show reservations never block.

The conflict check and the insert run in one transaction that holds a row
lock on the resource, so two requests for the same resource are serialized.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select

from .core.errors import ConflictError, InvalidInputError, NotFoundError
from .models import (
    NON_BLOCKING_STATUSES,
    Customer,
    Reservation,
    ReservationStatus,
    Resource,
    ResourceSchedule,
    Service,
)
from .schemas import CreateReservationInput, ReservationDetailRead, ReservationStats
from .tenancy import TenantDatabase, require_owned, scoped_select, tenant_filter

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "The resource already has a reservation at that time"

# Allowed status changes. completed is terminal.
STATUS_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.CANCELLED: frozenset({ReservationStatus.PENDING}),
    ReservationStatus.NO_SHOW: frozenset({ReservationStatus.PENDING}),
    ReservationStatus.COMPLETED: frozenset(),
}


# ────────────────────────────────────────────────────────────────
# Time helpers
# ────────────────────────────────────────────────────────────────

def overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Return True if [start_a, end_a) and [start_b, end_b) intersect."""
    return start_a < end_b and start_b < end_a


def parse_start_instant(date_str: str, time_str: str, tz: ZoneInfo) -> datetime:
    """
    Combine a local "YYYY-MM-DD" date and "HH:MM" time into a UTC instant.

    Raises:
        InvalidInputError: either part cannot be parsed, or the wall-clock
            time does not exist in tz (skipped by a DST change)
    """
    try:
        local_date = date.fromisoformat(date_str.strip())
        local_time = time.fromisoformat(time_str.strip())
    except (ValueError, AttributeError) as e:
        raise InvalidInputError("Invalid date or time") from e

    wall_clock = datetime.combine(local_date, local_time.replace(tzinfo=None))
    instant = wall_clock.replace(tzinfo=tz).astimezone(dt_timezone.utc)
    if instant.astimezone(tz).replace(tzinfo=None) != wall_clock:
        raise InvalidInputError("Invalid date or time")
    return instant


def local_day_of_week(moment: datetime) -> int:
    """Weekday of an aware datetime with 0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


# ────────────────────────────────────────────────────────────────
# Internal checks
# ────────────────────────────────────────────────────────────────

async def _find_conflicts(
    db: TenantDatabase,
    resource_id: uuid.UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[uuid.UUID] = None,
) -> list[Reservation]:
    stmt = scoped_select(Reservation, db.organization_id).where(
        Reservation.resource_id == resource_id,
        Reservation.start_time < end_time,
        Reservation.end_time > start_time,
        Reservation.status.notin_(NON_BLOCKING_STATUSES),
    )
    if exclude_id is not None:
        stmt = stmt.where(Reservation.id != exclude_id)
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def _check_schedule(db: TenantDatabase, resource: Resource, start_time: datetime, end_time: datetime) -> None:
    """
    Reject bookings outside the resource's weekly availability.

    Resources without any schedule rows are always bookable.
    """
    result = await db.session.execute(
        select(ResourceSchedule).where(ResourceSchedule.resource_id == resource.id)
    )
    schedules = result.scalars().all()
    if not schedules:
        return

    tz = db.ctx.tzinfo
    local_start = start_time.astimezone(tz)
    local_end = end_time.astimezone(tz)
    day = local_day_of_week(local_start)

    fits = False
    for schedule in schedules:
        if schedule.day_of_week != day:
            continue
        window_start = datetime.combine(local_start.date(), schedule.start_time, tzinfo=tz)
        window_end = datetime.combine(local_start.date(), schedule.end_time, tzinfo=tz)
        if not schedule.is_available:
            if overlap(local_start, local_end, window_start, window_end):
                raise InvalidInputError(f"{resource.name} is not available at that time")
            continue
        if window_start <= local_start and local_end <= window_end:
            fits = True

    if not fits:
        raise InvalidInputError(f"{resource.name} is not available at that time")


async def _get_reservation(db: TenantDatabase, reservation_id: uuid.UUID) -> Reservation:
    reservation = await require_owned(db.session, Reservation, reservation_id, db.organization_id)
    if not reservation:
        raise NotFoundError("Reservation not found")
    return reservation


# ────────────────────────────────────────────────────────────────
# Operations
# ────────────────────────────────────────────────────────────────

async def book_reservation(db: TenantDatabase, data: CreateReservationInput) -> Reservation:
    """
    Create a pending reservation.

    end_time = start_time + service.duration_minutes. Nothing is written when
    any check fails.

    Raises:
        NotFoundError: service, resource or customer not in this organization
        InvalidInputError: bad date/time, resource outside its schedule, or
            resource not attached to the service
        ConflictError: a blocking reservation overlaps on the same resource
    """
    session = db.session

    service = await require_owned(session, Service, data.service_id, db.organization_id)
    if not service:
        raise NotFoundError("Service not found")

    start_time = parse_start_instant(data.date, data.time, db.ctx.tzinfo)
    end_time = start_time + timedelta(minutes=service.duration_minutes)

    # Lock the resource row so concurrent bookings queue behind this one
    resource = await require_owned(session, Resource, data.resource_id, db.organization_id, for_update=True)
    if not resource:
        raise NotFoundError("Resource not found")
    if resource.service_id != service.id:
        raise InvalidInputError(f"{resource.name} does not offer {service.name}")

    customer = await require_owned(session, Customer, data.customer_id, db.organization_id)
    if not customer:
        raise NotFoundError("Customer not found")

    await _check_schedule(db, resource, start_time, end_time)

    conflicts = await _find_conflicts(db, resource.id, start_time, end_time)
    if conflicts:
        logger.warning(
            f"Booking rejected for resource {resource.id} "
            f"[{start_time.isoformat()}, {end_time.isoformat()}): {len(conflicts)} conflict(s)"
        )
        raise ConflictError(CONFLICT_MESSAGE)

    reservation = Reservation(
        organization_id=db.organization_id,
        service_id=service.id,
        resource_id=resource.id,
        customer_id=customer.id,
        start_time=start_time,
        end_time=end_time,
        status=ReservationStatus.PENDING,
        notes=data.notes,
    )
    session.add(reservation)
    await session.commit()
    await session.refresh(reservation)

    logger.info(
        f"Reservation {reservation.id} created for org {db.ctx.slug}: "
        f"resource={resource.name}, start={start_time.isoformat()}"
    )
    return reservation


async def list_reservations(db: TenantDatabase) -> list[ReservationDetailRead]:
    """All reservations with service, resource and customer names, newest start first."""
    stmt = (
        select(
            Reservation,
            Service.name,
            Resource.name,
            Customer.name,
            Customer.email,
            Service.duration_minutes,
        )
        .join(Service, Reservation.service_id == Service.id)
        .join(Resource, Reservation.resource_id == Resource.id)
        .join(Customer, Reservation.customer_id == Customer.id)
        .where(tenant_filter(Reservation, db.organization_id))
        .order_by(Reservation.start_time.desc())
    )
    result = await db.session.execute(stmt)

    details = []
    for reservation, service_name, resource_name, customer_name, customer_email, duration in result.all():
        details.append(
            ReservationDetailRead(
                id=reservation.id,
                organization_id=reservation.organization_id,
                service_id=reservation.service_id,
                resource_id=reservation.resource_id,
                customer_id=reservation.customer_id,
                start_time=reservation.start_time,
                end_time=reservation.end_time,
                status=reservation.status,
                notes=reservation.notes,
                created_at=reservation.created_at,
                updated_at=reservation.updated_at,
                service_name=service_name,
                resource_name=resource_name,
                customer_name=customer_name,
                customer_email=customer_email,
                service_duration=duration,
            )
        )
    return details


async def get_reservation_counts(db: TenantDatabase) -> ReservationStats:
    stmt = (
        select(Reservation.status, func.count())
        .where(tenant_filter(Reservation, db.organization_id))
        .group_by(Reservation.status)
    )
    result = await db.session.execute(stmt)
    by_status = {status: count for status, count in result.all()}

    return ReservationStats(
        total=sum(by_status.values()),
        pending=by_status.get(ReservationStatus.PENDING, 0),
        confirmed=by_status.get(ReservationStatus.CONFIRMED, 0),
    )


async def update_reservation_status(
    db: TenantDatabase,
    reservation_id: uuid.UUID,
    status: ReservationStatus,
) -> Reservation:
    """
    Move a reservation along the status graph.

    Reopening a cancelled or no-show reservation makes it blocking again, so
    the overlap check is repeated under the resource lock.
    """
    session = db.session
    reservation = await _get_reservation(db, reservation_id)
    current = reservation.status

    if status == current:
        return reservation

    if status not in STATUS_TRANSITIONS[current]:
        raise InvalidInputError(f"Cannot change a {current.value} reservation to {status.value}")

    if current in NON_BLOCKING_STATUSES and status not in NON_BLOCKING_STATUSES:
        await require_owned(session, Resource, reservation.resource_id, db.organization_id, for_update=True)
        conflicts = await _find_conflicts(
            db,
            reservation.resource_id,
            reservation.start_time,
            reservation.end_time,
            exclude_id=reservation.id,
        )
        if conflicts:
            raise ConflictError(CONFLICT_MESSAGE)

    reservation.status = status
    await session.commit()
    await session.refresh(reservation)

    logger.info(f"Reservation {reservation.id} status {current.value} -> {status.value}")
    return reservation


async def delete_reservation(db: TenantDatabase, reservation_id: uuid.UUID) -> None:
    reservation = await _get_reservation(db, reservation_id)
    await db.session.delete(reservation)
    await db.session.commit()
    logger.info(f"Reservation {reservation_id} deleted")
