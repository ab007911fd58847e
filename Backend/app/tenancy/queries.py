"""
Tenant-scoped query helpers.

ALL queries for organization-owned rows MUST use these helpers or include an
explicit organization_id filter. This holds on dedicated databases too: the
filter is redundant there but keeps every query path identical.

Usage:
    from app.tenancy.queries import scoped_select, require_owned

    stmt = scoped_select(Service, db.organization_id).where(Service.is_active.is_(True))
    service = await require_owned(db.session, Service, service_id, db.organization_id)
"""

import uuid
from typing import Optional, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

T = TypeVar("T", bound=DeclarativeBase)


def scoped_select(model: Type[T], organization_id: uuid.UUID) -> Select:
    """
    Create a SELECT statement pre-filtered by organization_id.

    Usage:
        stmt = scoped_select(Customer, db.organization_id).order_by(Customer.name)
        result = await session.execute(stmt)
    """
    return select(model).where(model.organization_id == organization_id)


def tenant_filter(model: Type[T], organization_id: uuid.UUID):
    """
    Return a SQLAlchemy filter clause for organization_id.

    Usage:
        stmt = select(Reservation).where(tenant_filter(Reservation, org_id), ...)
    """
    return model.organization_id == organization_id


async def require_owned(
    session: AsyncSession,
    model: Type[T],
    entity_id: uuid.UUID,
    organization_id: uuid.UUID,
    for_update: bool = False,
) -> Optional[T]:
    """
    Fetch an entity by ID, validating organization ownership.
    Returns None if not found or owned by another organization.

    With for_update=True the row is locked until the transaction ends
    (SELECT ... FOR UPDATE; a no-op on SQLite, which serializes writers).
    """
    stmt = select(model).where(
        model.id == entity_id,
        model.organization_id == organization_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
