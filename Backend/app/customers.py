import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .core.errors import ConflictError, NotFoundError
from .models import Customer
from .schemas import CreateCustomerInput
from .tenancy import TenantDatabase, require_owned, scoped_select, tenant_filter

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "A customer with that email already exists in this organization"


async def list_customers(db: TenantDatabase) -> list[Customer]:
    stmt = scoped_select(Customer, db.organization_id).order_by(Customer.created_at.desc())
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def get_customer(db: TenantDatabase, customer_id: uuid.UUID) -> Customer:
    customer = await require_owned(db.session, Customer, customer_id, db.organization_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


async def find_customer_by_email(db: TenantDatabase, email: str) -> Customer | None:
    result = await db.session.execute(
        select(Customer).where(
            tenant_filter(Customer, db.organization_id),
            Customer.email == email.strip().lower(),
        )
    )
    return result.scalar_one_or_none()


async def create_customer(db: TenantDatabase, data: CreateCustomerInput) -> Customer:
    """
    Create a customer.

    Email is unique per organization. The same address may exist in other
    organizations.
    """
    if data.email and await find_customer_by_email(db, data.email):
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE)

    customer = Customer(
        organization_id=db.organization_id,
        name=data.name,
        email=data.email,
        phone=data.phone,
    )
    db.session.add(customer)
    try:
        await db.session.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent insert with the same email
        await db.session.rollback()
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE) from e
    await db.session.refresh(customer)

    logger.info(f"Customer created for org {db.ctx.slug}: {customer.id}")
    return customer


async def delete_customer(db: TenantDatabase, customer_id: uuid.UUID) -> None:
    customer = await get_customer(db, customer_id)
    await db.session.delete(customer)
    try:
        await db.session.commit()
    except IntegrityError as e:
        await db.session.rollback()
        raise ConflictError("The customer has reservations and cannot be deleted") from e
