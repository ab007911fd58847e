from decimal import Decimal

from sqlalchemy import select

from .models import Customer, Organization, OrganizationTier, Resource, Service


DEMO_ORG_SLUG = "acme"


async def seed_demo_data(session):
    """Create the demo organization and its catalog. Running it again changes nothing."""
    result = await session.execute(select(Organization).where(Organization.slug == DEMO_ORG_SLUG))
    org = result.scalar_one_or_none()

    if not org:
        org = Organization(
            name="Acme Salon",
            slug=DEMO_ORG_SLUG,
            tier=OrganizationTier.SHARED,
            settings={"timezone": "UTC", "currency": "USD"},
        )
        session.add(org)
        await session.flush()

    # Seed services if missing
    result = await session.execute(select(Service).where(Service.organization_id == org.id))
    services = result.scalars().all()
    if not services:
        haircut = Service(
            organization_id=org.id,
            name="Haircut",
            description="Classic or modern cut",
            duration_minutes=30,
            price=Decimal("35.00"),
        )
        session.add(haircut)
        await session.flush()
        services = [haircut]

    result = await session.execute(select(Resource).where(Resource.organization_id == org.id))
    if not result.scalars().all():
        session.add(Resource(organization_id=org.id, service_id=services[0].id, name="Chair 1"))

    result = await session.execute(select(Customer).where(Customer.organization_id == org.id))
    if not result.scalars().all():
        session.add(
            Customer(
                organization_id=org.id,
                name="Jane Doe",
                email="jane@example.com",
                phone="+15550100",
            )
        )

    await session.commit()
    return org
