"""
Action boundary tests.

Actions never raise for expected failures; they return
ActionResult(success=False, error=<message>).

Run with: pytest Backend/tests/test_actions.py -v
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app import actions
from app.models import CustomRecord, Reservation, ReservationStatus
from app.schemas import ReservationRead


def reservation_payload(seeded, time="10:00"):
    return {
        "serviceId": str(seeded.service_id),
        "resourceId": str(seeded.resource_id),
        "customerId": str(seeded.customer_id),
        "date": "2030-01-07",
        "time": time,
    }


class TestOrganizationActions:

    @pytest.mark.asyncio
    async def test_create_organization(self, async_session):
        result = await actions.create_organization(async_session, {"name": "Acme Salon", "slug": "acme"})

        assert result.success is True
        assert result.error is None
        assert result.data.slug == "acme"

    @pytest.mark.asyncio
    async def test_validation_message_is_returned(self, async_session):
        result = await actions.create_organization(async_session, {"name": "Acme", "slug": "Bad Slug"})

        assert result.success is False
        assert result.error == "Slug may only contain lowercase letters, numbers and hyphens"

    @pytest.mark.asyncio
    async def test_slug_conflict(self, async_session, org):
        result = await actions.create_organization(async_session, {"name": "Acme 2", "slug": "acme"})

        assert result.success is False
        assert result.error == "An organization with that slug already exists"

    @pytest.mark.asyncio
    async def test_tier_without_url(self, async_session, org):
        result = await actions.update_organization_tier(async_session, org.id, {"tier": "dedicated"})

        assert result.success is False
        assert result.error == "A database URL is required for the dedicated tier"

    @pytest.mark.asyncio
    async def test_bad_organization_id(self, async_session):
        result = await actions.delete_organization(async_session, "not-a-uuid")

        assert result.success is False
        assert result.error == "Organization not found"


class TestTenantActions:

    @pytest.mark.asyncio
    async def test_unknown_slug(self, async_session):
        result = await actions.create_customer(async_session, "missing", {"name": "Jane"})

        assert result.success is False
        assert result.error == "Organization not found: missing"

    @pytest.mark.asyncio
    async def test_create_reservation_from_camel_case_payload(self, async_session, seeded):
        result = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded))

        assert result.success is True
        assert result.data.status == ReservationStatus.PENDING
        assert result.data.end_time - result.data.start_time == timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_conflict_is_reported_and_nothing_written(self, async_session, seeded):
        first = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded))
        second = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded, "10:15"))

        assert first.success is True
        assert second.success is False
        assert second.error == "The resource already has a reservation at that time"

        count = await async_session.execute(select(func.count()).select_from(Reservation))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_earlier_result_survives_a_failed_action(self, async_session, seeded):
        first = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded))
        clash = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded, "10:15"))

        assert clash.success is False
        assert isinstance(first.data, ReservationRead)
        assert first.data.end_time - first.data.start_time == timedelta(minutes=30)
        assert first.data.status == ReservationStatus.PENDING
        assert first.data.resource_id == seeded.resource_id

    @pytest.mark.asyncio
    async def test_malformed_time(self, async_session, seeded):
        result = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded, "25:99"))

        assert result.success is False
        assert result.error == "Invalid date or time"

    @pytest.mark.asyncio
    async def test_missing_field_names_the_location(self, async_session, seeded):
        payload = reservation_payload(seeded)
        del payload["date"]

        result = await actions.create_reservation(async_session, seeded.slug, payload)

        assert result.success is False
        assert result.error.startswith("date:")

    @pytest.mark.asyncio
    async def test_status_update(self, async_session, seeded):
        created = await actions.create_reservation(async_session, seeded.slug, reservation_payload(seeded))
        reservation_id = created.data.id

        confirmed = await actions.update_reservation_status(
            async_session, seeded.slug, str(reservation_id), {"status": "confirmed"}
        )
        illegal = await actions.update_reservation_status(
            async_session, seeded.slug, reservation_id, {"status": "pending"}
        )

        assert confirmed.success is True
        assert illegal.success is False
        assert illegal.error == "Cannot change a confirmed reservation to pending"

    @pytest.mark.asyncio
    async def test_duplicate_customer_email(self, async_session, seeded):
        result = await actions.create_customer(
            async_session, seeded.slug, {"name": "Other Jane", "email": "JANE@example.com"}
        )

        assert result.success is False
        assert result.error == "A customer with that email already exists in this organization"

    @pytest.mark.asyncio
    async def test_unknown_entity_id(self, async_session, seeded):
        result = await actions.delete_service(async_session, seeded.slug, uuid.uuid4())

        assert result.success is False
        assert result.error == "Service not found"


class TestCollectionActions:

    @pytest.mark.asyncio
    async def test_collection_import_flow(self, async_session, org):
        created = await actions.create_collection(
            async_session,
            "acme",
            {"name": "Products"},
            fields=[{"name": "Name", "fieldType": "text"}, {"name": "Price", "fieldType": "number"}],
        )
        assert created.success is True
        collection_id = created.data.id

        added = await actions.add_field(async_session, "acme", collection_id, {"name": "Active", "fieldType": "boolean"})
        assert added.data.field_order == 2

        imported = await actions.import_rows(
            async_session,
            "acme",
            str(collection_id),
            [{"Product": "Widget", "Cost": "9.5", "On": "true"}],
            {"On": str(added.data.id)},
        )
        assert imported.success is True
        assert imported.data == {"imported": 1}

        count = await async_session.execute(select(func.count()).select_from(CustomRecord))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_empty_import(self, async_session, org):
        created = await actions.create_collection(async_session, "acme", {"name": "Products"})

        result = await actions.import_records(async_session, "acme", created.data.id, [])

        assert result.success is False
        assert result.error == "No records to import"


class TestEndToEnd:
    """Org -> service -> resource -> customer -> overlapping and back-to-back bookings."""

    @pytest.mark.asyncio
    async def test_booking_scenario(self, async_session):
        org = await actions.create_organization(async_session, {"name": "Acme", "slug": "acme"})
        assert org.success is True
        assert org.data.tier.value == "shared"

        service = await actions.create_service(async_session, "acme", {"name": "Haircut", "durationMinutes": 30})
        resource = await actions.create_resource(
            async_session, "acme", {"serviceId": str(service.data.id), "name": "Chair 1"}
        )
        customer = await actions.create_customer(async_session, "acme", {"name": "Jane"})

        ids = {
            "serviceId": str(service.data.id),
            "resourceId": str(resource.data.id),
            "customerId": str(customer.data.id),
        }

        def request(time):
            return {
                **ids,
                "date": "2024-01-10",
                "time": time,
            }

        first = await actions.create_reservation(async_session, "acme", request("10:00"))
        overlapping = await actions.create_reservation(async_session, "acme", request("10:15"))
        back_to_back = await actions.create_reservation(async_session, "acme", request("10:30"))

        assert first.success is True
        assert overlapping.success is False
        assert overlapping.error == "The resource already has a reservation at that time"
        assert back_to_back.success is True
        assert back_to_back.data.start_time == first.data.end_time
        assert service.data.name == "Haircut"

        count = await async_session.execute(select(func.count()).select_from(Reservation))
        assert count.scalar_one() == 2
