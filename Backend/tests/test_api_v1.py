"""
REST API v1 tests.

Covers the read-only endpoints under /api/v1/{org_slug}: camelCase
payloads, the success/error envelope, the API key gate and dedicated-tier
routing.

Run with: pytest Backend/tests/test_api_v1.py -v
"""

import pytest

from app import actions
from app.core.config import get_settings
from app.custom_collections import create_collection, create_record, list_fields
from app.models import CustomFieldType, Resource
from app.reservations import book_reservation
from app.schemas import CreateCollectionInput, CreateFieldInput, CreateRecordInput, CreateReservationInput


# ────────────────────────────────────────────────────────────────
# Envelope & auth
# ────────────────────────────────────────────────────────────────

class TestEnvelope:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_organization(self, client, org):
        response = await client.get("/api/v1/acme")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["slug"] == "acme"
        assert body["data"]["tier"] == "shared"
        assert "createdAt" in body["data"]
        assert "databaseUrl" not in body["data"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["", "/services", "/customers", "/reservations/stats"])
    async def test_unknown_org_is_404(self, client, path):
        response = await client.get(f"/api/v1/missing{path}")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Organization not found: missing"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/collections/not-a-uuid", "/collections/not-a-uuid/records"])
    async def test_malformed_collection_id_is_404(self, client, org, path):
        response = await client.get(f"/api/v1/acme{path}")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Collection not found"}


class TestApiKey:

    @pytest.fixture
    def api_key(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "api_key", "secret")
        return "secret"

    @pytest.mark.asyncio
    async def test_missing_key_is_rejected(self, client, org, api_key):
        response = await client.get("/api/v1/acme/services")

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized: Invalid or missing API key"}

    @pytest.mark.asyncio
    async def test_wrong_key_is_rejected(self, client, org, api_key):
        response = await client.get("/api/v1/acme/services", headers={"x-api-key": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key_is_accepted(self, client, org, api_key):
        response = await client.get("/api/v1/acme/services", headers={"x-api-key": api_key})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_gate_is_open_without_configured_key(self, client, org):
        response = await client.get("/api/v1/acme/services")
        assert response.status_code == 200


# ────────────────────────────────────────────────────────────────
# Catalog, customers, reservations
# ────────────────────────────────────────────────────────────────

class TestCatalogEndpoints:

    @pytest.mark.asyncio
    async def test_services_camel_case(self, client, seeded):
        response = await client.get("/api/v1/acme/services")

        [service] = response.json()["data"]
        assert service["name"] == "Haircut"
        assert service["durationMinutes"] == 30
        assert service["isActive"] is True
        assert "resources" not in service
        assert "description" in service

    @pytest.mark.asyncio
    async def test_services_with_active_resources(self, client, async_session, seeded):
        async_session.add_all([
            Resource(organization_id=seeded.org_id, service_id=seeded.service_id, name="Chair 2"),
            Resource(organization_id=seeded.org_id, service_id=seeded.service_id, name="Chair 0", is_active=False),
        ])
        await async_session.commit()

        response = await client.get("/api/v1/acme/services", params={"includeResources": "true"})

        [service] = response.json()["data"]
        assert [r["name"] for r in service["resources"]] == ["Chair 1", "Chair 2"]
        assert service["resources"][0]["serviceId"] == str(seeded.service_id)

    @pytest.mark.asyncio
    async def test_resources_and_customers(self, client, seeded):
        resources = (await client.get("/api/v1/acme/resources")).json()["data"]
        customers = (await client.get("/api/v1/acme/customers")).json()["data"]

        assert [r["name"] for r in resources] == ["Chair 1"]
        assert customers[0]["email"] == "jane@example.com"
        assert customers[0]["organizationId"] == str(seeded.org_id)

    @pytest.mark.asyncio
    async def test_orgs_do_not_see_each_other(self, client, seeded, other_org):
        response = await client.get("/api/v1/globex/customers")
        assert response.json() == {"success": True, "data": [], "error": None}

    @pytest.mark.asyncio
    async def test_reservations_and_stats(self, client, tenant_db, seeded):
        await book_reservation(
            tenant_db,
            CreateReservationInput(
                service_id=seeded.service_id,
                resource_id=seeded.resource_id,
                customer_id=seeded.customer_id,
                date="2030-01-07",
                time="10:00",
            ),
        )

        [reservation] = (await client.get("/api/v1/acme/reservations")).json()["data"]
        stats = (await client.get("/api/v1/acme/reservations/stats")).json()["data"]

        assert reservation["serviceName"] == "Haircut"
        assert reservation["resourceName"] == "Chair 1"
        assert reservation["customerName"] == "Jane Doe"
        assert reservation["serviceDuration"] == 30
        assert reservation["status"] == "pending"
        assert reservation["startTime"].startswith("2030-01-07T10:00:00")
        assert stats == {"total": 1, "pending": 1, "confirmed": 0}


# ────────────────────────────────────────────────────────────────
# Collections
# ────────────────────────────────────────────────────────────────

class TestCollectionEndpoints:

    async def _make_contacts(self, tenant_db):
        collection = await create_collection(
            tenant_db,
            CreateCollectionInput(name="Contacts"),
            fields=[
                CreateFieldInput(name="Company", field_type=CustomFieldType.TEXT),
                CreateFieldInput(name="Seats", field_type=CustomFieldType.NUMBER),
            ],
        )
        ids = {f.name: str(f.id) for f in await list_fields(tenant_db, collection.id)}
        await create_record(
            tenant_db, collection.id, CreateRecordInput(data={ids["Company"]: "Initech", ids["Seats"]: 12})
        )
        return collection.id, ids

    @pytest.mark.asyncio
    async def test_collection_with_fields(self, client, tenant_db):
        collection_id, _ = await self._make_contacts(tenant_db)

        body = (await client.get(f"/api/v1/acme/collections/{collection_id}")).json()

        assert body["data"]["collection"]["name"] == "Contacts"
        assert [(f["name"], f["fieldOrder"], f["fieldType"]) for f in body["data"]["fields"]] == [
            ("Company", 0, "text"),
            ("Seats", 1, "number"),
        ]

    @pytest.mark.asyncio
    async def test_list_collections(self, client, tenant_db):
        await self._make_contacts(tenant_db)
        data = (await client.get("/api/v1/acme/collections")).json()["data"]
        assert [c["name"] for c in data] == ["Contacts"]
        assert data[0]["embeddingFieldIds"] == []

    @pytest.mark.asyncio
    async def test_records_resolved_by_default(self, client, tenant_db):
        collection_id, _ = await self._make_contacts(tenant_db)

        body = (await client.get(f"/api/v1/acme/collections/{collection_id}/records")).json()

        assert body["success"] is True
        assert body["collection"] == "Contacts"
        assert body["fieldCount"] == 2
        assert body["data"][0]["data"] == {"Company": "Initech", "Seats": 12}

    @pytest.mark.asyncio
    async def test_raw_records_keep_field_ids(self, client, tenant_db):
        collection_id, ids = await self._make_contacts(tenant_db)

        body = (await client.get(f"/api/v1/acme/collections/{collection_id}/records?raw=true")).json()

        assert body["fieldCount"] == 2
        assert body["data"][0]["data"] == {ids["Company"]: "Initech", ids["Seats"]: 12}

    @pytest.mark.asyncio
    async def test_unknown_collection_is_404(self, client, org):
        response = await client.get("/api/v1/acme/collections/00000000-0000-0000-0000-000000000000/records")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Collection not found"}


# ────────────────────────────────────────────────────────────────
# Dedicated tier
# ────────────────────────────────────────────────────────────────

class TestDedicatedRouting:

    @pytest.mark.asyncio
    async def test_reads_come_from_the_dedicated_database(self, client, async_session, dedicated_org):
        created = await actions.create_customer(
            async_session, "initech", {"name": "Peter", "email": "peter@initech.test"}
        )
        assert created.success is True

        data = (await client.get("/api/v1/initech/customers")).json()["data"]

        assert [c["name"] for c in data] == ["Peter"]
        assert data[0]["organizationId"] == str(dedicated_org.id)
