"""
Request/response models.

Inputs accept snake_case or camelCase keys. Outputs are serialized in
camelCase, which is what the dashboard and the API consumers expect.
"""

import re
import uuid
from datetime import datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer, model_validator
from pydantic.alias_generators import to_camel

from .models import CustomFieldType, OrganizationTier, ReservationStatus

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
HHMM_PATTERN = re.compile(r"^\d{2}:\d{2}$")


class InputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class ReadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ────────────────────────────────────────────────────────────────
# Organizations
# ────────────────────────────────────────────────────────────────

class CreateOrganizationInput(InputModel):
    name: str = Field(..., min_length=2, max_length=100)
    slug: str = Field(..., min_length=2, max_length=50)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not SLUG_PATTERN.match(v):
            raise ValueError("Slug may only contain lowercase letters, numbers and hyphens")
        return v


class UpdateOrganizationInput(InputModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    settings: Optional[dict[str, Any]] = None


class UpdateOrganizationTierInput(InputModel):
    tier: OrganizationTier
    database_url: Optional[str] = None

    _normalize_url = field_validator("database_url", mode="before")(_blank_to_none)

    @model_validator(mode="after")
    def require_url_for_dedicated(self) -> "UpdateOrganizationTierInput":
        if self.tier == OrganizationTier.DEDICATED and not self.database_url:
            raise ValueError("A database URL is required for the dedicated tier")
        return self


class OrganizationRead(ReadModel):
    id: uuid.UUID
    name: str
    slug: str
    tier: OrganizationTier
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime


# ────────────────────────────────────────────────────────────────
# Services & Resources
# ────────────────────────────────────────────────────────────────

class CreateServiceInput(InputModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    duration_minutes: int
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    _normalize_description = field_validator("description", "price", mode="before")(_blank_to_none)

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v < 5:
            raise ValueError("Minimum duration is 5 minutes")
        if v > 480:
            raise ValueError("Maximum duration is 8 hours")
        return v


class CreateResourceInput(InputModel):
    service_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)


class CreateResourceScheduleInput(InputModel):
    resource_id: uuid.UUID
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    start_time: time
    end_time: time
    is_available: bool = True

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_hhmm(cls, v):
        if isinstance(v, str):
            if not HHMM_PATTERN.match(v):
                raise ValueError("Use HH:MM format")
            return time.fromisoformat(v)
        return v

    @model_validator(mode="after")
    def check_range(self) -> "CreateResourceScheduleInput":
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class ResourceScheduleRead(ReadModel):
    id: uuid.UUID
    resource_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool


class ResourceRead(ReadModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    service_id: uuid.UUID
    name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ServiceRead(ReadModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: Optional[Decimal] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ServiceWithResourcesRead(ServiceRead):
    resources: Optional[list[ResourceRead]] = None

    @model_serializer(mode="wrap")
    def _omit_unrequested_resources(self, handler):
        # Plain service listings carry no "resources" key at all
        data = handler(self)
        if self.resources is None:
            data.pop("resources", None)
        return data


# ────────────────────────────────────────────────────────────────
# Customers
# ────────────────────────────────────────────────────────────────

class CreateCustomerInput(InputModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)

    _normalize_optional = field_validator("email", "phone", mode="before")(_blank_to_none)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email")
        return v.lower()


class CustomerRead(ReadModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ────────────────────────────────────────────────────────────────
# Reservations
# ────────────────────────────────────────────────────────────────

class CreateReservationInput(InputModel):
    """
    Minimum data required to create a reservation.

    end_time is derived from the service duration and status starts as
    pending, so neither is accepted here.
    """
    service_id: uuid.UUID
    resource_id: uuid.UUID
    customer_id: uuid.UUID
    date: str = Field(..., min_length=1, description="YYYY-MM-DD in the organization's timezone")
    time: str = Field(..., min_length=1, description="HH:MM in the organization's timezone")
    notes: Optional[str] = Field(None, max_length=500)


class UpdateReservationStatusInput(InputModel):
    status: ReservationStatus


class ReservationRead(ReadModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    service_id: uuid.UUID
    resource_id: uuid.UUID
    customer_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ReservationDetailRead(ReservationRead):
    service_name: str
    resource_name: str
    customer_name: str
    customer_email: Optional[str] = None
    service_duration: int


class ReservationStats(ReadModel):
    total: int
    pending: int
    confirmed: int


# ────────────────────────────────────────────────────────────────
# Custom Collections
# ────────────────────────────────────────────────────────────────

class CreateCollectionInput(InputModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = Field(None, max_length=10)


class CreateFieldInput(InputModel):
    name: str = Field(..., min_length=1, max_length=100)
    field_type: CustomFieldType
    is_required: bool = False
    options: dict[str, Any] = Field(default_factory=dict)


class CreateRecordInput(InputModel):
    data: dict[str, Any]


class BulkImportInput(InputModel):
    records: list[dict[str, Any]] = Field(..., min_length=1)


class CollectionRead(ReadModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    embedding_field_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class FieldRead(ReadModel):
    id: uuid.UUID
    collection_id: uuid.UUID
    name: str
    field_type: CustomFieldType
    field_order: int
    options: dict[str, Any]
    is_required: bool


class CollectionWithFieldsRead(ReadModel):
    collection: CollectionRead
    fields: list[FieldRead]


class RecordRead(ReadModel):
    id: uuid.UUID
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime
