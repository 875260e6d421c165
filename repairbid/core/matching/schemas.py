"""Read-only snapshots the ranking and matching functions operate on.

They are built from ORM rows (``model_validate(row)``) by the caller, so the
pure functions never touch the database.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from repairbid.common.clock import as_utc
from repairbid.common.enums import OfferStatus, RequestStatus


class Coordinate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = {"frozen": True}


class WorkshopSnapshot(BaseModel):
    id: uuid.UUID
    company_name: str = ""
    latitude: float
    longitude: float
    rating: float = 0.0
    review_count: int = 0
    is_verified: bool = False
    is_active: bool = True

    model_config = {"from_attributes": True}

    @property
    def location(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class RequestSnapshot(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID | None = None
    status: RequestStatus
    latitude: float
    longitude: float
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    description: str | None = None
    created_at: datetime | None = None
    expires_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at", "expires_at")
    @classmethod
    def _normalise_tz(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @property
    def location(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class OfferSnapshot(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    workshop_id: uuid.UUID
    price: Decimal
    estimated_duration: int
    warranty: str | None = None
    note: str | None = None
    available_dates: list[str] = Field(default_factory=list)
    status: OfferStatus
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("available_dates", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class OfferWithWorkshop(OfferSnapshot):
    workshop: WorkshopSnapshot


class RankedOffer(BaseModel):
    offer: OfferWithWorkshop
    distance_km: float


class PriceRange(BaseModel):
    min: Decimal = Decimal("0")
    max: Decimal | None = None


class OfferFilters(BaseModel):
    price_range: PriceRange | None = None
    max_distance_km: float | None = None
    min_rating: float | None = None


class EligibleRequest(BaseModel):
    request: RequestSnapshot
    distance_km: float
    own_offer: OfferSnapshot | None = None
