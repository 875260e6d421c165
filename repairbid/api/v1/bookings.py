import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.api.deps import get_bidding_service, get_db
from repairbid.common.enums import BookingStatus
from repairbid.core.bidding.service import BiddingService

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------- Schemas ----------


class CreateBookingBody(BaseModel):
    request_id: uuid.UUID
    offer_id: uuid.UUID
    scheduled_at: datetime
    total_amount: Decimal | None = Field(None, gt=0)
    payment_reference: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class UpdateBookingBody(BaseModel):
    status: BookingStatus | None = None
    scheduled_at: datetime | None = None
    notes: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class BookingResponse(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    offer_id: uuid.UUID
    customer_id: uuid.UUID
    workshop_id: uuid.UUID
    scheduled_at: datetime
    status: BookingStatus
    total_amount: Decimal
    commission: Decimal
    workshop_amount: Decimal
    payment_reference: str | None
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int


# ---------- Endpoints ----------


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    body: CreateBookingBody,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.accept_offer(
        request_id=body.request_id,
        offer_id=body.offer_id,
        scheduled_at=body.scheduled_at,
        total_amount=body.total_amount,
        payment_reference=body.payment_reference,
        db=db,
    )
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: uuid.UUID,
    body: UpdateBookingBody,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.update_booking(
        booking_id,
        db,
        status=body.status,
        scheduled_at=body.scheduled_at,
        notes=body.notes,
    )
    return BookingResponse.model_validate(booking)


@router.get("/customer/{customer_id}", response_model=BookingListResponse)
async def list_customer_bookings(
    customer_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    bookings = await service.list_customer_bookings(customer_id, db)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=len(bookings),
    )
