import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.api.deps import get_bidding_service, get_db
from repairbid.api.v1.requests import OfferSummary, WorkshopSummary
from repairbid.core.bidding.service import BiddingService
from repairbid.core.matching.geo import distance_km
from repairbid.core.matching.schemas import Coordinate

router = APIRouter(prefix="/offers", tags=["Offers"])


# ---------- Schemas ----------


class CreateOfferBody(BaseModel):
    request_id: uuid.UUID
    workshop_id: uuid.UUID  # workshop id or the id of the owning user account
    price: Decimal | None = None
    estimated_duration: int | None = None
    warranty: str | None = None
    note: str | None = None
    available_dates: list[datetime] | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class OfferDetailResponse(OfferSummary):
    distance: float
    workshop: WorkshopSummary


# ---------- Endpoints ----------


@router.post("", response_model=OfferSummary, status_code=201)
async def create_offer(
    body: CreateOfferBody,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    workshop = await service.resolve_workshop(body.workshop_id, db)
    offer = await service.create_offer(
        request_id=body.request_id,
        workshop=workshop,
        price=body.price,
        estimated_duration=body.estimated_duration,
        available_dates=body.available_dates,
        warranty=body.warranty,
        note=body.note,
        db=db,
    )
    return OfferSummary.model_validate(offer)


@router.get("/{offer_id}", response_model=OfferDetailResponse)
async def get_offer(
    offer_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    offer = await service.get_offer(offer_id, db)
    request = await service.get_request(offer.request_id, db)

    distance = distance_km(
        Coordinate(latitude=request.latitude, longitude=request.longitude),
        Coordinate(latitude=offer.workshop.latitude, longitude=offer.workshop.longitude),
    )
    return OfferDetailResponse(
        **OfferSummary.model_validate(offer).model_dump(),
        distance=distance,
        workshop=WorkshopSummary.model_validate(offer.workshop),
    )


@router.post("/{offer_id}/decline", response_model=OfferSummary)
async def decline_offer(
    offer_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    offer = await service.decline_offer(offer_id, db)
    return OfferSummary.model_validate(offer)
