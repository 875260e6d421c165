import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.api.deps import get_bidding_service, get_db
from repairbid.api.v1.bookings import BookingResponse
from repairbid.common.clock import as_utc, utcnow
from repairbid.common.enums import OfferSortKey, OfferStatus
from repairbid.common.exceptions import BadRequestError
from repairbid.core.bidding.service import BiddingService
from repairbid.core.bidding.workflow import effective_status
from repairbid.core.matching.geo import distance_km
from repairbid.core.matching.ranking import parse_price_range
from repairbid.core.matching.schemas import Coordinate, OfferFilters

router = APIRouter(prefix="/requests", tags=["Requests"])


# ---------- Schemas ----------


class CreateRequestBody(BaseModel):
    customer_id: uuid.UUID
    vehicle_id: uuid.UUID
    report_id: uuid.UUID
    latitude: float
    longitude: float
    address: str
    city: str
    postal_code: str | None = None
    description: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class RequestResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    vehicle_id: uuid.UUID
    report_id: uuid.UUID
    description: str | None
    latitude: float
    longitude: float
    address: str
    city: str
    postal_code: str
    status: str
    effective_status: str
    created_at: datetime
    expires_at: datetime


class CreateRequestResponse(RequestResponse):
    matched_workshops: int


class WorkshopSummary(BaseModel):
    id: uuid.UUID
    company_name: str
    rating: float
    review_count: int
    is_verified: bool

    model_config = {"from_attributes": True}


class OfferSummary(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    workshop_id: uuid.UUID
    price: Decimal
    estimated_duration: int
    warranty: str | None
    note: str | None
    available_dates: list[str]
    status: OfferStatus
    created_at: datetime | None

    model_config = {"from_attributes": True}


class RankedOfferResponse(OfferSummary):
    distance: float
    workshop: WorkshopSummary


class CustomerRequestResponse(RequestResponse):
    offers: list[RankedOfferResponse]
    bookings: list[BookingResponse]


class AvailableRequestResponse(BaseModel):
    id: uuid.UUID
    description: str | None
    address: str | None
    city: str | None
    postal_code: str | None
    latitude: float
    longitude: float
    status: str
    created_at: datetime | None
    expires_at: datetime
    distance: float
    my_offer: OfferSummary | None


# ---------- Endpoints ----------


@router.post("", response_model=CreateRequestResponse, status_code=201)
async def create_request(
    body: CreateRequestBody,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    request = await service.create_request(
        customer_id=body.customer_id,
        vehicle_id=body.vehicle_id,
        report_id=body.report_id,
        latitude=body.latitude,
        longitude=body.longitude,
        address=body.address,
        city=body.city,
        postal_code=body.postal_code,
        description=body.description,
        db=db,
    )
    workshops = await service.find_workshops_for_request(request, db)

    return CreateRequestResponse(
        **_request_response(request).model_dump(),
        matched_workshops=len(workshops),
    )


@router.get("/available", response_model=list[AvailableRequestResponse])
async def list_available_requests(
    workshop_id: uuid.UUID = Query(..., alias="workshopId"),
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    radius: float | None = Query(None, gt=0, description="Search radius in km"),
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    if (latitude is None) != (longitude is None):
        raise BadRequestError("latitude and longitude must be given together")

    workshop = await service.resolve_workshop(workshop_id, db)
    location = None
    if latitude is not None and longitude is not None:
        location = Coordinate(latitude=latitude, longitude=longitude)

    matches = await service.list_available_requests(
        workshop, db, radius_km=radius, location=location
    )

    return [
        AvailableRequestResponse(
            id=m.request.id,
            description=m.request.description,
            address=m.request.address,
            city=m.request.city,
            postal_code=m.request.postal_code,
            latitude=m.request.latitude,
            longitude=m.request.longitude,
            status=m.request.status.value,
            created_at=m.request.created_at,
            expires_at=m.request.expires_at,
            distance=m.distance_km,
            my_offer=OfferSummary.model_validate(m.own_offer) if m.own_offer else None,
        )
        for m in matches
    ]


@router.get("/customer/{customer_id}", response_model=list[CustomerRequestResponse])
async def list_customer_requests(
    customer_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    rows = await service.list_customer_requests(customer_id, db)

    responses = []
    for request, offers, bookings in rows:
        location = Coordinate(latitude=request.latitude, longitude=request.longitude)
        responses.append(
            CustomerRequestResponse(
                **_request_response(request).model_dump(),
                offers=[
                    RankedOfferResponse(
                        **OfferSummary.model_validate(o).model_dump(),
                        distance=distance_km(
                            location,
                            Coordinate(latitude=o.workshop.latitude, longitude=o.workshop.longitude),
                        ),
                        workshop=WorkshopSummary.model_validate(o.workshop),
                    )
                    for o in offers
                ],
                bookings=[BookingResponse.model_validate(b) for b in bookings],
            )
        )
    return responses


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    request = await service.get_request(request_id, db)
    return _request_response(request)


@router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    request = await service.cancel_request(request_id, db)
    return _request_response(request)


@router.get("/{request_id}/offers", response_model=list[RankedOfferResponse])
async def list_offers(
    request_id: uuid.UUID,
    sort_by: OfferSortKey = Query(OfferSortKey.PRICE, alias="sortBy"),
    filter_price: str | None = Query(None, alias="filterPrice", description="'min-max' or 'min-'"),
    filter_distance: float | None = Query(None, alias="filterDistance", ge=0),
    filter_rating: float | None = Query(None, alias="filterRating", ge=0, le=5),
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    filters = OfferFilters(
        price_range=parse_price_range(filter_price) if filter_price else None,
        max_distance_km=filter_distance,
        min_rating=filter_rating,
    )
    ranked = await service.list_ranked_offers(request_id, db, sort_by=sort_by, filters=filters)

    return [
        RankedOfferResponse(
            **OfferSummary.model_validate(r.offer).model_dump(),
            distance=r.distance_km,
            workshop=WorkshopSummary.model_validate(r.offer.workshop),
        )
        for r in ranked
    ]


def _request_response(request) -> RequestResponse:
    return RequestResponse(
        id=request.id,
        customer_id=request.customer_id,
        vehicle_id=request.vehicle_id,
        report_id=request.report_id,
        description=request.description,
        latitude=request.latitude,
        longitude=request.longitude,
        address=request.address,
        city=request.city,
        postal_code=request.postal_code,
        status=request.status,
        effective_status=effective_status(request, utcnow()).value,
        created_at=as_utc(request.created_at),
        expires_at=as_utc(request.expires_at),
    )
