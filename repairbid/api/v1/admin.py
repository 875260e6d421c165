import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel as PydanticModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.api.deps import get_bidding_service, get_db, get_payout_service
from repairbid.common.clock import utcnow
from repairbid.common.pagination import PaginatedResponse, PaginationParams, paginate, total_pages
from repairbid.core.bidding.service import BiddingService
from repairbid.core.payouts.service import PayoutService, previous_month
from repairbid.db.models.payout import PayoutReport

router = APIRouter(prefix="/admin", tags=["Admin"])


# ---------- Schemas ----------


class GeneratePayoutsBody(PydanticModel):
    month: int | None = None
    year: int | None = None


class PayoutResponse(PydanticModel):
    id: uuid.UUID
    workshop_id: uuid.UUID
    month: int
    year: int
    total_jobs: int
    total_amount: Decimal
    commission: Decimal
    workshop_amount: Decimal
    is_paid: bool
    paid_at: datetime | None
    model_config = {"from_attributes": True}


class GeneratePayoutsResponse(PydanticModel):
    month: int
    year: int
    reports: list[PayoutResponse]


class CloseExpiredResponse(PydanticModel):
    closed: int
    request_ids: list[str]


# ---------- Endpoints ----------


@router.post("/payouts/generate", response_model=GeneratePayoutsResponse)
async def generate_payouts(
    body: GeneratePayoutsBody,
    service: PayoutService = Depends(get_payout_service),
    db: AsyncSession = Depends(get_db),
):
    month, year = body.month, body.year
    if month is None or year is None:
        default_month, default_year = previous_month(utcnow())
        month = month if month is not None else default_month
        year = year if year is not None else default_year

    reports = await service.generate_payouts(month, year, db)
    return GeneratePayoutsResponse(
        month=month,
        year=year,
        reports=[PayoutResponse.model_validate(r) for r in reports],
    )


@router.get("/payouts", response_model=PaginatedResponse[PayoutResponse])
async def list_payouts(
    workshop_id: uuid.UUID | None = Query(None, alias="workshopId"),
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=2000),
    is_paid: bool | None = Query(None, alias="isPaid"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    query = select(PayoutReport)
    if workshop_id is not None:
        query = query.where(PayoutReport.workshop_id == workshop_id)
    if month is not None:
        query = query.where(PayoutReport.month == month)
    if year is not None:
        query = query.where(PayoutReport.year == year)
    if is_paid is not None:
        query = query.where(PayoutReport.is_paid.is_(is_paid))
    query = query.order_by(
        PayoutReport.year.desc(), PayoutReport.month.desc(), PayoutReport.workshop_id
    )

    items, total = await paginate(db, query, pagination)
    return PaginatedResponse[PayoutResponse](
        items=[PayoutResponse.model_validate(r) for r in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=total_pages(total, pagination.page_size),
    )


@router.patch("/payouts/{payout_id}/mark-paid", response_model=PayoutResponse)
async def mark_payout_paid(
    payout_id: uuid.UUID,
    service: PayoutService = Depends(get_payout_service),
    db: AsyncSession = Depends(get_db),
):
    report = await service.mark_paid(payout_id, db)
    return PayoutResponse.model_validate(report)


@router.post("/requests/close-expired", response_model=CloseExpiredResponse)
async def close_expired_requests(
    service: BiddingService = Depends(get_bidding_service),
    db: AsyncSession = Depends(get_db),
):
    closed = await service.close_expired_requests(db)
    return CloseExpiredResponse(closed=len(closed), request_ids=closed)
