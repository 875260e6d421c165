import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.common.clock import as_utc, utcnow
from repairbid.common.enums import BookingStatus, OfferSortKey, OfferStatus, RequestStatus
from repairbid.common.exceptions import (
    BookingNotFoundError,
    DuplicateOfferError,
    OfferNotFoundError,
    RequestNotFoundError,
    StaleTransitionError,
    WorkshopNotEligibleError,
    WorkshopNotFoundError,
)
from repairbid.common.logging import get_logger
from repairbid.config import settings
from repairbid.core.bidding.schemas import BiddingPolicy
from repairbid.core.bidding.workflow import (
    ACTIVE_OFFER_STATUSES,
    BOOKABLE_REQUEST_STATUSES,
    BOOKING_REQUEST_OUTCOMES,
    bidding_expiry,
    check_booking_transition,
    check_can_accept_offer,
    check_can_create_offer,
    check_can_decline_offer,
    check_request_transition,
    compute_commission,
    select_expired,
    validate_offer_parameters,
)
from repairbid.core.matching.geo import distance_km
from repairbid.core.matching.matcher import (
    find_eligible_requests,
    find_eligible_workshops,
    is_workshop_eligible,
)
from repairbid.core.matching.ranking import rank
from repairbid.core.matching.schemas import (
    Coordinate,
    EligibleRequest,
    OfferFilters,
    OfferSnapshot,
    OfferWithWorkshop,
    RankedOffer,
    RequestSnapshot,
    WorkshopSnapshot,
)
from repairbid.db.models.booking import Booking
from repairbid.db.models.offer import Offer
from repairbid.db.models.request import RepairRequest
from repairbid.db.models.workshop import Workshop

logger = get_logger("bidding.service")


class BiddingService:
    """Database side of the bidding workflow.

    Every check-then-write runs on rows locked ``FOR UPDATE`` and ends in a
    conditional write, so two concurrent submissions (or accepts) produce one
    success and one rejection. Nothing here commits; the caller owns the
    transaction and rolls back on any raised error.
    """

    def __init__(self, policy: BiddingPolicy | None = None):
        self.policy = policy or BiddingPolicy.from_settings(settings)

    # ---------- Lookups ----------

    async def get_request(
        self, request_id: uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> RepairRequest:
        query = select(RepairRequest).where(RepairRequest.id == request_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        request = result.scalar_one_or_none()
        if not request:
            raise RequestNotFoundError(str(request_id))
        return request

    async def get_offer(
        self, offer_id: uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> Offer:
        query = select(Offer).where(Offer.id == offer_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        offer = result.scalar_one_or_none()
        if not offer:
            raise OfferNotFoundError(str(offer_id))
        return offer

    async def get_booking(
        self, booking_id: uuid.UUID, db: AsyncSession, for_update: bool = False
    ) -> Booking:
        query = select(Booking).where(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        booking = result.scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(str(booking_id))
        return booking

    async def resolve_workshop(self, workshop_or_user_id: uuid.UUID, db: AsyncSession) -> Workshop:
        """Accept either a workshop id or the id of the account that owns it."""
        result = await db.execute(select(Workshop).where(Workshop.id == workshop_or_user_id))
        workshop = result.scalar_one_or_none()
        if workshop:
            return workshop

        result = await db.execute(select(Workshop).where(Workshop.user_id == workshop_or_user_id))
        workshop = result.scalar_one_or_none()
        if not workshop:
            raise WorkshopNotFoundError(str(workshop_or_user_id))
        return workshop

    # ---------- Requests ----------

    async def create_request(
        self,
        *,
        customer_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        report_id: uuid.UUID,
        latitude: float,
        longitude: float,
        address: str,
        city: str,
        postal_code: str | None,
        description: str | None,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> RepairRequest:
        now = as_utc(now or utcnow())
        request = RepairRequest(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            report_id=report_id,
            latitude=latitude,
            longitude=longitude,
            address=address,
            city=city,
            postal_code=postal_code or "",
            description=description,
            status=RequestStatus.IN_BIDDING.value,
            created_at=now,
            expires_at=bidding_expiry(now, timedelta(hours=self.policy.bidding_window_hours)),
        )
        db.add(request)
        await db.flush()
        await db.refresh(request)

        logger.info(
            "Created request %s for customer %s, bidding until %s",
            request.id,
            customer_id,
            request.expires_at,
        )
        return request

    async def cancel_request(self, request_id: uuid.UUID, db: AsyncSession) -> RepairRequest:
        request = await self.get_request(request_id, db, for_update=True)
        check_request_transition(request, RequestStatus.CANCELLED)

        if request.status == RequestStatus.BOOKED.value:
            result = await db.execute(
                select(Booking).where(
                    Booking.request_id == request.id,
                    Booking.status.in_(
                        [BookingStatus.CONFIRMED.value, BookingStatus.RESCHEDULED.value]
                    ),
                )
            )
            for booking in result.scalars().all():
                booking.status = BookingStatus.CANCELLED.value

        request.status = RequestStatus.CANCELLED.value
        await db.flush()
        await db.refresh(request)
        logger.info("Cancelled request %s", request_id)
        return request

    async def close_expired_requests(
        self, db: AsyncSession, now: datetime | None = None
    ) -> list[str]:
        """Persist BIDDING_CLOSED for requests whose window has passed."""
        now = as_utc(now or utcnow())
        result = await db.execute(
            select(RepairRequest)
            .where(
                RepairRequest.status == RequestStatus.IN_BIDDING.value,
                RepairRequest.expires_at <= now,
            )
            .with_for_update(skip_locked=True)
        )

        closed = []
        for request in select_expired(result.scalars().all(), now):
            request.status = RequestStatus.BIDDING_CLOSED.value
            closed.append(str(request.id))

        if closed:
            await db.flush()
            logger.info("Closed bidding on %d expired requests", len(closed))
        return closed

    # ---------- Matching views ----------

    async def list_ranked_offers(
        self,
        request_id: uuid.UUID,
        db: AsyncSession,
        sort_by: OfferSortKey = OfferSortKey.PRICE,
        filters: OfferFilters | None = None,
    ) -> list[RankedOffer]:
        request = await self.get_request(request_id, db)

        result = await db.execute(
            select(Offer).where(
                Offer.request_id == request.id,
                Offer.status.in_([s.value for s in ACTIVE_OFFER_STATUSES]),
            )
        )
        offers = [OfferWithWorkshop.model_validate(o) for o in result.scalars().all()]

        return rank(
            offers,
            Coordinate(latitude=request.latitude, longitude=request.longitude),
            sort_by=sort_by,
            filters=filters,
            limit=self.policy.offer_result_limit,
        )

    async def list_available_requests(
        self,
        workshop: Workshop,
        db: AsyncSession,
        radius_km: float | None = None,
        location: Coordinate | None = None,
        now: datetime | None = None,
    ) -> list[EligibleRequest]:
        now = as_utc(now or utcnow())
        snapshot = WorkshopSnapshot.model_validate(workshop)
        if location is not None:
            snapshot = snapshot.model_copy(
                update={"latitude": location.latitude, "longitude": location.longitude}
            )

        result = await db.execute(
            select(RepairRequest).where(
                RepairRequest.status == RequestStatus.IN_BIDDING.value,
                RepairRequest.expires_at > now,
            )
        )
        open_requests = [RequestSnapshot.model_validate(r) for r in result.scalars().all()]

        own_result = await db.execute(select(Offer).where(Offer.workshop_id == workshop.id))
        own_offers = [OfferSnapshot.model_validate(o) for o in own_result.scalars().all()]

        return find_eligible_requests(
            snapshot,
            open_requests,
            radius_km=radius_km if radius_km is not None else self.policy.default_radius_km,
            own_offers=own_offers,
            now=now,
        )

    async def find_workshops_for_request(
        self,
        request: RepairRequest,
        db: AsyncSession,
        radius_km: float | None = None,
        now: datetime | None = None,
    ) -> list[WorkshopSnapshot]:
        result = await db.execute(
            select(Workshop).where(Workshop.is_verified.is_(True), Workshop.is_active.is_(True))
        )
        workshops = [WorkshopSnapshot.model_validate(w) for w in result.scalars().all()]

        return find_eligible_workshops(
            RequestSnapshot.model_validate(request),
            workshops,
            radius_km=radius_km if radius_km is not None else self.policy.default_radius_km,
            now=now,
        )

    # ---------- Offers ----------

    async def create_offer(
        self,
        *,
        request_id: uuid.UUID,
        workshop: Workshop,
        price: Decimal | None,
        estimated_duration: int | None,
        available_dates: list[datetime] | None,
        warranty: str | None,
        note: str | None,
        db: AsyncSession,
        now: datetime | None = None,
    ) -> Offer:
        validate_offer_parameters(price, estimated_duration, available_dates)
        now = as_utc(now or utcnow())

        request = await self.get_request(request_id, db, for_update=True)
        result = await db.execute(
            select(Offer).where(
                Offer.request_id == request.id,
                Offer.workshop_id == workshop.id,
                Offer.status.in_([s.value for s in ACTIVE_OFFER_STATUSES]),
            )
        )
        check_can_create_offer(request, workshop.id, result.scalars().all(), now)
        self._check_workshop_can_bid(workshop, request)

        offer = Offer(
            request_id=request.id,
            workshop_id=workshop.id,
            price=price,
            estimated_duration=estimated_duration,
            warranty=warranty,
            note=note,
            available_dates=[as_utc(d).isoformat() for d in available_dates],
            status=OfferStatus.SENT.value,
            created_at=now,
        )
        db.add(offer)
        try:
            await db.flush()
        except IntegrityError:
            # Lost the race against a concurrent bid from the same workshop.
            raise DuplicateOfferError(str(request.id), str(workshop.id))
        await db.refresh(offer)

        logger.info(
            "Workshop %s offered %s on request %s (offer %s)",
            workshop.id,
            offer.price,
            request.id,
            offer.id,
        )
        return offer

    def _check_workshop_can_bid(self, workshop: Workshop, request: RepairRequest) -> None:
        """Only workshops the matcher would show the request to may bid on it."""
        snapshot = WorkshopSnapshot.model_validate(workshop)
        if not is_workshop_eligible(snapshot):
            raise WorkshopNotEligibleError(str(workshop.id), "workshop is not verified and active")

        radius_km = self.policy.default_radius_km
        distance = distance_km(
            Coordinate(latitude=request.latitude, longitude=request.longitude),
            snapshot.location,
        )
        if distance > radius_km:
            raise WorkshopNotEligibleError(
                str(workshop.id),
                f"request is {distance:.1f} km away, beyond the {radius_km:g} km radius",
            )

    async def decline_offer(self, offer_id: uuid.UUID, db: AsyncSession) -> Offer:
        offer = await self.get_offer(offer_id, db, for_update=True)
        check_can_decline_offer(offer)

        offer.status = OfferStatus.DECLINED.value
        await db.flush()
        await db.refresh(offer)
        logger.info("Declined offer %s on request %s", offer.id, offer.request_id)
        return offer

    # ---------- Bookings ----------

    async def accept_offer(
        self,
        *,
        request_id: uuid.UUID,
        offer_id: uuid.UUID,
        scheduled_at: datetime,
        total_amount: Decimal | None,
        payment_reference: str | None,
        db: AsyncSession,
    ) -> Booking:
        """Accept ``offer_id`` and create its booking.

        Other SENT offers on the request are left as they are.
        """
        request = await self.get_request(request_id, db, for_update=True)
        offer = await self.get_offer(offer_id, db, for_update=True)
        if offer.request_id != request.id:
            raise OfferNotFoundError(str(offer_id))

        check_can_accept_offer(offer, request)
        split = compute_commission(
            total_amount if total_amount is not None else offer.price,
            self.policy.commission_rate,
        )

        offer_result = await db.execute(
            update(Offer)
            .where(Offer.id == offer.id, Offer.status == OfferStatus.SENT.value)
            .values(status=OfferStatus.ACCEPTED.value)
        )
        if offer_result.rowcount != 1:
            raise StaleTransitionError(f"Offer '{offer.id}' was accepted or withdrawn concurrently")

        request_result = await db.execute(
            update(RepairRequest)
            .where(
                RepairRequest.id == request.id,
                RepairRequest.status.in_([s.value for s in BOOKABLE_REQUEST_STATUSES]),
            )
            .values(status=RequestStatus.BOOKED.value)
        )
        if request_result.rowcount != 1:
            raise StaleTransitionError(f"Request '{request.id}' was booked concurrently")

        booking = Booking(
            request_id=request.id,
            offer_id=offer.id,
            customer_id=request.customer_id,
            workshop_id=offer.workshop_id,
            scheduled_at=as_utc(scheduled_at),
            status=BookingStatus.CONFIRMED.value,
            total_amount=split.total_amount,
            commission=split.commission,
            workshop_amount=split.workshop_amount,
            payment_reference=payment_reference,
        )
        db.add(booking)
        try:
            await db.flush()
        except IntegrityError:
            raise StaleTransitionError(f"Offer '{offer.id}' already has a booking")

        await db.refresh(offer)
        await db.refresh(request)
        await db.refresh(booking)

        logger.info(
            "Booked request %s with offer %s (total %s, commission %s)",
            request.id,
            offer.id,
            booking.total_amount,
            booking.commission,
        )
        return booking

    async def update_booking(
        self,
        booking_id: uuid.UUID,
        db: AsyncSession,
        status: BookingStatus | None = None,
        scheduled_at: datetime | None = None,
        notes: str | None = None,
    ) -> Booking:
        # Lock the request before the booking, the same order cancel_request uses.
        booking = await self.get_booking(booking_id, db)
        request = await self.get_request(booking.request_id, db, for_update=True)
        booking = await self.get_booking(booking_id, db, for_update=True)

        if scheduled_at is not None and status is None:
            status = BookingStatus.RESCHEDULED

        if status is not None:
            check_booking_transition(booking, status)
            outcome = BOOKING_REQUEST_OUTCOMES.get(status)
            if outcome is not None:
                if request.status != outcome.value:
                    check_request_transition(request, outcome)
                    request.status = outcome.value
            booking.status = status.value

        if scheduled_at is not None:
            booking.scheduled_at = as_utc(scheduled_at)
        if notes is not None:
            booking.notes = notes

        await db.flush()
        await db.refresh(booking)
        logger.info("Updated booking %s (status %s)", booking.id, booking.status)
        return booking

    async def list_customer_bookings(
        self, customer_id: uuid.UUID, db: AsyncSession
    ) -> list[Booking]:
        result = await db.execute(
            select(Booking)
            .where(Booking.customer_id == customer_id)
            .order_by(Booking.scheduled_at.desc())
        )
        return list(result.scalars().all())

    async def list_customer_requests(
        self, customer_id: uuid.UUID, db: AsyncSession
    ) -> list[tuple[RepairRequest, list[Offer], list[Booking]]]:
        """A customer's requests, newest first, each with its offers and bookings."""
        result = await db.execute(
            select(RepairRequest)
            .where(RepairRequest.customer_id == customer_id)
            .order_by(RepairRequest.created_at.desc())
        )
        requests = list(result.scalars().all())
        if not requests:
            return []

        request_ids = [r.id for r in requests]
        offers_result = await db.execute(
            select(Offer).where(Offer.request_id.in_(request_ids)).order_by(Offer.created_at)
        )
        bookings_result = await db.execute(
            select(Booking)
            .where(Booking.request_id.in_(request_ids))
            .order_by(Booking.created_at)
        )

        offers: dict[uuid.UUID, list[Offer]] = {rid: [] for rid in request_ids}
        for offer in offers_result.scalars().all():
            offers[offer.request_id].append(offer)
        bookings: dict[uuid.UUID, list[Booking]] = {rid: [] for rid in request_ids}
        for booking in bookings_result.scalars().all():
            bookings[booking.request_id].append(booking)

        return [(r, offers[r.id], bookings[r.id]) for r in requests]
