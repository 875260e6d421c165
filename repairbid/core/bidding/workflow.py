"""Request / offer / booking lifecycle rules.

Everything here is pure: callers load rows, ask whether a transition is
legal, and perform the write themselves. Rule violations raise the
marketplace errors from ``repairbid.common.exceptions``.

Request lifecycle::

    NEW -> IN_BIDDING -> BIDDING_CLOSED | BOOKED -> COMPLETED | CANCELLED

Requests are created straight into IN_BIDDING; NEW is kept only for
compatibility with stored data.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from repairbid.common.clock import as_utc
from repairbid.common.enums import BookingStatus, OfferStatus, RequestStatus
from repairbid.common.exceptions import (
    DuplicateOfferError,
    InvalidOfferParametersError,
    RequestNotAcceptingOffersError,
    StaleTransitionError,
)
from repairbid.core.bidding.schemas import CommissionSplit

DEFAULT_BIDDING_WINDOW = timedelta(hours=48)

REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.NEW: frozenset({RequestStatus.IN_BIDDING, RequestStatus.CANCELLED}),
    RequestStatus.IN_BIDDING: frozenset(
        {RequestStatus.BIDDING_CLOSED, RequestStatus.BOOKED, RequestStatus.CANCELLED}
    ),
    RequestStatus.BIDDING_CLOSED: frozenset({RequestStatus.BOOKED, RequestStatus.CANCELLED}),
    RequestStatus.BOOKED: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

# A request may still be booked after its bidding window closed.
BOOKABLE_REQUEST_STATUSES = frozenset({RequestStatus.IN_BIDDING, RequestStatus.BIDDING_CLOSED})

ACTIVE_OFFER_STATUSES = frozenset({OfferStatus.SENT, OfferStatus.ACCEPTED})

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.RESCHEDULED,
            BookingStatus.DONE,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.RESCHEDULED: frozenset(
        {
            BookingStatus.RESCHEDULED,
            BookingStatus.DONE,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.DONE: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

# Booking outcomes that settle the parent request.
BOOKING_REQUEST_OUTCOMES: dict[BookingStatus, RequestStatus] = {
    BookingStatus.DONE: RequestStatus.COMPLETED,
    BookingStatus.CANCELLED: RequestStatus.CANCELLED,
}

_CENT = Decimal("0.01")


def bidding_expiry(created_at: datetime, window: timedelta = DEFAULT_BIDDING_WINDOW) -> datetime:
    return as_utc(created_at) + window


def is_effectively_open(request, now: datetime) -> bool:
    """True while a request accepts offers.

    The stored status may lag behind the clock, so an IN_BIDDING request past
    its expiry counts as closed.
    """
    return RequestStatus(request.status) == RequestStatus.IN_BIDDING and as_utc(
        request.expires_at
    ) > as_utc(now)


def effective_status(request, now: datetime) -> RequestStatus:
    status = RequestStatus(request.status)
    if status == RequestStatus.IN_BIDDING and not is_effectively_open(request, now):
        return RequestStatus.BIDDING_CLOSED
    return status


def select_expired(requests: Iterable, now: datetime) -> list:
    """Requests the expiry sweep should move to BIDDING_CLOSED."""
    return [
        r
        for r in requests
        if RequestStatus(r.status) == RequestStatus.IN_BIDDING
        and as_utc(r.expires_at) <= as_utc(now)
    ]


def validate_offer_parameters(
    price: Decimal | None,
    estimated_duration: int | None,
    available_dates: list | None,
) -> None:
    problems = []
    if price is None or price <= 0:
        problems.append("price must be greater than 0")
    if estimated_duration is None or estimated_duration <= 0:
        problems.append("estimated duration must be greater than 0")
    if not available_dates:
        problems.append("at least one available date is required")

    if problems:
        raise InvalidOfferParametersError("Invalid offer: " + "; ".join(problems))


def check_can_create_offer(request, workshop_id, existing_offers: Iterable, now: datetime) -> None:
    """Guard for a workshop submitting a bid on ``request``."""
    status = RequestStatus(request.status)
    if status != RequestStatus.IN_BIDDING:
        raise RequestNotAcceptingOffersError(str(request.id), f"status is {status.value}")
    if not is_effectively_open(request, now):
        raise RequestNotAcceptingOffersError(str(request.id), "bidding window has expired")

    for offer in existing_offers:
        if (
            offer.workshop_id == workshop_id
            and offer.request_id == request.id
            and OfferStatus(offer.status) in ACTIVE_OFFER_STATUSES
        ):
            raise DuplicateOfferError(str(request.id), str(workshop_id))


def check_can_accept_offer(offer, request) -> None:
    """Guard for the customer choosing ``offer`` (creates the booking)."""
    offer_status = OfferStatus(offer.status)
    if offer_status != OfferStatus.SENT:
        raise StaleTransitionError(
            f"Offer '{offer.id}' can no longer be accepted (status is {offer_status.value})"
        )

    request_status = RequestStatus(request.status)
    if request_status not in BOOKABLE_REQUEST_STATUSES:
        raise StaleTransitionError(
            f"Request '{request.id}' can no longer be booked (status is {request_status.value})"
        )


def check_can_decline_offer(offer) -> None:
    offer_status = OfferStatus(offer.status)
    if offer_status != OfferStatus.SENT:
        raise StaleTransitionError(
            f"Offer '{offer.id}' can no longer be declined (status is {offer_status.value})"
        )


def check_request_transition(request, target: RequestStatus) -> None:
    current = RequestStatus(request.status)
    if target not in REQUEST_TRANSITIONS[current]:
        raise StaleTransitionError(
            f"Request '{request.id}' cannot move from {current.value} to {target.value}"
        )


def check_booking_transition(booking, target: BookingStatus) -> None:
    current = BookingStatus(booking.status)
    if target not in BOOKING_TRANSITIONS[current]:
        raise StaleTransitionError(
            f"Booking '{booking.id}' cannot move from {current.value} to {target.value}"
        )


def compute_commission(total_amount: Decimal, commission_rate: Decimal) -> CommissionSplit:
    total = Decimal(total_amount).quantize(_CENT, rounding=ROUND_HALF_UP)
    commission = (total * Decimal(commission_rate)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return CommissionSplit(
        total_amount=total,
        commission=commission,
        workshop_amount=total - commission,
    )
