import re
from collections.abc import Callable, Iterable
from decimal import Decimal, InvalidOperation

from repairbid.common.enums import OfferSortKey, OfferStatus
from repairbid.common.exceptions import BadRequestError
from repairbid.common.logging import get_logger
from repairbid.core.matching.geo import distance_km
from repairbid.core.matching.schemas import (
    Coordinate,
    OfferFilters,
    OfferWithWorkshop,
    PriceRange,
    RankedOffer,
)

logger = get_logger("matching.ranking")

DEFAULT_RESULT_LIMIT = 12

# Declined and expired offers are kept for audit but never shown to the customer.
VISIBLE_OFFER_STATUSES = frozenset({OfferStatus.SENT, OfferStatus.ACCEPTED})

_PRICE_RANGE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:-\s*(\d+(?:\.\d+)?)?\s*)?$")


def _by_price(r: RankedOffer) -> tuple:
    return (r.offer.price, r.distance_km, -r.offer.workshop.rating, str(r.offer.id))


def _by_distance(r: RankedOffer) -> tuple:
    return (r.distance_km, r.offer.price, -r.offer.workshop.rating, str(r.offer.id))


def _by_rating(r: RankedOffer) -> tuple:
    return (-r.offer.workshop.rating, r.offer.price, r.distance_km, str(r.offer.id))


_SORT_KEYS: dict[OfferSortKey, Callable[[RankedOffer], tuple]] = {
    OfferSortKey.PRICE: _by_price,
    OfferSortKey.DISTANCE: _by_distance,
    OfferSortKey.RATING: _by_rating,
}


def _passes_filters(ranked: RankedOffer, filters: OfferFilters) -> bool:
    if filters.price_range is not None:
        price = ranked.offer.price
        if price < filters.price_range.min:
            return False
        if filters.price_range.max is not None and price > filters.price_range.max:
            return False
    if filters.max_distance_km is not None and ranked.distance_km > filters.max_distance_km:
        return False
    if filters.min_rating is not None and ranked.offer.workshop.rating < filters.min_rating:
        return False
    return True


def rank(
    offers: Iterable[OfferWithWorkshop],
    request_location: Coordinate,
    sort_by: OfferSortKey = OfferSortKey.PRICE,
    filters: OfferFilters | None = None,
    limit: int = DEFAULT_RESULT_LIMIT,
) -> list[RankedOffer]:
    """Filter, order and cap the offers a customer sees for one request.

    The primary key follows ``sort_by``; the remaining two keys break ties in
    a fixed order, and the offer id settles anything left so the output never
    depends on input order. Truncation happens after sorting.
    """
    filters = filters or OfferFilters()

    candidates = [
        RankedOffer(
            offer=offer,
            distance_km=distance_km(request_location, offer.workshop.location),
        )
        for offer in offers
        if offer.status in VISIBLE_OFFER_STATUSES
    ]
    eligible = [r for r in candidates if _passes_filters(r, filters)]
    eligible.sort(key=_SORT_KEYS[OfferSortKey(sort_by)])

    logger.debug(
        "Ranked %d of %d visible offers by %s (limit %d)",
        len(eligible),
        len(candidates),
        OfferSortKey(sort_by).value,
        limit,
    )
    return eligible[:limit]


def parse_price_range(raw: str) -> PriceRange:
    """Parse the listing filter format ``"min-max"`` or ``"min-"``.

    A max of 0 means "no upper bound".
    """
    match = _PRICE_RANGE_RE.match(raw)
    if not match:
        raise BadRequestError(f"Invalid price filter '{raw}', expected 'min-max' or 'min-'")

    try:
        low = Decimal(match.group(1))
        high = Decimal(match.group(2)) if match.group(2) else None
    except InvalidOperation:
        raise BadRequestError(f"Invalid price filter '{raw}'")

    if high is not None and high == 0:
        high = None
    if high is not None and high < low:
        raise BadRequestError(f"Invalid price filter '{raw}': max is below min")

    return PriceRange(min=low, max=high)
