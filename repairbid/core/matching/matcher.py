from collections.abc import Iterable
from datetime import datetime

from repairbid.common.clock import utcnow
from repairbid.common.logging import get_logger
from repairbid.core.bidding.workflow import is_effectively_open
from repairbid.core.matching.geo import distance_km
from repairbid.core.matching.schemas import (
    EligibleRequest,
    OfferSnapshot,
    RequestSnapshot,
    WorkshopSnapshot,
)

logger = get_logger("matching.matcher")

DEFAULT_RADIUS_KM = 30.0


def is_workshop_eligible(workshop: WorkshopSnapshot) -> bool:
    return workshop.is_verified and workshop.is_active


def find_eligible_requests(
    workshop: WorkshopSnapshot,
    open_requests: Iterable[RequestSnapshot],
    radius_km: float = DEFAULT_RADIUS_KM,
    own_offers: Iterable[OfferSnapshot] = (),
    now: datetime | None = None,
) -> list[EligibleRequest]:
    """Requests a workshop may bid on, nearest first.

    Each result carries the workshop's own prior offer (from ``own_offers``)
    so callers can tell "not yet bid" from "already bid".
    """
    now = now or utcnow()
    if not is_workshop_eligible(workshop):
        logger.debug("Workshop %s is not verified/active, no requests eligible", workshop.id)
        return []

    offers_by_request: dict = {}
    for offer in own_offers:
        if offer.workshop_id != workshop.id:
            continue
        # Prefer the newest offer when a workshop re-bid after a decline.
        current = offers_by_request.get(offer.request_id)
        if current is None or (offer.created_at or now) >= (current.created_at or now):
            offers_by_request[offer.request_id] = offer

    location = workshop.location
    matches = []
    for request in open_requests:
        if not is_effectively_open(request, now):
            continue
        distance = distance_km(request.location, location)
        if distance > radius_km:
            continue
        matches.append(
            EligibleRequest(
                request=request,
                distance_km=distance,
                own_offer=offers_by_request.get(request.id),
            )
        )

    matches.sort(key=lambda m: (m.distance_km, m.request.expires_at, str(m.request.id)))
    return matches


def find_eligible_workshops(
    request: RequestSnapshot,
    workshops: Iterable[WorkshopSnapshot],
    radius_km: float = DEFAULT_RADIUS_KM,
    now: datetime | None = None,
) -> list[WorkshopSnapshot]:
    """Workshops that may see and bid on ``request``, nearest first."""
    now = now or utcnow()
    if not is_effectively_open(request, now):
        return []

    location = request.location
    in_range = []
    for workshop in workshops:
        if not is_workshop_eligible(workshop):
            continue
        distance = distance_km(location, workshop.location)
        if distance <= radius_km:
            in_range.append((distance, str(workshop.id), workshop))

    in_range.sort(key=lambda item: (item[0], item[1]))
    return [workshop for _, _, workshop in in_range]
