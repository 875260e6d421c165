from datetime import timedelta

from repairbid.common.clock import utcnow

STOCKHOLM = (59.3293, 18.0686)


def offer_payload(request_id, workshop_id, **overrides) -> dict:
    payload = {
        "requestId": str(request_id),
        "workshopId": str(workshop_id),
        "price": "8500",
        "estimatedDuration": 120,
        "warranty": "12 months",
        "note": "OEM parts",
        "availableDates": [(utcnow() + timedelta(days=3)).isoformat()],
    }
    payload.update(overrides)
    return payload
