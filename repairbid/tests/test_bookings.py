import uuid
from datetime import timedelta

import pytest

from repairbid.common.clock import utcnow
from repairbid.common.enums import BookingStatus
from repairbid.tests.helpers import offer_payload


async def _offer(client, request, workshop, price="8500"):
    response = await client.post(
        "/api/v1/offers", json=offer_payload(request.id, workshop.id, price=price)
    )
    assert response.status_code == 201
    return response.json()


def _booking_payload(request, offer, **overrides) -> dict:
    payload = {
        "requestId": str(request.id),
        "offerId": offer["id"],
        "scheduledAt": (utcnow() + timedelta(days=3)).isoformat(),
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_accept_offer_creates_booking(client, make_request, make_workshop):
    request = await make_request()
    workshop = await make_workshop()
    rival = await make_workshop(latitude=59.34)
    offer = await _offer(client, request, workshop)
    rival_offer = await _offer(client, request, rival, price="9000")

    response = await client.post(
        "/api/v1/bookings", json=_booking_payload(request, offer, paymentReference="pay_123")
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "CONFIRMED"
    assert data["offer_id"] == offer["id"]
    assert data["customer_id"] == str(request.customer_id)
    assert data["workshop_id"] == str(workshop.id)
    assert data["total_amount"] == "8500.00"
    assert data["commission"] == "850.00"
    assert data["workshop_amount"] == "7650.00"
    assert data["payment_reference"] == "pay_123"

    accepted = await client.get(f"/api/v1/offers/{offer['id']}")
    assert accepted.json()["status"] == "ACCEPTED"
    booked = await client.get(f"/api/v1/requests/{request.id}")
    assert booked.json()["status"] == "BOOKED"
    # Competing bids are left as they were.
    untouched = await client.get(f"/api/v1/offers/{rival_offer['id']}")
    assert untouched.json()["status"] == "SENT"


@pytest.mark.asyncio
async def test_accept_offer_with_explicit_total(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())

    response = await client.post(
        "/api/v1/bookings", json=_booking_payload(request, offer, totalAmount="9100.50")
    )
    data = response.json()
    assert data["total_amount"] == "9100.50"
    assert data["commission"] == "910.05"
    assert data["workshop_amount"] == "8190.45"


@pytest.mark.asyncio
async def test_second_accept_is_stale(client, make_request, make_workshop):
    request = await make_request()
    first = await _offer(client, request, await make_workshop())
    second = await _offer(client, request, await make_workshop(latitude=59.34))

    ok = await client.post("/api/v1/bookings", json=_booking_payload(request, first))
    assert ok.status_code == 201

    again = await client.post("/api/v1/bookings", json=_booking_payload(request, first))
    assert again.status_code == 409

    other = await client.post("/api/v1/bookings", json=_booking_payload(request, second))
    assert other.status_code == 409
    assert other.json()["code"] == "STALE_TRANSITION"


@pytest.mark.asyncio
async def test_declined_offer_cannot_be_accepted(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    await client.post(f"/api/v1/offers/{offer['id']}/decline")

    response = await client.post("/api/v1/bookings", json=_booking_payload(request, offer))
    assert response.status_code == 409
    assert response.json()["code"] == "STALE_TRANSITION"


@pytest.mark.asyncio
async def test_accept_after_bidding_closed(client, db_session, make_request, make_workshop):
    from repairbid.core.bidding.service import BiddingService

    request = await make_request()
    offer = await _offer(client, request, await make_workshop())

    # Let the window lapse and the sweep close it.
    closed = await BiddingService().close_expired_requests(
        db_session, now=utcnow() + timedelta(hours=49)
    )
    assert closed == [str(request.id)]

    response = await client.post("/api/v1/bookings", json=_booking_payload(request, offer))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_offer_from_another_request_is_not_found(client, make_request, make_workshop):
    request = await make_request()
    other_request = await make_request()
    offer = await _offer(client, other_request, await make_workshop())

    response = await client.post("/api/v1/bookings", json=_booking_payload(request, offer))
    assert response.status_code == 404
    assert response.json()["code"] == "OFFER_NOT_FOUND"


@pytest.mark.asyncio
async def test_booking_done_completes_request(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    booking = (await client.post("/api/v1/bookings", json=_booking_payload(request, offer))).json()

    response = await client.patch(
        f"/api/v1/bookings/{booking['id']}", json={"status": "DONE", "notes": "Pads replaced"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "DONE"
    assert response.json()["notes"] == "Pads replaced"

    completed = await client.get(f"/api/v1/requests/{request.id}")
    assert completed.json()["status"] == "COMPLETED"

    reopen = await client.patch(f"/api/v1/bookings/{booking['id']}", json={"status": "CONFIRMED"})
    assert reopen.status_code == 409
    assert reopen.json()["code"] == "STALE_TRANSITION"


@pytest.mark.asyncio
async def test_booking_cancel_cancels_request(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    booking = (await client.post("/api/v1/bookings", json=_booking_payload(request, offer))).json()

    response = await client.patch(f"/api/v1/bookings/{booking['id']}", json={"status": "CANCELLED"})
    assert response.status_code == 200

    cancelled = await client.get(f"/api/v1/requests/{request.id}")
    assert cancelled.json()["status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_reschedule_booking(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    booking = (await client.post("/api/v1/bookings", json=_booking_payload(request, offer))).json()

    new_time = (utcnow() + timedelta(days=10)).replace(microsecond=0)
    response = await client.patch(
        f"/api/v1/bookings/{booking['id']}", json={"scheduledAt": new_time.isoformat()}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "RESCHEDULED"

    request_view = await client.get(f"/api/v1/requests/{request.id}")
    assert request_view.json()["status"] == "BOOKED"


@pytest.mark.asyncio
async def test_cancelling_booked_request_cancels_booking(client, make_request, make_workshop):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    await client.post("/api/v1/bookings", json=_booking_payload(request, offer))

    response = await client.post(f"/api/v1/requests/{request.id}/cancel")
    assert response.status_code == 200

    bookings = await client.get(f"/api/v1/bookings/customer/{request.customer_id}")
    assert [b["status"] for b in bookings.json()["bookings"]] == ["CANCELLED"]


@pytest.mark.asyncio
async def test_list_customer_bookings(client, make_request, make_workshop):
    customer_id = uuid.uuid4()
    workshop = await make_workshop()
    for _ in range(2):
        request = await make_request(customer_id=customer_id)
        offer = await _offer(client, request, workshop)
        await client.post("/api/v1/bookings", json=_booking_payload(request, offer))

    response = await client.get(f"/api/v1/bookings/customer/{customer_id}")
    assert response.status_code == 200
    assert response.json()["total"] == 2

    empty = await client.get(f"/api/v1/bookings/customer/{uuid.uuid4()}")
    assert empty.json() == {"bookings": [], "total": 0}


@pytest.mark.asyncio
async def test_update_unknown_booking(client):
    response = await client.patch(f"/api/v1/bookings/{uuid.uuid4()}", json={"status": "DONE"})
    assert response.status_code == 404
    assert response.json()["code"] == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.parametrize("total", ["0", "-100"])
async def test_non_positive_total_is_rejected(client, make_request, make_workshop, total):
    request = await make_request()
    offer = await _offer(client, request, await make_workshop())

    response = await client.post(
        "/api/v1/bookings", json=_booking_payload(request, offer, totalAmount=total)
    )
    assert response.status_code == 422

    still_open = await client.get(f"/api/v1/requests/{request.id}")
    assert still_open.json()["status"] == "IN_BIDDING"


@pytest.mark.asyncio
async def test_update_booking_locks_request_before_booking(client, db_session, make_request, make_workshop):
    from repairbid.core.bidding.service import BiddingService

    request = await make_request()
    offer = await _offer(client, request, await make_workshop())
    booking = (await client.post("/api/v1/bookings", json=_booking_payload(request, offer))).json()

    service = BiddingService()
    locks = []
    get_request, get_booking = service.get_request, service.get_booking

    async def tracked_request(*args, **kwargs):
        if kwargs.get("for_update"):
            locks.append("request")
        return await get_request(*args, **kwargs)

    async def tracked_booking(*args, **kwargs):
        if kwargs.get("for_update"):
            locks.append("booking")
        return await get_booking(*args, **kwargs)

    service.get_request = tracked_request
    service.get_booking = tracked_booking

    updated = await service.update_booking(
        uuid.UUID(booking["id"]), db_session, status=BookingStatus.DONE
    )
    assert updated.status == "DONE"
    assert locks == ["request", "booking"]
