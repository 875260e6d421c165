import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from repairbid.common.enums import BookingStatus, OfferStatus
from repairbid.common.exceptions import BadRequestError, ConflictError
from repairbid.core.payouts.service import month_bounds, previous_month


@pytest.fixture
def make_booking(db_session, make_request):
    """Persist an accepted offer and its booking, created at ``created_at``."""
    from repairbid.db.models.booking import Booking
    from repairbid.db.models.offer import Offer

    async def _make(workshop, total, created_at, status=BookingStatus.DONE):
        request = await make_request(status="BOOKED")
        offer = Offer(
            request_id=request.id,
            workshop_id=workshop.id,
            price=Decimal(total),
            estimated_duration=60,
            available_dates=[created_at.isoformat()],
            status=OfferStatus.ACCEPTED.value,
        )
        db_session.add(offer)
        await db_session.flush()

        total = Decimal(total)
        booking = Booking(
            request_id=request.id,
            offer_id=offer.id,
            customer_id=request.customer_id,
            workshop_id=workshop.id,
            scheduled_at=created_at,
            status=status.value,
            total_amount=total,
            commission=(total * Decimal("0.10")).quantize(Decimal("0.01")),
            workshop_amount=total - (total * Decimal("0.10")).quantize(Decimal("0.01")),
            created_at=created_at,
        )
        db_session.add(booking)
        await db_session.flush()
        return booking

    return _make


def test_month_bounds():
    assert month_bounds(2, 2026) == (
        datetime(2026, 2, 1, tzinfo=timezone.utc),
        datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    assert month_bounds(12, 2026)[1] == datetime(2027, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("month,year", [(0, 2026), (13, 2026), (5, 1999)])
def test_month_bounds_rejects_invalid_period(month, year):
    with pytest.raises(BadRequestError):
        month_bounds(month, year)


def test_previous_month():
    assert previous_month(datetime(2026, 1, 1, 2, tzinfo=timezone.utc)) == (12, 2025)
    assert previous_month(datetime(2026, 10, 19, tzinfo=timezone.utc)) == (9, 2026)


@pytest.mark.asyncio
async def test_generate_payouts(client, make_workshop, make_booking):
    shop = await make_workshop()
    idle = await make_workshop()
    unverified = await make_workshop(is_verified=False)

    await make_booking(shop, "8500", datetime(2026, 9, 3, 10, tzinfo=timezone.utc))
    await make_booking(shop, "1500", datetime(2026, 9, 30, 23, tzinfo=timezone.utc))
    await make_booking(shop, "999", datetime(2026, 10, 1, 0, tzinfo=timezone.utc))  # next month
    await make_booking(shop, "700", datetime(2026, 9, 12, tzinfo=timezone.utc), status=BookingStatus.CANCELLED)
    await make_booking(unverified, "5000", datetime(2026, 9, 12, tzinfo=timezone.utc))

    response = await client.post("/api/v1/admin/payouts/generate", json={"month": 9, "year": 2026})
    assert response.status_code == 200
    data = response.json()
    assert (data["month"], data["year"]) == (9, 2026)
    assert len(data["reports"]) == 1

    report = data["reports"][0]
    assert report["workshop_id"] == str(shop.id)
    assert report["total_jobs"] == 2
    assert report["total_amount"] == "10000.00"
    assert report["commission"] == "1000.00"
    assert report["workshop_amount"] == "9000.00"
    assert report["is_paid"] is False
    assert str(idle.id) not in {r["workshop_id"] for r in data["reports"]}


@pytest.mark.asyncio
async def test_generate_payouts_is_idempotent(client, make_workshop, make_booking):
    shop = await make_workshop()
    await make_booking(shop, "2000", datetime(2026, 9, 3, tzinfo=timezone.utc))

    first = await client.post("/api/v1/admin/payouts/generate", json={"month": 9, "year": 2026})
    await make_booking(shop, "3000", datetime(2026, 9, 4, tzinfo=timezone.utc))
    second = await client.post("/api/v1/admin/payouts/generate", json={"month": 9, "year": 2026})

    assert first.json()["reports"][0]["id"] == second.json()["reports"][0]["id"]
    assert second.json()["reports"][0]["total_amount"] == "5000.00"

    listing = await client.get("/api/v1/admin/payouts", params={"year": 2026, "month": 9})
    assert listing.json()["total"] == 1


@pytest.mark.asyncio
async def test_generate_payouts_rejects_bad_month(client):
    response = await client.post("/api/v1/admin/payouts/generate", json={"month": 13, "year": 2026})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_and_mark_paid(client, make_workshop, make_booking):
    shop = await make_workshop()
    other = await make_workshop()
    await make_booking(shop, "1000", datetime(2026, 8, 10, tzinfo=timezone.utc))
    await make_booking(shop, "1000", datetime(2026, 9, 10, tzinfo=timezone.utc))
    await make_booking(other, "4000", datetime(2026, 9, 11, tzinfo=timezone.utc))

    for month in (8, 9):
        await client.post("/api/v1/admin/payouts/generate", json={"month": month, "year": 2026})

    everything = await client.get("/api/v1/admin/payouts")
    data = everything.json()
    assert data["total"] == 3
    assert data["total_pages"] == 1
    assert [r["month"] for r in data["items"]] == [9, 9, 8]

    paged = await client.get("/api/v1/admin/payouts", params={"page": 2, "page_size": 2})
    assert len(paged.json()["items"]) == 1
    assert paged.json()["total_pages"] == 2

    mine = await client.get("/api/v1/admin/payouts", params={"workshopId": str(shop.id)})
    assert mine.json()["total"] == 2

    payout_id = mine.json()["items"][0]["id"]
    paid = await client.patch(f"/api/v1/admin/payouts/{payout_id}/mark-paid")
    assert paid.status_code == 200
    assert paid.json()["is_paid"] is True
    assert paid.json()["paid_at"] is not None

    unpaid = await client.get("/api/v1/admin/payouts", params={"isPaid": "false"})
    assert unpaid.json()["total"] == 2
    settled = await client.get("/api/v1/admin/payouts", params={"isPaid": "true"})
    assert [r["id"] for r in settled.json()["items"]] == [payout_id]


@pytest.mark.asyncio
async def test_mark_unknown_payout(client):
    response = await client.patch(f"/api/v1/admin/payouts/{uuid.uuid4()}/mark-paid")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_close_expired_endpoint(client, make_request):
    lapsed = await make_request(age=timedelta(hours=72))
    fresh = await make_request()

    response = await client.post("/api/v1/admin/requests/close-expired")
    assert response.status_code == 200
    assert response.json() == {"closed": 1, "request_ids": [str(lapsed.id)]}

    still_open = await client.get(f"/api/v1/requests/{fresh.id}")
    assert still_open.json()["status"] == "IN_BIDDING"
    closed = await client.get(f"/api/v1/requests/{lapsed.id}")
    assert closed.json()["status"] == "BIDDING_CLOSED"


@pytest.mark.asyncio
async def test_concurrent_generation_is_a_conflict(db_session, make_workshop, make_booking):
    from repairbid.core.payouts.service import PayoutService

    shop = await make_workshop()
    await make_booking(shop, "2000", datetime(2026, 9, 3, tzinfo=timezone.utc))

    duplicate = IntegrityError("INSERT INTO payout_reports", {}, Exception("duplicate key"))
    with patch.object(db_session, "flush", side_effect=duplicate):
        with pytest.raises(ConflictError) as excinfo:
            await PayoutService().generate_payouts(9, 2026, db_session)

    assert excinfo.value.status_code == 409
