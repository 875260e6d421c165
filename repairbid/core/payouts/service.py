import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.common.clock import utcnow
from repairbid.common.enums import BookingStatus
from repairbid.common.exceptions import BadRequestError, ConflictError, PayoutNotFoundError
from repairbid.common.logging import get_logger
from repairbid.config import settings
from repairbid.core.bidding.workflow import compute_commission
from repairbid.core.payouts.schemas import PayoutTotals
from repairbid.db.models.booking import Booking
from repairbid.db.models.payout import PayoutReport
from repairbid.db.models.workshop import Workshop

logger = get_logger("payouts.service")


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """Half-open UTC interval [first day of month, first day of next month)."""
    if not 1 <= month <= 12:
        raise BadRequestError(f"Invalid month {month}, expected 1-12")
    if year < 2000:
        raise BadRequestError(f"Invalid year {year}")

    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(now: datetime) -> tuple[int, int]:
    if now.month == 1:
        return 12, now.year - 1
    return now.month - 1, now.year


def summarize_bookings(
    workshop_id: uuid.UUID, bookings: Iterable[Booking], commission_rate: Decimal
) -> PayoutTotals | None:
    done = [b for b in bookings if b.status == BookingStatus.DONE.value]
    if not done:
        return None

    total = sum((Decimal(b.total_amount) for b in done), Decimal("0.00"))
    split = compute_commission(total, commission_rate)
    return PayoutTotals(
        workshop_id=workshop_id,
        total_jobs=len(done),
        total_amount=split.total_amount,
        commission=split.commission,
        workshop_amount=split.workshop_amount,
    )


class PayoutService:
    def __init__(self, commission_rate: Decimal | None = None):
        self.commission_rate = (
            commission_rate if commission_rate is not None else Decimal(str(settings.COMMISSION_RATE))
        )

    async def generate_payouts(self, month: int, year: int, db: AsyncSession) -> list[PayoutReport]:
        """Upsert one report per verified, active workshop with completed jobs in the month."""
        start, end = month_bounds(month, year)

        result = await db.execute(
            select(Workshop).where(Workshop.is_verified.is_(True), Workshop.is_active.is_(True))
        )
        workshops = result.scalars().all()

        reports = []
        try:
            for workshop in workshops:
                report = await self._upsert_report(workshop, month, year, start, end, db)
                if report is not None:
                    reports.append(report)

            await db.flush()
        except IntegrityError:
            # Another run inserted a report for the same workshop and month first.
            raise ConflictError(f"Payout reports for {month:02d}/{year} are already being generated")
        for report in reports:
            await db.refresh(report)

        logger.info(
            "Generated %d payout reports for %02d/%d across %d workshops",
            len(reports),
            month,
            year,
            len(workshops),
        )
        return reports

    async def _upsert_report(
        self,
        workshop: Workshop,
        month: int,
        year: int,
        start: datetime,
        end: datetime,
        db: AsyncSession,
    ) -> PayoutReport | None:
        bookings_result = await db.execute(
            select(Booking).where(
                Booking.workshop_id == workshop.id,
                Booking.status == BookingStatus.DONE.value,
                Booking.created_at >= start,
                Booking.created_at < end,
            )
        )
        totals = summarize_bookings(workshop.id, bookings_result.scalars().all(), self.commission_rate)
        if totals is None:
            return None

        existing_result = await db.execute(
            select(PayoutReport)
            .where(
                PayoutReport.workshop_id == workshop.id,
                PayoutReport.month == month,
                PayoutReport.year == year,
            )
            .with_for_update()
        )
        report = existing_result.scalar_one_or_none()
        if report is None:
            report = PayoutReport(workshop_id=workshop.id, month=month, year=year)
            db.add(report)

        report.total_jobs = totals.total_jobs
        report.total_amount = totals.total_amount
        report.commission = totals.commission
        report.workshop_amount = totals.workshop_amount
        return report

    async def mark_paid(
        self, payout_id: uuid.UUID, db: AsyncSession, now: datetime | None = None
    ) -> PayoutReport:
        result = await db.execute(
            select(PayoutReport).where(PayoutReport.id == payout_id).with_for_update()
        )
        report = result.scalar_one_or_none()
        if not report:
            raise PayoutNotFoundError(str(payout_id))

        if not report.is_paid:
            report.is_paid = True
            report.paid_at = now or utcnow()
            await db.flush()
            await db.refresh(report)
            logger.info("Marked payout %s as paid", payout_id)
        return report
