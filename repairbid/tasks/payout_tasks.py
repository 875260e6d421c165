import asyncio

from repairbid.common.logging import get_logger
from repairbid.tasks.celery_app import app

logger = get_logger("tasks.payouts")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="repairbid.tasks.payout_tasks.generate_payouts")
def generate_payouts(month: int, year: int):
    logger.info("Generating payout reports for %02d/%d", month, year)

    async def _generate():
        from repairbid.core.payouts.service import PayoutService
        from repairbid.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                reports = await PayoutService().generate_payouts(month, year, db)
                await db.commit()
                return [str(r.id) for r in reports]
            except Exception as e:
                await db.rollback()
                logger.error("Payout generation failed for %02d/%d: %s", month, year, e)
                raise

    return _run_async(_generate())


@app.task(name="repairbid.tasks.payout_tasks.generate_previous_month_payouts")
def generate_previous_month_payouts():
    """Celery Beat task: build payout reports for the month that just ended."""
    from repairbid.common.clock import utcnow
    from repairbid.core.payouts.service import previous_month

    month, year = previous_month(utcnow())
    return generate_payouts(month, year)
