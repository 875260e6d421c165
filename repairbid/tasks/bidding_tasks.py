import asyncio

from repairbid.common.logging import get_logger
from repairbid.tasks.celery_app import app

logger = get_logger("tasks.bidding")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="repairbid.tasks.bidding_tasks.close_expired_requests")
def close_expired_requests():
    """Celery Beat task: move requests past their bidding window to BIDDING_CLOSED."""
    logger.info("Sweeping expired bidding windows")

    async def _sweep():
        from repairbid.core.bidding.service import BiddingService
        from repairbid.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                closed = await BiddingService().close_expired_requests(db)
                await db.commit()
                return closed
            except Exception as e:
                await db.rollback()
                logger.error("Expiry sweep failed: %s", e)
                raise

    return _run_async(_sweep())
