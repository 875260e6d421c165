from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from repairbid.core.bidding.service import BiddingService
from repairbid.core.payouts.service import PayoutService
from repairbid.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_bidding_service() -> BiddingService:
    return BiddingService()


def get_payout_service() -> PayoutService:
    return PayoutService()
