from decimal import Decimal

from pydantic import BaseModel, Field

from repairbid.config import Settings


class BiddingPolicy(BaseModel):
    """Marketplace knobs passed explicitly into the bidding and matching code."""

    bidding_window_hours: int = Field(default=48, gt=0)
    default_radius_km: float = Field(default=30.0, gt=0)
    offer_result_limit: int = Field(default=12, gt=0)
    commission_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BiddingPolicy":
        return cls(
            bidding_window_hours=settings.BIDDING_WINDOW_HOURS,
            default_radius_km=settings.DEFAULT_MATCH_RADIUS_KM,
            offer_result_limit=settings.OFFER_RESULT_LIMIT,
            commission_rate=Decimal(str(settings.COMMISSION_RATE)),
        )


class CommissionSplit(BaseModel):
    total_amount: Decimal
    commission: Decimal
    workshop_amount: Decimal
