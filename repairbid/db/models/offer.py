import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairbid.common.enums import OfferStatus
from repairbid.db.base import BaseModel

_ACTIVE_OFFER = text("status IN ('SENT', 'ACCEPTED')")


class Offer(BaseModel):
    __tablename__ = "offers"
    __table_args__ = (
        # One live bid per workshop and request; declined/expired rows stay for audit.
        Index(
            "uq_offers_active_bid",
            "request_id",
            "workshop_id",
            unique=True,
            postgresql_where=_ACTIVE_OFFER,
            sqlite_where=_ACTIVE_OFFER,
        ),
    )

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("requests.id"), nullable=False, index=True
    )
    workshop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workshops.id"), nullable=False, index=True
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    estimated_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    warranty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    available_dates: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    status: Mapped[str] = mapped_column(String(20), default=OfferStatus.SENT.value, nullable=False)

    # Relationships
    workshop = relationship("Workshop", lazy="selectin")
