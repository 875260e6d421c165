"""Initial schema - workshops, requests, offers, bookings, payout reports

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Workshops
    op.create_table(
        "workshops",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True, unique=True, index=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("rating", sa.Float, nullable=False, server_default=sa.text("0.0")),
        sa.Column("review_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
    )

    # Repair requests
    op.create_table(
        "requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("vehicle_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("report_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("city", sa.String(120), nullable=False),
        sa.Column("postal_code", sa.String(20), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_BIDDING", index=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        *_timestamps(),
    )

    # Offers
    op.create_table(
        "offers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("requests.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "workshop_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workshops.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("estimated_duration", sa.Integer, nullable=False),
        sa.Column("warranty", sa.String(255), nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("available_dates", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="SENT"),
        *_timestamps(),
    )
    op.create_index(
        "uq_offers_active_bid",
        "offers",
        ["request_id", "workshop_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('SENT', 'ACCEPTED')"),
    )

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("requests.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "offer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("offers.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column(
            "workshop_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workshops.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="CONFIRMED", index=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("workshop_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(),
    )

    # Payout reports
    op.create_table(
        "payout_reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "workshop_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workshops.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("month", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("total_jobs", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("commission", sa.Numeric(14, 2), nullable=False),
        sa.Column("workshop_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_paid", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("workshop_id", "month", "year", name="uq_payout_workshop_period"),
    )


def downgrade() -> None:
    op.drop_table("payout_reports")
    op.drop_table("bookings")
    op.drop_index("uq_offers_active_bid", table_name="offers")
    op.drop_table("offers")
    op.drop_table("requests")
    op.drop_table("workshops")
