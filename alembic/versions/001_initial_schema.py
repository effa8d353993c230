"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates the tables of the booking engine:
- Users (mirrored from the account service)
- Listings with coordinator-owned availability
- Bookings and payment sessions
- Viewing requests
- Audit logs
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(20)),
        sa.Column("role", sa.String(20), nullable=False, server_default="renter"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== LISTINGS ====================
    op.create_table(
        "listings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("address", sa.Text),
        sa.Column("monthly_rate", sa.Integer, nullable=False),
        sa.Column("advance_months", sa.Integer, nullable=False, server_default="1"),
        sa.Column("availability", sa.String(30), nullable=False, server_default="free", index=True),
        sa.Column("active_booking_id", postgresql.UUID(as_uuid=True)),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_booked_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "availability IN ('free', 'reserved_for_viewing', 'reserved_for_booking', 'booked')",
            name="ck_listings_availability",
        ),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "listing_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("listings.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "renter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True
        ),
        sa.Column(
            "owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True
        ),
        sa.Column("check_in_date", sa.Date, nullable=False),
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("payable_amount", sa.Integer, nullable=False),
        sa.Column("advance_months", sa.Integer, nullable=False, server_default="1"),
        sa.Column("tenant_name", sa.String(200), nullable=False),
        sa.Column("tenant_phone", sa.String(20), nullable=False),
        sa.Column("tenant_email", sa.String(255), nullable=False),
        sa.Column("emergency_contact", postgresql.JSONB),
        sa.Column("booking_status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("payment_method", sa.String(30)),
        sa.Column("transaction_id", sa.String(100), index=True),
        sa.Column("payment_details", postgresql.JSONB),
        sa.Column("payment_initiated_at", sa.DateTime(timezone=True)),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("refund_amount", sa.Integer, server_default="0"),
        sa.Column("refund_reason", sa.Text),
        sa.Column("refunded_at", sa.DateTime(timezone=True)),
        sa.Column("refunded_by", postgresql.UUID(as_uuid=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.String(10)),
        sa.Column("admin_notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "booking_status IN ('pending', 'confirmed', 'cancelled', 'rejected', 'completed')",
            name="ck_bookings_booking_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        sa.CheckConstraint("payable_amount > 0", name="ck_bookings_payable_amount_positive"),
    )

    # ==================== PAYMENT SESSIONS ====================
    op.create_table(
        "payment_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("transaction_id", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column(
            "booking_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("customer", postgresql.JSONB),
        sa.Column("success_url", sa.Text, nullable=False),
        sa.Column("fail_url", sa.Text, nullable=False),
        sa.Column("cancel_url", sa.Text, nullable=False),
        sa.Column("ipn_url", sa.Text, nullable=False),
        sa.Column("gateway", sa.String(30), nullable=False),
        sa.Column("redirect_url", sa.Text),
        sa.Column("gateway_session_key", sa.String(255)),
        sa.Column("gateway_validation_id", sa.String(255)),
        sa.Column("gateway_bank_tran_id", sa.String(255)),
        sa.Column("gateway_response", postgresql.JSONB),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("settled_via", sa.String(20)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("consumed_at", sa.DateTime(timezone=True)),
    )

    # ==================== VIEWING REQUESTS ====================
    op.create_table(
        "viewing_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "listing_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("listings.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("renter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("preferred_date", sa.Date),
        sa.Column("message", sa.Text),
        sa.Column("status_history", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== ADMIN ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), index=True),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, index=True),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True)),
        sa.Column("old_values", postgresql.JSONB),
        sa.Column("new_values", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("audit_logs")
    op.drop_table("viewing_requests")
    op.drop_table("payment_sessions")
    op.drop_table("bookings")
    op.drop_table("listings")
    op.drop_table("users")
