"""Initial schema: users, events, bookings and seat holds.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'organizer', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time", sa.String(10), nullable=False),
        sa.Column("venue", sa.String(255), nullable=False),
        sa.Column("ticket_price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("image", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_capacity_positive"),
        sa.CheckConstraint("ticket_price >= 0", name="check_ticket_price_non_negative"),
        sa.CheckConstraint("type IN ('Movie', 'Sports', 'Concert', 'Family')", name="check_event_type"),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'cancelled', 'archived')", name="check_event_status"
        ),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # Listings are ordered by date
    op.create_index("ix_events_date", "events", ["date"])
    op.create_index("ix_events_type_category", "events", ["type", "category"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("seats", sa.JSON(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_seat", sa.Float(), nullable=False),
        sa.Column("total_price", sa.Float(), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default=sa.text("'card'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'paid'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_booking_quantity_positive"),
        sa.CheckConstraint("price_per_seat >= 0", name="check_booking_price_non_negative"),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint(
            "payment_method IN ('card', 'upi', 'wallet', 'cash', 'other')",
            name="check_booking_payment_method",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    # Admission aggregates scan active bookings of one event
    op.create_index("ix_bookings_event_status", "bookings", ["event_id", "status"])

    op.create_table(
        "booking_seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("label", sa.String(50), nullable=False),
        sa.UniqueConstraint("event_id", "label", name="uq_event_seat_label"),
    )
    op.create_index("ix_booking_seats_booking_id", "booking_seats", ["booking_id"])


def downgrade() -> None:
    op.drop_table("booking_seats")
    op.drop_table("bookings")
    op.drop_table("events")
    op.drop_table("users")
