"""Initial schema: users, rides and bookings.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUS = sa.Enum(
    "DRAFT", "ACTIVE", "FULL", "IN_PROGRESS", "COMPLETED", "CANCELLED",
    name="ridestatus",
)
BOOKING_STATUS = sa.Enum(
    "PENDING", "CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED", "NO_SHOW",
    name="bookingstatus",
)
PAYMENT_METHOD = sa.Enum("CASH", "TRANSFER", "WALLET", name="paymentmethod")
PAYMENT_STATUS = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED",
    name="paymentstatus",
)
ACTOR = sa.Enum("PASSENGER", "DRIVER", "SYSTEM", name="actor")


def _timestamps(*names: str) -> list[sa.Column]:
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=True) for name in names]


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("reference", sa.String(12), unique=True, nullable=False),
        sa.Column("driver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_id", sa.String(64), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("origin_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("destination_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("departure_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_seats", sa.Integer, nullable=False),
        sa.Column("available_seats", sa.Integer, nullable=False),
        sa.Column("booked_seats", sa.Integer, nullable=False, server_default="0"),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="NGN"),
        sa.Column("status", RIDE_STATUS, nullable=False, server_default="DRAFT"),
        sa.Column("recurrence_days", sa.String(80), nullable=True),
        sa.Column("recurrence_end_date", sa.Date, nullable=True),
        sa.Column("parent_ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=True),
        sa.Column("estimated_distance_km", sa.Float, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        *_timestamps(
            "created_at",
            "updated_at",
            "published_at",
            "started_at",
            "completed_at",
            "cancelled_at",
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats "
            "AND booked_seats + available_seats = total_seats",
            name="ck_rides_seat_counters",
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver_departure", "rides", ["driver_id", "departure_at"])
    op.create_index("idx_rides_parent", "rides", ["parent_ride_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("reference", sa.String(12), unique=True, nullable=False),
        sa.Column("ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("passenger_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seats", sa.Integer, nullable=False),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("total_price", sa.Float, nullable=False),
        sa.Column("departure_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", BOOKING_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False, server_default="CASH"),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("payment_reference", sa.String(64), nullable=True),
        sa.Column("verification_code", sa.String(6), nullable=False),
        sa.Column("fee_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("refund_amount", sa.Float, nullable=True),
        sa.Column("amount_received", sa.Float, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("cancelled_by", ACTOR, nullable=True),
        sa.Column("is_late_cancellation", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(
            "verification_expires_at",
            "terms_accepted_at",
            "expires_at",
            "checked_in_at",
            "picked_up_at",
            "dropped_off_at",
            "reminder_sent_at",
            "created_at",
            "updated_at",
            "confirmed_at",
            "cancelled_at",
            "completed_at",
            "no_show_at",
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_passenger", "bookings", ["passenger_id"])
    op.create_index("idx_bookings_status_expires", "bookings", ["status", "expires_at"])
    op.create_index("idx_bookings_departure", "bookings", ["departure_at"])
    # At most one active booking per passenger per ride
    op.create_index(
        "uq_bookings_active_passenger",
        "bookings",
        ["ride_id", "passenger_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'CONFIRMED', 'IN_PROGRESS')"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("users")
    for name in ("actor", "paymentstatus", "paymentmethod", "bookingstatus", "ridestatus"):
        op.execute(f"DROP TYPE IF EXISTS {name}")
