"""Initial schema: users, drivers, ride requests, rides, payments, reviews.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

user_type = sa.Enum("passenger", "driver", "admin", name="usertype")
request_status = sa.Enum(
    "pending", "accepted", "rejected", "cancelled", "completed",
    name="riderequeststatus",
)
ride_status = sa.Enum("in_progress", "completed", "cancelled", name="ridestatus")
payment_status = sa.Enum("pending", "completed", "failed", name="paymentstatus")
payment_method = sa.Enum("mpesa", "card", "cash", name="paymentmethod")


def _timestamps(updated: bool = True) -> list:
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return cols


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_type", user_type, nullable=False),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("last_name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone_number", sa.String(20), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_email_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("email_verification_token", sa.String(64), unique=True, nullable=True),
        sa.Column("email_verification_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Float, nullable=False, server_default="0"),
        *_timestamps(),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("vehicle_make", sa.String(60), nullable=True),
        sa.Column("vehicle_model", sa.String(60), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("license_plate", sa.String(20), unique=True, nullable=False),
        sa.Column("driver_license_number", sa.String(40), unique=True, nullable=False),
        sa.Column("insurance_details", sa.Text, nullable=True),
        sa.Column("is_approved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("current_latitude", sa.Float, nullable=True),
        sa.Column("current_longitude", sa.Float, nullable=True),
        sa.Column("last_location_update", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_drivers_available", "drivers", ["is_available", "is_approved"])

    # ── ride_requests ─────────────────────────────────────────────────
    op.create_table(
        "ride_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("pickup_latitude", sa.Float, nullable=False),
        sa.Column("pickup_longitude", sa.Float, nullable=False),
        sa.Column("dropoff_latitude", sa.Float, nullable=False),
        sa.Column("dropoff_longitude", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("status", request_status, nullable=False, server_default="pending"),
        sa.Column("estimated_fare", sa.Float, nullable=False),
        sa.Column("estimated_distance_km", sa.Float, nullable=False),
        sa.Column("estimated_duration_minutes", sa.Integer, nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_ride_requests_status", "ride_requests", ["status"])
    op.create_index("idx_ride_requests_passenger", "ride_requests", ["passenger_id"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "request_id", sa.Integer, sa.ForeignKey("ride_requests.id"),
            unique=True, nullable=False,
        ),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", ride_status, nullable=False, server_default="in_progress"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_fare", sa.Float, nullable=True),
        sa.Column("actual_distance_km", sa.Float, nullable=True),
        sa.Column("actual_duration_minutes", sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_rides_status_end", "rides", ["status", "end_time"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_passenger", "rides", ["passenger_id"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), unique=True, nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("payment_method", payment_method, nullable=False, server_default="mpesa"),
        sa.Column("transaction_id", sa.String(64), unique=True, nullable=True),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("reviewer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reviewed_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rating", sa.Float, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("ride_id", "reviewer_id", name="uq_reviews_ride_reviewer"),
        sa.CheckConstraint("rating >= 1.0 AND rating <= 5.0", name="ck_reviews_rating"),
    )
    op.create_index("idx_reviews_reviewed", "reviews", ["reviewed_id"])


def downgrade() -> None:
    op.drop_table("reviews")
    op.drop_table("payments")
    op.drop_table("rides")
    op.drop_table("ride_requests")
    op.drop_table("drivers")
    op.drop_table("users")
    for name in ("paymentmethod", "paymentstatus", "ridestatus", "riderequeststatus", "usertype"):
        op.execute(f"DROP TYPE IF EXISTS {name}")
