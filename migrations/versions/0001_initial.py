"""Initial schema — users, matatus, routes, fare rules, trips, revenue splits, payments, alerts, callbacks"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(20), unique=True, nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_by", sa.String, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_users_role", "users", ["role"])

    op.create_table(
        "matatus",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("plate_number", sa.String(20), unique=True, nullable=False),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="14"),
        sa.Column("owner_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_matatus_owner", "matatus", ["owner_id"])

    op.create_table(
        "routes",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("distance_km", sa.Numeric(10, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "fare_rules",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("route_id", sa.String, sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("fare_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("route_id", "fare_type", name="uq_fare_rules_route_fare_type"),
    )
    op.create_index("idx_fare_rules_route", "fare_rules", ["route_id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("route_id", sa.String, sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("matatu_id", sa.String, sa.ForeignKey("matatus.id"), nullable=False),
        sa.Column("conductor_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("fare_type", sa.String(20), nullable=False),
        sa.Column("fare_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("passenger_count", sa.Integer, nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("driver_confirmed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("trip_date", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_matatu", "trips", ["matatu_id"])
    op.create_index("idx_trips_conductor", "trips", ["conductor_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_created", "trips", ["created_at"])

    op.create_table(
        "revenue_splits",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("trip_id", sa.String, sa.ForeignKey("trips.id"), unique=True, nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("owner_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("driver_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("conductor_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("sacco_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("maintenance_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("owner_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("conductor_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("integrity_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_splits_owner", "revenue_splits", ["owner_id"])
    op.create_index("idx_splits_driver", "revenue_splits", ["driver_id"])
    op.create_index("idx_splits_conductor", "revenue_splits", ["conductor_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("trip_id", sa.String, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("phone_number", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("provider_ref", sa.String(255), nullable=True),
        sa.Column("checkout_request_id", sa.String(255), nullable=True),
        sa.Column("receipt_code", sa.String(100), nullable=True),
        sa.Column("provider_raw", sa.JSON, nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_payments_trip", "payments", ["trip_id"])
    op.create_index("idx_payments_status", "payments", ["status"])
    op.create_index("idx_payments_provider_ref", "payments", ["provider_ref"])
    op.create_index("idx_payments_checkout", "payments", ["checkout_request_id"])

    op.create_table(
        "alerts",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("user_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_alerts_user", "alerts", ["user_id"])

    op.create_table(
        "provider_callbacks",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("outcome", sa.String(20), nullable=True),
        sa.Column("payment_id", sa.String, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_callbacks_status", "provider_callbacks", ["status"])


def downgrade() -> None:
    op.drop_table("provider_callbacks")
    op.drop_table("alerts")
    op.drop_table("payments")
    op.drop_table("revenue_splits")
    op.drop_table("trips")
    op.drop_table("fare_rules")
    op.drop_table("routes")
    op.drop_table("matatus")
    op.drop_table("users")
