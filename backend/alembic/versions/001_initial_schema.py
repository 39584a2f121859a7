"""Initial schema: users, resources, reservation ledger with conflict constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_PER_USER = sa.text("status IN ('pending', 'confirmed') AND one_per_user_day")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users (mirrored from the resident directory; read-only to this service)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("unit_number", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'resident'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('resident', 'admin', 'super_admin', 'watchman')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Resource catalog
    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("single_booking_per_user_per_day", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_consecutive_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_resource_capacity_positive"),
        sa.CheckConstraint(
            "max_consecutive_days IS NULL OR max_consecutive_days > 0",
            name="check_resource_consecutive_days_positive",
        ),
        sa.CheckConstraint(
            "category IN ('pool', 'gym', 'hall', 'garden', 'guest_parking', 'other')",
            name="check_resource_category",
        ),
    )
    op.create_index("ix_resources_id", "resources", ["id"])

    # Reservation ledger
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("admin_note", sa.Text(), nullable=True),
        sa.Column("one_per_user_day", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="check_reservation_interval"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'cancelled')",
            name="check_reservation_status",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    # CONFLICT SCAN INDEX: every admission reads the active rows of one
    # resource on one date. Keeps that read an index range scan.
    op.create_index("ix_reservations_resource_day", "reservations", ["resource_id", "booking_date", "status"])
    op.create_index("ix_reservations_user_status", "reservations", ["user_id", "status"])
    # One active reservation per resident per resource per day, for resources
    # that opt in. Cancelled/rejected rows fall out of the index and free the slot.
    op.create_index(
        "uq_reservations_user_resource_day",
        "reservations",
        ["user_id", "resource_id", "booking_date"],
        unique=True,
        postgresql_where=ACTIVE_PER_USER,
        sqlite_where=ACTIVE_PER_USER,
    )

    # Per resource-day version counters, the admission serialization point
    op.create_table(
        "reservation_days",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("resource_id", "booking_date", name="uq_reservation_day"),
    )


def downgrade() -> None:
    op.drop_table("reservation_days")
    op.drop_index("uq_reservations_user_resource_day", table_name="reservations")
    op.drop_table("reservations")
    op.drop_table("resources")
    op.drop_table("users")
