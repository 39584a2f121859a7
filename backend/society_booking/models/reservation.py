"""
Reservation ledger tables.

Key design decisions:
- Status is never deleted: rejected/cancelled rows stay for history and are
  simply ignored by conflict checks.
- `reservation_days` holds one version counter per (resource, date). Every
  admission bumps it with a compare-and-set UPDATE, so two transactions that
  checked the same snapshot cannot both insert. This works across processes
  because the database arbitrates it.
- `reservation_user_versions` does the same per (user, resource) for
  resources with a consecutive-day limit, whose check reads the user's
  bookings on neighbouring dates that the day counter does not cover.
- The partial unique index on (user_id, resource_id, booking_date) enforces
  the one-booking-per-user-per-day rule at the storage layer for resources
  that opt in (`one_per_user_day` is copied from the resource at admission).
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)

from society_booking.db.base import Base, TimestampMixin


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)

_ACTIVE_PER_USER = text("status IN ('pending', 'confirmed') AND one_per_user_day")


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    admin_note = Column(Text, nullable=True)
    one_per_user_day = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_reservation_interval"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'cancelled')",
            name="check_reservation_status",
        ),
        # Conflict scan: active rows for one resource on one day
        Index("ix_reservations_resource_day", "resource_id", "booking_date", "status"),
        Index("ix_reservations_user_status", "user_id", "status"),
        Index(
            "uq_reservations_user_resource_day",
            "user_id",
            "resource_id",
            "booking_date",
            unique=True,
            postgresql_where=_ACTIVE_PER_USER,
            sqlite_where=_ACTIVE_PER_USER,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, resource={self.resource_id}, user={self.user_id}, "
            f"{self.booking_date} {self.start_time}-{self.end_time}, status={self.status})>"
        )


class ReservationDay(Base):
    __tablename__ = "reservation_days"

    id = Column(Integer, primary_key=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("resource_id", "booking_date", name="uq_reservation_day"),
    )

    def __repr__(self) -> str:
        return f"<ReservationDay(resource={self.resource_id}, date={self.booking_date}, version={self.version})>"


class UserResourceVersion(Base):
    __tablename__ = "reservation_user_versions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_reservation_user_version"),
    )

    def __repr__(self) -> str:
        return f"<UserResourceVersion(user={self.user_id}, resource={self.resource_id}, version={self.version})>"
