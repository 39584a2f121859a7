"""
Bookable shared asset (pool, gym, hall, garden, guest-parking slot).

Key design decisions:
- Resources are never deleted; `is_active=False` stops new reservations
  while keeping historical ones valid.
- `capacity` is the number of overlapping active reservations allowed.
  Guest-parking slots and most amenities use 1.
- Per-user rules live on the resource so admission can enforce them without
  a global policy table.
"""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, Text

from society_booking.db.base import Base, TimestampMixin


class ResourceCategory(str, enum.Enum):
    POOL = "pool"
    GYM = "gym"
    HALL = "hall"
    GARDEN = "garden"
    GUEST_PARKING = "guest_parking"
    OTHER = "other"


class Resource(Base, TimestampMixin):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    category = Column(String(20), nullable=False)
    location = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False, default=1)
    single_booking_per_user_per_day = Column(Boolean, nullable=False, default=False)
    max_consecutive_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_resource_capacity_positive"),
        CheckConstraint(
            "max_consecutive_days IS NULL OR max_consecutive_days > 0",
            name="check_resource_consecutive_days_positive",
        ),
        CheckConstraint(
            "category IN ('pool', 'gym', 'hall', 'garden', 'guest_parking', 'other')",
            name="check_resource_category",
        ),
    )

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, name={self.name}, capacity={self.capacity}, active={self.is_active})>"
