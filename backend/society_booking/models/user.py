"""
Resident/staff account as published by the society directory.
This service only reads these rows (existence, activity and role).
"""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from society_booking.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    RESIDENT = "resident"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    WATCHMAN = "watchman"


ADMIN_ROLES = frozenset({UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value})


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    unit_number = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.RESIDENT.value)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('resident', 'admin', 'super_admin', 'watchman')",
            name="check_user_role",
        ),
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
