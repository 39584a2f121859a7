from society_booking.models.user import User, UserRole
from society_booking.models.resource import Resource, ResourceCategory
from society_booking.models.reservation import (
    Reservation,
    ReservationDay,
    ReservationStatus,
    UserResourceVersion,
)

__all__ = [
    "User", "UserRole",
    "Resource", "ResourceCategory",
    "Reservation", "ReservationDay", "ReservationStatus", "UserResourceVersion",
]
