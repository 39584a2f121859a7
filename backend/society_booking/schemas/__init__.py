from society_booking.schemas.resource import (
    ResourceCreate, ResourceUpdate, ResourceResponse, ResourceListResponse, AvailabilityResponse,
)
from society_booking.schemas.reservation import (
    ReservationCreate, ReservationResponse, ReservationTransition, ConflictCheckResponse, ReservationReport,
)

__all__ = [
    "ResourceCreate", "ResourceUpdate", "ResourceResponse", "ResourceListResponse", "AvailabilityResponse",
    "ReservationCreate", "ReservationResponse", "ReservationTransition", "ConflictCheckResponse",
    "ReservationReport",
]
