"""
Domain errors raised by the booking core.

Every business outcome has its own class and stable ``code`` so the request
layer can keep them distinct end-to-end. ``StorageFailure`` is the only
retryable, infrastructure-level error.
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from society_booking.core.logging import get_logger

logger = get_logger(__name__)


class BookingError(Exception):
    code = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_payload(self) -> dict:
        payload = {"error": self.code, "detail": self.detail}
        payload.update({k: v for k, v in self.context.items() if v is not None})
        return payload


class InvalidRequest(BookingError):
    """Malformed interval, unknown or inactive resource, unknown requester."""

    code = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(BookingError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(BookingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class SlotTaken(BookingError):
    """The requested slot conflicts with an active reservation."""

    code = "slot_taken"
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        detail: str = "The requested slot is already taken",
        reason: Optional[str] = None,
        conflicting_reservation_id: Optional[int] = None,
    ):
        super().__init__(
            detail,
            reason=reason,
            conflicting_reservation_id=conflicting_reservation_id,
        )
        self.reason = reason
        self.conflicting_reservation_id = conflicting_reservation_id


class InvalidTransition(BookingError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class StorageFailure(BookingError):
    """Persistence error unrelated to business rules. Safe to retry."""

    code = "storage_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    if exc.retryable:
        logger.error("request_storage_failure", error=exc.code, detail=exc.detail)
    else:
        logger.info("request_rejected", error=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)
