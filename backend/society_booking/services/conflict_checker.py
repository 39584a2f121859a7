"""
Conflict detection for reservation candidates.

Intervals are half-open: [start, end). Two reservations overlap when
``a.start < b.end and b.start < a.end``, so 10:00-12:00 and 12:00-14:00 do
not conflict.

Only active rows (pending/confirmed) are considered. Rejected and cancelled
rows never block a slot, which is how lifecycle transitions free capacity
without an explicit release step.

``check_conflict`` is pure: it works on whatever rows it is handed and never
touches storage, so admission and the diagnostic endpoints share it.
``ConflictChecker`` is the thin async wrapper that loads those rows.
"""

import enum
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Iterable, Optional, Sequence

from society_booking.core.exceptions import InvalidRequest
from society_booking.models.reservation import ACTIVE_STATUSES
from society_booking.schemas.reservation import ReservationCreate


@dataclass(frozen=True)
class ReservationCandidate:
    """A validated booking request, built at the request boundary."""

    resource_id: int
    requester_id: int
    booking_date: date
    start_time: time
    end_time: time

    @classmethod
    def from_request(cls, data: ReservationCreate, requester_id: int) -> "ReservationCandidate":
        return cls(
            resource_id=data.resource_id,
            requester_id=requester_id,
            booking_date=data.booking_date,
            start_time=data.start_time.replace(tzinfo=None),
            end_time=data.end_time.replace(tzinfo=None),
        )


@dataclass(frozen=True)
class ResourcePolicy:
    """Snapshot of the resource fields admission depends on."""

    resource_id: int
    capacity: int
    single_booking_per_user_per_day: bool
    max_consecutive_days: Optional[int]

    @classmethod
    def from_resource(cls, resource) -> "ResourcePolicy":
        return cls(
            resource_id=resource.id,
            capacity=resource.capacity,
            single_booking_per_user_per_day=resource.single_booking_per_user_per_day,
            max_consecutive_days=resource.max_consecutive_days,
        )


class ConflictReason(str, enum.Enum):
    OVERLAP = "overlap"
    CAPACITY_REACHED = "capacity_reached"
    USER_DAILY_LIMIT = "user_daily_limit"


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    reason: Optional[ConflictReason] = None
    conflicting_reservation_id: Optional[int] = None

    def __bool__(self) -> bool:
        return self.conflict


NO_CONFLICT = ConflictResult(conflict=False)


def validate_interval(start_time: time, end_time: time) -> None:
    """Reject empty and overnight ranges before any conflict evaluation."""
    if start_time == end_time:
        raise InvalidRequest("Reservation start and end time must differ")
    if end_time < start_time:
        raise InvalidRequest("Reservation must end after it starts on the same day")


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def check_conflict(
    candidate: ReservationCandidate,
    policy: ResourcePolicy,
    rows: Sequence,
) -> ConflictResult:
    """
    Decide whether ``candidate`` may be admitted next to ``rows``.

    ``rows`` are reservation-like objects (``id``, ``user_id``, ``status``,
    ``resource_id``, ``booking_date``, ``start_time``, ``end_time``). Rows for
    other resources/dates or in terminal states are ignored, so callers may
    pass a wider set than needed.
    """
    validate_interval(candidate.start_time, candidate.end_time)

    active = [
        row for row in rows
        if row.status in ACTIVE_STATUSES
        and row.resource_id == candidate.resource_id
        and row.booking_date == candidate.booking_date
    ]

    if policy.single_booking_per_user_per_day:
        for row in active:
            if row.user_id == candidate.requester_id:
                return ConflictResult(True, ConflictReason.USER_DAILY_LIMIT, row.id)

    overlapping = [
        row for row in active
        if overlaps(candidate.start_time, candidate.end_time, row.start_time, row.end_time)
    ]
    if len(overlapping) >= policy.capacity:
        reason = ConflictReason.OVERLAP if policy.capacity == 1 else ConflictReason.CAPACITY_REACHED
        first = min(overlapping, key=lambda row: (row.start_time, row.id))
        return ConflictResult(True, reason, first.id)

    return NO_CONFLICT


def consecutive_day_run(booked_dates: Iterable[date], candidate_date: date) -> int:
    """Length of the run of consecutive days containing ``candidate_date``."""
    days = set(booked_dates)
    days.add(candidate_date)

    run = 1
    cursor = candidate_date - timedelta(days=1)
    while cursor in days:
        run += 1
        cursor -= timedelta(days=1)
    cursor = candidate_date + timedelta(days=1)
    while cursor in days:
        run += 1
        cursor += timedelta(days=1)
    return run


class ConflictChecker:
    """Loads the active rows for a candidate's resource day and checks them."""

    def __init__(self, catalog, ledger):
        self.catalog = catalog
        self.ledger = ledger

    async def check(self, candidate: ReservationCandidate) -> ConflictResult:
        validate_interval(candidate.start_time, candidate.end_time)
        resource = await self.catalog.get(candidate.resource_id)
        rows = await self.ledger.active_for_day(candidate.resource_id, candidate.booking_date)
        return check_conflict(candidate, ResourcePolicy.from_resource(resource), rows)
