"""
Slot templates per resource category and their availability on a date.

Templates are what the booking screens offer; admission itself accepts any
well-formed interval. Availability reuses the conflict checker, so a slot is
shown as free exactly when a submission for it would pass the conflict check
(ignoring per-user rules, which depend on who asks).
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone

from society_booking.models.resource import ResourceCategory
from society_booking.schemas.resource import (
    AvailabilityResponse,
    BookedInterval,
    ResourceResponse,
    SlotAvailability,
)
from society_booking.services.conflict_checker import ReservationCandidate, ResourcePolicy, check_conflict

FULL_DAY = (time(0, 0), time(23, 59))


@dataclass(frozen=True)
class SlotTemplate:
    label: str
    start_time: time
    end_time: time


def _hourly(first_hour: int, last_hour: int, step: int = 1) -> list[SlotTemplate]:
    return [
        SlotTemplate(f"{hour:02d}:00 - {hour + 1:02d}:00", time(hour), time(hour + 1))
        for hour in range(first_hour, last_hour, step)
    ]


def slot_templates(category: str) -> list[SlotTemplate]:
    if category == ResourceCategory.POOL.value:
        return _hourly(6, 10) + _hourly(18, 22)
    if category == ResourceCategory.GYM.value:
        return _hourly(5, 22, step=2)
    if category == ResourceCategory.GARDEN.value:
        return _hourly(6, 18)
    if category in (ResourceCategory.HALL.value, ResourceCategory.GUEST_PARKING.value):
        return [SlotTemplate("Full day", *FULL_DAY)]
    return _hourly(9, 21)


class AvailabilityService:
    def __init__(self, catalog, ledger):
        self.catalog = catalog
        self.ledger = ledger

    async def for_date(self, resource_id: int, booking_date: date) -> AvailabilityResponse:
        resource = await self.catalog.get(resource_id)
        rows = await self.ledger.active_for_day(resource_id, booking_date)

        # Per-user limits are evaluated at admission, not here
        policy = replace(
            ResourcePolicy.from_resource(resource),
            single_booking_per_user_per_day=False,
            max_consecutive_days=None,
        )

        slots = []
        for template in slot_templates(resource.category):
            probe = ReservationCandidate(
                resource_id=resource_id,
                requester_id=0,
                booking_date=booking_date,
                start_time=template.start_time,
                end_time=template.end_time,
            )
            free = resource.is_active and not check_conflict(probe, policy, rows)
            slots.append(
                SlotAvailability(
                    label=template.label,
                    start_time=template.start_time,
                    end_time=template.end_time,
                    available=free,
                )
            )

        return AvailabilityResponse(
            resource=ResourceResponse.model_validate(resource),
            booking_date=booking_date,
            slots=slots,
            booked=[
                BookedInterval(
                    reservation_id=row.id,
                    user_id=row.user_id,
                    start_time=row.start_time,
                    end_time=row.end_time,
                    status=row.status,
                )
                for row in rows
            ],
            generated_at=datetime.now(timezone.utc),
        )
