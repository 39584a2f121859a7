"""
Tests for the admission controller, including concurrent submissions.
"""

import asyncio
from datetime import date, time

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from society_booking.core.exceptions import InvalidRequest, SlotTaken, StorageFailure
from society_booking.models import Reservation, User
from society_booking.services import admission_controller
from society_booking.services.conflict_checker import NO_CONFLICT, ReservationCandidate
from society_booking.services.directory import Actor
from society_booking.services.interfaces import OptimisticAdmission
from society_booking.services.ledger import ReservationLedger


def as_actor(user: User) -> Actor:
    return Actor(user_id=user.id, is_admin=user.is_admin)


async def count_reservations(session) -> int:
    return await session.scalar(select(func.count(Reservation.id)))


async def active_dates(session, user) -> list:
    result = await session.execute(
        select(Reservation.booking_date)
        .where(Reservation.user_id == user.id, Reservation.status.in_(["pending", "confirmed"]))
        .order_by(Reservation.booking_date)
    )
    return list(result.scalars().all())


class LosingLedger(ReservationLedger):
    """Loses the day-version compare-and-set a fixed number of times."""

    def __init__(self, session, losses: int):
        super().__init__(session)
        self.losses = losses
        self.claims = 0

    async def claim_day(self, resource_id, booking_date, seen_version):
        self.claims += 1
        if self.claims <= self.losses:
            return False
        return await super().claim_day(resource_id, booking_date, seen_version)


class InterleavingLedger(ReservationLedger):
    """Lets ``competitor`` commit right after the consecutive-day read, once."""

    def __init__(self, session, competitor):
        super().__init__(session)
        self.competitor = competitor
        self.competitor_result = None

    async def active_dates_for_user(self, *args, **kwargs):
        booked = await super().active_dates_for_user(*args, **kwargs)
        if self.competitor is not None:
            competitor, self.competitor = self.competitor, None
            self.competitor_result = await competitor()
        return booked


class BrokenLedger(ReservationLedger):
    async def active_for_day(self, resource_id, booking_date):
        raise OperationalError("SELECT reservations", {}, Exception("connection reset by peer"))


@pytest.mark.asyncio
async def test_first_request_is_admitted_as_pending(submit, candidate, guest_parking, resident):
    reservation = await submit(candidate(guest_parking, resident), as_actor(resident))

    assert reservation.id is not None
    assert reservation.status == "pending"
    assert reservation.user_id == resident.id
    assert str(reservation.start_time) == "10:00:00"
    assert reservation.booking_date == date(2024, 6, 1)


@pytest.mark.asyncio
async def test_overlapping_request_gets_slot_taken(submit, candidate, guest_parking, resident, neighbour):
    first = await submit(candidate(guest_parking, resident, "10:00", "12:00"), as_actor(resident))

    with pytest.raises(SlotTaken) as exc_info:
        await submit(candidate(guest_parking, neighbour, "11:00", "13:00"), as_actor(neighbour))

    assert exc_info.value.reason == "overlap"
    assert exc_info.value.conflicting_reservation_id == first.id


@pytest.mark.asyncio
async def test_adjacent_request_is_admitted(submit, candidate, guest_parking, resident, neighbour):
    await submit(candidate(guest_parking, resident, "10:00", "12:00"), as_actor(resident))
    second = await submit(candidate(guest_parking, neighbour, "12:00", "14:00"), as_actor(neighbour))

    assert second.status == "pending"


@pytest.mark.asyncio
async def test_capacity_counts_overlapping_reservations(submit, candidate, pool, db_session):
    swimmers = [
        User(email=f"swimmer{i}@society.test", full_name=f"Swimmer {i}", unit_number=f"D-{i}")
        for i in range(4)
    ]
    db_session.add_all(swimmers)
    await db_session.commit()

    for swimmer in swimmers[:3]:
        await submit(candidate(pool, swimmer, "18:00", "19:00"), as_actor(swimmer))

    with pytest.raises(SlotTaken) as exc_info:
        await submit(candidate(pool, swimmers[3], "18:30", "19:30"), as_actor(swimmers[3]))
    assert exc_info.value.reason == "capacity_reached"


@pytest.mark.asyncio
async def test_concurrent_requests_admit_exactly_one(submit, candidate, guest_parking, db_session):
    """Ten residents race for the same guest parking slot."""
    residents = [
        User(email=f"racer{i}@society.test", full_name=f"Racer {i}", unit_number=f"E-{i}")
        for i in range(10)
    ]
    db_session.add_all(residents)
    await db_session.commit()

    results = await asyncio.gather(
        *(submit(candidate(guest_parking, r, "10:00", "12:00"), as_actor(r)) for r in residents),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Reservation)]
    rejected = [r for r in results if isinstance(r, SlotTaken)]
    assert len(admitted) == 1
    assert len(rejected) == 9
    assert all(e.conflicting_reservation_id == admitted[0].id for e in rejected)
    assert await count_reservations(db_session) == 1


@pytest.mark.asyncio
async def test_one_booking_per_resident_per_day(submit, candidate, guest_parking, resident):
    first = await submit(candidate(guest_parking, resident, "08:00", "09:00"), as_actor(resident))

    with pytest.raises(SlotTaken) as exc_info:
        await submit(candidate(guest_parking, resident, "18:00", "19:00"), as_actor(resident))

    assert exc_info.value.reason == "user_daily_limit"
    assert exc_info.value.conflicting_reservation_id == first.id


@pytest.mark.asyncio
async def test_daily_limit_backed_by_unique_index(submit, candidate, guest_parking, resident, monkeypatch, db_session):
    """Even if the in-transaction check were skipped, storage refuses a second active booking."""
    await submit(candidate(guest_parking, resident, "08:00", "09:00"), as_actor(resident))

    monkeypatch.setattr(admission_controller, "check_conflict", lambda *args: NO_CONFLICT)
    with pytest.raises(SlotTaken) as exc_info:
        await submit(candidate(guest_parking, resident, "18:00", "19:00"), as_actor(resident))

    assert exc_info.value.reason == "user_daily_limit"
    assert await count_reservations(db_session) == 1


@pytest.mark.asyncio
async def test_daily_limit_not_applied_to_other_resources(submit, candidate, hall, resident):
    await submit(candidate(hall, resident, "08:00", "09:00"), as_actor(resident))
    second = await submit(candidate(hall, resident, "18:00", "19:00"), as_actor(resident))
    assert second.id is not None


@pytest.mark.asyncio
async def test_consecutive_day_limit(submit, candidate, guest_parking, resident):
    for day in (date(2024, 6, 1), date(2024, 6, 3)):
        await submit(candidate(guest_parking, resident, day=day), as_actor(resident))

    with pytest.raises(InvalidRequest, match="consecutive"):
        await submit(candidate(guest_parking, resident, day=date(2024, 6, 2)), as_actor(resident))

    # A gap day keeps the run at one
    await submit(candidate(guest_parking, resident, day=date(2024, 6, 5)), as_actor(resident))


@pytest.mark.asyncio
async def test_zero_length_interval_writes_nothing(submit, candidate, guest_parking, resident, db_session):
    with pytest.raises(InvalidRequest):
        await submit(candidate(guest_parking, resident, "10:00", "10:00"), as_actor(resident))
    assert await count_reservations(db_session) == 0


@pytest.mark.asyncio
async def test_unknown_resource_is_invalid(submit, resident, db_session):
    ghost = ReservationCandidate(
        resource_id=9999,
        requester_id=resident.id,
        booking_date=date(2024, 6, 1),
        start_time=time(10),
        end_time=time(12),
    )
    with pytest.raises(InvalidRequest, match="does not exist"):
        await submit(ghost, as_actor(resident))
    assert await count_reservations(db_session) == 0


@pytest.mark.asyncio
async def test_inactive_resource_is_invalid(submit, candidate, closed_garden, resident, db_session):
    with pytest.raises(InvalidRequest, match="not accepting"):
        await submit(candidate(closed_garden, resident), as_actor(resident))
    assert await count_reservations(db_session) == 0


@pytest.mark.asyncio
async def test_inactive_requester_is_invalid(submit, candidate, guest_parking, admin, inactive_resident):
    with pytest.raises(InvalidRequest, match="unknown or inactive"):
        await submit(candidate(guest_parking, inactive_resident), as_actor(admin))


@pytest.mark.asyncio
async def test_resident_cannot_book_for_someone_else(submit, candidate, guest_parking, resident, neighbour):
    with pytest.raises(InvalidRequest, match="themselves"):
        await submit(candidate(guest_parking, neighbour), as_actor(resident))


@pytest.mark.asyncio
async def test_admin_booking_on_behalf_is_confirmed(submit, candidate, guest_parking, admin, resident):
    reservation = await submit(candidate(guest_parking, resident), as_actor(admin))

    assert reservation.user_id == resident.id
    assert reservation.status == "confirmed"


@pytest.mark.asyncio
async def test_auto_confirm_policy(submit, candidate, guest_parking, resident, settings):
    auto = settings.model_copy(update={"RESERVATION_AUTO_CONFIRM": True})
    reservation = await submit(candidate(guest_parking, resident), as_actor(resident), settings=auto)
    assert reservation.status == "confirmed"


@pytest.mark.asyncio
async def test_lost_race_is_retried_with_fresh_data(submit, candidate, guest_parking, resident):
    ledgers = []

    def flaky(session):
        ledger = LosingLedger(session, losses=1)
        ledgers.append(ledger)
        return ledger

    reservation = await submit(candidate(guest_parking, resident), as_actor(resident), ledger_factory=flaky)

    assert reservation.id is not None
    assert ledgers[0].claims == 2


@pytest.mark.asyncio
async def test_sustained_contention_is_a_storage_failure(submit, candidate, guest_parking, resident, db_session):
    with pytest.raises(StorageFailure) as exc_info:
        await submit(
            candidate(guest_parking, resident),
            as_actor(resident),
            ledger_factory=lambda session: LosingLedger(session, losses=100),
        )

    assert exc_info.value.retryable
    assert await count_reservations(db_session) == 0


@pytest.mark.asyncio
async def test_database_error_is_a_storage_failure(submit, candidate, guest_parking, resident, db_session):
    with pytest.raises(StorageFailure):
        await submit(candidate(guest_parking, resident), as_actor(resident), ledger_factory=BrokenLedger)
    assert await count_reservations(db_session) == 0


@pytest.mark.asyncio
async def test_cancelled_reservation_frees_the_slot(submit, candidate, guest_parking, resident, neighbour, db_session):
    first = await submit(candidate(guest_parking, resident), as_actor(resident))

    ledger = ReservationLedger(db_session)
    assert await ledger.transition(first.id, ["pending", "confirmed"], "cancelled")
    await db_session.commit()

    second = await submit(candidate(guest_parking, neighbour), as_actor(neighbour))
    assert second.id != first.id


@pytest.mark.asyncio
async def test_ungated_race_admits_exactly_one(submit, candidate, guest_parking, db_session, settings):
    """Without a gate the day-version check alone picks the winner."""
    residents = [
        User(email=f"ungated{i}@society.test", full_name=f"Ungated {i}", unit_number=f"G-{i}")
        for i in range(6)
    ]
    db_session.add_all(residents)
    await db_session.commit()
    ungated = {"gate": OptimisticAdmission(), "settings": settings.model_copy(update={"ADMISSION_MAX_RETRIES": 10})}

    results = await asyncio.gather(
        *(submit(candidate(guest_parking, r), as_actor(r), **ungated) for r in residents),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Reservation)]) == 1
    assert len([r for r in results if isinstance(r, SlotTaken)]) == 5
    assert await count_reservations(db_session) == 1


@pytest.mark.asyncio
async def test_ungated_same_day_requests_from_one_resident(
    submit, candidate, guest_parking, resident, db_session, settings
):
    ungated = {"gate": OptimisticAdmission(), "settings": settings.model_copy(update={"ADMISSION_MAX_RETRIES": 10})}

    results = await asyncio.gather(
        *(
            submit(candidate(guest_parking, resident, start, end), as_actor(resident), **ungated)
            for start, end in (("08:00", "09:00"), ("18:00", "19:00"))
        ),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Reservation)]
    rejected = [r for r in results if isinstance(r, SlotTaken)]
    assert len(admitted) == 1
    assert len(rejected) == 1
    assert rejected[0].reason == "user_daily_limit"
    assert await count_reservations(db_session) == 1


@pytest.mark.asyncio
async def test_ungated_neighbouring_days_respect_consecutive_limit(
    submit, candidate, guest_parking, resident, db_session, settings
):
    """Holding June 2, June 1 and June 3 requested at once: only one can join the run."""
    await submit(candidate(guest_parking, resident, day=date(2024, 6, 2)), as_actor(resident))
    ungated = {"gate": OptimisticAdmission(), "settings": settings.model_copy(update={"ADMISSION_MAX_RETRIES": 10})}

    results = await asyncio.gather(
        *(
            submit(candidate(guest_parking, resident, day=day), as_actor(resident), **ungated)
            for day in (date(2024, 6, 1), date(2024, 6, 3))
        ),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, Reservation)]) == 1
    assert len([r for r in results if isinstance(r, InvalidRequest)]) == 1
    assert len(await active_dates(db_session, resident)) == 2


@pytest.mark.asyncio
async def test_consecutive_limit_rechecked_after_concurrent_commit(
    submit, candidate, guest_parking, resident, neighbour, db_session
):
    """A same-resident booking on another day committed mid-check forces a retry that sees it."""
    # Existing rows for both counters, so the checked transaction only reads before its claim
    evening = candidate(guest_parking, neighbour, "20:00", "22:00", day=date(2024, 6, 1))
    await submit(evening, as_actor(neighbour))
    await submit(candidate(guest_parking, resident, day=date(2024, 6, 2)), as_actor(resident))

    async def book_june_3():
        return await submit(candidate(guest_parking, resident, day=date(2024, 6, 3)), as_actor(resident))

    ledgers = []

    def interleaved(session):
        ledger = InterleavingLedger(session, book_june_3)
        ledgers.append(ledger)
        return ledger

    with pytest.raises(InvalidRequest, match="consecutive"):
        await submit(
            candidate(guest_parking, resident, day=date(2024, 6, 1)), as_actor(resident), ledger_factory=interleaved
        )

    assert isinstance(ledgers[0].competitor_result, Reservation)
    assert await active_dates(db_session, resident) == [date(2024, 6, 2), date(2024, 6, 3)]
