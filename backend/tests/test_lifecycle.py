"""
Tests for reservation lifecycle transitions and their permissions.
"""

import pytest
import pytest_asyncio

from society_booking.core.exceptions import InvalidTransition, NotFound, PermissionDenied
from society_booking.services.directory import Actor
from society_booking.services.ledger import ReservationLedger
from society_booking.services.lifecycle_service import LifecycleManager


@pytest.fixture
def lifecycle(session_factory):
    """Run one lifecycle call in its own session."""

    async def _apply(action: str, reservation_id: int, actor: Actor, note=None):
        async with session_factory() as session:
            manager = LifecycleManager(session, ReservationLedger(session))
            return await getattr(manager, action)(reservation_id, actor, note)

    return _apply


@pytest.fixture
def resident_actor(resident) -> Actor:
    return Actor(user_id=resident.id, is_admin=False)


@pytest.fixture
def neighbour_actor(neighbour) -> Actor:
    return Actor(user_id=neighbour.id, is_admin=False)


@pytest.fixture
def admin_actor(admin) -> Actor:
    return Actor(user_id=admin.id, is_admin=True)


@pytest_asyncio.fixture
async def pending(submit, candidate, guest_parking, resident, resident_actor):
    return await submit(candidate(guest_parking, resident), resident_actor)


@pytest.mark.asyncio
async def test_admin_confirms_pending(lifecycle, pending, admin_actor):
    confirmed = await lifecycle("confirm", pending.id, admin_actor, "Approved by committee")

    assert confirmed.status == "confirmed"
    assert confirmed.admin_note == "Approved by committee"


@pytest.mark.asyncio
async def test_confirming_twice_is_invalid(lifecycle, pending, admin_actor):
    await lifecycle("confirm", pending.id, admin_actor)

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle("confirm", pending.id, admin_actor)
    assert exc_info.value.context["current_status"] == "confirmed"


@pytest.mark.asyncio
async def test_admin_rejects_pending(lifecycle, pending, admin_actor):
    rejected = await lifecycle("reject", pending.id, admin_actor, "Slot reserved for maintenance")
    assert rejected.status == "rejected"


@pytest.mark.asyncio
async def test_rejected_reservation_cannot_be_cancelled(lifecycle, pending, admin_actor, resident_actor):
    await lifecycle("reject", pending.id, admin_actor)

    with pytest.raises(InvalidTransition):
        await lifecycle("cancel", pending.id, resident_actor)


@pytest.mark.asyncio
async def test_confirmed_reservation_cannot_be_rejected(lifecycle, pending, admin_actor):
    await lifecycle("confirm", pending.id, admin_actor)

    with pytest.raises(InvalidTransition):
        await lifecycle("reject", pending.id, admin_actor)


@pytest.mark.asyncio
async def test_owner_cancels_pending_and_confirmed(lifecycle, submit, candidate, hall, resident, resident_actor, admin_actor):
    first = await submit(candidate(hall, resident, "08:00", "09:00"), resident_actor)
    second = await submit(candidate(hall, resident, "10:00", "11:00"), resident_actor)
    await lifecycle("confirm", second.id, admin_actor)

    assert (await lifecycle("cancel", first.id, resident_actor)).status == "cancelled"
    assert (await lifecycle("cancel", second.id, resident_actor)).status == "cancelled"


@pytest.mark.asyncio
async def test_cancelling_twice_is_invalid(lifecycle, pending, resident_actor):
    await lifecycle("cancel", pending.id, resident_actor)

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle("cancel", pending.id, resident_actor)
    assert exc_info.value.context["current_status"] == "cancelled"


@pytest.mark.asyncio
async def test_resident_note_is_not_stored_as_admin_note(lifecycle, pending, resident_actor):
    cancelled = await lifecycle("cancel", pending.id, resident_actor, "Guest is not coming")
    assert cancelled.admin_note is None


@pytest.mark.asyncio
async def test_resident_cannot_confirm(lifecycle, pending, resident_actor):
    with pytest.raises(PermissionDenied):
        await lifecycle("confirm", pending.id, resident_actor)


@pytest.mark.asyncio
async def test_resident_cannot_cancel_someone_elses_reservation(lifecycle, pending, neighbour_actor):
    with pytest.raises(PermissionDenied):
        await lifecycle("cancel", pending.id, neighbour_actor)


@pytest.mark.asyncio
async def test_admin_can_cancel_any_reservation(lifecycle, pending, admin_actor):
    cancelled = await lifecycle("cancel", pending.id, admin_actor, "Visitor parking closed for painting")
    assert cancelled.status == "cancelled"
    assert cancelled.admin_note == "Visitor parking closed for painting"


@pytest.mark.asyncio
async def test_missing_reservation_is_not_found_before_permission(lifecycle, resident_actor):
    with pytest.raises(NotFound):
        await lifecycle("confirm", 424242, resident_actor)


@pytest.mark.asyncio
async def test_rejection_frees_the_slot(lifecycle, submit, candidate, guest_parking, pending, neighbour, neighbour_actor, admin_actor):
    await lifecycle("reject", pending.id, admin_actor)

    replacement = await submit(candidate(guest_parking, neighbour), neighbour_actor)
    assert replacement.status == "pending"
