"""
Reservation endpoints: admission, diagnostics, lifecycle transitions, reports.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from society_booking.api.deps import (
    get_admission_controller,
    get_conflict_checker,
    get_ledger,
    get_lifecycle_manager,
)
from society_booking.core.exceptions import NotFound
from society_booking.core.logging import get_logger
from society_booking.core.security import get_current_actor
from society_booking.models.reservation import ReservationStatus
from society_booking.schemas.reservation import (
    ConflictCheckResponse,
    ReservationCreate,
    ReservationReport,
    ReservationResponse,
    ReservationTransition,
)
from society_booking.services.admission_controller import AdmissionController
from society_booking.services.conflict_checker import ConflictChecker, ReservationCandidate
from society_booking.services.directory import Actor
from society_booking.services.ledger import ReservationLedger
from society_booking.services.lifecycle_service import TRANSITIONS, LifecycleManager
from society_booking.services.report_service import build_report

logger = get_logger(__name__)
router = APIRouter(prefix="/reservations", tags=["Reservations"])


def _candidate(data: ReservationCreate, actor: Actor) -> ReservationCandidate:
    return ReservationCandidate.from_request(data, requester_id=data.requester_id or actor.user_id)


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    actor: Actor = Depends(get_current_actor),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """
    Reserve a resource for a time range on a date.

    Returns 201 with the reservation (pending or confirmed depending on policy),
    400 for an invalid request, 409 `slot_taken` when the slot is held.
    Concurrent requests for the same slot: exactly one succeeds.
    """
    return await controller.submit(_candidate(data, actor), actor)


@router.post("/check", response_model=ConflictCheckResponse)
async def check_reservation(
    data: ReservationCreate,
    actor: Actor = Depends(get_current_actor),
    checker: ConflictChecker = Depends(get_conflict_checker),
):
    """Dry run of the conflict check. Writes nothing and holds nothing."""
    result = await checker.check(_candidate(data, actor))
    return ConflictCheckResponse(
        conflict=result.conflict,
        reason=result.reason.value if result.reason else None,
        conflicting_reservation_id=result.conflicting_reservation_id,
    )


@router.get("/", response_model=list[ReservationResponse])
async def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    resource_id: Optional[int] = Query(None, gt=0),
    booking_date: Optional[date] = Query(None, alias="date"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    """Residents see their own reservations; administrators see everyone's."""
    return await ledger.search(
        user_id=None if actor.is_admin else actor.user_id,
        resource_id=resource_id,
        booking_date=booking_date,
        statuses=[status_filter.value] if status_filter else None,
        limit=limit,
        offset=offset,
    )


@router.get("/report", response_model=ReservationReport)
async def reservation_report(
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    return await build_report(ledger, actor)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    ledger: ReservationLedger = Depends(get_ledger),
):
    reservation = await ledger.get(reservation_id)
    # Other residents' reservations are reported as missing
    if reservation is None or (not actor.is_admin and reservation.user_id != actor.user_id):
        raise NotFound(f"Reservation {reservation_id} not found")
    return reservation


@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def transition_reservation(
    reservation_id: int,
    data: ReservationTransition,
    actor: Actor = Depends(get_current_actor),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Apply a lifecycle action: confirm / reject (administrators) or cancel
    (requester or administrator). 409 `invalid_transition` when the
    reservation is not in a state the action applies to.
    """
    transition = TRANSITIONS[data.action.value]
    return await lifecycle.apply(transition, reservation_id, actor, data.reason)
