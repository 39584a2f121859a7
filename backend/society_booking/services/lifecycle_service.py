"""
Reservation lifecycle: confirm, reject, cancel.

    pending   --confirm--> confirmed
    pending   --reject-->  rejected
    pending   --cancel-->  cancelled
    confirmed --cancel-->  cancelled

Rejected and cancelled are terminal. Cancelling an already cancelled
reservation is an InvalidTransition, not a silent no-op.

Transitions never re-run conflict checks: the slot is already held. Moving
to a terminal state frees it implicitly because the conflict checker only
counts pending/confirmed rows.

The status change is a conditional UPDATE on the expected source states, so
an admin confirming while the resident cancels cannot both win.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.core.exceptions import InvalidTransition, NotFound, PermissionDenied, StorageFailure
from society_booking.core.logging import get_logger
from society_booking.core.metrics import record_transition
from society_booking.models.reservation import Reservation, ReservationStatus
from society_booking.services.directory import Actor
from society_booking.services.ledger import ReservationLedger

logger = get_logger(__name__)

PENDING = ReservationStatus.PENDING.value
CONFIRMED = ReservationStatus.CONFIRMED.value


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset
    target: str
    admin_only: bool


CONFIRM = Transition("confirm", frozenset({PENDING}), CONFIRMED, admin_only=True)
REJECT = Transition("reject", frozenset({PENDING}), ReservationStatus.REJECTED.value, admin_only=True)
CANCEL = Transition("cancel", frozenset({PENDING, CONFIRMED}), ReservationStatus.CANCELLED.value, admin_only=False)

TRANSITIONS = {t.action: t for t in (CONFIRM, REJECT, CANCEL)}


class LifecycleManager:
    def __init__(self, session: AsyncSession, ledger: ReservationLedger):
        self.session = session
        self.ledger = ledger

    async def confirm(self, reservation_id: int, actor: Actor, note: Optional[str] = None) -> Reservation:
        return await self.apply(CONFIRM, reservation_id, actor, note)

    async def reject(self, reservation_id: int, actor: Actor, reason: Optional[str] = None) -> Reservation:
        return await self.apply(REJECT, reservation_id, actor, reason)

    async def cancel(self, reservation_id: int, actor: Actor, reason: Optional[str] = None) -> Reservation:
        return await self.apply(CANCEL, reservation_id, actor, reason)

    async def apply(
        self,
        transition: Transition,
        reservation_id: int,
        actor: Actor,
        note: Optional[str] = None,
    ) -> Reservation:
        try:
            reservation = await self.ledger.get(reservation_id)
        except SQLAlchemyError as e:
            raise self._storage_failure(transition, reservation_id, e) from e

        if reservation is None:
            record_transition(transition.action, "not_found")
            raise NotFound(f"Reservation {reservation_id} not found")

        owner_id = reservation.user_id
        current = reservation.status

        if transition.admin_only and not actor.is_admin:
            record_transition(transition.action, "denied")
            logger.warning("transition_denied", reservation_id=reservation_id, action=transition.action, by=actor.user_id)
            raise PermissionDenied(f"Only administrators can {transition.action} reservations")
        if not actor.is_admin and owner_id != actor.user_id:
            record_transition(transition.action, "denied")
            logger.warning("transition_denied", reservation_id=reservation_id, action=transition.action, by=actor.user_id)
            raise PermissionDenied("You can only cancel your own reservations")

        if current not in transition.sources:
            raise self._invalid(transition, reservation_id, current)

        # Residents cancelling their own booking do not get to write admin notes
        admin_note = note if actor.is_admin else None
        try:
            applied = await self.ledger.transition(reservation_id, transition.sources, transition.target, admin_note)
            if not applied:
                await self.session.rollback()
                latest = await self.ledger.get(reservation_id)
                raise self._invalid(transition, reservation_id, latest.status if latest else None)
            await self.session.commit()
            await self.session.refresh(reservation)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._storage_failure(transition, reservation_id, e) from e

        record_transition(transition.action, "applied")
        logger.info(
            "reservation_transitioned",
            reservation_id=reservation_id,
            action=transition.action,
            from_status=current,
            to_status=reservation.status,
            by=actor.user_id,
            by_admin=actor.is_admin,
        )
        return reservation

    def _invalid(self, transition: Transition, reservation_id: int, current: Optional[str]) -> InvalidTransition:
        record_transition(transition.action, "invalid")
        logger.info(
            "transition_invalid",
            reservation_id=reservation_id,
            action=transition.action,
            current_status=current,
        )
        return InvalidTransition(
            f"Cannot {transition.action} a reservation that is {current}",
            current_status=current,
        )

    def _storage_failure(self, transition: Transition, reservation_id: int, error: Exception) -> StorageFailure:
        logger.error(
            "storage_failure",
            stage=transition.action,
            reservation_id=reservation_id,
            error=str(error),
            exc_info=True,
        )
        return StorageFailure("The reservation ledger is temporarily unavailable, please retry")
