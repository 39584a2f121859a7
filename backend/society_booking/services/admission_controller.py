"""
Admission controller: the only way a reservation enters the ledger.

CONCURRENCY STRATEGY: Versioned Resource Day + Partial Unique Index
===================================================================

Problem:
  Two residents request guest parking slot 1 for 10:00-12:00 at the same
  moment. Both read the ledger, both see no overlap, both insert.
  Result: double booking.

Solution:
  Every (resource, date) has a row in reservation_days with a version.

  1. Read the version (create the row on first use)
  2. Read the active reservations for that resource day and run the
     conflict checker against them
  3. UPDATE reservation_days SET version = version + 1
     WHERE resource_id = :r AND booking_date = :d AND version = :seen
  4. If rows_affected == 0 another admission committed on this day after
     our read -> roll back and retry from step 1 with fresh data
  5. Insert the reservation and commit

  Under READ COMMITTED the UPDATE in step 3 blocks on a concurrent writer's
  row lock and then re-evaluates the version predicate against the committed
  row, so exactly one of two racing transactions passes. This holds across
  any number of stateless workers because PostgreSQL arbitrates it.

  The consecutive-day rule reads the requester's bookings on other dates,
  which no single day row covers. For resources with that limit the
  transaction also compare-and-sets the (user, resource) row in
  reservation_user_versions, so two submissions from one resident for
  different dates cannot both pass the run check on the same snapshot.

  The one-booking-per-user-per-day rule is additionally backed by the
  partial unique index uq_reservations_user_resource_day; a violation there
  is translated to SlotTaken.

  The admission gate (local lock / Redis lock) in front of this loop only
  cuts down wasted retries for hot slots. It is not needed for correctness.

Failure paths roll back, so the ledger is untouched by any rejected request.
"""

import time
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.core.config import Settings
from society_booking.core.exceptions import InvalidRequest, SlotTaken, StorageFailure
from society_booking.core.logging import get_logger
from society_booking.core.metrics import admission_latency, ledger_retries, record_reservation_attempt
from society_booking.models.reservation import Reservation, ReservationStatus
from society_booking.services.catalog_service import ResourceCatalog
from society_booking.services.conflict_checker import (
    ReservationCandidate,
    ResourcePolicy,
    check_conflict,
    consecutive_day_run,
    validate_interval,
)
from society_booking.services.directory import Actor, UserDirectory
from society_booking.services.interfaces.admission import AdmissionStrategy
from society_booking.services.ledger import ReservationLedger

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Admissible:
    policy: ResourcePolicy
    initial_status: str


class _LostRace(Exception):
    """Another transaction committed on the same resource day first."""


class AdmissionController:
    def __init__(
        self,
        session: AsyncSession,
        catalog: ResourceCatalog,
        ledger: ReservationLedger,
        directory: UserDirectory,
        gate: AdmissionStrategy,
        settings: Settings,
    ):
        self.session = session
        self.catalog = catalog
        self.ledger = ledger
        self.directory = directory
        self.gate = gate
        self.settings = settings

    async def submit(self, candidate: ReservationCandidate, actor: Actor) -> Reservation:
        """
        Admit ``candidate`` or raise.

        Raises:
            InvalidRequest: bad interval, unknown/inactive resource or requester,
                consecutive-day limit exceeded. Nothing was written.
            SlotTaken: the slot conflicts with an active reservation.
            StorageFailure: database trouble or sustained contention; retryable.
        """
        try:
            admissible = await self._validate(candidate, actor)
        except InvalidRequest as e:
            record_reservation_attempt("invalid")
            logger.info(
                "reservation_invalid",
                resource_id=candidate.resource_id,
                requester_id=candidate.requester_id,
                reason=e.detail,
            )
            raise

        async with self.gate.guard(candidate.resource_id, candidate.booking_date):
            started = time.perf_counter()
            try:
                reservation = await self._admit(candidate, admissible)
            finally:
                admission_latency.observe(time.perf_counter() - started)

        record_reservation_attempt("admitted")
        logger.info(
            "reservation_admitted",
            reservation_id=reservation.id,
            resource_id=reservation.resource_id,
            requester_id=reservation.user_id,
            booking_date=str(reservation.booking_date),
            start_time=str(reservation.start_time),
            end_time=str(reservation.end_time),
            status=reservation.status,
        )
        return reservation

    async def _validate(self, candidate: ReservationCandidate, actor: Actor) -> _Admissible:
        """Every check that needs no write. Runs before the gate."""
        validate_interval(candidate.start_time, candidate.end_time)

        if candidate.requester_id != actor.user_id and not actor.is_admin:
            raise InvalidRequest("Residents can only book for themselves")

        try:
            resource = await self.catalog.find(candidate.resource_id)
            requester = await self.directory.get_active(candidate.requester_id)
        except SQLAlchemyError as e:
            raise self._storage_failure("validate", candidate, e) from e

        if resource is None:
            raise InvalidRequest(f"Resource {candidate.resource_id} does not exist")
        if not resource.is_active:
            raise InvalidRequest(f"Resource '{resource.name}' is not accepting reservations")
        if requester is None:
            raise InvalidRequest(f"Requester {candidate.requester_id} is unknown or inactive")

        return _Admissible(
            policy=ResourcePolicy.from_resource(resource),
            initial_status=self._initial_status(actor),
        )

    def _initial_status(self, actor: Actor) -> str:
        if self.settings.RESERVATION_AUTO_CONFIRM:
            return ReservationStatus.CONFIRMED.value
        if actor.is_admin and self.settings.ADMIN_RESERVATIONS_AUTO_CONFIRM:
            return ReservationStatus.CONFIRMED.value
        return ReservationStatus.PENDING.value

    async def _admit(self, candidate: ReservationCandidate, admissible: _Admissible) -> Reservation:
        max_attempts = self.settings.ADMISSION_MAX_RETRIES
        for attempt in range(1, max_attempts + 1):
            try:
                return await self._attempt(candidate, admissible)
            except _LostRace:
                await self.session.rollback()
                ledger_retries.inc()
                logger.info(
                    "admission_retry",
                    resource_id=candidate.resource_id,
                    booking_date=str(candidate.booking_date),
                    attempt=attempt,
                    reason="version_conflict",
                )
            except (SlotTaken, InvalidRequest):
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                raise self._storage_failure("admit", candidate, e) from e

        record_reservation_attempt("storage_failure")
        logger.warning(
            "admission_contention_exhausted",
            resource_id=candidate.resource_id,
            booking_date=str(candidate.booking_date),
            attempts=max_attempts,
        )
        raise StorageFailure("This slot is being booked by others right now, please retry")

    async def _attempt(self, candidate: ReservationCandidate, admissible: _Admissible) -> Reservation:
        policy = admissible.policy

        user_version = None
        try:
            seen_version = await self.ledger.day_version(candidate.resource_id, candidate.booking_date)
            if policy.max_consecutive_days:
                user_version = await self.ledger.user_version(candidate.requester_id, candidate.resource_id)
        except IntegrityError:
            # Concurrent first booking created the counter row
            raise _LostRace()

        rows = await self.ledger.active_for_day(candidate.resource_id, candidate.booking_date)
        result = check_conflict(candidate, policy, rows)
        if result:
            record_reservation_attempt("slot_taken")
            logger.info(
                "reservation_rejected_conflict",
                resource_id=candidate.resource_id,
                requester_id=candidate.requester_id,
                booking_date=str(candidate.booking_date),
                reason=result.reason.value,
                conflicting_reservation_id=result.conflicting_reservation_id,
            )
            raise SlotTaken(
                reason=result.reason.value,
                conflicting_reservation_id=result.conflicting_reservation_id,
            )

        if policy.max_consecutive_days:
            await self._check_consecutive_days(candidate, policy.max_consecutive_days)

        if not await self.ledger.claim_day(candidate.resource_id, candidate.booking_date, seen_version):
            raise _LostRace()
        if user_version is not None and not await self.ledger.claim_user(
            candidate.requester_id, candidate.resource_id, user_version
        ):
            raise _LostRace()

        reservation = Reservation(
            resource_id=candidate.resource_id,
            user_id=candidate.requester_id,
            booking_date=candidate.booking_date,
            start_time=candidate.start_time,
            end_time=candidate.end_time,
            status=admissible.initial_status,
            one_per_user_day=policy.single_booking_per_user_per_day,
        )
        try:
            await self.ledger.add(reservation)
            await self.session.commit()
        except IntegrityError as e:
            record_reservation_attempt("slot_taken")
            logger.info(
                "reservation_rejected_constraint",
                resource_id=candidate.resource_id,
                requester_id=candidate.requester_id,
                booking_date=str(candidate.booking_date),
                error=str(e.orig),
            )
            raise SlotTaken(reason="user_daily_limit") from e

        await self.session.refresh(reservation)
        return reservation

    async def _check_consecutive_days(self, candidate: ReservationCandidate, limit: int) -> None:
        booked = await self.ledger.active_dates_for_user(
            candidate.requester_id,
            candidate.resource_id,
            around=candidate.booking_date,
            window_days=limit,
        )
        run = consecutive_day_run(booked, candidate.booking_date)
        if run > limit:
            record_reservation_attempt("invalid")
            raise InvalidRequest(
                f"This resource can be booked for at most {limit} consecutive days; "
                f"this request would make {run}"
            )

    def _storage_failure(self, stage: str, candidate: ReservationCandidate, error: Exception) -> StorageFailure:
        record_reservation_attempt("storage_failure")
        logger.error(
            "storage_failure",
            stage=stage,
            resource_id=candidate.resource_id,
            booking_date=str(candidate.booking_date),
            error=str(error),
            exc_info=True,
        )
        return StorageFailure("The reservation ledger is temporarily unavailable, please retry")
