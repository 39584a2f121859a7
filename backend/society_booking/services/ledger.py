"""
Reservation ledger: the only component that reads and writes reservation rows.

All writes happen inside transactions owned by the admission controller or
the lifecycle manager; the ledger itself never commits.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import extract, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.models.reservation import (
    ACTIVE_STATUSES,
    Reservation,
    ReservationDay,
    UserResourceVersion,
)
from society_booking.models.resource import Resource


class ReservationLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    # -- reads -------------------------------------------------------------

    async def get(self, reservation_id: int) -> Optional[Reservation]:
        result = await self.session.execute(
            select(Reservation).where(Reservation.id == reservation_id)
        )
        return result.scalar_one_or_none()

    async def active_for_day(self, resource_id: int, booking_date: date) -> list[Reservation]:
        """Active rows for one resource day. Uses ix_reservations_resource_day."""
        result = await self.session.execute(
            select(Reservation)
            .where(
                Reservation.resource_id == resource_id,
                Reservation.booking_date == booking_date,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Reservation.start_time, Reservation.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def active_dates_for_user(
        self,
        user_id: int,
        resource_id: int,
        around: date,
        window_days: int,
    ) -> list[date]:
        result = await self.session.execute(
            select(Reservation.booking_date)
            .where(
                Reservation.user_id == user_id,
                Reservation.resource_id == resource_id,
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.booking_date >= around - timedelta(days=window_days),
                Reservation.booking_date <= around + timedelta(days=window_days),
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def search(
        self,
        user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        booking_date: Optional[date] = None,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Reservation]:
        query = select(Reservation)
        if user_id is not None:
            query = query.where(Reservation.user_id == user_id)
        if resource_id is not None:
            query = query.where(Reservation.resource_id == resource_id)
        if booking_date is not None:
            query = query.where(Reservation.booking_date == booking_date)
        if statuses:
            query = query.where(Reservation.status.in_(list(statuses)))
        query = (
            query.order_by(Reservation.booking_date.desc(), Reservation.start_time.desc(), Reservation.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # -- ledger-day versioning ---------------------------------------------

    async def day_version(self, resource_id: int, booking_date: date) -> int:
        """
        Current version of the (resource, date) counter, creating it on first use.
        Two first-time writers race on uq_reservation_day; the loser gets an
        IntegrityError and is expected to roll back and retry.
        """
        result = await self.session.execute(
            select(ReservationDay.version).where(
                ReservationDay.resource_id == resource_id,
                ReservationDay.booking_date == booking_date,
            )
        )
        version = result.scalar_one_or_none()
        if version is not None:
            return version

        self.session.add(ReservationDay(resource_id=resource_id, booking_date=booking_date, version=1))
        await self.session.flush()
        return 1

    async def claim_day(self, resource_id: int, booking_date: date, seen_version: int) -> bool:
        """
        Compare-and-set the day counter. False means another transaction
        committed a change to this resource day after we read it.
        """
        result = await self.session.execute(
            update(ReservationDay)
            .where(
                ReservationDay.resource_id == resource_id,
                ReservationDay.booking_date == booking_date,
                ReservationDay.version == seen_version,
            )
            .values(version=ReservationDay.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def user_version(self, user_id: int, resource_id: int) -> int:
        """Per (user, resource) counter guarding rules that span several dates."""
        result = await self.session.execute(
            select(UserResourceVersion.version).where(
                UserResourceVersion.user_id == user_id,
                UserResourceVersion.resource_id == resource_id,
            )
        )
        version = result.scalar_one_or_none()
        if version is not None:
            return version

        self.session.add(UserResourceVersion(user_id=user_id, resource_id=resource_id, version=1))
        await self.session.flush()
        return 1

    async def claim_user(self, user_id: int, resource_id: int, seen_version: int) -> bool:
        result = await self.session.execute(
            update(UserResourceVersion)
            .where(
                UserResourceVersion.user_id == user_id,
                UserResourceVersion.resource_id == resource_id,
                UserResourceVersion.version == seen_version,
            )
            .values(version=UserResourceVersion.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -- writes) ------------------------------------------------------------

    async def add(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def transition(
        self,
        reservation_id: int,
        sources: Iterable[str],
        target: str,
        admin_note: Optional[str] = None,
    ) -> bool:
        """Conditional status change; False when the row left ``sources`` first."""
        values = {"status": target, "updated_at": func.now()}
        if admin_note is not None:
            values["admin_note"] = admin_note
        result = await self.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status.in_(list(sources)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -- reporting ---------------------------------------------------------

    async def status_counts(self) -> dict[str, int]:
        result = await self.session.execute(
            select(Reservation.status, func.count(Reservation.id)).group_by(Reservation.status)
        )
        return {status: count for status, count in result.all()}

    async def popular_resources(self, limit: int = 5) -> list[tuple[int, str, int]]:
        booked = func.count(Reservation.id).label("booked")
        result = await self.session.execute(
            select(Resource.id, Resource.name, booked)
            .join(Reservation, Reservation.resource_id == Resource.id)
            .where(Reservation.status.in_(ACTIVE_STATUSES))
            .group_by(Resource.id, Resource.name)
            .order_by(booked.desc(), Resource.id)
            .limit(limit)
        )
        return [tuple(row) for row in result.all()]

    async def monthly_counts(self) -> list[tuple[int, int, int]]:
        year = extract("year", Reservation.booking_date).label("year")
        month = extract("month", Reservation.booking_date).label("month")
        result = await self.session.execute(
            select(year, month, func.count(Reservation.id))
            .group_by(year, month)
            .order_by(year, month)
        )
        return [(int(y), int(m), count) for y, m, count in result.all()]

    async def recent(self, limit: int = 10) -> list[Reservation]:
        result = await self.session.execute(
            select(Reservation).order_by(Reservation.created_at.desc(), Reservation.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
