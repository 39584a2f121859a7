"""
Booking report for the society administrators' dashboard.
"""

from society_booking.core.exceptions import PermissionDenied
from society_booking.models.reservation import ReservationStatus
from society_booking.schemas.reservation import (
    MonthlyCount,
    ReservationReport,
    ReservationResponse,
    ResourceUsage,
)
from society_booking.services.directory import Actor
from society_booking.services.ledger import ReservationLedger


async def build_report(ledger: ReservationLedger, actor: Actor) -> ReservationReport:
    """Totals by status, most booked resources, monthly volume, latest activity."""
    if not actor.is_admin:
        raise PermissionDenied("Only administrators can view booking reports")

    counts = await ledger.status_counts()
    by_status = {status.value: counts.get(status.value, 0) for status in ReservationStatus}

    popular = [
        ResourceUsage(resource_id=resource_id, resource_name=name, reservation_count=count)
        for resource_id, name, count in await ledger.popular_resources(limit=5)
    ]
    by_month = [
        MonthlyCount(month=f"{year:04d}-{month:02d}", count=count)
        for year, month, count in await ledger.monthly_counts()
    ]
    recent = [ReservationResponse.model_validate(r) for r in await ledger.recent(limit=10)]

    return ReservationReport(
        total=sum(by_status.values()),
        by_status=by_status,
        popular_resources=popular,
        by_month=by_month,
        recent=recent,
    )
