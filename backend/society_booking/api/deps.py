"""
Dependency wiring for the booking core.

Each request gets its own catalog/ledger/controller objects bound to the
request's session; the admission gate is shared and lives on app.state.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.core.config import Settings, get_settings
from society_booking.db.session import get_db
from society_booking.services.admission_controller import AdmissionController
from society_booking.services.availability_service import AvailabilityService
from society_booking.services.catalog_service import ResourceCatalog
from society_booking.services.conflict_checker import ConflictChecker
from society_booking.services.directory import UserDirectory
from society_booking.services.interfaces.admission import AdmissionStrategy
from society_booking.services.lifecycle_service import LifecycleManager
from society_booking.services.ledger import ReservationLedger


def get_admission_strategy(request: Request) -> AdmissionStrategy:
    return request.app.state.admission_strategy


def get_catalog(db: AsyncSession = Depends(get_db)) -> ResourceCatalog:
    return ResourceCatalog(db)


def get_ledger(db: AsyncSession = Depends(get_db)) -> ReservationLedger:
    return ReservationLedger(db)


def get_conflict_checker(
    catalog: ResourceCatalog = Depends(get_catalog),
    ledger: ReservationLedger = Depends(get_ledger),
) -> ConflictChecker:
    return ConflictChecker(catalog, ledger)


def get_availability_service(
    catalog: ResourceCatalog = Depends(get_catalog),
    ledger: ReservationLedger = Depends(get_ledger),
) -> AvailabilityService:
    return AvailabilityService(catalog, ledger)


def get_admission_controller(
    db: AsyncSession = Depends(get_db),
    catalog: ResourceCatalog = Depends(get_catalog),
    ledger: ReservationLedger = Depends(get_ledger),
    gate: AdmissionStrategy = Depends(get_admission_strategy),
    settings: Settings = Depends(get_settings),
) -> AdmissionController:
    return AdmissionController(db, catalog, ledger, UserDirectory(db), gate, settings)


def get_lifecycle_manager(
    db: AsyncSession = Depends(get_db),
    ledger: ReservationLedger = Depends(get_ledger),
) -> LifecycleManager:
    return LifecycleManager(db, ledger)
