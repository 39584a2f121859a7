"""
Admission strategy factory.
Builds the gate selected by ADMISSION_STRATEGY; the app keeps the instance
on ``app.state`` and hands it to the admission controller per request.
"""

from society_booking.core.config import Settings
from society_booking.services.interfaces.admission import AdmissionStrategy
from society_booking.services.interfaces.local_admission import LocalLockAdmission
from society_booking.services.interfaces.optimistic_admission import OptimisticAdmission
from society_booking.services.redis_admission import RedisAdmission


async def build_admission_strategy(settings: Settings) -> AdmissionStrategy:
    """
    Strategy selection:
    - local (default): single-process deployments and tests
    - redis: several workers behind a load balancer
    - optimistic: no gate, database arbitration only
    """
    strategy = settings.ADMISSION_STRATEGY

    if strategy == "redis":
        return RedisAdmission(
            timeout=settings.ADMISSION_LOCK_TIMEOUT_SECONDS,
            ttl=settings.ADMISSION_LOCK_TTL_SECONDS,
        )
    if strategy == "optimistic":
        return OptimisticAdmission()
    return LocalLockAdmission(timeout=settings.ADMISSION_LOCK_TIMEOUT_SECONDS)
