"""
Admission gate strategy interface.
Allows swapping between different ways of serializing submissions per resource day.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Optional

from society_booking.core.exceptions import StorageFailure
from society_booking.core.logging import get_logger
from society_booking.core.metrics import record_gate_decision

logger = get_logger(__name__)


def slot_key(resource_id: int, booking_date: date) -> str:
    return f"admission:{resource_id}:{booking_date.isoformat()}"


class AdmissionStrategy(ABC):
    """
    Interface for admission gates.

    A gate only reduces contention before the database transaction. The
    reservation_days compare-and-set is what keeps the ledger correct, so a
    gate may admit too much (fail open) but must never be relied on alone.

    Implementations:
    - OptimisticAdmission: no gate, every submission goes straight to the DB
    - LocalLockAdmission: asyncio lock per resource day, single process
    - RedisAdmission: Redis lock per resource day, shared by all processes
    """

    name = "abstract"

    @abstractmethod
    async def admit(self, key: str) -> Optional[str]:
        """
        Wait for the gate on ``key``.

        Returns:
            A release token if admitted, None if the wait timed out.
        """

    @abstractmethod
    async def release(self, key: str, token: str) -> None:
        """Release a gate previously obtained with ``admit``."""

    async def close(self) -> None:
        """Drop any held resources on shutdown."""

    @asynccontextmanager
    async def guard(self, resource_id: int, booking_date: date) -> AsyncIterator[None]:
        key = slot_key(resource_id, booking_date)
        token = await self.admit(key)
        if token is None:
            record_gate_decision(self.name, "timeout")
            logger.warning("admission_gate_timeout", strategy=self.name, key=key)
            raise StorageFailure("Too many simultaneous requests for this slot, please retry")
        record_gate_decision(self.name, "admitted")
        try:
            yield
        finally:
            await self.release(key, token)
