"""
Optimistic admission strategy - no gate.
Relies entirely on the reservation_days compare-and-set.
"""

from typing import Optional

from society_booking.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    Always admit. Concurrent submissions race inside the database and the
    losers retry or observe SlotTaken.

    Use when:
    - Contention per resource day is low
    - Several stateless workers share one database and no Redis is available
    """

    name = "optimistic"

    async def admit(self, key: str) -> Optional[str]:
        return key

    async def release(self, key: str, token: str) -> None:
        pass
