"""
In-process admission gate: one asyncio.Lock per resource day.
"""

import asyncio
from typing import Optional

from society_booking.services.interfaces.admission import AdmissionStrategy


class LocalLockAdmission(AdmissionStrategy):
    """
    Serializes submissions for the same resource day inside one event loop.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the table stays proportional to in-flight requests.

    Does not coordinate across processes; multi-worker deployments should use
    RedisAdmission (the database still rejects the loser either way).
    """

    name = "local"

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    async def admit(self, key: str) -> Optional[str]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._forget(key)
            return None
        except asyncio.CancelledError:
            self._forget(key)
            raise
        return key

    async def release(self, key: str, token: str) -> None:
        self._locks[key].release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @property
    def tracked_keys(self) -> int:
        return len(self._locks)
