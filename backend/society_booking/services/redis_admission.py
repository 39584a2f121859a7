"""
Redis admission gate for multi-process deployments.
Implements AdmissionStrategy with a per-resource-day Redis lock.

Circuit Breaker Pattern:
  On Redis failure the gate "fails open" (admits the request).
  A Redis outage must not block all bookings, and the database
  compare-and-set on reservation_days still prevents double booking.

  Tradeoff: during an outage the system behaves like OptimisticAdmission,
  more transactions race and some retry. Acceptable because correctness
  never depended on Redis.
"""

import asyncio
import time
import uuid
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from society_booking.core.logging import get_logger
from society_booking.infrastructure.redis_client import get_redis
from society_booking.core.metrics import (
    record_gate_decision,
    redis_circuit_breaker_open,
    redis_connection_errors,
)
from society_booking.services.interfaces.admission import AdmissionStrategy

logger = get_logger(__name__)

# Only the holder of the token may delete the lock
RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

FAIL_OPEN_TOKEN = "fail-open"
POLL_INTERVAL = 0.02


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission gate.

    Strategy: SET key token NX PX ttl, polling until ``timeout``. The TTL
    bounds how long a crashed worker can hold a resource day.

    The client is looked up on every admission, so a Redis that was down
    at startup is picked up again once it is reachable.

    Use when:
    - Several API workers/processes serve bookings
    - Popular slots (guest parking on weekends) see bursts of requests
    """

    name = "redis"

    def __init__(
        self,
        timeout: float,
        ttl: float,
        client_factory: Callable[[], Awaitable[Optional[redis.Redis]]] = get_redis,
    ):
        self.client_factory = client_factory
        self.timeout = timeout
        self.ttl_ms = int(ttl * 1000)
        self.redis: Optional[redis.Redis] = None
        self.release_script = None

    async def _client(self) -> Optional[redis.Redis]:
        client = await self.client_factory()
        if client is not self.redis:
            self.redis = client
            self.release_script = client.register_script(RELEASE_SCRIPT) if client is not None else None
        return client

    async def admit(self, key: str) -> Optional[str]:
        client = await self._client()
        if client is None:
            return self._fail_open(key, "redis_unavailable")

        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.timeout
        try:
            while True:
                if await client.set(key, token, nx=True, px=self.ttl_ms):
                    redis_circuit_breaker_open.set(0)
                    return token
                if time.monotonic() >= deadline:
                    return None
                await asyncio.sleep(POLL_INTERVAL)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            return self._fail_open(key, str(e))

    async def release(self, key: str, token: str) -> None:
        if token == FAIL_OPEN_TOKEN or self.release_script is None:
            return
        try:
            await self.release_script(keys=[key], args=[token])
        except redis.RedisError as e:
            # The TTL expires the lock anyway
            redis_connection_errors.inc()
            logger.warning("admission_release_failed", key=key, error=str(e))

    def _fail_open(self, key: str, reason: str) -> str:
        redis_circuit_breaker_open.set(1)
        record_gate_decision(self.name, "fail_open")
        logger.warning("admission_gate_fail_open", key=key, reason=reason)
        return FAIL_OPEN_TOKEN
