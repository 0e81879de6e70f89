"""Redis-backed token bucket shared by every worker that talks to one API quota."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# All bucket arithmetic uses the Redis server clock so that workers on hosts
# with skewed clocks still agree on refills and lease expiry.
SERVER_NOW = """
local server_time = redis.call('time')
local now = tonumber(server_time[1]) * 1000 + math.floor(tonumber(server_time[2]) / 1000)
"""

# KEYS: bucket hash
# ARGV: initial reservoir
SEED_SCRIPT = SERVER_NOW + """
redis.call('hsetnx', KEYS[1], 'reservoir', ARGV[1])
redis.call('hsetnx', KEYS[1], 'last_refill', now)
return now
"""

# KEYS: bucket hash, lease sorted set
# ARGV: lease_id, lease_ms, increase_amount, increase_interval_ms,
#       increase_maximum, max_concurrent (0 = unbounded)
# Returns {1, reservoir_left} when granted, {0, wait_ms} when denied,
# {-1, 0} when the bucket has not been initialised.
ACQUIRE_SCRIPT = SERVER_NOW + """
local bucket_key = KEYS[1]
local leases_key = KEYS[2]
local lease_id = ARGV[1]
local lease_ms = tonumber(ARGV[2])
local increase_amount = tonumber(ARGV[3])
local increase_interval = tonumber(ARGV[4])
local increase_maximum = tonumber(ARGV[5])
local max_concurrent = tonumber(ARGV[6])

local state = redis.call('hmget', bucket_key, 'reservoir', 'last_refill')
local reservoir = tonumber(state[1])
local last_refill = tonumber(state[2])
if reservoir == nil or last_refill == nil then
  return {-1, 0}
end

redis.call('zremrangebyscore', leases_key, '-inf', now)

if increase_amount > 0 and increase_interval > 0 then
  local intervals = math.floor((now - last_refill) / increase_interval)
  if intervals > 0 then
    if reservoir < increase_maximum then
      reservoir = math.min(increase_maximum, reservoir + intervals * increase_amount)
    end
    last_refill = last_refill + intervals * increase_interval
  end
end

local running = redis.call('zcard', leases_key)
if reservoir < 1 or (max_concurrent > 0 and running >= max_concurrent) then
  redis.call('hset', bucket_key, 'reservoir', reservoir, 'last_refill', last_refill)
  local wait = 0
  if reservoir < 1 and increase_amount > 0 and increase_interval > 0 then
    wait = last_refill + increase_interval - now
  elseif reservoir >= 1 then
    local oldest = redis.call('zrange', leases_key, 0, 0, 'withscores')
    if oldest[2] then
      wait = tonumber(oldest[2]) - now
    end
  end
  return {0, wait}
end

reservoir = reservoir - 1
redis.call('hset', bucket_key, 'reservoir', reservoir, 'last_refill', last_refill)
redis.call('zadd', leases_key, now + lease_ms, lease_id)
return {1, reservoir}
"""


class ThrottleTimeoutError(RuntimeError):
    """No permit was issued before the caller's deadline."""


class ThrottleClosedError(RuntimeError):
    """The throttle was closed while a caller waited for a permit."""


@dataclass(slots=True, frozen=True)
class Permit:
    id: str
    lease_ms: int


class DistributedThrottle:
    """Token bucket whose state lives in Redis.

    The reservoir starts at ``reservoir`` tokens, gains ``increase_amount``
    every ``increase_interval`` seconds up to ``increase_maximum``, and loses
    one token per issued permit. Each permit is also a lease that holds a
    concurrency slot (when ``max_concurrent`` is set) until it is released or
    expires, so a worker that dies mid-call cannot pin the bucket.

    Refills and lease expiry follow the Redis server clock. ``clock`` is only
    used to compare against ``deadline``, which is local to this worker.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        bucket_id: str = "storefront-admin-api",
        reservoir: int = 40,
        increase_amount: int = 2,
        increase_interval: float = 1.0,
        increase_maximum: int = 40,
        max_concurrent: int | None = None,
        lease_seconds: float = 30.0,
        deadline: float | None = None,
        poll_interval: float = 0.25,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self.bucket_id = bucket_id
        self.reservoir = reservoir
        self.increase_amount = increase_amount
        self.increase_interval = increase_interval
        self.increase_maximum = increase_maximum
        self.max_concurrent = max_concurrent
        self.lease_seconds = lease_seconds
        self.deadline = deadline
        self.poll_interval = poll_interval
        self._clock = clock
        self._bucket_key = f"shelfsync:throttle:{bucket_id}:bucket"
        self._leases_key = f"shelfsync:throttle:{bucket_id}:leases"
        self._seed = redis.register_script(SEED_SCRIPT)
        self._acquire = redis.register_script(ACQUIRE_SCRIPT)
        self._held: dict[str, Permit] = {}
        self._closed = asyncio.Event()

    async def ready(self) -> None:
        """Seed the shared bucket unless another worker already has."""
        await self._seed(keys=[self._bucket_key], args=[self.reservoir])
        logger.debug("Throttle %s ready", self.bucket_id)

    async def tokens(self) -> int:
        value = await self._redis.hget(self._bucket_key, "reservoir")
        return int(float(value)) if value is not None else 0

    def _remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - self._clock()

    async def acquire(self) -> Permit:
        while True:
            if self._closed.is_set():
                raise ThrottleClosedError(f"Throttle {self.bucket_id} is closed")
            remaining = self._remaining()
            if remaining is not None and remaining <= 0:
                raise ThrottleTimeoutError(f"No permit from {self.bucket_id} before the deadline")

            # A lease never outlives the worker's deadline.
            lease_seconds = self.lease_seconds if remaining is None else min(self.lease_seconds, remaining)
            permit = Permit(id=uuid.uuid4().hex, lease_ms=max(int(lease_seconds * 1000), 1))
            status, value = await self._acquire(
                keys=[self._bucket_key, self._leases_key],
                args=[
                    permit.id,
                    permit.lease_ms,
                    self.increase_amount,
                    int(self.increase_interval * 1000),
                    self.increase_maximum,
                    self.max_concurrent or 0,
                ],
            )
            status, value = int(status), int(value)
            if status == 1:
                self._held[permit.id] = permit
                return permit
            if status == -1:
                logger.warning("Throttle %s bucket missing; reseeding", self.bucket_id)
                await self.ready()
                continue

            delay = self.poll_interval
            if value > 0:
                delay = min(delay, value / 1000)
            if remaining is not None:
                delay = min(delay, remaining)
            await self._wait(max(delay, 0.001))

    async def _wait(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return

    async def release(self, permit: Permit) -> None:
        self._held.pop(permit.id, None)
        await self._redis.zrem(self._leases_key, permit.id)

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[Permit]:
        permit = await self.acquire()
        try:
            yield permit
        finally:
            await self.release(permit)

    async def close(self) -> None:
        """Wake pending waiters and drop every lease this instance still holds."""
        self._closed.set()
        if self._held:
            logger.info("Throttle %s dropping %s held permits", self.bucket_id, len(self._held))
            await self._redis.zrem(self._leases_key, *self._held)
            self._held.clear()
