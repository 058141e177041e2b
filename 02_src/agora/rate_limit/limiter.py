"""Token-bucket rate limiter."""

import asyncio
import math
import time
from typing import Callable, Protocol

from ..concurrency import ShardedMap
from ..errors import RateLimited
from ..logging_config import get_logger
from ..models import Bucket, RateLimitPolicy, RateLimitResult

logger = get_logger(__name__)

# Absorbs float drift so a bucket refilled for exactly retry_after seconds grants.
EPSILON = 1e-9

Clock = Callable[[], float]


class IRateLimiter(Protocol):
    """Admission control keyed by arbitrary strings."""

    def allow(
        self, key: str, capacity: float, refill_rate: float, cost: float = 1
    ) -> RateLimitResult:
        """Refill lazily, then try to debit ``cost`` tokens."""
        ...

    def admit(self, address: str, credential_key: str) -> RateLimitResult:
        """Check the address policy, then the credential policy."""
        ...


class RateLimiter:
    """In-process token buckets with two named policies.

    ``address`` is the coarse anti-abuse policy keyed by client network
    address; ``credential`` is the finer policy keyed by API key. Bucket
    state lives in a sharded map so refill-and-debit is atomic per key.
    """

    def __init__(
        self,
        address_policy: RateLimitPolicy,
        credential_policy: RateLimitPolicy,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ):
        self.address_policy = address_policy
        self.credential_policy = credential_policy
        self._clock = clock
        self._wall_clock = wall_clock
        self._buckets: ShardedMap[Bucket] = ShardedMap()

    def allow(
        self, key: str, capacity: float, refill_rate: float, cost: float = 1
    ) -> RateLimitResult:
        """Refill lazily, then try to debit ``cost`` tokens."""
        if capacity <= 0 or refill_rate <= 0:
            raise ValueError("capacity and refill_rate must be positive")
        if cost <= 0 or cost > capacity:
            raise ValueError(f"cost must be in (0, {capacity}]")

        now = self._clock()
        with self._buckets.locked(key) as shard:
            bucket = shard.get(key)
            if bucket is None:
                bucket = Bucket(
                    key=key,
                    tokens=capacity,
                    last_refill=now,
                    capacity=capacity,
                    refill_rate=refill_rate,
                )
                shard[key] = bucket
            else:
                bucket.capacity = capacity
                bucket.refill_rate = refill_rate

            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(capacity, bucket.tokens + elapsed * refill_rate)
            bucket.last_refill = now

            if bucket.tokens + EPSILON >= cost:
                bucket.tokens = max(0.0, bucket.tokens - cost)
                return RateLimitResult(
                    granted=True,
                    remaining=math.floor(bucket.tokens),
                    limit=int(capacity),
                    reset_after=(capacity - bucket.tokens) / refill_rate,
                )

            return RateLimitResult(
                granted=False,
                remaining=math.floor(bucket.tokens),
                limit=int(capacity),
                reset_after=(capacity - bucket.tokens) / refill_rate,
                retry_after=math.ceil((cost - bucket.tokens) / refill_rate),
            )

    def check(self, policy: RateLimitPolicy, identifier: str, cost: float = 1) -> RateLimitResult:
        """Run one policy against one identifier."""
        return self.allow(
            policy.key_for(identifier),
            capacity=policy.capacity,
            refill_rate=policy.refill_rate,
            cost=cost,
        )

    def check_address(self, address: str) -> RateLimitResult:
        return self.check(self.address_policy, address)

    def admit(self, address: str, credential_key: str) -> RateLimitResult:
        """Check the address policy, then the credential policy.

        A coarse denial is reported as is and leaves the credential bucket
        untouched.
        """
        coarse = self.check(self.address_policy, address)
        if not coarse.granted:
            return coarse
        return self.check(self.credential_policy, credential_key)

    def enforce(self, address: str, credential_key: str) -> RateLimitResult:
        """Like ``admit`` but raises ``RateLimited`` on denial."""
        result = self.admit(address, credential_key)
        raise_if_denied(result)
        return result

    def reset_at(self, result: RateLimitResult) -> int:
        """Epoch seconds at which the reported bucket will be full again."""
        return math.floor(self._wall_clock() + result.reset_after)

    def sweep(self, idle_seconds: float) -> int:
        """Drop buckets idle for ``idle_seconds`` whose balance has refilled to capacity."""
        now = self._clock()

        def _is_idle_and_full(_key: str, bucket: Bucket) -> bool:
            elapsed = now - bucket.last_refill
            if elapsed < idle_seconds:
                return False
            projected = bucket.tokens + elapsed * bucket.refill_rate
            return projected >= bucket.capacity

        removed = self._buckets.evict(_is_idle_and_full)
        if removed:
            logger.debug("Swept %s idle rate limit buckets", removed)
        return removed

    async def run_sweeper(self, interval: float, idle_seconds: float) -> None:
        """Periodic sweep loop; runs until cancelled."""
        while True:
            try:
                await asyncio.sleep(interval)
                self.sweep(idle_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Rate limit sweep failed: %s", e, exc_info=True)

    def __len__(self) -> int:
        return len(self._buckets)


def raise_if_denied(result: RateLimitResult) -> None:
    """Turn a denied result into ``RateLimited``."""
    if result.granted:
        return
    raise RateLimited(
        retry_after=result.retry_after or 1,
        remaining=result.remaining,
        limit=result.limit,
        reset_after=result.reset_after,
    )
