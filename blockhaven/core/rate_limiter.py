import abc
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from blockhaven.errors import RateLimitError
from blockhaven.settings import RatePolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class CounterStoreError(Exception):
    """The shared counter store failed at runtime."""


class CounterStore(abc.ABC):
    """Key-value counter store with TTL expiration."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[int]:
        pass

    @abc.abstractmethod
    async def put(self, key: str, value: int, ttl_seconds: int) -> None:
        pass

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        pass

    async def consume(self, key: str, limit: int, ttl_seconds: int) -> Tuple[bool, int]:
        """
        Admit one request against the counter at ``key``.

        Default is a plain read followed by a write. Two concurrent callers can
        both read the same count and both be admitted, so the window may
        overshoot by the number of racing requests. Stores that can do better
        override this with an atomic operation.

        Returns:
            (allowed, count_after)
        """
        current = await self.get(key) or 0
        if current >= limit:
            return False, current
        new_count = current + 1
        await self.put(key, new_count, ttl_seconds)
        return True, new_count


class MemoryCounterStore(CounterStore):
    """Process-local store for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        # key -> (value, expires_at)
        self._values: Dict[str, Tuple[int, float]] = {}
        self._clock = clock
        # Earliest expiry among stored entries; nothing to sweep before it
        self._next_expiry = math.inf

    def __len__(self) -> int:
        return len(self._values)

    async def get(self, key: str) -> Optional[int]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    async def put(self, key: str, value: int, ttl_seconds: int) -> None:
        now = self._clock()
        if now >= self._next_expiry:
            self._sweep(now)
        expires_at = now + ttl_seconds
        self._values[key] = (value, expires_at)
        self._next_expiry = min(self._next_expiry, expires_at)

    def _sweep(self, now: float) -> None:
        """Drop every expired entry. Keys of past windows are never read again."""
        self._values = {k: entry for k, entry in self._values.items() if entry[1] > now}
        self._next_expiry = min((entry[1] for entry in self._values.values()), default=math.inf)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)


CONSUME_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
if current >= limit then
    return {0, current}
end
current = redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
return {1, current}
"""


class RedisCounterStore(CounterStore):
    def __init__(self, redis_client):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[int]:
        try:
            value = await self.redis.get(key)
        except Exception as e:
            raise CounterStoreError(f"Redis GET failed: {e}") from e
        return int(value) if value is not None else None

    async def put(self, key: str, value: int, ttl_seconds: int) -> None:
        try:
            await self.redis.set(key, value, ex=ttl_seconds)
        except Exception as e:
            raise CounterStoreError(f"Redis SET failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except Exception as e:
            raise CounterStoreError(f"Redis DEL failed: {e}") from e

    async def consume(self, key: str, limit: int, ttl_seconds: int) -> Tuple[bool, int]:
        # Check and increment in one script so concurrent requests cannot overshoot
        try:
            result = await self.redis.eval(CONSUME_SCRIPT, 1, key, limit, ttl_seconds)
        except Exception as e:
            logger.error(f"Redis rate limit error: {e}")
            raise CounterStoreError(f"Redis EVAL failed: {e}") from e
        return bool(int(result[0])), int(result[1])


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # unix ms
    limit: int


def rate_limit_key(user_id: str, endpoint: str, window_start: int) -> str:
    return f"ratelimit:{user_id}:{endpoint}:{window_start}"


class RateLimiter:
    """Fixed-window limiter keyed by (user, endpoint, window start)."""

    def __init__(
        self,
        store: CounterStore,
        policies: Mapping[str, RatePolicy],
        default_policy: RatePolicy,
        ttl_buffer_seconds: int = 60,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.policies = dict(policies)
        self.default_policy = default_policy
        self.ttl_buffer_seconds = ttl_buffer_seconds
        self._clock = clock

    def policy_for(self, endpoint: str) -> RatePolicy:
        return self.policies.get(endpoint, self.default_policy)

    async def check(self, user_id: str, endpoint: str) -> RateLimitResult:
        policy = self.policy_for(endpoint)
        window_start = (self._clock() // policy.window_ms) * policy.window_ms
        reset_at = window_start + policy.window_ms
        key = rate_limit_key(user_id, endpoint, window_start)
        ttl_seconds = math.ceil(policy.window_ms / 1000) + self.ttl_buffer_seconds

        allowed, count = await self.store.consume(key, policy.max_requests, ttl_seconds)
        if not allowed:
            logger.info(f"Rate limit exceeded for {user_id} on {endpoint}")
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at, limit=policy.max_requests)

        return RateLimitResult(
            allowed=True,
            remaining=max(0, policy.max_requests - count),
            reset_at=reset_at,
            limit=policy.max_requests,
        )


def retry_after_seconds(result: RateLimitResult, now: Optional[int] = None) -> int:
    now = now_ms() if now is None else now
    return max(0, math.ceil((result.reset_at - now) / 1000))


def rate_limit_headers(result: RateLimitResult, now: Optional[int] = None) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at / 1000)),
    }
    if not result.allowed:
        headers["Retry-After"] = str(retry_after_seconds(result, now))
    return headers


def rate_limit_error(result: RateLimitResult, now: Optional[int] = None) -> RateLimitError:
    retry_after = retry_after_seconds(result, now)
    return RateLimitError(f"Rate limit exceeded. Try again in {retry_after} seconds.", retry_after)


def rate_limit_exceeded_body(result: RateLimitResult, now: Optional[int] = None) -> dict:
    error = rate_limit_error(result, now)
    return {
        "error": "Too Many Requests",
        "message": error.message,
        "retryAfter": error.retry_after,
    }
