"""
Usage metering and request rate limiting

Two limiters:

* TokenBucketLimiter meters chat turns and AI generations per user. Capacity
  and daily refill both equal the plan's message limit, and every plan gets
  its own key prefix.
* RequestLimiter bounds raw request rate per user in HTTP middleware with a
  moving window from the limits package.

Token bucket check-and-decrement happens atomically inside the store (one
asyncio.Lock in memory, a Lua script in Redis).
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from limits import RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string
from redis import asyncio as aioredis

from taskflow.config.constants import (
    MESSAGE_REFILL_INTERVAL_MS,
    PLAN_PREFIXES,
    REQUEST_LIMIT,
    REQUEST_LIMIT_PREFIX,
    REQUEST_WINDOW_SECONDS,
)
from taskflow.models.billing import Plan
from taskflow.models.response import RateLimitResult, RateLimitStatus
from taskflow.services.plans import PlanResolver
from taskflow.utils.logger import logger


def now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitStore(ABC):
    """Atomic bucket operations keyed by string"""

    @abstractmethod
    async def token_bucket(
        self,
        key: str,
        max_tokens: int,
        refill_rate: int,
        interval_ms: int,
        now: int,
        cost: int = 1,
    ) -> Tuple[bool, int, int]:
        """
        Refill then take `cost` tokens; cost 0 only reads

        Returns:
            (allowed, remaining, reset_at_ms)
        """

    async def close(self):
        return None


class MemoryRateLimitStore(RateLimitStore):
    """Process-local buckets"""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._buckets: Dict[str, Tuple[int, int]] = {}

    async def token_bucket(
        self,
        key: str,
        max_tokens: int,
        refill_rate: int,
        interval_ms: int,
        now: int,
        cost: int = 1,
    ) -> Tuple[bool, int, int]:
        async with self._lock:
            state = self._buckets.get(key)
            if state is None:
                tokens, refilled_at = max_tokens, now
            else:
                tokens, refilled_at = state
                refills = (now - refilled_at) // interval_ms
                if refills > 0:
                    tokens = min(max_tokens, tokens + refills * refill_rate)
                    refilled_at += refills * interval_ms
            reset_at = refilled_at + interval_ms

            if cost == 0:
                return True, tokens, reset_at

            allowed = tokens >= cost
            if allowed:
                tokens -= cost
            self._buckets[key] = (tokens, refilled_at)
            return allowed, tokens, reset_at


_TOKEN_BUCKET_LUA = """
local key = KEYS[1]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local interval = tonumber(ARGV[3])
local now = tonumber(ARGV[4])
local cost = tonumber(ARGV[5])

local bucket = redis.call("HMGET", key, "tokens", "refilled_at")
local tokens = tonumber(bucket[1])
local refilled_at = tonumber(bucket[2])

if tokens == nil or refilled_at == nil then
  tokens = max_tokens
  refilled_at = now
else
  local refills = math.floor((now - refilled_at) / interval)
  if refills > 0 then
    tokens = math.min(max_tokens, tokens + refills * refill_rate)
    refilled_at = refilled_at + refills * interval
  end
end

local reset = refilled_at + interval
if cost == 0 then
  return {1, tokens, reset}
end

local allowed = 0
if tokens >= cost then
  tokens = tokens - cost
  allowed = 1
end

redis.call("HSET", key, "tokens", tokens, "refilled_at", refilled_at)
redis.call("PEXPIRE", key, interval * (math.ceil(max_tokens / refill_rate) + 1))
return {allowed, tokens, reset}
"""


class RedisRateLimitStore(RateLimitStore):
    """Buckets in Redis; each operation is a single Lua script call"""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[aioredis.Redis] = None):
        """
        Initialize Redis-backed store

        Args:
            redis_url: Redis connection URL
            client: Existing async Redis client, used instead of redis_url
        """
        if client is None and not redis_url:
            raise ValueError("RedisRateLimitStore needs a redis_url or a client")
        self.client = client if client is not None else aioredis.from_url(redis_url, decode_responses=True)
        self._token_bucket = self.client.register_script(_TOKEN_BUCKET_LUA)
        self.logger = logger

    async def token_bucket(
        self,
        key: str,
        max_tokens: int,
        refill_rate: int,
        interval_ms: int,
        now: int,
        cost: int = 1,
    ) -> Tuple[bool, int, int]:
        allowed, remaining, reset_at = await self._token_bucket(
            keys=[key],
            args=[max_tokens, refill_rate, interval_ms, now, cost],
        )
        return bool(int(allowed)), int(remaining), int(reset_at)

    async def close(self):
        await self.client.aclose()


class TokenBucketLimiter:
    """Per-user, plan-scoped daily message limiter"""

    def __init__(
        self,
        store: RateLimitStore,
        plan_resolver: PlanResolver,
        fail_open: bool = False,
        interval_ms: int = MESSAGE_REFILL_INTERVAL_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize limiter

        Args:
            store: Backing store
            plan_resolver: Resolves a user's plan and message limit
            fail_open: Allow instead of deny when the store is unreachable
            interval_ms: Refill interval
            clock: Millisecond clock, injectable for tests
        """
        self.store = store
        self.plan_resolver = plan_resolver
        self.fail_open = fail_open
        self.interval_ms = interval_ms
        self._clock = clock or now_ms
        self.logger = logger

    @staticmethod
    def bucket_key(plan: Plan, user_id: str) -> str:
        prefix = PLAN_PREFIXES.get(plan.id, f"{plan.id.lower()}_message_limit")
        return f"{prefix}:{user_id}"

    async def consume(self, user_id: str) -> RateLimitResult:
        """
        Take one token from the user's bucket

        Args:
            user_id: User performing a metered action

        Returns:
            RateLimitResult; never raises for store failures
        """
        now = self._clock()
        plan = await self.plan_resolver.get_plan(user_id)
        limit = plan.message_limit
        try:
            allowed, remaining, reset_at = await self.store.token_bucket(
                self.bucket_key(plan, user_id),
                max_tokens=limit,
                refill_rate=limit,
                interval_ms=self.interval_ms,
                now=now,
                cost=1,
            )
        except Exception as e:
            self.logger.error(f"[RateLimit] Store unavailable while consuming for {user_id}: {e}", exc_info=True)
            return RateLimitResult(
                success=self.fail_open,
                limit=limit,
                remaining=limit if self.fail_open else 0,
                reset_at_ms=now + self.interval_ms,
                error="unavailable",
            )

        if not allowed:
            self.logger.info(f"[RateLimit] {user_id} exhausted {plan.id} limit ({limit}/day)")
        return RateLimitResult(success=allowed, limit=limit, remaining=remaining, reset_at_ms=reset_at)

    async def peek(self, user_id: str) -> RateLimitStatus:
        """Remaining tokens without consuming one"""
        now = self._clock()
        plan = await self.plan_resolver.get_plan(user_id)
        limit = plan.message_limit
        try:
            _, remaining, reset_at = await self.store.token_bucket(
                self.bucket_key(plan, user_id),
                max_tokens=limit,
                refill_rate=limit,
                interval_ms=self.interval_ms,
                now=now,
                cost=0,
            )
        except Exception as e:
            self.logger.error(f"[RateLimit] Store unavailable while reading for {user_id}: {e}", exc_info=True)
            return RateLimitStatus(
                limit=limit,
                remaining=limit if self.fail_open else 0,
                reset_at_ms=now + self.interval_ms,
            )
        return RateLimitStatus(limit=limit, remaining=remaining, reset_at_ms=reset_at)



def request_limit_storage(redis_url: Optional[str] = None) -> Storage:
    """Moving window storage: shared Redis when configured, process memory otherwise"""
    if redis_url:
        return storage_from_string(f"async+{redis_url}", implementation="redispy")
    return MemoryStorage()


class RequestLimiter:
    """Coarse per-identifier request limiter"""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        limit: int = REQUEST_LIMIT,
        window_seconds: int = REQUEST_WINDOW_SECONDS,
        prefix: str = REQUEST_LIMIT_PREFIX,
        fail_open: bool = False,
    ):
        """
        Initialize limiter

        Args:
            storage: limits storage backend; in-process memory when omitted
            limit: Requests allowed per window
            window_seconds: Window length
            prefix: Namespace for the limiter's keys
            fail_open: Allow instead of deny when the storage is unreachable
        """
        self.storage = storage or MemoryStorage()
        self.item = RateLimitItemPerSecond(limit, window_seconds)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.prefix = prefix
        self.fail_open = fail_open
        self.logger = logger

    async def limit(self, identifier: str) -> RateLimitResult:
        """Count one request for the identifier"""
        try:
            allowed = await self.strategy.hit(self.item, self.prefix, identifier)
            reset_time, remaining = await self.strategy.get_window_stats(self.item, self.prefix, identifier)
        except Exception as e:
            self.logger.error(f"[RateLimit] Storage unavailable for request limit: {e}", exc_info=True)
            return RateLimitResult(
                success=self.fail_open,
                limit=self.item.amount,
                remaining=self.item.amount if self.fail_open else 0,
                reset_at_ms=now_ms() + self.item.get_expiry() * 1000,
                error="unavailable",
            )
        return RateLimitResult(
            success=allowed,
            limit=self.item.amount,
            remaining=remaining,
            reset_at_ms=int(reset_time * 1000),
        )
