"""
Tests for usage metering and request rate limiting
"""

import asyncio
import pytest
from fakeredis import FakeServer, aioredis as fake_aioredis
from limits.aio.storage import MemoryStorage
from taskflow.config.constants import MESSAGE_REFILL_INTERVAL_MS
from taskflow.models.billing import Subscription
from taskflow.services.plans import PlanResolver
from taskflow.services.rate_limiter import (
    MemoryRateLimitStore,
    RateLimitStore,
    RedisRateLimitStore,
    RequestLimiter,
    TokenBucketLimiter,
)


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class BrokenStore(RateLimitStore):
    """Store whose backend is unreachable"""

    async def token_bucket(self, key, max_tokens, refill_rate, interval_ms, now, cost=1):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_free_plan_allows_ten_messages(plan_resolver):
    limiter = TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver, clock=FakeClock())

    results = [await limiter.consume("user_alice") for _ in range(10)]
    assert all(r.success for r in results)
    assert [r.remaining for r in results] == list(range(9, -1, -1))

    denied = await limiter.consume("user_alice")
    assert denied.success is False
    assert denied.remaining == 0
    assert denied.limit == 10
    assert denied.error is None


@pytest.mark.asyncio
async def test_buckets_are_per_user(plan_resolver):
    limiter = TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver, clock=FakeClock())
    for _ in range(10):
        await limiter.consume("user_alice")

    result = await limiter.consume("user_bob")
    assert result.success is True
    assert result.remaining == 9


@pytest.mark.asyncio
async def test_concurrent_consumes_never_overspend(subscriptions, test_settings):
    test_settings.FREE_MESSAGE_LIMIT = 1
    limiter = TokenBucketLimiter(
        MemoryRateLimitStore(), PlanResolver(subscriptions, test_settings), clock=FakeClock()
    )

    results = await asyncio.gather(*(limiter.consume("user_alice") for _ in range(5)))

    assert sum(1 for r in results if r.success) == 1


@pytest.mark.asyncio
async def test_bucket_refills_after_interval(plan_resolver):
    clock = FakeClock()
    limiter = TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver, clock=clock)
    for _ in range(10):
        await limiter.consume("user_alice")
    assert (await limiter.consume("user_alice")).success is False

    clock.now += MESSAGE_REFILL_INTERVAL_MS

    result = await limiter.consume("user_alice")
    assert result.success is True
    assert result.remaining == 9


@pytest.mark.asyncio
async def test_reset_time_is_one_interval_after_refill(plan_resolver):
    clock = FakeClock()
    limiter = TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver, clock=clock)

    result = await limiter.consume("user_alice")

    assert result.reset_at_ms == clock.now + MESSAGE_REFILL_INTERVAL_MS


@pytest.mark.asyncio
async def test_peek_does_not_consume(plan_resolver):
    limiter = TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver, clock=FakeClock())

    fresh = await limiter.peek("user_alice")
    assert fresh.remaining == 10

    await limiter.consume("user_alice")
    assert (await limiter.peek("user_alice")).remaining == 9
    assert (await limiter.peek("user_alice")).remaining == 9


@pytest.mark.asyncio
async def test_pro_plan_uses_its_own_bucket(subscriptions, plan_resolver):
    store = MemoryRateLimitStore()
    limiter = TokenBucketLimiter(store, plan_resolver, clock=FakeClock())
    for _ in range(10):
        await limiter.consume("user_alice")

    subscriptions.set_subscription("user_alice", Subscription(status="active", price_id="price_pro"))
    plan_resolver.invalidate("user_alice")

    result = await limiter.consume("user_alice")
    assert result.success is True
    assert result.limit == 100
    assert result.remaining == 99


def test_bucket_key_is_prefixed_by_plan(plan_resolver):
    assert TokenBucketLimiter.bucket_key(plan_resolver.free_plan, "u1") == "free_message_limit:u1"
    assert TokenBucketLimiter.bucket_key(plan_resolver.pro_plan, "u1") == "pro_message_limit:u1"


@pytest.mark.asyncio
async def test_store_failure_fails_closed(plan_resolver):
    limiter = TokenBucketLimiter(BrokenStore(), plan_resolver, clock=FakeClock())

    result = await limiter.consume("user_alice")

    assert result.success is False
    assert result.remaining == 0
    assert result.error == "unavailable"


@pytest.mark.asyncio
async def test_store_failure_can_fail_open(plan_resolver):
    limiter = TokenBucketLimiter(BrokenStore(), plan_resolver, fail_open=True, clock=FakeClock())

    result = await limiter.consume("user_alice")

    assert result.success is True
    assert result.error == "unavailable"



@pytest.fixture(params=["memory", "redis"])
def bucket_store(request):
    if request.param == "memory":
        return MemoryRateLimitStore()
    return RedisRateLimitStore(client=fake_aioredis.FakeRedis(server=FakeServer(), decode_responses=True))


@pytest.mark.asyncio
async def test_ten_messages_then_denied_on_each_store(bucket_store, plan_resolver):
    limiter = TokenBucketLimiter(bucket_store, plan_resolver, clock=FakeClock())

    results = [await limiter.consume("user_alice") for _ in range(11)]

    assert [r.remaining for r in results[:10]] == list(range(9, -1, -1))
    assert all(r.success for r in results[:10])
    assert results[10].success is False
    assert results[10].remaining == 0
    assert (await limiter.peek("user_alice")).remaining == 0


@pytest.mark.asyncio
async def test_concurrent_consumes_on_each_store(bucket_store, subscriptions, test_settings):
    test_settings.FREE_MESSAGE_LIMIT = 1
    limiter = TokenBucketLimiter(bucket_store, PlanResolver(subscriptions, test_settings), clock=FakeClock())

    results = await asyncio.gather(*(limiter.consume("user_alice") for _ in range(5)))

    assert sum(1 for r in results if r.success) == 1


@pytest.mark.asyncio
async def test_redis_bucket_refills_and_resets(plan_resolver):
    clock = FakeClock()
    store = RedisRateLimitStore(client=fake_aioredis.FakeRedis(server=FakeServer(), decode_responses=True))
    limiter = TokenBucketLimiter(store, plan_resolver, clock=clock)
    for _ in range(10):
        await limiter.consume("user_alice")

    clock.now += MESSAGE_REFILL_INTERVAL_MS
    result = await limiter.consume("user_alice")

    assert result.success is True
    assert result.remaining == 9
    assert result.reset_at_ms == clock.now + MESSAGE_REFILL_INTERVAL_MS
    await store.close()


def test_redis_store_needs_url_or_client():
    with pytest.raises(ValueError):
        RedisRateLimitStore()


class UnreachableStorage(MemoryStorage):
    async def acquire_entry(self, *args, **kwargs):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_request_limiter_allows_up_to_limit():
    limiter = RequestLimiter(limit=3, window_seconds=60)

    results = [await limiter.limit("user_alice") for _ in range(4)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert all(r.limit == 3 for r in results)
    assert results[3].reset_at_ms > 0


@pytest.mark.asyncio
async def test_request_limiter_is_per_identifier():
    limiter = RequestLimiter(limit=1, window_seconds=60)

    assert (await limiter.limit("user_alice")).success is True
    assert (await limiter.limit("user_alice")).success is False
    assert (await limiter.limit("user_bob")).success is True


@pytest.mark.asyncio
async def test_request_limiter_storage_failure():
    closed = RequestLimiter(UnreachableStorage())
    opened = RequestLimiter(UnreachableStorage(), fail_open=True)

    denied = await closed.limit("user_alice")
    allowed = await opened.limit("user_alice")

    assert denied.success is False
    assert denied.error == "unavailable"
    assert allowed.success is True
    assert allowed.error == "unavailable"
