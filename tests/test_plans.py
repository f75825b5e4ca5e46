"""
Tests for plan resolution and the Stripe subscription source
"""

import httpx
import pytest
from unittest.mock import AsyncMock
from taskflow.api.stripe_client import StripeClient
from taskflow.models.billing import Subscription
from taskflow.services.plans import PlanResolver, SubscriptionSource


@pytest.mark.asyncio
async def test_no_subscription_is_free(plan_resolver):
    plan = await plan_resolver.get_plan("user_alice")

    assert plan.id == "FREE"
    assert plan.message_limit == 10
    assert plan.issue_limit == 10


@pytest.mark.asyncio
async def test_active_known_price_is_pro(subscriptions, plan_resolver):
    subscriptions.set_subscription("user_alice", Subscription(status="active", price_id="price_pro"))

    plan = await plan_resolver.get_plan("user_alice")

    assert plan.id == "PRO"
    assert plan.message_limit == 100
    assert plan.issue_limit is None


@pytest.mark.parametrize("subscription", [
    Subscription(status="canceled", price_id="price_pro"),
    Subscription(status="past_due", price_id="price_pro"),
    Subscription(status="active", price_id="price_unknown"),
])
def test_inactive_or_unknown_subscription_is_free(plan_resolver, subscription):
    assert plan_resolver.plan_for(subscription).id == "FREE"


@pytest.mark.asyncio
async def test_plan_is_cached_until_invalidated(subscriptions, plan_resolver):
    assert (await plan_resolver.get_plan("user_alice")).id == "FREE"

    subscriptions.set_subscription("user_alice", Subscription(status="active", price_id="price_pro"))
    assert (await plan_resolver.get_plan("user_alice")).id == "FREE"

    plan_resolver.invalidate("user_alice")
    assert (await plan_resolver.get_plan("user_alice")).id == "PRO"


@pytest.mark.asyncio
async def test_lookup_failure_falls_back_to_free_without_caching(test_settings):
    source = AsyncMock(spec=SubscriptionSource)
    source.get_subscription.side_effect = [
        httpx.ConnectError("stripe down"),
        Subscription(status="active", price_id="price_pro"),
    ]
    resolver = PlanResolver(source, test_settings)

    assert (await resolver.get_plan("user_alice")).id == "FREE"
    assert (await resolver.get_plan("user_alice")).id == "PRO"


def _stripe(handler) -> StripeClient:
    return StripeClient(
        "sk_test",
        base_url="https://stripe.test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_stripe_prefers_active_subscription():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["query"] = request.url.params["query"]
        return httpx.Response(200, json={"data": [
            {"status": "canceled", "customer": "cus_1", "items": {"data": [{"price": {"id": "price_old"}}]}},
            {"status": "active", "customer": {"id": "cus_1"}, "items": {"data": [{"price": {"id": "price_pro"}}]}},
        ]})

    stripe = _stripe(handler)
    subscription = await stripe.get_subscription("user_alice")
    await stripe.close()

    assert seen["auth"] == "Bearer sk_test"
    assert seen["query"] == "metadata['userId']:'user_alice'"
    assert subscription == Subscription(status="active", price_id="price_pro", customer_id="cus_1")


@pytest.mark.asyncio
async def test_stripe_without_subscriptions_returns_none():
    stripe = _stripe(lambda request: httpx.Response(200, json={"data": []}))

    assert await stripe.get_subscription("user_alice") is None
    await stripe.close()
