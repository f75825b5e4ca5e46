"""
Plan resolution from billing subscriptions
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
from taskflow.config.constants import PLAN_CACHE_TTL_SECONDS, PLAN_FREE, PLAN_PRO
from taskflow.config.settings import Settings, settings as default_settings
from taskflow.models.billing import Plan, Subscription
from taskflow.utils.logger import logger


class SubscriptionSource(ABC):
    """Where subscription state comes from"""

    @abstractmethod
    async def get_subscription(self, user_id: str) -> Optional[Subscription]:
        ...


class MemorySubscriptionSource(SubscriptionSource):
    """In-process subscriptions for tests and local runs"""

    def __init__(self, subscriptions: Optional[Dict[str, Subscription]] = None):
        self._subscriptions: Dict[str, Subscription] = dict(subscriptions or {})

    def set_subscription(self, user_id: str, subscription: Optional[Subscription]):
        if subscription is None:
            self._subscriptions.pop(user_id, None)
        else:
            self._subscriptions[user_id] = subscription

    async def get_subscription(self, user_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(user_id)


class PlanResolver:
    """Service that maps users to plans, with a TTL cache"""

    def __init__(
        self,
        subscriptions: SubscriptionSource,
        settings: Optional[Settings] = None,
        ttl_seconds: int = PLAN_CACHE_TTL_SECONDS,
    ):
        """
        Initialize plan resolver

        Args:
            subscriptions: Subscription source (Stripe or in-memory)
            settings: Limits and price ids
            ttl_seconds: Cache lifetime per user
        """
        settings = settings or default_settings
        self.subscriptions = subscriptions
        self.logger = logger
        self._cache: Dict[str, Tuple[datetime, Plan]] = {}
        self._cache_ttl = timedelta(seconds=ttl_seconds)

        self.free_plan = Plan(
            id=PLAN_FREE,
            message_limit=settings.FREE_MESSAGE_LIMIT,
            issue_limit=settings.FREE_ISSUE_LIMIT,
        )
        self.pro_plan = Plan(
            id=PLAN_PRO,
            price_id=settings.PRO_PRICE_ID,
            message_limit=settings.PRO_MESSAGE_LIMIT,
            issue_limit=None,
        )
        self._by_price = {self.pro_plan.price_id: self.pro_plan} if self.pro_plan.price_id else {}

    def plan_for(self, subscription: Optional[Subscription]) -> Plan:
        """Plan granted by a subscription; FREE unless active with a known price"""
        if subscription is None or subscription.status != "active":
            return self.free_plan
        return self._by_price.get(subscription.price_id, self.free_plan)

    async def get_plan(self, user_id: str) -> Plan:
        """
        Resolve the user's current plan

        Args:
            user_id: User id

        Returns:
            Plan; FREE when the subscription cannot be read
        """
        cached = self._cache.get(user_id)
        if cached and datetime.now() - cached[0] <= self._cache_ttl:
            return cached[1]

        try:
            subscription = await self.subscriptions.get_subscription(user_id)
        except Exception as e:
            self.logger.warning(f"[Plans] Subscription lookup failed for {user_id}, using FREE: {e}")
            return self.free_plan

        plan = self.plan_for(subscription)
        self._cache[user_id] = (datetime.now(), plan)
        self.logger.debug(f"[Plans] {user_id} resolved to {plan.id}")
        return plan

    def invalidate(self, user_id: Optional[str] = None):
        """Drop cached plans for one user or everyone"""
        if user_id is None:
            self._cache.clear()
        else:
            self._cache.pop(user_id, None)
