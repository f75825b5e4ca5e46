"""
Stripe API client for subscription lookups
"""

from typing import Any, Dict, Optional
import httpx
from taskflow.api.base_client import BaseAPIClient
from taskflow.config.constants import STRIPE_API_BASE_URL
from taskflow.models.billing import Subscription


class StripeClient(BaseAPIClient):
    """Read-only subscription source backed by the Stripe REST API"""

    def __init__(
        self,
        secret_key: str,
        base_url: str = STRIPE_API_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Stripe client

        Args:
            secret_key: Stripe secret API key
            base_url: API base URL
            client: Optional preconfigured httpx client
        """
        super().__init__(base_url, client=client)
        self.secret_key = secret_key

    def _get_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.secret_key}"}

    @staticmethod
    def _to_subscription(data: Dict[str, Any]) -> Subscription:
        items = (data.get("items") or {}).get("data") or []
        price_id = None
        if items:
            price_id = (items[0].get("price") or {}).get("id")
        customer = data.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")
        return Subscription(status=data.get("status", ""), price_id=price_id, customer_id=customer)

    async def get_subscription(self, user_id: str) -> Optional[Subscription]:
        """
        Find the user's subscription by the userId metadata set at checkout

        Args:
            user_id: Application user id

        Returns:
            Active subscription if any, otherwise the most recent one, or None
        """
        response = await self.get(
            "/v1/subscriptions/search",
            headers=self._get_headers(),
            params={"query": f"metadata['userId']:'{user_id}'", "limit": 10},
        )
        subscriptions = [self._to_subscription(s) for s in response.get("data", [])]
        if not subscriptions:
            self.logger.debug(f"[Stripe] No subscription for {user_id}")
            return None

        for subscription in subscriptions:
            if subscription.status == "active":
                return subscription
        return subscriptions[0]
