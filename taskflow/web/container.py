"""
Application dependency container
"""

from typing import List, Optional
from taskflow.api.openai_client import OpenAIClient
from taskflow.api.qstash_client import QStashClient
from taskflow.api.stripe_client import StripeClient
from taskflow.config.settings import Settings, settings as default_settings
from taskflow.services.assistant import AssistantService
from taskflow.services.auth import AccessTokenVerifier
from taskflow.services.issue_actions import IssueActions
from taskflow.services.notifications import NotificationService
from taskflow.services.plans import MemorySubscriptionSource, PlanResolver
from taskflow.services.prompt_manager import PromptManager
from taskflow.services.queue import MemoryQueue, QueueClient, TaskDispatcher
from taskflow.services.rate_limiter import (
    MemoryRateLimitStore,
    RateLimitStore,
    RedisRateLimitStore,
    RequestLimiter,
    TokenBucketLimiter,
    request_limit_storage,
)
from taskflow.services.sql_store import SQLStore
from taskflow.services.store import MemoryStore, Store
from taskflow.services.todo_actions import TodoActions
from taskflow.services.view_cache import ViewCache
from taskflow.utils.logger import logger


class AppContainer:
    """Builds and owns every service the HTTP layer uses"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[Store] = None,
        rate_limit_store: Optional[RateLimitStore] = None,
        subscriptions=None,
        queue: Optional[QueueClient] = None,
        openai_client=None,
    ):
        """
        Initialize container; anything passed in is used as is and not closed

        Args:
            settings: Application settings
            store: Persistence store
            rate_limit_store: Backing store for the message limiter
            subscriptions: Subscription source for plan resolution
            queue: Queue client
            openai_client: OpenAI client
        """
        self.settings = settings or default_settings
        self.logger = logger
        self._owned: List = []
        s = self.settings

        if store is None:
            store = MemoryStore() if s.USE_MEMORY_STORE else self._own(SQLStore(s.DATABASE_URL))
        self.store = store

        if rate_limit_store is None:
            if s.REDIS_URL:
                rate_limit_store = self._own(RedisRateLimitStore(s.REDIS_URL))
            else:
                rate_limit_store = MemoryRateLimitStore()
        self.rate_limit_store = rate_limit_store

        if subscriptions is None:
            if s.STRIPE_SECRET_KEY:
                subscriptions = self._own(StripeClient(s.STRIPE_SECRET_KEY))
            else:
                subscriptions = MemorySubscriptionSource()
        self.subscriptions = subscriptions

        if queue is None:
            if s.QSTASH_TOKEN:
                queue = self._own(QStashClient(s.QSTASH_TOKEN, s.PUBLIC_URL, s.QUEUE_SECRET))
            else:
                queue = MemoryQueue(auto_drain=True)
        self.queue = queue

        if openai_client is None and s.OPENAI_API_KEY:
            openai_client = self._own(OpenAIClient(api_key=s.OPENAI_API_KEY))
        self.openai_client = openai_client

        self.token_verifier = AccessTokenVerifier(s.AUTH_SECRET, s.AUTH_ALGORITHM, s.ACCESS_TOKEN_TTL_MINUTES)
        self.plan_resolver = PlanResolver(self.subscriptions, s)
        self.message_limiter = TokenBucketLimiter(
            self.rate_limit_store, self.plan_resolver, fail_open=s.RATE_LIMIT_FAIL_OPEN
        )
        self.request_limiter = RequestLimiter(
            request_limit_storage(s.REDIS_URL), fail_open=s.RATE_LIMIT_FAIL_OPEN
        )

        self.cache = ViewCache()
        self.prompt_manager = PromptManager()
        self.notifications = NotificationService(self.store)
        self.todo_actions = TodoActions(
            self.store,
            self.queue,
            self.notifications,
            cache=self.cache,
            openai_client=self.openai_client,
            prompt_manager=self.prompt_manager,
        )
        self.issue_actions = IssueActions(self.store, self.queue, self.plan_resolver, cache=self.cache)
        self.assistant = AssistantService(
            self.todo_actions, self.message_limiter, self.openai_client, self.prompt_manager
        )
        self.dispatcher = TaskDispatcher(self.todo_actions, self.issue_actions)
        if isinstance(self.queue, MemoryQueue):
            self.queue.bind(self.dispatcher)

    def _own(self, resource):
        self._owned.append(resource)
        return resource

    async def close(self):
        """Close every client this container created"""
        for resource in reversed(self._owned):
            try:
                await resource.close()
            except Exception as e:
                self.logger.warning(f"[Container] Error closing {type(resource).__name__}: {e}")
        self._owned.clear()
