"""
Pytest configuration and fixtures
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from taskflow.api.openai_client import OpenAIClient
from taskflow.config.settings import Settings
from taskflow.models.response import GeneratedDescription
from taskflow.models.task import User
from taskflow.services.issue_actions import IssueActions
from taskflow.services.notifications import NotificationService
from taskflow.services.plans import MemorySubscriptionSource, PlanResolver
from taskflow.services.prompt_manager import PromptManager
from taskflow.services.queue import MemoryQueue, TaskDispatcher
from taskflow.services.rate_limiter import MemoryRateLimitStore, TokenBucketLimiter
from taskflow.services.store import MemoryStore
from taskflow.services.todo_actions import TodoActions
from taskflow.web.container import AppContainer
from taskflow.web.main import create_app


@pytest.fixture
def test_settings():
    """Settings isolated from the environment"""
    return Settings(
        OPENAI_API_KEY="",
        AUTH_SECRET="test-secret",
        QUEUE_SECRET="queue-secret",
        USE_MEMORY_STORE=True,
        REDIS_URL=None,
        STRIPE_SECRET_KEY=None,
        QSTASH_TOKEN=None,
        RATE_LIMIT_FAIL_OPEN=False,
        FREE_MESSAGE_LIMIT=10,
        PRO_MESSAGE_LIMIT=100,
        FREE_ISSUE_LIMIT=10,
        PRO_PRICE_ID="price_pro",
    )


@pytest.fixture
def alice():
    return User(id="user_alice", email="alice@example.com", name="Alice")


@pytest.fixture
def bob():
    return User(id="user_bob", email="bob@example.com", name="Bob")


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def memory_queue():
    """Queue that only delivers when drained explicitly"""
    return MemoryQueue(auto_drain=False)


@pytest.fixture
def subscriptions():
    return MemorySubscriptionSource()


@pytest.fixture
def plan_resolver(subscriptions, test_settings):
    return PlanResolver(subscriptions, test_settings)


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client"""
    client = MagicMock(spec=OpenAIClient)
    client.generate_todo_description = AsyncMock(return_value=GeneratedDescription(
        description="Collect last quarter's numbers and draft the summary.",
        questions=["Who should review it?", "Which format is expected?"],
    ))
    client.chat_with_tools = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def todo_actions(memory_store, memory_queue, mock_openai_client):
    return TodoActions(
        memory_store,
        memory_queue,
        NotificationService(memory_store),
        openai_client=mock_openai_client,
        prompt_manager=PromptManager(),
    )


@pytest.fixture
def issue_actions(memory_store, memory_queue, plan_resolver):
    return IssueActions(memory_store, memory_queue, plan_resolver)


@pytest.fixture
def dispatcher(todo_actions, issue_actions, memory_queue):
    """Dispatcher bound to the memory queue"""
    dispatcher = TaskDispatcher(todo_actions, issue_actions)
    memory_queue.bind(dispatcher)
    return dispatcher


@pytest.fixture
def message_limiter(plan_resolver):
    return TokenBucketLimiter(MemoryRateLimitStore(), plan_resolver)


@pytest.fixture
def container(test_settings, memory_store, memory_queue, subscriptions, mock_openai_client):
    """Application container wired to in-memory backends"""
    return AppContainer(
        settings=test_settings,
        store=memory_store,
        rate_limit_store=MemoryRateLimitStore(),
        subscriptions=subscriptions,
        queue=memory_queue,
        openai_client=mock_openai_client,
    )


@pytest.fixture
def client(container):
    """FastAPI test client"""
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(container, alice):
    token = container.token_verifier.issue(alice)
    return {"Authorization": f"Bearer {token}"}
