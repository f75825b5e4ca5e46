"""
Background queue: publication, in-process delivery and task routing
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple
from pydantic import BaseModel
from taskflow.config.constants import QUEUE_DEDUP_WINDOW_SECONDS, QUEUE_MAX_ATTEMPTS
from taskflow.models.queue import (
    DeleteIssuesTask,
    DeleteTodosTask,
    GenerateDescriptionTask,
    PublishResult,
    QueueTask,
    RestoreTodosTask,
    ToggleCompletedTask,
    UpdateDueDateTask,
    UpdateIssuePriorityTask,
    UpdateIssueStatusTask,
)
from taskflow.models.response import ActionResult
from taskflow.utils.error_handler import DownstreamError
from taskflow.utils.logger import logger


class QueueClient(ABC):
    """Publishes tasks for asynchronous at-least-once delivery"""

    @abstractmethod
    async def publish(self, task) -> PublishResult:
        """Publish a task; a repeated key inside the dedup window is suppressed"""

    async def close(self):
        return None


class TaskDispatcher:
    """Routes a delivered task to the trusted process_* entry point"""

    def __init__(self, todo_actions, issue_actions):
        """
        Initialize dispatcher

        Args:
            todo_actions: TodoActions service
            issue_actions: IssueActions service
        """
        self.todo_actions = todo_actions
        self.issue_actions = issue_actions
        self.logger = logger

    async def dispatch(self, task) -> ActionResult:
        """
        Run a queue task

        Args:
            task: Parsed queue task

        Returns:
            ActionResult of the underlying action

        Raises:
            ValueError: Unknown task type
        """
        self.logger.info(f"[Queue] Dispatching {task.type} key={task.key}")

        if isinstance(task, DeleteTodosTask):
            return await self.todo_actions.process_delete_todos(task.ids, task.user_id)
        if isinstance(task, RestoreTodosTask):
            return await self.todo_actions.process_restore_todos(task.ids, task.user_id)
        if isinstance(task, UpdateDueDateTask):
            return await self.todo_actions.process_update_due_date(task.ids, task.due_date, task.user_id)
        if isinstance(task, ToggleCompletedTask):
            return await self.todo_actions.process_toggle_completed(task.ids, task.completed, task.user_id)
        if isinstance(task, UpdateIssueStatusTask):
            return await self.issue_actions.process_update_status(task.ids, task.status, task.user_id)
        if isinstance(task, UpdateIssuePriorityTask):
            return await self.issue_actions.process_update_priority(task.ids, task.priority, task.user_id)
        if isinstance(task, DeleteIssuesTask):
            return await self.issue_actions.process_delete_issues(task.ids, task.user_id)
        if isinstance(task, GenerateDescriptionTask):
            return await self.todo_actions.generate_description(task.todo_id, task.title, task.user_id)

        raise ValueError(f"Unknown queue task type: {getattr(task, 'type', type(task).__name__)}")


class QueuedMessage(BaseModel):
    """Message waiting for delivery"""
    message_id: str
    task: QueueTask
    attempts: int = 0
    last_error: Optional[str] = None


class MemoryQueue(QueueClient):
    """In-process queue with key deduplication and bounded redelivery"""

    def __init__(
        self,
        dispatcher: Optional[TaskDispatcher] = None,
        dedup_window_s: int = QUEUE_DEDUP_WINDOW_SECONDS,
        max_attempts: int = QUEUE_MAX_ATTEMPTS,
        clock: Optional[Callable[[], float]] = None,
        auto_drain: bool = False,
    ):
        """
        Initialize memory queue

        Args:
            dispatcher: Task dispatcher; may be bound later with bind()
            dedup_window_s: How long a published key suppresses re-publication
            max_attempts: Deliveries tried before a message is dead-lettered
            clock: Monotonic clock in seconds, injectable for tests
            auto_drain: Schedule a drain on the running loop after each publish
        """
        self.dispatcher = dispatcher
        self.dedup_window_s = dedup_window_s
        self.max_attempts = max_attempts
        self._clock = clock or time.monotonic
        self._lock = asyncio.Lock()
        self._pending: Deque[QueuedMessage] = deque()
        self._seen: Dict[str, Tuple[float, str]] = {}
        self.dead_letters: List[QueuedMessage] = []
        self.auto_drain = auto_drain
        self._drains: Set[asyncio.Task] = set()
        self.logger = logger

    def bind(self, dispatcher: TaskDispatcher):
        self.dispatcher = dispatcher

    @property
    def pending(self) -> List[QueuedMessage]:
        return list(self._pending)

    async def publish(self, task) -> PublishResult:
        now = self._clock()
        async with self._lock:
            for key in [k for k, (at, _) in self._seen.items() if now - at >= self.dedup_window_s]:
                del self._seen[key]

            seen = self._seen.get(task.key)
            if seen is not None:
                self.logger.info(f"[Queue] Deduplicated {task.type} key={task.key}")
                return PublishResult(message_id=seen[1], deduplicated=True)

            message_id = f"msg_{uuid.uuid4().hex}"
            self._seen[task.key] = (now, message_id)
            self._pending.append(QueuedMessage(message_id=message_id, task=task))

        self.logger.info(f"[Queue] Published {task.type} key={task.key} id={message_id}")
        if self.auto_drain and self.dispatcher is not None:
            drain = asyncio.get_running_loop().create_task(self.drain())
            self._drains.add(drain)
            drain.add_done_callback(self._drains.discard)
        return PublishResult(message_id=message_id)

    async def drain(self) -> int:
        """
        Deliver every pending message, redelivering failures up to max_attempts

        Returns:
            Number of messages delivered successfully
        """
        if self.dispatcher is None:
            raise RuntimeError("MemoryQueue has no dispatcher bound")

        delivered = 0
        failed = 0
        while True:
            async with self._lock:
                if not self._pending:
                    break
                message = self._pending.popleft()

            try:
                result = await self.dispatcher.dispatch(message.task)
                if not result.success:
                    raise DownstreamError(result.message or "Task failed")
                delivered += 1
            except Exception as e:
                message.attempts += 1
                message.last_error = str(e)
                if message.attempts < self.max_attempts:
                    self.logger.warning(
                        f"[Queue] Delivery of {message.task.key} failed "
                        f"(attempt {message.attempts}/{self.max_attempts}): {e}"
                    )
                    async with self._lock:
                        self._pending.append(message)
                else:
                    self.logger.error(f"[Queue] Giving up on {message.task.key} after {message.attempts} attempts: {e}")
                    self.dead_letters.append(message)
                    failed += 1

        if delivered or failed:
            self.logger.info(f"[Queue] Drain complete: {delivered} delivered, {failed} dead-lettered")
        return delivered
