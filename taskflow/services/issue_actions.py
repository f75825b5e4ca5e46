"""
Issue mutation actions
"""

from typing import Any, Dict, Iterable, List, Optional
from taskflow.config.constants import (
    ISSUE_DEFAULT_PRIORITY,
    ISSUE_DEFAULT_STATUS,
    ISSUE_PRIORITIES,
    ISSUE_STATUSES,
    TODO_TITLE_MAX_LENGTH,
)
from taskflow.models.queue import DeleteIssuesTask, UpdateIssuePriorityTask, UpdateIssueStatusTask
from taskflow.models.response import ActionResult
from taskflow.models.task import Issue, IssueCreate, User
from taskflow.services.plans import PlanResolver
from taskflow.services.queue import QueueClient
from taskflow.services.store import Store
from taskflow.services.todo_actions import real_ids, require_user
from taskflow.services.view_cache import ViewCache
from taskflow.utils.error_handler import failure_result
from taskflow.utils.logger import logger


ISSUES_VIEW = "issues"


class IssueActions:
    """Service for issue mutations and queries"""

    def __init__(
        self,
        store: Store,
        queue: QueueClient,
        plan_resolver: PlanResolver,
        cache: Optional[ViewCache] = None,
    ):
        """
        Initialize issue actions

        Args:
            store: Persistence store
            queue: Queue for bulk mutations
            plan_resolver: Plan lookup for the issue limit
            cache: Per-user list cache
        """
        self.store = store
        self.queue = queue
        self.plan_resolver = plan_resolver
        self.cache = cache or ViewCache()
        self.logger = logger

    async def _update(
        self,
        ids: Iterable[int],
        user_id: str,
        values: Dict[str, Any],
        success_message: str,
        failure_message: str,
    ) -> ActionResult:
        targets = real_ids(ids)
        if not targets:
            return ActionResult(success=True, affected=0, message="No issues to update")
        try:
            updated = await self.store.update_issues(targets, user_id, values)
        except Exception as e:
            return failure_result(e, failure_message)

        self.cache.invalidate(ISSUES_VIEW, user_id)
        self.logger.info(f"[IssueActions] {user_id}: {values} applied to {len(updated)}/{len(targets)} issues")
        return ActionResult(success=True, affected=len(updated), message=success_message)

    async def _publish(self, task, failure_message: str) -> ActionResult:
        if not task.ids:
            return ActionResult(success=True, affected=0, message="No issues to update")
        try:
            published = await self.queue.publish(task)
        except Exception as e:
            return failure_result(e, failure_message)
        return ActionResult(
            success=True,
            message=f"Update of {len(task.ids)} issues scheduled",
            job_id=published.message_id,
            data={"key": task.key, "deduplicated": published.deduplicated},
        )

    # Queries

    async def list_issues(self, user: Optional[User]) -> List[Issue]:
        user = require_user(user)
        return await self.cache.get_or_load(ISSUES_VIEW, user.id, lambda: self.store.list_issues(user.id))

    async def count_issues(self, user: Optional[User]) -> int:
        user = require_user(user)
        return await self.store.count_issues(user.id)

    # Creation

    async def create_issue(self, user: Optional[User], data: IssueCreate) -> ActionResult:
        """
        Create an issue with status "open"

        FREE plan users are limited to the plan's issue_limit.

        Args:
            user: Authenticated user
            data: Title, description and priority (default "medium")

        Returns:
            ActionResult with the created issue in data["issue"]
        """
        user = require_user(user)
        title = (data.title or "").strip()
        priority = data.priority or ISSUE_DEFAULT_PRIORITY

        try:
            plan = await self.plan_resolver.get_plan(user.id)
            if plan.issue_limit is not None:
                count = await self.store.count_issues(user.id)
                if count >= plan.issue_limit:
                    return ActionResult.failure(
                        f"Free plan is limited to {plan.issue_limit} issues. "
                        "Upgrade to Pro for unlimited issues."
                    )

            if not title:
                return ActionResult.failure("Title is required")
            if len(title) > TODO_TITLE_MAX_LENGTH:
                return ActionResult.failure(f"Title must be at most {TODO_TITLE_MAX_LENGTH} characters")
            if priority not in ISSUE_PRIORITIES:
                return ActionResult.failure("Invalid priority value")

            issue = await self.store.insert_issue(
                user.id,
                title=title,
                description=data.description or None,
                status=ISSUE_DEFAULT_STATUS,
                priority=priority,
            )
        except Exception as e:
            return failure_result(e, "Failed to create issue. Please try again.")

        self.cache.invalidate(ISSUES_VIEW, user.id)
        self.logger.info(f"[IssueActions] {user.id} created issue #{issue.number}")
        return ActionResult(
            success=True,
            affected=1,
            message="Issue created successfully",
            data={"issue": issue.model_dump(mode="json", by_alias=True)},
        )

    # Status

    async def process_update_status(self, ids: Iterable[int], status: str, user_id: str) -> ActionResult:
        if status not in ISSUE_STATUSES:
            return ActionResult.failure("Invalid status value")
        return await self._update(
            ids, user_id, {"status": status}, "Issue status updated", "Failed to update issue status"
        )

    async def update_status(self, user: Optional[User], issue_id: int, status: str) -> ActionResult:
        user = require_user(user)
        if issue_id <= 0:
            return ActionResult.failure("Issue is not saved yet")
        return await self.process_update_status([issue_id], status, user.id)

    async def bulk_update_status(self, user: Optional[User], ids: Iterable[int], status: str) -> ActionResult:
        """Queue a status change for many issues"""
        user = require_user(user)
        if status not in ISSUE_STATUSES:
            return ActionResult.failure("Invalid status value")
        task = UpdateIssueStatusTask(ids=real_ids(ids), status=status, user_id=user.id)
        return await self._publish(task, "Failed to update issue status")

    # Priority

    async def process_update_priority(self, ids: Iterable[int], priority: str, user_id: str) -> ActionResult:
        if priority not in ISSUE_PRIORITIES:
            return ActionResult.failure("Invalid priority value")
        return await self._update(
            ids, user_id, {"priority": priority}, "Issue priority updated", "Failed to update issue priority"
        )

    async def update_priority(self, user: Optional[User], issue_id: int, priority: str) -> ActionResult:
        user = require_user(user)
        if issue_id <= 0:
            return ActionResult.failure("Issue is not saved yet")
        return await self.process_update_priority([issue_id], priority, user.id)

    async def bulk_update_priority(self, user: Optional[User], ids: Iterable[int], priority: str) -> ActionResult:
        user = require_user(user)
        if priority not in ISSUE_PRIORITIES:
            return ActionResult.failure("Invalid priority value")
        task = UpdateIssuePriorityTask(ids=real_ids(ids), priority=priority, user_id=user.id)
        return await self._publish(task, "Failed to update issue priority")

    # Delete

    async def process_delete_issues(self, ids: Iterable[int], user_id: str) -> ActionResult:
        targets = real_ids(ids)
        if not targets:
            return ActionResult(success=True, affected=0, message="No issues to delete")
        try:
            deleted = await self.store.delete_issues(targets, user_id)
        except Exception as e:
            return failure_result(e, "Failed to delete issues")

        self.cache.invalidate(ISSUES_VIEW, user_id)
        self.logger.info(f"[IssueActions] {user_id}: deleted {len(deleted)}/{len(targets)} issues")
        return ActionResult(success=True, affected=len(deleted), message="Issue deleted")

    async def delete_issue(self, user: Optional[User], issue_id: int) -> ActionResult:
        user = require_user(user)
        return await self.process_delete_issues([issue_id], user.id)

    async def bulk_delete(self, user: Optional[User], ids: Iterable[int]) -> ActionResult:
        user = require_user(user)
        task = DeleteIssuesTask(ids=real_ids(ids), user_id=user.id)
        return await self._publish(task, "Failed to delete issues")
