"""
Todo mutation actions

Every mutation has two entry points:

* the session entry point takes the authenticated User and raises
  NotAuthenticatedError when there is none;
* the process_* entry point is for trusted callers (queue delivery, the AI
  assistant) and takes an explicit user_id.

Both land in one primitive that receives the scope user_id and the actor_id
credited in the activity entry.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Union
from pydantic import ValidationError as PydanticValidationError
from taskflow.config.constants import AI_USER_ID, BULK_SYNC_THRESHOLD
from taskflow.models.queue import (
    DeleteTodosTask,
    RestoreTodosTask,
    ToggleCompletedTask,
    UpdateDueDateTask,
)
from taskflow.models.response import ActionResult
from taskflow.models.task import (
    Comment,
    CommentKind,
    NotificationType,
    Todo,
    TodoCreate,
    User,
)
from taskflow.services.notifications import NotificationService
from taskflow.services.queue import QueueClient
from taskflow.services.store import Store, owns_todo
from taskflow.services.view_cache import ViewCache
from taskflow.utils.date_parser import parse_due_date
from taskflow.utils.date_utils import get_current_datetime
from taskflow.utils.error_handler import (
    NotAuthenticatedError,
    ValidationError,
    failure_result,
)
from taskflow.utils.formatters import (
    format_affected,
    format_assignee_activity,
    format_completion_activity,
    format_deleted_activity,
    format_description_activity,
    format_due_date_activity,
    format_project_activity,
    format_restored_activity,
    format_title_activity,
    format_watcher_notification,
)
from taskflow.utils.logger import logger


SAMPLE_TODOS = (
    ("Review project proposal", 1),
    ("Send weekly update to team", 0),
    ("Prepare presentation slides", 7),
    ("Schedule team meeting", 1),
    ("Update documentation", 7),
)

TODOS_VIEW = "todos"
ARCHIVED_VIEW = "archived"


def require_user(user: Optional[User]) -> User:
    if user is None:
        raise NotAuthenticatedError()
    return user


def real_ids(ids: Iterable[int]) -> List[int]:
    """Drop optimistic (non-positive) ids and duplicates, keep order"""
    seen = set()
    result = []
    for todo_id in ids:
        if todo_id > 0 and todo_id not in seen:
            seen.add(todo_id)
            result.append(todo_id)
    return result


def _validation_message(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    return str(first.get("msg", "Invalid input")).removeprefix("Value error, ")


class TodoActions:
    """Service for todo mutations and queries"""

    def __init__(
        self,
        store: Store,
        queue: QueueClient,
        notifications: NotificationService,
        cache: Optional[ViewCache] = None,
        openai_client=None,
        prompt_manager=None,
    ):
        """
        Initialize todo actions

        Args:
            store: Persistence store
            queue: Queue for bulk mutations
            notifications: Watcher notification service
            cache: Per-user list cache
            openai_client: Client used for description generation
            prompt_manager: Prompt templates
        """
        self.store = store
        self.queue = queue
        self.notifications = notifications
        self.cache = cache or ViewCache()
        self.openai_client = openai_client
        self.prompt_manager = prompt_manager
        self.logger = logger

    # Internals

    def _invalidate(self, todos: Iterable[Todo], user_id: str):
        users = {user_id}
        for todo in todos:
            users.update(u for u in (todo.owner_id, todo.assignee_id) if u)
        for user in users:
            self.cache.invalidate(TODOS_VIEW, user)
            self.cache.invalidate(ARCHIVED_VIEW, user)

    async def _record_activity(self, todos: List[Todo], actor_id: str, activity: str):
        for todo in todos:
            await self.store.insert_comment(todo.id, actor_id, activity, CommentKind.ACTIVITY)
            await self.notifications.notify_watchers(
                todo,
                format_watcher_notification(todo, activity, actor_id),
                exclude=actor_id,
            )

    async def _update(
        self,
        ids: Iterable[int],
        user_id: str,
        actor_id: str,
        values: Dict[str, Any],
        activity: str,
        failure_message: str,
    ) -> ActionResult:
        """
        Apply values to the todos the user may mutate and record activity

        Args:
            ids: Requested todo ids; optimistic ids are dropped
            user_id: Scope of the mutation
            actor_id: Author of the activity entries
            values: Column values to set
            activity: Activity text
            failure_message: Message returned on downstream failure

        Returns:
            ActionResult with the affected count
        """
        targets = real_ids(ids)
        if not targets:
            return ActionResult(success=True, affected=0, message="No todos to update")

        try:
            updated = await self.store.update_todos(targets, user_id, values)
            await self._record_activity(updated, actor_id, activity)
        except Exception as e:
            return failure_result(e, failure_message)

        self._invalidate(updated, user_id)
        if len(updated) < len(targets):
            self.logger.info(
                f"[TodoActions] {user_id}: {len(targets) - len(updated)} of {len(targets)} todos not owned or missing"
            )
        return ActionResult(success=True, affected=len(updated), message=format_affected(len(updated)))

    async def _dispatch(self, ids: Iterable[int], user_id: str, inline, task_factory) -> ActionResult:
        """Run small requests inline, publish larger ones to the queue"""
        targets = real_ids(ids)
        if len(targets) <= BULK_SYNC_THRESHOLD:
            return await inline(targets)

        task = task_factory(targets)
        try:
            published = await self.queue.publish(task)
        except Exception as e:
            return failure_result(e, "Failed to schedule the update")

        self.logger.info(f"[TodoActions] Queued {task.type} for {len(targets)} todos (key={task.key})")
        return ActionResult(
            success=True,
            message=f"Update of {len(targets)} todos scheduled",
            job_id=published.message_id,
            data={"key": task.key, "deduplicated": published.deduplicated},
        )

    # Queries

    async def list_todos(self, user: Optional[User], archived: bool = False) -> List[Todo]:
        """
        List the user's todos

        Args:
            user: Authenticated user
            archived: Soft-deleted todos instead of active ones

        Returns:
            Todos owned by or assigned to the user
        """
        user = require_user(user)
        view = ARCHIVED_VIEW if archived else TODOS_VIEW
        return await self.cache.get_or_load(
            view, user.id, lambda: self.store.list_todos(user.id, archived=archived)
        )

    async def get_todo(self, user: Optional[User], todo_id: int) -> Optional[Todo]:
        user = require_user(user)
        todo = await self.store.get_todo(todo_id)
        if todo is None or not owns_todo(todo, user.id):
            return None
        return todo

    async def list_comments(self, user: Optional[User], todo_id: int) -> List[Comment]:
        todo = await self.get_todo(user, todo_id)
        if todo is None:
            return []
        return await self.store.list_comments(todo_id)

    # Creation

    async def create_todo(self, user: Optional[User], data: Union[TodoCreate, Dict[str, Any]]) -> ActionResult:
        """
        Create a todo owned by the user

        Args:
            user: Authenticated user
            data: TodoCreate or raw fields

        Returns:
            ActionResult with the created todo in data["todo"]
        """
        user = require_user(user)
        try:
            if not isinstance(data, TodoCreate):
                data = TodoCreate.model_validate(data)
        except PydanticValidationError as e:
            return ActionResult.failure(_validation_message(e))

        try:
            todo = await self.store.insert_todo(data, owner_id=user.id)
            await self._record_activity([todo], user.id, "created")
        except Exception as e:
            return failure_result(e, "Failed to create todo")

        self._invalidate([todo], user.id)
        self.logger.info(f"[TodoActions] {user.id} created todo {todo.id}")
        return ActionResult(
            success=True,
            affected=1,
            message="Todo created",
            data={"todo": todo.model_dump(mode="json", by_alias=True)},
        )

    async def create_sample_todos(self, user: Optional[User]) -> ActionResult:
        """Seed a new account with a handful of example todos"""
        user = require_user(user)
        today = get_current_datetime().replace(hour=0, minute=0, second=0, microsecond=0)
        created = []
        try:
            for title, days in SAMPLE_TODOS:
                created.append(
                    await self.store.insert_todo(
                        TodoCreate(title=title, due_date=today + timedelta(days=days)),
                        owner_id=user.id,
                    )
                )
        except Exception as e:
            return failure_result(e, "Failed to create sample todos")

        self._invalidate(created, user.id)
        return ActionResult(success=True, affected=len(created), message=f"{len(created)} sample todos created")

    # Delete / restore

    async def _delete(self, ids: Iterable[int], user_id: str, actor_id: str) -> ActionResult:
        return await self._update(
            ids, user_id, actor_id,
            {"deleted_at": get_current_datetime()},
            format_deleted_activity(),
            "Failed to delete todos",
        )

    async def delete_todos(self, user: Optional[User], ids: Iterable[int]) -> ActionResult:
        """
        Soft-delete todos; more than BULK_SYNC_THRESHOLD ids go through the queue

        Args:
            user: Authenticated user
            ids: Todo ids, optimistic ids are ignored

        Returns:
            ActionResult with affected count or job_id
        """
        user = require_user(user)
        return await self._dispatch(
            ids, user.id,
            lambda targets: self._delete(targets, user.id, user.id),
            lambda targets: DeleteTodosTask(ids=targets, user_id=user.id),
        )

    async def process_delete_todos(self, ids: Iterable[int], user_id: str, actor_id: Optional[str] = None) -> ActionResult:
        return await self._delete(ids, user_id, actor_id or user_id)

    async def _restore(self, ids: Iterable[int], user_id: str, actor_id: str) -> ActionResult:
        return await self._update(
            ids, user_id, actor_id,
            {"deleted_at": None},
            format_restored_activity(),
            "Failed to restore todos",
        )

    async def restore_todos(self, user: Optional[User], ids: Iterable[int]) -> ActionResult:
        user = require_user(user)
        return await self._dispatch(
            ids, user.id,
            lambda targets: self._restore(targets, user.id, user.id),
            lambda targets: RestoreTodosTask(ids=targets, user_id=user.id),
        )

    async def process_restore_todos(self, ids: Iterable[int], user_id: str, actor_id: Optional[str] = None) -> ActionResult:
        return await self._restore(ids, user_id, actor_id or user_id)

    # Due date

    async def _update_due_date(self, ids: Iterable[int], due_date, user_id: str, actor_id: str) -> ActionResult:
        return await self._update(
            ids, user_id, actor_id,
            {"due_date": due_date},
            format_due_date_activity(due_date),
            "Failed to update due date",
        )

    async def update_due_date(self, user: Optional[User], ids: Iterable[int], due_date) -> ActionResult:
        """
        Set or clear the due date of todos

        Args:
            user: Authenticated user
            ids: Todo ids
            due_date: datetime, parseable string, or None to clear

        Returns:
            ActionResult with affected count or job_id
        """
        user = require_user(user)
        try:
            parsed = parse_due_date(due_date)
        except ValidationError as e:
            return failure_result(e)

        return await self._dispatch(
            ids, user.id,
            lambda targets: self._update_due_date(targets, parsed, user.id, user.id),
            lambda targets: UpdateDueDateTask(ids=targets, due_date=parsed, user_id=user.id),
        )

    async def process_update_due_date(
        self, ids: Iterable[int], due_date, user_id: str, actor_id: Optional[str] = None
    ) -> ActionResult:
        try:
            parsed = parse_due_date(due_date)
        except ValidationError as e:
            return failure_result(e)
        return await self._update_due_date(ids, parsed, user_id, actor_id or user_id)

    # Completion

    async def _toggle_completed(self, ids: Iterable[int], completed: bool, user_id: str, actor_id: str) -> ActionResult:
        return await self._update(
            ids, user_id, actor_id,
            {"completed": completed},
            format_completion_activity(completed),
            "Failed to update completion",
        )

    async def toggle_completed(self, user: Optional[User], ids: Iterable[int], completed: bool) -> ActionResult:
        user = require_user(user)
        return await self._dispatch(
            ids, user.id,
            lambda targets: self._toggle_completed(targets, completed, user.id, user.id),
            lambda targets: ToggleCompletedTask(ids=targets, completed=completed, user_id=user.id),
        )

    async def process_toggle_completed(
        self, ids: Iterable[int], completed: bool, user_id: str, actor_id: Optional[str] = None
    ) -> ActionResult:
        return await self._toggle_completed(ids, completed, user_id, actor_id or user_id)

    # Single-todo field updates

    async def process_update_title(
        self, todo_id: int, title: str, user_id: str, actor_id: Optional[str] = None
    ) -> ActionResult:
        title = (title or "").strip()
        if not title:
            return ActionResult.failure("Title is required")
        try:
            TodoCreate(title=title)
        except PydanticValidationError as e:
            return ActionResult.failure(_validation_message(e))
        return await self._update(
            [todo_id], user_id, actor_id or user_id,
            {"title": title},
            format_title_activity(title),
            "Failed to update title",
        )

    async def update_title(self, user: Optional[User], todo_id: int, title: str) -> ActionResult:
        user = require_user(user)
        return await self.process_update_title(todo_id, title, user.id)

    async def process_update_description(
        self, todo_id: int, description: Optional[str], user_id: str, actor_id: Optional[str] = None
    ) -> ActionResult:
        description = description.strip() if description else None
        return await self._update(
            [todo_id], user_id, actor_id or user_id,
            {"description": description or None},
            format_description_activity(description),
            "Failed to update description",
        )

    async def update_description(self, user: Optional[User], todo_id: int, description: Optional[str]) -> ActionResult:
        user = require_user(user)
        return await self.process_update_description(todo_id, description, user.id)

    async def update_project(self, user: Optional[User], ids: Iterable[int], project_id: Optional[int]) -> ActionResult:
        user = require_user(user)
        return await self._update(
            ids, user.id, user.id,
            {"project_id": project_id},
            format_project_activity(project_id),
            "Failed to update todo project",
        )

    async def assign_todo(self, user: Optional[User], todo_id: int, assignee_id: Optional[str]) -> ActionResult:
        """Reassign a todo; unassigning gives it back to the owner"""
        user = require_user(user)
        todo = await self.store.get_todo(todo_id)
        if todo is None or not owns_todo(todo, user.id):
            return ActionResult(success=True, affected=0, message="No todos to update")
        new_assignee = assignee_id or todo.owner_id
        result = await self._update(
            [todo_id], user.id, user.id,
            {"assignee_id": new_assignee},
            format_assignee_activity(assignee_id),
            "Failed to assign todo",
        )
        # The previous assignee loses visibility
        if result.success and todo.assignee_id:
            self.cache.invalidate(TODOS_VIEW, todo.assignee_id)
        return result

    # Comments and watching

    async def add_comment(self, user: Optional[User], todo_id: int, content: str) -> ActionResult:
        user = require_user(user)
        return await self.process_add_comment(todo_id, content, user.id)

    async def process_add_comment(
        self, todo_id: int, content: str, user_id: str, author_id: Optional[str] = None
    ) -> ActionResult:
        """
        Append a comment to a todo the user may see

        Args:
            todo_id: Todo id
            content: Comment text
            user_id: Scope of the action
            author_id: Comment author (defaults to user_id)

        Returns:
            ActionResult with the comment in data["comment"]
        """
        content = (content or "").strip()
        if not content:
            return ActionResult.failure("Comment cannot be empty")

        author_id = author_id or user_id
        try:
            todo = await self.store.get_todo(todo_id)
            if todo is None or not owns_todo(todo, user_id):
                return ActionResult.failure("Todo not found")
            comment = await self.store.insert_comment(todo_id, author_id, content, CommentKind.COMMENT)
            await self.notifications.notify_watchers(
                todo,
                format_watcher_notification(todo, "new comment", author_id),
                exclude=author_id,
            )
        except Exception as e:
            return failure_result(e, "Failed to add comment")

        return ActionResult(
            success=True,
            affected=1,
            data={"comment": comment.model_dump(mode="json", by_alias=True)},
        )

    async def watch(self, user: Optional[User], todo_id: int) -> ActionResult:
        user = require_user(user)
        todo = await self.store.get_todo(todo_id)
        if todo is None or not owns_todo(todo, user.id):
            return ActionResult.failure("Todo not found")
        try:
            added = await self.store.add_watcher(todo_id, user.id)
            if added:
                await self.notifications.create_notification(
                    user.id, "You are now watching this todo", todo_id=todo_id
                )
        except Exception as e:
            return failure_result(e, "Failed to update watch status")
        return ActionResult(success=True, affected=int(added))

    async def unwatch(self, user: Optional[User], todo_id: int) -> ActionResult:
        user = require_user(user)
        try:
            removed = await self.store.remove_watcher(todo_id, user.id)
        except Exception as e:
            return failure_result(e, "Failed to update watch status")
        return ActionResult(success=True, affected=int(removed))

    # AI description

    async def generate_description(self, todo_id: int, title: str, user_id: str) -> ActionResult:
        """
        Generate a description and clarifying questions for a todo

        The description replaces the current one; each question becomes a
        comment by the AI. On failure the user gets an error notification.

        Args:
            todo_id: Todo id
            title: Title to describe
            user_id: Owner scope

        Returns:
            ActionResult
        """
        todo = await self.store.get_todo(todo_id)
        if todo is None or not owns_todo(todo, user_id):
            return ActionResult.failure("Todo not found")

        try:
            prompt = self.prompt_manager.get_description_prompt(title)
            generated = await self.openai_client.generate_todo_description(prompt)
        except Exception as e:
            self.logger.error(f"[TodoActions] Description generation failed for todo {todo_id}: {e}", exc_info=True)
            await self.notifications.create_notification(
                user_id,
                f"Failed to generate a description for \"{title}\"",
                type=NotificationType.ERROR,
                todo_id=todo_id,
            )
            return ActionResult.failure("Failed to generate description")

        result = await self._update(
            [todo_id], user_id, AI_USER_ID,
            {"description": generated.description},
            format_description_activity(generated.description),
            "Failed to save description",
        )
        if not result.success:
            return result

        try:
            for question in generated.questions:
                await self.store.insert_comment(todo_id, AI_USER_ID, question, CommentKind.COMMENT)
        except Exception as e:
            return failure_result(e, "Failed to save questions")

        return ActionResult(
            success=True,
            affected=result.affected,
            message="Description generated",
            data={"questions": len(generated.questions)},
        )
