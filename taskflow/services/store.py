"""
Persistence interface and in-memory implementation
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from taskflow.models.task import (
    Comment,
    CommentKind,
    Issue,
    Notification,
    Todo,
    TodoCreate,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def owns_todo(todo: Todo, user_id: str) -> bool:
    """Owner and assignee may both mutate a todo"""
    return todo.owner_id == user_id or todo.assignee_id == user_id


class Store(ABC):
    """Typed access to todos, issues, comments, watchers and notifications"""

    # Todos

    @abstractmethod
    async def insert_todo(self, data: TodoCreate, owner_id: str) -> Todo:
        ...

    @abstractmethod
    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        ...

    @abstractmethod
    async def list_todos(self, user_id: str, archived: bool = False) -> List[Todo]:
        """Todos owned by or assigned to the user, oldest first"""

    @abstractmethod
    async def update_todos(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Todo]:
        """
        Update todos the user may mutate

        Returns:
            The updated rows; ids the user does not own are silently skipped
        """

    # Issues

    @abstractmethod
    async def insert_issue(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        status: str,
        priority: str,
    ) -> Issue:
        """Insert an issue with the user's next display number"""

    @abstractmethod
    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        ...

    @abstractmethod
    async def list_issues(self, user_id: str) -> List[Issue]:
        """Issues owned by the user, newest first"""

    @abstractmethod
    async def count_issues(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def update_issues(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Issue]:
        ...

    @abstractmethod
    async def delete_issues(self, ids: Iterable[int], user_id: str) -> List[Issue]:
        ...

    # Comments and activity

    @abstractmethod
    async def insert_comment(
        self,
        todo_id: int,
        user_id: str,
        content: str,
        kind: CommentKind = CommentKind.COMMENT,
    ) -> Comment:
        ...

    @abstractmethod
    async def list_comments(self, todo_id: int) -> List[Comment]:
        """Comments and activity for a todo, oldest first"""

    # Watchers

    @abstractmethod
    async def add_watcher(self, todo_id: int, user_id: str) -> bool:
        ...

    @abstractmethod
    async def remove_watcher(self, todo_id: int, user_id: str) -> bool:
        ...

    @abstractmethod
    async def list_watchers(self, todo_id: int) -> List[str]:
        ...

    # Notifications

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        """Notifications for the user, newest first"""

    async def close(self):
        """Release connections"""
        return None


class MemoryStore(Store):
    """Dict-backed store for tests and local runs"""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._todos: Dict[int, Todo] = {}
        self._issues: Dict[int, Issue] = {}
        self._comments: List[Comment] = []
        self._watchers: Set[Tuple[int, str]] = set()
        self._notifications: List[Notification] = []
        self._issue_numbers: Dict[str, int] = {}
        self._next_ids = {"todo": 1, "issue": 1, "comment": 1, "notification": 1}

    def _next_id(self, table: str) -> int:
        value = self._next_ids[table]
        self._next_ids[table] = value + 1
        return value

    async def insert_todo(self, data: TodoCreate, owner_id: str) -> Todo:
        async with self._lock:
            now = utcnow()
            todo = Todo(
                id=self._next_id("todo"),
                title=data.title,
                description=data.description,
                due_date=data.due_date,
                owner_id=owner_id,
                assignee_id=data.assignee_id or owner_id,
                project_id=data.project_id,
                correlation_id=data.correlation_id,
                created_at=now,
                updated_at=now,
            )
            self._todos[todo.id] = todo
            return todo

    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        return self._todos.get(todo_id)

    async def list_todos(self, user_id: str, archived: bool = False) -> List[Todo]:
        return [
            t for t in sorted(self._todos.values(), key=lambda t: t.id)
            if owns_todo(t, user_id) and t.is_archived == archived
        ]

    async def update_todos(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Todo]:
        wanted = set(ids)
        updated = []
        async with self._lock:
            now = utcnow()
            for todo_id in sorted(wanted):
                todo = self._todos.get(todo_id)
                if todo is None or not owns_todo(todo, user_id):
                    continue
                todo = todo.model_copy(update={**values, "updated_at": now})
                self._todos[todo_id] = todo
                updated.append(todo)
        return updated

    async def insert_issue(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        status: str,
        priority: str,
    ) -> Issue:
        async with self._lock:
            number = self._issue_numbers.get(user_id, 0) + 1
            self._issue_numbers[user_id] = number
            now = utcnow()
            issue = Issue(
                id=self._next_id("issue"),
                number=number,
                title=title,
                description=description,
                status=status,
                priority=priority,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            self._issues[issue.id] = issue
            return issue

    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        return self._issues.get(issue_id)

    async def list_issues(self, user_id: str) -> List[Issue]:
        return [
            i for i in sorted(self._issues.values(), key=lambda i: i.id, reverse=True)
            if i.user_id == user_id
        ]

    async def count_issues(self, user_id: str) -> int:
        return sum(1 for i in self._issues.values() if i.user_id == user_id)

    async def update_issues(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Issue]:
        wanted = set(ids)
        updated = []
        async with self._lock:
            now = utcnow()
            for issue_id in sorted(wanted):
                issue = self._issues.get(issue_id)
                if issue is None or issue.user_id != user_id:
                    continue
                issue = Issue.model_validate({**issue.model_dump(), **values, "updated_at": now})
                self._issues[issue_id] = issue
                updated.append(issue)
        return updated

    async def delete_issues(self, ids: Iterable[int], user_id: str) -> List[Issue]:
        wanted = set(ids)
        deleted = []
        async with self._lock:
            for issue_id in sorted(wanted):
                issue = self._issues.get(issue_id)
                if issue is None or issue.user_id != user_id:
                    continue
                deleted.append(self._issues.pop(issue_id))
        return deleted

    async def insert_comment(
        self,
        todo_id: int,
        user_id: str,
        content: str,
        kind: CommentKind = CommentKind.COMMENT,
    ) -> Comment:
        async with self._lock:
            now = utcnow()
            comment = Comment(
                id=self._next_id("comment"),
                content=content,
                todo_id=todo_id,
                user_id=user_id,
                kind=kind,
                created_at=now,
                updated_at=now,
            )
            self._comments.append(comment)
            return comment

    async def list_comments(self, todo_id: int) -> List[Comment]:
        return [c for c in self._comments if c.todo_id == todo_id]

    async def add_watcher(self, todo_id: int, user_id: str) -> bool:
        key = (todo_id, user_id)
        if key in self._watchers:
            return False
        self._watchers.add(key)
        return True

    async def remove_watcher(self, todo_id: int, user_id: str) -> bool:
        key = (todo_id, user_id)
        if key not in self._watchers:
            return False
        self._watchers.discard(key)
        return True

    async def list_watchers(self, todo_id: int) -> List[str]:
        return sorted(user_id for t, user_id in self._watchers if t == todo_id)

    async def insert_notification(self, notification: Notification) -> Notification:
        async with self._lock:
            stored = notification.model_copy(
                update={"id": self._next_id("notification"), "created_at": utcnow()}
            )
            self._notifications.append(stored)
            return stored

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        return [
            n for n in reversed(self._notifications)
            if n.user_id == user_id and (not unread_only or not n.read)
        ]
