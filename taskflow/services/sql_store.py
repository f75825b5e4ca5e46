"""
SQLAlchemy-backed store
"""

import asyncio
import threading
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, delete, func, or_, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.models.task import (
    Comment,
    CommentKind,
    Issue,
    Notification,
    Todo,
    TodoCreate,
)
from taskflow.services.db_models import (
    Base,
    CommentRow,
    IssueCounterRow,
    IssueRow,
    NotificationRow,
    TodoRow,
    WatcherRow,
    utcnow,
)
from taskflow.services.store import Store
from taskflow.utils.logger import logger


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _todo(row: TodoRow) -> Todo:
    return Todo(
        id=row.id,
        title=row.title,
        description=row.description,
        completed=row.completed,
        due_date=row.due_date,
        owner_id=row.owner_id,
        assignee_id=row.assignee_id,
        project_id=row.project_id,
        correlation_id=row.correlation_id,
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _issue(row: IssueRow) -> Issue:
    return Issue(
        id=row.id,
        number=row.number,
        title=row.title,
        description=row.description,
        status=row.status,
        priority=row.priority,
        user_id=row.user_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _comment(row: CommentRow) -> Comment:
    return Comment(
        id=row.id,
        content=row.content,
        todo_id=row.todo_id,
        user_id=row.user_id,
        kind=row.kind,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        message=row.message,
        todo_id=row.todo_id,
        read=row.read,
        created_at=row.created_at,
    )


class SQLStore(Store):
    """Relational store; blocking calls run in a worker thread"""

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize SQL store and create missing tables

        Args:
            database_url: SQLAlchemy database URL
            echo: Log emitted SQL
        """
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        self._is_sqlite = database_url.startswith("sqlite")
        if self._is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)
        # SQLite allows one writer at a time
        self._write_lock = threading.Lock()
        self.logger = logger

        Base.metadata.create_all(self.engine)
        self.logger.info(f"[SQLStore] Connected to {self.engine.url.render_as_string(hide_password=True)}")

    def _call(self, fn: Callable[[Session], Any]) -> Any:
        if self._is_sqlite:
            with self._write_lock:
                with self._sessions.begin() as session:
                    return fn(session)
        with self._sessions.begin() as session:
            return fn(session)

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        return await asyncio.to_thread(self._call, fn)

    # Todos

    async def insert_todo(self, data: TodoCreate, owner_id: str) -> Todo:
        def work(session: Session) -> Todo:
            row = TodoRow(
                title=data.title,
                description=data.description,
                due_date=data.due_date,
                owner_id=owner_id,
                assignee_id=data.assignee_id or owner_id,
                project_id=data.project_id,
                correlation_id=data.correlation_id,
            )
            session.add(row)
            session.flush()
            return _todo(row)

        return await self._run(work)

    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        def work(session: Session) -> Optional[Todo]:
            row = session.get(TodoRow, todo_id)
            return _todo(row) if row else None

        return await self._run(work)

    async def list_todos(self, user_id: str, archived: bool = False) -> List[Todo]:
        def work(session: Session) -> List[Todo]:
            deleted_filter = TodoRow.deleted_at.is_not(None) if archived else TodoRow.deleted_at.is_(None)
            stmt = (
                select(TodoRow)
                .where(or_(TodoRow.owner_id == user_id, TodoRow.assignee_id == user_id), deleted_filter)
                .order_by(TodoRow.id)
            )
            return [_todo(r) for r in session.scalars(stmt)]

        return await self._run(work)

    async def update_todos(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Todo]:
        wanted = sorted(set(ids))

        def work(session: Session) -> List[Todo]:
            if not wanted:
                return []
            stmt = (
                select(TodoRow)
                .where(
                    TodoRow.id.in_(wanted),
                    or_(TodoRow.owner_id == user_id, TodoRow.assignee_id == user_id),
                )
                .order_by(TodoRow.id)
            )
            rows = list(session.scalars(stmt))
            now = utcnow()
            for row in rows:
                for name, value in values.items():
                    setattr(row, name, _plain(value))
                row.updated_at = now
            session.flush()
            return [_todo(r) for r in rows]

        return await self._run(work)

    # Issues

    async def insert_issue(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        status: str,
        priority: str,
    ) -> Issue:
        def work(session: Session) -> Issue:
            counter = session.get(IssueCounterRow, user_id, with_for_update=True)
            if counter is None:
                counter = IssueCounterRow(user_id=user_id, last_number=0)
                session.add(counter)
            counter.last_number += 1
            row = IssueRow(
                number=counter.last_number,
                title=title,
                description=description,
                status=_plain(status),
                priority=_plain(priority),
                user_id=user_id,
            )
            session.add(row)
            session.flush()
            return _issue(row)

        return await self._run(work)

    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        def work(session: Session) -> Optional[Issue]:
            row = session.get(IssueRow, issue_id)
            return _issue(row) if row else None

        return await self._run(work)

    async def list_issues(self, user_id: str) -> List[Issue]:
        def work(session: Session) -> List[Issue]:
            stmt = select(IssueRow).where(IssueRow.user_id == user_id).order_by(IssueRow.id.desc())
            return [_issue(r) for r in session.scalars(stmt)]

        return await self._run(work)

    async def count_issues(self, user_id: str) -> int:
        def work(session: Session) -> int:
            stmt = select(func.count()).select_from(IssueRow).where(IssueRow.user_id == user_id)
            return int(session.scalar(stmt) or 0)

        return await self._run(work)

    async def update_issues(self, ids: Iterable[int], user_id: str, values: Dict[str, Any]) -> List[Issue]:
        wanted = sorted(set(ids))

        def work(session: Session) -> List[Issue]:
            if not wanted:
                return []
            stmt = (
                select(IssueRow)
                .where(IssueRow.id.in_(wanted), IssueRow.user_id == user_id)
                .order_by(IssueRow.id)
            )
            rows = list(session.scalars(stmt))
            now = utcnow()
            for row in rows:
                for name, value in values.items():
                    setattr(row, name, _plain(value))
                row.updated_at = now
            session.flush()
            return [_issue(r) for r in rows]

        return await self._run(work)

    async def delete_issues(self, ids: Iterable[int], user_id: str) -> List[Issue]:
        wanted = sorted(set(ids))

        def work(session: Session) -> List[Issue]:
            if not wanted:
                return []
            stmt = (
                select(IssueRow)
                .where(IssueRow.id.in_(wanted), IssueRow.user_id == user_id)
                .order_by(IssueRow.id)
            )
            deleted = [_issue(r) for r in session.scalars(stmt)]
            if deleted:
                session.execute(
                    delete(IssueRow).where(IssueRow.id.in_([i.id for i in deleted]))
                )
            return deleted

        return await self._run(work)

    # Comments and activity

    async def insert_comment(
        self,
        todo_id: int,
        user_id: str,
        content: str,
        kind: CommentKind = CommentKind.COMMENT,
    ) -> Comment:
        def work(session: Session) -> Comment:
            row = CommentRow(content=content, todo_id=todo_id, user_id=user_id, kind=_plain(kind))
            session.add(row)
            session.flush()
            return _comment(row)

        return await self._run(work)

    async def list_comments(self, todo_id: int) -> List[Comment]:
        def work(session: Session) -> List[Comment]:
            stmt = select(CommentRow).where(CommentRow.todo_id == todo_id).order_by(CommentRow.id)
            return [_comment(r) for r in session.scalars(stmt)]

        return await self._run(work)

    # Watchers

    async def add_watcher(self, todo_id: int, user_id: str) -> bool:
        def work(session: Session) -> bool:
            if session.get(WatcherRow, (todo_id, user_id)) is not None:
                return False
            session.add(WatcherRow(todo_id=todo_id, user_id=user_id))
            return True

        return await self._run(work)

    async def remove_watcher(self, todo_id: int, user_id: str) -> bool:
        def work(session: Session) -> bool:
            row = session.get(WatcherRow, (todo_id, user_id))
            if row is None:
                return False
            session.delete(row)
            return True

        return await self._run(work)

    async def list_watchers(self, todo_id: int) -> List[str]:
        def work(session: Session) -> List[str]:
            stmt = select(WatcherRow.user_id).where(WatcherRow.todo_id == todo_id).order_by(WatcherRow.user_id)
            return list(session.scalars(stmt))

        return await self._run(work)

    # Notifications

    async def insert_notification(self, notification: Notification) -> Notification:
        def work(session: Session) -> Notification:
            row = NotificationRow(
                user_id=notification.user_id,
                type=_plain(notification.type),
                message=notification.message,
                todo_id=notification.todo_id,
                read=notification.read,
            )
            session.add(row)
            session.flush()
            return _notification(row)

        return await self._run(work)

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        def work(session: Session) -> List[Notification]:
            stmt = select(NotificationRow).where(NotificationRow.user_id == user_id)
            if unread_only:
                stmt = stmt.where(NotificationRow.read.is_(False))
            stmt = stmt.order_by(NotificationRow.id.desc())
            return [_notification(r) for r in session.scalars(stmt)]

        return await self._run(work)

    async def close(self):
        """Dispose connection pool"""
        await asyncio.to_thread(self.engine.dispose)
