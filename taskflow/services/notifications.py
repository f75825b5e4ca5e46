"""
Notification fan-out to todo watchers
"""

from typing import List, Optional
from taskflow.models.task import Notification, NotificationType, Todo
from taskflow.services.store import Store
from taskflow.utils.logger import logger


class NotificationService:
    """Stores notifications for users watching a todo"""

    def __init__(self, store: Store):
        self.store = store
        self.logger = logger

    async def create_notification(
        self,
        user_id: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        todo_id: Optional[int] = None,
    ) -> Notification:
        return await self.store.insert_notification(
            Notification(user_id=user_id, type=type, message=message, todo_id=todo_id)
        )

    async def watchers_of(self, todo: Todo) -> List[str]:
        """Explicit watchers plus the owner and assignee"""
        watchers = set(await self.store.list_watchers(todo.id))
        for implicit in (todo.owner_id, todo.assignee_id):
            if implicit:
                watchers.add(implicit)
        return sorted(watchers)

    async def notify_watchers(
        self,
        todo: Todo,
        message: str,
        type: NotificationType = NotificationType.INFO,
        exclude: Optional[str] = None,
    ) -> int:
        """
        Notify everyone watching a todo

        Args:
            todo: Todo that changed
            message: Notification text
            type: Notification type
            exclude: User who caused the change

        Returns:
            Number of notifications created
        """
        recipients = [u for u in await self.watchers_of(todo) if u != exclude]
        for user_id in recipients:
            await self.create_notification(user_id, message, type=type, todo_id=todo.id)
        if recipients:
            self.logger.debug(f"[Notifications] Todo {todo.id}: notified {len(recipients)} watcher(s)")
        return len(recipients)
