"""
Activity and notification message formatting
"""

from datetime import datetime
from typing import Optional
from taskflow.config.constants import AI_USER_ID
from taskflow.models.task import Todo


def format_due_date_activity(due_date: Optional[datetime]) -> str:
    """
    Format activity entry for a due date change

    Args:
        due_date: New due date, None when cleared

    Returns:
        Activity text
    """
    if due_date is None:
        return "due date removed"
    return f"due date set to {due_date.strftime('%Y-%m-%d')}"


def format_completion_activity(completed: bool) -> str:
    return "marked as completed" if completed else "marked as not completed"


def format_title_activity(title: str) -> str:
    return f"title changed to \"{title}\""


def format_description_activity(description: Optional[str]) -> str:
    return "description updated" if description else "description removed"


def format_project_activity(project_id: Optional[int]) -> str:
    return f"moved to project {project_id}" if project_id is not None else "removed from project"


def format_assignee_activity(assignee_id: Optional[str]) -> str:
    return f"assigned to {assignee_id}" if assignee_id else "unassigned"


def format_deleted_activity() -> str:
    return "moved to archive"


def format_restored_activity() -> str:
    return "restored from archive"


def format_actor(actor_id: str) -> str:
    """Display name for whoever made a change"""
    return "AI assistant" if actor_id == AI_USER_ID else actor_id


def format_watcher_notification(todo: Todo, activity: str, actor_id: str) -> str:
    """
    Format notification text sent to watchers of a todo

    Args:
        todo: Todo that changed
        activity: Activity text describing the change
        actor_id: User who made the change

    Returns:
        Notification message
    """
    return f"{format_actor(actor_id)} changed \"{todo.title}\": {activity}"


def format_affected(count: int, noun: str = "todo") -> str:
    """Summary such as '3 todos updated'"""
    return f"{count} {noun}{'' if count == 1 else 's'} updated"
