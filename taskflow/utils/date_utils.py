"""
Date/time utilities
All timestamps are timezone-aware UTC
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from pydantic import BaseModel
from taskflow.models.task import Todo


def get_current_datetime() -> datetime:
    """
    Get current datetime in UTC

    Returns:
        Current datetime object with UTC timezone
    """
    return datetime.now(timezone.utc)


def get_current_datetime_for_gpt() -> str:
    """
    Get current datetime formatted for GPT prompts

    Format: "YYYY-MM-DD (YYYY-MM-DD HH:MM:SS UTC)"

    Returns:
        Formatted datetime string for GPT prompts
    """
    dt = get_current_datetime()
    return f"{dt.strftime('%Y-%m-%d')} ({dt.strftime('%Y-%m-%d %H:%M:%S')} UTC)"


def format_date_for_display(value: Optional[date], today: date) -> str:
    """Human label for a due date relative to today"""
    if value is None:
        return "No Due Date"
    if value == today:
        return "Today"
    if value == today + timedelta(days=1):
        return "Tomorrow"
    if value == today - timedelta(days=1):
        return "Yesterday"
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


class TodoGroup(BaseModel):
    """Todos sharing one due day"""
    day: Optional[date] = None
    label: str
    todos: List[Todo] = []
    is_past: bool = False


def group_todos_by_due_date(todos: List[Todo], today: Optional[date] = None) -> List[TodoGroup]:
    """
    Group a todo list by due day for display

    Dated groups are ordered by day. Undated todos join the "Today" group,
    which is always present and inserted at its chronological position.

    Args:
        todos: Todos to group, typically a reconciled view
        today: Reference day (defaults to the current UTC day)

    Returns:
        Ordered list of groups
    """
    today = today or get_current_datetime().date()

    dated = sorted((t for t in todos if t.due_date), key=lambda t: t.due_date)
    undated = [t for t in todos if not t.due_date]

    groups: List[TodoGroup] = []
    by_day = {}
    for todo in dated:
        day = todo.due_date.date()
        group = by_day.get(day)
        if group is None:
            group = TodoGroup(
                day=day,
                label=format_date_for_display(day, today),
                todos=[],
                is_past=day < today,
            )
            by_day[day] = group
            groups.append(group)
        group.todos.append(todo)

    today_group = by_day.get(today)
    if today_group is None:
        today_group = TodoGroup(day=today, label="Today", todos=[])
        position = next((i for i, g in enumerate(groups) if g.day > today), len(groups))
        groups.insert(position, today_group)
    today_group.todos.extend(undated)

    return groups
