"""
Background queue task models
"""

from typing import Annotated, Iterable, List, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, Field, TypeAdapter


def build_dedup_key(task_type: str, user_id: str, ids: Iterable[int], value: Optional[str] = None) -> str:
    """
    Build a deterministic deduplication key for a bulk operation

    Args:
        task_type: Queue task type (underscores become dashes)
        user_id: User the operation runs for; equal id sets from different users never collide
        ids: Record ids; order does not matter
        value: Operation value that distinguishes otherwise equal submissions

    Returns:
        Key such as "update-issue-status-user_1-3-7-closed"
    """
    parts = [task_type.replace("_", "-"), user_id]
    parts.extend(str(i) for i in sorted(set(ids)))
    if value is not None:
        parts.append(value)
    return "-".join(parts)


class _QueueTaskBase(BaseModel):
    key: str = ""
    user_id: str

    def dedup_value(self) -> Optional[str]:
        return None

    def target_ids(self) -> List[int]:
        return list(getattr(self, "ids", []))

    def model_post_init(self, __context) -> None:
        if not self.key:
            self.key = build_dedup_key(self.type, self.user_id, self.target_ids(), self.dedup_value())


class DeleteTodosTask(_QueueTaskBase):
    type: Literal["delete_todos"] = "delete_todos"
    ids: List[int]


class RestoreTodosTask(_QueueTaskBase):
    type: Literal["restore_todos"] = "restore_todos"
    ids: List[int]


class UpdateDueDateTask(_QueueTaskBase):
    type: Literal["update_due_date"] = "update_due_date"
    ids: List[int]
    due_date: Optional[datetime] = None

    def dedup_value(self) -> Optional[str]:
        return self.due_date.isoformat() if self.due_date else "none"


class ToggleCompletedTask(_QueueTaskBase):
    type: Literal["toggle_completed"] = "toggle_completed"
    ids: List[int]
    completed: bool

    def dedup_value(self) -> Optional[str]:
        return "true" if self.completed else "false"


class UpdateIssueStatusTask(_QueueTaskBase):
    type: Literal["update_issue_status"] = "update_issue_status"
    ids: List[int]
    status: str

    def dedup_value(self) -> Optional[str]:
        return self.status


class UpdateIssuePriorityTask(_QueueTaskBase):
    type: Literal["update_issue_priority"] = "update_issue_priority"
    ids: List[int]
    priority: str

    def dedup_value(self) -> Optional[str]:
        return self.priority


class DeleteIssuesTask(_QueueTaskBase):
    type: Literal["delete_issues"] = "delete_issues"
    ids: List[int]


class GenerateDescriptionTask(_QueueTaskBase):
    type: Literal["generate_description"] = "generate_description"
    todo_id: int
    title: str

    def target_ids(self) -> List[int]:
        return [self.todo_id]


QueueTask = Annotated[
    Union[
        DeleteTodosTask,
        RestoreTodosTask,
        UpdateDueDateTask,
        ToggleCompletedTask,
        UpdateIssueStatusTask,
        UpdateIssuePriorityTask,
        DeleteIssuesTask,
        GenerateDescriptionTask,
    ],
    Field(discriminator="type"),
]


class PublishResult(BaseModel):
    """Queue publish acknowledgement"""
    message_id: str
    deduplicated: bool = False


queue_task_adapter = TypeAdapter(QueueTask)


def parse_queue_task(payload: dict):
    """Validate a delivered payload into its concrete task model"""
    return queue_task_adapter.validate_python(payload)
