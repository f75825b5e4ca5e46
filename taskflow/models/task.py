"""
Todo, issue, comment and notification models
"""

from typing import Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, field_validator
from taskflow.config.constants import TODO_TITLE_MAX_LENGTH
from taskflow.utils.date_parser import to_utc


class IssueStatus(str, Enum):
    """Allowed issue statuses"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class IssuePriority(str, Enum):
    """Allowed issue priorities"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CommentKind(str, Enum):
    """User/AI authored content vs system narration"""
    COMMENT = "comment"
    ACTIVITY = "activity"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class User(BaseModel):
    """Authenticated user"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class Todo(BaseModel):
    """Todo model"""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    description: Optional[str] = None
    completed: bool = False
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    owner_id: Optional[str] = Field(None, alias="ownerId")
    assignee_id: Optional[str] = Field(None, alias="assigneeId")
    project_id: Optional[int] = Field(None, alias="projectId")
    correlation_id: Optional[str] = Field(None, alias="correlationId")
    deleted_at: Optional[datetime] = Field(None, alias="deletedAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @field_validator("due_date", "deleted_at")
    @classmethod
    def dates_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)

    @property
    def is_archived(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_optimistic(self) -> bool:
        """Negative ids are drafts not yet assigned by the store"""
        return self.id < 0


class TodoCreate(BaseModel):
    """Todo creation model"""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    assignee_id: Optional[str] = Field(None, alias="assigneeId")
    project_id: Optional[int] = Field(None, alias="projectId")
    correlation_id: Optional[str] = Field(None, alias="correlationId")

    @field_validator("due_date")
    @classmethod
    def due_date_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        if len(value) > TODO_TITLE_MAX_LENGTH:
            raise ValueError(f"Title must be at most {TODO_TITLE_MAX_LENGTH} characters")
        return value


class TodoUpdate(BaseModel):
    """Partial todo update; only fields that were sent are applied"""

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[int] = Field(None, alias="projectId")
    assignee_id: Optional[str] = Field(None, alias="assigneeId")


class Issue(BaseModel):
    """Issue model"""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    number: int
    title: str
    description: Optional[str] = None
    status: IssueStatus = IssueStatus.OPEN
    priority: IssuePriority = IssuePriority.MEDIUM
    user_id: Optional[str] = Field(None, alias="userId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class IssueCreate(BaseModel):
    """Issue creation model; enum fields are validated by the action"""
    title: str = ""
    description: Optional[str] = None
    priority: str = "medium"


class Comment(BaseModel):
    """Comment or activity entry; append-only"""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    content: str
    todo_id: int = Field(alias="todoId")
    user_id: str = Field(alias="userId")
    kind: CommentKind = CommentKind.COMMENT
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class Notification(BaseModel):
    """Stored notification for a user"""

    model_config = ConfigDict(populate_by_name=True)

    id: int = 0
    user_id: str = Field(alias="userId")
    type: NotificationType = NotificationType.INFO
    message: str
    todo_id: Optional[int] = Field(None, alias="todoId")
    read: bool = False
    created_at: Optional[datetime] = Field(None, alias="createdAt")
