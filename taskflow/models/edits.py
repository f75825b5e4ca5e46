"""
Pending optimistic edits

Client-side only: an ordered log of these is folded over the last known
server snapshot to render in-flight mutations. They are never persisted.
"""

import uuid
from typing import Annotated, Any, FrozenSet, List, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from taskflow.config.constants import EDIT_PATCHABLE_FIELDS
from taskflow.models.task import Todo, Issue
from taskflow.utils.date_parser import to_utc


def _new_edit_id() -> str:
    return uuid.uuid4().hex


class _EditBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    edit_id: str = Field(default_factory=_new_edit_id)


class CreateEdit(_EditBase):
    """Append a draft record carrying a negative sentinel id"""
    type: Literal["create"] = "create"
    draft: Union[Todo, Issue]

    @field_validator("draft")
    @classmethod
    def draft_has_sentinel_id(cls, value):
        if value.id >= 0:
            raise ValueError("Draft records must carry a negative id")
        return value


class DeleteEdit(_EditBase):
    """Remove records with matching ids"""
    type: Literal["delete"] = "delete"
    ids: FrozenSet[int]


class RescheduleEdit(_EditBase):
    """Set (or clear) the due date of matching records"""
    type: Literal["reschedule"] = "reschedule"
    ids: FrozenSet[int]
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def due_date_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)


class ToggleFieldEdit(_EditBase):
    """Set a single field on matching records"""
    type: Literal["toggle_field"] = "toggle_field"
    ids: FrozenSet[int]
    field: str = "completed"
    value: Any = None

    @field_validator("field")
    @classmethod
    def field_is_patchable(cls, value: str) -> str:
        if value not in EDIT_PATCHABLE_FIELDS:
            raise ValueError(f"Field cannot be patched: {value}")
        return value


PendingEdit = Annotated[
    Union[CreateEdit, DeleteEdit, RescheduleEdit, ToggleFieldEdit],
    Field(discriminator="type"),
]

# Every variant the reconciler has to handle
PENDING_EDIT_TYPES = (CreateEdit, DeleteEdit, RescheduleEdit, ToggleFieldEdit)


class PreviewRequest(BaseModel):
    """Snapshot plus edit log, reconciled server-side"""
    snapshot: List[Todo] = Field(default_factory=list)
    edits: List[PendingEdit] = Field(default_factory=list)
