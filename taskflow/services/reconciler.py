"""
Optimistic list reconciliation

Folds an ordered log of pending edits over the last authoritative snapshot
of a todo or issue list. The fold is a pure function of its inputs, so the
same log can be replayed against every new snapshot.
"""

import re
import secrets
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union
from pydantic import ValidationError as PydanticValidationError
from taskflow.models.edits import (
    CreateEdit,
    DeleteEdit,
    PendingEdit,
    RescheduleEdit,
    ToggleFieldEdit,
)
from taskflow.models.task import Todo, Issue


Record = Union[Todo, Issue]


def new_sentinel_id() -> int:
    """Fresh negative id for a draft record"""
    return -secrets.randbelow(2 ** 31) - 1


def _normalize_title(title: str) -> str:
    return re.sub(r"\s+", " ", (title or "").lower().strip())


def content_signature(record: Record) -> Tuple[str, Optional[str]]:
    """Title plus assignee; the fallback used when no correlation id is shared"""
    return _normalize_title(record.title), getattr(record, "assignee_id", None)


def _patched_field(edit: PendingEdit) -> Optional[str]:
    if isinstance(edit, RescheduleEdit):
        return "due_date"
    if isinstance(edit, ToggleFieldEdit):
        return edit.field
    return None


def _patched_value(edit: PendingEdit):
    if isinstance(edit, RescheduleEdit):
        return edit.due_date
    return edit.value


def resolve_creates(
    snapshot: Sequence[Record],
    edits: Iterable[PendingEdit],
    claimed_ids: FrozenSet[int] = frozenset(),
) -> Dict[str, int]:
    """
    Match pending creates to the real records that confirm them

    Correlation ids are matched first, then content signatures. Each real
    record confirms at most one draft.

    Args:
        snapshot: Authoritative records
        edits: Pending edit log
        claimed_ids: Real record ids already spent on earlier, discarded drafts

    Returns:
        Mapping of create edit_id to the id of the real record resolving it
    """
    pool = [r for r in snapshot if r.id > 0 and r.id not in claimed_ids]
    creates = [e for e in edits if isinstance(e, CreateEdit)]
    resolved: Dict[str, int] = {}
    taken: Set[int] = set()

    for edit in creates:
        correlation_id = getattr(edit.draft, "correlation_id", None)
        if not correlation_id:
            continue
        for record in pool:
            if record.id not in taken and getattr(record, "correlation_id", None) == correlation_id:
                resolved[edit.edit_id] = record.id
                taken.add(record.id)
                break

    for edit in creates:
        if edit.edit_id in resolved:
            continue
        draft_correlation = getattr(edit.draft, "correlation_id", None)
        signature = content_signature(edit.draft)
        for record in pool:
            if record.id in taken:
                continue
            record_correlation = getattr(record, "correlation_id", None)
            if draft_correlation and record_correlation:
                # both sides carry ids and they differ
                continue
            if content_signature(record) == signature:
                resolved[edit.edit_id] = record.id
                taken.add(record.id)
                break

    return resolved


def _patch(view: List[Record], ids: FrozenSet[int], field: str, value) -> List[Record]:
    patched = []
    for record in view:
        if record.id in ids and field in type(record).model_fields:
            data = record.model_dump()
            data[field] = value
            try:
                record = type(record).model_validate(data)
            except PydanticValidationError:
                pass
        patched.append(record)
    return patched


def apply_edit(view: List[Record], edit: PendingEdit, resolved: Dict[str, int]) -> List[Record]:
    """Apply one edit to a derived view"""
    if isinstance(edit, CreateEdit):
        if edit.edit_id in resolved:
            return view
        return view + [edit.draft]
    if isinstance(edit, DeleteEdit):
        return [r for r in view if r.id not in edit.ids]
    if isinstance(edit, RescheduleEdit):
        return _patch(view, edit.ids, "due_date", edit.due_date)
    if isinstance(edit, ToggleFieldEdit):
        return _patch(view, edit.ids, edit.field, edit.value)
    raise TypeError(f"Unhandled pending edit type: {type(edit).__name__}")


def reconcile(
    snapshot: Sequence[Record],
    edits: Sequence[PendingEdit],
    claimed_ids: FrozenSet[int] = frozenset(),
) -> List[Record]:
    """
    Derive the displayed list from a snapshot and a pending edit log

    Args:
        snapshot: Last authoritative list, in display order
        edits: Pending edits in the order they were issued
        claimed_ids: Real record ids that must not resolve any remaining draft

    Returns:
        New list; the snapshot is not modified
    """
    resolved = resolve_creates(snapshot, edits, claimed_ids)
    view: List[Record] = list(snapshot)
    for edit in edits:
        view = apply_edit(view, edit, resolved)
    return view


class OptimisticList:
    """Snapshot plus pending edit log for one collaborative list view"""

    def __init__(self, snapshot: Optional[Sequence[Record]] = None):
        self._snapshot: List[Record] = list(snapshot or [])
        self._edits: List[PendingEdit] = []
        self._claimed_ids: Set[int] = set()

    @property
    def snapshot(self) -> List[Record]:
        return list(self._snapshot)

    @property
    def edits(self) -> List[PendingEdit]:
        return list(self._edits)

    def apply(self, edit: PendingEdit) -> PendingEdit:
        """Record a locally issued edit; returns it so callers can keep the edit_id"""
        self._edits.append(edit)
        return edit

    def rollback(self, edit_id: str) -> bool:
        """
        Drop a pending edit whose mutation failed

        Args:
            edit_id: Id of the edit to drop

        Returns:
            True if an edit was removed
        """
        remaining = [e for e in self._edits if e.edit_id != edit_id]
        removed = len(remaining) != len(self._edits)
        self._edits = remaining
        return removed

    def view(self) -> List[Record]:
        return reconcile(self._snapshot, self._edits, frozenset(self._claimed_ids))

    def replace_snapshot(self, snapshot: Sequence[Record]) -> List[PendingEdit]:
        """
        Install a fresh authoritative snapshot and discard superseded edits

        Args:
            snapshot: New authoritative list

        Returns:
            Edits that were discarded
        """
        self._snapshot = list(snapshot)
        present = {r.id: r for r in self._snapshot}
        self._claimed_ids &= set(present)

        resolved = resolve_creates(self._snapshot, self._edits, frozenset(self._claimed_ids))
        kept: List[PendingEdit] = []
        discarded: List[PendingEdit] = []
        touched: Set[Tuple[int, str]] = set()

        for edit in self._edits:
            if isinstance(edit, CreateEdit):
                if edit.edit_id in resolved:
                    self._claimed_ids.add(resolved[edit.edit_id])
                    discarded.append(edit)
                else:
                    kept.append(edit)
            elif isinstance(edit, DeleteEdit):
                if all(i > 0 and i not in present for i in edit.ids):
                    discarded.append(edit)
                else:
                    kept.append(edit)
            elif isinstance(edit, (RescheduleEdit, ToggleFieldEdit)):
                field = _patched_field(edit)
                value = _patched_value(edit)
                confirmed = all(
                    i > 0
                    and (i, field) not in touched
                    and (i not in present or getattr(present[i], field, value) == value)
                    for i in edit.ids
                )
                if confirmed:
                    discarded.append(edit)
                else:
                    kept.append(edit)
                    touched.update((i, field) for i in edit.ids)
            else:
                raise TypeError(f"Unhandled pending edit type: {type(edit).__name__}")

        self._edits = kept
        return discarded
