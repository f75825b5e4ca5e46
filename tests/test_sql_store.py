"""
Tests for the SQLAlchemy store
"""

import pytest
from datetime import datetime, timezone
from taskflow.models.task import CommentKind, IssueStatus, Notification, TodoCreate
from taskflow.services.sql_store import SQLStore


@pytest.fixture
def sql_store():
    return SQLStore("sqlite:///:memory:")


@pytest.mark.asyncio
async def test_todo_insert_and_scoped_listing(sql_store):
    mine = await sql_store.insert_todo(TodoCreate(title="Write report"), owner_id="alice")
    shared = await sql_store.insert_todo(TodoCreate(title="Review PR", assignee_id="bob"), owner_id="alice")
    await sql_store.insert_todo(TodoCreate(title="Bob's own"), owner_id="bob")

    assert mine.id > 0
    assert mine.assignee_id == "alice"
    assert mine.completed is False
    assert [t.id for t in await sql_store.list_todos("alice")] == [mine.id, shared.id]
    assert [t.title for t in await sql_store.list_todos("bob")] == ["Review PR", "Bob's own"]


@pytest.mark.asyncio
async def test_update_todos_skips_foreign_rows(sql_store):
    mine = await sql_store.insert_todo(TodoCreate(title="Write report"), owner_id="alice")
    theirs = await sql_store.insert_todo(TodoCreate(title="Bob's own"), owner_id="bob")

    updated = await sql_store.update_todos([mine.id, theirs.id], "alice", {"completed": True})

    assert [t.id for t in updated] == [mine.id]
    assert (await sql_store.get_todo(mine.id)).completed is True
    assert (await sql_store.get_todo(theirs.id)).completed is False


@pytest.mark.asyncio
async def test_soft_delete_moves_todo_to_archive(sql_store):
    todo = await sql_store.insert_todo(TodoCreate(title="Write report"), owner_id="alice")

    await sql_store.update_todos([todo.id], "alice", {"deleted_at": datetime.now(timezone.utc)})

    assert await sql_store.list_todos("alice") == []
    assert [t.id for t in await sql_store.list_todos("alice", archived=True)] == [todo.id]


@pytest.mark.asyncio
async def test_issue_numbers_are_never_reused(sql_store):
    first = await sql_store.insert_issue("alice", "First", None, "open", "medium")
    second = await sql_store.insert_issue("alice", "Second", None, "open", "high")
    await sql_store.delete_issues([second.id], "alice")
    third = await sql_store.insert_issue("alice", "Third", None, "open", "low")
    bobs = await sql_store.insert_issue("bob", "Bob's", None, "open", "low")

    assert [first.number, second.number, third.number] == [1, 2, 3]
    assert bobs.number == 1
    assert await sql_store.count_issues("alice") == 2
    assert [i.id for i in await sql_store.list_issues("alice")] == [third.id, first.id]


@pytest.mark.asyncio
async def test_update_and_delete_issues_are_scoped(sql_store):
    issue = await sql_store.insert_issue("alice", "Crash", None, "open", "medium")

    assert await sql_store.update_issues([issue.id], "bob", {"status": "closed"}) == []
    assert await sql_store.delete_issues([issue.id], "bob") == []

    updated = await sql_store.update_issues([issue.id], "alice", {"status": IssueStatus.CLOSED})
    assert updated[0].status == IssueStatus.CLOSED


@pytest.mark.asyncio
async def test_comments_watchers_and_notifications(sql_store):
    todo = await sql_store.insert_todo(TodoCreate(title="Write report"), owner_id="alice")

    await sql_store.insert_comment(todo.id, "alice", "created", CommentKind.ACTIVITY)
    await sql_store.insert_comment(todo.id, "bob", "Looks good")
    comments = await sql_store.list_comments(todo.id)
    assert [(c.kind, c.content) for c in comments] == [
        (CommentKind.ACTIVITY, "created"),
        (CommentKind.COMMENT, "Looks good"),
    ]

    assert await sql_store.add_watcher(todo.id, "bob") is True
    assert await sql_store.add_watcher(todo.id, "bob") is False
    assert await sql_store.list_watchers(todo.id) == ["bob"]
    assert await sql_store.remove_watcher(todo.id, "bob") is True
    assert await sql_store.remove_watcher(todo.id, "bob") is False

    await sql_store.insert_notification(Notification(user_id="bob", message="old", read=True))
    await sql_store.insert_notification(Notification(user_id="bob", message="new", todo_id=todo.id))
    assert [n.message for n in await sql_store.list_notifications("bob")] == ["new", "old"]
    assert [n.message for n in await sql_store.list_notifications("bob", unread_only=True)] == ["new"]

    await sql_store.close()
