"""
Tests for issue actions
"""

import pytest
from taskflow.models.billing import Subscription
from taskflow.models.task import IssueCreate, IssuePriority, IssueStatus


async def create(issue_actions, user, title="Login button misaligned", priority="medium"):
    result = await issue_actions.create_issue(user, IssueCreate(title=title, priority=priority))
    assert result.success, result.message
    return result.data["issue"]["id"]


@pytest.mark.asyncio
async def test_create_issue_defaults(issue_actions, memory_store, alice):
    issue_id = await create(issue_actions, alice)

    issue = await memory_store.get_issue(issue_id)
    assert issue.status == IssueStatus.OPEN
    assert issue.priority == IssuePriority.MEDIUM
    assert issue.number == 1
    assert issue.user_id == alice.id


@pytest.mark.asyncio
async def test_issue_numbers_are_per_user(issue_actions, memory_store, alice, bob):
    await create(issue_actions, alice)
    second = await create(issue_actions, alice, "Typo on pricing page")
    bobs = await create(issue_actions, bob)

    assert (await memory_store.get_issue(second)).number == 2
    assert (await memory_store.get_issue(bobs)).number == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("data, message", [
    (IssueCreate(title="   "), "Title is required"),
    (IssueCreate(title="x" * 256), "Title must be at most 255 characters"),
    (IssueCreate(title="Crash on save", priority="urgent"), "Invalid priority value"),
])
async def test_create_issue_validation(issue_actions, alice, data, message):
    result = await issue_actions.create_issue(alice, data)

    assert result.success is False
    assert result.message == message


@pytest.mark.asyncio
async def test_free_plan_issue_limit(issue_actions, alice):
    for i in range(10):
        await create(issue_actions, alice, f"Issue {i}")

    result = await issue_actions.create_issue(alice, IssueCreate(title="One too many"))

    assert result.success is False
    assert result.message == "Free plan is limited to 10 issues. Upgrade to Pro for unlimited issues."
    assert await issue_actions.count_issues(alice) == 10


@pytest.mark.asyncio
async def test_pro_plan_has_no_issue_limit(issue_actions, subscriptions, alice):
    subscriptions.set_subscription(alice.id, Subscription(status="active", price_id="price_pro"))
    for i in range(11):
        await create(issue_actions, alice, f"Issue {i}")

    assert await issue_actions.count_issues(alice) == 11


@pytest.mark.asyncio
async def test_update_status_and_priority(issue_actions, memory_store, alice):
    issue_id = await create(issue_actions, alice)

    status = await issue_actions.update_status(alice, issue_id, "in_progress")
    priority = await issue_actions.update_priority(alice, issue_id, "high")

    assert status.message == "Issue status updated"
    assert priority.message == "Issue priority updated"
    issue = await memory_store.get_issue(issue_id)
    assert issue.status == IssueStatus.IN_PROGRESS
    assert issue.priority == IssuePriority.HIGH


@pytest.mark.asyncio
async def test_invalid_status_is_rejected(issue_actions, alice):
    issue_id = await create(issue_actions, alice)

    result = await issue_actions.update_status(alice, issue_id, "done")

    assert result.success is False
    assert result.message == "Invalid status value"


@pytest.mark.asyncio
async def test_unsaved_issue_cannot_be_updated(issue_actions, alice):
    result = await issue_actions.update_status(alice, -3, "closed")

    assert result.success is False


@pytest.mark.asyncio
async def test_foreign_issue_is_untouched(issue_actions, memory_store, alice, bob):
    issue_id = await create(issue_actions, alice)

    result = await issue_actions.update_status(bob, issue_id, "closed")
    deleted = await issue_actions.delete_issue(bob, issue_id)

    assert result.success is True
    assert result.affected == 0
    assert deleted.affected == 0
    assert (await memory_store.get_issue(issue_id)).status == IssueStatus.OPEN


@pytest.mark.asyncio
async def test_delete_issue(issue_actions, alice):
    issue_id = await create(issue_actions, alice)

    result = await issue_actions.delete_issue(alice, issue_id)

    assert result.message == "Issue deleted"
    assert await issue_actions.list_issues(alice) == []


@pytest.mark.asyncio
async def test_list_issues_newest_first(issue_actions, alice):
    first = await create(issue_actions, alice, "First")
    second = await create(issue_actions, alice, "Second")

    assert [i.id for i in await issue_actions.list_issues(alice)] == [second, first]


@pytest.mark.asyncio
async def test_bulk_close_through_queue_and_replay(issue_actions, memory_store, memory_queue, dispatcher, alice):
    ids = [await create(issue_actions, alice, f"Issue {i}") for i in range(3)]

    scheduled = await issue_actions.bulk_update_status(alice, ids, "closed")

    assert scheduled.success is True
    assert scheduled.job_id is not None
    assert scheduled.data["deduplicated"] is False
    assert all(i.status == IssueStatus.OPEN for i in await memory_store.list_issues(alice.id))

    assert await memory_queue.drain() == 1
    assert all(i.status == IssueStatus.CLOSED for i in await memory_store.list_issues(alice.id))

    replay = await issue_actions.bulk_update_status(alice, list(reversed(ids)), "closed")
    assert replay.data["deduplicated"] is True
    assert replay.job_id == scheduled.job_id
    assert memory_queue.pending == []


@pytest.mark.asyncio
async def test_foreign_bulk_does_not_suppress_owner_bulk(issue_actions, memory_store, memory_queue, dispatcher, alice, bob):
    issue_id = await create(issue_actions, alice)

    foreign = await issue_actions.bulk_update_status(bob, [issue_id], "closed")
    own = await issue_actions.bulk_update_status(alice, [issue_id], "closed")

    assert foreign.data["key"] != own.data["key"]
    assert own.data["deduplicated"] is False
    assert await memory_queue.drain() == 2
    assert (await memory_store.get_issue(issue_id)).status == IssueStatus.CLOSED


@pytest.mark.asyncio
async def test_bulk_priority_and_delete(issue_actions, memory_store, memory_queue, dispatcher, alice):
    ids = [await create(issue_actions, alice, f"Issue {i}") for i in range(2)]

    await issue_actions.bulk_update_priority(alice, ids, "low")
    await memory_queue.drain()
    assert all(i.priority == IssuePriority.LOW for i in await memory_store.list_issues(alice.id))

    await issue_actions.bulk_delete(alice, ids + [-1])
    await memory_queue.drain()
    assert await memory_store.count_issues(alice.id) == 0


@pytest.mark.asyncio
async def test_bulk_with_invalid_value_is_not_queued(issue_actions, memory_queue, alice):
    result = await issue_actions.bulk_update_priority(alice, [1, 2], "critical")

    assert result.success is False
    assert memory_queue.pending == []
