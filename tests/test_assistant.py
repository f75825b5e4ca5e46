"""
Tests for the AI assistant bridge
"""

import json
import pytest
from types import SimpleNamespace
from taskflow.config.constants import AI_USER_ID
from taskflow.models.response import ChatReply, RateLimitedResponse
from taskflow.models.task import CommentKind, TodoCreate
from taskflow.services.assistant import CHAT_FAILURE_MESSAGE, FALLBACK_REPLY, TOOL_NAMES, AssistantService
from taskflow.services.rate_limiter import RateLimitStore, TokenBucketLimiter
from taskflow.utils.error_handler import DownstreamError, NotFoundError


def tool_call(call_id, name, arguments):
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


def assistant_message(content=None, tool_calls=None):
    return SimpleNamespace(content=content, tool_calls=tool_calls)


class BrokenStore(RateLimitStore):
    async def token_bucket(self, key, max_tokens, refill_rate, interval_ms, now, cost=1):
        raise ConnectionError("redis down")


@pytest.fixture
def assistant(todo_actions, message_limiter, mock_openai_client):
    return AssistantService(todo_actions, message_limiter, mock_openai_client)


def test_tool_menu():
    assert TOOL_NAMES == (
        "update_todo_title",
        "update_todo_description",
        "update_todo_due_date",
        "toggle_todo_completion",
    )


@pytest.mark.asyncio
async def test_chat_reports_provider_outage(assistant, memory_store, mock_openai_client, alice):
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)
    mock_openai_client.chat_with_tools.side_effect = RuntimeError("provider down")

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "Any tips?"}])

    assert isinstance(reply, ChatReply)
    assert reply.success is False
    assert reply.message == CHAT_FAILURE_MESSAGE
    assert reply.remaining == 9
    comments = await memory_store.list_comments(todo.id)
    assert [c.user_id for c in comments] == [alice.id]


@pytest.mark.asyncio
async def test_chat_runs_tool_and_replies(assistant, memory_store, mock_openai_client, alice):
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)
    mock_openai_client.chat_with_tools.side_effect = [
        assistant_message(tool_calls=[tool_call("call_1", "toggle_todo_completion", {})]),
        assistant_message(content="Marked it as done."),
    ]

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "I booked them"}])

    assert isinstance(reply, ChatReply)
    assert reply.message == "Marked it as done."
    assert reply.tool_calls == 1
    assert reply.remaining == 9
    assert (await memory_store.get_todo(todo.id)).completed is True

    comments = await memory_store.list_comments(todo.id)
    assert [(c.user_id, c.kind, c.content) for c in comments] == [
        (alice.id, CommentKind.COMMENT, "I booked them"),
        (AI_USER_ID, CommentKind.ACTIVITY, "marked as completed"),
        (AI_USER_ID, CommentKind.COMMENT, "Marked it as done."),
    ]

    second_round = mock_openai_client.chat_with_tools.await_args_list[1].args[0]
    assert second_round[0]["role"] == "system"
    assert "Book flights" in second_round[0]["content"]
    assert second_round[-2]["tool_calls"][0]["id"] == "call_1"
    tool_result = json.loads(second_round[-1]["content"])
    assert second_round[-1]["tool_call_id"] == "call_1"
    assert tool_result == {"success": True, "message": "1 todo updated", "affected": 1}


@pytest.mark.asyncio
async def test_chat_updates_due_date(assistant, memory_store, mock_openai_client, alice):
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)
    mock_openai_client.chat_with_tools.side_effect = [
        assistant_message(tool_calls=[
            tool_call("call_1", "update_todo_due_date", {"due_date": "2026-11-02"}),
            tool_call("call_2", "update_todo_title", {"title": "Book flights to Lisbon"}),
        ]),
        assistant_message(content=""),
    ]

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "Lisbon, by Nov 2"}])

    updated = await memory_store.get_todo(todo.id)
    assert updated.title == "Book flights to Lisbon"
    assert updated.due_date.date().isoformat() == "2026-11-02"
    assert reply.tool_calls == 2
    assert reply.message == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_chat_cannot_reach_foreign_todo(assistant, memory_store, mock_openai_client, alice, bob):
    mine = await memory_store.insert_todo(TodoCreate(title="Mine"), owner_id=alice.id)
    theirs = await memory_store.insert_todo(TodoCreate(title="Theirs"), owner_id=bob.id)
    mock_openai_client.chat_with_tools.side_effect = [
        assistant_message(tool_calls=[tool_call("call_1", "toggle_todo_completion", {"todo_id": theirs.id})]),
        assistant_message(content="Done"),
    ]

    await assistant.chat(alice, mine.id, [{"role": "user", "content": "close the other one"}])

    assert (await memory_store.get_todo(theirs.id)).completed is False
    with pytest.raises(NotFoundError):
        await assistant.chat(alice, theirs.id, [{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_chat_stops_after_max_steps(todo_actions, message_limiter, memory_store, mock_openai_client, alice):
    assistant = AssistantService(todo_actions, message_limiter, mock_openai_client, max_steps=2)
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)
    mock_openai_client.chat_with_tools.return_value = assistant_message(
        tool_calls=[tool_call("call_x", "update_todo_description", {"description": "again"})]
    )

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "loop"}])

    assert mock_openai_client.chat_with_tools.await_count == 2
    assert reply.message == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_chat_is_rate_limited(assistant, memory_store, mock_openai_client, alice):
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)
    mock_openai_client.chat_with_tools.return_value = assistant_message(content="ok")
    for _ in range(10):
        await assistant.chat(alice, todo.id, [{"role": "user", "content": "hi"}])
    calls_before = mock_openai_client.chat_with_tools.await_count

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "one more"}])

    assert isinstance(reply, RateLimitedResponse)
    assert reply.status_code == 429
    assert reply.remaining == 0
    assert mock_openai_client.chat_with_tools.await_count == calls_before
    contents = [c.content for c in await memory_store.list_comments(todo.id)]
    assert "one more" not in contents


@pytest.mark.asyncio
async def test_limiter_outage_returns_503(todo_actions, plan_resolver, memory_store, mock_openai_client, alice):
    limiter = TokenBucketLimiter(BrokenStore(), plan_resolver)
    assistant = AssistantService(todo_actions, limiter, mock_openai_client)
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)

    reply = await assistant.chat(alice, todo.id, [{"role": "user", "content": "hi"}])

    assert isinstance(reply, RateLimitedResponse)
    assert reply.status_code == 503
    mock_openai_client.chat_with_tools.assert_not_awaited()


@pytest.mark.asyncio
async def test_chat_without_ai_client(todo_actions, message_limiter, memory_store, alice):
    assistant = AssistantService(todo_actions, message_limiter, None)
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)

    with pytest.raises(DownstreamError):
        await assistant.chat(alice, todo.id, [{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_generate_description_is_metered_and_queued(
    assistant, memory_store, memory_queue, dispatcher, message_limiter, alice
):
    todo = await memory_store.insert_todo(TodoCreate(title="Book flights"), owner_id=alice.id)

    result = await assistant.generate_todo_description(alice, todo.id)

    assert result.success is True
    assert result.job_id is not None
    assert result.data["key"] == f"generate-description-{alice.id}-{todo.id}"
    assert (await message_limiter.peek(alice.id)).remaining == 9

    assert await memory_queue.drain() == 1
    assert (await memory_store.get_todo(todo.id)).description is not None
