"""
AI assistant bridge: metered chat with tool calls on a todo
"""

import json
from typing import Any, Dict, List, Optional, Union
from taskflow.config.constants import AI_MAX_STEPS, AI_USER_ID
from taskflow.models.queue import GenerateDescriptionTask
from taskflow.models.response import ActionResult, ChatReply, RateLimitedResponse, RateLimitResult
from taskflow.models.task import Todo, User
from taskflow.services.prompt_manager import PromptManager
from taskflow.services.rate_limiter import TokenBucketLimiter
from taskflow.services.store import owns_todo
from taskflow.services.todo_actions import TodoActions, require_user
from taskflow.utils.error_handler import DownstreamError, NotFoundError, failure_result
from taskflow.utils.logger import logger


TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "update_todo_title",
            "description": "Update the todo title to any text",
            "parameters": {
                "type": "object",
                "properties": {
                    "todo_id": {"type": "integer", "description": "The ID of the todo to update"},
                    "title": {"type": "string", "description": "The new title for the todo"},
                },
                "required": ["title"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_todo_description",
            "description": "Update the todo description to any text",
            "parameters": {
                "type": "object",
                "properties": {
                    "todo_id": {"type": "integer", "description": "The ID of the todo to update"},
                    "description": {"type": "string", "description": "The new description for the todo"},
                },
                "required": ["description"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_todo_due_date",
            "description": "Update the todo due date to any date, past or future",
            "parameters": {
                "type": "object",
                "properties": {
                    "todo_id": {"type": "integer", "description": "The ID of the todo to update"},
                    "due_date": {
                        "type": ["string", "null"],
                        "description": "The new due date in ISO format, or null to remove the due date",
                    },
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "toggle_todo_completion",
            "description": "Mark the todo as complete or incomplete",
            "parameters": {
                "type": "object",
                "properties": {
                    "todo_id": {"type": "integer", "description": "The ID of the todo to toggle"},
                    "completed": {
                        "type": "boolean",
                        "description": "Specific completion status, or omit to toggle",
                    },
                },
                "required": [],
            },
        },
    },
]

TOOL_NAMES = tuple(t["function"]["name"] for t in TOOLS)

FALLBACK_REPLY = "Done. Let me know if you need anything else."
CHAT_FAILURE_MESSAGE = "The assistant is unavailable right now. Please try again later."


class AssistantService:
    """Service for AI chat and description generation on todos"""

    def __init__(
        self,
        todo_actions: TodoActions,
        limiter: TokenBucketLimiter,
        openai_client,
        prompt_manager: Optional[PromptManager] = None,
        max_steps: int = AI_MAX_STEPS,
    ):
        """
        Initialize assistant service

        Args:
            todo_actions: Todo actions the tools execute through
            limiter: Per-user message limiter
            openai_client: OpenAI client
            prompt_manager: Prompt templates
            max_steps: Completion rounds per chat turn
        """
        self.todo_actions = todo_actions
        self.store = todo_actions.store
        self.limiter = limiter
        self.openai_client = openai_client
        self.prompt_manager = prompt_manager or PromptManager()
        self.max_steps = max_steps
        self.logger = logger

    async def _load_todo(self, user: User, todo_id: int) -> Todo:
        todo = await self.store.get_todo(todo_id)
        if todo is None or not owns_todo(todo, user.id):
            raise NotFoundError("Todo not found")
        return todo

    @staticmethod
    def _limited(result: RateLimitResult) -> RateLimitedResponse:
        if result.error:
            return RateLimitedResponse(
                status_code=503,
                message="Usage service is unavailable. Please try again later.",
                remaining=0,
                reset_at_ms=result.reset_at_ms,
            )
        return RateLimitedResponse(remaining=result.remaining, reset_at_ms=result.reset_at_ms)

    async def execute_tool(self, name: str, arguments: Dict[str, Any], todo: Todo, user_id: str) -> ActionResult:
        """
        Execute one tool call as the AI on behalf of the user

        Args:
            name: Tool name
            arguments: Parsed JSON arguments
            todo: Todo the conversation is about
            user_id: Scope; the AI can only touch todos this user may mutate

        Returns:
            ActionResult of the underlying action
        """
        todo_id = int(arguments.get("todo_id") or todo.id)
        actions = self.todo_actions

        if name == "update_todo_title":
            return await actions.process_update_title(todo_id, arguments.get("title", ""), user_id, AI_USER_ID)
        if name == "update_todo_description":
            return await actions.process_update_description(
                todo_id, arguments.get("description"), user_id, AI_USER_ID
            )
        if name == "update_todo_due_date":
            return await actions.process_update_due_date([todo_id], arguments.get("due_date"), user_id, AI_USER_ID)
        if name == "toggle_todo_completion":
            completed = arguments.get("completed")
            if completed is None:
                current = await self.store.get_todo(todo_id)
                completed = not (current.completed if current else todo.completed)
            return await actions.process_toggle_completed([todo_id], bool(completed), user_id, AI_USER_ID)

        return ActionResult.failure(f"Unknown tool: {name}")

    async def chat(
        self,
        user: Optional[User],
        todo_id: int,
        messages: List[Dict[str, Any]],
    ) -> Union[ChatReply, RateLimitedResponse]:
        """
        Run one metered chat turn about a todo

        Args:
            user: Authenticated user
            todo_id: Todo the conversation is about
            messages: Conversation so far; the last one is the new user message

        Returns:
            ChatReply (success=False when the AI provider fails), or
            RateLimitedResponse when the message limit is reached

        Raises:
            NotAuthenticatedError: No user
            NotFoundError: Todo missing or not visible to the user
            DownstreamError: No AI client configured
        """
        user = require_user(user)
        todo = await self._load_todo(user, todo_id)
        if self.openai_client is None:
            raise DownstreamError("AI assistant is not configured")

        usage = await self.limiter.consume(user.id)
        if not usage.success:
            self.logger.info(f"[Assistant] Chat denied for {user.id}: remaining={usage.remaining}")
            return self._limited(usage)

        user_messages = [m for m in messages if m.get("role") == "user" and m.get("content")]
        if user_messages:
            await self.todo_actions.process_add_comment(todo.id, str(user_messages[-1]["content"]), user.id)

        conversation: List[Dict[str, Any]] = [
            {"role": "system", "content": self.prompt_manager.get_system_prompt(todo)},
            *({"role": m["role"], "content": m.get("content", "")} for m in messages),
        ]

        try:
            reply, tool_calls = await self._complete(conversation, todo, user.id)
            reply = (reply or "").strip() or FALLBACK_REPLY
            await self.store.insert_comment(todo.id, AI_USER_ID, reply)
        except Exception as e:
            failed = failure_result(e, CHAT_FAILURE_MESSAGE)
            return ChatReply(success=False, message=failed.message, remaining=usage.remaining)
        return ChatReply(message=reply, tool_calls=tool_calls, remaining=usage.remaining)

    async def _complete(self, conversation: List[Dict[str, Any]], todo: Todo, user_id: str):
        """Run completion rounds until the model answers without tool calls"""
        reply: Optional[str] = None
        tool_calls = 0
        for step in range(self.max_steps):
            message = await self.openai_client.chat_with_tools(conversation, TOOLS)
            calls = getattr(message, "tool_calls", None) or []
            if not calls:
                reply = message.content
                break

            conversation.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in calls
                ],
            })
            for call in calls:
                tool_calls += 1
                try:
                    arguments = json.loads(call.function.arguments or "{}")
                    result = await self.execute_tool(call.function.name, arguments, todo, user_id)
                except (ValueError, TypeError) as e:
                    result = failure_result(e, "Invalid tool arguments")
                self.logger.info(f"[Assistant] Step {step + 1}: {call.function.name} -> success={result.success}")
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result.model_dump(include={"success", "message", "affected"})),
                })

        return reply, tool_calls

    async def generate_todo_description(
        self, user: Optional[User], todo_id: int
    ) -> Union[ActionResult, RateLimitedResponse]:
        """
        Meter and schedule description generation for a todo

        Args:
            user: Authenticated user
            todo_id: Todo to describe

        Returns:
            ActionResult with the queue job id, or RateLimitedResponse
        """
        user = require_user(user)
        todo = await self._load_todo(user, todo_id)

        usage = await self.limiter.consume(user.id)
        if not usage.success:
            return self._limited(usage)

        task = GenerateDescriptionTask(todo_id=todo.id, title=todo.title, user_id=user.id)
        try:
            published = await self.todo_actions.queue.publish(task)
        except Exception as e:
            return failure_result(e, "Failed to schedule description generation")

        return ActionResult(
            success=True,
            message="Description generation scheduled",
            job_id=published.message_id,
            data={"key": task.key, "deduplicated": published.deduplicated},
        )
