"""
HTTP API
"""

import hmac
from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from taskflow.config.constants import QUEUE_SECRET_HEADER
from taskflow.models.edits import PreviewRequest
from taskflow.models.queue import parse_queue_task
from taskflow.models.response import ActionResult, RateLimitedResponse
from taskflow.models.task import IssueCreate, Todo, TodoUpdate, User
from taskflow.services.auth import get_current_user
from taskflow.services.reconciler import reconcile
from taskflow.utils.date_utils import group_todos_by_due_date
from taskflow.utils.error_handler import (
    NotAuthenticatedError,
    NotFoundError,
    TaskflowError,
    ValidationError,
    handle_error,
)
from taskflow.utils.logger import logger
from taskflow.web.container import AppContainer
from taskflow.web.middleware import AuthRateLimitMiddleware


class IdsRequest(BaseModel):
    ids: List[int]


class DueDateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ids: List[int]
    due_date: Optional[str] = Field(None, alias="dueDate")


class CompletedRequest(BaseModel):
    ids: List[int]
    completed: bool


class ProjectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ids: List[int]
    project_id: Optional[int] = Field(None, alias="projectId")


class CommentRequest(BaseModel):
    content: str


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]


class StatusRequest(BaseModel):
    status: str


class PriorityRequest(BaseModel):
    priority: str


class BulkStatusRequest(BaseModel):
    ids: List[int]
    status: str


class BulkPriorityRequest(BaseModel):
    ids: List[int]
    priority: str


def _result(result: ActionResult) -> JSONResponse:
    if not result.success:
        status_code = 400
    elif result.job_id:
        status_code = 202
    else:
        status_code = 200
    return JSONResponse(result.model_dump(mode="json"), status_code=status_code)


def _limited(response: RateLimitedResponse) -> JSONResponse:
    return JSONResponse(response.model_dump(mode="json"), status_code=response.status_code)


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        container: Dependency container; built from settings when omitted

    Returns:
        Configured FastAPI app
    """
    container = container or AppContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[Web] taskflow API starting")
        yield
        await container.close()
        logger.info("[Web] taskflow API stopped")

    app = FastAPI(title="taskflow", lifespan=lifespan)
    app.state.container = container
    app.add_middleware(AuthRateLimitMiddleware)

    @app.exception_handler(TaskflowError)
    async def taskflow_error_handler(request: Request, exc: TaskflowError):
        response = handle_error(exc)
        if isinstance(exc, NotAuthenticatedError):
            status_code = 401
        elif isinstance(exc, NotFoundError):
            status_code = 404
        elif isinstance(exc, ValidationError):
            status_code = 400
        else:
            status_code = 500
        return JSONResponse(response.model_dump(exclude_none=True), status_code=status_code)

    @app.get("/")
    async def index():
        return {"name": "taskflow", "status": "ok"}

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    # Todos

    @app.get("/api/todos")
    async def list_todos(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return await c.todo_actions.list_todos(user)

    @app.post("/api/todos")
    async def create_todo(
        body: dict,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        return _result(await c.todo_actions.create_todo(user, body))

    @app.post("/api/todos/samples")
    async def create_sample_todos(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.create_sample_todos(user))

    @app.get("/api/todos/archived")
    async def list_archived(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return await c.todo_actions.list_todos(user, archived=True)

    @app.post("/api/todos/preview")
    async def preview(body: PreviewRequest, user: User = Depends(get_current_user)):
        todos = reconcile(body.snapshot, body.edits)
        return {
            "todos": todos,
            "groups": group_todos_by_due_date([t for t in todos if isinstance(t, Todo)]),
        }

    @app.post("/api/todos/delete")
    async def delete_todos(body: IdsRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.delete_todos(user, body.ids))

    @app.post("/api/todos/restore")
    async def restore_todos(body: IdsRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.restore_todos(user, body.ids))

    @app.post("/api/todos/due-date")
    async def update_due_date(body: DueDateRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.update_due_date(user, body.ids, body.due_date))

    @app.post("/api/todos/completed")
    async def toggle_completed(body: CompletedRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.toggle_completed(user, body.ids, body.completed))

    @app.post("/api/todos/project")
    async def update_project(body: ProjectRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.update_project(user, body.ids, body.project_id))

    @app.get("/api/todos/{todo_id}")
    async def get_todo(todo_id: int, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        todo = await c.todo_actions.get_todo(user, todo_id)
        if todo is None:
            raise NotFoundError("Todo not found")
        return todo

    @app.patch("/api/todos/{todo_id}")
    async def update_todo(
        todo_id: int,
        body: TodoUpdate,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        """Apply each field that was sent; stops at the first failure"""
        actions = c.todo_actions
        sent = body.model_fields_set
        result = ActionResult(success=True)
        if "title" in sent:
            result = await actions.update_title(user, todo_id, body.title or "")
        if result.success and "description" in sent:
            result = await actions.update_description(user, todo_id, body.description)
        if result.success and "project_id" in sent:
            result = await actions.update_project(user, [todo_id], body.project_id)
        if result.success and "assignee_id" in sent:
            result = await actions.assign_todo(user, todo_id, body.assignee_id)
        return _result(result)

    @app.get("/api/todos/{todo_id}/comments")
    async def list_comments(todo_id: int, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return await c.todo_actions.list_comments(user, todo_id)

    @app.post("/api/todos/{todo_id}/comments")
    async def add_comment(
        todo_id: int,
        body: CommentRequest,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        return _result(await c.todo_actions.add_comment(user, todo_id, body.content))

    @app.post("/api/todos/{todo_id}/watch")
    async def watch(todo_id: int, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.watch(user, todo_id))

    @app.delete("/api/todos/{todo_id}/watch")
    async def unwatch(todo_id: int, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.todo_actions.unwatch(user, todo_id))

    @app.post("/api/todos/{todo_id}/chat")
    async def chat(
        todo_id: int,
        body: ChatRequest,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        reply = await c.assistant.chat(user, todo_id, [m.model_dump() for m in body.messages])
        if isinstance(reply, RateLimitedResponse):
            return _limited(reply)
        if not reply.success:
            return JSONResponse(reply.model_dump(mode="json"), status_code=502)
        return reply

    @app.post("/api/todos/{todo_id}/generate-description")
    async def generate_description(
        todo_id: int,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        result = await c.assistant.generate_todo_description(user, todo_id)
        if isinstance(result, RateLimitedResponse):
            return _limited(result)
        return _result(result)

    # Issues

    @app.get("/api/issues")
    async def list_issues(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return await c.issue_actions.list_issues(user)

    @app.post("/api/issues")
    async def create_issue(body: IssueCreate, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.issue_actions.create_issue(user, body))

    @app.get("/api/issues/count")
    async def count_issues(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return {"count": await c.issue_actions.count_issues(user)}

    @app.post("/api/issues/bulk/status")
    async def bulk_status(body: BulkStatusRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.issue_actions.bulk_update_status(user, body.ids, body.status))

    @app.post("/api/issues/bulk/priority")
    async def bulk_priority(body: BulkPriorityRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.issue_actions.bulk_update_priority(user, body.ids, body.priority))

    @app.post("/api/issues/bulk/delete")
    async def bulk_delete(body: IdsRequest, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.issue_actions.bulk_delete(user, body.ids))

    @app.patch("/api/issues/{issue_id}/status")
    async def update_status(
        issue_id: int,
        body: StatusRequest,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        return _result(await c.issue_actions.update_status(user, issue_id, body.status))

    @app.patch("/api/issues/{issue_id}/priority")
    async def update_priority(
        issue_id: int,
        body: PriorityRequest,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        return _result(await c.issue_actions.update_priority(user, issue_id, body.priority))

    @app.delete("/api/issues/{issue_id}")
    async def delete_issue(issue_id: int, user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        return _result(await c.issue_actions.delete_issue(user, issue_id))

    # Usage and notifications

    @app.get("/api/usage")
    async def usage(user: User = Depends(get_current_user), c: AppContainer = Depends(get_container)):
        if user is None:
            raise NotAuthenticatedError()
        plan = await c.plan_resolver.get_plan(user.id)
        status = await c.message_limiter.peek(user.id)
        return {"plan": plan.id, **status.model_dump()}

    @app.get("/api/notifications")
    async def notifications(
        unread: bool = False,
        user: User = Depends(get_current_user),
        c: AppContainer = Depends(get_container),
    ):
        if user is None:
            raise NotAuthenticatedError()
        return await c.store.list_notifications(user.id, unread_only=unread)

    # Queue delivery

    @app.post("/api/queue")
    async def queue_delivery(request: Request, c: AppContainer = Depends(get_container)):
        """Receive a task from the queue provider and run it"""
        expected = c.settings.QUEUE_SECRET
        provided = request.headers.get(QUEUE_SECRET_HEADER, "")
        if not expected or not hmac.compare_digest(provided, expected):
            logger.warning("[Queue] Rejected delivery with missing or invalid secret")
            return JSONResponse({"success": False, "message": "Unauthorized"}, status_code=401)

        try:
            task = parse_queue_task(await request.json())
        except (PydanticValidationError, ValueError) as e:
            logger.error(f"[Queue] Invalid task payload: {e}")
            return JSONResponse({"success": False, "message": "Invalid task"}, status_code=400)

        try:
            result = await c.dispatcher.dispatch(task)
        except Exception as e:
            response = handle_error(e)
            return JSONResponse({"success": False, "message": response.message}, status_code=500)

        if not result.success:
            logger.error(f"[Queue] Task {task.key} failed: {result.message}")
            return JSONResponse({"success": False, "message": result.message}, status_code=500)
        return {"success": True, "affected": result.affected}

    return app
