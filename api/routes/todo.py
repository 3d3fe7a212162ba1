"""
api/routes/todo.py -- Owner-scoped task endpoints.

Routes:
  GET    /api/todo                    -- filtered + sorted list
  GET    /api/todo/search?query=      -- title/description search
  GET    /api/todo/category/{name}    -- tasks in one category
  GET    /api/todo/stats              -- per-owner counts
  GET    /api/todo/{id}               -- single task
  POST   /api/todo                    -- create (201 + Location)
  PUT    /api/todo/{id}               -- full overwrite of mutable fields
  DELETE /api/todo/{id}               -- delete
  PATCH  /api/todo/{id}/toggle        -- flip completion

Every route requires a bearer token. The owner is always the token's subject;
no route accepts an owner id from the client. A task owned by someone else is
indistinguishable from a missing one (404 "Task not found.").

Static paths (search, category, stats) are registered before /todo/{task_id}
so they are never captured by the id route.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import ApiResponse, TaskRequest, TaskResponse, TaskStatsResponse
from auth.dependencies import get_current_principal
from auth.models import Principal
from core.errors import NotFoundError, ValidationError
from todo.service import TaskService

# Auth policy: every route requires auth (get_current_principal).
router = APIRouter()

_TASK_NOT_FOUND = "Task not found."


def _service(request: Request) -> TaskService:
    return request.app.state.task_service


def _task_list(tasks) -> list[TaskResponse]:
    return [TaskResponse.from_task(t) for t in tasks]


# ---------------------------------------------------------------------------
# Collection reads
# ---------------------------------------------------------------------------


@router.get("/todo", response_model=ApiResponse[list[TaskResponse]])
def list_todos(
    request: Request,
    search: Optional[str] = Query(default=None, max_length=200),
    category: Optional[str] = Query(default=None, max_length=50),
    priority: Optional[str] = Query(default=None, max_length=50),
    sort: Optional[str] = Query(default=None, max_length=50),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[TaskResponse]]:
    """List the caller's tasks.

    category: "all" or absent means no filter; an unknown name is a 400.
    priority: an unknown name is ignored rather than rejected.
    sort: created_asc | created_desc (default) | priority_desc | title_asc.
    """
    tasks = _service(request).list_tasks(
        principal.username, search=search, category=category, priority=priority, sort=sort
    )
    return ApiResponse[list[TaskResponse]].ok(_task_list(tasks), message="Todos loaded successfully.")


@router.get("/todo/search", response_model=ApiResponse[list[TaskResponse]])
def search_todos(
    request: Request,
    query: Optional[str] = Query(default=None, max_length=200),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[TaskResponse]]:
    tasks = _service(request).search(principal.username, query)
    return ApiResponse[list[TaskResponse]].ok(_task_list(tasks), message="Search completed successfully.")


@router.get("/todo/category/{name}", response_model=ApiResponse[list[TaskResponse]])
def todos_by_category(
    request: Request,
    name: str,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[TaskResponse]]:
    tasks = _service(request).by_category(principal.username, name)
    return ApiResponse[list[TaskResponse]].ok(_task_list(tasks), message=f"Tasks in '{name}' loaded.")


@router.get("/todo/stats", response_model=ApiResponse[TaskStatsResponse])
def todo_stats(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[TaskStatsResponse]:
    stats = _service(request).stats(principal.username)
    return ApiResponse[TaskStatsResponse].ok(
        TaskStatsResponse.from_stats(stats), message="Task statistics loaded."
    )


# ---------------------------------------------------------------------------
# Single task
# ---------------------------------------------------------------------------


@router.get("/todo/{task_id}", response_model=ApiResponse[TaskResponse])
def get_todo(
    request: Request,
    task_id: int,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[TaskResponse]:
    task = _service(request).get(task_id, principal.username)
    if task is None:
        raise NotFoundError(_TASK_NOT_FOUND)
    return ApiResponse[TaskResponse].ok(TaskResponse.from_task(task), message="Task retrieved successfully.")


@router.post("/todo", response_model=ApiResponse[TaskResponse], status_code=201)
def create_todo(
    request: Request,
    response: Response,
    body: TaskRequest,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[TaskResponse]:
    task = _service(request).create(principal.username, body.to_draft())
    response.headers["Location"] = f"/api/todo/{task.id}"
    return ApiResponse[TaskResponse].ok(TaskResponse.from_task(task), message="Task created successfully.")


@router.put("/todo/{task_id}", response_model=ApiResponse[TaskResponse])
def update_todo(
    request: Request,
    task_id: int,
    body: TaskRequest,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[TaskResponse]:
    """Overwrite a task. isCompleted / completedAt are stored exactly as sent."""
    task = _service(request).update(task_id, principal.username, body.to_draft())
    if task is None:
        raise NotFoundError(_TASK_NOT_FOUND)
    return ApiResponse[TaskResponse].ok(TaskResponse.from_task(task), message="Task updated successfully.")


@router.delete("/todo/{task_id}", response_model=ApiResponse[None])
def delete_todo(
    request: Request,
    task_id: int,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[None]:
    if not _service(request).delete(task_id, principal.username):
        raise NotFoundError(_TASK_NOT_FOUND)
    return ApiResponse.ok(message="Task deleted successfully.")


@router.patch("/todo/{task_id}/toggle", response_model=ApiResponse[TaskResponse])
def toggle_todo(
    request: Request,
    task_id: int,
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[TaskResponse]:
    if task_id <= 0:
        raise ValidationError("Invalid task ID.")
    task = _service(request).toggle_completion(task_id, principal.username)
    if task is None:
        raise NotFoundError(_TASK_NOT_FOUND)
    return ApiResponse[TaskResponse].ok(TaskResponse.from_task(task), message="Task status updated.")
