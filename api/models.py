"""
API request and response models for TodoManager REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
todo/models.py, which own the internal domain representation. Route handlers
map between the two through the from_* factory methods below.

Wire conventions:
  - Every body is wrapped in ApiResponse: {success, message, data}.
  - Field names are camelCase on the wire (userName, isCompleted, ...);
    populate_by_name lets Python code use the snake_case names.
  - Category / priority go out as their labels ("Work", "High") and come in
    as free strings -- the service owns parsing so it can report the
    allowed values in its error message.
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User
from todo.models import Task, TaskDraft, TaskStats

T = TypeVar("T")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenWireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel, Generic[T]):
    """Uniform response envelope for every endpoint, success or failure."""

    success: bool
    message: str = ""
    data: Optional[T] = None

    @classmethod
    def ok(cls, data: Optional[T] = None, message: str = "Success") -> "ApiResponse[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> "ApiResponse[T]":
        return cls(success=False, message=message, data=None)


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(_WireModel):
    """Request body for POST /api/auth/register."""

    user_name: str = Field(min_length=1, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)


class LoginRequest(_WireModel):
    """Request body for POST /api/auth/login.

    Accepts both userName and username -- older clients send the latter.
    """

    user_name: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("userName", "username", "user_name"),
    )
    password: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class RoleResponse(_FrozenWireModel):
    id: int
    name: str


class UserProfile(_FrozenWireModel):
    """Public view of an identity. Never carries the password hash."""

    id: int
    user_name: str
    first_name: str
    last_name: str
    email: Optional[str]
    created_on: Optional[datetime]
    roles: list[RoleResponse] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            user_name=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            created_on=user.created_at,
            roles=[RoleResponse(id=r.id, name=r.name) for r in user.roles],
        )


class LoginData(_FrozenWireModel):
    token: str
    expires_at: datetime
    user: UserProfile


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskRequest(_WireModel):
    """Request body for POST /api/todo and PUT /api/todo/{id}.

    createdOn is honoured on create only. isCompleted / completedAt are
    stored as sent on update.
    """

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    category: str = Field(min_length=1, max_length=50)
    priority: str = Field(min_length=1, max_length=50)
    is_completed: bool = False
    created_on: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None

    def to_draft(self) -> TaskDraft:
        return TaskDraft(
            title=self.title,
            description=self.description,
            category=self.category,
            priority=self.priority,
            is_completed=self.is_completed,
            created_on=self.created_on,
            completed_at=self.completed_at,
            due_date=self.due_date,
        )


class TaskResponse(_FrozenWireModel):
    id: int
    title: str
    description: Optional[str]
    category: str
    priority: str
    is_completed: bool
    created_on: datetime
    updated_on: datetime
    completed_at: Optional[datetime]
    due_date: Optional[datetime]

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        """Build a TaskResponse from a domain Task. owner_id is never exposed."""
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            category=task.category.label,
            priority=task.priority.label,
            is_completed=task.is_completed,
            created_on=task.created_on,
            updated_on=task.updated_on,
            completed_at=task.completed_at,
            due_date=task.due_date,
        )


class TaskStatsResponse(_FrozenWireModel):
    total: int
    work: int
    personal: int
    completed: int
    high_priority: int
    medium_priority: int
    low_priority: int

    @classmethod
    def from_stats(cls, stats: TaskStats) -> "TaskStatsResponse":
        return cls(
            total=stats.total,
            work=stats.work,
            personal=stats.personal,
            completed=stats.completed,
            high_priority=stats.high_priority,
            medium_priority=stats.medium_priority,
            low_priority=stats.low_priority,
        )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
