"""
todo/models.py -- Domain types for tasks.

Dataclasses are pure data containers; the enums carry only their own parsing
so every caller parses category / priority / sort the same way. Business
rules (ownership, completion timestamps, filter policy) live in
todo/filters.py, todo/store.py and todo/service.py.

Enum values are the ordinals stored in the database. Priority's ordinal is
its rank: sorting priority descending puts High first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum


class _LabeledEnum(IntEnum):
    """IntEnum whose wire form is the capitalized member name ("High")."""

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def labels(cls) -> list[str]:
        return [m.label for m in cls]

    @classmethod
    def parse(cls, value: str):
        """Case-insensitive parse of a member name. Raises ValueError if unknown."""
        try:
            return cls[value.strip().upper()]
        except (KeyError, AttributeError):
            raise ValueError(f"{value!r} is not a valid {cls.__name__}") from None


class Category(_LabeledEnum):
    WORK = 0
    PERSONAL = 1


class Priority(_LabeledEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class SortMode(str, Enum):
    CREATED_ASC = "created_asc"
    CREATED_DESC = "created_desc"
    PRIORITY_DESC = "priority_desc"
    TITLE_ASC = "title_asc"

    @classmethod
    def from_param(cls, value: str | None) -> "SortMode":
        """Map a ?sort= value to a mode. Absent or unrecognized -> CREATED_DESC."""
        if value is None:
            return cls.CREATED_DESC
        try:
            return cls(value)
        except ValueError:
            return cls.CREATED_DESC


@dataclass
class Task:
    """A single todo owned by exactly one user.

    Timestamps are UTC ISO 8601 strings with microsecond precision, so string
    order is chronological order. completed_at is non-None exactly when
    is_completed is True -- toggle_completion maintains this; a full update
    writes whatever the caller sent.

    id is None before the record is written to the database.
    """

    owner_id: int
    title: str
    category: Category
    priority: Priority
    description: str | None = None
    is_completed: bool = False
    created_on: str = ""
    updated_on: str = ""
    completed_at: str | None = None
    due_date: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class TaskDraft:
    """Client-supplied task fields, before validation.

    category and priority are raw strings; the service parses them and
    rejects the whole operation if either is unknown.
    """

    title: str
    category: str
    priority: str
    description: str | None = None
    is_completed: bool = False
    created_on: datetime | None = None
    completed_at: datetime | None = None
    due_date: datetime | None = None


@dataclass(frozen=True)
class TaskFilter:
    """A validated list query. Owner scoping is applied separately, always."""

    search: str | None = None
    category: Category | None = None
    priority: Priority | None = None
    sort: SortMode = SortMode.CREATED_DESC


@dataclass(frozen=True)
class TaskStats:
    total: int = 0
    work: int = 0
    personal: int = 0
    completed: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
