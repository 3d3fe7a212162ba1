"""
todo/service.py -- Owner-scoped task operations.

Every public method takes the acting username (resolved from the bearer token
by the auth dependency) and resolves it to an owner id before touching
TaskStore. Outcomes:

  not found / not owned   -> None (get, update, toggle) or False (delete)
  bad category / priority -> InvalidEnumValue / InvalidCategory (400)
  store fault             -> logged here with operation, task id, username;
                             re-raised as StorageError with a client-safe
                             message only
  authenticated user with no identity row on create
                          -> OwnerIntegrityError (500); authentication
                             already vouched for the username, so this is a
                             data fault, not a client error

completed_at handling:
  create             derives completed_at from is_completed
  toggle_completion  flips the flag and sets / clears completed_at
  update             writes the caller's is_completed / completed_at verbatim
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from auth.store import UserStore
from core.errors import InvalidEnumValue, OwnerIntegrityError, StorageError, ValidationError
from todo.filters import build_filter, normalize_search, parse_category
from todo.models import Category, Priority, Task, TaskDraft, TaskFilter, TaskStats
from todo.store import TaskStore, now_iso, to_iso

logger = logging.getLogger("todomanager.todo")


def _parse_priority(value: str) -> Priority:
    try:
        return Priority.parse(value)
    except ValueError:
        raise InvalidEnumValue("priority", value, Priority.labels()) from None


def _parse_category(value: str) -> Category:
    try:
        return Category.parse(value)
    except ValueError:
        raise InvalidEnumValue("category", value, Category.labels()) from None


def _require_title(title: str) -> str:
    if not title or not title.strip():
        raise ValidationError("Title is required.")
    return title


class TaskService:
    def __init__(self, task_store: TaskStore, user_store: UserStore) -> None:
        self._tasks = task_store
        self._users = user_store

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _storage_guard(self, operation: str, username: str, message: str, task_id: int | None = None) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("TaskService.%s failed (task_id=%s, user=%r)", operation, task_id, username)
            raise StorageError(message) from exc

    def _owner_id(self, username: str) -> int | None:
        return self._users.get_id_by_username(username)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        username: str,
        search: str | None = None,
        category: str | None = None,
        priority: str | None = None,
        sort: str | None = None,
    ) -> list[Task]:
        """Filtered, sorted, unpaginated list of the owner's tasks.

        Raises InvalidCategory for an unknown category (other than "all").
        """
        task_filter = build_filter(search=search, category=category, priority=priority, sort=sort)
        with self._storage_guard("list", username, "Something went wrong while loading your tasks. Please try again."):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return []
            return self._tasks.query(owner_id, task_filter)

    def search(self, username: str, query: str | None) -> list[Task]:
        """Title/description substring search in default order. Blank query returns everything."""
        task_filter = TaskFilter(search=normalize_search(query))
        with self._storage_guard("search", username, "Could not complete the search. Please try again."):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return []
            return self._tasks.query(owner_id, task_filter)

    def by_category(self, username: str, category: str) -> list[Task]:
        """Tasks in one category. Unlike list_tasks(), "all" is not accepted here."""
        task_filter = TaskFilter(category=parse_category(category))
        with self._storage_guard("by_category", username, "Could not load tasks from that category."):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return []
            return self._tasks.query(owner_id, task_filter)

    def get(self, task_id: int, username: str) -> Task | None:
        with self._storage_guard("get", username, "Could not retrieve the task. Please try again later.", task_id):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return None
            return self._tasks.get_task(task_id, owner_id)

    def stats(self, username: str) -> TaskStats:
        with self._storage_guard("stats", username, "Could not load task stats. Try again later."):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return TaskStats()
            return self._tasks.get_stats(owner_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, username: str, draft: TaskDraft) -> Task:
        """Insert a task for username. completed_at follows is_completed here, unlike update()."""
        title = _require_title(draft.title)
        category = _parse_category(draft.category)
        priority = _parse_priority(draft.priority)

        with self._storage_guard("create", username, "Unable to create the task right now. Please try again."):
            owner_id = self._owner_id(username)
            if owner_id is None:
                logger.error("TaskService.create: authenticated user %r has no identity record", username)
                raise OwnerIntegrityError()

            now = now_iso()
            completed_at = None
            if draft.is_completed:
                completed_at = to_iso(draft.completed_at) or now
            task = Task(
                owner_id=owner_id,
                title=title,
                description=draft.description,
                category=category,
                priority=priority,
                is_completed=draft.is_completed,
                created_on=to_iso(draft.created_on) or now,
                updated_on=now,
                completed_at=completed_at,
                due_date=to_iso(draft.due_date),
            )
            task_id = self._tasks.create_task(task)
            created = self._tasks.get_task(task_id, owner_id)

        logger.info("Task %s created for %r", task_id, username)
        return created

    def update(self, task_id: int, username: str, draft: TaskDraft) -> Task | None:
        """Overwrite every mutable field. created_on and owner never change.

        is_completed / completed_at are taken from the draft as-is, even when
        they disagree with each other.
        """
        title = _require_title(draft.title)
        category = _parse_category(draft.category)
        priority = _parse_priority(draft.priority)

        with self._storage_guard("update", username, "Could not update the task. Please try again.", task_id):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return None
            updated = self._tasks.update_task(
                task_id,
                owner_id,
                title=title,
                description=draft.description,
                category=category,
                priority=priority,
                is_completed=draft.is_completed,
                completed_at=to_iso(draft.completed_at),
                due_date=to_iso(draft.due_date),
                updated_on=now_iso(),
            )
            if not updated:
                return None
            return self._tasks.get_task(task_id, owner_id)

    def toggle_completion(self, task_id: int, username: str) -> Task | None:
        message = "Could not update task status. Try again shortly."
        with self._storage_guard("toggle_completion", username, message, task_id):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return None
            if not self._tasks.toggle_completion(task_id, owner_id, now_iso()):
                return None
            return self._tasks.get_task(task_id, owner_id)

    def delete(self, task_id: int, username: str) -> bool:
        """Idempotent: a second delete of the same id returns False, never raises."""
        with self._storage_guard("delete", username, "Could not delete the task. Please try again later.", task_id):
            owner_id = self._owner_id(username)
            if owner_id is None:
                return False
            deleted = self._tasks.delete_task(task_id, owner_id)
        if deleted:
            logger.info("Task %s deleted for %r", task_id, username)
        return deleted
