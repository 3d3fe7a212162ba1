"""
todo/store.py -- SQLAlchemy-backed persistence layer for tasks.

Uses SQLAlchemy Core (not ORM) so the dataclasses in todo/models.py remain the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. TaskStore is the repository; _row_to_task
is the mapper. Every method takes the owner's id and puts
`owner_id == :owner_id` in its WHERE clause -- there is no unscoped read or
write path. A task owned by someone else is indistinguishable from a missing
one: None / False / empty list.

Ordering: every sort mode ends with `id ASC` so ties are broken the same way
on every call.

Security: all queries use bound parameters. No f-strings in SQL. The search
term is LIKE-escaped (autoescape) so % and _ match literally.

Usage:
    store = TaskStore("sqlite:///:memory:")
    task_id = store.create_task(Task(owner_id=1, title="Pay bills", ...))
    tasks = store.query(1, TaskFilter(search="bills"))
    store.toggle_completion(task_id, 1, now_iso())
    store.close()
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from todo.models import Category, Priority, SortMode, Task, TaskFilter, TaskStats

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # References users.id in the identity store. Not declared as a
    # ForeignKey because the identity tables live in auth/store.py's
    # MetaData; the service resolves the owner before every write.
    Column("owner_id", Integer, nullable=False),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("category", Integer, nullable=False),  # Category ordinal
    Column("priority", Integer, nullable=False),  # Priority ordinal
    Column("is_completed", Boolean, nullable=False, server_default="0"),
    Column("created_on", String(32), nullable=False),
    Column("updated_on", String(32), nullable=False),
    Column("completed_at", String(32)),
    Column("due_date", String(32)),
    Index("ix_tasks_owner_id", "owner_id"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_iso(value: datetime | None) -> str | None:
    """Normalize a datetime to the stored form: UTC, microsecond precision.

    Naive datetimes are assumed to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


_ORDERINGS = {
    SortMode.CREATED_ASC: (_tasks.c.created_on.asc(), _tasks.c.id.asc()),
    SortMode.CREATED_DESC: (_tasks.c.created_on.desc(), _tasks.c.id.asc()),
    SortMode.PRIORITY_DESC: (_tasks.c.priority.desc(), _tasks.c.id.asc()),
    SortMode.TITLE_ASC: (_tasks.c.title.asc(), _tasks.c.id.asc()),
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in FastAPI's thread pool, so the same pooled
            # connection may be used from different threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        """Insert a task and return its assigned database ID.

        created_on / updated_on default to now when the caller leaves them
        empty.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    owner_id=task.owner_id,
                    title=task.title,
                    description=task.description,
                    category=int(task.category),
                    priority=int(task.priority),
                    is_completed=task.is_completed,
                    created_on=task.created_on or now,
                    updated_on=task.updated_on or now,
                    completed_at=task.completed_at,
                    due_date=task.due_date,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_task(self, task_id: int, owner_id: int, **fields) -> bool:
        """Overwrite mutable fields on a task the owner holds.

        Accepts any subset of: title, description, category, priority,
        is_completed, completed_at, due_date, updated_on. Category and
        Priority members are stored as their ordinals.

        Returns True if a row was updated, False if the task does not exist
        or belongs to someone else.
        """
        if "category" in fields:
            fields["category"] = int(fields["category"])
        if "priority" in fields:
            fields["priority"] = int(fields["priority"])
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id)).values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def toggle_completion(self, task_id: int, owner_id: int, now: str) -> bool:
        """Flip is_completed and set / clear completed_at in a single UPDATE.

        The SET expressions read the pre-update row, so the new completed_at
        is derived from the old is_completed: was False -> now, was True ->
        NULL. Returns False if the owner holds no such task.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update()
                .where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
                .values(
                    is_completed=~_tasks.c.is_completed,
                    completed_at=case((_tasks.c.is_completed.is_(False), now), else_=None),
                    updated_on=now,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_task(self, task_id: int, owner_id: int) -> bool:
        """Delete a task the owner holds. Returns False if nothing was deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.delete().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: int, owner_id: int) -> Task | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _tasks.select().where((_tasks.c.id == task_id) & (_tasks.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def query(self, owner_id: int, task_filter: TaskFilter) -> list[Task]:
        """Return every task matching the filter, owner predicate first.

        Search is case-insensitive on both title and description. A NULL
        description simply fails its half of the OR.
        """
        stmt = _tasks.select().where(_tasks.c.owner_id == owner_id)
        if task_filter.search:
            stmt = stmt.where(
                or_(
                    _tasks.c.title.icontains(task_filter.search, autoescape=True),
                    _tasks.c.description.icontains(task_filter.search, autoescape=True),
                )
            )
        if task_filter.category is not None:
            stmt = stmt.where(_tasks.c.category == int(task_filter.category))
        if task_filter.priority is not None:
            stmt = stmt.where(_tasks.c.priority == int(task_filter.priority))
        stmt = stmt.order_by(*_ORDERINGS[task_filter.sort])
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_task(r) for r in rows]

    def get_stats(self, owner_id: int) -> TaskStats:
        """Return the seven per-owner counters in a single query.

        Uses conditional aggregation: COUNT(CASE WHEN condition THEN 1 END)
        evaluates every counter in one pass over the owner's rows.
        """
        c = _tasks.c
        stmt = select(
            func.count(c.id).label("total"),
            func.count(case((c.category == int(Category.WORK), 1))).label("work"),
            func.count(case((c.category == int(Category.PERSONAL), 1))).label("personal"),
            func.count(case((c.is_completed.is_(True), 1))).label("completed"),
            func.count(case((c.priority == int(Priority.HIGH), 1))).label("high"),
            func.count(case((c.priority == int(Priority.MEDIUM), 1))).label("medium"),
            func.count(case((c.priority == int(Priority.LOW), 1))).label("low"),
        ).where(c.owner_id == owner_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return TaskStats(
            total=row.total,
            work=row.work,
            personal=row.personal,
            completed=row.completed,
            high_priority=row.high,
            medium_priority=row.medium,
            low_priority=row.low,
        )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description,
        category=Category(row.category),
        priority=Priority(row.priority),
        is_completed=bool(row.is_completed),
        created_on=row.created_on,
        updated_on=row.updated_on,
        completed_at=row.completed_at,
        due_date=row.due_date,
    )
