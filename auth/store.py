"""
auth/store.py -- SQLAlchemy Core persistence layer for identity records.

Pattern: Repository + Data Mapper (same as todo/store.py).
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Service and dependency code never touches SQL directly.

Tables:
  users       -- one row per identity
  roles       -- fixed role names (Admin, User), seeded at startup
  user_roles  -- many-to-many link, composite primary key

Lookups that return a User always hydrate its roles in the same connection,
so callers never see a partially loaded identity.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine

from auth.models import Role, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("email", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Role entities.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(username="alice", hashed_password=hash_password("Secret#1")))
        store.add_to_role(user_id, "User")
        user = store.get_by_username("alice")  # roles hydrated
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        Callers (AuthService.register) catch IntegrityError as the signal that
        a concurrent request already took the name.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive), roles included."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
            if row is None:
                return None
            return _row_to_user(row, self._roles_for(conn, row.id))

    def get_id_by_username(self, username: str) -> int | None:
        """Resolve a username to its primary key without hydrating roles."""
        with self.engine.connect() as conn:
            return conn.execute(select(_users.c.id).where(_users.c.username == username)).scalar()

    def username_exists(self, username: str) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.username == username)
            ).scalar()
        return (count or 0) > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def ensure_role(self, name: str) -> int:
        """Return the id of the named role, creating the row if missing.

        Idempotent -- the seeder calls this on every startup.
        """
        with self.engine.connect() as conn:
            role_id = conn.execute(select(_roles.c.id).where(_roles.c.name == name)).scalar()
            if role_id is not None:
                return role_id
            result = conn.execute(_roles.insert().values(name=name))
            conn.commit()
            return result.inserted_primary_key[0]

    def add_to_role(self, user_id: int, role_name: str) -> None:
        """Link a user to a role by name.

        Raises LookupError if the role has not been seeded -- role rows are a
        startup invariant, not something a request may create implicitly.
        Adding a role the user already has is a no-op.
        """
        with self.engine.connect() as conn:
            role_id = conn.execute(select(_roles.c.id).where(_roles.c.name == role_name)).scalar()
            if role_id is None:
                raise LookupError(f"Role {role_name!r} does not exist")
            existing = conn.execute(
                select(func.count())
                .select_from(_user_roles)
                .where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            ).scalar()
            if existing:
                return
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
            conn.execute(_users.update().where(_users.c.id == user_id).values(updated_at=_now_iso()))
            conn.commit()

    def get_roles(self, user_id: int) -> list[Role]:
        with self.engine.connect() as conn:
            return self._roles_for(conn, user_id)

    @staticmethod
    def _roles_for(conn: Connection, user_id: int) -> list[Role]:
        rows = conn.execute(
            select(_roles.c.id, _roles.c.name)
            .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.id)
        ).fetchall()
        return [_row_to_role(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[Role]) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        email=row.email,
        created_at=row.created_at,
        roles=roles,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name)
