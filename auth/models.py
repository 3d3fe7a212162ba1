"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in todo/models.py -- dataclasses own domain shape; stores and services do the
work.

Layer rule: no imports from api/ or todo/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RoleName(str, Enum):
    """The fixed set of roles an identity can carry.

    Token issuance iterates an identity's roles to build one claim entry per
    role; there is no other source of role names.
    """

    ADMIN = "Admin"
    USER = "User"


@dataclass
class Role:
    name: str
    id: int | None = None


@dataclass
class User:
    """A registered identity.

    username is unique and compared case-sensitively.
    roles is populated by the store's hydrating lookup (get_by_username);
    a freshly constructed User has no roles until the store assigns them
    via add_to_role().

    id is None before the record is written to the database.
    """

    username: str
    hashed_password: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    id: int | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    roles: list[Role] = field(default_factory=list)

    @property
    def role_names(self) -> list[str]:
        return [r.name for r in self.roles]


@dataclass(frozen=True)
class Principal:
    """The acting identity resolved from a verified bearer token.

    Built purely from token claims -- resolving a Principal never touches the
    database.
    """

    username: str
    user_id: int
    roles: tuple[str, ...] = ()
