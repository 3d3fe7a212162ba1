"""
auth/service.py -- Registration and login on top of UserStore + TokenService.

Stateless: each call is self-contained, nothing is remembered between
requests. Failures are raised as core.errors exceptions; the API layer's
exception handler renders them, so route handlers stay free of branching.

Registration checks, in order:
  1. password == confirm_password            else PasswordMismatch
  2. username not taken                      else UsernameTaken
  3. identity policy (username charset,      else RegistrationRejected(reasons)
     password strength)
  4. insert + add role "User"; a concurrent insert that wins the race on the
     UNIQUE(username) constraint also surfaces as UsernameTaken.

Login never tells "unknown user" from "wrong password" -- both raise the same
InvalidCredentials. The distinction only appears in server-side log lines.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.models import RoleName, User
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user, hash_password
from core.errors import InvalidCredentials, PasswordMismatch, RegistrationRejected, UsernameTaken

logger = logging.getLogger("todomanager.auth")

# ---------------------------------------------------------------------------
# Identity policy
# ---------------------------------------------------------------------------

_USERNAME_ALLOWED = set(string.ascii_letters + string.digits + "-._@+")
_MIN_PASSWORD_LENGTH = 6


def policy_violations(username: str, password: str) -> list[str]:
    """Return human-readable reasons the identity store would reject this pair.

    An empty list means the pair is acceptable.
    """
    reasons: list[str] = []
    if not username or any(ch not in _USERNAME_ALLOWED for ch in username):
        reasons.append(f"Username '{username}' is invalid, can only contain letters or digits.")
    if len(password) < _MIN_PASSWORD_LENGTH:
        reasons.append(f"Passwords must be at least {_MIN_PASSWORD_LENGTH} characters.")
    if not any(not ch.isalnum() for ch in password):
        reasons.append("Passwords must have at least one non alphanumeric character.")
    if not any(ch.isdigit() for ch in password):
        reasons.append("Passwords must have at least one digit ('0'-'9').")
    if not any(ch.islower() for ch in password):
        reasons.append("Passwords must have at least one lowercase ('a'-'z').")
    if not any(ch.isupper() for ch in password):
        reasons.append("Passwords must have at least one uppercase ('A'-'Z').")
    return reasons


# ---------------------------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Registration:
    username: str
    password: str
    confirm_password: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None


@dataclass(frozen=True)
class LoginResult:
    token: str
    expires_at: datetime
    user: User


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    def __init__(self, user_store: UserStore, token_service: TokenService) -> None:
        self._users = user_store
        self._tokens = token_service

    def register(self, request: Registration) -> int:
        """Create a new identity with role User. Returns the new user id."""
        if request.password != request.confirm_password:
            raise PasswordMismatch()

        if self._users.username_exists(request.username):
            logger.info("Registration refused: username %r already taken", request.username)
            raise UsernameTaken()

        reasons = policy_violations(request.username, request.password)
        if reasons:
            logger.info("Registration refused for %r: %s", request.username, "; ".join(reasons))
            raise RegistrationRejected(reasons)

        user = User(
            username=request.username,
            hashed_password=hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
        )
        try:
            user_id = self._users.create_user(user)
        except IntegrityError as exc:
            # Lost the race against a concurrent registration of the same name.
            raise UsernameTaken() from exc

        self._users.add_to_role(user_id, RoleName.USER.value)
        logger.info("Registered user %r (id=%s)", request.username, user_id)
        return user_id

    def login(self, username: str, password: str) -> LoginResult:
        """Verify credentials and issue a bearer token."""
        user = authenticate_user(self._users, username, password)
        if user is None:
            raise InvalidCredentials()

        roles = [r.name for r in self._users.get_roles(user.id)]
        token = self._tokens.issue(user, roles)
        logger.info("Login succeeded for %r", username)
        return LoginResult(token=token, expires_at=self._tokens.expiry(), user=user)

    def profile(self, username: str) -> User | None:
        """Return the fully hydrated identity for a username, or None."""
        user = self._users.get_by_username(username)
        if user is None:
            logger.warning("Profile lookup: user %r not found", username)
        return user
