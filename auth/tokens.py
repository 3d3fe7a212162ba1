"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with an HMAC algorithm (HS256 by default). Tokens carry
       username, user_id, one "roles" entry per role, issuer, audience, iat
       and exp. Verification checks signature, expiry, issuer and audience
       and returns None on any failure -- the auth dependency turns that into
       a 401. Tokens are never stored, refreshed, or revoked server-side.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether a username exists.

  Signing key: sourced from core.config.Settings, which refuses to start
       without a key of at least 32 characters. TokenService re-checks at
       construction so a hand-built Settings cannot smuggle in an empty key.

Layer rule: no imports from api/ or todo/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Principal
from core.config import Settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("todomanager.auth")

# Claims every verified token must carry beyond the registered ones.
_REQUIRED_CLAIMS = ("username", "user_id", "roles")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters; multi-byte input beyond 72 bytes is truncated by bcrypt.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store -- treat as a failed check.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("todomanager_timing_dummy")


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Check a username/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Callers must not tell
    the two failure modes apart in anything the client can observe.
    """
    user = store.get_by_username(username)
    if user is None:
        # Do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login failed: unknown username %r", username)
        return None
    if not verify_password(password, user.hashed_password):
        logger.warning("Login failed: bad password for %r", username)
        return None
    return user


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issue and verify signed bearer tokens.

    Constructed once at startup from Settings and shared through app.state.
    Holds no mutable state, so concurrent requests can use it freely.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.secret_key or len(settings.secret_key) < 32:
            raise ValueError("TokenService requires a signing key of at least 32 characters.")
        self._key = settings.secret_key
        self._algorithm = settings.jwt_algorithm
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._lifetime = timedelta(minutes=settings.access_token_expire_minutes)

    @property
    def lifetime_seconds(self) -> int:
        return int(self._lifetime.total_seconds())

    def expiry(self) -> datetime:
        """Return now + configured lifetime.

        Informational only (the login response shows it). Enforcement always
        uses the exp claim embedded in the token itself.
        """
        return datetime.now(timezone.utc) + self._lifetime

    def issue(self, user: User, roles: Iterable[str]) -> str:
        """Encode a signed JWT for the given identity and role names."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.username,
            "username": user.username,
            "user_id": user.id,
            "roles": [str(r) for r in roles],
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._key, algorithm=self._algorithm)

    def verify(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the payload dict or None on any failure.

        Returning None (rather than raising) keeps the caller simple: any
        invalid token is treated as unauthenticated.
        """
        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
            )
        except JWTError:
            return None
        if any(claim not in payload for claim in _REQUIRED_CLAIMS):
            return None
        if not isinstance(payload["roles"], list):
            return None
        return payload

    def principal_from(self, token: str) -> Principal | None:
        """Verify a token and build the acting Principal from its claims."""
        payload = self.verify(token)
        if payload is None:
            return None
        username = payload.get("username")
        user_id = payload.get("user_id")
        if not isinstance(username, str) or not username or not isinstance(user_id, int):
            return None
        return Principal(username=username, user_id=user_id, roles=tuple(payload["roles"]))
