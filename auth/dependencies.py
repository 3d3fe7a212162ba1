"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an Authorization: Bearer <token> header. The
token is verified (signature, expiry, issuer, audience) on every request and
the acting Principal is built from its claims without a database round-trip.

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises AuthenticationError (401) if
unauthenticated; the app-level handler renders the envelope.

Layer rule: no imports from api/ or todo/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Principal
from auth.tokens import TokenService
from core.errors import AuthenticationError

_BEARER_PREFIX = "bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    # Scheme comparison is case-insensitive per RFC 7235.
    if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def try_get_current_principal(request: Request) -> Principal | None:
    """Resolve the request's bearer token to a Principal, or None. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None
    token_service: TokenService = request.app.state.token_service
    return token_service.principal_from(token)


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise AuthenticationError()
    return principal
