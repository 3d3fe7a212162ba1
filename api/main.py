"""
api/main.py -- FastAPI application entry point for TodoManager.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- access log line per request
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for the configured origins
  4. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the stores and services once, seeds roles (and the optional
admin), and closes both database engines on shutdown. Route handlers reach
the services through request.app.state; nothing is constructed per request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ApiResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.todo import router as todo_router
from auth.seed import seed_defaults
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import TodoManagerError
from todo.service import TaskService
from todo.store import TaskStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("todomanager.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire stores and services into app.state for the server lifetime.

    Startup order matters:
      1. Stores first -- create_all runs here, so tables exist before seeding.
      2. Seeding second -- registration needs the User role row.
      3. Services last -- they only hold references to the stores.
    """
    logger.info("TodoManager API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.task_store = TaskStore(settings.database_url)
    seed_defaults(app.state.user_store, settings)

    app.state.token_service = TokenService(settings)
    app.state.auth_service = AuthService(app.state.user_store, app.state.token_service)
    app.state.task_service = TaskService(app.state.task_store, app.state.user_store)
    logger.info("Services initialized")

    yield

    app.state.task_store.close()
    app.state.user_store.close()
    logger.info("TodoManager API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TodoManager API",
    description="Personal task management: per-user tasks with categories, priorities and completion tracking.",
    version=__version__,
    lifespan=lifespan,
    # Interactive docs only in debug builds.
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps each add_middleware() call around the previous ones, so the
# last registered runs first. Registered innermost first to get
# TrustedHost -> CORS -> SlowAPI; 429 responses still carry CORS headers.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(todo_router, prefix="/api", tags=["Todo"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same {success, message, data} envelope so clients
# parse failures exactly like successes.
# ---------------------------------------------------------------------------


def _envelope(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.fail(message).model_dump(by_alias=True, mode="json"),
        headers=headers,
    )


def _auth_headers(request: Request) -> dict[str, str] | None:
    # Login / register failures must not be cached either.
    if request.url.path.startswith("/api/auth/"):
        return {"Cache-Control": "no-store"}
    return None


@app.exception_handler(TodoManagerError)
async def todo_manager_error_handler(request: Request, exc: TodoManagerError) -> JSONResponse:
    """Render a domain error. Diagnostics were already logged where it was raised."""
    return _envelope(exc.status_code, exc.message, _auth_headers(request))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    slowapi stores the window on the exception as exc.retry_after when known.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded on %s from %s", request.url.path, client)
    return _envelope(429, "Too many requests. Please try again later.", {"Retry-After": str(retry_after)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed body, query or path parameter -> 400 with the offending fields named."""
    problems = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        problems.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    message = "Request validation failed."
    if problems:
        message = f"{message} {'; '.join(problems)}"
    return _envelope(400, message, _auth_headers(request))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and any HTTPException raised by a dependency."""
    return _envelope(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
