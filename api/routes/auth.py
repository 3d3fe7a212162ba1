"""
api/routes/auth.py -- Registration, login and identity endpoints.

Routes:
  POST /api/auth/register   -- create an identity with role User
  POST /api/auth/login      -- password login; returns a bearer token
  POST /api/auth/logout     -- acknowledgement only; the client drops its token
  GET  /api/auth/me         -- current user profile (requires auth)

Security:
  Login and register are rate-limited per client IP (LOGIN_RATE_LIMIT,
  REGISTER_RATE_LIMIT).
  Login goes through AuthService -> authenticate_user(), which equalizes
  timing between unknown users and wrong passwords.
  Cache-Control: no-store on login and register responses, success or not.
  The failure path gets the header from the envelope handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import ApiResponse, LoginData, LoginRequest, RegisterRequest, UserProfile
from auth.dependencies import get_current_principal
from auth.models import Principal
from auth.service import AuthService, Registration
from core.config import get_settings
from core.errors import NotFoundError

# Auth policy:
# - POST /api/auth/register:  public
# - POST /api/auth/login:     public
# - POST /api/auth/logout:    public -- there is no server-side session to end
# - GET  /api/auth/me:        requires auth (get_current_principal)
router = APIRouter()

_settings = get_settings()


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=ApiResponse[None])
def register(request: Request, response: Response, body: RegisterRequest) -> ApiResponse[None]:
    auth_service: AuthService = request.app.state.auth_service
    auth_service.register(
        Registration(
            username=body.user_name,
            password=body.password,
            confirm_password=body.confirm_password,
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
        )
    )
    _no_store(response)
    return ApiResponse.ok(message="User registered successfully.")


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=ApiResponse[LoginData])
def login(request: Request, response: Response, body: LoginRequest) -> ApiResponse[LoginData]:
    """Authenticate with username and password; return a bearer token.

    Unknown username and wrong password produce the same 400 envelope.
    """
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.login(body.user_name, body.password)
    _no_store(response)
    return ApiResponse[LoginData].ok(
        LoginData(
            token=result.token,
            expires_at=result.expires_at,
            user=UserProfile.from_user(result.user),
        ),
        message="Login successful.",
    )


@router.post("/auth/logout", response_model=ApiResponse[None])
async def logout() -> ApiResponse[None]:
    return ApiResponse.ok(message="Logged out successfully.")


@router.get("/auth/me", response_model=ApiResponse[UserProfile])
def me(request: Request, principal: Principal = Depends(get_current_principal)) -> ApiResponse[UserProfile]:
    """Return the profile for the token's subject.

    A valid token whose user row has since disappeared is a 404, not a 401.
    """
    auth_service: AuthService = request.app.state.auth_service
    user = auth_service.profile(principal.username)
    if user is None:
        raise NotFoundError("User information could not be found.")
    return ApiResponse[UserProfile].ok(UserProfile.from_user(user), message="User profile loaded successfully.")
