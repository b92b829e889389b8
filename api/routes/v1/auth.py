"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register         -- self-registration (always viewer)
  POST /api/v1/auth/login            -- password login; returns access + refresh token
  POST /api/v1/auth/refresh          -- rotate a refresh token
  POST /api/v1/auth/forgot-password  -- request a reset token (generic ack)
  POST /api/v1/auth/reset-password   -- set a new password with a reset token
  GET  /api/v1/auth/me               -- current user (requires auth)
  GET  /api/v1/auth/permissions      -- capability row for the caller's role (requires auth)
  PUT  /api/v1/auth/profile          -- update name/avatar (requires auth)
  PUT  /api/v1/auth/password         -- change password, revokes all sessions (requires auth)
  POST /api/v1/auth/logout           -- revoke one refresh token (idempotent)
  POST /api/v1/auth/logout-all       -- revoke every refresh token of the caller (requires auth)

Security:
  [H2] login, register, refresh and forgot-password are rate-limited per IP.
       @limiter.limit sits under @router so the registered endpoint is the
       wrapped one.
  [C1] login goes through authenticate_user() timing equalization.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Logout does not require an access token: a client whose access token has
  already expired must still be able to end its session.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    MessageResponse,
    PermissionsResponse,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import AuthResult, Principal
from auth.permissions import permissions_for
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


def client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop if present, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _token_response(result: AuthResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            user=UserResponse.from_user(result.user),
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.access_token_expire_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a viewer account and start a session."""
    result = _service(request).register(body.name, body.email, body.password, client_ip(request))
    return _token_response(result, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401. A deactivated
    account gets 403, but only once the password has been verified.
    """
    result = _service(request).login(body.email, body.password, client_ip(request))
    return _token_response(result)


@router.post("/auth/refresh", response_model=AuthResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is revoked."""
    result = _service(request).refresh(body.refresh_token, client_ip(request))
    return _token_response(result)


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Always returns the same acknowledgement, registered email or not."""
    _service(request).forgot_password(body.email)
    return MessageResponse(message="If an account exists with this email, a password reset link has been sent.")


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    _service(request).reset_password(body.reset_token, body.new_password, client_ip(request))
    return MessageResponse(message="Password reset successful. Please log in with your new password.")


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: LogoutRequest) -> MessageResponse:
    """Revoke the given refresh token. Unknown or already-revoked tokens still succeed."""
    _service(request).logout(body.refresh_token, client_ip(request))
    return MessageResponse(message="Logged out successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, principal: Principal = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(_service(request).registry.get_user(principal.id))


@router.get("/auth/permissions", response_model=PermissionsResponse)
def my_permissions(principal: Principal = Depends(get_current_user)) -> PermissionsResponse:
    return PermissionsResponse(role=principal.role, permissions=permissions_for(principal.role))


@router.put("/auth/profile", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    principal: Principal = Depends(get_current_user),
) -> UserResponse:
    user = _service(request).registry.update_profile(principal.id, name=body.name, avatar=body.avatar)
    return UserResponse.from_user(user)


@router.put("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_user),
) -> MessageResponse:
    """Change the caller's password. Every refresh token of the caller is revoked."""
    _service(request).change_password(principal.id, body.current_password, body.new_password, client_ip(request))
    return MessageResponse(message="Password changed successfully. Please log in again.")


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, principal: Principal = Depends(get_current_user)) -> LogoutAllResponse:
    count = _service(request).logout_all(principal.id, client_ip(request))
    return LogoutAllResponse(message=f"Logged out from {count} device(s).", revoked=count)
