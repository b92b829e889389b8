"""
API request and response models for the identity REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request models ignore unknown fields (pydantic's default), which is how a
`role` sent to POST /auth/register is dropped before it reaches the core.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.models import User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"

# bcrypt only reads the first 72 bytes; 128 characters is the transport cap.
_PASSWORD_MAX = 128


def _check_password_strength(value: str) -> str:
    minimum = get_settings().min_password_length
    if len(value) < minimum:
        raise ValueError(f"Password must be at least {minimum} characters")
    return value


# Length floor comes from Settings.min_password_length, so it is checked after
# parsing rather than declared as a static Field constraint.
NewPassword = Annotated[str, Field(max_length=_PASSWORD_MAX), AfterValidator(_check_password_strength)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register. Any `role` field is ignored."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=50)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: NewPassword


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=256)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, max_length=256)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: NewPassword


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(min_length=1, max_length=256)
    new_password: NewPassword


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    avatar: Optional[str] = Field(default=None, max_length=2048, pattern=r"^https?://\S+$")


class UserCreate(BaseModel):
    """Request body for POST /api/v1/admin/users.

    role is a plain string on purpose: the registry rejects "owner" and any
    unknown value with a 400, the same response for both.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    role: str = Field(min_length=1, max_length=20)


class RoleChange(BaseModel):
    role: str = Field(min_length=1, max_length=20)


class ActivationChange(BaseModel):
    is_active: bool = True


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes password or reset-token fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    is_active: bool
    avatar: Optional[str] = None
    last_login: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            avatar=user.avatar,
            last_login=user.last_login,
            created_at=user.created_at or "",
        )


class AuthResponse(BaseModel):
    """Response for register, login and refresh."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class PermissionsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    permissions: dict[str, bool]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    ready: bool
    components: dict[str, str]
