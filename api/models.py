"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are the input filter in front of the auth service: by the time
AuthService sees a username, email or password it is trimmed and well-formed.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from auth.hashing import MAX_PASSWORD_BYTES
from auth.models import PublicUser

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]{3,100}$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

_Username = Annotated[str, StringConstraints(strip_whitespace=True, pattern=USERNAME_PATTERN)]
_Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255, pattern=EMAIL_PATTERN)]
_Trimmed = Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Passwords are not trimmed. They are capped at bcrypt's 72-byte input limit
    (measured in UTF-8 bytes, not characters).
    """

    username: _Username
    email: _Email
    password: str = Field(min_length=8)
    role_id: Optional[int] = Field(default=None, gt=0)
    municipality_id: Optional[int] = Field(default=None, gt=0)
    first_name: Optional[_Trimmed] = None
    last_name: Optional[_Trimmed] = None
    phone: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=30)]] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. login is an email or a username."""

    login: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user profile. There is no password field to fill."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role_id: int
    role_name: Optional[str]
    permissions: list[str]
    municipality_id: Optional[int]
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    profile_image_url: Optional[str]
    is_active: bool
    email_verified: bool
    last_login: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role_id=user.role_id,
            role_name=user.role_name,
            permissions=user.permissions,
            municipality_id=user.municipality_id,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            profile_image_url=user.profile_image_url,
            is_active=user.is_active,
            email_verified=user.email_verified,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthResponse(BaseModel):
    """Response for register and login: profile plus both tokens."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshResponse(BaseModel):
    """Response for refresh: a new access token only."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


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
    components: dict[str, str]
