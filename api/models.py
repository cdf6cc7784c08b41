"""
API request and response models for BookAdmin REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Every endpoint has its own typed request and response shape. The one envelope
is ErrorResponse, which every 4xx/5xx uses so clients can parse failures
without looking at the status code first.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.models import IssuedToken, User
from auth.passwords import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Emails are compared exactly in the store, so normalize case on the way in.
_Email = Annotated[str, Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN), AfterValidator(str.lower)]


def _check_password_bytes(value: str) -> str:
    """Reject passwords bcrypt would refuse.

    The limit is 72 bytes, not characters: a non-ASCII character takes more
    than one byte, so the character cap alone is not enough.
    """
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return value


_Password = Annotated[str, Field(min_length=1, max_length=72), AfterValidator(_check_password_bytes)]

# For new passwords.
_NewPassword = Annotated[str, Field(min_length=8, max_length=72), AfterValidator(_check_password_bytes)]

# On update an empty string means "keep the current password".
_OptionalPassword = Annotated[str, Field(max_length=72), AfterValidator(_check_password_bytes)]

# Generated tokens are 52 chars. The cap only keeps garbage input small.
_Token = Annotated[str, Field(min_length=1, max_length=128)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    password: _Password


class TokenRequest(BaseModel):
    """Request body carrying a bare token (validate-token, logout)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: _Token


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/users/signup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    password: _NewPassword
    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)


class UserSave(BaseModel):
    """Request body for POST /api/v1/admin/users/save.

    id == 0 creates a user; any other id updates that user. password is
    optional on update (blank keeps the current one) and required on create.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(default=0, ge=0)
    email: _Email
    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)
    active: bool = True
    password: Optional[_OptionalPassword] = None


class UserDeleteRequest(BaseModel):
    """Request body for POST /api/v1/admin/users/delete."""

    id: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. The password hash is never included."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            active=user.active,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class TokenResponse(BaseModel):
    """A newly issued token. The only response that ever contains a plaintext token."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expiry: str

    @classmethod
    def from_issued(cls, issued: IssuedToken) -> "TokenResponse":
        return cls(token=issued.plaintext, expiry=issued.expiry.isoformat())


class LoginResponse(BaseModel):
    """Response for POST /api/v1/users/login."""

    model_config = ConfigDict(frozen=True)

    token: TokenResponse
    user: UserResponse


class ValidateTokenResponse(BaseModel):
    """Response for POST /api/v1/validate-token."""

    model_config = ConfigDict(frozen=True)

    valid: bool


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    model_config = ConfigDict(frozen=True)

    message: str


class ForceLogoutResponse(BaseModel):
    """Response for POST /api/v1/admin/users/log-user-out/{id}."""

    model_config = ConfigDict(frozen=True)

    message: str
    tokens_revoked: int


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
