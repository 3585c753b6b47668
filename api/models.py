"""
API request and response models for AuthKeep REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names are snake_case in Python and camelCase on the wire (accessToken,
newPassword, ...). populate_by_name=True lets clients send either form.

Validation here runs before any store call, so a malformed payload never
opens a transaction.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
RECOVERY_CODE_PATTERN = r"^\d{6}$"

# 8-20 characters: at least one lower-case, one upper-case, one digit and one
# special character.
_PASSWORD_RE = re.compile(r"""^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?]).{8,20}$""")
PASSWORD_POLICY_MESSAGE = (
    "Password must be 8-20 characters, include one uppercase letter, one number, and one special character."
)


def _check_password_policy(value: str) -> str:
    if not _PASSWORD_RE.match(value):
        raise ValueError(PASSWORD_POLICY_MESSAGE)
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_WireModel):
    """Request body for POST /api/v1/auth/register."""

    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)
    password: str
    username: Optional[str] = Field(default=None, min_length=1, max_length=20)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)


class LoginRequest(_WireModel):
    """Request body for POST /api/v1/auth/login.

    No policy check here: an old password that predates the policy must still
    be able to log in, and the error must not hint at the rules.
    """

    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=255)


class ForgotPasswordRequest(_WireModel):
    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(_WireModel):
    """Request body for POST /api/v1/auth/reset-password.

    The wire name of the code is resetPasswordCode.
    """

    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)
    reset_password_code: str = Field(pattern=RECOVERY_CODE_PATTERN)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)


class ChangeEmailRequest(_WireModel):
    new_email: str = Field(max_length=320, pattern=EMAIL_PATTERN)


class ChangePasswordRequest(_WireModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)


class ChangeUsernameRequest(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    new_username: str = Field(min_length=1, max_length=20)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(_WireModel):
    """Body of register/login/refresh. The refresh token travels only in the cookie."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    access_token: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ForgotPasswordResponse(BaseModel):
    """message is user-facing; status says which recovery branch applied."""

    model_config = ConfigDict(frozen=True)

    message: str
    status: str


class DataResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str


class AccountResponse(_WireModel):
    """Public profile of an account. Never includes the password hash."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    email: str
    username: Optional[str]
    role: str
    avatar_url: Optional[str]
    is_activated: bool
    created_at: str


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
