"""
core/errors.py -- Error taxonomy shared by the credential core and the API.

Each exception class carries a stable HTTP status_code and error_code so the
API layer can render every failure through one exception handler without
inspecting messages. The internal kind is always precise (NotFound vs
Unauthorized); whether that precision reaches the user is the route's call.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for domain errors mapped to HTTP responses."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class BadRequestError(AuthError):
    """Malformed or incomplete input, rejected before any store or transport call (400)."""

    status_code = 400
    error_code = "bad_request"


class UnauthorizedError(AuthError):
    """Bad credentials or a missing, expired, or mismatched token (401)."""

    status_code = 401
    error_code = "unauthorized"


class InvalidCredentialError(UnauthorizedError):
    """Password did not verify against the stored hash."""


class NotFoundError(AuthError):
    """Account, session, or recovery code absent (404)."""

    status_code = 404
    error_code = "not_found"


class ConflictError(AuthError):
    """Uniqueness or state violation (409)."""

    status_code = 409
    error_code = "conflict"


class GoneError(AuthError):
    """Recovery code expired (410)."""

    status_code = 410
    error_code = "gone"


class InternalError(AuthError):
    """Unexpected store or transport failure (500)."""


__all__ = [
    "AuthError",
    "BadRequestError",
    "UnauthorizedError",
    "InvalidCredentialError",
    "NotFoundError",
    "ConflictError",
    "GoneError",
    "InternalError",
]
