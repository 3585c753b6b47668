"""
auth/models.py -- Domain dataclasses for credential and session entities.

Pattern: Data class (data containers, no I/O). Stores return these,
managers consume them, routes map them to API models. Nothing here knows
about SQL or HTTP.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"
    EDITOR = "EDITOR"


class AuthMode(str, Enum):
    """Caller-declared intent for OAuth reconciliation."""

    LOGIN = "login"
    SIGNUP = "signup"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class RecoveryStatus(str, Enum):
    SENT = "sent"  # no prior code, a new one was created
    ALREADY_ACTIVE = "already_active"  # unexpired code exists, nothing sent
    RENEWED = "renewed"  # expired code was replaced in place


@dataclass
class Account:
    """A user's identity record.

    hashed_password is None for OAuth-only accounts: they cannot log in with a
    password until one is set through change-password or password recovery.
    username is nullable and unique when present.
    """

    email: str
    id: int | None = None
    username: str | None = None
    hashed_password: str | None = None
    role: Role = Role.USER
    avatar_url: str | None = None
    is_activated: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class DeviceSession:
    """Refresh-token record for one device, keyed by (account_id, ip_address, user_agent).

    hashed_refresh_token=None means "logged out on this device". The row stays
    so the next login from the same device updates it in place.
    """

    account_id: int
    ip_address: str
    user_agent: str
    hashed_refresh_token: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RecoveryCode:
    """At most one per account. expires_at is epoch milliseconds."""

    account_id: int
    code: str
    expires_at: int
    id: int | None = None

    def is_active(self, now_ms: int) -> bool:
        return now_ms < self.expires_at


@dataclass(frozen=True)
class IdentityAssertion:
    """Third-party identity claim. Transient: consumed once by the reconciler."""

    email: str
    display_name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class IssuedSession:
    """Result of login/refresh. The refresh token goes to the transport for cookie storage."""

    account_id: int
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RecoveryResult:
    status: RecoveryStatus
    message: str
