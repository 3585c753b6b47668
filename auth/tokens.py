"""
auth/tokens.py -- Access and refresh JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with
       independent secrets and carry independent expiries, both taken from
       Settings at construction time. A token of one kind never verifies as
       the other: the secrets differ and the "type" claim is checked too.

  jti: every token carries a random jti so two tokens minted for the same
       account within the same second are still distinct. Refresh rotation
       depends on that -- the previous token must stop matching the stored
       fingerprint.

  Issuance is pure: a function of the account id and the clock, no I/O.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import TokenKind, TokenPair
from core.config import Settings
from core.errors import UnauthorizedError

logger = logging.getLogger("authkeep.auth.tokens")

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints and verifies the access/refresh token pair.

    Usage:
        issuer = TokenIssuer(settings)
        pair = issuer.issue(42)
        account_id = issuer.verify(pair.refresh_token, TokenKind.REFRESH)
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        self._secrets = {
            TokenKind.ACCESS: settings.jwt_access_secret,
            TokenKind.REFRESH: settings.jwt_refresh_secret,
        }
        self._lifetimes = {
            TokenKind.ACCESS: timedelta(seconds=settings.access_token_expire_seconds),
            TokenKind.REFRESH: timedelta(seconds=settings.refresh_token_expire_seconds),
        }
        self._clock = clock

    def issue(self, account_id: int) -> TokenPair:
        """Return a fresh access/refresh pair for the account."""
        now = self._clock()
        return TokenPair(
            access_token=self._encode(account_id, TokenKind.ACCESS, now),
            refresh_token=self._encode(account_id, TokenKind.REFRESH, now),
        )

    def verify(self, token: str, kind: TokenKind) -> int:
        """Decode a token of the given kind and return its account id.

        Raises UnauthorizedError on a bad signature, expiry, wrong token type,
        or a malformed subject. The reason is logged at DEBUG only.
        """
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[_ALGORITHM])
        except JWTError as exc:
            logger.debug("Rejected %s token: %s", kind.value, exc)
            raise UnauthorizedError("Invalid token") from exc
        if payload.get("type") != kind.value:
            raise UnauthorizedError("Invalid token")
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UnauthorizedError("Invalid token") from exc

    def _encode(self, account_id: int, kind: TokenKind, now: datetime) -> str:
        payload = {
            "sub": str(account_id),
            "type": kind.value,
            "iat": now,
            "exp": now + self._lifetimes[kind],
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)
