"""
auth/hashing.py -- One-way hashing for passwords and refresh-token fingerprints.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). bcrypt's cost factor makes
       brute-forcing low-entropy secrets expensive. The DUMMY_HASH constant
       lets the credential validator run bcrypt even when the email is
       unknown, so response time does not reveal account existence [C1].

  Refresh tokens: HMAC-SHA256(SECRET_KEY, token). Refresh tokens are signed
       JWTs with a random jti, so bcrypt's slowness buys nothing, and bcrypt
       only looks at the first 72 bytes -- two JWTs of the same user share
       far more than 72 bytes of header and claims, so bcrypt would treat a
       rotated-out token as still valid. Comparison uses hmac.compare_digest.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac

import bcrypt

# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt rejects inputs over 72 bytes; the API layer caps passwords at 20
    characters, which keeps every accepted password well below the limit.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed hash or an over-long input counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first failed login is not measurably slower
# than later ones.
DUMMY_HASH: str = hash_password("authkeep_timing_dummy")


# ---------------------------------------------------------------------------
# Refresh-token fingerprints
# ---------------------------------------------------------------------------


class TokenFingerprinter:
    """Keyed fingerprints of refresh tokens for storage in the sessions table."""

    def __init__(self, secret_key: str) -> None:
        self._key = secret_key.encode("utf-8")

    def fingerprint(self, token: str) -> str:
        return hmac.new(self._key, token.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, token: str, fingerprint: str | None) -> bool:
        """Constant-time check of a presented token against a stored fingerprint."""
        if not fingerprint:
            return False
        return hmac.compare_digest(self.fingerprint(token), fingerprint)
