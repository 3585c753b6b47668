"""
tests/test_tokens.py -- Unit tests for TokenIssuer.

Covers:
  - issued pair verifies under its own kind and yields the account id
  - kinds are not interchangeable (secret and "type" claim)
  - two pairs minted in the same instant differ (jti)
  - expired, tampered and malformed tokens are rejected with UnauthorizedError
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import TokenKind
from auth.tokens import TokenIssuer
from core.errors import UnauthorizedError


class TestIssue:
    def test_pair_verifies_under_own_kind(self, settings) -> None:
        issuer = TokenIssuer(settings)
        pair = issuer.issue(42)
        assert issuer.verify(pair.access_token, TokenKind.ACCESS) == 42
        assert issuer.verify(pair.refresh_token, TokenKind.REFRESH) == 42

    def test_claims_carry_type_and_expiry(self, settings) -> None:
        fixed = datetime(2026, 1, 1, tzinfo=timezone.utc)
        issuer = TokenIssuer(settings, clock=lambda: fixed)
        pair = issuer.issue(7)
        claims = jwt.get_unverified_claims(pair.access_token)
        assert claims["sub"] == "7"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == settings.access_token_expire_seconds
        refresh_claims = jwt.get_unverified_claims(pair.refresh_token)
        assert refresh_claims["type"] == "refresh"
        assert refresh_claims["exp"] - refresh_claims["iat"] == settings.refresh_token_expire_seconds

    def test_same_instant_pairs_are_distinct(self, settings) -> None:
        fixed = datetime.now(timezone.utc)
        issuer = TokenIssuer(settings, clock=lambda: fixed)
        first, second = issuer.issue(1), issuer.issue(1)
        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token


class TestVerify:
    def test_access_token_is_not_a_refresh_token(self, settings) -> None:
        issuer = TokenIssuer(settings)
        pair = issuer.issue(1)
        with pytest.raises(UnauthorizedError):
            issuer.verify(pair.access_token, TokenKind.REFRESH)
        with pytest.raises(UnauthorizedError):
            issuer.verify(pair.refresh_token, TokenKind.ACCESS)

    def test_type_claim_is_checked(self, settings) -> None:
        """A token signed with the access secret but labelled refresh is rejected."""
        now = datetime.now(timezone.utc)
        forged = jwt.encode(
            {"sub": "1", "type": "refresh", "iat": now, "exp": now + timedelta(minutes=5)},
            settings.jwt_access_secret,
            algorithm="HS256",
        )
        with pytest.raises(UnauthorizedError):
            TokenIssuer(settings).verify(forged, TokenKind.ACCESS)

    def test_expired_token_rejected(self, settings) -> None:
        past = datetime.now(timezone.utc) - timedelta(days=30)
        pair = TokenIssuer(settings, clock=lambda: past).issue(1)
        with pytest.raises(UnauthorizedError):
            TokenIssuer(settings).verify(pair.refresh_token, TokenKind.REFRESH)

    def test_foreign_signature_rejected(self, settings) -> None:
        foreign = settings.model_copy(update={"jwt_access_secret": "z" * 48})
        pair = TokenIssuer(foreign).issue(1)
        with pytest.raises(UnauthorizedError):
            TokenIssuer(settings).verify(pair.access_token, TokenKind.ACCESS)

    def test_non_numeric_subject_rejected(self, settings) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "alice", "type": "access", "iat": now, "exp": now + timedelta(minutes=5)},
            settings.jwt_access_secret,
            algorithm="HS256",
        )
        with pytest.raises(UnauthorizedError):
            TokenIssuer(settings).verify(token, TokenKind.ACCESS)

    def test_garbage_rejected(self, settings) -> None:
        with pytest.raises(UnauthorizedError, match="Invalid token"):
            TokenIssuer(settings).verify("not-a-jwt", TokenKind.ACCESS)
