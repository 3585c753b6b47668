"""
tests/test_config.py -- Settings secret policy and lifetime validation.

Settings are built with explicit keyword arguments so the DEBUG=true set in
conftest does not leak into the production-mode cases.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

_VALID = {
    "secret_key": "k" * 32,
    "jwt_access_secret": "a" * 32,
    "jwt_refresh_secret": "r" * 32,
    "notification_redis_url": "redis://localhost:6379/0",
}


def test_production_requires_secrets() -> None:
    with pytest.raises(ValidationError, match="JWT_ACCESS_SECRET is required"):
        Settings(debug=False, **{**_VALID, "jwt_access_secret": ""})


def test_debug_generates_missing_secrets() -> None:
    settings = Settings(debug=True, secret_key="", jwt_access_secret="", jwt_refresh_secret="")
    assert len(settings.secret_key) >= 32
    assert settings.jwt_access_secret != settings.jwt_refresh_secret


def test_production_requires_notification_broker() -> None:
    with pytest.raises(ValidationError, match="NOTIFICATION_REDIS_URL is required"):
        Settings(debug=False, **{**_VALID, "notification_redis_url": ""})


def test_debug_allows_log_only_notifications() -> None:
    settings = Settings(debug=True, **{**_VALID, "notification_redis_url": ""})
    assert settings.notification_redis_url == ""


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=False, **{**_VALID, "jwt_refresh_secret": "short"})


def test_access_and_refresh_secrets_must_differ() -> None:
    with pytest.raises(ValidationError, match="must differ"):
        Settings(debug=False, **{**_VALID, "jwt_refresh_secret": "a" * 32})


@pytest.mark.parametrize("field", ["access_token_expire_seconds", "recovery_code_ttl_seconds"])
def test_lifetimes_must_be_positive(field: str) -> None:
    with pytest.raises(ValidationError, match="must be positive"):
        Settings(debug=False, **_VALID, **{field: 0})


def test_defaults() -> None:
    settings = Settings(debug=False, **_VALID)
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 60 * 60
    assert settings.recovery_code_ttl_seconds == 900
    assert settings.refresh_cookie_name == "refreshToken"
    assert settings.trust_forwarded_for is False


def test_enabled_oauth_providers_need_id_and_secret() -> None:
    settings = Settings(debug=False, **_VALID, google_client_id="id", google_client_secret="secret", github_client_id="x")
    assert settings.enabled_oauth_providers == ["google"]
