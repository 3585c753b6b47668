"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthKeep happen here. No module should
call os.getenv() or os.environ.get() directly. Components never call
get_settings() either: the composition root (api/main.py lifespan) reads the
singleton once and passes the Settings object into each constructor.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_access_secret -> JWT_ACCESS_SECRET).

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Dev mode generates missing secrets with a warning, production
      mode refuses to start without them.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright. HMAC-SHA256 and
       JWT signing both rely on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing secret is a
       hard startup failure.

  [M8] Access and refresh tokens must be signed with different secrets so a
       leaked access secret cannot mint refresh tokens.

  Production mode also requires NOTIFICATION_REDIS_URL. The log-only
  publisher is a development convenience.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authkeep.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'authkeep.db'}"

_SECRET_FIELDS = ("secret_key", "jwt_access_secret", "jwt_refresh_secret")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev value or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Refresh cookie
    # ------------------------------------------------------------------

    refresh_cookie_name: str = "refreshToken"
    cookie_max_age_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    recovery_code_ttl_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # Notifications (empty URL = log-only publisher, DEBUG=true only)
    # ------------------------------------------------------------------

    notification_redis_url: str = ""
    notification_stream: str = "notification-service"

    # ------------------------------------------------------------------
    # Frontend / CORS
    # ------------------------------------------------------------------

    frontend_origin: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost:3000"]
    # Honor the first X-Forwarded-For hop as the client IP. Only enable behind
    # a proxy that overwrites the header.
    trust_forwarded_for: bool = False

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [M6] [M7] [M8].

        Dev mode (DEBUG=true): auto-generate every missing secret with a
            warning. Tokens will not survive a restart.

        Production mode: refuse to start if any secret is missing.
        """
        for name in _SECRET_FIELDS:
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())
            if len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ.")
        return self

    @model_validator(mode="after")
    def validate_notification_transport(self) -> "Settings":
        """Production mode needs a broker: recovery codes are useless if only logged."""
        if not self.debug and not self.notification_redis_url:
            raise ValueError(
                "NOTIFICATION_REDIS_URL is required in production mode. "
                "Set it in your environment or .env file. "
                "To log notifications instead, set DEBUG=true."
            )
        return self

    @model_validator(mode="after")
    def validate_lifetimes(self) -> "Settings":
        lifetimes = {
            "access_token_expire_seconds": self.access_token_expire_seconds,
            "refresh_token_expire_seconds": self.refresh_token_expire_seconds,
            "cookie_max_age_seconds": self.cookie_max_age_seconds,
            "recovery_code_ttl_seconds": self.recovery_code_ttl_seconds,
        }
        for name, seconds in lifetimes.items():
            if seconds <= 0:
                raise ValueError(f"{name.upper()} must be positive.")
        return self

    @property
    def enabled_oauth_providers(self) -> list[str]:
        """Names of providers with both client ID and secret configured."""
        providers: list[str] = []
        if self.google_client_id and self.google_client_secret:
            providers.append("google")
        if self.github_client_id and self.github_client_secret:
            providers.append("github")
        return providers


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
