"""
auth/oauth.py -- Authlib OAuth/OIDC provider registry and identity extraction.

build_oauth(settings) registers only the providers whose client ID and secret
are both configured. The registry is built once at the composition root and
stored on app.state; nothing here reads configuration at import time.

Security notes:
  [H1] Email verification is mandatory. get_identity_assertion() raises
       ValueError if the provider does not confirm the email is verified. An
       unverified email could belong to an attacker who added a victim's
       address without confirming it.

  OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware. The login/signup mode is kept in the same
  server-side session, never trusted from the callback's query string.

Supported providers:
  google -- Authorization code flow; OIDC discovery.
  github -- Authorization code flow; static endpoints.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import IdentityAssertion
from core.config import Settings

logger = logging.getLogger("authkeep.auth.oauth")


def build_oauth(settings: Settings) -> OAuth:
    """Return an authlib registry with every configured provider registered."""
    oauth = OAuth()

    if settings.google_client_id and settings.google_client_secret:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")

    if settings.github_client_id and settings.github_client_secret:
        oauth.register(
            name="github",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://github.com/login/oauth/authorize",
            api_base_url="https://api.github.com/",
            client_kwargs={"scope": "read:user user:email"},
        )
        logger.info("GitHub OAuth provider registered")

    return oauth


# ---------------------------------------------------------------------------
# Identity extraction -- provider-specific normalization [H1]
# ---------------------------------------------------------------------------


async def get_identity_assertion(client, provider: str, token: dict) -> IdentityAssertion:
    """Normalize a provider token response into (email, display name, avatar URL).

    Raises:
        ValueError: If a verified email cannot be confirmed, or the provider
            is unknown.
    """
    if provider == "google":
        return _google_assertion(token)
    if provider == "github":
        return await _github_assertion(client, token)
    raise ValueError(f"Unknown OAuth provider: {provider!r}")


def _google_assertion(token: dict) -> IdentityAssertion:
    """Read the OIDC userinfo claims authlib parsed from the id_token."""
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")
    if not userinfo.get("email_verified", False):
        raise ValueError("google OAuth: email is not verified")
    email = userinfo.get("email")
    if not email:
        raise ValueError("google OAuth: missing email claim in userinfo")
    return IdentityAssertion(
        email=email,
        display_name=userinfo.get("name"),
        avatar_url=userinfo.get("picture"),
    )


async def _github_assertion(client, token: dict) -> IdentityAssertion:
    """GitHub needs two API calls: the profile, then the primary verified email."""
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()
    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry["email"]
            break
    if not email:
        raise ValueError("GitHub OAuth: no primary verified email found")

    return IdentityAssertion(
        email=email,
        display_name=profile.get("name") or profile.get("login"),
        avatar_url=profile.get("avatar_url"),
    )
