"""
api/cookies.py -- Refresh-token cookie helpers.

The credential core hands the refresh token to the transport; storing it in
the browser is this module's job.

  httponly=True:     JS cannot read the cookie (XSS mitigation).
  secure=True:       required by browsers for SameSite=None.
  samesite="none":   the frontend runs on a different origin and must send
                     the cookie on cross-site POST /auth/refresh.
  max_age:           COOKIE_MAX_AGE_SECONDS from Settings.

The cookie is cleared with the same attributes it was set with; browsers
ignore a deletion whose path or SameSite/secure flags differ.
"""

from __future__ import annotations

from starlette.responses import Response

from core.config import Settings


def set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.refresh_cookie_name,
        value=token,
        max_age=settings.cookie_max_age_seconds,
        path="/",
        secure=True,
        httponly=True,
        samesite="none",
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.refresh_cookie_name,
        path="/",
        secure=True,
        httponly=True,
        samesite="none",
    )
