"""
auth/dependencies.py -- FastAPI Depends() helpers: guards and client metadata.

Guards:
  get_current_account() -- Authorization: Bearer <access token>. Used by
      logout, change-email, change-password and the users routes.
  require_refresh_token() -- the refresh cookie, verified twice: signature
      and expiry by the TokenIssuer, then against the device fingerprints by
      the SessionManager. Admits the caller to POST /auth/refresh.

Both raise UnauthorizedError, which the API exception handler renders as 401.
A refresh cookie whose account has no session at all is also reported as
401: the caller only learns "not authorized", never which check failed.

Layer rule: may import fastapi (part of the DI system); no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from auth.models import Account, DeviceSession, TokenKind
from auth.wiring import AuthServices
from core.errors import NotFoundError, UnauthorizedError


@dataclass(frozen=True)
class ClientMeta:
    """Device fingerprint used to key per-device sessions."""

    ip_address: str
    user_agent: str


def get_services(request: Request) -> AuthServices:
    return request.app.state.services


def client_meta(request: Request) -> ClientMeta:
    """Extract (ip, user agent) for the session key.

    X-Forwarded-For is client-controlled, so its first hop is used only when
    TRUST_FORWARDED_FOR is set (a proxy in front overwrites the header).
    Otherwise the socket peer address is used.
    """
    ip = ""
    if request.app.state.settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        ip = forwarded.split(",")[0].strip()
    if not ip:
        ip = request.client.host if request.client else "unknown"
    return ClientMeta(ip_address=ip, user_agent=request.headers.get("User-Agent") or "unknown")


def get_current_account(request: Request) -> Account:
    """Require a valid Bearer access token. Raises UnauthorizedError otherwise.

    Use as a FastAPI dependency:
        @router.patch("/auth/change-email")
        def route(account: Account = Depends(get_current_account)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Authentication required.")
    return get_services(request).sessions.authenticate_access(auth_header[7:])


def require_refresh_token(request: Request) -> DeviceSession:
    """Require a valid refresh cookie bound to a live device session.

    Returns the session row whose fingerprint matched the cookie.
    """
    services = get_services(request)
    token = request.cookies.get(request.app.state.settings.refresh_cookie_name)
    if not token:
        raise UnauthorizedError("Refresh token missing")
    account_id = services.issuer.verify(token, TokenKind.REFRESH)
    try:
        return services.sessions.validate_refresh(account_id, token)
    except NotFoundError as exc:
        raise UnauthorizedError("Invalid Refresh Token") from exc
