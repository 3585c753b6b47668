"""
api/routes/v1/auth.py -- Authentication, session and password-recovery endpoints.

Routes:
  POST  /api/v1/auth/register              -- create account; returns id + access token, sets refresh cookie
  POST  /api/v1/auth/login                 -- email/password login; same shape as register
  POST  /api/v1/auth/refresh               -- rotate the token pair (requires refresh cookie)
  POST  /api/v1/auth/logout                -- clear this device's session (requires access token)
  GET   /api/v1/auth/{provider}/login      -- OAuth redirect; ?mode=login|signup
  GET   /api/v1/auth/{provider}/callback   -- OAuth callback; redirects to the frontend
  POST  /api/v1/auth/forgot-password       -- request a recovery code
  POST  /api/v1/auth/reset-password        -- reset the password with the code
  PATCH /api/v1/auth/change-email          -- requires access token
  PATCH /api/v1/auth/change-password       -- requires access token

Security:
  [C1] Login goes through CredentialValidator, which equalizes timing. Do NOT
       inline the lookup + bcrypt check here.
  [C3] Login returns one message for unknown email and wrong password so the
       response never reveals whether an account exists.
  [M5] Cache-Control: no-store on every response that carries a token.

Domain errors (core.errors.AuthError) propagate to the handler in api/main.py,
which renders them with their stable status and code.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from api.cookies import clear_refresh_cookie, set_refresh_cookie
from api.models import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    ErrorDetail,
    ErrorResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
)
from auth.dependencies import ClientMeta, client_meta, get_current_account, get_services, require_refresh_token
from auth.identity import parse_mode
from auth.models import Account, DeviceSession, IssuedSession
from auth.oauth import get_identity_assertion
from core.errors import AuthError, BadRequestError, ConflictError, NotFoundError, UnauthorizedError

logger = logging.getLogger("authkeep.api.auth")

# Auth policy:
# - POST  /auth/register, /auth/login:            public
# - POST  /auth/refresh:                          refresh cookie (require_refresh_token)
# - POST  /auth/logout:                           access token (get_current_account)
# - GET   /auth/{provider}/login|callback:        public, OAuth state in the session
# - POST  /auth/forgot-password, reset-password:  public, code-based
# - PATCH /auth/change-email, change-password:    access token (get_current_account)
router = APIRouter()

_OAUTH_MODE_KEY = "oauth_mode"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_response(request: Request, issued: IssuedSession, status_code: int = 200) -> JSONResponse:
    """Return {id, accessToken} and put the refresh token in the cookie."""
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(id=issued.account_id, access_token=issued.access_token).model_dump(by_alias=True),
    )
    set_refresh_cookie(resp, issued.refresh_token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _ensure_provider(request: Request, provider: str) -> None:
    if provider not in request.app.state.settings.enabled_oauth_providers:
        raise BadRequestError("Unknown OAuth provider")


def _frontend_redirect(request: Request, **params) -> RedirectResponse:
    base = f"{request.app.state.settings.frontend_origin}/auth/authorize"
    return RedirectResponse(f"{base}?{urlencode(params)}", status_code=302)


# ---------------------------------------------------------------------------
# Registration and password login
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    meta: ClientMeta = Depends(client_meta),
) -> JSONResponse:
    """Create a password account, open a session on this device, and queue the welcome email."""
    services = get_services(request)
    account = services.accounts.register(body.email, body.password, body.username)
    issued = services.sessions.login(account.id, meta.ip_address, meta.user_agent)
    return _session_response(request, issued, status_code=201)


@router.post("/auth/login", response_model=SessionResponse)
def login(
    request: Request,
    body: LoginRequest,
    meta: ClientMeta = Depends(client_meta),
) -> JSONResponse:
    """Authenticate with email and password; set the refresh cookie.

    Unknown email (NotFoundError) and wrong password (InvalidCredentialError)
    both become the same 401 [C3].
    """
    services = get_services(request)
    try:
        account_id = services.validator.validate(body.email, body.password)
    except (NotFoundError, UnauthorizedError):
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="unauthorized", message="Invalid email or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    issued = services.sessions.login(account_id, meta.ip_address, meta.user_agent)
    return _session_response(request, issued)


# ---------------------------------------------------------------------------
# Session rotation and logout
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(
    request: Request,
    presented: DeviceSession = Depends(require_refresh_token),
    meta: ClientMeta = Depends(client_meta),
) -> JSONResponse:
    """Rotate the token pair. The presented refresh token stops working."""
    issued = get_services(request).sessions.refresh(presented, meta.ip_address, meta.user_agent)
    return _session_response(request, issued)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    account: Account = Depends(get_current_account),
    meta: ClientMeta = Depends(client_meta),
) -> JSONResponse:
    """End the session on this device and clear the cookie. Idempotent."""
    get_services(request).sessions.logout(account.id, meta.ip_address, meta.user_agent)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_refresh_cookie(resp, request.app.state.settings)
    return resp


# ---------------------------------------------------------------------------
# OAuth login / signup
# ---------------------------------------------------------------------------


@router.get("/auth/{provider}/login")
async def oauth_login(request: Request, provider: str, mode: str | None = None) -> RedirectResponse:
    """Redirect the browser to the provider, remembering the mode in the session.

    An unknown provider or a mode other than login/signup is a 400 before
    any redirect happens.
    """
    _ensure_provider(request, provider)
    auth_mode = parse_mode(mode)
    request.session[_OAUTH_MODE_KEY] = auth_mode.value
    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/{provider}/callback", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Finish the OAuth flow and hand the result to the frontend.

    Flow:
      1. Read the mode stored by oauth_login (400 if absent or invalid).
      2. Exchange the authorization code (authlib checks the CSRF state).
      3. Extract a verified identity assertion [H1]. A provider API
         error (httpx) -> ?error=unknown.
      4. Reconcile it under the mode: 409 -> ?mode=signup&error=409,
         404 -> ?mode=login&error=404.
      5. Open a session, set the refresh cookie, redirect with token + id.
    """
    _ensure_provider(request, provider)
    mode = parse_mode(request.session.pop(_OAUTH_MODE_KEY, None))
    client = request.app.state.oauth.create_client(provider)
    services = get_services(request)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return _frontend_redirect(request, error="unknown")

    try:
        assertion = await get_identity_assertion(client, provider, token)
    except ValueError:
        logger.warning("OAuth %s rejected: unverified or missing email from %r", mode.value, provider)
        return _frontend_redirect(request, error="user_null")
    except httpx.HTTPError:
        logger.exception("OAuth %s: identity lookup failed at provider %r", mode.value, provider)
        return _frontend_redirect(request, error="unknown")

    try:
        account = await run_in_threadpool(services.identity.reconcile, assertion, mode)
    except ConflictError:
        return _frontend_redirect(request, mode="signup", error=409)
    except NotFoundError:
        return _frontend_redirect(request, mode="login", error=404)
    except AuthError:
        logger.exception("OAuth %s failed for provider %r", mode.value, provider)
        return _frontend_redirect(request, error="unknown")

    meta = client_meta(request)
    issued = await run_in_threadpool(services.sessions.login, account.id, meta.ip_address, meta.user_agent)
    resp = _frontend_redirect(request, token=issued.access_token, id=issued.account_id)
    set_refresh_cookie(resp, issued.refresh_token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> ForgotPasswordResponse:
    """Send a recovery code, unless an unexpired one is already out."""
    result = get_services(request).recovery.request_recovery(body.email)
    return ForgotPasswordResponse(message=result.message, status=result.status.value)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password. 404 no account/code, 409 wrong code, 410 expired code."""
    message = get_services(request).recovery.reset_password(body.email, body.reset_password_code, body.new_password)
    return MessageResponse(message=message)


# ---------------------------------------------------------------------------
# Credential changes (authenticated)
# ---------------------------------------------------------------------------


@router.patch("/auth/change-email", response_model=MessageResponse)
def change_email(
    request: Request,
    body: ChangeEmailRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    return MessageResponse(message=get_services(request).accounts.change_email(account.id, body.new_email))


@router.patch("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """400 when the new password equals the current one."""
    return MessageResponse(message=get_services(request).accounts.change_password(account.id, body.new_password))
