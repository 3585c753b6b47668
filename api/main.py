"""
api/main.py -- FastAPI application entry point for AuthKeep.

Exposes the credential core (auth/) over HTTP: registration, password and
OAuth login, token refresh, logout, password recovery and self-service
profile changes.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- the browser frontend runs on another origin and
                          needs credentialed requests for the refresh cookie
  2. SessionMiddleware -- authlib keeps the OAuth state (and our login/signup
                          mode) here between redirect and callback

Lifespan builds the object graph once (settings -> store -> publisher ->
services -> OAuth registry) and tears it down in reverse on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.notifications import build_publisher
from auth.oauth import build_oauth
from auth.store import CredentialStore
from auth.wiring import build_auth_services
from core.config import get_settings
from core.errors import AuthError

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authkeep.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the credential core on startup and release it on shutdown.

    Startup order matters:
      1. Settings first -- secret validation fails fast before any I/O.
      2. Store second -- creates the tables if they do not exist.
      3. Publisher and services -- depend on the store and settings.
      4. OAuth registry last -- only providers with credentials are registered.
    """
    settings = get_settings()
    logger.info("AuthKeep API starting up (debug=%s)", settings.debug)
    app.state.settings = settings
    app.state.store = CredentialStore(settings.database_url)
    app.state.publisher = build_publisher(settings.notification_redis_url, settings.notification_stream)
    app.state.services = build_auth_services(settings, app.state.store, app.state.publisher)
    app.state.oauth = build_oauth(settings)
    logger.info("Auth initialized (oauth providers: %s)", ", ".join(settings.enabled_oauth_providers) or "none")

    yield

    app.state.publisher.close()
    app.state.store.close()
    logger.info("AuthKeep API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthKeep API",
    description="Credential storage, token sessions, password recovery and OAuth account linking.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Middleware config is read at import time, so it uses the settings
# singleton directly; everything else reads app.state.settings.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# authlib stores the OAuth state value in the session before redirecting to
# the provider and checks it in the callback (CSRF protection for the
# authorization code flow). Without it the OAuth flow fails.
app.add_middleware(SessionMiddleware, secret_key=get_settings().secret_key)

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain error with its own status code and stable message."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=exc.error_code, message=exc.message, detail=exc.detail)
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and whether the database answers."""
    try:
        database = "ok" if request.app.state.store.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check: database ping failed")
        database = "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
