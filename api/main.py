"""
api/main.py -- FastAPI application entry point for authgate.

Exposes the authentication core over HTTP. Routing, transport and process
bootstrap live here; all identity logic lives in auth/.

Run with:      uvicorn asgi:app --reload
               authgate-server

Lifespan builds the auth components once from Settings (signing secret,
password policy, token lifetimes, database URL) and stores them on app.state.
Nothing reads configuration per request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.delivery import LoggingResetDelivery, ResetDelivery
from auth.dependencies import AccessGuard
from auth.errors import (
    AccountNotFoundError,
    AuthError,
    DeliveryError,
    DuplicateAccountError,
    InvalidCredentialsError,
    MissingTokenError,
    ResetTokenAlreadyUsedError,
    ResetTokenExpiredError,
    ResetTokenNotFoundError,
    StorageUnavailableError,
    TokenExpiredError,
    TokenMalformedError,
    WeakInputError,
)
from auth.passwords import CredentialHasher
from auth.reset import ResetTokenManager
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")

# ---------------------------------------------------------------------------
# Error -> HTTP status mapping
#
# Looked up along the exception's MRO, so InvalidEmailError inherits the
# WeakInputError status. Codes and messages come from the error classes.
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: dict[type[AuthError], int] = {
    WeakInputError: 400,
    DuplicateAccountError: 409,
    InvalidCredentialsError: 401,
    MissingTokenError: 401,
    TokenMalformedError: 401,
    TokenExpiredError: 401,
    ResetTokenNotFoundError: 400,
    ResetTokenExpiredError: 400,
    ResetTokenAlreadyUsedError: 400,
    AccountNotFoundError: 404,
    StorageUnavailableError: 503,
    DeliveryError: 502,
}

# Guard rejections that should prompt the client to (re)authenticate.
_BEARER_CHALLENGE_ERRORS = (MissingTokenError, TokenMalformedError, TokenExpiredError)


def status_for(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 500


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def configure_auth(
    app: FastAPI,
    settings: Settings,
    store: AccountStore,
    delivery: ResetDelivery | None = None,
) -> None:
    """Build the auth components from settings and attach them to app.state.

    Shared by the real lifespan and the test fixtures so both run the same
    wiring against different stores.
    """
    hasher = CredentialHasher(min_length=settings.min_password_length, rounds=settings.bcrypt_rounds)
    codec = TokenCodec(
        settings.secret_key,
        expire_seconds=settings.token_expire_seconds,
        leeway_seconds=settings.token_leeway_seconds,
    )
    reset_tokens = ResetTokenManager(store, ttl_seconds=settings.reset_token_expire_seconds)
    app.state.account_store = store
    app.state.auth_service = AuthService(
        store,
        hasher,
        codec,
        reset_tokens=reset_tokens,
        delivery=delivery or LoggingResetDelivery(),
        expose_reset_tokens=settings.reset_tokens_exposed,
    )
    app.state.access_guard = AccessGuard(codec, store)
    if settings.reset_tokens_exposed:
        logger.warning("Reset tokens are returned in forgot-password responses -- development mode only")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the account directory and wire the auth components; close on shutdown."""
    logger.info("authgate API starting up")
    settings = get_settings()
    store = AccountStore(settings.database_url, timeout_seconds=settings.database_timeout_seconds)
    configure_auth(app, settings, store)
    logger.info("Auth initialized (debug=%s)", settings.debug)

    yield

    app.state.account_store.close()
    logger.info("authgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authgate API",
    description="Registration, login, bearer tokens and self-service password reset.",
    version=VERSION,
    lifespan=lifespan,
)


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

app.include_router(auth_router, prefix="/api", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an auth-core error with its mapped status and stable code.

    The body carries only the error code and its client-safe message, so
    equal failures produce byte-identical responses.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path)
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(exclude_none=True),
    )
    if isinstance(exc, _BEARER_CHALLENGE_ERRORS):
        response.headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, InvalidCredentialsError):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails schema validation."""
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
    """Return a structured error for all FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and directory reachability."""
    database_ok = request.app.state.account_store.ping()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
