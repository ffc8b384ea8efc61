"""
api/main.py -- FastAPI application entry point for the session-auth service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the stores selected by STORE_BACKEND, wires them into one
AuthService on app.state, and closes them on shutdown. Stores are chosen
here and nowhere else -- auth/ only sees the abstract contracts.
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
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import (
    AlreadyExists,
    AuthError,
    IncorrectCredentials,
    InvalidCredentials,
    InvalidToken,
    MissingToken,
    UnexpectedError,
)
from auth.hashing import BcryptHasher
from auth.notify import LoggingCodeSender
from auth.service import AuthService
from auth.sql_store import SqlChallengeStore, SqlCredentialStore, SqlRevocationStore, create_sql_engine
from auth.store import InMemoryChallengeStore, InMemoryCredentialStore, InMemoryRevocationStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

# AuthError -> HTTP status. Anything not listed is a 500.
_STATUS_BY_ERROR: dict[type[AuthError], int] = {
    InvalidCredentials: 400,
    MissingToken: 400,
    IncorrectCredentials: 401,
    InvalidToken: 401,
    AlreadyExists: 409,
    UnexpectedError: 500,
}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings) -> AuthService:
    """Construct AuthService with the store backend named in settings.

    "memory" -- volatile stores, lost on restart (default, single process).
    "sql"    -- SQLAlchemy tables at DATABASE_URL sharing one engine.
    """
    hasher = BcryptHasher(rounds=settings.bcrypt_rounds)
    if settings.store_backend == "sql":
        engine = create_sql_engine(settings.database_url)
        accounts = SqlCredentialStore(engine, hasher)
        revocations = SqlRevocationStore(engine)
        challenges = SqlChallengeStore(engine)
    else:
        accounts = InMemoryCredentialStore(hasher)
        revocations = InMemoryRevocationStore()
        challenges = InMemoryChallengeStore()
    return AuthService(
        accounts,
        revocations,
        challenges,
        TokenIssuer(settings.secret_key, ttl_seconds=settings.token_expire_seconds),
        LoggingCodeSender(),
        code_length=settings.two_factor_code_length,
        consume_challenge_on_failure=settings.consume_challenge_on_failure,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the AuthService on startup and release its stores on shutdown."""
    settings = get_settings()
    logger.info("Session auth service starting up (store_backend=%s)", settings.store_backend)
    app.state.auth_service = build_auth_service(settings)
    app.state.token_cookie_name = settings.token_cookie_name
    app.state.store_backend = settings.store_backend

    yield

    app.state.auth_service.close()
    logger.info("Session auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Session Auth API",
    description="Credential validation, session tokens with revocation, and two-factor login.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the AuthService error taxonomy onto HTTP status codes.

    UnexpectedError keeps its cause in the log only; the client sees the
    generic message.
    """
    status_code = _STATUS_BY_ERROR.get(type(exc), 500)
    if status_code >= 500:
        logger.error(
            "Unexpected auth failure on %s %s",
            request.method,
            request.url.path,
            exc_info=exc.__cause__ or exc,
        )
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body is not the expected JSON shape."""
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
    """Return a structured error for HTTPExceptions raised by dependencies.

    When detail is already a dict, use it directly as the error field --
    str(dict) would produce a Python repr, not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)),
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="internal_error", message="An unexpected error occurred."),
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- no rate limit, no auth
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and the active store backend."""
    return HealthResponse(version=_VERSION, store_backend=getattr(request.app.state, "store_backend", "unknown"))
