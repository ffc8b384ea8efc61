"""
api/routes/v1/auth.py -- Session authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup        -- create an account; 201
  POST /api/v1/auth/login         -- password login; 200 + session cookie, or 206 + loginAttemptId
  POST /api/v1/auth/verify-2fa    -- second factor; 200 + session cookie
  POST /api/v1/auth/logout        -- revoke the presented token, clear cookie; 200
  POST /api/v1/auth/verify-token  -- check a bare token; 200 or 401
  GET  /api/v1/auth/session       -- subject of the caller's session (requires auth)

Handlers are thin: parsing, validation and every decision live in
AuthService. AuthError subclasses raised here are mapped to status codes by
the exception handler in api/main.py, so no handler builds an error response.

Security:
  POST /login and /verify-2fa are rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries a token.
  The two-factor code is never part of a response body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    LoginRequest,
    MessageResponse,
    SessionIssuedResponse,
    SessionResponse,
    SignupRequest,
    TwoFactorRequest,
    TwoFactorRequiredResponse,
    VerifyTokenRequest,
    VerifyTokenResponse,
)
from auth.dependencies import get_auth_service, get_current_email, read_session_token
from auth.models import Email, LoginResult
from core.config import get_settings

router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", status_code=201, response_model=MessageResponse)
def signup(request: Request, body: SignupRequest) -> MessageResponse:
    """Register an account. 409 if the email is taken, 400 if malformed."""
    get_auth_service(request).signup(body.email, body.password, body.requires_two_factor)
    return MessageResponse(message="User created successfully!")


@limiter.limit(_login_rate_limit)  # brute-force mitigation
@router.post("/auth/login", response_model=SessionIssuedResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password both return 401 incorrect_credentials.
    Accounts flagged for two-factor get 206 with a loginAttemptId instead of
    a token; the code itself is delivered out of band.
    """
    result = get_auth_service(request).login(body.email, body.password)
    if result.requires_two_factor:
        resp = JSONResponse(
            status_code=206,
            content=TwoFactorRequiredResponse(login_attempt_id=result.challenge_id.value).model_dump(by_alias=True),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _session_response(request, result)


@limiter.limit(_login_rate_limit)
@router.post("/auth/verify-2fa", response_model=SessionIssuedResponse)
def verify_two_factor(request: Request, body: TwoFactorRequest) -> JSONResponse:
    """Complete a two-factor login. Wrong or stale code returns 401."""
    result = get_auth_service(request).verify_two_factor(body.email, body.login_attempt_id, body.code)
    return _session_response(request, result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented token and clear the session cookie.

    Succeeds for any token string, including ones that no longer verify.
    400 missing_token when no cookie or Bearer header is present.
    """
    get_auth_service(request).logout(read_session_token(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    resp.delete_cookie(get_settings().token_cookie_name)
    return resp


@router.post("/auth/verify-token", response_model=VerifyTokenResponse)
def verify_token(request: Request, body: VerifyTokenRequest) -> VerifyTokenResponse:
    """Validate a bare token: signature, expiry and revocation."""
    email = get_auth_service(request).verify_token(body.token)
    return VerifyTokenResponse(email=email.value)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/session", response_model=SessionResponse)
def session(email: Email = Depends(get_current_email)) -> SessionResponse:
    """Return the identity bound to the caller's session token."""
    return SessionResponse(email=email.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_response(request: Request, result: LoginResult) -> JSONResponse:
    """Build the 200 response for an issued session and set the cookie.

    httponly: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age matches the token lifetime so both expire together.
    """
    settings = get_settings()
    resp = JSONResponse(
        status_code=200,
        content=SessionIssuedResponse(
            token=result.token,
            expires_in=settings.token_expire_seconds,
        ).model_dump(),
    )
    resp.set_cookie(
        settings.token_cookie_name,
        value=result.token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.token_expire_seconds,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
