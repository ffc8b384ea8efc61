"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is looked up in priority order:
  1. The session cookie (name from app.state.token_cookie_name, default "jwt")
     -- set by the login flow for browser clients.
  2. Authorization: Bearer <token> header -- API clients.

read_session_token() is the soft variant (returns None when absent).
get_current_email() verifies the token through AuthService, revocation
included, and raises HTTP 401 when it is missing or invalid.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import InvalidToken, MissingToken
from auth.models import Email
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService wired into app.state by the lifespan."""
    return request.app.state.auth_service


def read_session_token(request: Request) -> str | None:
    """Return the raw session token from cookie or Bearer header, or None."""
    cookie_name = getattr(request.app.state, "token_cookie_name", "jwt")
    token: str | None = request.cookies.get(cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_email(request: Request) -> Email:
    """Require a valid, unrevoked session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(email: Email = Depends(get_current_email)): ...
    """
    service = get_auth_service(request)
    try:
        return service.verify_token(read_session_token(request))
    except (MissingToken, InvalidToken) as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": "Authentication required."},
        ) from exc
