"""
auth/tokens.py -- Session token issuer and verifier.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the process-wide secret
       and carry sub (normalized email), iat, exp and a random jti. The jti
       makes two tokens issued to one subject within the same second distinct
       strings, so revoking one never revokes the other.

  Verification is a pure function of the token, the secret and the clock. It
       does NOT consult the revocation store -- AuthService layers revocation
       on top, keeping signature validity and revocation orthogonal.

  Failures are classified instead of collapsed to None:
       MalformedToken  -- not a JWT, missing claims, subject not an email
       ExpiredToken    -- signature fine, exp in the past
       BadSignature    -- signed with another key or tampered with

The secret is passed in by the wiring code; this module never reads Settings.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWTClaimsError, JWTError

from auth.errors import BadSignature, ExpiredToken, InvalidEmail, MalformedToken, TokenIssueError
from auth.models import Email

logger = logging.getLogger("sessionauth.tokens")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = frozenset({"sub", "iat", "exp"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Issue and verify signed, time-bound session tokens.

    Usage:
        issuer = TokenIssuer(secret_key, ttl_seconds=600)
        token = issuer.issue(email)
        assert issuer.verify(token) == email
    """

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int = 600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a non-empty secret key.")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, email: Email) -> str:
        issued_at = self._clock()
        payload = {
            "sub": email.value,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.ttl_seconds),
            "jti": secrets.token_hex(8),
        }
        try:
            return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
        except JOSEError as exc:
            logger.exception("Token signing failed")
            raise TokenIssueError("token signing failed") from exc

    def verify(self, token: str) -> Email:
        """Return the subject of a valid token or raise a TokenError subclass."""
        if not token or not isinstance(token, str):
            raise MalformedToken("empty token")
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedToken("not a JWT") from exc
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredToken("token expired") from exc
        except JWTClaimsError as exc:
            raise MalformedToken(str(exc)) from exc
        except JWTError as exc:
            raise BadSignature(str(exc)) from exc
        if not _REQUIRED_CLAIMS.issubset(payload):
            raise MalformedToken("missing required claims")
        try:
            return Email(payload["sub"])
        except InvalidEmail as exc:
            raise MalformedToken("subject is not an email") from exc
