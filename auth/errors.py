"""
auth/errors.py -- Exception taxonomy for the authentication core.

Three tiers, from the inside out:

  ValidationError  -- raised by the value-type parsers (Email, Credential).
  StoreError /     -- raised by store backends and the token verifier. Each
  TokenError          store contract documents which subclasses it may raise.
  AuthError        -- raised by AuthService. These are the only errors the
                      transport layer has to know about; each carries a stable
                      machine-readable code and a message that is safe to show
                      to the caller.

AuthService never lets a StoreError escape as anything but UnexpectedError,
and never turns a specific store error (AccountNotFound, ChallengeNotFound)
into UnexpectedError.

Layer rule: stdlib only.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """A raw string could not be parsed into a value type."""

    kind = "invalid"


class InvalidEmail(ValidationError):
    kind = "invalid_format"


class CredentialTooShort(ValidationError):
    kind = "too_short"


class InvalidChallenge(ValidationError):
    kind = "invalid_format"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Unclassified backend failure. Surfaces as UnexpectedError."""


class AccountAlreadyExists(StoreError):
    pass


class AccountNotFound(StoreError):
    pass


class CredentialMismatch(StoreError):
    pass


class ChallengeNotFound(StoreError):
    pass


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for verification failures of a session token."""


class MalformedToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class BadSignature(TokenError):
    pass


class TokenIssueError(Exception):
    """The signer failed to produce a token. Surfaces as UnexpectedError."""


# ---------------------------------------------------------------------------
# Protocol (externally observable)
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """Base class for errors returned by AuthService operations."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """The submission is malformed. Never touches storage."""

    code = "invalid_credentials"
    message = "Invalid credentials."


class IncorrectCredentials(AuthError):
    """Well-formed but wrong: unknown account, wrong password, wrong code."""

    code = "incorrect_credentials"
    message = "Incorrect credentials."


class AlreadyExists(AuthError):
    code = "already_exists"
    message = "User already exists."


class MissingToken(AuthError):
    code = "missing_token"
    message = "Missing token."


class InvalidToken(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class UnexpectedError(AuthError):
    code = "unexpected_error"
    message = "An unexpected error occurred."
