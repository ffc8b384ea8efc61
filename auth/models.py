"""
auth/models.py -- Value types and domain records for the authentication core.

Pattern: Data class. Value types (Email, Credential, ChallengeId,
TwoFactorCode) validate in __post_init__, so every instance that exists is a
valid one -- there is no way to construct them around the check. The
parse() classmethods are the intended entry point for raw, untrusted input
and raise a ValidationError subclass on failure.

Records (Account, PendingChallenge) are plain frozen containers; stores and
the orchestrator do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from auth.errors import CredentialTooShort, InvalidChallenge, InvalidEmail

MIN_CREDENTIAL_LENGTH = 8
DEFAULT_CODE_LENGTH = 6


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Email:
    """An RFC-plausible email address, normalized on construction.

    Normalization (lower-cased domain, IDNA handling) comes from
    email-validator, so "a@X.COM" and "a@x.com" are the same identity.
    Deliverability (DNS) is not checked.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidEmail("Email must be a non-empty string.")
        try:
            result = validate_email(self.value.strip(), check_deliverability=False, globally_deliverable=False)
        except EmailNotValidError as exc:
            raise InvalidEmail(str(exc)) from exc
        object.__setattr__(self, "value", result.normalized)

    @classmethod
    def parse(cls, raw: str) -> Email:
        return cls(raw)

    def masked(self) -> str:
        """Log-safe rendering: first character of the local part, then the domain."""
        local, _, domain = self.value.partition("@")
        return f"{local[:1]}***@{domain}"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, repr=False)
class Credential:
    """A raw password. Minimum 8 characters, no upper bound, no class rules.

    repr() is masked so a Credential that ends up in a log line or a
    traceback does not leak. Comparison is by full value.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or len(self.value) < MIN_CREDENTIAL_LENGTH:
            raise CredentialTooShort(f"Credential must be at least {MIN_CREDENTIAL_LENGTH} characters.")

    @classmethod
    def parse(cls, raw: str) -> Credential:
        return cls(raw)

    def __repr__(self) -> str:
        return "Credential('********')"

    __str__ = __repr__


@dataclass(frozen=True)
class ChallengeId:
    """Opaque identifier of one login attempt awaiting a second factor (UUID4)."""

    value: str

    def __post_init__(self) -> None:
        try:
            parsed = uuid.UUID(str(self.value))
        except (TypeError, ValueError) as exc:
            raise InvalidChallenge("Login attempt id is not a valid identifier.") from exc
        object.__setattr__(self, "value", str(parsed))

    @classmethod
    def parse(cls, raw: str) -> ChallengeId:
        return cls(raw)

    @classmethod
    def generate(cls) -> ChallengeId:
        return cls(str(uuid.uuid4()))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, repr=False)
class TwoFactorCode:
    """A short numeric one-time code (reference length: 6 digits)."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not (self.value.isascii() and self.value.isdigit()):
            raise InvalidChallenge("Two-factor code must be numeric.")

    @classmethod
    def parse(cls, raw: str) -> TwoFactorCode:
        return cls(raw)

    @classmethod
    def generate(cls, length: int = DEFAULT_CODE_LENGTH) -> TwoFactorCode:
        return cls(f"{secrets.randbelow(10**length):0{length}d}")

    def __repr__(self) -> str:
        return "TwoFactorCode('******')"

    __str__ = __repr__


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Account:
    """One registered identity, keyed by email.

    credential_hash is the output of a CredentialHasher; the raw Credential
    is never stored. Accounts are not mutated after signup.
    """

    email: Email
    credential_hash: str
    requires_two_factor: bool = False


@dataclass(frozen=True)
class PendingChallenge:
    """The single outstanding second-factor challenge for an email."""

    email: Email
    challenge_id: ChallengeId
    code: TwoFactorCode


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful credential check.

    Exactly one of token / challenge_id is set: token when the session was
    issued directly, challenge_id when a second factor is still required.
    """

    email: Email
    token: str | None = None
    challenge_id: ChallengeId | None = None

    @property
    def requires_two_factor(self) -> bool:
        return self.challenge_id is not None
