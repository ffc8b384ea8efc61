"""
auth/service.py -- The authentication orchestrator.

AuthService composes the credential, revocation and challenge stores with the
token issuer into the login / second-factor / logout / verify protocol. It
holds no state between calls beyond what lives in the stores, so one instance
is shared by every request.

Login state machine:

    received -> validated -> credentials correct?
        no                         -> IncorrectCredentials
        yes, no second factor      -> token issued
        yes, second factor needed  -> challenge stored, id returned
                                      -> verify_two_factor()
                                           match    -> challenge removed, token issued
                                           mismatch -> IncorrectCredentials

Error policy:
  Malformed input (bad email, short password, non-numeric code) is rejected
  with InvalidCredentials before any store call. Well-formed input that does
  not match -- unknown account, wrong password, wrong or stale challenge --
  is IncorrectCredentials, with no hint which part was wrong. StoreError and
  signer failures become UnexpectedError with the cause chained.

Challenge policy:
  A new login for an email replaces any challenge still pending for it (last
  write wins). Removal after a successful match is compare-and-delete on the
  challenge id, so a code is usable exactly once even under concurrent
  verification, and a verify never deletes a newer challenge that replaced
  the one it read. With consume_challenge_on_failure (default), a wrong
  submission also discards the pending challenge.

Logout revokes the literal token string whether or not it verifies; the
denylist is on the string, not on an identity.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hmac
import logging

from auth.errors import (
    AccountAlreadyExists,
    AccountNotFound,
    AlreadyExists,
    ChallengeNotFound,
    CredentialMismatch,
    IncorrectCredentials,
    InvalidCredentials,
    InvalidToken,
    MissingToken,
    StoreError,
    TokenError,
    TokenIssueError,
    UnexpectedError,
    ValidationError,
)
from auth.models import (
    DEFAULT_CODE_LENGTH,
    Account,
    ChallengeId,
    Credential,
    Email,
    LoginResult,
    PendingChallenge,
    TwoFactorCode,
)
from auth.notify import CodeSender, LoggingCodeSender
from auth.store import ChallengeStore, CredentialStore, RevocationStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("sessionauth.auth")


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class AuthService:
    """Usage:
    service = AuthService(accounts, revocations, challenges, TokenIssuer(secret))
    service.signup("a@x.com", "password123", requires_two_factor=False)
    result = service.login("a@x.com", "password123")
    service.verify_token(result.token)
    service.logout(result.token)
    """

    def __init__(
        self,
        accounts: CredentialStore,
        revocations: RevocationStore,
        challenges: ChallengeStore,
        issuer: TokenIssuer,
        code_sender: CodeSender | None = None,
        *,
        code_length: int = DEFAULT_CODE_LENGTH,
        consume_challenge_on_failure: bool = True,
    ) -> None:
        self.accounts = accounts
        self.revocations = revocations
        self.challenges = challenges
        self.issuer = issuer
        self.code_sender = code_sender or LoggingCodeSender()
        self.code_length = code_length
        self.consume_challenge_on_failure = consume_challenge_on_failure

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup(self, email: str, credential: str, requires_two_factor: bool = False) -> Email:
        """Register a new account. Returns the normalized Email."""
        parsed_email, parsed_credential = self._parse_credentials(email, credential)
        account = Account(
            email=parsed_email,
            credential_hash=self.accounts.hasher.hash(parsed_credential),
            requires_two_factor=requires_two_factor,
        )
        try:
            self.accounts.add_account(account)
        except AccountAlreadyExists as exc:
            logger.info("Signup rejected, already registered: %s", parsed_email.masked())
            raise AlreadyExists() from exc
        except StoreError as exc:
            raise UnexpectedError() from exc
        logger.info("Account created: %s (two_factor=%s)", parsed_email.masked(), requires_two_factor)
        return parsed_email

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, credential: str) -> LoginResult:
        """Check credentials; issue a token or open a second-factor challenge."""
        parsed_email, parsed_credential = self._parse_credentials(email, credential)
        try:
            self.accounts.validate_credential(parsed_email, parsed_credential)
            account = self.accounts.get_account(parsed_email)
        except (AccountNotFound, CredentialMismatch) as exc:
            logger.info("Login rejected for %s: %s", parsed_email.masked(), type(exc).__name__)
            raise IncorrectCredentials() from exc
        except StoreError as exc:
            raise UnexpectedError() from exc

        if account.requires_two_factor:
            return self._start_challenge(account.email)
        logger.info("Login succeeded: %s", account.email.masked())
        return LoginResult(email=account.email, token=self._issue(account.email))

    def _start_challenge(self, email: Email) -> LoginResult:
        challenge_id = ChallengeId.generate()
        code = TwoFactorCode.generate(self.code_length)
        try:
            self.challenges.put_challenge(email, challenge_id, code)
        except StoreError as exc:
            raise UnexpectedError() from exc
        self.code_sender.send_code(email, code)
        logger.info("Second factor required: %s", email.masked())
        return LoginResult(email=email, challenge_id=challenge_id)

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    def verify_two_factor(self, email: str, challenge_id: str, code: str) -> LoginResult:
        """Complete a login with the challenge id and the delivered code."""
        try:
            parsed_email = Email.parse(email)
            parsed_id = ChallengeId.parse(challenge_id)
            parsed_code = TwoFactorCode.parse(code)
        except ValidationError as exc:
            raise InvalidCredentials() from exc

        try:
            pending = self.challenges.take_challenge(parsed_email)
        except ChallengeNotFound as exc:
            logger.info("Second factor rejected for %s: no pending challenge", parsed_email.masked())
            raise IncorrectCredentials() from exc
        except StoreError as exc:
            raise UnexpectedError() from exc

        if not self._challenge_matches(pending, parsed_id, parsed_code):
            if self.consume_challenge_on_failure:
                self._discard(pending)
            logger.info("Second factor rejected for %s: mismatch", parsed_email.masked())
            raise IncorrectCredentials()

        try:
            self.challenges.remove_challenge(parsed_email, pending.challenge_id)
        except ChallengeNotFound as exc:
            # Consumed or superseded between take and remove.
            logger.info("Second factor rejected for %s: challenge no longer pending", parsed_email.masked())
            raise IncorrectCredentials() from exc
        except StoreError as exc:
            raise UnexpectedError() from exc

        logger.info("Second factor verified: %s", parsed_email.masked())
        return LoginResult(email=pending.email, token=self._issue(pending.email))

    @staticmethod
    def _challenge_matches(pending: PendingChallenge, challenge_id: ChallengeId, code: TwoFactorCode) -> bool:
        id_ok = _same(pending.challenge_id.value, challenge_id.value)
        code_ok = _same(pending.code.value, code.value)
        return id_ok and code_ok

    def _discard(self, pending: PendingChallenge) -> None:
        try:
            self.challenges.remove_challenge(pending.email, pending.challenge_id)
        except ChallengeNotFound:
            # Already consumed or superseded; nothing left to discard.
            return
        except StoreError as exc:
            raise UnexpectedError() from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def logout(self, token: str | None) -> None:
        """Revoke token. Any non-empty string is revoked, valid or not."""
        if not token:
            raise MissingToken()
        try:
            subject = self.issuer.verify(token)
        except TokenError as exc:
            logger.info("Logout with unverifiable token (%s); revoking anyway", type(exc).__name__)
        else:
            logger.info("Logout: %s", subject.masked())
        try:
            self.revocations.revoke(token)
        except StoreError as exc:
            raise UnexpectedError() from exc

    def verify_token(self, token: str | None) -> Email:
        """Return the subject if token is validly signed, unexpired and not revoked."""
        if not token:
            raise MissingToken()
        try:
            subject = self.issuer.verify(token)
        except TokenError as exc:
            raise InvalidToken() from exc
        try:
            revoked = self.revocations.is_revoked(token)
        except StoreError as exc:
            raise UnexpectedError() from exc
        if revoked:
            raise InvalidToken()
        return subject

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_credentials(email: str, credential: str) -> tuple[Email, Credential]:
        # One error for either field; the caller is not told which was wrong.
        try:
            return Email.parse(email), Credential.parse(credential)
        except ValidationError as exc:
            raise InvalidCredentials() from exc

    def _issue(self, email: Email) -> str:
        try:
            return self.issuer.issue(email)
        except TokenIssueError as exc:
            raise UnexpectedError() from exc

    def close(self) -> None:
        self.accounts.close()
        self.revocations.close()
        self.challenges.close()
