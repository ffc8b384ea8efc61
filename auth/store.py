"""
auth/store.py -- Store contracts and the volatile in-memory implementations.

Pattern: Repository behind an abstract base class. AuthService depends only
on the three contracts below; which implementation it gets is decided at
wiring time (api/main.py, from Settings.store_backend). auth/sql_store.py
holds the durable table-backed implementations of the same contracts.

Contracts (errors from auth/errors.py):

  CredentialStore
    add_account(account)            AccountAlreadyExists | StoreError
    get_account(email) -> Account   AccountNotFound | StoreError
    validate_credential(email, c)   AccountNotFound | CredentialMismatch | StoreError
    delete_account(email)           AccountNotFound | StoreError

  RevocationStore
    revoke(token)                   StoreError  (idempotent)
    is_revoked(token) -> bool       StoreError

  ChallengeStore
    put_challenge(email, id, code)  StoreError  (last write wins)
    take_challenge(email)           ChallengeNotFound | StoreError  (read only)
    remove_challenge(email, id=None)  ChallengeNotFound | StoreError

Concurrency: every in-memory store owns one threading.Lock and performs each
check-then-act sequence (duplicate check + insert, compare + delete) inside a
single critical section, so two concurrent signups for one email cannot both
succeed and a verify cannot remove a challenge that superseded the one it
read. Slow work (bcrypt) runs outside the lock.

Persistence: none. Everything is lost on process exit.
"""

from __future__ import annotations

import abc
import logging
import threading

from auth.errors import (
    AccountAlreadyExists,
    AccountNotFound,
    ChallengeNotFound,
    CredentialMismatch,
)
from auth.hashing import CredentialHasher
from auth.models import Account, ChallengeId, Credential, Email, PendingChallenge, TwoFactorCode

logger = logging.getLogger("sessionauth.store")


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class CredentialStore(abc.ABC):
    """Identity -> Account mapping. One Account per Email."""

    def __init__(self, hasher: CredentialHasher) -> None:
        self.hasher = hasher

    @abc.abstractmethod
    def add_account(self, account: Account) -> None:
        """Insert account; AccountAlreadyExists if its email is taken."""

    @abc.abstractmethod
    def get_account(self, email: Email) -> Account: ...

    @abc.abstractmethod
    def delete_account(self, email: Email) -> None: ...

    def validate_credential(self, email: Email, credential: Credential) -> None:
        """Check credential against the stored hash for email.

        Existence is checked first. When the account is missing a dummy hash
        check still runs, so both failure modes take the same time.
        """
        try:
            account = self.get_account(email)
        except AccountNotFound:
            self.hasher.dummy_check(credential)
            raise
        if not self.hasher.matches(credential, account.credential_hash):
            raise CredentialMismatch(email.masked())

    def close(self) -> None:
        pass


class RevocationStore(abc.ABC):
    """Denylist of token strings. Membership is permanent for the store's life."""

    @abc.abstractmethod
    def revoke(self, token: str) -> None: ...

    @abc.abstractmethod
    def is_revoked(self, token: str) -> bool: ...

    def close(self) -> None:
        pass


class ChallengeStore(abc.ABC):
    """At most one PendingChallenge per Email."""

    @abc.abstractmethod
    def put_challenge(self, email: Email, challenge_id: ChallengeId, code: TwoFactorCode) -> None:
        """Store a challenge, silently replacing any pending one for email."""

    @abc.abstractmethod
    def take_challenge(self, email: Email) -> PendingChallenge:
        """Return the pending challenge for email without removing it."""

    @abc.abstractmethod
    def remove_challenge(self, email: Email, challenge_id: ChallengeId | None = None) -> None:
        """Remove the pending challenge for email.

        With challenge_id, remove only if the pending challenge still has
        that id (compare-and-delete); otherwise raise ChallengeNotFound.
        """

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryCredentialStore(CredentialStore):
    """Usage:
    store = InMemoryCredentialStore(BcryptHasher())
    store.add_account(Account(email, store.hasher.hash(credential)))
    store.validate_credential(email, credential)
    """

    def __init__(self, hasher: CredentialHasher) -> None:
        super().__init__(hasher)
        self._lock = threading.Lock()
        self._accounts: dict[Email, Account] = {}

    def add_account(self, account: Account) -> None:
        with self._lock:
            if account.email in self._accounts:
                raise AccountAlreadyExists(account.email.masked())
            self._accounts[account.email] = account

    def get_account(self, email: Email) -> Account:
        with self._lock:
            account = self._accounts.get(email)
        if account is None:
            raise AccountNotFound(email.masked())
        return account

    def delete_account(self, email: Email) -> None:
        with self._lock:
            if self._accounts.pop(email, None) is None:
                raise AccountNotFound(email.masked())

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)


class InMemoryRevocationStore(RevocationStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._revoked: set[str] = set()

    def revoke(self, token: str) -> None:
        with self._lock:
            self._revoked.add(token)

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            return token in self._revoked

    def __len__(self) -> int:
        with self._lock:
            return len(self._revoked)


class InMemoryChallengeStore(ChallengeStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[Email, PendingChallenge] = {}

    def put_challenge(self, email: Email, challenge_id: ChallengeId, code: TwoFactorCode) -> None:
        with self._lock:
            if email in self._pending:
                logger.info("Superseding pending challenge for %s", email.masked())
            self._pending[email] = PendingChallenge(email=email, challenge_id=challenge_id, code=code)

    def take_challenge(self, email: Email) -> PendingChallenge:
        with self._lock:
            pending = self._pending.get(email)
        if pending is None:
            raise ChallengeNotFound(email.masked())
        return pending

    def remove_challenge(self, email: Email, challenge_id: ChallengeId | None = None) -> None:
        with self._lock:
            pending = self._pending.get(email)
            if pending is None or (challenge_id is not None and pending.challenge_id != challenge_id):
                raise ChallengeNotFound(email.masked())
            del self._pending[email]
