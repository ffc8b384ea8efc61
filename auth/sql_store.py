"""
auth/sql_store.py -- SQLAlchemy Core implementations of the store contracts.

Pattern: Repository + Data Mapper. Each Sql*Store is a repository over one
table; _row_to_account / _row_to_challenge are the mappers. Callers never
touch SQL directly.

Durability: rows survive restarts, unlike auth/store.py. All three stores can
share one Engine (create_sql_engine) so the service holds a single pool.

Atomicity:
  accounts.email is the primary key, so a duplicate signup loses the race at
  the database and surfaces as IntegrityError -> AccountAlreadyExists.
  put_challenge is UPDATE-then-INSERT. When a concurrent login wins the
  INSERT, the primary key rejects ours and the UPDATE is retried, so the
  last writer wins on any backend without an upsert dialect.
  remove_challenge(email, id) is a single DELETE ... WHERE email AND id, so
  compare-and-delete needs no application-side lock.

Revoked tokens are stored as SHA-256 hex digests of the token string: the
denylist is still keyed on the exact string, but the index stays fixed-width.

Any SQLAlchemyError not mapped above is re-raised as StoreError with the
original chained.

Security: all queries use bound parameters.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AccountAlreadyExists, AccountNotFound, ChallengeNotFound, StoreError
from auth.hashing import CredentialHasher
from auth.models import Account, ChallengeId, Email, PendingChallenge, TwoFactorCode
from auth.store import ChallengeStore, CredentialStore, RevocationStore

logger = logging.getLogger("sessionauth.store")

_PUT_ATTEMPTS = 3

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("email", String(320), primary_key=True),  # normalized Email.value
    Column("credential_hash", Text, nullable=False),
    Column("requires_two_factor", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False),
)

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("token_digest", String(64), primary_key=True),  # sha256 hex of the token string
    Column("revoked_at", String(32), nullable=False),
)

_pending_challenges = Table(
    "pending_challenges",
    _metadata,
    Column("email", String(320), primary_key=True),
    Column("challenge_id", String(36), nullable=False),
    Column("code", String(10), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_sql_engine(db_url: str) -> Engine:
    """Build an Engine for db_url and create the auth tables if missing."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store operation %s failed", operation)
        raise StoreError(operation) from exc


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SqlCredentialStore(CredentialStore):
    """Usage:
    engine = create_sql_engine("sqlite:///sessionauth.db")
    store = SqlCredentialStore(engine, BcryptHasher())
    """

    def __init__(self, engine: Engine, hasher: CredentialHasher) -> None:
        super().__init__(hasher)
        self.engine = engine

    def add_account(self, account: Account) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _accounts.insert().values(
                        email=account.email.value,
                        credential_hash=account.credential_hash,
                        requires_two_factor=account.requires_two_factor,
                        created_at=_now_iso(),
                    )
                )
        except IntegrityError as exc:
            raise AccountAlreadyExists(account.email.masked()) from exc
        except SQLAlchemyError as exc:
            logger.exception("Store operation add_account failed")
            raise StoreError("add_account") from exc

    def get_account(self, email: Email) -> Account:
        with _store_errors("get_account"), self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email.value)).fetchone()
        if row is None:
            raise AccountNotFound(email.masked())
        return _row_to_account(row)

    def delete_account(self, email: Email) -> None:
        with _store_errors("delete_account"), self.engine.begin() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.email == email.value))
        if result.rowcount == 0:
            raise AccountNotFound(email.masked())

    def close(self) -> None:
        self.engine.dispose()


class SqlRevocationStore(RevocationStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def revoke(self, token: str) -> None:
        digest = _digest(token)
        try:
            with self.engine.begin() as conn:
                conn.execute(_revoked_tokens.insert().values(token_digest=digest, revoked_at=_now_iso()))
        except IntegrityError:
            # Already revoked.
            return
        except SQLAlchemyError as exc:
            logger.exception("Store operation revoke failed")
            raise StoreError("revoke") from exc

    def is_revoked(self, token: str) -> bool:
        with _store_errors("is_revoked"), self.engine.connect() as conn:
            row = conn.execute(
                _revoked_tokens.select().where(_revoked_tokens.c.token_digest == _digest(token))
            ).fetchone()
        return row is not None

    def close(self) -> None:
        self.engine.dispose()


class SqlChallengeStore(ChallengeStore):
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def put_challenge(self, email: Email, challenge_id: ChallengeId, code: TwoFactorCode) -> None:
        values = {"challenge_id": challenge_id.value, "code": code.value, "created_at": _now_iso()}
        with _store_errors("put_challenge"):
            for _ in range(_PUT_ATTEMPTS):
                if self._replace(email, values):
                    return
                try:
                    with self.engine.begin() as conn:
                        conn.execute(_pending_challenges.insert().values(email=email.value, **values))
                    return
                except IntegrityError:
                    # A concurrent login inserted first; go round and overwrite it.
                    continue
        raise StoreError("put_challenge")

    def _replace(self, email: Email, values: dict) -> bool:
        """UPDATE the pending row for email. False when there is none."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _pending_challenges.update().where(_pending_challenges.c.email == email.value).values(**values)
            )
        if result.rowcount:
            logger.info("Superseding pending challenge for %s", email.masked())
        return result.rowcount > 0

    def take_challenge(self, email: Email) -> PendingChallenge:
        with _store_errors("take_challenge"), self.engine.connect() as conn:
            row = conn.execute(
                _pending_challenges.select().where(_pending_challenges.c.email == email.value)
            ).fetchone()
        if row is None:
            raise ChallengeNotFound(email.masked())
        return _row_to_challenge(row)

    def remove_challenge(self, email: Email, challenge_id: ChallengeId | None = None) -> None:
        condition = _pending_challenges.c.email == email.value
        if challenge_id is not None:
            condition = condition & (_pending_challenges.c.challenge_id == challenge_id.value)
        with _store_errors("remove_challenge"), self.engine.begin() as conn:
            result = conn.execute(_pending_challenges.delete().where(condition))
        if result.rowcount == 0:
            raise ChallengeNotFound(email.masked())

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        email=Email(row.email),
        credential_hash=row.credential_hash,
        requires_two_factor=bool(row.requires_two_factor),
    )


def _row_to_challenge(row) -> PendingChallenge:
    return PendingChallenge(
        email=Email(row.email),
        challenge_id=ChallengeId(row.challenge_id),
        code=TwoFactorCode(row.code),
    )
