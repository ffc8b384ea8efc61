"""
auth/hashing.py -- The "credential matches stored credential" capability.

The core treats credential comparison as an opaque predicate supplied from
outside: stores receive a CredentialHasher and never compare raw strings
themselves. BcryptHasher is the production implementation.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection feeds bcrypt 4.x a >72-byte password, which it now rejects.

Long credentials: bcrypt only reads the first 72 bytes of its input, so the
credential is first reduced to a fixed-length SHA-256 digest (base64, 44
bytes). Every byte of the credential then affects the stored hash.

Timing equalization: dummy_check() runs one bcrypt comparison against a
throwaway hash, so a lookup that finds no account costs the same as a
wrong password and response time does not reveal whether an email is
registered.
"""

from __future__ import annotations

import abc
import base64
import hashlib

import bcrypt

from auth.models import Credential


class CredentialHasher(abc.ABC):
    """Hash credentials for storage and check submitted ones against a hash."""

    @abc.abstractmethod
    def hash(self, credential: Credential) -> str: ...

    @abc.abstractmethod
    def matches(self, credential: Credential, hashed: str) -> bool: ...

    def dummy_check(self, credential: Credential) -> None:
        """Spend the same work as matches() when there is nothing to match against."""


class BcryptHasher(CredentialHasher):
    """bcrypt with a configurable cost factor.

    Credentials are pre-hashed with SHA-256 before bcrypt sees them, so there
    is no 72-byte limit on the part of a credential that counts.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-account login is not measurably
        # slower than later ones.
        self._dummy_hash = self.hash(Credential("sessionauth_timing_dummy"))

    def hash(self, credential: Credential) -> str:
        return bcrypt.hashpw(self._encode(credential), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def matches(self, credential: Credential, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(self._encode(credential), hashed.encode("utf-8"))
        except ValueError:
            # Corrupt or foreign hash format in storage.
            return False

    def dummy_check(self, credential: Credential) -> None:
        self.matches(credential, self._dummy_hash)

    @staticmethod
    def _encode(credential: Credential) -> bytes:
        digest = hashlib.sha256(credential.value.encode("utf-8")).digest()
        return base64.b64encode(digest)
