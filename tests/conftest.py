"""
tests/conftest.py -- Shared fixtures for the session-auth test suite.

This module provides:
  - RecordingCodeSender: captures two-factor codes instead of logging them
  - hasher / issuer / service: an AuthService over fresh in-memory stores
  - _patch_lifespan(): wires a test AuthService into app.state, bypassing
    the real startup
  - api_client: TestClient over the real app with isolated stores

Environment variables must be set before any api/ or core/ import so that
get_settings() auto-generates SECRET_KEY in dev mode instead of raising
ValueError, and so the login rate limit does not trip during the suite.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing anything that calls get_settings().
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import BcryptHasher
from auth.models import Email, TwoFactorCode
from auth.notify import CodeSender
from auth.service import AuthService
from auth.store import InMemoryChallengeStore, InMemoryCredentialStore, InMemoryRevocationStore
from auth.tokens import TokenIssuer

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"


class RecordingCodeSender(CodeSender):
    """Keeps the last code sent per email so tests can play the user's inbox."""

    def __init__(self) -> None:
        self.sent: dict[str, str] = {}

    def send_code(self, email: Email, code: TwoFactorCode) -> None:
        self.sent[email.value] = code.value

    def code_for(self, email: str) -> str:
        return self.sent[Email(email).value]


def unique_email() -> str:
    return f"user-{uuid.uuid4().hex[:12]}@example.com"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> BcryptHasher:
    """Cost 4 keeps bcrypt cheap enough to call hundreds of times."""
    return BcryptHasher(rounds=4)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, ttl_seconds=600)


@pytest.fixture
def code_sender() -> RecordingCodeSender:
    return RecordingCodeSender()


@pytest.fixture
def service(hasher: BcryptHasher, issuer: TokenIssuer, code_sender: RecordingCodeSender) -> AuthService:
    return AuthService(
        InMemoryCredentialStore(hasher),
        InMemoryRevocationStore(),
        InMemoryChallengeStore(),
        issuer,
        code_sender,
    )


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes use
    isolated stores and the recording code sender.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.token_cookie_name = "jwt"
        app.state.store_backend = "memory"
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(hasher: BcryptHasher) -> Generator[tuple[TestClient, RecordingCodeSender], None, None]:
    """Yield (client, code_sender) for HTTP integration tests.

    One TestClient per test module; tests register their own unique emails
    so they do not depend on each other's accounts.
    """
    sender = RecordingCodeSender()
    service = AuthService(
        InMemoryCredentialStore(hasher),
        InMemoryRevocationStore(),
        InMemoryChallengeStore(),
        TokenIssuer(TEST_SECRET, ttl_seconds=600),
        sender,
    )
    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, sender
