"""
tests/test_config.py -- Settings validation and store backend wiring.

Covers:
  - SECRET_KEY policy: generated in dev mode, required in production, min length
  - numeric range checks
  - build_auth_service() with the memory and sql backends
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from api.main import build_auth_service
from auth.sql_store import SqlCredentialStore
from auth.store import InMemoryCredentialStore
from core.config import Settings, get_settings

SECRET = "s" * 32


def test_dev_mode_generates_secret():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_secret_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


@pytest.mark.parametrize(
    "overrides",
    [
        {"token_expire_seconds": 0},
        {"bcrypt_rounds": 3},
        {"bcrypt_rounds": 32},
        {"two_factor_code_length": 3},
        {"two_factor_code_length": 11},
        {"store_backend": "redis"},
    ],
)
def test_out_of_range_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(secret_key=SECRET, **overrides)


def test_defaults():
    settings = Settings(secret_key=SECRET, _env_file=None)
    assert settings.token_cookie_name == "jwt"
    assert settings.consume_challenge_on_failure is True


def test_environment_is_read(monkeypatch):
    monkeypatch.setenv("TOKEN_EXPIRE_SECONDS", "120")
    monkeypatch.setenv("SECRET_KEY", SECRET)
    get_settings.cache_clear()
    try:
        assert get_settings().token_expire_seconds == 120
    finally:
        get_settings.cache_clear()


def test_build_memory_backend():
    service = build_auth_service(Settings(secret_key=SECRET, bcrypt_rounds=4, store_backend="memory"))
    assert isinstance(service.accounts, InMemoryCredentialStore)
    service.signup("a@x.com", "password123")
    assert service.login("a@x.com", "password123").token is not None


def test_build_sql_backend(tmp_path):
    settings = Settings(
        secret_key=SECRET,
        bcrypt_rounds=4,
        store_backend="sql",
        database_url=f"sqlite:///{tmp_path / 'auth.db'}",
        two_factor_code_length=8,
    )
    service = build_auth_service(settings)
    try:
        assert isinstance(service.accounts, SqlCredentialStore)
        assert service.code_length == 8
        service.signup("a@x.com", "password123")
        token = service.login("a@x.com", "password123").token
        service.logout(token)
        assert service.revocations.is_revoked(token)
    finally:
        service.close()
