"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Settings is constructed directly with _env_file=None so a developer's local
.env cannot change the outcome. Explicit keyword arguments win over the
environment variables conftest.py sets.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "k" * 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_debug_generates_secret_key():
    settings = Settings(_env_file=None, debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=False, secret_key="too-short")


@pytest.mark.parametrize("field", ["login_token_ttl_seconds", "service_token_ttl_seconds"])
def test_non_positive_ttl_rejected(field):
    with pytest.raises(ValidationError, match="TTLs must be positive"):
        Settings(_env_file=None, secret_key=GOOD_KEY, **{field: 0})


def test_defaults():
    settings = Settings(
        _env_file=None,
        secret_key=GOOD_KEY,
        debug=False,
        bcrypt_rounds=12,
        rate_limit_enabled=True,
        allowed_hosts=["localhost"],
    )
    assert settings.login_token_ttl_seconds == 86400
    assert settings.service_token_ttl_seconds == 3600
    assert settings.db_pool_size == 5
    assert settings.db_max_overflow == 0
    assert settings.db_pool_recycle_seconds == 300
    assert settings.token_purge_interval_seconds == 0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LOGIN_TOKEN_TTL_SECONDS", "600")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@db/bookadmin")
    settings = Settings(_env_file=None, secret_key=GOOD_KEY)
    assert settings.login_token_ttl_seconds == 600
    assert settings.database_url.startswith("postgresql+psycopg://")
