"""
tests/test_cli.py -- Tests for the main.py maintenance commands.

Each test points _open_database at a SQLite file under tmp_path, so the
commands run against a real file-backed pool exactly as they would in use.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone

import pytest

import main
from auth.models import User
from auth.passwords import verify_password
from auth.store import TokenStore, UserStore
from auth.tokens import TokenGenerator
from core.db import Database


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(main, "_open_database", lambda: Database(url))
    return url


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["main.py", *argv])
    with pytest.raises(SystemExit) as exc_info:
        main.main()
    return exc_info.value.code


def test_create_user(db_url, monkeypatch, capsys):
    code = _run(
        monkeypatch,
        "create-user",
        "--email", "Admin@Example.com",
        "--first-name", "Ada",
        "--password", "first-admin-pass",
    )
    assert code == 0
    assert "admin@example.com" in capsys.readouterr().out

    db = Database(db_url)
    try:
        user = UserStore(db).get_by_email("admin@example.com")
    finally:
        db.close()
    assert user.first_name == "Ada"
    assert user.active
    assert verify_password("first-admin-pass", user.password_hash)


def test_create_user_duplicate(db_url, monkeypatch, capsys):
    args = ("create-user", "--email", "admin@example.com", "--password", "first-admin-pass")
    assert _run(monkeypatch, *args) == 0
    assert _run(monkeypatch, *args) == 1
    assert "already exists" in capsys.readouterr().out


def test_create_user_short_password(db_url, monkeypatch):
    assert _run(monkeypatch, "create-user", "--email", "admin@example.com", "--password", "short") == 1


def test_purge_tokens(db_url, monkeypatch, capsys):
    db = Database(db_url)
    try:
        users = UserStore(db)
        uid = users.create_user(User(email="old@example.com"))
        past = TokenGenerator("p" * 32, clock=lambda: datetime(2020, 1, 1, tzinfo=timezone.utc))
        tokens = TokenStore(db, past)
        tokens.insert(past.generate(uid, timedelta(hours=1)))
        current = TokenGenerator("p" * 32)
        TokenStore(db, current).insert(current.generate(uid, timedelta(hours=1)))
    finally:
        db.close()

    assert _run(monkeypatch, "purge-tokens") == 0
    assert "Purged 1 expired token(s)." in capsys.readouterr().out
