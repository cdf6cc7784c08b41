"""
tests/test_token_store.py -- Unit tests for TokenStore in auth/store.py.

Covers:
  - validate(): known/unknown tokens, expiry boundary, inactive owner
  - Expired rows are rejected lazily and left in the table
  - delete_by_token() is idempotent; delete_all_for_user() is scoped to one user
  - Duplicate hash insert raises ConflictError and never overwrites
  - purge_expired() removes only rows whose expiry has passed
  - Store failures surface as PersistenceError, not as "invalid"
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy import text

from core.errors import ConflictError, PersistenceError


@pytest.fixture
def ada(seed_user):
    return seed_user("ada@example.com")


def _issue(generator, token_store, user_id, ttl=timedelta(hours=24)):
    issued = generator.generate(user_id, ttl)
    token_store.insert(issued)
    return issued


def test_inserted_token_validates(generator, token_store, ada):
    issued = _issue(generator, token_store, ada.id)
    result = token_store.check(issued.plaintext)
    assert result.valid
    assert result.reason == "ok"
    assert result.user.id == ada.id
    assert token_store.validate(issued.plaintext)


def test_unknown_token_is_invalid(generator, token_store, ada):
    _issue(generator, token_store, ada.id)
    stranger = generator.generate(ada.id, timedelta(hours=1))  # never inserted
    result = token_store.check(stranger.plaintext)
    assert not result.valid
    assert result.reason == "unknown"
    assert result.user is None


def test_expiry_boundary(generator, token_store, ada, clock):
    issued = _issue(generator, token_store, ada.id, ttl=timedelta(hours=1))
    clock.advance(timedelta(minutes=59, seconds=59))
    assert token_store.validate(issued.plaintext)
    clock.advance(timedelta(seconds=1))
    result = token_store.check(issued.plaintext)
    assert not result.valid
    assert result.reason == "expired"


def test_expired_row_is_kept(generator, token_store, ada, clock):
    issued = _issue(generator, token_store, ada.id, ttl=timedelta(minutes=5))
    clock.advance(timedelta(hours=1))
    assert not token_store.validate(issued.plaintext)
    assert token_store.count_for_user(ada.id) == 1


def test_inactive_owner_invalidates_token(generator, token_store, user_store, ada):
    issued = _issue(generator, token_store, ada.id)
    user_store.set_active(ada.id, False)
    result = token_store.check(issued.plaintext)
    assert not result.valid
    assert result.reason == "inactive"


def test_delete_by_token_is_idempotent(generator, token_store, ada):
    issued = _issue(generator, token_store, ada.id)
    assert token_store.delete_by_token(issued.plaintext) is True
    assert token_store.delete_by_token(issued.plaintext) is False
    assert not token_store.validate(issued.plaintext)


def test_two_tokens_are_independent(generator, token_store, ada):
    first = _issue(generator, token_store, ada.id)
    second = _issue(generator, token_store, ada.id)
    token_store.delete_by_token(first.plaintext)
    assert not token_store.validate(first.plaintext)
    assert token_store.validate(second.plaintext)


def test_delete_all_for_user_leaves_other_users_alone(generator, token_store, seed_user, ada):
    grace = seed_user("grace@example.com")
    mine = [_issue(generator, token_store, ada.id) for _ in range(3)]
    theirs = _issue(generator, token_store, grace.id)

    assert token_store.delete_all_for_user(ada.id) == 3
    assert not any(token_store.validate(t.plaintext) for t in mine)
    assert token_store.validate(theirs.plaintext)
    assert token_store.delete_all_for_user(ada.id) == 0


def test_duplicate_hash_raises_conflict(generator, token_store, seed_user, ada):
    issued = _issue(generator, token_store, ada.id)
    grace = seed_user("grace@example.com")
    with pytest.raises(ConflictError):
        token_store.insert(replace(issued, user_id=grace.id))
    # The original row still belongs to ada.
    assert token_store.check(issued.plaintext).user.id == ada.id
    assert token_store.count_for_user(grace.id) == 0


def test_insert_rejects_expiry_not_after_creation(generator, token_store, ada):
    issued = generator.generate(ada.id, timedelta(hours=1))
    with pytest.raises(ValueError):
        token_store.insert(replace(issued, expiry=issued.created_at))


def test_insert_for_missing_user_conflicts(generator, token_store):
    with pytest.raises(ConflictError):
        token_store.insert(generator.generate(999, timedelta(hours=1)))


def test_purge_expired(generator, token_store, ada, clock):
    short = _issue(generator, token_store, ada.id, ttl=timedelta(minutes=10))
    long = _issue(generator, token_store, ada.id, ttl=timedelta(hours=24))
    clock.advance(timedelta(minutes=10))

    assert token_store.purge_expired() == 1
    assert token_store.count_for_user(ada.id) == 1
    assert not token_store.validate(short.plaintext)
    assert token_store.validate(long.plaintext)


def test_store_failure_raises_persistence_error(generator, token_store, ada, db):
    issued = _issue(generator, token_store, ada.id)
    with db.engine.begin() as conn:
        conn.execute(text("DROP TABLE tokens"))
    with pytest.raises(PersistenceError):
        token_store.validate(issued.plaintext)
