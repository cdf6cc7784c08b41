"""
auth/sessions.py -- Session issuance and revocation.

issue_token() is the only way a token reaches the tokens table: generate,
insert, and on the (astronomically unlikely) hash collision throw the token
away and try a fresh one.

SessionRevoker owns the operations that end sessions. force_logout() is the
one place in the system that needs a multi-statement transaction: clearing
the active flag and deleting the user's tokens must commit together. If the
flag committed alone, an admin re-activating the account would bring the old
tokens back to life; if the delete committed alone, the account would still be
active with its sessions silently gone.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.engine import Connection

from auth.models import IssuedToken
from auth.store import TokenStore, UserStore
from auth.tokens import TokenGenerator
from core.db import Database
from core.errors import ConflictError, NotFoundError, PersistenceError

logger = logging.getLogger("bookadmin.auth")

_ISSUE_ATTEMPTS = 3


def issue_token(generator: TokenGenerator, store: TokenStore, user_id: int, ttl: timedelta) -> IssuedToken:
    """Generate and store a new token for user_id. Returns it with its plaintext.

    Retries with a brand-new token on ConflictError. RandomnessError and
    PersistenceError propagate immediately.
    """
    for attempt in range(1, _ISSUE_ATTEMPTS + 1):
        issued = generator.generate(user_id, ttl)
        try:
            store.insert(issued)
        except ConflictError:
            logger.warning("Token hash collision for user_id=%s (attempt %d)", user_id, attempt)
            continue
        logger.info("Issued token for user_id=%s expiring %s", user_id, issued.expiry.isoformat())
        return issued
    raise PersistenceError(f"Could not store a unique token after {_ISSUE_ATTEMPTS} attempts.")


class SessionRevoker:
    """Ends sessions: one token at a time, or every token a user holds.

    Usage:
        revoker = SessionRevoker(db, user_store, token_store)
        revoker.logout(plaintext)
        revoker.force_logout(user_id)
    """

    def __init__(self, db: Database, users: UserStore, tokens: TokenStore) -> None:
        self._db = db
        self._users = users
        self._tokens = tokens

    def logout(self, plaintext: str) -> bool:
        """Revoke a single token. Idempotent; returns whether a row was removed."""
        return self._tokens.delete_by_token(plaintext)

    def force_logout(self, user_id: int, conn: Connection | None = None) -> int:
        """Deactivate user_id and delete all of their tokens, atomically.

        Returns the number of tokens revoked. Raises NotFoundError if the user
        does not exist. If either statement fails the whole transaction rolls
        back and the user keeps their active flag and tokens.
        """
        with self._db.begin(conn) as c:
            if not self._users.set_active(user_id, False, conn=c):
                raise NotFoundError(f"User {user_id} not found.")
            revoked = self._tokens.delete_all_for_user(user_id, conn=c)
        logger.info("Deactivated user_id=%s and revoked %d token(s)", user_id, revoked)
        return revoked

    def delete_user(self, user_id: int) -> int:
        """Delete user_id and all of their tokens in one transaction.

        Returns the number of tokens revoked. Raises NotFoundError if the user
        does not exist.
        """
        with self._db.begin() as c:
            revoked = self._tokens.delete_all_for_user(user_id, conn=c)
            if not self._users.delete_user(user_id, conn=c):
                raise NotFoundError(f"User {user_id} not found.")
        logger.info("Deleted user_id=%s and revoked %d token(s)", user_id, revoked)
        return revoked
