"""
auth/store.py -- SQLAlchemy Core persistence layer for users and session tokens.

Pattern: Repository + Data Mapper. UserStore and TokenStore are the
repositories; _row_to_user is the mapper. Route and dependency code never
touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  tokens.token_hash is UNIQUE, so two concurrent inserts of the same hash
  cannot both succeed; the loser gets ConflictError. The plaintext token is
  never passed to any method that writes -- stores only ever see the hash.

Transactions:
  Every write method takes an optional `conn`. Leave it out and the method
  commits on its own. Pass the connection from an enclosing Database.begin()
  and the write joins that transaction (see SessionRevoker.force_logout).

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
string order matches time order and purge_expired() can compare in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Connection

from auth.models import IssuedToken, TokenCheck, User
from auth.tokens import Clock, TokenGenerator, utc_now
from core.db import Database

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("password_hash", Text),
    Column("active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tokens = Table(
    "tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expiry", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Same length and alphabet as a real HMAC-SHA256 hex digest. Compared against
# when no row matches so the miss path does the same work as the hit path.
_DUMMY_TOKEN_HASH = "0" * 64

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def create_schema(db: Database) -> None:
    """Create the users and tokens tables if they do not exist. Idempotent."""
    _metadata.create_all(db.engine)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(db)
        uid = store.create_user(User(email="a@example.com", password_hash=hash_password("secret")))
        user = store.get_by_email("a@example.com")
    """

    # Columns update_user() accepts. Anything else is a programming error.
    _UPDATABLE: frozenset[str] = frozenset({"email", "first_name", "last_name", "password_hash", "active"})

    def __init__(self, db: Database, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock
        create_schema(db)

    def create_user(self, user: User, conn: Connection | None = None) -> int:
        """Insert a new user and return its assigned database ID.

        Raises ConflictError if the email already exists.
        """
        now = _iso(self._clock())
        with self._db.begin(conn) as c:
            result = c.execute(
                _users.insert().values(
                    email=user.email,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    password_hash=user.password_hash,
                    active=1 if user.active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self._db.begin() as c:
            row = c.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self._db.begin() as c:
            row = c.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by last name, then first name."""
        with self._db.begin() as c:
            rows = c.execute(_users.select().order_by(_users.c.last_name, _users.c.first_name, _users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, first_name, last_name, password_hash, active.
        Returns True if a row was updated, False if user_id was not found.
        Raises ConflictError if the new email belongs to another user.
        """
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "active" in fields:
            fields["active"] = 1 if fields["active"] else 0
        fields["updated_at"] = _iso(self._clock())
        with self._db.begin(conn) as c:
            result = c.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def set_active(self, user_id: int, active: bool, conn: Connection | None = None) -> bool:
        return self.update_user(user_id, conn=conn, active=active)

    def delete_user(self, user_id: int, conn: Connection | None = None) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Token rows must already be gone (SessionRevoker.delete_user does both
        in one transaction); the foreign key cascade is only a backstop.
        """
        with self._db.begin(conn) as c:
            result = c.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for session tokens, keyed by their HMAC hash.

    Rows are immutable: a token is inserted, later deleted, and never
    updated. Expiry is enforced lazily by check(); an expired row stays in
    the table until logout, revocation or purge_expired() removes it.

    Usage:
        tokens = TokenStore(db, generator)
        tokens.insert(generator.generate(uid, timedelta(hours=24)))
        tokens.validate(plaintext)   # -> bool
    """

    def __init__(self, db: Database, generator: TokenGenerator) -> None:
        self._db = db
        self._generator = generator
        create_schema(db)

    def _now(self) -> datetime:
        return self._generator.clock()

    def insert(self, token: IssuedToken, conn: Connection | None = None) -> int:
        """Store the hash of a freshly issued token and return the row ID.

        Raises ValueError if expiry is not after created_at, ConflictError
        if the hash already exists (never overwrites), PersistenceError on
        any other store failure.
        """
        if token.expiry <= token.created_at:
            raise ValueError("Token expiry must be after its creation time.")
        created = _iso(token.created_at)
        with self._db.begin(conn) as c:
            result = c.execute(
                _tokens.insert().values(
                    user_id=token.user_id,
                    token_hash=token.token_hash,
                    expiry=_iso(token.expiry),
                    created_at=created,
                    updated_at=created,
                )
            )
            return result.inserted_primary_key[0]

    def check(self, plaintext: str) -> TokenCheck:
        """Look up a plaintext token and decide whether it is currently valid.

        One joined query fetches the token row and its owner. The stored hash
        is compared with hmac.compare_digest (against a dummy hash on a miss),
        and all three conditions are evaluated before deciding, so unknown,
        expired and inactive-owner tokens take the same path. The reason is
        for the server log only.
        """
        token_hash = self._generator.hash(plaintext)
        now = self._now()
        with self._db.begin() as c:
            row = c.execute(
                select(_tokens.c.token_hash, _tokens.c.expiry, _users)
                .select_from(_tokens.join(_users, _users.c.id == _tokens.c.user_id))
                .where(_tokens.c.token_hash == token_hash)
            ).fetchone()

        found = row is not None
        stored_hash = row.token_hash if found else _DUMMY_TOKEN_HASH
        expiry = _parse_iso(row.expiry) if found else now
        matches = hmac.compare_digest(stored_hash, token_hash)
        unexpired = expiry > now
        active = bool(row.active) if found else False
        valid = all((found, matches, unexpired, active))

        if not (found and matches):
            reason = "unknown"
        elif not unexpired:
            reason = "expired"
        elif not active:
            reason = "inactive"
        else:
            reason = "ok"
        return TokenCheck(valid=valid, reason=reason, user=_row_to_user(row) if valid else None)

    def validate(self, plaintext: str) -> bool:
        """Return True iff the token exists, has not expired, and its owner is active."""
        return self.check(plaintext).valid

    def delete_by_token(self, plaintext: str, conn: Connection | None = None) -> bool:
        """Delete the row for this plaintext token. Idempotent: a miss is not an error."""
        token_hash = self._generator.hash(plaintext)
        with self._db.begin(conn) as c:
            result = c.execute(_tokens.delete().where(_tokens.c.token_hash == token_hash))
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: int, conn: Connection | None = None) -> int:
        """Delete every token owned by user_id. Returns the number of rows removed."""
        with self._db.begin(conn) as c:
            result = c.execute(_tokens.delete().where(_tokens.c.user_id == user_id))
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        """Return how many token rows user_id owns, expired ones included."""
        with self._db.begin() as c:
            count = c.execute(select(func.count()).select_from(_tokens).where(_tokens.c.user_id == user_id)).scalar()
        return count or 0

    def purge_expired(self) -> int:
        """Delete rows whose expiry has passed. Returns the number removed.

        Validation never needs this; it only keeps the table from growing.
        """
        with self._db.begin() as c:
            result = c.execute(_tokens.delete().where(_tokens.c.expiry <= _iso(self._now())))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        password_hash=row.password_hash,
        active=bool(row.active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
