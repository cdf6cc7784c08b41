"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these own the domain shape. The route layer maps them to the
Pydantic models in api/models.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An account allowed into the admin area.

    password_hash is a bcrypt hash and never leaves the server. active=False
    locks the account out: login is refused and every token the user still
    holds fails validation.
    """

    email: str
    first_name: str = ""
    last_name: str = ""
    id: int | None = None
    password_hash: str | None = None
    active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    """A freshly generated session token.

    plaintext is the secret handed to the client exactly once; only
    token_hash is ever persisted. repr=False keeps the secret out of logs and
    tracebacks that happen to format this object.
    """

    user_id: int
    token_hash: str
    expiry: datetime
    created_at: datetime
    plaintext: str = field(repr=False, default="")


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of TokenStore.check().

    reason is one of "ok", "unknown", "expired", "inactive". It is for the
    server log only; clients see a single generic 401 whatever the reason.
    """

    valid: bool
    reason: str
    user: User | None = None
