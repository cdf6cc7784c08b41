"""
core/errors.py -- Exception types raised by the auth and persistence layers.

The route layer maps these to HTTP responses in api/main.py. Anything
authentication-adjacent is collapsed into one generic 401 before it reaches
the client; the specific reason only ever goes to the server log.

Layer rule: stdlib only. Lives in core/ so core/db.py can raise these
without importing from auth/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by auth/ and core/db.py."""


class CredentialError(AuthError):
    """Bad login, or an unknown/expired/revoked token. Always shown to the client as 401."""


class ConflictError(AuthError):
    """A unique constraint rejected a write (duplicate token hash, duplicate email)."""


class PersistenceError(AuthError):
    """The relational store failed or is unavailable. Surfaced as 503."""


class RandomnessError(AuthError):
    """The OS randomness source failed. Token generation must abort."""


class FormatError(AuthError):
    """A stored password hash is structurally corrupt. Logged, never shown to the client."""


class NotFoundError(AuthError):
    """The referenced user does not exist."""
