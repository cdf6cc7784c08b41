"""
auth/passwords.py -- Password hashing and login credential checks.

Passwords: bcrypt, used directly rather than through passlib. Its cost factor
makes offline brute-force of low-entropy secrets expensive, and checkpw()
compares in constant time. The cost factor comes from Settings.bcrypt_rounds.

Timing equalization: authenticate_user() always runs exactly one bcrypt
check, against _DUMMY_HASH when the email is unknown, so response time does
not reveal whether an account exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings
from core.errors import FormatError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("bookadmin.auth")

_settings = get_settings()

# bcrypt 5 raises on longer input; bcrypt 4 silently truncated it.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for a password over 72 bytes of UTF-8. The API models
    reject those with a 422 before they get here.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes.")
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, stored_hash: str) -> bool:
    """Return True if the plaintext password matches the stored bcrypt hash.

    A mismatch is a normal False, and so is a candidate over 72 bytes: no
    stored hash can match it. A stored hash bcrypt cannot parse raises
    FormatError: that is data corruption, not a wrong password.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError as exc:
        raise FormatError("Stored password hash is malformed.") from exc


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("bookadmin_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check a login attempt. Returns the User on success, None on any failure.

    Unknown email, wrong password, inactive account and corrupt stored hash
    all return None, and all of them cost one bcrypt check. Do NOT inline
    get_by_email() + verify_password() in a route: returning before bcrypt
    runs re-opens the account-enumeration timing leak.
    """
    user = store.get_by_email(email)
    if user is None or not user.password_hash:
        verify_password(password, _DUMMY_HASH)
        return None
    try:
        matches = verify_password(password, user.password_hash)
    except FormatError:
        logger.error("Corrupt password hash for user_id=%s; login refused", user.id)
        return None
    if not matches:
        return None
    if not user.active:
        logger.info("Login refused for inactive user_id=%s", user.id)
        return None
    return user
