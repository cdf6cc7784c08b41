"""
auth/tokens.py -- Opaque bearer token generation and hashing.

Security design decisions:
  Plaintext: secrets.token_bytes(32) gives 256 bits of entropy, base32-encoded
       without padding into 52 characters of A-Z2-7. Brute-force is
       computationally infeasible. If the OS randomness source fails we raise
       RandomnessError -- there is no fallback to a weaker generator.

  Stored form: HMAC-SHA256(SECRET_KEY, plaintext) as hex. The hash is
       deterministic, so lookup is a single indexed equality query. Keying it
       with SECRET_KEY means a leaked database cannot be attacked offline
       without the key as well. bcrypt's slowness is unnecessary for secrets
       with this much entropy.

  Expiry: created_at + ttl, from an injectable clock so tests can move time.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import IssuedToken
from core.errors import RandomnessError

TOKEN_BYTES = 32
# base32 of 32 bytes is 56 chars with 4 "=" of padding, which we strip.
TOKEN_LENGTH = 52

_TOKEN_RE = re.compile(rf"^[A-Z2-7]{{{TOKEN_LENGTH}}}$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_well_formed(token: str) -> bool:
    """Return True if token has the exact shape generate() produces.

    Lets callers reject garbage before spending a database round-trip on it.
    """
    return bool(_TOKEN_RE.match(token))


def hash_token(plaintext: str, secret_key: str) -> str:
    """Return HMAC-SHA256(secret_key, plaintext) as a hex string."""
    return hmac.new(secret_key.encode(), plaintext.encode(), hashlib.sha256).hexdigest()


class TokenGenerator:
    """Produces fresh session tokens and derives their stored hash.

    Usage:
        generator = TokenGenerator(settings.secret_key)
        issued = generator.generate(user.id, timedelta(hours=24))
        issued.plaintext   # give to the client, never store
        issued.token_hash  # store this
    """

    def __init__(self, secret_key: str, clock: Clock = utc_now) -> None:
        self._secret_key = secret_key
        self.clock = clock

    def hash(self, plaintext: str) -> str:
        return hash_token(plaintext, self._secret_key)

    def generate(self, user_id: int, ttl: timedelta) -> IssuedToken:
        """Create a new token for user_id that expires ttl from now.

        Raises ValueError for a non-positive ttl and RandomnessError if the
        OS cannot supply random bytes.
        """
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive.")
        try:
            raw = secrets.token_bytes(TOKEN_BYTES)
        except (OSError, NotImplementedError) as exc:
            raise RandomnessError("Secure random source unavailable.") from exc
        plaintext = base64.b32encode(raw).decode("ascii").rstrip("=")
        now = self.clock()
        return IssuedToken(
            user_id=user_id,
            token_hash=self.hash(plaintext),
            expiry=now + ttl,
            created_at=now,
            plaintext=plaintext,
        )
