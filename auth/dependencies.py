"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_user() gatekeeps every admin route. It is attached to the admin
router as a router-level dependency, and handlers that need the caller also
declare it as a parameter; FastAPI caches dependencies per request, so the
token is only checked once.

Flow:
  1. Read "Authorization: Bearer <token>". A missing header, another scheme,
     extra parts, or a token that is not the shape TokenGenerator produces is
     rejected without touching the database.
  2. TokenStore.check() -- unknown, expired, and inactive-owner tokens all fail.
  3. On success the User is stored on request.state.user for the rest of the
     request and returned to the handler.

Every failure raises the same CredentialError, which api/main.py turns into one
generic 401. The specific reason is logged here and nowhere else.

Layer rule: may import from fastapi (Request) because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import User
from auth.store import TokenStore
from auth.tokens import is_well_formed
from core.errors import CredentialError

logger = logging.getLogger("bookadmin.auth")


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, or None if absent or malformed."""
    parts = request.headers.get("Authorization", "").split()
    # Auth schemes are case-insensitive (RFC 7235).
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1]
    return token if is_well_formed(token) else None


def get_current_user(request: Request) -> User:
    """Require a valid bearer token. Raises CredentialError (HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = extract_bearer_token(request)
    if token is None:
        logger.info("Auth rejected on %s: missing or malformed bearer token", request.url.path)
        raise CredentialError("missing")

    token_store: TokenStore = request.app.state.token_store
    result = token_store.check(token)
    if not result.valid:
        logger.info("Auth rejected on %s: %s token", request.url.path, result.reason)
        raise CredentialError(result.reason)

    request.state.user = result.user
    return result.user
