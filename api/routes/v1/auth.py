"""
api/routes/v1/auth.py -- Public session endpoints.

Routes:
  POST /api/v1/users/login     -- email/password login; returns a bearer token
  POST /api/v1/users/logout    -- revoke one token (body or bearer header); idempotent
  POST /api/v1/users/signup    -- self-registration, when enabled
  POST /api/v1/validate-token  -- {valid: bool} for a token in the body or ?token=

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline.
  Unknown email, wrong password and inactive account all get the same 401 body.
  Cache-Control: no-store on every response that carries a plaintext token.

All handlers are plain `def`: they block on bcrypt and the database, so
Starlette runs them in its threadpool.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SignupRequest,
    TokenRequest,
    TokenResponse,
    UserResponse,
    ValidateTokenResponse,
)
from auth.dependencies import extract_bearer_token
from auth.models import User
from auth.passwords import authenticate_user, hash_password
from auth.sessions import SessionRevoker, issue_token
from auth.store import TokenStore, UserStore
from core.config import get_settings
from core.errors import ConflictError

logger = logging.getLogger("bookadmin.api")

_settings = get_settings()

# Auth policy: every route in this module is public. Protected routes live in
# api/routes/v1/users.py behind get_current_user.
router = APIRouter()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/users/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a new bearer token and the user.

    Returns the same generic error for unknown email, wrong password and
    inactive account ("bad_credentials") to avoid leaking account state.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid email or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    issued = issue_token(
        request.app.state.token_generator,
        request.app.state.token_store,
        user.id,
        timedelta(seconds=_settings.login_token_ttl_seconds),
    )
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=TokenResponse.from_issued(issued),
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/users/logout", response_model=MessageResponse)
def logout(request: Request, body: Optional[TokenRequest] = None) -> MessageResponse:
    """Revoke the given token. Logging out an unknown or already-revoked token succeeds.

    The token comes from the JSON body, or from the Authorization header
    when there is no body.
    """
    token = body.token if body is not None else extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "token_required", "message": "A token is required to log out."},
        )
    revoker: SessionRevoker = request.app.state.revoker
    revoker.logout(token)
    return MessageResponse(message="Logged out.")


@router.post("/users/signup", response_model=UserResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> UserResponse:
    """Create an active account for the caller. Disabled when SELF_REGISTRATION_ENABLED=false."""
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    user_store: UserStore = request.app.state.user_store
    new_user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        password_hash=hash_password(body.password),
    )
    try:
        user_id = user_store.create_user(new_user)
    except ConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc
    logger.info("Self-registered user_id=%s", user_id)
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.post("/validate-token", response_model=ValidateTokenResponse)
def validate_token(
    request: Request,
    body: Optional[TokenRequest] = None,
    token: Optional[str] = Query(default=None, min_length=1, max_length=128),
) -> ValidateTokenResponse:
    """Report whether a token is currently valid. Never says why it is not."""
    candidate = body.token if body is not None else token
    if candidate is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "token_required", "message": "Supply a token in the body or the token query parameter."},
        )
    token_store: TokenStore = request.app.state.token_store
    return ValidateTokenResponse(valid=token_store.validate(candidate))
