"""
api/routes/v1/users.py -- Admin area: user management and forced logout.

Routes (all behind get_current_user):
  GET  /api/v1/admin/me                          -- the calling user
  GET  /api/v1/admin/users/all                   -- list users
  GET  /api/v1/admin/users/get/{id}              -- one user
  POST /api/v1/admin/users/save                  -- create (id=0) or update
  POST /api/v1/admin/users/delete                -- delete a user and their tokens
  POST /api/v1/admin/users/log-user-out/{id}     -- deactivate + revoke all tokens
  POST /api/v1/admin/tokens                      -- short-lived service token for the caller

Safety rails:
  An admin cannot deactivate, force-logout or delete their own account; with
  no roles in this app that would be the easiest way to lock everyone out.
  Deactivation through /users/save goes through SessionRevoker.force_logout in
  the same transaction as the profile update, so a deactivated user never
  keeps a working token.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    ForceLogoutResponse,
    MessageResponse,
    TokenResponse,
    UserDeleteRequest,
    UserResponse,
    UserSave,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.passwords import hash_password
from auth.sessions import SessionRevoker, issue_token
from auth.store import UserStore
from core.config import get_settings
from core.db import Database
from core.errors import ConflictError, NotFoundError

logger = logging.getLogger("bookadmin.api")

_settings = get_settings()

router = APIRouter(prefix="/admin", dependencies=[Depends(get_current_user)])


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the user the bearer token belongs to."""
    return UserResponse.from_user(current_user)


@router.get("/users/all", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.get("/users/get/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return UserResponse.from_user(user)


@router.post("/users/save", response_model=UserResponse)
def save_user(
    request: Request,
    body: UserSave,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Create a user (id=0) or update one.

    On update a non-empty password resets it. Switching active off revokes
    every token the user holds, atomically with the rest of the update.
    """
    user_store: UserStore = request.app.state.user_store
    if body.id == 0:
        return _create_user(user_store, body)

    target = user_store.get_by_id(body.id)
    if target is None:
        raise NotFoundError(f"User {body.id} not found.")
    deactivating = target.active and not body.active
    if deactivating and target.id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )

    updates: dict = {"email": body.email, "first_name": body.first_name, "last_name": body.last_name}
    if body.password:
        # Hash before opening the transaction; bcrypt is slow on purpose.
        updates["password_hash"] = hash_password(body.password)
    if body.active:
        updates["active"] = True

    db: Database = request.app.state.db
    revoker: SessionRevoker = request.app.state.revoker
    try:
        with db.begin() as conn:
            user_store.update_user(body.id, conn=conn, **updates)
            if deactivating:
                revoker.force_logout(body.id, conn=conn)
    except ConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc
    logger.info("user_id=%s updated user_id=%s (deactivated=%s)", current_user.id, body.id, deactivating)
    return UserResponse.from_user(user_store.get_by_id(body.id))


@router.post("/users/delete", response_model=MessageResponse)
def delete_user(
    request: Request,
    body: UserDeleteRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Delete a user and every token they hold."""
    if body.id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_delete", "message": "You cannot delete your own account."},
        )
    revoker: SessionRevoker = request.app.state.revoker
    revoker.delete_user(body.id)
    logger.info("user_id=%s deleted user_id=%s", current_user.id, body.id)
    return MessageResponse(message="User deleted.")


@router.post("/users/log-user-out/{user_id}", response_model=ForceLogoutResponse, status_code=202)
def log_user_out(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> ForceLogoutResponse:
    """Deactivate a user and revoke all of their tokens in one transaction."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot log out and deactivate your own account."},
        )
    revoker: SessionRevoker = request.app.state.revoker
    revoked = revoker.force_logout(user_id)
    logger.info("user_id=%s forced logout of user_id=%s", current_user.id, user_id)
    return ForceLogoutResponse(message="User logged out and set inactive.", tokens_revoked=revoked)


@router.post("/tokens", response_model=TokenResponse, status_code=201)
def issue_service_token(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Issue a short-lived token for the caller, e.g. for a script or another service."""
    issued = issue_token(
        request.app.state.token_generator,
        request.app.state.token_store,
        current_user.id,
        timedelta(seconds=_settings.service_token_ttl_seconds),
    )
    resp = JSONResponse(status_code=201, content=TokenResponse.from_issued(issued).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_user(user_store: UserStore, body: UserSave) -> UserResponse:
    if not body.password:
        raise HTTPException(
            status_code=400,
            detail={"code": "password_required", "message": "A password is required for a new user."},
        )
    new_user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        password_hash=hash_password(body.password),
        active=body.active,
    )
    try:
        user_id = user_store.create_user(new_user)
    except ConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email already exists."},
        ) from exc
    return UserResponse.from_user(user_store.get_by_id(user_id))
