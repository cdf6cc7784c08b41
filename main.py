#!/usr/bin/env python3
"""
BookAdmin -- command-line maintenance for the admin backend.

Usage:
  python main.py create-user --email admin@example.com
  python main.py create-user --email admin@example.com --first-name Ada --last-name Lovelace
  python main.py purge-tokens
  python main.py serve --host 0.0.0.0 --port 8080

Environment variables (see core/config.py for the full list):
  DATABASE_URL  SQLAlchemy URL of the store. Defaults to sqlite:///bookadmin.db.
  SECRET_KEY    HMAC key for token hashes. Required unless DEBUG=true.
"""

import argparse
import getpass
import sys

from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, hash_password
from auth.store import TokenStore, UserStore
from auth.tokens import TokenGenerator
from core.config import get_settings
from core.db import Database
from core.errors import AuthError, ConflictError


def _open_database() -> Database:
    settings = get_settings()
    return Database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle_seconds,
        statement_timeout=settings.db_statement_timeout_seconds,
    )


def create_user(args: argparse.Namespace) -> int:
    """Seed an account. This is how the first admin gets in."""
    password = args.password or getpass.getpass("Password: ")
    if not 8 <= len(password) <= 72 or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print("  [!] Password must be 8-72 characters and at most 72 bytes.")
        return 1
    db = _open_database()
    try:
        store = UserStore(db)
        user_id = store.create_user(
            User(
                email=args.email.strip().lower(),
                first_name=args.first_name,
                last_name=args.last_name,
                password_hash=hash_password(password),
            )
        )
    except ConflictError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        db.close()
    print(f"Created user {user_id} <{args.email.strip().lower()}>.")
    return 0


def purge_tokens(args: argparse.Namespace) -> int:
    """Delete expired token rows once. Validation does not depend on this."""
    db = _open_database()
    try:
        removed = TokenStore(db, TokenGenerator(get_settings().secret_key)).purge_expired()
    finally:
        db.close()
    print(f"Purged {removed} expired token(s).")
    return 0


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="bookadmin",
        description="Maintenance commands for the BookAdmin backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_user = sub.add_parser("create-user", help="Create an account (prompts for the password)")
    p_user.add_argument("--email", required=True)
    p_user.add_argument("--first-name", default="")
    p_user.add_argument("--last-name", default="")
    p_user.add_argument("--password", help="Password; omit to be prompted instead")
    p_user.set_defaults(func=create_user)

    p_purge = sub.add_parser("purge-tokens", help="Delete token rows whose expiry has passed")
    p_purge.set_defaults(func=purge_tokens)

    p_serve = sub.add_parser("serve", help="Run the API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8080)
    p_serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    p_serve.set_defaults(func=serve)

    args = parser.parse_args()
    try:
        sys.exit(args.func(args))
    except AuthError as exc:
        print(f"  [!] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
