#!/usr/bin/env python3
"""
linkauth -- management commands for the credential and token service.

Usage:
  python main.py serve [--host 0.0.0.0] [--port 8000] [--reload]
  python main.py sweep
  python main.py create-admin --email admin@example.com [--password ...]

  sweep         Delete expired refresh tokens and print how many were removed.
                Safe to run repeatedly; schedule it from cron or similar.
  create-admin  Register a user with the admin flag, or promote an existing one.
                Prompts for the password when --password is not given.

Environment variables: see core/config.py (SECRET_KEY, DATABASE_URL, ...).
"""

import argparse
import getpass
import logging
import sys

from auth.errors import AuthError
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from core.config import Settings, get_settings

logger = logging.getLogger("linkauth.cli")


def _open_stores(settings: Settings) -> tuple[UserStore, RefreshTokenStore]:
    engine = create_db_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    return UserStore(engine), RefreshTokenStore(engine)


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    settings = get_settings()
    users, refresh_tokens = _open_stores(settings)
    try:
        removed = refresh_tokens.delete_expired_refresh_tokens()
    finally:
        users.engine.dispose()
    print(f"Removed {removed} expired refresh token(s).")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    from api.main import build_session_manager

    settings = get_settings()
    users, refresh_tokens = _open_stores(settings)
    sessions = build_session_manager(settings, users, refresh_tokens)
    try:
        existing = users.get_by_email(args.email.strip().lower())
        if existing is not None:
            users.set_admin(existing.id, True)
            print(f"User {existing.email} (id={existing.id}) is now an admin.")
            return 0
        password = args.password or getpass.getpass("Password: ")
        if len(password) < 8:
            print("  [!] Password must be at least 8 characters.")
            return 1
        user_id = sessions.register(args.email, password)
        users.set_admin(user_id, True)
        print(f"Created admin {args.email.strip().lower()} (id={user_id}).")
        return 0
    finally:
        users.engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="linkauth",
        description="Credential and token service for the link shortener.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP/RPC server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="auto-reload on code changes (development)")
    serve.set_defaults(func=cmd_serve)

    sweep = sub.add_parser("sweep", help="delete expired refresh tokens")
    sweep.set_defaults(func=cmd_sweep)

    admin = sub.add_parser("create-admin", help="create or promote an admin user")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", default=None, help="omit to be prompted")
    admin.set_defaults(func=cmd_create_admin)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        return args.func(args)
    except AuthError as exc:
        logger.error("%s failed: %s", args.command, exc.message)
        print(f"  [!] {exc.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
