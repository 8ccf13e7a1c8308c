#!/usr/bin/env python3
"""
TaskTrack -- command-line administration.

The HTTP API never creates admins: POST /users/register always yields a
"user" account. The first admin (and any later one that should not be
promoted through the API) is created here.

Usage:
  python main.py create-admin --username alice --email alice@example.com
  python main.py create-admin --username alice --email alice@example.com --password-stdin < pw.txt

Environment variables:
  SECRET_KEY     Required outside debug mode.
  DATABASE_URL   SQLAlchemy URL of the database (default: ./tasktrack.db).
"""

import argparse
import getpass
import sys

from auth import accounts
from auth.store import UserStore
from core.config import get_settings
from core.errors import AppError


def _read_password(from_stdin: bool) -> str:
    """Prompt twice on a TTY, or read one line from stdin for scripted use."""
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    password = getpass.getpass("Password: ")
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.", file=sys.stderr)
        sys.exit(1)
    return password


def create_admin(args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin)
    store = UserStore(get_settings().database_url)
    try:
        user = accounts.create_admin(store, args.username, args.email, password)
    except AppError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        for err in exc.errors or []:
            print(f"      - {err}", file=sys.stderr)
        return 1
    finally:
        store.close()
    print(f"Admin '{user.username}' <{user.email}> created (id={user.id}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tasktrack",
        description="TaskTrack administration commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --username alice --email alice@example.com
  echo 'S3cure!pass' | python main.py create-admin --username ci --email ci@example.com --password-stdin
        """,
    )
    sub = parser.add_subparsers(dest="command")

    admin = sub.add_parser("create-admin", help="Create an account with the admin role")
    admin.add_argument("--username", required=True, help="Display name, 3-50 characters")
    admin.add_argument("--email", required=True, help="Login email (stored lowercased)")
    admin.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from stdin instead of prompting",
    )
    admin.set_defaults(func=create_admin)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
