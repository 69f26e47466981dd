import argparse
import getpass
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import anyio

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from adoptme.database import Database, resolve_database_path
from adoptme.errors import ValidationError
from adoptme.models import Role
from adoptme.users import MIN_PASSWORD_LENGTH, UserService


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an AdoptMe user account")
    parser.add_argument("first_name", help="Given name of the user")
    parser.add_argument("last_name", help="Family name of the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.USER.value,
        help="Role granted to the account (default: user)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to ADOPTME_DATABASE_URL or data/adoptme.sqlite3)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
                file=sys.stderr,
            )
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    password = prompt_for_password()

    db_env = args.db_path or os.getenv("ADOPTME_DATABASE_URL")
    database = Database(resolve_database_path(db_env))
    database.initialize()
    users = UserService(database)

    async def _register():
        return await users.register(
            args.first_name, args.last_name, args.email, password, role=Role(args.role)
        )

    try:
        user = anyio.run(_register)
    except ValidationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} {user.id}: {user.full_name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
