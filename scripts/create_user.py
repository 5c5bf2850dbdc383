import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fuelportal.database import Database, resolve_database_path
from fuelportal.roles import assign_role, ensure_default_roles


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a fuel portal login account")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        default=None,
        help="Optionally assign this role (e.g. 'Super Admin') once the account exists",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to FUELPORTAL_DB_PATH or data/fuelportal.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 12:
            print("Password must be at least 12 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_env = args.db_path or os.getenv("FUELPORTAL_DB_PATH")
    database = Database(resolve_database_path(db_env))
    database.initialize()

    try:
        user = database.create_user(args.name, args.email, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")

    if args.role:
        ensure_default_roles(database)
        result = assign_role(database, user.email, args.role)
        print(result.message)
        if not result.succeeded:
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
