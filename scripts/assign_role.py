"""Grant a role to an existing user, e.g. ``assign_role.py admin@example.com "Super Admin"``."""
import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fuelportal.database import Database, DatabaseError, resolve_database_path
from fuelportal.roles import assign_role


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Assign a role to a fuel portal user")
    parser.add_argument("email", help="Email address of the user")
    parser.add_argument("role", help="Exact role name")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to FUELPORTAL_DB_PATH or data/fuelportal.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    args = parse_args()

    db_env = args.db_path or os.getenv("FUELPORTAL_DB_PATH")
    database = Database(resolve_database_path(db_env))

    try:
        result = assign_role(database, args.email, args.role)
    except DatabaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(result.message)
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(main())
