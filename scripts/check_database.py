"""Check that the portal database answers queries and report how many users it holds."""
import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fuelportal.database import Database, resolve_database_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check the fuel portal database connection")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to FUELPORTAL_DB_PATH or data/fuelportal.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    db_env = args.db_path or os.getenv("FUELPORTAL_DB_PATH")
    database = Database(resolve_database_path(db_env))

    report = database.check_health()
    if not report.healthy:
        print(f"Database connection failed: {report.details}")
        return 1

    print("Database connection successful!")
    print(f"Users in database: {report.user_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
