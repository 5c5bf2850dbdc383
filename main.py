"""Command-line interface for the fuel portal."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

from fuelportal.config import PortalSettings, load_settings
from fuelportal.database import Database, DatabaseError
from fuelportal.quotas import reset_weekly_quotas
from fuelportal.roles import RoleAssignmentOutcome, assign_role, ensure_default_roles

logger = logging.getLogger("fuelportal.main")

_COMMANDS = {"serve", "init-db", "seed-roles", "create-user", "assign-role", "check-db", "reset-quotas"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fuel portal utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the portal web service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the portal")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP service (default: 8000)",
    )

    subparsers.add_parser("init-db", help="Initialise the portal database")
    subparsers.add_parser("seed-roles", help="Create the default roles")

    user_parser = subparsers.add_parser("create-user", help="Create a login account")
    user_parser.add_argument("name", help="Display name for the user")
    user_parser.add_argument("email", help="Unique email address for login")

    assign_parser = subparsers.add_parser("assign-role", help="Assign a role to a user")
    assign_parser.add_argument("email", help="Email address of the user")
    assign_parser.add_argument("role", help="Exact name of the role, e.g. 'Super Admin'")

    subparsers.add_parser("check-db", help="Verify the database can be reached")
    subparsers.add_parser("reset-quotas", help="Start a new weekly quota period for every vehicle")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in _COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: PortalSettings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: PortalSettings, host: str, port: int) -> None:
    from fuelportal.application import create_application
    import uvicorn

    logger.info("Starting fuel portal on http://%s:%s", host, port)
    app = create_application(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password (min 12 characters): ")
        if len(password) < 12:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, name: str, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    try:
        user = database.create_user(name, email, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


def _assign_role(database: Database, email: str, role_name: str) -> int:
    try:
        result = assign_role(database, email, role_name)
    except DatabaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(result.message)
    if result.outcome in (RoleAssignmentOutcome.ASSIGNED, RoleAssignmentOutcome.ALREADY_ASSIGNED):
        return 0
    return 1


def _check_database(database: Database) -> int:
    report = database.check_health()
    if not report.healthy:
        print(f"{report.message}: {report.details}")
        return 1
    print(report.message)
    print(f"Users in database: {report.user_count}")
    return 0


def _seed_roles(database: Database) -> int:
    roles = ensure_default_roles(database)
    print(f"{len(roles)} role(s) available:")
    for role in roles:
        print(f"- {role.name}")
    return 0


def _reset_quotas(database: Database, settings: PortalSettings) -> int:
    count = reset_weekly_quotas(database, settings.quota_policy())
    print(f"Reset {count} fuel quota(s).")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()

    if args.command == "check-db":
        # Probe without creating tables so an unreachable database is reported as-is.
        return _check_database(Database(settings.database_path))

    try:
        database = _initialise_database(settings)
    except DatabaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
        return 0
    if args.command == "init-db":
        print("Database initialisation complete.")
        return 0
    if args.command == "seed-roles":
        return _seed_roles(database)
    if args.command == "create-user":
        return _create_user(database, args.name, args.email)
    if args.command == "assign-role":
        return _assign_role(database, args.email, args.role)
    if args.command == "reset-quotas":
        return _reset_quotas(database, settings)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
