from pathlib import Path

import pytest

import main
from main import _parse_args
from fuelportal.database import Database


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "0.0.0.0", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "0.0.0.0"
    assert args.port == 8080


def test_assign_role_subcommand_takes_email_and_role() -> None:
    args = _parse_args(["assign-role", "admin@example.com", "Super Admin"])
    assert args.command == "assign-role"
    assert args.email == "admin@example.com"
    assert args.role == "Super Admin"


@pytest.fixture()
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "cli.sqlite3"
    monkeypatch.setenv("FUELPORTAL_DB_PATH", str(path))
    return path


def test_assign_role_exit_codes(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["seed-roles"]) == 0
    Database(db_path).create_user("Portal Admin", "admin@example.com", "Sup3rSecurePwd!")

    assert main.main(["assign-role", "admin@example.com", "Super Admin"]) == 0
    assert main.main(["assign-role", "admin@example.com", "Super Admin"]) == 0
    assert main.main(["assign-role", "ghost@example.com", "Super Admin"]) == 1

    output = capsys.readouterr().out
    assert "Super Admin role assigned to admin@example.com." in output
    assert "Super Admin role is already assigned to admin@example.com." in output
    assert "No user with email 'ghost@example.com' was found." in output


def test_create_user_prompts_for_password(db_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main, "getpass", lambda prompt="": "long-enough-password")

    assert main.main(["create-user", "Portal Admin", "admin@example.com"]) == 0
    assert main.main(["create-user", "Portal Admin", "admin@example.com"]) == 1
    assert Database(db_path).authenticate_user("admin@example.com", "long-enough-password") is not None


def test_check_db_reports_user_count(db_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["init-db"]) == 0

    assert main.main(["check-db"]) == 0
    output = capsys.readouterr().out
    assert "Database connection is healthy" in output
    assert "Users in database: 0" in output


def test_check_db_failure_prints_without_traceback(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("FUELPORTAL_DB_PATH", str(tmp_path))

    assert main.main(["check-db"]) == 1
    captured = capsys.readouterr()
    assert "Database connection failed" in captured.out
    assert "Traceback" not in captured.out + captured.err


def test_check_db_reports_blocked_parent_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("FUELPORTAL_DB_PATH", str(blocker / "db.sqlite3"))

    assert main.main(["check-db"]) == 1
    captured = capsys.readouterr()
    assert "Database connection failed" in captured.out
    assert "Traceback" not in captured.out + captured.err


def test_assign_role_reports_blocked_parent_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("FUELPORTAL_DB_PATH", str(blocker / "db.sqlite3"))

    assert main.main(["assign-role", "admin@example.com", "Super Admin"]) == 1
    assert "Unable to open database" in capsys.readouterr().err
