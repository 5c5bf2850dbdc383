from __future__ import annotations

from pathlib import Path

import pytest

from fuelportal.config import (
    QuotaPolicy,
    env_flag,
    load_quota_policy,
    load_settings,
    parse_tokens,
    resolve_database_path,
)


def test_resolve_database_path_defaults_to_data_directory() -> None:
    path = resolve_database_path(None)

    assert path.name == "fuelportal.sqlite3"
    assert path.parent.name == "data"


def test_resolve_database_path_uses_env_value(tmp_path: Path) -> None:
    assert resolve_database_path(str(tmp_path / "x.sqlite3")) == (tmp_path / "x.sqlite3").resolve()


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("yes", True), ("On", True), ("0", False), ("", False)])
def test_env_flag(raw: str, expected: bool) -> None:
    assert env_flag(raw) is expected


def test_env_flag_default() -> None:
    assert env_flag(None, True) is True


def test_parse_tokens_skips_blanks() -> None:
    assert parse_tokens(" alpha, ,beta ,") == ["alpha", "beta"]
    assert parse_tokens(None) == []


def test_load_settings_reads_environment(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "FUELPORTAL_DB_PATH": str(tmp_path / "portal.sqlite3"),
            "FUELPORTAL_SESSION_SECRET": "secret",
            "FUELPORTAL_SESSION_SECURE": "true",
            "FUELPORTAL_API_TOKENS": "one,two",
        }
    )

    assert settings.database_path == (tmp_path / "portal.sqlite3").resolve()
    assert settings.session_secret == "secret"
    assert settings.secure_cookies is True
    assert settings.api_tokens == ("one", "two")
    assert settings.quota_policy_path is None


def test_load_settings_treats_empty_secret_as_missing() -> None:
    assert load_settings({"FUELPORTAL_SESSION_SECRET": ""}).session_secret is None


@pytest.mark.parametrize(
    ("vehicle_type", "fuel_type", "expected"),
    [
        ("CAR", "PETROL_92", 50),
        ("car", "diesel", 60),
        ("MOTORCYCLE", "PETROL_95", 20),
        ("three-wheeler", "PETROL_92", 25),
        ("LORRY", "SUPER_DIESEL", 200),
        ("BOAT", "KEROSENE", 100),
        ("SPACESHIP", "PETROL_92", 40),
    ],
)
def test_default_weekly_limits(vehicle_type: str, fuel_type: str, expected: float) -> None:
    assert QuotaPolicy().weekly_limit(vehicle_type, fuel_type) == expected


def test_yaml_policy_overrides_defaults(tmp_path: Path) -> None:
    policy_file = tmp_path / "quota.yaml"
    policy_file.write_text(
        "quotas:\n"
        "  - vehicle_type: car\n"
        "    fuel_type: petrol_92\n"
        "    weekly_limit: 35\n",
        encoding="utf-8",
    )

    policy = load_quota_policy(policy_file)

    assert policy.weekly_limit("CAR", "PETROL_92") == 35
    assert policy.weekly_limit("CAR", "DIESEL") == 60


def test_yaml_policy_rejects_incomplete_entries(tmp_path: Path) -> None:
    policy_file = tmp_path / "quota.yaml"
    policy_file.write_text("quotas:\n  - vehicle_type: CAR\n", encoding="utf-8")

    with pytest.raises(ValueError, match="fuel_type"):
        load_quota_policy(policy_file)


def test_negative_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        QuotaPolicy.from_entries([{"vehicle_type": "CAR", "fuel_type": "DIESEL", "weekly_limit": -1}])


def test_missing_policy_file_uses_defaults() -> None:
    assert load_quota_policy(None) == QuotaPolicy()


def test_non_finite_limit_is_rejected(tmp_path: Path) -> None:
    policy_file = tmp_path / "quota.yaml"
    policy_file.write_text(
        "quotas:\n"
        "  - vehicle_type: CAR\n"
        "    fuel_type: DIESEL\n"
        "    weekly_limit: .inf\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="finite"):
        load_quota_policy(policy_file)
