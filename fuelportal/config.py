"""Configuration management for the fuel portal."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml


_DEFAULT_WEEKLY_LIMIT = 40.0


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the portal database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "fuelportal.sqlite3").resolve(strict=False)


def env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_tokens(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def _default_weekly_limit(vehicle_type: str, fuel_type: str) -> float:
    diesel = "DIESEL" in fuel_type
    if vehicle_type == "CAR":
        return 60.0 if diesel else 50.0
    if vehicle_type in {"MOTORCYCLE", "SCOOTER"}:
        return 20.0
    if vehicle_type == "THREE_WHEELER":
        return 25.0
    if vehicle_type == "VAN":
        return 80.0 if diesel else 70.0
    if vehicle_type in {"LORRY", "BUS"}:
        return 200.0 if diesel else 150.0
    if vehicle_type == "HEAVY_VEHICLE":
        return 300.0 if diesel else 250.0
    if vehicle_type == "BOAT":
        return 100.0
    return _DEFAULT_WEEKLY_LIMIT


def _normalise_key(value: object) -> str:
    return str(value).strip().upper().replace("-", "_").replace(" ", "_")


@dataclass(frozen=True)
class QuotaPolicy:
    """Weekly fuel allowances keyed by vehicle and fuel type."""

    overrides: Dict[Tuple[str, str], float] = field(default_factory=dict)

    def weekly_limit(self, vehicle_type: str, fuel_type: str) -> float:
        key = (_normalise_key(vehicle_type), _normalise_key(fuel_type))
        if key in self.overrides:
            return self.overrides[key]
        return _default_weekly_limit(*key)

    @staticmethod
    def from_entries(entries: Iterable[Dict[str, object]]) -> "QuotaPolicy":
        overrides: Dict[Tuple[str, str], float] = {}
        for entry in entries:
            required_fields = {"vehicle_type", "fuel_type", "weekly_limit"}
            missing = required_fields - entry.keys()
            if missing:
                raise ValueError(f"Missing required quota policy fields: {', '.join(sorted(missing))}")
            limit = float(entry["weekly_limit"])  # type: ignore[arg-type]
            if not math.isfinite(limit) or limit < 0:
                raise ValueError("weekly_limit must be a finite, non-negative number")
            key = (_normalise_key(entry["vehicle_type"]), _normalise_key(entry["fuel_type"]))
            overrides[key] = limit
        return QuotaPolicy(overrides=overrides)


def load_quota_policy(config_path: Optional[Path]) -> QuotaPolicy:
    """Load quota overrides from a YAML file, falling back to the built-in table."""
    if config_path is None:
        return QuotaPolicy()

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    entries = raw.get("quotas") or []
    if not isinstance(entries, list):
        raise ValueError("Quota policy file must define a list under the 'quotas' key")
    return QuotaPolicy.from_entries(entries)


@dataclass(frozen=True)
class PortalSettings:
    """Runtime settings resolved from the environment."""

    database_path: Path
    session_secret: Optional[str]
    secure_cookies: bool = False
    api_tokens: Tuple[str, ...] = ()
    quota_policy_path: Optional[Path] = None

    def quota_policy(self) -> QuotaPolicy:
        return load_quota_policy(self.quota_policy_path)


def load_settings(environ: Optional[Dict[str, str]] = None) -> PortalSettings:
    env = os.environ if environ is None else environ
    policy_path = env.get("FUELPORTAL_QUOTA_POLICY")
    return PortalSettings(
        database_path=resolve_database_path(env.get("FUELPORTAL_DB_PATH")),
        session_secret=env.get("FUELPORTAL_SESSION_SECRET") or None,
        secure_cookies=env_flag(env.get("FUELPORTAL_SESSION_SECURE"), False),
        api_tokens=tuple(parse_tokens(env.get("FUELPORTAL_API_TOKENS"))),
        quota_policy_path=Path(policy_path).expanduser() if policy_path else None,
    )


__all__ = [
    "PortalSettings",
    "QuotaPolicy",
    "env_flag",
    "load_quota_policy",
    "load_settings",
    "parse_tokens",
    "resolve_database_path",
]
