"""Fuel quota bookkeeping: vehicle registration, transactions and weekly resets."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from .config import QuotaPolicy
from .database import Database
from .models import FuelTransaction, Vehicle

logger = logging.getLogger("fuelportal.quotas")


class QuotaError(ValueError):
    """Raised when a fuel transaction cannot be recorded against a quota."""


def current_quota_period(today: Optional[date] = None) -> str:
    return (today or date.today()).isoformat()


def register_vehicle(
    database: Database,
    policy: QuotaPolicy,
    *,
    registration_no: str,
    chassis_no: str,
    engine_no: str,
    vehicle_type: str,
    fuel_type: str,
    owner_user_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Vehicle:
    """Register a vehicle and open its first quota using the weekly policy."""

    normalized_vehicle_type = vehicle_type.strip().upper()
    normalized_fuel_type = fuel_type.strip().upper()
    if not normalized_vehicle_type or not normalized_fuel_type:
        raise ValueError("Vehicle type and fuel type are required")

    vehicle = database.register_vehicle(
        registration_no=registration_no,
        chassis_no=chassis_no,
        engine_no=engine_no,
        vehicle_type=normalized_vehicle_type,
        fuel_type=normalized_fuel_type,
        owner_user_id=owner_user_id,
        allocated_litres=policy.weekly_limit(normalized_vehicle_type, normalized_fuel_type),
        quota_period=current_quota_period(today),
    )
    logger.info("Registered vehicle %s (%s/%s)", vehicle.registration_no, vehicle.vehicle_type, vehicle.fuel_type)
    return vehicle


def record_fuel_transaction(
    database: Database,
    *,
    vehicle_id: int,
    station_id: int,
    pumped_litres: float,
    operator_user_id: Optional[int] = None,
) -> FuelTransaction:
    if pumped_litres <= 0:
        raise QuotaError("Pumped litres must be greater than zero")
    if database.get_vehicle(vehicle_id) is None:
        raise QuotaError("Vehicle not found")
    if database.get_fuel_station(station_id) is None:
        raise QuotaError("Fuel station not found")

    try:
        transaction = database.record_fuel_transaction(
            vehicle_id=vehicle_id,
            station_id=station_id,
            pumped_litres=pumped_litres,
            operator_user_id=operator_user_id,
        )
    except ValueError as exc:
        raise QuotaError(str(exc)) from exc

    logger.info(
        "Recorded %.2f litres for vehicle %s at station %s",
        transaction.pumped_litres,
        vehicle_id,
        station_id,
    )
    return transaction


def reset_weekly_quotas(database: Database, policy: QuotaPolicy, *, today: Optional[date] = None) -> int:
    """Zero usage and re-apply the policy allowance for every vehicle."""

    period = current_quota_period(today)
    count = database.reset_fuel_quotas(quota_period=period, allocate=policy.weekly_limit)
    logger.info("Reset %d fuel quota(s) for period %s", count, period)
    return count


__all__ = [
    "QuotaError",
    "current_quota_period",
    "record_fuel_transaction",
    "register_vehicle",
    "reset_weekly_quotas",
]
