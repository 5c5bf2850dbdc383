"""Domain models for the fuel portal."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the portal database."""

    id: int
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class Role:
    id: int
    name: str
    description: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class UserRoleAssignment:
    """Links a user to a role; a pair appears at most once."""

    user_id: int
    role_id: int
    assigned_at: datetime


@dataclass(frozen=True)
class FuelStationRegistrationData:
    """Validated fuel-station registration submission (not persisted by itself)."""

    station_name: str
    contact_person: str
    phone: str
    email: str
    address: str
    operating_hours: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "stationName": self.station_name,
            "contactPerson": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "operatingHours": self.operating_hours,
        }


@dataclass(frozen=True)
class FuelStation:
    id: int
    station_name: str
    contact_person: str
    phone: str
    email: str
    address: str
    operating_hours: str
    owner_user_id: Optional[int]
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class Vehicle:
    id: int
    registration_no: str
    chassis_no: str
    engine_no: str
    vehicle_type: str
    fuel_type: str
    owner_user_id: Optional[int]
    qr_code: str
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class FuelQuota:
    """Allocation of fuel for one vehicle within a quota period."""

    id: int
    vehicle_id: int
    registration_no: str
    allocated_litres: float
    used_litres: float
    quota_period: str
    updated_at: datetime

    @property
    def remaining_litres(self) -> float:
        return max(self.allocated_litres - self.used_litres, 0.0)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["remaining_litres"] = self.remaining_litres
        data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass(frozen=True)
class FuelTransaction:
    id: int
    vehicle_id: int
    station_id: int
    operator_user_id: Optional[int]
    pumped_litres: float
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class HealthReport:
    """Outcome of a database connectivity probe."""

    healthy: bool
    message: str
    checked_at: datetime
    user_count: Optional[int] = None
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            "timestamp": self.checked_at.isoformat(),
            "user_count": self.user_count,
            "details": self.details,
        }


__all__ = [
    "FuelQuota",
    "FuelStation",
    "FuelStationRegistrationData",
    "FuelTransaction",
    "HealthReport",
    "Role",
    "User",
    "UserRoleAssignment",
    "Vehicle",
]
