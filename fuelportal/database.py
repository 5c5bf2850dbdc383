"""SQLite-backed persistence for users, roles, stations, vehicles and quotas."""
from __future__ import annotations

import logging
import math
import sqlite3
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from passlib.context import CryptContext

from .config import resolve_database_path
from .identifiers import placeholder_qr_code
from .models import (
    FuelQuota,
    FuelStation,
    FuelStationRegistrationData,
    FuelTransaction,
    HealthReport,
    Role,
    User,
    UserRoleAssignment,
    Vehicle,
)

logger = logging.getLogger("fuelportal.database")


class DatabaseError(RuntimeError):
    """Raised when the database cannot be reached or a query fails."""


class DuplicateRecordError(ValueError):
    """Raised when an insert violates a uniqueness constraint."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalise_email(email: str) -> str:
    return email.strip().lower()


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


_QUOTA_SELECT = """
    SELECT q.*, v.registration_no
      FROM fuel_quotas q
      JOIN vehicles v ON v.id = q.vehicle_id
"""


class Database:
    """Thin wrapper around SQLite; every call runs on its own scoped connection."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error and always close it.

        ``sqlite3.IntegrityError`` propagates unchanged so callers can map
        constraint violations; every other ``sqlite3.Error``, and any ``OSError``
        while creating the parent directory, is raised as :class:`DatabaseError`.
        """

        try:
            _ensure_directory(self._path)
            conn = sqlite3.connect(self._path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseError(f"Unable to open database at {self._path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            with suppress(sqlite3.Error):
                conn.rollback()
            raise
        except sqlite3.Error as exc:
            with suppress(sqlite3.Error):
                conn.rollback()
            raise DatabaseError(f"Database query failed: {exc}") from exc
        except BaseException:
            with suppress(sqlite3.Error):
                conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS roles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    description TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_role_assignments (
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    role_id INTEGER NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
                    assigned_at TEXT NOT NULL,
                    UNIQUE (user_id, role_id)
                );

                CREATE TABLE IF NOT EXISTS fuel_stations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    station_name TEXT NOT NULL,
                    contact_person TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    email TEXT NOT NULL,
                    address TEXT NOT NULL,
                    operating_hours TEXT NOT NULL,
                    owner_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS vehicles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    registration_no TEXT NOT NULL UNIQUE,
                    chassis_no TEXT NOT NULL,
                    engine_no TEXT NOT NULL,
                    vehicle_type TEXT NOT NULL,
                    fuel_type TEXT NOT NULL,
                    owner_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                    qr_code TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS fuel_quotas (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL UNIQUE REFERENCES vehicles(id) ON DELETE CASCADE,
                    allocated_litres REAL NOT NULL,
                    used_litres REAL NOT NULL DEFAULT 0,
                    quota_period TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS fuel_transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL REFERENCES vehicles(id) ON DELETE CASCADE,
                    station_id INTEGER NOT NULL REFERENCES fuel_stations(id) ON DELETE CASCADE,
                    operator_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                    pumped_litres REAL NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_assignments_role_id ON user_role_assignments(role_id);
                CREATE INDEX IF NOT EXISTS idx_transactions_vehicle_id ON fuel_transactions(vehicle_id);
                """
            )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def ping(self) -> None:
        with self.connect() as conn:
            conn.execute("SELECT 1").fetchone()

    def count_users(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def check_health(self) -> HealthReport:
        """Run the connectivity probe and report the user count."""

        checked_at = _current_timestamp()
        try:
            self.ping()
            user_count = self.count_users()
        except DatabaseError as exc:
            logger.error("Database health check failed: %s", exc)
            return HealthReport(
                healthy=False,
                message="Database connection failed",
                checked_at=checked_at,
                details=str(exc),
            )
        return HealthReport(
            healthy=True,
            message="Database connection is healthy",
            checked_at=checked_at,
            user_count=user_count,
        )

    def summary_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self.connect() as conn:
            for table in ("users", "roles", "fuel_stations", "vehicles", "fuel_quotas", "fuel_transactions"):
                row = conn.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
                counts[table] = int(row["total"])
        return counts

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, password: str) -> User:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")
        normalized_email = _normalise_email(email or "")
        if not normalized_email:
            raise ValueError("Email must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        created_at = _current_timestamp()
        with self.connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO users (name, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                    (normalized_name, normalized_email, _hash_password(password), _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError("A user with that email already exists") from exc
            user_id = cursor.lastrowid

        return User(id=user_id, name=normalized_name, email=normalized_email, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalise_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (_normalise_email(email),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def set_user_password(self, user_id: int, password: str) -> None:
        if not password:
            raise ValueError("Password must not be empty")
        with self.connect() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (_hash_password(password), user_id),
            )

    # ------------------------------------------------------------------
    # Roles and assignments
    # ------------------------------------------------------------------
    def create_role(self, name: str, description: Optional[str] = None) -> Role:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Role name must not be empty")

        created_at = _current_timestamp()
        with self.connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO roles (name, description, created_at) VALUES (?, ?, ?)",
                    (normalized_name, description, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError(f"Role {normalized_name!r} already exists") from exc
            role_id = cursor.lastrowid

        return Role(id=role_id, name=normalized_name, description=description, created_at=created_at)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM roles WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        return self._row_to_role(row)

    def list_roles(self) -> List[Role]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM roles ORDER BY name").fetchall()
        return [self._row_to_role(row) for row in rows]

    def get_role_assignment(self, user_id: int, role_id: int) -> Optional[UserRoleAssignment]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_role_assignments WHERE user_id = ? AND role_id = ?",
                (user_id, role_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    def create_role_assignment(self, user_id: int, role_id: int) -> UserRoleAssignment:
        assigned_at = _current_timestamp()
        with self.connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO user_role_assignments (user_id, role_id, assigned_at) VALUES (?, ?, ?)",
                    (user_id, role_id, _serialize_datetime(assigned_at)),
                )
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" in str(exc).upper():
                    raise DuplicateRecordError("Role already assigned to user") from exc
                raise DatabaseError(f"Failed to assign role {role_id} to user {user_id}: {exc}") from exc

        return UserRoleAssignment(user_id=user_id, role_id=role_id, assigned_at=assigned_at)

    def count_role_assignments(self, user_id: int, role_id: int) -> int:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM user_role_assignments WHERE user_id = ? AND role_id = ?",
                (user_id, role_id),
            ).fetchone()
        return int(row["total"])

    def list_roles_for_user(self, user_id: int) -> List[Role]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT r.*
                  FROM roles r
                  JOIN user_role_assignments a ON a.role_id = r.id
                 WHERE a.user_id = ?
                 ORDER BY r.name
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_role(row) for row in rows]

    def user_has_role(self, user_id: int, role_name: str) -> bool:
        return any(role.name == role_name for role in self.list_roles_for_user(user_id))

    # ------------------------------------------------------------------
    # Fuel stations
    # ------------------------------------------------------------------
    def create_fuel_station(
        self,
        registration: FuelStationRegistrationData,
        *,
        owner_user_id: Optional[int] = None,
    ) -> FuelStation:
        created_at = _current_timestamp()
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO fuel_stations (
                    station_name, contact_person, phone, email, address, operating_hours,
                    owner_user_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    registration.station_name,
                    registration.contact_person,
                    registration.phone,
                    registration.email,
                    registration.address,
                    registration.operating_hours,
                    owner_user_id,
                    _serialize_datetime(created_at),
                ),
            )
            station_id = cursor.lastrowid

        station = self.get_fuel_station(station_id)
        if station is None:
            raise RuntimeError("Failed to load fuel station after creation")
        return station

    def get_fuel_station(self, station_id: int) -> Optional[FuelStation]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM fuel_stations WHERE id = ?", (station_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_station(row)

    def list_fuel_stations(self) -> List[FuelStation]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM fuel_stations ORDER BY station_name").fetchall()
        return [self._row_to_station(row) for row in rows]

    # ------------------------------------------------------------------
    # Vehicles and quotas
    # ------------------------------------------------------------------
    def register_vehicle(
        self,
        *,
        registration_no: str,
        chassis_no: str,
        engine_no: str,
        vehicle_type: str,
        fuel_type: str,
        owner_user_id: Optional[int],
        allocated_litres: float,
        quota_period: str,
    ) -> Vehicle:
        """Store a vehicle and open its first quota period in one transaction."""

        normalized_registration = registration_no.strip().upper()
        if not normalized_registration:
            raise ValueError("Registration number must not be empty")
        if not math.isfinite(allocated_litres) or allocated_litres < 0:
            raise ValueError("Allocated litres must be a finite, non-negative number")

        created_at = _current_timestamp()
        serialized = _serialize_datetime(created_at)
        with self.connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO vehicles (
                        registration_no, chassis_no, engine_no, vehicle_type, fuel_type,
                        owner_user_id, qr_code, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        normalized_registration,
                        chassis_no.strip(),
                        engine_no.strip(),
                        vehicle_type,
                        fuel_type,
                        owner_user_id,
                        placeholder_qr_code(normalized_registration),
                        serialized,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError("A vehicle with that registration number already exists") from exc
            vehicle_id = cursor.lastrowid
            conn.execute(
                """
                INSERT INTO fuel_quotas (vehicle_id, allocated_litres, used_litres, quota_period, updated_at)
                VALUES (?, ?, 0, ?, ?)
                """,
                (vehicle_id, float(allocated_litres), quota_period, serialized),
            )

        vehicle = self.get_vehicle(vehicle_id)
        if vehicle is None:
            raise RuntimeError("Failed to load vehicle after creation")
        return vehicle

    def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_vehicle(row)

    def list_vehicles(self) -> List[Vehicle]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM vehicles ORDER BY registration_no").fetchall()
        return [self._row_to_vehicle(row) for row in rows]

    def list_fuel_quotas(self) -> List[FuelQuota]:
        with self.connect() as conn:
            rows = conn.execute(_QUOTA_SELECT + " ORDER BY v.registration_no").fetchall()
        return [self._row_to_quota(row) for row in rows]

    def get_fuel_quota(self, quota_id: int) -> Optional[FuelQuota]:
        with self.connect() as conn:
            row = conn.execute(_QUOTA_SELECT + " WHERE q.id = ?", (quota_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_quota(row)

    def get_fuel_quota_for_vehicle(self, vehicle_id: int) -> Optional[FuelQuota]:
        with self.connect() as conn:
            row = conn.execute(_QUOTA_SELECT + " WHERE q.vehicle_id = ?", (vehicle_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_quota(row)

    def update_fuel_quota(self, quota_id: int, *, allocated_litres: float) -> Optional[FuelQuota]:
        if not math.isfinite(allocated_litres):
            raise ValueError("Allocated litres must be a finite number")
        if allocated_litres < 0:
            raise ValueError("Allocated litres must not be negative")

        existing = self.get_fuel_quota(quota_id)
        if existing is None:
            return None
        if allocated_litres < existing.used_litres:
            raise ValueError(
                f"Allocated litres cannot be below the {existing.used_litres:g} litres already used"
            )

        with self.connect() as conn:
            conn.execute(
                "UPDATE fuel_quotas SET allocated_litres = ?, updated_at = ? WHERE id = ?",
                (float(allocated_litres), _serialize_datetime(_current_timestamp()), quota_id),
            )
        return self.get_fuel_quota(quota_id)

    def reset_fuel_quotas(self, *, quota_period: str, allocate: Callable[[str, str], float]) -> int:
        """Start a new quota period for every vehicle; returns the number of quotas reset."""

        updated_at = _serialize_datetime(_current_timestamp())
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT q.id, v.vehicle_type, v.fuel_type
                  FROM fuel_quotas q
                  JOIN vehicles v ON v.id = q.vehicle_id
                """
            ).fetchall()
            for row in rows:
                conn.execute(
                    """
                    UPDATE fuel_quotas
                       SET used_litres = 0, allocated_litres = ?, quota_period = ?, updated_at = ?
                     WHERE id = ?
                    """,
                    (
                        float(allocate(str(row["vehicle_type"]), str(row["fuel_type"]))),
                        quota_period,
                        updated_at,
                        row["id"],
                    ),
                )
        return len(rows)

    # ------------------------------------------------------------------
    # Fuel transactions
    # ------------------------------------------------------------------
    def record_fuel_transaction(
        self,
        *,
        vehicle_id: int,
        station_id: int,
        pumped_litres: float,
        operator_user_id: Optional[int] = None,
    ) -> FuelTransaction:
        """Deduct ``pumped_litres`` from the vehicle quota and record the transaction.

        Raises :class:`ValueError` without writing anything when the quota is
        missing or does not cover the amount.
        """

        created_at = _current_timestamp()
        serialized = _serialize_datetime(created_at)
        with self.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE fuel_quotas
                   SET used_litres = used_litres + ?, updated_at = ?
                 WHERE vehicle_id = ? AND allocated_litres - used_litres >= ?
                """,
                (float(pumped_litres), serialized, vehicle_id, float(pumped_litres)),
            )
            if cursor.rowcount == 0:
                quota = conn.execute(
                    "SELECT id FROM fuel_quotas WHERE vehicle_id = ?", (vehicle_id,)
                ).fetchone()
                if quota is None:
                    raise ValueError("No quota found for vehicle")
                raise ValueError("Insufficient fuel quota")

            cursor = conn.execute(
                """
                INSERT INTO fuel_transactions (vehicle_id, station_id, operator_user_id, pumped_litres, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (vehicle_id, station_id, operator_user_id, float(pumped_litres), serialized),
            )
            transaction_id = cursor.lastrowid

        return FuelTransaction(
            id=transaction_id,
            vehicle_id=vehicle_id,
            station_id=station_id,
            operator_user_id=operator_user_id,
            pumped_litres=float(pumped_litres),
            created_at=created_at,
        )

    def list_transactions_for_vehicle(self, vehicle_id: int) -> List[FuelTransaction]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM fuel_transactions WHERE vehicle_id = ? ORDER BY id",
                (vehicle_id,),
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_role(self, row: sqlite3.Row) -> Role:
        return Role(
            id=int(row["id"]),
            name=str(row["name"]),
            description=row["description"],
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_assignment(self, row: sqlite3.Row) -> UserRoleAssignment:
        return UserRoleAssignment(
            user_id=int(row["user_id"]),
            role_id=int(row["role_id"]),
            assigned_at=_parse_datetime(str(row["assigned_at"])),
        )

    def _row_to_station(self, row: sqlite3.Row) -> FuelStation:
        owner = row["owner_user_id"]
        return FuelStation(
            id=int(row["id"]),
            station_name=str(row["station_name"]),
            contact_person=str(row["contact_person"]),
            phone=str(row["phone"]),
            email=str(row["email"]),
            address=str(row["address"]),
            operating_hours=str(row["operating_hours"]),
            owner_user_id=int(owner) if owner is not None else None,
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_vehicle(self, row: sqlite3.Row) -> Vehicle:
        owner = row["owner_user_id"]
        return Vehicle(
            id=int(row["id"]),
            registration_no=str(row["registration_no"]),
            chassis_no=str(row["chassis_no"]),
            engine_no=str(row["engine_no"]),
            vehicle_type=str(row["vehicle_type"]),
            fuel_type=str(row["fuel_type"]),
            owner_user_id=int(owner) if owner is not None else None,
            qr_code=str(row["qr_code"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_quota(self, row: sqlite3.Row) -> FuelQuota:
        return FuelQuota(
            id=int(row["id"]),
            vehicle_id=int(row["vehicle_id"]),
            registration_no=str(row["registration_no"]),
            allocated_litres=float(row["allocated_litres"]),
            used_litres=float(row["used_litres"]),
            quota_period=str(row["quota_period"]),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> FuelTransaction:
        operator = row["operator_user_id"]
        return FuelTransaction(
            id=int(row["id"]),
            vehicle_id=int(row["vehicle_id"]),
            station_id=int(row["station_id"]),
            operator_user_id=int(operator) if operator is not None else None,
            pumped_litres=float(row["pumped_litres"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "DatabaseError", "DuplicateRecordError", "resolve_database_path"]
