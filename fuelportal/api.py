"""FastAPI application exposing fuel portal records as JSON."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .config import PortalSettings, QuotaPolicy, load_settings
from .database import Database, DatabaseError, DuplicateRecordError
from .models import FuelQuota, FuelStation, Role, Vehicle
from .quotas import QuotaError, record_fuel_transaction, register_vehicle, reset_weekly_quotas
from .roles import RoleAssignmentOutcome, assign_role
from .security import APITokenGuard
from .validation import validate_registration

logger = logging.getLogger("fuelportal.api")


class RoleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    created_at: datetime


class CreateRoleRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be empty")
        return stripped


class AssignRoleRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    role_name: str = Field(..., min_length=1, max_length=64)


class AssignRoleResponse(BaseModel):
    outcome: RoleAssignmentOutcome
    message: str
    email: str
    role_name: str


class UpdateQuotaRequest(BaseModel):
    allocated_litres: float = Field(..., ge=0, allow_inf_nan=False)


class RegisterVehicleRequest(BaseModel):
    registration_no: str = Field(..., min_length=1, max_length=32)
    chassis_no: str = Field(..., min_length=1, max_length=64)
    engine_no: str = Field(..., min_length=1, max_length=64)
    vehicle_type: str = Field(..., min_length=1, max_length=32)
    fuel_type: str = Field(..., min_length=1, max_length=32)
    owner_user_id: Optional[int] = None


class FuelTransactionRequest(BaseModel):
    vehicle_id: int
    station_id: int
    pumped_litres: float = Field(..., gt=0)
    operator_user_id: Optional[int] = None


_NOT_FOUND_OUTCOMES = {
    RoleAssignmentOutcome.USER_NOT_FOUND,
    RoleAssignmentOutcome.ROLE_NOT_FOUND,
    RoleAssignmentOutcome.USER_AND_ROLE_NOT_FOUND,
}


def role_to_response(role: Role) -> RoleResponse:
    return RoleResponse(id=role.id, name=role.name, description=role.description, created_at=role.created_at)


def create_app(
    *,
    database: Database | None = None,
    auth: APITokenGuard | None = None,
    quota_policy: QuotaPolicy | None = None,
    settings: PortalSettings | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    settings = settings or load_settings()
    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if auth is None:
        auth = APITokenGuard.from_tokens(settings.api_tokens)
    policy = quota_policy if quota_policy is not None else settings.quota_policy()

    app = FastAPI(
        title="Fuel Portal API",
        description="Fuel stations, quotas, vehicles and role assignments",
        version="1.0.0",
    )
    app.state.database = database

    def get_db() -> Database:
        return database

    @app.get("/health")
    async def healthcheck(db: Database = Depends(get_db)):
        report = db.check_health()
        code = status.HTTP_200_OK if report.healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=code, content=report.to_dict())

    protected_router = APIRouter(dependencies=auth.dependencies() if auth is not None else [])

    # ------------------------------------------------------------------
    # Fuel quotas
    # ------------------------------------------------------------------
    @protected_router.get("/fuel-quota")
    async def list_fuel_quotas(db: Database = Depends(get_db)) -> List[Dict[str, object]]:
        return [quota.to_dict() for quota in db.list_fuel_quotas()]

    @protected_router.get("/fuel-quota/{quota_id}")
    async def read_fuel_quota(quota_id: int, db: Database = Depends(get_db)) -> Dict[str, object]:
        quota = db.get_fuel_quota(quota_id)
        if quota is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fuel quota not found")
        return quota.to_dict()

    @protected_router.put("/fuel-quota/{quota_id}")
    async def update_fuel_quota(
        quota_id: int,
        payload: UpdateQuotaRequest,
        db: Database = Depends(get_db),
    ) -> Dict[str, object]:
        try:
            quota: Optional[FuelQuota] = db.update_fuel_quota(quota_id, allocated_litres=payload.allocated_litres)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        if quota is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fuel quota not found")
        return quota.to_dict()

    @protected_router.post("/fuel-quota/reset")
    async def reset_fuel_quotas(db: Database = Depends(get_db)) -> Dict[str, object]:
        count = reset_weekly_quotas(db, policy)
        return {"message": "Quotas reset", "count": count}

    # ------------------------------------------------------------------
    # Fuel stations
    # ------------------------------------------------------------------
    @protected_router.post("/fuel-stations/register", status_code=status.HTTP_201_CREATED)
    async def register_fuel_station(request: Request, db: Database = Depends(get_db)):
        try:
            payload = await request.json()
        except ValueError:
            payload = None

        result = validate_registration(payload)
        if not result.ok or result.data is None:
            return JSONResponse(
                status_code=422,
                content={"errors": result.errors},
            )

        station: FuelStation = db.create_fuel_station(result.data)
        logger.info("Registered fuel station %s (#%s)", station.station_name, station.id)
        return {"station": station.to_dict()}

    @protected_router.get("/fuel-stations")
    async def list_fuel_stations(db: Database = Depends(get_db)) -> List[Dict[str, object]]:
        return [station.to_dict() for station in db.list_fuel_stations()]

    @protected_router.get("/fuel-stations/{station_id}")
    async def read_fuel_station(station_id: int, db: Database = Depends(get_db)) -> Dict[str, object]:
        station = db.get_fuel_station(station_id)
        if station is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fuel station not found")
        return station.to_dict()

    # ------------------------------------------------------------------
    # Vehicles and transactions
    # ------------------------------------------------------------------
    @protected_router.post("/vehicles", status_code=status.HTTP_201_CREATED)
    async def create_vehicle(payload: RegisterVehicleRequest, db: Database = Depends(get_db)) -> Dict[str, object]:
        try:
            vehicle: Vehicle = register_vehicle(
                db,
                policy,
                registration_no=payload.registration_no,
                chassis_no=payload.chassis_no,
                engine_no=payload.engine_no,
                vehicle_type=payload.vehicle_type,
                fuel_type=payload.fuel_type,
                owner_user_id=payload.owner_user_id,
            )
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        quota = db.get_fuel_quota_for_vehicle(vehicle.id)
        return {
            "vehicle": vehicle.to_dict(),
            "quota": quota.to_dict() if quota is not None else None,
        }

    @protected_router.get("/vehicles/{vehicle_id}")
    async def read_vehicle(vehicle_id: int, db: Database = Depends(get_db)) -> Dict[str, object]:
        vehicle = db.get_vehicle(vehicle_id)
        if vehicle is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
        return vehicle.to_dict()

    @protected_router.post("/transactions", status_code=status.HTTP_201_CREATED)
    async def create_transaction(payload: FuelTransactionRequest, db: Database = Depends(get_db)) -> Dict[str, object]:
        try:
            transaction = record_fuel_transaction(
                db,
                vehicle_id=payload.vehicle_id,
                station_id=payload.station_id,
                pumped_litres=payload.pumped_litres,
                operator_user_id=payload.operator_user_id,
            )
        except QuotaError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return {"message": "Fuel transaction recorded", "transaction": transaction.to_dict()}

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------
    @protected_router.get("/roles", response_model=List[RoleResponse])
    async def list_roles(db: Database = Depends(get_db)) -> List[RoleResponse]:
        return [role_to_response(role) for role in db.list_roles()]

    @protected_router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
    async def create_role(payload: CreateRoleRequest, db: Database = Depends(get_db)) -> RoleResponse:
        try:
            role = db.create_role(payload.name, payload.description)
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return role_to_response(role)

    @protected_router.post("/roles/assign", response_model=AssignRoleResponse)
    async def assign_user_role(payload: AssignRoleRequest, db: Database = Depends(get_db)):
        result = assign_role(db, payload.email, payload.role_name)
        body = AssignRoleResponse(
            outcome=result.outcome,
            message=result.message,
            email=result.email,
            role_name=result.role_name,
        )
        if result.outcome in _NOT_FOUND_OUTCOMES:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body.model_dump(mode="json"))
        return body

    app.include_router(protected_router)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(_: object, exc: DatabaseError):
        logger.error("Database failure while serving API request: %s", exc)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Database unavailable"})

    return app


__all__ = ["create_app"]
