import re
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fuelportal.config import PortalSettings, QuotaPolicy
from fuelportal.database import Database
from fuelportal.quotas import register_vehicle
from fuelportal.roles import SUPER_ADMIN_ROLE, assign_role, ensure_default_roles
from fuelportal.web import build_navigation, create_app


EMAIL = "admin@example.com"
PASSWORD = "super-secret-password"

REGISTRATION = {
    "stationName": "Shell North",
    "contactPerson": "Jane Doe",
    "phone": "+94771234567",
    "email": "jane@shell.lk",
    "address": "123 Main Street, Colombo",
    "operatingHours": "6 AM - 10 PM",
}


def _build_app(database: Database, tmp_path: Path):
    return create_app(
        database=database,
        session_secret="not-so-secret",
        quota_policy=QuotaPolicy(),
        settings=PortalSettings(database_path=tmp_path / "web.sqlite3", session_secret="not-so-secret"),
    )


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "web.sqlite3")
    db.initialize()
    ensure_default_roles(db)
    return db


@pytest.fixture()
def admin_client(database: Database, tmp_path: Path):
    database.create_user("Portal Admin", EMAIL, PASSWORD)
    assign_role(database, EMAIL, SUPER_ADMIN_ROLE)
    with TestClient(_build_app(database, tmp_path)) as client:
        response = client.post(
            "/login",
            data={"email": EMAIL, "password": PASSWORD},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"].endswith("/admin/dashboard")
        yield client


def test_navigation_marks_exact_and_prefix_matches() -> None:
    links = [("Home", "/"), ("Quotas", "/admin/fuel-quota"), ("Roles", "/admin/roles")]

    current = {link.name: link.current for link in build_navigation("/admin/fuel-quota/3/edit", links)}
    assert current == {"Home": False, "Quotas": True, "Roles": False}

    root = {link.name: link.current for link in build_navigation("/", links)}
    assert root == {"Home": True, "Quotas": False, "Roles": False}


def test_session_secret_is_required(database: Database, tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        create_app(
            database=database,
            settings=PortalSettings(database_path=tmp_path / "web.sqlite3", session_secret=None),
        )


def test_admin_pages_require_login(database: Database, tmp_path: Path) -> None:
    with TestClient(_build_app(database, tmp_path)) as client:
        response = client.get("/admin/dashboard", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")


def test_login_without_admin_role_goes_home(database: Database, tmp_path: Path) -> None:
    database.create_user("Vehicle Owner", "owner@example.com", PASSWORD)

    with TestClient(_build_app(database, tmp_path)) as client:
        login = client.post(
            "/login",
            data={"email": "owner@example.com", "password": PASSWORD},
            follow_redirects=False,
        )
        assert login.status_code == 303
        assert login.headers["location"].endswith("/")

        dashboard = client.get("/admin/dashboard", follow_redirects=False)
        assert dashboard.status_code == 303


def test_invalid_login_shows_error(database: Database, tmp_path: Path) -> None:
    with TestClient(_build_app(database, tmp_path)) as client:
        response = client.post("/login", data={"email": EMAIL, "password": "nope"})

    assert response.status_code == 200
    assert "Invalid email or password." in response.text


def test_dashboard_highlights_current_sidebar_link(admin_client: TestClient) -> None:
    response = admin_client.get("/admin/dashboard")

    assert response.status_code == 200
    assert "Welcome to Admin Dashboard" in response.text
    assert "Admin Panel" in response.text
    current = re.findall(r'class="sidebar-link current" aria-current="page">([^<]+)</a>', response.text)
    assert current == ["Dashboard"]


def test_quota_edit_page_highlights_quota_link(admin_client: TestClient, database: Database) -> None:
    register_vehicle(
        database,
        QuotaPolicy(),
        registration_no="CAB-1234",
        chassis_no="CH1",
        engine_no="EN1",
        vehicle_type="CAR",
        fuel_type="PETROL_92",
    )
    quota = database.list_fuel_quotas()[0]

    response = admin_client.get(f"/admin/fuel-quota/{quota.id}/edit")

    assert response.status_code == 200
    current = re.findall(r'class="sidebar-link current" aria-current="page">([^<]+)</a>', response.text)
    assert current == ["Fuel Quotas"]

    update = admin_client.post(
        f"/admin/fuel-quota/{quota.id}/edit",
        data={"allocated_litres": "75"},
        follow_redirects=False,
    )
    assert update.status_code == 303
    assert update.headers["location"].endswith("/admin/fuel-quota")
    assert database.get_fuel_quota(quota.id).allocated_litres == 75

    listing = admin_client.get("/admin/fuel-quota")
    assert "Quota for CAB-1234 updated." in listing.text
    assert "75.00" in listing.text


def test_quota_edit_rejects_non_numeric_value(admin_client: TestClient, database: Database) -> None:
    register_vehicle(
        database,
        QuotaPolicy(),
        registration_no="CAB-1234",
        chassis_no="CH1",
        engine_no="EN1",
        vehicle_type="CAR",
        fuel_type="PETROL_92",
    )
    quota = database.list_fuel_quotas()[0]

    response = admin_client.post(f"/admin/fuel-quota/{quota.id}/edit", data={"allocated_litres": "lots"})

    assert response.status_code == 200
    assert "Please enter the quota in litres." in response.text
    assert database.get_fuel_quota(quota.id).allocated_litres == 50


@pytest.mark.parametrize("value", ["nan", "inf"])
def test_quota_edit_rejects_non_finite_value(admin_client: TestClient, database: Database, value: str) -> None:
    register_vehicle(
        database,
        QuotaPolicy(),
        registration_no="CAB-1234",
        chassis_no="CH1",
        engine_no="EN1",
        vehicle_type="CAR",
        fuel_type="PETROL_92",
    )
    quota = database.list_fuel_quotas()[0]

    response = admin_client.post(f"/admin/fuel-quota/{quota.id}/edit", data={"allocated_litres": value})

    assert response.status_code == 200
    assert "Allocated litres must be a finite number" in response.text
    assert database.get_fuel_quota(quota.id).allocated_litres == 50


def test_missing_quota_renders_not_found(admin_client: TestClient) -> None:
    response = admin_client.get("/admin/fuel-quota/999/edit")

    assert response.status_code == 404
    assert "404 - Page not found" in response.text


def test_assign_role_form_flashes_outcome(admin_client: TestClient, database: Database) -> None:
    database.create_user("Operator", "operator@example.com", PASSWORD)

    response = admin_client.post(
        "/admin/roles/assign",
        data={"email": "operator@example.com", "role_name": "Fuel Station Operator"},
    )
    assert response.status_code == 200
    assert "Fuel Station Operator role assigned to operator@example.com." in response.text

    repeat = admin_client.post(
        "/admin/roles/assign",
        data={"email": "operator@example.com", "role_name": "Fuel Station Operator"},
    )
    assert "already assigned" in repeat.text

    missing = admin_client.post(
        "/admin/roles/assign",
        data={"email": "ghost@example.com", "role_name": "Fuel Station Operator"},
    )
    assert "No user with email &#39;ghost@example.com&#39; was found." in missing.text


def test_registration_form_shows_inline_errors(database: Database, tmp_path: Path) -> None:
    payload = dict(REGISTRATION, phone="12345", email="not-an-email")

    with TestClient(_build_app(database, tmp_path)) as client:
        response = client.post("/register", data=payload)

    assert response.status_code == 422
    assert 'data-field="phone">Phone number must be at least 10 digits.' in response.text
    assert 'data-field="email">Invalid email address.' in response.text
    assert 'value="Shell North"' in response.text
    assert database.list_fuel_stations() == []


def test_registration_form_success_redirects(database: Database, tmp_path: Path) -> None:
    with TestClient(_build_app(database, tmp_path)) as client:
        response = client.post("/register", data=REGISTRATION, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"].endswith("/register")

        follow = client.get("/register")

    assert "Shell North has been registered." in follow.text
    assert [station.station_name for station in database.list_fuel_stations()] == ["Shell North"]
