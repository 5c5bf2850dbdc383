"""Browser-based portal for fuel station registration and administration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .config import PortalSettings, QuotaPolicy, load_settings
from .database import Database, DatabaseError
from .models import User
from .quotas import reset_weekly_quotas
from .roles import SUPER_ADMIN_ROLE, assign_role
from .validation import REGISTRATION_RULES, validate_registration


TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

SESSION_COOKIE_NAME = "fuelportal_session"

logger = logging.getLogger("fuelportal.web")


@dataclass(frozen=True)
class NavigationLink:
    name: str
    href: str
    current: bool = False


SIDEBAR_LINKS: Tuple[Tuple[str, str], ...] = (
    ("Dashboard", "/admin/dashboard"),
    ("Fuel Quotas", "/admin/fuel-quota"),
    ("Fuel Stations", "/admin/fuel-stations"),
    ("Vehicles", "/admin/vehicles"),
    ("Roles", "/admin/roles"),
)


def build_navigation(current_path: str, links: Sequence[Tuple[str, str]] = SIDEBAR_LINKS) -> List[NavigationLink]:
    """Mark the link matching ``current_path``; a prefix match counts except for ``/``."""

    navigation: List[NavigationLink] = []
    for name, href in links:
        current = href == current_path or (
            current_path != "/" and href != "/" and current_path.startswith(href)
        )
        navigation.append(NavigationLink(name=name, href=href, current=current))
    return navigation


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%d %b %Y %H:%M %Z")


def create_app(
    *,
    database: Optional[Database] = None,
    session_secret: Optional[str] = None,
    secure_cookies: Optional[bool] = None,
    quota_policy: Optional[QuotaPolicy] = None,
    settings: Optional[PortalSettings] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Create the portal web application."""

    settings = settings or load_settings()
    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if session_secret is None:
        session_secret = settings.session_secret
    if not session_secret:
        raise RuntimeError("FUELPORTAL_SESSION_SECRET must be configured to use the portal")

    if secure_cookies is None:
        secure_cookies = settings.secure_cookies
    policy = quota_policy if quota_policy is not None else settings.quota_policy()

    app = FastAPI(
        title="Fuel Portal",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database

    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=secure_cookies,
        same_site="lax",
        max_age=60 * 60 * 8,
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["datetime"] = _format_datetime

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _get_current_user(request: Request) -> Optional[User]:
        user_id = request.session.get("user_id")
        if not user_id:
            return None
        try:
            user = database.get_user(int(user_id))
        except (TypeError, ValueError):
            user = None
        if user is None:
            request.session.pop("user_id", None)
        return user

    def _get_admin(request: Request) -> Optional[User]:
        user = _get_current_user(request)
        if user is None or not database.user_has_role(user.id, SUPER_ADMIN_ROLE):
            return None
        return user

    def _redirect(request: Request, name: str, **params: object) -> RedirectResponse:
        return RedirectResponse(
            request.url_for(name, **params),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    def _render_admin(
        request: Request,
        template: str,
        user: User,
        context: Dict[str, object],
        *,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        payload: Dict[str, object] = {
            "user": user,
            "navigation": build_navigation(request.url.path),
            "messages": _consume_flash(request),
        }
        payload.update(context)
        return templates.TemplateResponse(request, template, payload, status_code=status_code)

    # ------------------------------------------------------------------
    # Public pages
    # ------------------------------------------------------------------
    @app.get("/", response_class=HTMLResponse, name="home")
    async def home(request: Request):
        return templates.TemplateResponse(
            request,
            "index.html",
            {"user": _get_current_user(request)},
        )

    @app.get("/register", response_class=HTMLResponse, name="show_registration")
    async def registration_form(request: Request):
        return templates.TemplateResponse(
            request,
            "register.html",
            {
                "values": {},
                "errors": {},
                "fields": list(REGISTRATION_RULES),
                "messages": _consume_flash(request),
            },
        )

    @app.post("/register", response_class=HTMLResponse, name="submit_registration")
    async def submit_registration(request: Request):
        form = await request.form()
        values = {name: form.get(name) for name in REGISTRATION_RULES if form.get(name) is not None}
        result = validate_registration(values)
        if not result.ok or result.data is None:
            return templates.TemplateResponse(
                request,
                "register.html",
                {
                    "values": values,
                    "errors": result.errors,
                    "fields": list(REGISTRATION_RULES),
                    "messages": [],
                },
                status_code=422,
            )

        current = _get_current_user(request)
        station = database.create_fuel_station(
            result.data,
            owner_user_id=current.id if current is not None else None,
        )
        logger.info("Fuel station %s registered through the portal", station.station_name)
        _flash(request, f"{station.station_name} has been registered.", category="success")
        return _redirect(request, "show_registration")

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if _get_admin(request) is not None:
            return _redirect(request, "dashboard")
        error = request.session.pop("login_error", None)
        return templates.TemplateResponse(request, "login.html", {"error": error})

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(...), password: str = Form(...)):
        user = database.authenticate_user(email, password)
        if user is None:
            request.session["login_error"] = "Invalid email or password."
            return _redirect(request, "show_login")

        request.session.clear()
        request.session["user_id"] = user.id
        if not database.user_has_role(user.id, SUPER_ADMIN_ROLE):
            return _redirect(request, "home")
        return _redirect(request, "dashboard")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        request.session.clear()
        return _redirect(request, "show_login")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    @app.get("/admin", name="admin_root")
    async def admin_root(request: Request):
        return _redirect(request, "dashboard")

    @app.get("/admin/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_admin(request, "admin/dashboard.html", user, {"counts": database.summary_counts()})

    @app.get("/admin/fuel-quota", response_class=HTMLResponse, name="fuel_quotas")
    async def fuel_quotas(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_admin(request, "admin/fuel_quotas.html", user, {"quotas": database.list_fuel_quotas()})

    @app.get("/admin/fuel-quota/{quota_id}/edit", response_class=HTMLResponse, name="edit_fuel_quota")
    async def edit_fuel_quota(request: Request, quota_id: int):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        quota = database.get_fuel_quota(quota_id)
        if quota is None:
            raise StarletteHTTPException(status_code=status.HTTP_404_NOT_FOUND)
        return _render_admin(request, "admin/fuel_quota_edit.html", user, {"quota": quota})

    @app.post("/admin/fuel-quota/{quota_id}/edit", name="update_fuel_quota")
    async def update_fuel_quota(request: Request, quota_id: int, allocated_litres: str = Form("")):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")

        try:
            litres = float(allocated_litres)
        except ValueError:
            _flash(request, "Please enter the quota in litres.", category="error")
            return _redirect(request, "edit_fuel_quota", quota_id=quota_id)

        try:
            updated = database.update_fuel_quota(quota_id, allocated_litres=litres)
        except ValueError as exc:
            _flash(request, str(exc), category="error")
            return _redirect(request, "edit_fuel_quota", quota_id=quota_id)

        if updated is None:
            raise StarletteHTTPException(status_code=status.HTTP_404_NOT_FOUND)

        _flash(request, f"Quota for {updated.registration_no} updated.", category="success")
        return _redirect(request, "fuel_quotas")

    @app.post("/admin/fuel-quota/reset", name="reset_fuel_quotas")
    async def reset_fuel_quotas(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        count = reset_weekly_quotas(database, policy)
        _flash(request, f"Reset {count} fuel quota(s).", category="success")
        return _redirect(request, "fuel_quotas")

    @app.get("/admin/fuel-stations", response_class=HTMLResponse, name="fuel_stations")
    async def fuel_stations(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_admin(request, "admin/fuel_stations.html", user, {"stations": database.list_fuel_stations()})

    @app.get("/admin/vehicles", response_class=HTMLResponse, name="vehicles")
    async def vehicles(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_admin(request, "admin/vehicles.html", user, {"vehicles": database.list_vehicles()})

    @app.get("/admin/roles", response_class=HTMLResponse, name="roles")
    async def roles(request: Request):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_admin(request, "admin/roles.html", user, {"roles": database.list_roles()})

    @app.post("/admin/roles/assign", name="assign_role")
    async def assign_role_form(request: Request, email: str = Form(""), role_name: str = Form("")):
        user = _get_admin(request)
        if user is None:
            return _redirect(request, "show_login")

        if not email.strip() or not role_name.strip():
            _flash(request, "Email and role are both required.", category="error")
            return _redirect(request, "roles")

        try:
            result = assign_role(database, email.strip(), role_name.strip())
        except DatabaseError:
            _flash(request, "The role could not be assigned because the database is unavailable.", category="error")
            return _redirect(request, "roles")

        _flash(request, result.message, category="success" if result.succeeded else "error")
        return _redirect(request, "roles")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        template = "not_found.html" if exc.status_code == status.HTTP_404_NOT_FOUND else "error.html"
        return templates.TemplateResponse(
            request,
            template,
            {"status_code": exc.status_code, "detail": exc.detail},
            status_code=exc.status_code,
        )

    return app


__all__ = ["NavigationLink", "SIDEBAR_LINKS", "build_navigation", "create_app"]
