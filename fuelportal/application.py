"""Application factory that serves both the JSON API and the portal pages."""
from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import PortalSettings, load_settings
from .database import Database
from .security import APITokenGuard
from .web import create_app as create_web_app


def create_application(
    *,
    database: Optional[Database] = None,
    settings: Optional[PortalSettings] = None,
) -> FastAPI:
    """Create the combined ASGI application."""

    settings = settings or load_settings()
    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    quota_policy = settings.quota_policy()

    api_app = create_api_app(
        database=database,
        auth=APITokenGuard.from_tokens(settings.api_tokens),
        quota_policy=quota_policy,
        settings=settings,
    )
    web_app = create_web_app(
        database=database,
        session_secret=settings.session_secret,
        secure_cookies=settings.secure_cookies,
        quota_policy=quota_policy,
        settings=settings,
    )

    app = FastAPI(
        title="Fuel Portal",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database
    app.state.api = api_app
    app.state.web = web_app

    app.mount("/api", api_app)
    app.mount("/", web_app)

    return app


__all__ = ["create_application"]
