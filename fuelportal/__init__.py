"""Fuel station, quota and role administration portal."""

from __future__ import annotations

from typing import Any

from .config import resolve_database_path
from .database import Database


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the combined web + API application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


def create_api_app(*args: Any, **kwargs: Any):
    """Factory function for the API-only application."""

    from .api import create_app as _create_api_app

    return _create_api_app(*args, **kwargs)


def create_web_app(*args: Any, **kwargs: Any):
    """Factory function for the portal pages only."""

    from .web import create_app as _create_web_app

    return _create_web_app(*args, **kwargs)


__all__ = [
    "Database",
    "resolve_database_path",
    "create_application",
    "create_api_app",
    "create_web_app",
]
