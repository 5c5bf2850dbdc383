"""HTTP client for the fuel portal JSON API."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class PortalClientError(RuntimeError):
    """Raised when the portal API answers with a non-success status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PortalClient:
    """Small synchronous wrapper around the ``/api`` endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers: Dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "PortalClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get_json(self, path: str, failure_message: str) -> Any:
        response = self._client.get(path)
        if not response.is_success:
            raise PortalClientError(failure_message, status_code=response.status_code)
        return response.json()

    def fetch_fuel_quotas(self) -> Any:
        return self._get_json("/api/fuel-quota", "Failed to fetch fuel quotas")

    def fetch_fuel_stations(self) -> Any:
        return self._get_json("/api/fuel-stations", "Failed to fetch fuel stations")

    def register_fuel_station(self, payload: Dict[str, object]) -> Dict[str, Any]:
        """Submit a registration; returns the JSON body for both success and field errors."""
        response = self._client.post("/api/fuel-stations/register", json=payload)
        if response.status_code not in (201, 422):
            raise PortalClientError("Failed to register fuel station", status_code=response.status_code)
        return response.json()


__all__ = ["PortalClient", "PortalClientError"]
