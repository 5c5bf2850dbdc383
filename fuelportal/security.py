"""Bearer token guard for the portal JSON API."""
from __future__ import annotations

import secrets
from typing import Iterable, List, Optional, Sequence

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


class APITokenGuard:
    """FastAPI dependency that accepts any of the configured bearer tokens."""

    def __init__(self, tokens: Iterable[str]):
        token_list: List[str] = [token.strip() for token in tokens if token.strip()]
        if not token_list:
            raise ValueError("At least one API token must be provided")
        self._tokens = token_list
        self._bearer = HTTPBearer(auto_error=False)

    @classmethod
    def from_tokens(cls, tokens: Sequence[str]) -> Optional["APITokenGuard"]:
        """Return a guard, or ``None`` when no tokens are configured (open API)."""
        cleaned = [token for token in tokens if token.strip()]
        if not cleaned:
            return None
        return cls(cleaned)

    def dependencies(self) -> list:
        return [Depends(self)]

    async def __call__(self, request: Request) -> None:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        provided = credentials.credentials
        if any(secrets.compare_digest(provided, token) for token in self._tokens):
            return None

        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API token")


__all__ = ["APITokenGuard"]
