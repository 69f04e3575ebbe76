"""Middleware: optional API key check for the /api/v1 routes."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from carscan.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)
_header_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


def _key_matches(candidate: str | None, expected: str) -> bool:
    return candidate is not None and secrets.compare_digest(candidate.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    header_key: Annotated[str | None, Depends(_header_scheme)],
) -> None:
    """Check the caller's key against CARSCAN_API_KEY.

    With no key configured every request passes. Otherwise the key must
    arrive as 'Authorization: Bearer <key>' or as an 'X-API-Key' header.
    The upload page sends the key typed into its key field as 'X-API-Key'.
    """
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    bearer_key = credentials.credentials if credentials is not None else None
    if _key_matches(bearer_key, settings.api_key) or _key_matches(header_key, settings.api_key):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
