"""Shared API key authentication for the consultation API."""

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from medioca.config import settings

api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str | None = Depends(api_key_scheme)) -> str:
    """Validate the X-API-Key header against the configured API key.

    Returns:
        The validated key.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )

    if not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key
