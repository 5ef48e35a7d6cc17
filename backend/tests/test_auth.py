"""Tests for API key authentication."""

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from medioca.auth import verify_api_key
from medioca.config import settings


@pytest.fixture
def protected_app():
    """Create a test app with a protected endpoint."""
    app = FastAPI()

    @app.get("/protected")
    async def protected_endpoint(api_key: str = Depends(verify_api_key)):
        return {"message": "success"}

    return app


async def _get(app: FastAPI, headers: dict[str, str] | None = None):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        return await ac.get("/protected", headers=headers or {})


class TestVerifyApiKey:
    """Tests for the X-API-Key dependency."""

    @pytest.mark.asyncio
    async def test_valid_key(self, protected_app):
        response = await _get(protected_app, {"X-API-Key": settings.api_key})
        assert response.status_code == 200
        assert response.json() == {"message": "success"}

    @pytest.mark.asyncio
    async def test_missing_key(self, protected_app):
        response = await _get(protected_app)
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing API key"

    @pytest.mark.asyncio
    async def test_invalid_key(self, protected_app):
        response = await _get(protected_app, {"X-API-Key": settings.api_key + "-wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid API key"
