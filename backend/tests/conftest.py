"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- Patient context snapshots
- Mocked OpenAI clients and AI adapters
- Orchestrator instances with isolated stores
- HTTP client for API testing
"""

import asyncio
import json
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from medioca.auth import verify_api_key
from medioca.dependencies import get_orchestrator
from medioca.main import app
from medioca.schemas import PatientContext, Vitals
from medioca.services.ai_client import AIClient
from medioca.services.events import EventNotifier
from medioca.services.orchestrator import ConsultationOrchestrator
from medioca.services.session_store import SessionStore

TEST_API_KEY = "test-api-key"


async def stub_verify_api_key() -> str:
    """Stub auth dependency that accepts every request."""
    return TEST_API_KEY


# =============================================================================
# Domain Fixtures
# =============================================================================


@pytest.fixture
def patient_context() -> PatientContext:
    """Sample patient with a penicillin allergy."""
    return PatientContext(
        id="p1",
        name="Jane Doe",
        age=40,
        gender="female",
        medical_history=["asthma"],
        current_medications=["albuterol"],
        allergies=["penicillin"],
        vitals=Vitals(
            blood_pressure="120/80",
            heart_rate=88,
            temperature=100.9,
            oxygen_saturation=97,
        ),
    )


@pytest.fixture
def analysis_json() -> str:
    """Well-formed symptom analysis response."""
    return json.dumps({
        "analysis": "Likely viral upper respiratory infection",
        "differential_diagnoses": [
            {"condition": "Acute bronchitis", "probability": 0.6, "reasoning": "Cough with fever"},
        ],
        "red_flags": [],
        "confidence": 0.85,
        "clinical_reasoning": "Fever and productive cough without hypoxia",
    })


@pytest.fixture
def prescription_json() -> str:
    """Prescription response containing a penicillin-class drug."""
    return json.dumps({
        "medications": [
            {"name": "Amoxicillin", "dosage": "500mg", "frequency": "Three times daily"},
            {"name": "Guaifenesin", "dosage": "400mg"},
        ],
        "drug_interactions": [],
        "confidence": 80,
        "clinical_reasoning": "Empiric therapy for bacterial bronchitis",
    })


# =============================================================================
# AI Client Fixtures
# =============================================================================


def make_openai_response(text: str, input_tokens: int = 100, output_tokens: int = 50) -> MagicMock:
    """Create a mock Responses API result."""
    response = MagicMock()
    response.output_text = text
    response.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
    return response


@pytest.fixture
def make_openai_client() -> Callable[..., AsyncMock]:
    """Factory for mock AsyncOpenAI clients.

    Each positional text is returned by one responses.create call, in order.
    An Exception instance in the list is raised instead.
    """

    def factory(*texts: str | Exception) -> AsyncMock:
        mock_client = AsyncMock()
        effects = [t if isinstance(t, Exception) else make_openai_response(t) for t in texts]
        mock_client.responses.create = AsyncMock(side_effect=effects)
        return mock_client

    return factory


@pytest.fixture
def hanging_openai_client() -> AsyncMock:
    """Mock AsyncOpenAI client whose calls never complete."""
    never = asyncio.Event()

    async def hang(**kwargs):
        await never.wait()

    mock_client = AsyncMock()
    mock_client.responses.create = AsyncMock(side_effect=hang)
    return mock_client


@pytest.fixture
def make_orchestrator() -> Callable[..., ConsultationOrchestrator]:
    """Factory for orchestrators over a given mock OpenAI client."""

    def factory(openai_client=None, timeout_seconds: float = 5.0, **store_kwargs) -> ConsultationOrchestrator:
        ai_client = AIClient(client=openai_client) if openai_client is not None else AIClient(api_key="")
        return ConsultationOrchestrator(
            ai_client,
            store=SessionStore(**store_kwargs),
            notifier=EventNotifier(),
            timeout_seconds=timeout_seconds,
        )

    return factory


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
def api_orchestrator(make_orchestrator) -> ConsultationOrchestrator:
    """Fallback-only orchestrator used by API tests unless replaced."""
    return make_orchestrator()


@pytest_asyncio.fixture
async def client(api_orchestrator):
    """Async test client for the FastAPI app.

    Overrides the orchestrator and auth dependencies so each test gets an
    isolated session store.
    """
    app.dependency_overrides[get_orchestrator] = lambda: api_orchestrator
    app.dependency_overrides[verify_api_key] = stub_verify_api_key

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.pop(get_orchestrator, None)
    app.dependency_overrides.pop(verify_api_key, None)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authentication headers for API requests."""
    return {"X-API-Key": TEST_API_KEY}
