"""Application wiring for the consultation orchestrator."""

from fastapi import Request

from medioca.config import Settings
from medioca.services.ai_client import AIClient
from medioca.services.orchestrator import ConsultationOrchestrator
from medioca.services.session_store import SessionStore


def build_orchestrator(config: Settings) -> ConsultationOrchestrator:
    """Construct the orchestrator and its collaborators from settings."""
    ai_client = AIClient(
        api_key=config.openai_api_key,
        model=config.ai_model,
        max_output_tokens=config.ai_max_output_tokens,
    )
    store = SessionStore(
        max_sessions=config.session_max_sessions,
        ttl_seconds=config.session_ttl_seconds,
    )
    return ConsultationOrchestrator(
        ai_client,
        store=store,
        timeout_seconds=config.ai_timeout_seconds,
    )


def get_orchestrator(request: Request) -> ConsultationOrchestrator:
    """FastAPI dependency returning the orchestrator built at startup."""
    return request.app.state.orchestrator
