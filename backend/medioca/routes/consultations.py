"""Consultation API routes.

Exposes the orchestrator's session operations over HTTP, plus a Server-Sent
Events stream of the notifications emitted for a session.
"""

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from medioca.auth import verify_api_key
from medioca.dependencies import get_orchestrator
from medioca.schemas.consultation import (
    ConnectionStatus,
    ConsultationResponse,
    ConsultationSession,
    ContextualRecommendations,
    DiagnosisSet,
    SessionCreate,
    SessionListResponse,
    SessionStats,
    SessionSummary,
    SymptomsAdd,
)
from medioca.services.events import EventType, SessionEvent
from medioca.services.orchestrator import (
    ConsultationError,
    ConsultationOrchestrator,
    PreconditionError,
    SessionClosedError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consultations", tags=["consultations"])


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map orchestrator precondition errors to HTTP errors."""
    try:
        yield
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    except (SessionClosedError, PreconditionError) as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    except ConsultationError as e:
        logger.error("Consultation operation failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )


@router.post("", response_model=ConsultationSession, status_code=status.HTTP_201_CREATED)
async def create_consultation(
    session_data: SessionCreate,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConsultationSession:
    """Create a consultation session for a patient snapshot.

    Runs the initial AI assessment before returning, so the created session
    already carries one clinical_guideline recommendation.
    """
    with _translate_errors():
        session_id = await orchestrator.create_session(
            session_data.patient,
            provider=session_data.ai_provider,
            doctor_id=session_data.doctor_id,
        )
    session = orchestrator.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session was evicted during creation",
        )
    return session


@router.get("", response_model=SessionListResponse)
async def list_consultations(
    active: bool | None = Query(None, description="Only active (true) or closed (false) sessions"),
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> SessionListResponse:
    """List sessions held in memory, least recently used first."""
    sessions = orchestrator.get_all_sessions()
    if active is not None:
        sessions = [s for s in sessions if s.is_active == active]
    return SessionListResponse(items=sessions, total=len(sessions))


@router.get("/status", response_model=ConnectionStatus)
async def consultation_status(
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConnectionStatus:
    """Report AI connectivity and session counts."""
    return ConnectionStatus(
        connected=orchestrator.get_connection_status(),
        providers=orchestrator.get_ai_provider_status(),
        active_sessions=orchestrator.get_active_session_count(),
        total_sessions=len(orchestrator.get_all_sessions()),
    )


@router.get("/{session_id}", response_model=ConsultationSession)
async def get_consultation(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConsultationSession:
    """Get a single session by ID.

    Raises:
        HTTPException: 404 if session not found.
    """
    session = orchestrator.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return session


@router.get("/{session_id}/stats", response_model=SessionStats)
async def get_consultation_stats(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> SessionStats:
    """Get duration, counts, and confidence for a session."""
    stats = orchestrator.get_session_stats(session_id)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return stats


@router.post("/{session_id}/symptoms", response_model=ConsultationResponse)
async def add_symptoms(
    session_id: str,
    symptoms_data: SymptomsAdd,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConsultationResponse:
    """Report symptoms and get an AI symptom analysis.

    AI failures return 200 with success=false and fallback data.

    Raises:
        HTTPException: 404 if session not found, 409 if closed or no symptoms.
    """
    with _translate_errors():
        return await orchestrator.add_symptoms(session_id, symptoms_data.symptoms)


@router.put("/{session_id}/diagnosis", response_model=ConsultationResponse)
async def set_diagnosis(
    session_id: str,
    diagnosis_data: DiagnosisSet,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConsultationResponse:
    """Set the working diagnosis and get an AI validation."""
    with _translate_errors():
        return await orchestrator.set_diagnosis(session_id, diagnosis_data.diagnosis)


@router.post("/{session_id}/prescription", response_model=ConsultationResponse)
async def generate_prescription(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ConsultationResponse:
    """Generate an AI prescription plan for the working diagnosis.

    Raises:
        HTTPException: 404 if session not found, 409 if closed or no diagnosis set.
    """
    with _translate_errors():
        return await orchestrator.generate_prescription(session_id)


@router.get("/{session_id}/recommendations", response_model=ContextualRecommendations)
async def get_contextual_recommendations(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> ContextualRecommendations:
    """Rule-derived alerts, interactions, and monitoring guidance."""
    with _translate_errors():
        return orchestrator.get_contextual_recommendations(session_id)


@router.post("/{session_id}/close", response_model=SessionSummary)
async def close_consultation(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> SessionSummary:
    """Close a session and return its summary."""
    with _translate_errors():
        return await orchestrator.close_session(session_id)


@router.get("/{session_id}/events")
async def stream_consultation_events(
    session_id: str,
    orchestrator: ConsultationOrchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> StreamingResponse:
    """Stream the session's notifications as Server-Sent Events.

    Each event is sent as `event: <type>` with the SessionEvent JSON as data.
    The stream ends after session_closed or when the client disconnects.

    Raises:
        HTTPException: 404 if session not found.
    """
    session = orchestrator.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    event_queue: asyncio.Queue[SessionEvent] = asyncio.Queue()

    def enqueue(event: SessionEvent) -> None:
        if event.session_id == session_id:
            event_queue.put_nowait(event)

    orchestrator.notifier.subscribe_all(enqueue)

    async def event_generator():
        """Yield SSE events from the queue."""
        try:
            while True:
                event = await event_queue.get()
                yield f"event: {event.type.value}\ndata: {event.model_dump_json()}\n\n"
                if event.type == EventType.SESSION_CLOSED:
                    break
        except asyncio.CancelledError:
            # Client disconnected
            pass
        finally:
            orchestrator.notifier.unsubscribe_all(enqueue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
