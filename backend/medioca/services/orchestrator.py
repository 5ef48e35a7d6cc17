"""Consultation session orchestrator.

Owns the session store and event notifier and exposes the public
consultation operations. Each AI-assisted operation mutates the session,
builds a prompt from the accumulated state, races the AI call against a
timeout, parses the result, appends a recommendation, recomputes the session
confidence, and emits an event.

AI degradation (timeout, provider failure, no API key) never raises out of
an operation: a canned fallback payload is attached instead and the
response is marked unsuccessful. Structural misuse (unknown session, closed
session, missing diagnosis) raises a ConsultationError subclass.

Example:
    orchestrator = ConsultationOrchestrator(AIClient(api_key=key))
    session_id = await orchestrator.create_session(patient)
    await orchestrator.add_symptoms(session_id, ["fever", "cough"])
    await orchestrator.set_diagnosis(session_id, "bronchitis")
    response = await orchestrator.generate_prescription(session_id)
    summary = await orchestrator.close_session(session_id)
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from medioca.schemas.consultation import (
    AIProvider,
    ConsultationResponse,
    ConsultationSession,
    ContextualRecommendations,
    Recommendation,
    RecommendationType,
    SessionStats,
    SessionStatus,
    SessionSummary,
)
from medioca.schemas.patient import PatientContext
from medioca.services import fallbacks
from medioca.services.ai_client import AIClient, AIClientError
from medioca.services.clinical_rules import (
    as_str_list,
    contextual_recommendations,
    determine_severity,
    enhance_prescription,
)
from medioca.services.events import EventCallback, EventNotifier, EventType
from medioca.services.prompts import (
    build_diagnosis_validation_prompt,
    build_initial_assessment_prompt,
    build_messages,
    build_prescription_prompt,
    build_symptom_analysis_prompt,
    build_system_prompt,
)
from medioca.services.response_parser import ParseResult, normalize_confidence, parse_ai_response
from medioca.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Timeout raced against every AI call
DEFAULT_TIMEOUT_SECONDS = 15.0

# Confidence used when the model omits one
DEFAULT_INITIAL_CONFIDENCE = 0.9
DEFAULT_ANALYSIS_CONFIDENCE = 0.8

CLOSE_FOLLOW_UP = [
    "Schedule follow-up in 2 weeks",
    "Provide patient education materials",
    "Send prescription to pharmacy",
]


class ConsultationError(Exception):
    """Base class for consultation precondition violations."""

    pass


class SessionNotFoundError(ConsultationError):
    """Raised when a session id is unknown or has been evicted."""

    pass


class SessionClosedError(ConsultationError):
    """Raised when an operation targets a closed session."""

    pass


class PreconditionError(ConsultationError):
    """Raised when an operation is called out of order or with empty input."""

    pass


class ConsultationOrchestrator:
    """Public consultation operations over an in-memory session store.

    Constructed once at application wiring time and injected into callers.
    """

    def __init__(
        self,
        ai_client: AIClient,
        store: SessionStore | None = None,
        notifier: EventNotifier | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        default_provider: AIProvider = AIProvider.OPENAI,
    ):
        """Initialize the orchestrator.

        Args:
            ai_client: Adapter used for every AI call.
            store: Session store. Defaults to a store with default bounds.
            notifier: Event notifier. Defaults to a fresh registry.
            timeout_seconds: Timeout raced against each AI call.
            default_provider: Provider tag for sessions that don't specify one.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._ai_client = ai_client
        self._store = store if store is not None else SessionStore()
        self._notifier = notifier if notifier is not None else EventNotifier()
        self._timeout_seconds = timeout_seconds
        self._default_provider = default_provider
        # Timed-out AI calls left to finish in the background
        self._abandoned: set[asyncio.Future] = set()

        if ai_client.is_connected:
            logger.info("Consultation orchestrator initialized with model %s", ai_client.model)
        else:
            logger.warning("Consultation orchestrator running in fallback-only mode")

    @property
    def notifier(self) -> EventNotifier:
        return self._notifier

    # ── Events ────────────────────────────────────────────────────────────────

    def on(self, event_type: EventType, callback: EventCallback) -> None:
        self._notifier.on(event_type, callback)

    def off(self, event_type: EventType, callback: EventCallback) -> None:
        self._notifier.off(event_type, callback)

    # ── Lookups ───────────────────────────────────────────────────────────────

    def get_session(self, session_id: str) -> ConsultationSession | None:
        return self._store.get(session_id)

    def get_all_sessions(self) -> list[ConsultationSession]:
        return self._store.values()

    def get_active_sessions(self) -> list[ConsultationSession]:
        return self._store.active()

    def get_active_session_count(self) -> int:
        return len(self._store.active())

    def get_connection_status(self) -> bool:
        return self._ai_client.is_connected

    def get_ai_provider_status(self) -> dict[str, bool]:
        return self._ai_client.provider_status()

    def get_session_stats(self, session_id: str) -> SessionStats | None:
        """Statistics for a session, or None if it is unknown."""
        session = self._store.get(session_id)
        if session is None:
            return None
        return SessionStats(
            id=session.id,
            duration_ms=_duration_ms(session),
            symptoms_analyzed=len(session.symptoms),
            recommendations_generated=len(session.recommendations),
            confidence=session.confidence,
            ai_provider=session.ai_provider,
            is_active=session.is_active,
        )

    def get_contextual_recommendations(self, session_id: str) -> ContextualRecommendations:
        """Rule-derived alerts and guidance for a session.

        Raises:
            SessionNotFoundError: If the session is unknown.
        """
        return contextual_recommendations(self._require_session(session_id))

    # ── Operations ────────────────────────────────────────────────────────────

    async def create_session(
        self,
        context: PatientContext,
        provider: AIProvider | None = None,
        doctor_id: str = "current-doctor",
    ) -> str:
        """Create an active session and run the initial AI assessment.

        Args:
            context: Patient snapshot; copied into the session.
            provider: AI provider tag. Defaults to the orchestrator default.
            doctor_id: Clinician running the consultation.

        Returns:
            The new session id.

        Raises:
            ConsultationError: If the session could not be created.
        """
        try:
            session = ConsultationSession(
                patient_id=context.id,
                doctor_id=doctor_id,
                context=context.model_copy(deep=True),
                ai_provider=provider or self._default_provider,
            )
            self._store.add(session)
        except Exception as e:
            logger.exception("Failed to create consultation session for patient %s", context.id)
            raise ConsultationError("Failed to create consultation session") from e

        logger.info("Created consultation session %s for patient %s", session.id, context.id)
        self._notifier.emit(EventType.SESSION_CREATED, session.id, {"patient_id": context.id})

        result, error = await self._run_ai(session, build_initial_assessment_prompt())
        if result is None:
            payload, degraded = fallbacks.initial_assessment(), True
        else:
            payload, degraded = result.value, False

        recommendation = self._append_recommendation(
            session,
            RecommendationType.CLINICAL_GUIDELINE,
            payload,
            default_confidence=DEFAULT_INITIAL_CONFIDENCE,
            degraded=degraded,
        )
        if degraded:
            self._notifier.emit(EventType.SESSION_ERROR, session.id, {"error": error})
        else:
            self._notifier.emit(
                EventType.SESSION_INITIALIZED,
                session.id,
                {"assessment": recommendation.content, "confidence": recommendation.confidence},
            )
        return session.id

    async def add_symptoms(self, session_id: str, symptoms: list[str]) -> ConsultationResponse:
        """Record symptoms and request a differential analysis.

        Raises:
            SessionNotFoundError: If the session is unknown.
            SessionClosedError: If the session is closed.
            PreconditionError: If no non-blank symptom is given.
        """
        session = self._require_active(session_id)
        cleaned = [s.strip() for s in symptoms if s and s.strip()]
        if not cleaned:
            raise PreconditionError("At least one symptom is required")

        session.symptoms.extend(cleaned)
        self._store.touch(session)

        result, _error = await self._run_ai(
            session, build_symptom_analysis_prompt(cleaned, session.symptoms)
        )
        self._ensure_still_active(session)
        if result is None:
            payload, degraded = fallbacks.symptom_analysis(cleaned), True
        else:
            payload, degraded = result.value, False

        recommendation = self._append_recommendation(
            session,
            RecommendationType.SYMPTOM_ANALYSIS,
            payload,
            default_confidence=DEFAULT_ANALYSIS_CONFIDENCE,
            degraded=degraded,
        )
        self._notifier.emit(
            EventType.SYMPTOMS_ADDED,
            session.id,
            {
                "symptoms": cleaned,
                "total_symptoms": len(session.symptoms),
                "analysis": recommendation.content,
                "degraded": degraded,
            },
        )
        return _to_response(recommendation, "Failed to analyze symptoms with AI")

    async def set_diagnosis(self, session_id: str, diagnosis: str) -> ConsultationResponse:
        """Set the working diagnosis and request validation.

        Raises:
            SessionNotFoundError: If the session is unknown.
            SessionClosedError: If the session is closed.
            PreconditionError: If the diagnosis is blank.
        """
        session = self._require_active(session_id)
        diagnosis = (diagnosis or "").strip()
        if not diagnosis:
            raise PreconditionError("Diagnosis cannot be empty")

        session.current_diagnosis = diagnosis
        self._store.touch(session)

        result, _error = await self._run_ai(
            session, build_diagnosis_validation_prompt(diagnosis, session.symptoms)
        )
        self._ensure_still_active(session)
        if result is None:
            payload, degraded = fallbacks.diagnosis_validation(diagnosis), True
        else:
            payload, degraded = result.value, False

        recommendation = self._append_recommendation(
            session,
            RecommendationType.DIAGNOSIS_VALIDATION,
            payload,
            default_confidence=DEFAULT_ANALYSIS_CONFIDENCE,
            degraded=degraded,
        )
        self._notifier.emit(
            EventType.DIAGNOSIS_SET,
            session.id,
            {"diagnosis": diagnosis, "validation": recommendation.content, "degraded": degraded},
        )
        return _to_response(recommendation, "Failed to validate diagnosis with AI")

    async def generate_prescription(self, session_id: str) -> ConsultationResponse:
        """Generate a prescription plan for the working diagnosis.

        The model output is run through the local enhancement pass (cost
        estimates, allergy warnings, drug interactions) before it is stored.

        Raises:
            SessionNotFoundError: If the session is unknown.
            SessionClosedError: If the session is closed.
            PreconditionError: If no diagnosis has been set.
            ConsultationError: If the prescription could not be assembled.
        """
        session = self._require_active(session_id)
        diagnosis = (session.current_diagnosis or "").strip()
        if not diagnosis:
            raise PreconditionError("Diagnosis required for prescription generation")

        severity = determine_severity(session.symptoms)
        result, _error = await self._run_ai(
            session,
            build_prescription_prompt(session, severity),
            required_key="medications",
        )
        self._ensure_still_active(session)

        error_message = "Failed to generate prescription with AI"
        if result is None:
            payload, degraded = fallbacks.prescription(diagnosis), True
        elif result.is_fallback or not isinstance(result.value.get("medications"), list):
            logger.warning("AI response for session %s contained no medication list", session.id)
            payload = {**fallbacks.prescription(diagnosis), "analysis": result.value.get("analysis", "")}
            degraded = True
            error_message = "AI response did not contain a prescription"
        else:
            payload, degraded = result.value, False

        try:
            enhanced = enhance_prescription(payload, session.context, session.symptoms)
        except Exception as e:
            logger.exception("Prescription enhancement failed for session %s", session.id)
            raise ConsultationError("Failed to generate prescription") from e

        medication_warnings = [w for med in enhanced["medications"] for w in med["warnings"]]
        recommendation = self._append_recommendation(
            session,
            RecommendationType.PRESCRIPTION,
            enhanced,
            default_confidence=DEFAULT_ANALYSIS_CONFIDENCE,
            degraded=degraded,
            warnings=enhanced["red_flags"] + enhanced["drug_interactions"] + medication_warnings,
        )
        self._notifier.emit(
            EventType.PRESCRIPTION_GENERATED,
            session.id,
            {
                "medication_count": len(enhanced["medications"]),
                "confidence": recommendation.confidence,
                "prescription": recommendation.content,
                "degraded": degraded,
            },
        )
        return _to_response(recommendation, error_message)

    async def close_session(self, session_id: str) -> SessionSummary:
        """Close a session and emit its summary.

        The record stays in the store until it is evicted.

        Raises:
            SessionNotFoundError: If the session is unknown.
            SessionClosedError: If the session is already closed.
        """
        session = self._require_active(session_id)

        session.status = SessionStatus.CLOSED
        session.closed_at = datetime.now(timezone.utc)
        duration_ms = _duration_ms(session)

        diagnosis = session.current_diagnosis
        summary = SessionSummary(
            session_id=session.id,
            patient_id=session.patient_id,
            duration_ms=duration_ms,
            symptoms_addressed=list(session.symptoms),
            diagnosis=diagnosis,
            recommendation_count=len(session.recommendations),
            confidence=session.confidence,
            summary=(
                f"Session completed. Addressed {len(session.symptoms)} symptoms, "
                f"diagnosis: {diagnosis or 'not set'}"
            ),
            follow_up=list(CLOSE_FOLLOW_UP),
        )
        logger.info(
            "Closed session %s after %.1fs with %d recommendations",
            session.id, duration_ms / 1000, len(session.recommendations),
        )
        self._notifier.emit(EventType.SESSION_CLOSED, session.id, summary.model_dump(mode="json"))
        return summary

    async def shutdown(self) -> None:
        """Cancel abandoned AI calls and close the AI client."""
        for task in list(self._abandoned):
            task.cancel()
        if self._abandoned:
            await asyncio.gather(*self._abandoned, return_exceptions=True)
        await self._ai_client.close()

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_session(self, session_id: str) -> ConsultationSession:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def _require_active(self, session_id: str) -> ConsultationSession:
        session = self._require_session(session_id)
        if not session.is_active:
            raise SessionClosedError(f"Session {session_id} is closed")
        return session

    def _ensure_still_active(self, session: ConsultationSession) -> None:
        if session.id not in self._store:
            raise SessionNotFoundError(f"Session {session.id} was evicted while an AI call was in flight")
        if not session.is_active:
            raise SessionClosedError(f"Session {session.id} was closed while an AI call was in flight")

    async def _run_ai(
        self,
        session: ConsultationSession,
        user_prompt: str,
        required_key: str | None = None,
    ) -> tuple[ParseResult | None, str | None]:
        """Race one AI call against the timeout and parse the result.

        Returns:
            (parse result, None) on success, or (None, reason) when the call
            timed out or failed and the caller should use its fallback.
        """
        messages = build_messages(build_system_prompt(session.context), user_prompt)
        task = asyncio.ensure_future(self._ai_client.complete(messages, session.ai_provider))

        t0 = time.perf_counter()
        try:
            completion = await asyncio.wait_for(asyncio.shield(task), timeout=self._timeout_seconds)
        except asyncio.CancelledError:
            # Caller went away; the call itself keeps running
            self._abandon(task)
            raise
        except asyncio.TimeoutError:
            self._abandon(task)
            reason = f"AI call timed out after {self._timeout_seconds:g}s"
            logger.warning("Session %s: %s, using fallback", session.id, reason)
            return None, reason
        except AIClientError as e:
            logger.warning("Session %s: %s, using fallback", session.id, e)
            return None, str(e)
        except Exception as e:
            logger.exception("Session %s: unexpected AI adapter failure, using fallback", session.id)
            return None, f"AI call failed: {e}"

        logger.info(
            "Session %s: AI call completed in %.1fs (%s)",
            session.id, time.perf_counter() - t0, completion.usage,
        )
        try:
            return parse_ai_response(completion.content, required_key=required_key), None
        except Exception as e:
            logger.exception("Session %s: failed to parse AI response, using fallback", session.id)
            return None, f"AI response could not be parsed: {e}"

    def _abandon(self, task: asyncio.Future) -> None:
        """Let a timed-out or orphaned call run to completion and discard its result."""
        self._abandoned.add(task)
        task.add_done_callback(self._on_abandoned_done)

    def _on_abandoned_done(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info("Abandoned AI call finished with error: %s", exc)
        else:
            logger.info("Abandoned AI call finished; result discarded")

    def _append_recommendation(
        self,
        session: ConsultationSession,
        rec_type: RecommendationType,
        payload: dict[str, Any],
        default_confidence: float,
        degraded: bool,
        warnings: list[str] | None = None,
    ) -> Recommendation:
        confidence = normalize_confidence(payload.get("confidence"), default_confidence)
        content = {**payload, "confidence": confidence}
        reasoning = content.get("clinical_reasoning") or content.get("reasoning")
        recommendation = Recommendation(
            type=rec_type,
            content=content,
            confidence=confidence,
            ai_provider=session.ai_provider,
            reasoning=str(reasoning) if reasoning else None,
            warnings=warnings if warnings is not None else as_str_list(content.get("red_flags")),
            degraded=degraded,
        )
        session.recommendations.append(recommendation)
        session.confidence = _mean_confidence(session.recommendations)
        self._store.touch(session)
        return recommendation


def _mean_confidence(recommendations: list[Recommendation]) -> float:
    if not recommendations:
        return 0.0
    return round(sum(r.confidence for r in recommendations) / len(recommendations), 2)


def _duration_ms(session: ConsultationSession) -> int:
    end = session.closed_at or datetime.now(timezone.utc)
    return int((end - session.started_at).total_seconds() * 1000)


def _to_response(recommendation: Recommendation, error_message: str) -> ConsultationResponse:
    return ConsultationResponse(
        success=not recommendation.degraded,
        data=recommendation.content,
        error=error_message if recommendation.degraded else None,
        confidence=recommendation.confidence,
        reasoning=recommendation.reasoning,
        warnings=recommendation.warnings,
    )
