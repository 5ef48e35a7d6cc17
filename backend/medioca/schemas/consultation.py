"""Pydantic schemas for consultation sessions.

Covers the in-memory session record, the recommendations attached to it,
the response wrapper returned by AI-assisted operations, and the request
bodies accepted by the consultation API.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from medioca.schemas.patient import PatientContext

# Validation limits
MAX_SYMPTOMS_PER_REQUEST = 50
MAX_TEXT_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# === Enums ===


class AIProvider(str, Enum):
    """AI provider tags accepted by the consultation layer."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class RecommendationType(str, Enum):
    """Kinds of AI-assisted output attached to a session."""

    SYMPTOM_ANALYSIS = "symptom_analysis"
    DIAGNOSIS_VALIDATION = "diagnosis_validation"
    PRESCRIPTION = "prescription"
    DRUG_INTERACTION = "drug_interaction"
    CLINICAL_GUIDELINE = "clinical_guideline"


class SessionStatus(str, Enum):
    """Session lifecycle states. A closed session is never reopened."""

    ACTIVE = "active"
    CLOSED = "closed"


# === Session record ===


class Recommendation(BaseModel):
    """One AI-assisted output. Created once, never mutated."""

    id: str = Field(default_factory=_new_id)
    type: RecommendationType
    content: dict[str, Any] = Field(description="Parsed model output or fallback payload")
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_utcnow)
    ai_provider: AIProvider
    reasoning: str | None = None
    warnings: list[str] = Field(default_factory=list)
    degraded: bool = Field(
        default=False,
        description="True when the content is a canned fallback rather than model output",
    )


class ConsultationSession(BaseModel):
    """AI-assistance state for one clinician-patient consultation."""

    id: str = Field(default_factory=_new_id)
    patient_id: str
    doctor_id: str = "current-doctor"
    started_at: datetime = Field(default_factory=_utcnow)
    last_active_at: datetime = Field(default_factory=_utcnow)
    closed_at: datetime | None = None
    symptoms: list[str] = Field(default_factory=list)
    current_diagnosis: str | None = None
    recommendations: list[Recommendation] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    context: PatientContext
    ai_provider: AIProvider = AIProvider.OPENAI
    confidence: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


# === Operation results ===


class ConsultationResponse(BaseModel):
    """Result wrapper for AI-assisted operations.

    success is False when the AI step degraded to a fallback payload; data is
    still populated so callers always have something to render.
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    confidence: float | None = None
    reasoning: str | None = None
    warnings: list[str] = Field(default_factory=list)


class SessionSummary(BaseModel):
    """Summary produced when a session is closed."""

    session_id: str
    patient_id: str
    duration_ms: int
    symptoms_addressed: list[str]
    diagnosis: str | None
    recommendation_count: int
    confidence: float
    summary: str
    follow_up: list[str]


class SessionStats(BaseModel):
    """Lightweight statistics for dashboards."""

    id: str
    duration_ms: int
    symptoms_analyzed: int
    recommendations_generated: int
    confidence: float
    ai_provider: AIProvider
    is_active: bool


class ContextualRecommendations(BaseModel):
    """Static, rule-derived guidance for the current session."""

    clinical_alerts: list[str] = Field(default_factory=list)
    drug_interactions: list[str] = Field(default_factory=list)
    dosage_adjustments: list[str] = Field(default_factory=list)
    monitoring_requirements: list[str] = Field(default_factory=list)
    patient_education: list[str] = Field(default_factory=list)


class ConnectionStatus(BaseModel):
    """AI connectivity and session counts."""

    connected: bool
    providers: dict[str, bool]
    active_sessions: int
    total_sessions: int


# === API Request Schemas ===


class SessionCreate(BaseModel):
    """Schema for creating a consultation session."""

    patient: PatientContext
    ai_provider: AIProvider | None = None
    doctor_id: str = Field(default="current-doctor", max_length=200)


class SymptomsAdd(BaseModel):
    """Schema for reporting new symptoms."""

    symptoms: list[str] = Field(min_length=1, max_length=MAX_SYMPTOMS_PER_REQUEST)


class DiagnosisSet(BaseModel):
    """Schema for setting the working diagnosis."""

    diagnosis: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)


class SessionListResponse(BaseModel):
    """List of sessions currently held in memory."""

    items: list[ConsultationSession]
    total: int
