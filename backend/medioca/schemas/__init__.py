"""Pydantic schemas."""

from medioca.schemas.consultation import (
    AIProvider,
    ConnectionStatus,
    ConsultationResponse,
    ConsultationSession,
    ContextualRecommendations,
    DiagnosisSet,
    Recommendation,
    RecommendationType,
    SessionCreate,
    SessionListResponse,
    SessionStats,
    SessionStatus,
    SessionSummary,
    SymptomsAdd,
)
from medioca.schemas.patient import PatientContext, Vitals

__all__ = [
    "PatientContext",
    "Vitals",
    # Consultation schemas
    "AIProvider",
    "ConnectionStatus",
    "ConsultationResponse",
    "ConsultationSession",
    "ContextualRecommendations",
    "DiagnosisSet",
    "Recommendation",
    "RecommendationType",
    "SessionCreate",
    "SessionListResponse",
    "SessionStats",
    "SessionStatus",
    "SessionSummary",
    "SymptomsAdd",
]
