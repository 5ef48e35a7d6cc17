"""Canned payloads substituted when an AI call times out or fails.

Each operation has its own shape so the UI can render the same fields it
would for a real model response. Confidences are kept low.
"""

from typing import Any

INITIAL_ASSESSMENT_CONFIDENCE = 0.3
SYMPTOM_ANALYSIS_CONFIDENCE = 0.3
DIAGNOSIS_VALIDATION_CONFIDENCE = 0.3
PRESCRIPTION_CONFIDENCE = 0.1


def initial_assessment() -> dict[str, Any]:
    return {
        "analysis": "AI initial assessment unavailable - review patient context manually",
        "recommendations": [
            {
                "category": "clinical_review",
                "action": "Review history, medications, allergies, and vitals",
                "priority": "medium",
            }
        ],
        "red_flags": [],
        "confidence": INITIAL_ASSESSMENT_CONFIDENCE,
        "clinical_reasoning": "AI system unavailable - clinical judgment required",
    }


def symptom_analysis(symptoms: list[str]) -> dict[str, Any]:
    return {
        "analysis": f"Clinical analysis required for symptoms: {', '.join(symptoms)}",
        "differential_diagnoses": [
            {
                "condition": "Manual clinical evaluation needed",
                "probability": 0.5,
                "reasoning": "AI analysis unavailable - clinical assessment required",
                "urgency": "medium",
            }
        ],
        "recommendations": [
            {"category": "diagnostic", "action": "Comprehensive clinical evaluation", "priority": "high"},
            {"category": "monitoring", "action": "Monitor symptom progression", "priority": "medium"},
        ],
        "red_flags": ["AI analysis failed - manual review required"],
        "confidence": SYMPTOM_ANALYSIS_CONFIDENCE,
        "clinical_reasoning": "AI system unavailable - clinical judgment required",
        "next_steps": ["Manual symptom assessment", "Clinical examination", "Consider diagnostic workup"],
    }


def diagnosis_validation(diagnosis: str) -> dict[str, Any]:
    return {
        "analysis": f"Manual validation required for diagnosis: {diagnosis}",
        "validation": "Clinical confirmation needed",
        "supporting_evidence": ["AI validation unavailable"],
        "recommendations": [
            {"category": "diagnostic", "action": "Clinical confirmation of diagnosis", "priority": "high"}
        ],
        "red_flags": [],
        "confidence": DIAGNOSIS_VALIDATION_CONFIDENCE,
        "clinical_reasoning": "AI validation failed - clinical review required",
    }


def prescription(diagnosis: str) -> dict[str, Any]:
    return {
        "medications": [
            {
                "name": "Clinical prescription required",
                "dosage": "To be determined by physician",
                "instructions": "AI prescription generation failed - manual prescribing required",
                "duration": "As clinically indicated",
                "monitoring": "Standard clinical monitoring",
            }
        ],
        "drug_interactions": ["Manual drug interaction check required"],
        "contraindications": ["Review patient allergies and contraindications manually"],
        "recommendations": [
            {"category": "prescription", "action": "Manual prescription generation required", "priority": "high"}
        ],
        "confidence": PRESCRIPTION_CONFIDENCE,
        "clinical_reasoning": (
            f"AI prescription generation failed for diagnosis '{diagnosis}' - clinical prescribing required"
        ),
    }
