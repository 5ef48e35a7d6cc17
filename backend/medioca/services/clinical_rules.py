"""Static clinical rules applied locally around AI output.

Small lookup tables for drug cost estimates, allergy cross-reactivity,
drug-drug interactions, red-flag symptoms, and history-based
contraindications, plus the prescription enhancement pass that applies them
to every medication the model returns.

Table values are demo-grade and substring-matched. Not for clinical use.
"""

from __future__ import annotations

from itertools import permutations
from typing import Any

from medioca.schemas.consultation import ConsultationSession, ContextualRecommendations
from medioca.schemas.patient import PatientContext
from medioca.services.response_parser import normalize_confidence

DEFAULT_COST_ESTIMATE = "$20-40/month"
DEFAULT_PRESCRIPTION_CONFIDENCE = 0.8

# Lowercase drug name -> cost estimate
COST_ESTIMATES: dict[str, str] = {
    "lisinopril": "$15-25/month",
    "metformin": "$10-20/month",
    "amoxicillin": "$8-15/course",
    "amlodipine": "$10-15/month",
    "atorvastatin": "$15-30/month",
    "azithromycin": "$10-20/course",
    "ibuprofen": "$5-10/month",
    "omeprazole": "$10-25/month",
}

# Allergy group -> substrings that identify drugs in that group
ALLERGY_CROSS_REACTIVITY: dict[str, tuple[str, ...]] = {
    "penicillin": ("cillin",),
    "sulfa": ("sulfa",),
    "cephalosporin": ("cef", "ceph"),
    "nsaid": ("ibuprofen", "naproxen", "diclofenac", "ketorolac", "celecoxib", "aspirin"),
    "aspirin": ("aspirin", "salicylate"),
    "codeine": ("codeine",),
}

# (current medication, prescribed drug, warning) - both matched by substring
DRUG_INTERACTIONS: tuple[tuple[str, str, str], ...] = (
    ("warfarin", "aspirin", "Increased bleeding risk with warfarin"),
    ("warfarin", "ibuprofen", "Increased bleeding risk with warfarin"),
    ("warfarin", "naproxen", "Increased bleeding risk with warfarin"),
    ("lisinopril", "ibuprofen", "NSAIDs blunt the antihypertensive effect of lisinopril"),
    ("lisinopril", "potassium", "Risk of hyperkalemia with lisinopril"),
    ("metformin", "contrast", "Risk of lactic acidosis with metformin"),
    ("simvastatin", "clarithromycin", "Increased myopathy risk with simvastatin"),
    ("sertraline", "tramadol", "Serotonin syndrome risk with sertraline"),
)

CRITICAL_SYMPTOMS: tuple[str, ...] = ("chest pain", "difficulty breathing", "severe bleeding")
SEVERE_SYMPTOMS: tuple[str, ...] = ("high fever", "severe pain", "vomiting")

# Symptom substring -> red flag
RED_FLAGS: dict[str, str] = {
    "chest pain": "Chest pain requires immediate cardiac evaluation",
    "difficulty breathing": "Respiratory distress - consider emergency intervention",
    "severe bleeding": "Active severe bleeding - urgent hemostasis required",
}

# Medical history substring -> contraindication
HISTORY_CONTRAINDICATIONS: dict[str, str] = {
    "kidney disease": "Avoid nephrotoxic medications",
    "liver disease": "Avoid or dose-adjust hepatically metabolized medications",
    "pregnan": "Avoid teratogenic medications",
    "peptic ulcer": "Avoid NSAIDs",
}

# Current medication substring -> monitoring requirement
MEDICATION_MONITORING: dict[str, str] = {
    "warfarin": "Check INR in 3-5 days after any medication change",
    "metformin": "Monitor renal function and vitamin B12 periodically",
    "lisinopril": "Monitor potassium and creatinine",
    "atorvastatin": "Monitor liver function if symptomatic",
}

DEFAULT_FOLLOW_UP = [
    "Schedule follow-up in 1-2 weeks",
    "Monitor for side effects",
    "Report any adverse effects",
]


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def as_str_list(value: Any) -> list[str]:
    """Coerce a model-supplied field into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def estimate_cost(drug_name: str) -> str:
    return COST_ESTIMATES.get(drug_name.strip().lower(), DEFAULT_COST_ESTIMATE)


def allergy_warnings(drug_name: str, allergies: list[str]) -> list[str]:
    """Warn when a drug name matches a known allergy or its cross-reactive group.

    Args:
        drug_name: Medication name as returned by the model.
        allergies: Patient allergy list.

    Returns:
        One warning per matching allergy, naming that allergy.
    """
    name = drug_name.lower()
    warnings: list[str] = []
    for allergy in allergies:
        term = allergy.strip().lower()
        if not term:
            continue
        keywords = {term}
        for group, substrings in ALLERGY_CROSS_REACTIVITY.items():
            if group in term:
                keywords.update(substrings)
        if any(keyword in name for keyword in keywords):
            warnings.append(f"ALLERGY ALERT: Patient allergic to {allergy.strip()}")
    return warnings


def interaction_warnings(drug_name: str, current_medications: list[str]) -> list[str]:
    """Check a prescribed drug against the patient's current medications."""
    name = drug_name.lower()
    current = [m.lower() for m in current_medications]
    warnings: list[str] = []
    for existing, prescribed, message in DRUG_INTERACTIONS:
        if prescribed in name and any(existing in med for med in current):
            warnings.append(f"INTERACTION: {message}")
    return warnings


def determine_severity(symptoms: list[str]) -> str:
    """Classify symptom severity as mild, moderate, severe, or critical."""
    lowered = [s.lower() for s in symptoms]
    if any(cs in s for s in lowered for cs in CRITICAL_SYMPTOMS):
        return "critical"
    if any(ss in s for s in lowered for ss in SEVERE_SYMPTOMS):
        return "severe"
    if len(symptoms) > 3:
        return "moderate"
    return "mild"


def identify_red_flags(symptoms: list[str]) -> list[str]:
    lowered = [s.lower() for s in symptoms]
    return [flag for key, flag in RED_FLAGS.items() if any(key in s for s in lowered)]


def contraindications(context: PatientContext) -> list[str]:
    history = [h.lower() for h in context.medical_history]
    return [
        note for key, note in HISTORY_CONTRAINDICATIONS.items()
        if any(key in h for h in history)
    ]


def normalize_medication(med: Any) -> dict[str, Any]:
    """Fill missing medication fields with neutral defaults."""
    if isinstance(med, str):
        med = {"name": med}
    elif not isinstance(med, dict):
        med = {}
    name = str(med.get("name") or "Unknown medication")
    return {
        **med,
        "name": name,
        "generic_name": med.get("generic_name") or name,
        "dosage": med.get("dosage") or "As prescribed",
        "frequency": med.get("frequency") or "As directed",
        "duration": med.get("duration") or "As prescribed",
        "route": med.get("route") or "Oral",
        "instructions": med.get("instructions") or "Take as directed",
        "warnings": as_str_list(med.get("warnings")),
        "interactions": as_str_list(med.get("interactions")),
    }


def enhance_prescription(
    payload: dict[str, Any],
    context: PatientContext,
    symptoms: list[str],
) -> dict[str, Any]:
    """Apply local rules to a prescription payload.

    Each medication gets a cost estimate, allergy warnings, and interaction
    warnings. Session-level red flags and contraindications are merged into
    the model's own lists, and confidence is normalized to 0-1.

    Args:
        payload: Parsed model output (or fallback) containing "medications".
        context: Patient snapshot from the session.
        symptoms: Symptoms accumulated in the session.

    Returns:
        A new payload dict; the input is not modified.
    """
    medications: list[dict[str, Any]] = []
    raw_meds = payload.get("medications")
    for raw in raw_meds if isinstance(raw_meds, list) else []:
        med = normalize_medication(raw)
        med["cost_estimate"] = estimate_cost(med["name"])
        med["warnings"] = _dedupe(med["warnings"] + allergy_warnings(med["name"], context.allergies))
        med["interactions"] = _dedupe(
            med["interactions"] + interaction_warnings(med["name"], context.current_medications)
        )
        medications.append(med)

    per_med_interactions = [i for med in medications for i in med["interactions"] if i.startswith("INTERACTION:")]

    return {
        **payload,
        "medications": medications,
        "confidence": normalize_confidence(
            payload.get("confidence", payload.get("confidence_score")),
            DEFAULT_PRESCRIPTION_CONFIDENCE,
        ),
        "alternative_treatments": as_str_list(
            payload.get("alternative_treatments") or payload.get("alternatives")
        ),
        "drug_interactions": _dedupe(as_str_list(payload.get("drug_interactions")) + per_med_interactions),
        "contraindications": _dedupe(as_str_list(payload.get("contraindications")) + contraindications(context)),
        "red_flags": _dedupe(as_str_list(payload.get("red_flags")) + identify_red_flags(symptoms)),
        "follow_up_recommendations": as_str_list(payload.get("follow_up_recommendations")) or list(DEFAULT_FOLLOW_UP),
    }


def contextual_recommendations(session: ConsultationSession) -> ContextualRecommendations:
    """Derive rule-based guidance from the session's patient context and symptoms."""
    context = session.context
    vitals = context.vitals
    history = [h.lower() for h in context.medical_history]
    meds = [m.lower() for m in context.current_medications]

    alerts: list[str] = []
    if any("hypertension" in h for h in history):
        alerts.append("Patient has history of hypertension - monitor BP")
    alerts.extend(f"Allergy to {a} noted in records" for a in context.allergies)
    if vitals.oxygen_saturation is not None and vitals.oxygen_saturation < 92:
        alerts.append(f"Low oxygen saturation ({vitals.oxygen_saturation}%)")
    if vitals.temperature is not None and vitals.temperature >= 100.4:
        alerts.append(f"Febrile ({vitals.temperature}°F)")
    if vitals.heart_rate is not None and vitals.heart_rate > 100:
        alerts.append(f"Tachycardia ({vitals.heart_rate} bpm)")
    alerts.extend(identify_red_flags(session.symptoms))

    interactions: list[str] = []
    for first, second in permutations(meds, 2):
        for existing, prescribed, message in DRUG_INTERACTIONS:
            if existing in first and prescribed in second:
                interactions.append(f"{first.title()} + {second.title()}: {message}")

    adjustments: list[str] = []
    if context.age >= 65:
        adjustments.append(f"Consider reduced starting doses for patient aged {context.age}")
    elif context.age < 18:
        adjustments.append("Use weight-based pediatric dosing")
    if any("kidney" in h or "renal" in h for h in history):
        adjustments.append("Adjust renally cleared medications for kidney function")

    monitoring = [
        note for key, note in MEDICATION_MONITORING.items()
        if any(key in m for m in meds)
    ] or ["Reassess symptoms at follow-up"]

    return ContextualRecommendations(
        clinical_alerts=_dedupe(alerts),
        drug_interactions=_dedupe(interactions),
        dosage_adjustments=adjustments,
        monitoring_requirements=monitoring,
        patient_education=[
            "Take medication with food to reduce GI upset",
            "Avoid alcohol while on this medication",
        ],
    )
