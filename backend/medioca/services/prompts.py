"""Prompt builders for consultation AI calls.

Every call sends the same system prompt (patient context, clinical
guidelines, response format) followed by one operation-specific user prompt.
"""

from medioca.schemas.consultation import ConsultationSession
from medioca.schemas.patient import PatientContext

_PERSONA = (
    "You are an advanced medical AI assistant providing clinical decision "
    "support to licensed healthcare professionals during a consultation."
)

_CLINICAL_GUIDELINES = (
    "## Clinical Guidelines\n"
    "1. Analyze symptoms in context of the patient's complete medical history\n"
    "2. Provide evidence-based differential diagnoses with confidence levels\n"
    "3. Suggest appropriate diagnostic tests and procedures\n"
    "4. Recommend treatment plans considering current medications and allergies\n"
    "5. Flag critical warnings, drug interactions, and contraindications\n"
    "6. Prioritize patient safety and evidence-based medicine\n"
    "7. Provide clear clinical reasoning for all recommendations\n"
    "8. Consider age-appropriate treatments and dosing"
)

_RESPONSE_FORMAT = (
    "## Response Format\n"
    "Always respond with a single JSON object containing:\n"
    "{\n"
    '  "analysis": "comprehensive symptom analysis",\n'
    '  "differential_diagnoses": [\n'
    '    {"condition": "condition name", "probability": 0.85, '
    '"reasoning": "clinical reasoning", "urgency": "low|medium|high|critical"}\n'
    "  ],\n"
    '  "recommendations": [\n'
    '    {"category": "diagnostic|therapeutic|monitoring", '
    '"action": "specific recommendation", "priority": "low|medium|high|urgent"}\n'
    "  ],\n"
    '  "drug_interactions": ["interaction warnings if applicable"],\n'
    '  "contraindications": ["contraindication warnings if applicable"],\n'
    '  "red_flags": ["critical warnings requiring immediate attention"],\n'
    '  "confidence": 0.85,\n'
    '  "clinical_reasoning": "detailed explanation of analysis",\n'
    '  "next_steps": ["prioritized next actions"]\n'
    "}\n"
    "confidence is a number between 0 and 1."
)

_DISCLAIMER = (
    "IMPORTANT: You are assisting licensed healthcare professionals. AI "
    "recommendations supplement but never replace clinical judgment."
)

_PRESCRIPTION_FORMAT = (
    "Respond with a single JSON object:\n"
    "{\n"
    '  "medications": [\n'
    '    {"name": "Medication name", "generic_name": "Generic name", "dosage": "Dosage", '
    '"frequency": "How often", "duration": "How long", "route": "Route", '
    '"instructions": "Special instructions", "warnings": ["..."], "interactions": ["..."], '
    '"monitoring": "Monitoring parameters"}\n'
    "  ],\n"
    '  "alternative_treatments": ["..."],\n'
    '  "drug_interactions": ["..."],\n'
    '  "contraindications": ["..."],\n'
    '  "patient_education": ["..."],\n'
    '  "follow_up": "Follow-up schedule",\n'
    '  "red_flags": ["..."],\n'
    '  "confidence": 0.85,\n'
    '  "clinical_reasoning": "Medical reasoning for the recommendation"\n'
    "}\n"
    "Return ONLY valid JSON."
)


def _join_or(items: list[str], empty: str) -> str:
    return ", ".join(items) if items else empty


def _format_vital(value: object, unit: str) -> str:
    return f"{value}{unit}" if value is not None else "Not recorded"


def _build_patient_section(context: PatientContext) -> str:
    vitals = context.vitals
    return (
        "## Patient Context\n"
        f"- Name: {context.name}\n"
        f"- Age: {context.age}\n"
        f"- Gender: {context.gender}\n"
        f"- Medical History: {_join_or(context.medical_history, 'None reported')}\n"
        f"- Current Medications: {_join_or(context.current_medications, 'None')}\n"
        f"- Known Allergies: {_join_or(context.allergies, 'None reported')}\n"
        "- Current Vitals:\n"
        f"  * Blood Pressure: {vitals.blood_pressure}\n"
        f"  * Heart Rate: {_format_vital(vitals.heart_rate, ' bpm')}\n"
        f"  * Temperature: {_format_vital(vitals.temperature, '°F')}\n"
        f"  * Oxygen Saturation: {_format_vital(vitals.oxygen_saturation, '%')}"
    )


def build_system_prompt(context: PatientContext) -> str:
    """Build the system prompt shared by every call in a session.

    Args:
        context: Patient snapshot held by the session.

    Returns:
        System prompt embedding patient context, guidelines, and output format.
    """
    return "\n\n".join([
        _PERSONA,
        _build_patient_section(context),
        _CLINICAL_GUIDELINES,
        _RESPONSE_FORMAT,
        _DISCLAIMER,
    ])


def build_initial_assessment_prompt() -> str:
    return "Patient session initialized. Provide an initial assessment and recommendations."


def build_symptom_analysis_prompt(new_symptoms: list[str], all_symptoms: list[str]) -> str:
    """Ask for a differential-diagnosis style analysis of accumulated symptoms."""
    return (
        "SYMPTOM ANALYSIS REQUEST\n"
        "\n"
        f"New symptoms reported: {', '.join(new_symptoms)}\n"
        f"All current symptoms: {', '.join(all_symptoms)}\n"
        "\n"
        "Please provide a comprehensive analysis including:\n"
        "1. Symptom correlation and clustering\n"
        "2. Differential diagnoses with probabilities\n"
        "3. Clinical urgency assessment\n"
        "4. Recommended diagnostic workup\n"
        "5. Any red flags requiring immediate attention\n"
        "\n"
        "Consider the patient's medical history, current medications, and vital signs."
    )


def build_diagnosis_validation_prompt(diagnosis: str, symptoms: list[str]) -> str:
    """Ask the model to validate a proposed diagnosis against the symptoms."""
    return (
        "DIAGNOSIS VALIDATION REQUEST\n"
        "\n"
        f"Proposed diagnosis: {diagnosis}\n"
        f"Patient symptoms: {_join_or(symptoms, 'None reported')}\n"
        "\n"
        "Please validate this diagnosis by providing:\n"
        "1. Diagnostic accuracy assessment based on symptoms\n"
        "2. Supporting evidence from patient history and presentation\n"
        "3. Alternative diagnoses to consider\n"
        "4. Recommended confirmatory tests\n"
        "5. Treatment plan recommendations\n"
        "6. Prognosis and complications to monitor\n"
        "7. Patient counseling points"
    )


def build_prescription_prompt(session: ConsultationSession, severity: str) -> str:
    """Ask for a prescription plan for the session's working diagnosis."""
    context = session.context
    return (
        "PRESCRIPTION GENERATION REQUEST\n"
        "\n"
        "Clinical Context:\n"
        f"- Diagnosis: {session.current_diagnosis}\n"
        f"- Symptoms: {_join_or(session.symptoms, 'None reported')}\n"
        f"- Severity: {severity}\n"
        f"- Current medications: {_join_or(context.current_medications, 'None')}\n"
        f"- Known allergies: {_join_or(context.allergies, 'None')}\n"
        f"- Patient age: {context.age}\n"
        f"- Patient gender: {context.gender}\n"
        "\n"
        "Generate a comprehensive prescription plan including:\n"
        "1. Primary medications with specific dosages, routes, and frequencies\n"
        "2. Alternative medications for allergies/contraindications\n"
        "3. Drug interaction analysis\n"
        "4. Contraindication warnings\n"
        "5. Patient education and counseling points\n"
        "6. Monitoring parameters and follow-up schedule\n"
        "7. Duration of treatment and tapering instructions if applicable\n"
        "\n"
        f"{_PRESCRIPTION_FORMAT}"
    )


def build_messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
