"""Patient context snapshot schemas.

The consultation layer never reads or writes the patient system-of-record.
Callers pass a snapshot at session creation and the orchestrator keeps its
own copy for the life of the session.
"""

from pydantic import BaseModel, Field


class Vitals(BaseModel):
    """Most recent vital signs recorded for the patient."""

    blood_pressure: str = Field(default="Not recorded", description="Systolic/diastolic, e.g. '120/80'")
    heart_rate: int | None = Field(default=None, ge=0, le=400, description="Beats per minute")
    temperature: float | None = Field(default=None, description="Body temperature in °F")
    oxygen_saturation: int | None = Field(default=None, ge=0, le=100, description="SpO2 percentage")


class PatientContext(BaseModel):
    """Read-only patient snapshot copied into a consultation session."""

    id: str = Field(min_length=1, description="Patient identifier in the system-of-record")
    name: str = Field(default="Unknown patient", max_length=200)
    age: int = Field(ge=0, le=150)
    gender: str = Field(default="unknown", max_length=50)
    medical_history: list[str] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    vitals: Vitals = Field(default_factory=Vitals)
