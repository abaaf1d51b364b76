"""Diagnosis form schema definitions.

This module defines the DiagnosisForm record exchanged with the ledger and
the validation rules applied at the HTTP boundary. A record that fails these
rules is rejected before any ledger connection is opened.

Security Impact:
    - Unknown fields are rejected so callers cannot smuggle data onto the ledger
    - Required sub-objects must be fully populated; partial records never reach
      the contract
    - Type safety enforced at runtime via Pydantic V2

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Wire names are camelCase (``formId``, ``icdCodes``) to match the contract's
      JSON encoding; Python attributes are snake_case
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


def _parse_iso8601(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class Diagnosis(_WireModel):
    """Primary and secondary diagnoses with their ICD codes."""

    primary: NonEmptyStr = Field(..., description="Primary diagnosis")
    secondary: Optional[list[str]] = Field(None, description="Secondary diagnoses")
    icd_codes: list[str] = Field(..., description="ICD-10 codes")


class Medication(_WireModel):
    """A prescribed medication."""

    name: NonEmptyStr
    dosage: NonEmptyStr
    frequency: NonEmptyStr
    duration: NonEmptyStr


class Treatment(_WireModel):
    """Treatment plan: medications and recommendations."""

    medications: list[Medication] = Field(..., description="Prescribed medications")
    recommendations: list[str] = Field(..., description="Care recommendations")


class FollowUp(_WireModel):
    """Follow-up instructions for the patient."""

    next_appointment: Optional[str] = Field(None, description="Next appointment (ISO-8601)")
    urgent_contact: bool = Field(..., description="Whether the patient must be contacted urgently")
    instructions: NonEmptyStr = Field(..., description="Follow-up instructions")
    referrals: Optional[list[str]] = Field(None, description="Specialist referrals")

    @field_validator("next_appointment")
    @classmethod
    def validate_next_appointment(cls, v: Optional[str]) -> Optional[str]:
        """Require an ISO-8601 date when an appointment is given."""
        if v is None:
            return v
        try:
            _parse_iso8601(v)
        except ValueError:
            raise ValueError("nextAppointment must be a valid ISO-8601 date")
        return v


class DiagnosisForm(_WireModel):
    """Medical diagnosis record stored on the ledger.

    The ``form_id`` is caller-supplied (or generated by the gateway on create)
    and is immutable once the form exists. The record is stored exactly as
    submitted; the gateway never fills in ``timestamp``.

    Parameters:
        form_id: Unique form identifier
        doctor_id: Identifier of the diagnosing doctor
        doctor_name: Doctor display name
        patient_id: Identifier of the patient
        patient_name: Patient display name
        timestamp: Time of diagnosis (ISO-8601)
        diagnosis: Diagnosis details
        symptoms: Reported symptoms
        physical_exam: Free-form physical examination findings
        lab_results: Free-form laboratory results
        treatment: Treatment plan
        follow_up: Follow-up plan
    """

    form_id: Optional[NonEmptyStr] = Field(None, description="Unique form identifier")
    doctor_id: NonEmptyStr = Field(..., description="Doctor identifier")
    doctor_name: Optional[NonEmptyStr] = Field(None, description="Doctor name")
    patient_id: NonEmptyStr = Field(..., description="Patient identifier")
    patient_name: Optional[NonEmptyStr] = Field(None, description="Patient name")
    timestamp: Optional[str] = Field(None, description="Time of diagnosis (ISO-8601)")
    diagnosis: Diagnosis
    symptoms: list[str]
    physical_exam: Optional[dict[str, Any]] = None
    lab_results: Optional[dict[str, Any]] = None
    treatment: Treatment
    follow_up: FollowUp

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: Optional[str]) -> Optional[str]:
        """Require an ISO-8601 timestamp when one is given."""
        if v is None:
            return v
        try:
            _parse_iso8601(v)
        except ValueError:
            raise ValueError("timestamp must be a valid ISO-8601 date")
        return v

    def for_ledger(self, form_id: str) -> dict[str, Any]:
        """Return the wire representation submitted to the contract.

        Parameters:
            form_id: Identifier the record is stored under

        Returns:
            camelCase dictionary with absent optional fields omitted
        """
        record = self.model_copy(update={"form_id": form_id})
        return record.model_dump(by_alias=True, exclude_none=True)
