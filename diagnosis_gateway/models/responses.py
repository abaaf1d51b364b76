"""Diagnosis endpoint response models.

Ledger records are returned as the contract stored them, so ``data`` fields
are plain JSON objects rather than re-validated DiagnosisForm instances.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True


class FormCreatedResponse(_Envelope):
    """Response for a committed create.

    Attributes:
        message: Human-readable confirmation
        form_id: Identifier the form was stored under
        transaction_id: Ledger transaction id of the commit
    """
    message: str = "Diagnosis form added successfully"
    form_id: str
    transaction_id: str


class FormUpdatedResponse(_Envelope):
    message: str = "Diagnosis form updated successfully"
    form_id: str


class FormResponse(_Envelope):
    data: dict[str, Any]


class FormListResponse(_Envelope):
    """List of forms in ledger order."""
    count: int
    data: list[dict[str, Any]] = Field(default_factory=list)


class DoctorFormsResponse(FormListResponse):
    doctor_id: str


class PatientFormsResponse(FormListResponse):
    patient_id: str


class AuditTrailResponse(FormListResponse):
    """History entries for one form, oldest first."""
    form_id: str


class SignatureVerificationResponse(_Envelope):
    form_id: str
    signature_valid: bool
    timestamp: str
