"""Diagnosis form endpoints.

Each handler validates its input first, then opens one ledger session for
the duration of a single contract call. The session is released before the
response is sent, whether the call succeeded or not.
"""

from typing import Any, Optional

from fastapi import APIRouter, status

from diagnosis_gateway.api.dependencies import (
    ConnectionManagerDep,
    IdGeneratorDep,
    RequestLogDep,
    RouterDep,
)
from diagnosis_gateway.domain.diagnosis_form import DiagnosisForm, utc_timestamp
from diagnosis_gateway.domain.errors import (
    FormNotFoundError,
    InputValidationError,
    LedgerConnectivityError,
    LedgerError,
)
from diagnosis_gateway.domain.transaction_router import Operation, TransactionRouter
from diagnosis_gateway.infrastructure.connection_manager import ConnectionManager
from diagnosis_gateway.models.responses import (
    AuditTrailResponse,
    DoctorFormsResponse,
    FormCreatedResponse,
    FormListResponse,
    FormResponse,
    FormUpdatedResponse,
    PatientFormsResponse,
    SignatureVerificationResponse,
)

router = APIRouter(prefix="/api/diagnosis", tags=["diagnosis"])

# Contract rejections that mean the requested form is absent.
NOT_FOUND_MARKERS = ("does not exist", "no audit logs found")


async def _execute(
    manager: ConnectionManager,
    tx_router: TransactionRouter,
    log,
    operation: Operation,
    *args: Any,
    form_id: Optional[str] = None,
) -> Any:
    """Run one operation inside its own ledger session.

    When ``form_id`` is given, a ledger rejection saying the form is absent
    is raised as FormNotFoundError naming that id.
    """
    try:
        async with manager.session(log=log) as handle:
            return await tx_router.execute(handle, operation, *args)
    except LedgerConnectivityError:
        raise
    except LedgerError as e:
        if form_id is not None and any(marker in e.message for marker in NOT_FOUND_MARKERS):
            raise FormNotFoundError(form_id) from e
        raise


@router.post("/forms", status_code=status.HTTP_201_CREATED, response_model=FormCreatedResponse)
async def create_form(
    form: DiagnosisForm,
    manager: ConnectionManagerDep,
    tx_router: RouterDep,
    ids: IdGeneratorDep,
    log: RequestLogDep,
) -> FormCreatedResponse:
    """Add a diagnosis form to the ledger.

    A missing ``formId`` is generated; every other field is stored as sent.
    Returns once the transaction has committed.
    """
    form_id = form.form_id or ids.form_id()
    transaction_id = await _execute(
        manager, tx_router, log, Operation.CREATE_FORM, form.for_ledger(form_id)
    )
    log.info(f"Diagnosis form {form_id} committed in transaction {transaction_id}")
    return FormCreatedResponse(form_id=form_id, transaction_id=transaction_id)


@router.get("/forms", response_model=FormListResponse)
async def list_forms(manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep):
    forms = await _execute(manager, tx_router, log, Operation.LIST_FORMS)
    return FormListResponse(count=len(forms), data=forms)


@router.get("/forms/doctor/{doctor_id}", response_model=DoctorFormsResponse)
async def list_forms_by_doctor(
    doctor_id: str, manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep
):
    forms = await _execute(manager, tx_router, log, Operation.LIST_BY_DOCTOR, doctor_id)
    return DoctorFormsResponse(doctor_id=doctor_id, count=len(forms), data=forms)


@router.get("/forms/patient/{patient_id}", response_model=PatientFormsResponse)
async def list_forms_by_patient(
    patient_id: str, manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep
):
    forms = await _execute(manager, tx_router, log, Operation.LIST_BY_PATIENT, patient_id)
    return PatientFormsResponse(patient_id=patient_id, count=len(forms), data=forms)


@router.get("/forms/{form_id}", response_model=FormResponse)
async def get_form(form_id: str, manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep):
    """Read one diagnosis form by id (404 if the ledger has no such form)."""
    form = await _execute(manager, tx_router, log, Operation.READ_FORM, form_id, form_id=form_id)
    return FormResponse(data=form)


@router.get("/forms/{form_id}/audit", response_model=AuditTrailResponse)
async def get_form_audit_trail(
    form_id: str, manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep
):
    """Creation and update audit entries recorded by the contract for a form."""
    entries = await _execute(manager, tx_router, log, Operation.AUDIT_TRAIL, form_id, form_id=form_id)
    return AuditTrailResponse(form_id=form_id, count=len(entries), data=entries)


@router.post("/forms/{form_id}/verify", response_model=SignatureVerificationResponse)
async def verify_form_signature(
    form_id: str, manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep
):
    valid = await _execute(manager, tx_router, log, Operation.VERIFY_SIGNATURE, form_id, form_id=form_id)
    return SignatureVerificationResponse(form_id=form_id, signature_valid=valid, timestamp=utc_timestamp())


@router.put("/forms/{form_id}", response_model=FormUpdatedResponse)
async def update_form(
    form_id: str,
    form: DiagnosisForm,
    manager: ConnectionManagerDep,
    tx_router: RouterDep,
    log: RequestLogDep,
) -> FormUpdatedResponse:
    """Replace a diagnosis form.

    The body is the complete new record; the ledger copy is overwritten
    without being read first. ``formId`` cannot be changed.
    """
    if form.form_id is not None and form.form_id != form_id:
        detail = f"formId: body value {form.form_id} does not match path value {form_id}"
        raise InputValidationError(detail, [detail])

    await _execute(
        manager, tx_router, log, Operation.UPDATE_FORM, form_id, form.for_ledger(form_id),
        form_id=form_id,
    )
    log.info(f"Diagnosis form {form_id} updated")
    return FormUpdatedResponse(form_id=form_id)
