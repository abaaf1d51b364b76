"""Transaction routing for diagnosis operations.

This module owns the canonical operation table: which contract function each
gateway operation invokes, whether it is a state-changing submit or a
read-only evaluate, and how its arguments and results are encoded.

The router is independent of HTTP. The request path and the benchmark
workload both build their TransactionRequests here.

Architecture:
    - Requests are immutable once built
    - Update is a full-record replace; the router never reads before writing
    - List results keep the ledger's ordering
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from diagnosis_gateway.domain.errors import LedgerConnectivityError, LedgerPayloadError
from diagnosis_gateway.domain.ports import TransactionMode, TransactionRequest

if TYPE_CHECKING:
    from diagnosis_gateway.infrastructure.connection_manager import ConnectionHandle

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Gateway operations exposed over HTTP."""
    CREATE_FORM = "create_form"
    READ_FORM = "read_form"
    LIST_FORMS = "list_forms"
    LIST_BY_DOCTOR = "list_by_doctor"
    LIST_BY_PATIENT = "list_by_patient"
    VERIFY_SIGNATURE = "verify_signature"
    UPDATE_FORM = "update_form"
    AUDIT_TRAIL = "audit_trail"


class ResultShape(str, Enum):
    """Domain shape an operation's raw result decodes into."""
    TRANSACTION_ID = "transaction_id"
    RECORD = "record"
    RECORD_LIST = "record_list"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class OperationSpec:
    function_name: str
    mode: TransactionMode
    arity: int
    json_argument: Optional[int]
    shape: ResultShape


OPERATION_TABLE: dict[Operation, OperationSpec] = {
    Operation.CREATE_FORM: OperationSpec(
        "AddDiagnosisForm", TransactionMode.SUBMIT, 1, 0, ResultShape.TRANSACTION_ID),
    Operation.READ_FORM: OperationSpec(
        "GetDiagnosisForm", TransactionMode.EVALUATE, 1, None, ResultShape.RECORD),
    Operation.LIST_FORMS: OperationSpec(
        "ListDiagnosisForms", TransactionMode.EVALUATE, 0, None, ResultShape.RECORD_LIST),
    Operation.LIST_BY_DOCTOR: OperationSpec(
        "GetFormsByDoctor", TransactionMode.EVALUATE, 1, None, ResultShape.RECORD_LIST),
    Operation.LIST_BY_PATIENT: OperationSpec(
        "GetFormsByPatient", TransactionMode.EVALUATE, 1, None, ResultShape.RECORD_LIST),
    Operation.VERIFY_SIGNATURE: OperationSpec(
        "VerifyFormSignature", TransactionMode.EVALUATE, 1, None, ResultShape.BOOLEAN),
    Operation.UPDATE_FORM: OperationSpec(
        "UpdateDiagnosisForm", TransactionMode.SUBMIT, 2, 1, ResultShape.TRANSACTION_ID),
    Operation.AUDIT_TRAIL: OperationSpec(
        "GetFormAuditLog", TransactionMode.EVALUATE, 1, None, ResultShape.RECORD_LIST),
}


def encode_json_argument(value: Any) -> str:
    """Encode a structured argument the way the contract expects it (compact JSON)."""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_result(raw: bytes, shape: ResultShape) -> Any:
    """Decode a raw contract result into its domain shape.

    Parameters:
        raw: Bytes returned by the contract
        shape: Expected domain shape

    Returns:
        Transaction id string, record dict, list of records, or bool

    Raises:
        LedgerPayloadError: If the payload does not decode into the expected shape
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise LedgerPayloadError(f"Ledger returned non UTF-8 payload: {e}")

    if shape is ResultShape.TRANSACTION_ID:
        return text
    if shape is ResultShape.BOOLEAN:
        return text.strip() == "true"

    try:
        value = json.loads(text) if text.strip() else None
    except json.JSONDecodeError as e:
        raise LedgerPayloadError(f"Ledger returned invalid JSON: {e}")

    if shape is ResultShape.RECORD_LIST:
        # Empty contract slices serialize as null.
        if value is None:
            return []
        if not isinstance(value, list):
            raise LedgerPayloadError(f"Expected a list of records, got {type(value).__name__}")
        return value

    if not isinstance(value, dict):
        raise LedgerPayloadError(f"Expected a record, got {type(value).__name__}")
    return value


class TransactionRouter:
    """Maps gateway operations onto contract invocations.

    Parameters:
        channel: Default channel for built requests
        contract_id: Default contract for built requests
        timeout_seconds: Upper bound on a single dispatch; exceeding it is
            reported as a connectivity failure
    """

    def __init__(self, channel: str, contract_id: str, timeout_seconds: Optional[float] = None):
        self.channel = channel
        self.contract_id = contract_id
        self.timeout_seconds = timeout_seconds

    def build(
        self,
        operation: Operation,
        *args: Any,
        channel: Optional[str] = None,
        contract_id: Optional[str] = None,
    ) -> TransactionRequest:
        """Build the TransactionRequest for an operation.

        Parameters:
            operation: Operation to perform
            *args: Operation arguments in table order (e.g. ``form_id, form``
                for an update); structured arguments are JSON-encoded
            channel: Channel override
            contract_id: Contract override

        Returns:
            Immutable TransactionRequest

        Raises:
            ValueError: If the argument count does not match the operation
        """
        spec = OPERATION_TABLE[operation]
        if len(args) != spec.arity:
            raise ValueError(
                f"{operation.value} takes {spec.arity} argument(s), got {len(args)}"
            )

        encoded = tuple(
            encode_json_argument(arg) if index == spec.json_argument else str(arg)
            for index, arg in enumerate(args)
        )
        return TransactionRequest(
            function_name=spec.function_name,
            arguments=encoded,
            mode=spec.mode,
            channel=channel or self.channel,
            contract_id=contract_id or self.contract_id,
        )

    async def dispatch(self, handle: "ConnectionHandle", request: TransactionRequest) -> bytes:
        """Send a request through a live connection.

        Submit blocks until the network reports the transaction committed;
        evaluate returns one peer's current state without writing.

        Parameters:
            handle: Connection acquired for the current request
            request: Request to send

        Returns:
            Raw contract result

        Raises:
            LedgerError: If the ledger rejects the transaction
            LedgerConnectivityError: If the network is unreachable or the
                call exceeds the configured timeout
            ValueError: If the request targets a different channel or contract
                than the handle
        """
        log = handle.log
        if (request.channel, request.contract_id) != (handle.channel_name, handle.contract_id):
            raise ValueError(
                f"Request for {request.channel}/{request.contract_id} cannot be sent through "
                f"a connection to {handle.channel_name}/{handle.contract_id}"
            )
        log.debug(f"{request.mode.value} {request.function_name} on {request.channel}/{request.contract_id}")

        if request.mode is TransactionMode.SUBMIT:
            call = handle.contract.submit_transaction(request.function_name, *request.arguments)
        else:
            call = handle.contract.evaluate_transaction(request.function_name, *request.arguments)

        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(call, timeout=self.timeout_seconds)
            return await call
        except asyncio.TimeoutError:
            log.warning(f"{request.function_name} timed out after {self.timeout_seconds}s")
            raise LedgerConnectivityError(
                f"Failed to connect to blockchain network: {request.function_name} "
                f"timed out after {self.timeout_seconds}s"
            )

    async def execute(self, handle: "ConnectionHandle", operation: Operation, *args: Any) -> Any:
        """Build, dispatch and decode an operation against the handle's contract.

        Returns:
            Decoded result in the operation's domain shape
        """
        request = self.build(
            operation, *args, channel=handle.channel_name, contract_id=handle.contract_id
        )
        raw = await self.dispatch(handle, request)
        return decode_result(raw, OPERATION_TABLE[operation].shape)
