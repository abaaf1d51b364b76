"""Tests for operation routing, argument encoding and result decoding."""

import json

import pytest

from diagnosis_gateway.domain.errors import LedgerConnectivityError, LedgerPayloadError
from diagnosis_gateway.domain.ports import TransactionMode
from diagnosis_gateway.domain.transaction_router import (
    OPERATION_TABLE,
    Operation,
    ResultShape,
    TransactionRouter,
    decode_result,
    encode_json_argument,
)


@pytest.fixture
def router():
    return TransactionRouter(channel="medical-channel", contract_id="medical-diagnosis-chaincode")


class TestOperationTable:
    @pytest.mark.parametrize("operation, function_name, mode", [
        (Operation.CREATE_FORM, "AddDiagnosisForm", TransactionMode.SUBMIT),
        (Operation.READ_FORM, "GetDiagnosisForm", TransactionMode.EVALUATE),
        (Operation.LIST_FORMS, "ListDiagnosisForms", TransactionMode.EVALUATE),
        (Operation.LIST_BY_DOCTOR, "GetFormsByDoctor", TransactionMode.EVALUATE),
        (Operation.LIST_BY_PATIENT, "GetFormsByPatient", TransactionMode.EVALUATE),
        (Operation.VERIFY_SIGNATURE, "VerifyFormSignature", TransactionMode.EVALUATE),
        (Operation.UPDATE_FORM, "UpdateDiagnosisForm", TransactionMode.SUBMIT),
        (Operation.AUDIT_TRAIL, "GetFormAuditLog", TransactionMode.EVALUATE),
    ])
    def test_function_and_mode(self, operation, function_name, mode):
        spec = OPERATION_TABLE[operation]
        assert spec.function_name == function_name
        assert spec.mode is mode

    def test_only_writes_submit(self):
        submitting = {op for op, spec in OPERATION_TABLE.items() if spec.mode is TransactionMode.SUBMIT}
        assert submitting == {Operation.CREATE_FORM, Operation.UPDATE_FORM}


class TestBuild:
    def test_create_encodes_form_as_compact_json(self, router):
        request = router.build(Operation.CREATE_FORM, {"formId": "DIAG-1", "symptoms": ["a", "b"]})

        assert request.function_name == "AddDiagnosisForm"
        assert request.arguments == ('{"formId":"DIAG-1","symptoms":["a","b"]}',)
        assert request.channel == "medical-channel"
        assert request.contract_id == "medical-diagnosis-chaincode"
        assert not request.read_only

    def test_update_keeps_id_then_json(self, router):
        request = router.build(Operation.UPDATE_FORM, "DIAG-1", {"formId": "DIAG-1"})
        assert request.arguments == ("DIAG-1", '{"formId":"DIAG-1"}')

    def test_list_takes_no_arguments(self, router):
        request = router.build(Operation.LIST_FORMS)
        assert request.arguments == ()
        assert request.read_only

    def test_channel_and_contract_overrides(self, router):
        request = router.build(
            Operation.READ_FORM, "DIAG-1", channel="medimidi-channel", contract_id="medical-diagnosis"
        )
        assert (request.channel, request.contract_id) == ("medimidi-channel", "medical-diagnosis")

    def test_wrong_argument_count_is_rejected(self, router):
        with pytest.raises(ValueError, match="takes 1 argument"):
            router.build(Operation.READ_FORM)

    def test_requests_are_immutable(self, router):
        request = router.build(Operation.READ_FORM, "DIAG-1")
        with pytest.raises(AttributeError):
            request.function_name = "DeleteEverything"

    def test_string_argument_is_passed_through(self):
        assert encode_json_argument('{"already":"json"}') == '{"already":"json"}'


class TestDecodeResult:
    def test_null_list_decodes_to_empty(self):
        assert decode_result(b"null", ResultShape.RECORD_LIST) == []

    def test_list_order_is_preserved(self):
        raw = json.dumps([{"formId": "B"}, {"formId": "A"}]).encode()
        assert [f["formId"] for f in decode_result(raw, ResultShape.RECORD_LIST)] == ["B", "A"]

    @pytest.mark.parametrize("raw, expected", [(b"true", True), (b"false", False), (b"TRUE", False)])
    def test_boolean(self, raw, expected):
        assert decode_result(raw, ResultShape.BOOLEAN) is expected

    def test_transaction_id_is_text(self):
        assert decode_result(b"tx-0001", ResultShape.TRANSACTION_ID) == "tx-0001"

    def test_record(self):
        assert decode_result(b'{"formId":"DIAG-1"}', ResultShape.RECORD) == {"formId": "DIAG-1"}

    @pytest.mark.parametrize("raw, shape", [
        (b"{not json", ResultShape.RECORD),
        (b"[1, 2]", ResultShape.RECORD),
        (b'{"a": 1}', ResultShape.RECORD_LIST),
        (b"\xff\xfe", ResultShape.RECORD),
    ])
    def test_undecodable_payload_is_a_ledger_payload_error(self, raw, shape):
        with pytest.raises(LedgerPayloadError):
            decode_result(raw, shape)


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_round_trip_through_fake_ledger(
        self, connection_manager, transaction_router, fake_ledger
    ):
        async with connection_manager.session() as handle:
            tx_id = await transaction_router.execute(
                handle, Operation.CREATE_FORM, {"formId": "DIAG-1", "doctorId": "DR1", "patientId": "P1"}
            )
            form = await transaction_router.execute(handle, Operation.READ_FORM, "DIAG-1")
            empty = await transaction_router.execute(handle, Operation.LIST_BY_DOCTOR, "nobody")

        assert tx_id == "tx-0001"
        assert form["doctorId"] == "DR1"
        assert empty == []
        assert [call[:2] for call in fake_ledger.calls] == [
            ("submit", "AddDiagnosisForm"),
            ("evaluate", "GetDiagnosisForm"),
            ("evaluate", "GetFormsByDoctor"),
        ]

    @pytest.mark.asyncio
    async def test_dispatch_timeout_is_a_connectivity_error(self, connection_manager, fake_ledger):
        router = TransactionRouter("medical-channel", "medical-diagnosis-chaincode", timeout_seconds=0.05)
        fake_ledger.call_delay = 1.0

        async with connection_manager.session() as handle:
            with pytest.raises(LedgerConnectivityError, match="^Failed to connect"):
                await router.execute(handle, Operation.LIST_FORMS)

        assert fake_ledger.disconnects == 1

    @pytest.mark.asyncio
    async def test_dispatch_rejects_request_for_another_target(
        self, connection_manager, transaction_router, fake_ledger
    ):
        request = transaction_router.build(Operation.LIST_FORMS, channel="other-channel")

        async with connection_manager.session() as handle:
            with pytest.raises(ValueError, match="other-channel"):
                await transaction_router.dispatch(handle, request)

        assert fake_ledger.calls == []
        assert fake_ledger.disconnects == 1
