"""End-to-end tests for the diagnosis form endpoints over the fake ledger."""

import asyncio

import httpx
import pytest

from diagnosis_gateway.domain.errors import LedgerConnectivityError, LedgerError
from diagnosis_gateway.infrastructure.connection_manager import ConnectionManager
from diagnosis_gateway.infrastructure.wallet import FileSystemWallet, InMemoryWallet


def assert_released(manager: ConnectionManager, fake_ledger) -> None:
    assert manager.acquired == manager.released
    assert fake_ledger.connects == fake_ledger.disconnects


@pytest.fixture
def stored_form(client, valid_form):
    assert client.post("/api/diagnosis/forms", json=valid_form).status_code == 201
    return valid_form


class TestCreateForm:
    def test_create_then_read(self, client, valid_form, fake_ledger, connection_manager):
        created = client.post("/api/diagnosis/forms", json=valid_form)

        assert created.status_code == 201
        assert created.json() == {
            "success": True,
            "message": "Diagnosis form added successfully",
            "formId": "DIAG-1",
            "transactionId": "tx-0001",
        }

        read = client.get("/api/diagnosis/forms/DIAG-1")
        assert read.status_code == 200
        body = read.json()
        assert body["success"] is True
        assert body["data"] == valid_form
        assert_released(connection_manager, fake_ledger)

    def test_minimal_form_round_trips_unchanged(self, client, fake_ledger):
        form = {
            "formId": "DIAG-1",
            "doctorId": "DR001",
            "patientId": "PAT1",
            "diagnosis": {"primary": "Hypertension", "icdCodes": ["I10"]},
            "symptoms": ["Fatigue"],
            "treatment": {
                "medications": [{
                    "name": "Lisinopril",
                    "dosage": "10mg",
                    "frequency": "Once daily",
                    "duration": "30d",
                }],
                "recommendations": ["Diet"],
            },
            "followUp": {"urgentContact": False, "instructions": "Recheck in 2 weeks"},
        }

        created = client.post("/api/diagnosis/forms", json=form)
        assert created.status_code == 201
        assert created.json()["formId"] == "DIAG-1"

        read = client.get("/api/diagnosis/forms/DIAG-1")
        assert read.status_code == 200
        assert read.json()["data"]["diagnosis"]["primary"] == "Hypertension"
        assert read.json()["data"] == form
        assert "timestamp" not in fake_ledger.forms["DIAG-1"]

    def test_generated_form_id(self, client, valid_form, fake_ledger):
        del valid_form["formId"]

        response = client.post("/api/diagnosis/forms", json=valid_form)

        assert response.status_code == 201
        form_id = response.json()["formId"]
        assert form_id.startswith("DIAG-")
        assert fake_ledger.forms[form_id] == {**valid_form, "formId": form_id}

    def test_submitted_payload_is_compact_and_omits_absent_optionals(self, client, valid_form, fake_ledger):
        client.post("/api/diagnosis/forms", json=valid_form)

        mode, function_name, args = fake_ledger.calls[0]
        assert (mode, function_name) == ("submit", "AddDiagnosisForm")
        assert '"labResults"' not in args[0]
        assert '"formId":"DIAG-1"' in args[0]

    def test_validation_failure_never_reaches_ledger(self, client, valid_form, fake_ledger):
        del valid_form["doctorId"]
        valid_form["treatment"]["medications"][0].pop("dosage")

        response = client.post("/api/diagnosis/forms", json=valid_form)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"].startswith("Validation Error: ")
        assert "doctorId: Field required" in error["details"]
        assert "treatment.medications.0.dosage: Field required" in error["details"]
        assert fake_ledger.connects == 0

    def test_malformed_json(self, client, fake_ledger):
        response = client.post(
            "/api/diagnosis/forms",
            content=b'{"formId": ',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid JSON format"
        assert fake_ledger.connects == 0

    def test_duplicate_is_conflict(self, client, stored_form, fake_ledger, connection_manager):
        response = client.post("/api/diagnosis/forms", json=stored_form)

        assert response.status_code == 409
        assert response.json()["error"]["message"] == "Resource already exists on blockchain"
        assert_released(connection_manager, fake_ledger)

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_creates(self, client, valid_form, fake_ledger, connection_manager):
        fake_ledger.call_delay = 0.05
        transport = httpx.ASGITransport(app=client.app)

        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as async_client:
            responses = await asyncio.gather(
                async_client.post("/api/diagnosis/forms", json=valid_form),
                async_client.post("/api/diagnosis/forms", json=valid_form),
            )

        assert sorted(response.status_code for response in responses) == [201, 409]
        conflict = next(response for response in responses if response.status_code == 409)
        assert conflict.json()["error"]["message"] == "Resource already exists on blockchain"
        assert list(fake_ledger.forms) == ["DIAG-1"]
        assert connection_manager.acquired == connection_manager.released == 2

    def test_missing_identity(self, make_client, ledger_config, connection_manager, fake_ledger, valid_form):
        manager = ConnectionManager(ledger_config, InMemoryWallet(), connection_manager.gateway_factory)
        client = make_client(manager=manager)

        response = client.post("/api/diagnosis/forms", json=valid_form)

        assert response.status_code == 503
        assert response.json()["error"]["message"] == "Blockchain identity not found"
        assert fake_ledger.connects == 0

    def test_corrupt_identity_is_a_deployment_error(self, make_client, ledger_config, connection_manager,
                                                    fake_ledger, valid_form, tmp_path):
        wallet_dir = tmp_path / "corrupt-wallet"
        wallet_dir.mkdir()
        (wallet_dir / "appUser.id").write_text("{not json")
        manager = ConnectionManager(ledger_config, FileSystemWallet(wallet_dir), connection_manager.gateway_factory)
        client = make_client(manager=manager, environment="production")

        response = client.post("/api/diagnosis/forms", json=valid_form)

        assert response.status_code == 503
        assert response.json()["error"]["message"] == "Blockchain identity could not be loaded"
        assert fake_ledger.connects == 0

    def test_unreachable_network(self, client, valid_form, fake_ledger, connection_manager):
        fake_ledger.connect_error = LedgerConnectivityError(
            "Failed to connect to blockchain network: connection refused"
        )

        response = client.post("/api/diagnosis/forms", json=valid_form)

        assert response.status_code == 503
        assert response.json()["error"]["message"] == "Blockchain service temporarily unavailable"
        assert fake_ledger.disconnects == 1
        assert connection_manager.acquired == 0


class TestReadForms:
    def test_unknown_form_is_404_naming_the_id(self, client, fake_ledger, connection_manager):
        response = client.get("/api/diagnosis/forms/DOES-NOT-EXIST")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Diagnosis form with ID DOES-NOT-EXIST does not exist"
        assert_released(connection_manager, fake_ledger)

    def test_empty_list(self, client):
        response = client.get("/api/diagnosis/forms")

        assert response.status_code == 200
        assert response.json() == {"success": True, "count": 0, "data": []}

    def test_list_all(self, client, stored_form):
        body = client.get("/api/diagnosis/forms").json()
        assert body["count"] == 1
        assert body["data"][0]["formId"] == "DIAG-1"

    def test_list_by_doctor(self, client, stored_form):
        body = client.get("/api/diagnosis/forms/doctor/DR001").json()
        assert body["doctorId"] == "DR001"
        assert body["count"] == 1

        other = client.get("/api/diagnosis/forms/doctor/DR999").json()
        assert (other["count"], other["data"]) == (0, [])

    def test_list_by_patient(self, client, stored_form):
        body = client.get("/api/diagnosis/forms/patient/PAT042").json()
        assert body["patientId"] == "PAT042"
        assert body["count"] == 1

    def test_verify_signature(self, client, stored_form, fake_ledger):
        response = client.post("/api/diagnosis/forms/DIAG-1/verify")

        assert response.status_code == 200
        body = response.json()
        assert body["formId"] == "DIAG-1"
        assert body["signatureValid"] is True
        assert body["timestamp"].endswith("Z")
        assert fake_ledger.calls[-1][:2] == ("evaluate", "VerifyFormSignature")

    def test_verify_unknown_form(self, client):
        response = client.post("/api/diagnosis/forms/DIAG-404/verify")
        assert response.status_code == 404

    def test_audit_trail(self, client, stored_form):
        client.put("/api/diagnosis/forms/DIAG-1", json=stored_form)

        body = client.get("/api/diagnosis/forms/DIAG-1/audit").json()

        assert body["formId"] == "DIAG-1"
        assert body["count"] == 2

    def test_audit_trail_for_unknown_form(self, client):
        response = client.get("/api/diagnosis/forms/DIAG-404/audit")
        assert response.status_code == 404
        assert "DIAG-404" in response.json()["error"]["message"]


class TestUpdateForm:
    def test_update_replaces_record_without_reading(self, client, stored_form, fake_ledger):
        stored_form["symptoms"] = ["Headache"]
        calls_before = len(fake_ledger.calls)

        response = client.put("/api/diagnosis/forms/DIAG-1", json=stored_form)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Diagnosis form updated successfully",
            "formId": "DIAG-1",
        }
        assert [call[1] for call in fake_ledger.calls[calls_before:]] == ["UpdateDiagnosisForm"]
        assert fake_ledger.forms["DIAG-1"]["symptoms"] == ["Headache"]

    def test_update_unknown_form(self, client, valid_form):
        valid_form["formId"] = "DIAG-404"
        response = client.put("/api/diagnosis/forms/DIAG-404", json=valid_form)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Diagnosis form with ID DIAG-404 does not exist"

    def test_form_id_cannot_change(self, client, stored_form, fake_ledger):
        stored_form["formId"] = "DIAG-2"
        connects_before = fake_ledger.connects

        response = client.put("/api/diagnosis/forms/DIAG-1", json=stored_form)

        assert response.status_code == 400
        assert response.json()["error"]["message"].startswith("Validation Error: formId")
        assert fake_ledger.connects == connects_before

    def test_body_without_form_id_uses_path(self, client, stored_form, fake_ledger):
        del stored_form["formId"]

        response = client.put("/api/diagnosis/forms/DIAG-1", json=stored_form)

        assert response.status_code == 200
        assert fake_ledger.forms["DIAG-1"]["formId"] == "DIAG-1"

    def test_concurrent_modification(self, client, stored_form, fake_ledger, connection_manager):
        fake_ledger.fail_next = LedgerError(
            "transaction 7f3a returned with status MVCC_READ_CONFLICT"
        )

        response = client.put("/api/diagnosis/forms/DIAG-1", json=stored_form)

        assert response.status_code == 409
        assert response.json()["error"]["message"] == "Concurrent modification error"
        assert_released(connection_manager, fake_ledger)


class TestErrorEnvelope:
    def test_internal_error_is_masked_in_production(self, make_client, fake_ledger, connection_manager):
        client = make_client(environment="production")
        fake_ledger.fail_next = RuntimeError("peer TLS handshake secret detail")

        response = client.get("/api/diagnosis/forms")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["message"] == "Internal server error"
        assert "stack" not in error
        assert "details" not in error
        assert_released(connection_manager, fake_ledger)

    def test_undecodable_ledger_result_is_a_server_error(self, make_client, fake_ledger, connection_manager):
        client = make_client(environment="production")
        fake_ledger.GetDiagnosisForm = lambda form_id: b"<html>peer proxy error</html>"

        response = client.get("/api/diagnosis/forms/DIAG-1")

        assert response.status_code == 500
        assert response.json()["error"]["message"] == "Internal server error"
        assert_released(connection_manager, fake_ledger)

    def test_internal_error_is_detailed_in_development(self, make_client, fake_ledger):
        client = make_client(environment="development")
        fake_ledger.fail_next = RuntimeError("unexpected payload")

        error = client.get("/api/diagnosis/forms").json()["error"]

        assert error["message"] == "unexpected payload"
        assert "RuntimeError" in error["stack"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/diagnosis/forms/DIAG-404", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"
        assert response.json()["error"]["requestId"] == "abc-123"

    def test_generated_request_id_is_not_in_envelope(self, client):
        response = client.get("/api/diagnosis/forms/DIAG-404")

        assert len(response.headers["X-Request-ID"]) == 26
        assert "requestId" not in response.json()["error"]

    def test_unknown_route(self, client):
        response = client.get("/api/unknown")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"]["message"] == "Route /api/unknown not found"
