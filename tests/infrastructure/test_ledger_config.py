"""Tests for ledger configuration and connection profile loading."""

import json

import pytest
from pydantic import ValidationError

from diagnosis_gateway.infrastructure.config_manager import (
    ConfigManager,
    ConnectionProfile,
    load_connection_profile,
)

PROFILE = {
    "name": "medical-network-org1",
    "version": "1.0.0",
    "client": {"organization": "Org1"},
    "organizations": {
        "Org1": {"mspid": "Org1MSP", "peers": ["peer0.org1.medical.com", "peer1.org1.medical.com"]},
    },
    "peers": {
        "peer0.org1.medical.com": {"url": "https://peer0.org1.medical.com:8801"},
        "peer1.org1.medical.com": {"url": "https://peer1.org1.medical.com:8802"},
    },
    "certificateAuthorities": {"ca.org1.medical.com": {"url": "https://localhost:7054"}},
}


class TestConfigManager:
    def test_from_environment_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("MDG_CHANNEL_NAME", "MDG_CONTRACT_ID", "MDG_IDENTITY_LABEL", "MDG_DISCOVERY_ENABLED"):
            monkeypatch.delenv(name, raising=False)

        config = ConfigManager.from_environment().get_ledger_config()

        assert config.identity_label == "appUser"
        assert config.channel_name == "medical-channel"
        assert config.contract_id == "medical-diagnosis-chaincode"
        assert config.discovery_enabled is True

    def test_from_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MDG_CHANNEL_NAME", "other-channel")
        monkeypatch.setenv("MDG_DISCOVERY_ENABLED", "false")
        monkeypatch.setenv("MDG_LEDGER_TIMEOUT", "5")

        config = ConfigManager.from_environment().get_ledger_config()

        assert config.channel_name == "other-channel"
        assert config.discovery_enabled is False
        assert config.request_timeout_seconds == 5

    def test_dotenv_file_is_loaded(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        # setenv first so the value load_dotenv writes is removed on teardown
        monkeypatch.setenv("MDG_IDENTITY_LABEL", "unset")
        monkeypatch.delenv("MDG_IDENTITY_LABEL")
        (tmp_path / ".env").write_text("MDG_IDENTITY_LABEL=clinicUser\n")

        config = ConfigManager.from_environment().get_ledger_config()

        assert config.identity_label == "clinicUser"

    def test_from_file_and_dotted_get(self, tmp_path):
        path = tmp_path / "gateway.json"
        path.write_text(json.dumps({
            "ledger": {"connection_profile_path": "p.json", "wallet_path": "w", "channel_name": "c1"}
        }))

        manager = ConfigManager.from_file(str(path))

        assert manager.get_ledger_config().channel_name == "c1"
        assert manager.get("ledger.wallet_path") == "w"
        assert manager.get("ledger.missing", "fallback") == "fallback"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "absent.json"))

    def test_ledger_config_is_frozen_and_validated(self, ledger_config):
        with pytest.raises(ValidationError):
            ledger_config.channel_name = "changed"
        with pytest.raises(ValidationError):
            ConfigManager({"ledger": {"connection_profile_path": "p", "wallet_path": "w",
                                      "request_timeout_seconds": 0}}).get_ledger_config()


class TestConnectionProfile:
    def test_load_ignores_unused_sections(self, tmp_path):
        path = tmp_path / "connection-org1.json"
        path.write_text(json.dumps(PROFILE))

        profile = load_connection_profile(path)

        assert profile.organization.mspid == "Org1MSP"
        assert len(profile.peers) == 2

    def test_endpoints_with_discovery_and_localhost(self):
        profile = ConnectionProfile(**PROFILE)
        assert profile.endpoints(discovery_enabled=True, as_localhost=True) == [
            "https://localhost:8801",
            "https://localhost:8802",
        ]

    def test_endpoints_without_discovery_use_first_peer(self):
        profile = ConnectionProfile(**PROFILE)
        assert profile.endpoints(discovery_enabled=False, as_localhost=False) == [
            "https://peer0.org1.medical.com:8801",
        ]

    def test_unknown_client_organization(self):
        profile = ConnectionProfile(**{**PROFILE, "client": {"organization": "Org9"}})
        with pytest.raises(ValueError, match="Org9"):
            profile.endpoints()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_connection_profile(path)

    def test_missing_profile(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_connection_profile(tmp_path / "absent.json")
