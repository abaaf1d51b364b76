"""Configuration Manager for Ledger Connectivity.

This module loads the deployment constants the gateway needs to reach the
ledger network: the connection profile, the wallet location, the application
identity label, and the channel and contract names. Configuration is loaded
once at process start into immutable models and injected into the
ConnectionManager.

Security Impact:
    - Wallet contents are never read or logged here, only its location
    - Configuration is validated before use (fail-fast)
    - Configuration objects are frozen so request handling cannot mutate them

Architecture:
    - Infrastructure layer, isolated from domain logic
    - Supports environment variables (with .env files) and JSON files
    - Type-safe configuration using Pydantic models
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_LABEL = "appUser"
DEFAULT_CHANNEL_NAME = "medical-channel"
DEFAULT_CONTRACT_ID = "medical-diagnosis-chaincode"


class LedgerConfig(BaseModel):
    """Ledger connection settings.

    Parameters:
        connection_profile_path: Path to the JSON connection profile
        wallet_path: Directory holding ``<label>.id`` identity files
        identity_label: Wallet label of the application identity
        channel_name: Channel the contract is deployed on
        contract_id: Contract (chaincode) name
        discovery_enabled: Let the gateway fail over across the organization's peers
        as_localhost: Rewrite peer hostnames to localhost (local dev networks)
        request_timeout_seconds: Upper bound on connect and on each transaction
    """
    model_config = ConfigDict(frozen=True)

    connection_profile_path: Path = Field(..., description="Connection profile JSON path")
    wallet_path: Path = Field(..., description="Wallet directory")
    identity_label: str = Field(default=DEFAULT_IDENTITY_LABEL, min_length=1)
    channel_name: str = Field(default=DEFAULT_CHANNEL_NAME, min_length=1)
    contract_id: str = Field(default=DEFAULT_CONTRACT_ID, min_length=1)
    discovery_enabled: bool = True
    as_localhost: bool = True
    request_timeout_seconds: float = Field(default=30.0, gt=0)


class PeerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    url: str


class OrganizationConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    mspid: str
    peers: list[str] = Field(default_factory=list)


class ClientConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    organization: str


class ConnectionProfile(BaseModel):
    """Static description of the ledger network's peer endpoints.

    Follows the common connection-profile layout (``client``,
    ``organizations``, ``peers``); sections the gateway does not use, such as
    certificate authorities, are ignored. Peer ``url`` values point at the
    peers' REST gateway endpoints.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    version: str = "1.0.0"
    client: ClientConfig
    organizations: Dict[str, OrganizationConfig]
    peers: Dict[str, PeerConfig]

    @field_validator("peers")
    @classmethod
    def validate_peers(cls, v: Dict[str, PeerConfig]) -> Dict[str, PeerConfig]:
        """Require at least one peer endpoint."""
        if not v:
            raise ValueError("Connection profile defines no peers")
        return v

    @property
    def organization(self) -> OrganizationConfig:
        try:
            return self.organizations[self.client.organization]
        except KeyError:
            raise ValueError(
                f"Client organization '{self.client.organization}' is not defined in the profile"
            )

    def endpoints(self, discovery_enabled: bool = True, as_localhost: bool = True) -> list[str]:
        """List candidate gateway endpoints for the client organization.

        Parameters:
            discovery_enabled: Return every organization peer (failover order)
                instead of only the first
            as_localhost: Replace each peer hostname with ``localhost``

        Returns:
            Endpoint URLs in profile order
        """
        names = self.organization.peers or list(self.peers)
        if not discovery_enabled:
            names = names[:1]

        urls = []
        for name in names:
            peer = self.peers.get(name)
            if peer is None:
                logger.warning(f"Peer '{name}' listed for organization but not defined in profile")
                continue
            urls.append(_localhost(peer.url) if as_localhost else peer.url)
        return urls


def _localhost(url: str) -> str:
    parsed = urlparse(url)
    netloc = "localhost" if parsed.port is None else f"localhost:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def load_connection_profile(path: Path) -> ConnectionProfile:
    """Load and validate a connection profile.

    Parameters:
        path: Path to the JSON profile

    Returns:
        Frozen ConnectionProfile

    Raises:
        FileNotFoundError: If the profile does not exist
        ValueError: If the profile is not valid JSON
    """
    profile_file = Path(path)
    if not profile_file.exists():
        raise FileNotFoundError(f"Connection profile not found: {profile_file}")

    try:
        with open(profile_file, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in connection profile: {str(e)}")

    profile = ConnectionProfile(**data)
    logger.debug(f"Loaded connection profile '{profile.name}' with {len(profile.peers)} peer(s)")
    return profile


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


class ConfigManager:
    """Configuration manager for ledger settings.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        ledger_config = config.get_ledger_config()

        # Load from file
        config = ConfigManager.from_file("gateway.json")
        ledger_config = config.get_ledger_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data
        self._ledger_config: Optional[LedgerConfig] = None

    @classmethod
    def from_environment(cls) -> "ConfigManager":
        """Load configuration from environment variables.

        Environment Variables:
            - MDG_CONNECTION_PROFILE: Connection profile path
              (default: network/connection-org1.json)
            - MDG_WALLET_PATH: Wallet directory (default: ./wallet)
            - MDG_IDENTITY_LABEL: Application identity label (default: appUser)
            - MDG_CHANNEL_NAME: Channel name (default: medical-channel)
            - MDG_CONTRACT_ID: Contract name (default: medical-diagnosis-chaincode)
            - MDG_DISCOVERY_ENABLED: true/false (default: true)
            - MDG_AS_LOCALHOST: true/false (default: true)
            - MDG_LEDGER_TIMEOUT: Seconds (default: 30)

        Returns:
            ConfigManager instance

        Security Impact:
            - .env file is automatically loaded if present in the working directory
        """
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        config_data = {
            "ledger": {
                "connection_profile_path": os.getenv(
                    "MDG_CONNECTION_PROFILE", "network/connection-org1.json"
                ),
                "wallet_path": os.getenv("MDG_WALLET_PATH", "wallet"),
                "identity_label": os.getenv("MDG_IDENTITY_LABEL", DEFAULT_IDENTITY_LABEL),
                "channel_name": os.getenv("MDG_CHANNEL_NAME", DEFAULT_CHANNEL_NAME),
                "contract_id": os.getenv("MDG_CONTRACT_ID", DEFAULT_CONTRACT_ID),
                "discovery_enabled": _env_bool("MDG_DISCOVERY_ENABLED", True),
                "as_localhost": _env_bool("MDG_AS_LOCALHOST", True),
                "request_timeout_seconds": float(os.getenv("MDG_LEDGER_TIMEOUT", "30")),
            }
        }
        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> "ConfigManager":
        """Load configuration from a JSON file with a top-level ``ledger`` section.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, "r") as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def get_ledger_config(self) -> LedgerConfig:
        """Get the validated ledger configuration."""
        if self._ledger_config is None:
            self._ledger_config = LedgerConfig(**self._config_data.get("ledger", {}))
        return self._ledger_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key (e.g. ``ledger.channel_name``)."""
        value = self._config_data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default
