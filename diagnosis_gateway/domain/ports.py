"""Domain Ports - Abstract Contracts for Ledger Access.

This module defines the Port interfaces (abstract contracts) that ledger
Adapters must implement. Following Hexagonal Architecture, the domain core
defines what it needs from the ledger network, not how it is reached.

Security Impact:
    - Credentials are only ever passed as an Identity object, never logged
    - Gateways are owned by exactly one request and closed on every exit path

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (REST gateway, in-memory fakes) implement these ports
    - Submit (state-changing, consensus-ordered) and evaluate (read-only,
      single peer) are distinct operations on the contract port
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol


class TransactionMode(str, Enum):
    """How a contract function is invoked."""
    SUBMIT = "submit"
    EVALUATE = "evaluate"


@dataclass(frozen=True)
class TransactionRequest:
    """A single contract invocation.

    Attributes:
        function_name: Contract function to invoke (e.g. ``AddDiagnosisForm``)
        arguments: Positional string arguments, JSON-encoded where structured
        mode: Submit (write) or evaluate (read-only)
        channel: Ledger channel name
        contract_id: Contract (chaincode) identifier
    """
    function_name: str
    arguments: tuple[str, ...]
    mode: TransactionMode
    channel: str
    contract_id: str

    @property
    def read_only(self) -> bool:
        return self.mode is TransactionMode.EVALUATE


@dataclass(frozen=True)
class Identity:
    """Credential material for one enrolled wallet identity.

    Attributes:
        label: Wallet label the identity is stored under
        msp_id: Membership service provider identifier of the organization
        certificate: PEM encoded X.509 certificate
        private_key: PEM encoded private key (never logged)
        type: Identity type, ``X.509`` for Fabric identities
    """
    label: str
    msp_id: str
    certificate: str
    private_key: str = field(repr=False)
    type: str = "X.509"


class CredentialStore(ABC):
    """Port for looking up enrolled identities."""

    @abstractmethod
    def get(self, label: str) -> Optional[Identity]:
        """Return the identity stored under ``label`` or None if absent."""
        pass

    @abstractmethod
    def list(self) -> list[str]:
        """Return all stored identity labels."""
        pass


class LedgerContract(ABC):
    """Port for a deployed contract on one channel."""

    @abstractmethod
    async def submit_transaction(self, function_name: str, *args: str) -> bytes:
        """Submit a state-changing transaction and wait for commit.

        Parameters:
            function_name: Contract function name
            *args: String arguments

        Returns:
            Contract result bytes (the transaction identifier for gateways
            that do not return a payload)

        Raises:
            LedgerError: If endorsement, ordering or commit fails
            LedgerConnectivityError: If the network cannot be reached
        """
        pass

    @abstractmethod
    async def evaluate_transaction(self, function_name: str, *args: str) -> bytes:
        """Evaluate a read-only query against a single peer.

        Raises:
            LedgerError: If the contract rejects the query
            LedgerConnectivityError: If the network cannot be reached
        """
        pass


class LedgerNetwork(ABC):
    """Port for a ledger channel."""

    name: str

    @abstractmethod
    def get_contract(self, contract_id: str) -> LedgerContract:
        """Return a handle to the named contract on this channel."""
        pass


class LedgerGateway(ABC):
    """Port for a gateway session to the ledger network.

    A gateway is connected once, used for a single request, and disconnected.
    """

    @abstractmethod
    async def connect(self, identity: Identity, *, discovery_enabled: bool = True,
                      as_localhost: bool = True) -> None:
        """Open the session as ``identity``.

        Raises:
            LedgerConnectivityError: If no peer endpoint accepts the session
        """
        pass

    @abstractmethod
    async def get_network(self, channel_name: str) -> LedgerNetwork:
        """Resolve a channel the identity is authorized for."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session and release network resources."""
        pass


class TransactionSink(Protocol):
    """Anything that can carry a TransactionRequest to the ledger.

    Implemented by the ledger-backed sink used for benchmarking and by test
    doubles; mirrors a load driver's system-under-test adapter.
    """

    async def send_requests(self, request: TransactionRequest) -> Any:
        ...
