"""REST ledger gateway adapter.

Implements the ledger ports against a Fabric REST gateway that fronts the
organization's peers. The wire protocol:

    GET  /status          liveness, used when opening a session
    POST /transactions    submit; blocks until commit, returns ``transactionID``
    POST /query           evaluate; returns ``result``

Both POST bodies share one shape:

    {"headers": {"type": "SendTransaction" | "Query", "signer": <label>,
                 "mspId": <msp>, "channel": <channel>, "chaincode": <contract>},
     "func": <function name>, "args": [<string>, ...]}

Error responses carry ``{"error": <ledger message>}``; the message is passed
through unchanged so the error classifier can read contract failures such as
``MVCC_READ_CONFLICT``.

Security Impact:
    - Private keys never leave the wallet; the gateway signs as ``signer``
    - One HTTP client per session, closed on disconnect
"""

import json
import logging
from typing import Any, Optional

import httpx

from diagnosis_gateway.domain.errors import LedgerConnectivityError, LedgerError
from diagnosis_gateway.domain.ports import (
    Identity,
    LedgerContract,
    LedgerGateway,
    LedgerNetwork,
)
from diagnosis_gateway.infrastructure.config_manager import ConnectionProfile

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Ledger gateway returned HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    return json.dumps(body)


class RestContract(LedgerContract):
    """Contract on one channel, reached through the gateway's HTTP client."""

    def __init__(self, gateway: "RestLedgerGateway", channel: str, contract_id: str):
        self._gateway = gateway
        self.channel = channel
        self.contract_id = contract_id

    def _body(self, kind: str, function_name: str, args: tuple[str, ...]) -> dict[str, Any]:
        identity = self._gateway.identity
        return {
            "headers": {
                "type": kind,
                "signer": identity.label,
                "mspId": identity.msp_id,
                "channel": self.channel,
                "chaincode": self.contract_id,
            },
            "func": function_name,
            "args": list(args),
        }

    async def submit_transaction(self, function_name: str, *args: str) -> bytes:
        body = await self._gateway.post(
            "/transactions",
            self._body("SendTransaction", function_name, args),
            params={"fly-sync": "true"},
        )
        tx_id = body.get("transactionID") or body.get("headers", {}).get("id", "")
        return str(tx_id).encode("utf-8")

    async def evaluate_transaction(self, function_name: str, *args: str) -> bytes:
        body = await self._gateway.post("/query", self._body("Query", function_name, args))
        result = body.get("result")
        if isinstance(result, str):
            return result.encode("utf-8")
        return json.dumps(result).encode("utf-8")


class RestNetwork(LedgerNetwork):
    def __init__(self, gateway: "RestLedgerGateway", name: str):
        self._gateway = gateway
        self.name = name

    def get_contract(self, contract_id: str) -> LedgerContract:
        return RestContract(self._gateway, self.name, contract_id)


class RestLedgerGateway(LedgerGateway):
    """Gateway session over HTTP.

    Parameters:
        profile: Connection profile listing peer endpoints
        timeout_seconds: HTTP timeout for every call
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.profile = profile
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.identity: Optional[Identity] = None
        self.endpoint: Optional[str] = None

    async def connect(self, identity: Identity, *, discovery_enabled: bool = True,
                      as_localhost: bool = True) -> None:
        """Open an HTTP session against the first reachable peer endpoint.

        With discovery enabled every peer of the client organization is
        tried in profile order; otherwise only the first.
        """
        endpoints = self.profile.endpoints(discovery_enabled, as_localhost)
        failures = []
        for url in endpoints:
            client = httpx.AsyncClient(
                base_url=url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
            try:
                response = await client.get("/status")
                response.raise_for_status()
            except httpx.HTTPError as e:
                await client.aclose()
                failures.append(f"{url}: {e}")
                logger.debug(f"Peer endpoint {url} unavailable: {e}")
                continue

            self._client = client
            self.identity = identity
            self.endpoint = url
            logger.debug(f"Connected to ledger gateway at {url} as {identity.label}")
            return

        raise LedgerConnectivityError(
            "Failed to connect to blockchain network: no reachable peer endpoint"
            + (f" ({'; '.join(failures)})" if failures else "")
        )

    async def get_network(self, channel_name: str) -> LedgerNetwork:
        if self._client is None:
            raise LedgerConnectivityError("Failed to connect to blockchain network: gateway is not connected")
        return RestNetwork(self, channel_name)

    async def post(self, path: str, payload: dict[str, Any],
                   params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        """POST to the gateway and return the decoded JSON body.

        Raises:
            LedgerError: If the gateway answers with an error status
            LedgerConnectivityError: On transport failure or timeout
        """
        if self._client is None:
            raise LedgerConnectivityError("Failed to connect to blockchain network: gateway is not connected")
        try:
            response = await self._client.post(path, json=payload, params=params)
        except httpx.TransportError as e:
            raise LedgerConnectivityError(f"Failed to connect to blockchain network: {e}") from e

        if response.is_error:
            raise LedgerError(_error_message(response))

        try:
            body = response.json()
        except ValueError:
            raise LedgerError(f"Ledger gateway returned a non-JSON response for {path}")
        return body if isinstance(body, dict) else {"result": body}

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
