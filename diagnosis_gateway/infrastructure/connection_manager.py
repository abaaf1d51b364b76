"""Ledger connection lifecycle.

Each request acquires its own gateway session, uses it, and releases it
before the request completes. There is no pool: a handle belongs to exactly
one request (or one health probe) and is never shared.

Acquisition resolves the identity from the wallet, opens the gateway with
the statically loaded connection profile, then resolves the channel and the
contract. A failure at any step after the gateway exists disconnects it
before the error propagates. Release is idempotent and never raises.

Security Impact:
    - Gateways are always closed, so a failing request cannot leak sessions
    - Identity material is passed to the gateway only, never logged
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

from diagnosis_gateway.domain.errors import (
    IdentityError,
    IdentityNotFoundError,
    InvalidIdentityError,
    LedgerConnectivityError,
)
from diagnosis_gateway.domain.ports import (
    CredentialStore,
    Identity,
    LedgerContract,
    LedgerGateway,
)
from diagnosis_gateway.infrastructure.config_manager import LedgerConfig

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]


@dataclass
class ConnectionHandle:
    """One live ledger session, owned by a single request.

    Attributes:
        identity_label: Wallet identity the session runs as
        channel_name: Resolved channel
        contract_id: Resolved contract name
        contract: Contract port used for dispatch
        gateway: Underlying gateway session
        log: Request-scoped logger
        released: Set once the gateway has been disconnected
    """
    identity_label: str
    channel_name: str
    contract_id: str
    contract: LedgerContract
    gateway: LedgerGateway
    log: Log
    released: bool = False


class ConnectionManager:
    """Acquires and releases per-request ledger sessions.

    Parameters:
        config: Ledger configuration (identity, channel, contract, timeouts)
        wallet: Credential store holding the application identity
        gateway_factory: Returns a new, unconnected gateway for each acquire
    """

    def __init__(
        self,
        config: LedgerConfig,
        wallet: CredentialStore,
        gateway_factory: Callable[[], LedgerGateway],
    ):
        self.config = config
        self.wallet = wallet
        self.gateway_factory = gateway_factory
        self.acquired = 0
        self.released = 0

    async def acquire(
        self,
        identity_label: Optional[str] = None,
        channel_name: Optional[str] = None,
        contract_id: Optional[str] = None,
        log: Optional[Log] = None,
    ) -> ConnectionHandle:
        """Open a ledger session.

        Parameters:
            identity_label: Wallet label (defaults to the configured identity)
            channel_name: Channel (defaults to the configured channel)
            contract_id: Contract (defaults to the configured contract)
            log: Request-scoped logger carried on the handle

        Returns:
            ConnectionHandle that must be passed to ``release``

        Raises:
            IdentityNotFoundError: If the identity is not in the wallet
            InvalidIdentityError: If the wallet entry cannot be loaded
            LedgerConnectivityError: If the gateway, channel or contract cannot
                be resolved, or the attempt exceeds the configured timeout
        """
        log = log or logger
        label = identity_label or self.config.identity_label
        channel = channel_name or self.config.channel_name
        contract_name = contract_id or self.config.contract_id

        # Gateways created so far; anything here is disconnected on failure.
        opened: list[LedgerGateway] = []
        try:
            gateway, contract = await asyncio.wait_for(
                self._open(opened, label, channel, contract_name, log),
                timeout=self.config.request_timeout_seconds,
            )
        except IdentityError:
            raise
        except asyncio.TimeoutError:
            await self._disconnect_all(opened, log)
            raise LedgerConnectivityError(
                f"Failed to connect to blockchain network: timed out after "
                f"{self.config.request_timeout_seconds}s"
            )
        except (LedgerConnectivityError, asyncio.CancelledError):
            await self._disconnect_all(opened, log)
            raise
        except Exception as e:
            await self._disconnect_all(opened, log)
            raise LedgerConnectivityError(f"Failed to connect to blockchain network: {e}") from e

        self.acquired += 1
        log.debug(f"Acquired ledger connection {channel}/{contract_name} as {label}")
        return ConnectionHandle(
            identity_label=label,
            channel_name=channel,
            contract_id=contract_name,
            contract=contract,
            gateway=gateway,
            log=log,
        )

    async def _lookup_identity(self, label: str, log: Log) -> Identity:
        # Wallet stores may do blocking file I/O.
        try:
            identity = await asyncio.to_thread(self.wallet.get, label)
        except IdentityError:
            raise
        except Exception as e:
            log.error(f'Identity "{label}" could not be loaded from the wallet: {str(e)}')
            raise InvalidIdentityError(label, str(e)) from e

        if identity is None:
            log.error(f'Identity "{label}" not found in wallet')
            raise IdentityNotFoundError(label)
        return identity

    async def _open(
        self,
        opened: list[LedgerGateway],
        label: str,
        channel: str,
        contract_id: str,
        log: Log,
    ) -> tuple[LedgerGateway, LedgerContract]:
        identity = await self._lookup_identity(label, log)

        gateway = self.gateway_factory()
        opened.append(gateway)
        await gateway.connect(
            identity,
            discovery_enabled=self.config.discovery_enabled,
            as_localhost=self.config.as_localhost,
        )
        network = await gateway.get_network(channel)
        return gateway, network.get_contract(contract_id)

    async def _disconnect_all(self, gateways: list[LedgerGateway], log: Log) -> None:
        for gateway in gateways:
            await self._disconnect(gateway, log)

    @staticmethod
    async def _disconnect(gateway: LedgerGateway, log: Log) -> None:
        try:
            await gateway.disconnect()
        except Exception as e:
            log.warning(f"Error while disconnecting ledger gateway: {str(e)}")

    async def release(self, handle: Optional[ConnectionHandle]) -> None:
        """Disconnect a handle's gateway.

        Safe to call more than once and with ``None``; never raises.
        """
        if handle is None or handle.released:
            return
        handle.released = True
        self.released += 1
        await self._disconnect(handle.gateway, handle.log)
        handle.log.debug(f"Released ledger connection {handle.channel_name}/{handle.contract_id}")

    @asynccontextmanager
    async def session(
        self,
        identity_label: Optional[str] = None,
        channel_name: Optional[str] = None,
        contract_id: Optional[str] = None,
        log: Optional[Log] = None,
    ) -> AsyncIterator[ConnectionHandle]:
        """Scoped acquire/release.

        Example:
            ```python
            async with manager.session(log=request_log) as handle:
                form = await router.execute(handle, Operation.READ_FORM, form_id)
            ```
        """
        handle = await self.acquire(identity_label, channel_name, contract_id, log)
        try:
            yield handle
        finally:
            await self.release(handle)
