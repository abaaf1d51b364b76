"""Dependency injection for the gateway API.

Process-wide collaborators (settings, connection profile, wallet, connection
manager, router) are built once and cached; request-scoped ones (the
correlated logger) are built per request. Tests replace any of them through
``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from diagnosis_gateway.adapters.ledger import RestLedgerGateway
from diagnosis_gateway.domain.transaction_router import TransactionRouter
from diagnosis_gateway.infrastructure.config_manager import (
    ConnectionProfile,
    load_connection_profile,
)
from diagnosis_gateway.infrastructure.connection_manager import ConnectionManager
from diagnosis_gateway.infrastructure.id_generator import IdGenerator
from diagnosis_gateway.infrastructure.request_context import bind_logger
from diagnosis_gateway.infrastructure.settings import Settings
from diagnosis_gateway.infrastructure.wallet import FileSystemWallet

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("diagnosis_gateway.request")


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return Settings()


@lru_cache()
def get_id_generator() -> IdGenerator:
    """Get the process id generator (secure random source)."""
    return IdGenerator()


@lru_cache()
def get_connection_profile() -> ConnectionProfile:
    """Load the connection profile once per process."""
    config = get_settings().ledger
    logger.debug(f"Loading connection profile from {config.connection_profile_path}")
    return load_connection_profile(config.connection_profile_path)


@lru_cache()
def get_connection_manager() -> ConnectionManager:
    """Get the connection manager wired to the REST ledger gateway (cached).

    The manager itself holds only read-only configuration; each acquire
    creates a fresh gateway session.
    """
    config = get_settings().ledger
    profile = get_connection_profile()
    return ConnectionManager(
        config=config,
        wallet=FileSystemWallet(config.wallet_path),
        gateway_factory=lambda: RestLedgerGateway(profile, config.request_timeout_seconds),
    )


@lru_cache()
def get_transaction_router() -> TransactionRouter:
    """Get the transaction router for the configured channel and contract."""
    config = get_settings().ledger
    return TransactionRouter(
        channel=config.channel_name,
        contract_id=config.contract_id,
        timeout_seconds=config.request_timeout_seconds,
    )


def get_request_log(request: Request) -> logging.LoggerAdapter:
    """Logger bound to the current request's correlation id."""
    return bind_logger(request_logger, getattr(request.state, "request_id", None))


SettingsDep = Annotated[Settings, Depends(get_settings)]
IdGeneratorDep = Annotated[IdGenerator, Depends(get_id_generator)]
ConnectionManagerDep = Annotated[ConnectionManager, Depends(get_connection_manager)]
RouterDep = Annotated[TransactionRouter, Depends(get_transaction_router)]
RequestLogDep = Annotated[logging.LoggerAdapter, Depends(get_request_log)]
