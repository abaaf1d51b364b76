"""Ledger adapters implementing the gateway, network and contract ports."""

from diagnosis_gateway.adapters.ledger.rest_gateway import RestLedgerGateway

__all__ = ["RestLedgerGateway"]
