"""Adapters layer for the diagnosis ledger gateway.

Adapters implement the ledger ports defined in the domain layer and handle
the wire protocol of the external ledger network.
"""
