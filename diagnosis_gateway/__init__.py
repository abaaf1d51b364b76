"""Medical diagnosis ledger gateway.

A stateless HTTP gateway that validates diagnosis records and relays them to
a permissioned ledger network, one short-lived connection per request.
"""

__version__ = "1.0.0"
