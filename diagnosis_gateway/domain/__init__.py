"""Domain layer for the diagnosis ledger gateway.

This package contains the diagnosis form schema, the ledger ports, the
transaction router and the error classifier. Nothing here imports HTTP or
ledger SDK code.
"""

from .diagnosis_form import DiagnosisForm
from .ports import TransactionMode, TransactionRequest
from .transaction_router import Operation, TransactionRouter

__all__ = [
    "DiagnosisForm",
    "Operation",
    "TransactionMode",
    "TransactionRequest",
    "TransactionRouter",
]
