"""Benchmark workload for the diagnosis ledger gateway."""

from .workload import (
    LedgerTransactionSink,
    RoundConfig,
    RoundReport,
    WorkloadSimulator,
    run_round,
)

__all__ = [
    "LedgerTransactionSink",
    "RoundConfig",
    "RoundReport",
    "WorkloadSimulator",
    "run_round",
]
