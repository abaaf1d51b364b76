"""HTTP layer for the diagnosis ledger gateway."""
