"""Group expense ledger: balances, settlements and member reconciliation."""

__version__ = "1.0.0"
