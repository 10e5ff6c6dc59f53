"""predledger - encrypted-state ledger for permissionless prediction markets."""

__version__ = "0.1.0"
