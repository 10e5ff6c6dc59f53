"""Ledger core: registry, bet ledger, tally engine, access control, processor."""

from predledger.ledger.processor import DEFAULT_LEDGER_PRINCIPAL, MarketOperationProcessor

__all__ = ["MarketOperationProcessor", "DEFAULT_LEDGER_PRINCIPAL"]
