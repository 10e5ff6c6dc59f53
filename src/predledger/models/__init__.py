"""Canonical schema (Pydantic) - MarketView, BetView, ledger events."""

from predledger.models.bet import BetView
from predledger.models.events import (
    BetAccessGranted,
    BetPlaced,
    LedgerEvent,
    MarketCreated,
    OptionCountAccessGranted,
    PredictionClosed,
)
from predledger.models.market import MAX_OPTIONS, MIN_OPTIONS, MarketStatus, MarketView

__all__ = [
    "MarketView",
    "MarketStatus",
    "MIN_OPTIONS",
    "MAX_OPTIONS",
    "BetView",
    "LedgerEvent",
    "MarketCreated",
    "BetPlaced",
    "OptionCountAccessGranted",
    "BetAccessGranted",
    "PredictionClosed",
]
