"""Ledger events - one per successful mutating operation, never carrying plaintext."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class LedgerEvent(BaseModel):
    seq: int = 0  # assigned by EventLog on append
    market_id: int
    ts: int | None = None  # ms epoch


class MarketCreated(LedgerEvent):
    kind: Literal["MarketCreated"] = "MarketCreated"
    creator: str
    title: str


class BetPlaced(LedgerEvent):
    kind: Literal["BetPlaced"] = "BetPlaced"
    participant: str
    amount: int = Field(..., gt=0)


class OptionCountAccessGranted(LedgerEvent):
    kind: Literal["OptionCountAccessGranted"] = "OptionCountAccessGranted"
    principal: str


class BetAccessGranted(LedgerEvent):
    kind: Literal["BetAccessGranted"] = "BetAccessGranted"
    principal: str


class PredictionClosed(LedgerEvent):
    kind: Literal["PredictionClosed"] = "PredictionClosed"
    winning_option: int
    closer: str

