"""Market read view and lifecycle status."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from predledger.fhe import Cipher

MIN_OPTIONS = 2
MAX_OPTIONS = 4


class MarketStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class MarketView(BaseModel):
    """Snapshot of a market. Tallies are handles only, never plaintext."""

    market_id: int = Field(..., ge=0)
    title: str
    options: list[str]
    status: MarketStatus = MarketStatus.ACTIVE
    total_stake: int = 0
    participant_count: int = 0
    result: int | None = None  # set iff closed
    creator: str
    tallies: list[Cipher] = Field(default_factory=list)
