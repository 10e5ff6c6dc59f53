"""Bet read view."""

from pydantic import BaseModel, Field

from predledger.fhe import Cipher


class BetView(BaseModel):
    market_id: int
    participant: str
    choice: Cipher
    amount: int = Field(..., gt=0)
