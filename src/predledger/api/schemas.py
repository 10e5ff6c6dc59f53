"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from predledger.fhe import Cipher
from predledger.models import MarketView


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    backend: str | None = None
    event_sink_failures: int = 0


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, invalid_state")


class AckResponse(BaseModel):
    status: str = "ok"


# --- Markets ---
class CreateMarketRequest(BaseModel):
    title: str
    options: list[str]


class CreateMarketResponse(BaseModel):
    market_id: int


class MarketsListResponse(BaseModel):
    markets: list[MarketView]
    total: int


class MarketCountResponse(BaseModel):
    count: int


class TalliesResponse(BaseModel):
    market_id: int
    tallies: list[Cipher]


class CloseMarketRequest(BaseModel):
    winning_option: int


# --- Bets ---
class PlaceBetRequest(BaseModel):
    choice: Cipher = Field(..., description="Encrypted option index (euint32 handle)")
    amount: int


# --- Ciphertexts ---
class EncryptRequest(BaseModel):
    value: int = Field(..., ge=0, le=2**32 - 1, description="Plain option index to encrypt client-side")


class DecryptRequest(BaseModel):
    cipher: Cipher
    credential: str = Field(..., description="Principal name (mock) or hex Ed25519 signature (sealed)")


class DecryptResponse(BaseModel):
    handle: str
    value: int | bool


# --- Events ---
class EventsResponse(BaseModel):
    events: list[dict[str, Any]]
    total: int
