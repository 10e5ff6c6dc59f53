"""Market registry - append-only sequence of markets, metadata and lifecycle state."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import Lock

import structlog

from predledger.errors import InvalidArgument, NotFound
from predledger.fhe import Cipher, HomomorphicBackend
from predledger.models import MAX_OPTIONS, MIN_OPTIONS, MarketCreated, MarketStatus, MarketView
from predledger.storage.event_log import EventLog

log = structlog.get_logger(__name__)


@dataclass
class MarketRecord:
    """Mutable market state. Only touched while holding `lock`."""

    market_id: int
    title: str
    options: tuple[str, ...]
    creator: str
    tallies: list[Cipher]
    status: MarketStatus = MarketStatus.ACTIVE
    total_stake: int = 0
    participant_count: int = 0
    result: int | None = None
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    @property
    def is_closed(self) -> bool:
        return self.status == MarketStatus.CLOSED

    def view(self) -> MarketView:
        return MarketView(
            market_id=self.market_id,
            title=self.title,
            options=list(self.options),
            status=self.status,
            total_stake=self.total_stake,
            participant_count=self.participant_count,
            result=self.result,
            creator=self.creator,
            tallies=list(self.tallies),
        )


def _clean_text(value: object, what: str) -> str:
    if not isinstance(value, str):
        raise InvalidArgument(f"{what} must be a string")
    value = value.strip()
    if not value:
        raise InvalidArgument(f"{what} must not be empty")
    return value


def validate_market_input(title: object, options: object) -> tuple[str, tuple[str, ...]]:
    """Return (title, options) stripped, or raise InvalidArgument."""
    clean_title = _clean_text(title, "title")
    if isinstance(options, (str, bytes)) or not isinstance(options, Sequence):
        raise InvalidArgument("options must be a sequence of strings")
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        raise InvalidArgument(
            f"market needs {MIN_OPTIONS}-{MAX_OPTIONS} options, got {len(options)}",
            option_count=len(options),
        )
    clean_options = tuple(_clean_text(o, f"option {i}") for i, o in enumerate(options))
    return clean_title, clean_options


class MarketRegistry:
    """Owns market records. Ids are dense, 0-based and never reused."""

    def __init__(self, backend: HomomorphicBackend, events: EventLog, ledger_principal: str) -> None:
        self._backend = backend
        self._events = events
        self._ledger_principal = ledger_principal
        self._markets: list[MarketRecord] = []
        self._lock = Lock()

    def create(self, title: object, options: object, creator: str) -> int:
        clean_title, clean_options = validate_market_input(title, options)
        # Zero counters are minted before the market becomes visible.
        tallies = [self._backend.encrypt(0) for _ in clean_options]
        for counter in tallies:
            self._backend.allow(counter, self._ledger_principal)
        with self._lock:
            market_id = len(self._markets)
            self._markets.append(
                MarketRecord(
                    market_id=market_id,
                    title=clean_title,
                    options=clean_options,
                    creator=creator,
                    tallies=tallies,
                )
            )
            self._events.append(MarketCreated(market_id=market_id, creator=creator, title=clean_title))
        log.info("market_created", market_id=market_id, creator=creator, options=len(clean_options))
        return market_id

    def record(self, market_id: object) -> MarketRecord:
        """Return the live record, or raise NotFound."""
        if isinstance(market_id, bool) or not isinstance(market_id, int):
            raise NotFound(f"market {market_id!r} not found", market_id=market_id)
        with self._lock:
            if 0 <= market_id < len(self._markets):
                return self._markets[market_id]
        raise NotFound(f"market {market_id} not found", market_id=market_id)

    def records(self) -> list[MarketRecord]:
        with self._lock:
            return list(self._markets)

    def get(self, market_id: object) -> MarketView:
        rec = self.record(market_id)
        with rec.lock:
            return rec.view()

    def list(self) -> list[MarketView]:
        views = []
        for rec in self.records():
            with rec.lock:
                views.append(rec.view())
        return views

    def count(self) -> int:
        with self._lock:
            return len(self._markets)
