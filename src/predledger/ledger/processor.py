"""Market operation processor - the public state-transition surface of the ledger."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from predledger.errors import InvalidArgument, InvalidState, LedgerError
from predledger.fhe import Cipher, HomomorphicBackend, MockBackend, create_backend
from predledger.ledger.access import AccessControlManager
from predledger.ledger.bets import BetLedger
from predledger.ledger.registry import MarketRegistry
from predledger.ledger.tally import TallyEngine
from predledger.models import BetView, LedgerEvent, MarketStatus, MarketView, PredictionClosed
from predledger.storage.event_log import EventLog

if TYPE_CHECKING:
    from predledger.config.settings import Settings

log = structlog.get_logger(__name__)

DEFAULT_LEDGER_PRINCIPAL = "predledger"


class MarketOperationProcessor:
    """
    Validates, orchestrates registry / bets / tallies / access control, and emits events.

    Each mutating operation runs under the lock of the market it touches, so
    operations on one market serialize while different markets proceed in
    parallel. Every failure is raised before any state changes.
    """

    def __init__(
        self,
        backend: HomomorphicBackend | None = None,
        *,
        ledger_principal: str = DEFAULT_LEDGER_PRINCIPAL,
        events: EventLog | None = None,
    ) -> None:
        self.backend = backend if backend is not None else MockBackend()
        self.ledger_principal = ledger_principal
        self.events = events if events is not None else EventLog()
        self.registry = MarketRegistry(self.backend, self.events, ledger_principal)
        self.tally = TallyEngine(self.registry, self.backend, ledger_principal)
        self.bets = BetLedger(self.registry, self.tally, self.backend, self.events, ledger_principal)
        self.access = AccessControlManager(self.registry, self.bets, self.backend, self.events, ledger_principal)

    @classmethod
    def from_settings(cls, settings: Settings, events: EventLog | None = None) -> MarketOperationProcessor:
        kwargs = {}
        if settings.backend_name == "sealed" and settings.sealed_key_hex:
            kwargs["key"] = bytes.fromhex(settings.sealed_key_hex)
        backend = create_backend(settings.backend_name, **kwargs)
        return cls(backend, ledger_principal=settings.ledger_principal, events=events)

    @contextmanager
    def _operation(self, name: str, **context: object) -> Iterator[None]:
        try:
            yield
        except LedgerError as e:
            log.info("operation_rejected", operation=name, code=e.code, reason=e.message, **context)
            raise

    # --- mutations ---

    def create_market(self, caller: str, title: str, options: list[str]) -> int:
        with self._operation("create_market", caller=caller):
            return self.registry.create(title, options, creator=caller)

    def place_bet(self, caller: str, market_id: int, encrypted_choice: Cipher, amount: int) -> None:
        with self._operation("place_bet", caller=caller, market_id=market_id):
            self.bets.place(market_id, caller, encrypted_choice, amount)

    def grant_tally_access(self, caller: str, market_id: int) -> None:
        with self._operation("grant_tally_access", caller=caller, market_id=market_id):
            self.access.grant_tally_access(market_id, caller)

    def grant_bet_access(self, caller: str, market_id: int) -> None:
        with self._operation("grant_bet_access", caller=caller, market_id=market_id):
            self.access.grant_bet_access(market_id, caller)

    def close_market(self, caller: str, market_id: int, winning_option: int) -> None:
        """Close an active market with a result. Any principal may close; the result is not verified."""
        with self._operation("close_market", caller=caller, market_id=market_id):
            record = self.registry.record(market_id)
            with record.lock:
                if record.is_closed:
                    raise InvalidState(f"market {market_id} is already closed", market_id=market_id)
                if (
                    isinstance(winning_option, bool)
                    or not isinstance(winning_option, int)
                    or not 0 <= winning_option < len(record.options)
                ):
                    raise InvalidArgument(
                        f"winning option {winning_option!r} out of range for {len(record.options)} options",
                        winning_option=winning_option,
                    )
                record.status = MarketStatus.CLOSED
                record.result = winning_option
                self.events.append(
                    PredictionClosed(market_id=market_id, winning_option=winning_option, closer=caller)
                )
            log.info("market_closed", market_id=market_id, winning_option=winning_option, closer=caller)

    # --- reads ---

    def get_market(self, market_id: int) -> MarketView:
        return self.registry.get(market_id)

    def list_markets(self) -> list[MarketView]:
        return self.registry.list()

    def market_count(self) -> int:
        return self.registry.count()

    def get_tallies(self, market_id: int) -> list[Cipher]:
        return self.tally.read(market_id)

    def get_bet(self, market_id: int, participant: str) -> BetView | None:
        return self.bets.get(market_id, participant)

    def event_history(self, market_id: int | None = None) -> list[LedgerEvent]:
        return self.events.events(market_id)
