"""Bet ledger - one encrypted bet per (market, participant)."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

import structlog

from predledger.errors import AlreadyExists, InvalidArgument, InvalidState
from predledger.fhe import Cipher, CipherType, HomomorphicBackend
from predledger.ledger.registry import MarketRegistry
from predledger.ledger.tally import TallyEngine
from predledger.models import BetPlaced, BetView
from predledger.storage.event_log import EventLog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BetRecord:
    choice: Cipher
    amount: int


class BetLedger:
    def __init__(
        self,
        registry: MarketRegistry,
        tally: TallyEngine,
        backend: HomomorphicBackend,
        events: EventLog,
        ledger_principal: str,
    ) -> None:
        self._registry = registry
        self._tally = tally
        self._backend = backend
        self._events = events
        self._ledger_principal = ledger_principal
        self._bets: dict[tuple[int, str], BetRecord] = {}
        # Input handles already spent as a bet choice, on any market
        self._spent: set[str] = set()
        self._lock = Lock()

    def place(self, market_id: int, participant: str, encrypted_choice: Cipher, amount: int) -> None:
        """
        Record a bet and fold its encrypted choice into the market tallies.
        The choice must be an input ciphertext submitted by the participant and
        not yet used by any bet. All checks run before anything changes; the
        tally swap is the last fallible step, so a failure leaves the market
        untouched.
        """
        record = self._registry.record(market_id)
        with record.lock:
            if record.is_closed:
                raise InvalidState(f"market {market_id} is closed", market_id=market_id)
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidArgument(f"amount must be a positive integer, got {amount!r}", amount=amount)
            if not isinstance(participant, str) or not participant:
                raise InvalidArgument("participant must be a non-empty string")
            if not isinstance(encrypted_choice, Cipher) or encrypted_choice.type != CipherType.UINT32:
                raise InvalidArgument("encrypted choice must be a euint32 ciphertext")
            if not self._backend.knows(encrypted_choice):
                raise InvalidArgument(f"unknown ciphertext handle {encrypted_choice.handle}")
            if self._backend.owner_of(encrypted_choice) != participant:
                raise InvalidArgument(
                    "encrypted choice was not submitted by the participant",
                    participant=participant,
                )
            key = (market_id, participant)
            if self.record(market_id, participant) is not None:
                raise AlreadyExists(
                    f"{participant} already has a bet on market {market_id}",
                    market_id=market_id,
                    participant=participant,
                )

            handle = encrypted_choice.handle
            with self._lock:
                if handle in self._spent:
                    raise InvalidArgument(f"ciphertext {handle} was already used as a bet choice")
                self._spent.add(handle)
            try:
                self._backend.allow(encrypted_choice, self._ledger_principal)
                self._tally.increment_record(record, encrypted_choice)
            except BaseException:
                with self._lock:
                    self._spent.discard(handle)
                raise

            with self._lock:
                self._bets[key] = BetRecord(choice=encrypted_choice, amount=amount)
            record.total_stake += amount
            record.participant_count += 1
            self._events.append(BetPlaced(market_id=market_id, participant=participant, amount=amount))
        log.info("bet_placed", market_id=market_id, participant=participant, amount=amount)

    def record(self, market_id: int, participant: str) -> BetRecord | None:
        with self._lock:
            return self._bets.get((market_id, participant))

    def get(self, market_id: int, participant: str) -> BetView | None:
        bet = self.record(market_id, participant)
        if bet is None:
            return None
        return BetView(market_id=market_id, participant=participant, choice=bet.choice, amount=bet.amount)

