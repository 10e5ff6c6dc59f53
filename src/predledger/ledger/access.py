"""Access control manager - decrypt grants over tally and bet ciphertexts.

Grants attach to handles, not to counter slots. A tally update mints new
handles, so tally grants must be re-requested after every bet. Grants are
never revoked.
"""

from __future__ import annotations

from collections.abc import Iterable
from threading import Lock

import structlog

from predledger.errors import InvalidState, NoSuchBet
from predledger.fhe import Cipher, HomomorphicBackend
from predledger.ledger.bets import BetLedger
from predledger.ledger.registry import MarketRegistry
from predledger.models import BetAccessGranted, OptionCountAccessGranted
from predledger.storage.event_log import EventLog

log = structlog.get_logger(__name__)


class AccessControlManager:
    def __init__(
        self,
        registry: MarketRegistry,
        bets: BetLedger,
        backend: HomomorphicBackend,
        events: EventLog,
        ledger_principal: str,
    ) -> None:
        self._registry = registry
        self._bets = bets
        self._backend = backend
        self._events = events
        self._ledger_principal = ledger_principal
        # handle -> principals granted through this manager (audit record)
        self._grants: dict[str, set[str]] = {}
        self._lock = Lock()

    def _grant_all(self, ciphers: Iterable[Cipher], principal: str) -> None:
        ciphers = list(ciphers)
        for cipher in ciphers:
            if not self._backend.is_allowed(cipher, self._ledger_principal):
                raise InvalidState(f"ledger holds no standing grant on {cipher.handle}", handle=cipher.handle)
        for cipher in ciphers:
            self._backend.allow(cipher, principal)
            with self._lock:
                self._grants.setdefault(cipher.handle, set()).add(principal)

    def grant_tally_access(self, market_id: int, principal: str) -> None:
        """Grant principal decrypt access to the market's current tally handles."""
        record = self._registry.record(market_id)
        with record.lock:
            self._grant_all(record.tallies, principal)
            self._events.append(OptionCountAccessGranted(market_id=market_id, principal=principal))
        log.info("grant_issued", scope="tallies", market_id=market_id, principal=principal)

    def grant_bet_access(self, market_id: int, principal: str) -> None:
        """Grant principal decrypt access to its own bet choice, and nothing else."""
        record = self._registry.record(market_id)
        with record.lock:
            bet = self._bets.record(market_id, principal)
            if bet is None:
                raise NoSuchBet(f"{principal} has no bet on market {market_id}", market_id=market_id)
            self._grant_all([bet.choice], principal)
            self._events.append(BetAccessGranted(market_id=market_id, principal=principal))
        log.info("grant_issued", scope="bet", market_id=market_id, principal=principal)

    def authorized(self, cipher: Cipher) -> frozenset[str]:
        """Principals granted on this handle through this manager."""
        with self._lock:
            return frozenset(self._grants.get(cipher.handle, ()))
