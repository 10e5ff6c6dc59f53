"""Encrypted tally engine - oblivious increment of one of N encrypted counters."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from predledger.errors import InvalidState
from predledger.fhe import Cipher, HomomorphicBackend
from predledger.ledger.registry import MarketRecord, MarketRegistry

log = structlog.get_logger(__name__)


class TallyEngine:
    """Per-option ciphertext counters. Callers hold the market lock around increment."""

    def __init__(self, registry: MarketRegistry, backend: HomomorphicBackend, ledger_principal: str) -> None:
        self._registry = registry
        self._backend = backend
        self._ledger_principal = ledger_principal

    def compute_increment(self, tallies: Sequence[Cipher], encrypted_choice: Cipher) -> list[Cipher]:
        """
        Return new counters c_i' = c_i + select(eq(x, i), 1, 0) for every i.
        Every branch is evaluated; a choice outside [0, k) matches none and
        leaves all counts unchanged. Inputs are not modified.
        """
        backend = self._backend
        one = backend.encrypt(1)
        zero = backend.encrypt(0)
        updated: list[Cipher] = []
        for index, counter in enumerate(tallies):
            matched = backend.eq(encrypted_choice, backend.encrypt(index))
            delta = backend.select(matched, one, zero)
            updated.append(backend.add(counter, delta))
        # Fresh handles carry no grants; restore the ledger's standing grant.
        for counter in updated:
            backend.allow(counter, self._ledger_principal)
        return updated

    def increment_record(self, record: MarketRecord, encrypted_choice: Cipher) -> None:
        """Compute all new counters, then swap them in as one assignment."""
        if record.is_closed:
            raise InvalidState(f"market {record.market_id} is closed", market_id=record.market_id)
        record.tallies = self.compute_increment(record.tallies, encrypted_choice)
        log.debug("tally_incremented", market_id=record.market_id, counters=len(record.tallies))

    def increment(self, market_id: int, encrypted_choice: Cipher) -> None:
        record = self._registry.record(market_id)
        with record.lock:
            self.increment_record(record, encrypted_choice)

    def read(self, market_id: int) -> list[Cipher]:
        """Current counter handles. No decryption, no capability check."""
        record = self._registry.record(market_id)
        with record.lock:
            return list(record.tallies)
