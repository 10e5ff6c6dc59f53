"""Ordered ledger event log, in memory, with an optional DuckDB sink."""

from __future__ import annotations

import time
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable

import structlog

from predledger.models.events import (
    BetAccessGranted,
    BetPlaced,
    LedgerEvent,
    MarketCreated,
    OptionCountAccessGranted,
    PredictionClosed,
)

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

EventSink = Callable[[LedgerEvent], None]


class EventLog:
    """Append-only, globally ordered. Sinks see events in sequence order."""

    def __init__(self) -> None:
        self._events: list[LedgerEvent] = []
        self._sinks: list[EventSink] = []
        self._sink_failures = 0
        self._lock = Lock()

    def subscribe(self, sink: EventSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def append(self, event: LedgerEvent) -> LedgerEvent:
        """Stamp seq/ts, record, and fan out to sinks. Returns the stamped event."""
        with self._lock:
            stamped = event.model_copy(
                update={"seq": len(self._events) + 1, "ts": event.ts or int(time.time() * 1000)}
            )
            self._events.append(stamped)
            for sink in self._sinks:
                # The in-memory log is authoritative; a failing sink must not undo a committed operation.
                try:
                    sink(stamped)
                except Exception:
                    self._sink_failures += 1
                    log.exception("event_sink_failed", seq=stamped.seq, kind=getattr(stamped, "kind", None))
        return stamped

    def events(self, market_id: int | None = None) -> list[LedgerEvent]:
        with self._lock:
            if market_id is None:
                return list(self._events)
            return [e for e in self._events if e.market_id == market_id]

    def __len__(self) -> int:
        return len(self._events)

    @property
    def sink_failures(self) -> int:
        """Events a sink failed to take. Non-zero means a persisted log is behind this one."""
        return self._sink_failures


def _event_principal(event: LedgerEvent) -> str | None:
    if isinstance(event, MarketCreated):
        return event.creator
    if isinstance(event, BetPlaced):
        return event.participant
    if isinstance(event, (OptionCountAccessGranted, BetAccessGranted)):
        return event.principal
    if isinstance(event, PredictionClosed):
        return event.closer
    return None


def append_event(conn: DuckDBPyConnection, event: LedgerEvent) -> None:
    """Append a single stamped event to ledger_events."""
    conn.execute(
        """
        INSERT INTO ledger_events (seq, kind, market_id, principal, amount, ts, payload)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            event.seq,
            getattr(event, "kind", type(event).__name__),
            event.market_id,
            _event_principal(event),
            getattr(event, "amount", None),
            event.ts,
            event.model_dump_json(),
        ],
    )


class DuckDBEventSink:
    """EventLog sink persisting each event to DuckDB. Called under the log's lock."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self.conn = conn

    def __call__(self, event: LedgerEvent) -> None:
        append_event(self.conn, event)


def log_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return event log statistics: total count, ts range, counts by kind and by market."""
    total = conn.execute("SELECT COUNT(*) FROM ledger_events").fetchone()[0]
    min_ts, max_ts = conn.execute("SELECT MIN(ts), MAX(ts) FROM ledger_events").fetchone()
    by_kind = conn.execute(
        "SELECT kind, COUNT(*) AS cnt FROM ledger_events GROUP BY kind ORDER BY cnt DESC, kind"
    ).fetchall()
    by_market = conn.execute(
        "SELECT market_id, COUNT(*) AS cnt FROM ledger_events GROUP BY market_id ORDER BY cnt DESC, market_id LIMIT 20"
    ).fetchall()
    return {
        "total_events": total,
        "min_ts": min_ts,
        "max_ts": max_ts,
        "by_kind": [{"kind": r[0], "count": r[1]} for r in by_kind],
        "by_market": [{"market_id": r[0], "count": r[1]} for r in by_market],
    }


def list_events(conn: DuckDBPyConnection, market_id: int | None = None, limit: int = 100) -> list[dict]:
    """List persisted events in sequence order, optionally for one market."""
    columns = ["seq", "kind", "market_id", "principal", "amount", "ts"]
    if market_id is None:
        rows = conn.execute(
            "SELECT seq, kind, market_id, principal, amount, ts FROM ledger_events ORDER BY seq LIMIT ?",
            [limit],
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT seq, kind, market_id, principal, amount, ts FROM ledger_events WHERE market_id = ? ORDER BY seq LIMIT ?",
            [market_id, limit],
        ).fetchall()
    return [dict(zip(columns, r)) for r in rows]
