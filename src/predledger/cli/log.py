"""Log subcommand: stats, list."""

from __future__ import annotations

import typer

from predledger.storage.db import get_connection, init_schema
from predledger.storage.event_log import list_events, log_stats

app = typer.Typer(help="Persisted ledger event log")


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show event log statistics (counts, time range, by kind and market)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = log_stats(conn)
        typer.echo(f"Total events: {s['total_events']}")
        typer.echo(f"Min ts: {s.get('min_ts')}")
        typer.echo(f"Max ts: {s.get('max_ts')}")
        if s.get("by_kind"):
            typer.echo("By kind:")
            for row in s["by_kind"]:
                typer.echo(f"  {row['kind']:<26} {row['count']}")
        if s.get("by_market"):
            typer.echo("By market (top 20):")
            for row in s["by_market"]:
                typer.echo(f"  {row['market_id']}  {row['count']}")
    finally:
        conn.close()


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    market: int | None = typer.Option(None, "--market", "-m", help="Filter by market ID"),
    limit: int = typer.Option(100, "--limit", "-n", help="Max events to show"),
) -> None:
    """List persisted events in sequence order."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = list_events(conn, market_id=market, limit=limit)
        for r in rows:
            amount = f"  amount={r['amount']}" if r.get("amount") is not None else ""
            typer.echo(f"  #{r['seq']:<5} m{r['market_id']:<4} {r['kind']:<26} {r.get('principal') or ''}{amount}")
        typer.echo(f"Total: {len(rows)} events")
    finally:
        conn.close()
