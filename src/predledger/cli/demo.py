"""Demo subcommand: create a market, place encrypted bets, decrypt tallies, close."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import typer
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from predledger.errors import LedgerError
from predledger.fhe import Cipher
from predledger.fhe.sealed import principal_for, sign_decrypt_request
from predledger.ledger import MarketOperationProcessor
from predledger.storage.db import get_connection, init_schema
from predledger.storage.event_log import DuckDBEventSink, EventLog

app = typer.Typer(help="Run a scripted market against the configured backend")


@dataclass
class Participant:
    """A named caller. Under the sealed backend it holds an Ed25519 key."""

    name: str
    key: Ed25519PrivateKey | None = field(default=None, repr=False)

    @property
    def principal(self) -> str:
        return principal_for(self.key) if self.key is not None else self.name

    def credential(self, cipher: Cipher) -> Any:
        if self.key is not None:
            return sign_decrypt_request(self.key, cipher)
        return self.name


def parse_bet(spec: str) -> tuple[str, int, int]:
    """Parse 'name:option:amount'."""
    parts = spec.split(":")
    if len(parts) != 3:
        raise typer.BadParameter(f"bet must be name:option:amount, got {spec!r}")
    name, option, amount = parts
    try:
        return name.strip(), int(option), int(amount)
    except ValueError:
        raise typer.BadParameter(f"option and amount must be integers in {spec!r}") from None


@app.callback(invoke_without_command=True)
def demo(
    ctx: typer.Context,
    title: str = typer.Option("Weather", "--title", "-t", help="Market title"),
    options: str = typer.Option("Sunny,Rainy,Snow", "--options", "-o", help="Comma separated list with 2-4 options"),
    bets: list[str] = typer.Option(
        ["alice:1:100", "bob:1:50", "carol:0:25"], "--bet", "-b", help="name:option:amount (repeatable)"
    ),
    close: int | None = typer.Option(None, "--close", help="Winning option index to close with"),
) -> None:
    """Create a market, bet, grant tally access to the first bettor, decrypt and print."""
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"]
    events = EventLog()
    conn = None
    if settings.persist_events:
        conn = get_connection(settings.db_path)
        init_schema(conn)
        events.subscribe(DuckDBEventSink(conn))
    try:
        processor = MarketOperationProcessor.from_settings(settings, events=events)
        sealed = processor.backend.name == "sealed"
        people: dict[str, Participant] = {}

        def person(name: str) -> Participant:
            if name not in people:
                people[name] = Participant(name, Ed25519PrivateKey.generate() if sealed else None)
            return people[name]

        creator = person("creator")
        option_list = [o.strip() for o in options.split(",") if o.strip()]
        market_id = processor.create_market(creator.principal, title, option_list)
        typer.echo(f"Created market {market_id}: {title} {option_list}")

        parsed = [parse_bet(b) for b in bets]
        for name, option, amount in parsed:
            bettor = person(name)
            choice = processor.backend.encrypt(option, owner=bettor.principal)
            processor.place_bet(bettor.principal, market_id, choice, amount)
            typer.echo(f"  {name} staked {amount}")

        market = processor.get_market(market_id)
        typer.echo(f"Total stake: {market.total_stake}  Participants: {market.participant_count}")

        viewer = person(parsed[0][0]) if parsed else creator
        processor.grant_tally_access(viewer.principal, market_id)
        for index, cipher in enumerate(processor.get_tallies(market_id)):
            count = processor.backend.decrypt(cipher, viewer.principal, viewer.credential(cipher))
            typer.echo(f"Option {index} ({market.options[index]}): {count}")

        if parsed:
            processor.grant_bet_access(viewer.principal, market_id)
            bet = processor.get_bet(market_id, viewer.principal)
            own = processor.backend.decrypt(bet.choice, viewer.principal, viewer.credential(bet.choice))
            typer.echo(f"{viewer.name} decrypted own choice: {own}")

        if close is not None:
            processor.close_market(creator.principal, market_id, close)
            typer.echo(f"Closed market {market_id} with result {close}")
        typer.echo(f"Events emitted: {len(events)}")
    except LedgerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        if conn is not None:
            conn.close()
