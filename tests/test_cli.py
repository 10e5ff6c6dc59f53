"""CLI smoke tests: demo against both backends, event log commands."""

import pytest
from typer.testing import CliRunner

from predledger.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def keep_default_logging(monkeypatch):
    # Cached loggers would otherwise keep writing to a finished runner's stdout
    monkeypatch.setattr("predledger.cli.app.configure_logging", lambda settings: None)


def test_demo_mock(tmp_path):
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "demo", "--close", "1"])
    assert result.exit_code == 0, result.output
    assert "Created market 0" in result.output
    assert "Total stake: 175  Participants: 3" in result.output
    assert "Option 0 (Sunny): 1" in result.output
    assert "Option 1 (Rainy): 2" in result.output
    assert "Option 2 (Snow): 0" in result.output
    assert "alice decrypted own choice: 1" in result.output
    assert "Closed market 0 with result 1" in result.output


def test_demo_sealed_backend(tmp_path):
    (tmp_path / "default.toml").write_text('[backend]\nname = "sealed"\n[logging]\nlevel = "WARNING"\n')
    result = runner.invoke(
        app, ["--config-dir", str(tmp_path), "demo", "-o", "Yes,No", "-b", "ann:0:5", "-b", "ben:0:7"]
    )
    assert result.exit_code == 0, result.output
    assert "Option 0 (Yes): 2" in result.output
    assert "Option 1 (No): 0" in result.output
    assert "ann decrypted own choice: 0" in result.output


def test_demo_rejects_bad_market(tmp_path):
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "demo", "-o", "OnlyOne"])
    assert result.exit_code == 1
    assert "invalid_argument" in result.output


def test_demo_persists_events_for_log_commands(tmp_path):
    db_path = tmp_path / "ledger.duckdb"
    (tmp_path / "default.toml").write_text(
        f'[storage]\ndb_path = "{db_path.as_posix()}"\npersist_events = true\n[logging]\nlevel = "WARNING"\n'
    )
    assert runner.invoke(app, ["--config-dir", str(tmp_path), "demo", "--close", "0"]).exit_code == 0

    stats = runner.invoke(app, ["--config-dir", str(tmp_path), "log", "stats"])
    assert stats.exit_code == 0, stats.output
    # create + 3 bets + tally grant + bet grant + close
    assert "Total events: 7" in stats.output

    listing = runner.invoke(app, ["--config-dir", str(tmp_path), "log", "list", "--market", "0"])
    assert "PredictionClosed" in listing.output
    assert "Total: 7 events" in listing.output
