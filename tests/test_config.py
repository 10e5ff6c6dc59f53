"""Config loading, profile overlay, processor construction from settings."""

from predledger.config import Settings, get_settings, load_config
from predledger.fhe import MockBackend, SealedBackend
from predledger.ledger import MarketOperationProcessor


def write(path, text):
    path.write_text(text)
    return path


def test_defaults_without_config(tmp_path):
    settings = get_settings(config_dir=tmp_path)
    assert settings.backend_name == "mock"
    assert settings.ledger_principal == "predledger"
    assert settings.persist_events is False
    assert settings.logging_level == "INFO"
    assert settings.sealed_key_hex is None


def test_profile_overlays_default(tmp_path):
    write(tmp_path / "default.toml", '[backend]\nname = "mock"\n[logging]\nlevel = "info"\nformat = "console"\n')
    write(tmp_path / "dev.toml", '[logging]\nlevel = "debug"\n')
    raw = load_config("dev", tmp_path)
    assert raw["logging"] == {"level": "debug", "format": "console"}
    settings = Settings.from_dict(raw)
    assert settings.logging_level == "DEBUG"
    assert settings.logging_level_num == 10


def test_processor_from_settings():
    mock = MarketOperationProcessor.from_settings(Settings(ledger={"principal": "ledger-x"}))
    assert isinstance(mock.backend, MockBackend)
    assert mock.ledger_principal == "ledger-x"

    sealed = MarketOperationProcessor.from_settings(
        Settings(backend={"name": "sealed", "sealed_key_hex": "11" * 32})
    )
    assert isinstance(sealed.backend, SealedBackend)
    market_id = sealed.create_market("c", "Q", ["Yes", "No"])
    assert all(sealed.backend.is_allowed(c, "predledger") for c in sealed.get_tallies(market_id))


def test_configure_logging_json(capsys):
    import structlog

    from predledger.config import configure_logging

    configure_logging(Settings(logging={"format": "json", "level": "warning"}))
    try:
        logger = structlog.get_logger("predledger.test")
        logger.info("hidden")
        logger.warning("shown", market_id=3)
        out = capsys.readouterr().out
        assert "hidden" not in out
        assert '"event": "shown"' in out
        assert '"market_id": 3' in out
    finally:
        structlog.reset_defaults()
