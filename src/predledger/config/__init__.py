"""Configuration: TOML defaults, profiles, logging setup."""

from predledger.config.settings import Settings, configure_logging, get_settings, load_config

__all__ = ["Settings", "configure_logging", "get_settings", "load_config"]
