"""Ledger failure taxonomy. Every failure is raised before any state mutation."""

from __future__ import annotations


class LedgerError(Exception):
    """Base for engine-level failures. `code` is the machine-readable kind."""

    code: str = "ledger_error"

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidArgument(LedgerError):
    """Malformed input: empty strings, bad option counts, non-positive amounts."""

    code = "invalid_argument"


class NotFound(LedgerError):
    code = "not_found"


class NoSuchBet(NotFound):
    """Principal has no bet on the market."""

    code = "no_such_bet"


class InvalidState(LedgerError):
    """Operation not valid for the market's lifecycle state."""

    code = "invalid_state"


class AlreadyExists(LedgerError):
    code = "already_exists"
