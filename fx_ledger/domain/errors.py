"""Exception types raised by the inventory ledger."""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger failures."""


class UnknownCurrencyError(LedgerError, ValueError):
    """Raised when a currency code is outside the configured closed set."""

    def __init__(self, code: object) -> None:
        super().__init__(f"Unknown currency code: {code!r}")
        self.code = code


class RepositoryError(LedgerError):
    """Wraps an I/O failure raised by a storage back end."""
