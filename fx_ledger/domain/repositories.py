"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol, Sequence

from .models import (
    AdjustmentRecord,
    Currency,
    LedgerDayEntry,
    TransactionRecord,
    TransactionTotals,
)


class LedgerRepository(Protocol):
    """Persists one ledger entry per (date, currency)."""

    def get_entry(self, entry_date: date, currency: Currency) -> LedgerDayEntry | None:
        ...

    def list_entries(self, currency: Currency) -> Sequence[LedgerDayEntry]:
        """Return every entry for ``currency`` ordered by date ascending."""
        ...

    def upsert_entry(self, entry: LedgerDayEntry) -> None:
        ...


class TransactionStore(Protocol):
    """Provides the completed Buy/Sell transactions."""

    def get_transaction_totals(self, entry_date: date, currency: Currency) -> TransactionTotals:
        ...

    def get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        ...

    def list_transactions(self) -> Sequence[TransactionRecord]:
        ...

    def add_transaction(self, record: TransactionRecord) -> None:
        ...


class AdjustmentStore(Protocol):
    """Provides the append-only manual inventory adjustments."""

    def get_adjustment_total(self, entry_date: date, currency: Currency) -> Decimal:
        ...

    def get_adjustment(self, adjustment_id: str) -> AdjustmentRecord | None:
        ...

    def add_adjustment(self, record: AdjustmentRecord) -> None:
        ...
