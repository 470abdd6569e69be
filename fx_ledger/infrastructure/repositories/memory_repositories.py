"""In-memory stores keyed by (date, currency)."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from fx_ledger.domain.models import (
    ZERO,
    AdjustmentRecord,
    Currency,
    Direction,
    LedgerDayEntry,
    LedgerKey,
    TransactionRecord,
    TransactionTotals,
)
from fx_ledger.domain.repositories import AdjustmentStore, LedgerRepository, TransactionStore


class InMemoryLedgerRepository(LedgerRepository):
    def __init__(self, entries: Iterable[LedgerDayEntry] = ()) -> None:
        self._entries: dict[LedgerKey, LedgerDayEntry] = {}
        for entry in entries:
            self.upsert_entry(entry)

    def get_entry(self, entry_date: date, currency: Currency) -> LedgerDayEntry | None:
        return self._entries.get(LedgerKey(entry_date, Currency.parse(currency)))

    def list_entries(self, currency: Currency) -> Sequence[LedgerDayEntry]:
        currency = Currency.parse(currency)
        return sorted(
            (entry for entry in self._entries.values() if entry.currency is currency),
            key=lambda entry: entry.date,
        )

    def upsert_entry(self, entry: LedgerDayEntry) -> None:
        self._entries[entry.ledger_key] = entry

    def __len__(self) -> int:
        return len(self._entries)


class InMemoryTransactionStore(TransactionStore):
    def __init__(self, records: Iterable[TransactionRecord] = ()) -> None:
        self._records: dict[str, TransactionRecord] = {}
        for record in records:
            self.add_transaction(record)

    def get_transaction_totals(self, entry_date: date, currency: Currency) -> TransactionTotals:
        return totals_for(self._records.values(), entry_date, Currency.parse(currency))

    def get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        return self._records.get(transaction_id)

    def list_transactions(self) -> Sequence[TransactionRecord]:
        return list(self._records.values())

    def add_transaction(self, record: TransactionRecord) -> None:
        if record.transaction_id in self._records:
            raise ValueError(f"Transaction {record.transaction_id} already recorded")
        self._records[record.transaction_id] = record


class InMemoryAdjustmentStore(AdjustmentStore):
    def __init__(self, records: Iterable[AdjustmentRecord] = ()) -> None:
        self._records: dict[str, AdjustmentRecord] = {}
        for record in records:
            self.add_adjustment(record)

    def get_adjustment_total(self, entry_date: date, currency: Currency) -> Decimal:
        return adjustment_total_for(self._records.values(), entry_date, Currency.parse(currency))

    def get_adjustment(self, adjustment_id: str) -> AdjustmentRecord | None:
        return self._records.get(adjustment_id)

    def add_adjustment(self, record: AdjustmentRecord) -> None:
        if record.adjustment_id in self._records:
            raise ValueError(f"Adjustment {record.adjustment_id} already recorded")
        self._records[record.adjustment_id] = record


def totals_for(records: Iterable[TransactionRecord], entry_date: date, currency: Currency) -> TransactionTotals:
    purchases = ZERO
    sales = ZERO
    for record in records:
        if record.date != entry_date or record.currency is not currency:
            continue
        if record.direction is Direction.BUY:
            purchases += record.amount
        else:
            sales += record.amount
    return TransactionTotals(purchases=purchases, sales=sales)


def adjustment_total_for(records: Iterable[AdjustmentRecord], entry_date: date, currency: Currency) -> Decimal:
    return sum(
        (record.amount for record in records if record.date == entry_date and record.currency is currency),
        ZERO,
    )
