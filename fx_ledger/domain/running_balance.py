"""Per-transaction running balances for display."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from .models import ZERO, Currency, TransactionRecord


@dataclass(frozen=True)
class RunningBalanceRow:
    transaction: TransactionRecord
    balance: Decimal
    balances: Mapping[Currency, Decimal] = field(default_factory=dict)


def _sort_key(record: TransactionRecord) -> tuple[int, date]:
    if record.date is None:
        return (0, date.min)
    return (1, record.date)


def rebuild_running_balances(transactions: Iterable[TransactionRecord]) -> list[RunningBalanceRow]:
    """Walk transactions in date order keeping one cumulative total per currency.

    Records without a date sort first; ties keep their input order.
    """
    ordered = sorted(transactions, key=_sort_key)
    running: dict[Currency, Decimal] = {}
    rows: list[RunningBalanceRow] = []
    for record in ordered:
        running[record.currency] = running.get(record.currency, ZERO) + record.signed_amount()
        rows.append(
            RunningBalanceRow(
                transaction=record,
                balance=running[record.currency],
                balances=dict(running),
            )
        )
    return rows
