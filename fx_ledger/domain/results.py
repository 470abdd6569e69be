"""Domain-level results for ledger cascades and reconciliation."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .models import Currency, LedgerDayEntry


@dataclass(frozen=True)
class CascadeOutcome:
    """The recomputed entry plus every later entry the forward pass rewrote."""

    entry: LedgerDayEntry
    revised: Sequence[LedgerDayEntry] = field(default_factory=tuple)
    visited: int = 0

    @property
    def changed_later_entries(self) -> int:
        return len(self.revised)


@dataclass(frozen=True)
class ReconciliationResult:
    date: date
    currency: Currency
    opening_balance: Decimal
    calculated_purchases: Decimal
    recorded_purchases: Decimal
    purchases_match: bool
    calculated_sales: Decimal
    recorded_sales: Decimal
    sales_match: bool
    adjustments: Decimal
    expected_closing: Decimal
    recorded_closing: Decimal
    balance_match: bool
    healed: bool = False
    entry_found: bool = True

    @property
    def reconciled(self) -> bool:
        return self.purchases_match and self.sales_match and self.balance_match

    @property
    def unresolved(self) -> bool:
        """A closing mismatch is never corrected here, so it stays unresolved."""
        return not self.balance_match

    def discrepancies(self) -> list[str]:
        label = f"{self.currency.value} {self.date.isoformat()}"
        messages: list[str] = []
        if not self.entry_found:
            if not self.reconciled:
                messages.append(
                    f"{label}: no ledger entry recorded for purchases {self.calculated_purchases}, "
                    f"sales {self.calculated_sales}, adjustments {self.adjustments}"
                )
            return messages
        if not self.purchases_match:
            messages.append(
                f"{label}: purchases recorded {self.recorded_purchases} but transactions total "
                f"{self.calculated_purchases}" + (" (corrected)" if self.healed else "")
            )
        if not self.sales_match:
            messages.append(
                f"{label}: sales recorded {self.recorded_sales} but transactions total "
                f"{self.calculated_sales}" + (" (corrected)" if self.healed else "")
            )
        if not self.balance_match:
            messages.append(
                f"{label}: closing balance recorded {self.recorded_closing} but expected {self.expected_closing} (unresolved)"
            )
        return messages


@dataclass(frozen=True)
class ReconciliationSummary:
    date: date
    all_reconciled: bool
    discrepancies: Sequence[str] = field(default_factory=tuple)
    results: Mapping[Currency, ReconciliationResult] = field(default_factory=dict)

    def has_issues(self) -> bool:
        return not self.all_reconciled

    def iter_results(self) -> Iterable[ReconciliationResult]:
        yield from self.results.values()
