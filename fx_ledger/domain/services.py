"""Domain services computing and resolving ledger day entries."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Context, Decimal

from .models import (
    ZERO,
    Currency,
    DayTotals,
    LedgerDayEntry,
    OpeningSource,
    OpeningStrategy,
)
from .repositories import AdjustmentStore, LedgerRepository, TransactionStore

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.01")


class BalanceCalculator:
    """Pure closing-balance arithmetic with an absolute comparison tolerance."""

    def __init__(self, decimal_tolerance: Decimal | None = None, context: Context | None = None) -> None:
        if decimal_tolerance is None:
            decimal_tolerance = DEFAULT_TOLERANCE
        self._tolerance = decimal_tolerance
        self._context = context or Context(prec=28)

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def compute(self, opening: Decimal, purchases: Decimal, sales: Decimal, adjustments: Decimal) -> Decimal:
        ctx = self._context
        return ctx.add(ctx.subtract(ctx.add(opening, purchases), sales), adjustments)

    def recompute(self, entry: LedgerDayEntry) -> Decimal:
        return self.compute(entry.opening_balance, entry.purchases, entry.sales, entry.adjustments)

    def equal(self, left: Decimal, right: Decimal) -> bool:
        return abs(left - right) <= self._tolerance


class InventoryAggregator:
    """Collects a day's purchases, sales and adjustments from the external stores."""

    def __init__(self, transactions: TransactionStore, adjustments: AdjustmentStore) -> None:
        self._transactions = transactions
        self._adjustments = adjustments

    def day_totals(self, entry_date: date, currency: Currency) -> DayTotals:
        totals = self._transactions.get_transaction_totals(entry_date, currency)
        adjustments = self._adjustments.get_adjustment_total(entry_date, currency)
        return DayTotals(purchases=totals.purchases, sales=totals.sales, adjustments=adjustments)


def seed_opening(
    predecessor: LedgerDayEntry | None,
    entry_date: date,
    strategy: OpeningStrategy,
) -> tuple[Decimal, OpeningSource]:
    """Derive an opening balance from the latest earlier entry of the same currency."""
    if predecessor is None:
        return ZERO, OpeningSource.INITIAL
    if predecessor.date == entry_date - timedelta(days=1):
        return predecessor.closing_balance, OpeningSource.PREVIOUS_DAY
    if strategy is OpeningStrategy.NEAREST_PRIOR:
        return predecessor.closing_balance, OpeningSource.MOST_RECENT_PRIOR
    return ZERO, OpeningSource.INITIAL


def find_predecessor(repository: LedgerRepository, entry_date: date, currency: Currency) -> LedgerDayEntry | None:
    previous = repository.get_entry(entry_date - timedelta(days=1), currency)
    if previous is not None:
        return previous
    latest: LedgerDayEntry | None = None
    for entry in repository.list_entries(currency):
        if entry.date >= entry_date:
            break
        latest = entry
    return latest


class DayEntryResolver:
    """Finds or creates the ledger entry for a (date, currency)."""

    def __init__(
        self,
        repository: LedgerRepository,
        calculator: BalanceCalculator,
        strategy: OpeningStrategy = OpeningStrategy.NEAREST_PRIOR,
    ) -> None:
        self._repository = repository
        self._calculator = calculator
        self._strategy = strategy

    @property
    def strategy(self) -> OpeningStrategy:
        return self._strategy

    def resolve_entry(self, entry_date: date, currency: Currency) -> LedgerDayEntry:
        if entry_date is None:
            raise ValueError("entry_date is required")
        currency = Currency.parse(currency)

        predecessor = find_predecessor(self._repository, entry_date, currency)
        opening, source = seed_opening(predecessor, entry_date, self._strategy)

        existing = self._repository.get_entry(entry_date, currency)
        if existing is None:
            entry = LedgerDayEntry(
                date=entry_date,
                currency=currency,
                opening_balance=opening,
                opening_source=source,
                closing_balance=opening,
            )
            logger.debug("Created ledger entry %s %s with opening %s (%s)", entry_date, currency.value, opening, source.value)
        else:
            entry = existing.with_changes(opening_balance=opening, opening_source=source)
            entry = entry.with_changes(closing_balance=self._calculator.recompute(entry))

        self._repository.upsert_entry(entry)
        return entry
