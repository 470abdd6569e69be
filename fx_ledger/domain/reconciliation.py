"""Independent recomputation of ledger days against the transaction record."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from .models import ZERO, Currency
from .repositories import LedgerRepository
from .results import ReconciliationResult, ReconciliationSummary
from .services import BalanceCalculator, InventoryAggregator

logger = logging.getLogger(__name__)


class Reconciler:
    """Compares recorded purchases, sales and closing balances with freshly aggregated totals.

    Purchases and sales that drifted from the transaction record are overwritten on the
    entry. The closing balance is never touched; callers that need the chain corrected
    must run the cascade for that day afterwards.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        aggregator: InventoryAggregator,
        calculator: BalanceCalculator,
    ) -> None:
        self._repository = repository
        self._aggregator = aggregator
        self._calculator = calculator

    def reconcile(self, entry_date: date, currency: Currency) -> ReconciliationResult:
        currency = Currency.parse(currency)
        totals = self._aggregator.day_totals(entry_date, currency)
        entry = self._repository.get_entry(entry_date, currency)

        if entry is None:
            expected = self._calculator.compute(ZERO, totals.purchases, totals.sales, totals.adjustments)
            logger.warning("No ledger entry for %s %s to reconcile", currency.value, entry_date)
            return ReconciliationResult(
                date=entry_date,
                currency=currency,
                opening_balance=ZERO,
                calculated_purchases=totals.purchases,
                recorded_purchases=ZERO,
                purchases_match=self._calculator.equal(totals.purchases, ZERO),
                calculated_sales=totals.sales,
                recorded_sales=ZERO,
                sales_match=self._calculator.equal(totals.sales, ZERO),
                adjustments=totals.adjustments,
                expected_closing=expected,
                recorded_closing=ZERO,
                balance_match=self._calculator.equal(expected, ZERO),
                entry_found=False,
            )

        purchases_match = self._calculator.equal(totals.purchases, entry.purchases)
        sales_match = self._calculator.equal(totals.sales, entry.sales)
        expected = self._calculator.compute(
            entry.opening_balance, totals.purchases, totals.sales, totals.adjustments
        )
        balance_match = self._calculator.equal(expected, entry.closing_balance)

        healed = False
        if not (purchases_match and sales_match):
            self._repository.upsert_entry(
                entry.with_changes(purchases=totals.purchases, sales=totals.sales)
            )
            healed = True
            logger.warning(
                "Corrected %s %s: purchases %s -> %s, sales %s -> %s",
                currency.value,
                entry_date,
                entry.purchases,
                totals.purchases,
                entry.sales,
                totals.sales,
            )
        if not balance_match:
            logger.warning(
                "Unresolved closing balance for %s %s: recorded %s, expected %s",
                currency.value,
                entry_date,
                entry.closing_balance,
                expected,
            )

        return ReconciliationResult(
            date=entry_date,
            currency=currency,
            opening_balance=entry.opening_balance,
            calculated_purchases=totals.purchases,
            recorded_purchases=entry.purchases,
            purchases_match=purchases_match,
            calculated_sales=totals.sales,
            recorded_sales=entry.sales,
            sales_match=sales_match,
            adjustments=totals.adjustments,
            expected_closing=expected,
            recorded_closing=entry.closing_balance,
            balance_match=balance_match,
            healed=healed,
        )

    def reconcile_all(self, entry_date: date, currencies: Iterable[Currency]) -> ReconciliationSummary:
        results: dict[Currency, ReconciliationResult] = {}
        discrepancies: list[str] = []
        for currency in currencies:
            result = self.reconcile(entry_date, currency)
            results[result.currency] = result
            discrepancies.extend(result.discrepancies())
        all_reconciled = all(result.reconciled for result in results.values())
        return ReconciliationSummary(
            date=entry_date,
            all_reconciled=all_reconciled,
            discrepancies=tuple(discrepancies),
            results=results,
        )
