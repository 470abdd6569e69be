"""Forward cascade keeping each day's opening equal to its predecessor's closing."""
from __future__ import annotations

import logging
from datetime import date

from .models import Currency, LedgerDayEntry
from .repositories import LedgerRepository
from .results import CascadeOutcome
from .services import BalanceCalculator, DayEntryResolver, InventoryAggregator, seed_opening

logger = logging.getLogger(__name__)


class CascadePropagator:
    """Recomputes one day from its flows, then walks every later day of the currency once.

    Later entries keep their recorded purchases, sales and adjustments; only their
    opening and closing balances move, so a single ascending pass reaches the fixed
    point. Entries are persisted one at a time, so an error part way through leaves
    the earlier part of the chain already consistent.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        aggregator: InventoryAggregator,
        resolver: DayEntryResolver,
        calculator: BalanceCalculator,
    ) -> None:
        self._repository = repository
        self._aggregator = aggregator
        self._resolver = resolver
        self._calculator = calculator

    def update_inventory(self, entry_date: date, currency: Currency) -> CascadeOutcome:
        currency = Currency.parse(currency)
        entry = self._resolver.resolve_entry(entry_date, currency)

        totals = self._aggregator.day_totals(entry_date, currency)
        closing = self._calculator.compute(
            entry.opening_balance, totals.purchases, totals.sales, totals.adjustments
        )
        entry = entry.with_changes(
            purchases=totals.purchases,
            sales=totals.sales,
            adjustments=totals.adjustments,
            closing_balance=closing,
        )
        self._repository.upsert_entry(entry)
        logger.debug(
            "Updated %s %s: opening=%s purchases=%s sales=%s adjustments=%s closing=%s",
            currency.value,
            entry_date,
            entry.opening_balance,
            entry.purchases,
            entry.sales,
            entry.adjustments,
            entry.closing_balance,
        )

        revised, visited = self.propagate(entry)
        return CascadeOutcome(entry=entry, revised=tuple(revised), visited=visited)

    def propagate(self, anchor: LedgerDayEntry) -> tuple[list[LedgerDayEntry], int]:
        """Re-seed every entry after ``anchor``; returns the rewritten entries and the count visited."""
        later = [e for e in self._repository.list_entries(anchor.currency) if e.date > anchor.date]
        later.sort(key=lambda e: e.date)

        revised: list[LedgerDayEntry] = []
        previous = anchor
        for entry in later:
            opening, source = seed_opening(previous, entry.date, self._resolver.strategy)
            updated = entry.with_changes(opening_balance=opening, opening_source=source)
            updated = updated.with_changes(closing_balance=self._calculator.recompute(updated))
            if updated != entry:
                self._repository.upsert_entry(updated)
                revised.append(updated)
                logger.debug(
                    "Cascade %s %s: opening %s -> %s, closing %s -> %s",
                    entry.currency.value,
                    entry.date,
                    entry.opening_balance,
                    updated.opening_balance,
                    entry.closing_balance,
                    updated.closing_balance,
                )
            previous = updated

        if revised:
            logger.info(
                "Cascade from %s %s revised %d of %d later entries",
                anchor.currency.value,
                anchor.date,
                len(revised),
                len(later),
            )
        return revised, len(later)
