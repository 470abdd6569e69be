"""Application services orchestrating ledger updates and reconciliation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Sequence

from fx_ledger.application.dto import OperationResult, StepLog
from fx_ledger.application.locking import CurrencyLockRegistry
from fx_ledger.config import SETTINGS, Settings
from fx_ledger.domain.errors import RepositoryError, UnknownCurrencyError
from fx_ledger.domain.models import AdjustmentRecord, Currency, TransactionRecord
from fx_ledger.domain.propagation import CascadePropagator
from fx_ledger.domain.reconciliation import Reconciler
from fx_ledger.domain.repositories import AdjustmentStore, LedgerRepository, TransactionStore
from fx_ledger.domain.running_balance import RunningBalanceRow, rebuild_running_balances
from fx_ledger.domain.services import BalanceCalculator, DayEntryResolver, InventoryAggregator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LedgerContext:
    ledger_repository: LedgerRepository
    transaction_store: TransactionStore
    adjustment_store: AdjustmentStore
    settings: Settings = SETTINGS
    locks: CurrencyLockRegistry = field(default_factory=CurrencyLockRegistry)


class _LedgerUseCase:
    def __init__(self, context: LedgerContext) -> None:
        self._context = context
        settings = context.settings
        self._calculator = BalanceCalculator(settings.tolerance_abs, settings.decimal_context)
        self._aggregator = InventoryAggregator(context.transaction_store, context.adjustment_store)
        self._resolver = DayEntryResolver(
            context.ledger_repository, self._calculator, settings.opening_strategy
        )
        self._propagator = CascadePropagator(
            context.ledger_repository, self._aggregator, self._resolver, self._calculator
        )
        self._reconciler = Reconciler(context.ledger_repository, self._aggregator, self._calculator)

    def _configured(self, currency: Currency | str) -> Currency:
        parsed = Currency.parse(currency)
        if parsed not in self._context.settings.currencies:
            raise UnknownCurrencyError(currency)
        return parsed

    def _cascade(self, entry_date: date, currency: Currency, steps: StepLog) -> OperationResult:
        """Run the cascade for one day; the caller must hold the currency lock."""
        steps.add(f"Updating {currency.value} inventory for {entry_date.isoformat()}")
        try:
            outcome = self._propagator.update_inventory(entry_date, currency)
        except RepositoryError as exc:
            logger.error("Inventory update failed for %s %s", currency.value, entry_date, exc_info=True)
            steps.add("Inventory update failed")
            return OperationResult(success=False, message=str(exc), steps=steps.freeze())
        steps.add(f"Propagated to {outcome.changed_later_entries} of {outcome.visited} later dates")
        entry = outcome.entry
        return OperationResult(
            success=True,
            message=(
                f"{currency.value} {entry_date.isoformat()}: opening {entry.opening_balance}, "
                f"closing {entry.closing_balance}"
            ),
            entry=entry,
            steps=steps.freeze(),
            data=outcome,
        )


class UpdateInventoryUseCase(_LedgerUseCase):
    def execute(self, entry_date: date, currency: Currency | str) -> OperationResult:
        currency = self._configured(currency)
        steps = StepLog()
        with self._context.locks.hold(currency):
            return self._cascade(entry_date, currency, steps)


class UpdateDailyInventoryUseCase(_LedgerUseCase):
    """Scheduled or manual refresh of every configured currency for one date."""

    def execute(self, entry_date: date | None = None) -> OperationResult:
        entry_date = entry_date or date.today()
        steps = StepLog()
        results: dict[Currency, OperationResult] = {}
        for currency in self._context.settings.currencies:
            with self._context.locks.hold(currency):
                results[currency] = self._cascade(entry_date, currency, StepLog())
            steps.add(f"{currency.value}: {results[currency].message}")
        failed = [c.value for c, r in results.items() if not r.success]
        if failed:
            message = f"Daily inventory update failed for {', '.join(failed)}"
        else:
            message = f"Daily inventory updated for {len(results)} currencies on {entry_date.isoformat()}"
        return OperationResult(success=not failed, message=message, steps=steps.freeze(), data=results)


class RecordTransactionUseCase(_LedgerUseCase):
    """Stores a new transaction and brings the inventory for its day up to date."""

    def execute(self, record: TransactionRecord) -> OperationResult:
        currency = self._configured(record.currency)
        steps = StepLog()
        with self._context.locks.hold(currency):
            steps.add(f"Recording transaction {record.transaction_id}")
            try:
                self._context.transaction_store.add_transaction(record)
            except RepositoryError as exc:
                logger.error("Could not store transaction %s", record.transaction_id, exc_info=True)
                return OperationResult(success=False, message=str(exc), steps=steps.freeze())
            if record.date is None:
                steps.add("Transaction has no date; inventory not updated")
                return OperationResult(
                    success=False,
                    message=f"Transaction {record.transaction_id} recorded without a date",
                    steps=steps.freeze(),
                )
            return self._cascade(record.date, currency, steps)


class RecordAdjustmentUseCase(_LedgerUseCase):
    def execute(self, record: AdjustmentRecord) -> OperationResult:
        currency = self._configured(record.currency)
        steps = StepLog()
        with self._context.locks.hold(currency):
            steps.add(f"Recording adjustment {record.adjustment_id} ({record.amount})")
            try:
                self._context.adjustment_store.add_adjustment(record)
            except RepositoryError as exc:
                logger.error("Could not store adjustment %s", record.adjustment_id, exc_info=True)
                return OperationResult(success=False, message=str(exc), steps=steps.freeze())
            return self._cascade(record.date, currency, steps)


class ReprocessTransactionUseCase(_LedgerUseCase):
    """Re-runs the cascade for the day of an already stored transaction."""

    def execute(self, transaction_id: str) -> OperationResult:
        steps = StepLog()
        steps.add(f"Looking up transaction {transaction_id}")
        record = self._context.transaction_store.get_transaction(transaction_id)
        if record is None or record.date is None:
            reason = "not found" if record is None else "has no date"
            return OperationResult(
                success=False, message=f"Transaction {transaction_id} {reason}", steps=steps.freeze()
            )
        currency = self._configured(record.currency)
        with self._context.locks.hold(currency):
            return self._cascade(record.date, currency, steps)


class ReprocessAdjustmentUseCase(_LedgerUseCase):
    def execute(self, adjustment_id: str) -> OperationResult:
        steps = StepLog()
        steps.add(f"Looking up adjustment {adjustment_id}")
        record = self._context.adjustment_store.get_adjustment(adjustment_id)
        if record is None:
            return OperationResult(
                success=False, message=f"Adjustment {adjustment_id} not found", steps=steps.freeze()
            )
        currency = self._configured(record.currency)
        with self._context.locks.hold(currency):
            return self._cascade(record.date, currency, steps)


class RebuildRangeUseCase(_LedgerUseCase):
    """Recomputes a date range as a sequence of single-day cascades under one lock.

    Only dates that already have an entry or carry activity are touched. A failure
    stops the sequence; dates finished before it stay cascaded.
    """

    def execute(self, currency: Currency | str, start: date, end: date) -> OperationResult:
        currency = self._configured(currency)
        if end < start:
            raise ValueError(f"Range end {end} is before start {start}")
        steps = StepLog()
        completed: list[date] = []
        with self._context.locks.hold(currency):
            for entry_date in self._dates_to_rebuild(currency, start, end):
                result = self._cascade(entry_date, currency, StepLog())
                if not result.success:
                    steps.add(f"Stopped at {entry_date.isoformat()}: {result.message}")
                    return OperationResult(
                        success=False,
                        message=f"Rebuild of {currency.value} stopped at {entry_date.isoformat()}",
                        steps=steps.freeze(),
                        data=tuple(completed),
                    )
                completed.append(entry_date)
                steps.add(f"Rebuilt {entry_date.isoformat()}")
        return OperationResult(
            success=True,
            message=f"Rebuilt {len(completed)} {currency.value} dates from {start.isoformat()} to {end.isoformat()}",
            steps=steps.freeze(),
            data=tuple(completed),
        )

    def _dates_to_rebuild(self, currency: Currency, start: date, end: date) -> list[date]:
        existing = {e.date for e in self._context.ledger_repository.list_entries(currency) if start <= e.date <= end}
        dates: list[date] = []
        current = start
        while current <= end:
            if current in existing or self._has_activity(current, currency):
                dates.append(current)
            current += timedelta(days=1)
        return dates

    def _has_activity(self, entry_date: date, currency: Currency) -> bool:
        totals = self._aggregator.day_totals(entry_date, currency)
        return any((totals.purchases, totals.sales, totals.adjustments))


class ReconcileUseCase(_LedgerUseCase):
    """Reconciles one currency or every configured currency for a date.

    With ``repair`` the cascade is re-run for every currency that showed a
    discrepancy, so healed purchases and sales flow into the closing balances.
    The date is then reconciled again and that second summary is returned. If a
    repair cascade fails the result is a failure naming the currencies involved.
    """

    def execute(
        self,
        entry_date: date,
        currency: Currency | str | None = None,
        repair: bool = False,
    ) -> OperationResult:
        if currency is not None:
            currencies: Sequence[Currency] = (self._configured(currency),)
        else:
            currencies = self._context.settings.currencies
        steps = StepLog()
        with self._context.locks.hold_all(currencies):
            try:
                summary = self._reconciler.reconcile_all(entry_date, currencies)
            except RepositoryError as exc:
                logger.error("Reconciliation failed for %s", entry_date, exc_info=True)
                return OperationResult(success=False, message=str(exc), steps=steps.freeze())
            steps.add(f"Reconciled {len(currencies)} currencies for {entry_date.isoformat()}")
            if repair and summary.has_issues():
                failures: dict[Currency, str] = {}
                for result in summary.iter_results():
                    if result.reconciled:
                        continue
                    for message in result.discrepancies():
                        steps.add(f"Found: {message}")
                    repaired = self._cascade(entry_date, result.currency, StepLog())
                    steps.add(f"Repair {result.currency.value}: {repaired.message}")
                    if not repaired.success:
                        failures[result.currency] = repaired.message
                if failures:
                    failed = ", ".join(f"{c.value} ({reason})" for c, reason in failures.items())
                    return OperationResult(
                        success=False,
                        message=f"Repair failed for {failed} on {entry_date.isoformat()}",
                        steps=steps.freeze(),
                        data=summary,
                    )
                try:
                    summary = self._reconciler.reconcile_all(entry_date, currencies)
                except RepositoryError as exc:
                    logger.error("Reconciliation after repair failed for %s", entry_date, exc_info=True)
                    return OperationResult(success=False, message=str(exc), steps=steps.freeze())
                steps.add(f"Reconciled again after repair for {entry_date.isoformat()}")
        if summary.all_reconciled:
            message = f"All currencies reconciled for {entry_date.isoformat()}"
        else:
            message = f"{len(summary.discrepancies)} discrepancies for {entry_date.isoformat()}"
        entry = None
        if len(currencies) == 1:
            entry = self._context.ledger_repository.get_entry(entry_date, currencies[0])
        return OperationResult(
            success=summary.all_reconciled,
            message=message,
            entry=entry,
            steps=steps.freeze(),
            data=summary,
        )


class RunningBalancesUseCase(_LedgerUseCase):
    def execute(self, transactions: Iterable[TransactionRecord] | None = None) -> list[RunningBalanceRow]:
        if transactions is None:
            transactions = self._context.transaction_store.list_transactions()
        return rebuild_running_balances(transactions)

