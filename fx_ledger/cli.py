"""Command-line entrypoint for the inventory ledger."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from fx_ledger.application.use_cases import (
    LedgerContext,
    RebuildRangeUseCase,
    ReconcileUseCase,
    RunningBalancesUseCase,
    UpdateDailyInventoryUseCase,
    UpdateInventoryUseCase,
)
from fx_ledger.config import load_settings
from fx_ledger.domain.errors import RepositoryError
from fx_ledger.domain.results import ReconciliationSummary
from fx_ledger.infrastructure.repositories.excel_repositories import open_workbook_stores


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintain the daily currency inventory ledger in an Excel workbook")
    parser.add_argument("--workbook", type=str, help="Path to the ledger workbook (defaults to the configured one)")
    parser.add_argument("--settings", type=str, help="Path to a ledger_settings.json file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log cascade steps")
    commands = parser.add_subparsers(dest="command", required=True)

    update = commands.add_parser("update", help="Recompute one day and cascade forward")
    update.add_argument("date", type=date.fromisoformat)
    update.add_argument("currency", type=str)

    daily = commands.add_parser("daily", help="Update every configured currency for a date")
    daily.add_argument("--date", type=date.fromisoformat, default=None)

    reconcile = commands.add_parser("reconcile", help="Compare recorded totals with the transaction record")
    reconcile.add_argument("date", type=date.fromisoformat)
    reconcile.add_argument("--currency", type=str, default=None)
    reconcile.add_argument("--repair", action="store_true", help="Cascade currencies that showed discrepancies")

    rebuild = commands.add_parser("rebuild", help="Recompute a date range for one currency")
    rebuild.add_argument("currency", type=str)
    rebuild.add_argument("start", type=date.fromisoformat)
    rebuild.add_argument("end", type=date.fromisoformat)

    commands.add_parser("balances", help="List transactions with per-currency running balances")
    return parser.parse_args(argv)


def build_context(args: argparse.Namespace) -> LedgerContext:
    settings = load_settings(Path(args.settings) if args.settings else None)
    if args.workbook:
        settings = replace(settings, workbook_path=Path(args.workbook))
    ledger, transactions, adjustments = open_workbook_stores(settings.workbook_path)
    return LedgerContext(
        ledger_repository=ledger,
        transaction_store=transactions,
        adjustment_store=adjustments,
        settings=settings,
    )


def print_reconciliation(summary: ReconciliationSummary) -> None:
    print(f"Reconciliation for {summary.date.isoformat()}")
    print("==================")
    for result in summary.iter_results():
        status = "OK" if result.reconciled else "MISMATCH"
        print(
            f"{result.currency.value}: {status} opening {result.opening_balance}, "
            f"purchases {result.calculated_purchases}/{result.recorded_purchases}, "
            f"sales {result.calculated_sales}/{result.recorded_sales}, "
            f"adjustments {result.adjustments}, closing {result.expected_closing}/{result.recorded_closing}"
        )
    if summary.discrepancies:
        print("\nDiscrepancies detected:")
        for message in summary.discrepancies:
            print(f"- {message}")
    else:
        print("\nNo discrepancies detected.")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        context = build_context(args)
    except RepositoryError as exc:
        print(f"Cannot open ledger workbook: {exc}", file=sys.stderr)
        return 1

    if args.command == "balances":
        for row in RunningBalancesUseCase(context).execute():
            record = row.transaction
            when = record.date.isoformat() if record.date else "-"
            print(
                f"{when} {record.transaction_id} {record.direction.value} {record.amount} "
                f"{record.currency.value} -> {row.balance}"
            )
        return 0

    if args.command == "update":
        result = UpdateInventoryUseCase(context).execute(args.date, args.currency)
    elif args.command == "daily":
        result = UpdateDailyInventoryUseCase(context).execute(args.date)
    elif args.command == "rebuild":
        result = RebuildRangeUseCase(context).execute(args.currency, args.start, args.end)
    else:
        result = ReconcileUseCase(context).execute(args.date, args.currency, repair=args.repair)
        if isinstance(result.data, ReconciliationSummary):
            print_reconciliation(result.data)

    for step in result.steps:
        print(f"  {step}")
    print(result.message)
    return 0 if result.success else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
