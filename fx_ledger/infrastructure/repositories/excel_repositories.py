"""Excel-backed stores for transactions, adjustments and the daily inventory sheet."""
from __future__ import annotations

import logging
import threading
import zipfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Sequence, TypeVar

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from fx_ledger.domain.errors import RepositoryError, UnknownCurrencyError
from fx_ledger.domain.models import (
    AdjustmentRecord,
    Currency,
    Direction,
    LedgerDayEntry,
    LedgerKey,
    OpeningSource,
    TransactionRecord,
    TransactionTotals,
)
from fx_ledger.domain.repositories import AdjustmentStore, LedgerRepository, TransactionStore
from fx_ledger.infrastructure.parsing.utils import (
    clean_text,
    excel_engine,
    format_decimal,
    parse_date,
    parse_datetime,
    parse_decimal,
    pick_sheet,
)
from fx_ledger.infrastructure.repositories.memory_repositories import adjustment_total_for, totals_for

logger = logging.getLogger(__name__)

TRANSACTIONS_SHEET = "Transactions"
ADJUSTMENTS_SHEET = "Adjustments"
LEDGER_SHEET = "Daily Inventory"

TRANSACTION_COLUMNS = [
    "Transaction ID",
    "Date",
    "Type",
    "Currency",
    "Amount",
    "Counter Value",
    "Customer",
    "Staff",
    "Source",
]
ADJUSTMENT_COLUMNS = ["Adjustment ID", "Date", "Currency", "Amount", "Reason", "Author", "Timestamp"]
LEDGER_COLUMNS = [
    "Date",
    "Currency",
    "Opening Balance",
    "Opening Source",
    "Purchases",
    "Sales",
    "Adjustments",
    "Closing Balance",
]

_IO_ERRORS = (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException)

_Row = TypeVar("_Row")


class LedgerWorkbook:
    """A single workbook file holding one sheet per store.

    Reads and writes are serialized on the file, since the ledger sheet holds every
    currency and each write replaces the whole sheet.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read_sheet(self, preferred: str, columns: list[str]) -> pd.DataFrame:
        with self._lock:
            if not self._path.exists():
                return pd.DataFrame(columns=columns)
            engine = excel_engine(self._path)
            try:
                with pd.ExcelFile(self._path, engine=engine) as xls:
                    sheet_name = pick_sheet(xls.sheet_names, preferred)
                    if sheet_name is None:
                        return pd.DataFrame(columns=columns)
                    frame = xls.parse(sheet_name=sheet_name, dtype=str)
            except _IO_ERRORS as exc:
                logger.error("Failed to read sheet %r from %s", preferred, self._path, exc_info=True)
                raise RepositoryError(f"Cannot read sheet {preferred!r} from {self._path}") from exc
        missing = [c for c in columns if c not in frame.columns]
        for column in missing:
            frame[column] = None
        return frame

    def write_sheet(self, sheet_name: str, frame: pd.DataFrame) -> None:
        if excel_engine(self._path) != "openpyxl":
            raise RepositoryError(f"Legacy workbook {self._path} is read-only; save it as .xlsx")
        with self._lock:
            try:
                if self._path.exists():
                    with pd.ExcelWriter(
                        self._path, engine="openpyxl", mode="a", if_sheet_exists="replace"
                    ) as writer:
                        frame.to_excel(writer, sheet_name=sheet_name, index=False)
                else:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    with pd.ExcelWriter(self._path, engine="openpyxl", mode="w") as writer:
                        frame.to_excel(writer, sheet_name=sheet_name, index=False)
            except _IO_ERRORS as exc:
                logger.error("Failed to write sheet %r to %s", sheet_name, self._path, exc_info=True)
                raise RepositoryError(f"Cannot write sheet {sheet_name!r} to {self._path}") from exc


def _transaction_from_row(row: pd.Series) -> TransactionRecord | None:
    transaction_id = clean_text(row.get("Transaction ID"))
    if not transaction_id:
        return None
    return TransactionRecord(
        transaction_id=transaction_id,
        date=parse_date(row.get("Date")),
        direction=Direction.parse(clean_text(row.get("Type"))),
        currency=Currency.parse(row.get("Currency")),
        amount=parse_decimal(row.get("Amount")),
        counter_value=parse_decimal(row.get("Counter Value")),
        customer=clean_text(row.get("Customer")),
        staff=clean_text(row.get("Staff")),
        source=clean_text(row.get("Source")),
    )


def _transaction_to_row(record: TransactionRecord) -> dict[str, str]:
    return {
        "Transaction ID": record.transaction_id,
        "Date": record.date.isoformat() if record.date else "",
        "Type": record.direction.value,
        "Currency": record.currency.value,
        "Amount": format_decimal(record.amount),
        "Counter Value": format_decimal(record.counter_value),
        "Customer": record.customer,
        "Staff": record.staff,
        "Source": record.source,
    }


def _adjustment_from_row(row: pd.Series) -> AdjustmentRecord | None:
    adjustment_id = clean_text(row.get("Adjustment ID"))
    if not adjustment_id:
        return None
    return AdjustmentRecord(
        adjustment_id=adjustment_id,
        date=parse_date(row.get("Date")),
        currency=Currency.parse(row.get("Currency")),
        amount=parse_decimal(row.get("Amount")),
        reason=clean_text(row.get("Reason")),
        author=clean_text(row.get("Author")),
        timestamp=parse_datetime(row.get("Timestamp")),
    )


def _adjustment_to_row(record: AdjustmentRecord) -> dict[str, str]:
    return {
        "Adjustment ID": record.adjustment_id,
        "Date": record.date.isoformat(),
        "Currency": record.currency.value,
        "Amount": format_decimal(record.amount),
        "Reason": record.reason,
        "Author": record.author,
        "Timestamp": record.timestamp.isoformat() if record.timestamp else "",
    }


def _entry_from_row(row: pd.Series) -> LedgerDayEntry | None:
    entry_date = parse_date(row.get("Date"))
    if entry_date is None:
        return None
    source = clean_text(row.get("Opening Source")).lower()
    return LedgerDayEntry(
        date=entry_date,
        currency=Currency.parse(row.get("Currency")),
        opening_balance=parse_decimal(row.get("Opening Balance")),
        opening_source=OpeningSource(source) if source else OpeningSource.INITIAL,
        purchases=parse_decimal(row.get("Purchases")),
        sales=parse_decimal(row.get("Sales")),
        adjustments=parse_decimal(row.get("Adjustments")),
        closing_balance=parse_decimal(row.get("Closing Balance")),
    )


def _entry_to_row(entry: LedgerDayEntry) -> dict[str, str]:
    return {
        "Date": entry.date.isoformat(),
        "Currency": entry.currency.value,
        "Opening Balance": format_decimal(entry.opening_balance),
        "Opening Source": entry.opening_source.value,
        "Purchases": format_decimal(entry.purchases),
        "Sales": format_decimal(entry.sales),
        "Adjustments": format_decimal(entry.adjustments),
        "Closing Balance": format_decimal(entry.closing_balance),
    }


def _load_rows(frame: pd.DataFrame, sheet_name: str, convert: Callable[[pd.Series], _Row | None]) -> Iterator[_Row]:
    """Convert sheet rows, reporting the workbook row number of any invalid one."""
    for position, (_, row) in enumerate(frame.iterrows()):
        try:
            item = convert(row)
        except UnknownCurrencyError:
            raise
        except ValueError as exc:
            # Row 1 holds the headers.
            raise RepositoryError(f"{sheet_name} row {position + 2}: {exc}") from exc
        if item is not None:
            yield item


class ExcelTransactionStore(TransactionStore):
    def __init__(self, workbook: LedgerWorkbook) -> None:
        self._workbook = workbook
        self._lock = threading.Lock()
        frame = workbook.read_sheet(TRANSACTIONS_SHEET, TRANSACTION_COLUMNS)
        self._records: dict[str, TransactionRecord] = {
            record.transaction_id: record
            for record in _load_rows(frame, TRANSACTIONS_SHEET, _transaction_from_row)
        }

    def get_transaction_totals(self, entry_date: date, currency: Currency) -> TransactionTotals:
        return totals_for(self._records.values(), entry_date, Currency.parse(currency))

    def get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        return self._records.get(transaction_id)

    def list_transactions(self) -> Sequence[TransactionRecord]:
        return list(self._records.values())

    def add_transaction(self, record: TransactionRecord) -> None:
        # Transactions of every currency share the sheet, so the rewrite is serialized here.
        with self._lock:
            if record.transaction_id in self._records:
                raise ValueError(f"Transaction {record.transaction_id} already recorded")
            pending = dict(self._records)
            pending[record.transaction_id] = record
            rows = [_transaction_to_row(r) for r in pending.values()]
            self._workbook.write_sheet(TRANSACTIONS_SHEET, pd.DataFrame(rows, columns=TRANSACTION_COLUMNS))
            self._records = pending


class ExcelAdjustmentStore(AdjustmentStore):
    def __init__(self, workbook: LedgerWorkbook) -> None:
        self._workbook = workbook
        self._lock = threading.Lock()
        frame = workbook.read_sheet(ADJUSTMENTS_SHEET, ADJUSTMENT_COLUMNS)
        self._records: dict[str, AdjustmentRecord] = {
            record.adjustment_id: record
            for record in _load_rows(frame, ADJUSTMENTS_SHEET, _adjustment_from_row)
        }

    def get_adjustment_total(self, entry_date: date, currency: Currency) -> Decimal:
        return adjustment_total_for(self._records.values(), entry_date, Currency.parse(currency))

    def get_adjustment(self, adjustment_id: str) -> AdjustmentRecord | None:
        return self._records.get(adjustment_id)

    def add_adjustment(self, record: AdjustmentRecord) -> None:
        with self._lock:
            if record.adjustment_id in self._records:
                raise ValueError(f"Adjustment {record.adjustment_id} already recorded")
            pending = dict(self._records)
            pending[record.adjustment_id] = record
            rows = [_adjustment_to_row(r) for r in pending.values()]
            self._workbook.write_sheet(ADJUSTMENTS_SHEET, pd.DataFrame(rows, columns=ADJUSTMENT_COLUMNS))
            self._records = pending


class ExcelLedgerRepository(LedgerRepository):
    """Daily inventory sheet; every upsert rewrites the sheet so the file never lags memory.

    A cascade therefore saves the workbook once per entry it writes: twice for the
    anchor day (resolve, then update) and once per later entry whose balances
    moved. Unchanged later entries are not written. Keeping one save per entry
    means a failure part way through a cascade leaves the earlier days on disk.
    """

    def __init__(self, workbook: LedgerWorkbook) -> None:
        self._workbook = workbook
        frame = workbook.read_sheet(LEDGER_SHEET, LEDGER_COLUMNS)
        self._lock = threading.Lock()
        self._entries: dict[LedgerKey, LedgerDayEntry] = {
            entry.ledger_key: entry for entry in _load_rows(frame, LEDGER_SHEET, _entry_from_row)
        }

    def get_entry(self, entry_date: date, currency: Currency) -> LedgerDayEntry | None:
        return self._entries.get(LedgerKey(entry_date, Currency.parse(currency)))

    def list_entries(self, currency: Currency) -> Sequence[LedgerDayEntry]:
        currency = Currency.parse(currency)
        return sorted(
            (entry for entry in self._entries.values() if entry.currency is currency),
            key=lambda entry: entry.date,
        )

    def upsert_entry(self, entry: LedgerDayEntry) -> None:
        with self._lock:
            pending = dict(self._entries)
            pending[entry.ledger_key] = entry
            ordered = sorted(pending.values(), key=lambda e: e.ledger_key.key())
            frame = pd.DataFrame([_entry_to_row(e) for e in ordered], columns=LEDGER_COLUMNS)
            self._workbook.write_sheet(LEDGER_SHEET, frame)
            self._entries = pending


def open_workbook_stores(
    path: Path | str,
) -> tuple[ExcelLedgerRepository, ExcelTransactionStore, ExcelAdjustmentStore]:
    workbook = LedgerWorkbook(path)
    return (
        ExcelLedgerRepository(workbook),
        ExcelTransactionStore(workbook),
        ExcelAdjustmentStore(workbook),
    )
