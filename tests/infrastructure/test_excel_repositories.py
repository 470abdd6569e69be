import threading
from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

from fx_ledger.application.use_cases import (
    LedgerContext,
    RecordAdjustmentUseCase,
    RecordTransactionUseCase,
    UpdateInventoryUseCase,
)
from fx_ledger.config import load_settings
from fx_ledger.domain.errors import RepositoryError, UnknownCurrencyError
from fx_ledger.domain.models import (
    AdjustmentRecord,
    Currency,
    Direction,
    LedgerDayEntry,
    OpeningSource,
    TransactionRecord,
)
from fx_ledger.infrastructure.repositories.excel_repositories import (
    ADJUSTMENTS_SHEET,
    LEDGER_SHEET,
    TRANSACTIONS_SHEET,
    ExcelAdjustmentStore,
    ExcelLedgerRepository,
    ExcelTransactionStore,
    LedgerWorkbook,
    open_workbook_stores,
)


def make_context(path: Path, tmp_path: Path) -> LedgerContext:
    ledger, transactions, adjustments = open_workbook_stores(path)
    return LedgerContext(
        ledger_repository=ledger,
        transaction_store=transactions,
        adjustment_store=adjustments,
        settings=load_settings(tmp_path / "missing_settings.json"),
    )


def test_missing_workbook_reads_as_empty(tmp_path: Path):
    ledger, transactions, _ = open_workbook_stores(tmp_path / "ledger.xlsx")

    assert ledger.list_entries(Currency.USD) == []
    assert transactions.list_transactions() == []
    assert not (tmp_path / "ledger.xlsx").exists()


def test_workbook_round_trip_through_use_cases(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    context = make_context(path, tmp_path)
    record = RecordTransactionUseCase(context)
    record.execute(
        TransactionRecord("T1", date(2024, 3, 1), Direction.BUY, Currency.USD, Decimal("1000.00"), Decimal("35250.50"))
    )
    record.execute(TransactionRecord("T2", date(2024, 3, 1), Direction.SELL, Currency.USD, Decimal("200")))
    record.execute(TransactionRecord("T3", date(2024, 3, 2), Direction.BUY, Currency.USD, Decimal("100")))
    RecordAdjustmentUseCase(context).execute(
        AdjustmentRecord("A1", date(2024, 3, 2), Currency.USD, Decimal("-0.50"), reason="coin rounding")
    )

    reopened = make_context(path, tmp_path)
    entries = list(reopened.ledger_repository.list_entries(Currency.USD))

    assert [e.date for e in entries] == [date(2024, 3, 1), date(2024, 3, 2)]
    assert entries[0].closing_balance == Decimal("800")
    assert entries[1].opening_balance == Decimal("800")
    assert entries[1].opening_source is OpeningSource.PREVIOUS_DAY
    assert entries[1].adjustments == Decimal("-0.50")
    assert entries[1].closing_balance == Decimal("899.50")
    assert reopened.transaction_store.get_transaction("T1").counter_value == Decimal("35250.50")
    assert reopened.adjustment_store.get_adjustment("A1").reason == "coin rounding"
    assert reopened.adjustment_store.get_adjustment_total(date(2024, 3, 2), Currency.USD) == Decimal("-0.50")


def test_reads_transactions_sheet_written_by_hand(tmp_path: Path):
    path = tmp_path / "manual.xlsx"
    frame = pd.DataFrame(
        [
            {"Transaction ID": "M1", "Date": "2024-03-01", "Type": "buy", "Currency": "usd", "Amount": "1,250.00"},
            {"Transaction ID": "M2", "Date": "", "Type": "Sell", "Currency": "EUR", "Amount": "10"},
            {"Transaction ID": "", "Date": "2024-03-01", "Type": "Buy", "Currency": "USD", "Amount": "5"},
        ]
    )
    frame.to_excel(path, sheet_name=TRANSACTIONS_SHEET, index=False)

    store = ExcelTransactionStore(LedgerWorkbook(path))

    assert {r.transaction_id for r in store.list_transactions()} == {"M1", "M2"}
    assert store.get_transaction("M1").amount == Decimal("1250.00")
    assert store.get_transaction("M2").date is None
    totals = store.get_transaction_totals(date(2024, 3, 1), Currency.USD)
    assert totals.purchases == Decimal("1250.00")
    assert totals.sales == Decimal("0")


def test_unknown_currency_in_sheet_is_rejected(tmp_path: Path):
    path = tmp_path / "bad.xlsx"
    pd.DataFrame(
        [{"Transaction ID": "X1", "Date": "2024-03-01", "Type": "Buy", "Currency": "XAU", "Amount": "1"}]
    ).to_excel(path, sheet_name=TRANSACTIONS_SHEET, index=False)

    with pytest.raises(UnknownCurrencyError):
        ExcelTransactionStore(LedgerWorkbook(path))


def test_ledger_sheet_keeps_other_sheets(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    pd.DataFrame([{"Note": "keep me"}]).to_excel(path, sheet_name="Notes", index=False)
    repository = ExcelLedgerRepository(LedgerWorkbook(path))

    repository.upsert_entry(
        LedgerDayEntry(date=date(2024, 3, 1), currency=Currency.GBP, purchases=Decimal("5"), closing_balance=Decimal("5"))
    )

    sheets = pd.ExcelFile(path, engine="openpyxl").sheet_names
    assert set(sheets) == {"Notes", LEDGER_SHEET}


def test_corrupt_workbook_raises_repository_error(tmp_path: Path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a workbook")

    with pytest.raises(RepositoryError):
        ExcelLedgerRepository(LedgerWorkbook(path))


def test_legacy_xls_workbook_is_read_only(tmp_path: Path):
    workbook = LedgerWorkbook(tmp_path / "legacy.xls")

    with pytest.raises(RepositoryError):
        workbook.write_sheet(LEDGER_SHEET, pd.DataFrame())


def test_concurrent_currencies_keep_every_transaction_on_disk(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    context = make_context(path, tmp_path)
    record = RecordTransactionUseCase(context)
    results = []

    def submit(currency: Currency) -> None:
        for i in range(5):
            results.append(
                record.execute(
                    TransactionRecord(
                        f"{currency.value}-{i}", date(2024, 3, 1 + i % 2), Direction.BUY, currency, Decimal("10")
                    )
                )
            )

    workers = [threading.Thread(target=submit, args=(currency,)) for currency in Currency]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert len(results) == 5 * len(Currency)
    assert all(result.success for result in results)
    reopened = make_context(path, tmp_path)
    assert len(reopened.transaction_store.list_transactions()) == 5 * len(Currency)
    for currency in Currency:
        entries = list(reopened.ledger_repository.list_entries(currency))
        assert [e.date for e in entries] == [date(2024, 3, 1), date(2024, 3, 2)]
        assert entries[0].purchases == Decimal("30")
        assert entries[-1].closing_balance == Decimal("50")


def test_concurrent_adjustments_keep_every_row_on_disk(tmp_path: Path):
    path = tmp_path / "ledger.xlsx"
    _, _, adjustments = open_workbook_stores(path)

    def submit(currency: Currency) -> None:
        for i in range(4):
            adjustments.add_adjustment(
                AdjustmentRecord(f"{currency.value}-A{i}", date(2024, 3, 1), currency, Decimal("-1"))
            )

    workers = [threading.Thread(target=submit, args=(currency,)) for currency in Currency]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    _, _, reopened = open_workbook_stores(path)
    for currency in Currency:
        assert reopened.get_adjustment_total(date(2024, 3, 1), currency) == Decimal("-4")


@pytest.mark.parametrize(
    ("sheet", "row", "expected"),
    [
        (TRANSACTIONS_SHEET, {"Transaction ID": "T2", "Date": "2024-03-01", "Type": "Buy", "Currency": "USD", "Amount": ""}, "Transactions row 3"),
        (TRANSACTIONS_SHEET, {"Transaction ID": "T2", "Date": "2024-03-01", "Type": "Swap", "Currency": "USD", "Amount": "5"}, "Transactions row 3"),
        (ADJUSTMENTS_SHEET, {"Adjustment ID": "A2", "Date": "", "Currency": "USD", "Amount": "1"}, "Adjustments row 3"),
        (LEDGER_SHEET, {"Date": "2024-03-02", "Currency": "USD", "Opening Source": "yesterday"}, "Daily Inventory row 3"),
    ],
)
def test_invalid_sheet_row_is_reported_with_its_position(tmp_path: Path, sheet: str, row: dict, expected: str):
    path = tmp_path / "bad.xlsx"
    first = {
        TRANSACTIONS_SHEET: {"Transaction ID": "T1", "Date": "2024-03-01", "Type": "Buy", "Currency": "USD", "Amount": "5"},
        ADJUSTMENTS_SHEET: {"Adjustment ID": "A1", "Date": "2024-03-01", "Currency": "USD", "Amount": "1"},
        LEDGER_SHEET: {"Date": "2024-03-01", "Currency": "USD", "Opening Source": "initial"},
    }[sheet]
    pd.DataFrame([first, row]).to_excel(path, sheet_name=sheet, index=False)

    with pytest.raises(RepositoryError, match=expected):
        open_workbook_stores(path)


class CountingWorkbook(LedgerWorkbook):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.writes: list[str] = []

    def write_sheet(self, sheet_name: str, frame: pd.DataFrame) -> None:
        self.writes.append(sheet_name)
        super().write_sheet(sheet_name, frame)


def test_cascade_saves_only_entries_that_changed(tmp_path: Path):
    workbook = CountingWorkbook(tmp_path / "ledger.xlsx")
    context = LedgerContext(
        ledger_repository=ExcelLedgerRepository(workbook),
        transaction_store=ExcelTransactionStore(workbook),
        adjustment_store=ExcelAdjustmentStore(workbook),
        settings=load_settings(tmp_path / "missing_settings.json"),
    )
    for n in range(1, 5):
        context.transaction_store.add_transaction(
            TransactionRecord(f"T{n}", date(2024, 3, n), Direction.BUY, Currency.USD, Decimal("10"))
        )
    update = UpdateInventoryUseCase(context)
    for n in range(1, 5):
        update.execute(date(2024, 3, n), Currency.USD)
    context.transaction_store.add_transaction(
        TransactionRecord("T5", date(2024, 3, 1), Direction.BUY, Currency.USD, Decimal("5"))
    )
    workbook.writes.clear()

    result = update.execute(date(2024, 3, 1), Currency.USD)

    assert result.data.changed_later_entries == 3
    assert workbook.writes.count(LEDGER_SHEET) == 2 + 3

    workbook.writes.clear()
    update.execute(date(2024, 3, 1), Currency.USD)
    assert workbook.writes.count(LEDGER_SHEET) == 2
