"""Domain models for the daily currency inventory ledger.

These dataclasses capture the canonical schema shared by every storage back end.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from .errors import UnknownCurrencyError

ZERO = Decimal("0")


class Currency(str, Enum):
    """Closed set of currencies held in inventory."""

    USD = "USD"
    GBP = "GBP"
    EUR = "EUR"
    THB = "THB"

    @classmethod
    def parse(cls, code: object) -> "Currency":
        if isinstance(code, Currency):
            return code
        value = "" if code is None else str(code).strip().upper()
        try:
            return cls(value)
        except ValueError:
            raise UnknownCurrencyError(code) from None


class Direction(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: object) -> "Direction":
        if isinstance(value, Direction):
            return value
        text = "" if value is None else str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown transaction direction: {value!r}")


class OpeningSource(str, Enum):
    """Where a day's opening balance was taken from."""

    PREVIOUS_DAY = "previous day"
    MOST_RECENT_PRIOR = "most recent prior"
    INITIAL = "initial"


class OpeningStrategy(str, Enum):
    """How an opening balance is seeded when the previous calendar day has no entry."""

    NEAREST_PRIOR = "nearest_prior"
    STRICT_ADJACENT = "strict_adjacent"


@dataclass(frozen=True)
class TransactionRecord:
    """A completed Buy or Sell of foreign currency. Never modified after creation."""

    transaction_id: str
    date: date | None
    direction: Direction
    currency: Currency
    amount: Decimal
    counter_value: Decimal = ZERO
    customer: str = ""
    staff: str = ""
    source: str = ""

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("transaction_id is required")
        if self.amount <= ZERO:
            raise ValueError(f"Transaction amount must be positive, got {self.amount}")

    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is Direction.BUY else -self.amount


@dataclass(frozen=True)
class AdjustmentRecord:
    """Manual correction to a day's inventory; amounts for one day are summed."""

    adjustment_id: str
    date: date
    currency: Currency
    amount: Decimal
    reason: str = ""
    author: str = ""
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if not self.adjustment_id:
            raise ValueError("adjustment_id is required")
        if self.date is None:
            raise ValueError("Adjustment date is required")


@dataclass(frozen=True)
class LedgerKey:
    """Unique identifier for a currency's inventory on a specific date."""

    date: date
    currency: Currency

    def key(self) -> tuple[date, str]:
        return (self.date, self.currency.value)


@dataclass(frozen=True)
class LedgerDayEntry:
    date: date
    currency: Currency
    opening_balance: Decimal = ZERO
    opening_source: OpeningSource = OpeningSource.INITIAL
    purchases: Decimal = ZERO
    sales: Decimal = ZERO
    adjustments: Decimal = ZERO
    closing_balance: Decimal = ZERO

    @property
    def ledger_key(self) -> LedgerKey:
        return LedgerKey(self.date, self.currency)

    def expected_closing(self) -> Decimal:
        return self.opening_balance + self.purchases - self.sales + self.adjustments

    def is_consistent(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        return abs(self.closing_balance - self.expected_closing()) <= tolerance

    def with_changes(self, **changes: object) -> "LedgerDayEntry":
        return replace(self, **changes)


@dataclass(frozen=True)
class TransactionTotals:
    purchases: Decimal = ZERO
    sales: Decimal = ZERO


@dataclass(frozen=True)
class DayTotals:
    """Aggregated flows for one (date, currency)."""

    purchases: Decimal = ZERO
    sales: Decimal = ZERO
    adjustments: Decimal = ZERO
