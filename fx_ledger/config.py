"""Central configuration for the inventory ledger package."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Context, Decimal, InvalidOperation
from pathlib import Path

from fx_ledger.domain.models import Currency, OpeningStrategy
from fx_ledger.infrastructure.storage.settings_store import load_settings_data, save_settings_data

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
DEFAULT_WORKBOOK = DATA_DIR / "inventory.xlsx"


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    tolerance_abs: Decimal
    currencies: tuple[Currency, ...]
    opening_strategy: OpeningStrategy
    workbook_path: Path


def parse_currencies(codes: list[str]) -> tuple[Currency, ...]:
    """Map configured codes onto the closed currency set, rejecting unknown ones."""
    currencies: list[Currency] = []
    for code in codes:
        currency = Currency.parse(code)
        if currency not in currencies:
            currencies.append(currency)
    return tuple(currencies)


def load_settings(path: Path | None = None) -> Settings:
    data = load_settings_data(path)
    try:
        tolerance = Decimal(str(data["tolerance_abs"]))
    except InvalidOperation:
        raise ValueError(f"Invalid tolerance_abs: {data['tolerance_abs']!r}") from None
    workbook = data.get("workbook_path")
    return Settings(
        decimal_context=Context(prec=28),
        tolerance_abs=tolerance,
        currencies=parse_currencies(data["currencies"]),
        opening_strategy=OpeningStrategy(data["opening_strategy"]),
        workbook_path=Path(workbook) if workbook else DEFAULT_WORKBOOK,
    )


def save_settings(settings: Settings, path: Path | None = None) -> Settings:
    save_settings_data(
        {
            "currencies": [c.value for c in settings.currencies],
            "opening_strategy": settings.opening_strategy.value,
            "tolerance_abs": str(settings.tolerance_abs),
            "workbook_path": str(settings.workbook_path),
        },
        path=path,
    )
    return load_settings(path)


SETTINGS = load_settings()
