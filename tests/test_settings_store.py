from decimal import Decimal
from pathlib import Path
import json

import pytest

from fx_ledger.config import load_settings, save_settings
from fx_ledger.domain.errors import UnknownCurrencyError
from fx_ledger.domain.models import Currency, OpeningStrategy
from fx_ledger.infrastructure.storage.settings_store import load_settings_data, save_settings_data


def test_save_and_load_settings_data(tmp_path: Path):
    path = tmp_path / "ledger_settings.json"
    merged = save_settings_data({"currencies": "usd, thb", "opening_strategy": "STRICT_ADJACENT"}, path=path)
    assert merged["currencies"] == ["USD", "THB"]
    assert json.loads(path.read_text()) == {"currencies": ["USD", "THB"], "opening_strategy": "strict_adjacent"}

    loaded = load_settings_data(path=path)
    assert loaded["currencies"] == ["USD", "THB"]
    assert loaded["tolerance_abs"] == "0.01"


def test_defaults_when_file_missing(tmp_path: Path):
    settings = load_settings(tmp_path / "absent.json")

    assert settings.currencies == (Currency.USD, Currency.GBP, Currency.EUR, Currency.THB)
    assert settings.opening_strategy is OpeningStrategy.NEAREST_PRIOR
    assert settings.tolerance_abs == Decimal("0.01")


def test_unknown_configured_currency_is_rejected(tmp_path: Path):
    path = tmp_path / "ledger_settings.json"
    path.write_text(json.dumps({"currencies": ["USD", "DOGE"]}), encoding="utf-8")

    with pytest.raises(UnknownCurrencyError):
        load_settings(path)


def test_settings_round_trip(tmp_path: Path):
    path = tmp_path / "ledger_settings.json"
    path.write_text(json.dumps({"currencies": ["eur", "EUR", "usd"], "workbook_path": str(tmp_path / "x.xlsx")}))
    settings = load_settings(path)
    assert settings.currencies == (Currency.EUR, Currency.USD)

    saved = save_settings(settings, path)

    assert saved.currencies == settings.currencies
    assert saved.opening_strategy is settings.opening_strategy
    assert saved.workbook_path == tmp_path / "x.xlsx"


def test_invalid_json_falls_back_to_defaults(tmp_path: Path):
    path = tmp_path / "ledger_settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_settings_data(path)["opening_strategy"] == "nearest_prior"
