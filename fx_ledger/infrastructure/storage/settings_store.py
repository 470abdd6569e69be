"""Storage helpers for the ledger settings file."""
from __future__ import annotations

from pathlib import Path
import json
from typing import Any

DEFAULT_PATH = Path(__file__).resolve().parents[2] / "ledger_settings.json"

DEFAULT_SETTINGS: dict[str, Any] = {
    "currencies": ["USD", "GBP", "EUR", "THB"],
    "opening_strategy": "nearest_prior",
    "tolerance_abs": "0.01",
    "workbook_path": None,
}


def _normalize_settings(raw: dict[str, Any] | None) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    if not isinstance(raw, dict):
        return normalized
    currencies = raw.get("currencies")
    if isinstance(currencies, str):
        currencies = currencies.split(",")
    if isinstance(currencies, list):
        normalized["currencies"] = [str(code).strip().upper() for code in currencies if str(code).strip()]
    strategy = raw.get("opening_strategy")
    if strategy:
        normalized["opening_strategy"] = str(strategy).strip().lower()
    tolerance = raw.get("tolerance_abs")
    if tolerance is not None and str(tolerance).strip():
        normalized["tolerance_abs"] = str(tolerance).strip()
    if "workbook_path" in raw:
        value = raw["workbook_path"]
        normalized["workbook_path"] = str(value).strip() if value else None
    return normalized


def load_settings_data(path: Path | None = None) -> dict[str, Any]:
    settings_path = path or DEFAULT_PATH
    merged = dict(DEFAULT_SETTINGS)
    if not settings_path.exists():
        return merged
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return merged
    merged.update(_normalize_settings(data))
    return merged


def save_settings_data(settings: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    settings_path = path or DEFAULT_PATH
    normalized = _normalize_settings(settings)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(
        json.dumps(normalized, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    merged = dict(DEFAULT_SETTINGS)
    merged.update(normalized)
    return merged
