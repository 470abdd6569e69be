"""Application-level DTOs returned by the ledger use cases."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from fx_ledger.domain.models import LedgerDayEntry


@dataclass(slots=True, frozen=True)
class OperationResult:
    """Outcome of one ledger operation, with the processing steps it went through."""

    success: bool
    message: str
    entry: LedgerDayEntry | None = None
    steps: Sequence[str] = field(default_factory=tuple)
    data: Any = None


class StepLog:
    def __init__(self) -> None:
        self._steps: list[str] = []

    def add(self, step: str) -> None:
        self._steps.append(step)

    def freeze(self) -> tuple[str, ...]:
        return tuple(self._steps)
