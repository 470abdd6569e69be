"""Per-currency serialization of ledger mutations."""
from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator

from fx_ledger.domain.models import Currency


class CurrencyLockRegistry:
    """One re-entrant lock per currency; different currencies never block each other."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Currency, threading.RLock] = {}

    def lock_for(self, currency: Currency) -> threading.RLock:
        currency = Currency.parse(currency)
        with self._guard:
            lock = self._locks.get(currency)
            if lock is None:
                lock = threading.RLock()
                self._locks[currency] = lock
            return lock

    @contextmanager
    def hold(self, currency: Currency) -> Iterator[None]:
        with self.lock_for(currency):
            yield

    @contextmanager
    def hold_all(self, currencies: Iterable[Currency]) -> Iterator[None]:
        # Fixed acquisition order so two multi-currency callers cannot deadlock.
        ordered = sorted({Currency.parse(c) for c in currencies}, key=lambda c: c.value)
        with ExitStack() as stack:
            for currency in ordered:
                stack.enter_context(self.lock_for(currency))
            yield
