"""Daily multi-currency inventory ledger with forward cascade and reconciliation."""
from fx_ledger.application.use_cases import (
    LedgerContext,
    RebuildRangeUseCase,
    ReconcileUseCase,
    RecordAdjustmentUseCase,
    RecordTransactionUseCase,
    UpdateDailyInventoryUseCase,
    UpdateInventoryUseCase,
)
from fx_ledger.domain.propagation import CascadePropagator
from fx_ledger.domain.reconciliation import Reconciler
from fx_ledger.infrastructure.repositories.excel_repositories import open_workbook_stores
from fx_ledger.infrastructure.repositories.memory_repositories import (
    InMemoryAdjustmentStore,
    InMemoryLedgerRepository,
    InMemoryTransactionStore,
)

__all__ = [
    "LedgerContext",
    "UpdateInventoryUseCase",
    "UpdateDailyInventoryUseCase",
    "RecordTransactionUseCase",
    "RecordAdjustmentUseCase",
    "RebuildRangeUseCase",
    "ReconcileUseCase",
    "CascadePropagator",
    "Reconciler",
    "InMemoryLedgerRepository",
    "InMemoryTransactionStore",
    "InMemoryAdjustmentStore",
    "open_workbook_stores",
]
