"""Pure domain core: canonical ordering, running balances, DTOs, clock."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountRecalcOutcome,
    AccountRecalcStatus,
    BalanceChange,
    FleetRecalcReport,
    MovementFilters,
    MovementPage,
    MovementRecord,
    MovementSnapshot,
    MovementSummary,
    RecalcResult,
    RecalculationPlan,
)
from ledger_kernel.domain.running_balance import (
    balance_before,
    canonical_sort_key,
    compute_running_balances,
    plan_recalculation,
    sort_canonically,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "AccountInfo",
    "AccountRecalcOutcome",
    "AccountRecalcStatus",
    "BalanceChange",
    "FleetRecalcReport",
    "MovementFilters",
    "MovementPage",
    "MovementRecord",
    "MovementSnapshot",
    "MovementSummary",
    "RecalcResult",
    "RecalculationPlan",
    "balance_before",
    "canonical_sort_key",
    "compute_running_balances",
    "plan_recalculation",
    "sort_canonically",
]
