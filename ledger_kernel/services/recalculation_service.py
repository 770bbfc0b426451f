"""
RecalculationService -- rewrites one account's running-balance chain.

Responsibility:
    Lock the account, load its non-cancelled movements in canonical order,
    recompute the prefix sums from zero, write only the balances that
    changed, then sync the cached balance and clear recalc_pending.

Architecture position:
    Kernel > Services -- imperative shell around the pure
    ``domain.running_balance.plan_recalculation``.

Invariants enforced:
    - Whole recompute runs inside the caller's transaction: it either
      commits in full or leaves the pre-recompute state.
    - Idempotent: a second call with no intervening writes updates zero rows.
    - Cancelled movements keep whatever running_balance they had.

Failure modes:
    - AccountNotFoundError: unknown account id.
    - ConsistencyError: the cached-balance sum disagrees with the recomputed
      chain (movements changed under us); retried by the orchestrator.
    - StaleDataError at flush (mapped to OptimisticLockError upstream).
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import to_money
from ledger_kernel.domain.dtos import MovementSnapshot, RecalcResult
from ledger_kernel.domain.running_balance import plan_recalculation
from ledger_kernel.exceptions import ConsistencyError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import Movement, MovementStatus
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_sync_service import BalanceSyncService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.recalculation")


class RecalculationService(BaseService[Movement]):
    """Single-account recompute."""

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._registry = AccountRegistry(session, self.clock)
        self._balance_sync = BalanceSyncService(session, self.clock)

    def recalculate_account(self, account_id: UUID) -> RecalcResult:
        """
        Recompute every running balance of one account.

        Preconditions:
            The caller owns the transaction.
        Postconditions:
            For the canonical order of non-cancelled movements,
            running_balance[i] == running_balance[i-1] + signed_amount[i]
            and cached_balance == the last running balance (or 0).
        """
        account = self._registry.lock_account(account_id)
        return self.recalculate_locked(account)

    def recalculate_locked(self, account: Account) -> RecalcResult:
        """Recompute for an account the caller has already locked."""
        movements = list(
            self.session.execute(
                select(Movement)
                .where(
                    Movement.account_id == account.id,
                    Movement.status != MovementStatus.CANCELLED.value,
                )
                .order_by(Movement.movement_date, Movement.created_at, Movement.id)
            ).scalars()
        )

        plan = plan_recalculation([MovementSnapshot.from_model(m) for m in movements])

        by_id = {m.id: m for m in movements}
        for change in plan.changes:
            by_id[change.movement_id].running_balance = change.new_balance
        self.session.flush()

        previous = to_money(account.cached_balance, "cached_balance")
        cached = self._balance_sync.sync(account)
        if cached != plan.final_balance:
            raise ConsistencyError(
                f"Account {account.id}: movement sum {cached} does not match "
                f"recomputed chain end {plan.final_balance}"
            )

        corrected = cached != previous
        account.recalc_pending = False
        self.session.flush()

        logger.info(
            "recalculation_completed",
            extra={
                "account_id": str(account.id),
                "updated_count": len(plan.changes),
                "movement_count": plan.movement_count,
                "final_balance": str(plan.final_balance),
                "balance_corrected": corrected,
            },
        )

        return RecalcResult(
            account_id=account.id,
            updated_count=len(plan.changes),
            final_balance=plan.final_balance,
            movement_count=plan.movement_count,
            balance_corrected=corrected,
        )
