"""
BalanceSyncService -- keeps Account.cached_balance equal to its movement sum.

Responsibility:
    The only writer of an account's cached balance.  Two strategies with the
    same observable result:

    sync()         full recomputation: SUM(signed_amount) over the
                   account's non-cancelled movements.
    apply_delta()  incremental: cached_balance += delta, used by the append
                   fast path of the write path.

Architecture position:
    Kernel > Services.  Called by the recalculator (same transaction) and
    by the movement service.

Invariants enforced:
    - Cancelled movements never contribute.
    - No movements exist -> cached balance 0.00.
    - Writes exactly one account row; never touches movements.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import Movement, MovementStatus
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.balance_sync")


class BalanceSyncService(BaseService[Account]):
    """Materializes the movement sum into Account.cached_balance."""

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._registry = AccountRegistry(session, self.clock)

    def compute_balance(self, account_id: UUID) -> Decimal:
        """Sum of signed amounts over non-cancelled movements."""
        rows = self.session.execute(
            select(Movement.entry_amount, Movement.exit_amount).where(
                Movement.account_id == account_id,
                Movement.status != MovementStatus.CANCELLED.value,
            )
        ).all()

        total = ZERO
        for entry_amount, exit_amount in rows:
            total += to_money(entry_amount) - to_money(exit_amount)
        return round_money(total)

    def sync(self, account: Account) -> Decimal:
        """Recompute and store the cached balance of an already-locked account."""
        balance = self.compute_balance(account.id)
        previous = account.cached_balance
        self._registry.set_cached_balance(account, balance)
        self.session.flush()

        if previous is None or to_money(previous) != balance:
            logger.info(
                "cached_balance_corrected",
                extra={
                    "account_id": str(account.id),
                    "previous_balance": str(previous),
                    "balance": str(balance),
                },
            )
        return balance

    def sync_current_balance(self, account_id: UUID) -> Decimal:
        """Lock the account, then sync()."""
        account = self._registry.lock_account(account_id)
        return self.sync(account)

    def apply_delta(self, account: Account, delta: Decimal) -> Decimal:
        """Shift the cached balance by delta.  Caller holds the account lock."""
        balance = round_money(to_money(account.cached_balance) + to_money(delta, "delta"))
        self._registry.set_cached_balance(account, balance)
        self.session.flush()
        return balance
