"""
AccountRegistry -- the kernel's view of the account collaborator.

Responsibility:
    Opens accounts, resolves the account ids of a tenant, and hands out
    account rows -- plain or locked -- to the other services.

Architecture position:
    Kernel > Services.  Account metadata screens live outside the kernel;
    this adapter covers only what the ledger needs.

Invariants enforced:
    - lock_account() issues SELECT ... FOR UPDATE on the account row.  Every
      fetch-compute-persist cycle on an account's chain starts here, so two
      writers on the same account serialize.
    - New accounts start at a zero cached balance.  A non-zero opening
      balance is a movement, recorded by the movement service.

Failure modes:
    - AccountNotFoundError for an unknown account id.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import AccountNotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")


class AccountRegistry(BaseService[Account]):
    """Account lookup, locking and creation."""

    def open_account(
        self,
        tenant_id: UUID,
        label: str,
        actor_id: UUID | None = None,
    ) -> Account:
        """Create an empty account.  Caller commits."""
        if not label or not label.strip():
            raise ValidationError("label", "must not be blank")

        now = self.clock.now()
        account = Account(
            id=uuid4(),
            tenant_id=tenant_id,
            label=label.strip(),
            cached_balance=ZERO,
            recalc_pending=False,
            balance_synced_at=now,
            created_at=now,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_opened",
            extra={"account_id": str(account.id), "tenant_id": str(tenant_id)},
        )
        return account

    def get_account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def lock_account(self, account_id: UUID) -> Account:
        """
        Load the account row under SELECT ... FOR UPDATE.

        populate_existing refreshes an instance already in the identity
        map, so the caller sees the committed state it now holds the lock on.
        """
        account = self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def lock_accounts(self, account_ids: Iterable[UUID]) -> dict[UUID, Account]:
        """Lock several accounts in id order so concurrent callers cannot deadlock."""
        return {
            account_id: self.lock_account(account_id)
            for account_id in sorted(set(account_ids), key=lambda a: a.int)
        }

    def list_account_ids(
        self,
        tenant_id: UUID | None = None,
        only_pending: bool = False,
    ) -> list[UUID]:
        """Account ids in creation order, optionally just those awaiting recompute."""
        stmt = select(Account.id)
        if tenant_id is not None:
            stmt = stmt.where(Account.tenant_id == tenant_id)
        if only_pending:
            stmt = stmt.where(Account.recalc_pending.is_(True))
        stmt = stmt.order_by(Account.created_at, Account.id)
        return list(self.session.execute(stmt).scalars())

    def set_cached_balance(self, account: Account, balance: Decimal) -> None:
        """Write the cached balance and stamp the sync time."""
        account.cached_balance = balance
        account.balance_synced_at = self.clock.now()

    def mark_pending(self, account: Account) -> None:
        account.recalc_pending = True

    def describe(self, account_id: UUID) -> AccountInfo:
        return self.to_info(self.get_account(account_id))

    @staticmethod
    def to_info(account: Account) -> AccountInfo:
        return AccountInfo(
            account_id=account.id,
            tenant_id=account.tenant_id,
            label=account.label,
            cached_balance=account.cached_balance,
            recalc_pending=account.recalc_pending,
            balance_synced_at=account.balance_synced_at,
        )
