"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for ledger accounts and their cached current
    balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - cached_balance == sum(signed_amount) over the account's non-cancelled
      movements whenever recalc_pending is False.  Only the balance
      synchronizer writes cached_balance.
    - version is an optimistic-lock counter (SQLAlchemy version_id_col);
      a concurrent writer that bypassed the row lock surfaces as
      StaleDataError at flush time.

Failure modes:
    - AccountNotFoundError when an operation references a missing account.
    - OptimisticLockError when the version check fails on UPDATE.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class Account(TrackedBase):
    """
    A ledger account owned by one tenant.

    Contract:
        Created and described by the account registry collaborator.  The
        ledger kernel reads it, locks it, and updates the cached balance
        fields only.

    Guarantees:
        - cached_balance is a two-place Decimal, never NULL.
        - recalc_pending is True from the moment a write invalidates the
          chain until the next successful recalculation.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_tenant", "tenant_id"),
        Index("idx_account_recalc_pending", "recalc_pending"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Materialized sum of non-cancelled movements
    cached_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    recalc_pending: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    balance_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Account {self.label}: {self.cached_balance}>"
