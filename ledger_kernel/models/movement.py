"""
Module: ledger_kernel.models.movement
Responsibility: ORM persistence for ledger movements -- the line items whose
    signed amounts form each account's running-balance chain.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Canonical ordering (movement_date, created_at, id) is served by
      idx_movement_canonical; order is always derived, never stored.
    - Exactly one of entry_amount / exit_amount is non-zero
      (ck_movement_one_side); both are non-negative.
    - Movements are never deleted.  Cancellation is a status change.
    - running_balance is written only by the ledger kernel (write path and
      recalculator).

Failure modes:
    - IntegrityError on a two-sided or negative amount.
    - StaleDataError (mapped to OptimisticLockError) on concurrent UPDATE.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class MovementType(str, Enum):
    """How the movement affects the account."""

    ENTRY = "entry"  # Inflow (credit to the account)
    EXIT = "exit"  # Outflow (debit from the account)
    TRANSFER = "transfer"  # Either side of an account-to-account transfer


class MovementStatus(str, Enum):
    """Lifecycle status of a movement.

    Contract: CANCELLED is terminal and excluded from every balance.
    """

    PENDING = "pending"
    SETTLED = "settled"
    TRANSFERRED = "transferred"
    CANCELLED = "cancelled"


VALID_STATUS_TRANSITIONS: dict[MovementStatus, frozenset[MovementStatus]] = {
    MovementStatus.PENDING: frozenset(
        {MovementStatus.SETTLED, MovementStatus.TRANSFERRED, MovementStatus.CANCELLED}
    ),
    MovementStatus.SETTLED: frozenset({MovementStatus.CANCELLED}),
    MovementStatus.TRANSFERRED: frozenset({MovementStatus.CANCELLED}),
    MovementStatus.CANCELLED: frozenset(),
}


class Movement(TrackedBase):
    """
    One ledger line item affecting an account's balance by a signed amount.

    Contract:
        signed_amount = entry_amount - exit_amount.  running_balance is the
        account balance immediately after this movement under canonical
        ordering, once no recompute is pending.

    Non-goals:
        - Does NOT interpret description fields.
        - Does NOT reference other movements; transfers link accounts via
          counterpart_account_id only.
    """

    __tablename__ = "ledger_movements"

    __table_args__ = (
        Index(
            "idx_movement_canonical",
            "account_id",
            "movement_date",
            "created_at",
            "id",
        ),
        Index("idx_movement_status", "status"),
        CheckConstraint(
            "entry_amount >= 0 AND exit_amount >= 0",
            name="ck_movement_non_negative",
        ),
        CheckConstraint(
            "(entry_amount = 0) <> (exit_amount = 0)",
            name="ck_movement_one_side",
        ),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        String(20),
        nullable=False,
    )

    movement_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    entry_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    exit_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    status: Mapped[MovementStatus] = mapped_column(
        String(20),
        default=MovementStatus.PENDING.value,
        nullable=False,
    )

    running_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    detailed_description: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    # Other side of a transfer
    counterpart_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    is_opening_balance: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def signed_amount(self) -> Decimal:
        """Positive for inflows, negative for outflows."""
        return self.entry_amount - self.exit_amount

    @property
    def is_cancelled(self) -> bool:
        return self.status == MovementStatus.CANCELLED

    def __repr__(self) -> str:
        return (
            f"<Movement {self.movement_date} {self.signed_amount} "
            f"[{self.status}] rb={self.running_balance}>"
        )
