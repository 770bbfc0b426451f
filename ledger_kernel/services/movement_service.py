"""
MovementService -- the write path for ledger movements.

Responsibility:
    Insert, transfer, edit and change the status of movements while keeping
    each account's running-balance chain either correct or explicitly
    flagged for recompute.

Architecture position:
    Kernel > Services.  The only component besides the recalculator that
    writes Movement.running_balance.

Invariants enforced:
    - Every write locks the affected account rows first (in id order when
      there is more than one).
    - Append (the new movement sorts last): running_balance is
      previous + signed_amount and the cached balance moves by the same delta.
    - Anything else (backdated insert, edit, cancellation) invalidates the
      chain from that point: the account is flagged recalc_pending and, with
      eager_repair, recomputed in the same transaction.
    - Order is re-derived from current field values on every recompute;
      no position is cached.
    - Movements are never deleted.  Cancellation is a status change.

Failure modes:
    - InvalidAmountError: zero, float or non-numeric amount.
    - InvalidStatusTransitionError: e.g. cancelled -> settled.
    - ValidationError: unknown status / edit field, transfer to self,
      movement_date that is not a plain date.
    - ConsistencyError: the movement changed account between the unlocked
      read and the account lock.
    - AccountNotFoundError / MovementNotFoundError.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.dtos import MovementSnapshot
from ledger_kernel.domain.running_balance import balance_before, canonical_sort_key
from ledger_kernel.exceptions import (
    ConsistencyError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    MovementNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import (
    VALID_STATUS_TRANSITIONS,
    Movement,
    MovementStatus,
    MovementType,
)
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_sync_service import BalanceSyncService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.recalculation_service import RecalculationService

logger = get_logger("services.movement")

EDITABLE_FIELDS = frozenset(
    {
        "movement_date",
        "amount",
        "description",
        "detailed_description",
        "category_id",
        "account_id",
    }
)


def _parse_status(value: MovementStatus | str) -> MovementStatus:
    try:
        return MovementStatus(value)
    except ValueError:
        raise ValidationError("status", f"unknown status {value!r}")


def _nonzero_amount(value: Decimal | int | str) -> Decimal:
    amount = to_money(value)
    if amount == ZERO:
        raise InvalidAmountError("amount", "must not be zero")
    return amount


def _movement_date(value: Any) -> date:
    if not isinstance(value, date) or isinstance(value, datetime):
        raise ValidationError("movement_date", f"expected a date, got {type(value).__name__}")
    return value


class MovementService(BaseService[Movement]):
    """
    Write path for movements.

    Args:
        eager_repair: Recompute an invalidated account inside the same
            transaction.  When False, the account is only flagged
            recalc_pending and left for the fleet recalculator.
    """

    def __init__(self, session, clock=None, eager_repair: bool = True):
        super().__init__(session, clock)
        self.eager_repair = eager_repair
        self._registry = AccountRegistry(session, self.clock)
        self._balance_sync = BalanceSyncService(session, self.clock)
        self._recalculator = RecalculationService(session, self.clock)

    # -------------------------------------------------------------------------
    # Insert
    # -------------------------------------------------------------------------

    def insert_movement(
        self,
        account_id: UUID,
        movement_date: date,
        amount: Decimal | int | str,
        *,
        status: MovementStatus | str = MovementStatus.PENDING,
        movement_type: MovementType | None = None,
        description: str | None = None,
        detailed_description: str | None = None,
        category_id: UUID | None = None,
        counterpart_account_id: UUID | None = None,
        is_opening_balance: bool = False,
        actor_id: UUID | None = None,
    ) -> Movement:
        """
        Record a movement.  Positive amount is an entry, negative an exit.

        Raises:
            InvalidAmountError: amount is zero or not a valid Decimal.
            AccountNotFoundError: unknown account.
        """
        movement_date = _movement_date(movement_date)
        signed_amount = _nonzero_amount(amount)
        status = _parse_status(status)

        account = self._registry.lock_account(account_id)
        return self._insert_locked(
            account,
            movement_date,
            signed_amount,
            status=status,
            movement_type=movement_type,
            description=description,
            detailed_description=detailed_description,
            category_id=category_id,
            counterpart_account_id=counterpart_account_id,
            is_opening_balance=is_opening_balance,
            actor_id=actor_id,
        )

    def _insert_locked(
        self,
        account: Account,
        movement_date: date,
        signed_amount: Decimal,
        *,
        status: MovementStatus,
        movement_type: MovementType | None,
        description: str | None,
        detailed_description: str | None,
        category_id: UUID | None,
        counterpart_account_id: UUID | None,
        is_opening_balance: bool,
        actor_id: UUID | None,
    ) -> Movement:
        if movement_type is None:
            movement_type = MovementType.ENTRY if signed_amount > 0 else MovementType.EXIT

        movement = Movement(
            id=uuid4(),
            account_id=account.id,
            movement_type=MovementType(movement_type).value,
            movement_date=movement_date,
            entry_amount=signed_amount if signed_amount > 0 else ZERO,
            exit_amount=-signed_amount if signed_amount < 0 else ZERO,
            status=status.value,
            description=description,
            detailed_description=detailed_description,
            category_id=category_id,
            counterpart_account_id=counterpart_account_id,
            is_opening_balance=is_opening_balance,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )

        last = self._last_in_chain(account.id)
        is_append = not account.recalc_pending and (
            last is None
            or canonical_sort_key(movement.movement_date, movement.created_at, movement.id)
            > canonical_sort_key(last.movement_date, last.created_at, last.id)
        )

        if is_append:
            previous = to_money(last.running_balance) if last is not None else ZERO
            movement.running_balance = round_money(previous + signed_amount)
        else:
            prefix = balance_before(
                self._chain_snapshots(account.id),
                movement.movement_date,
                movement.created_at,
                movement.id,
            )
            movement.running_balance = round_money(prefix + signed_amount)

        self.session.add(movement)
        self.session.flush()

        # A movement born cancelled is stored but never moves a balance.
        if status != MovementStatus.CANCELLED:
            if is_append:
                self._balance_sync.apply_delta(account, signed_amount)
            else:
                self._invalidate(account, delta=signed_amount)

        logger.info(
            "movement_inserted",
            extra={
                "movement_id": str(movement.id),
                "account_id": str(account.id),
                "signed_amount": str(signed_amount),
                "movement_date": movement_date.isoformat(),
                "backdated": not is_append,
            },
        )
        return movement

    def record_transfer(
        self,
        source_account_id: UUID,
        destination_account_id: UUID,
        movement_date: date,
        amount: Decimal | int | str,
        *,
        status: MovementStatus | str = MovementStatus.TRANSFERRED,
        description: str | None = None,
        detailed_description: str | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[Movement, Movement]:
        """
        Move a positive amount between two accounts.

        Writes an exit on the source and an entry on the destination, each
        pointing at the other account through counterpart_account_id.

        Returns:
            (source_movement, destination_movement)
        """
        value = _nonzero_amount(amount)
        if value < 0:
            raise InvalidAmountError("amount", "transfer amount must be positive")
        movement_date = _movement_date(movement_date)
        if source_account_id == destination_account_id:
            raise ValidationError(
                "destination_account_id", "must differ from the source account"
            )
        status = _parse_status(status)

        locked = self._registry.lock_accounts([source_account_id, destination_account_id])

        common = dict(
            status=status,
            movement_type=MovementType.TRANSFER,
            description=description,
            detailed_description=detailed_description,
            category_id=None,
            is_opening_balance=False,
            actor_id=actor_id,
        )
        source_movement = self._insert_locked(
            locked[source_account_id],
            movement_date,
            -value,
            counterpart_account_id=destination_account_id,
            **common,
        )
        destination_movement = self._insert_locked(
            locked[destination_account_id],
            movement_date,
            value,
            counterpart_account_id=source_account_id,
            **common,
        )
        return source_movement, destination_movement

    # -------------------------------------------------------------------------
    # Edit
    # -------------------------------------------------------------------------

    def update_movement(self, movement_id: UUID, changes: Mapping[str, Any]) -> Movement:
        """
        Edit a movement and repair every affected chain.

        Accepted keys: movement_date, amount (signed), description,
        detailed_description, category_id, account_id (move to another
        account).  Both the old and the new account are repaired.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError("changes", f"cannot edit {sorted(unknown)}")
        new_amount = _nonzero_amount(changes["amount"]) if "amount" in changes else None
        if "movement_date" in changes:
            _movement_date(changes["movement_date"])

        movement = self._get_movement(movement_id)
        affected = {movement.account_id}
        if changes.get("account_id") is not None:
            affected.add(changes["account_id"])

        locked = self._registry.lock_accounts(affected)
        movement = self._get_movement(movement_id, for_update=True)
        if movement.account_id not in locked:
            raise ConsistencyError(
                f"Movement {movement_id} moved to account {movement.account_id} "
                "before its account lock was taken"
            )

        if "movement_date" in changes:
            movement.movement_date = changes["movement_date"]
        if new_amount is not None:
            movement.entry_amount = new_amount if new_amount > 0 else ZERO
            movement.exit_amount = -new_amount if new_amount < 0 else ZERO
            if movement.movement_type != MovementType.TRANSFER.value:
                movement.movement_type = (
                    MovementType.ENTRY.value if new_amount > 0 else MovementType.EXIT.value
                )
        for key in ("description", "detailed_description", "category_id"):
            if key in changes:
                setattr(movement, key, changes[key])
        if changes.get("account_id") is not None:
            movement.account_id = changes["account_id"]
        self.session.flush()

        for account in locked.values():
            self._invalidate(account)

        logger.info(
            "movement_updated",
            extra={
                "movement_id": str(movement.id),
                "fields": sorted(changes),
                "accounts": [str(a) for a in locked],
            },
        )
        return movement

    def change_status(self, movement_id: UUID, new_status: MovementStatus | str) -> Movement:
        """
        Move a movement through its lifecycle.

        Re-applying the current status is a no-op.  Cancelling repairs the
        account chain; other transitions leave balances untouched.

        Raises:
            InvalidStatusTransitionError: transition not allowed.
        """
        target = _parse_status(new_status)
        movement = self._get_movement(movement_id)
        current = MovementStatus(movement.status)

        if current == target:
            return movement
        if target not in VALID_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(str(movement_id), current.value, target.value)

        account = self._registry.lock_account(movement.account_id)
        movement = self._get_movement(movement_id, for_update=True)
        if movement.account_id != account.id:
            raise ConsistencyError(
                f"Movement {movement_id} moved to account {movement.account_id} "
                "before its account lock was taken"
            )
        current = MovementStatus(movement.status)
        if target not in VALID_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(str(movement_id), current.value, target.value)

        movement.status = target.value
        self.session.flush()

        if target == MovementStatus.CANCELLED:
            self._invalidate(account, delta=-movement.signed_amount)

        logger.info(
            "movement_status_changed",
            extra={
                "movement_id": str(movement_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return movement

    def cancel_movement(self, movement_id: UUID) -> Movement:
        return self.change_status(movement_id, MovementStatus.CANCELLED)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _invalidate(self, account: Account, delta: Decimal | None = None) -> None:
        """Flag the chain as stale, then repair it now or leave it pending."""
        self._registry.mark_pending(account)
        self.session.flush()

        if self.eager_repair:
            self._recalculator.recalculate_locked(account)
        elif delta is not None:
            self._balance_sync.apply_delta(account, delta)
        else:
            self._balance_sync.sync(account)

    def _get_movement(self, movement_id: UUID, for_update: bool = False) -> Movement:
        stmt = select(Movement).where(Movement.id == movement_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        movement = self.session.execute(stmt).scalar_one_or_none()
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        return movement

    def _last_in_chain(self, account_id: UUID) -> Movement | None:
        return self.session.execute(
            select(Movement)
            .where(
                Movement.account_id == account_id,
                Movement.status != MovementStatus.CANCELLED.value,
            )
            .order_by(
                Movement.movement_date.desc(),
                Movement.created_at.desc(),
                Movement.id.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()

    def _chain_snapshots(self, account_id: UUID) -> list[MovementSnapshot]:
        movements = self.session.execute(
            select(Movement).where(Movement.account_id == account_id)
        ).scalars()
        return [MovementSnapshot.from_model(m) for m in movements]
