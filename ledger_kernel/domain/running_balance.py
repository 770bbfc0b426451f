"""
Running balance -- canonical ordering and prefix-sum computation.

Responsibility:
    The pure core of the ledger kernel.  Given movements, decides their
    canonical order, computes running balances from an opening balance,
    and plans which stored balances need correcting.

Architecture position:
    Kernel > Domain -- pure functional core, ZERO I/O.  Imports only from
    db/types.py (rounding) and domain/dtos.py.

Invariants enforced:
    - Canonical ordering is (movement_date, created_at, id), all ascending.
      The id tie-break makes the order total, so recomputation is
      deterministic and therefore idempotent.
    - running_balance[i] = running_balance[i-1] + signed_amount[i], with
      running_balance[-1] = opening_balance.
    - Cancelled movements never contribute to any balance.
    - Decimal arithmetic quantized to two places; floats are refused.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.dtos import (
    BalanceChange,
    MovementSnapshot,
    RecalculationPlan,
)


def normalize_timestamp(value: datetime) -> datetime:
    """Read naive timestamps as UTC so stored and fresh values compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def canonical_sort_key(
    movement_date: date,
    created_at: datetime,
    movement_id: UUID,
) -> tuple[date, datetime, int]:
    """Sort key for canonical ordering."""
    return (movement_date, normalize_timestamp(created_at), movement_id.int)


def sort_canonically(snapshots: Iterable[MovementSnapshot]) -> list[MovementSnapshot]:
    """Return snapshots in canonical order."""
    return sorted(
        snapshots,
        key=lambda s: canonical_sort_key(s.movement_date, s.created_at, s.movement_id),
    )


def compute_running_balances(
    opening_balance: Decimal,
    ordered_amounts: Iterable[Decimal],
) -> tuple[Decimal, ...]:
    """
    Prefix sums of signed amounts starting from opening_balance.

    Total function: empty input yields an empty tuple.  The same input
    always yields the identical output.

    Raises:
        InvalidAmountError: If any amount (or the opening balance) is a float.
    """
    balance = to_money(opening_balance, "opening_balance")
    balances: list[Decimal] = []
    for amount in ordered_amounts:
        balance = round_money(balance + to_money(amount, "signed_amount"))
        balances.append(balance)
    return tuple(balances)


def plan_recalculation(
    snapshots: Sequence[MovementSnapshot],
    opening_balance: Decimal = ZERO,
) -> RecalculationPlan:
    """
    Decide which stored running balances are wrong.

    Cancelled snapshots are dropped, the rest are put in canonical order,
    balances are recomputed, and only the movements whose stored balance
    differs end up in ``changes``.
    """
    chain = sort_canonically(s for s in snapshots if not s.is_cancelled)
    balances = compute_running_balances(
        opening_balance, (s.signed_amount for s in chain)
    )

    changes = tuple(
        BalanceChange(
            movement_id=snap.movement_id,
            old_balance=snap.running_balance,
            new_balance=new_balance,
        )
        for snap, new_balance in zip(chain, balances)
        if snap.running_balance is None or snap.running_balance != new_balance
    )

    final_balance = balances[-1] if balances else to_money(opening_balance)

    return RecalculationPlan(
        changes=changes,
        final_balance=final_balance,
        movement_count=len(chain),
        ordered_ids=tuple(s.movement_id for s in chain),
    )


def balance_before(
    snapshots: Sequence[MovementSnapshot],
    movement_date: date,
    created_at: datetime,
    movement_id: UUID,
    opening_balance: Decimal = ZERO,
) -> Decimal:
    """
    Balance immediately before a position in the canonical order.

    Used by the write path to assign a provisional running balance to a
    movement that is being inserted into the middle of the chain.
    """
    key = canonical_sort_key(movement_date, created_at, movement_id)
    prefix = [
        s.signed_amount
        for s in snapshots
        if not s.is_cancelled
        and canonical_sort_key(s.movement_date, s.created_at, s.movement_id) < key
    ]
    balances = compute_running_balances(opening_balance, prefix)
    return balances[-1] if balances else to_money(opening_balance)
