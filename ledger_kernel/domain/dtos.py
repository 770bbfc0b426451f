"""
Data Transfer Objects for the ledger kernel.

Responsibility:
    Frozen dataclasses passed between the pure domain core, the services,
    the selectors and external callers.  Selectors and the orchestrator
    return these, never ORM instances.

Architecture position:
    Kernel > Domain -- pure, ZERO I/O.

Invariants enforced:
    - All DTOs are frozen (immutable once built).
    - MovementFilters validates itself on construction, so a malformed
      filter is rejected before any query is issued.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import to_money
from ledger_kernel.exceptions import InvalidFilterError
from ledger_kernel.models.movement import Movement, MovementStatus, MovementType

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


# =============================================================================
# Recalculation
# =============================================================================


@dataclass(frozen=True)
class MovementSnapshot:
    """The fields of a movement that the balance algorithm reads."""

    movement_id: UUID
    movement_date: date
    created_at: datetime
    signed_amount: Decimal
    status: MovementStatus
    running_balance: Decimal | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == MovementStatus.CANCELLED

    @classmethod
    def from_model(cls, movement: Movement) -> MovementSnapshot:
        return cls(
            movement_id=movement.id,
            movement_date=movement.movement_date,
            created_at=movement.created_at,
            signed_amount=movement.entry_amount - movement.exit_amount,
            status=MovementStatus(movement.status),
            running_balance=movement.running_balance,
        )


@dataclass(frozen=True)
class BalanceChange:
    """One stored running balance that must be corrected."""

    movement_id: UUID
    old_balance: Decimal | None
    new_balance: Decimal


@dataclass(frozen=True)
class RecalculationPlan:
    """Output of plan_recalculation(): what to write, and the end state."""

    changes: tuple[BalanceChange, ...]
    final_balance: Decimal
    movement_count: int
    ordered_ids: tuple[UUID, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.changes


@dataclass(frozen=True)
class RecalcResult:
    """Result of recalculating one account."""

    account_id: UUID
    updated_count: int
    final_balance: Decimal
    movement_count: int = 0
    # Cached balance had drifted from the movement sum and was rewritten.
    balance_corrected: bool = False


class AccountRecalcStatus(str, Enum):
    """Per-account status inside a fleet report."""

    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class AccountRecalcOutcome:
    """Ok(final_balance) or Failed(error) for one account of a fleet run."""

    account_id: UUID
    status: AccountRecalcStatus
    final_balance: Decimal | None = None
    updated_count: int = 0
    balance_corrected: bool = False
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def ok(cls, result: RecalcResult) -> AccountRecalcOutcome:
        return cls(
            account_id=result.account_id,
            status=AccountRecalcStatus.OK,
            final_balance=result.final_balance,
            updated_count=result.updated_count,
            balance_corrected=result.balance_corrected,
        )

    @classmethod
    def failed(cls, account_id: UUID, error_code: str, error_message: str) -> AccountRecalcOutcome:
        return cls(
            account_id=account_id,
            status=AccountRecalcStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
        )

    @property
    def is_ok(self) -> bool:
        return self.status == AccountRecalcStatus.OK


@dataclass(frozen=True)
class FleetRecalcReport:
    """Result of recalculating many accounts.

    The batch itself always succeeds; individual outcomes carry failures.
    Outcomes are in the same order as the requested account ids.
    """

    outcomes: tuple[AccountRecalcOutcome, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> tuple[AccountRecalcOutcome, ...]:
        return tuple(o for o in self.outcomes if o.is_ok)

    @property
    def failed(self) -> tuple[AccountRecalcOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.is_ok)

    @property
    def accounts_fixed(self) -> int:
        """Accounts where a running balance or the cached balance was corrected."""
        return sum(1 for o in self.succeeded if o.updated_count > 0 or o.balance_corrected)

    @property
    def total_rows_updated(self) -> int:
        return sum(o.updated_count for o in self.succeeded)

    @property
    def is_complete(self) -> bool:
        """True when no account failed."""
        return not self.failed

    def outcome_for(self, account_id: UUID) -> AccountRecalcOutcome | None:
        for outcome in self.outcomes:
            if outcome.account_id == account_id:
                return outcome
        return None


# =============================================================================
# Queries
# =============================================================================


def _as_enum_set(values, enum_cls, field_name: str) -> frozenset | None:
    if values is None:
        return None
    if isinstance(values, (str, Enum)):
        values = [values]
    try:
        return frozenset(enum_cls(v) for v in values)
    except ValueError:
        raise InvalidFilterError(field_name, f"unknown value in {sorted(map(str, values))}")


@dataclass(frozen=True)
class MovementFilters:
    """
    Filters for the query gateway.

    Contract:
        Every field is optional.  ``statuses`` and ``movement_types`` accept
        enum members or their string values.  ``period`` is "YYYY-MM" and
        is intersected with date_from / date_to.

    Guarantees:
        Construction raises InvalidFilterError when date_from > date_to,
        value_min > value_max, a bound is negative, the period is
        malformed, or a status/type is unknown.
    """

    date_from: date | None = None
    date_to: date | None = None
    period: str | None = None
    statuses: frozenset[MovementStatus] | None = None
    movement_types: frozenset[MovementType] | None = None
    value_min: Decimal | None = None
    value_max: Decimal | None = None
    search: str | None = None

    def __post_init__(self) -> None:
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise InvalidFilterError(
                "date_from", f"{self.date_from} is after date_to {self.date_to}"
            )

        if self.period is not None:
            match = _PERIOD_RE.match(self.period)
            if not match or not 1 <= int(match.group(2)) <= 12:
                raise InvalidFilterError("period", f"{self.period!r} is not YYYY-MM")

        object.__setattr__(
            self, "statuses", _as_enum_set(self.statuses, MovementStatus, "statuses")
        )
        object.__setattr__(
            self,
            "movement_types",
            _as_enum_set(self.movement_types, MovementType, "movement_types"),
        )

        for name in ("value_min", "value_max"):
            raw = getattr(self, name)
            if raw is None:
                continue
            value = to_money(raw, name)
            if value < 0:
                raise InvalidFilterError(name, "must not be negative")
            object.__setattr__(self, name, value)

        if (
            self.value_min is not None
            and self.value_max is not None
            and self.value_min > self.value_max
        ):
            raise InvalidFilterError(
                "value_min", f"{self.value_min} is greater than value_max {self.value_max}"
            )

        if self.search is not None:
            stripped = self.search.strip()
            object.__setattr__(self, "search", stripped or None)

    def effective_date_range(self) -> tuple[date | None, date | None]:
        """Combine date_from / date_to with the period month."""
        start, end = self.date_from, self.date_to
        if self.period is not None:
            year, month = (int(p) for p in self.period.split("-"))
            month_start = date(year, month, 1)
            month_end = date(year, month, calendar.monthrange(year, month)[1])
            start = max(start, month_start) if start else month_start
            end = min(end, month_end) if end else month_end
        return start, end


@dataclass(frozen=True)
class MovementRecord:
    """Read-side view of one movement."""

    movement_id: UUID
    account_id: UUID
    movement_date: date
    created_at: datetime
    movement_type: MovementType
    entry_amount: Decimal
    exit_amount: Decimal
    status: MovementStatus
    running_balance: Decimal
    description: str | None = None
    detailed_description: str | None = None
    counterpart_account_id: UUID | None = None
    category_id: UUID | None = None
    is_opening_balance: bool = False

    @property
    def signed_amount(self) -> Decimal:
        return self.entry_amount - self.exit_amount

    @classmethod
    def from_model(cls, movement: Movement) -> MovementRecord:
        return cls(
            movement_id=movement.id,
            account_id=movement.account_id,
            movement_date=movement.movement_date,
            created_at=movement.created_at,
            movement_type=MovementType(movement.movement_type),
            entry_amount=to_money(movement.entry_amount),
            exit_amount=to_money(movement.exit_amount),
            status=MovementStatus(movement.status),
            running_balance=to_money(movement.running_balance),
            description=movement.description,
            detailed_description=movement.detailed_description,
            counterpart_account_id=movement.counterpart_account_id,
            category_id=movement.category_id,
            is_opening_balance=movement.is_opening_balance,
        )


@dataclass(frozen=True)
class MovementPage:
    """One page of query results plus the unpaginated match count."""

    rows: tuple[MovementRecord, ...] = ()
    total: int = 0


@dataclass(frozen=True)
class MovementSummary:
    """Totals over the movements matching a filter."""

    total_entries: Decimal
    total_exits: Decimal
    movement_count: int
    cached_balance: Decimal | None = None

    @property
    def net(self) -> Decimal:
        return self.total_entries - self.total_exits


@dataclass(frozen=True)
class AccountInfo:
    """Read-side view of an account."""

    account_id: UUID
    tenant_id: UUID
    label: str
    cached_balance: Decimal
    recalc_pending: bool
    balance_synced_at: datetime | None = None
