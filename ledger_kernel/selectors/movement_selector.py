"""
Module: ledger_kernel.selectors.movement_selector
Responsibility: Paginated, filtered reads of ledger movements (the query
    gateway) and period totals.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Rows always come back in canonical order (movement_date, created_at, id).
    - ``total`` counts every matching row, ignoring limit / offset.
    - An empty account set short-circuits to an empty page without issuing
      a query.
    - Never triggers recomputation.  During an in-flight recompute a reader
      sees the last committed state.

Failure modes:
    - InvalidPaginationError for a negative or non-integer limit / offset.
    - InvalidFilterError is raised earlier, when MovementFilters is built.
    - AccountNotFoundError from query_account_movements for an unknown id.
"""

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.dtos import (
    MovementFilters,
    MovementPage,
    MovementRecord,
    MovementSummary,
)
from ledger_kernel.exceptions import AccountNotFoundError, InvalidPaginationError
from ledger_kernel.models.account import Account
from ledger_kernel.models.movement import Movement, MovementStatus
from ledger_kernel.selectors.base import BaseSelector

CANONICAL_ORDER = (Movement.movement_date, Movement.created_at, Movement.id)


def _validate_pagination(limit: int | None, offset: int) -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise InvalidPaginationError("limit", f"{limit!r} must be a non-negative integer")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise InvalidPaginationError("offset", f"{offset!r} must be a non-negative integer")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MovementSelector(BaseSelector[Movement]):
    """Query gateway over ledger movements."""

    def _conditions(self, account_ids: Collection[UUID], filters: MovementFilters) -> list:
        conds = [Movement.account_id.in_(list(account_ids))]

        start, end = filters.effective_date_range()
        if start is not None:
            conds.append(Movement.movement_date >= start)
        if end is not None:
            conds.append(Movement.movement_date <= end)

        if filters.statuses is not None:
            conds.append(Movement.status.in_(sorted(s.value for s in filters.statuses)))
        if filters.movement_types is not None:
            conds.append(
                Movement.movement_type.in_(sorted(t.value for t in filters.movement_types))
            )

        # Only one side is non-zero, so their sum is the movement's magnitude.
        magnitude = Movement.entry_amount + Movement.exit_amount
        if filters.value_min is not None:
            conds.append(magnitude >= filters.value_min)
        if filters.value_max is not None:
            conds.append(magnitude <= filters.value_max)

        if filters.search is not None:
            pattern = f"%{_escape_like(filters.search)}%"
            conds.append(
                or_(
                    Movement.description.ilike(pattern, escape="\\"),
                    Movement.detailed_description.ilike(pattern, escape="\\"),
                )
            )
        return conds

    def query_movements(
        self,
        account_ids: Collection[UUID],
        filters: MovementFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        """
        Filtered, paginated movements across a set of accounts.

        Args:
            account_ids: Accounts to read.  Empty -> empty page.
            filters: Optional MovementFilters.
            limit: Page size; None for no limit.
            offset: Rows to skip.

        Returns:
            MovementPage(rows in canonical order, total before pagination).
        """
        _validate_pagination(limit, offset)
        if not account_ids:
            return MovementPage()
        filters = filters or MovementFilters()
        conds = self._conditions(account_ids, filters)

        total = self.session.execute(
            select(func.count()).select_from(Movement).where(*conds)
        ).scalar_one()

        stmt = select(Movement).where(*conds).order_by(*CANONICAL_ORDER).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        rows = tuple(
            MovementRecord.from_model(m) for m in self.session.execute(stmt).scalars()
        )
        return MovementPage(rows=rows, total=total)

    def query_account_movements(
        self,
        account_id: UUID,
        filters: MovementFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        """Single-account variant of query_movements()."""
        _validate_pagination(limit, offset)
        if self.session.get(Account, account_id) is None:
            raise AccountNotFoundError(str(account_id))
        return self.query_movements([account_id], filters, limit, offset)

    def summarize_movements(
        self,
        account_ids: Collection[UUID],
        filters: MovementFilters | None = None,
    ) -> MovementSummary:
        """
        Entry / exit totals over the matching movements.

        Cancelled movements are left out unless the filter asks for the
        cancelled status explicitly.  cached_balance is filled in when
        exactly one account is requested.
        """
        if not account_ids:
            return MovementSummary(total_entries=ZERO, total_exits=ZERO, movement_count=0)
        filters = filters or MovementFilters()
        conds = self._conditions(account_ids, filters)
        if filters.statuses is None or MovementStatus.CANCELLED not in filters.statuses:
            conds.append(Movement.status != MovementStatus.CANCELLED.value)

        rows = self.session.execute(
            select(Movement.entry_amount, Movement.exit_amount).where(*conds)
        ).all()

        total_entries = ZERO
        total_exits = ZERO
        for entry_amount, exit_amount in rows:
            total_entries += to_money(entry_amount)
            total_exits += to_money(exit_amount)

        cached_balance = None
        if len(account_ids) == 1:
            (only_id,) = tuple(account_ids)
            account = self.session.get(Account, only_id)
            if account is None:
                raise AccountNotFoundError(str(only_id))
            cached_balance = to_money(account.cached_balance)

        return MovementSummary(
            total_entries=round_money(total_entries),
            total_exits=round_money(total_exits),
            movement_count=len(rows),
            cached_balance=cached_balance,
        )
