"""
LedgerOrchestrator -- the public entry point of the ledger kernel.

Responsibility:
    Owns the transaction boundary of every kernel operation.  Each public
    method opens one session via ``session_scope``, wires the flush-only
    services / selectors onto it, and commits or rolls back as a unit.

Architecture position:
    Kernel > Orchestration.  Callers (HTTP handlers, scripts, tests) talk to
    this class; services and selectors are never handed a session by
    anyone else in production.

Invariants enforced:
    - One operation, one transaction.  A failure anywhere rolls back every
      write made by that operation.
    - SQLAlchemy failures never leak: StaleDataError becomes
      OptimisticLockError, any other SQLAlchemyError becomes StorageError.
    - Recompute, balance sync, movement edits and status changes retry a
      ConsistencyError ``settings.consistency_retries`` times, each attempt
      on a fresh session.
    - Return values are frozen DTOs, never ORM instances.

Failure modes:
    - ValidationError subclasses: rejected before storage is touched.
    - NotFoundError subclasses: unknown account / movement.
    - ConsistencyError: still conflicting after the retry budget.
    - StorageError: backend unavailable or transaction aborted.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.config import LedgerSettings
from ledger_kernel.db.engine import get_session_factory, init_engine_from_url, session_scope
from ledger_kernel.db.types import ZERO, to_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    FleetRecalcReport,
    MovementFilters,
    MovementPage,
    MovementRecord,
    MovementSummary,
    RecalcResult,
)
from ledger_kernel.exceptions import ConsistencyError, OptimisticLockError, StorageError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.movement import MovementStatus, MovementType
from ledger_kernel.selectors.movement_selector import MovementSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_sync_service import BalanceSyncService
from ledger_kernel.services.fleet_recalculator import FleetRecalculator
from ledger_kernel.services.movement_service import MovementService
from ledger_kernel.services.recalculation_service import RecalculationService

logger = get_logger("orchestrator")

T = TypeVar("T")

OPENING_BALANCE_DESCRIPTION = "Opening balance"


class LedgerOrchestrator:
    """
    Transaction-owning facade over the ledger kernel.

    Args:
        session_factory: sessionmaker bound to the ledger database.
        clock: Injected clock; SystemClock by default.
        settings: Retry budget, fleet parallelism and eager-repair switch.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        clock: Clock | None = None,
    ) -> LedgerOrchestrator:
        """Initialize the module engine from settings and build an orchestrator on it."""
        init_engine_from_url(
            settings.database_url,
            echo=settings.echo,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
        )
        return cls(get_session_factory(), clock=clock, settings=settings)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    # -------------------------------------------------------------------------
    # Transaction plumbing
    # -------------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str, entity_id: Any = None) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except StaleDataError as exc:
            raise OptimisticLockError(operation, str(entity_id)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc

    def _run(
        self,
        operation: str,
        work: Callable[[Session], T],
        entity_id: Any = None,
        retry: bool = False,
    ) -> T:
        attempts = 1 + (self._settings.consistency_retries if retry else 0)
        attempt = 1
        while True:
            try:
                with self._transaction(operation, entity_id) as session:
                    return work(session)
            except ConsistencyError as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "consistency_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "error_code": exc.code,
                        "error_message": str(exc),
                    },
                )
                attempt += 1

    def _movement_service(self, session: Session) -> MovementService:
        return MovementService(session, self._clock, eager_repair=self._settings.eager_repair)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def open_account(
        self,
        tenant_id: UUID,
        label: str,
        opening_balance: Decimal | int | str = ZERO,
        opening_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Create an account.  A non-zero opening balance is recorded as a
        settled opening-balance movement on opening_date (today by default).
        """
        opening_balance = to_money(opening_balance, "opening_balance")

        def work(session: Session) -> AccountInfo:
            registry = AccountRegistry(session, self._clock)
            account = registry.open_account(tenant_id, label, actor_id=actor_id)
            if opening_balance != ZERO:
                self._movement_service(session).insert_movement(
                    account.id,
                    opening_date or self._clock.now().date(),
                    opening_balance,
                    status=MovementStatus.SETTLED,
                    description=OPENING_BALANCE_DESCRIPTION,
                    is_opening_balance=True,
                    actor_id=actor_id,
                )
            return registry.to_info(account)

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            return self._run("open_account", work)

    def get_account(self, account_id: UUID) -> AccountInfo:
        return self._run(
            "get_account",
            lambda session: AccountRegistry(session, self._clock).describe(account_id),
        )

    def list_account_ids(
        self,
        tenant_id: UUID | None = None,
        only_pending: bool = False,
    ) -> list[UUID]:
        return self._run(
            "list_account_ids",
            lambda session: AccountRegistry(session, self._clock).list_account_ids(
                tenant_id, only_pending=only_pending
            ),
        )

    # -------------------------------------------------------------------------
    # Write path
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
        actor_id: UUID | None = None,
    ) -> MovementRecord:
        """Record one movement; positive amount = entry, negative = exit."""

        def work(session: Session) -> MovementRecord:
            movement = self._movement_service(session).insert_movement(
                account_id,
                movement_date,
                amount,
                status=status,
                movement_type=movement_type,
                description=description,
                detailed_description=detailed_description,
                category_id=category_id,
                actor_id=actor_id,
            )
            return MovementRecord.from_model(movement)

        with LogContext.bind(account_id=account_id, actor_id=actor_id):
            return self._run("insert_movement", work, account_id)

    def record_transfer(
        self,
        source_account_id: UUID,
        destination_account_id: UUID,
        movement_date: date,
        amount: Decimal | int | str,
        *,
        status: MovementStatus | str = MovementStatus.TRANSFERRED,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[MovementRecord, MovementRecord]:
        def work(session: Session) -> tuple[MovementRecord, MovementRecord]:
            source, destination = self._movement_service(session).record_transfer(
                source_account_id,
                destination_account_id,
                movement_date,
                amount,
                status=status,
                description=description,
                actor_id=actor_id,
            )
            return MovementRecord.from_model(source), MovementRecord.from_model(destination)

        with LogContext.bind(actor_id=actor_id):
            return self._run("record_transfer", work, source_account_id)

    def update_movement(self, movement_id: UUID, changes: Mapping[str, Any]) -> MovementRecord:
        return self._run(
            "update_movement",
            lambda session: MovementRecord.from_model(
                self._movement_service(session).update_movement(movement_id, changes)
            ),
            movement_id,
            retry=True,
        )

    def change_status(
        self,
        movement_id: UUID,
        new_status: MovementStatus | str,
    ) -> MovementRecord:
        return self._run(
            "change_status",
            lambda session: MovementRecord.from_model(
                self._movement_service(session).change_status(movement_id, new_status)
            ),
            movement_id,
            retry=True,
        )

    def cancel_movement(self, movement_id: UUID) -> MovementRecord:
        return self.change_status(movement_id, MovementStatus.CANCELLED)

    # -------------------------------------------------------------------------
    # Recompute
    # -------------------------------------------------------------------------

    def recalculate_account(self, account_id: UUID) -> RecalcResult:
        """Recompute one account in its own transaction, retrying a ConsistencyError."""
        with LogContext.bind(account_id=account_id):
            return self._run(
                "recalculate_account",
                lambda session: RecalculationService(session, self._clock).recalculate_account(
                    account_id
                ),
                account_id,
                retry=True,
            )

    def recalculate_all_accounts(
        self,
        tenant_id: UUID | None = None,
        account_ids: Collection[UUID] | None = None,
        only_pending: bool = False,
        max_workers: int | None = None,
    ) -> FleetRecalcReport:
        """
        Recompute many accounts, one transaction each.

        Explicit account_ids are used as given; otherwise the tenant's
        accounts (all of them, or only those flagged recalc_pending) are
        resolved first.
        """
        if account_ids is None:
            account_ids = self.list_account_ids(tenant_id, only_pending=only_pending)

        fleet = FleetRecalculator(
            self.recalculate_account,
            clock=self._clock,
            max_workers=max_workers or self._settings.fleet_max_workers,
        )
        with LogContext.bind(tenant_id=tenant_id):
            return fleet.run(list(account_ids))

    def sync_current_balance(self, account_id: UUID) -> Decimal:
        with LogContext.bind(account_id=account_id):
            return self._run(
                "sync_current_balance",
                lambda session: BalanceSyncService(session, self._clock).sync_current_balance(
                    account_id
                ),
                account_id,
                retry=True,
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_movements(
        self,
        account_ids: Collection[UUID],
        filters: MovementFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        return self._run(
            "query_movements",
            lambda session: MovementSelector(session).query_movements(
                account_ids, filters, limit, offset
            ),
        )

    def query_account_movements(
        self,
        account_id: UUID,
        filters: MovementFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        return self._run(
            "query_account_movements",
            lambda session: MovementSelector(session).query_account_movements(
                account_id, filters, limit, offset
            ),
        )

    def summarize_movements(
        self,
        account_ids: Collection[UUID],
        filters: MovementFilters | None = None,
    ) -> MovementSummary:
        return self._run(
            "summarize_movements",
            lambda session: MovementSelector(session).summarize_movements(account_ids, filters),
        )
