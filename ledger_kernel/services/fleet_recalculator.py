"""
FleetRecalculator -- recompute many accounts with per-account isolation.

Responsibility:
    Runs the single-account recompute once per account, each in its own
    transaction, and collects an outcome per account.  A failure on one
    account never stops the batch.

Architecture position:
    Kernel > Services.  Does not touch a session itself: it is handed a
    callable (normally ``LedgerOrchestrator.recalculate_account``) that owns
    one transaction per call.

Invariants enforced:
    - Outcomes are returned in the order the account ids were given.
    - Every exception from a single account is captured as a FAILED outcome
      carrying its error code; the batch itself always returns.
    - At most ``max_workers`` accounts are in flight at once
      (1 means strictly sequential).
"""

import contextvars
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountRecalcOutcome,
    FleetRecalcReport,
    RecalcResult,
)
from ledger_kernel.exceptions import LedgerKernelError
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.fleet")

UNHANDLED_ERROR_CODE = "UNHANDLED_EXCEPTION"


class FleetRecalculator:
    """Bounded-parallel batch recompute."""

    def __init__(
        self,
        recalculate_one: Callable[[UUID], RecalcResult],
        clock: Clock | None = None,
        max_workers: int = 4,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._recalculate_one = recalculate_one
        self._clock = clock or SystemClock()
        self._max_workers = max_workers

    def run(self, account_ids: Sequence[UUID]) -> FleetRecalcReport:
        """
        Recompute every account in account_ids.

        Returns:
            FleetRecalcReport with one outcome per id, in input order.
        """
        start_time = time.monotonic()
        started_at = self._clock.now()
        account_ids = list(account_ids)

        logger.info(
            "fleet_recalculation_started",
            extra={"account_count": len(account_ids), "max_workers": self._max_workers},
        )

        if self._max_workers == 1 or len(account_ids) <= 1:
            outcomes = [self._run_one(account_id) for account_id in account_ids]
        else:
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="ledger-fleet",
            ) as executor:
                # Copied context carries LogContext fields into the workers.
                futures = [
                    executor.submit(contextvars.copy_context().run, self._run_one, account_id)
                    for account_id in account_ids
                ]
                outcomes = [future.result() for future in futures]

        report = FleetRecalcReport(
            outcomes=tuple(outcomes),
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

        logger.info(
            "fleet_recalculation_completed",
            extra={
                "account_count": len(report.outcomes),
                "succeeded": len(report.succeeded),
                "failed": len(report.failed),
                "accounts_fixed": report.accounts_fixed,
                "total_rows_updated": report.total_rows_updated,
                "duration_ms": report.duration_ms,
            },
        )
        return report

    def _run_one(self, account_id: UUID) -> AccountRecalcOutcome:
        with LogContext.bind(account_id=account_id):
            try:
                result = self._recalculate_one(account_id)
            except LedgerKernelError as exc:
                logger.warning(
                    "fleet_account_failed",
                    extra={"error_code": exc.code, "error_message": str(exc)},
                )
                return AccountRecalcOutcome.failed(account_id, exc.code, str(exc))
            except Exception as exc:
                logger.error(
                    "fleet_account_failed",
                    extra={"error_code": UNHANDLED_ERROR_CODE, "error_message": str(exc)},
                    exc_info=True,
                )
                return AccountRecalcOutcome.failed(account_id, UNHANDLED_ERROR_CODE, str(exc))
            return AccountRecalcOutcome.ok(result)
