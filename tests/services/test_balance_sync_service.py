"""
Tests for the current-balance synchronizer.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from ledger_kernel.domain.running_balance import normalize_timestamp
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.balance_sync_service import BalanceSyncService
from ledger_kernel.services.movement_service import MovementService


class TestSyncCurrentBalance:
    def test_no_movements_is_zero(self, orchestrator, make_account):
        account = make_account()
        assert orchestrator.sync_current_balance(account.account_id) == Decimal("0.00")

    def test_matches_last_running_balance(self, orchestrator, make_account, add_movements, chain):
        account = make_account()
        add_movements(
            orchestrator,
            account.account_id,
            [(date(2024, 1, 2), "250.10"), (date(2024, 1, 1), "-50.05"), (date(2024, 1, 3), "9.95")],
        )

        balance = orchestrator.sync_current_balance(account.account_id)

        assert balance == chain(account.account_id)[-1][2]
        assert balance == Decimal("210.00")

    def test_cancelled_excluded(self, orchestrator, make_account, add_movements):
        account = make_account()
        keep, drop = add_movements(
            orchestrator, account.account_id, [(date(2024, 1, 1), "80"), (date(2024, 1, 2), "20")]
        )
        orchestrator.cancel_movement(drop.movement_id)

        assert orchestrator.sync_current_balance(account.account_id) == Decimal("80.00")

    def test_repairs_drifted_cache_and_stamps_time(
        self, orchestrator, make_account, add_movements, session_factory, clock, captured_logs
    ):
        account = make_account()
        add_movements(orchestrator, account.account_id, [(date(2024, 1, 1), "40")])
        with session_factory.begin() as s:
            s.execute(
                update(Account)
                .where(Account.id == account.account_id)
                .values(cached_balance=Decimal("1.00"), version=Account.version + 1)
            )
        clock.set_time(datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc))

        assert orchestrator.sync_current_balance(account.account_id) == Decimal("40.00")

        info = orchestrator.get_account(account.account_id)
        assert info.cached_balance == Decimal("40.00")
        assert normalize_timestamp(info.balance_synced_at) == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        assert any(r["message"] == "cached_balance_corrected" for r in captured_logs())

    def test_unknown_account(self, orchestrator):
        with pytest.raises(AccountNotFoundError):
            orchestrator.sync_current_balance(uuid4())


class TestApplyDelta:
    def test_incremental_and_full_agree(self, session, clock, tenant_id):
        account = AccountRegistry(session, clock).open_account(tenant_id, "Delta")
        movements = MovementService(session, clock)
        sync = BalanceSyncService(session, clock)

        for day, amount in ((1, "10.10"), (2, "-3.05"), (3, "100")):
            clock.advance(1)
            movements.insert_movement(account.id, date(2024, 1, day), amount)

        incremental = account.cached_balance
        assert incremental == Decimal("107.05")
        assert sync.sync(account) == incremental

    def test_delta_stamps_sync_time(self, session, clock, tenant_id):
        account = AccountRegistry(session, clock).open_account(tenant_id, "Delta")
        clock.advance(60)

        BalanceSyncService(session, clock).apply_delta(account, Decimal("5"))

        assert account.cached_balance == Decimal("5.00")
        assert account.balance_synced_at == clock.now()
        assert account.balance_synced_at - timedelta(seconds=60) == account.created_at
