"""
Tests for the movement query gateway.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import MovementFilters, MovementPage
from ledger_kernel.exceptions import AccountNotFoundError, InvalidPaginationError
from ledger_kernel.models.movement import MovementStatus, MovementType
from ledger_kernel.selectors.movement_selector import MovementSelector


@pytest.fixture
def seeded(orchestrator, make_account, clock):
    """
    Two accounts in the same tenant:

        checking: Jan 5 +1000 salary, Jan 3 -120 groceries, Feb 2 -80 "Power bill",
                  Jan 20 -15 cancelled
        savings:  Jan 10 +300 transfer in (from checking, -300 on checking)
    """
    checking = make_account("Checking")
    savings = make_account("Savings")

    def add(account, day, amount, **kwargs):
        clock.tick()
        return orchestrator.insert_movement(account.account_id, day, amount, **kwargs)

    salary = add(checking, date(2024, 1, 5), "1000", description="Salary", status="settled")
    groceries = add(checking, date(2024, 1, 3), "-120", description="Groceries 50% off")
    power = add(checking, date(2024, 2, 2), "-80", detailed_description="Power bill for January")
    refund = add(checking, date(2024, 1, 20), "-15", description="Duplicate")
    orchestrator.cancel_movement(refund.movement_id)
    clock.tick()
    transfer_out, transfer_in = orchestrator.record_transfer(
        checking.account_id, savings.account_id, date(2024, 1, 10), "300", description="To savings"
    )
    return {
        "checking": checking,
        "savings": savings,
        "salary": salary,
        "groceries": groceries,
        "power": power,
        "refund": refund,
        "transfer_out": transfer_out,
        "transfer_in": transfer_in,
    }


def _ids(page):
    return [row.movement_id for row in page.rows]


class TestEmptyAccountSet:
    def test_returns_empty_page_without_storage(self):
        # A selector with no session proves nothing was queried.
        selector = MovementSelector(session=None)
        page = selector.query_movements(
            [], MovementFilters(statuses=["settled"], search="anything"), limit=10, offset=5
        )
        assert page == MovementPage(rows=(), total=0)

    def test_through_orchestrator(self, orchestrator):
        assert orchestrator.query_movements(set()) == MovementPage()

    def test_summary_of_nothing(self):
        summary = MovementSelector(session=None).summarize_movements([])
        assert summary.movement_count == 0
        assert summary.net == Decimal("0.00")


class TestOrderingAndPagination:
    def test_canonical_order_across_accounts(self, orchestrator, seeded):
        page = orchestrator.query_movements(
            [seeded["checking"].account_id, seeded["savings"].account_id]
        )
        ids = _ids(page)
        assert ids[:2] == [seeded["groceries"].movement_id, seeded["salary"].movement_id]
        # Both transfer legs share date and created_at; id decides between them.
        assert ids[2:4] == sorted(
            [seeded["transfer_out"].movement_id, seeded["transfer_in"].movement_id],
            key=lambda movement_id: movement_id.int,
        )
        assert ids[4:] == [seeded["refund"].movement_id, seeded["power"].movement_id]
        assert page.total == 6

    def test_total_ignores_pagination(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, limit=2, offset=1
        )
        assert page.total == 5
        assert _ids(page) == [seeded["salary"].movement_id, seeded["transfer_out"].movement_id]

    def test_offset_past_end(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(seeded["checking"].account_id, offset=50)
        assert page.rows == ()
        assert page.total == 5

    def test_limit_zero(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(seeded["checking"].account_id, limit=0)
        assert page.rows == ()
        assert page.total == 5

    @pytest.mark.parametrize("limit, offset", [(-1, 0), (10, -1), (1.5, 0), (True, 0)])
    def test_bad_pagination_rejected(self, orchestrator, seeded, limit, offset):
        with pytest.raises(InvalidPaginationError):
            orchestrator.query_account_movements(
                seeded["checking"].account_id, limit=limit, offset=offset
            )

    def test_running_balances_in_rows(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(statuses=["pending", "settled", "transferred"])
        )
        assert [row.running_balance for row in page.rows] == [
            Decimal("-120.00"),
            Decimal("880.00"),
            Decimal("580.00"),
            Decimal("500.00"),
        ]

    def test_unknown_account(self, orchestrator):
        with pytest.raises(AccountNotFoundError):
            orchestrator.query_account_movements(uuid4())


class TestFilters:
    def test_date_range(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id,
            MovementFilters(date_from=date(2024, 1, 4), date_to=date(2024, 1, 10)),
        )
        assert _ids(page) == [seeded["salary"].movement_id, seeded["transfer_out"].movement_id]

    def test_period(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(period="2024-02")
        )
        assert _ids(page) == [seeded["power"].movement_id]

    def test_status(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(statuses=[MovementStatus.CANCELLED])
        )
        assert _ids(page) == [seeded["refund"].movement_id]

    def test_movement_type(self, orchestrator, seeded):
        page = orchestrator.query_movements(
            [seeded["checking"].account_id, seeded["savings"].account_id],
            MovementFilters(movement_types=[MovementType.TRANSFER]),
        )
        assert set(_ids(page)) == {
            seeded["transfer_out"].movement_id,
            seeded["transfer_in"].movement_id,
        }

    def test_value_range_bounds_the_magnitude(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id,
            MovementFilters(value_min=Decimal("100"), value_max=Decimal("500")),
        )
        assert _ids(page) == [seeded["groceries"].movement_id, seeded["transfer_out"].movement_id]

    def test_value_min_alone_excludes_smaller_movements(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(value_min=Decimal("500"))
        )
        assert _ids(page) == [seeded["salary"].movement_id]

    def test_search_is_case_insensitive_over_both_descriptions(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(search="POWER")
        )
        assert _ids(page) == [seeded["power"].movement_id]

    def test_search_treats_wildcards_literally(self, orchestrator, seeded):
        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(search="50%")
        )
        assert _ids(page) == [seeded["groceries"].movement_id]

        page = orchestrator.query_account_movements(
            seeded["checking"].account_id, MovementFilters(search="_")
        )
        assert page.total == 0


class TestSummary:
    def test_totals_exclude_cancelled(self, orchestrator, seeded):
        summary = orchestrator.summarize_movements([seeded["checking"].account_id])
        assert summary.total_entries == Decimal("1000.00")
        assert summary.total_exits == Decimal("500.00")
        assert summary.net == Decimal("500.00")
        assert summary.movement_count == 4
        assert summary.cached_balance == Decimal("500.00")

    def test_explicit_cancelled_filter(self, orchestrator, seeded):
        summary = orchestrator.summarize_movements(
            [seeded["checking"].account_id], MovementFilters(statuses=["cancelled"])
        )
        assert summary.total_exits == Decimal("15.00")
        assert summary.movement_count == 1

    def test_period_summary_across_accounts(self, orchestrator, seeded):
        summary = orchestrator.summarize_movements(
            [seeded["checking"].account_id, seeded["savings"].account_id],
            MovementFilters(period="2024-01"),
        )
        assert summary.total_entries == Decimal("1300.00")
        assert summary.total_exits == Decimal("420.00")
        assert summary.cached_balance is None
