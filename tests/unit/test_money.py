"""
Unit tests for monetary coercion and rounding.

Verifies:
- Two-place quantization with ROUND_HALF_UP
- Float and bool prohibition
- Non-numeric and non-finite input rejected with a typed error
"""

from decimal import Decimal

import pytest

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money, to_money
from ledger_kernel.exceptions import InvalidAmountError, ValidationError


class TestRoundMoney:
    def test_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_default_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("7")).as_tuple().exponent == -2

    def test_custom_places(self):
        assert round_money(Decimal("1.23456"), decimal_places=4) == Decimal("1.2346")

    def test_deterministic(self):
        results = {round_money(Decimal("10.005")) for _ in range(100)}
        assert results == {Decimal("10.01")}


class TestToMoney:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (Decimal("100.5"), Decimal("100.50")),
            (100, Decimal("100.00")),
            ("-40", Decimal("-40.00")),
            ("0.004", Decimal("0.00")),
        ],
    )
    def test_accepted_inputs(self, raw, expected):
        assert to_money(raw) == expected

    def test_zero_constant(self):
        assert ZERO == Decimal("0.00")

    @pytest.mark.parametrize("raw", [0.1, 1.0, True])
    def test_float_and_bool_rejected(self, raw):
        with pytest.raises(InvalidAmountError) as exc_info:
            to_money(raw)
        assert exc_info.value.code == "INVALID_AMOUNT"

    @pytest.mark.parametrize("raw", ["abc", None, "", "NaN", "Infinity"])
    def test_non_numeric_rejected(self, raw):
        with pytest.raises(InvalidAmountError):
            to_money(raw)

    def test_error_names_the_field(self):
        with pytest.raises(ValidationError) as exc_info:
            to_money("x", field="value_min")
        assert exc_info.value.field == "value_min"
