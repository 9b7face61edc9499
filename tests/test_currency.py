"""
Test suite for monetary amount helpers
"""

import pytest
from decimal import Decimal

from bac_banking.currency import (
    Currency, decimal_from_string, has_valid_precision, round_money, to_decimal
)
from bac_banking.errors import InvalidArgumentError


class TestToDecimal:
    """Test conversion of caller-supplied amounts"""

    def test_accepts_numeric_types(self):
        assert to_decimal(Decimal('12.50')) == Decimal('12.50')
        assert to_decimal(200) == Decimal('200')
        assert to_decimal("300.25") == Decimal('300.25')

    def test_float_goes_through_str(self):
        """0.1 must not become 0.1000000000000000055..."""
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(2.12) == Decimal('2.12')

    def test_rejects_missing_and_boolean(self):
        with pytest.raises(InvalidArgumentError):
            to_decimal(None)

        with pytest.raises(InvalidArgumentError):
            to_decimal(True)

    def test_rejects_non_finite(self):
        with pytest.raises(InvalidArgumentError):
            to_decimal(Decimal('NaN'))

        with pytest.raises(InvalidArgumentError):
            to_decimal(float('inf'))

    def test_rejects_unsupported_type(self):
        with pytest.raises(InvalidArgumentError):
            to_decimal([100])


class TestUtilityFunctions:
    """Test utility functions for decimal handling"""

    def test_decimal_from_string_valid(self):
        """Test decimal conversion from valid strings"""
        assert decimal_from_string("123.45") == Decimal("123.45")

        # With comma as thousands separator
        assert decimal_from_string("1,234.56") == Decimal("1234.56")

        # European format (comma as decimal separator)
        assert decimal_from_string("123,45") == Decimal("123.45")

        # With currency symbols (should be stripped)
        assert decimal_from_string("P1,234.56") == Decimal("1234.56")

        assert decimal_from_string("-123.45") == Decimal("-123.45")

    def test_decimal_from_string_invalid(self):
        """Invalid strings raise InvalidArgumentError, which is a ValueError"""
        with pytest.raises(ValueError):
            decimal_from_string("")

        with pytest.raises(InvalidArgumentError):
            decimal_from_string("not_a_number")

        with pytest.raises(InvalidArgumentError):
            decimal_from_string(None)

    def test_decimal_from_string_currency_code(self):
        assert decimal_from_string("BWP 250.00") == Decimal("250.00")
        assert decimal_from_string(" $10 ") == Decimal("10")

    @pytest.mark.parametrize("value", [
        "12abc34", "1e3", "1.2.3", "12,3456", "1,23,456", "--5", "P", "12 34", "Infinity"
    ])
    def test_decimal_from_string_rejects_malformed(self, value):
        """Malformed text is rejected instead of having characters dropped"""
        with pytest.raises(InvalidArgumentError):
            decimal_from_string(value)

    def test_to_decimal_rejects_malformed_string(self):
        with pytest.raises(InvalidArgumentError):
            to_decimal("12abc34")


class TestCurrencyPrecisionRules:
    """Test currency-specific precision rules"""

    def test_two_decimal_currencies(self):
        assert round_money(Decimal('123.456'), Currency.BWP) == Decimal('123.46')
        assert round_money(Decimal('123.454'), Currency.USD) == Decimal('123.45')

    def test_jpy_precision(self):
        assert round_money(Decimal('123.7'), Currency.JPY) == Decimal('124')
        assert round_money(Decimal('123.4'), Currency.JPY) == Decimal('123')

    def test_rounding_method(self):
        """Test that ROUND_HALF_UP is used consistently"""
        assert round_money(Decimal('123.455')) == Decimal('123.46')
        assert round_money(Decimal('2.125')) == Decimal('2.13')

    def test_has_valid_precision(self):
        assert has_valid_precision(Decimal('10.25'))
        assert has_valid_precision(Decimal('10.250'))
        assert not has_valid_precision(Decimal('0.004'))
        assert not has_valid_precision(Decimal('10.5'), Currency.JPY)
