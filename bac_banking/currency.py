"""
Monetary Amount Module

Handles ISO 4217 currency codes and proper Decimal precision for balances,
transaction amounts and interest. NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Union
import re

from .errors import InvalidArgumentError

# Set global decimal context for financial precision
getcontext().prec = 28  # High precision for financial calculations

AmountLike = Union[Decimal, int, float, str]

ZERO = Decimal('0')


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    BWP = ("BWP", 2)  # Botswana Pula, 2 decimal places
    ZAR = ("ZAR", 2)  # South African Rand, 2 decimal places
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    GBP = ("GBP", 2)  # British Pound, 2 decimal places
    JPY = ("JPY", 0)  # Japanese Yen, 0 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied amount to Decimal

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        InvalidArgumentError: If the value is missing, boolean or not numeric
    """
    if value is None or isinstance(value, bool):
        raise InvalidArgumentError("Amount is required")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = decimal_from_string(value)
    else:
        raise InvalidArgumentError(f"Unsupported amount type: {type(value).__name__}")

    if not result.is_finite():
        raise InvalidArgumentError(f"Amount must be finite: {value}")
    return result


def round_money(value: Decimal, currency: Currency = Currency.BWP) -> Decimal:
    """Round a Decimal to the currency's minor-unit precision"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def has_valid_precision(value: Decimal, currency: Currency = Currency.BWP) -> bool:
    """True when the amount has no digits below the currency's minor unit"""
    return value == round_money(value, currency)


# Optional leading currency code or symbol, e.g. "BWP 10.00", "P10.00", "$10"
_CURRENCY_PREFIX = re.compile(
    r'^(?:(?:' + '|'.join(c.code for c in Currency) + r')\s*|[P$€£¥R]\s*)'
)
_PLAIN = re.compile(r'^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$')
_THOUSANDS = re.compile(r'^[+-]?\d{1,3}(?:,\d{3})+(?:\.\d+)?$')
_DECIMAL_COMMA = re.compile(r'^[+-]?\d+,\d{1,2}$')


def decimal_from_string(value: str) -> Decimal:
    """
    Strictly convert a string amount to Decimal

    Accepts plain numbers ("1234.56"), comma thousands separators
    ("1,234.56"), a decimal comma with one or two digits ("123,45") and an
    optional leading currency code or symbol. Anything else, including
    exponents and embedded letters, is rejected rather than guessed at.

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        InvalidArgumentError: If string is not a well-formed amount
    """
    if not value or not isinstance(value, str):
        raise InvalidArgumentError("Value must be a non-empty string")

    clean_value = _CURRENCY_PREFIX.sub('', value.strip(), count=1)

    if _PLAIN.match(clean_value):
        pass
    elif _THOUSANDS.match(clean_value):
        clean_value = clean_value.replace(',', '')
    elif _DECIMAL_COMMA.match(clean_value):
        clean_value = clean_value.replace(',', '.')
    else:
        raise InvalidArgumentError(f"Cannot convert '{value}' to Decimal")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise InvalidArgumentError(f"Cannot convert '{value}' to Decimal")
