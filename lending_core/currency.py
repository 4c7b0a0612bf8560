"""
Money Module

Exact Decimal money representation with per-currency precision. Currency
amounts NEVER go through float: caller input is converted through strings.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Any, Iterable
from enum import Enum
import re

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with precision and display symbol"""
    BRL = ("BRL", 2, "R$")   # Brazilian Real, the shop's operating currency
    USD = ("USD", 2, "$")
    EUR = ("EUR", 2, "€")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, e.g. Decimal('0.01')"""
        return Decimal(1).scaleb(-self.precision)


@dataclass(frozen=True)
class Money:
    """
    Immutable money value rounded half-up to its currency precision.
    All monetary values in the core MUST use this class.
    """
    amount: Decimal
    currency: Currency = Currency.BRL

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        rounded = self.amount.quantize(self.currency.quantum, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency = Currency.BRL) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def floor(cls, amount: Decimal, currency: Currency = Currency.BRL) -> 'Money':
        """Truncate to currency precision instead of rounding (toward zero)"""
        return cls(amount.quantize(currency.quantum, rounding=ROUND_DOWN), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Any) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = to_decimal(multiplier)
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display, e.g. 'R$ 1.234,56' or '$ 1,234.56'"""
        text = f"{self.amount:,.{self.currency.precision}f}"
        if self.currency == Currency.BRL:
            text = text.replace(',', '_').replace('.', ',').replace('_', '.')
        return f"{self.currency.symbol} {text}"


def sum_money(values: Iterable[Money], currency: Currency = Currency.BRL) -> Money:
    """Sum Money values, returning zero in `currency` for an empty iterable"""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


def to_decimal(value: Any) -> Decimal:
    """
    Convert caller input to Decimal.

    Floats are converted through their string form so that 0.1 becomes
    Decimal('0.1') and not its binary expansion. Strings go through
    decimal_from_string, so formatted input like 'R$ 1.234,56' is accepted.

    Raises:
        ValueError: If the value cannot be represented as a finite Decimal
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert boolean {value!r} to Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        result = decimal_from_string(value)
    else:
        raise ValueError(f"Cannot convert {type(value).__name__} to Decimal")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


_DOT_GROUPED = re.compile(r'^[+-]?[1-9]\d{0,2}\.\d{3}$')


def parse_amount(value: Any) -> Decimal:
    """
    Convert a caller-supplied money amount to Decimal.

    Same as to_decimal, except that a single '.' followed by exactly three
    digits is read as Brazilian digit grouping: 'R$ 1.500' is 1500, not 1.5.
    Leading-zero forms such as '0.005' stay decimal. Use to_decimal for
    rates and other non-money numbers.

    Raises:
        ValueError: If the value cannot be represented as a finite Decimal
    """
    if isinstance(value, str):
        clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())
        if _DOT_GROUPED.match(clean_value):
            return Decimal(clean_value.replace('.', ''))
    return to_decimal(value)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    The right-most of '.' or ',' is taken as the decimal separator when both
    appear ('1.234,56' and '1,234.56' both parse to 1234.56). A single
    separator is always the decimal one ('10,5' -> 10.5); a repeated one is
    digit grouping ('1.000.000' -> 1000000).

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Remove currency symbols and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        if clean_value.rfind(',') > clean_value.rfind('.'):
            clean_value = clean_value.replace('.', '').replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    elif ',' in clean_value or '.' in clean_value:
        separator = ',' if ',' in clean_value else '.'
        parts = clean_value.split(separator)
        if len(parts) > 2:
            # Repeated separator can only be digit grouping
            clean_value = ''.join(parts)
        else:
            clean_value = '.'.join(parts)

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
