"""
Money and Decimal Arithmetic Module

Currency-bound money values and the decimal contexts used by every schedule
calculation. NEVER uses float for monetary values.
"""

from decimal import (
    Context, Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_DOWN,
    ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP, getcontext
)
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union
from enum import Enum

# Set global decimal context for financial precision
getcontext().prec = 28

ROUNDING_MODES = {
    "HALF_EVEN": ROUND_HALF_EVEN,
    "HALF_UP": ROUND_HALF_UP,
    "HALF_DOWN": ROUND_HALF_DOWN,
    "UP": ROUND_UP,
    "DOWN": ROUND_DOWN,
    "CEILING": ROUND_CEILING,
    "FLOOR": ROUND_FLOOR,
}


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    GBP = ("GBP", 2)  # British Pound, 2 decimal places
    JPY = ("JPY", 0)  # Japanese Yen, 0 decimal places
    CAD = ("CAD", 2)  # Canadian Dollar, 2 decimal places
    CHF = ("CHF", 2)  # Swiss Franc, 2 decimal places
    KWD = ("KWD", 3)  # Kuwaiti Dinar, 3 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def math_context(precision: int = 12, rounding: str = "HALF_EVEN") -> Context:
    """
    Build a decimal context for schedule calculations.

    Args:
        precision: Number of significant digits
        rounding: Rounding mode name (HALF_EVEN, HALF_UP, ...)

    Returns:
        Decimal context with the requested precision and rounding

    Raises:
        ValueError: If the rounding mode is unknown or precision is not positive
    """
    if precision <= 0:
        raise ValueError(f"Decimal precision must be positive, got {precision}")
    mode = ROUNDING_MODES.get(rounding.upper())
    if mode is None:
        raise ValueError(f"Unknown rounding mode: {rounding}")
    return Context(prec=precision, rounding=mode)


def to_decimal(value: Union[Decimal, int, str, float, None]) -> Decimal:
    """Convert a value to Decimal going through str, None becomes zero"""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def scale_to_precision(value: Decimal, mc: Context) -> Decimal:
    """Set the scale of a value to the context precision (decimal places)"""
    return value.quantize(Decimal('0.1') ** mc.prec, rounding=mc.rounding)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.

    The amount is always scaled to the currency's decimal places using the
    rounding mode the value was created with; every arithmetic result is
    rescaled the same way.
    """
    amount: Decimal
    currency: Currency
    rounding: str = field(default=ROUND_HALF_EVEN, compare=False)

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        # Round to currency precision
        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=self.rounding
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def of(cls, amount, currency: Currency, mc: Optional[Context] = None) -> 'Money':
        """Create money scaled with the rounding mode of the given context"""
        rounding = mc.rounding if mc is not None else ROUND_HALF_EVEN
        return cls(to_decimal(amount), currency, rounding)

    @classmethod
    def zero(cls, currency: Currency, mc: Optional[Context] = None) -> 'Money':
        return cls.of(Decimal('0'), currency, mc)

    def zeroed(self) -> 'Money':
        """Zero amount in the same currency and rounding"""
        return Money(Decimal('0'), self.currency, self.rounding)

    def _new(self, amount: Decimal) -> 'Money':
        return Money(amount, self.currency, self.rounding)

    def _amount_of(self, other: Union['Money', Decimal, int]) -> Decimal:
        if isinstance(other, Money):
            if self.currency != other.currency:
                raise ValueError(f"Currency mismatch: {self.currency.code} and {other.currency.code}")
            return other.amount
        return to_decimal(other)

    def __add__(self, other: Union['Money', Decimal]) -> 'Money':
        return self._new(self.amount + self._amount_of(other))

    def __sub__(self, other: Union['Money', Decimal]) -> 'Money':
        return self._new(self.amount - self._amount_of(other))

    def multiplied_by(self, multiplier, mc: Context) -> 'Money':
        """Multiply within the given context, then rescale to currency precision"""
        return self._new(mc.multiply(self.amount, to_decimal(multiplier)))

    def divided_by(self, divisor, mc: Context) -> 'Money':
        """Divide within the given context, then rescale to currency precision"""
        return self._new(mc.divide(self.amount, to_decimal(divisor)))

    def __neg__(self) -> 'Money':
        return self._new(-self.amount)

    def __abs__(self) -> 'Money':
        return self._new(abs(self.amount))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < self._amount_of(other)

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= self._amount_of(other)

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > self._amount_of(other)

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= self._amount_of(other)

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
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        else:
            return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def money_sum(values: Iterable[Money], start: Money) -> Money:
    """Sum money values onto a starting value"""
    total = start
    for value in values:
        total = total + value
    return total


def max_money(first: Money, second: Money) -> Money:
    return first if first >= second else second


def min_money(first: Money, second: Money) -> Money:
    return first if first <= second else second


def negative_to_zero(value: Money) -> Money:
    return value.zeroed() if value.is_negative() else value


def decimal_negative_to_zero(value: Decimal) -> Decimal:
    return Decimal('0') if value < 0 else value


def round_to_multiples_of(value: Money, multiples_of: Optional[int]) -> Money:
    """
    Round money to the nearest multiple of a whole amount.

    The division result is rounded to an integer with the money's rounding
    mode, so HALF_EVEN rounds 25 in multiples of 10 down to 20.

    Args:
        value: Money to round
        multiples_of: Granularity; None or non-positive leaves the value unchanged

    Returns:
        Rounded Money in the same currency
    """
    if not multiples_of or multiples_of <= 0:
        return value
    step = Decimal(multiples_of)
    units = (value.amount / step).quantize(Decimal('1'), rounding=value.rounding)
    return Money(units * step, value.currency, value.rounding)
