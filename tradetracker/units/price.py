# tradetracker/units/price.py
"""
Prices.

A price is a signed fixed-point decimal number of US dollars, per unit of
whatever it prices. Multiplying by a Quantity uses the quantity's real-world
amount (BTC, or contracts scaled to 1-BTC equivalents).
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import total_ordering
from typing import Union

from tradetracker.errors import InvariantViolation, MalformedInputError
from tradetracker.units.quantity import Quantity

CENT = Decimal("0.01")

Number = Union[int, Decimal]


@total_ordering
class Price:
    """A price in dollars."""

    __slots__ = ("_value",)

    # Set after the class body
    ZERO = None  # type: Price

    def __init__(self, value: Union["Price", Decimal, int, str] = 0):
        if isinstance(value, Price):
            value = value._value
        elif isinstance(value, str):
            value = self._parse(value)
        elif isinstance(value, float):
            raise TypeError("Price does not accept floats, use Decimal or str")
        object.__setattr__(self, "_value", Decimal(value))

    @staticmethod
    def _parse(text: str) -> Decimal:
        # "$32,000.00" and "-$5.00" are both accepted
        cleaned = text.strip().replace(",", "")
        negative = cleaned.startswith("-")
        if negative:
            cleaned = cleaned[1:]
        if cleaned.startswith("$"):
            cleaned = cleaned[1:]
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation as e:
            raise MalformedInputError(f"Could not parse price: {text!r}") from e
        if not parsed.is_finite():
            raise MalformedInputError(f"Could not parse price: {text!r}")
        return -parsed if negative else parsed

    @staticmethod
    def from_cents(cents: int) -> "Price":
        return Price(Decimal(int(cents)).scaleb(-2))

    def __setattr__(self, name, value):
        raise AttributeError("Price is immutable")

    @property
    def value(self) -> Decimal:
        return self._value

    def to_int(self) -> int:
        """Whole-dollar value, truncated toward zero."""
        return int(self._value)

    def round_cents(self) -> "Price":
        """Round to cents, halves away from zero."""
        return Price(self._value.quantize(CENT, rounding=ROUND_HALF_UP))

    def scale_approx(self, factor: float) -> "Price":
        """Multiply by a float. Only suitable for estimates."""
        return Price(self._value * Decimal(repr(float(factor))))

    def is_zero(self) -> bool:
        return self._value == 0

    def __add__(self, other: "Price") -> "Price":
        if not isinstance(other, Price):
            return NotImplemented
        return Price(self._value + other._value)

    def __sub__(self, other: "Price") -> "Price":
        if not isinstance(other, Price):
            return NotImplemented
        return Price(self._value - other._value)

    def __neg__(self) -> "Price":
        return Price(-self._value)

    def __abs__(self) -> "Price":
        return Price(abs(self._value))

    def __mul__(self, other: Union[Quantity, Number]) -> "Price":
        if isinstance(other, Quantity):
            return Price(self._value * other.to_decimal())
        if isinstance(other, (int, Decimal)):
            return Price(self._value * other)
        return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, Quantity):
            if not other.is_nonzero():
                raise InvariantViolation(f"tried to divide {self} by zero quantity")
            return Price(self._value / other.to_decimal())
        if isinstance(other, Price):
            if other.is_zero():
                raise InvariantViolation(f"tried to divide {self} by zero price")
            return float(self._value / other._value)
        if isinstance(other, (int, Decimal)):
            if other == 0:
                raise InvariantViolation(f"tried to divide {self} by zero")
            return Price(self._value / other)
        return NotImplemented

    def __eq__(self, other) -> bool:
        if not isinstance(other, Price):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: "Price") -> bool:
        if not isinstance(other, Price):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"Price({str(self._value)!r})"

    def __str__(self) -> str:
        return str(self._value.quantize(CENT, rounding=ROUND_HALF_UP))

    def __format__(self, spec: str) -> str:
        if spec == "$":
            rounded = self._value.quantize(CENT, rounding=ROUND_HALF_UP)
            sign = "-" if rounded < 0 else ""
            return f"{sign}${abs(rounded):,.2f}"
        return format(str(self), spec)


Price.ZERO = Price(0)
