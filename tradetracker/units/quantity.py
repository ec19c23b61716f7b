# tradetracker/units/quantity.py
"""
Quantities.

A quantity is a signed integer tagged with its unit. Mixing units is a logic
bug and raises immediately; the unitless ZERO combines with anything.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Union

from tradetracker.errors import InvariantViolation, UnitMismatchError

if TYPE_CHECKING:
    from tradetracker.units.asset import Asset

SATS_PER_BTC = 100_000_000
# One BTC option contract is 1/100 of a bitcoin
CONTRACTS_PER_BTC = 100
SATS_PER_CONTRACT = SATS_PER_BTC // CONTRACTS_PER_BTC


class Unit(Enum):
    ZERO = "zero"
    BITCOIN = "bitcoin"
    CONTRACTS = "contracts"
    CENTS = "cents"


@dataclass(frozen=True)
class Quantity:
    """A tradeable quantity of some object."""
    unit: Unit
    amount: int = 0

    # Set after the class body
    ZERO = None  # type: Quantity

    @staticmethod
    def from_sat(sats: int) -> "Quantity":
        return Quantity(Unit.BITCOIN, int(sats))

    @staticmethod
    def from_btc(btc: Union[Decimal, str]) -> "Quantity":
        sats = Decimal(btc) * SATS_PER_BTC
        if sats != sats.to_integral_value():
            raise InvariantViolation(f"{btc} BTC is not a whole number of satoshis")
        return Quantity(Unit.BITCOIN, int(sats))

    @staticmethod
    def from_contracts(n: int) -> "Quantity":
        return Quantity(Unit.CONTRACTS, int(n))

    @staticmethod
    def from_cents(cents: int) -> "Quantity":
        return Quantity(Unit.CENTS, int(cents))

    def is_zero_unit(self) -> bool:
        return self.unit is Unit.ZERO

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_nonnegative(self) -> bool:
        return self.amount >= 0

    def is_nonzero(self) -> bool:
        return self.amount != 0

    def has_same_sign(self, other: "Quantity") -> bool:
        """Whether both have the same sign. Zero matches either sign."""
        if not self.is_nonzero() or not other.is_nonzero():
            return True
        return self.is_nonnegative() == other.is_nonnegative()

    def has_same_unit(self, other: "Quantity") -> bool:
        """Whether both have the same unit. ZERO matches any unit."""
        if self.is_zero_unit() or other.is_zero_unit():
            return True
        return self.unit is other.unit

    def to_decimal(self) -> Decimal:
        """The real-world amount: BTC, 1-BTC-equivalents of contracts, or dollars."""
        if self.unit is Unit.BITCOIN:
            return Decimal(self.amount).scaleb(-8)
        if self.unit in (Unit.CONTRACTS, Unit.CENTS):
            return Decimal(self.amount).scaleb(-2)
        return Decimal(0)

    def _unit_with(self, other: "Quantity", op: str) -> Unit:
        if not isinstance(other, Quantity):
            raise TypeError(f"cannot {op} {type(other).__name__} and Quantity")
        if not self.has_same_unit(other):
            raise UnitMismatchError(f"Cannot {op} {other} and {self}")
        return other.unit if self.is_zero_unit() else self.unit

    def __add__(self, other: "Quantity") -> "Quantity":
        unit = self._unit_with(other, "add")
        return Quantity(unit, self.amount + other.amount)

    def __radd__(self, other):
        # Lets the builtin sum() start from the integer 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: "Quantity") -> "Quantity":
        return self + -other

    def __neg__(self) -> "Quantity":
        return Quantity(self.unit, -self.amount)

    def __abs__(self) -> "Quantity":
        return Quantity(self.unit, abs(self.amount))

    def __lt__(self, other: "Quantity") -> bool:
        self._unit_with(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: "Quantity") -> bool:
        self._unit_with(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: "Quantity") -> bool:
        self._unit_with(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: "Quantity") -> bool:
        self._unit_with(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        if self.unit is Unit.BITCOIN:
            return f"{self.to_decimal():f} BTC"
        if self.unit is Unit.CONTRACTS:
            return f"{self.amount} contracts"
        if self.unit is Unit.CENTS:
            sign = "-" if self.amount < 0 else ""
            return f"{sign}${abs(self.to_decimal()):f}"
        return "ZERO"


Quantity.ZERO = Quantity(Unit.ZERO, 0)


@dataclass(frozen=True)
class UnknownQuantity:
    """
    A raw integer quantity from the API whose unit depends on the asset.

    Nothing can be done with it before the asset is known.
    """
    inner: int

    def with_asset(self, asset: "Asset") -> Quantity:
        from tradetracker.units.asset import AssetKind

        if asset.kind is AssetKind.BTC:
            if self.inner < 0:
                raise InvariantViolation(f"negative quantity of bitcoins: {self.inner}")
            return Quantity.from_sat(self.inner)
        if asset.kind is AssetKind.OPTION:
            return Quantity.from_contracts(self.inner)
        if asset.kind is AssetKind.USD:
            raise InvariantViolation("tried to interpret 'quantity' of dollars")
        raise InvariantViolation(f"quantities of {asset} are not supported")
