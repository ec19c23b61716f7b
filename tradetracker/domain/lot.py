# tradetracker/domain/lot.py
"""
Tax lots.

A lot is an opening or closing event for a position: a signed quantity at a
price on a date. Positive quantities are long, negative are short. Lots that
open a position get an id; lots that only close one never need one.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from tradetracker.errors import InvariantViolation
from tradetracker.option import OptionSpec
from tradetracker.units.asset import TaxAsset
from tradetracker.units.price import Price
from tradetracker.units.quantity import Quantity
from tradetracker.units.utc_time import forced_to_hour, format_tax_date

logger = logging.getLogger(__name__)

# The exchange stamps every expiry and assignment at 22:00 UTC, whatever the
# actual New York close was that day.
EXPIRY_HOUR_UTC = 22

LONG_TERM_THRESHOLD = timedelta(days=365)


class CloseType(Enum):
    BUY_BACK = "Buy Back"
    SELL = "Sell"
    EXPIRY = "Expired"
    EXERCISE = "Exercised"
    TX_FEE = "Transaction Fee"


class GainType(Enum):
    SHORT_TERM = "Short-term"
    LONG_TERM = "Long-term"
    OPTION_1256 = "-1256-"


@dataclass(frozen=True)
class LotId:
    value: str

    @staticmethod
    def from_outpoint(txid: str, vout: int) -> "LotId":
        """Durable id of a lot backed by an on-chain output."""
        return LotId(f"{txid[:8]}-{vout:02}")

    def __str__(self) -> str:
        return self.value


class LotIdSequence:
    """
    Mints synthetic ids (`lx-btc-0001`, `lx-opt-0002`, ...) for lots that
    have no on-chain outpoint. BTC and option ids share one counter.
    """

    def __init__(self, start: int = 1):
        self._next = start

    def _mint(self, kind: str) -> LotId:
        idx = self._next
        self._next += 1
        return LotId(f"lx-{kind}-{idx:04}")

    def next_btc(self) -> LotId:
        return self._mint("btc")

    def next_opt(self) -> LotId:
        return self._mint("opt")


@dataclass(frozen=True)
class Label:
    """An asset as labelled in the exchange's year-end CSV."""
    value: str

    @staticmethod
    def btc() -> "Label":
        return Label("BTC")

    @staticmethod
    def from_tax_asset(tax_asset: TaxAsset) -> "Label":
        if tax_asset.is_bitcoin_like():
            return Label.btc()
        strike = tax_asset.option.strike
        # Whole dollars only, and the exchange never lists strikes of $1M or more
        if Price(strike.to_int()) != strike or not 1000 <= strike.to_int() < 1_000_000:
            raise InvariantViolation(f"unexpected strike {strike} for {tax_asset.option}")
        return Label(str(tax_asset))

    def is_btc(self) -> bool:
        return self.value == "BTC"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Lot:
    quantity: Quantity
    price: Price
    date: datetime
    close_type: CloseType
    id: Optional[LotId] = None

    def with_id(self, lot_id: LotId) -> "Lot":
        return replace(self, id=lot_id)

    def with_quantity(self, quantity: Quantity) -> "Lot":
        return replace(self, quantity=quantity)

    def __str__(self) -> str:
        lot_id = self.id or "<no id>"
        return f"{lot_id} {{ date: {format_tax_date(self.date)}, price: {self.price}, qty: {self.quantity} }}"

    @staticmethod
    def from_deposit_utxo(txid: str, vout: int, price: Price, size_sat: int, date: datetime) -> "Lot":
        logger.debug("Lot.from_deposit_utxo price %s size %ssat date %s", price, size_sat, date)
        return Lot(
            id=LotId.from_outpoint(txid, vout),
            # A deposit should never close anything
            close_type=CloseType.TX_FEE,
            quantity=Quantity.from_sat(size_sat),
            price=price,
            date=date,
        )

    @staticmethod
    def from_tx_fee(size_sat: int, date: datetime) -> "Lot":
        return Lot(
            close_type=CloseType.TX_FEE,
            quantity=-Quantity.from_sat(size_sat),
            price=Price.ZERO,
            date=date,
        )

    @staticmethod
    def from_trade(price: Price, size: Quantity, fee: Price, date: datetime) -> "Lot":
        """
        Lot from a trade fill. `size` is in satoshis for BTC and contracts for
        options. The fee is folded into the unit price, so it raises the basis
        of a buy and lowers the proceeds of a sale.
        """
        logger.debug("Lot.from_trade price %s size %s fee %s date %s", price, size, fee, date)
        unit_fee = fee / size
        return Lot(
            close_type=CloseType.BUY_BACK if size.is_positive() else CloseType.SELL,
            quantity=size,
            price=price + unit_fee,
            date=date,
        )

    @staticmethod
    def from_expiry(option: OptionSpec, n_expired: Quantity) -> "Lot":
        logger.debug("Lot.from_expiry opt %s n %s", option, n_expired)
        return Lot(
            close_type=CloseType.EXPIRY,
            quantity=n_expired,
            price=Price.ZERO,
            date=forced_to_hour(option.expiry, EXPIRY_HOUR_UTC),
        )

    @staticmethod
    def from_assignment(option: OptionSpec, n_assigned: Quantity, btc_price: Price) -> "Lot":
        logger.debug("Lot.from_assignment opt %s n %s", option, n_assigned)
        return Lot(
            close_type=CloseType.EXERCISE,
            quantity=n_assigned,
            price=option.intrinsic_value(btc_price),
            date=forced_to_hour(option.expiry, EXPIRY_HOUR_UTC),
        )


@dataclass(frozen=True)
class Close:
    """
    A (partial) close of an open lot.

    `quantity` carries the sign of the closing lot, so it is negative when a
    long lot is closed and positive when a short lot is bought back.
    """
    close_type: CloseType
    gain_type: GainType
    open_id: LotId
    open_price: Price
    open_date: datetime
    close_price: Price
    close_date: datetime
    quantity: Quantity

    def __str__(self) -> str:
        return (f"{self.open_id} {{ {self.close_type.value}, date: {format_tax_date(self.close_date)}, "
                f"price: {self.close_price}, qty: {self.quantity} }}")


def gain_type_for(open_date: datetime, close_date: datetime, is_1256: bool) -> GainType:
    if is_1256:
        return GainType.OPTION_1256
    if close_date - open_date <= LONG_TERM_THRESHOLD:
        return GainType.SHORT_TERM
    return GainType.LONG_TERM
