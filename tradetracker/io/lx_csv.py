# tradetracker/io/lx_csv.py
"""
Parser for the exchange's year-end tax CSV.

Two dialects exist. The 2021 report has 11 columns: reference, quoted
description, two dates, two money figures, gain/loss, term, three blank
columns. The 2022 report has 10: a numeric account id, reference, quantity,
contract label, two dates, two money figures, gain/loss, term. The first
field tells them apart.

BTC lines let us recover the BTC price the exchange itself used at a given
21:00/22:00 timestamp, which we need to match its cost basis at option
assignment. In the 2022 report, exercise lines carry the same price as their
strike plus or minus the per-BTC basis. Columns C to F hold `*` where the
exchange had no figure, and the gain column holds `-`; such a column yields
no price reference.
"""

import csv
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple, Union

from tradetracker.domain.lot import CloseType, GainType
from tradetracker.errors import MalformedInputError
from tradetracker.option import OptionSpec, PutCall
from tradetracker.units.asset import TaxAsset, Underlying
from tradetracker.units.price import Price
from tradetracker.units.quantity import Quantity
from tradetracker.units.utc_time import UTC, forced_to_hour, parse_timestamp

logger = logging.getLogger(__name__)

N_FIELDS_2021 = 11
N_FIELDS_2022 = 10

NOT_AVAILABLE = "*"
NO_GAIN = "-"

BTC_DESCRIPTION = re.compile(r"^(\d+(?:\.\d+)?), BTC$")
OPTION_DESCRIPTION = re.compile(
    r"^(\d+), (BTC|ETH) Mini (\d{4}-\d{2}-\d{2}) (Put|Call) (\$[\d,]+(?:\.\d+)?)$"
)

# 2022 references read e.g. "Exercise - 1256 Option - Call"
REFERENCES_2022 = {
    "Exercise": CloseType.EXERCISE,
    "Expire": CloseType.EXPIRY,
    "Sell": CloseType.SELL,
    "Buy Back": CloseType.BUY_BACK,
    "Transaction Fee": CloseType.TX_FEE,
}


@dataclass(frozen=True)
class BtcTrade:
    close_type: CloseType
    quantity: Quantity
    date_c: Optional[datetime]
    date_d: Optional[datetime]
    figure_e: Optional[Price]
    figure_f: Optional[Price]
    gain: Optional[Price]
    gain_type: Optional[GainType]

    def price_references(self) -> List[Tuple[datetime, Price]]:
        # Column C pairs with column F, column D with column E
        refs = []
        if self.date_c is not None and self.figure_f is not None:
            refs.append((self.date_c, self.figure_f / self.quantity))
        if self.date_d is not None and self.figure_e is not None:
            refs.append((self.date_d, self.figure_e / self.quantity))
        return refs


@dataclass(frozen=True)
class OptionClose:
    close_type: CloseType
    contracts: int
    asset: TaxAsset
    date_c: Optional[datetime]
    date_d: Optional[datetime]
    figure_e: Optional[Price]
    figure_f: Optional[Price]
    gain: Optional[Price]
    gain_type: Optional[GainType]
    year: int = 2021

    def price_references(self) -> List[Tuple[datetime, Price]]:
        if (self.year < 2022 or self.close_type is not CloseType.EXERCISE
                or self.date_c is None or self.figure_f is None):
            return []
        option = self.asset.option
        per_btc = self.figure_f / Quantity.from_contracts(self.contracts)
        if option.pc is PutCall.CALL:
            return [(self.date_c, option.strike + per_btc)]
        return [(self.date_c, option.strike - per_btc)]


LxCsvRecord = Union[BtcTrade, OptionClose]


def _decimal(text: str, what: str) -> Decimal:
    try:
        return Decimal(text.replace(",", ""))
    except InvalidOperation as e:
        raise MalformedInputError(f"bad {what} {text!r}") from e


def _figure(text: str, what: str, placeholders=(NOT_AVAILABLE,)) -> Optional[Price]:
    if text.strip() in placeholders:
        return None
    return Price(_decimal(text, what))


def _date(text: str, what: str) -> Optional[datetime]:
    if text.strip() == NOT_AVAILABLE:
        return None
    try:
        return parse_timestamp(text)
    except MalformedInputError as e:
        raise MalformedInputError(f"bad {what} {text!r}") from e


def _columns(fields: List[str]) -> dict:
    """Columns C to G, which both dialects lay out the same way."""
    return dict(
        date_c=_date(fields[0], "column C date"),
        date_d=_date(fields[1], "column D date"),
        figure_e=_figure(fields[2], "column E figure"),
        figure_f=_figure(fields[3], "column F figure"),
        gain=_figure(fields[4], "gain/loss", (NOT_AVAILABLE, NO_GAIN)),
    )


def parse_line(line: str) -> LxCsvRecord:
    """
    Parse one line of the exchange CSV, in either dialect.

    Raises:
        MalformedInputError: naming the line, for anything unexpected
    """
    try:
        fields = next(csv.reader([line]), [])
        if fields and fields[0].isdigit():
            return _parse_2022(fields)
        return _parse_2021(fields)
    except MalformedInputError as e:
        raise MalformedInputError(f"parsing LX CSV line {line!r}: {e}") from e


def _parse_2021(fields: List[str]) -> LxCsvRecord:
    if len(fields) != N_FIELDS_2021:
        raise MalformedInputError(f"expected {N_FIELDS_2021} fields, found {len(fields)}")
    if any(fields[8:]):
        raise MalformedInputError("trailing columns are not blank")

    try:
        close_type = CloseType(fields[0])
    except ValueError as e:
        raise MalformedInputError(f"unknown reference {fields[0]!r}") from e
    try:
        gain_type = GainType(fields[7])
    except ValueError as e:
        raise MalformedInputError(f"unknown gain type {fields[7]!r}") from e

    common = dict(close_type=close_type, gain_type=gain_type, **_columns(fields[2:7]))

    description = fields[1]
    m = BTC_DESCRIPTION.match(description)
    if m:
        quantity = Quantity.from_btc(_decimal(m.group(1), "BTC quantity"))
        if not quantity.is_positive():
            raise MalformedInputError(f"non-positive BTC quantity in {description!r}")
        return BtcTrade(quantity=quantity, **common)

    m = OPTION_DESCRIPTION.match(description)
    if m:
        n, underlying, expiry, pc, strike = m.groups()
        try:
            expiry_date = datetime.strptime(expiry, "%Y-%m-%d").replace(hour=21, tzinfo=UTC)
        except ValueError as e:
            raise MalformedInputError(f"bad expiry {expiry!r}") from e
        option = OptionSpec(PutCall(pc), Price(strike), expiry_date)
        return OptionClose(
            contracts=int(n),
            asset=TaxAsset.from_option(Underlying[underlying], option),
            **common,
        )

    raise MalformedInputError(f"unrecognized description {description!r}")


def _reference_2022(text: str) -> CloseType:
    head = text.split(" - ")[0].strip()
    if head not in REFERENCES_2022:
        raise MalformedInputError(f"unknown reference {text!r}")
    return REFERENCES_2022[head]


def _gain_type_2022(text: str) -> Optional[GainType]:
    # "- 1256 - ", "Short-term", or "-" where there is no gain
    text = text.strip()
    if "1256" in text:
        return GainType.OPTION_1256
    if text in ("", NO_GAIN, NOT_AVAILABLE):
        return None
    try:
        return GainType(text)
    except ValueError as e:
        raise MalformedInputError(f"unknown gain type {text!r}") from e


def _parse_2022(fields: List[str]) -> LxCsvRecord:
    if len(fields) != N_FIELDS_2022:
        raise MalformedInputError(f"expected {N_FIELDS_2022} fields, found {len(fields)}")

    common = dict(
        close_type=_reference_2022(fields[1]),
        gain_type=_gain_type_2022(fields[9]),
        **_columns(fields[4:9]),
    )
    quantity = _decimal(fields[2], "quantity")
    if quantity <= 0:
        raise MalformedInputError(f"non-positive quantity {fields[2]!r}")

    asset = TaxAsset.parse_2022(fields[3].strip())
    if asset.is_bitcoin_like():
        return BtcTrade(quantity=Quantity.from_btc(quantity), **common)

    if quantity != quantity.to_integral_value():
        raise MalformedInputError(f"fractional contract count {fields[2]!r}")
    return OptionClose(contracts=int(quantity), asset=asset, year=2022, **common)


class PriceReferences:
    """BTC prices the exchange used, by timestamp."""

    def __init__(self, references: Optional[Dict[datetime, Price]] = None):
        self._refs: Dict[datetime, Price] = dict(references or {})

    def __len__(self) -> int:
        return len(self._refs)

    @staticmethod
    def from_lines(lines: Iterable[str]) -> "PriceReferences":
        refs = PriceReferences()
        for lineno, line in enumerate(lines):
            try:
                record = parse_line(line)
            except MalformedInputError as e:
                raise MalformedInputError(f"lx_csv line {lineno}: {e}") from e
            for when, price in record.price_references():
                refs.add(when, price)
        logger.debug("Recovered %d exchange price references", len(refs))
        return refs

    def add(self, when: datetime, price: Price) -> None:
        existing = self._refs.get(when)
        if existing is None:
            self._refs[when] = price
        elif existing.round_cents() != price.round_cents():
            logger.warning(
                "Conflicting exchange price references at %s: %s and %s; keeping the first",
                when, existing, price,
            )

    def get(self, when: datetime) -> Optional[Price]:
        return self._refs.get(when)

    def at_expiry(self, date: datetime) -> Optional[Price]:
        """Reference price at 22:00 UTC on `date`'s day, else 21:00."""
        for hour in (22, 21):
            price = self._refs.get(forced_to_hour(date, hour))
            if price is not None:
                return price
        return None
