# tradetracker/units/asset.py
"""
Assets.

`Asset` is the general notion. The other types are projections of it used in
particular contexts: `DepositAsset` for what can be deposited or withdrawn,
`TaxAsset` for what appears on tax forms, `BudgetAsset` for what appears in
the plain event log.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from tradetracker.errors import InvariantViolation, MalformedInputError
from tradetracker.option import OptionSpec, PutCall
from tradetracker.units.price import Price
from tradetracker.units.utc_time import UTC

MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN",
          "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]

# e.g. BTC-Mini-04FEB2022-40000-Call
LABEL_2022 = re.compile(r"^(BTC|ETH)-Mini-(\d{2})([A-Z]{3})(\d{4})-(\d+)-(Put|Call)$")


def _from_api_name(cls, raw):
    if isinstance(raw, dict):
        raw = raw.get("name")
    try:
        return cls(raw)
    except ValueError as e:
        raise MalformedInputError(f"Unknown {cls.__name__} {raw!r}") from e


class Underlying(Enum):
    """An asset underlying a derivative contract. The value is the API name."""
    BTC = "CBTC"
    ETH = "ETH"

    @classmethod
    def from_api(cls, raw: Union[str, dict]) -> "Underlying":
        return _from_api_name(cls, raw)

    def __str__(self) -> str:
        return self.name


class DepositAsset(Enum):
    """An asset which can be deposited to or withdrawn from the exchange."""
    BTC = "CBTC"
    ETH = "ETH"
    USD = "USD"

    @classmethod
    def from_api(cls, raw: Union[str, dict]) -> "DepositAsset":
        # Deposits wrap the asset as {"name": "CBTC"}; withdrawals use the bare string
        return _from_api_name(cls, raw)

    def to_asset(self) -> "Asset":
        return {
            DepositAsset.BTC: Asset.btc,
            DepositAsset.ETH: Asset.eth,
            DepositAsset.USD: Asset.usd,
        }[self]()

    def __str__(self) -> str:
        return self.name


class AssetKind(Enum):
    BTC = "btc"
    ETH = "eth"
    USD = "usd"
    NEXT_DAY = "next_day"
    OPTION = "option"
    FUTURE = "future"


@dataclass(frozen=True)
class Asset:
    kind: AssetKind
    underlying: Optional[Underlying] = None
    option: Optional[OptionSpec] = None
    expiry: Optional[datetime] = None

    @staticmethod
    def btc() -> "Asset":
        return Asset(AssetKind.BTC)

    @staticmethod
    def eth() -> "Asset":
        return Asset(AssetKind.ETH)

    @staticmethod
    def usd() -> "Asset":
        return Asset(AssetKind.USD)

    @staticmethod
    def next_day(underlying: Underlying, expiry: datetime) -> "Asset":
        return Asset(AssetKind.NEXT_DAY, underlying=underlying, expiry=expiry)

    @staticmethod
    def from_option(underlying: Underlying, option: OptionSpec) -> "Asset":
        return Asset(AssetKind.OPTION, underlying=underlying, option=option, expiry=option.expiry)

    @staticmethod
    def future(underlying: Underlying, expiry: datetime) -> "Asset":
        return Asset(AssetKind.FUTURE, underlying=underlying, expiry=expiry)

    def __str__(self) -> str:
        if self.kind is AssetKind.OPTION:
            return f"{self.underlying} {self.option}"
        if self.kind is AssetKind.NEXT_DAY:
            return f"{self.underlying} next-day {self.expiry:%Y-%m-%d}"
        if self.kind is AssetKind.FUTURE:
            return f"{self.underlying} future {self.expiry:%Y-%m-%d}"
        return self.kind.name


class TaxAssetKind(Enum):
    BITCOIN = "bitcoin"
    NEXT_DAY = "next_day"
    OPTION = "option"


@dataclass(frozen=True)
class TaxAsset:
    """Something that can appear on a tax form."""
    kind: TaxAssetKind
    underlying: Optional[Underlying] = None
    option: Optional[OptionSpec] = None
    expiry: Optional[datetime] = None

    @staticmethod
    def bitcoin() -> "TaxAsset":
        return TaxAsset(TaxAssetKind.BITCOIN)

    @staticmethod
    def next_day(underlying: Underlying, expiry: datetime) -> "TaxAsset":
        return TaxAsset(TaxAssetKind.NEXT_DAY, underlying=underlying, expiry=expiry)

    @staticmethod
    def from_option(underlying: Underlying, option: OptionSpec) -> "TaxAsset":
        return TaxAsset(TaxAssetKind.OPTION, underlying=underlying, option=option)

    def is_bitcoin_like(self) -> bool:
        """Whether this asset is functionally identical to bitcoin."""
        return self.kind is not TaxAssetKind.OPTION

    def is_1256(self) -> bool:
        """Whether this asset gets section 1256 treatment."""
        return self.kind is TaxAssetKind.OPTION

    def to_asset(self) -> Asset:
        if self.kind is TaxAssetKind.BITCOIN:
            return Asset.btc()
        if self.kind is TaxAssetKind.NEXT_DAY:
            return Asset.next_day(self.underlying, self.expiry)
        return Asset.from_option(self.underlying, self.option)

    def __str__(self) -> str:
        if self.kind is not TaxAssetKind.OPTION:
            return "BTC"
        return (f"{self.underlying} Mini {self.option.expiry:%Y-%m-%d} "
                f"{self.option.pc.value} {self.option.strike:$}")

    def format_2022(self) -> str:
        """The label format the exchange switched to in 2022."""
        if self.kind is not TaxAssetKind.OPTION:
            return "BTC"
        expiry = self.option.expiry
        return (f"{self.underlying}-Mini-{expiry.day:02}{MONTHS[expiry.month - 1]}{expiry.year}"
                f"-{self.option.strike.to_int()}-{self.option.pc.value}")

    @staticmethod
    def parse_2022(label: str) -> "TaxAsset":
        """
        Inverse of `format_2022`. Expiry is taken as 21:00 UTC.

        Raises:
            MalformedInputError: if `label` is not a 2022-style option label
        """
        if label == "BTC":
            return TaxAsset.bitcoin()
        m = LABEL_2022.match(label)
        if not m or m.group(3) not in MONTHS:
            raise MalformedInputError(f"Could not parse contract label: {label!r}")
        underlying, day, month, year, strike, pc = m.groups()
        try:
            expiry = datetime(int(year), MONTHS.index(month) + 1, int(day), 21, tzinfo=UTC)
        except ValueError as e:
            raise MalformedInputError(f"Bad expiry in contract label {label!r}: {e}") from e
        option = OptionSpec(PutCall(pc), Price(int(strike)), expiry)
        return TaxAsset.from_option(Underlying[underlying], option)


class BudgetAssetKind(Enum):
    BTC = "btc"
    ETH = "eth"
    USD = "usd"
    OPTION = "option"


@dataclass(frozen=True)
class BudgetAsset:
    """Something that appears in the plain event log."""
    kind: BudgetAssetKind
    underlying: Optional[Underlying] = None
    option: Optional[OptionSpec] = None

    @staticmethod
    def from_tax_asset(tax_asset: TaxAsset) -> "BudgetAsset":
        if tax_asset.is_bitcoin_like():
            return BudgetAsset(BudgetAssetKind.BTC)
        return BudgetAsset(BudgetAssetKind.OPTION, tax_asset.underlying, tax_asset.option)

    @staticmethod
    def from_deposit_asset(deposit_asset: DepositAsset) -> "BudgetAsset":
        return BudgetAsset(BudgetAssetKind[deposit_asset.name])

    def to_asset(self) -> Asset:
        if self.kind is BudgetAssetKind.OPTION:
            return Asset.from_option(self.underlying, self.option)
        if self.kind is BudgetAssetKind.BTC:
            return Asset.btc()
        if self.kind is BudgetAssetKind.ETH:
            return Asset.eth()
        if self.kind is BudgetAssetKind.USD:
            return Asset.usd()
        raise InvariantViolation(f"unknown budget asset {self.kind}")

    def __str__(self) -> str:
        if self.kind is BudgetAssetKind.OPTION:
            return f"{self.underlying} {self.option}"
        return self.kind.name
