# tradetracker/option.py
"""
Option contracts.

Only what the tax engine needs: intrinsic value at expiry, plus the
shorthand `2021-07-16P32000` notation used on the command line and in logs.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from tradetracker.errors import MalformedInputError
from tradetracker.units.price import Price
from tradetracker.units.utc_time import UTC

SECONDS_PER_YEAR = 86400 * 365

# e.g. 2023-01-27C10000
OPTION_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})([CcPp])(.+)$")


class PutCall(Enum):
    CALL = "Call"
    PUT = "Put"

    def to_char(self) -> str:
        return "C" if self is PutCall.CALL else "P"


@dataclass(frozen=True)
class OptionSpec:
    pc: PutCall
    strike: Price
    expiry: datetime

    @staticmethod
    def call(strike: Price, expiry: datetime) -> "OptionSpec":
        return OptionSpec(PutCall.CALL, strike, expiry)

    @staticmethod
    def put(strike: Price, expiry: datetime) -> "OptionSpec":
        return OptionSpec(PutCall.PUT, strike, expiry)

    @staticmethod
    def parse(text: str) -> "OptionSpec":
        """
        Parse `YYYY-MM-DD{C|P}<strike>`. Expiry is taken as 21:00 UTC.
        """
        m = OPTION_PATTERN.match(text.strip())
        if not m:
            raise MalformedInputError(f"Could not parse option: {text!r}")
        date_str, pc_char, strike_str = m.groups()
        try:
            expiry = datetime.strptime(date_str, "%Y-%m-%d").replace(hour=21, tzinfo=UTC)
        except ValueError as e:
            raise MalformedInputError(f"Parsing time in option {text}: {e}") from e
        pc = PutCall.CALL if pc_char in "Cc" else PutCall.PUT
        return OptionSpec(pc, Price(strike_str), expiry)

    def years_to_expiry(self, now: datetime) -> float:
        if self.expiry > now:
            return (self.expiry - now).total_seconds() / SECONDS_PER_YEAR
        return 0.0

    def in_the_money(self, btc_price: Price) -> bool:
        """Whether the option is ITM. Exactly at the money counts as ITM."""
        if self.pc is PutCall.CALL:
            return self.strike <= btc_price
        return self.strike >= btc_price

    def intrinsic_value(self, btc_price: Price) -> Price:
        """
        What the option would be worth if it expired instantly at `btc_price`.

        Not clamped at zero: an out-of-the-money option has negative value.
        """
        if self.pc is PutCall.CALL:
            return btc_price - self.strike
        return self.strike - btc_price

    def __str__(self) -> str:
        return f"{self.expiry:%Y-%m-%d}{self.pc.to_char()}{self.strike}"
