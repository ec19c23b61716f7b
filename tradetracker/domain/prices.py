# tradetracker/domain/prices.py
"""
BTC price history.

Prices come from bitcoincharts-style trade dumps (`unix_ts,price,volume`),
are thinned to one trade per five minutes, and persisted in the price_point
table.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

import pandas as pd
import pytz
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tradetracker.db.models import PricePoint
from tradetracker.errors import InvariantViolation, MalformedInputError, StorageError
from tradetracker.timemap import TimeMap
from tradetracker.units.price import Price
from tradetracker.units.utc_time import format_tax_date

logger = logging.getLogger(__name__)

BUCKET_SECONDS = 300


@dataclass(frozen=True)
class BitcoinPrice:
    timestamp: datetime
    btc_price: Price

    def __str__(self) -> str:
        return f"{self.btc_price} @ {format_tax_date(self.timestamp)}"


class Historic:
    """Price observations, queried by "most recent as of"."""

    def __init__(self):
        self._data: TimeMap[BitcoinPrice] = TimeMap()

    def __len__(self) -> int:
        return len(self._data)

    def record(self, price: BitcoinPrice) -> None:
        self._data.insert(price.timestamp, price)

    def price_at(self, when: datetime) -> BitcoinPrice:
        """
        The latest price recorded strictly before `when`.

        Raises:
            InvariantViolation: if nothing was recorded before `when`
        """
        found = self._data.most_recent(when)
        if found is None:
            raise InvariantViolation(f"no BTC price recorded before {when}")
        price = found[1]
        logger.debug("look up price at %s, got %s", when, price)
        return price

    @staticmethod
    def load(session: Session, min_year: Optional[int] = None) -> "Historic":
        """Load recorded prices, optionally only those from `min_year` on."""
        stmt = select(PricePoint).order_by(PricePoint.timestamp)
        if min_year is not None:
            stmt = stmt.where(PricePoint.timestamp >= datetime(min_year, 1, 1, tzinfo=pytz.UTC))

        historic = Historic()
        try:
            points = session.exec(stmt).all()
        except SQLAlchemyError as e:
            raise StorageError(f"reading price history: {e}") from e
        for point in points:
            historic.record(BitcoinPrice(
                timestamp=_as_utc(point.timestamp),
                btc_price=Price.from_cents(point.price_cents),
            ))
        logger.info("Loaded %d price points", len(historic))
        return historic

    def save(self, session: Session) -> int:
        """Store every price not already in the database. Returns the number added."""
        try:
            existing = {_as_utc(ts) for ts in session.exec(select(PricePoint.timestamp)).all()}
            added = 0
            for price in self._data.values():
                timestamp = _as_utc(price.timestamp)
                if timestamp in existing:
                    continue
                cents = (price.btc_price.round_cents().value * 100).to_integral_value()
                session.add(PricePoint(timestamp=timestamp, price_cents=int(cents)))
                existing.add(timestamp)
                added += 1
            if added:
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"writing price history: {e}") from e
        return added


def _as_utc(ts: datetime) -> datetime:
    # SQLite drops the offset on the way back out
    if ts.tzinfo is None:
        return pytz.UTC.localize(ts)
    return ts.astimezone(pytz.UTC)


def read_price_csv(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a `unix_ts,price,volume` trade dump, keeping the first trade of
    every five-minute bucket plus the very last trade.

    Returns DataFrame with columns: ts, price
    """
    try:
        df = pd.read_csv(
            path,
            header=None,
            names=["ts", "price", "volume"],
            dtype={"ts": "int64", "price": str, "volume": str},
        )
    except (ValueError, pd.errors.ParserError) as e:
        raise MalformedInputError(f"{path}: could not read price CSV: {e}") from e

    if df.empty:
        return pd.DataFrame(columns=["ts", "price"])
    if df[["price", "volume"]].isna().any().any():
        raise MalformedInputError(f"{path}: price CSV line missing price or volume")

    bucket = df["ts"] // BUCKET_SECONDS
    kept = df[bucket != bucket.shift()]
    if kept.index[-1] != df.index[-1]:
        kept = pd.concat([kept, df.tail(1)])
    # Later trades win when timestamps repeat
    kept = kept.drop_duplicates(subset="ts", keep="last")
    return kept[["ts", "price"]].reset_index(drop=True)


def import_price_csv(session: Session, path: Union[str, Path]) -> int:
    """Load a trade dump into the database. Returns the number of new points."""
    df = read_price_csv(path)
    historic = Historic()
    for ts, price in zip(df["ts"], df["price"]):
        try:
            btc_price = Price(Decimal(price))
        except ArithmeticError as e:
            raise MalformedInputError(f"{path}: bad price {price!r} at {ts}") from e
        historic.record(BitcoinPrice(
            timestamp=datetime.fromtimestamp(int(ts), tz=pytz.UTC),
            btc_price=btc_price,
        ))
    added = historic.save(session)
    logger.info("Read %d trades from %s, recorded %d new price points", len(df), path, added)
    return added
