# tradetracker/io/tax_csv.py
"""
Tax CSV output, in the exchange's year-end format.

Two files are written: `lx_tax.csv` matching the exchange's own layout
column for column, and `lx_tax_lots.csv` which appends the id of the lot
each row closes.
"""

import csv
import logging
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Tuple, Union

import pandas as pd

from tradetracker.domain.lot import Close, Label
from tradetracker.domain.position import PositionTracker
from tradetracker.errors import OutputExistsError
from tradetracker.units.utc_time import format_tax_date

logger = logging.getLogger(__name__)

HEADER = (
    "Reference,Description,Date Acquired,Date Sold or Disposed of,Proceeds,"
    "Cost or other basis,Gain/(Loss),Short-term/Long-term,,,Note that column C "
    "and column F reflect * where cost basis could not be obtained."
)
LOT_ID_HEADER = HEADER + ",Lot ID"

TAX_CSV = "lx_tax.csv"
TAX_LOTS_CSV = "lx_tax_lots.csv"

CENT = Decimal("0.01")


def describe(label: Label, close: Close) -> str:
    """`0.01, BTC` or `6, BTC Mini 2021-07-16 Put $32,000.00`."""
    if label.is_btc():
        amount = abs(close.quantity).to_decimal()
        # The exchange trades hundredths of a bitcoin, so two places usually suffice
        if amount == amount.quantize(CENT):
            return f"{amount.quantize(CENT)}, {label}"
        return f"{amount:f}, {label}"
    return f"{abs(close.quantity.amount)}, {label}"


def close_row(label: Label, close: Close, with_lot_id: bool = False) -> List[str]:
    amount = abs(close.quantity)
    open_value = (close.open_price * amount).round_cents()
    close_value = (close.close_price * amount).round_cents()

    if close.quantity.is_positive():
        # Buying back a short: acquired at the close, disposed of at the open
        acquired, disposed = close.close_date, close.open_date
        proceeds, basis = open_value, close_value
    else:
        acquired, disposed = close.open_date, close.close_date
        proceeds, basis = close_value, open_value

    row = [
        close.close_type.value,
        describe(label, close),
        format_tax_date(acquired),
        format_tax_date(disposed),
        str(proceeds),
        str(basis),
        str(proceeds - basis),
        close.gain_type.value,
        "",
        "",
        "",
    ]
    if with_lot_id:
        row.append(str(close.open_id))
    return row


def closes_in_year(tracker: PositionTracker, year: int) -> Iterator[Tuple[Label, Close]]:
    for event in tracker.events():
        if event.is_close and event.date.year == year:
            yield event.label, event.record


def write_tax_csv(path: Union[str, Path], tracker: PositionTracker, year: int, with_lot_ids: bool = False) -> int:
    """
    Write one tax CSV. Refuses to overwrite an existing file.

    Returns:
        Number of data rows written
    """
    path = Path(path)
    try:
        fh = open(path, "x", newline="")
    except FileExistsError as e:
        raise OutputExistsError(f"output file {path} already exists") from e

    n_rows = 0
    with fh:
        fh.write((LOT_ID_HEADER if with_lot_ids else HEADER) + "\n")
        writer = csv.writer(fh, lineterminator="\n")
        for label, close in closes_in_year(tracker, year):
            writer.writerow(close_row(label, close, with_lot_ids))
            n_rows += 1
    logger.info("Wrote %d rows to %s", n_rows, path)
    return n_rows


def write_tax_csvs(directory: Union[str, Path], tracker: PositionTracker, year: int) -> Tuple[Path, Path]:
    directory = Path(directory)
    plain = directory / TAX_CSV
    annotated = directory / TAX_LOTS_CSV
    for path in (plain, annotated):
        if path.exists():
            raise OutputExistsError(f"output file {path} already exists")

    write_tax_csv(plain, tracker, year)
    write_tax_csv(annotated, tracker, year, with_lot_ids=True)
    return plain, annotated


def summarize(tracker: PositionTracker, year: int) -> pd.DataFrame:
    """
    Totals per tax character for the year.

    Returns DataFrame with columns: gain_type, closes, proceeds, basis, gain
    """
    rows = []
    for label, close in closes_in_year(tracker, year):
        row = close_row(label, close)
        rows.append(
            {
                "gain_type": close.gain_type.value,
                "proceeds": float(row[4]),
                "basis": float(row[5]),
                "gain": float(row[6]),
            }
        )

    if not rows:
        return pd.DataFrame(columns=["gain_type", "closes", "proceeds", "basis", "gain"])

    df = pd.DataFrame(rows)
    summary = (
        df.groupby("gain_type", sort=True)
        .agg(closes=("gain", "size"), proceeds=("proceeds", "sum"), basis=("basis", "sum"), gain=("gain", "sum"))
        .reset_index()
    )
    return summary.round(2)
