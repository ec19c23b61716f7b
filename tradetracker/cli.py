# tradetracker/cli.py
"""
Command line entry point.

Commands:
    tax-history: Reconcile a year of exchange history and write the tax CSVs
    history: Print the plain event log of an API dump
    import-prices: Load a bitcoincharts trade dump into the price database
    price-at: Print the recorded BTC price at a time

Usage:
    tradetracker tax-history 2021.json lx-dump/
    tradetracker history lx-dump/ --year 2021
    tradetracker import-prices bitstampUSD.csv
    tradetracker price-at 2021-07-16T22:00:00Z
"""

import logging
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from tradetracker.db.session import get_session
from tradetracker.domain.prices import Historic, import_price_csv
from tradetracker.domain.reconciler import TaxReconciler
from tradetracker.errors import InvariantViolation, OutputExistsError, TradeTrackerError
from tradetracker.io.config import Configuration
from tradetracker.io.importer import History
from tradetracker.io.tax_csv import summarize, write_tax_csvs
from tradetracker.logging_config import setup_logging
from tradetracker.units.utc_time import parse_timestamp

logger = logging.getLogger(__name__)

CONFIG_COPY = "configuration.json"
DEBUG_LOG = "debug.log"


def default_output_dir(now: Optional[datetime] = None) -> Path:
    now = now or datetime.now()
    return Path(f"lx_tax_output_{now:%Y-%m-%d-%H%M}")


def fail(e: BaseException) -> None:
    click.echo(f"error: {e}", err=True)
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Bookkeeping for BTC and BTC options held on LedgerX."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command("tax-history")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("dump_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--out-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Output directory (default: lx_tax_output_<date>-<time>); must not exist",
)
@click.pass_context
def tax_history(ctx: click.Context, config_path: Path, dump_dir: Path, out_dir: Optional[Path]) -> None:
    """Reconcile the history in DUMP_DIR for the year in CONFIG_PATH."""
    out_dir = out_dir or default_output_dir()
    try:
        if out_dir.exists():
            raise OutputExistsError(f"output directory {out_dir} already exists")

        config, digest = Configuration.load(config_path)
        out_dir.mkdir(parents=True)
        setup_logging(ctx.obj["verbose"], out_dir / DEBUG_LOG)
        logger.info("Tax year %d; configuration %s has SHA256 %s", config.year, config_path, digest)
        shutil.copyfile(config_path, out_dir / CONFIG_COPY)

        with get_session() as session:
            price_history = Historic.load(session)
        history = History.from_dump(dump_dir)

        reconciler = TaxReconciler.from_config(config, price_history)
        tracker = reconciler.run(history)
        plain, annotated = write_tax_csvs(out_dir, tracker, config.year)

        summary = summarize(tracker, config.year)
        if not summary.empty:
            logger.info("Summary for %d:\n%s", config.year, summary.to_string(index=False))
        click.echo(f"Wrote {plain} and {annotated}")
    except (TradeTrackerError, InvariantViolation) as e:
        logger.debug("tax-history failed", exc_info=True)
        fail(e)


@cli.command("history")
@click.argument("dump_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--year", type=int, default=None, help="Only events in this year")
@click.pass_context
def history_cmd(ctx: click.Context, dump_dir: Path, year: Optional[int]) -> None:
    """Print the plain event log of DUMP_DIR as CSV."""
    setup_logging(ctx.obj["verbose"])
    try:
        with get_session() as session:
            price_history = Historic.load(session)
        history = History.from_dump(dump_dir)
        history.print_csv(year, price_history, click.get_text_stream("stdout"))
    except (TradeTrackerError, InvariantViolation) as e:
        fail(e)


@cli.command("import-prices")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_prices(ctx: click.Context, csv_path: Path) -> None:
    """Load a `unix_ts,price,volume` trade dump into the price database."""
    setup_logging(ctx.obj["verbose"])
    try:
        with get_session() as session:
            added = import_price_csv(session, csv_path)
        click.echo(f"Recorded {added} new price points")
    except (TradeTrackerError, InvariantViolation) as e:
        fail(e)


@cli.command("price-at")
@click.argument("timestamp")
@click.pass_context
def price_at(ctx: click.Context, timestamp: str) -> None:
    """Print the most recent recorded BTC price before TIMESTAMP."""
    setup_logging(ctx.obj["verbose"])
    try:
        when = parse_timestamp(timestamp)
        with get_session() as session:
            price_history = Historic.load(session)
        click.echo(str(price_history.price_at(when)))
    except (TradeTrackerError, InvariantViolation) as e:
        fail(e)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
