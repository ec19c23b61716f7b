# tests/test_cli.py
from __future__ import annotations

import json
import logging
from datetime import datetime

import pytest
from click.testing import CliRunner

from tradetracker.cli import cli, default_output_dir
from tradetracker.io.tax_csv import HEADER
from tradetracker.logging_config import setup_logging


TRADES = "1609459200,29000.5,1.0\n1609459500,29010,0.1\n1609459800,29060,0.2\n"


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture(name="database")
def database_fixture(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'prices.db'}")


@pytest.fixture(name="dump_dir")
def dump_dir_fixture(tmp_path, make_next_day_json):
    """Buy 1 BTC on a next-day at $30,000 and sell it on another at $40,000."""
    directory = tmp_path / "dump"
    directory.mkdir()
    bought = make_next_day_json(22202001, "2022-01-01")
    sold = make_next_day_json(22202002, "2022-06-01")
    pages = {
        "positions.json": [
            {"size": 100, "assigned_size": 100, "contract": bought, "has_settled": True},
            {"size": -100, "assigned_size": 100, "contract": sold, "has_settled": True},
        ],
        "deposits.json": [],
        "withdrawals.json": [],
        "trades.json": [
            {"contract_id": 22202001, "execution_time": "2021-12-31T10:00:00.000Z",
             "filled_price": 3000000, "filled_size": 100, "side": "bid", "fee": 0},
            {"contract_id": 22202002, "execution_time": "2022-05-31T10:00:00.000Z",
             "filled_price": 4000000, "filled_size": 100, "side": "ask", "fee": 0},
        ],
    }
    for name, data in pages.items():
        (directory / name).write_text(json.dumps([{"data": data, "meta": {"next": None}}]))
    return directory


@pytest.fixture(name="config_path")
def config_path_fixture(tmp_path):
    path = tmp_path / "2022.json"
    path.write_text(json.dumps({"year": 2022, "lx_csv": [], "lots": {}, "transactions": {}}))
    return path


def test_default_output_dir():
    assert str(default_output_dir(datetime(2022, 2, 3, 4, 5))) == "lx_tax_output_2022-02-03-0405"


def test_tax_history(tmp_path, database, dump_dir, config_path):
    out_dir = tmp_path / "out"
    result = CliRunner().invoke(cli, ["tax-history", str(config_path), str(dump_dir), "--out-dir", str(out_dir)])
    assert result.exit_code == 0, result.output

    assert (out_dir / "lx_tax.csv").read_text() == (
        HEADER + "\n"
        'Sell,"1.00, BTC",2022-01-01T21:00:00Z,2022-06-01T21:00:00Z,40000.00,30000.00,10000.00,Short-term,,,\n'
    )
    assert (out_dir / "lx_tax_lots.csv").exists()
    assert (out_dir / "configuration.json").read_bytes() == config_path.read_bytes()
    assert "SHA256" in (out_dir / "debug.log").read_text()


def test_tax_history_refuses_existing_output(tmp_path, database, dump_dir, config_path):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    result = CliRunner().invoke(cli, ["tax-history", str(config_path), str(dump_dir), "--out-dir", str(out_dir)])
    assert result.exit_code == 1
    assert "error:" in result.output
    assert list(out_dir.iterdir()) == []


def test_tax_history_reports_bad_config(tmp_path, database, dump_dir):
    config_path = tmp_path / "bad.json"
    config_path.write_text(json.dumps({"year": 2022}))
    result = CliRunner().invoke(
        cli, ["tax-history", str(config_path), str(dump_dir), "--out-dir", str(tmp_path / "out")]
    )
    assert result.exit_code == 1
    assert "error: parsing configuration" in result.output
    assert not (tmp_path / "out").exists()


def test_import_prices_then_price_at(tmp_path, database):
    csv_path = tmp_path / "trades.csv"
    csv_path.write_text(TRADES)
    runner = CliRunner()

    result = runner.invoke(cli, ["import-prices", str(csv_path)])
    assert result.exit_code == 0, result.output
    assert "Recorded 3 new price points" in result.output

    result = runner.invoke(cli, ["price-at", "2021-02-01T00:00:00Z"])
    assert result.exit_code == 0, result.output
    assert "29060.00 @ 2021-01-01T00:10:00Z" in result.output


def test_price_at_without_prices(database):
    result = CliRunner().invoke(cli, ["price-at", "2021-02-01T00:00:00Z"])
    assert result.exit_code == 1
    assert "error: no BTC price recorded" in result.output


def test_history(tmp_path, database, dump_dir):
    csv_path = tmp_path / "trades.csv"
    csv_path.write_text(TRADES)
    runner = CliRunner()
    runner.invoke(cli, ["import-prices", str(csv_path)])

    result = runner.invoke(cli, ["history", str(dump_dir), "--year", "2021"])
    assert result.exit_code == 0, result.output
    assert "Trade,2021-12-31 10:00:00,BTC,30000.00,100,29060.00" in result.output.splitlines()
    assert "2022-05-31" not in result.output


def test_debug_log_is_never_overwritten(tmp_path):
    path = tmp_path / "debug.log"
    setup_logging(debug_log_path=path)
    logging.getLogger("tradetracker.test").debug("first run")
    with pytest.raises(FileExistsError):
        setup_logging(debug_log_path=path)
    assert "first run" in path.read_text()
