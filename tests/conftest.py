# tests/conftest.py
"""Test configuration and fixtures."""

from datetime import datetime

import pytest
import pytz
from bitcoin.core import COutPoint, CMutableTransaction, CMutableTxIn, CMutableTxOut, CTransaction, lx
from bitcoin.core.script import CScript, OP_0
from bitcoin.wallet import CBitcoinAddress
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from tradetracker.db.models import PricePoint  # noqa: F401  (registers the table)
from tradetracker.domain.prices import BitcoinPrice, Historic
from tradetracker.units.price import Price


@pytest.fixture(name="session")
def session_fixture():
    """Create in-memory SQLite test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="put_contract_json")
def put_contract_json_fixture():
    """BTC Mini 2021-07-16 Put $32,000.00"""
    return {
        "id": 22201001,
        "name": None,
        "is_call": False,
        "strike_price": 3200000,
        "min_increment": 100,
        "date_live": "2021-06-01 05:00:00+0000",
        "date_expires": "2021-07-16 21:00:00+0000",
        "date_exercise": "2021-07-16 22:00:00+0000",
        "derivative_type": "options_contract",
        "open_interest": None,
        "multiplier": 100,
        "label": "BTC-Mini-16JUL2021-32000-Put",
        "active": False,
        "is_next_day": False,
        "is_ecp_only": False,
        "underlying_asset": "CBTC",
        "collateral_asset": "USD",
        "type": "put",
    }


@pytest.fixture(name="call_contract_json")
def call_contract_json_fixture():
    """BTC Mini 2021-07-16 Call $40,000.00"""
    return {
        "id": 22201002,
        "strike_price": 4000000,
        "min_increment": 100,
        "date_live": "2021-06-01 05:00:00+0000",
        "date_expires": "2021-07-16 21:00:00+0000",
        "date_exercise": "2021-07-16 22:00:00+0000",
        "derivative_type": "options_contract",
        "multiplier": 100,
        "label": "BTC-Mini-16JUL2021-40000-Call",
        "active": False,
        "underlying_asset": "CBTC",
        "collateral_asset": "CBTC",
        "type": "call",
    }


@pytest.fixture(name="make_next_day_json")
def make_next_day_json_fixture():
    """Factory for day-ahead swap contracts expiring at 21:00 UTC on `expires`."""
    def make(contract_id: int, expires: str):
        day = datetime.strptime(expires, "%Y-%m-%d")
        return {
            "id": contract_id,
            "strike_price": None,
            "min_increment": 100,
            "date_live": f"{expires} 05:00:00+0000",
            "date_expires": f"{expires} 21:00:00+0000",
            "date_exercise": f"{expires} 21:00:00+0000",
            "derivative_type": "day_ahead_swap",
            "multiplier": 100,
            "label": f"BTC-Mini-{day:%d}{day.strftime('%b').upper()}{day:%Y}-NextDay",
            "active": False,
            "is_next_day": True,
            "underlying_asset": "CBTC",
            "collateral_asset": "CBTC",
        }
    return make


@pytest.fixture(name="price_history")
def price_history_fixture():
    """BTC at $30,000 from 2020, $35,000 from mid-2021, $40,000 from 2022."""
    historic = Historic()
    for when, price in [
        (datetime(2020, 1, 1, tzinfo=pytz.UTC), "30000"),
        (datetime(2021, 6, 1, tzinfo=pytz.UTC), "35000"),
        (datetime(2022, 1, 1, tzinfo=pytz.UTC), "40000"),
    ]:
        historic.record(BitcoinPrice(timestamp=when, btc_price=Price(price)))
    return historic


@pytest.fixture(name="deposit_address")
def deposit_address_fixture():
    """A mainnet P2WPKH address."""
    return str(CBitcoinAddress.from_scriptPubKey(CScript([OP_0, b"\x11" * 20])))


@pytest.fixture(name="other_address")
def other_address_fixture():
    return str(CBitcoinAddress.from_scriptPubKey(CScript([OP_0, b"\x22" * 20])))


@pytest.fixture(name="make_tx")
def make_tx_fixture():
    """
    Factory for transactions.

    inputs: list of (txid hex, vout); outputs: list of (value sat, address)
    """
    def make(inputs, outputs) -> CTransaction:
        vin = [CMutableTxIn(COutPoint(lx(txid), vout)) for txid, vout in inputs]
        vout = [CMutableTxOut(value, CBitcoinAddress(address).to_scriptPubKey()) for value, address in outputs]
        return CTransaction.from_tx(CMutableTransaction(vin, vout))
    return make
