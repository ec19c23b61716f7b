# tradetracker/io/config.py
"""
Tax-run configuration.

One JSON file per tax year. It must reproduce that year's output exactly,
so its fields are validated strictly and its SHA-256 is logged with every
run.

    {
        "year": 2021,
        "lx_csv": ["Sell,\"0.01, BTC\",2021-04-14T21:00:00Z,...", ...],
        "lots": {"a1b2c3d4-00": {"price": 3012345, "date": 1610000000}, ...},
        "transactions": {"<txid>": "<raw tx hex>", ...}
    }
"""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from tradetracker.domain.lot import LotId
from tradetracker.domain.transactions import TransactionDatabase
from tradetracker.errors import MalformedInputError
from tradetracker.io.lx_csv import PriceReferences
from tradetracker.units.price import Price
from tradetracker.units.utc_time import from_unix

logger = logging.getLogger(__name__)


class LotInfo(BaseModel):
    """
    Price reference and date of one UTXO-backed lot.

    `price` is the BTC price in cents, not the basis; the basis is this times
    the lot's size, which comes from the transaction data.
    """
    price: int
    date: int

    model_config = ConfigDict(extra="forbid", frozen=True)

    def btc_price(self) -> Price:
        return Price.from_cents(self.price)

    def acquired_at(self) -> datetime:
        return from_unix(self.date)


class Configuration(BaseModel):
    year: int
    lx_csv: List[str]
    lots: Dict[str, LotInfo]
    transactions: Dict[str, str]

    model_config = ConfigDict(extra="forbid", frozen=True)

    @staticmethod
    def load(path: Union[str, Path]) -> Tuple["Configuration", str]:
        """
        Read and validate a configuration file.

        Returns:
            (configuration, hex SHA-256 of the file contents)
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise MalformedInputError(f"reading configuration {path}: {e}") from e
        digest = hashlib.sha256(raw).hexdigest()

        try:
            config = Configuration.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise MalformedInputError(f"parsing configuration {path}: {e}") from e
        return config, digest

    def lot_db(self) -> Dict[LotId, LotInfo]:
        return {LotId(lot_id): info for lot_id, info in self.lots.items()}

    def price_references(self) -> PriceReferences:
        return PriceReferences.from_lines(self.lx_csv)

    def transaction_db(self) -> TransactionDatabase:
        return TransactionDatabase.from_hex_map(self.transactions)
