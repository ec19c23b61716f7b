# tradetracker/domain/transactions.py
"""
Known Bitcoin transactions.

The exchange only tells us the address and amount of a deposit, so deposits
are matched to on-chain transactions by (scriptPubKey, value).
"""

import logging
from typing import Dict, List, Optional, Tuple

from bitcoin.core import CTransaction, CTxOut, b2lx, x
from bitcoin.core.serialize import SerializationError
from bitcoin.wallet import CBitcoinAddress, CBitcoinAddressError

from tradetracker.errors import MalformedInputError

logger = logging.getLogger(__name__)


def txid_of(tx: CTransaction) -> str:
    """Hex txid, in the usual byte-reversed display order."""
    return b2lx(tx.GetTxid())


def script_for_address(address: str) -> bytes:
    try:
        return CBitcoinAddress(address).to_scriptPubKey()
    except (CBitcoinAddressError, ValueError) as e:
        raise MalformedInputError(f"{address!r} is not a valid bitcoin address: {e}") from e


def decode_transaction(raw_hex: str) -> CTransaction:
    try:
        return CTransaction.deserialize(x(raw_hex))
    except (SerializationError, ValueError) as e:
        raise MalformedInputError(f"could not decode transaction hex: {e}") from e


class TransactionDatabase:
    """Transactions by txid."""

    def __init__(self):
        self._txs: Dict[str, CTransaction] = {}

    def __len__(self) -> int:
        return len(self._txs)

    def __contains__(self, txid: str) -> bool:
        return txid in self._txs

    @staticmethod
    def from_hex_map(hex_map: Dict[str, str]) -> "TransactionDatabase":
        """
        Decode a txid -> raw hex map.

        Raises:
            MalformedInputError: if any transaction fails to decode, or its
                computed txid differs from its key
        """
        db = TransactionDatabase()
        for expected_txid, raw_hex in hex_map.items():
            try:
                tx = decode_transaction(raw_hex)
            except MalformedInputError as e:
                raise MalformedInputError(f"transaction {expected_txid}: {e}") from e
            txid = txid_of(tx)
            if txid != expected_txid.lower():
                raise MalformedInputError(
                    f"transaction listed as {expected_txid} actually has txid {txid}"
                )
            db.insert(tx)
        logger.debug("Loaded %d transactions", len(db))
        return db

    def insert(self, tx: CTransaction) -> str:
        txid = txid_of(tx)
        self._txs[txid] = tx
        return txid

    def get(self, txid: str) -> Optional[CTransaction]:
        return self._txs.get(txid)

    def find_tx_for_deposit(self, address: str, amount_sat: int) -> Optional[Tuple[CTransaction, int]]:
        """
        First transaction paying exactly `amount_sat` to `address`.

        Returns:
            (transaction, output index), or None
        """
        script = script_for_address(address)
        for tx in self._txs.values():
            for vout, txout in enumerate(tx.vout):
                if txout.nValue == amount_sat and bytes(txout.scriptPubKey) == bytes(script):
                    return tx, vout
        return None

    def find_txout(self, txid: str, vout: int) -> Optional[CTxOut]:
        tx = self._txs.get(txid)
        if tx is None or vout >= len(tx.vout):
            return None
        return tx.vout[vout]


def spent_outpoints(tx: CTransaction) -> List[Tuple[str, int]]:
    """(txid, vout) of every output spent by `tx`."""
    return [(b2lx(txin.prevout.hash), txin.prevout.n) for txin in tx.vin]
