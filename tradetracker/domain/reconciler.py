# tradetracker/domain/reconciler.py
"""
Tax reconciliation.

Walks the exchange history in time order and turns every tax-relevant event
into lots for the position tracker, applying the exchange's own dating
conventions so the result matches its year-end CSV.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from tradetracker.domain.lot import EXPIRY_HOUR_UTC, Label, Lot, LotId, LotIdSequence
from tradetracker.domain.position import PositionTracker
from tradetracker.domain.prices import Historic
from tradetracker.domain.transactions import TransactionDatabase, spent_outpoints, txid_of
from tradetracker.errors import InvariantViolation, MissingDataError
from tradetracker.io.config import Configuration, LotInfo
from tradetracker.io.importer import DepositEvent, Event, ExpiryEvent, History, TradeEvent, WithdrawalEvent
from tradetracker.io.lx_csv import PriceReferences
from tradetracker.option import OptionSpec, PutCall
from tradetracker.units.asset import DepositAsset, Underlying
from tradetracker.units.price import Price
from tradetracker.units.quantity import SATS_PER_CONTRACT, Quantity
from tradetracker.units.utc_time import forced_to_hour

logger = logging.getLogger(__name__)

# Next-day swaps settle on their expiry day, stamped 21:00 UTC
NEXT_DAY_HOUR_UTC = 21


class TaxReconciler:
    """Single pass over a History producing a PositionTracker."""

    def __init__(
        self,
        year: int,
        price_history: Historic,
        transaction_db: TransactionDatabase,
        lot_db: Dict[LotId, LotInfo],
        price_references: PriceReferences,
        ids: Optional[LotIdSequence] = None,
    ):
        self.year = year
        self.price_history = price_history
        self.transaction_db = transaction_db
        self.lot_db = lot_db
        self.price_references = price_references
        self.ids = ids if ids is not None else LotIdSequence()

    @staticmethod
    def from_config(config: Configuration, price_history: Historic) -> "TaxReconciler":
        return TaxReconciler(
            year=config.year,
            price_history=price_history,
            transaction_db=config.transaction_db(),
            lot_db=config.lot_db(),
            price_references=config.price_references(),
        )

    def run(self, history: History) -> PositionTracker:
        tracker = PositionTracker(self.ids)
        for key, event in history.events.items():
            if key.time.year > self.year:
                logger.debug("Reached %s, past tax year %d; stopping", key.time, self.year)
                break
            logger.debug("Processing event %s", event)
            self._process(tracker, key.time, event)

        tracker.sort_events()
        return tracker

    def _process(self, tracker: PositionTracker, date: datetime, event: Event) -> None:
        if isinstance(event, DepositEvent):
            self._deposit(tracker, date, event)
        elif isinstance(event, WithdrawalEvent):
            logger.debug("Ignore withdrawal of %s", event.amount)
        elif isinstance(event, TradeEvent):
            self._trade(tracker, date, event)
        elif isinstance(event, ExpiryEvent):
            self._expiry(tracker, date, event)
        else:
            raise InvariantViolation(f"unknown event {event!r}")

    def _lot_info(self, txid: str, vout: int) -> LotInfo:
        lot_id = LotId.from_outpoint(txid, vout)
        info = self.lot_db.get(lot_id)
        if info is None:
            raise MissingDataError(f"no entry in lot database for {lot_id} ({txid}:{vout})")
        return info

    def _deposit(self, tracker: PositionTracker, date: datetime, event: DepositEvent) -> None:
        if event.asset is DepositAsset.USD:
            return
        if event.asset is not DepositAsset.BTC:
            raise InvariantViolation(f"we do not support {event.asset} deposits")

        btc = Label.btc()
        amount_sat = event.amount.amount
        logger.debug("[deposit] BTC %s to %s", event.amount, event.address)

        found = self.transaction_db.find_tx_for_deposit(event.address, amount_sat)
        if found is None:
            raise MissingDataError(
                f"no transaction found for deposit of {event.amount} to {event.address} on {date}"
            )
        tx, deposit_vout = found

        if len(tx.vout) != 1:
            # Probably from an exchange or other shared wallet: the deposit is one lot
            txid = txid_of(tx)
            info = self._lot_info(txid, deposit_vout)
            lot = Lot.from_deposit_utxo(txid, deposit_vout, info.btc_price(), amount_sat, info.acquired_at())
            tracker.push_lot(btc, lot)
            return

        # Single output: a self-transfer, so every input is a separate lot
        for prev_txid, prev_vout in spent_outpoints(tx):
            txout = self.transaction_db.find_txout(prev_txid, prev_vout)
            if txout is None:
                raise MissingDataError(f"please import transaction data for {prev_txid}")
            info = self._lot_info(prev_txid, prev_vout)
            lot = Lot.from_deposit_utxo(prev_txid, prev_vout, info.btc_price(), txout.nValue, info.acquired_at())
            tracker.push_lot(btc, lot)

            # The fee is a partial loss of the input that overshoots the deposit
            if txout.nValue > amount_sat:
                tracker.push_lot(btc, Lot.from_tx_fee(txout.nValue - amount_sat, date))
                amount_sat = 0
            else:
                amount_sat -= txout.nValue

    def _trade(self, tracker: PositionTracker, date: datetime, event: TradeEvent) -> None:
        contract = event.contract
        if contract.is_next_day():
            # BTC bought on a next-day only arrives on expiry
            tax_date = forced_to_hour(contract.expiry(), NEXT_DAY_HOUR_UTC)
            size = Quantity.from_sat(event.size.amount * SATS_PER_CONTRACT)
        elif contract.is_option():
            tax_date = date
            size = event.size
        else:
            raise InvariantViolation(f"futures trading is not supported ({contract.label})")

        label = contract.tax_label()
        logger.debug("[trade] \"%s\" %s @ %s; fee %s", label, size, event.price, event.fee)
        tracker.push_lot(label, Lot.from_trade(event.price, size, event.fee, tax_date))

    def _expiry(self, tracker: PositionTracker, date: datetime, event: ExpiryEvent) -> None:
        contract = event.contract
        if contract.is_next_day():
            # Next-days are "assigned" and the originating trade already covers that
            if event.expired_size.is_nonzero():
                raise InvariantViolation(f"next-day {contract.label} reports expired size {event.expired_size}")
            return
        if not contract.is_option():
            raise InvariantViolation(f"futures expiry is not supported ({contract.label})")

        option = contract.as_option()
        label = contract.tax_label()
        logger.debug("[expiry] %s assigned %s expired %s", label, event.assigned_size, event.expired_size)

        if event.expired_size.is_nonzero():
            tracker.push_lot(label, Lot.from_expiry(option, event.expired_size))

        if event.assigned_size.is_nonzero():
            if contract.underlying_asset is not Underlying.BTC:
                raise InvariantViolation(f"assignment of non-BTC option {contract.label}")
            btc_price = self._assignment_price(date, option)
            tracker.push_lot(label, Lot.from_assignment(option, event.assigned_size, btc_price))

            # Physical settlement; the basis is the market price, not the strike
            sats = event.assigned_size.amount * SATS_PER_CONTRACT
            if option.pc is PutCall.CALL:
                sats = -sats
            logger.debug("Because of assignment inserting a synthetic BTC trade of %s sat", sats)
            settlement = Lot.from_trade(
                btc_price,
                Quantity.from_sat(sats),
                Price.ZERO,
                forced_to_hour(option.expiry, EXPIRY_HOUR_UTC),
            )
            tracker.push_lot(Label.btc(), settlement)

    def _assignment_price(self, date: datetime, option: OptionSpec) -> Price:
        price = self.price_references.at_expiry(option.expiry)
        if price is not None:
            return price
        fallback = self.price_history.price_at(date)
        logger.warning(
            "No exchange price reference for assignment of %s; using price history %s",
            option, fallback,
        )
        return fallback.btc_price
