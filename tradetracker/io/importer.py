# tradetracker/io/importer.py
"""
Import of exchange history into a single time-ordered event stream.

Normalizes the exchange's quirks: wrapped vs bare asset names, bid/ask to
signed sizes, and positions (which never report the expired amount) to
explicit assigned/expired quantities.
"""

import csv
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, TextIO, Tuple, Union

from tradetracker.domain.transactions import script_for_address
from tradetracker.errors import InvariantViolation, MalformedInputError, MissingDataError
from tradetracker.io.ledgerx import (
    Contract,
    DepositsPage,
    PositionsPage,
    Side,
    TradesPage,
    WithdrawalsPage,
    fetch_contract,
    parse_page,
)
from tradetracker.timemap import TimeKey, TimeMap
from tradetracker.units.asset import BudgetAsset, DepositAsset
from tradetracker.units.price import Price
from tradetracker.units.quantity import Quantity

logger = logging.getLogger(__name__)

DUMP_FILES = [
    ("positions.json", PositionsPage),
    ("deposits.json", DepositsPage),
    ("withdrawals.json", WithdrawalsPage),
    ("trades.json", TradesPage),
]


@dataclass(frozen=True)
class DepositEvent:
    amount: Quantity
    asset: DepositAsset
    address: str


@dataclass(frozen=True)
class WithdrawalEvent:
    amount: Quantity
    asset: DepositAsset


@dataclass(frozen=True)
class TradeEvent:
    contract: Contract
    price: Price
    # Contracts; positive for bid-side fills
    size: Quantity
    fee: Price


@dataclass(frozen=True)
class ExpiryEvent:
    contract: Contract
    # Both are net changes in contracts held, so they sum to minus the position size
    assigned_size: Quantity
    expired_size: Quantity


Event = Union[DepositEvent, WithdrawalEvent, TradeEvent, ExpiryEvent]


def funds_amount(asset: DepositAsset, amount: int) -> Quantity:
    """Deposit/withdrawal amount in its natural unit."""
    if asset is DepositAsset.BTC:
        return Quantity.from_sat(amount)
    if asset is DepositAsset.USD:
        return Quantity.from_cents(amount)
    raise InvariantViolation("ethereum deposits and withdrawals are not supported")


def expiry_sizes(size: int, assigned_size: int) -> Tuple[int, int]:
    """
    Split a settled position into (assigned, expired) contract deltas.

    `size` is positive for long positions and negative for short ones;
    `assigned_size` is always reported positive.
    """
    if size > 0:
        assigned, expired = -assigned_size, -size + assigned_size
    else:
        assigned, expired = assigned_size, -size - assigned_size

    if assigned + expired != -size:
        raise InvariantViolation(
            f"assigned {assigned} + expired {expired} != -size {-size}"
        )
    return assigned, expired


class ContractCache:
    """
    Contract id to contract.

    Filled from position pages (which embed full contracts) and, for
    contracts only referenced by trades, through `resolver`.
    """

    def __init__(self, resolver: Callable[[str], Contract] = fetch_contract):
        self._contracts: Dict[str, Contract] = {}
        self._resolver = resolver

    def __len__(self) -> int:
        return len(self._contracts)

    def __contains__(self, contract_id) -> bool:
        return str(contract_id) in self._contracts

    def store(self, contract: Contract) -> None:
        self._contracts[contract.contract_id] = contract

    def get(self, contract_id) -> Contract:
        contract_id = str(contract_id)
        contract = self._contracts.get(contract_id)
        if contract is None:
            contract = self._resolver(contract_id)
            if contract is None:
                raise MissingDataError(f"Unknown contract ID {contract_id}")
            if contract.contract_id != contract_id:
                raise MalformedInputError(
                    f"lookup of contract {contract_id} returned contract {contract.contract_id}"
                )
            self._contracts[contract_id] = contract
        return contract


class History:
    """Every exchange event, keyed by time."""

    def __init__(self, contracts: Optional[ContractCache] = None):
        self.events: TimeMap[Event] = TimeMap()
        self.contracts = contracts if contracts is not None else ContractCache()

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Tuple[TimeKey, Event]]:
        return self.events.items()

    @staticmethod
    def from_dump(
        directory: Union[str, Path],
        resolver: Callable[[str], Contract] = fetch_contract,
    ) -> "History":
        """
        Build a history from saved API responses.

        The directory holds positions.json, deposits.json, withdrawals.json
        and trades.json, each a list of raw pages (or a single page).
        Positions go first so their contracts are cached before trades need
        them.
        """
        history = History(ContractCache(resolver))
        directory = Path(directory)
        importers = {
            PositionsPage: history.import_positions,
            DepositsPage: history.import_deposits,
            WithdrawalsPage: history.import_withdrawals,
            TradesPage: history.import_trades,
        }

        for filename, page_model in DUMP_FILES:
            path = directory / filename
            if not path.exists():
                raise MissingDataError(f"missing API dump file {path}")
            try:
                payload = json.loads(path.read_text())
            except json.JSONDecodeError as e:
                raise MalformedInputError(f"{path}: invalid JSON: {e}") from e

            pages = payload if isinstance(payload, list) else [payload]
            for n, raw_page in enumerate(pages):
                page = parse_page(page_model, raw_page, f"{path} page {n}")
                importers[page_model](page)
            logger.info("Imported %d pages from %s", len(pages), path)

        logger.info("History has %d events, %d contracts cached", len(history), len(history.contracts))
        return history

    def import_deposits(self, page: DepositsPage) -> None:
        for deposit in page.data:
            if deposit.asset is not deposit.deposit_address.asset:
                raise MalformedInputError(
                    f"deposit at {deposit.created_at} is of {deposit.asset} "
                    f"to a {deposit.deposit_address.asset} address"
                )
            amount = funds_amount(deposit.asset, deposit.amount)
            if deposit.asset is DepositAsset.BTC:
                # Fail early on addresses we could never match on-chain
                script_for_address(deposit.deposit_address.address)
            self.events.insert(
                deposit.created_at,
                DepositEvent(amount=amount, asset=deposit.asset, address=deposit.deposit_address.address),
            )

    def import_withdrawals(self, page: WithdrawalsPage) -> None:
        for withdrawal in page.data:
            self.events.insert(
                withdrawal.created_at,
                WithdrawalEvent(amount=funds_amount(withdrawal.asset, withdrawal.amount), asset=withdrawal.asset),
            )

    def import_trades(self, page: TradesPage) -> None:
        for trade in page.data:
            contract = self.contracts.get(trade.contract_id)
            size = trade.filled_size if trade.side is Side.BID else -trade.filled_size
            self.events.insert(
                trade.execution_time,
                TradeEvent(
                    contract=contract,
                    price=Price.from_cents(trade.filled_price),
                    size=Quantity.from_contracts(size),
                    fee=Price.from_cents(trade.fee),
                ),
            )

    def import_positions(self, page: PositionsPage) -> None:
        for position in page.data:
            self.contracts.store(position.contract)
            # Unsettled positions have no trade logs associated with them
            if not position.has_settled:
                continue

            assigned, expired = expiry_sizes(position.size, position.assigned_size)
            self.events.insert(
                position.contract.expiry(),
                ExpiryEvent(
                    contract=position.contract,
                    assigned_size=Quantity.from_contracts(assigned),
                    expired_size=Quantity.from_contracts(expired),
                ),
            )

    def csv_rows(self, year: Optional[int], prices) -> Iterator[List[str]]:
        """
        Rows of the plain event log: kind, date, asset, price, amount, BTC price.

        `prices` is anything with `price_at(datetime)`, e.g. a Historic.
        """
        for key, event in self.events.items():
            date: datetime = key.time
            if year is not None and date.year != year:
                continue
            btc_price = prices.price_at(date).btc_price
            date_str = date.strftime("%Y-%m-%d %H:%M:%S")

            if isinstance(event, (DepositEvent, WithdrawalEvent)):
                kind = "Deposit" if isinstance(event, DepositEvent) else "Withdraw"
                asset = BudgetAsset.from_deposit_asset(event.asset)
                yield [kind, date_str, str(asset), "", f"{event.amount.to_decimal():f}", str(btc_price)]
            elif isinstance(event, TradeEvent):
                asset = event.contract.budget_asset()
                if asset is None:
                    raise InvariantViolation(f"trade of unsupported contract {event.contract.label}")
                yield ["Trade", date_str, str(asset), str(event.price), str(event.size.amount), str(btc_price)]
            elif event.contract.is_option():
                asset = event.contract.budget_asset()
                if event.expired_size.is_nonzero():
                    yield ["Expiry", date_str, str(asset), "", str(event.expired_size.amount), str(btc_price)]
                if event.assigned_size.is_nonzero():
                    yield ["Assignment", date_str, str(asset), "", str(event.assigned_size.amount), str(btc_price)]
            elif event.contract.is_next_day():
                # Next-days are "assigned", which the originating trade already covers
                if event.expired_size.is_nonzero():
                    raise InvariantViolation(f"next-day {event.contract.label} has expired size")
            else:
                raise InvariantViolation(f"expiry of unsupported contract {event.contract.label}")

    def print_csv(self, year: Optional[int], prices, out: Optional[TextIO] = None) -> int:
        """Write the plain event log as CSV. Returns the number of rows."""
        writer = csv.writer(out if out is not None else sys.stdout, lineterminator="\n")
        n_rows = 0
        for row in self.csv_rows(year, prices):
            writer.writerow(row)
            n_rows += 1
        return n_rows
