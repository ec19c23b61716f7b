# tradetracker/domain/position.py
"""
Position tracking and lot matching.

Each asset label has a Position: a queue of open lots which all have the same
sign. A lot pushed in the same direction enlarges the position; a lot in the
opposite direction closes queued lots, either FIFO (section 1256 assets) or
highest price first (BTC), and whatever is left of it opens a new position
in the opposite direction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from itertools import groupby
from typing import Dict, List, Optional, Tuple, Union

from tradetracker.domain.lot import Close, Label, Lot, LotIdSequence, gain_type_for
from tradetracker.errors import InvariantViolation
from tradetracker.timemap import TimeMap
from tradetracker.units.quantity import Quantity

logger = logging.getLogger(__name__)


class Position:
    """Open lots in a single asset."""

    def __init__(self, ids: Optional[LotIdSequence] = None, is_btc: bool = False):
        self._fifo: TimeMap[Lot] = TimeMap()
        self._ids = ids if ids is not None else LotIdSequence()
        self._is_btc = is_btc

    def __len__(self) -> int:
        return len(self._fifo)

    def lots(self) -> List[Lot]:
        return list(self._fifo.values())

    def total(self) -> Quantity:
        return sum((lot.quantity for lot in self._fifo.values()), Quantity.ZERO)

    def _open(self, lot: Lot, sort_date: datetime) -> Lot:
        if lot.id is None:
            lot = lot.with_id(self._ids.next_btc() if self._is_btc else self._ids.next_opt())
        self._fifo.insert(sort_date, lot)
        return lot

    def push_event(
        self,
        lot: Lot,
        sort_date: datetime,
        is_1256: bool,
    ) -> Tuple[List[Close], Optional[Lot]]:
        """
        Apply a lot to the position.

        Args:
            lot: incoming lot, opening or closing
            sort_date: queue key for the lot if it ends up (partly) open
            is_1256: FIFO matching if true, highest-price-first otherwise

        Returns:
            (closes, open): every close produced, and the lot that was opened
            (with its id assigned), if any
        """
        if not lot.quantity.is_nonzero():
            raise InvariantViolation(f"pushed zero-quantity lot {lot}")

        if not self._fifo:
            logger.debug("Create new position with open %s; sort date %s", lot, sort_date)
            return [], self._open(lot, sort_date)

        front = next(self._fifo.values())
        if front.quantity.has_same_sign(lot.quantity):
            logger.debug(
                "Increasing position (qty %s) with open %s; sort date %s",
                self.total(), lot, sort_date,
            )
            return [], self._open(lot, sort_date)

        closes: List[Close] = []
        remaining = lot
        while remaining.quantity.is_nonzero():
            if is_1256:
                popped = self._fifo.pop_first()
            else:
                popped = self._fifo.pop_max(lambda queued: queued.price)

            if popped is None:
                logger.debug(
                    "fully closed out position, opening new one: %s; sort date %s",
                    remaining, sort_date,
                )
                return closes, self._open(remaining, sort_date)

            key, matched = popped
            if matched.quantity.has_same_sign(remaining.quantity):
                raise InvariantViolation(
                    f"lot {matched} has the same sign as closing lot {remaining}"
                )
            logger.debug("closing lot %s with potential-lot %s", matched, remaining)

            if abs(matched.quantity) > abs(remaining.quantity):
                # Partial close; the rest of the matched lot keeps its place
                close_qty = remaining.quantity
                self._fifo.restore(key, matched.with_quantity(matched.quantity + remaining.quantity))
                remaining = remaining.with_quantity(remaining.quantity - remaining.quantity)
            else:
                close_qty = -matched.quantity
                remaining = remaining.with_quantity(remaining.quantity + matched.quantity)

            closes.append(Close(
                close_type=remaining.close_type,
                gain_type=gain_type_for(matched.date, remaining.date, is_1256),
                open_id=matched.id,
                open_price=matched.price,
                open_date=matched.date,
                close_price=remaining.price,
                close_date=remaining.date,
                quantity=close_qty,
            ))

        return closes, None


class OpenClose(Enum):
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class TaxEvent:
    """One entry of the tax log: a lot opened or a lot (partly) closed."""
    date: datetime
    label: Label
    kind: OpenClose
    record: Union[Lot, Close]
    index: int

    @property
    def is_close(self) -> bool:
        return self.kind is OpenClose.CLOSE


class PositionTracker:
    """Positions in every asset, plus the log of tax events they produced."""

    def __init__(self, ids: Optional[LotIdSequence] = None):
        self._positions: Dict[Label, Position] = {}
        self._events: List[TaxEvent] = []
        self._ids = ids if ids is not None else LotIdSequence()

    def push_lot(self, label: Label, lot: Lot, sort_date: Optional[datetime] = None) -> int:
        """
        Apply a lot to the position for `label` and log the result.

        Returns:
            Number of closes produced
        """
        position = self._positions.get(label)
        if position is None:
            position = Position(self._ids, is_btc=label.is_btc())
            self._positions[label] = position

        closes, opened = position.push_event(
            lot,
            sort_date if sort_date is not None else lot.date,
            not label.is_btc(),
        )
        for close in closes:
            self._log(label, OpenClose.CLOSE, close, lot.date)
        if opened is not None:
            self._log(label, OpenClose.OPEN, opened, lot.date)
        return len(closes)

    def _log(self, label: Label, kind: OpenClose, record: Union[Lot, Close], date: datetime) -> None:
        self._events.append(TaxEvent(
            date=date,
            label=label,
            kind=kind,
            record=record,
            index=len(self._events),
        ))

    def sort_events(self) -> None:
        self._events = order_events(self._events)

    def sorted_events(self) -> List[TaxEvent]:
        return order_events(self._events)

    def events(self) -> List[TaxEvent]:
        return list(self._events)

    def positions(self) -> Dict[Label, Position]:
        return {label: pos for label, pos in self._positions.items() if len(pos)}


def order_events(events: List[TaxEvent]) -> List[TaxEvent]:
    """
    Order tax events by date, keeping the logged order among equal dates,
    except that simultaneous closes (e.g. a batch of expiries) are reordered
    among themselves by when the closed lot was opened. Opens keep their
    slots.
    """
    ordered = sorted(events, key=lambda e: (e.date, e.index))
    for _, run in groupby(range(len(ordered)), key=lambda i: ordered[i].date):
        slots = [i for i in run if ordered[i].is_close]
        closes = sorted((ordered[i] for i in slots), key=lambda e: (e.record.open_date, e.index))
        for i, event in zip(slots, closes):
            ordered[i] = event
    return ordered
