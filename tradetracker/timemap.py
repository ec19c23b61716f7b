# tradetracker/timemap.py
"""
Time-ordered multimap.

Values are stored under (time, sequence) keys. Many values may share a time;
the sequence number keeps them in insertion order, so iteration is
deterministic and no entry is ever replaced.
"""

import bisect
from datetime import datetime
from typing import Callable, Dict, Generic, Iterator, List, NamedTuple, Optional, Tuple, TypeVar

from tradetracker.errors import InvariantViolation

V = TypeVar("V")


class TimeKey(NamedTuple):
    time: datetime
    seq: int


class TimeMap(Generic[V]):
    """Multimap from timestamps to values, iterated in (time, sequence) order."""

    def __init__(self):
        self._keys: List[TimeKey] = []
        self._values: Dict[TimeKey, V] = {}
        self._next_seq = 0

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __iter__(self) -> Iterator[Tuple[TimeKey, V]]:
        return self.items()

    def items(self) -> Iterator[Tuple[TimeKey, V]]:
        for key in self._keys:
            yield key, self._values[key]

    def values(self) -> Iterator[V]:
        for key in self._keys:
            yield self._values[key]

    def drain(self) -> Iterator[Tuple[TimeKey, V]]:
        """Yield every entry in order, leaving the map empty."""
        keys, values = self._keys, self._values
        self._keys, self._values = [], {}
        for key in keys:
            yield key, values[key]

    def insert(self, time: datetime, value: V) -> TimeKey:
        key = TimeKey(time, self._next_seq)
        self._next_seq += 1
        self._insert_key(key, value)
        return key

    def restore(self, key: TimeKey, value: V) -> None:
        """
        Put a popped entry back under its original key.

        Keys that were never issued by this map, or that are currently
        present, are refused.
        """
        if key.seq >= self._next_seq:
            raise InvariantViolation(f"restore of key {key} not issued by this map")
        if key in self._values:
            raise InvariantViolation(f"restore of key {key} which is still present")
        self._insert_key(key, value)

    def _insert_key(self, key: TimeKey, value: V) -> None:
        bisect.insort(self._keys, key)
        self._values[key] = value

    def pop_first(self) -> Optional[Tuple[TimeKey, V]]:
        """Remove and return the earliest entry, or None if empty."""
        if not self._keys:
            return None
        key = self._keys.pop(0)
        return key, self._values.pop(key)

    def pop_max(self, key_fn: Callable[[V], object]) -> Optional[Tuple[TimeKey, V]]:
        """
        Remove and return the entry whose value maximizes `key_fn`.

        Ties go to the earliest entry.
        """
        best_idx = None
        best = None
        for idx, key in enumerate(self._keys):
            candidate = key_fn(self._values[key])
            if best_idx is None or candidate > best:
                best_idx, best = idx, candidate

        if best_idx is None:
            return None
        key = self._keys.pop(best_idx)
        return key, self._values.pop(key)

    def most_recent(self, as_of: datetime) -> Optional[Tuple[TimeKey, V]]:
        """The entry with the latest time strictly before `as_of`, or None."""
        idx = bisect.bisect_left(self._keys, (as_of,))
        if idx == 0:
            return None
        key = self._keys[idx - 1]
        return key, self._values[key]
