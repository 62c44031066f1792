"""
Ordered Unique-Key Table

A sorted array of unique fixed-width key tuples, each paired with a
payload object. Used to aggregate records by exact composite key (for
example stacking every trace that shares a cdp, or a shot line and shot
station) where spatial nearness is not the criterion.

Operations:
    locate(key)      -> upper-bound insertion index (binary search)
    is_match(i, key) -> True if the entry just below i equals key
    insert(i, key, payload) shifts higher entries up one slot

Keys compare lexicographically, field 0 most significant. The table is
always strictly increasing and entries are never removed.

Complexity:
    - locate: O(log n)
    - insert: O(n) for the shift; n is bounded by the number of distinct
      key combinations, not the number of traces
"""

from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple, Union
import bisect
import math
import numpy as np


class KeyTableOverflowError(RuntimeError):
    """Raised when a new key would exceed the table capacity."""


KeyLike = Union[float, int, Sequence[float], Sequence[int]]


class OrderedKeyTable:
    """
    Sorted table of unique key tuples with one payload per key.

    Example:
        >>> table = OrderedKeyTable(key_width=2, dtype=int)
        >>> slot, created = table.find_or_insert((10, 3), list)
        >>> table.payload_at(slot).append("trace 1")
        >>> table.find_or_insert((10, 3), list)
        (0, False)

    Attributes:
        key_width: Number of fields in every key
        capacity: Maximum number of keys, None for unbounded
        dtype: float or int, applied to every key field
    """

    def __init__(
        self,
        key_width: int,
        capacity: Optional[int] = None,
        dtype: type = float
    ):
        if key_width < 1:
            raise ValueError(f"key_width must be >= 1, got {key_width}")
        if capacity is not None and capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if dtype not in (float, int):
            raise ValueError(f"dtype must be float or int, got {dtype!r}")
        self.key_width = key_width
        self.capacity = capacity
        self.dtype = dtype
        self._keys: List[tuple] = []
        self._payloads: List[Any] = []

    def normalize(self, key: KeyLike) -> tuple:
        """
        Convert a key to a tuple of dtype values.

        Scalars are accepted for single-field tables.

        Raises:
            ValueError: On a wrong field count or a NaN field
        """
        if np.isscalar(key):
            fields = (key,)
        else:
            fields = tuple(np.asarray(key).reshape(-1).tolist())
        if len(fields) != self.key_width:
            raise ValueError(
                f"key has {len(fields)} fields, table keys have {self.key_width}"
            )
        out = tuple(self.dtype(v) for v in fields)
        if self.dtype is float and any(math.isnan(v) for v in out):
            raise ValueError(f"key fields must not be NaN: {out}")
        return out

    def locate(self, key: KeyLike) -> int:
        """
        Upper-bound binary search.

        Returns:
            Index such that every entry before it is <= key and every
            entry from it on is > key. An exact match sits at index - 1.
        """
        return bisect.bisect_right(self._keys, self.normalize(key))

    def is_match(self, index: int, key: KeyLike) -> bool:
        """True if index comes from locate and the entry below it equals key."""
        return 0 < index <= len(self._keys) and self._keys[index - 1] == self.normalize(key)

    def insert(self, index: int, key: KeyLike, payload: Any) -> None:
        """
        Insert a new key at index, shifting entries at and above it up.

        Raises:
            KeyTableOverflowError: If the table is at capacity
            ValueError: If index would break strict ordering
        """
        k = self.normalize(key)
        if self.full:
            raise KeyTableOverflowError(
                f"too many unique key combinations (capacity {self.capacity})"
            )
        if not 0 <= index <= len(self._keys):
            raise ValueError(f"insert index {index} out of range 0..{len(self._keys)}")
        if index > 0 and not self._keys[index - 1] < k:
            raise ValueError(f"key {k} does not sort after entry {self._keys[index - 1]}")
        if index < len(self._keys) and not k < self._keys[index]:
            raise ValueError(f"key {k} does not sort before entry {self._keys[index]}")
        self._keys.insert(index, k)
        self._payloads.insert(index, payload)

    def find_or_insert(self, key: KeyLike, factory: Callable[[], Any]) -> Tuple[int, bool]:
        """
        Return the slot for key, creating it with factory() if new.

        Returns:
            (slot, created)
        """
        k = self.normalize(key)
        pos = bisect.bisect_right(self._keys, k)
        if pos > 0 and self._keys[pos - 1] == k:
            return pos - 1, False
        self.insert(pos, k, factory())
        return pos, True

    def index_of(self, key: KeyLike) -> int:
        """Slot of an existing key, or -1."""
        k = self.normalize(key)
        pos = bisect.bisect_right(self._keys, k)
        if pos > 0 and self._keys[pos - 1] == k:
            return pos - 1
        return -1

    def get(self, key: KeyLike, default: Any = None) -> Any:
        slot = self.index_of(key)
        return self._payloads[slot] if slot >= 0 else default

    def key_at(self, slot: int) -> tuple:
        return self._keys[slot]

    def payload_at(self, slot: int) -> Any:
        return self._payloads[slot]

    def keys(self) -> List[tuple]:
        return list(self._keys)

    def payloads(self) -> List[Any]:
        return list(self._payloads)

    @property
    def full(self) -> bool:
        return self.capacity is not None and len(self._keys) >= self.capacity

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: KeyLike) -> bool:
        return self.index_of(key) >= 0

    def __iter__(self) -> Iterator[Tuple[tuple, Any]]:
        return iter(zip(self._keys, self._payloads))

    def __repr__(self) -> str:
        return (f"OrderedKeyTable(key_width={self.key_width}, "
                f"size={len(self)}, capacity={self.capacity})")
