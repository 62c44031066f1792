"""
Stacking Sample Arrays by Key Combination

This module sums traces that share an exact composite key (cdp, or
shot line and station, or any tuple of header values) and divides each
output sample by the number of traces that contributed to it.

Stacking Rules:
    - Traces are grouped through an OrderedKeyTable, so output comes in
      key order regardless of input order.
    - Samples that are exactly zero do not count towards that sample's
      fold (muted zones do not dilute the stack).
    - A trace that fails its range limits, or is added with live=False, is
      "not live": its key is still created when keep_empty is set, but it
      adds no amplitude and no fold.
    - The output header is the one of the first trace with the smallest
      absolute offset; the output offset is that absolute offset.

Range limits:
    RangeLimit restricts a header value (offset, azimuth) to [min, max).
    When min >= max the range wraps around, which is how an azimuth
    window like 350..10 degrees is written. KeyStacker takes a mapping of
    header name to RangeLimit; a trace must pass every limit to be live.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging
import math
import numpy as np

from ..tables.key_table import OrderedKeyTable


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100000


@dataclass
class RangeLimit:
    """
    Half-open acceptance range for one header value.

    Attributes:
        minimum: Inclusive lower bound
        maximum: Exclusive upper bound
        absolute: Compare abs(value) instead of value
    """
    minimum: float = -math.inf
    maximum: float = math.inf
    absolute: bool = False

    def __post_init__(self):
        if math.isnan(self.minimum) or math.isnan(self.maximum):
            raise ValueError("range limits must not be NaN")

    @property
    def wraps(self) -> bool:
        return not self.minimum < self.maximum

    def contains(self, value: float) -> bool:
        v = abs(value) if self.absolute else value
        if self.wraps:
            return v >= self.minimum or v < self.maximum
        return self.minimum <= v < self.maximum


@dataclass
class StackedTrace:
    """
    One output trace of a KeyStacker.

    Attributes:
        key: The key combination
        samples: Averaged samples (float64)
        fold: Number of live traces stacked
        header: Header of the nearest-offset live or kept trace
        offset: Absolute offset of that trace
    """
    key: tuple
    samples: np.ndarray
    fold: int
    header: Optional[Dict[str, Any]] = None
    offset: float = 0.0


@dataclass
class _StackBuffer:
    total: np.ndarray
    sample_fold: np.ndarray
    fold: int = 0
    header: Optional[Dict[str, Any]] = None
    offset: float = math.inf


class KeyStacker:
    """
    Accumulates traces by key combination and returns averaged stacks.

    Example:
        >>> stacker = KeyStacker(key_width=1, num_samples=4)
        >>> _ = stacker.add((100,), np.array([1.0, 2.0, 0.0, 4.0]))
        >>> _ = stacker.add((100,), np.array([3.0, 2.0, 0.0, 0.0]))
        >>> stacker.results()[0].samples
        array([2., 2., 0., 4.])

    Attributes:
        key_width: Number of key fields per trace
        num_samples: Samples per trace
        keep_empty: Output keys whose traces were all not live (fold 0)
        limits: Header name to RangeLimit; traces outside any are not live
        num_input: Traces passed to add(), including ignored ones
    """

    def __init__(
        self,
        key_width: int,
        num_samples: int,
        keep_empty: bool = True,
        capacity: Optional[int] = DEFAULT_CAPACITY,
        limits: Optional[Dict[str, RangeLimit]] = None
    ):
        if num_samples < 1:
            raise ValueError(f"num_samples must be >= 1, got {num_samples}")
        self.key_width = key_width
        self.num_samples = num_samples
        self.keep_empty = keep_empty
        self.limits = dict(limits) if limits else {}
        self.table = OrderedKeyTable(key_width, capacity=capacity, dtype=float)
        self.num_input = 0

    def in_range(self, header: Optional[Dict[str, Any]]) -> bool:
        """
        True if header passes every range limit.

        Raises:
            ValueError: If a limited header value is missing
        """
        if not self.limits:
            return True
        missing = [name for name in self.limits if header is None or name not in header]
        if missing:
            raise ValueError(f"trace header lacks range-limited values {missing}")
        return all(limit.contains(header[name]) for name, limit in self.limits.items())

    def _new_buffer(self) -> _StackBuffer:
        return _StackBuffer(
            total=np.zeros(self.num_samples, dtype=np.float64),
            sample_fold=np.zeros(self.num_samples, dtype=np.int64)
        )

    def add(
        self,
        key: Sequence[float],
        samples: np.ndarray,
        header: Optional[Dict[str, Any]] = None,
        offset: float = 0.0,
        live: bool = True
    ) -> bool:
        """
        Add one trace.

        Args:
            key: key_width header values
            samples: num_samples amplitudes
            header: Header values to carry to the output
            offset: Source-receiver offset, selects the output header
            live: False to exclude the trace from the stack regardless of
                the range limits

        Returns:
            True if the trace was used (stacked or kept as an empty key)

        Raises:
            ValueError: On a sample length or key width mismatch, or a
                header missing a range-limited value
            KeyTableOverflowError: If a new key exceeds the capacity
        """
        samples = np.asarray(samples, dtype=np.float64).reshape(-1)
        if samples.size != self.num_samples:
            raise ValueError(
                f"trace has {samples.size} samples, stack has {self.num_samples}"
            )
        live = live and self.in_range(header)
        self.num_input += 1
        if not live and not self.keep_empty:
            return False

        slot, created = self.table.find_or_insert(key, self._new_buffer)
        buf = self.table.payload_at(slot)
        if created:
            logger.debug("New key combination %s at slot %d", self.table.key_at(slot), slot)

        abs_offset = abs(offset)
        if abs_offset < buf.offset:
            buf.offset = abs_offset
            buf.header = dict(header) if header is not None else None

        if live:
            nonzero = samples != 0.0
            buf.total += samples
            buf.sample_fold += nonzero
            buf.fold += 1
        return True

    def results(self) -> List[StackedTrace]:
        """Averaged stacks in increasing key order."""
        out = []
        for key, buf in self.table:
            samples = np.zeros(self.num_samples, dtype=np.float64)
            np.divide(buf.total, buf.sample_fold, out=samples, where=buf.sample_fold > 0)
            out.append(StackedTrace(
                key=key,
                samples=samples,
                fold=buf.fold,
                header=buf.header,
                offset=buf.offset if math.isfinite(buf.offset) else 0.0
            ))
        return out

    @property
    def num_output(self) -> int:
        return len(self.table)

    def summary(self) -> str:
        return f"Number of input traces={self.num_input}  Number of output traces={self.num_output}"
