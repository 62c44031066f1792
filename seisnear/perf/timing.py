"""
Timing Utilities for Tree Build and Query Benchmarks

Measures wall-clock time of build and query phases and reports the
speedup of the tree over the linear scan.

Example:
    >>> with Timer("build") as t:
    ...     tree = KDTree(points)
    >>> print(f"Built in {t.elapsed_ms:.2f} ms")
"""

import logging
import statistics
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class Timer:
    """
    Context manager around time.perf_counter().

    Attributes:
        name: Optional label, logged at DEBUG on exit
        elapsed: Elapsed time in seconds
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> 'Timer':
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self._start
        if self.name:
            logger.debug("%s: %.2f ms", self.name, self.elapsed_ms)

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000


def compute_speedup(baseline_time: float, optimized_time: float) -> float:
    """
    Speedup = baseline_time / optimized_time.

    Returns inf when the optimized time is zero.
    """
    if optimized_time <= 0:
        return float('inf')
    return baseline_time / optimized_time


@dataclass
class BenchmarkResult:
    """
    Timing trials of one method on one problem size.

    Attributes:
        name: Method label ("brute_force", "kdtree_sorted", ...)
        num_points: Points in the tree
        num_queries: Queries per trial
        times_ms: One entry per trial
        metadata: Extra figures such as cycles per query or tree depth
    """
    name: str
    num_points: int = 0
    num_queries: int = 0
    times_ms: List[float] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_trial(self, time_ms: float) -> None:
        self.times_ms.append(time_ms)

    @property
    def mean_ms(self) -> float:
        return statistics.mean(self.times_ms) if self.times_ms else 0.0

    @property
    def std_ms(self) -> float:
        return statistics.stdev(self.times_ms) if len(self.times_ms) > 1 else 0.0

    @property
    def min_ms(self) -> float:
        return min(self.times_ms) if self.times_ms else 0.0

    @property
    def us_per_query(self) -> float:
        """Mean time per query in microseconds."""
        if self.num_queries == 0:
            return 0.0
        return self.mean_ms * 1000.0 / self.num_queries

    def summary(self) -> str:
        return (f"{self.name}: {self.mean_ms:.2f} +/- {self.std_ms:.2f} ms "
                f"(n={len(self.times_ms)}, {self.us_per_query:.1f} us/query)")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'num_points': self.num_points,
            'num_queries': self.num_queries,
            'mean_ms': self.mean_ms,
            'std_ms': self.std_ms,
            'min_ms': self.min_ms,
            'us_per_query': self.us_per_query,
            'metadata': self.metadata
        }


def benchmark_function(
    func: Callable[[], Any],
    n_trials: int = 3,
    warmup: int = 0,
    name: Optional[str] = None,
    num_points: int = 0,
    num_queries: int = 0
) -> BenchmarkResult:
    """
    Time a zero-argument callable.

    Args:
        func: Callable to time, usually a lambda closing over the data
        n_trials: Number of timed runs
        warmup: Untimed runs before the trials
        name: Result label, default func.__name__
        num_points: Recorded on the result
        num_queries: Recorded on the result, used for us_per_query

    Returns:
        BenchmarkResult; metadata['last_result'] holds func's last return value
    """
    if n_trials < 1:
        raise ValueError(f"n_trials must be >= 1, got {n_trials}")
    result = BenchmarkResult(
        name or func.__name__, num_points=num_points, num_queries=num_queries
    )

    for _ in range(warmup):
        func()

    value = None
    for _ in range(n_trials):
        with Timer() as t:
            value = func()
        result.add_trial(t.elapsed_ms)

    result.metadata['last_result'] = value
    return result


def format_comparison(results: List[BenchmarkResult], baseline: str) -> str:
    """
    Tabulate results with speedups against the named baseline.

    Raises:
        KeyError: If no result carries the baseline name
    """
    by_name = {r.name: r for r in results}
    baseline_time = by_name[baseline].mean_ms

    lines = [f"{'Method':<20} {'Mean (ms)':>12} {'Std (ms)':>10} {'us/query':>10} {'Speedup':>10}",
             "-" * 66]
    for r in results:
        speedup = "(baseline)" if r.name == baseline else f"{compute_speedup(baseline_time, r.mean_ms):.2f}x"
        lines.append(f"{r.name:<20} {r.mean_ms:>12.2f} {r.std_ms:>10.2f} "
                     f"{r.us_per_query:>10.1f} {speedup:>10}")
    return "\n".join(lines)
