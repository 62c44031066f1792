"""
Tests for Timing Utilities

Run with: pytest tests/test_timing.py -v
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seisnear.perf.timing import (
    Timer,
    BenchmarkResult,
    benchmark_function,
    compute_speedup,
    format_comparison
)


class TestTimer:

    def test_measures_elapsed(self):
        with Timer("sum") as t:
            sum(range(10000))
        assert t.elapsed > 0
        assert t.elapsed_ms == t.elapsed * 1000


class TestBenchmark:

    def test_speedup(self):
        assert compute_speedup(100.0, 25.0) == 4.0
        assert compute_speedup(1.0, 0.0) == float('inf')

    def test_result_statistics(self):
        result = BenchmarkResult("kdtree", num_points=10, num_queries=4,
                                 times_ms=[2.0, 4.0, 6.0])
        assert result.mean_ms == 4.0
        assert result.std_ms == 2.0
        assert result.min_ms == 2.0
        assert result.us_per_query == 1000.0
        assert result.to_dict()["num_points"] == 10
        assert "kdtree" in result.summary()

    def test_empty_result(self):
        result = BenchmarkResult("empty")
        assert result.mean_ms == 0.0
        assert result.std_ms == 0.0
        assert result.us_per_query == 0.0

    def test_benchmark_function(self):
        calls = []
        result = benchmark_function(lambda: calls.append(1) or len(calls),
                                    n_trials=3, warmup=2, name="append")
        assert len(calls) == 5
        assert len(result.times_ms) == 3
        assert result.metadata["last_result"] == 5

    def test_benchmark_function_needs_trials(self):
        with pytest.raises(ValueError):
            benchmark_function(lambda: None, n_trials=0)

    def test_format_comparison(self):
        slow = BenchmarkResult("brute_force", times_ms=[10.0])
        fast = BenchmarkResult("kdtree_hop", times_ms=[2.0])
        table = format_comparison([slow, fast], baseline="brute_force")
        assert "(baseline)" in table
        assert "5.00x" in table

        with pytest.raises(KeyError):
            format_comparison([fast], baseline="brute_force")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
