"""
Performance Measurement Module

Timing utilities for comparing tree and brute force search.
"""

from .timing import (
    Timer,
    BenchmarkResult,
    benchmark_function,
    compute_speedup,
    format_comparison
)

__all__ = [
    'Timer',
    'BenchmarkResult',
    'benchmark_function',
    'compute_speedup',
    'format_comparison'
]
