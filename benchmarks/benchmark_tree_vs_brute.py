#!/usr/bin/env python3
"""
Benchmark Script: KD-Tree vs Linear Scan

Measures build and query time for nearest-record matching on synthetic
survey geometry:

1. Brute Force: Linear scan over every record per query
2. KD-Tree (storage order): Tree linked in record order
3. KD-Tree (hop order): Tree linked in hop order
4. scipy cKDTree: Reference implementation, for scale only

Records stored sorted along lines are the worst case for a tree linked in
storage order; hop order keeps the depth close to logarithmic.

Usage:
    python benchmarks/benchmark_tree_vs_brute.py
    python benchmarks/benchmark_tree_vs_brute.py --sizes 1000,5000 --trials 5

Output:
    - Console table with timing results
    - CSV file with one row per size
"""

import argparse
import csv
import sys
from pathlib import Path
from typing import List, Dict, Any

import numpy as np
from scipy.spatial import cKDTree

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seisnear.data_models import PointSet, SearchConfig
from seisnear.synthetic_data import generate_survey_lines
from seisnear.geometry.kd_tree import KDTree, brute_force_nearest
from seisnear.geometry.radius_search import NearestMatcher
from seisnear.perf.timing import Timer, BenchmarkResult, benchmark_function, compute_speedup


def benchmark_brute_force(
    points: PointSet,
    targets: np.ndarray,
    n_trials: int = 3
) -> BenchmarkResult:
    """
    Linear scan per query.

    Complexity: O(n × m)
    """
    return benchmark_function(
        lambda: [brute_force_nearest(points, t) for t in targets],
        n_trials, name="brute_force",
        num_points=points.n_points, num_queries=len(targets)
    )


def benchmark_kdtree(
    points: PointSet,
    targets: np.ndarray,
    config: SearchConfig,
    randomize: bool,
    n_trials: int = 3
) -> BenchmarkResult:
    """Build a tree and match every target; build and query are timed separately."""
    name = "kdtree_hop" if randomize else "kdtree_storage"
    result = BenchmarkResult(name, num_points=points.n_points, num_queries=len(targets))
    build_ms = []

    for _ in range(n_trials):
        with Timer() as build:
            tree = KDTree(points, randomize=randomize)
        matcher = NearestMatcher(tree, config)
        with Timer() as query:
            matcher.match_many(targets)
        build_ms.append(build.elapsed_ms)
        result.add_trial(query.elapsed_ms)

    result.metadata['build_ms'] = float(np.mean(build_ms))
    result.metadata['depth'] = tree.depth()
    result.metadata['cycles_per_query'] = matcher.stats.cycles_per_query
    return result


def benchmark_scipy(
    rows: np.ndarray,
    targets: np.ndarray,
    n_trials: int = 3
) -> BenchmarkResult:
    """scipy cKDTree build plus batch query."""
    return benchmark_function(
        lambda: cKDTree(rows).query(targets),
        n_trials, name="scipy_ckdtree",
        num_points=len(rows), num_queries=len(targets)
    )


def run_benchmark_suite(
    sizes: List[int],
    n_trials: int = 3,
    search_distance: float = 50.0,
    seed: int = 42,
    verbose: bool = True
) -> List[Dict[str, Any]]:
    """
    Run the benchmark for each problem size.

    Args:
        sizes: Approximate record counts
        n_trials: Number of timing trials per method
        search_distance: Initial radius passed to SearchConfig
        seed: Random seed for the target jitter
        verbose: Print progress information

    Returns:
        List of result dictionaries
    """
    results = []
    config = SearchConfig(search_distance=search_distance)

    for size in sizes:
        num_lines = max(1, int(np.sqrt(size / 4)))
        stations = max(1, size // num_lines)
        rows = generate_survey_lines(num_lines, stations, seed=seed)
        points = PointSet.from_rows(rows)
        targets = generate_survey_lines(num_lines, stations, jitter=10.0, seed=seed + 1)
        targets = targets[::max(1, size // 1000)]

        if verbose:
            print(f"\n{'='*60}")
            print(f"Size {points.n_points}: {num_lines} lines x {stations} stations, "
                  f"{len(targets)} queries")
            print('='*60)

        entry = {
            'num_points': points.n_points,
            'num_queries': len(targets),
            'num_lines': num_lines,
        }

        # Linear scan gets slow quickly; skip it for large sizes
        if points.n_points <= 20000:
            brute = benchmark_brute_force(points, targets, n_trials)
            entry['brute_force_ms'] = brute.mean_ms
            if verbose:
                print(f"  {brute.summary()}")
        else:
            entry['brute_force_ms'] = np.nan
            if verbose:
                print("  Skipping brute force (too slow for this size)")

        for randomize in (False, True):
            r = benchmark_kdtree(points, targets, config, randomize, n_trials)
            entry[f'{r.name}_ms'] = r.mean_ms
            entry[f'{r.name}_build_ms'] = r.metadata['build_ms']
            entry[f'{r.name}_depth'] = r.metadata['depth']
            entry[f'{r.name}_cycles'] = r.metadata['cycles_per_query']
            if verbose:
                print(f"  {r.summary()}")
                print(f"    build {r.metadata['build_ms']:.2f} ms, depth {r.metadata['depth']}, "
                      f"{r.metadata['cycles_per_query']:.2f} cycles/query")

        ref = benchmark_scipy(rows, targets, n_trials)
        entry['scipy_ckdtree_ms'] = ref.mean_ms
        if verbose:
            print(f"  {ref.summary()}")

        if not np.isnan(entry['brute_force_ms']):
            entry['speedup_hop_vs_brute'] = compute_speedup(
                entry['brute_force_ms'], entry['kdtree_hop_ms']
            )
        else:
            entry['speedup_hop_vs_brute'] = np.nan
        entry['speedup_hop_vs_storage'] = compute_speedup(
            entry['kdtree_storage_ms'], entry['kdtree_hop_ms']
        )

        results.append(entry)

    return results


def save_results_csv(results: List[Dict[str, Any]], filepath: str):
    """Save benchmark results to CSV file."""
    if not results:
        return

    with open(filepath, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=list(results[0].keys()))
        writer.writeheader()
        writer.writerows(results)

    print(f"\nResults saved to: {filepath}")


def print_results_table(results: List[Dict[str, Any]]):
    """Print formatted results table."""
    print("\n" + "=" * 80)
    print("BENCHMARK RESULTS SUMMARY")
    print("=" * 80)
    print(f"{'Size':>8} {'Brute(ms)':>12} {'Storage(ms)':>12} {'Hop(ms)':>10} "
          f"{'scipy(ms)':>10} {'Depth':>6} {'Speedup':>9}")
    print("-" * 80)

    for r in results:
        brute = f"{r['brute_force_ms']:.2f}" if not np.isnan(r['brute_force_ms']) else "N/A"
        speedup = f"{r['speedup_hop_vs_brute']:.2f}x" if not np.isnan(r['speedup_hop_vs_brute']) else "N/A"
        print(f"{r['num_points']:>8} {brute:>12} {r['kdtree_storage_ms']:>12.2f} "
              f"{r['kdtree_hop_ms']:>10.2f} {r['scipy_ckdtree_ms']:>10.2f} "
              f"{r['kdtree_hop_depth']:>6} {speedup:>9}")

    print("=" * 80)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Benchmark KD-tree nearest matching against a linear scan'
    )
    parser.add_argument(
        '--sizes', type=str, default='1000,2500,5000,10000',
        help='Comma-separated record counts (default: 1000,2500,5000,10000)'
    )
    parser.add_argument(
        '--trials', type=int, default=3,
        help='Number of timing trials per benchmark (default: 3)'
    )
    parser.add_argument(
        '--sdist', type=float, default=50.0,
        help='Initial search radius (default: 50)'
    )
    parser.add_argument(
        '--seed', type=int, default=42,
        help='Random seed (default: 42)'
    )
    parser.add_argument(
        '--output', type=str, default='benchmarks/benchmark_results.csv',
        help='Output CSV file path'
    )
    parser.add_argument(
        '--quiet', '-q', action='store_true',
        help='Minimal output'
    )

    args = parser.parse_args()
    sizes = [int(s.strip()) for s in args.sizes.split(',')]

    if not args.quiet:
        print("=" * 60)
        print("  NEAREST-RECORD MATCHING BENCHMARK")
        print("  Linear scan vs KD-Tree (storage / hop order)")
        print("=" * 60)
        print(f"\nProblem sizes: {sizes}")
        print(f"Trials per size: {args.trials}")

    results = run_benchmark_suite(sizes, args.trials, args.sdist, args.seed,
                                  verbose=not args.quiet)
    print_results_table(results)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    save_results_csv(results, str(output_path))

    return 0


if __name__ == "__main__":
    sys.exit(main())
