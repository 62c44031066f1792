"""
Main Entry Point for the Nearest-Match Tool

This script matches target coordinates (trace source or receiver
positions, CDP locations) to the nearest record of a point table and
carries a value from that record over to each target. It orchestrates:

1. Reading points and targets from CSV files with header rows
2. Building the KD-tree in hop order
3. Adaptive radius search per target with the configured limits
4. Writing the matched rows and printing search statistics

Usage:
    # Match receivers to the nearest static table record
    python -m seisnear.main --points statics.csv --targets receivers.csv \\
        --dims x,y --values-column static --output matched.csv

    # Restrict matches to the same profile stretch (station in +-50)
    python -m seisnear.main --points profile.csv --targets traces.csv \\
        --dims x,y,station --inactive-dims station --relative-min=-50 --relative-max 50

    # Run benchmark comparison
    python -m seisnear.main --benchmark --sizes 1000,4000 --trials 3
"""

import argparse
import csv
import logging
import math
import sys
from typing import List, Optional, Sequence

import numpy as np

from .synthetic_data import generate_survey_lines, load_csv_columns
from .data_models import PointSet, SearchConfig
from .geometry.kd_tree import KDTree, brute_force_nearest
from .geometry.radius_search import NearestMatcher, NoMatchError
from .geometry.assignment import MatchAssignment, assign_to_nearest, compute_assignment_statistics
from .perf.timing import Timer, benchmark_function, format_comparison


logger = logging.getLogger(__name__)


def print_header():
    """Print application header."""
    print("=" * 70)
    print("  SEISNEAR: NEAREST-MATCH SEARCH FOR SURVEY COORDINATES")
    print("  KD-tree with adaptive radius and range-limited extents")
    print("=" * 70)
    print()


def _split_names(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [s.strip() for s in text.split(',') if s.strip()]


def _parse_floats(text: Optional[str], n: int, name: str) -> Optional[List[float]]:
    """Parse a comma list of n floats ('inf' and '-inf' allowed)."""
    if text is None:
        return None
    values = [float(s) for s in _split_names(text)]
    if len(values) != n:
        raise ValueError(f"--{name} needs {n} values, got {len(values)}")
    return values


def build_config(args, dims: Sequence[str]) -> SearchConfig:
    """
    Build a SearchConfig from a JSON file or from command line flags.

    Flags given explicitly override values loaded from --config.
    """
    n = len(dims)
    if args.config:
        config = SearchConfig.load_from_json(args.config)
        data = config.to_dict()
    else:
        data = SearchConfig().to_dict()

    if args.sdist is not None:
        data['search_distance'] = args.sdist
    if args.smult is not None:
        data['growth_factor'] = args.smult
    if args.dlimit is not None:
        data['distance_limit'] = args.dlimit
    if args.nopoint is not None:
        data['on_missing'] = args.nopoint

    inactive = _split_names(args.inactive_dims)
    unknown = [name for name in inactive if name not in dims]
    if unknown:
        raise ValueError(f"--inactive-dims names unknown dimensions: {unknown}")
    if inactive:
        data['active_dims'] = [name not in inactive for name in dims]

    gmin = _parse_floats(args.min, n, 'min')
    gmax = _parse_floats(args.max, n, 'max')
    if gmin is not None:
        data['global_min'] = gmin
    if gmax is not None:
        data['global_max'] = gmax

    return SearchConfig.from_dict(data)


def _select_columns(columns, names: Sequence[str], filepath: str) -> np.ndarray:
    missing = [name for name in names if name not in columns]
    if missing:
        raise ValueError(f"{filepath}: missing columns {missing}")
    return np.column_stack([columns[name] for name in names])


def write_matches(
    filepath: str,
    target_columns,
    assignment: MatchAssignment
) -> None:
    """Write target rows extended with the match columns."""
    names = list(target_columns.keys())
    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(names + ['near_index', 'near_distance', 'tie_count', 'cycles', 'value'])
        for i in range(assignment.num_targets):
            row = [repr(float(target_columns[name][i])) for name in names]
            found = assignment.tie_counts[i] > 0
            row.append(int(assignment.indices[i]))
            row.append(repr(float(math.sqrt(assignment.sqdists[i]))) if found else '')
            row.append(int(assignment.tie_counts[i]))
            row.append(int(assignment.cycles[i]))
            row.append('' if assignment.values is None else repr(float(assignment.values[i])))
            writer.writerow(row)


def check_against_brute_force(
    tree_assignment: MatchAssignment,
    brute_assignment: MatchAssignment
) -> int:
    """
    Count targets where the tree and the linear scan disagree.

    Index, squared distance and tie count must all be identical.
    Disagreements are printed with both answers.
    """
    disagreements = 0
    for i in range(tree_assignment.num_targets):
        kd = (tree_assignment.indices[i], tree_assignment.sqdists[i], tree_assignment.tie_counts[i])
        bf = (brute_assignment.indices[i], brute_assignment.sqdists[i], brute_assignment.tie_counts[i])
        if kd != bf:
            disagreements += 1
            print(f"  Target {i}: tree index={kd[0]} sqdist={kd[1]:g} ties={kd[2]}, "
                  f"brute force index={bf[0]} sqdist={bf[1]:g} ties={bf[2]}")
    return disagreements


def run_matching(args) -> int:
    """Match CSV targets to CSV points."""
    dims = _split_names(args.dims)
    if not dims:
        raise ValueError("--dims must name at least one column")
    target_dims = _split_names(args.target_dims) or dims
    if len(target_dims) != len(dims):
        raise ValueError("--target-dims must name as many columns as --dims")

    point_columns = load_csv_columns(args.points)
    target_columns = load_csv_columns(args.targets)
    points = PointSet.from_rows(_select_columns(point_columns, dims, args.points))
    targets = _select_columns(target_columns, target_dims, args.targets)

    values = None
    if args.values_column:
        if args.values_column not in point_columns:
            raise ValueError(f"{args.points}: missing column {args.values_column!r}")
        values = point_columns[args.values_column]

    config = build_config(args, dims)
    offsets = {
        'offset_min': _parse_floats(args.relative_min, len(dims), 'relative-min'),
        'offset_max': _parse_floats(args.relative_max, len(dims), 'relative-max'),
    }

    if not args.quiet:
        print(f"Points:  {points.n_points} from {args.points}")
        print(f"Targets: {len(targets)} from {args.targets}")
        print(f"Dimensions: {', '.join(dims)}")
        print(f"Search distance: {config.search_distance}  "
              f"Growth factor: {config.growth_factor}  "
              f"Distance limit: {config.distance_limit}")
        print()

    with Timer("matching") as t:
        assignment = assign_to_nearest(
            points, targets, config, values=values,
            fallback=args.fallback, method=args.method, **offsets
        )

    stats = compute_assignment_statistics(assignment)
    if not args.quiet:
        print(assignment.statistics.summary())
        print(f"Match rate: {stats['match_rate']:.1%}  "
              f"Mean distance: {stats['mean_distance']:.3f}  "
              f"Max distance: {stats['max_distance']:.3f}  "
              f"Tie rate: {stats['tie_rate']:.1%}")
        print(f"Elapsed: {t.elapsed_ms:.2f} ms")

    if args.output:
        write_matches(args.output, target_columns, assignment)
        if not args.quiet:
            print(f"Results saved to: {args.output}")

    if args.check:
        brute = assign_to_nearest(
            points, targets, config, method="brute_force", **offsets
        )
        disagreements = check_against_brute_force(assignment, brute)
        print(f"Brute force check: {disagreements} disagreement(s) in {len(targets)} queries")
        if disagreements:
            return 1

    return 0


def run_benchmark(args) -> int:
    """Compare brute force, storage-order tree and hop-order tree on survey lines."""
    sizes = [int(s) for s in _split_names(args.sizes)]
    print("Running Performance Benchmarks...")
    print("-" * 40)
    print(f"  Problem sizes: {sizes}")
    print(f"  Trials per size: {args.trials}")

    config = SearchConfig(search_distance=args.sdist if args.sdist is not None else 50.0)

    for size in sizes:
        num_lines = max(1, int(math.sqrt(size / 4)))
        stations = max(1, size // num_lines)
        rows = generate_survey_lines(num_lines, stations, seed=args.seed)
        points = PointSet.from_rows(rows)
        targets = generate_survey_lines(
            num_lines, stations, jitter=10.0, seed=args.seed + 1
        )[::max(1, size // 500)]

        print(f"\nSize {points.n_points} ({num_lines} lines x {stations} stations), "
              f"{len(targets)} queries")

        def brute():
            return [brute_force_nearest(points, t) for t in targets]

        def tree_query(randomize):
            def run():
                tree = KDTree(points, randomize=randomize)
                matcher = NearestMatcher(tree, config)
                matcher.match_many(targets)
                return tree.depth(), matcher.stats.cycles_per_query
            return run

        results = [
            benchmark_function(brute, args.trials, name="brute_force",
                               num_points=points.n_points, num_queries=len(targets)),
            benchmark_function(tree_query(False), args.trials, name="kdtree_storage",
                               num_points=points.n_points, num_queries=len(targets)),
            benchmark_function(tree_query(True), args.trials, name="kdtree_hop",
                               num_points=points.n_points, num_queries=len(targets)),
        ]
        print(format_comparison(results, baseline="brute_force"))
        for r in results[1:]:
            depth, cpq = r.metadata['last_result']
            print(f"  {r.name}: depth {depth}, {cpq:.2f} cycles/query")

    print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Nearest-match search of target coordinates against a point table',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Match and write results
  python -m seisnear.main --points statics.csv --targets receivers.csv --output out.csv

  # Fixed initial radius of 200, reject matches farther than 500
  python -m seisnear.main --points p.csv --targets t.csv --sdist=-200 --dlimit 500

  # Run benchmarks
  python -m seisnear.main --benchmark --sizes 1000,4000
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument('--points', '-p', type=str,
                            help='CSV file of points (header row required)')
    mode_group.add_argument('--benchmark', '-b', action='store_true',
                            help='Run performance benchmarks')

    io_group = parser.add_argument_group('Input/Output')
    io_group.add_argument('--targets', '-t', type=str,
                          help='CSV file of target coordinates')
    io_group.add_argument('--dims', type=str, default='x,y',
                          help='Comma-separated coordinate columns (default: x,y)')
    io_group.add_argument('--target-dims', type=str, default=None,
                          help='Coordinate columns in the targets file (default: --dims)')
    io_group.add_argument('--values-column', type=str, default=None,
                          help='Point column copied to each matched target')
    io_group.add_argument('--fallback', type=float, default=0.0,
                          help='Value for targets without a usable match (default: 0)')
    io_group.add_argument('--output', '-o', type=str, default=None,
                          help='Output CSV path')

    search_group = parser.add_argument_group('Search')
    search_group.add_argument('--config', type=str, default=None,
                              help='SearchConfig JSON file; flags override it')
    search_group.add_argument('--sdist', type=float, default=None,
                              help='Initial radius; positive adds the previous match '
                                   'distance, negative is fixed (default: 100)')
    search_group.add_argument('--smult', type=float, default=None,
                              help='Radius growth factor, >= 1 (default: 2)')
    search_group.add_argument('--dlimit', type=float, default=None,
                              help='Maximum usable match distance')
    search_group.add_argument('--inactive-dims', type=str, default=None,
                              help='Dimensions that restrict extents but not distance')
    search_group.add_argument('--min', type=str, default=None,
                              help='Comma-separated global minimum per dimension')
    search_group.add_argument('--max', type=str, default=None,
                              help='Comma-separated global maximum per dimension')
    search_group.add_argument('--relative-min', type=str, default=None,
                              help='Per-dimension minimum relative to each target')
    search_group.add_argument('--relative-max', type=str, default=None,
                              help='Per-dimension maximum relative to each target')
    search_group.add_argument('--nopoint', type=str, default=None,
                              choices=['error', 'skip'],
                              help='Targets with no point in the extents: error or skip')
    search_group.add_argument('--method', type=str, default='kdtree',
                              choices=['kdtree', 'brute_force'],
                              help='Search method (default: kdtree)')
    search_group.add_argument('--check', action='store_true',
                              help='Verify every match against a brute force scan')

    bench_group = parser.add_argument_group('Benchmarking')
    bench_group.add_argument('--sizes', type=str, default='1000,2000',
                             help='Comma-separated problem sizes (default: 1000,2000)')
    bench_group.add_argument('--trials', type=int, default=3,
                             help='Number of timing trials (default: 3)')
    bench_group.add_argument('--seed', type=int, default=42,
                             help='Random seed (default: 42)')

    out_group = parser.add_argument_group('Output')
    out_group.add_argument('--verbose', '-v', action='store_true',
                           help='Log per-query search details')
    out_group.add_argument('--quiet', '-q', action='store_true',
                           help='Minimal output')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    if not args.benchmark and not (args.points and args.targets):
        parser.error('--points and --targets are required unless --benchmark is given')

    if not args.quiet:
        print_header()

    try:
        if args.benchmark:
            return run_benchmark(args)
        return run_matching(args)
    except (ValueError, OSError, NoMatchError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
