"""
Nearest-Record Assignment for Trace Targets

This module assigns each target (for example a trace's source or
receiver coordinates) to the nearest record of an auxiliary table (a
near-surface model, a static table, a profile of CDP locations) and
picks up that record's payload value.

Assignment Rules:
    - The nearest record is found with the adaptive radius search, so
      ties go to the highest record index.
    - A record farther than SearchConfig.distance_limit is not used.
    - Targets without a usable record get the fallback value (zero by
      default, meaning no static shift).
    - offset_min/offset_max give every target its own domain around
      itself (a station window on a crooked profile).
    - With on_missing="error" a target outside every extent raises
      NoMatchError instead.

Implementation Strategy:
    1. "kdtree": build the tree once, run NearestMatcher over the targets
       in order (the incremental initial radius benefits from sorted
       targets)
    2. "brute_force": linear scan per target, same results, used for
       checking and for very small tables
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Union
import logging
import numpy as np

from ..data_models import PointSet, SearchConfig, NearestMatch, MatchStatistics
from .kd_tree import KDTree, brute_force_nearest
from .radius_search import NearestMatcher, NoMatchError, apply_distance_limit, relative_extent


logger = logging.getLogger(__name__)


@dataclass
class MatchAssignment:
    """
    Result of assigning targets to their nearest records.

    Attributes:
        indices: Record index per target, -1 when no usable record
        sqdists: Squared distance per target (inf when not found)
        tie_counts: Number of equally near records per target
        cycles: Box searches used per target (1 for brute force)
        values: Payload per target, fallback where unmatched
        statistics: Aggregate counters for the run
    """
    indices: np.ndarray
    sqdists: np.ndarray
    tie_counts: np.ndarray
    cycles: np.ndarray
    values: Optional[np.ndarray] = None
    statistics: MatchStatistics = field(default_factory=MatchStatistics)

    @property
    def num_targets(self) -> int:
        return len(self.indices)

    @property
    def matched_mask(self) -> np.ndarray:
        return self.indices >= 0

    @property
    def num_unmatched(self) -> int:
        return int(np.sum(~self.matched_mask))

    @property
    def distances(self) -> np.ndarray:
        return np.sqrt(self.sqdists)


def assign_to_nearest(
    points: Union[PointSet, np.ndarray],
    targets: np.ndarray,
    config: Optional[SearchConfig] = None,
    values: Optional[np.ndarray] = None,
    fallback: float = 0.0,
    method: str = "kdtree",
    randomize: bool = True,
    offset_min: Optional[Sequence[float]] = None,
    offset_max: Optional[Sequence[float]] = None
) -> MatchAssignment:
    """
    Assign each target to its nearest record.

    Args:
        points: Record coordinates, PointSet or (N, D) array
        targets: (M, D) array of target coordinates
        config: Search options (default SearchConfig())
        values: Optional length-N payload, one value per record
        fallback: Value for targets without a usable record
        method: "kdtree" or "brute_force"
        randomize: Use hop build order for the tree
        offset_min: Per-dimension domain lower bounds relative to each
            target, intersected with config.global_min
        offset_max: Per-dimension domain upper bounds relative to each
            target, intersected with config.global_max

    Returns:
        MatchAssignment

    Raises:
        ValueError: On mismatched shapes or an unknown method
        NoMatchError: If config.on_missing == "error" and a target has
            no record within the extents

    Complexity:
        - brute_force: O(n × m)
        - kdtree: O(n log n + m log n) average for local queries
    """
    if not isinstance(points, PointSet):
        points = PointSet.from_rows(points)
    config = config if config is not None else SearchConfig()
    d = points.n_dimensions

    targets = np.asarray(targets, dtype=np.float64)
    if targets.ndim == 1:
        targets = targets.reshape(-1, d)
    if targets.shape[1] != d:
        raise ValueError(
            f"targets have {targets.shape[1]} dimensions, points have {d}"
        )
    if values is not None:
        values = np.asarray(values)
        if len(values) != points.n_points:
            raise ValueError(
                f"values has {len(values)} entries for {points.n_points} points"
            )

    relative = offset_min is not None or offset_max is not None
    if relative:
        offset_min = [-np.inf] * d if offset_min is None else offset_min
        offset_max = [np.inf] * d if offset_max is None else offset_max
        base_min = np.full(d, -np.inf) if config.global_min is None else np.asarray(config.global_min, dtype=np.float64)
        base_max = np.full(d, np.inf) if config.global_max is None else np.asarray(config.global_max, dtype=np.float64)

    m_targets = len(targets)
    indices = np.full(m_targets, -1, dtype=np.int64)
    sqdists = np.full(m_targets, np.inf, dtype=np.float64)
    tie_counts = np.zeros(m_targets, dtype=np.int64)
    cycles = np.zeros(m_targets, dtype=np.int64)

    if method == "kdtree":
        tree = KDTree(points, randomize=randomize)
        matcher = NearestMatcher(tree, config)
        query = matcher.match
        stats = matcher.stats
    elif method == "brute_force":
        stats = MatchStatistics()

        def query(target, global_min=None, global_max=None) -> NearestMatch:
            lo = config.global_min if global_min is None else global_min
            hi = config.global_max if global_max is None else global_max
            result = brute_force_nearest(points, target, config.active_dims, lo, hi)
            apply_distance_limit(result, config.distance_limit)
            stats.record(result)
            if not result.found and config.on_missing == "error":
                raise NoMatchError(
                    f"No point within extents for query number {stats.queries}"
                )
            return result
    else:
        raise ValueError(f"Unknown method: {method}")

    for i in range(m_targets):
        if relative:
            lo, hi = relative_extent(targets[i], offset_min, offset_max)
            result = query(
                targets[i],
                np.maximum(lo, base_min),
                np.minimum(hi, base_max)
            )
        else:
            result = query(targets[i])
        sqdists[i] = result.sqdist
        tie_counts[i] = result.tie_count
        cycles[i] = result.cycles
        if result.usable:
            indices[i] = result.index

    out_values = None
    if values is not None:
        out_values = np.full(m_targets, fallback, dtype=np.result_type(values, type(fallback)))
        matched = indices >= 0
        out_values[matched] = values[indices[matched]]

    logger.info("%s: %s", method, stats.summary())

    return MatchAssignment(
        indices=indices,
        sqdists=sqdists,
        tie_counts=tie_counts,
        cycles=cycles,
        values=out_values,
        statistics=stats
    )


def compute_assignment_statistics(assignment: MatchAssignment) -> Dict[str, Any]:
    """
    Compute statistics about an assignment.

    Returns:
        Dictionary with statistics:
        - match_rate: Fraction of targets with a usable record
        - mean_distance / max_distance: Over matched targets only
        - mean_cycles: Average box searches per target
        - tie_rate: Fraction of targets with more than one nearest record
    """
    if assignment.num_targets == 0:
        return {
            'match_rate': 0.0,
            'mean_distance': 0.0,
            'max_distance': 0.0,
            'mean_cycles': 0.0,
            'tie_rate': 0.0
        }

    matched = assignment.matched_mask
    dists = assignment.distances[matched]

    return {
        'match_rate': float(np.mean(matched)),
        'mean_distance': float(np.mean(dists)) if dists.size else 0.0,
        'max_distance': float(np.max(dists)) if dists.size else 0.0,
        'mean_cycles': float(np.mean(assignment.cycles)),
        'tie_rate': float(np.mean(assignment.tie_counts > 1))
    }
