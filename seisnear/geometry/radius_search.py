"""
Adaptive Radius Nearest-Point Search

The extent search in kd_tree only looks inside a box. This module finds
the global nearest point by searching a small box around the target and
growing it until something is found.

Algorithm (one query):
    1. R = initial radius.
    2. For active dimensions the box is [t - R, t + R) clipped to the
       global domain. Inactive dimensions always use the global bounds.
    3. Search the box.
    4. Nothing found: stop if the box already covers the whole domain,
       otherwise R *= growth factor and go to 2.
    5. Found, but the squared distance reaches R²: a nearer point may
       sit outside the square yet inside the circle through the
       candidate, and a tied point may sit on the excluded upper edge.
       Set R = sqrt(sqdist) * 1.001 and go to 2. The next square
       contains that whole circle, so one correction suffices.
    6. Otherwise the candidate is the nearest point.

States: EXPANDING → ... → FOUND_TENTATIVE → CORRECTING → FOUND_FINAL,
or EXPANDING → ... → EXHAUSTED.

Queries on a stream of nearby targets (traces sorted by position) run
faster when each initial radius follows the previous match distance.
NearestMatcher implements that policy along with distance limits and
cycle statistics.
"""

from typing import List, Optional, Sequence, Tuple
import logging
import math
import numpy as np

from ..data_models import NearestMatch, SearchConfig, SearchState, MatchStatistics
from .kd_tree import KDTree, _as_vector, _as_flags


logger = logging.getLogger(__name__)

# Corrective radius factor, keeps the candidate strictly inside the next box.
CORRECTION_FACTOR = 1.001


class NoMatchError(LookupError):
    """Raised when a query finds no point and missing matches are not allowed."""


def _resolve_bounds(
    global_min: Optional[Sequence[float]],
    global_max: Optional[Sequence[float]],
    n_dimensions: int
) -> Tuple[List[float], List[float]]:
    gmin = ([-math.inf] * n_dimensions if global_min is None
            else _as_vector("global_min", global_min, n_dimensions))
    gmax = ([math.inf] * n_dimensions if global_max is None
            else _as_vector("global_max", global_max, n_dimensions))
    for i in range(n_dimensions):
        if not gmin[i] < gmax[i]:
            raise ValueError(
                f"global_min[{i}]={gmin[i]} must be less than global_max[{i}]={gmax[i]}"
            )
    return gmin, gmax


def nearest(
    tree: KDTree,
    target: Sequence[float],
    active_dims: Optional[Sequence[bool]] = None,
    global_min: Optional[Sequence[float]] = None,
    global_max: Optional[Sequence[float]] = None,
    initial_radius: float = 100.0,
    growth_factor: float = 2.0
) -> NearestMatch:
    """
    Find the nearest point to target within [global_min, global_max).

    Args:
        tree: Built KDTree
        target: Length-D query point
        active_dims: Dimensions contributing to distance (default all)
        global_min: Inclusive domain lower bounds (default -inf)
        global_max: Exclusive domain upper bounds (default +inf)
        initial_radius: Half-width of the first search box (> 0)
        growth_factor: Radius multiplier while nothing is found (>= 1)

    Returns:
        NearestMatch with cycles set to the number of box searches.
        tie_count == 0 means no point satisfies the domain at all.

    Raises:
        ValueError: For a non-positive radius, growth factor below 1,
            or vectors of the wrong length
    """
    if not (initial_radius > 0 and math.isfinite(initial_radius)):
        raise ValueError(f"initial_radius must be positive, got {initial_radius}")
    if not growth_factor >= 1.0:
        raise ValueError(f"growth_factor must be >= 1, got {growth_factor}")

    d = tree.n_dimensions
    t = _as_vector("target", target, d)
    if not all(math.isfinite(v) for v in t):
        raise ValueError("target coordinates must be finite")
    active = _as_flags(active_dims, d)
    gmin, gmax = _resolve_bounds(global_min, global_max, d)

    active_idx = [i for i in range(d) if active[i]]
    fixed_sides = 2 * (d - len(active_idx))
    all_sides = 2 * d

    # Stop expanding once the box already holds every point that could qualify.
    data_lo = tree.data_lo
    data_hi = tree.data_hi

    lo = list(gmin)
    hi = list(gmax)
    radius = float(initial_radius)
    cycles = 0
    state = SearchState.EXPANDING

    while True:
        cycles += 1

        clipped = fixed_sides
        for i in active_idx:
            lo_i = t[i] - radius
            hi_i = t[i] + radius
            if lo_i <= gmin[i]:
                lo_i = gmin[i]
                clipped += 1
            if hi_i >= gmax[i]:
                hi_i = gmax[i]
                clipped += 1
            lo[i] = lo_i
            hi[i] = hi_i
        fully_clipped = clipped == all_sides

        match = tree.search_prepared(t, lo, hi, active)

        if not match.found:
            if fully_clipped or tree.n_points == 0 or all(
                lo[i] <= data_lo[i] and hi[i] > data_hi[i] for i in active_idx
            ):
                logger.debug("No point for target %s after %d cycles", t, cycles)
                return NearestMatch(cycles=cycles, state=SearchState.EXHAUSTED)
            grown = radius * growth_factor
            radius = grown if grown > radius else math.inf
            state = SearchState.EXPANDING
            continue

        if match.sqdist >= radius * radius and not fully_clipped:
            logger.debug(
                "Cycle %d: %s candidate %d at sqdist=%g not inside radius %g",
                cycles, SearchState.FOUND_TENTATIVE.value,
                match.index, match.sqdist, radius
            )
            radius = math.sqrt(match.sqdist) * CORRECTION_FACTOR
            state = SearchState.CORRECTING
            continue

        logger.debug(
            "Target %s: nearest %d sqdist=%g ties=%d cycles=%d (%s)",
            t, match.index, match.sqdist, match.tie_count, cycles, state.value
        )
        return NearestMatch(
            index=match.index,
            sqdist=match.sqdist,
            tie_count=match.tie_count,
            cycles=cycles,
            state=SearchState.FOUND_FINAL
        )


def relative_extent(
    target: Sequence[float],
    offset_min: Sequence[float],
    offset_max: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build domain bounds relative to a target.

    Used to restrict a dimension around each target, e.g. station number
    on a profile that curves back over itself, so the nearest point must
    come from the same stretch of the profile.

    Returns:
        (target + offset_min, target + offset_max); infinite offsets stay
        infinite

    Raises:
        ValueError: If the offsets do not match the target length
    """
    if not (len(offset_min) == len(offset_max) == len(target)):
        raise ValueError("offset_min and offset_max must have one value per dimension")
    t = np.asarray(target, dtype=np.float64)
    return (t + np.asarray(offset_min, dtype=np.float64),
            t + np.asarray(offset_max, dtype=np.float64))


def apply_distance_limit(match: NearestMatch, distance_limit: Optional[float]) -> NearestMatch:
    """Mark a found match as rejected when it lies beyond distance_limit."""
    if distance_limit is not None and match.found:
        match.within_limit = match.sqdist <= distance_limit * distance_limit
    return match


class NearestMatcher:
    """
    Runs a stream of nearest-point queries against one tree.

    The initial radius of each query follows SearchConfig.search_distance:
    positive values are added to the distance found by the previous
    successful query, negative values give a fixed initial radius.

    Example:
        >>> matcher = NearestMatcher(tree, SearchConfig(search_distance=50))
        >>> for target in targets:
        ...     match = matcher.match(target)
        >>> print(matcher.stats.summary())

    Attributes:
        tree: The KDTree being queried
        config: Search options
        stats: Running MatchStatistics
    """

    def __init__(self, tree: KDTree, config: Optional[SearchConfig] = None):
        self.tree = tree
        self.config = config if config is not None else SearchConfig()
        d = tree.n_dimensions

        # Resolve once so malformed configs fail before the first query.
        self._active = _as_flags(self.config.active_dims, d)
        self._gmin, self._gmax = _resolve_bounds(
            self.config.global_min, self.config.global_max, d
        )
        self._last_sqdist: Optional[float] = None
        self.stats = MatchStatistics()

    def initial_radius(self) -> float:
        """Initial radius for the next query."""
        base = self.config.base_radius
        if self.config.incremental and self._last_sqdist is not None:
            return base + math.sqrt(self._last_sqdist)
        return base

    def match(
        self,
        target: Sequence[float],
        global_min: Optional[Sequence[float]] = None,
        global_max: Optional[Sequence[float]] = None
    ) -> NearestMatch:
        """
        Find the nearest point to one target.

        Args:
            target: Length-D query point
            global_min: Domain lower bounds for this query only, replacing
                the configured ones (see relative_extent)
            global_max: Domain upper bounds for this query only

        A per-query domain that is empty in some dimension gives a
        not-found result without searching.

        Raises:
            NoMatchError: If nothing is found and on_missing is "error"
        """
        d = self.tree.n_dimensions
        gmin = self._gmin if global_min is None else _as_vector("global_min", global_min, d)
        gmax = self._gmax if global_max is None else _as_vector("global_max", global_max, d)

        if all(lo < hi for lo, hi in zip(gmin, gmax)):
            result = nearest(
                self.tree,
                target,
                active_dims=self._active,
                global_min=gmin,
                global_max=gmax,
                initial_radius=self.initial_radius(),
                growth_factor=self.config.growth_factor
            )
        else:
            result = NearestMatch(state=SearchState.EXHAUSTED)
        apply_distance_limit(result, self.config.distance_limit)
        self.stats.record(result)

        if result.found:
            self._last_sqdist = result.sqdist
        elif self.config.on_missing == "error":
            raise NoMatchError(
                f"No point within extents for query number {self.stats.queries}"
            )
        return result

    def match_many(self, targets: np.ndarray) -> List[NearestMatch]:
        """Match each row of an (M, D) array in order."""
        targets = np.asarray(targets, dtype=np.float64)
        if targets.ndim == 1:
            targets = targets.reshape(-1, 1)
        return [self.match(row) for row in targets]

    def reset(self) -> None:
        """Forget the previous match distance and clear statistics."""
        self._last_sqdist = None
        self.stats = MatchStatistics()

    def log_summary(self) -> None:
        logger.info(self.stats.summary())
