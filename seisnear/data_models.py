"""
Data Models for the Nearest-Match Spatial Index

This module defines the core data structures shared by the tree builder,
the search driver and the callers that consume match results.
Uses Python dataclasses for clean, type-hinted data containers.

Data Flow:
    PointSet → KDTree → search_in_extent → NearestMatch
    SearchConfig → NearestMatcher → NearestMatch
"""

from dataclasses import dataclass
from typing import List, Dict, Optional, Any, Sequence
from enum import Enum
import json
import math
import numpy as np


# Sanity bound on dimensionality. Observed callers use 1 to 9 key dimensions.
MAX_DIMENSIONS = 32


class SearchState(Enum):
    """States of one adaptive radius query."""
    EXPANDING = "expanding"               # Nothing found yet, radius grows
    FOUND_TENTATIVE = "found_tentative"   # Candidate found outside radius circle
    CORRECTING = "correcting"             # Re-search with candidate radius
    FOUND_FINAL = "found_final"           # Nearest point confirmed
    EXHAUSTED = "exhausted"               # Whole domain searched, nothing found


@dataclass
class PointSet:
    """
    A fixed set of N points in D dimensions stored column-major.

    Each dimension is one contiguous array of length N. Tree traversal
    reads a single dimension across many nodes, so columns are kept
    together rather than storing N records of D fields.

    Attributes:
        columns: Array of shape (D, N) of float64 coordinates

    Complexity: O(N × D) space
    """
    columns: np.ndarray

    def __post_init__(self):
        cols = np.array(self.columns, dtype=np.float64)
        if cols.ndim == 1:
            cols = cols.reshape(1, -1)
        if cols.ndim != 2:
            raise ValueError(
                f"columns must be a 2D array of shape (D, N), got ndim={cols.ndim}"
            )
        if cols.shape[0] < 1:
            raise ValueError("at least one dimension is required")
        if cols.shape[0] > MAX_DIMENSIONS:
            raise ValueError(
                f"{cols.shape[0]} dimensions exceeds the maximum of {MAX_DIMENSIONS}"
            )
        if not np.all(np.isfinite(cols)):
            raise ValueError("point coordinates must be finite")
        cols.setflags(write=False)
        self.columns = cols

    @classmethod
    def from_columns(cls, columns: Sequence[Sequence[float]]) -> "PointSet":
        """
        Create from D parallel coordinate sequences.

        Raises:
            ValueError: If the sequences do not all have the same length
        """
        lengths = {len(c) for c in columns}
        if len(lengths) > 1:
            raise ValueError(
                f"coordinate columns have mismatched lengths: {sorted(lengths)}"
            )
        if not columns:
            raise ValueError("at least one dimension is required")
        return cls(np.array([np.asarray(c, dtype=np.float64) for c in columns]))

    @classmethod
    def from_rows(cls, rows: np.ndarray) -> "PointSet":
        """Create from an (N, D) array of point rows."""
        rows = np.asarray(rows, dtype=np.float64)
        if rows.ndim == 1:
            rows = rows.reshape(-1, 1)
        if rows.ndim != 2:
            raise ValueError(f"rows must be an (N, D) array, got ndim={rows.ndim}")
        return cls(rows.T.copy())

    @property
    def n_points(self) -> int:
        return int(self.columns.shape[1])

    @property
    def n_dimensions(self) -> int:
        return int(self.columns.shape[0])

    def point(self, index: int) -> np.ndarray:
        """Return the coordinates of one point as a length-D array."""
        return self.columns[:, index].copy()

    def as_rows(self) -> np.ndarray:
        """Return an (N, D) copy for row-oriented consumers."""
        return self.columns.T.copy()

    def bounds(self) -> "Extent":
        """
        Smallest extent containing every point.

        The upper bound is nudged up so the largest coordinate is inside
        the half-open range.
        """
        if self.n_points == 0:
            return Extent.unbounded(self.n_dimensions)
        lo = self.columns.min(axis=1)
        hi = np.nextafter(self.columns.max(axis=1), np.inf)
        return Extent(lo, hi)

    def __len__(self) -> int:
        return self.n_points


@dataclass
class Extent:
    """
    Axis-aligned query box, lower bound inclusive, upper bound exclusive.

    A point p is inside iff minimum[i] <= p[i] < maximum[i] for every i.

    Attributes:
        minimum: Length-D lower bounds (may be -inf)
        maximum: Length-D upper bounds (may be +inf)
    """
    minimum: np.ndarray
    maximum: np.ndarray

    def __post_init__(self):
        self.minimum = np.asarray(self.minimum, dtype=np.float64).reshape(-1)
        self.maximum = np.asarray(self.maximum, dtype=np.float64).reshape(-1)
        if self.minimum.shape != self.maximum.shape:
            raise ValueError(
                f"extent bounds have different lengths: "
                f"{self.minimum.size} and {self.maximum.size}"
            )
        if np.any(np.isnan(self.minimum)) or np.any(np.isnan(self.maximum)):
            raise ValueError("extent bounds must not be NaN")

    @classmethod
    def unbounded(cls, n_dimensions: int) -> "Extent":
        return cls(
            np.full(n_dimensions, -np.inf),
            np.full(n_dimensions, np.inf)
        )

    @property
    def n_dimensions(self) -> int:
        return int(self.minimum.size)

    def contains(self, point: Sequence[float]) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.minimum) and np.all(p < self.maximum))


@dataclass
class NearestMatch:
    """
    Result of a nearest-point query.

    Attributes:
        index: Index of the nearest point (highest index among ties),
            -1 when nothing was found
        sqdist: Squared (partial) Euclidean distance, inf when not found
        tie_count: Number of points at exactly that distance, 0 when not found
        cycles: Number of in-extent searches performed to get the answer
        state: Terminal state of the query
        within_limit: False when a caller distance limit rejected the match
    """
    index: int = -1
    sqdist: float = math.inf
    tie_count: int = 0
    cycles: int = 0
    state: SearchState = SearchState.EXHAUSTED
    within_limit: bool = True

    @property
    def found(self) -> bool:
        return self.tie_count > 0

    @property
    def usable(self) -> bool:
        """True if found and not rejected by a distance limit."""
        return self.found and self.within_limit

    @property
    def distance(self) -> float:
        return math.sqrt(self.sqdist) if self.found else math.inf

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "index": self.index,
            "sqdist": self.sqdist if self.found else None,
            "tie_count": self.tie_count,
            "cycles": self.cycles,
            "state": self.state.value,
            "within_limit": self.within_limit
        }


MISSING_POLICIES = ("error", "skip")


@dataclass
class SearchConfig:
    """
    Caller-side options for repeated nearest-point queries.

    Attributes:
        search_distance: Initial search radius. Positive values are added
            to the distance found by the previous query (locality across a
            sorted stream of targets); negative values give a fixed initial
            radius of abs(search_distance) for every query.
        growth_factor: Radius multiplier applied while nothing is found
        distance_limit: Optional maximum distance for a usable match
        active_dims: Per-dimension flags; False dimensions restrict by
            extent only and do not contribute to distance
        global_min: Optional per-dimension lower bounds of the domain
        global_max: Optional per-dimension upper bounds of the domain
        on_missing: "error" to raise when nothing is found, "skip" to
            return a not-found result
    """
    search_distance: float = 100.0
    growth_factor: float = 2.0
    distance_limit: Optional[float] = None
    active_dims: Optional[List[bool]] = None
    global_min: Optional[List[float]] = None
    global_max: Optional[List[float]] = None
    on_missing: str = "skip"

    def __post_init__(self):
        if self.search_distance == 0 or not math.isfinite(self.search_distance):
            raise ValueError(
                f"search_distance must be a non-zero finite number, "
                f"got {self.search_distance}"
            )
        if not self.growth_factor >= 1.0 or not math.isfinite(self.growth_factor):
            raise ValueError(
                f"growth_factor must be >= 1, got {self.growth_factor}"
            )
        if self.distance_limit is not None and self.distance_limit < 0:
            raise ValueError(
                f"distance_limit must be non-negative, got {self.distance_limit}"
            )
        if self.on_missing not in MISSING_POLICIES:
            raise ValueError(
                f"on_missing must be one of {MISSING_POLICIES}, got {self.on_missing!r}"
            )
        lengths = {
            len(v) for v in (self.active_dims, self.global_min, self.global_max)
            if v is not None
        }
        if len(lengths) > 1:
            raise ValueError(
                "active_dims, global_min and global_max must have the same length"
            )

    @property
    def incremental(self) -> bool:
        """True when the initial radius follows the previous match distance."""
        return self.search_distance > 0

    @property
    def base_radius(self) -> float:
        return abs(self.search_distance)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "search_distance": self.search_distance,
            "growth_factor": self.growth_factor,
            "distance_limit": self.distance_limit,
            "active_dims": self.active_dims,
            "global_min": self.global_min,
            "global_max": self.global_max,
            "on_missing": self.on_missing
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchConfig":
        """Create from dictionary (JSON deserialization)."""
        return cls(
            search_distance=float(data.get("search_distance", 100.0)),
            growth_factor=float(data.get("growth_factor", 2.0)),
            distance_limit=data.get("distance_limit"),
            active_dims=data.get("active_dims"),
            global_min=data.get("global_min"),
            global_max=data.get("global_max"),
            on_missing=data.get("on_missing", "skip")
        )

    def save_to_json(self, filepath: str) -> None:
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load_from_json(cls, filepath: str) -> "SearchConfig":
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))


@dataclass
class MatchStatistics:
    """
    Running counters for a stream of nearest-point queries.

    The cycle counters help tune the initial radius and growth factor.
    """
    queries: int = 0
    total_cycles: int = 0
    not_found: int = 0
    rejected: int = 0
    with_ties: int = 0
    max_cycles: int = 0

    def record(self, match: NearestMatch) -> None:
        self.queries += 1
        self.total_cycles += match.cycles
        self.max_cycles = max(self.max_cycles, match.cycles)
        if not match.found:
            self.not_found += 1
        elif not match.within_limit:
            self.rejected += 1
        if match.tie_count > 1:
            self.with_ties += 1

    @property
    def cycles_per_query(self) -> float:
        if self.queries == 0:
            return 0.0
        return self.total_cycles / self.queries

    def summary(self) -> str:
        return (f"Number of queries={self.queries}  "
                f"Total search cycles={self.total_cycles}  "
                f"Cycles per query={self.cycles_per_query:.2f}  "
                f"Not found={self.not_found}  "
                f"Beyond limit={self.rejected}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queries": self.queries,
            "total_cycles": self.total_cycles,
            "cycles_per_query": self.cycles_per_query,
            "max_cycles": self.max_cycles,
            "not_found": self.not_found,
            "rejected": self.rejected,
            "with_ties": self.with_ties
        }
