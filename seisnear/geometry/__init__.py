"""
Geometry Module for Nearest-Match Search

This module provides the spatial search algorithms:
- KD-tree with hop build order and in-extent nearest search
- Adaptive radius driver for the global nearest point
- Batch assignment of targets to their nearest records

The extent search is exact inside its box; the radius driver grows the
box until the answer is provably the nearest point in the domain.
"""

from .kd_tree import (
    KDTree,
    KDNode,
    hop_order,
    brute_force_search_in_extent,
    brute_force_nearest,
    brute_force_find_in_extent
)
from .radius_search import (
    nearest,
    relative_extent,
    NearestMatcher,
    NoMatchError
)
from .assignment import (
    assign_to_nearest,
    compute_assignment_statistics,
    MatchAssignment
)

__all__ = [
    'KDTree',
    'KDNode',
    'hop_order',
    'brute_force_search_in_extent',
    'brute_force_nearest',
    'brute_force_find_in_extent',
    'nearest',
    'relative_extent',
    'NearestMatcher',
    'NoMatchError',
    'assign_to_nearest',
    'compute_assignment_statistics',
    'MatchAssignment'
]
