"""
Tests for Nearest-Record Assignment

This module tests batch assignment of targets to their nearest records,
the way static and model tables are applied to trace coordinates.

Test Categories:
1. Basic assignment correctness
2. KD-tree vs brute force consistency
3. Distance limit and fallback values
4. Relative (per-target) extents
5. Statistics and edge cases
6. Integration with synthetic survey data

Run with: pytest tests/test_assignment.py -v
"""

import pytest
import numpy as np
from scipy.spatial import cKDTree

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seisnear.data_models import SearchConfig
from seisnear.geometry.assignment import (
    assign_to_nearest,
    compute_assignment_statistics,
    MatchAssignment
)
from seisnear.geometry.radius_search import NoMatchError
from seisnear.synthetic_data import (
    generate_survey_lines,
    generate_crooked_profile,
    generate_scatter
)


class TestBasicAssignment:
    """Tests for basic assignment functionality."""

    def test_assignment_simple(self):
        records = np.array([[0.0, 0.0], [10.0, 0.0], [20.0, 0.0]])
        targets = np.array([[1.0, 0.5], [9.0, -0.5], [21.0, 0.2]])

        result = assign_to_nearest(records, targets)

        assert isinstance(result, MatchAssignment)
        assert list(result.indices) == [0, 1, 2]
        assert result.num_unmatched == 0

    def test_values_carried_over(self):
        records = np.array([[0.0, 0.0], [10.0, 0.0]])
        statics = np.array([-4.0, 12.5])
        targets = np.array([[9.0, 1.0], [0.5, 0.5], [11.0, -3.0]])

        result = assign_to_nearest(records, targets, values=statics)
        np.testing.assert_array_equal(result.values, [12.5, -4.0, 12.5])

    def test_empty_targets(self):
        records = np.array([[0.0, 0.0], [10.0, 0.0]])
        result = assign_to_nearest(records, np.array([]).reshape(0, 2))
        assert result.num_targets == 0
        assert len(result.sqdists) == 0

    def test_single_record(self):
        records = np.array([[5.0, 5.0]])
        targets = np.array([[0.0, 0.0], [10.0, 10.0], [5.0, 5.0]])
        result = assign_to_nearest(records, targets)
        assert all(result.indices == 0)
        np.testing.assert_allclose(result.distances, [np.sqrt(50), np.sqrt(50), 0.0])

    def test_one_dimensional_targets(self):
        records = np.array([1.0, 2.0, 3.0, 100.0])
        result = assign_to_nearest(records, np.array([2.2, 80.0]))
        assert list(result.indices) == [1, 3]


class TestMethodComparison:
    """Tests comparing the tree with the linear scan."""

    def test_kdtree_vs_brute_force(self):
        np.random.seed(42)
        records = np.random.randn(300, 2) * 10
        targets = np.random.randn(100, 2) * 12
        config = SearchConfig(search_distance=2.0)

        kd = assign_to_nearest(records, targets, config, method="kdtree")
        bf = assign_to_nearest(records, targets, config, method="brute_force")

        np.testing.assert_array_equal(kd.indices, bf.indices)
        np.testing.assert_array_equal(kd.sqdists, bf.sqdists)
        np.testing.assert_array_equal(kd.tie_counts, bf.tie_counts)

    def test_kdtree_vs_scipy(self):
        np.random.seed(43)
        records = np.random.uniform(0, 1000, size=(1000, 3))
        targets = np.random.uniform(0, 1000, size=(150, 3))

        result = assign_to_nearest(records, targets, SearchConfig(search_distance=-20.0))
        _, ref_idx = cKDTree(records).query(targets)
        np.testing.assert_array_equal(result.indices, ref_idx)

    def test_storage_order_same_answer(self):
        records = generate_survey_lines(5, 40, seed=1)
        targets = generate_survey_lines(5, 40, jitter=7.0, seed=2)
        hop = assign_to_nearest(records, targets, randomize=True)
        chain = assign_to_nearest(records, targets, randomize=False)
        np.testing.assert_array_equal(hop.indices, chain.indices)

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            assign_to_nearest(np.zeros((2, 2)), np.zeros((1, 2)), method="gpu")


class TestLimitsAndFallback:
    """Tests for distance limits and missing matches."""

    def test_distance_limit_uses_fallback(self):
        records = np.array([[0.0, 0.0], [100.0, 0.0]])
        values = np.array([7.0, 8.0])
        targets = np.array([[1.0, 0.0], [45.0, 40.0]])
        config = SearchConfig(distance_limit=10.0)

        result = assign_to_nearest(records, targets, config, values=values, fallback=-1.0)

        assert list(result.indices) == [0, -1]
        np.testing.assert_array_equal(result.values, [7.0, -1.0])
        # the rejected match is still reported
        assert result.tie_counts[1] == 1
        assert result.statistics.rejected == 1

    def test_domain_without_points_skip(self):
        records = np.array([[0.0, 0.0], [10.0, 10.0]])
        config = SearchConfig(global_min=[20.0, 20.0], global_max=[30.0, 30.0])
        result = assign_to_nearest(records, np.array([[25.0, 25.0]]), config,
                                   values=np.array([1.0, 2.0]))
        assert result.indices[0] == -1
        assert result.tie_counts[0] == 0
        assert np.isinf(result.sqdists[0])
        assert result.values[0] == 0.0

    def test_domain_without_points_error(self):
        records = np.array([[0.0, 0.0], [10.0, 10.0]])
        config = SearchConfig(global_min=[20.0, 20.0], global_max=[30.0, 30.0],
                              on_missing="error")
        for method in ("kdtree", "brute_force"):
            with pytest.raises(NoMatchError):
                assign_to_nearest(records, np.array([[25.0, 25.0]]), config, method=method)

    def test_integer_values_with_float_fallback(self):
        records = np.array([[0.0], [10.0]])
        config = SearchConfig(distance_limit=1.0)
        result = assign_to_nearest(records, np.array([[0.5], [5.0]]), config,
                                   values=np.array([3, 4]), fallback=0.5)
        np.testing.assert_array_equal(result.values, [3.0, 0.5])

    def test_values_length_mismatch(self):
        with pytest.raises(ValueError):
            assign_to_nearest(np.zeros((3, 2)), np.zeros((1, 2)), values=np.ones(2))

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            assign_to_nearest(np.zeros((3, 2)), np.zeros((4, 3)))


class TestRelativeExtents:
    """Per-target domains on a crooked profile."""

    def test_station_window(self):
        """
        A point on a later loop can be nearer in x, y; the station window
        forces the match onto the same stretch of profile.
        """
        profile = generate_crooked_profile(400, seed=5)
        targets = profile[::20].copy()
        targets[:, :2] += 3.0
        config = SearchConfig(active_dims=[True, True, False])

        result = assign_to_nearest(profile, targets, config,
                                   offset_min=[-np.inf, -np.inf, -5.0],
                                   offset_max=[np.inf, np.inf, 5.0])

        matched_station = profile[result.indices, 2]
        assert np.all(np.abs(matched_station - targets[:, 2]) <= 5.0)

    def test_tree_matches_brute_force(self):
        profile = generate_crooked_profile(300, seed=6)
        targets = profile[::7].copy()
        targets[:, :2] += np.random.RandomState(0).normal(0, 40, size=(len(targets), 2))
        config = SearchConfig(active_dims=[True, True, False])
        offsets = dict(offset_min=[-np.inf, -np.inf, -10.0], offset_max=[np.inf, np.inf, 10.0])

        kd = assign_to_nearest(profile, targets, config, **offsets)
        bf = assign_to_nearest(profile, targets, config, method="brute_force", **offsets)
        np.testing.assert_array_equal(kd.indices, bf.indices)
        np.testing.assert_array_equal(kd.sqdists, bf.sqdists)

    def test_intersects_global_domain(self):
        records = np.array([[0.0], [4.0], [9.0]])
        config = SearchConfig(global_min=[3.0], global_max=[100.0])
        result = assign_to_nearest(records, np.array([[1.0]]), config,
                                   offset_min=[-5.0], offset_max=[5.0])
        assert result.indices[0] == 1


class TestAssignmentStatistics:
    """Tests for summary statistics."""

    def test_statistics(self):
        records = np.array([[0.0, 0.0], [10.0, 0.0]])
        targets = np.array([[0.0, 3.0], [10.0, 4.0], [5.0, 0.0]])
        result = assign_to_nearest(records, targets, SearchConfig(distance_limit=4.5))
        stats = compute_assignment_statistics(result)

        # the midpoint ties and its distance 5 exceeds the limit
        assert stats['match_rate'] == pytest.approx(2 / 3)
        assert stats['mean_distance'] == pytest.approx(3.5)
        assert stats['max_distance'] == pytest.approx(4.0)
        assert stats['tie_rate'] == pytest.approx(1 / 3)
        assert stats['mean_cycles'] >= 1.0

    def test_empty(self):
        result = assign_to_nearest(np.zeros((2, 2)), np.array([]).reshape(0, 2))
        stats = compute_assignment_statistics(result)
        assert stats['match_rate'] == 0.0


class TestIntegrationWithSyntheticData:
    """Larger runs on survey-like data."""

    def test_jittered_lines(self):
        records = generate_survey_lines(8, 60, station_spacing=25.0, seed=10)
        targets = generate_survey_lines(8, 60, station_spacing=25.0, jitter=2.0, seed=11)

        result = assign_to_nearest(records, targets, SearchConfig(search_distance=5.0))

        # small jitter keeps every target with its own station
        np.testing.assert_array_equal(result.indices, np.arange(len(records)))
        assert result.statistics.cycles_per_query < 3.0

    def test_scatter_with_ties(self):
        records = generate_scatter(500, 2, quantum=10.0, seed=12)
        targets = generate_scatter(100, 2, quantum=5.0, seed=13)
        kd = assign_to_nearest(records, targets)
        bf = assign_to_nearest(records, targets, method="brute_force")
        np.testing.assert_array_equal(kd.indices, bf.indices)
        np.testing.assert_array_equal(kd.tie_counts, bf.tie_counts)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
