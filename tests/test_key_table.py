"""
Tests for the Ordered Unique-Key Table

Test Categories:
1. Upper-bound search and match test
2. Insertion order and idempotence
3. Capacity and key validation

Run with: pytest tests/test_key_table.py -v
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seisnear.tables.key_table import OrderedKeyTable, KeyTableOverflowError


def _filled(keys, key_width=2):
    table = OrderedKeyTable(key_width)
    for k in keys:
        table.find_or_insert(k, list)
    return table


class TestLocate:
    """Tests for the binary search."""

    def test_empty_table(self):
        table = OrderedKeyTable(1)
        assert table.locate(5.0) == 0
        assert not table.is_match(0, 5.0)

    def test_upper_bound(self):
        table = _filled([(1, 1), (1, 3), (2, 0)])
        assert table.locate((0, 9)) == 0
        assert table.locate((1, 1)) == 1
        assert table.locate((1, 2)) == 1
        assert table.locate((1, 3)) == 2
        assert table.locate((2, 0)) == 3
        assert table.locate((5, 5)) == 3

    def test_is_match(self):
        table = _filled([(1, 1), (1, 3), (2, 0)])
        assert table.is_match(table.locate((1, 3)), (1, 3))
        assert not table.is_match(table.locate((1, 2)), (1, 2))
        assert not table.is_match(0, (1, 1))

    def test_lexicographic_first_field_decides(self):
        table = _filled([(2, 0), (1, 99)])
        assert table.keys() == [(1.0, 99.0), (2.0, 0.0)]

    def test_index_of(self):
        table = _filled([(3, 0), (1, 0), (2, 0)])
        assert table.index_of((2, 0)) == 1
        assert table.index_of((2, 1)) == -1
        assert (1, 0) in table
        assert (4, 0) not in table


class TestInsertion:
    """Tests for ordering and idempotence."""

    def test_same_key_twice(self):
        table = OrderedKeyTable(2)
        slot1, created1 = table.find_or_insert((10, 3), list)
        slot2, created2 = table.find_or_insert((10, 3), list)

        assert created1 and not created2
        assert slot1 == slot2
        assert len(table) == 1

    def test_payload_kept_with_key(self):
        table = OrderedKeyTable(1, dtype=int)
        slot, _ = table.find_or_insert(5, list)
        table.payload_at(slot).append("a")
        table.find_or_insert(1, list)
        table.find_or_insert(3, list)

        assert table.get(5) == ["a"]
        assert table.get(1) == []
        assert table.get(7, "missing") == "missing"

    def test_factory_called_only_for_new_keys(self):
        calls = []

        def factory():
            calls.append(1)
            return len(calls)

        table = OrderedKeyTable(1)
        for k in (3, 1, 3, 2, 1):
            table.find_or_insert(k, factory)
        assert len(calls) == 3

    def test_sorted_regardless_of_order(self):
        np.random.seed(3)
        keys = [tuple(k) for k in np.random.randint(0, 8, size=(200, 3))]
        table = OrderedKeyTable(3, dtype=int)
        for k in keys:
            table.find_or_insert(k, dict)

        stored = table.keys()
        assert stored == sorted(set(keys))
        assert all(a < b for a, b in zip(stored, stored[1:]))

    def test_explicit_insert(self):
        table = OrderedKeyTable(1)
        for k in (5.0, 1.0, 3.0):
            pos = table.locate(k)
            assert not table.is_match(pos, k)
            table.insert(pos, k, f"p{k}")
        assert table.keys() == [(1.0,), (3.0,), (5.0,)]
        assert table.payloads() == ["p1.0", "p3.0", "p5.0"]
        assert list(table) == list(zip(table.keys(), table.payloads()))

    def test_insert_out_of_order_rejected(self):
        table = _filled([(1, 1), (3, 3)])
        with pytest.raises(ValueError):
            table.insert(0, (2, 2), None)
        with pytest.raises(ValueError):
            table.insert(1, (1, 1), None)

    def test_int_keys(self):
        table = OrderedKeyTable(2, dtype=int)
        table.find_or_insert(np.array([7, 2]), list)
        assert table.key_at(0) == (7, 2)
        assert isinstance(table.key_at(0)[0], int)


class TestValidation:
    """Tests for capacity and key checks."""

    def test_capacity_overflow(self):
        table = OrderedKeyTable(1, capacity=2)
        table.find_or_insert(1, list)
        table.find_or_insert(2, list)
        table.find_or_insert(2, list)
        assert table.full
        with pytest.raises(KeyTableOverflowError, match="too many unique key combinations"):
            table.find_or_insert(3, list)
        assert len(table) == 2

    def test_overflow_is_runtime_error(self):
        assert issubclass(KeyTableOverflowError, RuntimeError)

    def test_wrong_key_width(self):
        table = OrderedKeyTable(2)
        with pytest.raises(ValueError):
            table.locate((1, 2, 3))
        with pytest.raises(ValueError):
            table.find_or_insert(5, list)

    def test_nan_key_rejected(self):
        table = OrderedKeyTable(1)
        with pytest.raises(ValueError):
            table.find_or_insert(float("nan"), list)

    def test_bad_construction(self):
        with pytest.raises(ValueError):
            OrderedKeyTable(0)
        with pytest.raises(ValueError):
            OrderedKeyTable(1, capacity=0)
        with pytest.raises(ValueError):
            OrderedKeyTable(1, dtype=str)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
