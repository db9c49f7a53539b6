from __future__ import annotations

import numpy as np

from objective.sparse import TripletAccumulator


def test_duplicate_entries_sum_on_merge() -> None:
    acc = TripletAccumulator()
    acc.add(0, 1, 2.0)
    acc.add(0, 1, 3.0)
    acc.add(2, 2, -1.0)
    H = acc.to_csr((3, 3))
    assert H[0, 1] == 5.0
    assert H[2, 2] == -1.0
    assert H.nnz == 2
    assert len(acc) == 3


def test_block_append_and_growth() -> None:
    acc = TripletAccumulator(capacity=2)
    rows = np.array([0, 2])
    cols = np.array([1, 3, 4])
    block = np.arange(6, dtype=float).reshape(2, 3)
    acc.add_block(rows, cols, block)
    acc.add_block(rows, cols, block)
    assert len(acc) == 12
    assert acc.capacity >= 12
    dense = acc.to_csr((3, 5)).toarray()
    np.testing.assert_array_equal(dense[np.ix_(rows, cols)], 2.0 * block)
    r, c, v = acc.triplets()
    assert r.shape == c.shape == v.shape == (12,)


def test_reserve_keeps_existing_entries_and_clear_empties() -> None:
    acc = TripletAccumulator()
    acc.add(1, 0, 4.0)
    acc.reserve(100)
    assert acc.capacity == 100
    assert acc.to_csr((2, 2))[1, 0] == 4.0
    acc.clear()
    assert len(acc) == 0
    assert acc.to_csr((2, 2)).nnz == 0
