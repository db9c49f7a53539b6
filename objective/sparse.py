"""Additive (row, col, value) accumulation for sparse Hessian assembly.

Entries are appended in any order and merged once into compressed form;
repeated (row, col) pairs are summed during the merge.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.sparse as sp

__all__ = ["TripletAccumulator"]


class TripletAccumulator:
    """Growable triplet buffer with merge-by-addition semantics."""

    def __init__(self, capacity: int = 0) -> None:
        assert capacity >= 0, "capacity must be non-negative"
        self._rows = np.empty(capacity, dtype=np.int64)
        self._cols = np.empty(capacity, dtype=np.int64)
        self._values = np.empty(capacity, dtype=float)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return int(self._values.shape[0])

    def reserve(self, capacity: int) -> None:
        if capacity <= self.capacity:
            return
        self._rows = self._resized(self._rows, capacity)
        self._cols = self._resized(self._cols, capacity)
        self._values = self._resized(self._values, capacity)

    def _resized(self, buf: np.ndarray, capacity: int) -> np.ndarray:
        out = np.empty(capacity, dtype=buf.dtype)
        out[: self._size] = buf[: self._size]
        return out

    def _ensure_room(self, count: int) -> None:
        needed = self._size + count
        if needed > self.capacity:
            self.reserve(max(needed, 2 * self.capacity))

    def add(self, row: int, col: int, value: float) -> None:
        """Add ``value`` at (row, col)."""
        self._ensure_room(1)
        k = self._size
        self._rows[k] = row
        self._cols[k] = col
        self._values[k] = value
        self._size = k + 1

    def add_block(self, row_indices: np.ndarray, col_indices: np.ndarray, block: np.ndarray) -> None:
        """Add a dense block at the cross product of row and column indices."""
        r = np.asarray(row_indices, dtype=np.int64)
        c = np.asarray(col_indices, dtype=np.int64)
        values = np.asarray(block, dtype=float)
        assert values.shape == (r.shape[0], c.shape[0]), "block shape does not match indices"
        count = values.size
        if count == 0:
            return
        self._ensure_room(count)
        start, stop = self._size, self._size + count
        self._rows[start:stop] = np.repeat(r, c.shape[0])
        self._cols[start:stop] = np.tile(c, r.shape[0])
        self._values[start:stop] = values.ravel()
        self._size = stop

    def add_triplets(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        """Append pre-flattened triplets."""
        rows = np.asarray(rows, dtype=np.int64)
        count = rows.shape[0]
        if count == 0:
            return
        self._ensure_room(count)
        start, stop = self._size, self._size + count
        self._rows[start:stop] = rows
        self._cols[start:stop] = cols
        self._values[start:stop] = values
        self._size = stop

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (rows, cols, values) of the appended entries, unmerged."""
        n = self._size
        return self._rows[:n].copy(), self._cols[:n].copy(), self._values[:n].copy()

    def clear(self) -> None:
        self._size = 0

    def to_csr(self, shape: Tuple[int, int]) -> sp.csr_matrix:
        """Merge into a CSR matrix; duplicate (row, col) entries are summed."""
        n = self._size
        H = sp.coo_matrix(
            (self._values[:n], (self._rows[:n], self._cols[:n])),
            shape=shape,
        ).tocsr()
        H.sum_duplicates()
        return H
