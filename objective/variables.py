"""Registry mapping caller-owned variable blocks to the global vector.

Each registered block gets a contiguous range [offset, offset + dimension)
of the global vector, assigned in registration order. The registry also owns
the local scratch storage read by terms: one arena laid out exactly like the
global vector.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Optional, Union

import numpy as np

from .errors import DimensionMismatch, UnknownVariable

__all__ = ["VariableHandle", "VariableKey", "VariableRegistry"]


@dataclass(frozen=True)
class VariableHandle:
    """Opaque, stable key issued by ``VariableRegistry.register``.

    ``registry`` identifies the issuing registry, so a handle from another
    function is never mistaken for a local one.
    """

    index: int
    registry: int = -1

    def __repr__(self) -> str:
        return f"VariableHandle({self.index})"


VariableKey = Union[VariableHandle, np.ndarray]

_REGISTRY_TOKENS = count()


@dataclass
class _VariableEntry:
    block: np.ndarray
    dimension: int
    offset: int
    values: np.ndarray  # flat writable view of block
    readonly: np.ndarray  # flat read-only view of block


def _flat_views(block: Any, dimension: int) -> tuple[np.ndarray, np.ndarray]:
    if not isinstance(block, np.ndarray):
        raise TypeError(f"variable blocks must be numpy arrays, got {type(block).__name__}")
    if not np.issubdtype(block.dtype, np.floating):
        raise TypeError(f"variable blocks must have a floating dtype, got {block.dtype}")
    if block.size != dimension:
        raise DimensionMismatch(
            f"block has {block.size} scalars but was registered with dimension {dimension}"
        )
    flat = block.reshape(-1)
    if not np.shares_memory(flat, block):
        raise ValueError("variable blocks must be contiguous so they can be updated in place")
    readonly = flat.view()
    readonly.flags.writeable = False
    return flat, readonly


@dataclass
class VariableRegistry:
    """Variable blocks, their global offsets and the shared scratch arena."""

    _token: int = field(default_factory=lambda: next(_REGISTRY_TOKENS), init=False, repr=False)
    _entries: List[_VariableEntry] = field(default_factory=list, init=False, repr=False)
    _by_identity: Dict[int, int] = field(default_factory=dict, init=False, repr=False)
    _scratch: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=float), init=False, repr=False)
    _scratch_views: List[np.ndarray] = field(default_factory=list, init=False, repr=False)
    number_of_scalars: int = field(default=0, init=False)
    generation: int = field(default=0, init=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[VariableHandle]:
        return (self._handle(i) for i in range(len(self._entries)))

    def register(self, block: np.ndarray, dimension: Optional[int] = None) -> VariableHandle:
        """Register ``block``; re-registration with a matching dimension is a no-op."""
        existing = self._by_identity.get(id(block))
        if existing is not None:
            entry = self._entries[existing]
            if dimension is not None and int(dimension) != entry.dimension:
                raise DimensionMismatch(
                    f"variable already registered with dimension {entry.dimension}, got {dimension}"
                )
            return self._handle(existing)
        if dimension is None:
            dimension = int(getattr(block, "size", 0))
        dimension = int(dimension)
        if dimension <= 0:
            raise ValueError(f"variable dimension must be positive, got {dimension}")
        values, readonly = _flat_views(block, dimension)
        index = len(self._entries)
        self._entries.append(
            _VariableEntry(
                block=block,
                dimension=dimension,
                offset=self.number_of_scalars,
                values=values,
                readonly=readonly,
            )
        )
        self._by_identity[id(block)] = index
        self.number_of_scalars += dimension
        self._grow_scratch()
        return self._handle(index)

    def rebind(self, key: VariableKey, block: np.ndarray) -> VariableHandle:
        """Point a registered variable at a new caller-owned block."""
        handle = self.handle_of(key)
        entry = self._entries[handle.index]
        other = self._by_identity.get(id(block))
        if other is not None and other != handle.index:
            raise ValueError(f"block is already registered as VariableHandle({other})")
        values, readonly = _flat_views(block, entry.dimension)
        del self._by_identity[id(entry.block)]
        entry.block = block
        entry.values = values
        entry.readonly = readonly
        self._by_identity[id(block)] = handle.index
        self.generation += 1
        return handle

    def _handle(self, index: int) -> VariableHandle:
        return VariableHandle(index, self._token)

    def _grow_scratch(self) -> None:
        n = self.number_of_scalars
        if n > self._scratch.shape[0]:
            # geometric growth; existing views are re-pointed below
            scratch = np.zeros(max(n, 2 * self._scratch.shape[0]), dtype=float)
            scratch[: self._scratch.shape[0]] = self._scratch
            self._scratch = scratch
            self._scratch_views = [self._scratch_view_of(entry) for entry in self._entries]
            self.generation += 1
        else:
            self._scratch_views.append(self._scratch_view_of(self._entries[-1]))

    def _scratch_view_of(self, entry: _VariableEntry) -> np.ndarray:
        view = self._scratch[entry.offset: entry.offset + entry.dimension]
        view.flags.writeable = False
        return view

    # --- Lookups ---
    def handle_of(self, key: VariableKey) -> VariableHandle:
        if isinstance(key, VariableHandle):
            if key.registry == self._token and 0 <= key.index < len(self._entries):
                return key
            raise UnknownVariable(f"unknown variable handle {key!r}")
        index = self._by_identity.get(id(key))
        if index is None or self._entries[index].block is not key:
            raise UnknownVariable("block was never registered as a variable")
        return self._handle(index)

    def offset_of(self, key: VariableKey) -> int:
        return self._entries[self.handle_of(key).index].offset

    def dimension_of(self, key: VariableKey) -> int:
        return self._entries[self.handle_of(key).index].dimension

    def is_registered(self, key: VariableKey) -> bool:
        try:
            self.handle_of(key)
        except UnknownVariable:
            return False
        return True

    def scratch_view(self, key: VariableKey) -> np.ndarray:
        """Read-only view of the variable's local scratch."""
        return self._scratch_views[self.handle_of(key).index]

    def live_view(self, key: VariableKey) -> np.ndarray:
        """Read-only flat view of the caller-owned block."""
        return self._entries[self.handle_of(key).index].readonly

    def global_indices(self, key: VariableKey) -> np.ndarray:
        entry = self._entries[self.handle_of(key).index]
        return np.arange(entry.offset, entry.offset + entry.dimension, dtype=np.int64)

    # --- Copies between the global vector, scratch and caller blocks ---
    def _check_global(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.shape != (self.number_of_scalars,):
            raise ValueError(
                f"global vector must have shape ({self.number_of_scalars},), got {x.shape}"
            )
        return x

    def copy_global_to_local(self, x: np.ndarray) -> None:
        """Fill every variable's scratch from its slice of ``x``."""
        x = self._check_global(x)
        # Offsets partition the global vector, so the arena is a copy of x.
        np.copyto(self._scratch[: self.number_of_scalars], x)

    def copy_user_to_global(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Concatenate the current caller block values in registration order."""
        if out is None or out.shape != (self.number_of_scalars,):
            out = np.empty(self.number_of_scalars, dtype=float)
        for entry in self._entries:
            out[entry.offset: entry.offset + entry.dimension] = entry.values
        return out

    def copy_global_to_user(self, x: np.ndarray) -> None:
        """Write slices of ``x`` back into the caller-owned blocks."""
        x = self._check_global(x)
        for entry in self._entries:
            entry.values[...] = x[entry.offset: entry.offset + entry.dimension]
