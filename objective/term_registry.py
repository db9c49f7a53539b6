"""Registered terms, their argument lists and private derivative scratch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Sequence, Tuple
import warnings

import numpy as np

from .errors import ArityMismatch, DimensionMismatch, UnknownVariable
from .interfaces import GradientBlocks, HessianBlocks, SupportsClose, Term
from .variables import VariableHandle, VariableKey, VariableRegistry

__all__ = ["TermOwnership", "TermEntry", "TermRegistry"]


class TermOwnership(Enum):
    """Whether the registry releases registered terms on teardown."""

    OWNED = "owned"
    BORROWED = "borrowed"


@dataclass
class TermEntry:
    """A term bound to an argument list, with its private scratch.

    ``gradient_buffer`` and ``hessian_buffer`` hold the local derivatives of
    all arguments back to back; ``gradient`` and ``hessian`` are per-argument
    views into them. ``global_indices[p]`` is the global index of local
    scalar ``p``.
    """

    term: Term
    arguments: Tuple[VariableHandle, ...]
    dimensions: Tuple[int, ...]
    global_indices: np.ndarray
    gradient_buffer: np.ndarray
    hessian_buffer: np.ndarray
    gradient: GradientBlocks
    hessian: HessianBlocks
    values: List[np.ndarray] = field(default_factory=list)
    live_values: List[np.ndarray] = field(default_factory=list)
    generation: int = -1

    @property
    def arity(self) -> int:
        return len(self.arguments)

    @property
    def local_size(self) -> int:
        return int(self.gradient_buffer.shape[0])

    def reset_derivatives(self) -> None:
        self.gradient_buffer.fill(0.0)
        self.hessian_buffer.fill(0.0)

    def gradient_blocks(self) -> GradientBlocks:
        # fresh lists per call so a term replacing an item does not stick
        return list(self.gradient)

    def hessian_blocks(self) -> HessianBlocks:
        return [list(row) for row in self.hessian]

    def absorb(self, gradient: GradientBlocks, hessian: HessianBlocks) -> None:
        """Copy back blocks the term replaced instead of filling in place."""
        for i in range(self.arity):
            g = gradient[i]
            if g is not self.gradient[i]:
                g = np.asarray(g, dtype=float)
                if g.shape != self.gradient[i].shape:
                    raise ValueError(
                        f"{self.term.__class__.__name__}: gradient block {i} has shape {g.shape}, "
                        f"expected {self.gradient[i].shape}"
                    )
                self.gradient[i][...] = g
            for j in range(self.arity):
                h = hessian[i][j]
                if h is not self.hessian[i][j]:
                    h = np.asarray(h, dtype=float)
                    if h.shape != self.hessian[i][j].shape:
                        raise ValueError(
                            f"{self.term.__class__.__name__}: hessian block ({i},{j}) has shape {h.shape}, "
                            f"expected {self.hessian[i][j].shape}"
                        )
                    self.hessian[i][j][...] = h


def _allocate_scratch(dimensions: Sequence[int]) -> Tuple[np.ndarray, np.ndarray, GradientBlocks, HessianBlocks]:
    starts = np.concatenate(([0], np.cumsum(dimensions, dtype=np.int64))).astype(int)
    size = int(starts[-1])
    gradient_buffer = np.zeros(size, dtype=float)
    hessian_buffer = np.zeros((size, size), dtype=float)
    gradient = [gradient_buffer[starts[i]: starts[i + 1]] for i in range(len(dimensions))]
    hessian = [
        [
            hessian_buffer[starts[i]: starts[i + 1], starts[j]: starts[j + 1]]
            for j in range(len(dimensions))
        ]
        for i in range(len(dimensions))
    ]
    return gradient_buffer, hessian_buffer, gradient, hessian


@dataclass
class TermRegistry:
    """Terms in registration order.

    Holds a reference to the variable registry so that cached value views can
    be refreshed when the variable scratch is reallocated.
    """

    variables: VariableRegistry
    ownership: TermOwnership = TermOwnership.OWNED
    _entries: List[TermEntry] = field(default_factory=list, init=False, repr=False)
    _distinct_terms: Dict[int, Term] = field(default_factory=dict, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TermEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> List[TermEntry]:
        return self._entries

    def distinct_terms(self) -> List[Term]:
        return list(self._distinct_terms.values())

    def add(self, term: Term, argument_keys: Sequence[VariableKey]) -> TermEntry:
        """Validate and register ``term`` over ``argument_keys``.

        Nothing is recorded unless every check passes.
        """
        arity = int(term.arity())
        if arity < 0:
            raise ArityMismatch(f"{term.__class__.__name__}: arity must be non-negative, got {arity}")
        keys = list(argument_keys)
        if len(keys) != arity:
            raise ArityMismatch(
                f"{term.__class__.__name__} takes {arity} arguments, got {len(keys)}"
            )
        handles: List[VariableHandle] = []
        dimensions: List[int] = []
        for position, key in enumerate(keys):
            try:
                handle = self.variables.handle_of(key)
            except UnknownVariable as exc:
                raise UnknownVariable(
                    f"{term.__class__.__name__}: argument {position} is not a registered variable"
                ) from exc
            expected = int(term.dimension(position))
            registered = self.variables.dimension_of(handle)
            if registered != expected:
                raise DimensionMismatch(
                    f"{term.__class__.__name__}: argument {position} has dimension {registered}, "
                    f"term expects {expected}"
                )
            handles.append(handle)
            dimensions.append(expected)
        if len(set(handles)) != len(handles):
            warnings.warn(
                f"{term.__class__.__name__} references the same variable more than once; "
                "its contributions will be summed.",
                RuntimeWarning,
                stacklevel=3,
            )

        gradient_buffer, hessian_buffer, gradient, hessian = _allocate_scratch(dimensions)
        if handles:
            global_indices = np.concatenate([self.variables.global_indices(h) for h in handles])
        else:
            global_indices = np.zeros(0, dtype=np.int64)
        entry = TermEntry(
            term=term,
            arguments=tuple(handles),
            dimensions=tuple(dimensions),
            global_indices=global_indices,
            gradient_buffer=gradient_buffer,
            hessian_buffer=hessian_buffer,
            gradient=gradient,
            hessian=hessian,
        )
        self._bind_views(entry)
        self._entries.append(entry)
        self._distinct_terms.setdefault(id(term), term)
        return entry

    def _bind_views(self, entry: TermEntry) -> None:
        entry.values = [self.variables.scratch_view(h) for h in entry.arguments]
        entry.live_values = [self.variables.live_view(h) for h in entry.arguments]
        entry.generation = self.variables.generation

    def refresh_views(self) -> None:
        """Re-point cached value views after the variable storage changed."""
        generation = self.variables.generation
        for entry in self._entries:
            if entry.generation != generation:
                self._bind_views(entry)

    def release(self) -> None:
        """Drop all terms, closing each distinct owned term exactly once."""
        if self.ownership is TermOwnership.OWNED:
            for term in self._distinct_terms.values():
                if isinstance(term, SupportsClose):
                    term.close()
        self._entries.clear()
        self._distinct_terms.clear()
