"""Interfaces for objective terms.

Exposes strict typed Protocols for terms and optional capabilities.
"""

from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable

import numpy as np

__all__ = [
    "Term",
    "SupportsClose",
    "GradientBlocks",
    "HessianBlocks",
]

GradientBlocks = List[np.ndarray]
HessianBlocks = List[List[np.ndarray]]


@runtime_checkable
class Term(Protocol):
    """A function of a fixed ordered set of variable blocks.

    A term of arity k receives k one-dimensional value arrays. Value arrays
    are read-only views into engine-owned storage; a term must not keep
    references to them between calls.
    """

    def arity(self) -> int:
        """Number of variable blocks the term depends on (k >= 0)."""
        ...

    def dimension(self, index: int) -> int:
        """Number of scalars of argument ``index`` (> 0)."""
        ...

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        """Return the term value."""
        ...

    def evaluate_with_derivatives(
        self,
        values: Sequence[np.ndarray],
        gradient: GradientBlocks,
        hessian: HessianBlocks,
    ) -> float:
        """Return the term value and fill its derivative blocks.

        ``gradient[i]`` has shape ``(dimension(i),)`` and ``hessian[i][j]``
        has shape ``(dimension(i), dimension(j))``. Blocks arrive zeroed and
        are filled in place (or replaced by arrays of the same shape).
        """
        ...


@runtime_checkable
class SupportsClose(Protocol):
    """Optional release hook called when the engine owns the term."""

    def close(self) -> None:
        ...
