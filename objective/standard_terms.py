"""Standard terms over variable blocks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

import numpy as np

from .interfaces import GradientBlocks, HessianBlocks, Term

__all__ = [
    "QuadraticTerm",
    "SquaredDifferenceTerm",
    "RosenbrockTerm",
    "FiniteDifferenceTerm",
]


@dataclass(frozen=True)
class QuadraticTerm(Term):
    """Anchor to a center: 0.5 * w * ||x - c||^2."""
    center: Tuple[float, ...]
    weight: float = 1.0

    def __post_init__(self) -> None:
        assert self.weight >= 0.0, "weight must be non-negative"

    def arity(self) -> int:
        return 1

    def dimension(self, index: int) -> int:
        return len(self.center)

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        diff = values[0] - np.asarray(self.center, dtype=float)
        return float(0.5 * self.weight * np.dot(diff, diff))

    def evaluate_with_derivatives(
        self,
        values: Sequence[np.ndarray],
        gradient: GradientBlocks,
        hessian: HessianBlocks,
    ) -> float:
        diff = values[0] - np.asarray(self.center, dtype=float)
        gradient[0][:] = self.weight * diff
        np.fill_diagonal(hessian[0][0], self.weight)
        return float(0.5 * self.weight * np.dot(diff, diff))


@dataclass(frozen=True)
class SquaredDifferenceTerm(Term):
    """Symmetric coupling between two blocks: w * ||x_i - x_j||^2."""
    size: int
    weight: float = 1.0

    def __post_init__(self) -> None:
        assert self.size > 0, "size must be positive"
        assert self.weight >= 0.0, "weight must be non-negative"

    def arity(self) -> int:
        return 2

    def dimension(self, index: int) -> int:
        return self.size

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        diff = values[0] - values[1]
        return float(self.weight * np.dot(diff, diff))

    def evaluate_with_derivatives(
        self,
        values: Sequence[np.ndarray],
        gradient: GradientBlocks,
        hessian: HessianBlocks,
    ) -> float:
        diff = values[0] - values[1]
        w2 = 2.0 * self.weight
        gradient[0][:] = w2 * diff
        gradient[1][:] = -w2 * diff
        np.fill_diagonal(hessian[0][0], w2)
        np.fill_diagonal(hessian[1][1], w2)
        np.fill_diagonal(hessian[0][1], -w2)
        np.fill_diagonal(hessian[1][0], -w2)
        return float(self.weight * np.dot(diff, diff))


@dataclass(frozen=True)
class RosenbrockTerm(Term):
    """Rosenbrock valley over two scalar blocks: (a - x)^2 + b (y - x^2)^2."""
    a: float = 1.0
    b: float = 100.0

    def arity(self) -> int:
        return 2

    def dimension(self, index: int) -> int:
        return 1

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        x = float(values[0][0])
        y = float(values[1][0])
        return (self.a - x) ** 2 + self.b * (y - x * x) ** 2

    def evaluate_with_derivatives(
        self,
        values: Sequence[np.ndarray],
        gradient: GradientBlocks,
        hessian: HessianBlocks,
    ) -> float:
        x = float(values[0][0])
        y = float(values[1][0])
        r = y - x * x
        gradient[0][0] = -2.0 * (self.a - x) - 4.0 * self.b * x * r
        gradient[1][0] = 2.0 * self.b * r
        hessian[0][0][0, 0] = 2.0 - 4.0 * self.b * (y - 3.0 * x * x)
        hessian[0][1][0, 0] = -4.0 * self.b * x
        hessian[1][0][0, 0] = -4.0 * self.b * x
        hessian[1][1][0, 0] = 2.0 * self.b
        return (self.a - x) ** 2 + self.b * r * r


@dataclass
class FiniteDifferenceTerm(Term):
    """Derivatives of a value-only function by central differences.

    ``fn`` receives one flat array per argument. Costs O(m^2) evaluations of
    ``fn`` per call, with m the total number of scalars.
    """
    fn: Callable[[Sequence[np.ndarray]], float]
    dimensions: Tuple[int, ...]
    eps: float = 1e-4
    _split: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        assert self.eps > 0.0, "eps must be > 0"
        assert all(int(d) > 0 for d in self.dimensions), "dimensions must be positive"
        self.dimensions = tuple(int(d) for d in self.dimensions)
        self._split = np.cumsum(self.dimensions)[:-1]

    def arity(self) -> int:
        return len(self.dimensions)

    def dimension(self, index: int) -> int:
        return self.dimensions[index]

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        return float(self.fn(values))

    def _eval_flat(self, z: np.ndarray) -> float:
        return float(self.fn(np.split(z, self._split)))

    def evaluate_with_derivatives(
        self,
        values: Sequence[np.ndarray],
        gradient: GradientBlocks,
        hessian: HessianBlocks,
    ) -> float:
        if not values:
            return float(self.fn(values))
        z = np.concatenate([np.asarray(v, dtype=float) for v in values])
        m = z.shape[0]
        h = self.eps
        base = self._eval_flat(z)
        g = np.zeros(m, dtype=float)
        H = np.zeros((m, m), dtype=float)
        bumped: List[float] = []
        for p in range(m):
            zp = z.copy()
            zp[p] += h
            zm = z.copy()
            zm[p] -= h
            fp = self._eval_flat(zp)
            fm = self._eval_flat(zm)
            g[p] = (fp - fm) / (2.0 * h)
            H[p, p] = (fp - 2.0 * base + fm) / (h * h)
            bumped.append(fp)
        for p in range(m):
            for q in range(p + 1, m):
                zpq = z.copy()
                zpq[p] += h
                zpq[q] += h
                fpq = self._eval_flat(zpq)
                # forward mixed difference
                H[p, q] = H[q, p] = (fpq - bumped[p] - bumped[q] + base) / (h * h)
        starts = np.concatenate(([0], np.cumsum(self.dimensions)))
        for i in range(len(self.dimensions)):
            gradient[i][:] = g[starts[i]: starts[i + 1]]
            for j in range(len(self.dimensions)):
                hessian[i][j][:, :] = H[starts[i]: starts[i + 1], starts[j]: starts[j + 1]]
        return base
