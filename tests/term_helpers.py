"""Small hand-written terms shared by the test modules."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from objective.interfaces import Term


class BilinearTerm(Term):
    """f(a, b) = a[0]^2 + a[1] * b[0] with a of size 2 and b of size 1."""

    def arity(self) -> int:
        return 2

    def dimension(self, index: int) -> int:
        return (2, 1)[index]

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        a, b = values
        return float(a[0] * a[0] + a[1] * b[0])

    def evaluate_with_derivatives(self, values, gradient, hessian) -> float:
        a, b = values
        gradient[0][0] = 2.0 * a[0]
        gradient[0][1] = b[0]
        gradient[1][0] = a[1]
        hessian[0][0][0, 0] = 2.0
        hessian[0][1][1, 0] = 1.0
        hessian[1][0][0, 1] = 1.0
        return float(a[0] * a[0] + a[1] * b[0])


class SumOfSquaresTerm(Term):
    """f(x_1..x_k) = sum of squares of all scalars; blocks are replaced, not filled."""

    def __init__(self, dims: List[int]) -> None:
        self.dims = list(dims)
        self.closed = 0

    def arity(self) -> int:
        return len(self.dims)

    def dimension(self, index: int) -> int:
        return self.dims[index]

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        return float(sum(np.dot(v, v) for v in values))

    def evaluate_with_derivatives(self, values, gradient, hessian) -> float:
        for i, v in enumerate(values):
            gradient[i] = 2.0 * np.asarray(v)
            hessian[i][i] = 2.0 * np.eye(len(v))
        return self.evaluate(values)

    def close(self) -> None:
        self.closed += 1


class ConstantTerm(Term):
    """Arity-zero term contributing a constant."""

    def __init__(self, value: float) -> None:
        self.value = float(value)

    def arity(self) -> int:
        return 0

    def dimension(self, index: int) -> int:
        raise IndexError(index)

    def evaluate(self, values: Sequence[np.ndarray]) -> float:
        return self.value

    def evaluate_with_derivatives(self, values, gradient, hessian) -> float:
        return self.value
