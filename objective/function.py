"""Objective function assembled from independent terms.

The function:
- maps caller-owned variable blocks onto one global parameter vector
- evaluates the sum of all terms, from a global vector or from the live blocks
- assembles the global gradient and a dense or sparse Hessian
- builds the sparse Hessian pattern once for solver preparation

Derivative assembly runs in two phases. In the map phase every term writes
its value, gradient and Hessian into private scratch (optionally on a thread
pool, since terms only read shared variable scratch). In the reduce phase the
private blocks are scatter-added into the global targets sequentially in
registration order.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union
import math

import numpy as np
import scipy.sparse as sp

from .interfaces import Term
from .sparse import TripletAccumulator
from .term_registry import TermEntry, TermOwnership, TermRegistry
from .timing import EvaluationTimings, wall_time
from .variables import VariableHandle, VariableKey, VariableRegistry

__all__ = ["Function", "EvaluationCallback"]

EvaluationCallback = Callable[[str, float], None]


@dataclass
class Function:
    """Sum of terms over registered variable blocks, with event hooks."""

    term_ownership: TermOwnership = TermOwnership.OWNED
    # Map-phase parallelism: None evaluates terms sequentially
    max_workers: Optional[int] = None
    parallel_min_terms: int = 64
    # Opt-in: assert finite value/gradient after every evaluation
    enforce_invariants: bool = False

    on_evaluated: List[EvaluationCallback] = field(default_factory=list)

    _variables: VariableRegistry = field(default_factory=VariableRegistry, init=False, repr=False)
    _terms: TermRegistry = field(init=False, repr=False)
    _timings: EvaluationTimings = field(default_factory=EvaluationTimings, init=False, repr=False)
    _executor: Optional[ThreadPoolExecutor] = field(default=None, init=False, repr=False)
    _number_of_hessian_elements: int = field(default=0, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._validate_configuration()
        self._terms = TermRegistry(variables=self._variables, ownership=self.term_ownership)

    def __enter__(self) -> "Function":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- Registration ---
    def register_variable(self, block: np.ndarray, dimension: Optional[int] = None) -> VariableHandle:
        """Register a caller-owned block; returns its handle.

        The block must stay alive and must not be replaced while registered
        (use ``rebind_variable`` to point the variable at a new block).
        """
        self._check_open()
        return self._variables.register(block, dimension)

    def rebind_variable(self, key: VariableKey, block: np.ndarray) -> VariableHandle:
        self._check_open()
        handle = self._variables.rebind(key, block)
        self._terms.refresh_views()
        return handle

    def add_term(self, term: Term, *arguments: Union[VariableKey, Sequence[VariableKey]]) -> None:
        """Add ``term`` over the given variables.

        Accepts either one sequence of keys or the keys as separate arguments.
        """
        self._check_open()
        if len(arguments) == 1 and isinstance(arguments[0], (list, tuple)):
            keys = list(arguments[0])
        else:
            keys = list(arguments)
        self._terms.add(term, keys)

    # --- Introspection ---
    def total_scalar_count(self) -> int:
        return int(self._variables.number_of_scalars)

    def global_offset(self, key: VariableKey) -> int:
        return int(self._variables.offset_of(key))

    def number_of_variables(self) -> int:
        return len(self._variables)

    def number_of_terms(self) -> int:
        return len(self._terms)

    @property
    def number_of_hessian_elements(self) -> int:
        """Scattered (not deduplicated) Hessian entries of the last sparse pass."""
        return self._number_of_hessian_elements

    @property
    def timings(self) -> EvaluationTimings:
        """Snapshot of the cumulative phase counters."""
        return self._timings.snapshot()

    def timing_report(self) -> str:
        return self._timings.report()

    # --- Conversion ---
    def pack_current_values(self) -> np.ndarray:
        start = wall_time()
        x = self._variables.copy_user_to_global()
        self._record("copy_time", start, None)
        return x

    def unpack_into_live_variables(self, x: np.ndarray) -> None:
        start = wall_time()
        self._variables.copy_global_to_user(x)
        self._record("copy_time", start, None)

    def copy_global_to_local(self, x: np.ndarray, stats: Optional[EvaluationTimings] = None) -> None:
        start = wall_time()
        self._variables.copy_global_to_local(x)
        self._terms.refresh_views()
        self._record("copy_time", start, stats)

    # --- Evaluation ---
    def evaluate(self, x: Optional[np.ndarray] = None, stats: Optional[EvaluationTimings] = None) -> float:
        """Sum of all term values.

        With ``x`` the values come from the global vector; without it they are
        read directly from the live caller blocks.
        """
        self._check_open()
        if x is not None:
            self.copy_global_to_local(x, stats)
            start = wall_time()
            value = 0.0
            for entry in self._terms:
                value += float(entry.term.evaluate(entry.values))
        else:
            self._terms.refresh_views()
            start = wall_time()
            value = 0.0
            for entry in self._terms:
                value += float(entry.term.evaluate(entry.live_values))
        self._record("evaluate_time", start, stats)
        self._check_invariants(value)
        self._emit("value", value)
        return value

    def evaluate_with_gradient(
        self,
        x: np.ndarray,
        stats: Optional[EvaluationTimings] = None,
    ) -> Tuple[float, np.ndarray]:
        """Value and global gradient at ``x``."""
        self._check_open()
        self.copy_global_to_local(x, stats)
        start = wall_time()
        gradient = np.zeros(self.total_scalar_count(), dtype=float)
        self._record("write_gradient_hessian_time", start, stats)

        value = self._map_derivatives(stats)

        start = wall_time()
        for entry in self._terms:
            self._scatter_gradient(entry, gradient)
        self._record("write_gradient_hessian_time", start, stats)
        self._check_invariants(value, gradient)
        self._emit("gradient", value)
        return value, gradient

    def evaluate_with_gradient_and_dense_hessian(
        self,
        x: np.ndarray,
        stats: Optional[EvaluationTimings] = None,
    ) -> Tuple[float, np.ndarray, np.ndarray]:
        """Value, global gradient and dense global Hessian at ``x``."""
        self._check_open()
        self.copy_global_to_local(x, stats)
        n = self.total_scalar_count()
        start = wall_time()
        gradient = np.zeros(n, dtype=float)
        hessian = np.zeros((n, n), dtype=float)
        self._record("write_gradient_hessian_time", start, stats)

        value = self._map_derivatives(stats)

        start = wall_time()
        for entry in self._terms:
            self._scatter_gradient(entry, gradient)
            idx = entry.global_indices
            np.add.at(hessian, (idx[:, None], idx[None, :]), entry.hessian_buffer)
        self._record("write_gradient_hessian_time", start, stats)
        self._check_invariants(value, gradient)
        self._emit("dense_hessian", value)
        return value, gradient, hessian

    def evaluate_with_gradient_and_sparse_hessian(
        self,
        x: np.ndarray,
        stats: Optional[EvaluationTimings] = None,
    ) -> Tuple[float, np.ndarray, sp.csr_matrix]:
        """Value, global gradient and sparse (CSR) global Hessian at ``x``.

        Every term's dense Hessian blocks are appended as triplets and merged
        once; entries hit by several terms are summed.
        """
        self._check_open()
        self.copy_global_to_local(x, stats)
        n = self.total_scalar_count()
        start = wall_time()
        gradient = np.zeros(n, dtype=float)
        triplets = TripletAccumulator(self._number_of_hessian_elements)
        self._record("write_gradient_hessian_time", start, stats)

        value = self._map_derivatives(stats)

        start = wall_time()
        for entry in self._terms:
            self._scatter_gradient(entry, gradient)
            triplets.add_block(entry.global_indices, entry.global_indices, entry.hessian_buffer)
        self._number_of_hessian_elements = len(triplets)
        hessian = triplets.to_csr((n, n))
        self._record("write_gradient_hessian_time", start, stats)
        self._check_invariants(value, gradient)
        self._emit("sparse_hessian", value)
        return value, gradient, hessian

    def build_sparse_hessian_pattern(self, stats: Optional[EvaluationTimings] = None) -> sp.csr_matrix:
        """Nonzero structure of the global Hessian with unit placeholder values."""
        self._check_open()
        n = self.total_scalar_count()
        start = wall_time()
        triplets = TripletAccumulator(self._number_of_hessian_elements)
        for entry in self._terms:
            idx = self._resolve_indices(entry)
            triplets.add_block(idx, idx, np.ones((idx.shape[0], idx.shape[0]), dtype=float))
        self._number_of_hessian_elements = len(triplets)
        pattern = triplets.to_csr((n, n))
        pattern.data[:] = 1.0
        self._record("write_gradient_hessian_time", start, stats)
        return pattern

    # --- Map / reduce helpers ---
    def _evaluate_entry(self, entry: TermEntry) -> float:
        entry.reset_derivatives()
        gradient = entry.gradient_blocks()
        hessian = entry.hessian_blocks()
        value = float(entry.term.evaluate_with_derivatives(entry.values, gradient, hessian))
        entry.absorb(gradient, hessian)
        return value

    def _map_derivatives(self, stats: Optional[EvaluationTimings]) -> float:
        self._check_open()
        start = wall_time()
        entries = self._terms.entries
        executor = self._executor_for(len(entries))
        if executor is None:
            values = [self._evaluate_entry(entry) for entry in entries]
        else:
            values = list(executor.map(self._evaluate_entry, entries))
        value = 0.0
        for v in values:
            value += v
        self._record("evaluate_with_hessian_time", start, stats)
        return value

    def _resolve_indices(self, entry: TermEntry) -> np.ndarray:
        # raises UnknownVariable if an argument is no longer registered
        for handle in entry.arguments:
            self._variables.handle_of(handle)
        return entry.global_indices

    def _scatter_gradient(self, entry: TermEntry, gradient: np.ndarray) -> None:
        np.add.at(gradient, self._resolve_indices(entry), entry.gradient_buffer)

    def _executor_for(self, count: int) -> Optional[ThreadPoolExecutor]:
        if self.max_workers is None or self.max_workers <= 1 or count < self.parallel_min_terms:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="objective-map",
            )
        return self._executor

    # --- Lifecycle ---
    def close(self) -> None:
        """Shut down the worker pool and release owned terms."""
        if self._closed:
            return
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._terms.release()
        self._closed = True

    def _check_open(self) -> None:
        assert not self._closed, "Function has been closed"

    # --- Events / instrumentation ---
    def _record(self, phase: str, start: float, stats: Optional[EvaluationTimings]) -> None:
        elapsed = max(0.0, wall_time() - start)
        self._timings.add(phase, elapsed)
        if stats is not None:
            stats.add(phase, elapsed)

    def _emit(self, kind: str, value: float) -> None:
        for cb in self.on_evaluated:
            cb(kind, value)

    def _validate_configuration(self) -> None:
        assert isinstance(self.term_ownership, TermOwnership), "term_ownership must be a TermOwnership"
        if self.max_workers is not None:
            assert self.max_workers >= 1, "max_workers must be >= 1"
        assert self.parallel_min_terms >= 1, "parallel_min_terms must be >= 1"

    def _check_invariants(self, value: float, gradient: Optional[np.ndarray] = None) -> None:
        if not self.enforce_invariants:
            return
        assert math.isfinite(value), "Objective value must be finite"
        if gradient is not None:
            assert bool(np.all(np.isfinite(gradient))), "Gradient must be finite"
