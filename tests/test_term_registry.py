from __future__ import annotations

import warnings

import numpy as np
import pytest

from objective.errors import ArityMismatch, DimensionMismatch, UnknownVariable
from objective.function import Function
from objective.standard_terms import QuadraticTerm, SquaredDifferenceTerm
from objective.term_registry import TermRegistry
from objective.variables import VariableRegistry

from term_helpers import BilinearTerm, ConstantTerm


def _registered(*sizes: int):
    reg = VariableRegistry()
    blocks = [np.zeros(s) for s in sizes]
    for b in blocks:
        reg.register(b)
    return reg, blocks


def test_add_allocates_scratch_sized_by_argument_dimensions() -> None:
    reg, (a, b) = _registered(2, 1)
    terms = TermRegistry(variables=reg)
    entry = terms.add(BilinearTerm(), [a, b])
    assert entry.dimensions == (2, 1)
    assert [g.shape for g in entry.gradient] == [(2,), (1,)]
    shapes = [[blk.shape for blk in row] for row in entry.hessian]
    assert shapes == [[(2, 2), (2, 1)], [(1, 2), (1, 1)]]
    np.testing.assert_array_equal(entry.global_indices, [0, 1, 2])


def test_value_views_point_into_shared_scratch() -> None:
    reg, (a, b) = _registered(2, 1)
    terms = TermRegistry(variables=reg)
    e1 = terms.add(BilinearTerm(), [a, b])
    e2 = terms.add(QuadraticTerm(center=(0.0, 0.0)), [a])
    reg.copy_global_to_local(np.array([1.0, 2.0, 3.0]))
    np.testing.assert_array_equal(e1.values[0], [1.0, 2.0])
    assert np.shares_memory(e1.values[0], e2.values[0])


def test_arity_mismatch_leaves_registry_unchanged() -> None:
    reg, (a, b) = _registered(2, 1)
    terms = TermRegistry(variables=reg)
    with pytest.raises(ArityMismatch):
        terms.add(BilinearTerm(), [a])
    assert len(terms) == 0
    assert terms.distinct_terms() == []


def test_unknown_argument_leaves_registry_unchanged() -> None:
    reg, (a,) = _registered(2)
    terms = TermRegistry(variables=reg)
    with pytest.raises(UnknownVariable):
        terms.add(BilinearTerm(), [a, np.zeros(1)])
    assert len(terms) == 0


def test_dimension_mismatch_leaves_registry_unchanged() -> None:
    reg, (a, b) = _registered(2, 2)
    terms = TermRegistry(variables=reg)
    with pytest.raises(DimensionMismatch):
        terms.add(BilinearTerm(), [a, b])
    assert len(terms) == 0


def test_function_add_term_failures_do_not_add() -> None:
    a = np.zeros(2)
    b = np.zeros(1)
    fn = Function()
    fn.register_variable(a)
    fn.register_variable(b)
    with pytest.raises(ArityMismatch):
        fn.add_term(BilinearTerm(), [a, b, b])
    with pytest.raises(UnknownVariable):
        fn.add_term(BilinearTerm(), a, np.zeros(1))
    with pytest.raises(DimensionMismatch):
        fn.add_term(BilinearTerm(), b, a)
    assert fn.number_of_terms() == 0
    fn.add_term(BilinearTerm(), a, b)
    assert fn.number_of_terms() == 1


def test_add_never_moves_variable_offsets() -> None:
    a = np.zeros(3)
    b = np.zeros(3)
    fn = Function()
    fn.register_variable(a)
    fn.register_variable(b)
    fn.add_term(SquaredDifferenceTerm(size=3), a, b)
    assert fn.global_offset(a) == 0
    assert fn.global_offset(b) == 3


def test_repeated_argument_warns() -> None:
    reg, (a,) = _registered(3)
    terms = TermRegistry(variables=reg)
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        terms.add(SquaredDifferenceTerm(size=3), [a, a])
    assert any("more than once" in str(item.message) for item in w)
    assert len(terms) == 1


def test_arity_zero_term_has_empty_scratch() -> None:
    reg, _ = _registered(1)
    terms = TermRegistry(variables=reg)
    entry = terms.add(ConstantTerm(2.5), [])
    assert entry.local_size == 0
    assert entry.global_indices.shape == (0,)


def test_views_refresh_after_scratch_growth() -> None:
    reg, (a,) = _registered(2)
    terms = TermRegistry(variables=reg)
    entry = terms.add(QuadraticTerm(center=(0.0, 0.0)), [a])
    reg.register(np.zeros(4))
    reg.copy_global_to_local(np.arange(6, dtype=float))
    terms.refresh_views()
    np.testing.assert_array_equal(entry.values[0], [0.0, 1.0])
