from __future__ import annotations

import numpy as np

from objective.function import Function
from objective.term_registry import TermOwnership

from term_helpers import SumOfSquaresTerm


def _function_with_shared_term(ownership: TermOwnership):
    a, b = np.zeros(1), np.zeros(1)
    fn = Function(term_ownership=ownership)
    fn.register_variable(a)
    fn.register_variable(b)
    shared = SumOfSquaresTerm([1])
    fn.add_term(shared, a)
    fn.add_term(shared, b)
    return fn, shared


def test_owned_terms_are_closed_once_even_when_shared() -> None:
    fn, shared = _function_with_shared_term(TermOwnership.OWNED)
    assert fn.number_of_terms() == 2
    fn.close()
    assert shared.closed == 1
    fn.close()
    assert shared.closed == 1


def test_borrowed_terms_are_left_to_caller() -> None:
    fn, shared = _function_with_shared_term(TermOwnership.BORROWED)
    fn.close()
    assert shared.closed == 0
    assert fn.number_of_terms() == 0
