from __future__ import annotations

import numpy as np

from experiments.assembly_benchmark import make_chain_function


def test_parallel_and_sequential_assembly_match() -> None:
    seq, _ = make_chain_function(40, block_size=2)
    par, _ = make_chain_function(40, block_size=2, max_workers=4)
    x = np.linspace(-1.0, 1.0, seq.total_scalar_count())
    v_s, g_s, H_s = seq.evaluate_with_gradient_and_sparse_hessian(x)
    v_p, g_p, H_p = par.evaluate_with_gradient_and_sparse_hessian(x)
    # values are reduced in registration order on both paths
    assert v_s == v_p
    np.testing.assert_array_equal(g_s, g_p)
    np.testing.assert_array_equal(H_s.toarray(), H_p.toarray())
    d_s = seq.evaluate_with_gradient_and_dense_hessian(x)[2]
    d_p = par.evaluate_with_gradient_and_dense_hessian(x)[2]
    np.testing.assert_array_equal(d_s, d_p)
    seq.close()
    par.close()


def test_pool_is_not_started_below_threshold() -> None:
    fn, _ = make_chain_function(2, max_workers=4)
    fn.evaluate_with_gradient(fn.pack_current_values())
    assert fn._executor is None  # instrumentation
    fn.close()


def test_close_shuts_down_pool() -> None:
    fn, _ = make_chain_function(20, max_workers=2)
    fn.evaluate_with_gradient(fn.pack_current_values())
    assert fn._executor is not None  # instrumentation
    fn.close()
    assert fn._executor is None
