from __future__ import annotations

import numpy as np

from experiments.assembly_benchmark import make_chain_function
from objective.timing import EvaluationTimings


def test_counters_are_monotone_and_cover_phases() -> None:
    fn, _ = make_chain_function(10)
    x = fn.pack_current_values()
    t0 = fn.timings
    fn.evaluate(x)
    t1 = fn.timings
    fn.evaluate_with_gradient_and_dense_hessian(x)
    t2 = fn.timings
    for before, after in ((t0, t1), (t1, t2)):
        for phase, seconds in after.as_dict().items():
            assert seconds >= before.as_dict()[phase]
    assert t2.evaluate_with_hessian_time > 0.0
    assert t2.write_gradient_hessian_time > 0.0
    assert t2.copy_time > 0.0


def test_snapshot_is_read_only_copy() -> None:
    fn, _ = make_chain_function(3)
    snap = fn.timings
    snap.copy_time = 1e9
    assert fn.timings.copy_time < 1e9


def test_caller_owned_stats_receive_increments() -> None:
    fn, _ = make_chain_function(5)
    stats = EvaluationTimings()
    x = fn.pack_current_values()
    fn.evaluate_with_gradient_and_sparse_hessian(x, stats=stats)
    assert stats.evaluate_with_hessian_time > 0.0
    assert stats.total() <= fn.timings.total() + 1e-12
    fn.evaluate(x)  # not threaded through
    assert stats.evaluate_time == 0.0


def test_report_lists_every_phase() -> None:
    timings = EvaluationTimings(copy_time=0.5, evaluate_time=0.25)
    report = timings.report()
    for label in ("Copying", "Evaluate", "Evaluate with Hessian", "Write gradient/Hessian", "Total"):
        assert label in report
    assert "0.750000" in report
    np.testing.assert_allclose(timings.total(), 0.75)
