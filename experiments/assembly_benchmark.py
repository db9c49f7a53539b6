"""Benchmark helper for dense vs sparse Hessian assembly."""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Any, List, Optional, Tuple

import numpy as np

from objective.function import Function
from objective.standard_terms import QuadraticTerm, RosenbrockTerm, SquaredDifferenceTerm
from objective_logging.metrics_log import log_records


def make_chain_function(
    count: int,
    block_size: int = 3,
    max_workers: Optional[int] = None,
) -> Tuple[Function, List[np.ndarray]]:
    """Chain of ``count`` blocks: anchors on every block, couplings between neighbours."""
    assert count >= 1, "count must be >= 1"
    blocks = [np.full(block_size, 0.1 * i, dtype=float) for i in range(count)]
    fn = Function(max_workers=max_workers, parallel_min_terms=8)
    for block in blocks:
        fn.register_variable(block)
    for i, block in enumerate(blocks):
        fn.add_term(QuadraticTerm(center=tuple(float(i) for _ in range(block_size))), block)
    for i in range(count - 1):
        fn.add_term(SquaredDifferenceTerm(size=block_size, weight=0.5 + 0.1 * (i % 3)), blocks[i], blocks[i + 1])
    return fn, blocks


def make_rosenbrock_chain(count: int) -> Tuple[Function, List[np.ndarray]]:
    """Chained Rosenbrock over ``count`` scalar blocks."""
    assert count >= 2, "count must be >= 2"
    blocks = [np.array([-1.2 if i % 2 == 0 else 1.0]) for i in range(count)]
    fn = Function()
    for block in blocks:
        fn.register_variable(block, 1)
    for i in range(count - 1):
        fn.add_term(RosenbrockTerm(), blocks[i], blocks[i + 1])
    return fn, blocks


def run_benchmark(count: int, repeats: int, max_workers: Optional[int]) -> dict[str, Any]:
    fn, _ = make_chain_function(count, max_workers=max_workers)
    x = fn.pack_current_values()
    pattern = fn.build_sparse_hessian_pattern()

    start = time.perf_counter()
    for _ in range(repeats):
        value_dense, _, _ = fn.evaluate_with_gradient_and_dense_hessian(x)
    dense_sec = time.perf_counter() - start

    start = time.perf_counter()
    for _ in range(repeats):
        value_sparse, _, _ = fn.evaluate_with_gradient_and_sparse_hessian(x)
    sparse_sec = time.perf_counter() - start

    timings = fn.timings
    fn.close()
    return {
        "num_blocks": count,
        "num_scalars": int(x.shape[0]),
        "repeats": repeats,
        "max_workers": 0 if max_workers is None else int(max_workers),
        "pattern_nnz": int(pattern.nnz),
        "hessian_elements": int(fn.number_of_hessian_elements),
        "dense_sec": dense_sec,
        "sparse_sec": sparse_sec,
        "value_dense": float(value_dense),
        "value_sparse": float(value_sparse),
        **timings.as_dict(),
    }


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hessian assembly benchmark helper")
    parser.add_argument("--num-blocks", type=int, default=200)
    parser.add_argument("--repeats", type=int, default=10)
    parser.add_argument("--max-workers", type=int, default=None)
    parser.add_argument("--log-name", type=str, default="assembly_benchmark")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    sequential = run_benchmark(args.num_blocks, args.repeats, max_workers=None)
    rows = [sequential]
    if args.max_workers is not None and args.max_workers > 1:
        rows.append(run_benchmark(args.num_blocks, args.repeats, max_workers=args.max_workers))
    out: Path = log_records(args.log_name, rows)
    for row in rows:
        print(f"workers={row['max_workers']} dense={row['dense_sec']:.4f}s sparse={row['sparse_sec']:.4f}s")
    print("Wrote", out)


if __name__ == "__main__":
    main()
