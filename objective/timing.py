"""Cumulative wall-clock counters for the evaluation phases."""

from __future__ import annotations

from dataclasses import dataclass, fields
import time
from typing import Dict

__all__ = ["EvaluationTimings", "wall_time"]


def wall_time() -> float:
    return time.perf_counter()


@dataclass
class EvaluationTimings:
    """Seconds spent per phase, summed over all evaluation calls.

    copy_time: global vector <-> variable storage copies.
    evaluate_time: value-only evaluation of all terms.
    evaluate_with_hessian_time: per-term value/gradient/Hessian (map phase).
    write_gradient_hessian_time: allocation and scatter into global targets.
    """

    copy_time: float = 0.0
    evaluate_time: float = 0.0
    evaluate_with_hessian_time: float = 0.0
    write_gradient_hessian_time: float = 0.0

    def add(self, phase: str, seconds: float) -> None:
        assert seconds >= 0.0, "elapsed time must be non-negative"
        setattr(self, phase, getattr(self, phase) + float(seconds))

    def total(self) -> float:
        return float(sum(getattr(self, f.name) for f in fields(self)))

    def snapshot(self) -> "EvaluationTimings":
        return EvaluationTimings(**self.as_dict())

    def as_dict(self) -> Dict[str, float]:
        return {f.name: float(getattr(self, f.name)) for f in fields(self)}

    def report(self) -> str:
        """Render the counters as a fixed-width table."""
        rows = [
            ("Copying", self.copy_time),
            ("Evaluate", self.evaluate_time),
            ("Evaluate with Hessian", self.evaluate_with_hessian_time),
            ("Write gradient/Hessian", self.write_gradient_hessian_time),
        ]
        lines = ["----------------------------------------------"]
        for label, seconds in rows:
            lines.append(f"{label:<28s}: {seconds:12.6f} s")
        lines.append("----------------------------------------------")
        lines.append(f"{'Total':<28s}: {self.total():12.6f} s")
        return "\n".join(lines)
