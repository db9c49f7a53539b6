from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import time

from objective.function import Function
from objective.timing import EvaluationTimings
from objective_logging.metrics_log import log_records


@dataclass
class EvaluationTracker:
    """Attach to Function callbacks and log per-evaluation rows to Polars CSV.

    Usage:
        tracker = EvaluationTracker(name="evaluation_trace", run_id="demo")
        tracker.attach(function)
        ... optimizer loop calling function.evaluate_* ...
        tracker.flush()

    Each row carries the evaluation kind, the objective value, its change from
    the previous evaluation and the per-phase time spent since the previous
    row.
    """
    name: str
    run_id: str
    buffer: List[Dict[str, Any]] = field(default_factory=list)
    step: int = 0
    prev_value: Optional[float] = None
    function: Optional[Function] = None
    _last_timings: Optional[EvaluationTimings] = field(default=None, init=False, repr=False)
    _last_timestamp: Optional[float] = field(default=None, init=False, repr=False)

    def attach(self, function: Function) -> None:
        self.function = function
        function.on_evaluated.append(self.on_evaluated)
        self._last_timings = function.timings
        self._last_timestamp = time.perf_counter()

    def detach(self) -> None:
        if self.function is not None and self.on_evaluated in self.function.on_evaluated:
            self.function.on_evaluated.remove(self.on_evaluated)
        self.function = None

    def on_evaluated(self, kind: str, value: float) -> None:
        self.step += 1
        delta = None if self.prev_value is None else float(value - self.prev_value)
        self.prev_value = float(value)
        now = time.perf_counter()
        wall = None if self._last_timestamp is None else float(now - self._last_timestamp)
        self._last_timestamp = now
        row: Dict[str, Any] = {
            "run_id": self.run_id,
            "step": int(self.step),
            "kind": str(kind),
            "value": float(value),
            "delta_value": float("nan") if delta is None else delta,
            "wall_time": float("nan") if wall is None else wall,
        }
        if self.function is not None:
            current = self.function.timings
            row["num_terms"] = int(self.function.number_of_terms())
            row["num_scalars"] = int(self.function.total_scalar_count())
            previous = self._last_timings.as_dict() if self._last_timings is not None else {}
            for phase, seconds in current.as_dict().items():
                row[f"time:{phase}"] = float(seconds - previous.get(phase, 0.0))
            self._last_timings = current
        self.buffer.append(row)

    def flush(self) -> None:
        if self.buffer:
            log_records(self.name, self.buffer)
            self.buffer.clear()


@dataclass
class TimingSummaryLogger:
    """One row per named run with the cumulative phase counters."""

    name: str = "timing_summary"
    run_id: str = "default"
    buffer: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, function: Function, *, label: str = "") -> None:
        timings = function.timings
        row: Dict[str, Any] = {
            "run_id": self.run_id,
            "label": str(label),
            "num_variables": int(function.number_of_variables()),
            "num_terms": int(function.number_of_terms()),
            "num_scalars": int(function.total_scalar_count()),
            "hessian_elements": int(function.number_of_hessian_elements),
            "total_time": float(timings.total()),
        }
        for phase, seconds in timings.as_dict().items():
            row[phase] = float(seconds)
        self.buffer.append(row)

    def flush(self) -> None:
        if not self.buffer:
            return
        log_records(self.name, self.buffer)
        self.buffer.clear()
