from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Run-length annotations
# ----------------------------

@dataclass(frozen=True)
class RunLengths:
    """Run annotations for a boolean mask.

    ``run_lengths`` has one entry per sample holding the length of the run the
    sample belongs to; ``repeat_counts`` holds one length per run in temporal
    order. Boundary runs are NaN when the encoder was asked to treat them as
    truncated.
    """

    first_value: bool
    run_lengths: np.ndarray
    repeat_counts: np.ndarray

    def __post_init__(self) -> None:
        run_lengths = _freeze_array(self.run_lengths, ndim=1)
        repeat_counts = _freeze_array(self.repeat_counts, ndim=1)
        if run_lengths.size == 0:
            raise ValueError("run_lengths must not be empty")
        if repeat_counts.size == 0:
            raise ValueError("repeat_counts must not be empty")
        object.__setattr__(self, "first_value", bool(self.first_value))
        object.__setattr__(self, "run_lengths", run_lengths)
        object.__setattr__(self, "repeat_counts", repeat_counts)

    @property
    def n_samples(self) -> int:
        return int(self.run_lengths.size)

    @property
    def n_runs(self) -> int:
        return int(self.repeat_counts.size)

    @property
    def run_values(self) -> np.ndarray:
        """Value of each run, inferred by alternation from ``first_value``."""
        parity = np.arange(self.n_runs) % 2 == 1
        return parity != self.first_value

    @property
    def has_missing(self) -> bool:
        return bool(np.issubdtype(self.run_lengths.dtype, np.floating) and np.isnan(self.run_lengths).any())


# ----------------------------
# Spindle detection output
# ----------------------------

@dataclass(frozen=True)
class SpindleEvent:
    """A single detected spindle spanning samples ``start_index..end_index``.

    ``start_index`` is the first above-threshold sample and ``end_index`` the
    first sample back below threshold, so the inclusive span runs one sample
    past the above-threshold run. ``amplitude``, ``phase``,
    ``median_amplitude`` and ``sum_phase`` cover that span. Detectors that
    slice directly on ``diff(mask)`` edge positions report the same start and
    end times but take these statistics one sample earlier, over
    ``start_index - 1 .. end_index - 1``.
    """

    index: int
    start_index: int
    end_index: int
    start_time: float
    end_time: float
    duration: float
    amplitude: np.ndarray
    phase: np.ndarray
    median_amplitude: float
    sum_phase: float
    n_cycles: float

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError("index must be 1-based")
        if self.end_index < self.start_index:
            raise ValueError("end_index must not precede start_index")
        object.__setattr__(self, "amplitude", _freeze_array(self.amplitude, ndim=1, dtype=np.float64))
        object.__setattr__(self, "phase", _freeze_array(self.phase, ndim=1, dtype=np.float64))

    @property
    def n_samples(self) -> int:
        return self.end_index - self.start_index + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "start_index": self.start_index,
            "end_index": self.end_index,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "median_amplitude": self.median_amplitude,
            "sum_phase": self.sum_phase,
            "n_cycles": self.n_cycles,
        }


@dataclass(frozen=True)
class SpindleResult:
    """Filtered waveform, envelope, final mask and the spindles found in it."""

    values: np.ndarray
    times: np.ndarray
    amplitude: np.ndarray
    phase: np.ndarray
    threshold: float
    spindle_mask: np.ndarray
    spindle_index: np.ndarray
    run_lengths: RunLengths
    events: Tuple[SpindleEvent, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        values = _freeze_array(self.values, ndim=1, dtype=np.float64)
        n = values.size
        arrays = {
            "times": _freeze_array(self.times, ndim=1, dtype=np.float64),
            "amplitude": _freeze_array(self.amplitude, ndim=1, dtype=np.float64),
            "phase": _freeze_array(self.phase, ndim=1, dtype=np.float64),
            "spindle_mask": _freeze_array(self.spindle_mask, ndim=1, dtype=bool),
            "spindle_index": _freeze_array(self.spindle_index, ndim=1, dtype=np.int64),
        }
        for name, arr in arrays.items():
            if arr.size != n:
                raise ValueError(f"{name} length {arr.size} does not match values length {n}")
        object.__setattr__(self, "values", values)
        for name, arr in arrays.items():
            object.__setattr__(self, name, arr)
        object.__setattr__(self, "threshold", float(self.threshold))
        object.__setattr__(self, "events", tuple(self.events))

    @property
    def n_spindles(self) -> int:
        return len(self.events)

    @property
    def start_times(self) -> np.ndarray:
        return np.array([e.start_time for e in self.events], dtype=np.float64)

    @property
    def end_times(self) -> np.ndarray:
        return np.array([e.end_time for e in self.events], dtype=np.float64)

    @property
    def durations(self) -> np.ndarray:
        return np.array([e.duration for e in self.events], dtype=np.float64)

    @property
    def median_amplitudes(self) -> np.ndarray:
        return np.array([e.median_amplitude for e in self.events], dtype=np.float64)

    @property
    def sum_phases(self) -> np.ndarray:
        return np.array([e.sum_phase for e in self.events], dtype=np.float64)

    @property
    def n_cycles(self) -> np.ndarray:
        return np.array([e.n_cycles for e in self.events], dtype=np.float64)

    def event_table(self) -> list[Dict[str, Any]]:
        return [event.to_dict() for event in self.events]


__all__ = ["RunLengths", "SpindleEvent", "SpindleResult"]
