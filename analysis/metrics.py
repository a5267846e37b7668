"""Centralized metric computation functions for spindle analysis.

This module provides the signal processing kernels used by the spindle
detector:
- analytic_envelope: Instantaneous amplitude and wrapped phase via the Hilbert transform
- phase_increments: Sample-to-sample unwrapped phase change, padded to signal length
- median_threshold: Amplitude threshold as a multiple of the NaN-tolerant median
- enforce_min_duration: One hysteresis pass over a mask using its run lengths
- spindle_edges: Rising/falling edges of a mask with truncated boundary events removed
- summed_phase / cycle_count: Per-event phase accumulation
"""
import math
from typing import Tuple

import numpy as np
from scipy import signal


def analytic_envelope(x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    arr = np.asarray(x, dtype=np.float64)
    if arr.size == 0:
        return np.zeros(0, dtype=np.float64), np.zeros(0, dtype=np.float64)
    analytic = signal.hilbert(arr)
    return np.abs(analytic), np.angle(analytic)


def phase_increments(phase: np.ndarray) -> np.ndarray:
    arr = np.asarray(phase, dtype=np.float64)
    if arr.size == 0:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(([0.0], np.diff(np.unwrap(arr))))


def median_threshold(amplitude: np.ndarray, factor: float = 2.0) -> float:
    arr = np.asarray(amplitude, dtype=np.float64)
    if arr.size == 0 or not np.any(np.isfinite(arr)):
        return float("nan")
    return float(np.nanmedian(arr) * factor)


def enforce_min_duration(
    mask: np.ndarray,
    run_lengths: np.ndarray,
    min_samples: int,
    *,
    fill: bool,
) -> np.ndarray:
    """Flip samples whose run is shorter than ``min_samples``.

    ``fill=False`` clears short true runs; ``fill=True`` sets short false runs.
    """
    arr = np.array(mask, dtype=bool, copy=True)
    short = np.asarray(run_lengths) < min_samples
    if fill:
        arr[short & ~arr] = True
    else:
        arr[short & arr] = False
    return arr


def spindle_edges(mask: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Paired rising and falling edges of complete true runs.

    A rising edge is the first true sample of a run, a falling edge the first
    false sample after it. Runs touching either end of the mask are dropped.
    """
    arr = np.asarray(mask, dtype=np.int8)
    if arr.size < 2:
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty
    d = np.diff(arr)
    rising = np.flatnonzero(d == 1) + 1
    falling = np.flatnonzero(d == -1) + 1
    if rising.size == 0 or falling.size == 0:
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty
    if falling[0] < rising[0]:
        falling = falling[1:]
    if falling.size and falling[-1] < rising[-1]:
        rising = rising[:-1]
    n = min(rising.size, falling.size)
    return rising[:n].astype(np.int64), falling[:n].astype(np.int64)


def summed_phase(dphase: np.ndarray, start: int, end: int) -> float:
    return float(np.sum(np.asarray(dphase, dtype=np.float64)[start : end + 1]))


def cycle_count(sum_phase: float) -> float:
    return sum_phase / (2.0 * math.pi)


__all__ = [
    "analytic_envelope",
    "cycle_count",
    "enforce_min_duration",
    "median_threshold",
    "phase_increments",
    "spindle_edges",
    "summed_phase",
]
