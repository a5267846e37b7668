from __future__ import annotations

import numpy as np

from shared.models import RunLengths


def run_boundaries(mask) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(starts, stops)`` of every run in ``mask``; stops are exclusive."""
    arr = np.asarray(mask).astype(bool, copy=False)
    if arr.ndim != 1:
        raise ValueError("mask must be 1D")
    if arr.size == 0:
        raise ValueError("mask must not be empty")
    changes = np.flatnonzero(arr[1:] != arr[:-1]) + 1
    starts = np.concatenate(([0], changes)).astype(np.int64)
    stops = np.concatenate((changes, [arr.size])).astype(np.int64)
    return starts, stops


def logical_consecutive(mask, ends_as_missing: bool = False) -> RunLengths:
    """Annotate every sample of a boolean mask with the length of its run.

    With ``ends_as_missing`` the first and last run are reported as NaN, since
    a recording that starts or stops mid-run does not show their true length.

    >>> rl = logical_consecutive([0, 0, 0, 1, 1, 1, 1, 0, 0, 0, 0, 0, 1, 1, 1, 0, 0, 1])
    >>> rl.repeat_counts.tolist()
    [3, 4, 5, 3, 2, 1]
    """
    arr = np.asarray(mask).astype(bool, copy=False)
    starts, stops = run_boundaries(arr)
    counts = stops - starts
    per_sample = np.repeat(counts, counts)

    if ends_as_missing:
        counts = counts.astype(np.float64)
        per_sample = per_sample.astype(np.float64)
        per_sample[: stops[0]] = np.nan
        per_sample[starts[-1]:] = np.nan
        counts[[0, -1]] = np.nan

    return RunLengths(first_value=bool(arr[0]), run_lengths=per_sample, repeat_counts=counts)


__all__ = ["logical_consecutive", "run_boundaries"]
