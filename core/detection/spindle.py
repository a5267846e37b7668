from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Tuple

import numpy as np

from analysis.metrics import (
    analytic_envelope,
    cycle_count,
    enforce_min_duration,
    median_threshold,
    phase_increments,
    spindle_edges,
    summed_phase,
)
from analysis.settings import DetectionSettings
from core.conditioning import SpindleFilterBank
from shared.models import RunLengths, SpindleEvent, SpindleResult
from .base import DetectorParameter, register_detector
from .run_length import logical_consecutive

logger = logging.getLogger(__name__)


def _validate_waveform(values: np.ndarray, times: np.ndarray) -> None:
    if values.ndim != 1 or times.ndim != 1:
        raise ValueError("values and times must be 1D")
    if values.size == 0:
        raise ValueError("values must not be empty")
    if values.size != times.size:
        raise ValueError(
            f"values and times must have the same length ({values.size} != {times.size})"
        )


def hysteresis_mask(mask, min_samples: int) -> Tuple[np.ndarray, RunLengths]:
    """Drop true runs shorter than ``min_samples``, then fill short false gaps.

    Returns the corrected mask and its run-length annotation.
    """
    arr = np.asarray(mask).astype(bool)
    runs = logical_consecutive(arr)
    arr = enforce_min_duration(arr, runs.run_lengths, min_samples, fill=False)
    runs = logical_consecutive(arr)
    arr = enforce_min_duration(arr, runs.run_lengths, min_samples, fill=True)
    return arr, logical_consecutive(arr)


@register_detector
class SpindleDetector:
    """Envelope threshold detector for 12-14 Hz sleep spindles.

    The envelope of the bandpassed signal is compared against a multiple of
    its median. Above-threshold runs shorter than ``min_length_s`` are
    discarded, then below-threshold gaps shorter than ``min_length_s`` are
    filled, and every complete run left is reported as one spindle.
    """

    name = "spindle_hysteresis"
    display_name = "Spindle Envelope (Hysteresis)"

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        *,
        bank: Optional[SpindleFilterBank] = None,
    ) -> None:
        self._settings = settings or DetectionSettings()
        self._bank = bank if bank is not None else SpindleFilterBank()
        self._params = {
            "min_length_s": DetectorParameter(
                name="min_length_s",
                default=0.5,
                min=0.0,
                max=5.0,
                help="Minimum spindle duration; also the longest gap that is bridged (s)",
            ),
            "threshold_factor": DetectorParameter(
                name="threshold_factor",
                default=2.0,
                min=0.5,
                max=10.0,
                help="Threshold multiplier (x * median amplitude)",
            ),
        }

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        return dict(self._params)

    @property
    def settings(self) -> DetectionSettings:
        return self._settings

    @property
    def filter_bank(self) -> SpindleFilterBank:
        return self._bank

    def configure(self, **params) -> None:
        updates = {}
        if "min_length_s" in params:
            updates["min_length_s"] = float(params["min_length_s"])
        if "threshold_factor" in params:
            updates["threshold_factor"] = float(params["threshold_factor"])
        if "band" in params:
            updates["band"] = params["band"]
        if updates:
            self._settings = self._settings.with_updates(**updates)

    def detect(self, values, times, sample_rate: float) -> SpindleResult:
        x = np.asarray(values, dtype=np.float64)
        t = np.asarray(times, dtype=np.float64)
        _validate_waveform(x, t)
        cfg = self._settings
        cfg.validate(sample_rate)

        fvalues, ftimes = self._bank.get(sample_rate, cfg.band).apply(x, t)
        amplitude, phase = analytic_envelope(fvalues)
        dphase = phase_increments(phase)
        threshold = median_threshold(amplitude, cfg.threshold_factor)
        min_samples = cfg.min_samples(sample_rate)

        mask, runs = hysteresis_mask(amplitude > threshold, min_samples)

        rising, falling = spindle_edges(mask)
        spindle_index = np.zeros(mask.size, dtype=np.int64)
        events: List[SpindleEvent] = []
        for number, (start, end) in enumerate(zip(rising.tolist(), falling.tolist()), start=1):
            spindle_index[start : end + 1] = number
            start_time = start / sample_rate
            end_time = end / sample_rate
            span = amplitude[start : end + 1]
            total_phase = summed_phase(dphase, start, end)
            events.append(
                SpindleEvent(
                    index=number,
                    start_index=start,
                    end_index=end,
                    start_time=start_time,
                    end_time=end_time,
                    duration=end_time - start_time,
                    amplitude=span,
                    phase=phase[start : end + 1],
                    median_amplitude=float(np.median(span)),
                    sum_phase=total_phase,
                    n_cycles=cycle_count(total_phase),
                )
            )

        logger.debug(
            "Spindle detection: threshold=%.6g, min_samples=%d, runs=%d, spindles=%d",
            threshold,
            min_samples,
            runs.n_runs,
            len(events),
        )
        return SpindleResult(
            values=fvalues,
            times=ftimes,
            amplitude=amplitude,
            phase=phase,
            threshold=threshold,
            spindle_mask=mask,
            spindle_index=spindle_index,
            run_lengths=runs,
            events=tuple(events),
        )


def spindle_stats(
    values,
    times,
    sample_rate: float,
    min_length_s: float,
    *,
    threshold_factor: float = 2.0,
    bank: Optional[SpindleFilterBank] = None,
) -> SpindleResult:
    """Detect spindles in one recording with default band settings."""
    settings = DetectionSettings(min_length_s=min_length_s, threshold_factor=threshold_factor)
    return SpindleDetector(settings, bank=bank).detect(values, times, sample_rate)


__all__ = ["SpindleDetector", "hysteresis_mask", "spindle_stats"]
