from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import signal

logger = logging.getLogger(__name__)

# Frequency-grid points per tap when measuring a design.
_GRID_DENSITY = 32
# Longest design tried, as a multiple of the estimated length.
_MAX_LENGTH_GROWTH = 4


@dataclass(frozen=True)
class BandpassSettings:
    """Equiripple bandpass specification for the spindle band."""

    stop1_hz: float = 11.0
    pass1_hz: float = 12.0
    pass2_hz: float = 14.0
    stop2_hz: float = 15.0
    stop1_atten_db: float = 60.0
    passband_ripple_db: float = 1.0
    stop2_atten_db: float = 60.0
    max_iterations: int = 100

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def validate(self, sample_rate: float) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        nyquist = sample_rate / 2.0
        if not (0 < self.stop1_hz < self.pass1_hz < self.pass2_hz < self.stop2_hz):
            raise ValueError("band edges must satisfy 0 < stop1 < pass1 < pass2 < stop2")
        if self.stop2_hz >= nyquist:
            raise ValueError("stop2_hz must be below Nyquist")
        if self.stop1_atten_db <= 0 or self.stop2_atten_db <= 0:
            raise ValueError("stopband attenuation must be positive")
        if self.passband_ripple_db <= 0:
            raise ValueError("passband_ripple_db must be positive")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")

    def deviations(self) -> Tuple[float, float, float]:
        """Linear ripple per band: (stop1, pass, stop2)."""
        ripple = 10.0 ** (self.passband_ripple_db / 20.0)
        pass_dev = (ripple - 1.0) / (ripple + 1.0)
        return (
            10.0 ** (-self.stop1_atten_db / 20.0),
            pass_dev,
            10.0 ** (-self.stop2_atten_db / 20.0),
        )

    def is_met_by(self, stop1_db: float, ripple_db: float, stop2_db: float) -> bool:
        return (
            stop1_db >= self.stop1_atten_db
            and stop2_db >= self.stop2_atten_db
            and ripple_db <= self.passband_ripple_db
        )


def _transition_length(f1: float, f2: float, delta1: float, delta2: float) -> float:
    # Herrmann, Rabiner & Chan length estimate for a single transition band.
    # Frequencies are normalised to the sample rate.
    if delta1 < delta2:
        delta1, delta2 = delta2, delta1
    d1 = math.log10(delta1)
    d2 = math.log10(delta2)
    d_inf = (
        (5.309e-3 * d1 * d1 + 7.114e-2 * d1 - 4.761e-1) * d2
        + (-2.66e-3 * d1 * d1 - 5.941e-1 * d1 - 4.278e-1)
    )
    f_k = 11.01217 + 0.51244 * (d1 - d2)
    df = abs(f2 - f1)
    return d_inf / df - f_k * df + 1.0


def estimate_remez_order(edges_hz: Sequence[float], deviations: Sequence[float], sample_rate: float) -> int:
    """Minimum equiripple filter order meeting every transition band.

    ``edges_hz`` are the interior band edges (two per transition) and
    ``deviations`` the linear ripple of each band, so
    ``len(edges_hz) == 2 * (len(deviations) - 1)``.
    """
    if len(edges_hz) != 2 * (len(deviations) - 1):
        raise ValueError("edges_hz must hold two edges per transition band")
    norm = [float(f) / float(sample_rate) for f in edges_hz]
    length = 0.0
    for idx in range(len(deviations) - 1):
        length = max(
            length,
            _transition_length(norm[2 * idx], norm[2 * idx + 1], deviations[idx], deviations[idx + 1]),
        )
    return max(1, int(math.ceil(length)) - 1)


def bandpass_response(taps, settings: BandpassSettings, sample_rate: float) -> Tuple[float, float, float]:
    """Measured ``(stop1_atten_db, passband_ripple_db, stop2_atten_db)`` of ``taps``.

    Attenuation is taken at the worst point of each stopband, including its
    edge; ripple is the peak-to-peak passband gain variation.
    """
    taps = np.asarray(taps, dtype=np.float64)
    freqs, response = signal.freqz(taps, worN=_GRID_DENSITY * taps.size, fs=sample_rate)
    edge_freqs = np.array(
        [settings.stop1_hz, settings.pass1_hz, settings.pass2_hz, settings.stop2_hz], dtype=np.float64
    )
    _, edge_response = signal.freqz(taps, worN=edge_freqs, fs=sample_rate)
    freqs = np.concatenate((freqs, edge_freqs))
    mag = np.abs(np.concatenate((response, edge_response)))

    tiny = np.finfo(np.float64).tiny
    stop1 = mag[freqs <= settings.stop1_hz].max()
    stop2 = mag[freqs >= settings.stop2_hz].max()
    passband = mag[(freqs >= settings.pass1_hz) & (freqs <= settings.pass2_hz)]
    return (
        -20.0 * math.log10(max(stop1, tiny)),
        20.0 * math.log10(passband.max() / max(passband.min(), tiny)),
        -20.0 * math.log10(max(stop2, tiny)),
    )


class SpindleBandpass:
    """Causal equiripple FIR bandpass with group-delay compensation.

    The taps are designed once, on first use, and reused for every call. The
    length starts at the Herrmann estimate and grows to the shortest one whose
    measured response meets the stopband attenuation and passband ripple.
    """

    def __init__(self, sample_rate: float, settings: Optional[BandpassSettings] = None) -> None:
        self._settings = settings or BandpassSettings()
        self._settings.validate(sample_rate)
        self._sample_rate = float(sample_rate)
        self._lock = threading.Lock()
        self._taps: Optional[np.ndarray] = None

    @property
    def settings(self) -> BandpassSettings:
        return self._settings

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    @property
    def taps(self) -> np.ndarray:
        with self._lock:
            if self._taps is None:
                self._taps = self._design()
            return self._taps

    @property
    def order(self) -> int:
        return int(self.taps.size - 1)

    @property
    def delay(self) -> int:
        """Group delay in samples (half the filter order)."""
        return (self.order + 1) // 2

    def _remez(self, numtaps: int) -> np.ndarray:
        cfg = self._settings
        fs = self._sample_rate
        devs = cfg.deviations()
        peak = max(devs)
        taps = signal.remez(
            numtaps,
            [0.0, cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz, fs / 2.0],
            [0.0, 1.0, 0.0],
            weight=[peak / dev for dev in devs],
            fs=fs,
            maxiter=cfg.max_iterations,
        )
        return np.asarray(taps, dtype=np.float64)

    def _design(self) -> np.ndarray:
        # The Herrmann estimate is a lower bound in practice; grow the length
        # until the measured response meets the settings, then bisect back
        # down to the shortest length that does.
        cfg = self._settings
        fs = self._sample_rate
        start = estimate_remez_order(
            (cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz), cfg.deviations(), fs
        ) + 1
        limit = _MAX_LENGTH_GROWTH * start
        designs: Dict[int, np.ndarray] = {}

        def meets(numtaps: int) -> bool:
            taps = self._remez(numtaps)
            designs[numtaps] = taps
            return cfg.is_met_by(*bandpass_response(taps, cfg, fs))

        if meets(start):
            best = start
        else:
            low, step = start, max(1, start // 16)
            while True:
                high = min(low + step, limit)
                if high <= low:
                    raise ValueError(
                        f"no equiripple design up to {limit} taps meets the bandpass settings at sr={fs}"
                    )
                if meets(high):
                    break
                low, step = high, step * 2
            while high - low > 1:
                mid = (low + high) // 2
                if meets(mid):
                    high = mid
                else:
                    low = mid
            best = high

        taps = designs[best]
        taps.setflags(write=False)
        stop1_db, ripple_db, stop2_db = bandpass_response(taps, cfg, fs)
        logger.info(
            "Designed spindle bandpass: order=%d (estimate %d), delay=%d samples, sr=%s, "
            "stop=%.1f/%.1f dB, ripple=%.2f dB",
            taps.size - 1,
            start - 1,
            taps.size // 2,
            fs,
            stop1_db,
            stop2_db,
            ripple_db,
        )
        return taps

    def apply(self, values, times) -> Tuple[np.ndarray, np.ndarray]:
        """Filter ``values`` and realign ``times`` for the filter delay.

        Returns ``(filtered, adjusted_times)``; both are shorter than the input
        by ``delay`` samples.
        """
        x = np.asarray(values, dtype=np.float64)
        t = np.asarray(times, dtype=np.float64)
        if x.ndim != 1 or t.ndim != 1:
            raise ValueError("values and times must be 1D")
        if x.size != t.size:
            raise ValueError("values and times must have the same length")
        delay = self.delay
        if x.size <= delay:
            raise ValueError(
                f"signal of {x.size} samples is too short for a filter delay of {delay} samples"
            )
        filtered = signal.lfilter(self.taps, 1.0, x)
        return filtered[delay:], t[: t.size - delay]


class SpindleFilterBank:
    """Caller-owned cache of designed filters keyed by sample rate and settings."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._filters: Dict[Tuple[float, BandpassSettings], SpindleBandpass] = {}

    def get(self, sample_rate: float, settings: Optional[BandpassSettings] = None) -> SpindleBandpass:
        key = (float(sample_rate), settings or BandpassSettings())
        with self._lock:
            filt = self._filters.get(key)
            if filt is None:
                filt = SpindleBandpass(key[0], key[1])
                self._filters[key] = filt
                logger.debug("Filter bank miss for sr=%s; %d filters cached", key[0], len(self._filters))
            return filt

    def __len__(self) -> int:
        with self._lock:
            return len(self._filters)

    def clear(self) -> None:
        with self._lock:
            self._filters.clear()


def spindle_filter(
    values,
    times,
    sample_rate: float,
    *,
    settings: Optional[BandpassSettings] = None,
    bank: Optional[SpindleFilterBank] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Bandpass ``values`` to the spindle band, compensating the group delay."""
    bank = bank if bank is not None else SpindleFilterBank()
    return bank.get(sample_rate, settings).apply(values, times)


__all__ = [
    "BandpassSettings",
    "SpindleBandpass",
    "SpindleFilterBank",
    "bandpass_response",
    "estimate_remez_order",
    "spindle_filter",
]
