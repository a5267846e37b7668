"""
Unit tests for the spindle bandpass filter.

Filter correctness is checked quantitatively: in-band tones must pass close
to unity gain, out-of-band tones must be strongly attenuated, and the
delay compensation must keep values and times the same length.
"""
from __future__ import annotations

import numpy as np
import pytest
from scipy import signal

from core.conditioning import (
    BandpassSettings,
    SpindleBandpass,
    SpindleFilterBank,
    bandpass_response,
    estimate_remez_order,
    spindle_filter,
)
from test.fixtures.signal_generators import (
    find_power_at_frequency,
    make_sine,
    make_time_vector,
)


class TestOrderEstimate:
    def test_order_scales_with_sample_rate(self):
        cfg = BandpassSettings()
        edges = (cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz)
        low = estimate_remez_order(edges, cfg.deviations(), 200.0)
        high = estimate_remez_order(edges, cfg.deviations(), 400.0)
        assert low > 100
        assert abs(high - 2 * low) <= 3

    def test_edges_must_match_bands(self):
        with pytest.raises(ValueError):
            estimate_remez_order((11.0, 12.0, 14.0), (0.001, 0.05, 0.001), 200.0)

    def test_passband_deviation_from_ripple(self):
        stop1, passband, stop2 = BandpassSettings().deviations()
        assert stop1 == pytest.approx(1e-3)
        assert stop2 == pytest.approx(1e-3)
        assert passband == pytest.approx(0.0575, abs=1e-3)


class TestSettingsValidation:
    def test_defaults_valid(self):
        BandpassSettings().validate(200.0)

    def test_nonpositive_rate(self):
        with pytest.raises(ValueError):
            BandpassSettings().validate(0.0)

    def test_band_above_nyquist(self):
        with pytest.raises(ValueError):
            BandpassSettings().validate(25.0)

    def test_unordered_edges(self):
        with pytest.raises(ValueError):
            BandpassSettings(pass1_hz=10.0).validate(200.0)

    def test_filter_rejects_bad_settings(self):
        with pytest.raises(ValueError):
            SpindleBandpass(200.0, BandpassSettings(passband_ripple_db=0.0))


class TestDelayCompensation:
    def test_output_lengths(self, filter_bank, sample_rate):
        times = make_time_vector(10.0, sample_rate)
        values = make_sine(13.0, 1.0, 10.0, sample_rate)
        filt = filter_bank.get(sample_rate)

        out, out_times = filt.apply(values, times)

        assert out.size == out_times.size == values.size - filt.delay
        np.testing.assert_array_equal(out_times, times[: times.size - filt.delay])

    def test_delay_is_half_order(self, filter_bank, sample_rate):
        filt = filter_bank.get(sample_rate)
        assert filt.order == filt.taps.size - 1
        assert filt.delay == (filt.order + 1) // 2

    def test_delay_stable_across_calls(self, filter_bank, sample_rate):
        filt = filter_bank.get(sample_rate)
        times = make_time_vector(5.0, sample_rate)
        values = make_sine(12.5, 1.0, 5.0, sample_rate)
        first, _ = filt.apply(values, times)
        delay = filt.delay
        second, _ = filt.apply(values, times)
        assert filt.delay == delay
        np.testing.assert_array_equal(first, second)

    def test_compensated_output_is_in_phase(self, filter_bank, sample_rate):
        """After dropping the delay, a passband tone lines up with the input."""
        duration = 20.0
        times = make_time_vector(duration, sample_rate)
        values = make_sine(13.0, 1.0, duration, sample_rate)
        filt = filter_bank.get(sample_rate)

        out, out_times = filt.apply(values, times)

        steady = slice(filt.taps.size, out.size)
        reference = values[: values.size - filt.delay][steady]
        corr = np.corrcoef(out[steady], reference)[0, 1]
        assert corr > 0.95

    def test_too_short_signal_rejected(self, filter_bank, sample_rate):
        filt = filter_bank.get(sample_rate)
        n = filt.delay
        with pytest.raises(ValueError):
            filt.apply(np.zeros(n), np.arange(n) / sample_rate)

    def test_length_mismatch_rejected(self, filter_bank, sample_rate):
        filt = filter_bank.get(sample_rate)
        with pytest.raises(ValueError):
            filt.apply(np.zeros(1000), np.zeros(999))


class TestFrequencyResponse:
    @pytest.mark.parametrize("freq_hz", [12.5, 13.0, 13.5])
    def test_passband_preserved(self, filter_bank, sample_rate, freq_hz):
        duration = 20.0
        times = make_time_vector(duration, sample_rate)
        values = make_sine(freq_hz, 1.0, duration, sample_rate)
        filt = filter_bank.get(sample_rate)

        out, _ = filt.apply(values, times)
        steady = out[filt.taps.size :]
        reference = values[filt.taps.size : filt.taps.size + steady.size]

        change = abs(
            find_power_at_frequency(steady, sample_rate, freq_hz)
            - find_power_at_frequency(reference, sample_rate, freq_hz)
        )
        assert change < 3.0, f"{freq_hz}Hz changed by {change:.1f}dB"

    @pytest.mark.parametrize("freq_hz", [5.0, 8.0, 20.0, 30.0])
    def test_stopband_attenuated(self, filter_bank, sample_rate, freq_hz):
        duration = 20.0
        times = make_time_vector(duration, sample_rate)
        values = make_sine(freq_hz, 1.0, duration, sample_rate)
        filt = filter_bank.get(sample_rate)

        out, _ = filt.apply(values, times)
        steady = out[filt.taps.size :]
        reference = values[filt.taps.size : filt.taps.size + steady.size]

        attenuation = find_power_at_frequency(reference, sample_rate, freq_hz) - find_power_at_frequency(
            steady, sample_rate, freq_hz
        )
        assert attenuation >= 30.0, f"Expected >=30dB at {freq_hz}Hz, got {attenuation:.1f}dB"


def _band_magnitudes(taps, cfg: BandpassSettings, fs: float):
    freqs, response = signal.freqz(taps, worN=16 * taps.size, fs=fs)
    edges = np.array([cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz])
    _, edge_response = signal.freqz(taps, worN=edges, fs=fs)
    freqs = np.concatenate((freqs, edges))
    mag = np.abs(np.concatenate((response, edge_response)))
    return (
        mag[freqs <= cfg.stop1_hz],
        mag[(freqs >= cfg.pass1_hz) & (freqs <= cfg.pass2_hz)],
        mag[freqs >= cfg.stop2_hz],
    )


class TestDesignTargets:
    """The designed taps meet the attenuation and ripple they were asked for."""

    @pytest.fixture(params=[200.0, 250.0])
    def designed(self, request, filter_bank):
        return filter_bank.get(request.param)

    def test_stopbands_reach_attenuation(self, designed):
        cfg = designed.settings
        stop1, _, stop2 = _band_magnitudes(designed.taps, cfg, designed.sample_rate)
        atten1 = -20.0 * np.log10(stop1.max())
        atten2 = -20.0 * np.log10(stop2.max())
        assert atten1 >= cfg.stop1_atten_db, f"lower stopband only {atten1:.2f}dB"
        assert atten2 >= cfg.stop2_atten_db, f"upper stopband only {atten2:.2f}dB"

    def test_passband_ripple_within_limit(self, designed):
        cfg = designed.settings
        _, passband, _ = _band_magnitudes(designed.taps, cfg, designed.sample_rate)
        ripple = 20.0 * np.log10(passband.max() / passband.min())
        assert ripple <= cfg.passband_ripple_db, f"passband ripple {ripple:.3f}dB"

    def test_measured_response_agrees(self, designed):
        cfg = designed.settings
        stop1_db, ripple_db, stop2_db = bandpass_response(designed.taps, cfg, designed.sample_rate)
        assert cfg.is_met_by(stop1_db, ripple_db, stop2_db)
        assert ripple_db > 0.0

    def test_length_grows_past_estimate(self, designed):
        cfg = designed.settings
        estimate = estimate_remez_order(
            (cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz), cfg.deviations(), designed.sample_rate
        )
        assert designed.order > estimate

    def test_one_tap_shorter_misses_targets(self, designed):
        cfg = designed.settings
        fs = designed.sample_rate
        devs = cfg.deviations()
        shorter = signal.remez(
            designed.taps.size - 1,
            [0.0, cfg.stop1_hz, cfg.pass1_hz, cfg.pass2_hz, cfg.stop2_hz, fs / 2.0],
            [0.0, 1.0, 0.0],
            weight=[max(devs) / dev for dev in devs],
            fs=fs,
            maxiter=cfg.max_iterations,
        )
        assert not cfg.is_met_by(*bandpass_response(shorter, cfg, fs))

    def test_relaxed_settings_give_shorter_filter(self, filter_bank):
        relaxed = BandpassSettings(stop1_atten_db=40.0, stop2_atten_db=40.0, passband_ripple_db=3.0)
        loose = filter_bank.get(200.0, relaxed)
        assert loose.taps.size < filter_bank.get(200.0).taps.size
        assert relaxed.is_met_by(*bandpass_response(loose.taps, relaxed, 200.0))


class TestFilterBank:
    def test_same_rate_reuses_design(self):
        bank = SpindleFilterBank()
        first = bank.get(200.0)
        second = bank.get(200)
        assert first is second
        assert len(bank) == 1

    def test_rates_are_cached_separately(self):
        bank = SpindleFilterBank()
        a = bank.get(200.0)
        b = bank.get(250.0)
        assert a is not b
        assert a.sample_rate == 200.0
        assert b.sample_rate == 250.0
        assert len(bank) == 2

    def test_settings_are_part_of_key(self):
        bank = SpindleFilterBank()
        default = bank.get(200.0)
        wide = bank.get(200.0, BandpassSettings(stop1_hz=10.0, stop2_hz=16.0))
        assert default is not wide
        assert bank.get(200.0, BandpassSettings()) is default

    def test_clear(self):
        bank = SpindleFilterBank()
        bank.get(200.0)
        bank.clear()
        assert len(bank) == 0

    def test_spindle_filter_uses_bank(self, filter_bank, sample_rate):
        times = make_time_vector(5.0, sample_rate)
        values = make_sine(13.0, 1.0, 5.0, sample_rate)
        out, out_times = spindle_filter(values, times, sample_rate, bank=filter_bank)
        expected, _ = filter_bank.get(sample_rate).apply(values, times)
        np.testing.assert_array_equal(out, expected)
        assert out.size == out_times.size

    def test_taps_read_only(self, filter_bank, sample_rate):
        taps = filter_bank.get(sample_rate).taps
        with pytest.raises(ValueError):
            taps[0] = 0.0
