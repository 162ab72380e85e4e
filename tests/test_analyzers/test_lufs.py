"""Tests for BS.1770-4 loudness measurement."""

import math

import numpy as np
import pytest

from signals import sine
from trackprobe.analyzers.loudness.lufs import (
    LoudnessAnalyzer,
    block_mean_squares,
    compute_true_peak,
    measure_loudness,
    peak_to_dbtp,
    pre_filter_coefficients,
    rlb_filter_coefficients,
)
from trackprobe.core.models import SampleBuffer


class TestFilterCoefficients:
    def test_pre_filter_matches_48k_reference(self):
        b, a = pre_filter_coefficients(48000)
        np.testing.assert_allclose(b, [1.53512485958697, -2.69169618940638, 1.19839281085285], atol=1e-4)
        np.testing.assert_allclose(a, [1.0, -1.69065929318241, 0.73248077421585], atol=1e-4)

    def test_rlb_filter_matches_48k_reference(self):
        _, a = rlb_filter_coefficients(48000)
        np.testing.assert_allclose(a, [1.0, -1.99004745483398, 0.99007225036621], atol=1e-4)


class TestMeasureLoudness:
    def test_reference_sine(self):
        # 997 Hz at 0 dBFS reads -3.01 LKFS
        result = measure_loudness(sine(997, 5.0, 48000), 48000)
        assert result.integrated == pytest.approx(-3.01, abs=0.15)

    def test_sine_at_minus_14(self):
        result = measure_loudness(sine(1000, 5.0, 48000, amplitude=0.28), 48000)
        assert result.integrated == pytest.approx(-14.0, abs=2.0)

    @pytest.mark.parametrize("rate", [44100, 48000])
    def test_doubling_amplitude_adds_6_lu(self, rate):
        quiet = measure_loudness(sine(1000, 4.0, rate, amplitude=0.1), rate)
        loud = measure_loudness(sine(1000, 4.0, rate, amplitude=0.2), rate)
        assert loud.integrated - quiet.integrated == pytest.approx(6.02, abs=0.5)

    def test_silence(self):
        result = measure_loudness(np.zeros(48000 * 3), 48000)
        assert result.integrated == -math.inf
        assert result.true_peak == 0.0
        assert result.dynamic_range == 0.0

    def test_empty(self):
        result = measure_loudness(np.zeros(0), 48000)
        assert result.integrated == -math.inf
        assert result.dynamic_range == 0.0

    def test_shorter_than_one_block_still_reports_peak(self):
        result = measure_loudness(sine(1000, 0.2, 48000, amplitude=0.5), 48000)
        assert result.integrated == -math.inf
        assert result.true_peak == pytest.approx(0.5, abs=0.01)

    def test_below_absolute_gate(self):
        result = measure_loudness(sine(1000, 3.0, 48000, amplitude=1e-5), 48000)
        assert result.integrated == -math.inf
        assert result.true_peak > 0

    def test_relative_gate_ignores_quiet_passage(self):
        loud = sine(1000, 5.0, 48000, amplitude=0.5)
        quiet = sine(1000, 5.0, 48000, amplitude=0.005)
        alone = measure_loudness(loud, 48000).integrated
        mixed = measure_loudness(np.concatenate([loud, quiet]), 48000).integrated
        assert mixed == pytest.approx(alone, abs=0.5)

    def test_steady_tone_has_no_dynamic_range(self):
        result = measure_loudness(sine(1000, 5.0, 48000, amplitude=0.3), 48000)
        assert result.dynamic_range == pytest.approx(0.0, abs=0.2)

    def test_dynamic_range_of_two_levels(self):
        samples = np.concatenate([
            sine(1000, 5.0, 48000, amplitude=0.5),
            sine(1000, 5.0, 48000, amplitude=0.05),
        ])
        result = measure_loudness(samples, 48000)
        assert result.dynamic_range == pytest.approx(20.0, abs=2.0)

    def test_deterministic(self):
        rng = np.random.default_rng(3)
        samples = rng.normal(0, 0.1, 48000 * 2)
        assert measure_loudness(samples, 48000) == measure_loudness(samples, 48000)


class TestBlocks:
    def test_block_count(self):
        # 400 ms blocks every 100 ms over 1 s
        assert len(block_mean_squares(np.ones(48000), 48000)) == 7

    def test_too_short(self):
        assert block_mean_squares(np.ones(100), 48000).size == 0


class TestTruePeak:
    def test_never_below_sample_peak(self):
        rng = np.random.default_rng(11)
        samples = rng.uniform(-1, 1, 1000)
        assert compute_true_peak(samples) >= np.max(np.abs(samples))

    def test_constant(self):
        assert compute_true_peak(np.full(4, -0.5)) == pytest.approx(0.5)

    def test_single_sample(self):
        assert compute_true_peak(np.array([0.25])) == pytest.approx(0.25)

    def test_empty(self):
        assert compute_true_peak(np.zeros(0)) == 0.0

    def test_dbtp(self):
        assert peak_to_dbtp(1.0) == pytest.approx(0.0)
        assert peak_to_dbtp(0.5) == pytest.approx(-6.02, abs=0.01)
        assert peak_to_dbtp(0.0) == -math.inf


class TestLoudnessAnalyzer:
    def test_analyze(self):
        result = LoudnessAnalyzer().analyze(SampleBuffer(sine(1000, 2.0, 48000, 0.5), 48000))
        assert math.isfinite(result.integrated)
        assert 0.49 < result.true_peak <= 0.5
