"""
ITU-R BS.1770-4 loudness measurement (LUFS / LKFS).

    1. K-weighting: high-shelf pre-filter followed by the RLB high-pass
    2. Mean-square energy of 400 ms blocks stepped by 100 ms
    3. Absolute gate at -70 LUFS
    4. Relative gate 10 LU below the mean of the absolute-gated blocks
    5. Integrated loudness = -0.691 + 10*log10(mean of surviving blocks)

Filter coefficients come from the bilinear transform of the analog
prototypes, so any sample rate matches the 48 kHz reference
coefficients of BS.1770-4 Annex 1 at its own rate.

True peak here is a linear-interpolation approximation, not the 4x
polyphase oversampler the standard describes.
"""

import math
from functools import lru_cache
from typing import Tuple

import numpy as np
from scipy.signal import lfilter

from trackprobe.core.analyzer_base import BaseAnalyzer
from trackprobe.core.models import LoudnessMeasurement, SampleBuffer

# High-shelf pre-filter
PRE_F0 = 1681.974450955533
PRE_GAIN_DB = 3.999843853973347
PRE_Q = 0.7071752369554196
PRE_VB_EXP = 0.4996667741545416

# RLB high-pass
RLB_F0 = 38.13547087602444
RLB_Q = 0.5003270373238773

BLOCK_SECONDS = 0.4
STEP_SECONDS = 0.1
LOUDNESS_OFFSET = -0.691
ABSOLUTE_GATE_LUFS = -70.0
RELATIVE_GATE_LU = -10.0
SOFT_PERCENTILE = 0.10
LOUD_PERCENTILE = 0.95
TRUE_PEAK_STEPS = 4

ABSOLUTE_GATE_MS = 10 ** ((ABSOLUTE_GATE_LUFS - LOUDNESS_OFFSET) / 10)

Coefficients = Tuple[Tuple[float, float, float], Tuple[float, float, float]]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def pre_filter_coefficients(sample_rate: int) -> Coefficients:
    """(b, a) of the high-shelf stage at this sample rate."""
    k = math.tan(math.pi * PRE_F0 / sample_rate)
    vh = 10 ** (PRE_GAIN_DB / 20)
    vb = vh ** PRE_VB_EXP
    a0 = 1 + k / PRE_Q + k * k
    b = (
        (vh + vb * k / PRE_Q + k * k) / a0,
        2 * (k * k - vh) / a0,
        (vh - vb * k / PRE_Q + k * k) / a0,
    )
    a = (1.0, 2 * (k * k - 1) / a0, (1 - k / PRE_Q + k * k) / a0)
    return b, a


def rlb_filter_coefficients(sample_rate: int) -> Coefficients:
    """(b, a) of the RLB high-pass stage at this sample rate."""
    k = math.tan(math.pi * RLB_F0 / sample_rate)
    a0 = 1 + k / RLB_Q + k * k
    b = (1 / a0, -2 / a0, 1 / a0)
    a = (1.0, 2 * (k * k - 1) / a0, (1 - k / RLB_Q + k * k) / a0)
    return b, a


@lru_cache(maxsize=16)
def k_weighting_coefficients(sample_rate: int) -> Tuple[Coefficients, Coefficients]:
    return pre_filter_coefficients(sample_rate), rlb_filter_coefficients(sample_rate)


def apply_k_weighting(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    (pre_b, pre_a), (rlb_b, rlb_a) = k_weighting_coefficients(sample_rate)
    shelved = lfilter(pre_b, pre_a, np.asarray(samples, dtype=np.float64))
    return lfilter(rlb_b, rlb_a, shelved)


def block_mean_squares(weighted: np.ndarray, sample_rate: int) -> np.ndarray:
    """Mean square of each 400 ms block, stepping 100 ms."""
    block_size = _round_half_up(sample_rate * BLOCK_SECONDS)
    step_size = max(1, _round_half_up(sample_rate * STEP_SECONDS))
    if block_size < 1 or len(weighted) < block_size:
        return np.zeros(0)

    starts = np.arange(0, len(weighted) - block_size + 1, step_size)
    squares = np.square(weighted)
    return np.array([squares[s:s + block_size].mean() for s in starts])


def mean_square_to_lufs(mean_square: float) -> float:
    if mean_square <= 0:
        return -math.inf
    return LOUDNESS_OFFSET + 10 * math.log10(mean_square)


def compute_true_peak(samples: np.ndarray) -> float:
    """Max |x| over samples and 1/4, 2/4, 3/4 linear interpolations between them."""
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return 0.0
    peak = float(np.max(np.abs(x)))
    if x.size > 1:
        left, right = x[:-1], x[1:]
        for k in range(1, TRUE_PEAK_STEPS):
            t = k / TRUE_PEAK_STEPS
            peak = max(peak, float(np.max(np.abs(left * (1 - t) + right * t))))
    return peak


def compute_dynamic_range(gated: np.ndarray) -> float:
    """Spread in LU between the 95th and 10th percentile blocks."""
    if len(gated) < 2:
        return 0.0
    ordered = np.sort(gated)
    n = len(ordered)
    soft = mean_square_to_lufs(float(ordered[max(0, math.floor(n * SOFT_PERCENTILE))]))
    loud = mean_square_to_lufs(float(ordered[min(n - 1, math.floor(n * LOUD_PERCENTILE))]))
    return max(0.0, loud - soft)


def measure_loudness(samples: np.ndarray, sample_rate: int) -> LoudnessMeasurement:
    """
    Measure integrated loudness, true peak and dynamic range.

    Returns:
        LoudnessMeasurement. integrated is -inf and dynamic_range 0 when
        the input is empty, shorter than one block, or gated to nothing;
        true_peak is still reported whenever samples are present.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0 or sample_rate <= 0:
        return LoudnessMeasurement.silent()

    true_peak = compute_true_peak(samples)

    blocks = block_mean_squares(apply_k_weighting(samples, sample_rate), sample_rate)
    if blocks.size == 0:
        return LoudnessMeasurement.silent(true_peak)

    absolute_gated = blocks[blocks >= ABSOLUTE_GATE_MS]
    if absolute_gated.size == 0:
        return LoudnessMeasurement.silent(true_peak)

    relative_gate = absolute_gated.mean() * 10 ** (RELATIVE_GATE_LU / 10)
    relative_gated = absolute_gated[absolute_gated >= relative_gate]
    if relative_gated.size == 0:
        return LoudnessMeasurement.silent(true_peak)

    return LoudnessMeasurement(
        integrated=mean_square_to_lufs(float(relative_gated.mean())),
        true_peak=true_peak,
        dynamic_range=compute_dynamic_range(absolute_gated),
    )


def peak_to_dbtp(true_peak: float) -> float:
    """Linear peak to dBTP (-inf for a zero peak)."""
    if true_peak <= 0:
        return -math.inf
    return 20 * math.log10(true_peak)


class LoudnessAnalyzer(BaseAnalyzer[LoudnessMeasurement]):
    """BS.1770-4 integrated loudness, true peak and dynamic range."""

    def __init__(self):
        super().__init__("loudness", "1.0.0")

    def _analyze_impl(self, buffer: SampleBuffer) -> LoudnessMeasurement:
        return measure_loudness(buffer.samples, buffer.sample_rate)
