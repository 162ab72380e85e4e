"""
Tempo estimation for trackprobe.

Onset-strength autocorrelation:
    1. Mean-square energy over 10 ms frames at 50% hop (about 200 frames/s)
    2. Onset strength = half-wave rectified frame-to-frame energy delta
    3. Autocorrelate onsets over the lags for 60-200 BPM
    4. Subdivision check: a winning lag of three or two beat periods is
       traded for the single period (see _subdivided_lag)
    5. Convert the winning lag to BPM, one decimal
"""

import math
from typing import Optional, Tuple

import librosa
import numpy as np

from trackprobe.core.analyzer_base import BaseAnalyzer
from trackprobe.core.models import SampleBuffer

FRAME_MS = 10
HOP_FACTOR = 0.5
BPM_MIN = 60
BPM_MAX = 200
OCTAVE_CHECK_BPM = 105
MIN_SECONDS = 2
SILENCE_THRESHOLD = 1e-6
FRAME_BATCH = 4096


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def frame_params(sample_rate: int) -> Tuple[int, int]:
    """Frame and hop length in samples for the given rate."""
    frame_length = _round_half_up(FRAME_MS / 1000 * sample_rate)
    return frame_length, max(1, _round_half_up(frame_length * HOP_FACTOR))


def frame_energies(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """Mean-square energy of each 10 ms frame, hopping by half a frame."""
    frame_length, hop_length = frame_params(sample_rate)
    if frame_length < 1 or len(samples) < frame_length:
        return np.zeros(0)

    frames = librosa.util.frame(samples, frame_length=frame_length, hop_length=hop_length, axis=0)
    energies = np.empty(frames.shape[0])
    for start in range(0, frames.shape[0], FRAME_BATCH):
        block = frames[start:start + FRAME_BATCH]
        energies[start:start + len(block)] = np.mean(np.square(block), axis=1)
    return energies


def onset_strength(energies: np.ndarray) -> np.ndarray:
    onset = np.zeros_like(energies)
    onset[1:] = np.maximum(np.diff(energies), 0.0)
    return onset


def onset_autocorrelation(onset: np.ndarray, lag_min: int, lag_max: int) -> np.ndarray:
    """Autocorrelation for lag_min..lag_max, each normalized by its overlap."""
    n = len(onset)
    corr = np.zeros(lag_max - lag_min + 1)
    for i, lag in enumerate(range(lag_min, lag_max + 1)):
        count = n - lag
        if count > 0:
            corr[i] = np.dot(onset[:count], onset[lag:]) / count
    return corr


def _subdivided_lag(corr: np.ndarray, best_lag: int, divisor: int, lag_min: int, lag_max: int) -> int:
    # A fractional beat period splits the single-period peak across two
    # lags, while a multiple of the period can land on one lag and win.
    # Score floor and ceil of best_lag / divisor; any onset energy there
    # means the shorter period is real.
    best_sub_lag = -1
    best_sub_corr = 0.0
    for sub_lag in (best_lag // divisor, -(-best_lag // divisor)):
        if sub_lag < lag_min or sub_lag > lag_max:
            continue
        c = corr[sub_lag - lag_min]
        if c > best_sub_corr:
            best_sub_corr = c
            best_sub_lag = sub_lag
    if best_sub_lag >= 0 and best_sub_corr > 0:
        return best_sub_lag
    return best_lag


def estimate_tempo(samples: np.ndarray, sample_rate: int) -> Optional[float]:
    """
    Estimate tempo in BPM.

    Args:
        samples: Mono samples in [-1, 1]
        sample_rate: Sample rate in Hz

    Returns:
        BPM rounded to one decimal, or None for silence, input shorter
        than two seconds, or a signal with no periodic onsets.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0 or sample_rate <= 0:
        return None

    energies = frame_energies(samples, sample_rate)
    frame_rate = sample_rate / frame_params(sample_rate)[1]
    if len(energies) < frame_rate * MIN_SECONDS:
        return None
    if energies.mean() < SILENCE_THRESHOLD:
        return None

    onset = onset_strength(energies)

    lag_min = _round_half_up(60 / BPM_MAX * frame_rate)
    lag_max = _round_half_up(60 / BPM_MIN * frame_rate)
    corr = onset_autocorrelation(onset, lag_min, lag_max)

    best_idx = int(np.argmax(corr))
    if corr[best_idx] == 0:
        return None
    best_lag = best_idx + lag_min

    best_lag = _subdivided_lag(corr, best_lag, 3, lag_min, lag_max)
    if frame_rate * 60 / best_lag < OCTAVE_CHECK_BPM:
        best_lag = _subdivided_lag(corr, best_lag, 2, lag_min, lag_max)

    return round(float(frame_rate * 60 / best_lag), 1)


class TempoAnalyzer(BaseAnalyzer[Optional[float]]):
    """Tempo in BPM, or None when no tempo can be established."""

    def __init__(self):
        super().__init__("tempo", "1.0.0")

    def _analyze_impl(self, buffer: SampleBuffer) -> Optional[float]:
        return estimate_tempo(buffer.samples, buffer.sample_rate)
