"""
Musical key estimation for trackprobe.

Chromagram + Krumhansl-Schmuckler profile correlation:
    1. Frame the signal (4096 samples, 2048 hop, Hann window)
    2. FFT each frame and fold magnitudes between 80 Hz and 4 kHz into
       12 pitch classes
    3. Sum the chroma over all frames
    4. Pearson-correlate against the major and minor profiles rotated to
       all 12 roots
    5. Report the best key and its Camelot code

Pitch classes run 0 = C, 1 = C#, ..., 11 = B (sharps only).
"""

from functools import lru_cache
from typing import List, Optional, Tuple

import librosa
import numpy as np

from trackprobe.core.analyzer_base import BaseAnalyzer
from trackprobe.core.models import KeyEstimate, SampleBuffer

# Krumhansl-Schmuckler profiles, tonic at index 0
MAJOR_PROFILE = np.array([6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88])
MINOR_PROFILE = np.array([6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17])
MAJOR_PROFILE.flags.writeable = False
MINOR_PROFILE.flags.writeable = False

NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']
MAJOR_NAMES = list(NOTE_NAMES)
MINOR_NAMES = [f"{note}m" for note in NOTE_NAMES]

# Camelot wheel: B = major, A = minor
CAMELOT = {
    'C': '8B', 'G': '9B', 'D': '10B', 'A': '11B', 'E': '12B', 'B': '1B',
    'F#': '2B', 'C#': '3B', 'G#': '4B', 'D#': '5B', 'A#': '6B', 'F': '7B',
    'Am': '8A', 'Em': '9A', 'Bm': '10A', 'F#m': '11A', 'C#m': '12A', 'G#m': '1A',
    'D#m': '2A', 'A#m': '3A', 'Fm': '4A', 'Cm': '5A', 'Gm': '6A', 'Dm': '7A',
}

FFT_SIZE = 4096
HOP_SIZE = FFT_SIZE // 2
FRAME_BATCH = 256
CHROMA_FREQ_MIN = 80.0
CHROMA_FREQ_MAX = 4000.0
C0_HZ = 16.3516
MIN_SECONDS = 2
SILENCE_THRESHOLD = 1e-6
CHROMA_FLOOR = 1e-10

_HANN = np.hanning(FFT_SIZE)
_HANN.flags.writeable = False


@lru_cache(maxsize=16)
def _chroma_bins(sample_rate: int) -> Tuple[np.ndarray, np.ndarray]:
    """FFT bin indices inside the chroma band, and the pitch class of each."""
    bins = np.arange(1, FFT_SIZE // 2)
    freqs = bins * (sample_rate / FFT_SIZE)
    in_band = (freqs >= CHROMA_FREQ_MIN) & (freqs <= CHROMA_FREQ_MAX)
    semitones = np.floor(12 * np.log2(freqs[in_band] / C0_HZ) + 0.5).astype(np.int64)
    pitch_classes = np.mod(semitones, 12)
    bins = bins[in_band]
    bins.flags.writeable = False
    pitch_classes.flags.writeable = False
    return bins, pitch_classes


def compute_chroma(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """12-bin chroma vector summed over every full frame of the signal."""
    chroma = np.zeros(12)
    samples = np.asarray(samples, dtype=np.float64)
    if len(samples) < FFT_SIZE:
        return chroma

    bins, pitch_classes = _chroma_bins(sample_rate)
    if bins.size == 0:
        return chroma

    frames = librosa.util.frame(samples, frame_length=FFT_SIZE, hop_length=HOP_SIZE, axis=0)
    magnitudes = np.zeros(bins.size)
    for start in range(0, frames.shape[0], FRAME_BATCH):
        spectrum = np.fft.rfft(frames[start:start + FRAME_BATCH] * _HANN, axis=1)
        magnitudes += np.abs(spectrum[:, bins]).sum(axis=0)

    return np.bincount(pitch_classes, weights=magnitudes, minlength=12)


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation; 0.0 when either input is constant."""
    dx = x - x.mean()
    dy = y - y.mean()
    denom = np.sqrt(np.dot(dx, dx) * np.dot(dy, dy))
    if denom < 1e-15:
        return 0.0
    return float(np.dot(dx, dy) / denom)


def rotate_profile(profile: np.ndarray, root: int) -> np.ndarray:
    """Profile re-rooted at pitch class root (index arithmetic, no mutation)."""
    return profile[(np.arange(12) - root) % 12]


def key_correlations(chroma: np.ndarray) -> List[Tuple[str, float]]:
    """Correlation of chroma with all 24 keys, in root order, major before minor."""
    correlations = []
    for root in range(12):
        correlations.append((MAJOR_NAMES[root], pearson(chroma, rotate_profile(MAJOR_PROFILE, root))))
        correlations.append((MINOR_NAMES[root], pearson(chroma, rotate_profile(MINOR_PROFILE, root))))
    return correlations


def estimate_key(samples: np.ndarray, sample_rate: int) -> Optional[KeyEstimate]:
    """
    Estimate the musical key.

    Args:
        samples: Mono samples in [-1, 1]
        sample_rate: Sample rate in Hz

    Returns:
        KeyEstimate (e.g. key="Am", camelot="8A"), or None for empty,
        silent, or shorter-than-two-second input.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0 or sample_rate <= 0:
        return None
    if np.mean(np.square(samples)) < SILENCE_THRESHOLD:
        return None
    if len(samples) < sample_rate * MIN_SECONDS:
        return None

    chroma = compute_chroma(samples, sample_rate)
    if chroma.sum() < CHROMA_FLOOR:
        return None

    best_key, best_corr = None, -np.inf
    # strict > keeps the first of equal scores
    for name, corr in key_correlations(chroma):
        if corr > best_corr:
            best_key, best_corr = name, corr

    camelot = CAMELOT.get(best_key)
    if camelot is None:
        return None
    return KeyEstimate(key=best_key, camelot=camelot)


class KeyAnalyzer(BaseAnalyzer[Optional[KeyEstimate]]):
    """Key name and Camelot code, or None when the key cannot be estimated."""

    def __init__(self):
        super().__init__("key", "1.0.0")

    def _analyze_impl(self, buffer: SampleBuffer) -> Optional[KeyEstimate]:
        return estimate_key(buffer.samples, buffer.sample_rate)
