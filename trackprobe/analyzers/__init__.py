"""
Analyzer implementations: tempo, key and loudness.
"""

from trackprobe.analyzers.loudness.lufs import LoudnessAnalyzer, measure_loudness
from trackprobe.analyzers.musical.key import KeyAnalyzer, estimate_key
from trackprobe.analyzers.rhythmic.tempo import TempoAnalyzer, estimate_tempo

__all__ = [
    "LoudnessAnalyzer",
    "KeyAnalyzer",
    "TempoAnalyzer",
    "measure_loudness",
    "estimate_key",
    "estimate_tempo",
]
