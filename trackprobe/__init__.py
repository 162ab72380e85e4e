"""
trackprobe - tempo, key and loudness analysis for audio libraries

Decodes audio files to mono PCM and estimates BPM, musical key (with
Camelot code) and BS.1770-4 loudness, running many files concurrently
in worker processes behind a priority queue.
"""

__version__ = "1.0.0"
