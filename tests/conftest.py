"""Shared fixtures for trackprobe tests."""

import numpy as np
import pytest

from signals import build_wav
from trackprobe.core.models import SampleBuffer


@pytest.fixture
def silence_buffer():
    """Five seconds of digital silence at 44.1 kHz."""
    return SampleBuffer(np.zeros(5 * 44100, dtype=np.float32), 44100)


@pytest.fixture
def wav_file(tmp_path):
    """Factory writing a WAV built by build_wav to tmp_path."""
    def _write(name: str, samples: np.ndarray, sample_rate: int = 44100, **kwargs):
        path = tmp_path / name
        path.write_bytes(build_wav(samples, sample_rate, **kwargs))
        return path
    return _write
