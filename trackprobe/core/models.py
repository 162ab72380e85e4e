"""
Core data models for trackprobe.

Immutable value types passed between the decoder, the analyzers, the
worker processes and the scheduler. Everything that crosses a process
boundary converts to and from plain dict messages.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass(frozen=True)
class SampleBuffer:
    """
    Mono PCM samples normalized to [-1.0, 1.0] plus their sample rate.

    Produced once per file by the loader and owned by the task that
    produced it. The array is flagged read-only on construction.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            raise ValueError(f"samples must be one-dimensional, got shape {samples.shape}")
        if samples.flags.writeable:
            samples = samples.copy() if samples is self.samples else samples
            samples.flags.writeable = False
        object.__setattr__(self, 'samples', samples)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return len(self) / self.sample_rate


@dataclass(frozen=True)
class WavChunk:
    """One RIFF chunk: tag, offset of its payload, and payload size."""

    id: str
    data_offset: int
    size: int


@dataclass(frozen=True)
class WavFormat:
    """Fields of a parsed ``fmt `` chunk."""

    format_tag: int  # 1 = PCM, 3 = IEEE float (extensible already resolved)
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bit_depth: int


@dataclass
class DecodedAudio:
    """Output of the generic decoder: one float array per channel."""

    sample_rate: int
    channel_buffers: List[np.ndarray] = field(default_factory=list)

    def to_mono(self) -> np.ndarray:
        """Average channels into one float32 array."""
        if not self.channel_buffers:
            return np.zeros(0, dtype=np.float32)
        if len(self.channel_buffers) == 1:
            return np.asarray(self.channel_buffers[0], dtype=np.float32)
        length = min(len(buf) for buf in self.channel_buffers)
        stacked = np.stack(
            [np.asarray(buf[:length], dtype=np.float64) for buf in self.channel_buffers]
        )
        return stacked.mean(axis=0).astype(np.float32)


@dataclass(frozen=True)
class KeyEstimate:
    """Detected key name (e.g. "Am", "F#") and its Camelot code (e.g. "8A")."""

    key: str
    camelot: str


@dataclass(frozen=True)
class LoudnessMeasurement:
    """BS.1770-4 loudness figures for one buffer."""

    integrated: float  # LUFS, -inf when gated to nothing
    true_peak: float  # linear, 1.0 = 0 dBTP
    dynamic_range: float  # LU, >= 0

    @classmethod
    def silent(cls, true_peak: float = 0.0) -> "LoudnessMeasurement":
        return cls(integrated=-math.inf, true_peak=true_peak, dynamic_range=0.0)


class Priority(str, Enum):
    """Queue priority. HIGH jumps to the front of the pending list."""

    HIGH = "high"
    NORMAL = "normal"


@dataclass(frozen=True)
class QueueItem:
    """A pending analysis request. ``retried`` marks a rerun after a pool crash."""

    request_id: str
    path: str
    priority: Priority = Priority.NORMAL
    retried: bool = False


@dataclass(frozen=True)
class QueueStatus:
    """Read-only snapshot of the scheduler counters."""

    pending: int
    running: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {'pending': self.pending, 'running': self.running, 'total': self.total}


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal success record for one request."""

    request_id: str
    bpm: Optional[float]
    key: Optional[str]
    camelot: Optional[str]
    lufs_integrated: float
    lufs_peak: float
    dynamic_range: float
    duration: Optional[float] = None
    sample_rate: Optional[int] = None

    @classmethod
    def empty(
        cls,
        request_id: str,
        duration: Optional[float] = None,
        sample_rate: Optional[int] = None,
    ) -> "AnalysisResult":
        """Result for a file that was read but could not be analyzed."""
        return cls(
            request_id=request_id,
            bpm=None,
            key=None,
            camelot=None,
            lufs_integrated=-math.inf,
            lufs_peak=0.0,
            dynamic_range=0.0,
            duration=duration,
            sample_rate=sample_rate,
        )

    @property
    def analyzed(self) -> bool:
        """True when at least one descriptor was produced."""
        return (
            self.bpm is not None
            or self.key is not None
            or math.isfinite(self.lufs_integrated)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'request_id': self.request_id,
            'bpm': self.bpm,
            'key': self.key,
            'camelot': self.camelot,
            'lufs_integrated': self.lufs_integrated,
            'lufs_peak': self.lufs_peak,
            'dynamic_range': self.dynamic_range,
            'duration': self.duration,
            'sample_rate': self.sample_rate,
        }

    def to_message(self) -> Dict[str, Any]:
        """Wire form sent from a worker back to the scheduler."""
        return {
            'type': 'RESULT',
            'requestId': self.request_id,
            'bpm': self.bpm,
            'key': self.key,
            'keyCamelot': self.camelot,
            'lufsIntegrated': self.lufs_integrated,
            'lufsPeak': self.lufs_peak,
            'dynamicRange': self.dynamic_range,
            'duration': self.duration,
            'sampleRate': self.sample_rate,
        }

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            request_id=message['requestId'],
            bpm=message.get('bpm'),
            key=message.get('key'),
            camelot=message.get('keyCamelot'),
            lufs_integrated=message.get('lufsIntegrated', -math.inf),
            lufs_peak=message.get('lufsPeak', 0.0),
            dynamic_range=message.get('dynamicRange', 0.0),
            duration=message.get('duration'),
            sample_rate=message.get('sampleRate'),
        )


@dataclass(frozen=True)
class AnalysisError:
    """Terminal failure record for one request."""

    request_id: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'request_id': self.request_id, 'message': self.message}

    def to_message(self) -> Dict[str, Any]:
        return {'type': 'ERROR', 'requestId': self.request_id, 'error': self.message}

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "AnalysisError":
        return cls(
            request_id=message['requestId'],
            message=str(message.get('error') or 'Unknown error'),
        )
