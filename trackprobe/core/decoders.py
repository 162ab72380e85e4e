"""
Generic decoders for compressed and non-WAV containers.

The loader hands these the raw file bytes when the built-in WAV reader
does not apply. They return one float32 array per channel and raise
DecodeError when they cannot decode.
"""

import io
import logging
import os
import tempfile
from typing import List, Optional, Protocol, Sequence, Tuple

import librosa
import numpy as np
import soundfile as sf

from trackprobe.core.models import DecodedAudio
from trackprobe.core.wav import read_wav_info
from trackprobe.utils.errors import DecodeError

logger = logging.getLogger("loader.decoders")


class GenericDecoder(Protocol):
    """Anything that turns encoded bytes into per-channel float buffers."""

    name: str

    def decode(self, data: bytes, suffix: Optional[str] = None) -> DecodedAudio:
        """
        Raises:
            DecodeError: If the bytes cannot be decoded
        """
        ...


class SoundFileDecoder:
    """libsndfile via soundfile: FLAC, OGG/Vorbis, Opus, AIFF, MP3 (libsndfile >= 1.1)."""

    name = "soundfile"

    def decode(self, data: bytes, suffix: Optional[str] = None) -> DecodedAudio:
        try:
            frames, sample_rate = sf.read(io.BytesIO(data), dtype='float32', always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise DecodeError(
                f"soundfile could not decode data: {e}",
                decoder=self.name,
                original_error=e,
            ) from e

        return DecodedAudio(
            sample_rate=int(sample_rate),
            channel_buffers=[np.ascontiguousarray(frames[:, ch]) for ch in range(frames.shape[1])],
        )


class LibrosaDecoder:
    """
    librosa.load on a temporary copy of the bytes.

    librosa needs a real path to reach its audioread backends (ffmpeg,
    GStreamer, Core Audio), which cover MP3/AAC/M4A files that
    libsndfile cannot read. The suffix is kept so backends can sniff it.
    """

    name = "librosa"

    def decode(self, data: bytes, suffix: Optional[str] = None) -> DecodedAudio:
        fd, tmp_path = tempfile.mkstemp(suffix=suffix or "")
        try:
            with os.fdopen(fd, 'wb') as tmp:
                tmp.write(data)
            audio, sample_rate = librosa.load(tmp_path, sr=None, mono=False, dtype=np.float32)
        except Exception as e:
            # audioread backends raise a variety of unrelated exception types
            raise DecodeError(
                f"librosa could not decode data: {e}",
                decoder=self.name,
                original_error=e,
            ) from e
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning(f"Could not remove temporary file {tmp_path}")

        if audio.ndim == 1:
            buffers = [audio]
        else:
            buffers = [np.ascontiguousarray(channel) for channel in audio]
        return DecodedAudio(sample_rate=int(sample_rate), channel_buffers=buffers)


class FallbackDecoder:
    """Tries each decoder in turn and returns the first success."""

    name = "fallback"

    def __init__(self, decoders: Optional[Sequence[GenericDecoder]] = None):
        self.decoders: List[GenericDecoder] = list(
            decoders if decoders is not None else (SoundFileDecoder(), LibrosaDecoder())
        )

    def decode(self, data: bytes, suffix: Optional[str] = None) -> DecodedAudio:
        errors = []
        for decoder in self.decoders:
            try:
                decoded = decoder.decode(data, suffix)
            except DecodeError as e:
                logger.debug(f"{decoder.name} failed: {e.message}")
                errors.append(f"{decoder.name}: {e.message}")
                continue
            if decoded.sample_rate > 0:
                return decoded
            errors.append(f"{decoder.name}: invalid sample rate {decoded.sample_rate}")

        raise DecodeError(
            "No decoder could read the data; " + "; ".join(errors),
            decoder=self.name,
        )


def read_audio_info(data: bytes) -> Tuple[Optional[float], Optional[int]]:
    """
    Best-effort (duration, sample_rate) without decoding samples.

    Uses the WAV header when present, then soundfile's header parser.
    Either element may be None.
    """
    wav = read_wav_info(data)
    if wav is not None:
        return wav

    try:
        info = sf.info(io.BytesIO(data))
    except (RuntimeError, TypeError, ValueError) as e:
        logger.debug(f"Could not read duration: {e}")
        return None, None

    duration = float(info.duration) if info.frames > 0 else None
    return duration, int(info.samplerate) or None
