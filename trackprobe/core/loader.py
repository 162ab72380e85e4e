"""
Audio loader for trackprobe.

Reads a file from disk and turns it into a mono SampleBuffer: the
built-in WAV reader handles uncompressed RIFF/WAVE, and anything it
rejects goes to the generic decoder. A file that is readable but not
decodable still yields a LoadedAudio (with buffer=None) carrying
whatever duration and sample rate could be read.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from trackprobe.core.decoders import FallbackDecoder, GenericDecoder, read_audio_info
from trackprobe.core.models import SampleBuffer
from trackprobe.core.wav import decode_wav
from trackprobe.utils.config import get_default_config
from trackprobe.utils.errors import AudioLoadError, DecodeError

_AUDIO_DEFAULTS = get_default_config()["audio"]

PCM_EXTENSIONS = frozenset(_AUDIO_DEFAULTS["pcm_extensions"])
FALLBACK_EXTENSIONS = frozenset(_AUDIO_DEFAULTS["fallback_extensions"])
MAX_FILE_SIZE: int = _AUDIO_DEFAULTS["max_file_size"]

logger = logging.getLogger("loader")


@dataclass(frozen=True)
class LoadedAudio:
    """Outcome of loading one file."""

    buffer: Optional[SampleBuffer]
    duration: Optional[float]
    sample_rate: Optional[int]


class AudioLoader:
    """
    Loads audio files into SampleBuffers.

    Stateless apart from configuration, so one instance can serve any
    number of files.
    """

    def __init__(
        self,
        pcm_extensions: Iterable[str] = PCM_EXTENSIONS,
        fallback_extensions: Iterable[str] = FALLBACK_EXTENSIONS,
        max_file_size: int = MAX_FILE_SIZE,
        generic_decoder: Optional[GenericDecoder] = None,
    ):
        """
        Args:
            pcm_extensions: Suffixes tried with the built-in WAV reader first
            fallback_extensions: Suffixes this loader advertises as supported
                (every non-PCM suffix is still offered to the generic decoder)
            max_file_size: Files larger than this are refused
            generic_decoder: Decoder for everything the WAV reader rejects
        """
        self.pcm_extensions = frozenset(ext.lower() for ext in pcm_extensions)
        self.fallback_extensions = frozenset(ext.lower() for ext in fallback_extensions)
        self.max_file_size = max_file_size
        self.generic_decoder = generic_decoder or FallbackDecoder()

    @property
    def supported_extensions(self) -> frozenset:
        return self.pcm_extensions | self.fallback_extensions

    def is_supported(self, file_path: Path) -> bool:
        return Path(file_path).suffix.lower() in self.supported_extensions

    def load(self, file_path: Path) -> LoadedAudio:
        """
        Read and decode one file.

        Raises:
            AudioLoadError: The file cannot be read (missing, a directory,
                permission denied, or larger than max_file_size)
        """
        file_path = Path(file_path)
        data = self.read_bytes(file_path)

        buffer = self.decode(data, file_path.suffix.lower())
        if buffer is not None:
            return LoadedAudio(buffer, buffer.duration, buffer.sample_rate)

        duration, sample_rate = read_audio_info(data)
        logger.info(f"No decodable samples in {file_path.name}; duration={duration}")
        return LoadedAudio(None, duration, sample_rate)

    def read_bytes(self, file_path: Path) -> bytes:
        """Read the whole file, mapping OS failures to AudioLoadError."""
        try:
            file_size = file_path.stat().st_size
            if file_size > self.max_file_size:
                raise AudioLoadError(
                    f"File too large: {file_size / 1024 / 1024:.1f} MB. "
                    f"Maximum: {self.max_file_size / 1024 / 1024:.1f} MB",
                    file_path=str(file_path),
                )
            return file_path.read_bytes()
        except OSError as e:
            raise AudioLoadError(
                f"Cannot read audio file {file_path}: {e.strerror or e}",
                file_path=str(file_path),
            ) from e

    def decode(self, data: bytes, suffix: str = "") -> Optional[SampleBuffer]:
        """
        Decode bytes to a mono SampleBuffer, or None if nothing can.

        Never raises for malformed or unsupported data.
        """
        if suffix in self.pcm_extensions:
            buffer = decode_wav(data)
            if buffer is not None:
                return buffer
            logger.debug("WAV reader declined; trying generic decoder")

        try:
            decoded = self.generic_decoder.decode(data, suffix or None)
        except DecodeError as e:
            logger.info(f"Generic decoder failed: {e.message}")
            return None

        if decoded.sample_rate <= 0:
            return None
        return SampleBuffer(samples=decoded.to_mono(), sample_rate=decoded.sample_rate)


def create_audio_loader(config: Optional[Dict[str, Any]] = None) -> AudioLoader:
    """
    Factory function to create AudioLoader from configuration.

    Args:
        config: Optional full configuration dict (the "audio" section is used)

    Returns:
        AudioLoader: Configured loader instance
    """
    audio = (config or {}).get("audio", {})
    return AudioLoader(
        pcm_extensions=audio.get("pcm_extensions", PCM_EXTENSIONS),
        fallback_extensions=audio.get("fallback_extensions", FALLBACK_EXTENSIONS),
        max_file_size=audio.get("max_file_size", MAX_FILE_SIZE),
    )
