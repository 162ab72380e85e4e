"""
RIFF/WAVE reader for trackprobe.

Walks the chunk list of an in-memory WAV file, reads the format
descriptor, and converts the data chunk to normalized mono float32
samples. Every read is bounds-checked against the buffer; malformed or
unsupported input yields None rather than an exception, so the caller
can fall back to the generic decoder.
"""

import logging
import struct
from typing import Iterator, List, Optional, Tuple

import numpy as np

from trackprobe.core.models import SampleBuffer, WavChunk, WavFormat

logger = logging.getLogger("loader.wav")

RIFF_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
FMT_MIN_SIZE = 16
EXTENSIBLE_MIN_SIZE = 26
SUBFORMAT_OFFSET = 24

WAVE_FORMAT_PCM = 1
WAVE_FORMAT_IEEE_FLOAT = 3
WAVE_FORMAT_EXTENSIBLE = 0xFFFE

SUPPORTED_FORMAT_TAGS = (WAVE_FORMAT_PCM, WAVE_FORMAT_IEEE_FLOAT)

_CHUNK_HEADER = struct.Struct('<4sI')
_FMT_FIELDS = struct.Struct('<HHIIHH')


def is_wav_file(data: bytes) -> bool:
    """True if data starts with the ``RIFF....WAVE`` container header."""
    return (
        len(data) >= RIFF_HEADER_SIZE
        and data[0:4] == b'RIFF'
        and data[8:12] == b'WAVE'
    )


def _iter_chunks(data: bytes) -> Iterator[WavChunk]:
    offset = RIFF_HEADER_SIZE
    while offset + CHUNK_HEADER_SIZE <= len(data):
        tag, size = _CHUNK_HEADER.unpack_from(data, offset)
        data_offset = offset + CHUNK_HEADER_SIZE
        yield WavChunk(id=tag.decode('latin-1'), data_offset=data_offset, size=size)
        # chunks are word aligned
        offset = data_offset + size + (size & 1)


def parse_wav_chunks(data: bytes) -> Optional[List[WavChunk]]:
    """
    List every chunk in a WAV file.

    Returns None if data is not a RIFF/WAVE container. A chunk's
    ``data_offset`` points at its payload, just past the 8-byte header.
    """
    if not is_wav_file(data):
        return None
    return list(_iter_chunks(data))


def find_format_and_data(data: bytes) -> Optional[Tuple[WavFormat, WavChunk]]:
    """
    Locate and parse the ``fmt `` chunk and locate the ``data`` chunk.

    The walk stops as soon as both have been seen.
    """
    if not is_wav_file(data):
        return None

    fmt: Optional[WavFormat] = None
    data_chunk: Optional[WavChunk] = None
    for chunk in _iter_chunks(data):
        if chunk.id == 'fmt ' and fmt is None:
            fmt = parse_format_chunk(data, chunk)
            if fmt is None:
                return None
        elif chunk.id == 'data' and data_chunk is None:
            data_chunk = chunk
        if fmt is not None and data_chunk is not None:
            return fmt, data_chunk
    return None


def parse_format_chunk(data: bytes, chunk: WavChunk) -> Optional[WavFormat]:
    """
    Read the fields of a format descriptor.

    For WAVE_FORMAT_EXTENSIBLE the real format tag is the first two
    bytes of the sub-format GUID, 24 bytes into the descriptor. If the
    descriptor is too short to hold it the tag stays 0xFFFE, which
    callers treat as unsupported.
    """
    if chunk.size < FMT_MIN_SIZE or chunk.data_offset + FMT_MIN_SIZE > len(data):
        return None

    format_tag, channels, sample_rate, byte_rate, block_align, bit_depth = (
        _FMT_FIELDS.unpack_from(data, chunk.data_offset)
    )

    if (
        format_tag == WAVE_FORMAT_EXTENSIBLE
        and chunk.size >= EXTENSIBLE_MIN_SIZE
        and chunk.data_offset + EXTENSIBLE_MIN_SIZE <= len(data)
    ):
        (format_tag,) = struct.unpack_from('<H', data, chunk.data_offset + SUBFORMAT_OFFSET)

    return WavFormat(
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bit_depth=bit_depth,
    )


def _available_bytes(data: bytes, chunk: WavChunk) -> int:
    """Declared chunk size clamped to what the buffer actually holds."""
    return max(0, min(chunk.size, len(data) - chunk.data_offset))


def _read_samples(
    data: bytes, offset: int, count: int, fmt: WavFormat
) -> Optional[np.ndarray]:
    """Interleaved samples as float64 in [-1, 1], or None for unsupported depths."""
    if fmt.format_tag == WAVE_FORMAT_IEEE_FLOAT:
        if fmt.bit_depth != 32:
            return None
        return np.frombuffer(data, dtype='<f4', count=count, offset=offset).astype(np.float64)

    if fmt.bit_depth == 8:
        raw = np.frombuffer(data, dtype=np.uint8, count=count, offset=offset)
        return (raw.astype(np.float64) - 128.0) / 128.0
    if fmt.bit_depth == 16:
        raw = np.frombuffer(data, dtype='<i2', count=count, offset=offset)
        return raw.astype(np.float64) / 32768.0
    if fmt.bit_depth == 24:
        raw = np.frombuffer(data, dtype=np.uint8, count=count * 3, offset=offset)
        triples = raw.reshape(-1, 3).astype(np.int32)
        values = triples[:, 0] | (triples[:, 1] << 8) | (triples[:, 2] << 16)
        values = np.where(values & 0x800000, values - 0x1000000, values)
        return values.astype(np.float64) / 8388608.0
    if fmt.bit_depth == 32:
        raw = np.frombuffer(data, dtype='<i4', count=count, offset=offset)
        return raw.astype(np.float64) / 2147483648.0
    return None


def decode_wav(data: bytes) -> Optional[SampleBuffer]:
    """
    Decode an uncompressed WAV file to a mono SampleBuffer.

    Supports integer PCM at 8/16/24/32 bits and 32-bit IEEE float,
    including WAVE_FORMAT_EXTENSIBLE wrappers of either. Channels are
    averaged. Returns None for anything else; never raises on bad input.
    """
    located = find_format_and_data(data)
    if located is None:
        return None
    fmt, data_chunk = located

    if fmt.channels == 0 or fmt.sample_rate == 0:
        return None
    if fmt.format_tag not in SUPPORTED_FORMAT_TAGS:
        logger.debug(f"Unsupported WAV format tag {fmt.format_tag:#06x}")
        return None

    bytes_per_sample = (fmt.bit_depth + 7) // 8
    if bytes_per_sample == 0:
        return None

    frame_size = bytes_per_sample * fmt.channels
    available = _available_bytes(data, data_chunk)
    if available < data_chunk.size:
        logger.warning(
            f"WAV data chunk truncated: {available} of {data_chunk.size} bytes present"
        )
    frames = available // frame_size

    if frames == 0:
        interleaved: Optional[np.ndarray] = np.zeros(0, dtype=np.float64)
    else:
        interleaved = _read_samples(data, data_chunk.data_offset, frames * fmt.channels, fmt)
    if interleaved is None:
        logger.debug(f"Unsupported {fmt.bit_depth}-bit sample depth")
        return None

    mono = interleaved.reshape(frames, fmt.channels).mean(axis=1)
    return SampleBuffer(samples=mono.astype(np.float32), sample_rate=fmt.sample_rate)


def read_wav_info(data: bytes) -> Optional[Tuple[float, int]]:
    """
    Duration and sample rate from the WAV header alone.

    Works for any codec stored in a RIFF container (the byte rate field
    is enough), so it still answers when decode_wav gives up.
    """
    located = find_format_and_data(data)
    if located is None:
        return None
    fmt, data_chunk = located
    if fmt.sample_rate == 0 or fmt.byte_rate == 0:
        return None
    duration = _available_bytes(data, data_chunk) / fmt.byte_rate
    return duration, fmt.sample_rate
