"""Tests for AudioLoader and the generic decoders."""

import io
import struct
from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

from signals import build_wav, sine
from trackprobe.core.decoders import FallbackDecoder, SoundFileDecoder, read_audio_info
from trackprobe.core.loader import AudioLoader, create_audio_loader
from trackprobe.core.models import DecodedAudio
from trackprobe.utils.errors import AudioLoadError, DecodeError


def _flac_bytes(samples: np.ndarray, sample_rate: int) -> bytes:
    out = io.BytesIO()
    sf.write(out, samples, sample_rate, format="FLAC")
    return out.getvalue()


def _failing_decoder():
    decoder = MagicMock()
    decoder.name = "failing"
    decoder.decode.side_effect = DecodeError("cannot decode", decoder="failing")
    return decoder


class TestAudioLoader:
    def test_loads_wav(self, wav_file):
        path = wav_file("tone.wav", sine(440, 1.0, 44100, 0.5), 44100)
        loaded = AudioLoader().load(path)
        assert loaded.buffer is not None
        assert loaded.sample_rate == 44100
        assert loaded.duration == pytest.approx(1.0)

    def test_uppercase_extension(self, wav_file):
        path = wav_file("TONE.WAV", sine(440, 0.5, 44100, 0.5), 44100)
        assert AudioLoader().load(path).buffer is not None

    def test_flac_goes_through_generic_decoder(self, tmp_path):
        stereo = np.stack([sine(220, 1.0, 48000, 0.4), sine(330, 1.0, 48000, 0.4)], axis=1)
        path = tmp_path / "tone.flac"
        path.write_bytes(_flac_bytes(stereo, 48000))

        loaded = AudioLoader().load(path)
        assert loaded.buffer is not None
        assert loaded.sample_rate == 48000
        assert len(loaded.buffer) == 48000

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(AudioLoadError) as exc_info:
            AudioLoader().load(tmp_path / "missing.wav")
        assert "missing.wav" in exc_info.value.message

    def test_directory_raises(self, tmp_path):
        with pytest.raises(AudioLoadError):
            AudioLoader().load(tmp_path)

    def test_file_too_large_raises(self, wav_file):
        path = wav_file("big.wav", np.zeros(1000, dtype=np.float32))
        with pytest.raises(AudioLoadError, match="too large"):
            AudioLoader(max_file_size=100).load(path)

    def test_undecodable_file_returns_no_buffer(self, tmp_path):
        path = tmp_path / "noise.mp3"
        path.write_bytes(b"\x00\x01garbage" * 64)
        loaded = AudioLoader(generic_decoder=_failing_decoder()).load(path)
        assert loaded.buffer is None
        assert loaded.duration is None

    def test_unsupported_wav_codec_keeps_header_duration(self, tmp_path):
        fmt_body = struct.pack('<HHIIHH', 0x0055, 1, 44100, 16000, 1, 0)
        body = b"WAVE" + b"fmt " + struct.pack('<I', 16) + fmt_body
        body += b"data" + struct.pack('<I', 16000) + b"\xff" * 16000
        path = tmp_path / "compressed.wav"
        path.write_bytes(b"RIFF" + struct.pack('<I', len(body)) + body)

        loaded = AudioLoader(generic_decoder=_failing_decoder()).load(path)
        assert loaded.buffer is None
        assert loaded.duration == pytest.approx(1.0)
        assert loaded.sample_rate == 44100

    def test_corrupt_wav_falls_back_to_generic_decoder(self):
        fallback = MagicMock()
        fallback.decode.return_value = DecodedAudio(22050, [np.zeros(100, dtype=np.float32)])
        loader = AudioLoader(generic_decoder=fallback)

        buffer = loader.decode(b"RIFF\x00\x00\x00\x00WAVEjunk", ".wav")
        assert buffer is not None
        assert buffer.sample_rate == 22050
        fallback.decode.assert_called_once()

    def test_wav_reader_not_used_for_other_suffixes(self):
        fallback = MagicMock()
        fallback.decode.return_value = DecodedAudio(8000, [np.zeros(10, dtype=np.float32)])
        loader = AudioLoader(generic_decoder=fallback)

        buffer = loader.decode(build_wav(np.zeros(10, dtype=np.float32), 44100), ".flac")
        assert buffer.sample_rate == 8000

    def test_supported_extensions(self):
        loader = AudioLoader(pcm_extensions=[".WAV"], fallback_extensions=[".flac"])
        assert loader.is_supported("a.wav")
        assert loader.is_supported("b.FLAC")
        assert not loader.is_supported("c.txt")


class TestCreateAudioLoader:
    def test_defaults(self):
        loader = create_audio_loader()
        assert ".wav" in loader.pcm_extensions
        assert ".mp3" in loader.fallback_extensions

    def test_reads_audio_section(self):
        loader = create_audio_loader({"audio": {"max_file_size": 10, "pcm_extensions": [".wav"]}})
        assert loader.max_file_size == 10
        assert loader.pcm_extensions == frozenset({".wav"})


class TestGenericDecoders:
    def test_soundfile_decoder_splits_channels(self):
        stereo = np.stack([np.full(500, 0.5), np.full(500, -0.5)], axis=1).astype(np.float32)
        decoded = SoundFileDecoder().decode(_flac_bytes(stereo, 44100))
        assert decoded.sample_rate == 44100
        assert len(decoded.channel_buffers) == 2
        np.testing.assert_allclose(decoded.to_mono(), 0.0, atol=1e-3)

    def test_soundfile_decoder_rejects_garbage(self):
        with pytest.raises(DecodeError):
            SoundFileDecoder().decode(b"not audio at all" * 10)

    def test_fallback_tries_next_decoder(self):
        good = MagicMock()
        good.name = "good"
        good.decode.return_value = DecodedAudio(16000, [np.zeros(4, dtype=np.float32)])
        decoded = FallbackDecoder([_failing_decoder(), good]).decode(b"data", ".ogg")
        assert decoded.sample_rate == 16000

    def test_fallback_reports_every_failure(self):
        with pytest.raises(DecodeError, match="failing"):
            FallbackDecoder([_failing_decoder(), _failing_decoder()]).decode(b"data")

    def test_audio_info_from_flac_header(self):
        duration, rate = read_audio_info(_flac_bytes(sine(440, 2.0, 22050, 0.2), 22050))
        assert rate == 22050
        assert duration == pytest.approx(2.0)

    def test_audio_info_unknown_bytes(self):
        assert read_audio_info(b"\x00" * 64) == (None, None)
