"""
Analysis task executed inside a worker process.

Receives: {"type": "ANALYZE", "requestId": str, "path": str}
Returns:  {"type": "RESULT", "requestId", "bpm", "key", "keyCamelot",
           "lufsIntegrated", "lufsPeak", "dynamicRange", "duration", "sampleRate"}
     or:  {"type": "ERROR", "requestId", "error": str}

Files that are readable but cannot be decoded get a RESULT with empty
analysis values, not an ERROR. Only read failures and unexpected
exceptions become ERROR replies.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from trackprobe.analyzers.loudness.lufs import LoudnessAnalyzer
from trackprobe.analyzers.musical.key import KeyAnalyzer
from trackprobe.analyzers.rhythmic.tempo import TempoAnalyzer
from trackprobe.core.loader import AudioLoader, create_audio_loader
from trackprobe.core.models import AnalysisError, AnalysisResult, SampleBuffer
from trackprobe.utils.errors import TrackProbeError
from trackprobe.utils.logging import create_logger_with_context

ANALYZE = "ANALYZE"


def analyze_buffer(request_id: str, buffer: SampleBuffer) -> AnalysisResult:
    """Run loudness, tempo and key analysis on one decoded buffer."""
    loudness = LoudnessAnalyzer().analyze(buffer)
    bpm = TempoAnalyzer().analyze(buffer)
    key = KeyAnalyzer().analyze(buffer)

    return AnalysisResult(
        request_id=request_id,
        bpm=bpm,
        key=key.key if key else None,
        camelot=key.camelot if key else None,
        lufs_integrated=loudness.integrated,
        lufs_peak=loudness.true_peak,
        dynamic_range=loudness.dynamic_range,
        duration=buffer.duration,
        sample_rate=buffer.sample_rate,
    )


def analyze_file(request_id: str, path: Path, loader: Optional[AudioLoader] = None) -> AnalysisResult:
    """
    Decode and analyze one file.

    Raises:
        AudioLoadError: The file cannot be read
        AnalyzerError: An analyzer failed unexpectedly
    """
    loader = loader or create_audio_loader()
    loaded = loader.load(path)
    if loaded.buffer is None:
        return AnalysisResult.empty(request_id, loaded.duration, loaded.sample_rate)
    return analyze_buffer(request_id, loaded.buffer)


def run_analysis_task(
    message: Dict[str, Any], config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Handle one ANALYZE message and return the reply message.

    Never raises: every failure is reported as an ERROR reply.
    """
    request_id = str(message.get("requestId", ""))
    log = create_logger_with_context("worker", {"request_id": request_id})

    if message.get("type") != ANALYZE:
        log.error(f"Unexpected message type: {message.get('type')!r}")
        return AnalysisError(request_id, f"Unexpected message type: {message.get('type')!r}").to_message()

    path = message.get("path")
    if not path:
        return AnalysisError(request_id, "ANALYZE message has no path").to_message()

    try:
        log.debug(f"Analyzing {path}")
        result = analyze_file(request_id, Path(path), create_audio_loader(config))
    except TrackProbeError as e:
        log.error(f"Analysis failed: {e}")
        return AnalysisError(request_id, e.message).to_message()
    except Exception as e:
        log.exception(f"Unexpected failure analyzing {path}")
        return AnalysisError(request_id, f"{type(e).__name__}: {e}").to_message()

    log.info(
        f"Analyzed {Path(path).name}: bpm={result.bpm} key={result.key} "
        f"lufs={result.lufs_integrated:.1f}"
    )
    return result.to_message()
