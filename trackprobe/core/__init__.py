"""
Core module: data models, decoding, the analysis task and the scheduler.

Uses lazy imports for modules with heavy dependencies (librosa, scipy).
"""

# Models are lightweight - import directly
from trackprobe.core.models import (
    AnalysisError,
    AnalysisResult,
    DecodedAudio,
    KeyEstimate,
    LoudnessMeasurement,
    Priority,
    QueueItem,
    QueueStatus,
    SampleBuffer,
    WavChunk,
    WavFormat,
)

__all__ = [
    # Models (always available)
    "AnalysisError",
    "AnalysisResult",
    "DecodedAudio",
    "KeyEstimate",
    "LoudnessMeasurement",
    "Priority",
    "QueueItem",
    "QueueStatus",
    "SampleBuffer",
    "WavChunk",
    "WavFormat",
    # Heavy modules (lazy loaded)
    "AudioLoader",
    "create_audio_loader",
    "Analyzer",
    "BaseAnalyzer",
    "run_analysis_task",
    "AnalysisQueue",
    "create_analysis_queue",
    # Batch processing
    "BatchProcessor",
    "BatchResult",
    "ResultWriter",
    "TextResultWriter",
    "JSONResultWriter",
    "create_result_writer",
]


def __getattr__(name: str):
    """Lazy load modules with heavy dependencies."""
    if name in ("AudioLoader", "create_audio_loader"):
        from trackprobe.core.loader import AudioLoader, create_audio_loader
        return AudioLoader if name == "AudioLoader" else create_audio_loader
    elif name in ("Analyzer", "BaseAnalyzer"):
        from trackprobe.core.analyzer_base import Analyzer, BaseAnalyzer
        return Analyzer if name == "Analyzer" else BaseAnalyzer
    elif name == "run_analysis_task":
        from trackprobe.core.worker import run_analysis_task
        return run_analysis_task
    elif name in ("AnalysisQueue", "create_analysis_queue"):
        from trackprobe.core.scheduler import AnalysisQueue, create_analysis_queue
        return AnalysisQueue if name == "AnalysisQueue" else create_analysis_queue
    elif name in ("BatchProcessor", "BatchResult"):
        from trackprobe.core.batch_processor import BatchProcessor, BatchResult
        return BatchProcessor if name == "BatchProcessor" else BatchResult
    elif name in ("ResultWriter", "TextResultWriter", "JSONResultWriter", "create_result_writer"):
        from trackprobe.core import result_writer
        return getattr(result_writer, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
