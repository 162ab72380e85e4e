"""
Utility modules for configuration, logging, and error handling.
"""

from trackprobe.utils.errors import (
    TrackProbeError,
    AudioLoadError,
    DecodeError,
    AnalyzerError,
    ConfigurationError,
    WorkerCrashError,
)
from trackprobe.utils.logging import get_logger, setup_logging, JSONFormatter
from trackprobe.utils.config import ConfigManager, load_config

__all__ = [
    "TrackProbeError",
    "AudioLoadError",
    "DecodeError",
    "AnalyzerError",
    "ConfigurationError",
    "WorkerCrashError",
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "ConfigManager",
    "load_config",
]
