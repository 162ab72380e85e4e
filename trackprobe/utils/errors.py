"""
Custom exceptions for trackprobe.

This module defines a hierarchy of exceptions for the conditions that
can surface from loading, decoding, analyzing and scheduling. Numeric
edge cases (silence, empty or short buffers) are not errors and never
raise; only I/O, configuration and execution-context failures do.
"""

from typing import Any, Optional


class TrackProbeError(Exception):
    """Base exception for all trackprobe errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class AudioLoadError(TrackProbeError):
    """Raised when an audio file cannot be read from disk."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path


class DecodeError(TrackProbeError):
    """Raised by the generic decoder when it cannot produce samples."""

    def __init__(
        self,
        message: str,
        decoder: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.decoder = decoder
        self.original_error = original_error
        self.details = {
            "decoder": decoder,
            "original_error": str(original_error) if original_error else None,
        }


class AnalyzerError(TrackProbeError):
    """Raised when an analyzer fails unexpectedly."""

    def __init__(
        self,
        message: str,
        analyzer_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.analyzer_name = analyzer_name
        self.original_error = original_error
        self.details = {
            "analyzer_name": analyzer_name,
            "original_error": str(original_error) if original_error else None,
        }


class ConfigurationError(TrackProbeError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key
        self.details = {"config_key": config_key}


class WorkerCrashError(TrackProbeError):
    """Raised (or synthesized) when an analysis worker dies mid-task."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        self.request_id = request_id
        self.details = {"request_id": request_id}
