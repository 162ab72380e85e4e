"""
Result writers for batch reports.

Two formats share one interface: a human-readable text report and a
JSON document. Non-finite loudness values (silence) are written as
"-inf" in text and null in JSON.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from trackprobe.analyzers.loudness.lufs import peak_to_dbtp
from trackprobe.core.models import AnalysisResult


class ResultWriter(ABC):
    """Abstract base class for result writers."""

    @abstractmethod
    def write(
        self,
        results: Dict[Path, AnalysisResult],
        output_path: Path,
        failed: Optional[Dict[Path, str]] = None
    ) -> None:
        """Write results (and optionally failures) to output_path."""


def _fmt(value: Optional[float], spec: str, unit: str = "") -> str:
    if value is None:
        return "n/a"
    if not math.isfinite(value):
        return f"{value}{unit}"
    return f"{value:{spec}}{unit}"


class TextResultWriter(ResultWriter):
    """Writes analysis results to a human-readable text file."""

    def __init__(self, include_timestamp: bool = True):
        self.include_timestamp = include_timestamp
        self.logger = logging.getLogger("result_writer.text")

    def write(
        self,
        results: Dict[Path, AnalysisResult],
        output_path: Path,
        failed: Optional[Dict[Path, str]] = None
    ) -> None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        failed = failed or {}

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write("=" * 70 + "\n")
            f.write("TRACKPROBE ANALYSIS RESULTS\n")
            f.write("=" * 70 + "\n")
            if self.include_timestamp:
                f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Files Analyzed: {len(results)}\n")
            if failed:
                f.write(f"Files Failed: {len(failed)}\n")
            f.write("=" * 70 + "\n\n")

            for file_path, result in results.items():
                f.write(format_result(Path(file_path), result))
                f.write("\n")

            if failed:
                f.write("-" * 70 + "\n")
                f.write("FAILED\n")
                f.write("-" * 70 + "\n")
                for file_path, error in failed.items():
                    f.write(f"{Path(file_path).name}: {error}\n")
                f.write("\n")

            f.write("=" * 70 + "\n")
            f.write("END OF REPORT\n")
            f.write("=" * 70 + "\n")

        self.logger.info(f"Results written to: {output_path}")


def format_result(file_path: Path, result: AnalysisResult) -> str:
    """Multi-line text block for one file."""
    lines = [
        "-" * 70,
        f"FILE: {file_path.name}",
        f"PATH: {file_path}",
        "-" * 70,
    ]
    if result.duration is not None:
        lines.append(f"Duration: {result.duration:.2f}s")
    if result.sample_rate is not None:
        lines.append(f"Sample Rate: {result.sample_rate} Hz")
    if not result.analyzed:
        lines.append("Unsupported or undecodable audio")
        return "\n".join(lines) + "\n"

    lines.append(f"Tempo: {_fmt(result.bpm, '.1f', ' BPM')}")
    if result.key:
        lines.append(f"Key: {result.key} ({result.camelot})")
    else:
        lines.append("Key: n/a")
    lines.append(f"Integrated Loudness: {_fmt(result.lufs_integrated, '.1f', ' LUFS')}")
    lines.append(f"True Peak: {_fmt(peak_to_dbtp(result.lufs_peak), '.1f', ' dBTP')}")
    lines.append(f"Dynamic Range: {_fmt(result.dynamic_range, '.1f', ' LU')}")
    return "\n".join(lines) + "\n"


def _json_safe(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class JSONResultWriter(ResultWriter):
    """Writes analysis results to a JSON file."""

    def __init__(self, indent: int = 2):
        self.indent = indent
        self.logger = logging.getLogger("result_writer.json")

    def write(
        self,
        results: Dict[Path, AnalysisResult],
        output_path: Path,
        failed: Optional[Dict[Path, str]] = None
    ) -> None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        output_data = {
            "generated": datetime.now().isoformat(),
            "total_files": len(results) + len(failed or {}),
            "results": {
                str(path): {k: _json_safe(v) for k, v in result.to_dict().items()}
                for path, result in results.items()
            },
            "failed": {str(path): error for path, error in (failed or {}).items()},
        }

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=self.indent, allow_nan=False)

        self.logger.info(f"Results written to: {output_path}")


def create_result_writer(format: str = "text", **kwargs) -> ResultWriter:
    """
    Factory function to create appropriate result writer.

    Args:
        format: Output format ("text" or "json")
        **kwargs: Additional arguments for the writer

    Raises:
        ValueError: Unknown format
    """
    writers = {
        "text": TextResultWriter,
        "txt": TextResultWriter,
        "json": JSONResultWriter,
    }

    writer_class = writers.get(format.lower())
    if writer_class is None:
        raise ValueError(f"Unknown format: {format}. Supported: {list(writers.keys())}")

    return writer_class(**kwargs)
