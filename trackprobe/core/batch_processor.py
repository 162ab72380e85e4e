"""
Batch processor for analyzing multiple audio files.

Collects files from paths and directories, pushes them through an
AnalysisQueue and gathers the result/error events into a BatchResult.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from trackprobe.core.loader import FALLBACK_EXTENSIONS, PCM_EXTENSIONS, create_audio_loader
from trackprobe.core.models import AnalysisError, AnalysisResult
from trackprobe.core.scheduler import AnalysisQueue

ProgressCallback = Callable[[int, int, Path, Union[AnalysisResult, AnalysisError]], None]


@dataclass
class BatchResult:
    """Result of a batch processing operation."""
    successful: Dict[Path, AnalysisResult] = field(default_factory=dict)
    failed: Dict[Path, str] = field(default_factory=dict)
    total_files: int = 0
    total_time: float = 0.0

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def success_rate(self) -> float:
        """Success rate as percentage."""
        if self.total_files == 0:
            return 0.0
        return (self.success_count / self.total_files) * 100


class BatchProcessor:
    """
    Runs a set of audio files through an AnalysisQueue and waits for all of them.

    The request id of each file is its resolved path, so every file maps
    back to exactly one terminal event.
    """

    def __init__(
        self,
        queue: AnalysisQueue,
        extensions: Optional[Iterable[str]] = None,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Initialize batch processor.

        Args:
            queue: Scheduler that runs the analysis (dependency injection)
            extensions: File suffixes to collect from directories
            progress_callback: Optional callback(done, total, file_path, outcome)
                called as each file finishes
        """
        self.queue = queue
        self.extensions: Set[str] = {
            ext.lower() for ext in (extensions or PCM_EXTENSIONS | FALLBACK_EXTENSIONS)
        }
        self.progress_callback = progress_callback
        self.logger = logging.getLogger("batch_processor")

    def process(
        self,
        inputs: Union[Path, List[Path]],
        recursive: bool = False,
        timeout: Optional[float] = None
    ) -> BatchResult:
        """
        Process one or more audio files or directories.

        Args:
            inputs: Single path or list of paths (files or directories)
            recursive: If True, search directories recursively
            timeout: Give up waiting after this many seconds; unfinished
                files are reported as failed

        Returns:
            BatchResult containing all results and any errors
        """
        start_time = time.time()

        files = self.collect_files(inputs, recursive)
        if not files:
            self.logger.warning("No audio files found to process")
            return BatchResult(total_files=0, total_time=0.0)

        self.logger.info(f"Processing {len(files)} audio files")
        result = self._process_files(files, timeout)
        result.total_time = time.time() - start_time

        self.logger.info(
            f"Batch complete: {result.success_count}/{result.total_files} succeeded "
            f"in {result.total_time:.2f}s"
        )
        return result

    def collect_files(
        self,
        inputs: Union[Path, List[Path]],
        recursive: bool = False
    ) -> List[Path]:
        """Collect all audio files from inputs, sorted and de-duplicated."""
        if isinstance(inputs, (str, Path)):
            inputs = [inputs]

        files = []
        for path in inputs:
            path = Path(path)
            if path.is_file():
                if self._is_audio_file(path):
                    files.append(path.resolve())
                else:
                    self.logger.warning(f"Skipping non-audio file: {path}")
            elif path.is_dir():
                files.extend(self._scan_directory(path, recursive))
            else:
                self.logger.warning(f"Path not found: {path}")

        return sorted(set(files))

    def _scan_directory(self, directory: Path, recursive: bool) -> List[Path]:
        pattern = "**/*" if recursive else "*"
        return [
            path.resolve()
            for path in directory.glob(pattern)
            if path.is_file() and self._is_audio_file(path)
        ]

    def _is_audio_file(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def _process_files(self, files: List[Path], timeout: Optional[float]) -> BatchResult:
        result = BatchResult(total_files=len(files))
        by_request = {str(path): path for path in files}
        remaining = set(by_request)
        done = threading.Event()
        lock = threading.Lock()

        def record(outcome: Union[AnalysisResult, AnalysisError]) -> None:
            path = by_request.get(outcome.request_id)
            if path is None:
                return
            with lock:
                if outcome.request_id not in remaining:
                    return
                remaining.discard(outcome.request_id)
                if isinstance(outcome, AnalysisResult):
                    result.successful[path] = outcome
                    self.logger.debug(f"Successfully processed: {path}")
                else:
                    result.failed[path] = outcome.message
                    self.logger.error(f"Failed to process {path}: {outcome.message}")
                finished = len(files) - len(remaining)
                if not remaining:
                    done.set()

            if self.progress_callback:
                self.progress_callback(finished, len(files), path, outcome)

        unsubscribe = [self.queue.on("result", record), self.queue.on("error", record)]
        try:
            for request_id in by_request:
                self.queue.enqueue(request_id, request_id)
            if not done.wait(timeout):
                with lock:
                    for request_id in sorted(remaining):
                        result.failed[by_request[request_id]] = "Timed out waiting for analysis"
                    remaining.clear()
        finally:
            for off in unsubscribe:
                off()

        return result


def create_batch_processor(
    queue: AnalysisQueue,
    config: Optional[Dict[str, Any]] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> BatchProcessor:
    """
    Build a BatchProcessor that collects what the configured loader reads.

    Args:
        queue: Scheduler that runs the analysis
        config: Full configuration dict (the "audio" section is used)
        progress_callback: Optional callback(done, total, file_path, outcome)
    """
    loader = create_audio_loader(config)
    return BatchProcessor(queue, extensions=loader.supported_extensions, progress_callback=progress_callback)
