"""Tests for BatchProcessor."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from trackprobe.core.batch_processor import BatchProcessor, BatchResult, create_batch_processor
from trackprobe.core.models import AnalysisError, AnalysisResult
from trackprobe.core.scheduler import AnalysisQueue


def fake_task(message):
    if Path(message["path"]).stem.startswith("bad"):
        return AnalysisError(message["requestId"], "cannot read").to_message()
    return AnalysisResult.empty(message["requestId"], duration=1.0).to_message()


@pytest.fixture
def queue():
    pool = ThreadPoolExecutor(max_workers=2)
    yield AnalysisQueue(max_concurrent=2, executor=pool, task=fake_task)
    pool.shutdown(wait=True)


@pytest.fixture
def library(tmp_path):
    (tmp_path / "a.wav").write_bytes(b"")
    (tmp_path / "b.flac").write_bytes(b"")
    (tmp_path / "bad.mp3").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("not audio")
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "c.WAV").write_bytes(b"")
    return tmp_path


class TestCollectFiles:
    def test_flat_directory(self, queue, library):
        names = [p.name for p in BatchProcessor(queue).collect_files(library)]
        assert names == ["a.wav", "b.flac", "bad.mp3"]

    def test_recursive_directory(self, queue, library):
        names = {p.name for p in BatchProcessor(queue).collect_files(library, recursive=True)}
        assert names == {"a.wav", "b.flac", "bad.mp3", "c.WAV"}

    def test_explicit_files_and_duplicates(self, queue, library):
        files = BatchProcessor(queue).collect_files(
            [library / "a.wav", library / "a.wav", library / "notes.txt", library / "missing.wav"]
        )
        assert files == [(library / "a.wav").resolve()]

    def test_custom_extensions(self, queue, library):
        files = BatchProcessor(queue, extensions=[".FLAC"]).collect_files(library)
        assert [p.name for p in files] == ["b.flac"]

    def test_extensions_follow_audio_config(self, queue, library):
        (library / "take.snd").write_bytes(b"")
        config = {"audio": {"pcm_extensions": [".wav"], "fallback_extensions": [".snd"]}}
        files = create_batch_processor(queue, config).collect_files(library)
        assert [p.name for p in files] == ["a.wav", "take.snd"]

    def test_factory_defaults(self, queue, library):
        names = [p.name for p in create_batch_processor(queue).collect_files(library)]
        assert names == ["a.wav", "b.flac", "bad.mp3"]


class TestProcess:
    def test_splits_successes_and_failures(self, queue, library):
        result = BatchProcessor(queue).process([library], recursive=True)

        assert result.total_files == 4
        assert result.success_count == 3
        assert {p.name for p in result.failed} == {"bad.mp3"}
        assert result.failed[(library / "bad.mp3").resolve()] == "cannot read"
        assert result.success_rate == pytest.approx(75.0)
        assert result.total_time >= 0

    def test_progress_callback(self, queue, library):
        calls = []
        processor = BatchProcessor(
            queue, progress_callback=lambda done, total, path, outcome: calls.append((done, total))
        )
        processor.process(library)
        assert sorted(calls) == [(1, 3), (2, 3), (3, 3)]

    def test_no_files(self, queue, tmp_path):
        result = BatchProcessor(queue).process(tmp_path)
        assert result.total_files == 0
        assert result.success_rate == 0.0

    def test_timeout_marks_unfinished_as_failed(self, queue, library):
        queue.pause()
        result = BatchProcessor(queue).process(library / "a.wav", timeout=0.1)
        assert result.failure_count == 1
        assert "Timed out" in next(iter(result.failed.values()))

    def test_listeners_removed_afterwards(self, queue, library):
        BatchProcessor(queue).process(library)
        assert queue._listeners == {"result": [], "error": []}


class TestBatchResult:
    def test_empty(self):
        result = BatchResult()
        assert result.success_count == 0
        assert result.failure_count == 0
        assert result.success_rate == 0.0
