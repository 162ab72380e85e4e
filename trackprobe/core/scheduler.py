"""
Bounded-concurrency analysis scheduler.

Requests wait in a pending list until a slot frees up, then run as
isolated tasks on an executor (a process pool by default). Every task
ends in exactly one ``result`` or ``error`` event delivered to the
subscribed listeners, whatever happens inside the executor.

All bookkeeping (pending list, running set, counters, listeners) is
guarded by one re-entrant lock. Completion callbacks run on executor
threads and take the same lock, so enqueue, pause, resume and
completion handling are serialized.
"""

import functools
import logging
import threading
from collections import deque
from dataclasses import replace
from concurrent.futures import BrokenExecutor, CancelledError, Executor, Future, ProcessPoolExecutor
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Union

from trackprobe.core.models import AnalysisError, AnalysisResult, Priority, QueueItem, QueueStatus
from trackprobe.core.worker import ANALYZE, run_analysis_task
from trackprobe.utils.errors import WorkerCrashError

RESULT_EVENT = "result"
ERROR_EVENT = "error"
EVENTS = (RESULT_EVENT, ERROR_EVENT)

Listener = Callable[[Any], None]
Task = Callable[[Dict[str, Any]], Dict[str, Any]]


class AnalysisQueue:
    """
    Runs analysis requests with at most ``max_concurrent`` in flight.

    Example:
        queue = AnalysisQueue(max_concurrent=4)
        queue.on("result", lambda result: print(result.bpm))
        queue.enqueue("track-1", "/music/a.wav")
        queue.enqueue("track-2", "/music/b.wav", priority="high")
        queue.join()
        queue.shutdown()
    """

    def __init__(
        self,
        max_concurrent: int = 2,
        executor: Optional[Executor] = None,
        task: Optional[Task] = None,
        executor_factory: Optional[Callable[[], Executor]] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            max_concurrent: Maximum number of tasks running at once
            executor: Executor to run tasks on. Not shut down by this queue
                unless executor_factory is also given.
            task: Picklable callable taking an ANALYZE message and returning
                a RESULT/ERROR message (defaults to run_analysis_task)
            executor_factory: Creates the executor lazily, again when a
                process pool breaks, and once per request rerun after a break
            config: Configuration passed to the default task
        """
        if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
            raise ValueError(f"max_concurrent must be a positive integer, got {max_concurrent!r}")

        self.max_concurrent = max_concurrent
        self.logger = logging.getLogger("scheduler")

        self._task = task or functools.partial(run_analysis_task, config=config)
        self._executor = executor
        if executor_factory is not None:
            self._executor_factory = executor_factory
            self._isolated_factory = executor_factory
            self._owns_executor = True
        elif executor is None:
            self._executor_factory = functools.partial(ProcessPoolExecutor, max_workers=max_concurrent)
            self._isolated_factory = functools.partial(ProcessPoolExecutor, max_workers=1)
            self._owns_executor = True
        else:
            self._executor_factory = None
            self._isolated_factory = None
            self._owns_executor = False
        self._isolated: Set[Executor] = set()

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._pending: Deque[QueueItem] = deque()
        self._running: Dict[str, QueueItem] = {}
        self._total = 0
        self._paused = False
        self._closed = False
        self._dispatching = False
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENTS}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(
        self,
        request_id: str,
        path: Union[str, Path],
        priority: Union[Priority, str] = Priority.NORMAL,
    ) -> None:
        """
        Add a request. High priority goes ahead of every pending normal item.

        Raises:
            ValueError: Unknown priority
            RuntimeError: The queue has been shut down
        """
        priority = Priority(priority)
        item = QueueItem(request_id=str(request_id), path=str(path), priority=priority)

        with self._lock:
            if self._closed:
                raise RuntimeError("AnalysisQueue has been shut down")
            if priority is Priority.HIGH:
                self._pending.insert(self._first_normal_index(), item)
            else:
                self._pending.append(item)
            self._total += 1
            self.logger.debug(
                f"Enqueued {item.request_id} ({priority.value}), pending={len(self._pending)}"
            )
            self._schedule()

    def pause(self) -> None:
        """Stop starting new tasks. Running tasks finish normally."""
        with self._lock:
            self._paused = True
            self.logger.info("Queue paused")
            self._idle.notify_all()

    def resume(self) -> None:
        """Start pending tasks again, filling every free slot."""
        with self._lock:
            self._paused = False
            self.logger.info("Queue resumed")
            self._schedule()

    @property
    def paused(self) -> bool:
        return self._paused

    def get_status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                pending=len(self._pending),
                running=len(self._running),
                total=self._total,
            )

    def on(self, event: str, callback: Listener) -> Callable[[], None]:
        """
        Subscribe to ``"result"`` (AnalysisResult) or ``"error"`` (AnalysisError).

        Returns:
            A callable that removes the subscription
        """
        self._check_event(event)
        with self._lock:
            self._listeners[event].append(callback)
        return lambda: self.off(event, callback)

    def off(self, event: str, callback: Listener) -> None:
        self._check_event(event)
        with self._lock:
            try:
                self._listeners[event].remove(callback)
            except ValueError:
                pass

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no task is running and nothing is waiting to start.

        While paused, pending items are not waited for.

        Returns:
            False if the timeout expired first
        """
        with self._idle:
            return self._idle.wait_for(self._is_idle, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Drop pending requests and release the executor."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            dropped = len(self._pending)
            self._pending.clear()
            executors = list(self._isolated)
            if self._owns_executor and self._executor is not None:
                executors.append(self._executor)
            self._idle.notify_all()

        if dropped:
            self.logger.warning(f"Shutdown dropped {dropped} pending requests")
        for executor in executors:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "AnalysisQueue":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _is_idle(self) -> bool:
        if self._running:
            return False
        return self._paused or self._closed or not self._pending

    def _first_normal_index(self) -> int:
        # High items stay FIFO among themselves, ahead of every normal item.
        for index, item in enumerate(self._pending):
            if item.priority is not Priority.HIGH:
                return index
        return len(self._pending)

    def _next_item(self) -> Optional[QueueItem]:
        # A request id already running stays pending until it finishes.
        for index, item in enumerate(self._pending):
            if item.request_id not in self._running:
                del self._pending[index]
                return item
        return None

    def _schedule(self) -> None:
        # Tasks that complete synchronously re-enter here from their done
        # callback; the outer loop picks up the freed slot instead.
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while not self._paused and not self._closed and len(self._running) < self.max_concurrent:
                item = self._next_item()
                if item is None:
                    break
                self._start(item)
        finally:
            self._dispatching = False

    def _start(self, item: QueueItem) -> None:
        message = {"type": ANALYZE, "requestId": item.request_id, "path": item.path}
        self._running[item.request_id] = item
        self.logger.debug(f"Starting {item.request_id}, running={len(self._running)}")
        if item.retried:
            self._start_isolated(item, message)
            return

        try:
            executor = self._get_executor()
            future = executor.submit(self._task, message)
        except BrokenExecutor as e:
            self.logger.warning(f"Executor broken, replacing it: {e}")
            self._replace_executor(self._executor)
            try:
                executor = self._get_executor()
                future = executor.submit(self._task, message)
            except Exception as retry_error:
                self._fail_to_start(item, retry_error)
                return
        except Exception as e:
            self._fail_to_start(item, e)
            return

        future.add_done_callback(functools.partial(self._on_task_done, item, executor))

    def _start_isolated(self, item: QueueItem, message: Dict[str, Any]) -> None:
        # A rerun gets an executor of its own, so a second crash only
        # fails this request.
        executor = None
        try:
            executor = self._isolated_factory()
            future = executor.submit(self._task, message)
        except Exception as e:
            if executor is not None:
                executor.shutdown(wait=False)
            self._fail_to_start(item, e)
            return

        self._isolated.add(executor)
        future.add_done_callback(functools.partial(self._on_isolated_done, item, executor))

    def _fail_to_start(self, item: QueueItem, error: BaseException) -> None:
        future: Future = Future()
        future.set_exception(error)
        self._on_task_done(item, None, future)

    def _get_executor(self) -> Executor:
        if self._executor is None:
            if self._executor_factory is None:
                raise RuntimeError("No executor available")
            self._executor = self._executor_factory()
        return self._executor

    def _replace_executor(self, broken: Optional[Executor]) -> None:
        if broken is None or broken is not self._executor or self._executor_factory is None:
            return
        self._executor = None
        broken.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _on_task_done(self, item: QueueItem, executor: Optional[Executor], future: Future) -> None:
        try:
            message = future.result()
        except CancelledError:
            message = AnalysisError(item.request_id, "Analysis task was cancelled").to_message()
        except BrokenExecutor as e:
            with self._lock:
                self._replace_executor(executor)
                if self._retry_after_crash(item, e):
                    return
            message = self._crash_message(item, e)
        except BaseException as e:
            # SystemExit or KeyboardInterrupt from the task still ends the request
            message = self._crash_message(item, e)

        with self._lock:
            self._running.pop(item.request_id, None)
            event, payload = self._to_event(item, message)
            self._emit(event, payload)
            self._schedule()
            self._idle.notify_all()

    def _on_isolated_done(self, item: QueueItem, executor: Executor, future: Future) -> None:
        try:
            self._on_task_done(item, None, future)
        finally:
            with self._lock:
                self._isolated.discard(executor)
            executor.shutdown(wait=False)

    def _retry_after_crash(self, item: QueueItem, error: BaseException) -> bool:
        """
        Put a request whose pool broke back at the front of the pending list.

        A dead worker breaks every task in a shared pool, so the innocent
        ones get one rerun. Only a request that breaks its rerun as well
        ends in an error. Called with the lock held.
        """
        if item.retried or self._closed or self._isolated_factory is None:
            return False

        self.logger.warning(f"Pool broke under {item.request_id} ({error}), rerunning it alone")
        self._running.pop(item.request_id, None)
        self._pending.appendleft(replace(item, retried=True))
        self._schedule()
        self._idle.notify_all()
        return True

    def _crash_message(self, item: QueueItem, error: BaseException) -> Dict[str, Any]:
        crash = WorkerCrashError(
            f"Analysis task crashed: {type(error).__name__}: {error}",
            request_id=item.request_id,
        )
        self.logger.error(str(crash))
        return AnalysisError(item.request_id, crash.message).to_message()

    def _to_event(self, item: QueueItem, message: Any):
        if not isinstance(message, dict):
            return ERROR_EVENT, AnalysisError(item.request_id, f"Malformed task reply: {message!r}")

        message = dict(message, requestId=item.request_id)
        kind = message.get("type")
        if kind == "RESULT":
            try:
                return RESULT_EVENT, AnalysisResult.from_message(message)
            except (KeyError, TypeError) as e:
                return ERROR_EVENT, AnalysisError(item.request_id, f"Malformed task reply: {e}")
        if kind == "ERROR":
            return ERROR_EVENT, AnalysisError.from_message(message)
        return ERROR_EVENT, AnalysisError(item.request_id, f"Unknown reply type: {kind!r}")

    def _emit(self, event: str, payload: Any) -> None:
        if event == ERROR_EVENT:
            self.logger.warning(f"{payload.request_id} failed: {payload.message}")
        else:
            self.logger.debug(f"{payload.request_id} finished")

        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:
                self.logger.exception(f"Listener for '{event}' raised")

    @staticmethod
    def _check_event(event: str) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}, expected one of {EVENTS}")


def create_analysis_queue(config: Optional[Dict[str, Any]] = None, **kwargs) -> AnalysisQueue:
    """
    Build an AnalysisQueue from the ``queue`` config section.

    Args:
        config: Full configuration dictionary
        **kwargs: Overrides passed to AnalysisQueue
    """
    from trackprobe.utils.config import get_default_config, validate_queue_config

    config = config or get_default_config()
    kwargs.setdefault("max_concurrent", validate_queue_config(config))
    kwargs.setdefault("config", config)
    return AnalysisQueue(**kwargs)
