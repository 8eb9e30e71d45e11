"""
Parallel Processing Utilities for RPKI Dash

Provides the bounded fan-out/fan-in used by every stage: a counting admission
gate, a thread pool sized to the gate, and a barrier that re-raises the first
fatal worker error.
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

from .error_handling import StageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 20


@dataclass
class TaskResult:
    """Result from one unit of work"""
    item: Any
    success: bool
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    duration: float = 0.0


@dataclass
class StageReport:
    """Outcome of one stage after its barrier"""
    stage: str
    submitted: int = 0
    completed: int = 0
    duration: float = 0.0
    outcomes: Counter = field(default_factory=Counter)
    results: List[TaskResult] = field(default_factory=list)


class AdmissionGate:
    """Fixed-capacity counting gate limiting in-flight work items"""

    def __init__(self, capacity: int = DEFAULT_MAX_WORKERS):
        if capacity < 1:
            raise ValueError(f"Admission gate capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    def acquire(self):
        """Take a slot, blocking while the gate is saturated"""
        self._semaphore.acquire()
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)

    def release(self):
        """Return a slot"""
        with self._lock:
            self._in_flight -= 1
        self._semaphore.release()

    @property
    def peak(self) -> int:
        """Highest number of simultaneously admitted items seen so far"""
        with self._lock:
            return self._peak


class StripedLock:
    """Fixed pool of locks keyed by record id"""

    def __init__(self, stripes: int = 64):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]


class BoundedExecutor:
    """Execute stage work items in parallel behind a shared admission gate"""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, show_progress: bool = False):
        """
        Initialize executor

        Args:
            max_workers: Admission gate capacity and thread pool size
            show_progress: Display progress indicators on stdout
        """
        self.max_workers = max_workers
        self.show_progress = show_progress
        self.gate = AdmissionGate(max_workers)
        self.logger = logging.getLogger(self.__class__.__name__)
        self._pool = ThreadPoolExecutor(max_workers=max_workers,
                                        thread_name_prefix="rpki-dash-worker")
        self._shutdown = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False  # Don't suppress exceptions

    def shutdown(self):
        """Stop the worker pool after in-flight items finish"""
        if not self._shutdown:
            self.logger.debug("Shutting down BoundedExecutor")
            self._shutdown = True
            self._pool.shutdown(wait=True)

    def run_stage(self,
                  items: Iterable[Any],
                  task_func: Callable,
                  stage_name: str = "Processing",
                  collect_results: bool = False,
                  **kwargs) -> StageReport:
        """
        Fan task_func out over items and block until every admitted item finished

        Each item takes a gate slot before it is submitted and gives it back
        when its task completes. Any exception escaping task_func is fatal:
        no further items are admitted, and once the in-flight items drain the
        first failure is raised as StageError.

        Args:
            items: Work items (lines, rows, records)
            task_func: Callable taking one item plus **kwargs
            stage_name: Description for logs and progress display
            collect_results: Keep every TaskResult (and its item) on the report
            **kwargs: Additional arguments for task_func

        Returns:
            StageReport; string results are tallied in report.outcomes
        """
        if self._shutdown:
            raise RuntimeError("BoundedExecutor has been shut down")

        report = StageReport(stage=stage_name)
        total = len(items) if hasattr(items, "__len__") else None
        abort = threading.Event()
        first_failure: List[TaskResult] = []
        # Guards the report counters, first_failure and pending
        tally = threading.Condition()
        pending = 0
        start_time = time.time()

        if self.show_progress:
            print(f"\n{stage_name} {total if total is not None else '?'} items "
                  f"with {self.max_workers} workers...")

        def record(result: TaskResult):
            nonlocal pending
            with tally:
                try:
                    report.completed += 1
                    if result.success and isinstance(result.result, str):
                        report.outcomes[result.result] += 1
                    if not result.success and not first_failure:
                        first_failure.append(result)
                    if collect_results:
                        report.results.append(result)
                    if self.show_progress:
                        self._show_progress(report.completed, total or report.submitted,
                                            result.success)
                finally:
                    pending -= 1
                    tally.notify_all()

        def run_one(item):
            try:
                result = self._execute_task(task_func, item, **kwargs)
                if not result.success:
                    # Set before the slot is returned so the submit loop sees it
                    abort.set()
                record(result)
            finally:
                self.gate.release()

        # Futures are not kept; a finished item is released as soon as it is tallied
        for item in items:
            if abort.is_set():
                break
            self.gate.acquire()
            if abort.is_set():
                self.gate.release()
                break
            with tally:
                pending += 1
                report.submitted += 1
            try:
                self._pool.submit(run_one, item)
            except RuntimeError:
                with tally:
                    pending -= 1
                    report.submitted -= 1
                self.gate.release()
                raise

        # Stage barrier
        with tally:
            tally.wait_for(lambda: pending == 0)

        report.duration = time.time() - start_time

        if self.show_progress:
            print()

        if first_failure:
            failed = first_failure[0]
            self.logger.error(f"{stage_name} aborted after {report.completed}/{report.submitted} "
                              f"items: {failed.error}")
            raise StageError(stage_name, failed.item, failed.error) from failed.error

        self.logger.debug(f"{stage_name}: {report.completed} items in {report.duration:.2f}s, "
                          f"peak in-flight {self.gate.peak}")
        return report

    def _execute_task(self, task_func: Callable, item: Any, **kwargs) -> TaskResult:
        """
        Execute single task, capturing any exception as a failed result

        Args:
            task_func: Function to execute
            item: Item to process
            **kwargs: Additional arguments for task_func

        Returns:
            TaskResult with execution details
        """
        start_time = time.time()

        try:
            result = task_func(item, **kwargs)
            return TaskResult(
                item=item,
                success=True,
                result=result,
                duration=time.time() - start_time
            )

        except Exception as e:
            self.logger.error(f"Task failed for {item!r}: {e}")
            return TaskResult(
                item=item,
                success=False,
                error=e,
                duration=time.time() - start_time
            )

    def _show_progress(self, completed: int, total: int, last_success: bool):
        """
        Display progress indicator

        Args:
            completed: Number of completed tasks
            total: Total number of tasks
            last_success: Whether last task succeeded
        """
        percentage = (completed / total) * 100 if total else 100.0
        bar_length = 40
        filled = int(bar_length * completed / total) if total else bar_length
        bar = '=' * filled + '-' * (bar_length - filled)

        status = "✓" if last_success else "✗"
        print(f"\r[{bar}] {percentage:.1f}% ({completed}/{total}) {status}", end='', flush=True)
