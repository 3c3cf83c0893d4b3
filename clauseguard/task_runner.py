"""Background task runner for structured analysis.

A bounded thread pool with single-flight de-duplication keyed by document id:
while a task for a document is queued or running, further submissions for the
same document return the existing future instead of starting a second one.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Tuple

from loguru import logger

from clauseguard.error_handling import TaskQueueFullError


class AnalysisTaskRunner:
    """Runs background jobs on a bounded pool, one in-flight job per key."""

    def __init__(self, max_workers: int = 4, queue_limit: int = 32):
        """Initialize the runner.

        Args:
            max_workers: Worker threads executing jobs
            queue_limit: Maximum queued + running jobs before submissions are refused
        """
        self.max_workers = max_workers
        self.queue_limit = queue_limit
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="analysis"
        )
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

        logger.info(
            "AnalysisTaskRunner initialized",
            max_workers=max_workers,
            queue_limit=queue_limit
        )

    def is_running(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def pending_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def submit(self, key: str, fn: Callable[..., Any], *args, **kwargs) -> Tuple[Future, bool]:
        """Submit ``fn`` under ``key``.

        Returns:
            Tuple of (future, created). ``created`` is False when a job for
            ``key`` was already in flight and its future is returned instead.

        Raises:
            TaskQueueFullError: If ``queue_limit`` jobs are already in flight
        """
        with self._lock:
            existing = self._in_flight.get(key)
            if existing is not None:
                logger.info(f"Task already in flight for {key}, joining it")
                return existing, False

            if len(self._in_flight) >= self.queue_limit:
                raise TaskQueueFullError(
                    f"Analysis queue is full ({self.queue_limit} tasks in flight)"
                )

            future = self._executor.submit(fn, *args, **kwargs)
            self._in_flight[key] = future

        future.add_done_callback(lambda done: self._release(key, done))
        logger.debug(f"Task submitted for {key}")
        return future, True

    def _release(self, key: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

        error = future.exception()
        if error is not None:
            logger.error(f"Background task for {key} raised: {error}")

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Shutting down AnalysisTaskRunner", wait=wait)
        self._executor.shutdown(wait=wait)
