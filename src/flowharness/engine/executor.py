"""Background job executor.

The :class:`AsyncExecutor` runs on its own daemon thread and repeatedly
acquires executable jobs from the engine, executing each one through the
engine's command chain.  It is started and stopped by whoever owns the
engine; test tooling starts it while waiting for background work.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from flowharness.engine.errors import ObjectNotFoundError

if TYPE_CHECKING:
    from flowharness.engine.memory import InMemoryProcessEngine

logger = logging.getLogger(__name__)


class AsyncExecutor:
    """Polls for executable jobs on a worker thread.

    Async continuation jobs are always acquired.  Timer jobs are acquired
    once due, and only while ``configuration.async_executor_activate`` is
    set.

    Args:
        engine: The engine whose jobs are executed.
        poll_interval: Seconds between acquisition rounds.
    """

    def __init__(self, engine: InMemoryProcessEngine, poll_interval: float = 0.05) -> None:
        self._engine = engine
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread.  Calling it on a running executor is a no-op."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            # One stop event per worker thread
            stop = threading.Event()
            self._stop = stop
            self._thread = threading.Thread(
                target=self._run,
                args=(stop,),
                name=f"async-executor-{self._engine.name}",
                daemon=True,
            )
            self._thread.start()
        logger.debug("Async executor started for engine '%s'", self._engine.name)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the worker thread and wait for it to finish its current round."""
        with self._lock:
            thread = self._thread
            self._thread = None
            stop, self._stop = self._stop, None
        if stop is not None:
            stop.set()
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning(
                "Async executor for engine '%s' did not stop within %.1fs",
                self._engine.name,
                timeout,
            )
        else:
            logger.debug("Async executor stopped for engine '%s'", self._engine.name)

    def process_available_jobs(self, stop: threading.Event | None = None) -> int:
        """Execute every job that is executable right now.

        Args:
            stop: Abandon the round once this event is set.

        Returns:
            The number of jobs that completed successfully.
        """
        management = self._engine.management_service
        include_timers = self._engine.configuration.async_executor_activate
        executed = 0
        for job_id in management.executable_job_ids(include_timers=include_timers):
            if stop is not None and stop.is_set():
                break
            try:
                management.execute_job(job_id)
            except ObjectNotFoundError:
                # Deleted between acquisition and execution
                continue
            except Exception as exc:
                logger.warning("Job '%s' failed: %s", job_id, exc)
                continue
            executed += 1
        return executed

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self._poll_interval):
            try:
                self.process_available_jobs(stop)
            except Exception:
                logger.exception("Async executor round failed")
