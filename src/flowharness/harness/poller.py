"""Deadline-bounded waiting for background engine work.

:class:`ConditionPoller` keeps the engine's async executor running while
it re-evaluates a :class:`PollCondition` on a fixed interval.  A
``threading.Timer`` armed for ``max_wait`` expires a
:class:`CancellationToken` that the polling loop sleeps on, so the wait
ends promptly when the deadline fires instead of after the next interval.

Typical use from a test::

    poller = ConditionPoller(engine)
    poller.wait_until(
        PollCondition(jobs_available, "all jobs processed"),
        max_wait=5.0,
        poll_interval=0.1,
    )
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from flowharness.errors import DeadlineExceededError, PollConditionError, is_transient

logger = logging.getLogger(__name__)


class WaitOutcome(str, enum.Enum):
    """How a poll session ended."""

    SATISFIED = "satisfied"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class CancellationToken:
    """Wakes a sleeping poll loop.

    :meth:`expire` is reserved for the deadline timer; it marks the token
    expired and wakes the waiter.  :meth:`interrupt` only wakes the waiter,
    which then re-checks its exit conditions and keeps going.
    """

    def __init__(self) -> None:
        self._wake = threading.Event()
        self._expired = threading.Event()

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def expire(self) -> None:
        self._expired.set()
        self._wake.set()

    def interrupt(self) -> None:
        self._wake.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds.

        Returns:
            True if the sleep was cut short by :meth:`expire` or
            :meth:`interrupt`, False if the full interval elapsed.
        """
        woken = self._wake.wait(timeout)
        if woken:
            self._wake.clear()
        return woken


@dataclass(frozen=True)
class PollCondition:
    """A read-only probe of engine state.

    Attributes:
        pending: Returns True while the awaited work is still outstanding.
        description: Human-readable name used in logs and errors.
    """

    pending: Callable[[Any], bool]
    description: str = "condition"


class ConditionPoller:
    """Waits for background work on an engine under a hard deadline.

    Args:
        engine: The engine whose ``configuration.async_executor`` is driven.
        classifier: Decides which condition failures are transient.
            Transient failures count as "still pending"; anything else
            aborts the wait with :class:`PollConditionError`.
    """

    def __init__(
        self,
        engine: Any,
        classifier: Callable[[BaseException], bool] = is_transient,
    ) -> None:
        self._engine = engine
        self._classifier = classifier
        self._lock = threading.Lock()
        self._token: CancellationToken | None = None

    def interrupt(self) -> None:
        """Wake the current wait early.  Has no effect on its outcome."""
        with self._lock:
            token = self._token
        if token is not None:
            token.interrupt()

    def wait_until(
        self,
        condition: PollCondition | Callable[[Any], bool],
        max_wait: float,
        poll_interval: float,
        *,
        activate_executor: bool = False,
        shutdown_executor: bool = True,
    ) -> WaitOutcome:
        """Poll *condition* until nothing is pending or *max_wait* elapses.

        Args:
            condition: The probe, or a bare callable returning True while
                work is pending.
            max_wait: Deadline in seconds.
            poll_interval: Seconds between evaluations.
            activate_executor: Also set
                ``configuration.async_executor_activate`` for the duration,
                which lets the executor pick up due timers.
            shutdown_executor: Stop the async executor when the wait ends.
                Pass False to keep it running across several waits.

        Returns:
            ``WaitOutcome.SATISFIED``.

        Raises:
            DeadlineExceededError: The condition was still pending at the
                deadline.
            PollConditionError: The condition failed with a non-transient
                error.
        """
        if not isinstance(condition, PollCondition):
            condition = PollCondition(condition, getattr(condition, "__name__", "condition"))

        configuration = self._engine.configuration
        executor = configuration.async_executor
        previous_activate = configuration.async_executor_activate
        token = CancellationToken()
        timer = threading.Timer(max_wait, token.expire)
        timer.daemon = True

        if activate_executor:
            configuration.async_executor_activate = True
        try:
            executor.start()
            with self._lock:
                self._token = token
            timer.start()

            pending = True
            next_check = time.monotonic() + poll_interval
            while True:
                remaining = next_check - time.monotonic()
                if remaining > 0 and not token.expired:
                    token.wait(remaining)
                if not token.expired and time.monotonic() < next_check:
                    # Interrupted: sleep out the rest of the interval
                    continue
                # Runs once more after expiry
                pending = self._check(condition)
                if not pending or token.expired:
                    break
                next_check = time.monotonic() + poll_interval
            timer.cancel()

            if pending and token.expired:
                raise DeadlineExceededError(max_wait, condition.description)
            logger.debug("Condition %s satisfied", condition.description)
            return WaitOutcome.SATISFIED
        finally:
            timer.cancel()
            with self._lock:
                self._token = None
            if shutdown_executor:
                executor.shutdown()
            configuration.async_executor_activate = previous_activate

    def _check(self, condition: PollCondition) -> bool:
        """Evaluate *condition*; a transient failure counts as still pending."""
        try:
            return condition.pending(self._engine)
        except Exception as exc:
            if self._classifier(exc):
                logger.debug("Transient failure while checking %s: %s", condition.description, exc)
                return True
            raise PollConditionError(
                f"Checking {condition.description} failed: {exc}",
                description=condition.description,
            ) from exc

    def run_for(self, max_wait: float, poll_interval: float) -> WaitOutcome:
        """Keep the async executor running for *max_wait* seconds.

        Returns:
            ``WaitOutcome.DEADLINE_EXCEEDED``; running out the clock is the
            expected outcome.
        """
        executor = self._engine.configuration.async_executor
        token = CancellationToken()
        timer = threading.Timer(max_wait, token.expire)
        timer.daemon = True
        try:
            executor.start()
            with self._lock:
                self._token = token
            timer.start()
            while not token.expired:
                token.wait(poll_interval)
            return WaitOutcome.DEADLINE_EXCEEDED
        finally:
            timer.cancel()
            with self._lock:
                self._token = None
            executor.shutdown()


# ---------------------------------------------------------------------------
# Job helpers
# ---------------------------------------------------------------------------


def jobs_available(engine: Any) -> bool:
    """Return True while async jobs are waiting to be executed."""
    return bool(engine.management_service.jobs())


def jobs_or_executable_timers_available(engine: Any) -> bool:
    management = engine.management_service
    return bool(management.jobs()) or bool(management.timer_jobs(executable=True))


def wait_for_jobs(
    engine: Any,
    max_wait: float,
    poll_interval: float,
    shutdown_executor: bool = True,
) -> WaitOutcome:
    return ConditionPoller(engine).wait_until(
        PollCondition(jobs_available, "async jobs to finish"),
        max_wait,
        poll_interval,
        shutdown_executor=shutdown_executor,
    )


def wait_for_jobs_and_timers(
    engine: Any,
    max_wait: float,
    poll_interval: float,
    shutdown_executor: bool = True,
) -> WaitOutcome:
    """Wait for async jobs and due timers, activating timer acquisition."""
    return ConditionPoller(engine).wait_until(
        PollCondition(jobs_or_executable_timers_available, "jobs and due timers to finish"),
        max_wait,
        poll_interval,
        activate_executor=True,
        shutdown_executor=shutdown_executor,
    )


def wait_for_condition(
    engine: Any,
    max_wait: float,
    poll_interval: float,
    is_done: Callable[[], bool],
) -> WaitOutcome:
    """Wait until *is_done* returns True."""
    return ConditionPoller(engine).wait_until(
        PollCondition(lambda _engine: not is_done(), getattr(is_done, "__name__", "condition")),
        max_wait,
        poll_interval,
    )


def execute_executor_for(engine: Any, max_wait: float, poll_interval: float) -> WaitOutcome:
    return ConditionPoller(engine).run_for(max_wait, poll_interval)
