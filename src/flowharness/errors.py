"""Error hierarchy for the test harness.

Harness errors describe why a test could not be supervised to completion:
a wait that ran out of time, a condition that blew up, or an engine left
in a dirty state.  :func:`is_transient` is the classifier the poller uses
to tell concurrent-access noise from genuine failures.
"""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """Base exception for all harness errors."""


class DeadlineExceededError(HarnessError):
    """A polled condition was still pending when the deadline fired.

    Attributes:
        max_wait: The configured deadline in seconds.
        description: Description of the condition that was awaited.
    """

    def __init__(self, max_wait: float, description: str = "") -> None:
        message = f"time limit of {max_wait} was exceeded"
        if description:
            message = f"{message} while waiting for {description}"
        super().__init__(message)
        self.max_wait = max_wait
        self.description = description


class PollConditionError(HarnessError):
    """A polled condition failed with a non-transient error.

    The original error is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, description: str = "") -> None:
        super().__init__(message)
        self.description = description


class DatabaseNotCleanError(HarnessError, AssertionError):
    """Engine tables outside the allow-list still held rows after a test.

    Attributes:
        offending: Mapping of stripped table name to row count.
    """

    def __init__(self, message: str, offending: dict[str, int] | None = None) -> None:
        super().__init__(message)
        self.offending = dict(offending or {})


class HistoryDataError(HarnessError, AssertionError):
    """A finished history record is missing a required field."""


class ConfigurationError(HarnessError):
    """Per-test metadata could not be turned into a harness setup."""


def is_transient(exc: BaseException) -> bool:
    """Return whether *exc* is a transient scan failure.

    Engine errors declare themselves transient via ``is_transient``.  A
    ``RuntimeError`` raised because a collection changed size while it was
    being iterated is treated the same way, since the async executor may
    mutate engine state while a condition scans it.
    """
    flag: Any = getattr(exc, "is_transient", None)
    if isinstance(flag, bool):
        return flag
    if isinstance(exc, RuntimeError):
        return "changed size during iteration" in str(exc)
    return False
