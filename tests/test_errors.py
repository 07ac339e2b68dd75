"""Tests for the harness error hierarchy."""

from flowharness.engine.errors import (
    ConcurrentModificationError,
    ObjectNotFoundError,
    OptimisticLockingError,
)
from flowharness.errors import (
    DatabaseNotCleanError,
    DeadlineExceededError,
    HarnessError,
    HistoryDataError,
    PollConditionError,
    is_transient,
)


class TestIsTransient:
    def test_engine_flags(self) -> None:
        assert is_transient(OptimisticLockingError("row changed"))
        assert is_transient(ConcurrentModificationError("tasks changed"))
        assert not is_transient(ObjectNotFoundError("job", "j1"))

    def test_concurrent_modification(self) -> None:
        assert is_transient(RuntimeError("dictionary changed size during iteration"))
        assert not is_transient(RuntimeError("something else"))

    def test_other_errors(self) -> None:
        assert not is_transient(ValueError("changed size during iteration"))
        assert not is_transient(KeyError("x"))


class TestMessages:
    def test_deadline(self) -> None:
        error = DeadlineExceededError(2.5)
        assert str(error) == "time limit of 2.5 was exceeded"
        assert error.max_wait == 2.5

    def test_deadline_with_description(self) -> None:
        error = DeadlineExceededError(1, "jobs")
        assert str(error) == "time limit of 1 was exceeded while waiting for jobs"
        assert error.description == "jobs"

    def test_poll_condition(self) -> None:
        error = PollConditionError("bad query", description="jobs")
        assert error.description == "jobs"
        assert isinstance(error, HarnessError)

    def test_assertion_errors(self) -> None:
        error = DatabaseNotCleanError("DB NOT CLEAN", {"ACT_RU_TASK": 1})
        assert error.offending == {"ACT_RU_TASK": 1}
        assert isinstance(error, AssertionError)
        assert isinstance(HistoryDataError("x"), AssertionError)
