"""Tests for deadline-bounded polling."""

import threading
import time
from types import SimpleNamespace

import pytest

from flowharness.engine.errors import ObjectNotFoundError, OptimisticLockingError
from flowharness.engine.memory import InMemoryProcessEngine
from flowharness.errors import DeadlineExceededError, PollConditionError
from flowharness.harness.poller import (
    CancellationToken,
    ConditionPoller,
    PollCondition,
    WaitOutcome,
    execute_executor_for,
    jobs_available,
    wait_for_condition,
    wait_for_jobs,
    wait_for_jobs_and_timers,
)


class FakeExecutor:
    def __init__(self) -> None:
        self.started = 0
        self.stopped = 0

    @property
    def is_active(self) -> bool:
        return self.started > self.stopped

    def start(self) -> None:
        self.started += 1

    def shutdown(self) -> None:
        self.stopped += 1


def _fake_engine(activate: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        configuration=SimpleNamespace(
            async_executor=FakeExecutor(),
            async_executor_activate=activate,
        )
    )


def _pending_for(calls: int):
    """Condition that is pending for the first *calls* evaluations."""
    seen = []

    def pending(engine) -> bool:
        seen.append(engine)
        return len(seen) <= calls

    pending.seen = seen
    return pending


class TestCancellationToken:
    def test_wait_times_out(self) -> None:
        token = CancellationToken()
        assert token.wait(0.01) is False
        assert not token.expired

    def test_interrupt_wakes_without_expiring(self) -> None:
        token = CancellationToken()
        token.interrupt()
        assert token.wait(5) is True
        assert not token.expired
        assert token.wait(0.01) is False

    def test_expire(self) -> None:
        token = CancellationToken()
        token.expire()
        assert token.wait(5) is True
        assert token.expired


class TestWaitUntil:
    def test_satisfied(self) -> None:
        engine = _fake_engine()
        condition = _pending_for(2)

        outcome = ConditionPoller(engine).wait_until(condition, max_wait=5, poll_interval=0.01)

        assert outcome is WaitOutcome.SATISFIED
        assert len(condition.seen) == 3
        assert engine.configuration.async_executor.started == 1
        assert not engine.configuration.async_executor.is_active

    def test_executor_kept_running_when_requested(self) -> None:
        engine = _fake_engine()
        ConditionPoller(engine).wait_until(
            _pending_for(0), max_wait=5, poll_interval=0.01, shutdown_executor=False
        )
        assert engine.configuration.async_executor.is_active

    def test_deadline_exceeded_mentions_max_wait(self) -> None:
        engine = _fake_engine()
        started = time.monotonic()

        with pytest.raises(DeadlineExceededError, match="time limit of 0.2 was exceeded") as info:
            ConditionPoller(engine).wait_until(
                PollCondition(lambda e: True, "never done"), max_wait=0.2, poll_interval=0.05
            )

        assert time.monotonic() - started >= 0.2
        assert info.value.max_wait == 0.2
        assert "never done" in str(info.value)
        assert not engine.configuration.async_executor.is_active

    def test_deadline_wakes_long_interval(self) -> None:
        engine = _fake_engine()
        started = time.monotonic()
        with pytest.raises(DeadlineExceededError):
            ConditionPoller(engine).wait_until(lambda e: True, max_wait=0.1, poll_interval=30)
        assert time.monotonic() - started < 5

    def test_transient_failures_keep_waiting(self) -> None:
        failures = [OptimisticLockingError("row changed"), RuntimeError("dictionary changed size during iteration")]

        def pending(engine) -> bool:
            if failures:
                raise failures.pop(0)
            return False

        outcome = ConditionPoller(_fake_engine()).wait_until(pending, max_wait=5, poll_interval=0.01)
        assert outcome is WaitOutcome.SATISFIED
        assert failures == []

    def test_fatal_failure_aborts(self) -> None:
        engine = _fake_engine()

        def broken(engine) -> bool:
            raise ValueError("bad query")

        with pytest.raises(PollConditionError, match="bad query") as info:
            ConditionPoller(engine).wait_until(broken, max_wait=5, poll_interval=0.01)

        assert isinstance(info.value.__cause__, ValueError)
        assert info.value.description == "broken"
        assert not engine.configuration.async_executor.is_active

    def test_custom_classifier(self) -> None:
        failures = [ObjectNotFoundError("job", "j1")]

        def pending(engine) -> bool:
            if failures:
                raise failures.pop()
            return False

        poller = ConditionPoller(
            _fake_engine(), classifier=lambda exc: isinstance(exc, ObjectNotFoundError)
        )
        assert poller.wait_until(pending, max_wait=5, poll_interval=0.01) is WaitOutcome.SATISFIED

    def test_activate_flag_set_and_restored(self) -> None:
        engine = _fake_engine(activate=False)
        observed = []

        def pending(e) -> bool:
            observed.append(e.configuration.async_executor_activate)
            return False

        ConditionPoller(engine).wait_until(pending, 5, 0.01, activate_executor=True)

        assert observed == [True]
        assert engine.configuration.async_executor_activate is False

    def test_activate_flag_restored_after_failure(self) -> None:
        engine = _fake_engine(activate=False)
        with pytest.raises(DeadlineExceededError):
            ConditionPoller(engine).wait_until(lambda e: True, 0.05, 0.01, activate_executor=True)
        assert engine.configuration.async_executor_activate is False

    def test_interrupt_is_a_spurious_wake(self) -> None:
        engine = _fake_engine()
        poller = ConditionPoller(engine)
        calls = []

        def pending(e) -> bool:
            calls.append(1)
            if len(calls) == 1:
                poller.interrupt()
                return True
            return False

        assert poller.wait_until(pending, max_wait=5, poll_interval=0.01) is WaitOutcome.SATISFIED
        assert len(calls) == 2

    def test_satisfied_condition_with_interval_longer_than_deadline(self) -> None:
        condition = _pending_for(0)

        outcome = ConditionPoller(_fake_engine()).wait_until(condition, max_wait=0.05, poll_interval=0.3)

        assert outcome is WaitOutcome.SATISFIED
        assert len(condition.seen) == 1

    def test_frequent_interrupts_do_not_starve_evaluation(self) -> None:
        poller = ConditionPoller(_fake_engine())
        condition = _pending_for(0)
        stop = threading.Event()

        def keep_interrupting() -> None:
            while not stop.is_set():
                poller.interrupt()
                time.sleep(0.005)

        interrupter = threading.Thread(target=keep_interrupting, daemon=True)
        interrupter.start()
        try:
            outcome = poller.wait_until(condition, max_wait=0.5, poll_interval=0.05)
        finally:
            stop.set()
            interrupter.join()

        assert outcome is WaitOutcome.SATISFIED
        assert len(condition.seen) == 1

    def test_interrupt_outside_wait_is_ignored(self) -> None:
        ConditionPoller(_fake_engine()).interrupt()


class TestRunFor:
    def test_runs_until_deadline(self) -> None:
        engine = _fake_engine()
        started = time.monotonic()

        outcome = ConditionPoller(engine).run_for(0.1, 0.02)

        assert outcome is WaitOutcome.DEADLINE_EXCEEDED
        assert time.monotonic() - started >= 0.1
        assert engine.configuration.async_executor.started == 1
        assert not engine.configuration.async_executor.is_active


class TestJobHelpers:
    @pytest.fixture
    def charging_engine(self, config):
        config.register_delegate("charge", lambda execution: None)
        engine = InMemoryProcessEngine(config)
        engine.repository_service.create_deployment().add_resource("flows/async_service.dot").deploy()
        yield engine
        engine.close()

    def test_wait_for_jobs(self, charging_engine) -> None:
        instance = charging_engine.runtime_service.start_process_instance_by_key("asyncService")
        assert jobs_available(charging_engine)

        assert wait_for_jobs(charging_engine, 5, 0.02) is WaitOutcome.SATISFIED

        assert not jobs_available(charging_engine)
        assert charging_engine.runtime_service.process_instance(instance.id) is None
        assert not charging_engine.configuration.async_executor.is_active

    def test_wait_for_jobs_and_timers(self, engine) -> None:
        engine.repository_service.create_deployment().add_resource("flows/timer.dot").deploy()
        instance = engine.runtime_service.start_process_instance_by_key("timerProcess")
        engine.configuration.clock.advance(1)

        assert wait_for_jobs_and_timers(engine, 5, 0.02) is WaitOutcome.SATISFIED

        assert engine.runtime_service.process_instance(instance.id) is None
        assert engine.configuration.async_executor_activate is False

    def test_wait_for_jobs_ignores_pending_timers(self, engine) -> None:
        engine.repository_service.create_deployment().add_resource("flows/timer.dot").deploy()
        engine.runtime_service.start_process_instance_by_key("timerProcess")

        assert wait_for_jobs(engine, 5, 0.02) is WaitOutcome.SATISFIED
        assert len(engine.management_service.timer_jobs()) == 1

    def test_wait_for_condition(self, charging_engine) -> None:
        instance = charging_engine.runtime_service.start_process_instance_by_key("asyncService")

        def instance_ended() -> bool:
            return charging_engine.runtime_service.process_instance(instance.id) is None

        assert wait_for_condition(charging_engine, 5, 0.02, instance_ended) is WaitOutcome.SATISFIED

    def test_execute_executor_for(self, charging_engine) -> None:
        instance = charging_engine.runtime_service.start_process_instance_by_key("asyncService")

        assert execute_executor_for(charging_engine, 0.3, 0.02) is WaitOutcome.DEADLINE_EXCEEDED
        assert charging_engine.runtime_service.process_instance(instance.id) is None

    def test_deadline_on_failing_job(self, config) -> None:
        def explode(execution):
            raise RuntimeError("card declined")

        config.default_job_retries = 1000
        config.register_delegate("charge", explode)
        engine = InMemoryProcessEngine(config)
        try:
            engine.repository_service.create_deployment().add_resource("flows/async_service.dot").deploy()
            engine.runtime_service.start_process_instance_by_key("asyncService")
            with pytest.raises(DeadlineExceededError, match="time limit of 0.2"):
                wait_for_jobs(engine, 0.2, 0.02)
        finally:
            engine.close()
