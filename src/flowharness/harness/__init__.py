"""Test harness for process engines.

Waits for background job execution under a deadline, swaps verbose
instrumentation into the command chain, and runs each test inside a
fixture that is always torn down and checked for leftover state.
"""

from flowharness.harness.assertions import (
    assert_historic_activities_delete_reason,
    assert_historic_tasks_delete_reason,
    assert_history_data,
    assert_process_ended,
)
from flowharness.harness.builders import create_one_task_process, create_two_tasks_process
from flowharness.harness.chain import PipelineController
from flowharness.harness.consistency import (
    DEFAULT_ALLOW_LIST,
    CleanCheckResult,
    StateConsistencyVerifier,
    verify_clean,
)
from flowharness.harness.lifecycle import Fixture, FixtureLifecycleManager, LifecyclePhase
from flowharness.harness.metadata import (
    CaseMetadata,
    DeploymentSpec,
    MockTask,
    NoOpTasks,
    resolve_definition_resource,
)
from flowharness.harness.overrides import MockSupport, TestBehaviorFactory
from flowharness.harness.poller import (
    CancellationToken,
    ConditionPoller,
    PollCondition,
    WaitOutcome,
    execute_executor_for,
    jobs_available,
    jobs_or_executable_timers_available,
    wait_for_condition,
    wait_for_jobs,
    wait_for_jobs_and_timers,
)

__all__ = [
    "CancellationToken",
    "CaseMetadata",
    "CleanCheckResult",
    "ConditionPoller",
    "DEFAULT_ALLOW_LIST",
    "DeploymentSpec",
    "Fixture",
    "FixtureLifecycleManager",
    "LifecyclePhase",
    "MockSupport",
    "MockTask",
    "NoOpTasks",
    "PipelineController",
    "PollCondition",
    "StateConsistencyVerifier",
    "TestBehaviorFactory",
    "WaitOutcome",
    "assert_historic_activities_delete_reason",
    "assert_historic_tasks_delete_reason",
    "assert_history_data",
    "assert_process_ended",
    "create_one_task_process",
    "create_two_tasks_process",
    "execute_executor_for",
    "jobs_available",
    "jobs_or_executable_timers_available",
    "resolve_definition_resource",
    "verify_clean",
    "wait_for_condition",
    "wait_for_jobs",
    "wait_for_jobs_and_timers",
]
