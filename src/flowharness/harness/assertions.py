"""Structural checks on the engine's history records.

All checks are skipped when the engine records less than
``HistoryLevel.AUDIT`` history.
"""

from __future__ import annotations

from typing import Any

from flowharness.engine.models import HistoryLevel
from flowharness.errors import HistoryDataError


def _require(value: Any, message: str) -> None:
    if value is None:
        raise HistoryDataError(message)


def _records_audit(engine: Any) -> bool:
    return engine.configuration.history_level.is_at_least(HistoryLevel.AUDIT)


def assert_history_data(engine: Any) -> None:
    """Check that every finished process instance has complete history.

    Raises:
        HistoryDataError: On the first record with a missing field.
    """
    if not _records_audit(engine):
        return
    history = engine.history_service

    for instance in history.historic_process_instances(finished=True):
        _require(instance.process_definition_id, "Historic process instance has no process definition id")
        _require(instance.process_definition_key, "Historic process instance has no process definition key")
        _require(
            instance.process_definition_version,
            "Historic process instance has no process definition version",
        )
        _require(instance.deployment_id, "Historic process instance has no deployment id")
        _require(instance.start_activity_id, "Historic process instance has no start activity id")
        _require(instance.start_time, "Historic process instance has no start time")
        _require(instance.end_time, "Historic process instance has no end time")

        for task in history.historic_task_instances(process_instance_id=instance.id):
            label = f"Historic task {task.task_definition_key}"
            if task.process_instance_id != instance.id:
                raise HistoryDataError(f"{label} belongs to another process instance")
            if task.claim_time is not None:
                _require(task.work_time, f"{label} has no work time")
            _require(task.id, f"{label} has no id")
            _require(task.execution_id, f"{label} has no execution id")
            _require(task.process_definition_id, f"{label} has no process definition id")
            _require(task.task_definition_key, f"{label} has no task definition key")
            _require(task.create_time, f"{label} has no create time")
            _require(task.start_time, f"{label} has no start time")
            _require(task.end_time, f"{label} has no end time")

        for activity in history.historic_activity_instances(process_instance_id=instance.id):
            label = f"Historic activity instance {activity.activity_id}"
            if activity.process_instance_id != instance.id:
                raise HistoryDataError(f"{label} belongs to another process instance")
            _require(activity.activity_id, f"{label} has no activity id")
            _require(activity.activity_type, f"{label} has no activity type")
            _require(activity.process_definition_id, f"{label} has no process definition id")
            _require(activity.execution_id, f"{label} has no execution id")
            _require(activity.start_time, f"{label} has no start time")
            _require(activity.end_time, f"{label} has no end time")


def assert_process_ended_history_data(engine: Any, process_instance_id: str) -> None:
    if not _records_audit(engine):
        return
    history = engine.history_service

    instances = history.historic_process_instances(process_instance_id=process_instance_id)
    if not instances:
        raise HistoryDataError(f"No historic process instance '{process_instance_id}'")
    _require(instances[0].start_time, "Historic process instance has no start time")
    _require(instances[0].end_time, "Historic process instance has no end time")

    for task in history.historic_task_instances(process_instance_id=process_instance_id):
        _require(task.start_time, f"Historic task {task.task_definition_key} has no start time")
        _require(task.end_time, f"Historic task {task.task_definition_key} has no end time")

    for activity in history.historic_activity_instances(process_instance_id=process_instance_id):
        label = f"Historic activity instance {activity.activity_id}"
        _require(activity.start_time, f"{label} has no start time")
        _require(activity.end_time, f"{label} has no end time")


def assert_process_ended(engine: Any, process_instance_id: str) -> None:
    """Check that the instance is gone from the runtime and its history is complete."""
    if engine.runtime_service.process_instance(process_instance_id) is not None:
        raise AssertionError(
            f"expected finished process instance '{process_instance_id}' but it was still in the db"
        )
    assert_process_ended_history_data(engine, process_instance_id)


def _check_delete_reason(label: str, actual: str | None, expected: str | None) -> None:
    if expected is None:
        if actual is not None:
            raise HistoryDataError(f"{label} has delete reason '{actual}', expected none")
    elif actual is None or not actual.startswith(expected):
        raise HistoryDataError(f"{label} has delete reason {actual!r}, expected '{expected}'")


def assert_historic_tasks_delete_reason(
    engine: Any,
    process_instance_id: str,
    expected_delete_reason: str | None,
    *task_names: str,
) -> None:
    if not _records_audit(engine):
        return
    for task_name in task_names:
        tasks = engine.history_service.historic_task_instances(
            process_instance_id=process_instance_id, task_name=task_name
        )
        if not tasks:
            raise HistoryDataError(f"Could not find historic tasks named '{task_name}'")
        for task in tasks:
            _require(task.end_time, f"Historic task {task_name} has no end time")
            _check_delete_reason(f"Historic task {task_name}", task.delete_reason, expected_delete_reason)


def assert_historic_activities_delete_reason(
    engine: Any,
    process_instance_id: str,
    expected_delete_reason: str | None,
    *activity_ids: str,
) -> None:
    if not _records_audit(engine):
        return
    for activity_id in activity_ids:
        activities = engine.history_service.historic_activity_instances(
            process_instance_id=process_instance_id, activity_id=activity_id
        )
        if not activities:
            raise HistoryDataError("Could not find historic activities")
        for activity in activities:
            label = f"Historic activity instance {activity_id}"
            _require(activity.end_time, f"{label} has no end time")
            _check_delete_reason(label, activity.delete_reason, expected_delete_reason)
