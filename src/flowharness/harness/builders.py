"""Stock process definitions used throughout the test suite.

The actual process content rarely matters to a test; these builders save
writing the same DOT file over and over.
"""

from __future__ import annotations

from flowharness.engine.models import Activity, ActivityType, ProcessDefinition

ONE_TASK_PROCESS_KEY = "oneTaskProcess"
TWO_TASKS_PROCESS_KEY = "twoTasksProcess"


def create_one_task_process() -> ProcessDefinition:
    """``start -> theTask -> theEnd``, with the task assigned to kermit."""
    definition = ProcessDefinition(key=ONE_TASK_PROCESS_KEY, name="The one task process")
    definition.add_activity(Activity("start", ActivityType.START))
    definition.add_activity(
        Activity("theTask", ActivityType.USER_TASK, name="The Task", assignee="kermit")
    )
    definition.add_activity(Activity("theEnd", ActivityType.END))
    definition.add_flow("start", "theTask")
    definition.add_flow("theTask", "theEnd")
    return definition


def create_two_tasks_process() -> ProcessDefinition:
    """Two parallel user tasks, ``task1`` and ``task2``, joined at ``theEnd``."""
    definition = ProcessDefinition(key=TWO_TASKS_PROCESS_KEY, name="The two tasks process")
    definition.add_activity(Activity("start", ActivityType.START))
    definition.add_activity(
        Activity("task1", ActivityType.USER_TASK, name="The First Task", assignee="kermit")
    )
    definition.add_activity(
        Activity("task2", ActivityType.USER_TASK, name="The Second Task", assignee="kermit")
    )
    definition.add_activity(Activity("theEnd", ActivityType.END))
    definition.add_flow("start", "task1")
    definition.add_flow("start", "task2")
    definition.add_flow("task1", "theEnd")
    definition.add_flow("task2", "theEnd")
    return definition
