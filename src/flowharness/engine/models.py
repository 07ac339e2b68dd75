"""Reference engine data models.

Defines deployments, process definitions, runtime objects (instances,
executions, tasks, jobs) and the historic records kept for audit.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def new_id() -> str:
    """Return a fresh unique identifier."""
    return uuid.uuid4().hex


class HistoryLevel(enum.IntEnum):
    """How much historic data the engine records."""

    NONE = 0
    ACTIVITY = 1
    AUDIT = 2
    FULL = 3

    def is_at_least(self, other: HistoryLevel) -> bool:
        return self >= other

    @classmethod
    def parse(cls, value: str) -> HistoryLevel:
        """Parse a case-insensitive level name such as ``"audit"``."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid history level: {value!r}") from None


class ActivityType(str, enum.Enum):
    """Kinds of flow nodes the reference engine can execute."""

    START = "start"
    END = "end"
    USER_TASK = "user_task"
    SERVICE_TASK = "service_task"
    TIMER = "timer"


class JobType(str, enum.Enum):
    ASYNC = "async"
    TIMER = "timer"


@dataclass
class Activity:
    """A single node of a process definition.

    Attributes:
        id: Activity identifier, unique within its definition.
        type: What the engine does when a token arrives.
        name: Human-readable label.
        delegate: Name of the delegate a service task invokes.
        is_async: Whether the activity is executed by the async executor.
        due_in: Timer delay in seconds (timer activities only).
        assignee: Assignee recorded on user tasks.
    """

    id: str
    type: ActivityType
    name: str = ""
    delegate: str | None = None
    is_async: bool = False
    due_in: float = 0.0
    assignee: str | None = None


@dataclass
class SequenceFlow:
    source: str
    target: str


@dataclass
class ProcessDefinition:
    """A deployable process: activities plus the flows between them.

    Attributes:
        key: Stable process key (the DOT graph name).
        name: Human-readable name.
        activities: Mapping of activity id to :class:`Activity`.
        flows: Directed flows between activities.
        id: Identifier assigned at deployment time.
        deployment_id: Owning deployment, set at deployment time.
        version: Version number within the key, set at deployment time.
        tenant_id: Tenant the owning deployment belongs to.
    """

    key: str
    name: str = ""
    activities: dict[str, Activity] = field(default_factory=dict)
    flows: list[SequenceFlow] = field(default_factory=list)
    id: str = ""
    deployment_id: str = ""
    version: int = 0
    tenant_id: str | None = None

    def add_activity(self, activity: Activity) -> Activity:
        self.activities[activity.id] = activity
        return activity

    def add_flow(self, source: str, target: str) -> None:
        self.flows.append(SequenceFlow(source=source, target=target))

    @property
    def start_activity(self) -> Activity:
        for activity in self.activities.values():
            if activity.type == ActivityType.START:
                return activity
        raise ValueError(f"Process definition '{self.key}' has no start activity")

    def outgoing(self, activity_id: str) -> list[Activity]:
        """Return the targets of flows leaving *activity_id*, in declaration order."""
        return [
            self.activities[flow.target]
            for flow in self.flows
            if flow.source == activity_id
        ]


@dataclass
class Deployment:
    id: str
    name: str
    deployment_time: datetime
    tenant_id: str | None = None
    resources: dict[str, str] = field(default_factory=dict)


@dataclass
class Execution:
    """A token travelling through a process instance."""

    id: str
    process_instance_id: str
    activity_id: str


@dataclass
class ProcessInstance:
    id: str
    process_definition_id: str
    process_definition_key: str
    business_key: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    executions: dict[str, Execution] = field(default_factory=dict)

    @property
    def ended(self) -> bool:
        return not self.executions


@dataclass
class Task:
    id: str
    name: str
    task_definition_key: str
    process_instance_id: str
    execution_id: str
    process_definition_id: str
    create_time: datetime
    assignee: str | None = None


@dataclass
class Job:
    """Background work picked up by the async executor.

    Attributes:
        type: Async continuation or timer.
        due_date: Earliest time a timer job becomes executable.
        retries: Remaining attempts before the job is dead-lettered.
        exception_message: Message of the last failed attempt.
    """

    id: str
    type: JobType
    process_instance_id: str
    execution_id: str
    process_definition_id: str
    activity_id: str
    due_date: datetime | None = None
    retries: int = 3
    exception_message: str | None = None


@dataclass
class HistoricProcessInstance:
    id: str
    process_definition_id: str | None
    process_definition_key: str | None
    process_definition_version: int | None
    deployment_id: str | None
    start_activity_id: str | None
    start_time: datetime | None
    end_time: datetime | None = None
    business_key: str | None = None
    delete_reason: str | None = None


@dataclass
class HistoricTaskInstance:
    id: str | None
    name: str
    task_definition_key: str | None
    process_instance_id: str | None
    execution_id: str | None
    process_definition_id: str | None
    create_time: datetime | None
    start_time: datetime | None
    end_time: datetime | None = None
    claim_time: datetime | None = None
    delete_reason: str | None = None

    @property
    def work_time(self) -> float | None:
        """Seconds between claim and completion, when both are known."""
        if self.claim_time is None or self.end_time is None:
            return None
        return (self.end_time - self.claim_time).total_seconds()


@dataclass
class HistoricActivityInstance:
    id: str
    activity_id: str | None
    activity_type: str | None
    process_definition_id: str | None
    process_instance_id: str | None
    execution_id: str | None
    start_time: datetime | None
    end_time: datetime | None = None
    delete_reason: str | None = None
