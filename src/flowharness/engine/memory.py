"""In-memory reference process engine.

A small but faithful stand-in for a persistence-backed process engine.
State lives in an :class:`EngineStore` guarded by one re-entrant lock;
every service call is a command executed through the configuration's
:class:`~flowharness.engine.interceptors.CommandExecutor`, so swapping a
stage of the chain affects every operation.

Execution model: tokens (executions) move from activity to activity.
User tasks and timers are wait states; service tasks run their delegate
synchronously unless marked ``async``, in which case a job is created
for the :class:`~flowharness.engine.executor.AsyncExecutor`.  An outgoing
fork spawns one token per flow; a process instance ends when its last
token reaches an end event.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any

from flowharness.engine.behavior import DelegateExecution
from flowharness.engine.config import EngineConfiguration
from flowharness.engine.errors import (
    DefinitionError,
    IllegalStateError,
    ObjectNotFoundError,
)
from flowharness.engine.executor import AsyncExecutor
from flowharness.engine.interceptors import (
    CommandContext,
    CommandContextInterceptor,
    CommandExecutor,
    CommandInvoker,
    LogInterceptor,
)
from flowharness.engine.models import (
    Activity,
    ActivityType,
    Deployment,
    Execution,
    HistoricActivityInstance,
    HistoricProcessInstance,
    HistoricTaskInstance,
    HistoryLevel,
    Job,
    JobType,
    ProcessDefinition,
    ProcessInstance,
    Task,
    new_id,
)
from flowharness.engine.parser import parse_definition_string

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"

# Logical table names reported by the table-count snapshot
TABLE_NAMES = (
    "ACT_GE_PROPERTY",
    "ACT_GE_BYTEARRAY",
    "ACT_RE_DEPLOYMENT",
    "ACT_RE_PROCDEF",
    "ACT_RU_EXECUTION",
    "ACT_RU_TASK",
    "ACT_RU_VARIABLE",
    "ACT_RU_JOB",
    "ACT_RU_TIMER_JOB",
    "ACT_RU_DEADLETTER_JOB",
    "ACT_HI_PROCINST",
    "ACT_HI_TASKINST",
    "ACT_HI_ACTINST",
)


class EngineStore:
    """All engine state.  Only touched while :attr:`lock` is held."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.create_schema()

    def create_schema(self) -> None:
        self.properties: dict[str, str] = {
            "schema.version": SCHEMA_VERSION,
            "next.dbid": "1",
        }
        self.deployments: dict[str, Deployment] = {}
        self.definitions: dict[str, ProcessDefinition] = {}
        self.process_instances: dict[str, ProcessInstance] = {}
        self.tasks: dict[str, Task] = {}
        self.jobs: dict[str, Job] = {}
        self.timer_jobs: dict[str, Job] = {}
        self.dead_letter_jobs: dict[str, Job] = {}
        self.historic_process_instances: dict[str, HistoricProcessInstance] = {}
        self.historic_task_instances: dict[str, HistoricTaskInstance] = {}
        self.historic_activity_instances: dict[str, HistoricActivityInstance] = {}
        # execution id -> open historic activity instance id
        self.open_activities: dict[str, str] = {}

    def drop_schema(self) -> None:
        for name in list(vars(self)):
            if name != "lock":
                delattr(self, name)

    def table_counts(self) -> dict[str, int]:
        return {
            "ACT_GE_PROPERTY": len(self.properties),
            "ACT_GE_BYTEARRAY": sum(len(d.resources) for d in self.deployments.values()),
            "ACT_RE_DEPLOYMENT": len(self.deployments),
            "ACT_RE_PROCDEF": len(self.definitions),
            # The process instance itself is an execution row
            "ACT_RU_EXECUTION": sum(
                len(pi.executions) + 1 for pi in self.process_instances.values()
            ),
            "ACT_RU_TASK": len(self.tasks),
            "ACT_RU_VARIABLE": sum(
                len(pi.variables) for pi in self.process_instances.values()
            ),
            "ACT_RU_JOB": len(self.jobs),
            "ACT_RU_TIMER_JOB": len(self.timer_jobs),
            "ACT_RU_DEADLETTER_JOB": len(self.dead_letter_jobs),
            "ACT_HI_PROCINST": len(self.historic_process_instances),
            "ACT_HI_TASKINST": len(self.historic_task_instances),
            "ACT_HI_ACTINST": len(self.historic_activity_instances),
        }


def drop_and_create_schema(context: CommandContext) -> None:
    """Privileged command that wipes all engine state."""
    context.store.drop_schema()
    context.store.create_schema()


# ---------------------------------------------------------------------------
# Execution runtime
# ---------------------------------------------------------------------------


class _Runtime:
    """Moves tokens through process definitions.  Called inside commands."""

    def __init__(self, engine: InMemoryProcessEngine) -> None:
        self._engine = engine

    @property
    def _config(self) -> EngineConfiguration:
        return self._engine.configuration

    def _history(self, level: HistoryLevel) -> bool:
        return self._config.history_level.is_at_least(level)

    def start(
        self,
        store: EngineStore,
        definition: ProcessDefinition,
        business_key: str | None,
        variables: dict[str, Any],
    ) -> ProcessInstance:
        start_activity = definition.start_activity
        instance = ProcessInstance(
            id=new_id(),
            process_definition_id=definition.id,
            process_definition_key=definition.key,
            business_key=business_key,
            variables=dict(variables),
        )
        store.process_instances[instance.id] = instance
        if self._history(HistoryLevel.ACTIVITY):
            store.historic_process_instances[instance.id] = HistoricProcessInstance(
                id=instance.id,
                process_definition_id=definition.id,
                process_definition_key=definition.key,
                process_definition_version=definition.version,
                deployment_id=definition.deployment_id,
                start_activity_id=start_activity.id,
                start_time=self._config.clock.now(),
                business_key=business_key,
            )
        execution = Execution(id=new_id(), process_instance_id=instance.id, activity_id="")
        instance.executions[execution.id] = execution
        self.enter(store, instance, execution, start_activity)
        return instance

    def enter(
        self,
        store: EngineStore,
        instance: ProcessInstance,
        execution: Execution,
        activity: Activity,
    ) -> None:
        execution.activity_id = activity.id
        if self._history(HistoryLevel.ACTIVITY):
            record = HistoricActivityInstance(
                id=new_id(),
                activity_id=activity.id,
                activity_type=activity.type.value,
                process_definition_id=instance.process_definition_id,
                process_instance_id=instance.id,
                execution_id=execution.id,
                start_time=self._config.clock.now(),
            )
            store.historic_activity_instances[record.id] = record
            store.open_activities[execution.id] = record.id

        if activity.is_async:
            job = self._new_job(instance, execution, activity, JobType.ASYNC)
            store.jobs[job.id] = job
            return
        self.execute(store, instance, execution, activity)

    def execute(
        self,
        store: EngineStore,
        instance: ProcessInstance,
        execution: Execution,
        activity: Activity,
    ) -> None:
        if activity.type == ActivityType.END:
            self._close_activity(store, execution)
            self._remove_execution(store, instance, execution)
        elif activity.type == ActivityType.USER_TASK:
            self._create_task(store, instance, execution, activity)
        elif activity.type == ActivityType.TIMER:
            job = self._new_job(instance, execution, activity, JobType.TIMER)
            job.due_date = self._config.clock.now() + timedelta(seconds=activity.due_in)
            store.timer_jobs[job.id] = job
        elif activity.type == ActivityType.SERVICE_TASK:
            delegate = self._config.behavior_factory.service_task_behavior(activity)
            delegate_execution = DelegateExecution(
                process_instance_id=instance.id,
                execution_id=execution.id,
                activity_id=activity.id,
                variables=dict(instance.variables),
            )
            delegate(delegate_execution)
            instance.variables.update(delegate_execution.variables)
            self.leave(store, instance, execution, activity)
        else:
            self.leave(store, instance, execution, activity)

    def leave(
        self,
        store: EngineStore,
        instance: ProcessInstance,
        execution: Execution,
        activity: Activity,
    ) -> None:
        self._close_activity(store, execution)
        definition = store.definitions[instance.process_definition_id]
        targets = definition.outgoing(activity.id)
        if not targets:
            self._remove_execution(store, instance, execution)
            return

        tokens = [(execution, targets[0])]
        for target in targets[1:]:
            forked = Execution(id=new_id(), process_instance_id=instance.id, activity_id="")
            instance.executions[forked.id] = forked
            tokens.append((forked, target))
        for token, target in tokens:
            if instance.id not in store.process_instances:
                break
            self.enter(store, instance, token, target)

    def complete_task(self, store: EngineStore, task: Task) -> None:
        instance = store.process_instances[task.process_instance_id]
        execution = instance.executions[task.execution_id]
        del store.tasks[task.id]
        historic = store.historic_task_instances.get(task.id)
        if historic is not None:
            historic.end_time = self._config.clock.now()
        definition = store.definitions[instance.process_definition_id]
        self.leave(store, instance, execution, definition.activities[task.task_definition_key])

    def delete_instance(self, store: EngineStore, instance: ProcessInstance, reason: str) -> None:
        now = self._config.clock.now()
        for task in [t for t in store.tasks.values() if t.process_instance_id == instance.id]:
            del store.tasks[task.id]
            historic = store.historic_task_instances.get(task.id)
            if historic is not None:
                historic.end_time = now
                historic.delete_reason = reason
        for table in (store.jobs, store.timer_jobs, store.dead_letter_jobs):
            for job_id in [j.id for j in table.values() if j.process_instance_id == instance.id]:
                del table[job_id]
        for execution_id in list(instance.executions):
            record_id = store.open_activities.pop(execution_id, None)
            if record_id is not None:
                record = store.historic_activity_instances[record_id]
                record.end_time = now
                record.delete_reason = reason
        instance.executions.clear()
        del store.process_instances[instance.id]
        historic_instance = store.historic_process_instances.get(instance.id)
        if historic_instance is not None:
            historic_instance.end_time = now
            historic_instance.delete_reason = reason

    def _create_task(
        self,
        store: EngineStore,
        instance: ProcessInstance,
        execution: Execution,
        activity: Activity,
    ) -> None:
        now = self._config.clock.now()
        task = Task(
            id=new_id(),
            name=activity.name or activity.id,
            task_definition_key=activity.id,
            process_instance_id=instance.id,
            execution_id=execution.id,
            process_definition_id=instance.process_definition_id,
            create_time=now,
            assignee=activity.assignee,
        )
        store.tasks[task.id] = task
        if self._history(HistoryLevel.AUDIT):
            store.historic_task_instances[task.id] = HistoricTaskInstance(
                id=task.id,
                name=task.name,
                task_definition_key=task.task_definition_key,
                process_instance_id=instance.id,
                execution_id=execution.id,
                process_definition_id=instance.process_definition_id,
                create_time=now,
                start_time=now,
            )

    def _new_job(
        self,
        instance: ProcessInstance,
        execution: Execution,
        activity: Activity,
        job_type: JobType,
    ) -> Job:
        return Job(
            id=new_id(),
            type=job_type,
            process_instance_id=instance.id,
            execution_id=execution.id,
            process_definition_id=instance.process_definition_id,
            activity_id=activity.id,
            retries=self._config.default_job_retries,
        )

    def _close_activity(self, store: EngineStore, execution: Execution) -> None:
        record_id = store.open_activities.pop(execution.id, None)
        if record_id is not None:
            store.historic_activity_instances[record_id].end_time = self._config.clock.now()

    def _remove_execution(
        self,
        store: EngineStore,
        instance: ProcessInstance,
        execution: Execution,
    ) -> None:
        instance.executions.pop(execution.id, None)
        if instance.ended:
            del store.process_instances[instance.id]
            historic = store.historic_process_instances.get(instance.id)
            if historic is not None:
                historic.end_time = self._config.clock.now()
            logger.debug("Process instance '%s' ended", instance.id)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


class _Service:
    def __init__(self, engine: InMemoryProcessEngine) -> None:
        self._engine = engine

    def _execute(self, command: Any) -> Any:
        return self._engine.configuration.command_executor.execute(command)


class DeploymentBuilder:
    """Collects resources for a new deployment.

    Example::

        deployment = (
            engine.repository_service.create_deployment()
            .name("MyTest.test_one")
            .add_resource("flows/one_task.dot")
            .deploy()
        )
    """

    def __init__(self, repository: RepositoryService) -> None:
        self._repository = repository
        self._name = ""
        self._tenant_id: str | None = None
        self._resources: dict[str, str] = {}
        self._definitions: list[tuple[str, ProcessDefinition]] = []

    def name(self, name: str) -> DeploymentBuilder:
        self._name = name
        return self

    def tenant_id(self, tenant_id: str) -> DeploymentBuilder:
        self._tenant_id = tenant_id
        return self

    def add_resource(self, resource: str) -> DeploymentBuilder:
        """Add a DOT resource looked up under the configured resource roots."""
        content = self._repository.read_resource(resource)
        self._resources[resource] = content
        self._definitions.append((resource, parse_definition_string(content, Path(resource).stem)))
        return self

    def add_string(self, resource_name: str, content: str) -> DeploymentBuilder:
        self._resources[resource_name] = content
        self._definitions.append(
            (resource_name, parse_definition_string(content, Path(resource_name).stem))
        )
        return self

    def add_definition(self, resource_name: str, definition: ProcessDefinition) -> DeploymentBuilder:
        """Add an already-built definition (e.g. from a builder helper)."""
        self._resources[resource_name] = f"<model {definition.key}>"
        self._definitions.append((resource_name, definition))
        return self

    def deploy(self) -> Deployment:
        return self._repository.deploy(
            self._name, self._tenant_id, self._resources, self._definitions
        )


class RepositoryService(_Service):
    def create_deployment(self) -> DeploymentBuilder:
        return DeploymentBuilder(self)

    def read_resource(self, resource: str) -> str:
        for root in self._engine.configuration.resource_roots:
            path = Path(root) / resource
            if path.is_file():
                return path.read_text()
        raise DefinitionError(f"Resource '{resource}' not found in any resource root")

    def deploy(
        self,
        name: str,
        tenant_id: str | None,
        resources: dict[str, str],
        definitions: list[tuple[str, ProcessDefinition]],
    ) -> Deployment:
        clock = self._engine.configuration.clock

        def deploy(context: CommandContext) -> Deployment:
            store: EngineStore = context.store
            deployment = Deployment(
                id=new_id(),
                name=name,
                deployment_time=clock.now(),
                tenant_id=tenant_id,
                resources=dict(resources),
            )
            store.deployments[deployment.id] = deployment
            for _, definition in definitions:
                previous = [d.version for d in store.definitions.values() if d.key == definition.key]
                definition.version = max(previous, default=0) + 1
                definition.id = f"{definition.key}:{definition.version}:{new_id()[:8]}"
                definition.deployment_id = deployment.id
                definition.tenant_id = tenant_id
                store.definitions[definition.id] = definition
            logger.debug("Deployed '%s' (%s)", name, deployment.id)
            return deployment

        return self._execute(deploy)

    def delete_deployment(self, deployment_id: str, cascade: bool = False) -> None:
        """Delete a deployment and its process definitions.

        With *cascade*, running instances and all history of the
        deployment's definitions are deleted too.  Without it, running
        instances make the deletion fail and history is kept, detached
        from the definition.

        Raises:
            ObjectNotFoundError: If no deployment has *deployment_id*.
            IllegalStateError: On a non-cascading delete with running instances.
        """
        runtime = self._engine.runtime

        def delete_deployment(context: CommandContext) -> None:
            store: EngineStore = context.store
            if deployment_id not in store.deployments:
                raise ObjectNotFoundError("deployment", deployment_id)
            definition_ids = {
                d.id for d in store.definitions.values() if d.deployment_id == deployment_id
            }
            running = [
                pi for pi in store.process_instances.values()
                if pi.process_definition_id in definition_ids
            ]
            if running and not cascade:
                raise IllegalStateError(
                    f"Deployment '{deployment_id}' still has {len(running)} running process instance(s)"
                )
            for instance in running:
                runtime.delete_instance(store, instance, "deleted deployment")
            if cascade:
                _delete_history(store, definition_ids)
            else:
                for historic in store.historic_process_instances.values():
                    if historic.process_definition_id in definition_ids:
                        historic.process_definition_key = None
                        historic.process_definition_version = None
            for definition_id in definition_ids:
                del store.definitions[definition_id]
            del store.deployments[deployment_id]

        self._execute(delete_deployment)

    def deployments(self) -> list[Deployment]:
        return self._execute(lambda ctx: list(ctx.store.deployments.values()))

    def process_definitions(self, deployment_id: str | None = None) -> list[ProcessDefinition]:
        def process_definitions(context: CommandContext) -> list[ProcessDefinition]:
            return [
                d for d in context.store.definitions.values()
                if deployment_id is None or d.deployment_id == deployment_id
            ]

        return self._execute(process_definitions)


def _delete_history(store: EngineStore, definition_ids: set[str]) -> None:
    for table in (
        store.historic_process_instances,
        store.historic_task_instances,
        store.historic_activity_instances,
    ):
        for record_id in [
            key for key, record in table.items()
            if record.process_definition_id in definition_ids
        ]:
            del table[record_id]


class RuntimeService(_Service):
    def start_process_instance_by_key(
        self,
        key: str,
        business_key: str | None = None,
        variables: dict[str, Any] | None = None,
    ) -> ProcessInstance:
        """Start the latest deployed version of the process *key*."""
        runtime = self._engine.runtime

        def start_process_instance(context: CommandContext) -> ProcessInstance:
            store: EngineStore = context.store
            candidates = [d for d in store.definitions.values() if d.key == key]
            if not candidates:
                raise ObjectNotFoundError("process definition with key", key)
            definition = max(candidates, key=lambda d: d.version)
            return runtime.start(store, definition, business_key, variables or {})

        return self._execute(start_process_instance)

    def process_instance(self, process_instance_id: str) -> ProcessInstance | None:
        return self._execute(lambda ctx: ctx.store.process_instances.get(process_instance_id))

    def process_instances(self) -> list[ProcessInstance]:
        return self._execute(lambda ctx: list(ctx.store.process_instances.values()))

    def delete_process_instance(self, process_instance_id: str, reason: str = "deleted") -> None:
        runtime = self._engine.runtime

        def delete_process_instance(context: CommandContext) -> None:
            instance = context.store.process_instances.get(process_instance_id)
            if instance is None:
                raise ObjectNotFoundError("process instance", process_instance_id)
            runtime.delete_instance(context.store, instance, reason)

        self._execute(delete_process_instance)


class TaskService(_Service):
    def tasks(self, process_instance_id: str | None = None) -> list[Task]:
        def tasks(context: CommandContext) -> list[Task]:
            return [
                t for t in context.store.tasks.values()
                if process_instance_id is None or t.process_instance_id == process_instance_id
            ]

        return self._execute(tasks)

    def claim(self, task_id: str, user_id: str) -> None:
        clock = self._engine.configuration.clock

        def claim(context: CommandContext) -> None:
            task = context.store.tasks.get(task_id)
            if task is None:
                raise ObjectNotFoundError("task", task_id)
            task.assignee = user_id
            historic = context.store.historic_task_instances.get(task_id)
            if historic is not None:
                historic.claim_time = clock.now()

        self._execute(claim)

    def complete(self, task_id: str) -> None:
        runtime = self._engine.runtime

        def complete_task(context: CommandContext) -> None:
            task = context.store.tasks.get(task_id)
            if task is None:
                raise ObjectNotFoundError("task", task_id)
            runtime.complete_task(context.store, task)

        self._execute(complete_task)


class HistoryService(_Service):
    def historic_process_instances(
        self,
        finished: bool | None = None,
        process_instance_id: str | None = None,
    ) -> list[HistoricProcessInstance]:
        def historic_process_instances(context: CommandContext) -> list[HistoricProcessInstance]:
            result = []
            for record in context.store.historic_process_instances.values():
                if process_instance_id is not None and record.id != process_instance_id:
                    continue
                if finished is not None and (record.end_time is not None) != finished:
                    continue
                result.append(record)
            return result

        return self._execute(historic_process_instances)

    def historic_task_instances(
        self,
        process_instance_id: str | None = None,
        task_name: str | None = None,
    ) -> list[HistoricTaskInstance]:
        def historic_task_instances(context: CommandContext) -> list[HistoricTaskInstance]:
            return [
                r for r in context.store.historic_task_instances.values()
                if (process_instance_id is None or r.process_instance_id == process_instance_id)
                and (task_name is None or r.name == task_name)
            ]

        return self._execute(historic_task_instances)

    def historic_activity_instances(
        self,
        process_instance_id: str | None = None,
        activity_id: str | None = None,
    ) -> list[HistoricActivityInstance]:
        def historic_activity_instances(context: CommandContext) -> list[HistoricActivityInstance]:
            return [
                r for r in context.store.historic_activity_instances.values()
                if (process_instance_id is None or r.process_instance_id == process_instance_id)
                and (activity_id is None or r.activity_id == activity_id)
            ]

        return self._execute(historic_activity_instances)

    def delete_historic_process_instance(self, process_instance_id: str) -> None:
        def delete_historic_process_instance(context: CommandContext) -> None:
            store: EngineStore = context.store
            if process_instance_id in store.process_instances:
                raise IllegalStateError(
                    f"Process instance '{process_instance_id}' is still running"
                )
            if store.historic_process_instances.pop(process_instance_id, None) is None:
                raise ObjectNotFoundError("historic process instance", process_instance_id)
            for table in (store.historic_task_instances, store.historic_activity_instances):
                for record_id in [
                    key for key, record in table.items()
                    if record.process_instance_id == process_instance_id
                ]:
                    del table[record_id]

        self._execute(delete_historic_process_instance)


class ManagementService(_Service):
    def jobs(self) -> list[Job]:
        return self._execute(lambda ctx: list(ctx.store.jobs.values()))

    def timer_jobs(self, executable: bool = False) -> list[Job]:
        clock = self._engine.configuration.clock

        def timer_jobs(context: CommandContext) -> list[Job]:
            now = clock.now()
            return [
                j for j in context.store.timer_jobs.values()
                if not executable or (j.due_date is not None and j.due_date <= now)
            ]

        return self._execute(timer_jobs)

    def dead_letter_jobs(self) -> list[Job]:
        return self._execute(lambda ctx: list(ctx.store.dead_letter_jobs.values()))

    def executable_job_ids(self, include_timers: bool = True) -> list[str]:
        ids = [job.id for job in self.jobs() if job.retries > 0]
        if include_timers:
            ids.extend(job.id for job in self.timer_jobs(executable=True))
        return ids

    def execute_job(self, job_id: str) -> None:
        """Execute a job now.

        A failing job loses one retry and keeps the error message; when no
        retries remain it moves to the dead-letter table.  The failure is
        re-raised to the caller.

        Raises:
            ObjectNotFoundError: If the job no longer exists.
        """
        runtime = self._engine.runtime

        def execute_job(context: CommandContext) -> None:
            store: EngineStore = context.store
            job = store.jobs.pop(job_id, None) or store.timer_jobs.pop(job_id, None)
            if job is None:
                raise ObjectNotFoundError("job", job_id)
            instance = store.process_instances[job.process_instance_id]
            execution = instance.executions[job.execution_id]
            definition = store.definitions[job.process_definition_id]
            activity = definition.activities[job.activity_id]
            try:
                if job.type == JobType.TIMER:
                    runtime.leave(store, instance, execution, activity)
                else:
                    runtime.execute(store, instance, execution, activity)
            except Exception as exc:
                job.retries -= 1
                job.exception_message = str(exc)
                if job.retries <= 0:
                    store.dead_letter_jobs[job.id] = job
                elif job.type == JobType.TIMER:
                    store.timer_jobs[job.id] = job
                else:
                    store.jobs[job.id] = job
                raise

        self._execute(execute_job)

    def get_table_count(self) -> dict[str, int]:
        """Return row counts keyed by (prefixed) logical table name."""
        prefix = self._engine.configuration.table_prefix

        def table_count(context: CommandContext) -> dict[str, int]:
            return {
                f"{prefix}{name}": count
                for name, count in context.store.table_counts().items()
            }

        return self._execute(table_count)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class InMemoryProcessEngine:
    """Reference process engine.

    Builds a fresh command chain and async executor on its configuration
    and exposes the engine services.
    """

    def __init__(self, configuration: EngineConfiguration | None = None) -> None:
        self.configuration = configuration or EngineConfiguration()
        self._store = EngineStore()
        self._closed = False
        self.runtime = _Runtime(self)

        self.configuration.command_executor = CommandExecutor.from_stages([
            LogInterceptor(),
            CommandContextInterceptor(self._store),
            CommandInvoker(),
        ])
        self.configuration.async_executor = AsyncExecutor(
            self, poll_interval=self.configuration.async_executor_poll_interval
        )

        self.repository_service = RepositoryService(self)
        self.runtime_service = RuntimeService(self)
        self.task_service = TaskService(self)
        self.history_service = HistoryService(self)
        self.management_service = ManagementService(self)

        if self.configuration.async_executor_activate:
            self.configuration.async_executor.start()
        logger.debug("Process engine '%s' created", self.name)

    @property
    def name(self) -> str:
        return self.configuration.name

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop background work.  Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        if self.configuration.async_executor is not None:
            self.configuration.async_executor.shutdown()
        logger.debug("Process engine '%s' closed", self.name)
