"""Engine configuration.

:class:`EngineConfiguration` collects every knob of the reference engine
and builds engines from it.  Values can be taken from ``FLOWHARNESS_*``
environment variables, optionally loaded from a dotenv file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from flowharness.engine.behavior import BehaviorFactory, Delegate
from flowharness.engine.clock import SimulatedClock
from flowharness.engine.models import HistoryLevel

if TYPE_CHECKING:
    from flowharness.engine.executor import AsyncExecutor
    from flowharness.engine.interceptors import CommandExecutor
    from flowharness.engine.memory import InMemoryProcessEngine

logger = logging.getLogger(__name__)

ENV_PREFIX = "FLOWHARNESS_"


@dataclass
class EngineConfiguration:
    """Settings for an :class:`~flowharness.engine.memory.InMemoryProcessEngine`.

    Attributes:
        name: Identity of the configuration; engines are registered under it.
        table_prefix: Prefix applied to every logical table name reported by
            the table-count snapshot (e.g. ``"dbo."``).
        history_level: How much history the engine records.
        async_executor_activate: Whether the async executor starts together
            with the engine.  While set, the executor also acquires timer
            jobs once they are due; otherwise only async jobs run.
        async_executor_poll_interval: Seconds between job acquisition rounds.
        default_job_retries: Attempts a job gets before it is dead-lettered.
        resource_roots: Directories searched for deployment resources.
        delegates: Service-task delegate registry.
        clock: Shared simulated clock.
        behavior_factory: Resolves service-task delegates.  Defaults to a
            :class:`BehaviorFactory` over ``delegates``.
        command_executor: The command chain.  Set by the engine when built.
        async_executor: Background job executor.  Set by the engine when built.
    """

    name: str = "default"
    table_prefix: str = ""
    history_level: HistoryLevel = HistoryLevel.AUDIT
    async_executor_activate: bool = False
    async_executor_poll_interval: float = 0.05
    default_job_retries: int = 3
    resource_roots: list[Path] = field(default_factory=lambda: [Path(".")])
    delegates: dict[str, Delegate] = field(default_factory=dict)
    clock: SimulatedClock = field(default_factory=SimulatedClock)
    behavior_factory: Any = None
    command_executor: CommandExecutor | Any = None
    async_executor: AsyncExecutor | None = None

    def __post_init__(self) -> None:
        if self.behavior_factory is None:
            self.behavior_factory = BehaviorFactory(self.delegates)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None, **overrides: Any) -> EngineConfiguration:
        """Create a configuration from environment variables.

        Environment variables:
            FLOWHARNESS_ENGINE_NAME: configuration identity
            FLOWHARNESS_TABLE_PREFIX: table name prefix
            FLOWHARNESS_HISTORY_LEVEL: none, activity, audit or full
            FLOWHARNESS_ASYNC_EXECUTOR_ACTIVATE: true/false
            FLOWHARNESS_JOB_RETRIES: default job retries
            FLOWHARNESS_RESOURCE_ROOTS: ``os.pathsep``-separated directories

        Args:
            env_file: Optional dotenv file loaded before reading (existing
                variables are not overridden).
            **overrides: Field values that take precedence over the environment.
        """
        if env_file is not None:
            load_dotenv(env_file)

        values: dict[str, Any] = {}
        env = os.environ
        if f"{ENV_PREFIX}ENGINE_NAME" in env:
            values["name"] = env[f"{ENV_PREFIX}ENGINE_NAME"]
        if f"{ENV_PREFIX}TABLE_PREFIX" in env:
            values["table_prefix"] = env[f"{ENV_PREFIX}TABLE_PREFIX"]
        if f"{ENV_PREFIX}HISTORY_LEVEL" in env:
            values["history_level"] = HistoryLevel.parse(env[f"{ENV_PREFIX}HISTORY_LEVEL"])
        if f"{ENV_PREFIX}ASYNC_EXECUTOR_ACTIVATE" in env:
            values["async_executor_activate"] = env[
                f"{ENV_PREFIX}ASYNC_EXECUTOR_ACTIVATE"
            ].lower() in ("true", "1", "yes")
        if f"{ENV_PREFIX}JOB_RETRIES" in env:
            values["default_job_retries"] = int(env[f"{ENV_PREFIX}JOB_RETRIES"])
        if f"{ENV_PREFIX}RESOURCE_ROOTS" in env:
            values["resource_roots"] = [
                Path(p) for p in env[f"{ENV_PREFIX}RESOURCE_ROOTS"].split(os.pathsep) if p
            ]
        values.update(overrides)
        logger.debug("Engine configuration from environment: %s", sorted(values))
        return cls(**values)

    def register_delegate(self, name: str, delegate: Delegate) -> None:
        self.delegates[name] = delegate

    def build_engine(self) -> InMemoryProcessEngine:
        from flowharness.engine.memory import InMemoryProcessEngine

        return InMemoryProcessEngine(self)
