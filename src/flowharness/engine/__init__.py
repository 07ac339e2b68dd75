"""In-memory reference process engine.

A small process engine with the surface the harness drives: deployments
of DOT process definitions, process instances, user tasks, async and
timer jobs, history, table counts and a swappable command chain.
"""

from flowharness.engine.behavior import BehaviorFactory, DelegateExecution, no_op_delegate
from flowharness.engine.clock import SimulatedClock
from flowharness.engine.config import EngineConfiguration
from flowharness.engine.errors import (
    ConcurrentModificationError,
    DefinitionError,
    EngineError,
    IllegalStateError,
    ObjectNotFoundError,
    OptimisticLockingError,
)
from flowharness.engine.executor import AsyncExecutor
from flowharness.engine.interceptors import (
    CommandContext,
    CommandExecutor,
    CommandInterceptor,
    CommandInvoker,
    DebugCommandInvoker,
    StageRole,
)
from flowharness.engine.memory import InMemoryProcessEngine, drop_and_create_schema
from flowharness.engine.models import (
    Activity,
    ActivityType,
    HistoryLevel,
    ProcessDefinition,
)
from flowharness.engine.parser import parse_definition_file, parse_definition_string
from flowharness.engine.registry import EngineRegistry

__all__ = [
    "Activity",
    "ActivityType",
    "AsyncExecutor",
    "BehaviorFactory",
    "CommandContext",
    "CommandExecutor",
    "CommandInterceptor",
    "CommandInvoker",
    "ConcurrentModificationError",
    "DebugCommandInvoker",
    "DefinitionError",
    "DelegateExecution",
    "EngineConfiguration",
    "EngineError",
    "EngineRegistry",
    "HistoryLevel",
    "IllegalStateError",
    "InMemoryProcessEngine",
    "ObjectNotFoundError",
    "OptimisticLockingError",
    "ProcessDefinition",
    "SimulatedClock",
    "StageRole",
    "drop_and_create_schema",
    "no_op_delegate",
    "parse_definition_file",
    "parse_definition_string",
]
