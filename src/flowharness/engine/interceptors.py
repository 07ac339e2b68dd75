"""Command interceptor chain.

Every engine operation is a *command*: a callable that receives a
:class:`CommandContext`.  Commands are executed by a
:class:`CommandExecutor`, which hands them to the first
:class:`CommandInterceptor` of a singly-linked chain.  Each interceptor
does its cross-cutting work (logging, locking, context management) and
delegates to ``next``; the terminal *invoker* finally runs the command.

The chain is intentionally mutable: test tooling swaps the production
:class:`CommandInvoker` for a :class:`DebugCommandInvoker` to get verbose
execution-tree logging.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageRole(str, enum.Enum):
    """Role tag carried by every stage of the chain."""

    INTERCEPTOR = "interceptor"
    INVOKER = "invoker"
    DEBUG_INVOKER = "debug_invoker"

    @property
    def is_terminal(self) -> bool:
        return self is not StageRole.INTERCEPTOR


@dataclass
class CommandContext:
    """Per-command state handed to the command callable.

    Attributes:
        store: The engine's in-memory state.  All reads and writes happen
            while the store lock is held by :class:`CommandContextInterceptor`.
        depth: Nesting level; nested commands reuse the outer context.
    """

    store: Any
    depth: int = 0


Command = Callable[[CommandContext], Any]

_local = threading.local()


def current_context() -> CommandContext | None:
    """Return the command context active on this thread, if any."""
    return getattr(_local, "context", None)


class CommandInterceptor:
    """A stage in the command chain.

    Subclasses override :meth:`execute` and call ``self.next.execute``.
    """

    role: StageRole = StageRole.INTERCEPTOR

    def __init__(self) -> None:
        self.next: CommandInterceptor | None = None

    @property
    def name(self) -> str:
        return type(self).__name__

    def execute(self, command: Command) -> Any:
        raise NotImplementedError

    def _delegate(self, command: Command) -> Any:
        if self.next is None:
            raise RuntimeError(f"Interceptor '{self.name}' has no next stage")
        return self.next.execute(command)

    def __repr__(self) -> str:
        return f"<{self.name} role={self.role.value}>"


class LogInterceptor(CommandInterceptor):
    """Logs the start and end of every top-level command."""

    def __init__(self, log_level: int = logging.DEBUG) -> None:
        super().__init__()
        self._level = log_level

    def execute(self, command: Command) -> Any:
        if current_context() is not None:
            return self._delegate(command)
        label = getattr(command, "__name__", type(command).__name__)
        logger.log(self._level, "--- starting %s ---", label)
        try:
            return self._delegate(command)
        finally:
            logger.log(self._level, "--- %s finished ---", label)


class CommandContextInterceptor(CommandInterceptor):
    """Opens a :class:`CommandContext` while holding the store lock.

    Nested commands executed from inside a command share the outer context.
    """

    def __init__(self, store: Any) -> None:
        super().__init__()
        self._store = store

    def execute(self, command: Command) -> Any:
        outer = current_context()
        if outer is not None:
            outer.depth += 1
            try:
                return self._delegate(command)
            finally:
                outer.depth -= 1

        with self._store.lock:
            _local.context = CommandContext(store=self._store)
            try:
                return self._delegate(command)
            finally:
                _local.context = None


class CommandInvoker(CommandInterceptor):
    """Terminal stage that runs the command against the active context."""

    role = StageRole.INVOKER

    def execute(self, command: Command) -> Any:
        context = current_context()
        if context is None:
            raise RuntimeError("CommandInvoker requires an active command context")
        return command(context)


class DebugCommandInvoker(CommandInvoker):
    """Invoker that logs the execution tree of every process instance
    after each top-level command."""

    role = StageRole.DEBUG_INVOKER

    def execute(self, command: Command) -> Any:
        result = super().execute(command)
        context = current_context()
        if context is not None and context.depth == 0:
            for line in execution_tree_lines(context.store):
                logger.info(line)
        return result


def execution_tree_lines(store: Any) -> list[str]:
    """Render the active executions of every process instance in *store*."""
    lines: list[str] = []
    for instance in store.process_instances.values():
        lines.append(
            f"Process instance {instance.id} ({instance.process_definition_key})"
        )
        executions = list(instance.executions.values())
        for index, execution in enumerate(executions):
            branch = "└──" if index == len(executions) - 1 else "├──"
            lines.append(f"  {branch} {execution.id} @ {execution.activity_id}")
    return lines


class CommandExecutor:
    """Runs commands through a linked chain of interceptors.

    Attributes:
        first: Head of the chain.
    """

    def __init__(self, first: CommandInterceptor) -> None:
        self.first = first

    @classmethod
    def from_stages(cls, stages: list[CommandInterceptor]) -> CommandExecutor:
        """Link *stages* in order and return an executor headed by the first."""
        if not stages:
            raise ValueError("A command chain needs at least one stage")
        for stage, successor in zip(stages, stages[1:]):
            stage.next = successor
        stages[-1].next = None
        return cls(stages[0])

    def __iter__(self) -> Iterator[CommandInterceptor]:
        stage: CommandInterceptor | None = self.first
        while stage is not None:
            yield stage
            stage = stage.next

    def execute(self, command: Callable[[CommandContext], T]) -> T:
        return self.first.execute(command)
