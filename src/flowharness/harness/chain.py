"""Hot-swapping of the engine's terminal command stage.

The engine runs every command through a singly-linked chain of
interceptors ending in an invoker.  :class:`PipelineController` walks
that chain into an ordered list, finds the stage playing a given role
and replaces it in place, so verbose instrumentation can be switched on
for one test and off again without disturbing the other stages.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flowharness.engine.interceptors import (
    CommandExecutor,
    CommandInterceptor,
    CommandInvoker,
    DebugCommandInvoker,
    StageRole,
)

logger = logging.getLogger(__name__)


class PipelineController:
    """Swaps the terminal stage of a configuration's command chain.

    Args:
        configuration: Engine configuration whose ``command_executor`` is
            the chain to manage.  Only :class:`CommandExecutor` chains are
            supported; anything else makes every swap a logged no-op.
    """

    def __init__(self, configuration: Any) -> None:
        self._configuration = configuration

    def chain_executor(self) -> CommandExecutor:
        """Return the handle that runs a command through every stage."""
        return self._configuration.command_executor

    def stages(self) -> list[CommandInterceptor]:
        """Return the chain's stages in order, head first."""
        executor = self._configuration.command_executor
        if not isinstance(executor, CommandExecutor):
            return []
        return list(executor)

    def install_debug_stage(self) -> bool:
        """Replace the standard invoker with a :class:`DebugCommandInvoker`.

        Returns:
            True when a stage was replaced; False when the chain has no
            standard invoker (already swapped) or is not supported.
        """
        return self.swap(to_debug=True)

    def restore_standard_stage(self) -> bool:
        """Replace the debug invoker with a standard :class:`CommandInvoker`.

        Returns:
            True when a stage was replaced; False otherwise.
        """
        return self.swap(to_debug=False)

    def swap(self, to_debug: bool) -> bool:
        if to_debug:
            return self._replace(StageRole.INVOKER, DebugCommandInvoker)
        return self._replace(StageRole.DEBUG_INVOKER, CommandInvoker)

    def _replace(
        self,
        role: StageRole,
        factory: Callable[[], CommandInterceptor],
    ) -> bool:
        executor = self._configuration.command_executor
        if not isinstance(executor, CommandExecutor):
            logger.warning(
                "Command executor %r is not a CommandExecutor; cannot swap the %s stage",
                type(executor).__name__,
                role.value,
            )
            return False

        stages = list(executor)
        index = next((i for i, stage in enumerate(stages) if stage.role is role), None)
        if index is None:
            return False

        old = stages[index]
        new = factory()
        new.next = old.next
        if index == 0:
            executor.first = new
        else:
            stages[index - 1].next = new
        old.next = None
        logger.debug("Replaced stage %d (%s) with %s", index, old.name, new.name)
        return True
