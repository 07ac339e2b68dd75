"""Service-task behaviour resolution.

Service tasks name a *delegate*; the :class:`BehaviorFactory` maps that
name to a callable registered on the engine configuration.  Test tooling
wraps the factory to substitute or silence delegates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from flowharness.engine.errors import DefinitionError
from flowharness.engine.models import Activity

logger = logging.getLogger(__name__)


@dataclass
class DelegateExecution:
    """View of the running execution passed to a delegate.

    Delegates may read and write ``variables``; writes are stored on the
    process instance.
    """

    process_instance_id: str
    execution_id: str
    activity_id: str
    variables: dict[str, Any] = field(default_factory=dict)


Delegate = Callable[[DelegateExecution], None]


def no_op_delegate(execution: DelegateExecution) -> None:
    logger.debug("No-op service task '%s'", execution.activity_id)


class BehaviorFactory:
    """Resolves the delegate a service task runs.

    Args:
        delegates: Registry of delegate name -> callable.  The mapping is
            shared by reference, so delegates registered after construction
            are visible.
    """

    def __init__(self, delegates: dict[str, Delegate]) -> None:
        self._delegates = delegates

    def resolve_delegate(self, name: str) -> Delegate:
        try:
            return self._delegates[name]
        except KeyError:
            raise DefinitionError(f"No delegate registered under '{name}'") from None

    def service_task_behavior(self, activity: Activity) -> Delegate:
        if not activity.delegate:
            raise DefinitionError(f"Service task '{activity.id}' has no delegate")
        return self.resolve_delegate(activity.delegate)
