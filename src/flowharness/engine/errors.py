"""Exceptions raised by the in-memory reference engine.

Engine errors carry an ``is_transient`` flag so callers that scan engine
state concurrently with the async executor can tell a lock conflict from
a genuine failure.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for all engine errors."""

    @property
    def is_transient(self) -> bool:
        """Whether the failure is caused by concurrent access and may clear up."""
        return False


class ObjectNotFoundError(EngineError):
    """A deployment, instance, task or job does not exist.

    Attributes:
        object_type: Kind of object that was looked up (e.g. ``"deployment"``).
        object_id: The identifier that could not be resolved.
    """

    def __init__(self, object_type: str, object_id: str) -> None:
        super().__init__(f"No {object_type} found with id '{object_id}'")
        self.object_type = object_type
        self.object_id = object_id


class OptimisticLockingError(EngineError):
    """A row was updated by another thread while this one was using it."""

    @property
    def is_transient(self) -> bool:
        return True


class ConcurrentModificationError(EngineError):
    """A collection was mutated by the async executor during a scan."""

    @property
    def is_transient(self) -> bool:
        return True


class IllegalStateError(EngineError):
    """The operation is not valid for the object's current state."""


class DefinitionError(EngineError):
    """A process definition resource is missing or malformed."""
