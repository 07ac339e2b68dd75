"""Service-task substitution for tests."""

from __future__ import annotations

import logging
from typing import Any

from flowharness.engine.behavior import Delegate, no_op_delegate
from flowharness.engine.models import Activity
from flowharness.harness.metadata import CaseMetadata

logger = logging.getLogger(__name__)


class TestBehaviorFactory:
    """Behaviour factory that can mock or silence service tasks.

    Wraps the engine's own factory; anything not overridden is resolved
    by it unchanged.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, wrapped: Any) -> None:
        self.wrapped = wrapped
        self.mocked_delegates: dict[str, str] = {}
        self.no_op_ids: set[str] = set()
        self.no_op_class_names: set[str] = set()
        self.all_no_op = False

    def resolve_delegate(self, name: str) -> Delegate:
        return self.wrapped.resolve_delegate(self.mocked_delegates.get(name, name))

    def service_task_behavior(self, activity: Activity) -> Delegate:
        if (
            self.all_no_op
            or activity.id in self.no_op_ids
            or (activity.delegate is not None and activity.delegate in self.no_op_class_names)
        ):
            return no_op_delegate
        if activity.delegate in self.mocked_delegates:
            return self.resolve_delegate(activity.delegate)
        return self.wrapped.service_task_behavior(activity)

    def reset(self) -> None:
        self.mocked_delegates.clear()
        self.no_op_ids.clear()
        self.no_op_class_names.clear()
        self.all_no_op = False


class MockSupport:
    """Registers per-test service-task overrides on a :class:`TestBehaviorFactory`."""

    def __init__(self, factory: TestBehaviorFactory) -> None:
        self.factory = factory

    @classmethod
    def install(cls, configuration: Any) -> MockSupport:
        """Wrap the configuration's behaviour factory, once, and bind to it."""
        factory = configuration.behavior_factory
        if not isinstance(factory, TestBehaviorFactory):
            factory = TestBehaviorFactory(factory)
            configuration.behavior_factory = factory
        return cls(factory)

    def mock_service_task(self, original: str, replacement: str) -> None:
        self.factory.mocked_delegates[original] = replacement

    def add_no_op_by_id(self, activity_id: str) -> None:
        self.factory.no_op_ids.add(activity_id)

    def add_no_op_by_class_name(self, delegate_name: str) -> None:
        self.factory.no_op_class_names.add(delegate_name)

    def set_all_no_op(self) -> None:
        self.factory.all_no_op = True

    def apply(self, metadata: CaseMetadata) -> None:
        for mock in metadata.mock_tasks:
            self.mock_service_task(mock.original_id, mock.replacement_id)
        no_op = metadata.no_op_tasks
        if no_op is None:
            return
        if no_op.is_all:
            self.set_all_no_op()
            return
        for activity_id in no_op.ids:
            self.add_no_op_by_id(activity_id)
        for delegate_name in no_op.class_names:
            self.add_no_op_by_class_name(delegate_name)

    def reset(self) -> None:
        self.factory.reset()
        logger.debug("Service task overrides reset")
