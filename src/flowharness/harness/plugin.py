"""pytest integration.

Enable with ``pytest_plugins = ["flowharness.harness.plugin"]`` in a
``conftest.py``.  Tests then request ``flow_fixture`` and describe their
setup with the ``flow_harness`` marker::

    @pytest.mark.flow_harness(resources=["flows/one_task.dot"])
    def test_complete_task(flow_fixture):
        engine = flow_fixture.engine
        ...

The marker accepts either a :class:`CaseMetadata` or its keyword form.
"""

from __future__ import annotations

import os
from typing import Any, Iterator

import pytest

from flowharness.engine.config import ENV_PREFIX, EngineConfiguration
from flowharness.engine.registry import EngineRegistry
from flowharness.harness.lifecycle import Fixture, FixtureLifecycleManager
from flowharness.harness.metadata import CaseMetadata

MARKER = "flow_harness"

_body_error_key = pytest.StashKey[BaseException]()


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER}(metadata=None, **keywords): per-test engine setup "
        "(resources, tenantId, verboseInstrumentation, mockTask, noOpTasks)",
    )


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[Any]) -> Iterator[None]:
    outcome = yield
    report = outcome.get_result()
    if report.when == "call" and report.failed and call.excinfo is not None:
        item.stash[_body_error_key] = call.excinfo.value


def metadata_for(item: pytest.Item) -> CaseMetadata:
    """Resolve the ``flow_harness`` marker of *item* into metadata."""
    marker = item.get_closest_marker(MARKER)
    if marker is None:
        return CaseMetadata()
    if marker.args and isinstance(marker.args[0], CaseMetadata):
        return marker.args[0]
    return CaseMetadata.from_dict(marker.kwargs)


@pytest.fixture(scope="session")
def engine_registry() -> Iterator[EngineRegistry]:
    registry = EngineRegistry()
    yield registry
    registry.close_all()


@pytest.fixture
def engine_configuration(request: pytest.FixtureRequest) -> EngineConfiguration:
    """Configuration from ``FLOWHARNESS_*`` variables.

    Resources resolve against the pytest root directory unless
    ``FLOWHARNESS_RESOURCE_ROOTS`` says otherwise.
    """
    configuration = EngineConfiguration.from_env()
    if f"{ENV_PREFIX}RESOURCE_ROOTS" not in os.environ:
        configuration.resource_roots = [request.config.rootpath]
    return configuration


@pytest.fixture
def harness_manager(
    engine_registry: EngineRegistry,
    engine_configuration: EngineConfiguration,
) -> FixtureLifecycleManager:
    return FixtureLifecycleManager(lambda: engine_registry.get_or_create(engine_configuration))


@pytest.fixture
def flow_fixture(
    request: pytest.FixtureRequest,
    harness_manager: FixtureLifecycleManager,
) -> Iterator[Fixture]:
    """A provisioned :class:`Fixture` that is torn down after the test.

    A failing test body is handed to the lifecycle so verification is
    skipped and teardown faults do not hide it.
    """
    node = request.node
    test_id = node.module.__name__
    if request.cls is not None:
        test_id = f"{test_id}.{request.cls.__name__}"
    name = getattr(node, "originalname", node.name)

    session = harness_manager.session(test_id, name, metadata_for(node))
    fixture = session.__enter__()
    yield fixture

    error = node.stash.get(_body_error_key, None)
    if error is None:
        session.__exit__(None, None, None)
    else:
        session.__exit__(type(error), error, error.__traceback__)
