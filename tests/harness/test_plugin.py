"""Tests for the pytest integration."""

from types import SimpleNamespace

import pytest

from flowharness.harness.lifecycle import LifecyclePhase
from flowharness.harness.metadata import CaseMetadata, DeploymentSpec
from flowharness.harness.plugin import MARKER, metadata_for

ONE_TASK = "tests/resources/flows/one_task.dot"


def _item(marker=None) -> SimpleNamespace:
    return SimpleNamespace(get_closest_marker=lambda name: marker if name == MARKER else None)


class TestMetadataFor:
    def test_unmarked(self) -> None:
        assert metadata_for(_item()) == CaseMetadata()

    def test_keyword_form(self) -> None:
        marker = pytest.mark.flow_harness(resources=["a.dot"], verboseInstrumentation=True).mark
        metadata = metadata_for(_item(marker))
        assert metadata.deployment == DeploymentSpec(("a.dot",))
        assert metadata.verbose_instrumentation

    def test_metadata_instance(self) -> None:
        expected = CaseMetadata(verbose_instrumentation=True)
        marker = pytest.mark.flow_harness(expected).mark
        assert metadata_for(_item(marker)) is expected


def test_unmarked_fixture(flow_fixture) -> None:
    assert flow_fixture.test_id == __name__
    assert flow_fixture.name == "test_unmarked_fixture"
    assert flow_fixture.phase is LifecyclePhase.RUNNING
    assert flow_fixture.annotation_deployment_id is None


@pytest.mark.flow_harness(resources=[ONE_TASK])
class TestMarkedClass:
    def test_deployment_provisioned(self, flow_fixture) -> None:
        assert flow_fixture.test_id == f"{__name__}.TestMarkedClass"
        deployment = flow_fixture.engine.repository_service.deployments()[0]
        assert deployment.id == flow_fixture.annotation_deployment_id
        assert deployment.name == "TestMarkedClass.test_deployment_provisioned"

    def test_instance_left_running_is_cleaned_up(self, flow_fixture) -> None:
        flow_fixture.engine.runtime_service.start_process_instance_by_key("oneTaskProcess")
        assert len(flow_fixture.engine.task_service.tasks()) == 1

    @pytest.mark.parametrize("business_key", ["order-1", "order-2"])
    def test_parametrized_name(self, flow_fixture, business_key) -> None:
        assert flow_fixture.name == "test_parametrized_name"
        instance = flow_fixture.engine.runtime_service.start_process_instance_by_key(
            "oneTaskProcess", business_key
        )
        assert instance.business_key == business_key


@pytest.mark.flow_harness(
    resources=[ONE_TASK],
    verboseInstrumentation=True,
    noOpTasks="all",
)
def test_marker_options_applied(flow_fixture) -> None:
    assert flow_fixture.debug_stage_installed
    assert flow_fixture.mock_support.factory.all_no_op


def test_engine_comes_from_registry(flow_fixture, engine_registry, engine_configuration) -> None:
    assert engine_registry.get(engine_configuration.name) is flow_fixture.engine
    assert flow_fixture.engine.configuration is engine_configuration
