"""Per-test fixture lifecycle.

:class:`FixtureLifecycleManager` drives one test through its phases::

    INITIALIZING -> CONFIGURING -> RUNNING -> VERIFYING -> TEARING_DOWN -> DONE
                                                                        \\-> FAILED

Teardown always runs, every step of it, whatever happened before.  The
first fault of the whole lifecycle is what the caller sees: a fault in
the test body wins over any teardown fault, which is only logged.
"""

from __future__ import annotations

import contextlib
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, TypeVar

from flowharness.engine.errors import ObjectNotFoundError
from flowharness.engine.models import ProcessDefinition
from flowharness.harness.assertions import assert_history_data
from flowharness.harness.builders import create_one_task_process, create_two_tasks_process
from flowharness.harness.chain import PipelineController
from flowharness.harness.consistency import DEFAULT_ALLOW_LIST, StateConsistencyVerifier
from flowharness.harness.metadata import CaseMetadata, resolve_definition_resource
from flowharness.harness.overrides import MockSupport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LifecyclePhase(str, enum.Enum):
    INITIALIZING = "initializing"
    CONFIGURING = "configuring"
    RUNNING = "running"
    VERIFYING = "verifying"
    TEARING_DOWN = "tearing_down"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Fixture:
    """Provisioned state of one test.

    Attributes:
        test_id: Dotted name of the test's owner (module or class).
        name: Test function name.
        metadata: Declarative setup for the test.
        engine: The engine under test, set during initialization.
        mock_support: Service-task override registry bound to the engine.
        deployment_ids: Deployments deleted automatically at teardown.
        annotation_deployment_id: Deployment provisioned from ``metadata``.
        debug_stage_installed: Whether verbose instrumentation was switched on.
        exception: First fault captured during the lifecycle.
        phase: Current phase.
        phases: Every phase entered, in order.
    """

    test_id: str
    name: str
    metadata: CaseMetadata = field(default_factory=CaseMetadata)
    engine: Any = None
    mock_support: MockSupport | None = None
    deployment_ids: list[str] = field(default_factory=list)
    annotation_deployment_id: str | None = None
    debug_stage_installed: bool = False
    exception: BaseException | None = None
    phase: LifecyclePhase = LifecyclePhase.INITIALIZING
    phases: list[LifecyclePhase] = field(default_factory=list)

    def track_deployment(self, deployment_id: str) -> None:
        """Register a deployment for deletion at teardown."""
        if deployment_id not in self.deployment_ids:
            self.deployment_ids.append(deployment_id)

    def deploy(self, source: ProcessDefinition | str | Path, tenant_id: str | None = None) -> str:
        """Deploy a definition or a resource path and track it for cleanup.

        Returns:
            The process definition id (not the key) of the deployed process.
        """
        builder = self.engine.repository_service.create_deployment()
        if isinstance(source, ProcessDefinition):
            builder.add_definition(f"{source.key}.dot", source)
        else:
            builder.add_resource(str(source))
        if tenant_id:
            builder.tenant_id(tenant_id)
        deployment = builder.deploy()
        self.track_deployment(deployment.id)
        definitions = self.engine.repository_service.process_definitions(deployment.id)
        return definitions[0].id

    def deploy_one_task_process(self) -> str:
        return self.deploy(create_one_task_process())

    def deploy_two_tasks_process(self) -> str:
        return self.deploy(create_two_tasks_process())


class FixtureLifecycleManager:
    """Runs tests inside a provisioned, verified and torn-down fixture.

    Args:
        engine_provider: Returns the engine for a test; called once per test.
        close_engine: Close the engine at the end of each test.
        allow_list: Tables allowed to hold rows after a test.
        verify_history: Check history records of finished processes after
            a successful body.
    """

    def __init__(
        self,
        engine_provider: Callable[[], Any],
        *,
        close_engine: bool = True,
        allow_list: Iterable[str] = DEFAULT_ALLOW_LIST,
        verify_history: bool = True,
    ) -> None:
        self._engine_provider = engine_provider
        self.close_engine = close_engine
        self.verifier = StateConsistencyVerifier(allow_list)
        self.verify_history = verify_history

    def run(
        self,
        test_id: str,
        name: str,
        body: Callable[[Fixture], T],
        metadata: CaseMetadata | None = None,
    ) -> T:
        """Run *body* inside a fixture session and return its result."""
        with self.session(test_id, name, metadata) as fixture:
            return body(fixture)

    @contextlib.contextmanager
    def session(
        self,
        test_id: str,
        name: str,
        metadata: CaseMetadata | None = None,
    ) -> Iterator[Fixture]:
        """Provision a fixture, yield it to the test body, then tear down.

        Raises:
            Exception: The body's fault if it raised; otherwise the first
                fault from verification or teardown.
        """
        fixture = Fixture(test_id=test_id, name=name, metadata=metadata or CaseMetadata())
        try:
            self._transition(fixture, LifecyclePhase.INITIALIZING)
            self._initialize(fixture)
            self._transition(fixture, LifecyclePhase.CONFIGURING)
            self._configure(fixture)
            self._transition(fixture, LifecyclePhase.RUNNING)
            yield fixture
            if self.verify_history:
                self._transition(fixture, LifecyclePhase.VERIFYING)
                assert_history_data(fixture.engine)
        except BaseException as exc:
            if isinstance(exc, Exception):
                self._capture(fixture, exc)
            elif fixture.exception is None:
                fixture.exception = exc
            self._tear_down(fixture)
            raise

        first_error = self._tear_down(fixture)
        if first_error is not None:
            raise first_error

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _transition(self, fixture: Fixture, phase: LifecyclePhase) -> None:
        fixture.phase = phase
        fixture.phases.append(phase)
        logger.debug("%s.%s: %s", fixture.test_id, fixture.name, phase.value)

    def _initialize(self, fixture: Fixture) -> None:
        fixture.engine = self._engine_provider()
        fixture.mock_support = MockSupport.install(fixture.engine.configuration)

    def _configure(self, fixture: Fixture) -> None:
        engine = fixture.engine
        metadata = fixture.metadata

        if metadata.deployment is not None:
            resources = list(metadata.deployment.resources)
            if not resources:
                resources = [
                    resolve_definition_resource(
                        fixture.test_id,
                        fixture.name,
                        engine.configuration.resource_roots,
                    )
                ]
            owner = fixture.test_id.rsplit(".", 1)[-1]
            logger.debug("Creating deployment for %s.%s", owner, fixture.name)
            builder = engine.repository_service.create_deployment().name(f"{owner}.{fixture.name}")
            for resource in resources:
                builder.add_resource(resource)
            if metadata.deployment.tenant_id:
                builder.tenant_id(metadata.deployment.tenant_id)
            fixture.annotation_deployment_id = builder.deploy().id

        if metadata.verbose_instrumentation:
            fixture.debug_stage_installed = PipelineController(
                engine.configuration
            ).install_debug_stage()

        fixture.mock_support.apply(metadata)

    def _capture(self, fixture: Fixture, exc: Exception) -> None:
        if fixture.exception is None:
            fixture.exception = exc
        if isinstance(exc, AssertionError):
            logger.error("ASSERTION FAILED: %s", exc, exc_info=exc)
        else:
            logger.error("EXCEPTION: %s", exc, exc_info=exc)

    def _tear_down(self, fixture: Fixture) -> Exception | None:
        """Run every teardown step and return the first fault, if any."""
        self._transition(fixture, LifecyclePhase.TEARING_DOWN)
        engine = fixture.engine
        errors: list[Exception] = []

        if engine is not None:
            self._step(fixture, "delete metadata deployment", self._delete_annotation_deployment, errors)
            self._step(fixture, "delete tracked deployments", self._delete_tracked_deployments, errors)
            if fixture.debug_stage_installed:
                self._step(fixture, "restore standard stage", self._restore_stage, errors)
            if fixture.mock_support is not None:
                self._step(fixture, "reset overrides", lambda f: f.mock_support.reset(), errors)
            self._step(fixture, "verify clean state", lambda f: self.verifier.verify(f.engine), errors)
            self._step(fixture, "reset clock", lambda f: f.engine.configuration.clock.reset(), errors)
            if self.close_engine:
                self._step(fixture, "close engine", lambda f: f.engine.close(), errors)

        first_error = errors[0] if errors else None
        if fixture.exception is None and first_error is not None:
            fixture.exception = first_error
        self._transition(
            fixture,
            LifecyclePhase.FAILED if fixture.exception is not None else LifecyclePhase.DONE,
        )
        return first_error

    def _step(
        self,
        fixture: Fixture,
        label: str,
        step: Callable[[Fixture], Any],
        errors: list[Exception],
    ) -> None:
        try:
            step(fixture)
        except Exception as exc:
            logger.error(
                "Teardown step '%s' failed for %s.%s: %s",
                label,
                fixture.test_id,
                fixture.name,
                exc,
            )
            errors.append(exc)

    @staticmethod
    def _delete_annotation_deployment(fixture: Fixture) -> None:
        deployment_id = fixture.annotation_deployment_id
        if deployment_id is None:
            return
        fixture.annotation_deployment_id = None
        try:
            fixture.engine.repository_service.delete_deployment(deployment_id, cascade=True)
        except ObjectNotFoundError:
            # Already deleted by the test
            pass

    @staticmethod
    def _delete_tracked_deployments(fixture: Fixture) -> None:
        deployment_ids = list(fixture.deployment_ids)
        fixture.deployment_ids.clear()
        for deployment_id in deployment_ids:
            try:
                fixture.engine.repository_service.delete_deployment(deployment_id, cascade=True)
            except ObjectNotFoundError:
                continue

    @staticmethod
    def _restore_stage(fixture: Fixture) -> None:
        PipelineController(fixture.engine.configuration).restore_standard_stage()
        fixture.debug_stage_installed = False
