"""Declarative per-test configuration.

A :class:`CaseMetadata` describes what the harness should set up around
one test: a deployment to provision, verbose instrumentation, and
service-task substitutions.  It is built once, either directly or from
the keyword form accepted by the ``flow_harness`` pytest marker::

    @pytest.mark.flow_harness(
        resources=["flows/one_task.dot"],
        tenantId="acme",
        verboseInstrumentation=True,
        mockTask=[{"originalId": "charge", "replacementId": "fake_charge"}],
        noOpTasks={"ids": ["notify"]},
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from flowharness.errors import ConfigurationError

DEFINITION_RESOURCE_SUFFIXES = ("flow.dot", "dot")

_KNOWN_KEYS = frozenset({
    "deployment",
    "resources",
    "tenantId",
    "verboseInstrumentation",
    "mockTask",
    "noOpTasks",
})


@dataclass(frozen=True)
class DeploymentSpec:
    """A deployment provisioned before the test body.

    Attributes:
        resources: Resource paths relative to the resource roots.  Empty
            means the resource is found by naming convention.
        tenant_id: Tenant of the deployment, if any.
    """

    resources: tuple[str, ...] = ()
    tenant_id: str | None = None


@dataclass(frozen=True)
class MockTask:
    """Run delegate *replacement_id* wherever *original_id* is referenced."""

    original_id: str
    replacement_id: str


@dataclass(frozen=True)
class NoOpTasks:
    """Service tasks that do nothing.

    Attributes:
        ids: Activity ids of silenced service tasks.
        class_names: Delegate names whose service tasks are silenced.
    """

    ids: tuple[str, ...] = ()
    class_names: tuple[str, ...] = ()

    @property
    def is_all(self) -> bool:
        """With no ids and no delegate names every service task is silenced."""
        return not self.ids and not self.class_names


@dataclass(frozen=True)
class CaseMetadata:
    deployment: DeploymentSpec | None = None
    verbose_instrumentation: bool = False
    mock_tasks: tuple[MockTask, ...] = ()
    no_op_tasks: NoOpTasks | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CaseMetadata:
        """Build metadata from its keyword form.

        A ``resources`` key (even an empty list) or ``deployment=True``
        requests a deployment; without resources the definition is found
        by convention.

        Raises:
            ConfigurationError: On unknown keys or malformed values.
        """
        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown test metadata keys: {sorted(unknown)}")

        deployment = None
        if "tenantId" in data and "resources" not in data and not data.get("deployment"):
            raise ConfigurationError("tenantId requires resources or deployment=True")
        if "resources" in data or data.get("deployment"):
            deployment = DeploymentSpec(
                resources=tuple(_as_strings(data.get("resources", ()), "resources")),
                tenant_id=data.get("tenantId") or None,
            )

        mock_tasks = []
        raw_mocks = data.get("mockTask", ())
        if isinstance(raw_mocks, Mapping):
            raw_mocks = [raw_mocks]
        for entry in raw_mocks:
            try:
                mock_tasks.append(MockTask(entry["originalId"], entry["replacementId"]))
            except (KeyError, TypeError):
                raise ConfigurationError(
                    f"mockTask entries need originalId and replacementId, got {entry!r}"
                ) from None

        no_op_tasks = None
        raw_no_op = data.get("noOpTasks")
        if raw_no_op == "all":
            no_op_tasks = NoOpTasks()
        elif isinstance(raw_no_op, Mapping):
            no_op_tasks = NoOpTasks(
                ids=tuple(_as_strings(raw_no_op.get("ids", ()), "noOpTasks.ids")),
                class_names=tuple(
                    _as_strings(raw_no_op.get("classNames", ()), "noOpTasks.classNames")
                ),
            )
        elif raw_no_op is not None:
            raise ConfigurationError(f"noOpTasks must be a mapping or 'all', got {raw_no_op!r}")

        return cls(
            deployment=deployment,
            verbose_instrumentation=bool(data.get("verboseInstrumentation", False)),
            mock_tasks=tuple(mock_tasks),
            no_op_tasks=no_op_tasks,
        )


def _as_strings(value: Any, key: str) -> list[str]:
    if isinstance(value, str):
        return [value]
    try:
        return [str(item) for item in value]
    except TypeError:
        raise ConfigurationError(f"{key} must be a list of strings, got {value!r}") from None


def resolve_definition_resource(
    qualified_name: str,
    name: str,
    roots: Iterable[Path],
) -> str:
    """Find the definition resource named after a test.

    Candidates are ``<qualified/name>.<name>.<suffix>`` for each suffix in
    :data:`DEFINITION_RESOURCE_SUFFIXES`.  The first candidate that exists
    under one of *roots* wins; when none exists the first candidate is
    returned so the deployment fails with a clear "not found" error.

    Args:
        qualified_name: Dotted name of the test's owner, e.g.
            ``"tests.harness.test_lifecycle.TestDeploy"``.
        name: Test function name.
        roots: Directories to search.
    """
    base = qualified_name.replace(".", "/")
    candidates = [f"{base}.{name}.{suffix}" for suffix in DEFINITION_RESOURCE_SUFFIXES]
    roots = list(roots)
    for candidate in candidates:
        if any((Path(root) / candidate).is_file() for root in roots):
            return candidate
    return candidates[0]
