"""Shared fixtures for the flowharness test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
from dotenv import load_dotenv

from flowharness.engine.config import EngineConfiguration
from flowharness.engine.memory import InMemoryProcessEngine

# Optional local overrides (e.g. FLOWHARNESS_HISTORY_LEVEL) from the project root
load_dotenv(".env.local")

pytest_plugins = ["flowharness.harness.plugin"]

RESOURCES = Path(__file__).parent / "resources"


@pytest.fixture
def config() -> EngineConfiguration:
    """A fast-polling configuration rooted at the test resources."""
    return EngineConfiguration(
        name="unit",
        async_executor_poll_interval=0.01,
        resource_roots=[RESOURCES],
    )


@pytest.fixture
def engine(config: EngineConfiguration):
    engine = InMemoryProcessEngine(config)
    yield engine
    engine.close()
