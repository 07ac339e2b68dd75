"""Tests for engine configuration."""

from pathlib import Path

import pytest

from flowharness.engine.behavior import BehaviorFactory
from flowharness.engine.config import EngineConfiguration
from flowharness.engine.memory import InMemoryProcessEngine
from flowharness.engine.models import HistoryLevel


class TestEngineConfiguration:
    def test_defaults(self) -> None:
        config = EngineConfiguration()
        assert config.name == "default"
        assert config.history_level is HistoryLevel.AUDIT
        assert config.async_executor_activate is False
        assert isinstance(config.behavior_factory, BehaviorFactory)
        assert config.command_executor is None

    def test_registered_delegates_visible_to_factory(self) -> None:
        config = EngineConfiguration()
        delegate = lambda execution: None  # noqa: E731
        config.register_delegate("charge", delegate)
        assert config.behavior_factory.resolve_delegate("charge") is delegate

    def test_build_engine(self) -> None:
        engine = EngineConfiguration(name="built").build_engine()
        try:
            assert isinstance(engine, InMemoryProcessEngine)
            assert engine.name == "built"
        finally:
            engine.close()


class TestFromEnv:
    def test_reads_environment(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("FLOWHARNESS_ENGINE_NAME", "env-engine")
        monkeypatch.setenv("FLOWHARNESS_TABLE_PREFIX", "dbo.")
        monkeypatch.setenv("FLOWHARNESS_HISTORY_LEVEL", "activity")
        monkeypatch.setenv("FLOWHARNESS_ASYNC_EXECUTOR_ACTIVATE", "true")
        monkeypatch.setenv("FLOWHARNESS_JOB_RETRIES", "5")
        monkeypatch.setenv("FLOWHARNESS_RESOURCE_ROOTS", str(tmp_path))

        config = EngineConfiguration.from_env()

        assert config.name == "env-engine"
        assert config.table_prefix == "dbo."
        assert config.history_level is HistoryLevel.ACTIVITY
        assert config.async_executor_activate is True
        assert config.default_job_retries == 5
        assert config.resource_roots == [tmp_path]

    def test_overrides_win(self, monkeypatch) -> None:
        monkeypatch.setenv("FLOWHARNESS_ENGINE_NAME", "env-engine")
        config = EngineConfiguration.from_env(name="explicit")
        assert config.name == "explicit"

    def test_env_file(self, monkeypatch, tmp_path) -> None:
        # Registered first so the value loaded from the file is undone afterwards
        monkeypatch.setenv("FLOWHARNESS_TABLE_PREFIX", "unset")
        monkeypatch.delenv("FLOWHARNESS_TABLE_PREFIX")
        env_file = tmp_path / ".env"
        env_file.write_text("FLOWHARNESS_TABLE_PREFIX=app_\n")

        config = EngineConfiguration.from_env(env_file)

        assert config.table_prefix == "app_"

    def test_invalid_history_level(self, monkeypatch) -> None:
        monkeypatch.setenv("FLOWHARNESS_HISTORY_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid history level"):
            EngineConfiguration.from_env()

    def test_default_resource_root(self, monkeypatch) -> None:
        monkeypatch.delenv("FLOWHARNESS_RESOURCE_ROOTS", raising=False)
        assert EngineConfiguration.from_env().resource_roots == [Path(".")]
