"""Tests for the engine registry."""

from unittest.mock import MagicMock

from flowharness.engine.config import EngineConfiguration
from flowharness.engine.registry import EngineRegistry


class TestEngineRegistry:
    def test_get_or_create_reuses_live_engine(self) -> None:
        registry = EngineRegistry()
        config = EngineConfiguration(name="shared")
        try:
            first = registry.get_or_create(config)
            assert registry.get_or_create(config) is first
            assert registry.get_or_create(EngineConfiguration(name="shared")) is first
            assert len(registry) == 1
        finally:
            registry.close_all()

    def test_keyed_by_name(self) -> None:
        registry = EngineRegistry()
        try:
            a = registry.get_or_create(EngineConfiguration(name="a"))
            b = registry.get_or_create(EngineConfiguration(name="b"))
            assert a is not b
            assert sorted(registry.names()) == ["a", "b"]
            assert registry.get("a") is a
            assert registry.get("missing") is None
        finally:
            registry.close_all()

    def test_closed_engine_replaced(self) -> None:
        registry = EngineRegistry()
        config = EngineConfiguration(name="cycled")
        try:
            first = registry.get_or_create(config)
            first.close()
            second = registry.get_or_create(config)
            assert second is not first
            assert not second.closed
        finally:
            registry.close_all()

    def test_close_all(self) -> None:
        registry = EngineRegistry()
        engine = registry.get_or_create(EngineConfiguration(name="x"))
        registry.close_all()
        assert engine.closed
        assert len(registry) == 0

    def test_close_all_continues_after_failure(self, caplog) -> None:
        registry = EngineRegistry()
        broken = MagicMock()
        broken.close.side_effect = RuntimeError("stuck")
        registry._engines["broken"] = broken
        healthy = registry.get_or_create(EngineConfiguration(name="healthy"))

        registry.close_all()

        assert healthy.closed
        assert "Failed to close process engine 'broken'" in caplog.text
