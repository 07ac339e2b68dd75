"""Registry of live process engines keyed by configuration name."""

from __future__ import annotations

import logging
import threading

from flowharness.engine.config import EngineConfiguration
from flowharness.engine.memory import InMemoryProcessEngine

logger = logging.getLogger(__name__)


class EngineRegistry:
    """Owns the engines built for a test session.

    Engines are expensive to bootstrap, so tests that share a configuration
    name share an engine.  The owner of the registry must call
    :meth:`close_all` when the session ends.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._engines: dict[str, InMemoryProcessEngine] = {}

    def get_or_create(self, configuration: EngineConfiguration) -> InMemoryProcessEngine:
        """Return the live engine registered under ``configuration.name``.

        A closed engine is replaced by a fresh one built from *configuration*.
        """
        with self._lock:
            engine = self._engines.get(configuration.name)
            if engine is None or engine.closed:
                logger.info("Building process engine '%s'", configuration.name)
                engine = configuration.build_engine()
                self._engines[configuration.name] = engine
            return engine

    def get(self, name: str) -> InMemoryProcessEngine | None:
        with self._lock:
            return self._engines.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._engines)

    def close_all(self) -> None:
        """Close every registered engine and forget them."""
        with self._lock:
            engines = list(self._engines.items())
            self._engines.clear()
        for name, engine in engines:
            try:
                engine.close()
            except Exception:
                logger.exception("Failed to close process engine '%s'", name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)
