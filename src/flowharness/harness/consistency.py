"""End-of-test check that the engine is back to an empty baseline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from flowharness.engine.memory import drop_and_create_schema
from flowharness.errors import DatabaseNotCleanError

logger = logging.getLogger(__name__)

# Tables that legitimately hold rows in an otherwise empty engine
DEFAULT_ALLOW_LIST = frozenset({"ACT_GE_PROPERTY"})


@dataclass
class CleanCheckResult:
    """Outcome of a clean check.

    Attributes:
        clean: Whether every table outside the allow-list was empty.
        snapshot: Row counts keyed by table name with the prefix stripped.
        offending: The non-empty tables outside the allow-list.
    """

    clean: bool
    snapshot: dict[str, int] = field(default_factory=dict)
    offending: dict[str, int] = field(default_factory=dict)


class StateConsistencyVerifier:
    """Fails a test that leaves rows behind, after wiping the engine.

    Args:
        allow_list: Table names (without prefix) allowed to hold rows.
    """

    def __init__(self, allow_list: Iterable[str] = DEFAULT_ALLOW_LIST) -> None:
        self.allow_list = frozenset(allow_list)

    def snapshot(self, engine: Any) -> dict[str, int]:
        prefix = engine.configuration.table_prefix or ""
        counts = engine.management_service.get_table_count()
        snapshot: dict[str, int] = {}
        for table, count in counts.items():
            if prefix and table.startswith(prefix):
                table = table[len(prefix):]
            snapshot[table] = count
        return snapshot

    def verify(self, engine: Any) -> CleanCheckResult:
        """Check the engine's table counts.

        When a table outside the allow-list holds rows, the schema is
        dropped and re-created through the engine's command chain before
        the failure is raised, so the next test starts empty.

        Raises:
            DatabaseNotCleanError: If any table outside the allow-list is
                not empty.
        """
        snapshot = self.snapshot(engine)
        offending = {
            table: count
            for table, count in snapshot.items()
            if table not in self.allow_list and count != 0
        }
        if not offending:
            return CleanCheckResult(clean=True, snapshot=snapshot)

        report = "DB NOT CLEAN: \n" + "".join(
            f"  {table}: {count} record(s) \n" for table, count in offending.items()
        )
        logger.error(report)
        logger.info("Dropping and recreating the engine schema")
        try:
            engine.configuration.command_executor.execute(drop_and_create_schema)
        except Exception as exc:
            logger.error("Schema reset failed: %s", exc)
            raise DatabaseNotCleanError(report, offending) from exc
        raise DatabaseNotCleanError(report, offending)


def verify_clean(
    engine: Any,
    allow_list: Iterable[str] = DEFAULT_ALLOW_LIST,
) -> CleanCheckResult:
    """Shorthand for ``StateConsistencyVerifier(allow_list).verify(engine)``."""
    return StateConsistencyVerifier(allow_list).verify(engine)
