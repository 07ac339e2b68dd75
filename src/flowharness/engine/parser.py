"""DOT parser for process definitions.

Uses the ``pydot`` library to parse GraphViz DOT files into
:class:`~flowharness.engine.models.ProcessDefinition` objects.  The graph
name becomes the process key; nodes become activities and edges become
sequence flows.

Activity resolution is shape-based: a node's GraphViz shape selects its
activity type via :data:`SHAPE_ACTIVITY_MAP`.  An explicit ``type``
attribute overrides the shape.  ``Mdiamond`` marks the start event and
``Msquare`` the end event.

Example::

    digraph oneTaskProcess {
        start [shape=Mdiamond]
        theTask [shape=box label="The Task" assignee=kermit]
        theEnd [shape=Msquare]
        start -> theTask -> theEnd
    }
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pydot

from flowharness.engine.errors import DefinitionError
from flowharness.engine.models import Activity, ActivityType, ProcessDefinition

SHAPE_ACTIVITY_MAP: dict[str, ActivityType] = {
    "Mdiamond": ActivityType.START,
    "Msquare": ActivityType.END,
    "box": ActivityType.USER_TASK,
    "parallelogram": ActivityType.SERVICE_TASK,
    "hexagon": ActivityType.TIMER,
}

_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}


def parse_duration(value: str) -> float:
    """Parse a duration string like '900s', '15m', '250ms' into seconds."""
    value = value.strip()
    for suffix, multiplier in sorted(
        _DURATION_UNITS.items(), key=lambda x: -len(x[0])
    ):
        if value.endswith(suffix):
            return float(value[: -len(suffix)]) * multiplier
    raise ValueError(f"Invalid duration: {value!r}")


def parse_definition_file(path: str | Path) -> ProcessDefinition:
    """Parse a DOT file at *path* and return a :class:`ProcessDefinition`.

    Raises:
        DefinitionError: If the file content cannot be parsed.
        FileNotFoundError: If *path* does not exist.
    """
    path = Path(path)
    return parse_definition_string(path.read_text(), name=path.stem)


def parse_definition_string(dot_content: str, name: str = "process") -> ProcessDefinition:
    """Parse a DOT string and return a :class:`ProcessDefinition`.

    Args:
        dot_content: Raw DOT source text.
        name: Fallback process key if the graph has no name.

    Raises:
        DefinitionError: If the DOT content is invalid, empty, or has no
            start activity.
    """
    try:
        graphs = pydot.graph_from_dot_data(dot_content)
    except Exception as exc:
        raise DefinitionError(f"Invalid DOT content: {exc}") from exc
    if not graphs:
        raise DefinitionError("No graph found in DOT content")

    graph = graphs[0]
    key = _unquote(graph.get_name()) or name
    graph_attrs = _clean_attrs(graph.obj_dict.get("attributes", {}))

    definition = ProcessDefinition(key=key, name=str(graph_attrs.get("label", key)))

    for dot_node in graph.get_nodes():
        raw_name = _unquote(dot_node.get_name())
        # Skip pseudo-nodes for graph defaults
        if raw_name in ("node", "edge", "graph", ""):
            continue
        definition.add_activity(_build_activity(dot_node, raw_name))

    for dot_edge in graph.get_edges():
        source = _unquote(str(dot_edge.get_source()))
        target = _unquote(str(dot_edge.get_destination()))
        # Edges may reference nodes that were never declared explicitly
        for activity_id in (source, target):
            if activity_id not in definition.activities:
                definition.add_activity(
                    Activity(id=activity_id, type=ActivityType.USER_TASK, name=activity_id)
                )
        definition.add_flow(source, target)

    starts = [a for a in definition.activities.values() if a.type == ActivityType.START]
    if len(starts) != 1:
        raise DefinitionError(
            f"Process '{key}' must have exactly one start activity, found {len(starts)}"
        )
    return definition


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_activity(dot_node: pydot.Node, raw_name: str) -> Activity:
    attrs = _clean_attrs(dot_node.obj_dict.get("attributes", {}))
    shape = attrs.pop("shape", "box")

    explicit_type = attrs.pop("type", None)
    if explicit_type is not None:
        try:
            activity_type = ActivityType(explicit_type)
        except ValueError:
            raise DefinitionError(
                f"Unknown activity type '{explicit_type}' on node '{raw_name}'"
            ) from None
    else:
        activity_type = SHAPE_ACTIVITY_MAP.get(shape, ActivityType.USER_TASK)

    due_raw = attrs.pop("due", None)
    due_in = parse_duration(due_raw) if due_raw is not None else 0.0

    return Activity(
        id=raw_name,
        type=activity_type,
        name=attrs.pop("label", raw_name),
        delegate=attrs.pop("delegate", None),
        is_async=_to_bool(attrs.pop("async", "false")),
        due_in=due_in,
        assignee=attrs.pop("assignee", None),
    )


def _clean_attrs(attrs: dict[str, Any]) -> dict[str, str]:
    """Strip surrounding quotes from attribute values."""
    return {k: _unquote(str(v)) for k, v in attrs.items()}


def _unquote(value: str) -> str:
    """Remove surrounding double-quotes from a string."""
    if value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")
