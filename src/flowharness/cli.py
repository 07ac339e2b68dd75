"""CLI entry point for flowharness.

Provides ``run`` and ``validate`` sub-commands using Click and Rich for
output formatting.

Usage::

    flowharness run order.dot --instances 5 --complete-tasks --verbose
    flowharness validate order.dot
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from flowharness.engine.config import EngineConfiguration
from flowharness.engine.models import HistoryLevel
from flowharness.engine.parser import parse_definition_file
from flowharness.errors import DatabaseNotCleanError, DeadlineExceededError
from flowharness.harness.consistency import StateConsistencyVerifier
from flowharness.harness.poller import wait_for_jobs_and_timers

console = Console()

# Upper bound on task-completion rounds for definitions that loop
_MAX_COMPLETION_ROUNDS = 100


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.version_option(package_name="flowharness")
def main() -> None:
    """flowharness: exercise process definitions against the reference engine."""


@main.command()
@click.argument("definitions", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--instances", "-n", default=1, show_default=True, help="Instances to start per definition.")
@click.option("--complete-tasks", is_flag=True, help="Complete user tasks until instances end.")
@click.option("--max-wait", default=10.0, show_default=True, help="Seconds to wait for jobs and timers.")
@click.option("--poll-interval", default=0.1, show_default=True, help="Seconds between job checks.")
@click.option(
    "--history-level",
    type=click.Choice([level.name.lower() for level in HistoryLevel]),
    default=None,
    help="History level (defaults to FLOWHARNESS_HISTORY_LEVEL or audit).",
)
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Dotenv file to load.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def run(
    definitions: tuple[str, ...],
    instances: int,
    complete_tasks: bool,
    max_wait: float,
    poll_interval: float,
    history_level: str | None,
    env_file: str | None,
    verbose: bool,
) -> None:
    """Deploy DOT process definitions, run them and check the engine is left clean."""
    _setup_logging(verbose)

    overrides = {}
    if history_level is not None:
        overrides["history_level"] = HistoryLevel.parse(history_level)
    configuration = EngineConfiguration.from_env(env_file, **overrides)
    engine = configuration.build_engine()
    failed = False

    try:
        builder = engine.repository_service.create_deployment().name("flowharness-run")
        try:
            for path in definitions:
                builder.add_string(Path(path).name, Path(path).read_text())
            deployment = builder.deploy()
        except Exception as exc:
            console.print(f"[red]Failed to deploy definitions:[/red] {exc}")
            raise SystemExit(1) from exc

        keys = [d.key for d in engine.repository_service.process_definitions(deployment.id)]
        for key in keys:
            for _ in range(instances):
                engine.runtime_service.start_process_instance_by_key(key)
        console.print(
            f"[bold green]Started[/bold green] {instances * len(keys)} instance(s) of {', '.join(keys)}"
        )

        for _ in range(_MAX_COMPLETION_ROUNDS):
            try:
                wait_for_jobs_and_timers(engine, max_wait, poll_interval)
            except DeadlineExceededError as exc:
                console.print(f"[yellow]Warning:[/yellow] {exc}")
                failed = True
                break
            open_tasks = engine.task_service.tasks() if complete_tasks else []
            if not open_tasks:
                break
            for task in open_tasks:
                engine.task_service.complete(task.id)

        _print_counts(engine.management_service.get_table_count())

        running = len(engine.runtime_service.process_instances())
        if running:
            console.print(f"[yellow]{running} process instance(s) still running[/yellow]")

        engine.repository_service.delete_deployment(deployment.id, cascade=True)
        try:
            StateConsistencyVerifier().verify(engine)
        except DatabaseNotCleanError as exc:
            console.print(f"[red]{exc}[/red]")
            failed = True
        else:
            console.print("[green]Engine left clean.[/green]")
    finally:
        engine.close()

    if failed:
        raise SystemExit(1)


@main.command()
@click.argument("definition_dot", type=click.Path(exists=True, dir_okay=False))
def validate(definition_dot: str) -> None:
    """Parse a DOT process definition and list its activities."""
    try:
        definition = parse_definition_file(definition_dot)
    except Exception as exc:
        console.print(f"[red]Failed to parse definition:[/red] {exc}")
        raise SystemExit(1) from exc

    table = Table(title=f"Process '{definition.key}'")
    table.add_column("Activity", style="bold")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Details")

    for activity in definition.activities.values():
        details = []
        if activity.delegate:
            details.append(f"delegate={activity.delegate}")
        if activity.is_async:
            details.append("async")
        if activity.due_in:
            details.append(f"due={activity.due_in:g}s")
        if activity.assignee:
            details.append(f"assignee={activity.assignee}")
        table.add_row(activity.id, activity.type.value, activity.name, ", ".join(details))

    console.print(table)
    console.print(
        f"[green]Definition is valid:[/green] {len(definition.activities)} activities, "
        f"{len(definition.flows)} flows"
    )


def _print_counts(counts: dict[str, int]) -> None:
    table = Table(title="Table Counts")
    table.add_column("Table", style="bold")
    table.add_column("Rows", justify="right")
    for name, count in sorted(counts.items()):
        table.add_row(name, str(count))
    console.print(table)


if __name__ == "__main__":
    main()
