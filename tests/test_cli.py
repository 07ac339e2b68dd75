"""Tests for the flowharness command line."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from flowharness.cli import main

FLOWS = Path(__file__).parent / "resources" / "flows"


@pytest.fixture
def runner(monkeypatch) -> CliRunner:
    monkeypatch.delenv("FLOWHARNESS_HISTORY_LEVEL", raising=False)
    monkeypatch.delenv("FLOWHARNESS_ASYNC_EXECUTOR_ACTIVATE", raising=False)
    return CliRunner()


@pytest.fixture
def broken(tmp_path) -> Path:
    path = tmp_path / "broken.dot"
    path.write_text("this is not a graph")
    return path


class TestValidate:
    def test_lists_activities(self, runner) -> None:
        result = runner.invoke(main, ["validate", str(FLOWS / "one_task.dot")])

        assert result.exit_code == 0, result.output
        assert "oneTaskProcess" in result.output
        assert "assignee=kermit" in result.output
        assert "3 activities, 2 flows" in result.output

    def test_details(self, runner) -> None:
        result = runner.invoke(main, ["validate", str(FLOWS / "async_service.dot")])
        assert result.exit_code == 0, result.output
        assert "delegate=charge" in result.output

    def test_broken_definition(self, runner, broken) -> None:
        result = runner.invoke(main, ["validate", str(broken)])
        assert result.exit_code == 1
        assert "Failed to parse definition" in result.output

    def test_missing_file(self, runner, tmp_path) -> None:
        result = runner.invoke(main, ["validate", str(tmp_path / "nope.dot")])
        assert result.exit_code == 2


class TestRun:
    def test_completes_tasks_and_leaves_engine_clean(self, runner) -> None:
        result = runner.invoke(
            main, ["run", str(FLOWS / "one_task.dot"), "-n", "2", "--complete-tasks", "--max-wait", "2"]
        )

        assert result.exit_code == 0, result.output
        assert "Started 2 instance(s) of oneTaskProcess" in result.output
        assert "still running" not in result.output
        assert "Table Counts" in result.output
        assert "Engine left clean." in result.output

    def test_running_instances_reported(self, runner) -> None:
        result = runner.invoke(main, ["run", str(FLOWS / "one_task.dot"), "--max-wait", "2"])

        assert result.exit_code == 0, result.output
        assert "1 process instance(s) still running" in result.output
        assert "Engine left clean." in result.output

    def test_history_level_option(self, runner) -> None:
        result = runner.invoke(
            main,
            ["run", str(FLOWS / "one_task.dot"), "--complete-tasks", "--history-level", "none"],
        )
        assert result.exit_code == 0, result.output

    def test_deploy_failure(self, runner, broken) -> None:
        result = runner.invoke(main, ["run", str(broken)])
        assert result.exit_code == 1
        assert "Failed to deploy definitions" in result.output

    def test_requires_a_definition(self, runner) -> None:
        result = runner.invoke(main, ["run"])
        assert result.exit_code == 2
