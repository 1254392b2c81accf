"""Tests for the CLI interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from backlogctx.backlog.models import WorkItem
from backlogctx.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def indexed_project(tmp_project: Path) -> Path:
    """A tmp_project that has been initialized and indexed."""
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--path", str(tmp_project)])
    assert result.exit_code == 0, f"Init failed: {result.output}"
    return tmp_project


class TestCLIInit:
    def test_init_basic(self, runner: CliRunner, tmp_project: Path):
        result = runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert result.exit_code == 0
        assert "Indexed 13 items and 3 documents" in result.output

    def test_init_creates_files(self, runner: CliRunner, tmp_project: Path):
        runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert (tmp_project / ".backlogctx" / "config.json").exists()
        assert (tmp_project / ".backlogctx" / "index.json").exists()

    def test_init_empty_project(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["init", "--path", str(tmp_path), "--no-hybrid"])
        assert result.exit_code == 0
        assert (tmp_path / ".backlog" / "items").is_dir()
        config = json.loads((tmp_path / ".backlogctx" / "config.json").read_text())
        assert config["search"]["hybrid"] is False

    def test_init_nonexistent_path(self, runner: CliRunner):
        result = runner.invoke(main, ["init", "--path", "/nonexistent/path"])
        assert result.exit_code != 0


class TestCLIReindex:
    def test_reindex_uses_snapshot(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["reindex", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "snapshot" in result.output

    def test_reindex_full(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["reindex", "--full", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "snapshot" not in result.output

    def test_reindex_writes_backlog_changes(self, runner: CliRunner, indexed_project: Path):
        items_dir = indexed_project / ".backlog" / "items"
        (items_dir / "TASK-0400.json").write_text(
            WorkItem(id="TASK-0400", title="Quarantine flaky pipelines").model_dump_json()
        )
        result = runner.invoke(main, ["reindex", "--path", str(indexed_project)])
        assert result.exit_code == 0

        saved = json.loads((indexed_project / ".backlogctx" / "index.json").read_text())
        assert "TASK-0400" in {i["id"] for i in saved["items"]}

    def test_reindex_without_backlog(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["reindex", "--path", str(tmp_path)])
        assert result.exit_code != 0


class TestCLISearch:
    def test_search_json(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["search", "tokenizer", "--json", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        hits = json.loads(result.output)
        assert hits[0]["id"] == "TASK-0050"
        assert hits[0]["snippet"]["field"] == "title"

    def test_search_filters(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main,
            ["search", "ranking", "-s", "blocked", "--json", "--path", str(indexed_project)],
        )
        assert result.exit_code == 0
        assert [h["id"] for h in json.loads(result.output)] == ["TASK-0046"]

    def test_search_table(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["search", "tokenizer", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "TASK-0050" in result.output

    def test_search_no_results(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["search", "xyznonexistent", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        assert "No results" in result.output

    def test_search_sees_backlog_changes(self, runner: CliRunner, indexed_project: Path):
        items_dir = indexed_project / ".backlog" / "items"
        (items_dir / "TASK-0400.json").write_text(
            WorkItem(id="TASK-0400", title="Quarantine flaky pipelines").model_dump_json()
        )
        (items_dir / "TASK-0050.json").unlink()

        result = runner.invoke(
            main, ["search", "quarantine tokenizer", "--json", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        ids = [h["id"] for h in json.loads(result.output)]
        assert "TASK-0400" in ids
        assert "TASK-0050" not in ids


class TestCLIContext:
    def test_context_json(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "TASK-0042", "--json", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["focal"]["id"] == "TASK-0042"
        assert payload["parent"]["id"] == "EPIC-0005"
        assert payload["session_summary"]["actor"] == "codex"
        assert payload["metadata"]["stages_executed"][-1] == "token_budgeting"

    def test_context_markdown(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main,
            ["context", "TASK-0201", "--depth", "3", "--markdown", "--path", str(indexed_project)],
        )
        assert result.exit_code == 0
        assert result.output.startswith("# TASK-0201: Cache eviction policy")
        assert "MLST-0001" in result.output

    def test_context_by_query(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "cache eviction", "--json", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["metadata"]["focal_resolved_from"] == "query"

    def test_context_budget(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main,
            ["context", "TASK-0042", "-b", "200", "--no-related", "--json", "--path", str(indexed_project)],
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["metadata"]["truncated"] is True

    def test_context_pretty(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["context", "TASK-0042", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "TASK-0045" in result.output

    def test_context_lowercase_id(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["context", "task-0042", "--json", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["focal"]["id"] == "TASK-0042"
        assert payload["metadata"]["focal_resolved_from"] == "id"

    def test_context_not_found(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["context", "TASK-9999", "--path", str(indexed_project)])
        assert result.exit_code == 1
        assert "No work item found" in result.output


class TestCLIConfig:
    def test_config_show(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(main, ["config", "show", "--path", str(indexed_project)])
        assert result.exit_code == 0
        assert "hydration" in result.output

    def test_config_set_and_get(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["config", "set", "hydration.default_depth", "2", "--path", str(indexed_project)]
        )
        assert result.exit_code == 0
        result = runner.invoke(
            main, ["config", "get", "hydration.default_depth", "--path", str(indexed_project)]
        )
        assert "hydration.default_depth = 2" in result.output

    def test_config_set_invalid(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["config", "set", "hydration.default_depth", "9", "--path", str(indexed_project)]
        )
        assert result.exit_code == 1

    def test_config_unknown_key(self, runner: CliRunner, indexed_project: Path):
        result = runner.invoke(
            main, ["config", "get", "nope.nothing", "--path", str(indexed_project)]
        )
        assert result.exit_code == 1
