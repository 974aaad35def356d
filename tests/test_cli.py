"""Tests for heapscope.cli.main."""

import json

import pytest
from click.testing import CliRunner

from heapscope.cli.main import cli

from _snapshots import app_snapshot


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def snapshot_file(tmp_path):
    """Write the sample application snapshot to disk."""
    path = tmp_path / "app.heapsnapshot"
    path.write_text(json.dumps(app_snapshot()))
    return str(path)


@pytest.fixture
def corrupt_snapshot_file(tmp_path):
    data = app_snapshot()
    data["edges"][2] = 13
    path = tmp_path / "corrupt.heapsnapshot"
    path.write_text(json.dumps(data))
    return str(path)


class TestCLIGroup:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "heapscope" in result.output
        assert "analyze" in result.output
        assert "inspect" in result.output


class TestAnalyzeCommand:
    def test_analyze_terminal(self, runner, snapshot_file):
        result = runner.invoke(cli, ["analyze", snapshot_file])
        assert result.exit_code == 0
        assert "Analyzing:" in result.output
        assert "Leak Candidates" in result.output

    def test_analyze_verbose(self, runner, snapshot_file):
        result = runner.invoke(cli, ["--verbose", "analyze", snapshot_file])
        assert result.exit_code == 0

    def test_analyze_json(self, runner, snapshot_file, tmp_path):
        out_path = tmp_path / "report.json"
        result = runner.invoke(
            cli, ["analyze", snapshot_file, "--format", "json", "--output", str(out_path)],
        )
        assert result.exit_code == 0
        assert "Report saved to:" in result.output
        data = json.loads(out_path.read_text())
        assert [c["index"] for c in data["leak_candidates"]] == [2, 3, 5, 4]

    def test_limit_option(self, runner, snapshot_file, tmp_path):
        out_path = tmp_path / "report.json"
        result = runner.invoke(
            cli, ["analyze", snapshot_file, "-n", "2", "-f", "json", "-o", str(out_path)],
        )
        assert result.exit_code == 0
        data = json.loads(out_path.read_text())
        assert len(data["leak_candidates"]) == 2

    def test_limit_from_environment(self, runner, snapshot_file, tmp_path):
        out_path = tmp_path / "report.json"
        result = runner.invoke(
            cli,
            ["analyze", snapshot_file, "--format", "json", "--output", str(out_path)],
            env={"HEAPSCOPE_LIMIT": "1"},
        )
        assert result.exit_code == 0
        data = json.loads(out_path.read_text())
        assert [c["id"] for c in data["leak_candidates"]] == ["@5"]

    def test_invalid_limit(self, runner, snapshot_file):
        result = runner.invoke(cli, ["analyze", snapshot_file, "--limit", "0"])
        assert result.exit_code != 0

    def test_analyze_missing_file(self, runner):
        result = runner.invoke(cli, ["analyze", "/nonexistent/path.heapsnapshot"])
        assert result.exit_code != 0

    def test_analyze_corrupt_snapshot(self, runner, corrupt_snapshot_file):
        result = runner.invoke(cli, ["analyze", corrupt_snapshot_file])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "CorruptReferenceError" in result.output

    def test_analyze_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.heapsnapshot"
        path.write_text("{not json")
        result = runner.invoke(cli, ["analyze", str(path)])
        assert result.exit_code == 1
        assert "MalformedSchemaError" in result.output


class TestInspectCommand:
    def test_inspect_node(self, runner, snapshot_file):
        result = runner.invoke(cli, ["inspect", snapshot_file, "@7"])
        assert result.exit_code == 0
        assert "Entry" in result.output
        assert "Retainers" in result.output
        assert "@5" in result.output
        assert "@11" in result.output

    def test_inspect_without_prefix(self, runner, snapshot_file):
        result = runner.invoke(cli, ["inspect", snapshot_file, "11"])
        assert result.exit_code == 0
        assert "blob-data" in result.output

    def test_inspect_missing_node(self, runner, snapshot_file):
        result = runner.invoke(cli, ["inspect", snapshot_file, "@999"])
        assert result.exit_code == 1
        assert "not found" in result.output
