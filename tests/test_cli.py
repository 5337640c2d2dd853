"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from reposcope import __version__
from reposcope.cli import app
from reposcope.config_manager import load_analysis_config

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"reposcope v{__version__}" in result.stdout


class TestAnalyzeCommand:
    """Tests for 'reposcope analyze'."""

    def test_json_output(self, sample_repo_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_repo_path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["success"] is True
        assert [f["name"] for f in payload["features"]] == ["orders", "users"]
        assert payload["feature_graph"]["circular_dependencies"] == [["orders", "users"]]

    def test_table_output(self, sample_repo_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_repo_path)])

        assert result.exit_code == 0
        assert "Features" in result.stdout

    def test_feature_filter_and_output_file(self, sample_repo_path: Path, temp_dir: Path):
        output = temp_dir / "analysis.json"
        result = runner.invoke(
            app, ["analyze", str(sample_repo_path), "--feature", "users", "--json", "--output", str(output)],
        )

        assert result.exit_code == 0
        saved = json.loads(output.read_text())
        assert [f["name"] for f in saved["features"]] == ["users"]

    def test_empty_repository_fails(self, temp_dir: Path):
        result = runner.invoke(app, ["analyze", str(temp_dir)])
        assert result.exit_code == 1

    def test_nonexistent_path(self):
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])
        assert result.exit_code != 0


class TestParseCommand:
    """Tests for 'reposcope parse'."""

    def test_parse_json(self, sample_repo_path: Path):
        routes = sample_repo_path / "src" / "features" / "users" / "routes.ts"
        result = runner.invoke(app, ["parse", str(routes), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["language"] == "typescript"
        assert {"getUser", "createUser"} <= {e["name"] for e in payload["exports"]}

    def test_unsupported_file(self, write_file):
        path = write_file("main.go", "package main\n")
        result = runner.invoke(app, ["parse", str(path)])
        assert result.exit_code == 1


class TestExtractionCommands:
    """Tests for 'reposcope endpoints', 'schemas', 'events' and 'infra'."""

    def test_endpoints(self, sample_repo_path: Path):
        result = runner.invoke(app, ["endpoints", str(sample_repo_path), "--json"])

        assert result.exit_code == 0
        assert [(e["method"], e["path"]) for e in json.loads(result.stdout)] == [
            ("GET", "/users/:id"),
            ("POST", "/users"),
        ]

    def test_endpoints_table(self, sample_repo_path: Path):
        result = runner.invoke(app, ["endpoints", str(sample_repo_path)])

        assert result.exit_code == 0
        assert "2 endpoints" in result.stdout

    def test_no_endpoints(self, temp_dir: Path):
        result = runner.invoke(app, ["endpoints", str(temp_dir)])

        assert result.exit_code == 0
        assert "No endpoints found." in result.stdout

    def test_schemas(self, sample_repo_path: Path):
        result = runner.invoke(app, ["schemas", str(sample_repo_path), "--json"])

        assert result.exit_code == 0
        names = {s["name"] for s in json.loads(result.stdout)}
        assert {"User", "Order", "orders"} <= names

    def test_schemas_single_file(self, sample_repo_path: Path):
        prisma = sample_repo_path / "src" / "features" / "users" / "schema.prisma"
        result = runner.invoke(app, ["schemas", str(prisma)])

        assert result.exit_code == 0
        assert "User" in result.stdout
        assert "Order" in result.stdout

    def test_event_flow(self, sample_repo_path: Path):
        result = runner.invoke(app, ["events", str(sample_repo_path), "--flow", "--json"])

        assert result.exit_code == 0
        edges = json.loads(result.stdout)["edges"]
        assert [e["event_name"] for e in edges] == ["user.created"]

    def test_no_events(self, temp_dir: Path):
        result = runner.invoke(app, ["events", str(temp_dir)])
        assert "No events found." in result.stdout

    def test_infra(self, sample_repo_path: Path):
        result = runner.invoke(app, ["infra", str(sample_repo_path), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["compose_services"] == ["api", "db"]
        assert payload["terraform_modules"] == ["network"]

    def test_no_infra(self, temp_dir: Path):
        result = runner.invoke(app, ["infra", str(temp_dir)])
        assert "No infrastructure files found." in result.stdout


class TestGraphCommand:
    """Tests for 'reposcope graph'."""

    def test_feature_graph_json(self, sample_repo_path: Path):
        result = runner.invoke(app, ["graph", str(sample_repo_path), "--format", "json", "--level", "feature"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert {n["id"] for n in payload["nodes"]} == {"orders", "users"}
        assert len(payload["links"]) == 2

    def test_dot_to_file(self, sample_repo_path: Path, temp_dir: Path):
        output = temp_dir / "deps.dot"
        result = runner.invoke(app, ["graph", str(sample_repo_path), "--output", str(output)])

        assert result.exit_code == 0
        assert "Exported graph to" in result.stdout
        assert output.read_text().startswith('digraph "sample_repo file dependencies"')

    def test_invalid_format(self, sample_repo_path: Path):
        result = runner.invoke(app, ["graph", str(sample_repo_path), "--format", "svg"])
        assert result.exit_code != 0

    def test_invalid_level(self, sample_repo_path: Path):
        result = runner.invoke(app, ["graph", str(sample_repo_path), "--level", "module"])
        assert result.exit_code != 0


class TestConfigCommands:
    """Tests for 'reposcope config show' and 'config set'."""

    def test_set_and_show(self):
        result = runner.invoke(app, ["config", "set", "batch_size", "10"])

        assert result.exit_code == 0
        assert "Set batch_size = 10" in result.stdout
        assert load_analysis_config()["batch_size"] == 10

        shown = runner.invoke(app, ["config", "show"])
        assert shown.exit_code == 0
        assert "batch_size" in shown.stdout

    def test_unknown_setting(self):
        result = runner.invoke(app, ["config", "set", "colour", "blue"])
        assert result.exit_code != 0

    def test_invalid_value(self):
        result = runner.invoke(app, ["config", "set", "max_workers", "four"])
        assert result.exit_code != 0
