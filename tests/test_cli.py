"""Integration tests for CLI commands."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import toml
from typer.testing import CliRunner

from repograph import __version__
from repograph.cli import app
from repograph.enrichment import MISSING_CREDENTIAL_WARNING


runner = CliRunner()


class TestAnalyzeCommand:
    """Tests for 'repograph analyze'."""

    def test_analyze_to_json_file(self, sample_project_path: Path, tmp_path: Path):
        """Test analysing the sample project writes both graphs."""
        output = tmp_path / "graph.json"
        result = runner.invoke(app, ["analyze", str(sample_project_path), "--no-llm", "-o", str(output)])

        assert result.exit_code == 0
        data = json.loads(output.read_text(encoding="utf-8"))

        file_ids = {node["id"] for node in data["file_graph"]["nodes"]}
        assert {"src/index.ts", "src/app.tsx", "lib/legacy.js", "scripts/build.py"} <= file_ids
        assert "dir:src/utils" in file_ids
        root = next(node for node in data["file_graph"]["nodes"] if node["id"] == "dir:.")
        assert root["label"] == "sample_project/"

        file_edges = {edge["id"]: edge for edge in data["file_graph"]["edges"]}
        assert file_edges["src/index.ts->src/utils/format.ts"]["kind"] == "imports"
        assert file_edges["src/utils/index.ts->src/utils/format.ts"]["kind"] == "reexports"
        assert "scripts/build.py->scripts/helpers.py" in file_edges

        function_edges = {edge["id"] for edge in data["function_graph"]["edges"]}
        assert function_edges >= {
            "src/index.ts::main->src/utils/format.ts::formatName",
            "src/index.ts::main->src/app.tsx::default",
            "src/app.tsx::default->src/utils/format.ts::formatName",
            "lib/legacy.js::legacy->src/utils/format.ts::formatName",
        }
        assert data["warnings"] == ["Could not resolve imports in scripts/build.py: os"]
        assert data["stats"]["file_count"] == 7

    def test_analyze_reports_missing_credential(self, sample_project_path: Path, tmp_path: Path):
        """Test enrichment without a key adds a warning instead of failing."""
        output = tmp_path / "graph.json"
        result = runner.invoke(app, ["analyze", str(sample_project_path), "-o", str(output)])

        assert result.exit_code == 0
        assert MISSING_CREDENTIAL_WARNING in json.loads(output.read_text(encoding="utf-8"))["warnings"]

    def test_analyze_to_dot(self, sample_project_path: Path, tmp_path: Path):
        """Test DOT output for the function view."""
        output = tmp_path / "graph.dot"
        result = runner.invoke(
            app,
            ["analyze", str(sample_project_path), "--no-llm", "--format", "dot", "--view", "functions",
             "-o", str(output)],
        )

        assert result.exit_code == 0
        assert output.read_text(encoding="utf-8").startswith("digraph RepoFunctions {")

    def test_analyze_output_uses_write_export(self, sample_project_path: Path, tmp_path: Path, monkeypatch):
        """Test --output hands the result to the shared exporter."""
        writer = MagicMock()
        monkeypatch.setattr("repograph.cli.write_export", writer)
        output = tmp_path / "graph.dot"
        result = runner.invoke(
            app,
            ["analyze", str(sample_project_path), "--no-llm", "--format", "dot", "--view", "functions",
             "-o", str(output)],
        )

        assert result.exit_code == 0
        writer.assert_called_once()
        _, path, fmt, view = writer.call_args.args
        assert (path, fmt, view) == (output, "dot", "functions")

    def test_analyze_max_files(self, sample_project_path: Path, tmp_path: Path):
        """Test --max-files caps the analysed files."""
        output = tmp_path / "graph.json"
        result = runner.invoke(
            app, ["analyze", str(sample_project_path), "--no-llm", "--max-files", "2", "-o", str(output)],
        )

        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["stats"]["file_count"] == 2

    def test_analyze_invalid_format(self, sample_project_path: Path):
        """Test an unknown format is rejected."""
        result = runner.invoke(app, ["analyze", str(sample_project_path), "--format", "yaml"])
        assert result.exit_code != 0

    def test_analyze_nonexistent_path(self):
        """Test analysing a missing directory fails."""
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])
        assert result.exit_code != 0


class TestLLMCommands:
    """Tests for 'repograph set-llm' and 'repograph show-llm'."""

    def test_show_llm_unconfigured(self):
        """Test the default provider is shown with no key."""
        result = runner.invoke(app, ["show-llm"])

        assert result.exit_code == 0
        assert "openai" in result.stdout
        assert "(not set)" in result.stdout
        assert "disabled" in result.stdout

    def test_set_llm_with_key(self, isolated_config):
        """Test switching provider persists the key and shows it masked."""
        result = runner.invoke(app, ["set-llm", "groq", "-k", "gsk-0123456789"])

        assert result.exit_code == 0
        saved = toml.loads(isolated_config.read_text(encoding="utf-8"))
        assert saved["llm"] == {"provider": "groq", "model": "llama-3.3-70b-versatile", "api_key": "gsk-0123456789"}

        shown = runner.invoke(app, ["show-llm"])
        assert "groq" in shown.stdout
        assert "gsk-…6789" in shown.stdout
        assert "gsk-0123456789" not in shown.stdout

    def test_set_llm_prompts_for_key(self, isolated_config):
        """Test cloud providers prompt for a missing key."""
        result = runner.invoke(app, ["set-llm", "openai"], input="sk-prompted-key\n")

        assert result.exit_code == 0
        assert toml.loads(isolated_config.read_text(encoding="utf-8"))["llm"]["api_key"] == "sk-prompted-key"

    def test_set_llm_ollama_needs_no_key(self, isolated_config):
        """Test local providers are saved without a key."""
        result = runner.invoke(app, ["set-llm", "ollama", "-m", "llama3"])

        assert result.exit_code == 0
        assert toml.loads(isolated_config.read_text(encoding="utf-8"))["llm"] == {
            "provider": "ollama",
            "model": "llama3",
        }

    def test_set_llm_unknown_provider(self):
        """Test an unknown provider exits with an error."""
        result = runner.invoke(app, ["set-llm", "mystery"])
        assert result.exit_code == 1


def test_languages():
    """Test the language table lists both extractor strategies."""
    result = runner.invoke(app, ["languages"])

    assert result.exit_code == 0
    assert "typescript" in result.stdout
    assert "python" in result.stdout


def test_version():
    """Test --version prints the package version."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"repograph v{__version__}" in result.stdout
