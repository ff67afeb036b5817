"""End-to-end tests for the analysis pipeline."""

import json

import pytest

from repograph import analyze
from repograph.cache import ResultCache
from repograph.config import Settings
from repograph.enrichment import MISSING_CREDENTIAL_WARNING
from repograph.llm import LLMError
from repograph.models import AliasEntry
from repograph.pipeline import NO_PARSED_FILES_WARNING


def five_files():
    return {f"src/{name}.ts": f"export function {name}() {{ return 1; }}\n" for name in "abcde"}


def without_duration(result):
    data = result.to_dict()
    data["stats"].pop("duration_ms")
    return data


def node_ids(view):
    return [node.id for node in view.nodes]


def edge_ids(view):
    return {edge.id for edge in view.edges}


def test_cross_file_call_edge(sample_files, settings):
    """Test a call to an imported function links caller and declaration."""
    result = analyze(sample_files, llm_enabled=False, settings=settings)

    assert "src/main.ts::(module)->src/util.ts::helper" in edge_ids(result.function_graph)
    assert "src/main.ts->src/util.ts" in edge_ids(result.file_graph)
    assert result.warnings == []
    assert result.stats.file_count == 3
    assert result.stats.directory_count == 3
    assert result.stats.function_count == 3


def test_output_is_deterministic(sample_files, settings):
    """Test identical input yields identical output regardless of map order."""
    first = analyze(sample_files, llm_enabled=False, settings=settings)
    second = analyze(dict(reversed(list(sample_files.items()))), llm_enabled=False, settings=settings)
    parallel = analyze(sample_files, llm_enabled=False, settings=Settings(concurrency=4))

    assert without_duration(first) == without_duration(second)
    assert without_duration(first) == without_duration(parallel)


def test_directory_completeness(sample_files, settings):
    """Test every ancestor directory is a node, with the root labelled."""
    result = analyze(sample_files, llm_enabled=False, settings=settings, root_label="demo")
    directories = [node for node in result.file_graph.nodes if node.kind == "directory"]

    assert [node.id for node in directories] == ["dir:.", "dir:src", "dir:src/sub"]
    assert directories[0].label == "demo/"


def test_unsupported_files_are_skipped(sample_files, settings):
    """Test unsupported extensions change nothing and add no warning."""
    baseline = analyze(sample_files, llm_enabled=False, settings=settings)
    noisy = analyze(
        {**sample_files, "bin/tool.exe": "MZ\x90\x00", "README.md": "# demo"},
        llm_enabled=False,
        settings=settings,
    )

    assert without_duration(noisy) == without_duration(baseline)


def test_parse_failure_is_a_warning(sample_files, settings):
    """Test one broken file is reported and the rest are still analysed."""
    result = analyze({**sample_files, "src/bad.ts": "const = ;\n"}, llm_enabled=False, settings=settings)

    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("Failed to analyze src/bad.ts:")
    assert "src/bad.ts" not in node_ids(result.file_graph)
    assert "src/util.ts" in node_ids(result.file_graph)


def test_no_supported_files(settings):
    """Test an input with nothing to parse still returns a root node."""
    result = analyze({"README.md": "# hi"}, settings=settings)

    assert result.warnings == [NO_PARSED_FILES_WARNING]
    assert node_ids(result.file_graph) == ["dir:."]
    assert result.function_graph.nodes == []


def test_max_files_cap(sample_files, settings):
    """Test only the first max_files supported files, in path order, are analysed."""
    result = analyze(sample_files, max_files=2, llm_enabled=False, settings=settings)

    files = [node.id for node in result.file_graph.nodes if node.kind == "file"]
    assert files == ["src/main.ts", "src/sub/view.ts"]
    assert result.file_graph.edges == []
    assert result.warnings == []


def test_pattern_language_files(settings):
    """Test regex-extracted files join the file graph."""
    result = analyze(
        {
            "pkg/main.py": "from .util import run\nimport os\n\ndef main():\n    run()\n",
            "pkg/util.py": "def run():\n    pass\n",
        },
        llm_enabled=False,
        settings=settings,
    )

    assert edge_ids(result.file_graph) == {"pkg/main.py->pkg/util.py"}
    assert {"pkg/main.py::main", "pkg/util.py::run"} <= set(node_ids(result.function_graph))
    assert result.warnings == ["Could not resolve imports in pkg/main.py: os"]


def test_alias_table(settings):
    """Test aliased imports resolve through the supplied table."""
    result = analyze(
        {
            "src/lib/format.ts": "export function format() {}\n",
            "app/main.ts": "import { format } from '@/lib/format';\nformat();\n",
        },
        [AliasEntry(prefix="@/", suffix="", targets=["src"])],
        llm_enabled=False,
        settings=settings,
    )

    assert "app/main.ts->src/lib/format.ts" in edge_ids(result.file_graph)
    assert "app/main.ts::(module)->src/lib/format.ts::format" in edge_ids(result.function_graph)


@pytest.mark.parametrize("files", [["src/a.ts"], {1: "x"}, {"src/a.ts": b"bytes"}])
def test_invalid_input_raises(files, settings):
    """Test a malformed file map is a TypeError."""
    with pytest.raises(TypeError):
        analyze(files, settings=settings)


def test_progress_events(sample_files, settings):
    """Test progress starts at zero and finishes with every file counted."""
    events = []
    analyze(sample_files, llm_enabled=False, settings=settings, on_progress=events.append)

    assert events[0].files_analyzed == 0
    assert events[0].total_files == 3
    assert events[-1].message == "Analysis complete"
    assert events[-1].files_analyzed == 3
    assert any(e.message == "3/3 files analyzed" for e in events)


def test_progress_callback_errors_are_contained(sample_files, settings):
    """Test a failing progress sink does not break the analysis."""
    def explode(event):
        raise RuntimeError("sink closed")

    result = analyze(sample_files, llm_enabled=False, settings=settings, on_progress=explode)
    assert result.stats.file_count == 3


def test_cache_returns_previous_result(sample_files, settings):
    """Test a second run over the same input is served from the cache."""
    cache = ResultCache()
    first = analyze(sample_files, llm_enabled=False, settings=settings, cache=cache)
    second = analyze(sample_files, llm_enabled=False, settings=settings, cache=cache)

    assert second is first
    assert len(cache) == 1

    changed = analyze({**sample_files, "src/util.ts": "export function helper() {}\n"},
                      llm_enabled=False, settings=settings, cache=cache)
    assert changed is not first
    assert len(cache) == 2


class TestLLMEnrichment:
    """Tests for the enrichment stage as seen through analyze()."""

    def test_llm_edges_are_merged(self, settings, fake_provider):
        """Test provider proposals land in the file graph with llm provenance."""
        fake_provider.complete.return_value = json.dumps({
            "fileEdges": [{"source": "src/a.ts", "target": "src/b.ts", "relationship": "uses"}],
            "notes": ["heuristic"],
        })
        result = analyze(five_files(), settings=settings, provider=fake_provider)

        edge = next(e for e in result.file_graph.edges if e.id == "src/a.ts->src/b.ts")
        assert edge.provenance == "llm"
        assert edge.kind == "llm-reference"
        assert result.warnings == [
            "LLM: heuristic",
            "LLM inferred 1 file relationship and 0 function relationships.",
        ]
        fake_provider.complete.assert_called_once()

    def test_disabled(self, settings, fake_provider):
        """Test llm_enabled=False never calls the provider."""
        analyze(five_files(), llm_enabled=False, settings=settings, provider=fake_provider)
        fake_provider.complete.assert_not_called()

    def test_small_projects_skip(self, sample_files, settings, fake_provider):
        """Test fewer than llm_min_files files skip enrichment silently."""
        result = analyze(sample_files, settings=settings, provider=fake_provider)

        fake_provider.complete.assert_not_called()
        assert result.warnings == []

    def test_missing_credential_warning(self, settings):
        """Test a missing key is reported once and static output is kept."""
        result = analyze(five_files(), settings=settings)

        assert result.warnings == [MISSING_CREDENTIAL_WARNING]
        assert result.stats.file_count == 5

    def test_provider_error(self, settings, fake_provider):
        """Test provider failures are downgraded to a warning."""
        fake_provider.complete.side_effect = LLMError("groq request timed out after 30s")
        result = analyze(five_files(), settings=settings, provider=fake_provider)

        assert result.warnings == ["LLM relationship inference failed: groq request timed out after 30s"]

    def test_unexpected_error(self, settings, fake_provider):
        """Test any enrichment crash is downgraded to a warning."""
        fake_provider.complete.side_effect = ValueError("bad state")
        result = analyze(five_files(), settings=settings, provider=fake_provider)

        assert result.warnings == ["LLM relationship inference failed: bad state"]
        assert result.stats.function_count == 5
