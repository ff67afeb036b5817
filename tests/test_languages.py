"""Tests for language detection and previews."""

import pytest

from repograph.languages import (
    MAX_PREVIEW_CHARS,
    PATTERN_EXTENSIONS,
    PREVIEW_TRUNCATED_MARKER,
    build_preview,
    detect,
    register_pattern_extension,
    supported_languages,
)


@pytest.mark.parametrize(
    "path, strategy, language",
    [
        ("src/app.ts", "ast", "typescript"),
        ("src/App.TSX", "ast", "tsx"),
        ("lib/index.mjs", "ast", "javascript"),
        ("lib/legacy.cjs", "ast", "javascript"),
        ("scripts/build.py", "pattern", "python"),
        ("cmd/main.go", "pattern", "go"),
        ("ui/Widget.vue", "pattern", "component"),
    ],
)
def test_detect_supported(path, strategy, language):
    """Test extension routing to the AST or pattern extractor."""
    choice = detect(path)
    assert choice.strategy == strategy
    assert choice.language == language
    assert choice.supported


@pytest.mark.parametrize("path", ["Makefile", "bin/tool.exe", "README.md", "assets/logo.svg"])
def test_detect_unsupported(path):
    """Test unknown or missing extensions are unsupported."""
    choice = detect(path)
    assert choice.strategy == "unsupported"
    assert choice.language is None
    assert not choice.supported


def test_register_pattern_extension():
    """Test adding an extension for an existing pattern language."""
    try:
        register_pattern_extension("pyi", "python")
        assert detect("stubs/mod.pyi").language == "python"
    finally:
        PATTERN_EXTENSIONS.pop(".pyi", None)


def test_register_pattern_extension_rejects_script_extensions():
    """Test AST-handled extensions cannot be rerouted."""
    with pytest.raises(ValueError):
        register_pattern_extension(".ts", "typescript")


def test_supported_languages():
    """Test the language summary marks each language's strategy."""
    languages = supported_languages()
    assert languages["typescript"] == "ast"
    assert languages["javascript"] == "ast"
    assert languages["python"] == "pattern"
    assert languages["rust"] == "pattern"


def test_build_preview_short_content():
    """Test short files are kept whole."""
    assert build_preview("export const a = 1;\n") == "export const a = 1;\n"


def test_build_preview_truncates():
    """Test long files are cut and marked."""
    preview = build_preview("x" * (MAX_PREVIEW_CHARS + 10))
    assert preview.endswith(PREVIEW_TRUNCATED_MARKER)
    assert len(preview) == MAX_PREVIEW_CHARS + len(PREVIEW_TRUNCATED_MARKER)
