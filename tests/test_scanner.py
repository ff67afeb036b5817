"""Tests for reading a checkout into a file map."""

from pathlib import Path

import pytest

from repograph import scanner
from repograph.models import AliasEntry
from repograph.resolver import load_alias_table
from repograph.scanner import load_files


def write(root: Path, rel: str, content="", binary=None):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if binary is not None:
        path.write_bytes(binary)
    else:
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def checkout(tmp_path: Path) -> Path:
    write(tmp_path, "src/main.ts", "import './styles.css';\n")
    write(tmp_path, "src/styles.css", "body {}\n")
    write(tmp_path, "src/data.json", '{"a": 1}\n')
    write(tmp_path, "tsconfig.json", '{"compilerOptions": {"paths": {"@/*": ["src/*"]}}}\n')
    write(tmp_path, "README.md", "# demo\n")
    write(tmp_path, "node_modules/pad/index.js", "module.exports = 1;\n")
    write(tmp_path, "dist/bundle.js", "var a = 1;\n")
    write(tmp_path, "src/broken.ts", binary=b"\xff\xfe\x00bad")
    return tmp_path


def test_load_files(checkout):
    """Test supported sources, configs and assets are loaded; the rest is skipped."""
    files = load_files(checkout)

    assert sorted(files) == ["src/data.json", "src/main.ts", "src/styles.css", "tsconfig.json"]
    assert files["src/main.ts"] == "import './styles.css';\n"
    assert files["src/styles.css"] == ""
    assert files["src/data.json"] == ""
    assert files["tsconfig.json"].startswith("{")


def test_include_unsupported(checkout):
    """Test unsupported text files can be included on request."""
    files = load_files(checkout, include_unsupported=True)
    assert files["README.md"] == "# demo\n"
    assert "node_modules/pad/index.js" not in files


def test_large_files_are_skipped(checkout, monkeypatch):
    """Test files above the size cap are left out."""
    monkeypatch.setattr(scanner, "MAX_FILE_BYTES", 10)
    files = load_files(checkout)
    assert "src/main.ts" not in files


def test_not_a_directory(tmp_path):
    """Test a file path is rejected."""
    target = tmp_path / "file.ts"
    target.write_text("", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        load_files(target)


def test_alias_table_from_checkout(checkout):
    """Test the root tsconfig.json supplies path aliases."""
    assert load_alias_table(load_files(checkout)) == [AliasEntry(prefix="@/", suffix="", targets=["src"])]


def test_sample_project(sample_project_path):
    """Test the bundled sample project loads without node_modules."""
    files = load_files(sample_project_path)

    assert "src/index.ts" in files
    assert "scripts/build.py" in files
    assert not any(path.startswith("node_modules/") for path in files)
    assert "README.md" not in files
