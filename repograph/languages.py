"""Language detection: route a file to the AST extractor, a pattern extractor, or nothing."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from posixpath import splitext
from typing import Dict, Literal, Optional

from .models import FileAnalysis

Strategy = Literal["ast", "pattern", "unsupported"]

# ---------------------------------------------------------------------------
# Extension -> language mapping (extensible)
# ---------------------------------------------------------------------------
SCRIPT_EXTENSIONS: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

PATTERN_EXTENSIONS: Dict[str, str] = {
    ".py": "python",
    ".pyw": "python",
    ".pyx": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".sc": "scala",
    ".groovy": "groovy",
    ".gradle": "groovy",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hh": "cpp",
    ".hxx": "cpp",
    ".m": "objc",
    ".mm": "objc",
    ".cs": "csharp",
    ".fs": "fsharp",
    ".fsx": "fsharp",
    ".rb": "ruby",
    ".rake": "ruby",
    ".php": "php",
    ".phtml": "php",
    ".swift": "swift",
    ".dart": "dart",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".fish": "shell",
    ".r": "r",
    ".jl": "julia",
    ".lua": "lua",
    ".ex": "elixir",
    ".exs": "elixir",
    ".hs": "haskell",
    ".ml": "ocaml",
    ".mli": "ocaml",
    ".erl": "erlang",
    ".hrl": "erlang",
    ".clj": "clojure",
    ".cljs": "clojure",
    ".cljc": "clojure",
    ".pl": "perl",
    ".pm": "perl",
    ".sql": "sql",
    ".zig": "zig",
    ".nim": "nim",
    ".v": "v",
    ".sol": "solidity",
    ".vue": "component",
    ".svelte": "component",
    ".astro": "component",
}


@dataclass(frozen=True)
class ExtractorChoice:
    strategy: Strategy
    language: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self.strategy != "unsupported"


UNSUPPORTED = ExtractorChoice("unsupported")

MAX_PREVIEW_CHARS = 4000
PREVIEW_TRUNCATED_MARKER = "\n/* …preview truncated… */"


def build_preview(content: str) -> str:
    """Leading slice of a file kept for LLM digests."""
    if len(content) > MAX_PREVIEW_CHARS:
        return content[:MAX_PREVIEW_CHARS] + PREVIEW_TRUNCATED_MARKER
    return content


class Extractor(ABC):
    """Common capability interface shared by every language extractor."""

    language: str

    @abstractmethod
    def extract(self, path: str, content: str) -> FileAnalysis:
        """Extract imports, declarations and call sites from one file."""
        ...


def detect(path: str) -> ExtractorChoice:
    """Pick an extractor from the file extension alone (case-insensitive)."""
    ext = splitext(path)[1].lower()
    if not ext:
        return UNSUPPORTED
    if ext in SCRIPT_EXTENSIONS:
        return ExtractorChoice("ast", SCRIPT_EXTENSIONS[ext])
    if ext in PATTERN_EXTENSIONS:
        return ExtractorChoice("pattern", PATTERN_EXTENSIONS[ext])
    return UNSUPPORTED


def register_pattern_extension(extension: str, language: str) -> None:
    """Route an extra extension to an existing pattern language."""
    ext = extension.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    if ext in SCRIPT_EXTENSIONS:
        raise ValueError(f"{ext} is handled by the AST extractor")
    PATTERN_EXTENSIONS[ext] = language


def supported_languages() -> Dict[str, Strategy]:
    languages: Dict[str, Strategy] = {lang: "ast" for lang in SCRIPT_EXTENSIONS.values()}
    for lang in PATTERN_EXTENSIONS.values():
        languages.setdefault(lang, "pattern")
    return languages
