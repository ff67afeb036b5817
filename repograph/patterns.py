"""Regex-driven extractors for languages without a full parser integration.

Each language gets a small table of import patterns and declaration
patterns. There is no scope analysis and no call extraction: the results
only feed file-level import edges (through the shared module resolver)
and function/class nodes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Pattern, Tuple

from .languages import Extractor, build_preview
from .models import DeclaredSymbol, FileAnalysis, FunctionKind, FunctionRecord, ImportBinding, PatternResult

logger = logging.getLogger(__name__)

Normalizer = Callable[[str], Optional[str]]

# Words that C-like declaration regexes happily match as "function names".
CONTROL_WORDS: FrozenSet[str] = frozenset({
    "if", "else", "for", "foreach", "while", "do", "switch", "case", "return",
    "catch", "try", "sizeof", "typeof", "new", "delete", "throw", "using",
    "lock", "fixed", "checked", "unchecked", "synchronized", "when", "elif",
    "defined", "static_assert", "assert", "super", "this", "await",
})


# ---------------------------------------------------------------------------
# Specifier normalisers
# ---------------------------------------------------------------------------

def _keep(spec: str) -> Optional[str]:
    spec = spec.strip()
    return spec or None


def _dotted(spec: str) -> Optional[str]:
    spec = spec.strip().rstrip(";")
    if not spec:
        return None
    return spec.replace(".", "/")


def _last_segment(separator: str) -> Normalizer:
    def normalize(spec: str) -> Optional[str]:
        parts = [p for p in spec.strip().split(separator) if p]
        return parts[-1].strip() if parts else None
    return normalize


def _relative(spec: str) -> Optional[str]:
    """Quoted paths that are relative to the including file."""
    spec = spec.strip()
    if not spec:
        return None
    if spec.startswith((".", "/")):
        return spec
    return f"./{spec}"


def _python_module(spec: str) -> Optional[str]:
    spec = spec.strip()
    if not spec:
        return None
    dots = len(spec) - len(spec.lstrip("."))
    rest = spec[dots:].replace(".", "/")
    if dots == 0:
        return rest
    prefix = "./" if dots == 1 else "../" * (dots - 1)
    return f"{prefix}{rest}" if rest else prefix.rstrip("/") or "."


def _double_colon(spec: str) -> Optional[str]:
    spec = spec.strip()
    return spec.replace("::", "/") if spec else None


def _dart(spec: str) -> Optional[str]:
    spec = spec.strip()
    if spec.startswith(("package:", "dart:")):
        return spec
    return _relative(spec)


def _zig(spec: str) -> Optional[str]:
    spec = spec.strip()
    return _relative(spec) if spec.endswith(".zig") else _keep(spec)


def _c_include(spec: str) -> Optional[str]:
    spec = spec.strip()
    if spec.startswith('"'):
        return _relative(spec.strip('"'))
    return _keep(spec.strip("<>"))


def _quoted(spec: str) -> Optional[str]:
    match = re.search(r'"([^"]+)"', spec)
    return match.group(1) if match else None


def _rust_use(spec: str) -> Optional[str]:
    head = spec.strip().split("::")[0].strip()
    return head or None


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

@dataclass
class PatternExtractor(Extractor):
    """A regex-driven extractor for one language."""

    language: str
    imports: List[Tuple[Pattern[str], Normalizer]] = field(default_factory=list)
    declarations: List[Tuple[Pattern[str], FunctionKind]] = field(default_factory=list)
    reserved: FrozenSet[str] = CONTROL_WORDS
    list_separator: Optional[str] = None

    def extract_patterns(self, content: str) -> PatternResult:
        result = PatternResult()
        seen_imports = set()
        for pattern, normalize in self.imports:
            for match in pattern.finditer(content):
                raw = next((g for g in match.groups() if g), "")
                pieces = raw.split(self.list_separator) if self.list_separator else [raw]
                for piece in pieces:
                    spec = normalize(piece)
                    if spec and spec not in seen_imports:
                        seen_imports.add(spec)
                        result.imports.append(spec)

        seen_decls = set()
        for pattern, kind in self.declarations:
            for match in pattern.finditer(content):
                name = match.group("name")
                if not name or name in self.reserved:
                    continue
                if (name, kind) in seen_decls:
                    continue
                seen_decls.add((name, kind))
                result.functions.append(DeclaredSymbol(name=name, kind=kind))
        return result

    def extract(self, path: str, content: str) -> FileAnalysis:
        found = self.extract_patterns(content)
        analysis = FileAnalysis(
            path=path, language=self.language, preview=build_preview(content), size=len(content),
        )
        analysis.imports = [ImportBinding(source=spec, kind="es") for spec in found.imports]

        taken: Dict[str, int] = {}
        for symbol in found.functions:
            count = taken.get(symbol.name, 0)
            taken[symbol.name] = count + 1
            local_id = symbol.name if count == 0 else f"{symbol.name}#{count + 1}"
            analysis.functions.append(FunctionRecord(
                id=f"{path}::{local_id}",
                display_name=symbol.name,
                file_path=path,
                kind=symbol.kind,
                include=True,
            ))
        logger.debug(
            "%s: %d imports, %d declarations (%s patterns)",
            path, len(analysis.imports), len(analysis.functions), self.language,
        )
        return analysis


def _rx(pattern: str, flags: int = 0) -> Pattern[str]:
    return re.compile(pattern, re.MULTILINE | flags)


_JS_IMPORTS = [
    (_rx(r"""^\s*import\s+(?:[^'";]*?\bfrom\s+)?['"]([^'"]+)['"]"""), _keep),
    (_rx(r"""\brequire\s*\(\s*['"]([^'"]+)['"]\s*\)"""), _keep),
]

_C_FUNCTION = _rx(
    r"^[ \t]*(?:[\w:<>,~]+[ \t*&]+)+(?P<name>[A-Za-z_]\w*)[ \t]*\([^;{)]*\)\s*(?:const\s*)?(?:noexcept\s*)?\{"
)

PATTERN_EXTRACTORS: Dict[str, PatternExtractor] = {}


def _register(extractor: PatternExtractor) -> PatternExtractor:
    PATTERN_EXTRACTORS[extractor.language] = extractor
    return extractor


_register(PatternExtractor(
    language="python",
    imports=[
        (_rx(r"^\s*from\s+([.\w]+)\s+import\b"), _python_module),
        (_rx(r"^\s*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)"), _python_module),
    ],
    declarations=[
        (_rx(r"^\s*(?:async\s+)?def\s+(?P<name>\w+)\s*\("), "function"),
        (_rx(r"^\s*class\s+(?P<name>\w+)"), "class"),
    ],
    list_separator=",",
))

_register(PatternExtractor(
    language="go",
    imports=[
        (_rx(r'^\s*import\s+(?:[\w.]+\s+)?"([^"]+)"'), _keep),
        (_rx(r"^\s*import\s*\(([^)]*)\)"), _quoted),
    ],
    declarations=[
        (_rx(r"^func\s+(?:\([^)]*\)\s*)?(?P<name>\w+)\s*[\[(]"), "function"),
        (_rx(r"^type\s+(?P<name>\w+)\s+(?:struct|interface)\b"), "class"),
    ],
    list_separator="\n",
))

_register(PatternExtractor(
    language="rust",
    imports=[
        (_rx(r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+([^;]+);"), _rust_use),
        (_rx(r"^\s*(?:pub(?:\([^)]*\))?\s+)?mod\s+(\w+)\s*;"), _relative),
    ],
    declarations=[
        (_rx(r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?fn\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:struct|enum|trait)\s+(?P<name>\w+)"), "class"),
    ],
))

_JVM_CLASS = _rx(
    r"^\s*(?:(?:public|private|protected|internal|abstract|final|static|sealed|data|open|inner)\s+)*"
    r"(?:class|interface|enum|record|object|trait)\s+(?P<name>\w+)"
)

_register(PatternExtractor(
    language="java",
    imports=[(_rx(r"^\s*import\s+(?:static\s+)?([\w.*]+)\s*;"), _dotted)],
    declarations=[
        (_JVM_CLASS, "class"),
        (_rx(
            r"^[ \t]*(?:(?:public|private|protected|static|final|abstract|synchronized|native|default)[ \t]+)*"
            r"(?:<[^>\n]+>[ \t]+)?[\w<>\[\],.?]+[ \t]+(?P<name>\w+)[ \t]*\([^)]*\)[ \t\w.,]*\{"
        ), "method"),
    ],
))

_register(PatternExtractor(
    language="kotlin",
    imports=[(_rx(r"^\s*import\s+([\w.*]+)"), _dotted)],
    declarations=[
        (_rx(r"^\s*(?:(?:public|private|protected|internal|override|suspend|inline|open|operator)\s+)*fun\s+(?:<[^>]+>\s*)?(?:[\w.]+\.)?(?P<name>\w+)\s*\("), "function"),
        (_JVM_CLASS, "class"),
    ],
))

_register(PatternExtractor(
    language="scala",
    imports=[(_rx(r"^\s*import\s+([\w.]+)"), _dotted)],
    declarations=[
        (_rx(r"^\s*(?:(?:override|private|protected|final|implicit)\s+)*def\s+(?P<name>\w+)"), "function"),
        (_JVM_CLASS, "class"),
    ],
))

_register(PatternExtractor(
    language="groovy",
    imports=[(_rx(r"^\s*import\s+(?:static\s+)?([\w.*]+)"), _dotted)],
    declarations=[
        (_rx(r"^\s*(?:(?:public|private|protected|static)\s+)*def\s+(?P<name>\w+)\s*\("), "function"),
        (_JVM_CLASS, "class"),
    ],
))

_C_IMPORTS = [(_rx(r'^\s*#\s*(?:include|import)\s+("[^"]+"|<[^>]+>)'), _c_include)]

for _lang in ("c", "cpp", "objc"):
    _decls: List[Tuple[Pattern[str], FunctionKind]] = [
        (_C_FUNCTION, "function"),
        (_rx(r"^\s*(?:typedef\s+)?struct\s+(?P<name>\w+)\s*\{"), "class"),
    ]
    if _lang == "cpp":
        _decls.append((_rx(r"^\s*(?:template\s*<[^>]*>\s*)?class\s+(?P<name>\w+)(?:\s*:[^{;]*)?\s*\{"), "class"))
    if _lang == "objc":
        _decls.append((_rx(r"^\s*@(?:interface|implementation|protocol)\s+(?P<name>\w+)"), "class"))
        _decls.append((_rx(r"^\s*[-+]\s*\([^)]*\)\s*(?P<name>\w+)"), "method"))
    _register(PatternExtractor(language=_lang, imports=list(_C_IMPORTS), declarations=_decls))
del _lang, _decls

_register(PatternExtractor(
    language="csharp",
    imports=[(_rx(r"^\s*(?:global\s+)?using\s+(?:static\s+)?([\w.]+)\s*;"), _dotted)],
    declarations=[
        (_rx(
            r"^\s*(?:(?:public|private|protected|internal|static|abstract|sealed|partial)\s+)*"
            r"(?:class|interface|struct|record|enum)\s+(?P<name>\w+)"
        ), "class"),
        (_rx(
            r"^\s*(?:(?:public|private|protected|internal|static|virtual|override|abstract|async|sealed|extern|new)\s+)+"
            r"[\w<>\[\],.?]+\s+(?P<name>\w+)\s*(?:<[^>]+>)?\s*\([^)]*\)"
        ), "method"),
    ],
))

_register(PatternExtractor(
    language="fsharp",
    imports=[(_rx(r"^\s*open\s+([\w.]+)"), _dotted)],
    declarations=[
        (_rx(r"^\s*let\s+(?:rec\s+|inline\s+|private\s+)*(?P<name>[a-z_]\w*)\s+[\w(]"), "function"),
        (_rx(r"^\s*type\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="ruby",
    imports=[
        (_rx(r"""^\s*require_relative\s+['"]([^'"]+)['"]"""), _relative),
        (_rx(r"""^\s*require\s+['"]([^'"]+)['"]"""), _keep),
    ],
    declarations=[
        (_rx(r"^\s*def\s+(?:self\.)?(?P<name>\w+[?!=]?)"), "function"),
        (_rx(r"^\s*(?:class|module)\s+(?P<name>[A-Z]\w*)"), "class"),
    ],
))

_register(PatternExtractor(
    language="php",
    imports=[
        (_rx(r"^\s*use\s+([\w\\]+)(?:\s+as\s+\w+)?\s*;"), _last_segment("\\")),
        (_rx(r"""\b(?:require|include)(?:_once)?\s*\(?\s*['"]([^'"]+)['"]"""), _keep),
    ],
    declarations=[
        (_rx(r"^\s*(?:(?:public|private|protected|static|abstract|final)\s+)*function\s+(?P<name>\w+)\s*\("), "function"),
        (_rx(r"^\s*(?:(?:abstract|final)\s+)?(?:class|interface|trait|enum)\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="swift",
    imports=[(_rx(r"^\s*import\s+(?:class\s+|struct\s+|func\s+)?(\w+)"), _keep)],
    declarations=[
        (_rx(r"^\s*(?:(?:public|private|internal|fileprivate|open|static|class|override|mutating|@\w+)\s+)*func\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?:(?:public|private|internal|fileprivate|open|final)\s+)*(?:class|struct|protocol|enum|actor|extension)\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="dart",
    imports=[(_rx(r"""^\s*(?:import|export|part)\s+['"]([^'"]+)['"]"""), _dart)],
    declarations=[
        (_rx(r"^[ \t]*(?:[\w<>?,]+[ \t]+)*(?P<name>[a-zA-Z_]\w*)[ \t]*\([^)]*\)[ \t]*(?:async[ \t]*\*?[ \t]*)?\{"), "function"),
        (_rx(r"^\s*(?:abstract\s+)?(?:class|mixin|enum|extension)\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="shell",
    imports=[(_rx(r"""^\s*(?:source|\.)\s+['"]?([^'";\s]+)['"]?"""), _keep)],
    declarations=[
        (_rx(r"^\s*(?:function\s+)?(?P<name>[\w-]+)\s*\(\)\s*\{"), "function"),
        (_rx(r"^\s*function\s+(?P<name>[\w-]+)\s*$"), "function"),
    ],
))

_register(PatternExtractor(
    language="r",
    imports=[
        (_rx(r"""\b(?:library|require)\(\s*['"]?(\w+)['"]?\s*\)"""), _keep),
        (_rx(r"""\bsource\(\s*['"]([^'"]+)['"]"""), _relative),
    ],
    declarations=[(_rx(r"^\s*(?P<name>[\w.]+)\s*(?:<-|=)\s*function\s*\("), "function")],
))

_register(PatternExtractor(
    language="julia",
    imports=[
        (_rx(r"^\s*(?:using|import)\s+([\w.]+)"), _keep),
        (_rx(r"""\binclude\(\s*"([^"]+)"\s*\)"""), _relative),
    ],
    declarations=[
        (_rx(r"^\s*function\s+(?:[\w.]+\.)?(?P<name>\w+!?)"), "function"),
        (_rx(r"^\s*(?:mutable\s+)?struct\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="lua",
    imports=[(_rx(r"""\brequire\s*\(?\s*['"]([^'"]+)['"]\s*\)?"""), _dotted)],
    declarations=[
        (_rx(r"^\s*(?:local\s+)?function\s+(?P<name>[\w.:]+)\s*\("), "function"),
        (_rx(r"^\s*(?:local\s+)?(?P<name>\w+)\s*=\s*function\s*\("), "function"),
    ],
))

_register(PatternExtractor(
    language="elixir",
    imports=[(_rx(r"^\s*(?:alias|import|use|require)\s+([A-Z][\w.]*)"), _keep)],
    declarations=[
        (_rx(r"^\s*defp?\s+(?P<name>\w+[?!]?)"), "function"),
        (_rx(r"^\s*defmodule\s+(?P<name>[\w.]+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="haskell",
    imports=[(_rx(r"^import\s+(?:qualified\s+)?([A-Z][\w.]*)"), _dotted)],
    declarations=[
        (_rx(r"^(?P<name>[a-z_][\w']*)\s*::"), "function"),
        (_rx(r"^(?:data|newtype|class|type)\s+(?P<name>[A-Z]\w*)"), "class"),
    ],
    reserved=CONTROL_WORDS | {"module", "where", "let", "in"},
))

_register(PatternExtractor(
    language="ocaml",
    imports=[(_rx(r"^\s*open\s+([A-Z][\w.]*)"), _keep)],
    declarations=[
        (_rx(r"^\s*let\s+(?:rec\s+)?(?P<name>[a-z_][\w']*)"), "function"),
        (_rx(r"^\s*module\s+(?:type\s+)?(?P<name>[A-Z]\w*)"), "class"),
    ],
    reserved=CONTROL_WORDS | {"open", "in", "_"},
))

_register(PatternExtractor(
    language="erlang",
    imports=[
        (_rx(r"""^-include(?:_lib)?\(\s*"([^"]+)"\s*\)"""), _relative),
        (_rx(r"^-import\(\s*(\w+)\s*,"), _keep),
    ],
    declarations=[
        (_rx(r"^(?P<name>[a-z]\w*)\s*\([^)]*\)\s*(?:when\s+[^-]*)?->"), "function"),
        (_rx(r"^-record\(\s*(?P<name>\w+)\s*,"), "class"),
    ],
))

_register(PatternExtractor(
    language="clojure",
    imports=[
        (_rx(r"\(:require\s+\[?([\w.\-]+)"), _dotted),
        (_rx(r"^\s+\[([\w.\-]+)\s+:(?:as|refer)"), _dotted),
    ],
    declarations=[
        (_rx(r"\(defn-?\s+(?P<name>[\w\-?!*<>]+)"), "function"),
        (_rx(r"\(def(?:record|protocol|type)\s+(?P<name>[\w\-]+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="perl",
    imports=[
        (_rx(r"^\s*(?:use|require)\s+([A-Z][\w:]*)"), _double_colon),
        (_rx(r"""^\s*require\s+['"]([^'"]+)['"]"""), _relative),
    ],
    declarations=[
        (_rx(r"^\s*sub\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*package\s+(?P<name>[\w:]+)\s*;"), "class"),
    ],
))

_register(PatternExtractor(
    language="sql",
    imports=[(_rx(r"^\s*\\i[r]?\s+(\S+)"), _relative)],
    declarations=[
        (_rx(r"\bcreate\s+(?:or\s+replace\s+)?(?:function|procedure)\s+(?:[\w\"]+\.)?\"?(?P<name>\w+)", re.IGNORECASE), "function"),
        (_rx(r"\bcreate\s+(?:or\s+replace\s+)?(?:temporary\s+)?(?:table|view)\s+(?:if\s+not\s+exists\s+)?(?:[\w\"]+\.)?\"?(?P<name>\w+)", re.IGNORECASE), "class"),
    ],
))

_register(PatternExtractor(
    language="zig",
    imports=[(_rx(r"""@import\(\s*"([^"]+)"\s*\)"""), _zig)],
    declarations=[
        (_rx(r"^\s*(?:pub\s+)?(?:export\s+)?(?:inline\s+)?fn\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?:pub\s+)?const\s+(?P<name>\w+)\s*=\s*(?:packed\s+|extern\s+)?(?:struct|enum|union)\b"), "class"),
    ],
))

_register(PatternExtractor(
    language="nim",
    imports=[
        (_rx(r"^\s*(?:import|include)\s+([\w/, ]+)"), _keep),
        (_rx(r"^\s*from\s+([\w/]+)\s+import\b"), _keep),
    ],
    declarations=[
        (_rx(r"^\s*(?:proc|func|method|iterator|template|macro)\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?P<name>[A-Z]\w*)\*?\s*=\s*(?:ref\s+|ptr\s+)?object\b"), "class"),
    ],
    list_separator=",",
))

_register(PatternExtractor(
    language="v",
    imports=[(_rx(r"^\s*import\s+([\w.]+)"), _dotted)],
    declarations=[
        (_rx(r"^\s*(?:pub\s+)?fn\s+(?:\([^)]*\)\s*)?(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?:pub\s+)?(?:struct|interface|enum)\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="solidity",
    imports=[(_rx(r"""^\s*import\s+(?:[^'"]*\s+from\s+)?['"]([^'"]+)['"]"""), _keep)],
    declarations=[
        (_rx(r"^\s*function\s+(?P<name>\w+)\s*\("), "function"),
        (_rx(r"^\s*modifier\s+(?P<name>\w+)"), "function"),
        (_rx(r"^\s*(?:abstract\s+)?(?:contract|interface|library)\s+(?P<name>\w+)"), "class"),
    ],
))

_register(PatternExtractor(
    language="component",
    imports=list(_JS_IMPORTS),
    declarations=[
        (_rx(r"^\s*(?:export\s+)?(?:async\s+)?function\s+(?P<name>\w+)\s*\("), "function"),
        (_rx(r"^\s*(?:export\s+)?(?:const|let)\s+(?P<name>\w+)\s*=\s*(?:async\s+)?(?:\([^)]*\)|\w+)\s*=>"), "arrow"),
    ],
))


def get_pattern_extractor(language: str) -> PatternExtractor:
    try:
        return PATTERN_EXTRACTORS[language]
    except KeyError:
        raise KeyError(f"No pattern extractor registered for language '{language}'") from None


def register_pattern_extractor(extractor: PatternExtractor) -> None:
    """Add or replace the extractor for ``extractor.language``."""
    _register(extractor)
