"""Core data models shared by the extractors, the assembler and the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

BindingType = Literal["named", "default", "namespace"]
ImportKind = Literal["es", "dynamic", "require"]
FunctionKind = Literal["function", "arrow", "method", "class", "module"]
EdgeKind = Literal["imports", "reexports", "invokes", "llm-reference"]
Provenance = Literal["static", "llm"]
Confidence = Literal["low", "medium", "high"]

CONFIDENCE_LEVELS = ("low", "medium", "high")


@dataclass
class Position:
    line: int
    column: int


@dataclass
class SourceSpan:
    """Start/end of a declaration; lines are 1-based, columns 0-based."""
    start: Position
    end: Position


@dataclass
class ImportSpecifier:
    local_name: str
    imported_name: str
    binding_type: BindingType
    resolved_target: Optional[str] = None


@dataclass
class ImportBinding:
    source: str
    kind: ImportKind = "es"
    specifiers: List[ImportSpecifier] = field(default_factory=list)
    resolved_target: Optional[str] = None
    reexport: bool = False
    # False for ``require``/``import()`` inside a function or block.
    module_level: bool = True

    @property
    def is_side_effect(self) -> bool:
        return not self.specifiers


@dataclass
class FunctionRecord:
    id: str
    display_name: str
    file_path: str
    kind: FunctionKind
    is_exported: bool = False
    exported_as: Optional[str] = None
    source_span: Optional[SourceSpan] = None
    include: bool = False

    def mark_exported(self, name: str) -> None:
        self.is_exported = True
        if self.exported_as is None:
            self.exported_as = name
        self.include = True


@dataclass
class CallSite:
    caller_id: str
    callee_local_name: str
    callee_imported_name: Optional[str] = None
    source_specifier: Optional[str] = None
    resolved_target_file: Optional[str] = None


@dataclass
class DeclaredSymbol:
    """A declaration found by a pattern extractor."""
    name: str
    kind: FunctionKind


@dataclass
class PatternResult:
    imports: List[str] = field(default_factory=list)
    functions: List[DeclaredSymbol] = field(default_factory=list)


@dataclass
class FileAnalysis:
    """Everything extracted from one source file."""
    path: str
    language: str
    imports: List[ImportBinding] = field(default_factory=list)
    functions: List[FunctionRecord] = field(default_factory=list)
    calls: List[CallSite] = field(default_factory=list)
    preview: str = ""
    size: int = 0

    def function_by_id(self, function_id: str) -> Optional[FunctionRecord]:
        for fn in self.functions:
            if fn.id == function_id:
                return fn
        return None


@dataclass
class AliasEntry:
    """One wildcard path mapping, e.g. ``@/*`` -> ``["src"]``."""
    prefix: str
    suffix: str
    targets: List[str]
    wildcard: bool = True


# ---------------------------------------------------------------------------
# Graph output
# ---------------------------------------------------------------------------

@dataclass
class FileNode:
    id: str
    label: str
    path: str
    kind: Literal["file", "directory"] = "file"


@dataclass
class FunctionNode:
    id: str
    label: str
    file_path: str
    kind: FunctionKind = "function"
    exported_as: Optional[str] = None
    source_span: Optional[SourceSpan] = None


@dataclass
class GraphEdge:
    source: str
    target: str
    kind: EdgeKind
    provenance: Provenance = "static"
    confidence: Optional[Confidence] = None
    reason: Optional[str] = None

    @property
    def id(self) -> str:
        return edge_key(self.source, self.target)


@dataclass
class GraphView:
    nodes: List[Any] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)


@dataclass
class AnalysisStats:
    file_count: int = 0
    directory_count: int = 0
    function_count: int = 0
    duration_ms: int = 0


@dataclass(frozen=True)
class AnalysisResult:
    file_graph: GraphView
    function_graph: GraphView
    warnings: List[str]
    stats: AnalysisStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_graph": _view_to_dict(self.file_graph),
            "function_graph": _view_to_dict(self.function_graph),
            "warnings": list(self.warnings),
            "stats": asdict(self.stats),
        }


@dataclass
class Progress:
    message: str
    files_analyzed: Optional[int] = None
    total_files: Optional[int] = None


def edge_key(source: str, target: str) -> str:
    return f"{source}->{target}"


def _view_to_dict(view: GraphView) -> Dict[str, List[Dict[str, Any]]]:
    edges = []
    for edge in view.edges:
        payload = {"id": edge.id, **asdict(edge)}
        edges.append({k: v for k, v in payload.items() if v is not None})
    nodes = [{k: v for k, v in asdict(node).items() if v is not None} for node in view.nodes]
    return {"nodes": nodes, "edges": edges}
