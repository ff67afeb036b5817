"""Assemble per-file extraction results into file and function graphs."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import (
    Confidence,
    EdgeKind,
    FileAnalysis,
    FileNode,
    FunctionNode,
    FunctionRecord,
    GraphEdge,
    GraphView,
    ImportSpecifier,
    Provenance,
    edge_key,
)
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)

MAX_UNRESOLVED_EXAMPLES = 5
MAX_REEXPORT_DEPTH = 5
ROOT_DIRECTORY = "."


class EdgeStore:
    """Edges keyed by ``source->target``.

    The first write to a key fixes ``kind`` and ``provenance``; later writes
    only fill a missing ``confidence`` or ``reason``.
    """

    def __init__(self) -> None:
        self._edges: Dict[str, GraphEdge] = {}

    def upsert(
        self,
        source: str,
        target: str,
        kind: EdgeKind,
        provenance: Provenance = "static",
        confidence: Optional[Confidence] = None,
        reason: Optional[str] = None,
    ) -> Tuple[GraphEdge, bool]:
        """Insert or backfill an edge. Returns ``(edge, created)``."""
        key = edge_key(source, target)
        existing = self._edges.get(key)
        if existing is not None:
            if existing.confidence is None and confidence is not None:
                existing.confidence = confidence
            if existing.reason is None and reason:
                existing.reason = reason
            return existing, False
        edge = GraphEdge(
            source=source,
            target=target,
            kind=kind,
            provenance=provenance,
            confidence=confidence,
            reason=reason,
        )
        self._edges[key] = edge
        return edge, True

    def get(self, source: str, target: str) -> Optional[GraphEdge]:
        return self._edges.get(edge_key(source, target))

    def __contains__(self, key: str) -> bool:
        return key in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    def edges(self) -> List[GraphEdge]:
        return list(self._edges.values())


@dataclass
class AssembledGraph:
    file_nodes: List[FileNode]
    function_nodes: List[FunctionNode]
    file_edges: EdgeStore
    function_edges: EdgeStore
    warnings: List[str] = field(default_factory=list)

    @property
    def file_graph(self) -> GraphView:
        return GraphView(nodes=list(self.file_nodes), edges=self.file_edges.edges())

    @property
    def function_graph(self) -> GraphView:
        return GraphView(nodes=list(self.function_nodes), edges=self.function_edges.edges())


class GraphAssembler:
    """Turn extraction results into graphs, in a fixed order of passes.

    1. resolve every import binding and add file edges
    2. index exported declarations by ``"{path}:{exported_as}"``
    3. match call sites to exports and add function edges
    4. materialise directory, file and function nodes
    5. summarise unresolved specifiers as warnings
    """

    def __init__(
        self,
        analyses: Sequence[FileAnalysis],
        resolver: ModuleResolver,
        scanned_paths: Optional[Iterable[str]] = None,
        root_label: str = ROOT_DIRECTORY,
    ) -> None:
        self.analyses: List[FileAnalysis] = list(analyses)
        self.resolver = resolver
        self.scanned_paths = sorted(set(scanned_paths or (a.path for a in self.analyses)))
        self.root_label = root_label

        self.file_edges = EdgeStore()
        self.function_edges = EdgeStore()
        self.exports: Dict[str, FunctionRecord] = {}
        self.unresolved: Dict[str, Dict[str, None]] = {}
        self._by_path: Dict[str, FileAnalysis] = {a.path: a for a in self.analyses}

    def assemble(self) -> AssembledGraph:
        self.resolve_imports()
        self.index_exports()
        self.derive_call_edges()
        file_nodes = self.directory_nodes() + self.file_nodes()
        function_nodes = self.function_nodes()
        warnings = self.unresolved_warnings()
        logger.info(
            "Assembled %d file edge(s) and %d function edge(s) from %d file(s)",
            len(self.file_edges), len(self.function_edges), len(self.analyses),
        )
        return AssembledGraph(
            file_nodes=file_nodes,
            function_nodes=function_nodes,
            file_edges=self.file_edges,
            function_edges=self.function_edges,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def resolve_imports(self) -> None:
        for analysis in self.analyses:
            for binding in analysis.imports:
                if not binding.source:
                    continue
                resolved = self.resolver.resolve(analysis.path, binding.source)
                if resolved is None:
                    self.unresolved.setdefault(analysis.path, {})[binding.source] = None
                    continue
                binding.resolved_target = resolved
                for spec in binding.specifiers:
                    spec.resolved_target = resolved
                if resolved in self._by_path:
                    kind: EdgeKind = "reexports" if binding.reexport else "imports"
                    self.file_edges.upsert(analysis.path, resolved, kind)

    def index_exports(self) -> None:
        for analysis in self.analyses:
            for fn in analysis.functions:
                if fn.is_exported and fn.exported_as:
                    self.exports.setdefault(f"{analysis.path}:{fn.exported_as}", fn)

    def derive_call_edges(self) -> None:
        for analysis in self.analyses:
            local_map: Dict[Tuple[str, Optional[str]], ImportSpecifier] = {}
            for binding in analysis.imports:
                if binding.reexport or not binding.module_level:
                    continue
                for spec in binding.specifiers:
                    if spec.binding_type != "namespace":
                        local_map.setdefault((spec.local_name, binding.source), spec)
            records = {fn.id: fn for fn in analysis.functions}

            for call in analysis.calls:
                spec = local_map.get((call.callee_local_name, call.source_specifier))
                if spec is None or spec.resolved_target is None:
                    continue
                imported = call.callee_imported_name or spec.imported_name
                target = self.lookup_export(spec.resolved_target, imported)
                if target is None:
                    target = self.exports.get(f"{spec.resolved_target}:default")
                caller = records.get(call.caller_id)
                if target is None or caller is None:
                    continue
                caller.include = True
                target.include = True
                call.resolved_target_file = spec.resolved_target
                self.function_edges.upsert(caller.id, target.id, "invokes")

    def lookup_export(self, path: str, name: str, depth: int = 0) -> Optional[FunctionRecord]:
        """Find the declaration exported from *path* as *name*, following re-exports."""
        hit = self.exports.get(f"{path}:{name}")
        if hit is not None or depth >= MAX_REEXPORT_DEPTH:
            return hit
        analysis = self._by_path.get(path)
        if analysis is None:
            return None
        for binding in analysis.imports:
            if not binding.reexport or binding.resolved_target is None:
                continue
            for spec in binding.specifiers:
                if spec.local_name == name and spec.imported_name != "*":
                    found = self.lookup_export(binding.resolved_target, spec.imported_name, depth + 1)
                elif spec.local_name == "*" and name != "default":
                    found = self.lookup_export(binding.resolved_target, name, depth + 1)
                else:
                    continue
                if found is not None:
                    return found
        return None

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def directory_nodes(self) -> List[FileNode]:
        directories: Set[str] = {ROOT_DIRECTORY}
        for path in self.scanned_paths:
            parent = posixpath.dirname(path)
            while parent and parent not in directories:
                directories.add(parent)
                parent = posixpath.dirname(parent)

        nodes = []
        for directory in sorted(directories):
            name = self.root_label if directory == ROOT_DIRECTORY else posixpath.basename(directory)
            nodes.append(FileNode(id=f"dir:{directory}", label=f"{name}/", path=directory, kind="directory"))
        return nodes

    def file_nodes(self) -> List[FileNode]:
        return [
            FileNode(id=a.path, label=posixpath.basename(a.path), path=a.path)
            for a in sorted(self.analyses, key=lambda a: a.path)
        ]

    def function_nodes(self) -> List[FunctionNode]:
        nodes: List[FunctionNode] = []
        seen: Set[str] = set()
        for analysis in sorted(self.analyses, key=lambda a: a.path):
            for fn in analysis.functions:
                if not fn.include or fn.id in seen:
                    continue
                seen.add(fn.id)
                nodes.append(function_node(fn))
        return nodes

    def unresolved_warnings(self) -> List[str]:
        warnings = []
        for path in sorted(self.unresolved):
            specifiers = list(self.unresolved[path])
            summary = ", ".join(specifiers[:MAX_UNRESOLVED_EXAMPLES])
            if len(specifiers) > MAX_UNRESOLVED_EXAMPLES:
                warnings.append(f"Some imports in {path} could not be resolved: {summary}, …")
            else:
                warnings.append(f"Could not resolve imports in {path}: {summary}")
        return warnings


def function_node(fn: FunctionRecord) -> FunctionNode:
    label = fn.display_name
    if fn.exported_as and fn.exported_as != "default":
        label = fn.exported_as
    return FunctionNode(
        id=fn.id,
        label=label,
        file_path=fn.file_path,
        kind=fn.kind,
        exported_as=fn.exported_as,
        source_span=fn.source_span,
    )
