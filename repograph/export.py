"""Serialise an ``AnalysisResult`` as JSON or Graphviz DOT."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Literal

from .models import AnalysisResult, FileNode, GraphView

View = Literal["files", "functions"]
Format = Literal["json", "dot"]


def to_json(result: AnalysisResult, indent: int = 2) -> str:
    return json.dumps(result.to_dict(), indent=indent, ensure_ascii=False)


def to_dot(result: AnalysisResult, view: View = "files") -> str:
    """DOT digraph of one view; directories are boxes, llm edges dashed."""
    graph: GraphView = result.file_graph if view == "files" else result.function_graph
    node_ids = {node.id for node in graph.nodes}

    name = "RepoFiles" if view == "files" else "RepoFunctions"
    lines = [f"digraph {name} {{", "  rankdir=LR;"]
    for node in graph.nodes:
        attrs = [f'label="{_esc(node.label)}"']
        if isinstance(node, FileNode) and node.kind == "directory":
            attrs.append("shape=box")
        elif view == "functions":
            attrs.append(f'tooltip="{_esc(node.file_path)}"')
        lines.append(f'  "{_esc(node.id)}" [{", ".join(attrs)}];')

    for edge in graph.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            continue
        attrs: List[str] = [f'label="{_esc(edge.kind)}"']
        if edge.provenance == "llm":
            attrs.append("style=dashed")
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [{", ".join(attrs)}];')

    lines.append("}")
    return "\n".join(lines)


def write_export(result: AnalysisResult, output_file: Path, fmt: Format = "json", view: View = "files") -> None:
    text = to_dot(result, view) if fmt == "dot" else to_json(result)
    output_file.write_text(text, encoding="utf-8")


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
