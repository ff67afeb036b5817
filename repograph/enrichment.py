"""Best-effort LLM pass that proposes extra file and function relationships.

Deterministic edges always win: a proposal whose ``source->target`` key
already exists only backfills ``confidence``/``reason`` on that edge, and
proposals whose endpoints are not already graph nodes are dropped.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import Settings
from .graph import AssembledGraph
from .llm import LLMError, LLMProvider, create_provider
from .models import CONFIDENCE_LEVELS, Confidence, EdgeKind, FileAnalysis, FunctionRecord

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_WARNING = (
    "Set REPOGRAPH_LLM_API_KEY (or OPENAI_API_KEY) to enable LLM-inferred relationships."
)

SYSTEM_PROMPT = (
    "You are an expert software architecture analyst. Given structured summaries of project "
    "files, identify how files and exported functions relate. Respond strictly with JSON that "
    "matches the provided schema. Be concise."
)

RESPONSE_SCHEMA_SNIPPET = """
{
  "fileEdges": [
    {
      "source": "path/to/source.ts",
      "target": "path/to/target.ts",
      "relationship": "imports|uses|calls",
      "confidence": "low|medium|high"
    }
  ],
  "functionEdges": [
    {
      "source": { "filePath": "path/to/source.ts", "symbol": "ExportedSymbol" },
      "target": { "filePath": "path/to/target.ts", "symbol": "OtherSymbol" },
      "relationship": "calls|uses|renders",
      "confidence": "low|medium|high",
      "reason": "short justification"
    }
  ],
  "notes": ["optional string note"]
}
"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_CONTROL_CHARS = re.compile(r"[\u0000-\u001f\u007f-\u009f]")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_MISSING_OBJECT_COMMA = re.compile(r"}(\s*){")
_MISSING_ARRAY_COMMA = re.compile(r"](\s*)\[")
_FLAT_OBJECT = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")


@dataclass
class LLMFileEdge:
    source: str
    target: str
    relationship: str = "uses"
    confidence: Optional[Confidence] = None


@dataclass
class SymbolRef:
    file_path: str
    symbol: str


@dataclass
class LLMFunctionEdge:
    source: SymbolRef
    target: SymbolRef
    relationship: str = "calls"
    confidence: Optional[Confidence] = None
    reason: Optional[str] = None


@dataclass
class LLMRelationshipResult:
    file_edges: List[LLMFileEdge] = field(default_factory=list)
    function_edges: List[LLMFunctionEdge] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.file_edges or self.function_edges or self.notes)


# ===================================================================
# Digests and prompt
# ===================================================================

def build_digest(analysis: FileAnalysis) -> Dict[str, Any]:
    """Condensed view of one file, in the JSON shape the prompt documents."""
    return {
        "filePath": analysis.path,
        "size": analysis.size,
        "preview": analysis.preview,
        "imports": [
            {
                "specifier": binding.source,
                "resolved": binding.resolved_target,
                "kind": binding.kind,
                "symbols": [spec.imported_name for spec in binding.specifiers],
            }
            for binding in analysis.imports
        ],
        "exports": [
            {
                "name": fn.display_name,
                "exportName": fn.exported_as,
                "kind": fn.kind,
                "isExported": fn.is_exported,
            }
            for fn in analysis.functions
            if fn.is_exported
        ],
        "calls": [
            {
                "callerId": call.caller_id,
                "local": call.callee_local_name,
                "imported": call.callee_imported_name,
                "importPath": call.source_specifier,
                "resolved": call.resolved_target_file,
            }
            for call in analysis.calls
        ],
    }


def build_prompt(digests: Sequence[Dict[str, Any]]) -> str:
    return "\n\n".join([
        "Analyze the following project files. For each file, determine whether it references "
        'other files or exported functions. Use the exact "filePath" strings provided. Only '
        "include relationships you are confident about.",
        "Return JSON describing file-to-file and function-to-function relationships. If "
        "uncertain, omit the relationship.",
        "Your response must match the following JSON shape (omit optional fields when not needed):",
        RESPONSE_SCHEMA_SNIPPET,
        f"FILES:\n{json.dumps(list(digests), indent=2)}",
    ])


def infer_relationships(
    digests: Sequence[Dict[str, Any]],
    provider: LLMProvider,
    settings: Settings,
) -> Optional[LLMRelationshipResult]:
    """One round-trip to the provider. Raises ``LLMError`` on transport failure."""
    if not digests:
        return None
    limited = list(digests)[: settings.llm_max_files]
    text = provider.complete(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(limited)},
        ],
        max_tokens=settings.llm_max_tokens,
        temperature=0.05,
        timeout=settings.llm_timeout,
    )
    return parse_llm_response(text)


# ===================================================================
# Tolerant response parsing
# ===================================================================

def parse_llm_response(text: Any) -> LLMRelationshipResult:
    """Parse model output into a result; malformed input yields an empty result."""
    if not isinstance(text, str) or not text.strip():
        return LLMRelationshipResult()

    cleaned = text.strip()
    fenced = _FENCED_JSON.search(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    cleaned = _CONTROL_CHARS.sub(" ", cleaned)

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        logger.warning("LLM response contained no JSON object")
        return LLMRelationshipResult()
    cleaned = cleaned[start:end + 1]

    repaired = _TRAILING_COMMA.sub(r"\1", cleaned)
    repaired = _MISSING_OBJECT_COMMA.sub(r"},\1{", repaired)
    repaired = _MISSING_ARRAY_COMMA.sub(r"],\1[", repaired)

    for candidate in (cleaned, repaired):
        payload = _try_json(candidate)
        if payload is not None:
            return normalise_result(payload)

    partial = _FLAT_OBJECT.search(repaired)
    if partial:
        payload = _try_json(partial.group(0))
        if payload is not None:
            logger.warning("Recovered a partial object from malformed LLM JSON")
            return normalise_result(payload)

    logger.warning("Discarding malformed LLM JSON response")
    return LLMRelationshipResult()


def _try_json(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        return None


def normalise_result(payload: Any) -> LLMRelationshipResult:
    result = LLMRelationshipResult()
    if not isinstance(payload, dict):
        return result

    notes = payload.get("notes")
    if isinstance(notes, list):
        result.notes = [note for note in notes if isinstance(note, str)]

    file_edges = payload.get("fileEdges")
    if isinstance(file_edges, list):
        result.file_edges = [e for e in map(_to_file_edge, file_edges) if e is not None]

    function_edges = payload.get("functionEdges")
    if isinstance(function_edges, list):
        result.function_edges = [e for e in map(_to_function_edge, function_edges) if e is not None]
    return result


def _confidence(value: Any) -> Optional[Confidence]:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value if value in CONFIDENCE_LEVELS else None


def _to_file_edge(raw: Any) -> Optional[LLMFileEdge]:
    if not isinstance(raw, dict):
        return None
    source, target = raw.get("source"), raw.get("target")
    if not isinstance(source, str) or not isinstance(target, str):
        return None
    relationship = raw.get("relationship")
    return LLMFileEdge(
        source=source,
        target=target,
        relationship=relationship if isinstance(relationship, str) else "uses",
        confidence=_confidence(raw.get("confidence")),
    )


def _to_symbol(raw: Any) -> Optional[SymbolRef]:
    if not isinstance(raw, dict):
        return None
    file_path, symbol = raw.get("filePath"), raw.get("symbol")
    if not isinstance(file_path, str) or not isinstance(symbol, str):
        return None
    return SymbolRef(file_path=file_path, symbol=symbol)


def _to_function_edge(raw: Any) -> Optional[LLMFunctionEdge]:
    if not isinstance(raw, dict):
        return None
    source, target = _to_symbol(raw.get("source")), _to_symbol(raw.get("target"))
    if source is None or target is None:
        return None
    relationship = raw.get("relationship")
    reason = raw.get("reason")
    return LLMFunctionEdge(
        source=source,
        target=target,
        relationship=relationship if isinstance(relationship, str) else "calls",
        confidence=_confidence(raw.get("confidence")),
        reason=reason if isinstance(reason, str) else None,
    )


# ===================================================================
# Merge
# ===================================================================

def relationship_kind(label: str) -> EdgeKind:
    """Map the model's free-text relationship label onto an edge kind."""
    lowered = label.lower()
    if "call" in lowered or "invoke" in lowered:
        return "invokes"
    if lowered == "imports":
        return "imports"
    return "llm-reference"


def _function_lookup(
    analyses: Sequence[FileAnalysis],
    node_ids: set,
) -> Dict[str, FunctionRecord]:
    lookup: Dict[str, FunctionRecord] = {}
    for analysis in analyses:
        for fn in analysis.functions:
            if fn.id not in node_ids:
                continue
            lookup.setdefault(fn.id, fn)
            if fn.exported_as:
                lookup.setdefault(f"{analysis.path}:{fn.exported_as}", fn)
            lookup.setdefault(f"{analysis.path}:{fn.display_name}", fn)
    return lookup


def merge_relationships(
    result: LLMRelationshipResult,
    graph: AssembledGraph,
    analyses: Sequence[FileAnalysis],
) -> Tuple[int, int]:
    """Fold LLM proposals into *graph*. Returns ``(new_file_edges, new_function_edges)``."""
    file_paths = {node.path for node in graph.file_nodes if node.kind == "file"}
    added_files = 0
    for edge in result.file_edges:
        if edge.source not in file_paths or edge.target not in file_paths or edge.source == edge.target:
            continue
        _, created = graph.file_edges.upsert(
            edge.source,
            edge.target,
            relationship_kind(edge.relationship),
            provenance="llm",
            confidence=edge.confidence,
        )
        added_files += int(created)

    lookup = _function_lookup(analyses, {node.id for node in graph.function_nodes})
    added_functions = 0
    for edge in result.function_edges:
        source = lookup.get(f"{edge.source.file_path}:{edge.source.symbol}") or lookup.get(edge.source.symbol)
        target = lookup.get(f"{edge.target.file_path}:{edge.target.symbol}") or lookup.get(edge.target.symbol)
        if source is None or target is None or source.id == target.id:
            continue
        _, created = graph.function_edges.upsert(
            source.id,
            target.id,
            relationship_kind(edge.relationship),
            provenance="llm",
            confidence=edge.confidence,
            reason=edge.reason,
        )
        added_functions += int(created)
    return added_files, added_functions


def enrich(
    graph: AssembledGraph,
    analyses: Sequence[FileAnalysis],
    settings: Settings,
    provider: Optional[LLMProvider] = None,
) -> List[str]:
    """Run the enrichment pass against *graph* in place; return the warnings it produced."""
    if len(analyses) < settings.llm_min_files:
        logger.debug("Skipping LLM enrichment for %d file(s)", len(analyses))
        return []

    try:
        if provider is None:
            if not settings.has_llm_credential:
                return [MISSING_CREDENTIAL_WARNING]
            provider = create_provider(settings)
        result = infer_relationships([build_digest(a) for a in analyses], provider, settings)
    except LLMError as exc:
        logger.warning("LLM relationship inference failed: %s", exc)
        return [f"LLM relationship inference failed: {exc}"]

    if result is None:
        return []

    warnings = [f"LLM: {note}" for note in result.notes]
    added_files, added_functions = merge_relationships(result, graph, analyses)
    if added_files or added_functions:
        warnings.append(
            f"LLM inferred {added_files} file relationship{'' if added_files == 1 else 's'} "
            f"and {added_functions} function relationship{'' if added_functions == 1 else 's'}."
        )
    logger.info("LLM enrichment added %d file edge(s), %d function edge(s)", added_files, added_functions)
    return warnings
