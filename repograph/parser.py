"""ECMAScript / TypeScript extraction on Tree-sitter grammars.

A single pre-order walk over the syntax tree collects:

- import bindings (ES ``import``, CommonJS ``require`` and dynamic ``import()``),
  including re-exports,
- functions, arrows, classes and methods, with their export status,
- call sites whose callee is an identifier bound by a module-level import,
  attributed to the nearest enclosing function (or to a synthetic
  ``(module)`` record for top-level code).

Calls to locally declared functions are ignored: only cross-module
traffic becomes a call site.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser as TSParser

from .languages import Extractor, build_preview
from .models import (
    CallSite,
    FileAnalysis,
    FunctionKind,
    FunctionRecord,
    ImportBinding,
    ImportSpecifier,
    Position,
    SourceSpan,
)

logger = logging.getLogger(__name__)

MODULE_RECORD_NAME = "(module)"

_GRAMMARS: Dict[str, Callable[[], Any]] = {
    "javascript": tree_sitter_javascript.language,
    "typescript": tree_sitter_typescript.language_typescript,
    "tsx": tree_sitter_typescript.language_tsx,
}

FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})
CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})
BLOCK_SCOPE_TYPES = frozenset({"statement_block", "for_statement", "for_in_statement", "catch_clause"})
DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})

_FUNCTION_KINDS: Dict[str, FunctionKind] = {
    "arrow_function": "arrow",
    "method_definition": "method",
}


class ParseError(Exception):
    """Raised when a source file cannot be parsed."""


class ScriptExtractor(Extractor):
    """Precise extractor for ``.js/.jsx/.mjs/.cjs/.ts/.tsx`` sources.

    Tree-sitter parsers are not shareable across threads, so each worker
    thread lazily builds its own parser per grammar.
    """

    def __init__(self, language: str = "javascript") -> None:
        if language not in _GRAMMARS:
            raise ValueError(f"No grammar mapped for language '{language}'")
        self.language = language
        self._ts_language = Language(_GRAMMARS[language]())
        self._local = threading.local()

    def _parser(self) -> TSParser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = TSParser(self._ts_language)
            self._local.parser = parser
            logger.debug("Loaded tree-sitter parser for %s", self.language)
        return parser

    def extract(self, path: str, content: str) -> FileAnalysis:
        tree = self._parser().parse(content.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            raise ParseError(_describe_error(root))

        walker = _ModuleWalker(path)
        walker.walk(root)
        walker.finish()
        return FileAnalysis(
            path=path,
            language=self.language,
            imports=walker.imports,
            functions=walker.functions,
            calls=walker.calls,
            preview=build_preview(content),
            size=len(content),
        )


# ===================================================================
# Tree walker
# ===================================================================

class _ModuleWalker:
    """Walks one module's syntax tree and collects bindings, records and calls."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.imports: List[ImportBinding] = []
        self.functions: List[FunctionRecord] = []
        self.calls: List[CallSite] = []

        self._module_imports: Dict[str, Tuple[ImportSpecifier, ImportBinding]] = {}
        self._records_by_node: Dict[int, FunctionRecord] = {}
        self._top_level: Dict[str, FunctionRecord] = {}
        self._class_methods: Dict[str, List[FunctionRecord]] = {}
        self._scope_names: Dict[int, frozenset] = {}
        self._taken_ids: Dict[str, int] = {}
        self._pending_exports: List[Tuple[str, str]] = []
        self._module_record: Optional[FunctionRecord] = None
        self._anonymous_counter = 0

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def walk(self, root: Node) -> None:
        # Import declarations are hoisted: bind them before visiting any call.
        for child in root.named_children:
            if child.type == "import_statement":
                self._visit_import(child)

        stack = [root]
        while stack:
            node = stack.pop()
            self._visit(node)
            stack.extend(reversed(node.named_children))

    def _visit(self, node: Node) -> None:
        kind = node.type
        if kind == "import_statement":
            if node.parent is None or node.parent.type != "program":
                self._visit_import(node)
        elif kind == "export_statement":
            self._visit_export(node)
        elif kind == "call_expression":
            self._visit_call(node)
        elif kind in FUNCTION_TYPES or kind in CLASS_TYPES:
            self._register(node)

    def finish(self) -> None:
        """Apply ``export { a as b }`` / ``export default a`` once every record exists."""
        for local, exported in self._pending_exports:
            record = self._top_level.get(local)
            if record is not None:
                record.mark_exported(exported)
                self._export_methods(record)
                continue
            entry = self._module_imports.get(local)
            if entry is None or entry[0].binding_type == "namespace":
                continue
            spec, binding = entry
            # Re-export of an imported name without a ``from`` clause.
            self.imports.append(ImportBinding(
                source=binding.source,
                kind=binding.kind,
                specifiers=[ImportSpecifier(exported, spec.imported_name, "named")],
                reexport=True,
            ))

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def _visit_import(self, node: Node) -> None:
        source_node = node.child_by_field_name("source")
        source = _string_value(source_node) if source_node is not None else None
        binding = ImportBinding(source=source or "", kind="es")

        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for part in clause.named_children:
                if part.type == "identifier":
                    binding.specifiers.append(ImportSpecifier(_text(part), "default", "default"))
                elif part.type == "namespace_import":
                    local = _first_named(part, "identifier")
                    if local is not None:
                        binding.specifiers.append(ImportSpecifier(_text(local), "*", "namespace"))
                elif part.type == "named_imports":
                    for spec in part.named_children:
                        if spec.type != "import_specifier":
                            continue
                        name_node = spec.child_by_field_name("name")
                        alias_node = spec.child_by_field_name("alias")
                        if name_node is None:
                            continue
                        imported = _string_value(name_node) or _text(name_node)
                        local = _text(alias_node) if alias_node is not None else imported
                        binding.specifiers.append(ImportSpecifier(local, imported, "named"))

        self._add_binding(binding, module_level=node.parent is not None and node.parent.type == "program")

    def _visit_export(self, node: Node) -> None:
        source_node = node.child_by_field_name("source")
        is_default = any(child.type == "default" for child in node.children)

        if source_node is not None:
            binding = ImportBinding(source=_string_value(source_node) or "", kind="es", reexport=True)
            for child in node.named_children:
                if child.type == "export_clause":
                    for name, alias in _export_clause_pairs(child):
                        binding.specifiers.append(ImportSpecifier(alias, name, "named"))
                elif child.type == "namespace_export":
                    local = _first_named(child, "identifier")
                    if local is not None:
                        binding.specifiers.append(ImportSpecifier(_text(local), "*", "namespace"))
            if not binding.specifiers and any(child.type == "*" for child in node.children):
                binding.specifiers.append(ImportSpecifier("*", "*", "namespace"))
            self.imports.append(binding)
            return

        for child in node.named_children:
            if child.type == "export_clause":
                self._pending_exports.extend(_export_clause_pairs(child))

        value = node.child_by_field_name("value")
        if is_default and value is not None and value.type == "identifier":
            self._pending_exports.append((_text(value), "default"))

    def _add_binding(self, binding: ImportBinding, module_level: bool) -> None:
        binding.module_level = module_level
        self.imports.append(binding)
        if not module_level:
            return
        for spec in binding.specifiers:
            self._module_imports.setdefault(spec.local_name, (spec, binding))

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _visit_call(self, node: Node) -> None:
        callee = node.child_by_field_name("function")
        if callee is None:
            return

        if callee.type == "import":
            source = _first_string_argument(node)
            if source is not None:
                self._add_binding(ImportBinding(source=source, kind="dynamic"), module_level=False)
            return

        if callee.type != "identifier":
            return
        name = _text(callee)

        if name == "require" and not self._is_locally_bound(name, node):
            self._visit_require(node)
            return

        entry = self._module_imports.get(name)
        if entry is None or not self._binds_to_import(name, node):
            return
        spec, binding = entry
        if spec.binding_type == "namespace":
            return

        caller = self._enclosing_record(node)
        caller.include = True
        self.calls.append(CallSite(
            caller_id=caller.id,
            callee_local_name=spec.local_name,
            callee_imported_name=spec.imported_name,
            source_specifier=binding.source,
        ))

    def _visit_require(self, node: Node) -> None:
        source = _first_string_argument(node)
        if source is None:
            return
        binding = ImportBinding(source=source, kind="require")
        declarator = node.parent
        if declarator is not None and declarator.type == "variable_declarator":
            target = declarator.child_by_field_name("name")
            if target is not None and target.type == "identifier":
                binding.specifiers.append(ImportSpecifier(_text(target), "default", "default"))
            elif target is not None and target.type == "object_pattern":
                for local, imported in _object_pattern_pairs(target):
                    binding.specifiers.append(ImportSpecifier(local, imported, "named"))
        self._add_binding(binding, module_level=_is_module_level_declarator(declarator))

    def _binds_to_import(self, name: str, node: Node) -> bool:
        """True when *name* at *node* resolves lexically to a module-level import."""
        if name not in self._module_imports:
            return False
        return not self._is_locally_bound(name, node)

    def _is_locally_bound(self, name: str, node: Node) -> bool:
        scope = node.parent
        while scope is not None and scope.type != "program":
            if (scope.type in FUNCTION_TYPES or scope.type in BLOCK_SCOPE_TYPES) and name in self._names_in_scope(scope):
                return True
            scope = scope.parent
        return False

    def _names_in_scope(self, scope: Node) -> frozenset:
        cached = self._scope_names.get(scope.id)
        if cached is None:
            cached = frozenset(_declared_names(scope))
            self._scope_names[scope.id] = cached
        return cached

    def _enclosing_record(self, node: Node) -> FunctionRecord:
        parent = node.parent
        while parent is not None:
            if parent.type in FUNCTION_TYPES:
                record = self._records_by_node.get(parent.id)
                return record if record is not None else self._register(parent)
            parent = parent.parent
        return self._module_pseudo_record()

    def _module_pseudo_record(self) -> FunctionRecord:
        if self._module_record is None:
            self._module_record = FunctionRecord(
                id=f"{self.path}::{MODULE_RECORD_NAME}",
                display_name=MODULE_RECORD_NAME,
                file_path=self.path,
                kind="module",
                include=True,
            )
            self.functions.append(self._module_record)
        return self._module_record

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _register(self, node: Node) -> FunctionRecord:
        existing = self._records_by_node.get(node.id)
        if existing is not None:
            return existing

        name = _infer_name(node)
        kind: FunctionKind = "class" if node.type in CLASS_TYPES else _FUNCTION_KINDS.get(node.type, "function")
        exported_as = _export_name(node, name)
        owner = _owning_class(node) if node.type == "method_definition" else None

        display = name
        if display is None:
            display = "default" if exported_as == "default" else self._anonymous_name()
        local_id = exported_as or display
        if owner is not None and owner[0]:
            local_id = f"{owner[0]}.{display}"

        record = FunctionRecord(
            id=self._unique_id(local_id),
            display_name=display,
            file_path=self.path,
            kind=kind,
            source_span=_span(node),
        )
        if exported_as is not None:
            record.mark_exported(exported_as)
        self.functions.append(record)
        self._records_by_node[node.id] = record

        if owner is not None:
            class_name, class_node = owner
            class_record = self._records_by_node.get(class_node.id)
            if class_record is not None:
                self._class_methods.setdefault(class_record.id, []).append(record)
                if class_record.is_exported and class_name:
                    record.exported_as = f"{class_name}.{display}"
                    record.include = True
        elif name is not None and _is_top_level(node):
            self._top_level.setdefault(name, record)
        return record

    def _export_methods(self, class_record: FunctionRecord) -> None:
        for method in self._class_methods.get(class_record.id, []):
            if method.exported_as is None:
                method.exported_as = f"{class_record.display_name}.{method.display_name}"
            method.include = True

    def _anonymous_name(self) -> str:
        name = f"anonymous_{self._anonymous_counter}"
        self._anonymous_counter += 1
        return name

    def _unique_id(self, local_id: str) -> str:
        count = self._taken_ids.get(local_id, 0) + 1
        self._taken_ids[local_id] = count
        suffix = "" if count == 1 else f"#{count}"
        return f"{self.path}::{local_id}{suffix}"


# ===================================================================
# Helpers
# ===================================================================

def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text is not None else ""


def _first_named(node: Node, node_type: str) -> Optional[Node]:
    for child in node.named_children:
        if child.type == node_type:
            return child
    return None


def _string_value(node: Optional[Node]) -> Optional[str]:
    if node is None:
        return None
    if node.type == "string":
        return _text(node)[1:-1]
    if node.type == "template_string" and not any(c.type == "template_substitution" for c in node.named_children):
        return _text(node)[1:-1]
    return None


def _first_string_argument(call: Node) -> Optional[str]:
    args = call.child_by_field_name("arguments")
    if args is None or not args.named_children:
        return None
    return _string_value(args.named_children[0])


def _export_clause_pairs(clause: Node) -> Iterator[Tuple[str, str]]:
    """Yield ``(local, exported)`` name pairs of an export clause."""
    for spec in clause.named_children:
        if spec.type != "export_specifier":
            continue
        name_node = spec.child_by_field_name("name")
        if name_node is None:
            continue
        alias_node = spec.child_by_field_name("alias")
        name = _string_value(name_node) or _text(name_node)
        alias = (_string_value(alias_node) or _text(alias_node)) if alias_node is not None else name
        yield name, alias


def _object_pattern_pairs(pattern: Node) -> Iterator[Tuple[str, str]]:
    """Yield ``(local, imported)`` pairs of a destructuring ``require``."""
    for prop in pattern.named_children:
        if prop.type == "shorthand_property_identifier_pattern":
            yield _text(prop), _text(prop)
        elif prop.type == "pair_pattern":
            key = prop.child_by_field_name("key")
            value = prop.child_by_field_name("value")
            if key is not None and value is not None and value.type == "identifier":
                yield _text(value), _text(key)
        elif prop.type == "object_assignment_pattern":
            left = prop.child_by_field_name("left")
            if left is not None:
                yield _text(left), _text(left)


def _pattern_names(node: Optional[Node]) -> Iterator[str]:
    """Every identifier bound by a declaration/parameter pattern."""
    if node is None:
        return
    kind = node.type
    if kind in ("identifier", "shorthand_property_identifier_pattern"):
        yield _text(node)
    elif kind in ("assignment_pattern", "object_assignment_pattern"):
        yield from _pattern_names(node.child_by_field_name("left"))
    elif kind == "pair_pattern":
        yield from _pattern_names(node.child_by_field_name("value"))
    elif kind in ("required_parameter", "optional_parameter"):
        yield from _pattern_names(node.child_by_field_name("pattern"))
    elif kind in ("formal_parameters", "object_pattern", "array_pattern", "rest_pattern"):
        for child in node.named_children:
            yield from _pattern_names(child)


def _declarator_names(declaration: Node) -> Iterator[str]:
    for declarator in declaration.named_children:
        if declarator.type == "variable_declarator":
            yield from _pattern_names(declarator.child_by_field_name("name"))


def _hoisted_var_names(scope: Node) -> Iterator[str]:
    """``var`` declarations anywhere below *scope*, without entering nested functions."""
    stack = list(scope.named_children)
    while stack:
        node = stack.pop()
        if node.type in FUNCTION_TYPES or node.type in CLASS_TYPES:
            continue
        if node.type == "variable_declaration":
            yield from _declarator_names(node)
        stack.extend(node.named_children)


def _declared_names(scope: Node) -> Iterator[str]:
    kind = scope.type
    if kind in FUNCTION_TYPES:
        if kind != "method_definition" and kind not in ("function_declaration", "generator_function_declaration"):
            own_name = scope.child_by_field_name("name")
            if own_name is not None:
                yield _text(own_name)
        yield from _pattern_names(scope.child_by_field_name("parameters"))
        yield from _pattern_names(scope.child_by_field_name("parameter"))
        body = scope.child_by_field_name("body")
        if body is not None and body.type == "statement_block":
            yield from _hoisted_var_names(body)
    elif kind == "statement_block":
        for statement in scope.named_children:
            if statement.type == "lexical_declaration":
                yield from _declarator_names(statement)
            elif statement.type in ("function_declaration", "generator_function_declaration",
                                    "class_declaration", "abstract_class_declaration"):
                name = statement.child_by_field_name("name")
                if name is not None:
                    yield _text(name)
    elif kind == "for_statement":
        initializer = scope.child_by_field_name("initializer")
        if initializer is not None and initializer.type in DECLARATION_TYPES:
            yield from _declarator_names(initializer)
    elif kind == "for_in_statement":
        if scope.child_by_field_name("kind") is not None:
            yield from _pattern_names(scope.child_by_field_name("left"))
    elif kind == "catch_clause":
        yield from _pattern_names(scope.child_by_field_name("parameter"))


def _infer_name(node: Node) -> Optional[str]:
    """Own identifier, else enclosing declarator, else assignment target."""
    own = node.child_by_field_name("name")
    if own is not None:
        return _string_value(own) or _text(own)
    parent = node.parent
    while parent is not None and parent.type == "parenthesized_expression":
        parent = parent.parent
    if parent is None:
        return None
    if parent.type == "variable_declarator":
        target = parent.child_by_field_name("name")
        if target is not None and target.type == "identifier":
            return _text(target)
    if parent.type == "assignment_expression":
        left = parent.child_by_field_name("left")
        if left is not None and left.type == "identifier":
            return _text(left)
    return None


def _export_name(node: Node, name: Optional[str]) -> Optional[str]:
    parent = node.parent
    if parent is None:
        return None
    if parent.type == "export_statement":
        if any(child.type == "default" for child in parent.children):
            return "default"
        return name
    if parent.type == "variable_declarator" and parent.child_by_field_name("value") == node:
        declaration = parent.parent
        if (
            declaration is not None
            and declaration.type in DECLARATION_TYPES
            and declaration.parent is not None
            and declaration.parent.type == "export_statement"
        ):
            return name
    return None


def _owning_class(method: Node) -> Optional[Tuple[Optional[str], Node]]:
    body = method.parent
    if body is None or body.type != "class_body" or body.parent is None:
        return None
    class_node = body.parent
    name_node = class_node.child_by_field_name("name")
    return (_text(name_node) if name_node is not None else None), class_node


def _is_top_level(node: Node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "export_statement":
        parent = parent.parent
    elif parent.type == "variable_declarator":
        declaration = parent.parent
        parent = declaration.parent if declaration is not None else None
        if parent is not None and parent.type == "export_statement":
            parent = parent.parent
    return parent is not None and parent.type == "program"


def _is_module_level_declarator(declarator: Optional[Node]) -> bool:
    if declarator is None or declarator.type != "variable_declarator":
        return False
    declaration = declarator.parent
    if declaration is None or declaration.type not in DECLARATION_TYPES:
        return False
    parent = declaration.parent
    if parent is not None and parent.type == "export_statement":
        parent = parent.parent
    return parent is not None and parent.type == "program"


def _span(node: Node) -> SourceSpan:
    start_row, start_col = node.start_point
    end_row, end_col = node.end_point
    return SourceSpan(
        start=Position(line=start_row + 1, column=start_col),
        end=Position(line=end_row + 1, column=end_col),
    )


def _describe_error(root: Node) -> str:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            row, col = node.start_point
            what = f"missing {node.type}" if node.is_missing else "unexpected token"
            return f"syntax error ({what}) at line {row + 1}, column {col + 1}"
        if node.has_error:
            stack.extend(reversed(node.children))
    return "syntax error"
