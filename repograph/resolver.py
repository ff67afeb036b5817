"""Map import specifiers to concrete repository files.

Resolution order, first hit wins:

1. relative specifiers (``./x``, ``../x``) against the importer's directory
2. path aliases (``@/components/*`` -> ``src/components/*``)
3. the repository root
4. a conventional ``src/`` root

Every base path is probed literally, then with each source extension,
then as a directory holding an index file.
"""

from __future__ import annotations

import json
import logging
import posixpath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import AliasEntry

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".json")
INDEX_FILES: Tuple[str, ...] = tuple(f"index{ext}" for ext in SOURCE_EXTENSIONS)
SOURCE_ROOT = "src"

# Package-entry conventions for importers outside the ECMAScript family.
FAMILY_INDEX_FILES: Dict[str, Tuple[str, ...]] = {
    ".py": ("__init__.py",),
    ".rs": ("mod.rs",),
}

PATH_MAPPING_FILES = ("tsconfig.json", "jsconfig.json")


class ModuleResolver:
    """Resolve specifiers against an immutable set of known files.

    Probe results are memoised per normalised base path for the lifetime
    of the resolver, which is one analysis run.
    """

    def __init__(
        self,
        known_files: Iterable[str],
        alias_table: Optional[Sequence[AliasEntry]] = None,
    ) -> None:
        self.known_files = frozenset(known_files)
        self.alias_table: List[AliasEntry] = list(alias_table or [])
        self._probe_cache: Dict[Tuple[str, str], Optional[str]] = {}

    def resolve(self, from_path: str, specifier: str) -> Optional[str]:
        if not specifier or not isinstance(specifier, str):
            return None
        family = posixpath.splitext(from_path)[1].lower()

        if specifier.startswith("."):
            joined = posixpath.join(posixpath.dirname(from_path), specifier)
            return self._probe(_normalize(joined), family)

        for entry in self.alias_table:
            remainder = _alias_remainder(entry, specifier)
            if remainder is None:
                continue
            for target in entry.targets:
                hit = self._probe(_normalize(posixpath.join(target, remainder)), family)
                if hit:
                    return hit

        hit = self._probe(_normalize(specifier.lstrip("/")), family)
        if hit:
            return hit

        hit = self._probe(_normalize(posixpath.join(SOURCE_ROOT, specifier.lstrip("/"))), family)
        if hit:
            return hit

        logger.debug("Unresolved import %r from %s", specifier, from_path)
        return None

    def _probe(self, base: str, family: str = "") -> Optional[str]:
        key = (base, family)
        if key in self._probe_cache:
            return self._probe_cache[key]
        found = None
        for candidate in self._candidates(base, family):
            if candidate in self.known_files:
                found = candidate
                break
        self._probe_cache[key] = found
        return found

    @staticmethod
    def _candidates(base: str, family: str) -> List[str]:
        extensions = list(SOURCE_EXTENSIONS)
        index_files = list(INDEX_FILES)
        if family and family not in SOURCE_EXTENSIONS:
            extensions.insert(0, family)
            index_files = list(FAMILY_INDEX_FILES.get(family, ())) + index_files

        at_root = base in ("", ".")
        candidates = [] if at_root else [base]
        if not at_root:
            candidates.extend(f"{base}{ext}" for ext in extensions)
        candidates.extend(name if at_root else f"{base}/{name}" for name in index_files)
        return candidates


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    if not path:
        return "."
    return posixpath.normpath(path)


def _alias_remainder(entry: AliasEntry, specifier: str) -> Optional[str]:
    """Return the wildcard part matched by *entry*, or None on no match."""
    if not entry.wildcard:
        return "" if specifier == entry.prefix else None
    if not specifier.startswith(entry.prefix):
        return None
    if entry.suffix and not specifier.endswith(entry.suffix):
        return None
    end = len(specifier) - len(entry.suffix) if entry.suffix else len(specifier)
    if end < len(entry.prefix):
        return None
    return specifier[len(entry.prefix):end]


# ---------------------------------------------------------------------------
# Path-mapping configuration (tsconfig.json / jsconfig.json)
# ---------------------------------------------------------------------------

def strip_json_comments(text: str) -> str:
    """Drop ``//`` and ``/* */`` comments and trailing commas outside strings."""
    out: List[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
        elif ch in "}]":
            # trailing comma before a closing bracket
            j = len(out) - 1
            while j >= 0 and out[j].isspace():
                j -= 1
            if j >= 0 and out[j] == ",":
                del out[j]
            out.append(ch)
            i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_path_mappings(config: Mapping[str, Any], config_dir: str = "") -> List[AliasEntry]:
    """Build alias entries from a parsed tsconfig/jsconfig document."""
    options = config.get("compilerOptions") or {}
    paths = options.get("paths")
    if not isinstance(paths, dict):
        return []
    base_url = options.get("baseUrl") or "."
    base_dir = _normalize(posixpath.join(config_dir, str(base_url).lstrip("/")))

    entries: List[AliasEntry] = []
    for key, values in paths.items():
        if not isinstance(values, list) or not values:
            continue
        star = key.find("*")
        prefix = key[:star] if star >= 0 else key
        suffix = key[star + 1:] if star >= 0 else ""
        targets = []
        for value in values:
            if not isinstance(value, str):
                continue
            target_star = value.find("*")
            target = value[:target_star] if target_star >= 0 else value
            if target.startswith("./"):
                target = target[2:]
            targets.append(_normalize(posixpath.join(base_dir, target.lstrip("/"))))
        if targets:
            entries.append(AliasEntry(prefix=prefix, suffix=suffix, targets=targets, wildcard=star >= 0))
    return entries


def load_alias_table(files: Mapping[str, str]) -> List[AliasEntry]:
    """Read path mappings from the first root-level config that declares them."""
    for name in PATH_MAPPING_FILES:
        raw = files.get(name)
        if raw is None:
            continue
        try:
            config = json.loads(strip_json_comments(raw))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unparseable %s: %s", name, exc)
            continue
        if not isinstance(config, dict):
            continue
        entries = parse_path_mappings(config)
        if entries:
            logger.debug("Loaded %d path aliases from %s", len(entries), name)
            return entries
    return []
