"""Local-directory repository provider: turn a checkout into an in-memory file map."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Set, Union

from .languages import detect
from .resolver import PATH_MAPPING_FILES

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 1_200_000

# Import targets that are not analysed; kept by path only so imports of them resolve.
ASSET_EXTENSIONS: Set[str] = {".json", ".css", ".scss", ".sass", ".less", ".svg", ".png", ".jpg", ".gif", ".wasm"}

SKIP_DIRS: Set[str] = {
    ".git", ".hg", ".svn", "node_modules", ".next", ".nuxt", ".turbo",
    ".venv", "venv", "__pycache__", "site-packages", ".tox", ".pytest_cache",
    ".mypy_cache", ".ruff_cache", "build", "dist", "out", "coverage",
    "htmlcov", ".eggs", "vendor", "target", ".gradle", ".idea", ".repograph",
}


def load_files(root: Union[str, Path], include_unsupported: bool = False) -> Dict[str, str]:
    """Read every analysable file below *root* into ``{posix_rel_path: text}``.

    Files inside ``SKIP_DIRS``, larger than ``MAX_FILE_BYTES`` or not valid
    UTF-8 are left out. Path-mapping configs are always kept; asset files
    (``ASSET_EXTENSIONS``) map to an empty string.
    """
    root = Path(root).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(str(root))

    files: Dict[str, str] = {}
    skipped = 0
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file():
            continue
        rel_parts = file_path.relative_to(root).parts
        if any(part in SKIP_DIRS for part in rel_parts[:-1]):
            continue
        rel = "/".join(rel_parts)
        if not include_unsupported and rel not in PATH_MAPPING_FILES and not detect(rel).supported:
            if file_path.suffix.lower() in ASSET_EXTENSIONS:
                files[rel] = ""
            continue
        try:
            if file_path.stat().st_size > MAX_FILE_BYTES:
                skipped += 1
                continue
            files[rel] = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Skipping %s: %s", rel, exc)
            skipped += 1

    logger.info("Loaded %d file(s) from %s (%d skipped)", len(files), root, skipped)
    return files
