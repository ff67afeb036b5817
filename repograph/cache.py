"""In-process result cache keyed by a content fingerprint of the input."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Mapping, Optional, Sequence, TypeVar

from .models import AliasEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 15 * 60


def fingerprint(
    files: Mapping[str, str],
    alias_table: Optional[Sequence[AliasEntry]] = None,
    **options: object,
) -> str:
    """Stable sha256 over paths, contents, aliases and analysis options."""
    digest = hashlib.sha256()
    for path in sorted(files):
        digest.update(path.encode("utf-8"))
        digest.update(b"\0")
        digest.update(hashlib.sha256(files[path].encode("utf-8")).digest())
    for entry in alias_table or ():
        digest.update(f"alias:{entry.prefix}*{entry.suffix}={'|'.join(entry.targets)}".encode("utf-8"))
    for key in sorted(options):
        digest.update(f"opt:{key}={options[key]!r}".encode("utf-8"))
    return digest.hexdigest()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    inserted_at: float


class ResultCache(Generic[T]):
    """``key -> CacheEntry`` with a TTL; expired entries go on ``get`` or ``sweep``."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = 64,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                return None
            logger.debug("Cache hit for %s", key[:12])
            return entry.value

    def put(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())
            while len(self._entries) > self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].inserted_at)
                del self._entries[oldest]

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            expired = [k for k, entry in self._entries.items() if self._expired(entry)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entr%s", len(expired), "y" if len(expired) == 1 else "ies")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def _expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds
