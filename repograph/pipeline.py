"""Pipeline orchestrator: file map in, immutable ``AnalysisResult`` out."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .cache import ResultCache, fingerprint
from .config import Settings
from .config_manager import load_settings
from .enrichment import enrich
from .graph import GraphAssembler
from .languages import Extractor, detect
from .llm import LLMProvider
from .models import AliasEntry, AnalysisResult, AnalysisStats, FileAnalysis, Progress
from .parser import ScriptExtractor
from .patterns import PATTERN_EXTRACTORS
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)

ProgressFn = Callable[[Progress], None]

PROGRESS_INTERVAL_SECONDS = 0.2
NO_PARSED_FILES_WARNING = "No supported source files were parsed. File graph includes nodes without edges."

_script_extractors: Dict[str, ScriptExtractor] = {}
_script_lock = threading.Lock()


def get_extractor(path: str) -> Optional[Extractor]:
    """The extractor registered for *path*'s extension, or None when unsupported."""
    choice = detect(path)
    if choice.strategy == "ast" and choice.language:
        with _script_lock:
            extractor = _script_extractors.get(choice.language)
            if extractor is None:
                extractor = ScriptExtractor(choice.language)
                _script_extractors[choice.language] = extractor
        return extractor
    if choice.strategy == "pattern" and choice.language:
        return PATTERN_EXTRACTORS.get(choice.language)
    return None


@dataclass
class _Outcome:
    analysis: Optional[FileAnalysis] = None
    warning: Optional[str] = None


class _ProgressThrottle:
    """Forward at most one progress event per interval, plus the final one."""

    def __init__(self, callback: Optional[ProgressFn], total: int, interval: float = PROGRESS_INTERVAL_SECONDS) -> None:
        self.callback = callback
        self.total = total
        self.interval = interval
        self._done = 0
        self._last_emit = 0.0
        self._lock = threading.Lock()

    def emit(self, progress: Progress) -> None:
        if self.callback is None:
            return
        try:
            self.callback(progress)
        except Exception:
            logger.exception("Progress callback failed")

    def file_done(self) -> None:
        with self._lock:
            self._done += 1
            done = self._done
            now = time.monotonic()
            if done != self.total and now - self._last_emit < self.interval:
                return
            self._last_emit = now
        self.emit(Progress(f"{done}/{self.total} files analyzed", files_analyzed=done, total_files=self.total))


def _extract_one(path: str, content: str) -> _Outcome:
    extractor = get_extractor(path)
    if extractor is None:
        return _Outcome()
    try:
        return _Outcome(analysis=extractor.extract(path, content))
    except Exception as exc:
        logger.warning("Failed to analyze %s: %s", path, exc)
        return _Outcome(warning=f"Failed to analyze {path}: {exc}")


def _run_extraction(
    targets: Sequence[Tuple[str, str]],
    concurrency: int,
    progress: _ProgressThrottle,
) -> List[_Outcome]:
    """Workers pull the next index from a shared counter and fill their own slot."""
    slots: List[_Outcome] = [_Outcome() for _ in targets]
    next_index = 0
    counter_lock = threading.Lock()

    def worker() -> None:
        nonlocal next_index
        while True:
            with counter_lock:
                index = next_index
                next_index += 1
            if index >= len(targets):
                return
            path, content = targets[index]
            slots[index] = _extract_one(path, content)
            progress.file_done()

    workers = max(1, min(concurrency, len(targets)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repograph") as pool:
        futures = [pool.submit(worker) for _ in range(workers)]
        for future in futures:
            future.result()
    return slots


def _validate_files(files: Mapping[str, str]) -> None:
    if not isinstance(files, Mapping):
        raise TypeError(f"files must be a mapping of path to content, got {type(files).__name__}")
    for path, content in files.items():
        if not isinstance(path, str) or not isinstance(content, str):
            raise TypeError(f"files entries must be str -> str, got {type(path).__name__} -> {type(content).__name__}")


def analyze(
    files: Mapping[str, str],
    alias_table: Optional[Sequence[AliasEntry]] = None,
    *,
    max_files: Optional[int] = None,
    llm_enabled: bool = True,
    on_progress: Optional[ProgressFn] = None,
    settings: Optional[Settings] = None,
    provider: Optional[LLMProvider] = None,
    cache: Optional[ResultCache[AnalysisResult]] = None,
    root_label: str = ".",
) -> AnalysisResult:
    """Build the file and function graphs for an in-memory repository.

    Args:
        files: Repository-relative posix path -> file text.
        alias_table: Path aliases, e.g. from ``resolver.load_alias_table``.
        max_files: Cap on supported files considered, in sorted path order.
        llm_enabled: Run the LLM enrichment pass when a credential is configured.
        on_progress: Throttled progress sink.
        settings: Effective configuration; loaded from ``config.toml`` when omitted.
        provider: LLM provider override (skips credential lookup).
        cache: Optional result cache keyed by ``cache.fingerprint``.
        root_label: Display name of the repository root directory node.

    Returns:
        The assembled graphs, warnings and stats. Degraded conditions are
        reported as warnings; only a malformed ``files`` argument raises.
    """
    _validate_files(files)
    started = time.perf_counter()
    settings = settings or load_settings()
    limit = settings.max_files if max_files is None else max_files

    cache_key = None
    if cache is not None:
        cache_key = fingerprint(files, alias_table, max_files=limit, llm_enabled=llm_enabled)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

    supported = [path for path in sorted(files) if detect(path).supported]
    targets = [(path, files[path]) for path in supported[:max(limit, 0)]]
    if len(supported) > len(targets):
        logger.info("Analyzing first %d of %d supported files", len(targets), len(supported))

    throttle = _ProgressThrottle(on_progress, len(targets))
    throttle.emit(Progress(f"Analyzing {len(targets)} files", files_analyzed=0, total_files=len(targets)))
    outcomes = _run_extraction(targets, settings.concurrency, throttle)

    analyses = [o.analysis for o in outcomes if o.analysis is not None]
    warnings = [o.warning for o in outcomes if o.warning]
    if not analyses:
        warnings.append(NO_PARSED_FILES_WARNING)

    resolver = ModuleResolver(files.keys(), alias_table)
    assembler = GraphAssembler(analyses, resolver, scanned_paths=[p for p, _ in targets], root_label=root_label)
    graph = assembler.assemble()

    if llm_enabled:
        throttle.emit(Progress("Inferring relationships with LLM"))
        try:
            warnings.extend(enrich(graph, analyses, settings, provider=provider))
        except Exception as exc:
            logger.exception("LLM enrichment failed")
            warnings.append(f"LLM relationship inference failed: {exc}")
    warnings.extend(graph.warnings)

    file_graph = graph.file_graph
    function_graph = graph.function_graph
    result = AnalysisResult(
        file_graph=file_graph,
        function_graph=function_graph,
        warnings=warnings,
        stats=AnalysisStats(
            file_count=len(analyses),
            directory_count=sum(1 for node in file_graph.nodes if node.kind == "directory"),
            function_count=len(function_graph.nodes),
            duration_ms=int((time.perf_counter() - started) * 1000),
        ),
    )
    logger.info(
        "Analyzed %d file(s): %d function node(s), %d warning(s)",
        result.stats.file_count, result.stats.function_count, len(warnings),
    )
    throttle.emit(Progress("Analysis complete", files_analyzed=len(targets), total_files=len(targets)))

    if cache is not None and cache_key is not None:
        cache.put(cache_key, result)
    return result
