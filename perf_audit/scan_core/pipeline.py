"""Scan orchestration: walking, parallel matching, aggregation and rendering."""
from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from perf_audit.scan_core.aggregator import aggregate
from perf_audit.scan_core.config import ScanSettings
from perf_audit.scan_core.errors import PerfAuditError, ScanCancelled
from perf_audit.scan_core.findings import build_finding
from perf_audit.scan_core.models import Detector, Finding, IOWarning, RawMatch, ScanResult, ScanStats
from perf_audit.scan_core.registry import RuleRegistry
from perf_audit.scan_core.scanner import FileWalker
from perf_audit.scan_core.scanners.patterns import scan_file_for_patterns

LOGGER = logging.getLogger("perf-audit")

T = TypeVar("T")

_SENTINEL = None


class ScanState(Enum):
    IDLE = "idle"
    WALKING = "walking"
    MATCHING = "matching"
    AGGREGATING = "aggregating"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _WorkerOutput:
    matches: List[RawMatch] = field(default_factory=list)
    warnings: List[IOWarning] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)


class ScanPipeline:
    """Run one scan through Idle -> Walking -> Matching -> Aggregating -> Rendering -> Done.

    The walker feeds a bounded queue consumed by a thread pool. Each worker
    keeps its own matches and warnings, which are merged once every worker
    has finished; aggregation only starts after that barrier. ``cancel()``
    may be called from any thread and is honoured between files.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        scope: str = "full",
        settings: Optional[ScanSettings] = None,
        stack: Sequence[str] = (),
    ) -> None:
        self.registry = registry
        self.scope = scope
        self.settings = settings or ScanSettings()
        self.stack = tuple(stack)
        self.state = ScanState.IDLE
        self.history: List[ScanState] = [ScanState.IDLE]
        self.result: Optional[ScanResult] = None
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _transition(self, state: ScanState) -> None:
        LOGGER.debug("Scan state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def detectors(self) -> List[Detector]:
        return self.registry.for_scope(self.scope, self.stack or None)

    def run(self, roots: Sequence[Path], renderer: Optional[Callable[[ScanResult], T]] = None) -> ScanResult:
        """Scan ``roots`` and return the aggregated result.

        When ``renderer`` is given it is called with the result during the
        Rendering stage. A failing renderer leaves ``self.result`` in place.
        """
        if self.state is not ScanState.IDLE:
            raise PerfAuditError(f"Pipeline already used (state: {self.state.value}).")
        try:
            return self._run(roots, renderer)
        except BaseException:
            self._transition(ScanState.FAILED)
            raise

    def _run(self, roots: Sequence[Path], renderer: Optional[Callable[[ScanResult], T]]) -> ScanResult:
        started_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        detectors = self.detectors()
        categories = self.registry.scope_categories(self.scope)
        LOGGER.info(
            "Scanning %s root(s) with %s detectors (scope: %s).",
            len(roots),
            len(detectors),
            self.scope,
        )

        include = self.settings.include or tuple(sorted({glob for d in detectors for glob in d.globs}))
        walker = FileWalker(roots, include=include, exclude=self.settings.exclude)
        matches, warnings, stats = self._walk_and_match(walker, detectors)

        if self.cancelled:
            raise ScanCancelled("Scan cancelled before aggregation; no report produced.")

        self._transition(ScanState.AGGREGATING)
        findings = self._build_findings(matches)
        result = aggregate(
            findings,
            categories,
            scope=self.scope,
            window=self.settings.dedup_window,
            weights=self.settings.penalty_weights,
            thresholds=self.settings.status_thresholds,
            warnings=warnings,
            stats=stats,
            roots=[str(root) for root in roots],
            stack=self.stack,
            started_at=started_at,
            category_titles={code: self.registry.category_title(code) for code in categories},
        )
        self.result = result
        LOGGER.info(
            "Aggregated %s raw matches into %s findings; overall score %s.",
            len(matches),
            len(result.findings),
            result.overall_score,
        )

        self._transition(ScanState.RENDERING)
        if renderer is not None:
            renderer(result)
        self._transition(ScanState.DONE)
        return result

    def _build_findings(self, matches: Sequence[RawMatch]) -> List[Finding]:
        return [build_finding(match, self.registry.get(match.detector_id)) for match in matches]

    def _walk_and_match(
        self, walker: FileWalker, detectors: Sequence[Detector]
    ) -> Tuple[List[RawMatch], List[IOWarning], ScanStats]:
        workers = self.settings.workers or os.cpu_count() or 1
        work: "queue.Queue[Optional[Tuple[Path, Path]]]" = queue.Queue(maxsize=self.settings.queue_size)
        walked = ScanStats()

        self._transition(ScanState.WALKING)
        with ThreadPoolExecutor(max_workers=workers + 1, thread_name_prefix="perf-audit") as executor:
            producer = executor.submit(self._produce, walker, work, workers, walked)
            self._transition(ScanState.MATCHING)
            consumers = [executor.submit(self._consume, work, detectors) for _ in range(workers)]
            try:
                outputs = [future.result() for future in consumers]
                producer.result()
            except BaseException:
                # lets the producer stop and the workers drain before shutdown
                self._cancel.set()
                raise

        matches: List[RawMatch] = []
        warnings: List[IOWarning] = list(walker.warnings)
        stats = walked
        for output in outputs:
            matches.extend(output.matches)
            warnings.extend(output.warnings)
            stats.merge(output.stats)
        return matches, warnings, stats

    def _produce(
        self,
        walker: FileWalker,
        work: "queue.Queue[Optional[Tuple[Path, Path]]]",
        workers: int,
        walked: ScanStats,
    ) -> None:
        try:
            for entry in walker.entries():
                if self.cancelled:
                    LOGGER.info("Cancellation requested; stopping file walk.")
                    break
                walked.files_walked += 1
                work.put(entry)
        except BaseException:
            self._cancel.set()
            raise
        finally:
            for _ in range(workers):
                work.put(_SENTINEL)

    def _consume(self, work: "queue.Queue[Optional[Tuple[Path, Path]]]", detectors: Sequence[Detector]) -> _WorkerOutput:
        output = _WorkerOutput()
        error: Optional[BaseException] = None
        while True:
            entry = work.get()
            if entry is _SENTINEL:
                break
            # keep draining after cancellation so the producer never blocks
            if self.cancelled:
                continue
            root, file_path = entry
            try:
                matches, warnings = scan_file_for_patterns(
                    file_path,
                    detectors,
                    max_size=self.settings.max_file_size,
                    skip_minified=self.settings.skip_minified,
                    root=root,
                )
            except Exception as exc:  # noqa: BLE001 - re-raised after draining
                error = exc
                self._cancel.set()
                continue
            output.matches.extend(matches)
            output.warnings.extend(warnings)
            output.stats.raw_matches += len(matches)
            if warnings:
                output.stats.files_skipped += 1
            else:
                output.stats.files_matched += 1
        if error is not None:
            raise error
        return output
