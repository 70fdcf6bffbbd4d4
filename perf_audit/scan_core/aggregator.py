"""Deduplication, scoring and quick-win selection over a complete finding set."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from perf_audit.scan_core.config import (
    DEFAULT_DEDUP_WINDOW,
    DEFAULT_PENALTY_WEIGHTS,
    DEFAULT_STATUS_THRESHOLDS,
)
from perf_audit.scan_core.models import (
    CategoryScore,
    Finding,
    Impact,
    IOWarning,
    ScanResult,
    ScanStats,
)


def _union(first: Sequence[str], second: Sequence[str]) -> Tuple[str, ...]:
    merged = list(first)
    for item in second:
        if item not in merged:
            merged.append(item)
    return tuple(merged)


def _merge(current: Finding, incoming: Finding) -> Finding:
    """Fold ``incoming`` into ``current``; the higher impact becomes primary."""
    if (incoming.impact, -incoming.effort) > (current.impact, -current.effort):
        primary, secondary = incoming, current
    else:
        primary, secondary = current, incoming

    related = _union(primary.related, (secondary.detector_id,) + secondary.related)
    related = tuple(item for item in related if item != primary.detector_id)
    description = primary.description
    if secondary.description not in description:
        description = f"{description}; {secondary.description}"
    return replace(
        primary,
        line=min(current.line, incoming.line),
        end_line=max(current.end_line, incoming.end_line),
        description=description,
        guidance=_union(primary.guidance, secondary.guidance),
        related=related,
    )


def deduplicate(findings: Iterable[Finding], window: int = DEFAULT_DEDUP_WINDOW) -> List[Finding]:
    """Merge findings of one category in one file that lie within ``window`` lines.

    Running the function on its own output returns the same findings.
    """
    groups: Dict[Tuple[str, str], List[Finding]] = {}
    for finding in findings:
        groups.setdefault((finding.category, finding.path), []).append(finding)

    merged: List[Finding] = []
    for key in sorted(groups):
        ordered = sorted(groups[key], key=lambda f: (f.line, f.end_line, -f.impact, f.detector_id))
        cluster = ordered[0]
        for finding in ordered[1:]:
            if finding.line - cluster.end_line <= window:
                cluster = _merge(cluster, finding)
            else:
                merged.append(cluster)
                cluster = finding
        merged.append(cluster)
    return sort_findings(merged)


def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Impact descending, then path, line and detector for determinism."""
    return sorted(findings, key=lambda f: (-f.impact, f.path, f.line, f.category, f.detector_id))


def status_for(score: float, thresholds: Sequence[Tuple[int, str]] = DEFAULT_STATUS_THRESHOLDS) -> str:
    for minimum, label in thresholds:
        if score >= minimum:
            return label
    return thresholds[-1][1]


def category_score(
    findings: Iterable[Finding],
    weights: Mapping[Impact, int] = DEFAULT_PENALTY_WEIGHTS,
) -> int:
    """``100 - sum(penalty(impact))`` clamped to [0, 100]."""
    penalty = sum(weights[f.impact] for f in findings)
    return max(0, min(100, 100 - penalty))


def score_categories(
    findings: Sequence[Finding],
    categories: Iterable[str],
    weights: Mapping[Impact, int] = DEFAULT_PENALTY_WEIGHTS,
    thresholds: Sequence[Tuple[int, str]] = DEFAULT_STATUS_THRESHOLDS,
) -> Dict[str, CategoryScore]:
    """Score every category in scope, including those without findings."""
    scores: Dict[str, CategoryScore] = {}
    for code in categories:
        members = [f for f in findings if f.category == code]
        score = category_score(members, weights)
        scores[code] = CategoryScore(category=code, score=score, status=status_for(score, thresholds), findings=len(members))
    return scores


def overall_score(scores: Mapping[str, CategoryScore]) -> float:
    """Mean of the category scores in scope; 100 when nothing is in scope."""
    if not scores:
        return 100.0
    mean = sum(s.score for s in scores.values()) / len(scores)
    return round(max(0.0, min(100.0, mean)), 1)


def select_quick_wins(findings: Iterable[Finding]) -> List[Finding]:
    """Findings with Low effort and High or Medium impact."""
    wins = [f for f in findings if f.is_quick_win]
    return sorted(wins, key=lambda f: (-f.impact, f.path, f.line, f.detector_id))


def aggregate(
    findings: Sequence[Finding],
    categories: Sequence[str],
    scope: str,
    window: int = DEFAULT_DEDUP_WINDOW,
    weights: Mapping[Impact, int] = DEFAULT_PENALTY_WEIGHTS,
    thresholds: Sequence[Tuple[int, str]] = DEFAULT_STATUS_THRESHOLDS,
    warnings: Sequence[IOWarning] = (),
    stats: Optional[ScanStats] = None,
    roots: Sequence[str] = (),
    stack: Sequence[str] = (),
    started_at: Optional[str] = None,
    category_titles: Optional[Mapping[str, str]] = None,
) -> ScanResult:
    """Build the immutable result of a scan from its complete raw finding set."""
    deduplicated = deduplicate(findings, window)
    scores = score_categories(deduplicated, categories, weights, thresholds)
    overall = overall_score(scores)
    return ScanResult(
        scope=scope,
        findings=tuple(deduplicated),
        category_scores=scores,
        overall_score=overall,
        overall_status=status_for(overall, thresholds),
        quick_wins=tuple(select_quick_wins(deduplicated)),
        warnings=tuple(sorted(warnings, key=lambda w: (w.path, w.message))),
        stats=stats or ScanStats(),
        roots=tuple(roots),
        stack=tuple(stack),
        started_at=started_at or datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        category_titles=dict(category_titles or {}),
    )
