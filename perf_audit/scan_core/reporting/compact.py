"""Compact summary report using logger output."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from perf_audit.scan_core.models import ScanResult
from perf_audit.scan_core.reporting.formatters import Colors, Emojis, impact_color, score_color, status_emoji
from perf_audit.scan_core.utils import resolve_relative_path

LOGGER = logging.getLogger("perf-audit")


def print_compact_report(result: ScanResult, root: Optional[Path]) -> None:
    """Print a compact summary report using logger output."""
    if not result.findings:
        clean_msg = f"{Emojis.get(Emojis.CLEAN)} No performance issues detected (scope: {result.scope})."
        LOGGER.info(clean_msg)
    else:
        for code, findings in result.findings_by_category().items():
            header = Colors.colorize(f"{result.title_for(code)} ({code}):", Colors.BOLD)
            LOGGER.warning(header)
            for finding in findings:
                source = resolve_relative_path(finding.path, root)
                level = Colors.colorize(finding.impact.label, impact_color(finding.impact))
                LOGGER.warning("- [%s] %s:%s -> %s", level, source, finding.line, finding.description)

    for code, score in result.category_scores.items():
        LOGGER.info(
            "%s %s: %s",
            status_emoji(score.score),
            result.title_for(code),
            Colors.colorize(f"{score.score}/100 ({score.status})", score_color(score.score)),
        )

    if result.quick_wins:
        LOGGER.warning("%s Quick wins: %s", Emojis.get(Emojis.QUICK_WIN), len(result.quick_wins))
    if result.warnings:
        LOGGER.warning("%s Files skipped with warnings: %s", Emojis.get(Emojis.WARNING), len(result.warnings))

    counts = result.count_by_impact()
    summary_parts = [f"{impact.label}: {counts[impact]}" for impact in sorted(counts, reverse=True)]
    total_msg = Colors.colorize(
        f"{status_emoji(result.overall_score)} Total findings: {len(result.findings)} ({', '.join(summary_parts)}); "
        f"overall score {result.overall_score}/100 ({result.overall_status})",
        score_color(result.overall_score) + Colors.BOLD,
    )
    if result.findings:
        LOGGER.warning(total_msg)
    else:
        LOGGER.info(total_msg)
