"""Structured multi-section summary report."""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from perf_audit.scan_core.models import Finding, ScanResult
from perf_audit.scan_core.reporting.formatters import Colors, Emojis, impact_color, score_color, status_emoji
from perf_audit.scan_core.utils import resolve_relative_path

SEPARATOR = "=" * 70
SUBSEPARATOR = "-" * 70


def print_header(result: ScanResult) -> None:
    """Print report header."""
    print(f"\n{SEPARATOR}")
    title = f"{Emojis.get(Emojis.STATS)} PERFORMANCE AUDIT REPORT ({result.scope})"
    print(Colors.colorize(title, Colors.BOLD))
    print(SEPARATOR)


def print_scan_scope(result: ScanResult) -> None:
    """Print scan scope section."""
    print(f"\n{Emojis.get(Emojis.SEARCH)} SCAN SCOPE")
    print(SUBSEPARATOR)
    for path in result.roots:
        print(f"   • {path}")
    print(f"   Stack:          {', '.join(result.stack) or 'not detected'}")
    print(f"   Files walked:   {result.stats.files_walked}")
    print(f"   Files matched:  {result.stats.files_matched}")
    print(f"   Files skipped:  {result.stats.files_skipped}")


def print_scores(result: ScanResult) -> None:
    """Print per-category and overall scores."""
    print(f"\n{Emojis.get(Emojis.STATS)} SCORES")
    print(SUBSEPARATOR)
    for code, score in result.category_scores.items():
        label = f"{result.title_for(code)} ({code})"
        value = Colors.colorize(f"{score.score:>3}/100 {score.status}", score_color(score.score))
        print(f"   {status_emoji(score.score)} {label:<32} {value}  [{score.findings} finding(s)]")
    overall = Colors.colorize(
        f"{result.overall_score}/100 {result.overall_status}",
        score_color(result.overall_score) + Colors.BOLD,
    )
    print(f"   Overall: {overall}")


def _print_finding(finding: Finding, root: Optional[Path]) -> None:
    source = resolve_relative_path(finding.path, root)
    level = Colors.colorize(finding.impact.label, impact_color(finding.impact))
    lines = f"{finding.line}" if finding.end_line == finding.line else f"{finding.line}-{finding.end_line}"
    print(f"   [{level}] {finding.title} ({finding.detector_id})")
    print(f"      Location: {source}:{lines}")
    print(f"      Evidence: {finding.snippet}")
    print(f"      Effort:   {finding.effort.label}")
    for guidance in finding.guidance:
        print(f"      Fix:      {guidance}")


def print_findings(result: ScanResult, root: Optional[Path]) -> None:
    """Print findings grouped by category."""
    print(f"\n{Emojis.get(Emojis.WARNING)} DETAILED FINDINGS")
    print(SUBSEPARATOR)
    first = True
    for code, findings in result.findings_by_category().items():
        if not first:
            print()
        first = False
        print(Colors.colorize(f"   {result.title_for(code)}:", Colors.BOLD))
        for finding in findings:
            _print_finding(finding, root)


def print_quick_wins(findings: Sequence[Finding], root: Optional[Path]) -> None:
    if not findings:
        return
    print(f"\n{Emojis.get(Emojis.QUICK_WIN)} QUICK WINS")
    print(SUBSEPARATOR)
    for index, finding in enumerate(findings, start=1):
        source = resolve_relative_path(finding.path, root)
        print(f"   {index}. {finding.title} ({finding.impact.label}) - {source}:{finding.line}")


def print_warnings(result: ScanResult, root: Optional[Path]) -> None:
    if not result.warnings:
        return
    print(f"\n{Emojis.get(Emojis.INFO)} WARNINGS")
    print(SUBSEPARATOR)
    for warning in result.warnings:
        print(f"   • {resolve_relative_path(warning.path, root)}: {warning.message}")


def print_structured_report(result: ScanResult, root: Optional[Path] = None) -> None:
    """Print a structured multi-section summary report."""
    print_header(result)
    print_scan_scope(result)
    print_scores(result)

    if result.findings:
        print_findings(result, root)
        print_quick_wins(result.quick_wins, root)
    else:
        clean_msg = f"\n   {Emojis.get(Emojis.CLEAN)} No performance issues detected"
        print(Colors.colorize(clean_msg, Colors.GREEN))

    print_warnings(result, root)
    print(f"\n{SEPARATOR}\n")
