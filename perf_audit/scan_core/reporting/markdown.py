"""Markdown report rendering through a placeholder template."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from string import Template
from typing import Dict, List, Optional, Set

from perf_audit.scan_core.config import DEFAULT_TEMPLATE_FILE
from perf_audit.scan_core.errors import RenderError
from perf_audit.scan_core.models import Finding, Impact, ScanResult
from perf_audit.scan_core.reporting.json_output import render_json
from perf_audit.scan_core.utils import resolve_relative_path

LOGGER = logging.getLogger("perf-audit")

REQUIRED_PLACEHOLDERS = {"overall_score", "findings"}


def load_template(path: Optional[Path] = None) -> str:
    template_path = (path or DEFAULT_TEMPLATE_FILE).expanduser()
    try:
        return template_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RenderError(f"Unable to read report template {template_path}: {exc}") from exc


def template_placeholders(text: str) -> Set[str]:
    """Names referenced as ``$name`` or ``${name}``; ``$$`` escapes are ignored."""
    names: Set[str] = set()
    for match in Template.pattern.finditer(text):
        name = match.group("named") or match.group("braced")
        if name:
            names.add(name)
    return names


def _root_of(result: ScanResult) -> Optional[Path]:
    return Path(result.roots[0]) if len(result.roots) == 1 else None


def _format_finding(finding: Finding, root: Optional[Path]) -> List[str]:
    source = resolve_relative_path(finding.path, root)
    location = f"{source}:{finding.line}"
    if finding.end_line != finding.line:
        location = f"{source}:{finding.line}-{finding.end_line}"
    lines = [f"- **{finding.title}** `{location}` ({finding.detector_id}, effort: {finding.effort.label})"]
    if finding.snippet:
        lines.append(f"  - Evidence: `{finding.snippet}`")
    if finding.related:
        lines.append(f"  - Also matched: {', '.join(finding.related)}")
    for guidance in finding.guidance:
        lines.append(f"  - Guidance: {guidance}")
    if finding.gain:
        lines.append(f"  - Estimated gain: {finding.gain}")
    if finding.before and finding.after:
        lines.extend(["", "  Before:", "", "  ```", *[f"  {line}" for line in finding.before.splitlines()], "  ```"])
        lines.extend(["", "  After:", "", "  ```", *[f"  {line}" for line in finding.after.splitlines()], "  ```", ""])
    return lines


def format_findings(result: ScanResult) -> str:
    """Findings grouped by impact (Critical first), then by category."""
    if not result.findings:
        return "No performance issues detected."
    root = _root_of(result)
    order = list(result.category_scores)
    sections: List[str] = []
    for impact in sorted(Impact, reverse=True):
        at_level = [f for f in result.findings if f.impact == impact]
        if not at_level:
            continue
        sections.append(f"### {impact.label} ({len(at_level)})")
        by_category: Dict[str, List[Finding]] = {}
        for finding in at_level:
            by_category.setdefault(finding.category, []).append(finding)
        for code in sorted(by_category, key=lambda c: order.index(c) if c in order else len(order)):
            sections.append("")
            sections.append(f"#### {result.title_for(code)} ({code})")
            sections.append("")
            for finding in by_category[code]:
                sections.extend(_format_finding(finding, root))
        sections.append("")
    return "\n".join(sections).rstrip()


def format_score_table(result: ScanResult) -> str:
    rows = ["| Category | Score | Status | Findings |", "|----------|-------|--------|----------|"]
    for code, score in result.category_scores.items():
        rows.append(f"| {result.title_for(code)} ({code}) | {score.score} | {score.status} | {score.findings} |")
    return "\n".join(rows)


def format_quick_wins(result: ScanResult) -> str:
    if not result.quick_wins:
        return "No quick wins identified."
    root = _root_of(result)
    lines = []
    for index, finding in enumerate(result.quick_wins, start=1):
        source = resolve_relative_path(finding.path, root)
        lines.append(f"{index}. **{finding.title}** ({finding.impact.label} impact) `{source}:{finding.line}`")
    return "\n".join(lines)


def format_warnings(result: ScanResult) -> str:
    if not result.warnings:
        return "None."
    root = _root_of(result)
    return "\n".join(f"- `{resolve_relative_path(w.path, root)}`: {w.message}" for w in result.warnings)


def template_values(result: ScanResult) -> Dict[str, str]:
    """Every placeholder value the renderer supplies."""
    counts = result.count_by_impact()
    return {
        "scope": result.scope,
        "generated_at": result.started_at,
        "roots": ", ".join(f"`{root}`" for root in result.roots) or "-",
        "stack": ", ".join(result.stack) or "not detected",
        "overall_score": f"{result.overall_score:g}",
        "overall_status": result.overall_status,
        "total_findings": str(len(result.findings)),
        "critical_count": str(counts[Impact.CRITICAL]),
        "high_count": str(counts[Impact.HIGH]),
        "medium_count": str(counts[Impact.MEDIUM]),
        "low_count": str(counts[Impact.LOW]),
        "quick_win_count": str(len(result.quick_wins)),
        "warning_count": str(len(result.warnings)),
        "files_walked": str(result.stats.files_walked),
        "files_matched": str(result.stats.files_matched),
        "score_table": format_score_table(result),
        "findings": format_findings(result),
        "quick_wins": format_quick_wins(result),
        "warnings": format_warnings(result),
    }


def render_markdown(result: ScanResult, template: Optional[str] = None) -> str:
    """Fill the report template; the result itself is never modified."""
    text = template if template is not None else load_template()
    referenced = template_placeholders(text)
    missing_required = REQUIRED_PLACEHOLDERS - referenced
    if missing_required:
        raise RenderError(f"Report template is missing required placeholders: {sorted(missing_required)}")
    values = template_values(result)
    unknown = referenced - set(values)
    if unknown:
        raise RenderError(f"Report template references unknown placeholders: {sorted(unknown)}")
    try:
        return Template(text).substitute(values)
    except ValueError as exc:
        raise RenderError(f"Invalid report template: {exc}") from exc


def report_path(output_dir: Path, extension: str, now: Optional[datetime] = None) -> Path:
    """``<output_dir>/<timestamp>-scan.<ext>``, suffixed when the name is taken."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    candidate = output_dir / f"{stamp}-scan.{extension}"
    counter = 1
    while candidate.exists():
        candidate = output_dir / f"{stamp}-scan-{counter}.{extension}"
        counter += 1
    return candidate


def write_report(
    result: ScanResult,
    output_dir: Path,
    template: Optional[str] = None,
    fmt: str = "md",
) -> Path:
    """Render and write the report; returns the written path."""
    content = render_json(result) if fmt == "json" else render_markdown(result, template)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = report_path(output_dir, "json" if fmt == "json" else "md")
    path.write_text(content, encoding="utf-8")
    LOGGER.info("Report written to %s", path)
    return path
