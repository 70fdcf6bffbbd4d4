"""Planning and applying the mechanical fixes some quick-win detectors define."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List

from perf_audit.scan_core.models import Finding
from perf_audit.scan_core.registry import RuleRegistry

LOGGER = logging.getLogger("perf-audit")

# The breaks universal-newline reading turns into "\n", so numbering agrees with the matcher.
LINE_BREAK = re.compile(r"(\r\n|\r|\n)")


@dataclass(frozen=True)
class PlannedFix:
    path: str
    line: int
    detector_id: str
    original: str
    updated: str


def split_lines(text: str) -> List[str]:
    """Split ``text`` into lines that keep their own terminator."""
    parts = LINE_BREAK.split(text)
    bodies, breaks = parts[0::2], parts[1::2] + [""]
    return [body + brk for body, brk in zip(bodies, breaks) if body or brk]


def read_source(path: str) -> str:
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def write_source(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(text)


def _rewrite(line: str, finding: Finding, registry: RuleRegistry) -> str:
    fix = registry.get(finding.detector_id).fix
    body = line.rstrip("\r\n")
    return fix.pattern.sub(fix.replacement, body) + line[len(body):]


def plan_fixes(findings: Iterable[Finding], registry: RuleRegistry) -> List[PlannedFix]:
    """Work out the line rewrites for findings whose detector carries a fix.

    The rewrite targets the line the finding's own detector matched, which
    can sit below ``finding.line`` once nearby findings have been merged.
    """
    plan: List[PlannedFix] = []
    cache: Dict[str, List[str]] = {}
    for finding in findings:
        if registry.get(finding.detector_id).fix is None:
            continue
        if finding.path not in cache:
            try:
                cache[finding.path] = split_lines(read_source(finding.path))
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Unable to read %s for fixing: %s", finding.path, exc)
                continue
        lines = cache[finding.path]
        if finding.match_line > len(lines):
            continue
        original = lines[finding.match_line - 1]
        updated = _rewrite(original, finding, registry)
        if updated != original:
            plan.append(PlannedFix(finding.path, finding.match_line, finding.detector_id, original, updated))
    return plan


def apply_fixes(plan: Iterable[PlannedFix]) -> List[str]:
    """Rewrite each affected file once; returns the paths changed.

    A line that no longer matches what was planned is left untouched, and
    every other byte of the file, line endings included, is kept.
    """
    by_path: Dict[str, List[PlannedFix]] = {}
    for fix in plan:
        by_path.setdefault(fix.path, []).append(fix)

    changed: List[str] = []
    for path, fixes in sorted(by_path.items()):
        try:
            lines = split_lines(read_source(path))
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Unable to read %s for fixing: %s", path, exc)
            continue
        applied = 0
        for fix in fixes:
            index = fix.line - 1
            if index < len(lines) and lines[index] == fix.original:
                lines[index] = fix.updated
                applied += 1
            else:
                LOGGER.warning("Skipping stale fix for %s:%s (%s)", path, fix.line, fix.detector_id)
        if not applied:
            continue
        try:
            write_source(path, "".join(lines))
        except OSError as exc:
            LOGGER.warning("Unable to write %s: %s", path, exc)
            continue
        LOGGER.info("Applied %s fix(es) to %s", applied, path)
        changed.append(path)
    return changed
