"""Regex detector matching against source file content."""
from __future__ import annotations

import bisect
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from perf_audit.scan_core.config import MAX_PATTERN_SCAN_SIZE
from perf_audit.scan_core.models import Detector, IOWarning, RawMatch
from perf_audit.scan_core.scanner import matches_any

LOGGER = logging.getLogger("perf-audit")


def is_minified(content: str) -> bool:
    """Detect if file content is minified using line length heuristic."""
    lines = content.split("\n")
    if not lines:
        return False
    # If average line length > 200 chars, likely minified
    total_len = sum(len(line) for line in lines[:50])  # Check first 50 lines
    avg_len = total_len / min(len(lines), 50)
    return avg_len > 200


def applicable_detectors(file_path: Path, detectors: Sequence[Detector], root: Optional[Path] = None) -> List[Detector]:
    """Detectors whose globs accept this file."""
    name = file_path.name
    relative = name
    if root is not None:
        try:
            relative = file_path.relative_to(root).as_posix()
        except ValueError:
            relative = name
    return [d for d in detectors if matches_any(name, relative, d.globs)]


def line_starts(content: str) -> List[int]:
    """Offsets at which each line begins."""
    starts = [0]
    index = content.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = content.find("\n", index + 1)
    return starts


def match_content(path: str, content: str, detectors: Sequence[Detector]) -> List[RawMatch]:
    """Run every detector pattern over ``content``.

    A detector reports a given line at most once, however many of its
    patterns hit it.
    """
    matches: List[RawMatch] = []
    starts = line_starts(content)
    lines = content.split("\n")
    for detector in detectors:
        seen_lines: Set[int] = set()
        for pattern in detector.patterns:
            for hit in pattern.finditer(content):
                line_index = bisect.bisect_right(starts, hit.start()) - 1
                if line_index in seen_lines:
                    continue
                seen_lines.add(line_index)
                matches.append(
                    RawMatch(
                        detector_id=detector.id,
                        path=path,
                        line=line_index + 1,
                        text=hit.group(0),
                        source_line=lines[line_index].rstrip("\r"),
                        groups=hit.groups(),
                    )
                )
    return matches


def scan_file_for_patterns(
    file_path: Path,
    detectors: Sequence[Detector],
    max_size: int = MAX_PATTERN_SCAN_SIZE,
    skip_minified: bool = True,
    root: Optional[Path] = None,
) -> Tuple[List[RawMatch], List[IOWarning]]:
    """Scan one file with the detectors whose globs accept it."""
    warnings: List[IOWarning] = []

    candidates = applicable_detectors(file_path, detectors, root)
    if not candidates:
        return [], warnings

    # Check file size
    try:
        file_size = file_path.stat().st_size
    except (OSError, InterruptedError) as exc:  # noqa: PERF203
        LOGGER.warning("Unable to stat file %s: %s", file_path, exc)
        warnings.append(IOWarning(path=str(file_path), message=f"unreadable file: {exc}"))
        return [], warnings
    if file_size > max_size:
        LOGGER.warning("Skipping %s (size: %d bytes exceeds %d)", file_path, file_size, max_size)
        warnings.append(IOWarning(path=str(file_path), message=f"skipped: {file_size} bytes exceeds limit of {max_size}"))
        return [], warnings

    # Read file content
    try:
        content = file_path.read_text(encoding="utf-8", errors="ignore")
    except (OSError, InterruptedError) as exc:  # noqa: PERF203
        LOGGER.warning("Unable to read file %s: %s", file_path, exc)
        warnings.append(IOWarning(path=str(file_path), message=f"unreadable file: {exc}"))
        return [], warnings

    if skip_minified and is_minified(content):
        LOGGER.debug("Skipping pattern scan for minified file: %s", file_path)
        warnings.append(IOWarning(path=str(file_path), message="skipped: minified content"))
        return [], warnings

    return match_content(str(file_path), content, candidates), warnings
