"""Conversion of raw matches into structured findings."""
from __future__ import annotations

import re
from typing import Optional

from perf_audit.scan_core.models import Detector, Finding, Override, RawMatch

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")
MAX_SNIPPET_LENGTH = 160


def _first_number(match: RawMatch) -> Optional[float]:
    for group in match.groups:
        if group is None:
            continue
        number = NUMBER_PATTERN.search(group)
        if number:
            return float(number.group(0))
    return None


def override_applies(override: Override, match: RawMatch) -> bool:
    """True when every condition set on the override holds for the match."""
    if override.contains is not None and not override.contains.search(match.text):
        return False
    if override.min_value is not None:
        value = _first_number(match)
        if value is None or value < override.min_value:
            return False
    return True


def _snippet(line: str) -> str:
    text = line.strip()
    if len(text) > MAX_SNIPPET_LENGTH:
        text = text[: MAX_SNIPPET_LENGTH - 3] + "..."
    return text


def build_finding(match: RawMatch, detector: Detector) -> Finding:
    """Turn a raw match into a finding, applying the first matching override."""
    impact = detector.impact
    effort = detector.effort
    for override in detector.overrides:
        if override_applies(override, match):
            impact = override.impact or impact
            effort = override.effort or effort
            break

    snippet = _snippet(match.source_line)
    description = f"{detector.title}: `{snippet}`" if snippet else detector.title
    return Finding(
        detector_id=detector.id,
        category=detector.category,
        path=match.path,
        line=match.line,
        end_line=match.line,
        impact=impact,
        effort=effort,
        title=detector.title,
        description=description,
        guidance=(detector.guidance,),
        snippet=snippet,
        before=detector.before,
        after=detector.after,
        gain=detector.gain,
    )
