"""Data models for detectors, findings and scan results."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Pattern, Tuple


class Impact(IntEnum):
    """How much a finding hurts performance. Higher is worse."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, raw: object) -> "Impact":
        """Parse an impact level from a case-insensitive name."""
        try:
            return cls[str(raw).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown impact level {raw!r}") from None

    @property
    def label(self) -> str:
        return self.name.capitalize()


class Effort(IntEnum):
    """How much work a remediation takes. Higher is more work."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def parse(cls, raw: object) -> "Effort":
        """Parse an effort level from a case-insensitive name."""
        try:
            return cls[str(raw).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown effort level {raw!r}") from None

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class Override:
    """Match-dependent impact/effort adjustment for a detector."""

    impact: Optional[Impact] = None
    effort: Optional[Effort] = None
    contains: Optional[Pattern[str]] = None
    min_value: Optional[float] = None


@dataclass(frozen=True)
class Fix:
    """Regex substitution applied to a matched line."""

    pattern: Pattern[str]
    replacement: str


@dataclass(frozen=True)
class Detector:
    """A named rule pairing search patterns with remediation metadata."""

    id: str
    category: str
    title: str
    patterns: Tuple[Pattern[str], ...]
    globs: Tuple[str, ...]
    impact: Impact
    effort: Effort
    guidance: str
    ignore_case: bool = False
    before: Optional[str] = None
    after: Optional[str] = None
    gain: Optional[str] = None
    overrides: Tuple[Override, ...] = ()
    stacks: Tuple[str, ...] = ()
    fix: Optional[Fix] = None

    @property
    def is_quick_win(self) -> bool:
        """True when the detector's defaults qualify its findings as quick wins."""
        return is_quick_win(self.impact, self.effort)


def is_quick_win(impact: Impact, effort: Effort) -> bool:
    return effort == Effort.LOW and impact in (Impact.HIGH, Impact.MEDIUM)


@dataclass(frozen=True)
class RawMatch:
    """One regex hit before it is turned into a finding."""

    detector_id: str
    path: str
    line: int
    text: str
    source_line: str
    groups: Tuple[Optional[str], ...] = ()


@dataclass(frozen=True)
class Finding:
    """One reported instance of a detector matching source content."""

    detector_id: str
    category: str
    path: str
    line: int
    impact: Impact
    effort: Effort
    title: str
    description: str
    end_line: int = 0
    guidance: Tuple[str, ...] = ()
    snippet: str = ""
    before: Optional[str] = None
    after: Optional[str] = None
    gain: Optional[str] = None
    related: Tuple[str, ...] = ()
    # Line the reporting detector itself matched; differs from ``line`` after a merge.
    match_line: int = 0

    def __post_init__(self) -> None:
        if self.end_line < self.line:
            object.__setattr__(self, "end_line", self.line)
        if not self.match_line:
            object.__setattr__(self, "match_line", self.line)

    @property
    def is_quick_win(self) -> bool:
        return is_quick_win(self.impact, self.effort)

    def to_dict(self) -> Dict[str, object]:
        """Convert finding to dictionary format."""
        data = asdict(self)
        data["impact"] = self.impact.label
        data["effort"] = self.effort.label
        data["guidance"] = list(self.guidance)
        data["related"] = list(self.related)
        data["quick_win"] = self.is_quick_win
        return data


@dataclass(frozen=True)
class CategoryScore:
    category: str
    score: int
    status: str
    findings: int = 0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class IOWarning:
    """A recoverable problem with a single file or directory."""

    path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class ScanStats:
    """Statistics collected during a scan operation."""

    files_walked: int = 0
    files_matched: int = 0
    files_skipped: int = 0
    raw_matches: int = 0

    def merge(self, other: "ScanStats") -> None:
        """Merge statistics from another worker or root."""
        self.files_walked += other.files_walked
        self.files_matched += other.files_matched
        self.files_skipped += other.files_skipped
        self.raw_matches += other.raw_matches

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ScanResult:
    """Everything a renderer needs; immutable once the scan completes."""

    scope: str
    findings: Tuple[Finding, ...]
    category_scores: Dict[str, CategoryScore]
    overall_score: float
    overall_status: str
    quick_wins: Tuple[Finding, ...]
    warnings: Tuple[IOWarning, ...] = ()
    stats: ScanStats = field(default_factory=ScanStats)
    roots: Tuple[str, ...] = ()
    stack: Tuple[str, ...] = ()
    started_at: str = ""
    category_titles: Dict[str, str] = field(default_factory=dict)

    def title_for(self, code: str) -> str:
        return self.category_titles.get(code, code)

    def findings_by_category(self) -> Dict[str, List[Finding]]:
        grouped: Dict[str, List[Finding]] = {}
        for finding in self.findings:
            grouped.setdefault(finding.category, []).append(finding)
        return grouped

    def count_by_impact(self) -> Dict[Impact, int]:
        counts = {impact: 0 for impact in Impact}
        for finding in self.findings:
            counts[finding.impact] += 1
        return counts

    def to_dict(self) -> Dict[str, object]:
        return {
            "scope": self.scope,
            "started_at": self.started_at,
            "roots": list(self.roots),
            "stack": list(self.stack),
            "overall_score": self.overall_score,
            "overall_status": self.overall_status,
            "category_scores": {code: score.to_dict() for code, score in sorted(self.category_scores.items())},
            "findings": [f.to_dict() for f in self.findings],
            "quick_wins": [f.to_dict() for f in self.quick_wins],
            "warnings": [w.to_dict() for w in self.warnings],
            "stats": self.stats.to_dict(),
        }
