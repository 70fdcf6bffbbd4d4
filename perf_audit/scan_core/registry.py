"""Detector definition loading and lookup."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from perf_audit.scan_core.config import CATEGORY_TITLES, SCOPES
from perf_audit.scan_core.errors import ConfigurationError
from perf_audit.scan_core.models import Detector, Effort, Fix, Impact, Override

LOGGER = logging.getLogger("perf-audit")

REQUIRED_DETECTOR_KEYS = ("id", "category", "title", "patterns", "globs", "impact", "effort", "guidance")
OPTIONAL_DETECTOR_KEYS = ("ignore_case", "before", "after", "gain", "overrides", "stacks", "fix")
VALID_DETECTOR_KEYS = set(REQUIRED_DETECTOR_KEYS) | set(OPTIONAL_DETECTOR_KEYS)
VALID_OVERRIDE_KEYS = {"contains", "min_value", "impact", "effort"}
CATEGORY_CODE_PATTERN = re.compile(r"^[A-Z]{4}$")


def _compile(pattern: object, flags: int, where: str) -> "re.Pattern[str]":
    if not isinstance(pattern, str) or not pattern:
        raise ConfigurationError(f"{where}: patterns must be non-empty strings (got {pattern!r}).")
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        raise ConfigurationError(f"{where}: invalid pattern {pattern!r}: {exc}") from exc


def _string_list(item: Dict[str, object], key: str, where: str) -> Tuple[str, ...]:
    value = item.get(key)
    if not isinstance(value, list) or not value or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"{where}: '{key}' must be a non-empty list of strings.")
    return tuple(value)


def _optional_text(item: Dict[str, object], key: str, where: str) -> Optional[str]:
    value = item.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{where}: '{key}' must be a string.")
    return value


def _parse_levels(item: Dict[str, object], where: str) -> Tuple[Optional[Impact], Optional[Effort]]:
    try:
        impact = Impact.parse(item["impact"]) if item.get("impact") is not None else None
        effort = Effort.parse(item["effort"]) if item.get("effort") is not None else None
    except ValueError as exc:
        raise ConfigurationError(f"{where}: {exc}") from exc
    return impact, effort


def _parse_overrides(raw: object, flags: int, where: str) -> Tuple[Override, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError(f"{where}: 'overrides' must be a list.")
    overrides: List[Override] = []
    for index, entry in enumerate(raw):
        entry_where = f"{where} override #{index + 1}"
        if not isinstance(entry, dict):
            raise ConfigurationError(f"{entry_where}: must be an object.")
        unknown_keys = set(entry) - VALID_OVERRIDE_KEYS
        if unknown_keys:
            raise ConfigurationError(f"{entry_where}: unknown keys {sorted(unknown_keys)}.")
        impact, effort = _parse_levels(entry, entry_where)
        if impact is None and effort is None:
            raise ConfigurationError(f"{entry_where}: must set 'impact' or 'effort'.")
        contains = _compile(entry["contains"], flags, entry_where) if "contains" in entry else None
        min_value = entry.get("min_value")
        if min_value is not None and (isinstance(min_value, bool) or not isinstance(min_value, (int, float))):
            raise ConfigurationError(f"{entry_where}: 'min_value' must be a number.")
        overrides.append(Override(impact=impact, effort=effort, contains=contains, min_value=min_value))
    return tuple(overrides)


def _parse_fix(raw: object, flags: int, where: str) -> Optional[Fix]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or set(raw) != {"pattern", "replacement"}:
        raise ConfigurationError(f"{where}: 'fix' must be an object with 'pattern' and 'replacement'.")
    if not isinstance(raw["replacement"], str):
        raise ConfigurationError(f"{where}: fix replacement must be a string.")
    return Fix(pattern=_compile(raw["pattern"], flags, f"{where} fix"), replacement=raw["replacement"])


def parse_detector(item: object, source: str = "<memory>") -> Detector:
    """Validate one detector definition and compile its patterns."""
    if not isinstance(item, dict):
        raise ConfigurationError(f"{source}: detector entries must be objects (got {type(item).__name__}).")

    where = f"{source}: detector {item.get('id', '<unnamed>')!r}"
    missing = [key for key in REQUIRED_DETECTOR_KEYS if item.get(key) in (None, "", [])]
    if missing:
        raise ConfigurationError(f"{where} is missing required fields {missing}.")
    unknown_keys = set(item) - VALID_DETECTOR_KEYS
    if unknown_keys:
        raise ConfigurationError(f"{where}: unknown keys {sorted(unknown_keys)}.")

    category = str(item["category"]).strip().upper()
    if not CATEGORY_CODE_PATTERN.match(category):
        raise ConfigurationError(f"{where}: category must be a four-letter code (got {item['category']!r}).")

    ignore_case = item.get("ignore_case", False)
    if not isinstance(ignore_case, bool):
        raise ConfigurationError(f"{where}: 'ignore_case' must be a boolean.")
    flags = re.MULTILINE | (re.IGNORECASE if ignore_case else 0)

    patterns = tuple(_compile(p, flags, where) for p in _string_list(item, "patterns", where))
    impact, effort = _parse_levels(item, where)
    stacks = _string_list(item, "stacks", where) if "stacks" in item else ()

    return Detector(
        id=str(item["id"]).strip(),
        category=category,
        title=str(item["title"]).strip(),
        patterns=patterns,
        globs=_string_list(item, "globs", where),
        impact=impact,
        effort=effort,
        guidance=str(item["guidance"]).strip(),
        ignore_case=ignore_case,
        before=_optional_text(item, "before", where),
        after=_optional_text(item, "after", where),
        gain=_optional_text(item, "gain", where),
        overrides=_parse_overrides(item.get("overrides"), flags, where),
        stacks=tuple(s.lower() for s in stacks),
        fix=_parse_fix(item.get("fix"), flags, where),
    )


def load_detector_file(path: Path) -> Tuple[List[Detector], Dict[str, str]]:
    """Load detectors (and optional category titles) from a JSON document."""
    detector_path = path.expanduser().resolve()
    if not detector_path.is_file():
        raise ConfigurationError(f"Detector definitions not found: {detector_path}")
    try:
        data = json.loads(detector_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in detector definitions {detector_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Unable to read detector definitions {detector_path}: {exc}") from exc

    titles: Dict[str, str] = {}
    if isinstance(data, dict):
        raw_titles = data.get("categories") or {}
        if not isinstance(raw_titles, dict):
            raise ConfigurationError(f"{detector_path}: 'categories' must map codes to titles.")
        titles = {str(code).upper(): str(title) for code, title in raw_titles.items()}
        raw_detectors = data.get("detectors")
    else:
        raw_detectors = data
    if not isinstance(raw_detectors, list):
        raise ConfigurationError(f"{detector_path}: expected a 'detectors' array.")

    detectors = [parse_detector(item, source=str(detector_path)) for item in raw_detectors]
    LOGGER.debug("Loaded %s detectors from %s", len(detectors), detector_path)
    return detectors, titles


class RuleRegistry:
    """Immutable collection of detectors indexed by id and category."""

    def __init__(self, detectors: Iterable[Detector], category_titles: Optional[Dict[str, str]] = None) -> None:
        self._detectors: Dict[str, Detector] = {}
        for detector in detectors:
            if detector.id in self._detectors:
                raise ConfigurationError(f"Duplicate detector id {detector.id!r}.")
            self._detectors[detector.id] = detector
        self._titles = dict(CATEGORY_TITLES)
        self._titles.update(category_titles or {})

    @classmethod
    def from_files(cls, paths: Sequence[Path]) -> "RuleRegistry":
        if not paths:
            raise ConfigurationError("No detector definition files available.")
        detectors: List[Detector] = []
        titles: Dict[str, str] = {}
        for path in paths:
            loaded, loaded_titles = load_detector_file(path)
            detectors.extend(loaded)
            titles.update(loaded_titles)
        registry = cls(detectors, titles)
        if not len(registry):
            raise ConfigurationError("Detector definitions contain no detectors.")
        LOGGER.info("Loaded %s detectors across %s categories.", len(registry), len(registry.categories()))
        return registry

    def __len__(self) -> int:
        return len(self._detectors)

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors.values())

    def get(self, detector_id: str) -> Detector:
        try:
            return self._detectors[detector_id]
        except KeyError:
            raise KeyError(f"Unknown detector {detector_id!r}") from None

    def by_category(self, category: str) -> List[Detector]:
        code = category.upper()
        return [d for d in self._detectors.values() if d.category == code]

    def categories(self) -> List[str]:
        """Category codes present, in report order then alphabetically."""
        present = {d.category for d in self._detectors.values()}
        known = [code for code in CATEGORY_TITLES if code in present]
        return known + sorted(present - set(known))

    def category_title(self, code: str) -> str:
        return self._titles.get(code, code)

    def scope_categories(self, scope: str) -> List[str]:
        if scope not in SCOPES:
            raise KeyError(f"Unknown scope {scope!r}")
        allowed = SCOPES[scope]
        return [code for code in self.categories() if allowed is None or code in allowed]

    def for_scope(self, scope: str, stack: Optional[Iterable[str]] = None) -> List[Detector]:
        """Detectors selected by a scope and, optionally, a confirmed tech stack."""
        categories = set(self.scope_categories(scope))
        stack_tags = {tag.lower() for tag in stack} if stack else set()
        selected: List[Detector] = []
        for detector in self._detectors.values():
            if detector.category not in categories:
                continue
            if scope == "quick" and not detector.is_quick_win:
                continue
            if stack_tags and detector.stacks and not stack_tags.intersection(detector.stacks):
                continue
            selected.append(detector)
        return selected
