"""Configuration constants and tunable scan settings."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from perf_audit.scan_core.errors import ConfigurationError
from perf_audit.scan_core.models import Impact

LOGGER = logging.getLogger("perf-audit")

# Project paths
PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PACKAGE_ROOT / "data"
DEFAULT_DETECTORS_FILE = DATA_DIR / "detectors.json"
DEFAULT_TEMPLATE_FILE = DATA_DIR / "report_template.md"
ENV_DETECTORS_PATH = "PERF_AUDIT_DETECTORS"
ENV_CONFIG_PATH = "PERF_AUDIT_CONFIG"
PROJECT_CONFIG_NAME = ".perf-audit.json"
DEFAULT_REPORT_DIR = "performance-reports"

# Detector categories in report order
CATEGORY_TITLES: Dict[str, str] = {
    "ALGO": "Algorithm Complexity",
    "MEMO": "Memory",
    "DBQL": "Database",
    "FRNT": "Frontend",
    "NETW": "Network",
    "ASYN": "Async",
    "BNDL": "Build & Bundle",
}

ALL_CATEGORIES: FrozenSet[str] = frozenset(CATEGORY_TITLES)

# None means every category; "quick" is further narrowed to quick-win detectors
SCOPES: Dict[str, Optional[FrozenSet[str]]] = {
    "full": None,
    "quick": None,
    "frontend": frozenset({"FRNT", "BNDL"}),
    "backend": frozenset({"ALGO", "MEMO", "DBQL", "NETW", "ASYN"}),
    "database": frozenset({"DBQL"}),
    "memory": frozenset({"MEMO"}),
    "bundle": frozenset({"BNDL"}),
    "runtime": frozenset({"ALGO", "MEMO", "ASYN"}),
    "network": frozenset({"NETW"}),
}
DEFAULT_SCOPE = "full"

# Directories that never hold first-party source
SKIP_DIRECTORIES: FrozenSet[str] = frozenset({
    "node_modules",
    ".git",
    ".hg",
    ".svn",
    "dist",
    "build",
    ".next",
    ".nuxt",
    "coverage",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    "vendor",
    "target",
    DEFAULT_REPORT_DIR,
})

# Maximum file size for pattern scanning (1 MB)
MAX_PATTERN_SCAN_SIZE = 1 * 1024 * 1024

# Findings this many lines apart in the same file and category are merged
DEFAULT_DEDUP_WINDOW = 3

DEFAULT_PENALTY_WEIGHTS: Dict[Impact, int] = {
    Impact.CRITICAL: 25,
    Impact.HIGH: 10,
    Impact.MEDIUM: 5,
    Impact.LOW: 2,
}

# (minimum score, label), checked top to bottom
DEFAULT_STATUS_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (90, "Excellent"),
    (75, "Good"),
    (50, "Fair"),
    (25, "Poor"),
    (0, "Critical"),
)

DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class ScanSettings:
    """Tunable defaults for a scan; overridable from a JSON file or the CLI."""

    max_file_size: int = MAX_PATTERN_SCAN_SIZE
    dedup_window: int = DEFAULT_DEDUP_WINDOW
    penalty_weights: Dict[Impact, int] = field(default_factory=lambda: dict(DEFAULT_PENALTY_WEIGHTS))
    status_thresholds: Tuple[Tuple[int, str], ...] = DEFAULT_STATUS_THRESHOLDS
    workers: Optional[int] = None
    queue_size: int = DEFAULT_QUEUE_SIZE
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    skip_minified: bool = True

    def with_overrides(self, **changes: object) -> "ScanSettings":
        """Return a copy with every non-None keyword applied."""
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied) if applied else self


VALID_SETTINGS_KEYS = {f.name for f in fields(ScanSettings)}


def _require_int(key: str, value: object, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f"Setting '{key}' must be an integer >= {minimum} (got {value!r}).")
    return value


def _require_str_list(key: str, value: object) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"Setting '{key}' must be a list of strings.")
    return tuple(value)


def parse_penalty_weights(raw: object) -> Dict[Impact, int]:
    """Validate a mapping of impact name to penalty; weights must be strictly ordered."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Setting 'penalty_weights' must be an object.")
    weights = dict(DEFAULT_PENALTY_WEIGHTS)
    for name, value in raw.items():
        try:
            impact = Impact.parse(name)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        weights[impact] = _require_int(f"penalty_weights.{name}", value)
    ordered = [weights[impact] for impact in sorted(Impact)]
    if any(lower >= higher for lower, higher in zip(ordered, ordered[1:])):
        raise ConfigurationError(
            "Penalty weights must be strictly ordered: Critical > High > Medium > Low."
        )
    return weights


def parse_status_thresholds(raw: object) -> Tuple[Tuple[int, str], ...]:
    if not isinstance(raw, dict) or not raw:
        raise ConfigurationError("Setting 'status_thresholds' must be a non-empty object of label -> minimum score.")
    pairs: List[Tuple[int, str]] = []
    for label, minimum in raw.items():
        pairs.append((_require_int(f"status_thresholds.{label}", minimum), str(label)))
    pairs.sort(key=lambda pair: pair[0], reverse=True)
    if pairs[-1][0] != 0:
        raise ConfigurationError("Setting 'status_thresholds' must include a label with minimum score 0.")
    return tuple(pairs)


def load_settings(path: Path, base: Optional[ScanSettings] = None) -> ScanSettings:
    """Load scan settings from a JSON object, validating every key."""
    config_path = path.expanduser().resolve()
    if not config_path.is_file():
        raise ConfigurationError(f"Settings file not found: {config_path}")

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in settings file {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Unable to read settings file {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {config_path} must contain a JSON object.")

    unknown_keys = set(data) - VALID_SETTINGS_KEYS
    if unknown_keys:
        raise ConfigurationError(f"Unknown keys {sorted(unknown_keys)} in settings file {config_path}")

    changes: Dict[str, object] = {}
    if "max_file_size" in data:
        changes["max_file_size"] = _require_int("max_file_size", data["max_file_size"], minimum=1)
    if "dedup_window" in data:
        changes["dedup_window"] = _require_int("dedup_window", data["dedup_window"])
    if "penalty_weights" in data:
        changes["penalty_weights"] = parse_penalty_weights(data["penalty_weights"])
    if "status_thresholds" in data:
        changes["status_thresholds"] = parse_status_thresholds(data["status_thresholds"])
    if "workers" in data and data["workers"] is not None:
        changes["workers"] = _require_int("workers", data["workers"], minimum=1)
    if "queue_size" in data:
        changes["queue_size"] = _require_int("queue_size", data["queue_size"], minimum=1)
    if "include" in data:
        changes["include"] = _require_str_list("include", data["include"])
    if "exclude" in data:
        changes["exclude"] = _require_str_list("exclude", data["exclude"])
    if "skip_minified" in data:
        if not isinstance(data["skip_minified"], bool):
            raise ConfigurationError("Setting 'skip_minified' must be a boolean.")
        changes["skip_minified"] = data["skip_minified"]

    LOGGER.debug("Loaded %s settings from %s", len(changes), config_path)
    return replace(base or ScanSettings(), **changes)
