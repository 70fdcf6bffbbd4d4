"""Utility functions for scanning operations."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from perf_audit.scan_core.config import (
    DEFAULT_DETECTORS_FILE,
    ENV_CONFIG_PATH,
    ENV_DETECTORS_PATH,
    PROJECT_CONFIG_NAME,
)

LOGGER = logging.getLogger("perf-audit")


def _first_existing(candidates: Sequence[Path], kind: str) -> Optional[Path]:
    for candidate in candidates:
        candidate_path = candidate.expanduser()
        if not candidate_path.is_absolute():
            candidate_path = candidate_path.resolve()
        if candidate_path.is_file():
            LOGGER.debug("Using %s at %s", kind, candidate_path)
            return candidate_path
        LOGGER.debug("%s candidate %s not found", kind.capitalize(), candidate_path)
    return None


def resolve_detectors_paths(cli_paths: Optional[Sequence[str]]) -> List[Path]:
    """Find the detector definition files to use for this run.

    Explicit CLI paths win and must all exist; otherwise the environment
    variable is tried before the packaged default.
    """
    if cli_paths:
        return [Path(raw).expanduser().resolve() for raw in cli_paths]
    candidates: List[Path] = []
    env_value = os.environ.get(ENV_DETECTORS_PATH)
    if env_value:
        candidates.append(Path(env_value))
    candidates.append(DEFAULT_DETECTORS_FILE)
    found = _first_existing(candidates, "detector definitions")
    return [found] if found else []


def resolve_settings_path(cli_path: Optional[str], roots: Sequence[Path]) -> Optional[Path]:
    """Find an optional settings file: CLI flag, environment, then the first scan root."""
    if cli_path:
        return Path(cli_path).expanduser().resolve()
    candidates: List[Path] = []
    env_value = os.environ.get(ENV_CONFIG_PATH)
    if env_value:
        candidates.append(Path(env_value))
    if roots:
        candidates.append(roots[0] / PROJECT_CONFIG_NAME)
    return _first_existing(candidates, "settings file")


def resolve_relative_path(path: str, root: Optional[Path]) -> str:
    """Convert absolute path to relative path if root provided."""
    if not root:
        return path
    try:
        return Path(path).resolve().relative_to(root).as_posix()
    except ValueError:
        return path
