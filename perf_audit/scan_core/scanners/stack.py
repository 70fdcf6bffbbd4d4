"""Tech stack detection from project marker files."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from perf_audit.scan_core.config import SKIP_DIRECTORIES

LOGGER = logging.getLogger("perf-audit")

# Marker file -> stack tag
MARKER_FILES: Dict[str, str] = {
    "package.json": "node",
    "requirements.txt": "python",
    "pyproject.toml": "python",
    "setup.py": "python",
    "Pipfile": "python",
    "manage.py": "django",
    "go.mod": "go",
    "Gemfile": "ruby",
    "pom.xml": "java",
    "build.gradle": "java",
    "Cargo.toml": "rust",
    "composer.json": "php",
}

# package.json dependency -> stack tag
NODE_DEPENDENCY_TAGS: Dict[str, str] = {
    "react": "react",
    "vue": "vue",
    "next": "next",
    "nuxt": "vue",
    "@angular/core": "angular",
    "svelte": "svelte",
    "webpack": "webpack",
    "vite": "vite",
    "express": "express",
    "prisma": "sql",
    "@prisma/client": "sql",
    "sequelize": "sql",
    "typeorm": "sql",
    "mongoose": "mongodb",
}

# requirements.txt package -> stack tag
PYTHON_DEPENDENCY_TAGS: Dict[str, str] = {
    "django": "django",
    "flask": "flask",
    "fastapi": "fastapi",
    "sqlalchemy": "sql",
    "psycopg2": "sql",
    "psycopg2-binary": "sql",
    "pymongo": "mongodb",
}

SQL_SUFFIXES = {".sql"}


def _node_tags(manifest: Path) -> Set[str]:
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        LOGGER.warning("Failed to read JSON from %s: %s", manifest, exc)
        return set()
    if not isinstance(data, dict):
        return set()
    tags: Set[str] = set()
    for block in ("dependencies", "devDependencies"):
        deps = data.get(block)
        if not isinstance(deps, dict):
            continue
        for name in deps:
            tag = NODE_DEPENDENCY_TAGS.get(name)
            if tag:
                tags.add(tag)
    return tags


def _python_tags(requirements: Path) -> Set[str]:
    try:
        lines = requirements.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        LOGGER.warning("Unable to read %s: %s", requirements, exc)
        return set()
    tags: Set[str] = set()
    for line in lines:
        name = line.split("#", 1)[0].strip()
        for separator in ("==", ">=", "<=", "~=", "[", ";", "<", ">"):
            name = name.split(separator, 1)[0]
        tag = PYTHON_DEPENDENCY_TAGS.get(name.strip().lower())
        if tag:
            tags.add(tag)
    return tags


def detect_stack(roots: Iterable[Path], max_depth: int = 2) -> List[str]:
    """Return sorted stack tags inferred from marker files near each root."""
    tags: Set[str] = set()
    for root in roots:
        if root.is_file():
            root = root.parent
        for path in _shallow_files(root, max_depth):
            tag = MARKER_FILES.get(path.name)
            if tag:
                tags.add(tag)
            if path.name == "package.json":
                tags.update(_node_tags(path))
            elif path.name == "requirements.txt":
                tags.update(_python_tags(path))
            elif path.suffix in SQL_SUFFIXES:
                tags.add("sql")
    return sorted(tags)


def _shallow_files(root: Path, max_depth: int, depth: int = 0) -> Iterable[Path]:
    try:
        entries = sorted(root.iterdir())
    except OSError as exc:
        LOGGER.debug("Unable to list %s: %s", root, exc)
        return
    for entry in entries:
        if entry.is_dir():
            if depth < max_depth and entry.name not in SKIP_DIRECTORIES:
                yield from _shallow_files(entry, max_depth, depth + 1)
        else:
            yield entry


def parse_stack(raw: Optional[str]) -> List[str]:
    """Parse a comma separated stack override such as ``"react, node"``."""
    if not raw:
        return []
    return sorted({part.strip().lower() for part in raw.split(",") if part.strip()})
