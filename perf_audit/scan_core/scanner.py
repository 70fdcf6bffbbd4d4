"""Filesystem traversal for collecting candidate source files."""
from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from perf_audit.scan_core.config import SKIP_DIRECTORIES
from perf_audit.scan_core.models import IOWarning

LOGGER = logging.getLogger("perf-audit")


def safe_walk(
    root: Path,
    skip_dirs: Iterable[str] = SKIP_DIRECTORIES,
    warnings: Optional[List[IOWarning]] = None,
) -> Iterator[Tuple[Path, List[str], List[str]]]:
    """Safely walk directory tree with error handling."""
    skipped = set(skip_dirs)

    def onerror(exc: OSError) -> None:
        location = exc.filename or str(root)
        LOGGER.warning("Unable to access directory %s: %s", location, exc)
        if warnings is not None:
            warnings.append(IOWarning(path=str(location), message=f"unreadable directory: {exc.strerror or exc}"))

    try:
        for dirpath, dirnames, filenames in os.walk(
            root,
            topdown=True,
            onerror=onerror,
            followlinks=False,
        ):
            dirnames[:] = sorted(d for d in dirnames if d not in skipped)
            yield Path(dirpath), dirnames, sorted(filenames)
    except (OSError, InterruptedError) as exc:  # noqa: PERF203 - want explicit handling
        LOGGER.warning("Traversal aborted in %s: %s", root, exc)
        if warnings is not None:
            warnings.append(IOWarning(path=str(root), message=f"traversal aborted: {exc}"))


def collect_targets(paths: Sequence[str]) -> List[Path]:
    """Collect and validate scan target paths."""
    resolved: List[Path] = []
    for raw in paths:
        path = Path(raw).expanduser().resolve()
        if not path.exists():
            LOGGER.warning("Path %s does not exist; skipping.", path)
            continue
        resolved.append(path)
    return resolved


def matches_any(name: str, relative: str, globs: Iterable[str]) -> bool:
    """True if the file name or its root-relative path matches one of the globs."""
    return any(fnmatch.fnmatch(name, glob) or fnmatch.fnmatch(relative, glob) for glob in globs)


class FileWalker:
    """Lazy, restartable sequence of candidate files under one or more roots.

    Every call to ``iter()`` starts a fresh traversal, so a walker can be
    reused across scans. Directory errors are appended to ``warnings``.
    """

    def __init__(
        self,
        roots: Sequence[Path],
        include: Sequence[str] = (),
        exclude: Sequence[str] = (),
        skip_dirs: Iterable[str] = SKIP_DIRECTORIES,
    ) -> None:
        self.roots = list(roots)
        self.include = tuple(include)
        self.exclude = tuple(exclude)
        self.skip_dirs: Set[str] = set(skip_dirs)
        self.warnings: List[IOWarning] = []

    def __iter__(self) -> Iterator[Path]:
        for _root, file_path in self.entries():
            yield file_path

    def entries(self) -> Iterator[Tuple[Path, Path]]:
        """Yield ``(root, file)`` pairs; single-file roots are their own root's parent."""
        self.warnings = []
        for root in self.roots:
            if root.is_file():
                if self._accepts(root.name, root.name):
                    yield root.parent, root
                continue
            for current_dir, _dirnames, filenames in safe_walk(root, self.skip_dirs, self.warnings):
                for filename in filenames:
                    file_path = current_dir / filename
                    relative = file_path.relative_to(root).as_posix()
                    if self._accepts(filename, relative):
                        yield root, file_path

    def _accepts(self, name: str, relative: str) -> bool:
        if self.include and not matches_any(name, relative, self.include):
            return False
        if self.exclude and matches_any(name, relative, self.exclude):
            return False
        return True
