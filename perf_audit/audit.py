#!/usr/bin/env python3
"""Detect the tech stack, scan, and offer quick-win fixes in one run."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from perf_audit import scan
from perf_audit.scan_core.errors import PerfAuditError
from perf_audit.scan_core.fixes import apply_fixes, plan_fixes
from perf_audit.scan_core.models import ScanResult
from perf_audit.scan_core.prompts import Confirmer, auto_confirm, console_confirm
from perf_audit.scan_core.registry import RuleRegistry
from perf_audit.scan_core.scanners.stack import detect_stack, parse_stack
from perf_audit.scan_core.utils import resolve_relative_path

LOGGER = logging.getLogger("perf-audit")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Interactive performance audit: confirm the stack, scan, apply quick wins."
    )
    scan.add_scan_arguments(parser)
    parser.add_argument("--yes", "-y", action="store_true", help="Accept every prompt without asking.")
    parser.add_argument("--no-fix", action="store_true", help="Report quick wins but never modify files.")
    return parser.parse_args(argv)


def confirm_stack(targets: Sequence[Path], confirm: Confirmer) -> List[str]:
    """Detected stack, as confirmed or edited by the user; empty disables stack filtering."""
    detected = detect_stack(targets)
    suggestion = ", ".join(detected) if detected else "none"
    answer = confirm("Is this the project's tech stack?", suggestion)
    if answer is True:
        return detected
    if answer is False:
        print("[stack] Scanning without stack filtering.")
        return []
    edited = parse_stack(str(answer))
    if edited == ["none"]:
        return []
    return edited


def offer_fixes(result: ScanResult, registry: RuleRegistry, targets: Sequence[Path], confirm: Confirmer) -> List[str]:
    plan = plan_fixes(result.quick_wins, registry)
    if not plan:
        print("[fix] No automatic fixes available for the quick wins found.")
        return []

    root = targets[0] if len(targets) == 1 and targets[0].is_dir() else None
    print(f"[fix] {len(plan)} automatic fix(es) available:")
    for fix in plan:
        print(f"  {resolve_relative_path(fix.path, root)}:{fix.line} ({fix.detector_id})")
        print(f"    - {fix.original.strip()}")
        print(f"    + {fix.updated.strip()}")

    if confirm(f"Apply {len(plan)} quick-win fix(es)?", None) is not True:
        print("[fix] Left files unchanged.")
        return []
    changed = apply_fixes(plan)
    print(f"[fix] Updated {len(changed)} file(s).")
    return changed


def run(argv: Optional[Sequence[str]] = None, confirm: Optional[Confirmer] = None) -> int:
    args = parse_args(argv)
    if confirm is None:
        confirm = auto_confirm if args.yes else console_confirm

    scan.configure_terminal(args.no_color, args.no_emoji or args.output_format == "json")
    log_dir = Path(args.log_dir).expanduser().resolve()
    log_path = scan.setup_logging(log_dir, args.log_level)
    LOGGER.info("Detailed execution log: %s", log_path)

    try:
        targets, registry, settings, template = scan.prepare(args)
    except PerfAuditError as exc:
        LOGGER.error("%s", exc)
        return 2

    stack = confirm_stack(targets, confirm)
    print(f"[stack] Using: {', '.join(stack) if stack else 'all detectors'}")

    status, result = scan.execute(args, targets, registry, settings, template, stack=stack)
    if result is None or status == 2:
        return status

    if result.quick_wins and not args.no_fix:
        offer_fixes(result, registry, targets, confirm)

    outcome = "clean" if status == 0 else "issues detected"
    print(f"[audit] Completed with status '{outcome}'. Review logs in {log_dir} for details.")
    return status


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
