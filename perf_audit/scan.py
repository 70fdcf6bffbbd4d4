#!/usr/bin/env python3
"""Pattern-based performance scanner.

Walks the given project directories, runs the detector catalogue for the
selected scope against every candidate source file, scores each category and
writes a timestamped report under ``performance-reports/``.
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from perf_audit.scan_core.config import DEFAULT_REPORT_DIR, DEFAULT_SCOPE, SCOPES, ScanSettings, load_settings
from perf_audit.scan_core.errors import ConfigurationError, PerfAuditError, RenderError, ScanCancelled, UsageError
from perf_audit.scan_core.models import ScanResult
from perf_audit.scan_core.pipeline import ScanPipeline
from perf_audit.scan_core.registry import RuleRegistry
from perf_audit.scan_core.reporting.compact import print_compact_report
from perf_audit.scan_core.reporting.formatters import Colors, ColoredFormatter, Emojis
from perf_audit.scan_core.reporting.json_output import print_json_output
from perf_audit.scan_core.reporting.markdown import load_template, write_report
from perf_audit.scan_core.reporting.structured import print_structured_report
from perf_audit.scan_core.scanner import collect_targets
from perf_audit.scan_core.utils import resolve_detectors_paths, resolve_settings_path

LOGGER = logging.getLogger("perf-audit")

OUTPUT_FORMATS = ("compact", "structured", "json")


def setup_logging(log_dir: Path, level: str) -> Path:
    """Initialise console and file logging for the current execution."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"perf_audit_scan_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    LOGGER.handlers.clear()
    LOGGER.setLevel(numeric_level)
    LOGGER.propagate = False

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    LOGGER.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(ColoredFormatter("%(levelname)s: %(message)s"))
    LOGGER.addHandler(console_handler)

    return log_path


def configure_terminal(no_color: bool, no_emoji: bool) -> None:
    if no_color or not Colors.supports_color():
        Colors.disable()
    else:
        Colors.enable()
    if no_emoji or not Emojis.supports_emoji():
        Emojis.disable()
    else:
        Emojis.enable()


def add_scan_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by the scanner and the interactive audit."""
    parser.add_argument(
        "paths",
        nargs="*",
        default=["."],
        help="Project directories or files to scan (default: current directory).",
    )
    parser.add_argument(
        "--scope",
        default=DEFAULT_SCOPE,
        choices=list(SCOPES),
        help=f"Analysis scope (default: {DEFAULT_SCOPE}).",
    )
    parser.add_argument(
        "--detectors",
        action="append",
        help="Detector definition JSON; repeatable. Overrides PERF_AUDIT_DETECTORS and the packaged catalogue.",
    )
    parser.add_argument(
        "--config",
        help="Settings JSON (default: $PERF_AUDIT_CONFIG or .perf-audit.json in the first path).",
    )
    parser.add_argument(
        "--format",
        default="compact",
        choices=OUTPUT_FORMATS,
        dest="output_format",
        help="Terminal output format (default: compact).",
    )
    parser.add_argument(
        "--report-dir",
        default=DEFAULT_REPORT_DIR,
        help=f"Directory for the written report (default: {DEFAULT_REPORT_DIR}).",
    )
    parser.add_argument("--no-report", action="store_true", help="Do not write a report file.")
    parser.add_argument("--template", help="Markdown report template overriding the packaged one.")
    parser.add_argument("--workers", type=int, help="Matcher threads (default: CPU count).")
    parser.add_argument("--max-file-size", type=int, help="Skip files larger than this many bytes (default: 1 MiB).")
    parser.add_argument("--dedup-window", type=int, help="Merge findings this many lines apart (default: 3).")
    parser.add_argument("--include", action="append", help="Glob of files to scan; repeatable.")
    parser.add_argument("--exclude", action="append", help="Glob of files to skip; repeatable.")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colours.")
    parser.add_argument("--no-emoji", action="store_true", help="Disable emoji in terminal output.")
    parser.add_argument(
        "--log-dir",
        default="logs",
        help="Directory where timestamped scan logs are written (default: logs).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console/log verbosity (default: INFO).",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan source trees for common performance anti-patterns.")
    add_scan_arguments(parser)
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, targets: Sequence[Path]) -> ScanSettings:
    """Defaults, then the settings file, then command-line flags."""
    settings = ScanSettings()
    settings_path = resolve_settings_path(args.config, targets)
    if settings_path is not None:
        LOGGER.info("Loading settings from %s", settings_path)
        settings = load_settings(settings_path, base=settings)

    for name in ("workers", "max_file_size"):
        value = getattr(args, name)
        if value is not None and value < 1:
            raise UsageError(f"--{name.replace('_', '-')} must be at least 1 (got {value}).")
    if args.dedup_window is not None and args.dedup_window < 0:
        raise UsageError(f"--dedup-window must not be negative (got {args.dedup_window}).")

    exclude = tuple(args.exclude) if args.exclude else settings.exclude
    report_name = Path(args.report_dir).name
    if report_name and report_name != DEFAULT_REPORT_DIR:
        exclude = exclude + (f"{report_name}/*", f"*/{report_name}/*")

    return settings.with_overrides(
        workers=args.workers,
        max_file_size=args.max_file_size,
        dedup_window=args.dedup_window,
        include=tuple(args.include) if args.include else None,
        exclude=exclude,
    )


def load_registry(cli_paths: Optional[Sequence[str]]) -> RuleRegistry:
    paths = resolve_detectors_paths(cli_paths)
    if not paths:
        raise ConfigurationError("Unable to locate detector definitions. Provide --detectors or set PERF_AUDIT_DETECTORS.")
    return RuleRegistry.from_files(paths)


def prepare(args: argparse.Namespace) -> Tuple[List[Path], RuleRegistry, ScanSettings, Optional[str]]:
    """Resolve targets, registry, settings and template; raises before any scanning starts."""
    targets = collect_targets(args.paths)
    if not targets:
        raise UsageError("No valid targets to scan.")
    registry = load_registry(args.detectors)
    settings = build_settings(args, targets)
    template = load_template(Path(args.template)) if args.template else None
    return targets, registry, settings, template


def emit(result: ScanResult, output_format: str, targets: Sequence[Path]) -> None:
    root = targets[0] if len(targets) == 1 and targets[0].is_dir() else None
    if output_format == "json":
        print_json_output(result)
    elif output_format == "structured":
        print_structured_report(result, root=root)
    else:
        print_compact_report(result, root=root)


def execute(
    args: argparse.Namespace,
    targets: Sequence[Path],
    registry: RuleRegistry,
    settings: ScanSettings,
    template: Optional[str] = None,
    stack: Sequence[str] = (),
) -> Tuple[int, Optional[ScanResult]]:
    """Run the pipeline, print the result and write the report.

    Returns the exit status and the result; the result is still returned when
    only the report could not be rendered.
    """
    pipeline = ScanPipeline(registry, scope=args.scope, settings=settings, stack=stack)
    report_paths: List[Path] = []

    def render(result: ScanResult) -> None:
        if args.no_report:
            return
        fmt = "json" if args.output_format == "json" else "md"
        report_paths.append(write_report(result, Path(args.report_dir).expanduser(), template, fmt=fmt))

    try:
        result = pipeline.run(targets, renderer=render)
    except RenderError as exc:
        LOGGER.error("Report rendering failed: %s", exc)
        if pipeline.result is not None:
            emit(pipeline.result, args.output_format, targets)
        return 2, pipeline.result
    except (ScanCancelled, KeyboardInterrupt):
        LOGGER.error("Scan cancelled; no report produced.")
        return 2, None

    emit(result, args.output_format, targets)
    for path in report_paths:
        LOGGER.info("%s Report: %s", Emojis.get(Emojis.FILE), path)
    return (1 if result.findings else 0), result


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    configure_terminal(args.no_color, args.no_emoji or args.output_format == "json")
    log_dir = Path(args.log_dir).expanduser().resolve()
    log_path = setup_logging(log_dir, args.log_level)
    LOGGER.info("Detailed execution log: %s", log_path)

    try:
        targets, registry, settings, template = prepare(args)
    except PerfAuditError as exc:
        LOGGER.error("%s", exc)
        return 2

    status, _ = execute(args, targets, registry, settings, template)
    if status == 1:
        LOGGER.warning("Findings recorded in %s", log_path)
    elif status == 0:
        LOGGER.info("Scan completed successfully. Log retained at %s", log_path)
    return status


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
