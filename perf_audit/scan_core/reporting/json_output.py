"""JSON output formatting."""
from __future__ import annotations

import json

from perf_audit.scan_core.models import ScanResult


def render_json(result: ScanResult) -> str:
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False) + "\n"


def print_json_output(result: ScanResult) -> None:
    """Print the scan result as JSON."""
    print(render_json(result), end="")
