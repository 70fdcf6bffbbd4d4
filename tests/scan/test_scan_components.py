import json
import re
from pathlib import Path

import pytest

from perf_audit.scan_core.config import ENV_CONFIG_PATH, PROJECT_CONFIG_NAME, ScanSettings, load_settings
from perf_audit.scan_core.errors import ConfigurationError
from perf_audit.scan_core.findings import build_finding, override_applies
from perf_audit.scan_core.models import Effort, Impact, RawMatch
from perf_audit.scan_core.registry import parse_detector
from perf_audit.scan_core.scanner import FileWalker, collect_targets
from perf_audit.scan_core.scanners.patterns import is_minified, match_content, scan_file_for_patterns
from perf_audit.scan_core.scanners.stack import detect_stack, parse_stack
from perf_audit.scan_core.utils import resolve_settings_path


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def _detector(**overrides):
    item = {
        "id": "TEST-001",
        "category": "ASYN",
        "title": "Blocking sleep",
        "patterns": [r"\btime\.sleep\("],
        "globs": ["*.py"],
        "impact": "medium",
        "effort": "low",
        "guidance": "Use asyncio.sleep.",
    }
    item.update(overrides)
    return parse_detector(item)


def test_walker_skips_vendor_directories_and_is_restartable(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "app.py", "x = 1\n")
    _write(tmp_path / "src" / "view.js", "let x = 1;\n")
    _write(tmp_path / "node_modules" / "dep" / "index.js", "module.exports = {};\n")
    _write(tmp_path / ".git" / "config.py", "x = 1\n")
    _write(tmp_path / "performance-reports" / "old.py", "x = 1\n")

    walker = FileWalker([tmp_path])
    first = [p.relative_to(tmp_path).as_posix() for p in walker]
    second = [p.relative_to(tmp_path).as_posix() for p in walker]

    assert first == ["src/app.py", "src/view.js"]
    assert second == first


def test_walker_include_and_exclude_globs(tmp_path: Path) -> None:
    _write(tmp_path / "app.py", "x = 1\n")
    _write(tmp_path / "tests" / "test_app.py", "x = 1\n")
    _write(tmp_path / "README.md", "# readme\n")

    walker = FileWalker([tmp_path], include=["*.py"], exclude=["tests/*"])
    assert [p.name for p in walker] == ["app.py"]


def test_walker_accepts_single_file_roots(tmp_path: Path) -> None:
    target = tmp_path / "job.py"
    _write(target, "x = 1\n")

    assert list(FileWalker([target]).entries()) == [(tmp_path, target)]


def test_collect_targets_drops_missing_paths(tmp_path: Path) -> None:
    assert collect_targets([str(tmp_path), str(tmp_path / "missing")]) == [tmp_path.resolve()]


def test_match_content_reports_one_based_lines() -> None:
    detector = _detector()
    content = "import time\n\n\ndef wait():\n    time.sleep(5)\n"

    matches = match_content("/p/job.py", content, [detector])

    assert [(m.line, m.source_line) for m in matches] == [(5, "    time.sleep(5)")]
    assert matches[0].text == "time.sleep("


def test_match_content_keeps_every_detector_on_a_line() -> None:
    first = _detector()
    second = _detector(id="TEST-002", category="MEMO", patterns=[r"sleep"])

    matches = match_content("/p/job.py", "time.sleep(1)\n", [first, second])

    assert sorted(m.detector_id for m in matches) == ["TEST-001", "TEST-002"]


def test_scan_file_respects_globs_size_and_minification(tmp_path: Path) -> None:
    detector = _detector(globs=["*.py", "*.js"])

    other = tmp_path / "notes.txt"
    _write(other, "time.sleep(1)\n")
    assert scan_file_for_patterns(other, [detector]) == ([], [])

    large = tmp_path / "large.py"
    _write(large, "time.sleep(1)\n" * 100)
    matches, warnings = scan_file_for_patterns(large, [detector], max_size=64)
    assert matches == []
    assert len(warnings) == 1 and "exceeds" in warnings[0].message

    minified = tmp_path / "bundle.js"
    _write(minified, "time.sleep(1);" + "a" * 500)
    assert is_minified(minified.read_text(encoding="utf-8"))
    matches, warnings = scan_file_for_patterns(minified, [detector])
    assert matches == []
    assert warnings[0].message == "skipped: minified content"
    matches, warnings = scan_file_for_patterns(minified, [detector], skip_minified=False)
    assert len(matches) == 1 and warnings == []


def test_scan_file_reports_unreadable_file(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "locked.py"
    _write(target, "time.sleep(1)\n")

    def deny(self, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "read_text", deny)
    matches, warnings = scan_file_for_patterns(target, [_detector()])

    assert matches == []
    assert [w.path for w in warnings] == [str(target)]
    assert "unreadable" in warnings[0].message


def _raw(text: str, groups=()) -> RawMatch:
    return RawMatch(detector_id="BNDL-004", path="/p/webpack.config.js", line=3, text=text, source_line=f"  {text},", groups=groups)


def test_build_finding_applies_first_matching_override() -> None:
    detector = parse_detector(
        {
            "id": "BNDL-004",
            "category": "BNDL",
            "title": "Large asset size budget",
            "patterns": [r"maxAssetSize:\s*(\d+)"],
            "globs": ["*.js"],
            "impact": "low",
            "effort": "low",
            "guidance": "Lower the budget.",
            "overrides": [
                {"min_value": 1000000, "impact": "high"},
                {"min_value": 500000, "impact": "medium", "effort": "medium"},
            ],
        }
    )

    huge = build_finding(_raw("maxAssetSize: 2000000", ("2000000",)), detector)
    mid = build_finding(_raw("maxAssetSize: 600000", ("600000",)), detector)
    small = build_finding(_raw("maxAssetSize: 250000", ("250000",)), detector)

    assert (huge.impact, huge.effort) == (Impact.HIGH, Effort.LOW)
    assert (mid.impact, mid.effort) == (Impact.MEDIUM, Effort.MEDIUM)
    assert (small.impact, small.effort) == (Impact.LOW, Effort.LOW)
    assert huge.is_quick_win
    assert huge.description == "Large asset size budget: `maxAssetSize: 2000000,`"
    assert huge.guidance == ("Lower the budget.",)
    assert (huge.line, huge.end_line) == (3, 3)


def test_override_contains_condition() -> None:
    detector = _detector(overrides=[{"contains": r"sleep\(\d{2,}", "impact": "high"}])
    override = detector.overrides[0]

    assert override_applies(override, RawMatch("TEST-001", "/p/a.py", 1, "time.sleep(30)", "time.sleep(30)"))
    assert not override_applies(override, RawMatch("TEST-001", "/p/a.py", 1, "time.sleep(1)", "time.sleep(1)"))


def test_build_finding_trims_long_snippets() -> None:
    long_line = "time.sleep(1)  # " + "x" * 300
    finding = build_finding(RawMatch("TEST-001", "/p/a.py", 1, "time.sleep(", long_line), _detector())

    assert len(finding.snippet) == 160
    assert finding.snippet.endswith("...")


def test_detect_stack_from_marker_files(tmp_path: Path) -> None:
    _write_json(tmp_path / "web" / "package.json", {"dependencies": {"react": "^18"}, "devDependencies": {"webpack": "5"}})
    _write(tmp_path / "api" / "requirements.txt", "Django==4.2\npsycopg2-binary>=2.9\n")
    _write(tmp_path / "db" / "schema.sql", "create table t (id int);\n")
    _write_json(tmp_path / "node_modules" / "vue" / "package.json", {"dependencies": {"vue": "3"}})

    assert detect_stack([tmp_path]) == ["django", "node", "python", "react", "sql", "webpack"]


def test_parse_stack_normalises_input() -> None:
    assert parse_stack(" React, node ,,react") == ["node", "react"]
    assert parse_stack("") == []


def test_load_settings_applies_and_validates(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    _write_json(
        path,
        {
            "dedup_window": 5,
            "penalty_weights": {"critical": 30},
            "exclude": ["legacy/*"],
            "status_thresholds": {"Healthy": 80, "Unhealthy": 0},
        },
    )
    settings = load_settings(path)

    assert settings.dedup_window == 5
    assert settings.penalty_weights[Impact.CRITICAL] == 30
    assert settings.penalty_weights[Impact.LOW] == 2
    assert settings.exclude == ("legacy/*",)
    assert settings.status_thresholds == ((80, "Healthy"), (0, "Unhealthy"))


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"dedup_windw": 2}, "Unknown keys"),
        ({"penalty_weights": {"low": 50}}, "strictly ordered"),
        ({"penalty_weights": {"severe": 5}}, "Unknown impact level"),
        ({"max_file_size": 0}, "max_file_size"),
        ({"include": "*.py"}, "list of strings"),
        ({"status_thresholds": {"Good": 50}}, "minimum score 0"),
    ],
)
def test_load_settings_rejects_invalid_values(tmp_path: Path, payload: dict, message: str) -> None:
    path = tmp_path / "settings.json"
    _write_json(path, payload)

    with pytest.raises(ConfigurationError, match=re.escape(message)):
        load_settings(path)


def test_settings_overrides_ignore_unset_values() -> None:
    settings = ScanSettings().with_overrides(workers=None, dedup_window=1)
    assert settings.workers is None
    assert settings.dedup_window == 1


def test_settings_path_resolution(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv(ENV_CONFIG_PATH, raising=False)
    assert resolve_settings_path(None, [tmp_path]) is None

    project_config = tmp_path / PROJECT_CONFIG_NAME
    _write_json(project_config, {})
    assert resolve_settings_path(None, [tmp_path]) == project_config

    env_config = tmp_path / "env.json"
    _write_json(env_config, {})
    monkeypatch.setenv(ENV_CONFIG_PATH, str(env_config))
    assert resolve_settings_path(None, [tmp_path]) == env_config
    assert resolve_settings_path("cli.json", [tmp_path]) == Path("cli.json").resolve()
