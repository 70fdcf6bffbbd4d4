from pathlib import Path

from perf_audit.scan_core.aggregator import deduplicate
from perf_audit.scan_core.config import DEFAULT_DETECTORS_FILE
from perf_audit.scan_core.fixes import PlannedFix, apply_fixes, plan_fixes
from perf_audit.scan_core.models import Effort, Finding, Impact
from perf_audit.scan_core.prompts import auto_confirm, console_confirm, scripted_confirm
from perf_audit.scan_core.registry import RuleRegistry


def _answers(*replies):
    remaining = list(replies)

    def fake_input(prompt: str) -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    return fake_input


def test_console_confirm_yes_no_and_default() -> None:
    assert console_confirm("Apply?", input_func=_answers("")) is True
    assert console_confirm("Apply?", input_func=_answers("Y")) is True
    assert console_confirm("Apply?", input_func=_answers("no")) is False


def test_console_confirm_returns_edits_when_suggesting() -> None:
    assert console_confirm("Stack?", "react", input_func=_answers("vue, node")) == "vue, node"


def test_console_confirm_reprompts_then_gives_up(capsys) -> None:
    assert console_confirm("Apply?", input_func=_answers("maybe", "yes")) is True
    assert console_confirm("Apply?", input_func=_answers("a", "b", "c")) is False
    assert "Please answer 'y' or 'n'." in capsys.readouterr().out


def test_console_confirm_treats_eof_as_no() -> None:
    assert console_confirm("Apply?", input_func=_answers()) is False


def test_scripted_and_auto_confirm() -> None:
    confirm = scripted_confirm([True, "react"])
    assert confirm("first?", None) is True
    assert confirm("second?", "vue") == "react"
    assert confirm("third?", None) is False
    assert auto_confirm("anything?") is True


def _finding(path: Path, line: int, detector_id: str) -> Finding:
    return Finding(
        detector_id=detector_id,
        category="FRNT",
        path=str(path),
        line=line,
        impact=Impact.MEDIUM,
        effort=Effort.LOW,
        title="Image without lazy loading",
        description="",
    )


def test_plan_and_apply_fixes_rewrite_each_file_once(tmp_path: Path) -> None:
    registry = RuleRegistry.from_files([DEFAULT_DETECTORS_FILE])
    page = tmp_path / "index.html"
    page.write_text('<main>\n  <img src="a.png">\n  <img src="b.png" loading="eager">\n  <img src="c.png">\n</main>\n', encoding="utf-8")

    plan = plan_fixes(
        [
            _finding(page, 2, "FRNT-001"),
            _finding(page, 3, "FRNT-001"),
            _finding(page, 4, "FRNT-001"),
            _finding(page, 1, "FRNT-002"),
        ],
        registry,
    )

    assert [(fix.line, fix.updated.strip()) for fix in plan] == [
        (2, '<img loading="lazy" src="a.png">'),
        (4, '<img loading="lazy" src="c.png">'),
    ]
    assert apply_fixes(plan) == [str(page)]
    assert page.read_text(encoding="utf-8") == (
        '<main>\n  <img loading="lazy" src="a.png">\n  <img src="b.png" loading="eager">\n'
        '  <img loading="lazy" src="c.png">\n</main>\n'
    )


def test_stale_fix_is_skipped(tmp_path: Path) -> None:
    source = tmp_path / "io.py"
    source.write_text("for line in fh:\n    pass\n", encoding="utf-8")
    stale = PlannedFix(str(source), 1, "MEMO-003", "for line in fh.readlines():\n", "for line in fh:\n")

    assert apply_fixes([stale]) == []
    assert source.read_text(encoding="utf-8") == "for line in fh:\n    pass\n"


def test_unreadable_file_is_not_planned(tmp_path: Path) -> None:
    registry = RuleRegistry.from_files([DEFAULT_DETECTORS_FILE])

    assert plan_fixes([_finding(tmp_path / "gone.html", 1, "FRNT-001")], registry) == []


def _memo(path: Path, line: int, detector_id: str, effort: Effort) -> Finding:
    return Finding(
        detector_id=detector_id,
        category="MEMO",
        path=str(path),
        line=line,
        impact=Impact.MEDIUM,
        effort=effort,
        title=detector_id,
        description=f"{detector_id} at {line}",
    )


def test_merged_finding_fixes_the_line_its_detector_matched(tmp_path: Path) -> None:
    registry = RuleRegistry.from_files([DEFAULT_DETECTORS_FILE])
    source = tmp_path / "m.py"
    source.write_text("_cache = {}\n\ndef f(fh):\n    for line in fh.readlines():\n        pass\n", encoding="utf-8")

    merged = deduplicate(
        [
            _memo(source, 1, "MEMO-004", Effort.MEDIUM),
            _memo(source, 4, "MEMO-003", Effort.LOW),
        ]
    )

    assert [(f.detector_id, f.line, f.match_line, f.related) for f in merged] == [("MEMO-003", 1, 4, ("MEMO-004",))]
    plan = plan_fixes(merged, registry)
    assert [(fix.line, fix.updated) for fix in plan] == [(4, "    for line in fh:\n")]
    apply_fixes(plan)
    assert source.read_text(encoding="utf-8").splitlines()[:1] == ["_cache = {}"]
    assert "readlines" not in source.read_text(encoding="utf-8")


def test_form_feed_does_not_shift_fix_lines(tmp_path: Path) -> None:
    registry = RuleRegistry.from_files([DEFAULT_DETECTORS_FILE])
    source = tmp_path / "ff.py"
    source.write_text("x = 1\x0c\ndef f(fh):\n    for line in fh.readlines():\n        pass\n", encoding="utf-8")

    plan = plan_fixes([_memo(source, 3, "MEMO-003", Effort.LOW)], registry)

    assert [fix.line for fix in plan] == [3]
    assert apply_fixes(plan) == [str(source)]
    assert source.read_text(encoding="utf-8") == "x = 1\x0c\ndef f(fh):\n    for line in fh:\n        pass\n"


def test_fix_keeps_crlf_line_endings(tmp_path: Path) -> None:
    registry = RuleRegistry.from_files([DEFAULT_DETECTORS_FILE])
    source = tmp_path / "crlf.py"
    source.write_bytes(b"def f(fh):\r\n    for line in fh.readlines():\r\n        pass\r\n")

    plan = plan_fixes([_memo(source, 2, "MEMO-003", Effort.LOW)], registry)

    assert apply_fixes(plan) == [str(source)]
    assert source.read_bytes() == b"def f(fh):\r\n    for line in fh:\r\n        pass\r\n"
