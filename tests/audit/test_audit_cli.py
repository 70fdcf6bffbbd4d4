import json
from pathlib import Path

import pytest

import perf_audit.audit as audit
from perf_audit.scan_core.prompts import scripted_confirm

READLINES_SOURCE = "def lines(fh):\n    for line in fh.readlines():\n        yield line\n"


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.delenv("PERF_AUDIT_CONFIG", raising=False)
    monkeypatch.delenv("PERF_AUDIT_DETECTORS", raising=False)
    root = tmp_path / "project"
    _write(root / "requirements.txt", "flask==3.0\n")
    _write(root / "io_utils.py", READLINES_SOURCE)
    return root


def _argv(project: Path, tmp_path: Path, *extra: str) -> list:
    return [
        str(project),
        "--report-dir",
        str(tmp_path / "reports"),
        "--log-dir",
        str(tmp_path / "logs"),
        "--no-color",
        "--no-emoji",
        *extra,
    ]


def test_confirmed_stack_and_fix_rewrite_file(project: Path, tmp_path: Path, capsys) -> None:
    exit_code = audit.run(_argv(project, tmp_path), confirm=scripted_confirm([True, True]))

    assert exit_code == 1
    assert (project / "io_utils.py").read_text(encoding="utf-8") == (
        "def lines(fh):\n    for line in fh:\n        yield line\n"
    )
    output = capsys.readouterr().out
    assert "[stack] Using: flask, python" in output
    assert "[fix] Updated 1 file(s)." in output
    assert len(list((tmp_path / "reports").glob("*-scan.md"))) == 1


def test_declined_fix_leaves_files_untouched(project: Path, tmp_path: Path, capsys) -> None:
    exit_code = audit.run(_argv(project, tmp_path), confirm=scripted_confirm([True, False]))

    assert exit_code == 1
    assert (project / "io_utils.py").read_text(encoding="utf-8") == READLINES_SOURCE
    assert "[fix] Left files unchanged." in capsys.readouterr().out


def test_no_fix_flag_never_asks_about_fixes(project: Path, tmp_path: Path) -> None:
    questions = []

    def confirm(question, suggestion=None):
        questions.append(question)
        return True

    audit.run(_argv(project, tmp_path, "--no-fix"), confirm=confirm)

    assert questions == ["Is this the project's tech stack?"]
    assert (project / "io_utils.py").read_text(encoding="utf-8") == READLINES_SOURCE


def test_edited_stack_is_used(project: Path, tmp_path: Path, capsys) -> None:
    _write(project / "list.jsx", "const items = rows.map(row => <li>{row}</li>);\n")

    audit.run(_argv(project, tmp_path, "--format", "json", "--no-fix"), confirm=scripted_confirm(["Vue, node"]))
    captured = capsys.readouterr().out

    assert "[stack] Using: node, vue" in captured
    payload = json.loads(captured[captured.index("{"): captured.rindex("}") + 1])
    assert payload["stack"] == ["node", "vue"]
    assert "FRNT-005" not in [f["detector_id"] for f in payload["findings"]]


def test_rejected_stack_scans_with_every_detector(project: Path, tmp_path: Path, capsys) -> None:
    exit_code = audit.run(_argv(project, tmp_path, "--no-fix"), confirm=scripted_confirm([False]))

    assert exit_code == 1
    assert "[stack] Using: all detectors" in capsys.readouterr().out


def test_yes_flag_accepts_everything(project: Path, tmp_path: Path) -> None:
    assert audit.run(_argv(project, tmp_path, "--yes")) == 1
    assert "readlines" not in (project / "io_utils.py").read_text(encoding="utf-8")


def test_clean_project_offers_nothing(tmp_path: Path, capsys) -> None:
    root = tmp_path / "clean"
    _write(root / "app.py", "def add(a, b):\n    return a + b\n")

    exit_code = audit.run(_argv(root, tmp_path), confirm=scripted_confirm([True]))

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "[fix]" not in output
    assert "Completed with status 'clean'" in output


def test_missing_targets_exit_two(tmp_path: Path) -> None:
    assert audit.run(_argv(tmp_path / "missing", tmp_path), confirm=scripted_confirm([])) == 2


def test_fix_applies_inside_a_merged_memory_cluster(project: Path, tmp_path: Path, capsys) -> None:
    _write(project / "io_utils.py", "_cache = {}\n\n" + READLINES_SOURCE)

    exit_code = audit.run(_argv(project, tmp_path, "--scope", "memory"), confirm=scripted_confirm([True, True]))

    assert exit_code == 1
    assert (project / "io_utils.py").read_text(encoding="utf-8") == (
        "_cache = {}\n\ndef lines(fh):\n    for line in fh:\n        yield line\n"
    )
    assert "io_utils.py:4 (MEMO-003)" in capsys.readouterr().out
