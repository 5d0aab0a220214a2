# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the semform CLI entry point."""

import json
import sys
from pathlib import Path

import pytest

from semform.cli.main import main

# ###############
# Test Helpers
# ###############

_FORM = """\
fields:
  - id: name
    label: Name
    minOccurs: 1
    maxOccurs: 1
  - id: nick
    orderedWith: index-property
inputs:
  - kind: input
    for: name
  - kind: input
    for: nick
"""

_BROKEN_FORM = """\
fields:
  - id: name
    selectPattern: "ASK { ?s ?p ?o }"
inputs:
  - kind: input
    for: name
  - kind: input
    for: age
"""


def _write_form(tmp_path: Path, content: str = _FORM) -> Path:
    """Write a form configuration and return its path."""
    path = tmp_path / "form.yaml"
    path.write_text(content, encoding="utf-8")
    return path


def _write_patch(tmp_path: Path, name: str, patch: object) -> Path:
    """Write a value patch as JSON and return its path."""
    path = tmp_path / name
    path.write_text(json.dumps(patch), encoding="utf-8")
    return path


def _atomic(n3: str) -> dict:
    return {"type": "atomic", "value": n3}


def _run(monkeypatch: pytest.MonkeyPatch, *args: str) -> int:
    """Run the CLI with ``args`` and return its exit code."""
    monkeypatch.setattr(sys, "argv", ["semform", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


# ###############
# Public Interface
# ###############


def test_main_no_args_prints_help_and_exits(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """main() with no subcommand prints help and exits with code 0."""
    assert _run(monkeypatch) == 0
    assert "semform" in capsys.readouterr().out


# -------- check tests --------


def test_check_valid_form(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """check exits with code 0 for a form without configuration errors."""
    path = _write_form(tmp_path)

    assert _run(monkeypatch, "check", str(path)) == 0
    out = capsys.readouterr().out
    assert "with 2 field(s)" in out
    assert "No issues found." in out


def test_check_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """check exits with code 1 when the form file does not exist."""
    assert _run(monkeypatch, "check", str(tmp_path / "missing.yaml")) == 1
    assert "does not exist" in capsys.readouterr().err


def test_check_invalid_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """check exits with code 1 when the form file cannot be parsed."""
    path = _write_form(tmp_path, "fields: [unclosed\n")

    assert _run(monkeypatch, "check", str(path)) == 1
    assert "Invalid YAML" in capsys.readouterr().err


def test_check_reports_configuration_errors(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    """check prints every configuration error and exits with code 1."""
    path = _write_form(tmp_path, _BROKEN_FORM)

    assert _run(monkeypatch, "check", str(path)) == 1
    err = capsys.readouterr().err
    assert "Field definition 'age' not found" in err
    assert "should be SELECT query but was: 'ASK'" in err


# -------- diff tests --------


def test_diff_identical_states(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """diff reports nothing when both states are equal."""
    form = _write_form(tmp_path)
    patch = {"subject": "<http://example.org/ada>", "fields": {"name": [_atomic('"Ada"')]}}
    before = _write_patch(tmp_path, "before.json", patch)
    after = _write_patch(tmp_path, "after.json", patch)

    assert _run(monkeypatch, "diff", str(form), str(before), str(after)) == 0
    assert capsys.readouterr().out.strip() == "No differences."


def test_diff_prints_changes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """diff prints deleted and inserted values per subject and field."""
    form = _write_form(tmp_path)
    before = _write_patch(
        tmp_path,
        "before.json",
        {"subject": "<http://example.org/ada>", "fields": {"name": [_atomic('"Ada"')]}},
    )
    after = _write_patch(
        tmp_path,
        "after.json",
        {"subject": "<http://example.org/ada>", "fields": {"name": [_atomic('"Grace"')]}},
    )

    assert _run(monkeypatch, "diff", str(form), str(before), str(after)) == 0
    assert capsys.readouterr().out.splitlines() == [
        "<http://example.org/ada> name",
        '  - "Ada"',
        '  + "Grace"',
    ]


def test_diff_prints_indices_of_ordered_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    """Inserted values of ordered fields carry their index."""
    form = _write_form(tmp_path)
    before = _write_patch(tmp_path, "before.json", {"subject": "<http://example.org/ada>", "fields": {}})
    after = _write_patch(
        tmp_path,
        "after.json",
        {"subject": "<http://example.org/ada>", "fields": {"nick": [_atomic('"a"'), _atomic('"b"')]}},
    )

    assert _run(monkeypatch, "diff", str(form), str(before), str(after)) == 0
    assert capsys.readouterr().out.splitlines() == [
        "<http://example.org/ada> nick",
        '  + "a" @0',
        '  + "b" @1',
    ]


def test_diff_invalid_patch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """diff exits with code 1 for unreadable value patches."""
    form = _write_form(tmp_path)
    before = tmp_path / "before.json"
    before.write_text("{not json", encoding="utf-8")
    after = _write_patch(tmp_path, "after.json", ["not", "an", "object"])

    assert _run(monkeypatch, "diff", str(form), str(before), str(after)) == 1
    assert "Invalid JSON" in capsys.readouterr().err

    assert _run(monkeypatch, "diff", str(form), str(after), str(after)) == 1
    assert "must be a JSON object" in capsys.readouterr().err


def test_diff_missing_form(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """diff exits with code 1 when the form cannot be loaded."""
    patch = _write_patch(tmp_path, "patch.json", {"subject": "", "fields": {}})

    assert _run(monkeypatch, "diff", str(tmp_path / "missing.yaml"), str(patch), str(patch)) == 1
    assert "Cannot read form configuration" in capsys.readouterr().err


def test_diff_malformed_value(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    """diff exits with code 1 for patched values without N3 text."""
    form = _write_form(tmp_path)
    before = _write_patch(
        tmp_path, "before.json", {"subject": "<http://example.org/ada>", "fields": {"name": [{"type": "atomic"}]}}
    )
    after = _write_patch(tmp_path, "after.json", {"subject": "<http://example.org/ada>", "fields": {}})

    assert _run(monkeypatch, "diff", str(form), str(before), str(after)) == 1
    assert "Patched atomic value has no N3 text" in capsys.readouterr().err
