from __future__ import annotations

import json

import pytest

from darkpatch.cli import build_parser, main, open_store
from darkpatch.contracts.models import ProblemTag, Signature

MENU = Signature(tags=(ProblemTag.TRANSPARENT_MENU_BACKGROUND,), element="navigation")


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "store.db")


def test_scan_without_store_prints_json(dropdown_page, capsys):
    assert main(["scan", str(dropdown_page), "--no-store", "--json"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["cycle"]["issues"] == 1
    assert result["cycle"]["applied"] == 1
    assert result["cycle"]["generations"] == 0
    assert len(result["style_blocks"]) == 1
    assert result["status"]["store_available"] is None
    assert result["verification"]["remaining_issues"] == 1


def test_scan_with_store_prints_summary(dropdown_page, db, capsys):
    assert main(["--db", db, "scan", str(dropdown_page), "--domain", "example.com"]) == 0

    out = capsys.readouterr().out
    assert "DARKPATCH SCAN" in out
    assert "Patches applied:   1" in out
    assert ".dropdown-menu" in out


def test_export_and_import(db, tmp_path, capsys):
    store = open_store(db)
    store.record_feedback(MENU, "p-1", "up", rule_text="{{selector}} { color: #eee; }")
    exported = tmp_path / "patterns.json"

    assert main(["--db", db, "export", str(exported)]) == 0
    assert json.loads(exported.read_text())["ledger"][0]["patch_id"] == "p-1"

    other_db = str(tmp_path / "other.db")
    assert main(["--db", other_db, "import", str(exported)]) == 0
    assert "holds 1 ledger entries" in capsys.readouterr().out
    assert main(["--db", other_db, "import", str(exported), "--merge"]) == 0
    assert len(open_store(other_db).ledger()) == 1


def test_report(db, capsys):
    store = open_store(db)
    store.record_feedback(MENU, "p-1", "up")
    store.record_feedback(MENU, "p-2", "down")

    assert main(["--db", db, "report"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["total_feedback"] == 2
    assert report["overall_success_rate"] == 0.5


def test_missing_document_fails_cleanly(tmp_path, capsys):
    assert main(["scan", str(tmp_path / "nope.json"), "--no-store"]) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_invalid_import_document(db, tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"version": "v0", "ledger": []}))

    assert main(["--db", db, "import", str(path)]) == 1


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
