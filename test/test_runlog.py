# tests/test_runlog.py
import json
from datetime import datetime
from pathlib import Path

import pytest

from loandoc_pipeline.models import (
    ComplianceCheck,
    DocTypeId,
    DocumentResult,
    ReviewIssue,
    ReviewResult,
    Severity,
    Status,
    VerificationResult,
)
from loandoc_pipeline.tools.runlog import persist_runlog, runlog_path, summarize_run


def _is_iso_seconds(ts: str) -> bool:
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        return dt.microsecond == 0
    except Exception:
        return False


def test_writes_and_overwrites(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    out_dir = tmp_path / "runlogs"
    filename = "runlog.json"

    # First write
    with caplog.at_level("INFO"):
        res1 = persist_runlog('{"a":1}', out_dir=str(out_dir), filename=filename)

    saved = Path(res1["saved_to"])
    assert saved.exists()
    assert saved.read_text(encoding="utf-8") == '{"a":1}'
    assert res1["bytes"] == len('{"a":1}')
    assert res1["overwritten"] is False
    assert _is_iso_seconds(res1["saved_at"])

    # Confirm log line
    assert "[persist_runlog] wrote" in caplog.text
    assert str(saved) in caplog.text

    # Second write (overwrite)
    res2 = persist_runlog("second", out_dir=str(out_dir), filename=filename)

    assert saved.read_text(encoding="utf-8") == "second"
    assert res2["bytes"] == len("second")
    assert res2["overwritten"] is True


def test_handles_non_string_payload(tmp_path: Path):
    payload = {"x": 1, "y": ["a", "b"], "when": datetime(2026, 1, 15)}
    res = persist_runlog(payload, out_dir=str(tmp_path / "logs"), filename="data.json")

    saved = Path(res["saved_to"])
    text = saved.read_text(encoding="utf-8")
    assert json.loads(text) == {"x": 1, "y": ["a", "b"], "when": "2026-01-15 00:00:00"}
    assert res["bytes"] == len(text)


def test_env_used_when_arguments_absent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    env_dir = tmp_path / "envlogs"
    monkeypatch.setenv("RUNLOG_DIR", str(env_dir))
    monkeypatch.setenv("RUNLOG_FILE", "envrun.json")

    res = persist_runlog("hello")

    saved = Path(res["saved_to"])
    assert saved == env_dir / "envrun.json"
    assert saved.read_text(encoding="utf-8") == "hello"


def test_explicit_filename_beats_runlog_file_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RUNLOG_DIR", str(tmp_path))
    monkeypatch.setenv("RUNLOG_FILE", "shared.json")

    first = persist_runlog("one", filename="run_a.json")
    second = persist_runlog("two", filename="run_b.json")

    assert Path(first["saved_to"]) == tmp_path / "run_a.json"
    assert Path(second["saved_to"]) == tmp_path / "run_b.json"
    assert second["overwritten"] is False
    assert not (tmp_path / "shared.json").exists()


def test_explicit_directory_beats_runlog_dir_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RUNLOG_DIR", str(tmp_path / "env"))

    res = persist_runlog("x", out_dir=str(tmp_path / "args"), filename="args.json")
    assert Path(res["saved_to"]) == tmp_path / "args" / "args.json"


def test_defaults_without_env_or_arguments(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("RUNLOG_DIR", raising=False)
    monkeypatch.delenv("RUNLOG_FILE", raising=False)
    assert runlog_path() == Path("runlogs") / "runlog.json"


def test_creates_directory(tmp_path: Path):
    """Persist should create nested directory and write the file at the requested path."""
    out_dir = tmp_path / "nested" / "deep" / "runlogs"

    res = persist_runlog("x", out_dir=str(out_dir), filename="f.json")

    saved = Path(res["saved_to"])
    assert saved.exists(), f"Expected file to exist: {saved}"
    assert saved.parent == out_dir, f"Expected parent {out_dir}, got {saved.parent}"


def _result(doc_type, status, *, review_ok=True, failed_check=None):
    issues = [] if review_ok else [ReviewIssue(severity=Severity.CRITICAL, section="generation", description="boom")]
    checks = [ComplianceCheck(name=failed_check, regulation="Internal", category="regulatory", passed=False,
                              severity=Severity.CRITICAL)] if failed_check else []
    return DocumentResult(
        doc_type=doc_type,
        label=doc_type.value,
        payload=b"%PDF-fake",
        review=ReviewResult(passed=review_ok, issues=issues),
        verification=VerificationResult(passed=True, checks_run=3, checks_passed=2),
        compliance_checks=checks,
        status=status,
    )


def test_summarize_run_counts_statuses():
    summary = summarize_run([
        _result(DocTypeId.PROMISSORY_NOTE, Status.REVIEWED),
        _result(DocTypeId.LOAN_AGREEMENT, Status.FLAGGED, review_ok=False, failed_check="Document Generation"),
        _result(DocTypeId.IRS_W9, Status.DRAFT),
    ])

    assert summary["totals"] == {"REVIEWED": 1, "FLAGGED": 1, "DRAFT": 1}
    flagged = summary["documents"]["loan_agreement"]
    assert flagged["critical_issues"] == 1
    assert flagged["compliance_failed"] == ["Document Generation"]
    assert summary["documents"]["promissory_note"]["checks"] == "2/3"
    assert summary["documents"]["irs_w9"]["bytes"] == len(b"%PDF-fake")
    assert _is_iso_seconds(summary["generated_at"])
