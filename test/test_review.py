# tests/test_review.py
# -*- coding: utf-8 -*-
"""Unit tests for loandoc_pipeline.tools.review (verdict interpretation + checklists)."""

from __future__ import annotations

import threading
from types import SimpleNamespace

import pytest

from conftest import FakeReviewer, full_prose
from loandoc_pipeline.errors import CollaboratorError, CollaboratorTimeout
from loandoc_pipeline.models import ChecklistResult, DocTypeId, ReviewerIssue, ReviewerVerdict, Severity
from loandoc_pipeline.tools.prose import validate_prose
from loandoc_pipeline.tools.review import (
    CrewComplianceReviewer,
    extract_regulation,
    load_checklist,
    review_document,
)

NOTE = DocTypeId.PROMISSORY_NOTE


def _prose(doc_type=NOTE, **overrides):
    data = full_prose(doc_type)
    data.update(overrides)
    return validate_prose(doc_type, data).prose


def _checks(outcome):
    return {c.name: c for c in outcome.checks}


def _critical(section="defaultProvisions"):
    return ReviewerIssue(severity="critical", section=section, description="Missing cure period",
                         fix_applied="Added 10-day cure period")


# ----------------------------- deterministic checks ---------------------------

def test_clean_verdict_passes_with_deterministic_checks(make_deal, fake_reviewer):
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=fake_reviewer)

    assert outcome.result.passed is True
    assert outcome.corrected_prose is None
    checks = _checks(outcome)
    assert checks["Governing law names deal jurisdiction"].passed is True
    assert checks["Usury savings clause"].passed is False
    assert checks["Usury savings clause"].severity == Severity.WARNING
    assert checks["State disclosure requirements"].passed is True
    # the failed warning-level check is surfaced as a review issue too
    assert [i.section for i in outcome.result.issues] == ["compliance"]


def test_usury_savings_language_detected(make_deal, fake_reviewer):
    prose = _prose(miscellaneousProvisions="Interest shall never exceed the maximum lawful rate.")
    outcome = review_document(NOTE, make_deal(), prose, reviewer=fake_reviewer)
    assert _checks(outcome)["Usury savings clause"].passed is True
    assert outcome.result.issues == []


def test_governing_law_naming_another_state_is_flagged(make_deal, fake_reviewer):
    prose = _prose(governingLawClause="Governed by the laws of the State of Delaware.")
    outcome = review_document(NOTE, make_deal(), prose, reviewer=fake_reviewer)
    check = _checks(outcome)["Governing law names deal jurisdiction"]
    assert check.passed is False
    assert "Texas" in check.note


def test_non_rate_documents_skip_usury_savings(make_deal, fake_reviewer):
    outcome = review_document(DocTypeId.GUARANTY, make_deal(), _prose(DocTypeId.GUARANTY), reviewer=fake_reviewer)
    assert "Usury savings clause" not in _checks(outcome)


# ----------------------------- verdict interpretation -------------------------

def test_critical_issue_without_correction_fails(make_deal):
    reviewer = FakeReviewer(ReviewerVerdict(issues_found=[_critical()]))
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    assert outcome.result.passed is False
    issue = outcome.result.issues[-1]
    assert issue.severity == Severity.CRITICAL
    assert issue.recommendation == "Added 10-day cure period"


def test_critical_issue_with_applied_correction_passes(make_deal):
    reviewer = FakeReviewer(ReviewerVerdict(
        issues_found=[_critical()],
        corrected_sections={"defaultProvisions": "Revised default text with a 10-day cure period."},
    ))
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    assert outcome.result.passed is True
    assert outcome.corrected_prose.defaultProvisions.startswith("Revised default text")
    # untouched sections survive
    assert outcome.corrected_prose.accelerationClause == "Drafted accelerationClause provision."


def test_corrections_to_unknown_keys_are_ignored(make_deal):
    reviewer = FakeReviewer(ReviewerVerdict(
        issues_found=[_critical()],
        corrected_sections={"inventedSection": "text"},
    ))
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    assert outcome.corrected_prose is None
    assert outcome.result.passed is False


@pytest.mark.parametrize("blank", ["", "   ", None, [], ["", " "]])
def test_blank_corrections_do_not_count_as_applied(make_deal, blank):
    reviewer = FakeReviewer(ReviewerVerdict(
        issues_found=[_critical()],
        corrected_sections={"accelerationClause": blank},
    ))
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    assert outcome.corrected_prose is None
    assert outcome.result.passed is False


def test_malformed_issues_are_skipped_and_unknown_severity_downgraded(make_deal):
    reviewer = FakeReviewer(ReviewerVerdict(issues_found=[
        ReviewerIssue(severity="critical", section=None, description="no section"),
        ReviewerIssue(severity="HIGH", section="lateFeeProvision", description="Grace period unclear"),
    ]))
    prose = _prose(miscellaneousProvisions="Capped at the maximum lawful rate.")
    outcome = review_document(NOTE, make_deal(), prose, reviewer=reviewer)
    assert len(outcome.result.issues) == 1
    assert outcome.result.issues[0].severity == Severity.WARNING
    assert outcome.result.passed is True


def test_checklist_results_become_compliance_checks(make_deal):
    reviewer = FakeReviewer(ReviewerVerdict(checklist_results=[
        ChecklistResult(provision="UCC §9-203 attachment language", category="regulatory", passed=False,
                        note="Not found"),
        ChecklistResult(provision="Severability clause", category="standard", passed=True),
        ChecklistResult(provision="Broken entry", category="required", passed=None),
    ]))
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    checks = _checks(outcome)
    ucc = checks["UCC §9-203 attachment language"]
    assert ucc.regulation == "Uniform Commercial Code"
    assert ucc.category == "regulatory"
    assert ucc.severity == Severity.WARNING
    assert checks["Severability clause"].regulation == "Commercial Lending Standards"
    assert "Broken entry" not in checks


def test_dict_verdict_is_accepted(make_deal):
    reviewer = FakeReviewer()
    reviewer.verdict = {"issues_found": [], "corrected_sections": {}, "checklist_results": []}
    outcome = review_document(NOTE, make_deal(), _prose(), reviewer=reviewer)
    assert outcome.corrected_prose is None


# ----------------------------- collaborator failures --------------------------

class _BrokenReviewer:
    def review(self, *args, **kwargs):
        raise RuntimeError("LLM unavailable")


class _SlowReviewer:
    def __init__(self):
        self.release = threading.Event()

    def review(self, *args, **kwargs):
        self.release.wait(5)
        return ReviewerVerdict()


def test_reviewer_errors_propagate(make_deal):
    with pytest.raises(CollaboratorError, match="LLM unavailable"):
        review_document(NOTE, make_deal(), _prose(), reviewer=_BrokenReviewer())


def test_reviewer_timeout_propagates(make_deal):
    slow = _SlowReviewer()
    try:
        with pytest.raises(CollaboratorTimeout):
            review_document(NOTE, make_deal(), _prose(), reviewer=slow, timeout=0.05)
    finally:
        slow.release.set()


# ----------------------------- checklists -------------------------------------

def test_checklist_overlay_is_appended(make_deal):
    base = load_checklist(NOTE)
    sba = load_checklist(NOTE, "sba_7a")
    assert "Governing law clause" in base["required"]
    assert len(sba["required"]) == len(base["required"]) + 1
    assert sba["required"][: len(base["required"])] == base["required"]


def test_reviewer_receives_program_checklist(make_deal, fake_reviewer):
    review_document(NOTE, make_deal(program_id="sba_7a"), _prose(), reviewer=fake_reviewer)
    checklist = fake_reviewer.calls[0]["checklist"]
    assert any("SBA prepayment" in item for item in checklist["required"])


def test_unknown_document_has_empty_checklist():
    assert load_checklist(DocTypeId.IRS_W9) == {
        "required": [], "standard": [], "regulatory": [], "cross_document": [],
    }


@pytest.mark.parametrize("provision, regulation", [
    ("Environmental indemnity under CERCLA", "CERCLA (42 U.S.C. §9601 et seq.)"),
    ("Regulation Z commercial purpose exemption", "Truth in Lending Act (Reg Z)"),
    ("Bankruptcy-remote provisions", "U.S. Bankruptcy Code"),
    ("Severability", "Commercial Lending Standards"),
])
def test_extract_regulation(provision, regulation):
    assert extract_regulation(provision) == regulation


# ----------------------------- CrewAI reviewer --------------------------------

def test_crew_reviewer_prefers_structured_output(make_deal, monkeypatch):
    verdict = ReviewerVerdict(issues_found=[_critical()])
    monkeypatch.setattr(CrewComplianceReviewer, "_kickoff",
                        lambda self, inputs, timeout: SimpleNamespace(pydantic=verdict, raw=""))
    out = CrewComplianceReviewer().review(NOTE, make_deal(), full_prose(NOTE), load_checklist(NOTE))
    assert out is verdict


def test_crew_reviewer_parses_raw_json(make_deal, monkeypatch):
    captured = {}

    def fake_kickoff(self, inputs, timeout):
        captured.update(inputs)
        raw = '```json\n{"issues_found": [], "corrected_sections": {"defaultProvisions": "x"},}\n```'
        return SimpleNamespace(pydantic=None, raw=raw)

    monkeypatch.setattr(CrewComplianceReviewer, "_kickoff", fake_kickoff)
    out = CrewComplianceReviewer().review(NOTE, make_deal(), full_prose(NOTE), load_checklist(NOTE))
    assert out.corrected_sections == {"defaultProvisions": "x"}
    assert captured["doc_label"] == "Promissory Note"
    assert "Acme Holdings LLC" in captured["deal_context"]


def test_crew_reviewer_rejects_unreadable_output(make_deal, monkeypatch):
    monkeypatch.setattr(CrewComplianceReviewer, "_kickoff",
                        lambda self, inputs, timeout: SimpleNamespace(pydantic=None, raw='{"issues_found": 5}'))
    with pytest.raises(CollaboratorError):
        CrewComplianceReviewer().review(NOTE, make_deal(), full_prose(NOTE), load_checklist(NOTE))
