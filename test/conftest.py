import os, json, datetime, dataclasses
from typing import Any, Dict, List, Optional

import pytest

from loandoc_pipeline.models import Covenant, DealInput, DealTerms, Fee, ReviewerVerdict
from loandoc_pipeline.registry import REGISTRY, get_spec
from loandoc_pipeline.tools import programs, review, usury

GENERATED_AT = datetime.datetime(2026, 1, 15, 9, 30, tzinfo=datetime.timezone.utc)

DEFAULT_TERMS: Dict[str, Any] = {
    "approved_amount": 1_000_000,
    "interest_rate": 0.0725,
    "term_months": 60,
    "amortization_months": 300,
    "monthly_payment": 7228.02,
    "ltv": 0.65,
    "personal_guaranty": True,
    "fees": [
        Fee(name="Origination Fee", amount=10_000, description="1% of loan amount"),
        Fee(name="Documentation Fee", amount=1_500, description="Document preparation"),
    ],
    "covenants": [
        Covenant(name="Debt Service Coverage Ratio", description="Minimum DSCR", threshold=1.25),
    ],
}

DEFAULT_DEAL: Dict[str, Any] = {
    "borrower_name": "Acme Holdings LLC",
    "lender_name": "First Harbor Bank",
    "program_id": "conventional_business",
    "program_name": "Conventional Business Term",
    "state_abbr": "TX",
    "entity_type": "LLC",
    "guarantor_name": "Jane Doe",
    "collateral_types": ["equipment", "accounts_receivable"],
    "generated_at": GENERATED_AT,
}


@pytest.fixture
def make_deal():
    """Factory: make_deal(terms={...}, **deal_fields) -> DealInput."""

    def _factory(terms: Optional[Dict[str, Any]] = None, **fields: Any) -> DealInput:
        t = dict(DEFAULT_TERMS)
        t.update(terms or {})
        data = dict(DEFAULT_DEAL)
        data.update(fields)
        data["terms"] = DealTerms(**t)
        return DealInput(**data)

    return _factory


def full_prose(doc_type) -> Dict[str, Any]:
    """Complete prose for a document type; governing-law sections name Texas."""
    out: Dict[str, Any] = {}
    for key, is_list in get_spec(doc_type).sections:
        if key.startswith("governingLaw"):
            text = "This instrument is governed by the laws of the State of Texas."
        else:
            text = f"Drafted {key} provision."
        out[key] = [text, f"Second {key} item."] if is_list else text
    return out


class FakeGenerator:
    """Returns complete prose and records every call."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def generate(self, doc_type, deal, sections, feedback=None, timeout=None):
        self.calls.append({"doc_type": doc_type, "sections": list(sections), "feedback": feedback,
                           "timeout": timeout})
        return full_prose(doc_type)


class FakeReviewer:
    """Returns a fixed verdict (empty by default)."""

    def __init__(self, verdict: Optional[ReviewerVerdict] = None) -> None:
        self.verdict = verdict or ReviewerVerdict()
        self.calls: List[Dict[str, Any]] = []

    def review(self, doc_type, deal, prose, checklist, timeout=None):
        self.calls.append({"doc_type": doc_type, "prose": prose, "checklist": checklist})
        return self.verdict


def text_renderer(tree) -> bytes:
    return tree.plain_text().encode("utf-8")


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_reviewer() -> FakeReviewer:
    return FakeReviewer()


@pytest.fixture
def drop_builder(monkeypatch):
    """drop_builder(doc_type): the type renders as a DRAFT placeholder for this test only."""

    def _drop(doc_type):
        monkeypatch.setitem(REGISTRY, doc_type, dataclasses.replace(REGISTRY[doc_type], builder=None))

    return _drop


@pytest.fixture(autouse=True)
def _fresh_config_caches(monkeypatch):
    """Each test sees the packaged config unless it points LOANDOC_RULES_DIR elsewhere."""
    monkeypatch.delenv("LOANDOC_RULES_DIR", raising=False)
    monkeypatch.delenv("RUNLOG_DIR", raising=False)
    monkeypatch.delenv("RUNLOG_FILE", raising=False)
    usury.clear_cache()
    programs.clear_cache()
    review.clear_cache()
    yield
    usury.clear_cache()
    programs.clear_cache()
    review.clear_cache()


def pytest_sessionfinish(session, exitstatus):
    """Hook to save the test run summary to logs/pytest_results.json"""
    report = {
        "timestamp": datetime.datetime.now().isoformat(),
        "exitstatus": int(exitstatus),
        "total_tests": session.testscollected,
        "outcome": "passed" if exitstatus == 0 else "failed",
    }

    # resolve path safely relative to pytest rootdir
    project_root = session.config.rootpath or os.getcwd()
    logs_dir = os.path.join(project_root, "logs")
    os.makedirs(logs_dir, exist_ok=True)

    result_path = os.path.join(logs_dir, "pytest_results.json")
    with open(result_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)

    print(f"\nTest report saved to {result_path}\n")
