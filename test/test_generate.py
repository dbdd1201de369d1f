# tests/test_generate.py
# -*- coding: utf-8 -*-
"""Unit tests for the drafting collaborator (prompt context, JSON parsing, CrewAI seam)."""

from __future__ import annotations

import pytest

from loandoc_pipeline.errors import CollaboratorError, ProseFormatError
from loandoc_pipeline.models import DocTypeId
from loandoc_pipeline.tools.generate import (
    CrewProseGenerator,
    build_deal_context,
    format_feedback,
    parse_prose,
    sanitize_json,
)


# ----------------------------- sanitize / parse -------------------------------

@pytest.mark.parametrize("raw", [
    '{"a": "b"}',
    '```json\n{"a": "b"}\n```',
    'Here is the document:\n{"a": "b"}\nLet me know if you need changes.',
    '{"a": "b",}',
    '\ufeff{"a": "b"}',
])
def test_parse_prose_is_lenient_about_wrapping(raw):
    assert parse_prose(raw) == {"a": "b"}


def test_parse_prose_passes_dicts_through():
    data = {"a": ["x", "y"]}
    assert parse_prose(data) is data


@pytest.mark.parametrize("raw", ["", "no json here", "[1, 2, 3]", "{not: valid}"])
def test_parse_prose_rejects_non_objects(raw):
    with pytest.raises(ProseFormatError):
        parse_prose(raw)


def test_prose_format_error_is_a_collaborator_error():
    with pytest.raises(CollaboratorError):
        sanitize_json("plain text")


# ----------------------------- prompt context ---------------------------------

def test_deal_context_carries_exact_numbers(make_deal):
    ctx = build_deal_context(make_deal())
    assert "Principal Amount: $1,000,000 (one million dollars)" in ctx
    assert "Interest Rate: 7.250% per annum" in ctx
    assert "Term: 60 months (5.0 years)" in ctx
    assert "  - Origination Fee: $10,000 (1% of loan amount)" in ctx
    assert "(threshold: 1.25)" in ctx
    assert "Conditions:\n  None" in ctx


def test_feedback_banner():
    assert format_feedback(None) == ""
    assert format_feedback("   ") == ""
    text = format_feedback("Add a 10-day cure period.")
    assert text.startswith("=== MANDATORY CORRECTIONS ===")
    assert text.endswith("Add a 10-day cure period.")


# ----------------------------- CrewAI generator -------------------------------

def test_crew_generator_builds_inputs_and_parses_output(make_deal, monkeypatch):
    captured = {}

    def fake_kickoff(self, inputs, timeout):
        captured["inputs"] = inputs
        captured["timeout"] = timeout
        return '```json\n{"recitals": "WHEREAS...", "representations": ["a", "b"]}\n```'

    monkeypatch.setattr(CrewProseGenerator, "_kickoff", fake_kickoff)
    out = CrewProseGenerator().generate(DocTypeId.LOAN_AGREEMENT, make_deal(), ["recitals", "representations"],
                                        feedback="Tighten recitals", timeout=3.0)

    assert out == {"recitals": "WHEREAS...", "representations": ["a", "b"]}
    inputs = captured["inputs"]
    assert inputs["doc_label"] == "Loan Agreement"
    assert inputs["sections"] == "recitals, representations"
    assert inputs["list_sections"] == "representations, eventsOfDefault"
    assert "MANDATORY CORRECTIONS" in inputs["feedback"]
    assert captured["timeout"] == 3.0


def test_crew_generator_rejects_garbage(make_deal, monkeypatch):
    monkeypatch.setattr(CrewProseGenerator, "_kickoff", lambda self, inputs, timeout: "I cannot help with that.")
    with pytest.raises(ProseFormatError):
        CrewProseGenerator().generate(DocTypeId.PROMISSORY_NOTE, make_deal(), ["defaultProvisions"])
