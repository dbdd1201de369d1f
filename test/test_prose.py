# tests/test_prose.py
# -*- coding: utf-8 -*-
"""Unit tests for loandoc_pipeline.tools.prose.validate_prose."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from conftest import full_prose
from loandoc_pipeline.models import DocTypeId
from loandoc_pipeline.tools.prose import is_placeholder, placeholder_text, validate_prose

NOTE = DocTypeId.PROMISSORY_NOTE
AGREEMENT = DocTypeId.LOAN_AGREEMENT


def test_complete_prose_passes_without_diagnostics():
    res = validate_prose(NOTE, full_prose(NOTE))
    assert res.diagnostics == []
    assert res.prose.governingLawClause.endswith("State of Texas.")


def test_missing_and_blank_sections_get_placeholders():
    prose = full_prose(NOTE)
    del prose["accelerationClause"]
    prose["waiverProvisions"] = "   "

    res = validate_prose(NOTE, prose)

    assert res.prose.accelerationClause == placeholder_text("accelerationClause")
    assert is_placeholder(res.prose.waiverProvisions)
    assert len(res.diagnostics) == 1
    assert "accelerationClause, waiverProvisions" in res.diagnostics[0]


def test_list_section_placeholder_is_a_list():
    prose = full_prose(AGREEMENT)
    prose["representations"] = []
    res = validate_prose(AGREEMENT, prose)
    assert res.prose.representations == [placeholder_text("representations")]
    assert is_placeholder(res.prose.representations)


def test_validation_is_idempotent():
    first = validate_prose(NOTE, {"defaultProvisions": "Default text."})
    second = validate_prose(NOTE, first.prose)
    assert second.diagnostics == []
    assert second.prose == first.prose


def test_shape_coercion():
    prose = full_prose(AGREEMENT)
    prose["eventsOfDefault"] = "Failure to pay."
    prose["recitals"] = ["WHEREAS one.", "WHEREAS two."]
    res = validate_prose(AGREEMENT, prose)
    assert res.prose.eventsOfDefault == ["Failure to pay."]
    assert res.prose.recitals == "WHEREAS one.\n\nWHEREAS two."


def test_input_is_not_mutated_and_extra_keys_survive():
    prose = {"defaultProvisions": "Default text.", "draftersNote": "keep me"}
    snapshot = dict(prose)
    res = validate_prose(NOTE, prose)
    assert prose == snapshot
    assert res.prose.model_dump()["draftersNote"] == "keep me"


def test_zero_content_type_has_empty_prose():
    res = validate_prose(DocTypeId.SETTLEMENT_STATEMENT, {"anything": "ignored"})
    assert res.prose.model_dump() == {}
    assert res.diagnostics == []


def test_result_is_frozen():
    res = validate_prose(NOTE, full_prose(NOTE))
    with pytest.raises(ValidationError):
        res.prose.defaultProvisions = "changed"


@pytest.mark.parametrize("value, expected", [
    (placeholder_text("x"), True),
    ([placeholder_text("x")], True),
    ("[Amount TBD]", False),
    (["real text", placeholder_text("x")], False),
    ([], False),
])
def test_is_placeholder(value, expected):
    assert is_placeholder(value) is expected
