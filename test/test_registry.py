# tests/test_registry.py
# -*- coding: utf-8 -*-
"""Registry, crew prompt config and LLM router tests (router runs with a fake LLM, no network)."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from loandoc_pipeline.errors import UnknownDocumentType
from loandoc_pipeline.models import DocTypeId
from loandoc_pipeline.registry import REGISTRY, all_doc_types, get_spec, parse_doc_type, prose_model
from loandoc_pipeline.router import router

CONFIG_DIR = Path(__file__).resolve().parents[1] / "src" / "loandoc_pipeline" / "config"


# ----------------------------- registry ---------------------------------------

def test_every_document_type_is_registered():
    assert set(all_doc_types()) == set(DocTypeId)
    assert len(REGISTRY) == 36


def test_prose_and_zero_content_partition():
    prose = [s for s in REGISTRY.values() if not s.zero_content]
    zero = [s for s in REGISTRY.values() if s.zero_content]
    assert len(prose) == 21 and len(zero) == 15
    assert all(s.sections for s in prose)
    assert all(not s.sections for s in zero)


def test_every_type_has_a_builder():
    assert [s.doc_type.value for s in REGISTRY.values() if s.builder is None] == []


def test_disclosures_print_terms_and_forms_do_not():
    states_terms = {s.doc_type.value for s in REGISTRY.values() if s.zero_content and s.states_terms}
    assert states_terms == {"settlement_statement", "amortization_schedule", "closing_disclosure", "loan_estimate"}


def test_parse_doc_type():
    assert parse_doc_type(" guaranty ") == DocTypeId.GUARANTY
    assert get_spec("guaranty").label == "Guaranty Agreement"
    with pytest.raises(UnknownDocumentType) as info:
        parse_doc_type("mortgage")
    assert str(info.value) == "Unknown document type: 'mortgage'"
    # still a KeyError for dict-style callers
    assert isinstance(info.value, KeyError)


def test_prose_model_fields_follow_sections():
    model = prose_model(DocTypeId.LOAN_AGREEMENT)
    assert list(model.model_fields)[:3] == ["recitals", "representations", "eventsOfDefault"]
    assert prose_model(DocTypeId.LOAN_AGREEMENT) is model


# ----------------------------- crew prompt config -----------------------------

def test_task_prompts_use_pipeline_inputs():
    tasks = yaml.safe_load((CONFIG_DIR / "tasks.yaml").read_text(encoding="utf-8"))
    draft = tasks["draft_task"]["description"]
    review = tasks["review_task"]["description"]
    for placeholder in ("{doc_label}", "{deal_context}", "{sections}", "{list_sections}", "{feedback}"):
        assert placeholder in draft
    for placeholder in ("{prose_json}", "{checklist}"):
        assert placeholder in review


def test_agents_defined():
    agents = yaml.safe_load((CONFIG_DIR / "agents.yaml").read_text(encoding="utf-8"))
    assert set(agents) == {"drafter", "reviewer"}
    assert all({"role", "goal", "backstory"} <= set(a) for a in agents.values())


# ----------------------------- router -----------------------------------------

class _FakeLLM:
    def __init__(self, model, temperature, timeout):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout


def test_router_uses_primary_model(monkeypatch):
    monkeypatch.setattr(router, "LLM", _FakeLLM)
    monkeypatch.setattr(router, "_ping_openai", lambda model, timeout=None: True)
    monkeypatch.delenv("LOANDOC_LLM_MODEL", raising=False)
    monkeypatch.delenv("LOANDOC_LLM_TEMPERATURE", raising=False)

    llm = router.llmrouter(timeout=30)
    assert llm.model == "gpt-4o-mini"
    assert llm.temperature == 0.1
    assert llm.timeout == 30


def test_router_falls_back_when_ping_fails(monkeypatch):
    def _boom(model, timeout=None):
        raise RuntimeError("OpenAI Ping test failed: 503")

    monkeypatch.setattr(router, "LLM", _FakeLLM)
    monkeypatch.setattr(router, "_ping_openai", _boom)
    monkeypatch.setenv("LOANDOC_LLM_FALLBACK_MODEL", "backup-model")
    monkeypatch.setenv("LOANDOC_LLM_TEMPERATURE", "0.4")

    llm = router.llmrouter("primary-model")
    assert llm.model == "backup-model"
    assert llm.temperature == 0.4
