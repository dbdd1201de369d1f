# tests/test_api.py
# -*- coding: utf-8 -*-
"""HTTP surface tests: FastAPI TestClient with a fake-collaborator pipeline."""

from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGenerator, FakeReviewer, text_renderer
from loandoc_pipeline.api import app, get_pipeline
from loandoc_pipeline.pipeline import DocumentPipeline


def _programs(program_id):
    return ["promissory_note", "guaranty", "irs_w9"] if program_id == "conventional_business" else []


@pytest.fixture
def client():
    pipeline = DocumentPipeline(generator=FakeGenerator(), reviewer=FakeReviewer(), renderer=text_renderer,
                                timeout=5, programs=_programs)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def deal_json(make_deal):
    return make_deal().model_dump(mode="json")


def test_ping(client):
    r = client.get("/ping")
    assert r.status_code == 200
    assert r.json() == {"pong": True}


def test_generate_explicit_documents(client, deal_json):
    r = client.post("/documents/generate", json={"deal": deal_json, "documents": ["privacy_notice", "bogus"]})
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    doc = body["results"][0]
    assert doc["doc_type"] == "privacy_notice"
    assert doc["status"] == "REVIEWED"
    assert "payload" not in doc
    assert base64.b64decode(doc["payload_b64"]).startswith(b"Privacy Notice")
    assert doc["payload_bytes"] > 0


def test_generate_program_documents(client, deal_json):
    r = client.post("/documents/generate", json={"deal": deal_json})
    assert r.status_code == 200
    statuses = {d["doc_type"]: d["status"] for d in r.json()["results"]}
    assert statuses == {"promissory_note": "REVIEWED", "guaranty": "REVIEWED", "irs_w9": "REVIEWED"}


def test_generate_unknown_program_is_404(client, deal_json):
    deal_json["program_id"] = "nope"
    r = client.post("/documents/generate", json={"deal": deal_json})
    assert r.status_code == 404
    assert "nope" in r.json()["detail"]


def test_regenerate(client, deal_json):
    r = client.post("/documents/guaranty/regenerate", json={"deal": deal_json, "feedback": "Name the guarantor"})
    assert r.status_code == 200
    assert r.json()["doc_type"] == "guaranty"

    r = client.post("/documents/bogus/regenerate", json={"deal": deal_json})
    assert r.status_code == 404


def test_invalid_deal_is_422(client):
    r = client.post("/documents/generate", json={"deal": {"borrower_name": "x"}})
    assert r.status_code == 422


def test_program_documents(client):
    r = client.get("/programs/conventional_business/documents")
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "Conventional Business Term"
    assert body["documents"][0] == "promissory_note"

    assert client.get("/programs/nope/documents").status_code == 404


def test_program_documents_filtered_for_deal(client, make_deal):
    deal = make_deal(terms={"personal_guaranty": False}).model_dump(mode="json")
    r = client.post("/programs/conventional_business/documents", json=deal)
    assert r.status_code == 200
    assert "guaranty" not in r.json()["documents"]
    assert "promissory_note" in r.json()["documents"]


def test_usury_endpoint(client):
    r = client.get("/usury/ny", params={"rate": 0.30, "amount": 300_000})
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "NY"
    assert body["known"] is True
    assert body["violates"] is True
    assert body["limit"] == pytest.approx(0.25)
    assert body["license_required"] is True
    assert body["commercial_disclosure_required"] is True

    unknown = client.get("/usury/ZZ", params={"rate": 0.5, "amount": 1000}).json()
    assert unknown["known"] is False
    assert unknown["violates"] is False
    assert unknown["license_required"] is False


def test_usury_endpoint_validates_query(client):
    assert client.get("/usury/NY", params={"rate": -1, "amount": 1000}).status_code == 422
