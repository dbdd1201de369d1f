# -*- coding: utf-8 -*-
"""
Compliance review stage for prose-backed documents.

Design
------
- Deterministic document checks run first (no LLM): governing-law state,
  usury-savings language, state-disclosure reminder.
- The reviewer collaborator returns a ReviewerVerdict; this module only
  interprets it (issue shape, severity, corrections, checklist mapping).
- Corrections replace existing prose keys only and are re-validated.
- Reviewer errors/timeouts PROPAGATE as CollaboratorError/CollaboratorTimeout;
  the orchestrator turns them into a FLAGGED result.
- Checklists come from config/legal_checklists.yaml (base + program overlay).
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ValidationError

from ..errors import CollaboratorError, ConfigError
from ..models import (
    ComplianceCheck,
    DealInput,
    DocTypeId,
    ReviewerVerdict,
    ReviewIssue,
    ReviewResult,
    Severity,
)
from ..registry import get_spec
from .collaborators import ComplianceReviewer, call_with_timeout
from .config_loader import config_dir, load_config
from .generate import build_deal_context, sanitize_json
from .prose import validate_prose
from .usury import disclosure_requirements, get_jurisdiction_rule

# ------------------------------ Logger ---------------------------------------

LOGGER = logging.getLogger(__name__)

# ------------------------------ Constants ------------------------------------

CHECKLIST_FILE: str = "legal_checklists.yaml"
CHECKLIST_CATEGORIES: Tuple[str, ...] = ("required", "standard", "regulatory", "cross_document")

_ITEMS = {"type": "array", "items": {"type": "string"}}
_CHECKLIST = {
    "type": "object",
    "properties": {c: _ITEMS for c in CHECKLIST_CATEGORIES},
    "additionalProperties": False,
}
CHECKLIST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["documents"],
    "properties": {
        "version": {"type": "integer"},
        "documents": {"type": "object", "additionalProperties": _CHECKLIST},
        "overlays": {
            "type": "object",
            "additionalProperties": {"type": "object", "additionalProperties": _CHECKLIST},
        },
    },
}

_USURY_SAVINGS_MARKERS = ("usury", "maximum lawful rate", "maximum rate permitted", "maximum amount permitted")

# keyword -> regulation, first match wins
_REGULATION_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("ucc", "uniform commercial code", "§9-", "section 9-"), "Uniform Commercial Code"),
    (("cercla", "42 usc", "42 u.s.c"), "CERCLA (42 U.S.C. §9601 et seq.)"),
    (("rcra", "resource conservation"), "RCRA (42 U.S.C. §6901 et seq.)"),
    (("clean water", "33 usc"), "Clean Water Act"),
    (("tila", "regulation z", "12 cfr"), "Truth in Lending Act (Reg Z)"),
    (("ecoa", "equal credit"), "Equal Credit Opportunity Act"),
    (("respa",), "Real Estate Settlement Procedures Act"),
    (("bankruptcy", "11 u.s.c", "§36", "section 36"), "U.S. Bankruptcy Code"),
    (("aba", "american bar"), "ABA Legal Opinion Accord"),
    (("tribar",), "TriBar Opinion Committee Standards"),
    (("usury",), "State Usury Law"),
    (("llc act", "corporation act", "partnership act"), "State Entity Law"),
    (("landlord-tenant", "lease subordination"), "State Landlord-Tenant Law"),
    (("recording",), "State Recording Requirements"),
    (("community property",), "Community Property Law"),
]
DEFAULT_REGULATION = "Commercial Lending Standards"


class ReviewOutcome(NamedTuple):
    result: ReviewResult
    checks: List[ComplianceCheck]
    corrected_prose: Optional[BaseModel]


# ------------------------------ Checklists -----------------------------------

@lru_cache(maxsize=4)
def _load_checklists(folder: str) -> Dict[str, Any]:
    try:
        return load_config(CHECKLIST_FILE, CHECKLIST_SCHEMA)
    except ConfigError as exc:
        LOGGER.warning("Legal checklists unavailable (%s); reviewing without a checklist", exc)
        return {"documents": {}, "overlays": {}}


def clear_cache() -> None:
    _load_checklists.cache_clear()


def load_checklist(doc_type: DocTypeId, program_id: Optional[str] = None) -> Dict[str, List[str]]:
    """Base checklist for the document type with the program overlay appended."""
    data = _load_checklists(str(config_dir()))
    base = data.get("documents", {}).get(doc_type.value, {})
    overlay = (data.get("overlays") or {}).get(program_id or "", {}).get(doc_type.value, {})
    return {c: list(base.get(c, [])) + list(overlay.get(c, [])) for c in CHECKLIST_CATEGORIES}


def extract_regulation(provision: str) -> str:
    lower = provision.lower()
    for keywords, regulation in _REGULATION_KEYWORDS:
        if any(k in lower for k in keywords):
            return regulation
    return DEFAULT_REGULATION


# ------------------------------ Deterministic checks -------------------------

def _text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return "" if value is None else str(value)


def _governing_law_check(doc_type: DocTypeId, deal: DealInput, prose: Dict[str, Any]) -> Optional[ComplianceCheck]:
    keys = [k for k, _ in get_spec(doc_type).sections if k.startswith("governingLaw")]
    abbr = (deal.state_abbr or "").strip().upper()
    if not keys or not abbr:
        return None
    rule = get_jurisdiction_rule(abbr)
    text = " ".join(_text(prose.get(k)) for k in keys)
    named = bool(re.search(rf"\b{re.escape(abbr)}\b", text)) or (rule is not None and rule.name.lower() in text.lower())
    state = rule.name if rule else abbr
    return ComplianceCheck(
        name="Governing law names deal jurisdiction",
        regulation="State choice-of-law",
        category="standard",
        passed=named,
        note=f"Governing law clause {'names' if named else 'does not name'} {state}.",
        severity=Severity.INFO if named else Severity.WARNING,
    )


def _usury_savings_check(doc_type: DocTypeId, prose: Dict[str, Any]) -> Optional[ComplianceCheck]:
    if not get_spec(doc_type).usury_sensitive:
        return None
    text = " ".join(_text(v) for v in prose.values()).lower()
    present = any(m in text for m in _USURY_SAVINGS_MARKERS)
    return ComplianceCheck(
        name="Usury savings clause",
        regulation="State Usury Law",
        category="regulatory",
        passed=present,
        note="Usury savings language present." if present
        else "No usury savings clause found; interest should be capped at the maximum lawful rate.",
        severity=Severity.INFO if present else Severity.WARNING,
    )


def _disclosure_check(deal: DealInput) -> Optional[ComplianceCheck]:
    disclosures = disclosure_requirements(deal.state_abbr)
    if not disclosures:
        return None
    return ComplianceCheck(
        name="State disclosure requirements",
        regulation=f"{(deal.state_abbr or '').upper()} disclosure law",
        category="regulatory",
        passed=True,
        note="Confirm delivery of: " + "; ".join(disclosures),
        severity=Severity.INFO,
    )


def document_checks(doc_type: DocTypeId, deal: DealInput, prose: Dict[str, Any]) -> List[ComplianceCheck]:
    checks = [
        _governing_law_check(doc_type, deal, prose),
        _usury_savings_check(doc_type, prose),
        _disclosure_check(deal),
    ]
    return [c for c in checks if c is not None]


# ------------------------------ Verdict interpretation -----------------------

def _issues(verdict: ReviewerVerdict) -> List[ReviewIssue]:
    out: List[ReviewIssue] = []
    for raw in verdict.issues_found:
        if not all(isinstance(v, str) for v in (raw.severity, raw.section, raw.description)):
            continue
        try:
            severity = Severity(raw.severity.strip().lower())
        except ValueError:
            severity = Severity.WARNING
        out.append(ReviewIssue(
            severity=severity,
            section=raw.section,
            description=raw.description,
            recommendation=raw.fix_applied or "Corrected in revised prose",
        ))
    return out


def _has_content(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return any(isinstance(v, str) and v.strip() for v in value)
    return isinstance(value, str) and bool(value.strip())


def _apply_corrections(prose: Dict[str, Any], corrections: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    """Replace existing sections with non-blank corrected text; blank corrections are dropped."""
    updated = dict(prose)
    applied = 0
    for key, value in (corrections or {}).items():
        if key in prose and _has_content(value):
            updated[key] = value
            applied += 1
    return updated, applied


def _checklist_checks(verdict: ReviewerVerdict) -> List[ComplianceCheck]:
    out: List[ComplianceCheck] = []
    for item in verdict.checklist_results:
        if not isinstance(item.provision, str) or not isinstance(item.passed, bool):
            continue
        out.append(ComplianceCheck(
            name=item.provision,
            regulation=extract_regulation(item.provision),
            category="regulatory" if item.category == "regulatory" else "standard",
            passed=item.passed,
            note=item.note or "",
            severity=Severity.INFO if item.passed else Severity.WARNING,
        ))
    return out


def _as_verdict(raw: Any) -> ReviewerVerdict:
    if isinstance(raw, ReviewerVerdict):
        return raw
    try:
        return ReviewerVerdict.model_validate(raw)
    except ValidationError as exc:
        raise CollaboratorError(f"Reviewer returned an unreadable verdict: {exc}") from exc


# ------------------------------ Public API -----------------------------------

def review_document(
    doc_type: DocTypeId,
    deal: DealInput,
    prose: BaseModel,
    *,
    reviewer: ComplianceReviewer,
    timeout: Optional[float] = None,
) -> ReviewOutcome:
    """Run deterministic checks, then the reviewer; interpret its verdict."""
    spec = get_spec(doc_type)
    prose_map = prose.model_dump()
    checks = document_checks(spec.doc_type, deal, prose_map)
    checklist = load_checklist(spec.doc_type, deal.program_id)

    raw = call_with_timeout(f"review:{spec.doc_type.value}", timeout, reviewer.review,
                            spec.doc_type, deal, prose_map, checklist, timeout)
    verdict = _as_verdict(raw)

    issues = [
        ReviewIssue(severity=c.severity, section="compliance", description=c.note, recommendation=c.name)
        for c in checks if not c.passed
    ] + _issues(verdict)

    corrected_prose: Optional[BaseModel] = None
    merged, applied = _apply_corrections(prose_map, verdict.corrected_sections)
    if applied:
        corrected_prose = validate_prose(spec.doc_type, merged).prose

    has_critical = any(i.severity == Severity.CRITICAL for i in issues)
    passed = not has_critical or applied > 0
    LOGGER.info("Reviewed %s: %d issue(s), %d correction(s), passed=%s",
                spec.doc_type.value, len(issues), applied, passed)
    return ReviewOutcome(
        result=ReviewResult(passed=passed, issues=issues),
        checks=checks + _checklist_checks(verdict),
        corrected_prose=corrected_prose,
    )


# ------------------------------ CrewAI reviewer ------------------------------

class CrewComplianceReviewer:
    """ComplianceReviewer backed by LoanDocCrew.review_crew() (output_pydantic=ReviewerVerdict)."""

    def review(
        self,
        doc_type: DocTypeId,
        deal: DealInput,
        prose: Dict[str, Any],
        checklist: Dict[str, List[str]],
        timeout: Optional[float] = None,
    ) -> ReviewerVerdict:
        inputs = {
            "doc_label": get_spec(doc_type).label,
            "deal_context": build_deal_context(deal),
            "prose_json": json.dumps(prose, ensure_ascii=False, indent=2),
            "checklist": json.dumps(checklist, ensure_ascii=False, indent=2),
        }
        output = self._kickoff(inputs, timeout)
        structured = getattr(output, "pydantic", None)
        if isinstance(structured, ReviewerVerdict):
            return structured
        raw = getattr(output, "raw", output)
        try:
            return ReviewerVerdict.model_validate_json(sanitize_json(str(raw)))
        except ValidationError as exc:
            raise CollaboratorError(f"Reviewer returned an unreadable verdict: {exc}") from exc

    def _kickoff(self, inputs: Dict[str, str], timeout: Optional[float]) -> Any:
        from ..crew import LoanDocCrew

        return LoanDocCrew(timeout=timeout).review_crew().kickoff(inputs=inputs)
