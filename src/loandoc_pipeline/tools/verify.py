# -*- coding: utf-8 -*-
"""
Deterministic document verification (no LLM, no review output).

Design
------
- Expected values come only from the DealInput; review results are never read.
- Each check bumps checks_run and, when satisfied, checks_passed.
- Term checks look at the rendered text only for builders that print terms;
  otherwise they count as passed (the template owns those numbers).
- passed == no critical issue. Warnings never fail a document.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from ..documents.tree import DocumentTree
from ..models import DealInput, DocTypeId, Severity, VerificationIssue, VerificationResult
from ..registry import get_spec
from .formatting import format_currency, format_currency_detailed
from .prose import is_placeholder
from .usury import evaluate_usury

LOGGER = logging.getLogger(__name__)


class _Tally:
    """Running counters + issue list for one verification pass."""

    def __init__(self) -> None:
        self.run = 0
        self.passed = 0
        self.issues: List[VerificationIssue] = []

    def check(self, ok: bool, field: str, expected: str, found: str, severity: Severity) -> bool:
        self.run += 1
        if ok:
            self.passed += 1
        else:
            self.issues.append(VerificationIssue(field=field, expected=expected, found=found, severity=severity))
        return ok

    def skip(self, count: int = 1) -> None:
        """Count checks the template already guarantees."""
        self.run += count
        self.passed += count

    def warn(self, field: str, expected: str, found: str) -> None:
        self.issues.append(VerificationIssue(field=field, expected=expected, found=found,
                                             severity=Severity.WARNING))


# ------------------------------ Helpers --------------------------------------

def _contains_any(text: str, candidates: Iterable[str]) -> bool:
    lower = text.lower()
    return any(c.lower() in lower for c in candidates if c)


def _flatten(prose: Dict[str, Any]) -> str:
    parts: List[str] = []
    for value in prose.values():
        if isinstance(value, (list, tuple)):
            parts.extend(str(v) for v in value)
        elif value is not None:
            parts.append(str(value))
    return " ".join(parts)


def _as_dict(prose: Union[BaseModel, Dict[str, Any], None]) -> Dict[str, Any]:
    if prose is None:
        return {}
    if isinstance(prose, BaseModel):
        return prose.model_dump()
    return dict(prose)


def _amount_candidates(amount: float) -> List[str]:
    return [format_currency(amount), format_currency_detailed(amount), f"{amount:,.0f}"]


def _rate_candidates(rate: float) -> List[str]:
    pct = rate * 100
    return [f"{pct:.3f}%", f"{pct:.2f}%", f"{pct:.1f}%"]


def _term_candidates(months: int) -> List[str]:
    years = months / 12
    return [f"{months} month", f"{months}-month", f"{years:.0f} year", f"{years:.0f}-year", f"{years:.1f} year"]


def _threshold_candidates(t: float) -> List[str]:
    return [f"{t:g}", f"{t:g}x", f"{t * 100:.0f}%", f"{t * 100:.1f}%", f"{t:.2f}"]


# ------------------------------ Checks ---------------------------------------

def _check_prose_keys(tally: _Tally, doc_type: DocTypeId, prose: Dict[str, Any]) -> None:
    for key, _is_list in get_spec(doc_type).sections:
        value = prose.get(key)
        present = value is not None and (bool(value) if isinstance(value, (list, tuple)) else bool(str(value).strip()))
        if tally.check(present, f"prose:{key}", "non-empty section", "missing or empty", Severity.CRITICAL):
            if is_placeholder(value):
                tally.warn(f"prose:{key}", "generated content", "placeholder injected")


def _check_terms(tally: _Tally, deal: DealInput, text: Optional[str]) -> None:
    t = deal.terms
    if text is None:
        tally.skip(4)
        return

    tally.check(_contains_any(text, _amount_candidates(t.approved_amount)), "approvedAmount",
                format_currency(t.approved_amount), "not found in document", Severity.CRITICAL)
    tally.check(_contains_any(text, _rate_candidates(t.interest_rate)), "interestRate",
                f"{t.interest_rate * 100:.3f}%", "not found in document", Severity.CRITICAL)
    tally.check(_contains_any(text, _term_candidates(t.term_months)), "termMonths",
                f"{t.term_months} months", "not found in document", Severity.WARNING)
    tally.check(_contains_any(text, [deal.borrower_name]), "borrowerName",
                deal.borrower_name, "not found in document", Severity.WARNING)


def _check_fees(tally: _Tally, deal: DealInput, text: Optional[str]) -> None:
    for fee in deal.terms.fees:
        ok = text is None or _contains_any(text, _amount_candidates(fee.amount))
        tally.check(ok, f"fee:{fee.name}", f"{fee.name}: {format_currency(fee.amount)}",
                    "fee amount not found in document", Severity.WARNING)


def _check_covenants(tally: _Tally, deal: DealInput, searchable: str) -> None:
    for covenant in deal.terms.covenants:
        if covenant.threshold is None:
            continue
        tally.check(_contains_any(searchable, _threshold_candidates(covenant.threshold)),
                    f"covenant:{covenant.name}", f"{covenant.name} threshold: {covenant.threshold:g}",
                    "covenant threshold not found", Severity.WARNING)


def _check_usury(tally: _Tally, deal: DealInput) -> None:
    t = deal.terms
    evaluation = evaluate_usury(deal.state_abbr, t.interest_rate, t.approved_amount, deal.is_commercial)
    tally.check(not evaluation.violates, "usury", f"rate <= {evaluation.limit * 100:.2f}%",
                evaluation.message, Severity.CRITICAL)


# ------------------------------ Public API -----------------------------------

def verify_document(
    doc_type: DocTypeId,
    deal: DealInput,
    prose: Union[BaseModel, Dict[str, Any], None] = None,
    document: Optional[DocumentTree] = None,
) -> VerificationResult:
    """Cross-check the deal's key terms against prose and the rendered document."""
    spec = get_spec(doc_type)
    prose_map = _as_dict(prose)
    rendered = document.plain_text() if document is not None else None
    tally = _Tally()

    _check_prose_keys(tally, spec.doc_type, prose_map)

    terms_text = rendered if spec.states_terms else None
    _check_terms(tally, deal, terms_text)
    _check_fees(tally, deal, terms_text)
    _check_covenants(tally, deal, " ".join([_flatten(prose_map), rendered or ""]))

    if spec.usury_sensitive:
        _check_usury(tally, deal)

    passed = not any(i.severity == Severity.CRITICAL for i in tally.issues)
    if not passed:
        LOGGER.info("Verification failed for %s: %d issue(s)", spec.doc_type.value, len(tally.issues))
    return VerificationResult(passed=passed, issues=tally.issues, checks_run=tally.run, checks_passed=tally.passed)
