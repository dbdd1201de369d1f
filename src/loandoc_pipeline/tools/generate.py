# -*- coding: utf-8 -*-
"""
Prose generation collaborator backed by the CrewAI drafting crew.

Design
------
- build_deal_context() renders the deal as the prompt's single source of
  truth for numbers; the drafter is told never to invent figures.
- Reviewer/user feedback is appended under a MANDATORY CORRECTIONS banner.
- Output is parsed leniently (fences and surrounding chatter stripped) but
  must be a JSON object; anything else raises ProseFormatError.
- `_kickoff` is the only method that touches the LLM, so tests patch it.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from ..errors import ProseFormatError
from ..models import DealInput, DocTypeId
from ..registry import get_spec
from .formatting import format_currency, format_currency_detailed, number_to_words

LOGGER = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _block(lines: List[str]) -> str:
    return "\n".join(lines) if lines else "  None"


def build_deal_context(deal: DealInput) -> str:
    t = deal.terms
    fees = [f"  - {f.name}: {format_currency(f.amount)} ({f.description})" for f in t.fees]
    covenants = [
        f"  - {c.name}: {c.description}" + (f" (threshold: {c.threshold:g})" if c.threshold is not None else "")
        + f" [{c.frequency}]"
        for c in t.covenants
    ]
    conditions = [f"  - [{c.category}] {c.description} ({c.priority})" for c in t.conditions]
    special = [f"  - {s}" for s in t.special_terms]

    return "\n".join([
        "DEAL TERMS (source of truth; use these exact numbers):",
        f"Borrower: {deal.borrower_name}",
        f"Lender: {deal.lender_name}",
        f"Loan Program: {deal.program_name or deal.program_id} ({deal.program_category})",
        f"Loan Purpose: {deal.loan_purpose or 'General commercial purposes'}",
        f"Property/Collateral: {deal.property_address or 'As described in security agreement'}",
        f"Collateral Types: {', '.join(deal.collateral_types) or 'Not specified'}",
        f"State: {deal.state_abbr or 'Not specified'}",
        f"Entity Type: {deal.entity_type or 'Not specified'}",
        f"Guarantor: {deal.guarantor_name or 'None'}",
        f"Subordinate Creditor: {deal.subordinate_creditor_name or 'None'}",
        f"Second Lien Lender: {deal.second_lien_lender_name or 'None'}",
        "",
        f"Principal Amount: {format_currency(t.approved_amount)} ({number_to_words(t.approved_amount)} dollars)",
        f"Interest Rate: {t.interest_rate * 100:.3f}% per annum",
        f"Term: {t.term_months} months ({t.term_months / 12:.1f} years)",
        f"Amortization: {t.amortization_months} months ({t.amortization_months / 12:.1f} years)",
        f"Monthly Payment: {format_currency_detailed(t.monthly_payment)}",
        f"LTV: {f'{t.ltv * 100:.1f}%' if t.ltv is not None else 'N/A'}",
        f"Interest Only: {_yes_no(t.interest_only)}",
        f"Prepayment Penalty: {_yes_no(t.prepayment_penalty)}",
        f"Personal Guaranty Required: {_yes_no(t.personal_guaranty)}",
        f"Late Fee: {t.late_fee_percent * 100:.1f}% after {t.late_fee_grace_days} day grace period",
        "",
        "Fees:",
        _block(fees),
        "Covenants:",
        _block(covenants),
        "Conditions:",
        _block(conditions),
        "Special Terms:",
        _block(special),
    ])


def format_feedback(feedback: Optional[str]) -> str:
    if not feedback or not feedback.strip():
        return ""
    return ("=== MANDATORY CORRECTIONS ===\n"
            "The previous draft was rejected. Apply every correction below:\n"
            f"{feedback.strip()}")


def sanitize_json(raw: str) -> str:
    """Extract the JSON object from raw LLM output (fences, chatter, trailing commas)."""
    text = (raw or "").strip().lstrip("\ufeff")
    if text.startswith("```"):
        parts = text.split("```")
        text = parts[1] if len(parts) >= 3 else text[3:]
    text = text.strip()
    if text.lower().startswith("json"):
        text = text[4:].strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ProseFormatError("Generator did not return a JSON object")
    return _TRAILING_COMMA.sub(r"\1", text[start:end + 1])


def parse_prose(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(sanitize_json(str(raw)))
    except json.JSONDecodeError as exc:
        raise ProseFormatError(f"Generator returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProseFormatError("Generator output must be a JSON object")
    return data


class CrewProseGenerator:
    """ProseGenerator backed by LoanDocCrew.drafting_crew()."""

    def generate(
        self,
        doc_type: DocTypeId,
        deal: DealInput,
        sections: List[str],
        feedback: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        spec = get_spec(doc_type)
        inputs = {
            "doc_label": spec.label,
            "deal_context": build_deal_context(deal),
            "sections": ", ".join(sections),
            "list_sections": ", ".join(k for k, is_list in spec.sections if is_list) or "none",
            "feedback": format_feedback(feedback),
        }
        LOGGER.info("Drafting %s for %s", spec.doc_type.value, deal.borrower_name)
        return parse_prose(self._kickoff(inputs, timeout))

    def _kickoff(self, inputs: Dict[str, str], timeout: Optional[float]) -> str:
        from ..crew import LoanDocCrew

        output = LoanDocCrew(timeout=timeout).drafting_crew().kickoff(inputs=inputs)
        return getattr(output, "raw", str(output))
