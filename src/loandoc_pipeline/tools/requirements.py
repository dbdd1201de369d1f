# -*- coding: utf-8 -*-
"""
Requirement resolver: which candidate document types apply to a deal.

Design
------
- Applicability is a small predicate per document type (pure function of the
  deal). Types without a predicate are always required.
- filter_required_docs() is total: unrecognised strings are dropped and
  logged, never raised. Order of the candidate list is preserved.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..models import DealInput, DocTypeId

LOGGER = logging.getLogger(__name__)

Predicate = Callable[[DealInput], bool]

_REAL_PROPERTY_MARKERS = ("real_estate", "real estate", "residential", "commercial_real_estate")


def has_real_property(deal: DealInput) -> bool:
    if deal.property_address:
        return True
    for kind in deal.collateral_types:
        lowered = kind.lower().strip()
        if lowered == "real property" or any(m in lowered for m in _REAL_PROPERTY_MARKERS):
            return True
    return False


def _is_sba(deal: DealInput) -> bool:
    return deal.program_id.startswith("sba_")


def _program_is(program_id: str) -> Predicate:
    return lambda deal: deal.program_id == program_id


PREDICATES: Dict[DocTypeId, Predicate] = {
    DocTypeId.GUARANTY: lambda deal: deal.terms.personal_guaranty,
    DocTypeId.SUBORDINATION_AGREEMENT: lambda deal: bool(deal.subordinate_creditor_name),
    DocTypeId.INTERCREDITOR_AGREEMENT: lambda deal: bool(deal.second_lien_lender_name),
    DocTypeId.COMPLIANCE_CERTIFICATE: lambda deal: len(deal.terms.covenants) > 0,
    DocTypeId.CDC_DEBENTURE: _program_is("sba_504"),
    DocTypeId.SBA_FORM_1050: _program_is("sba_7a"),
    DocTypeId.BORROWING_BASE_AGREEMENT: _program_is("line_of_credit"),
    DocTypeId.DIGITAL_ASSET_PLEDGE: _program_is("crypto_collateral"),
    DocTypeId.CUSTODY_AGREEMENT: _program_is("crypto_collateral"),
}

for _doc in (DocTypeId.DEED_OF_TRUST, DocTypeId.ENVIRONMENTAL_INDEMNITY, DocTypeId.ASSIGNMENT_OF_LEASES,
             DocTypeId.FLOOD_DETERMINATION, DocTypeId.SNDA, DocTypeId.ESTOPPEL_CERTIFICATE):
    PREDICATES[_doc] = has_real_property

for _doc in (DocTypeId.SBA_AUTHORIZATION, DocTypeId.SBA_FORM_1919, DocTypeId.SBA_FORM_159,
             DocTypeId.SBA_FORM_148):
    PREDICATES[_doc] = _is_sba


def _coerce(candidate: Union[DocTypeId, str]) -> Optional[DocTypeId]:
    if isinstance(candidate, DocTypeId):
        return candidate
    try:
        return DocTypeId(str(candidate).strip())
    except ValueError:
        return None


def is_required(doc_type: DocTypeId, deal: DealInput) -> bool:
    predicate = PREDICATES.get(doc_type)
    return predicate is None or bool(predicate(deal))


def filter_required_docs(deal: DealInput, candidates: Iterable[Union[DocTypeId, str]]) -> List[DocTypeId]:
    """Keep the candidates that apply to ``deal``, in input order."""
    out: List[DocTypeId] = []
    for candidate in candidates:
        doc_type = _coerce(candidate)
        if doc_type is None:
            LOGGER.warning("Skipping unknown document type %r", candidate)
            continue
        if is_required(doc_type, deal):
            out.append(doc_type)
    return out
