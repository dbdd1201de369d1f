# -*- coding: utf-8 -*-
"""
Document-type registry.

Design
------
- One DocTypeSpec per DocTypeId, built once at import and read-only after.
- `sections` is the ordered prose schema: (key, is_list). Zero-content types
  have no sections and never call the generator.
- `builder` is None for types that resolve to a DRAFT placeholder; every
  shipped type has one, the slot stays open for types added ahead of a template.
- `states_terms` marks builders that print amount, rate and term, so
  verification can look for them in the rendered text.
- `usury_sensitive` marks the instruments that fix the contract rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, create_model

from .documents import builders
from .documents.builders import Builder
from .errors import UnknownDocumentType
from .models import DocTypeId
from .tools.requirements import PREDICATES, Predicate

Sections = Tuple[Tuple[str, bool], ...]


@dataclass(frozen=True)
class DocTypeSpec:
    doc_type: DocTypeId
    label: str
    sections: Sections
    predicate: Optional[Predicate]
    builder: Optional[Builder]
    zero_content: bool
    states_terms: bool
    usury_sensitive: bool


def _s(*keys: str) -> Sections:
    """'name[]' marks a list-typed section."""
    return tuple((k[:-2], True) if k.endswith("[]") else (k, False) for k in keys)


_PROSE: Dict[DocTypeId, Tuple[str, Sections]] = {
    DocTypeId.PROMISSORY_NOTE: ("Promissory Note", _s(
        "defaultProvisions", "accelerationClause", "lateFeeProvision", "waiverProvisions",
        "governingLawClause", "miscellaneousProvisions")),
    DocTypeId.LOAN_AGREEMENT: ("Loan Agreement", _s(
        "recitals", "representations[]", "eventsOfDefault[]", "remediesOnDefault", "waiverAndAmendment",
        "noticeProvisions", "miscellaneous", "governingLaw")),
    DocTypeId.SECURITY_AGREEMENT: ("Security Agreement", _s(
        "collateralDescription", "perfectionLanguage", "representationsAndWarranties[]", "remediesOnDefault",
        "dispositionOfCollateral", "governingLaw")),
    DocTypeId.GUARANTY: ("Guaranty Agreement", _s(
        "guarantyScope", "waiverOfDefenses[]", "subrogationWaiver", "subordination", "miscellaneous",
        "governingLaw")),
    DocTypeId.COMMITMENT_LETTER: ("Commitment Letter", _s(
        "openingParagraph", "conditionsPrecedent[]", "representationsRequired", "expirationClause",
        "governingLaw")),
    DocTypeId.ENVIRONMENTAL_INDEMNITY: ("Environmental Indemnity Agreement", _s(
        "indemnificationScope", "representationsAndWarranties[]", "covenants[]", "remediationObligations",
        "survivalClause", "governingLaw")),
    DocTypeId.ASSIGNMENT_OF_LEASES: ("Assignment of Leases and Rents", _s(
        "assignmentGrant", "representationsAndWarranties[]", "covenants[]", "lenderRights",
        "tenantNotification", "governingLaw")),
    DocTypeId.SUBORDINATION_AGREEMENT: ("Subordination Agreement", _s(
        "subordinationTerms", "seniorDebtDescription", "subordinateDebtDescription", "paymentRestrictions",
        "standstillProvisions", "turnoverProvisions", "governingLaw")),
    DocTypeId.INTERCREDITOR_AGREEMENT: ("Intercreditor Agreement", _s(
        "definitionsAndInterpretation", "lienPriority", "paymentWaterfall", "standstillAndCure",
        "enforcementRights", "purchaseOption", "releaseAndAmendment", "bankruptcyProvisions", "governingLaw")),
    DocTypeId.CORPORATE_RESOLUTION: ("Corporate Resolution", _s(
        "resolutionRecitals", "authorizationClause", "authorizedSigners", "ratificationClause",
        "certificateOfSecretary", "governingLaw")),
    DocTypeId.UCC_FINANCING_STATEMENT: ("UCC-1 Financing Statement", _s(
        "collateralDescription", "proceedsClause", "filingInstructions", "additionalProvisions")),
    DocTypeId.SNDA: ("Subordination, Non-Disturbance and Attornment Agreement", _s(
        "subordinationTerms", "nonDisturbanceTerms", "attornmentTerms", "lenderProtections", "governingLaw")),
    DocTypeId.ESTOPPEL_CERTIFICATE: ("Tenant Estoppel Certificate", _s("additionalCertifications")),
    DocTypeId.BORROWERS_CERTIFICATE: ("Borrower's Certificate", _s("additionalCertifications", "governingLaw")),
    DocTypeId.OPINION_LETTER: ("Legal Opinion Letter", _s("additionalOpinions", "governingLaw")),
    DocTypeId.DEED_OF_TRUST: ("Deed of Trust", _s(
        "grantClause", "borrowerCovenants[]", "defaultProvisions", "powerOfSale", "environmentalCovenants",
        "governingLaw")),
    DocTypeId.SBA_AUTHORIZATION: ("SBA Authorization", _s("specialConditions[]", "useOfProceeds", "governingLaw")),
    DocTypeId.CDC_DEBENTURE: ("CDC Debenture", _s("projectDescription", "cdcTermsAndConditions", "governingLaw")),
    DocTypeId.BORROWING_BASE_AGREEMENT: ("Borrowing Base Agreement", _s(
        "eligibilityCriteria", "advanceRates", "reportingRequirements", "reserveProvisions", "governingLaw")),
    DocTypeId.DIGITAL_ASSET_PLEDGE: ("Digital Asset Pledge Agreement", _s(
        "pledgeGrant", "valuationMethodology", "marginCallProvisions", "liquidationProvisions",
        "custodyRequirements", "governingLaw")),
    DocTypeId.CUSTODY_AGREEMENT: ("Digital Asset Custody Agreement", _s(
        "custodyTerms", "accessControl", "insuranceRequirements", "transferProvisions",
        "terminationProvisions", "governingLaw")),
}

# label, builder, states_terms
_ZERO_CONTENT: Dict[DocTypeId, Tuple[str, Optional[Builder], bool]] = {
    DocTypeId.SETTLEMENT_STATEMENT: ("Settlement Statement", builders.build_settlement_statement, True),
    DocTypeId.COMPLIANCE_CERTIFICATE: ("Compliance Certificate", builders.build_compliance_certificate, False),
    DocTypeId.AMORTIZATION_SCHEDULE: ("Amortization Schedule", builders.build_amortization_schedule, True),
    DocTypeId.CLOSING_DISCLOSURE: ("Closing Disclosure", builders.build_closing_disclosure, True),
    DocTypeId.LOAN_ESTIMATE: ("Loan Estimate", builders.build_loan_estimate, True),
    DocTypeId.SBA_FORM_1919: ("SBA Form 1919: Borrower Information Form", builders.build_sba_form_1919, False),
    DocTypeId.SBA_FORM_159: ("SBA Form 159: Fee Disclosure and Compensation Agreement",
                             builders.build_sba_form_159, False),
    DocTypeId.SBA_FORM_148: ("SBA Form 148: Unconditional Guarantee", builders.build_sba_form_148, False),
    DocTypeId.SBA_FORM_1050: ("SBA Form 1050: Settlement Sheet", builders.build_sba_form_1050, False),
    DocTypeId.IRS_4506C: ("IRS Form 4506-C", builders.build_irs_4506c, False),
    DocTypeId.IRS_W9: ("IRS Form W-9", builders.build_irs_w9, False),
    DocTypeId.FLOOD_DETERMINATION: ("Flood Hazard Determination", builders.build_flood_determination, False),
    DocTypeId.PRIVACY_NOTICE: ("Privacy Notice", builders.build_privacy_notice, False),
    DocTypeId.PATRIOT_ACT_NOTICE: ("USA PATRIOT Act Notice", builders.build_patriot_act_notice, False),
    DocTypeId.DISBURSEMENT_AUTHORIZATION: ("Disbursement Authorization",
                                           builders.build_disbursement_authorization, False),
}

_USURY_SENSITIVE = {DocTypeId.PROMISSORY_NOTE, DocTypeId.LOAN_AGREEMENT}


def _build_registry() -> Dict[DocTypeId, DocTypeSpec]:
    registry: Dict[DocTypeId, DocTypeSpec] = {}
    for doc_type, (label, sections) in _PROSE.items():
        registry[doc_type] = DocTypeSpec(
            doc_type=doc_type,
            label=label,
            sections=sections,
            predicate=PREDICATES.get(doc_type),
            builder=builders.legal_instrument(label, sections,
                                              guarantor_signs=doc_type == DocTypeId.GUARANTY,
                                              tail=builders.INSTRUMENT_TAILS.get(doc_type)),
            zero_content=False,
            states_terms=True,
            usury_sensitive=doc_type in _USURY_SENSITIVE,
        )
    for doc_type, (label, builder, states_terms) in _ZERO_CONTENT.items():
        registry[doc_type] = DocTypeSpec(
            doc_type=doc_type,
            label=label,
            sections=(),
            predicate=PREDICATES.get(doc_type),
            builder=builder,
            zero_content=True,
            states_terms=states_terms,
            usury_sensitive=False,
        )
    return registry


REGISTRY: Dict[DocTypeId, DocTypeSpec] = _build_registry()


def parse_doc_type(value: Union[DocTypeId, str]) -> DocTypeId:
    if isinstance(value, DocTypeId):
        return value
    try:
        return DocTypeId(str(value).strip())
    except ValueError:
        raise UnknownDocumentType(value) from None


def get_spec(doc_type: Union[DocTypeId, str]) -> DocTypeSpec:
    return REGISTRY[parse_doc_type(doc_type)]


def all_doc_types() -> List[DocTypeId]:
    return list(REGISTRY)


@lru_cache(maxsize=None)
def prose_model(doc_type: DocTypeId) -> Type[BaseModel]:
    """Frozen pydantic model for the type's prose; unknown extra keys are kept."""
    spec = get_spec(doc_type)
    fields = {key: ((List[str] if is_list else str), ...) for key, is_list in spec.sections}
    name = "".join(part.capitalize() for part in spec.doc_type.value.split("_")) + "Prose"
    return create_model(name, __config__=ConfigDict(frozen=True, extra="allow"), **fields)
