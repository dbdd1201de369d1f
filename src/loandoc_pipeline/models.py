from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class DocTypeId(str, Enum):
    # prose-backed
    PROMISSORY_NOTE = "promissory_note"
    LOAN_AGREEMENT = "loan_agreement"
    SECURITY_AGREEMENT = "security_agreement"
    GUARANTY = "guaranty"
    COMMITMENT_LETTER = "commitment_letter"
    ENVIRONMENTAL_INDEMNITY = "environmental_indemnity"
    ASSIGNMENT_OF_LEASES = "assignment_of_leases"
    SUBORDINATION_AGREEMENT = "subordination_agreement"
    INTERCREDITOR_AGREEMENT = "intercreditor_agreement"
    CORPORATE_RESOLUTION = "corporate_resolution"
    UCC_FINANCING_STATEMENT = "ucc_financing_statement"
    SNDA = "snda"
    ESTOPPEL_CERTIFICATE = "estoppel_certificate"
    BORROWERS_CERTIFICATE = "borrowers_certificate"
    OPINION_LETTER = "opinion_letter"
    DEED_OF_TRUST = "deed_of_trust"
    SBA_AUTHORIZATION = "sba_authorization"
    CDC_DEBENTURE = "cdc_debenture"
    BORROWING_BASE_AGREEMENT = "borrowing_base_agreement"
    DIGITAL_ASSET_PLEDGE = "digital_asset_pledge"
    CUSTODY_AGREEMENT = "custody_agreement"
    # zero-content
    SETTLEMENT_STATEMENT = "settlement_statement"
    COMPLIANCE_CERTIFICATE = "compliance_certificate"
    AMORTIZATION_SCHEDULE = "amortization_schedule"
    CLOSING_DISCLOSURE = "closing_disclosure"
    LOAN_ESTIMATE = "loan_estimate"
    SBA_FORM_1919 = "sba_form_1919"
    SBA_FORM_159 = "sba_form_159"
    SBA_FORM_148 = "sba_form_148"
    SBA_FORM_1050 = "sba_form_1050"
    IRS_4506C = "irs_4506c"
    IRS_W9 = "irs_w9"
    FLOOD_DETERMINATION = "flood_determination"
    PRIVACY_NOTICE = "privacy_notice"
    PATRIOT_ACT_NOTICE = "patriot_act_notice"
    DISBURSEMENT_AUTHORIZATION = "disbursement_authorization"


class Status(str, Enum):
    REVIEWED = "REVIEWED"
    FLAGGED = "FLAGGED"
    DRAFT = "DRAFT"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


# ------------------------------ Deal input -----------------------------------

class Fee(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    amount: float
    description: str = ""


class Covenant(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    threshold: Optional[float] = None
    frequency: str = "annually"


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    description: str
    priority: str = "required"


class DealTerms(BaseModel):
    model_config = ConfigDict(frozen=True)

    approved_amount: float = Field(gt=0)
    interest_rate: float = Field(ge=0)      # decimal, 0.0725 == 7.25%
    term_months: int = Field(ge=0)
    amortization_months: int = Field(ge=0)
    monthly_payment: float = 0.0
    ltv: Optional[float] = None
    interest_only: bool = False
    prepayment_penalty: bool = False
    personal_guaranty: bool = False
    late_fee_percent: float = 0.05
    late_fee_grace_days: int = 10
    fees: Tuple[Fee, ...] = ()
    covenants: Tuple[Covenant, ...] = ()
    conditions: Tuple[Condition, ...] = ()
    special_terms: Tuple[str, ...] = ()


class DealInput(BaseModel):
    """Immutable description of one transaction; read by every stage."""

    model_config = ConfigDict(frozen=True)

    borrower_name: str
    lender_name: str
    program_id: str
    program_name: str = ""
    program_category: str = "commercial"
    loan_purpose: Optional[str] = None
    property_address: Optional[str] = None
    state_abbr: Optional[str] = None
    entity_type: Optional[str] = None
    guarantor_name: Optional[str] = None
    subordinate_creditor_name: Optional[str] = None
    second_lien_lender_name: Optional[str] = None
    collateral_types: Tuple[str, ...] = ()
    is_commercial: bool = True
    terms: DealTerms
    generated_at: datetime = Field(default_factory=_utc_now)
    maturity_date: Optional[date] = None
    first_payment_date: Optional[date] = None


# ------------------------------ Results --------------------------------------

class ComplianceCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    regulation: str
    category: str           # regulatory | standard
    passed: bool
    note: str = ""
    severity: Severity = Severity.INFO


class ReviewIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    section: str
    description: str
    recommendation: str = ""


class ReviewResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: bool
    issues: List[ReviewIssue] = Field(default_factory=list)
    reviewed_at: datetime = Field(default_factory=_utc_now)


class VerificationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    expected: str
    found: str
    severity: Severity


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: bool
    issues: List[VerificationIssue] = Field(default_factory=list)
    checks_run: int = 0
    checks_passed: int = 0


class DocumentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    doc_type: DocTypeId
    label: str
    payload: bytes
    review: ReviewResult
    verification: VerificationResult
    compliance_checks: List[ComplianceCheck] = Field(default_factory=list)
    status: Status
    diagnostics: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utc_now)


# ------------------------------ Rule table -----------------------------------

class JurisdictionRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    abbreviation: str
    name: str
    max_rate: float                                  # 999 == no civil limit
    commercial_exemption: bool = False
    exemption_threshold: float = 0
    exemption_cap: Optional[float] = None
    criminal_cap: Optional[float] = None
    criminal_exempt_threshold: Optional[float] = None
    disclosure_required: bool = False
    license_required: bool = False
    disclosures: List[str] = Field(default_factory=list)
    statute: str = ""
    notes: str = ""


class UsuryEvaluation(BaseModel):
    model_config = ConfigDict(frozen=True)

    violates: bool
    limit: float
    message: str


# ------------------------------ Reviewer output ------------------------------

class ReviewerIssue(BaseModel):
    severity: Optional[str] = None
    section: Optional[str] = None
    description: Optional[str] = None
    fix_applied: Optional[str] = None


class ChecklistResult(BaseModel):
    provision: Optional[str] = None
    category: Optional[str] = None
    passed: Optional[bool] = None
    note: Optional[str] = None


class ReviewerVerdict(BaseModel):
    issues_found: List[ReviewerIssue] = Field(default_factory=list)
    corrected_sections: dict = Field(default_factory=dict)   # section -> str | list[str]
    checklist_results: List[ChecklistResult] = Field(default_factory=list)
