# -*- coding: utf-8 -*-
"""
Program-level compliance checks (deterministic, no LLM).

Design
------
- Each label in a program's `compliance_checks` list maps to one small
  `_check_*` function through CHECK_REGISTRY.
- Unknown labels produce a "Not implemented" warning instead of failing.
- LTV and term limits are always appended, whatever the program lists.
- Usury uses the same jurisdiction table as document verification.
- Qualitative requirements (OFAC, BSA/AML, credit elsewhere, ...) are
  advisory: they pass with a warning/info note for the loan file.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from pydantic import BaseModel, ConfigDict

from ..models import ComplianceCheck, DealInput, Severity
from .programs import LoanProgram, get_program
from .requirements import has_real_property
from .usury import evaluate_usury, get_jurisdiction_rule

# ------------------------------ Logger ---------------------------------------

LOGGER = logging.getLogger(__name__)

# ------------------------------ Constants ------------------------------------

SBA_7A_MAX_AMOUNT: float = 5_000_000
SBA_504_MAX_AMOUNT: float = 5_500_000      # manufacturing/energy cap
HPML_THRESHOLD: float = 0.085              # conservative APOR + 1.5%
NON_QM_PROGRAMS = {"dscr", "bank_statement"}
_FIXED_ASSET_MARKERS = ("real_estate", "real estate", "heavy_equipment", "heavy equipment")


class ComplianceCheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    regulation: str
    description: str
    severity: Severity


def _result(name: str, passed: bool, regulation: str, description: str, severity: Severity) -> ComplianceCheckResult:
    return ComplianceCheckResult(name=name, passed=passed, regulation=regulation,
                                 description=description, severity=severity)


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _pct(rate: float, places: int = 1) -> str:
    return f"{rate * 100:.{places}f}%"


# ------------------------------ Checks ---------------------------------------

def _check_usury(deal: DealInput) -> ComplianceCheckResult:
    name = "Usury Compliance"
    state = (deal.state_abbr or "").strip().upper()
    rule = get_jurisdiction_rule(state)
    if rule is None:
        note = (f'State "{state}" not found in usury table. Manual review recommended.' if state
                else "No state specified on deal. Usury check cannot be performed; manual review required.")
        return _result(name, True, "State usury statutes", note, Severity.WARNING)

    rate = deal.terms.interest_rate
    evaluation = evaluate_usury(state, rate, deal.terms.approved_amount, deal.is_commercial)
    statute = rule.statute or f"{rule.name} usury statutes"
    if evaluation.violates:
        return _result(name, False, statute,
                       f"{evaluation.message}. Loan may be unenforceable or subject to penalties.",
                       Severity.CRITICAL)
    return _result(name, True, statute,
                   f"Interest rate of {_pct(rate, 3)}: {evaluation.message} ({rule.name}).",
                   Severity.INFO)


def _check_sba_size_standard(deal: DealInput) -> ComplianceCheckResult:
    amount = deal.terms.approved_amount
    if deal.program_id == "sba_7a":
        label, cap, cite = "7(a)", SBA_7A_MAX_AMOUNT, "13 CFR §120.151; SBA SOP 50 10 7"
    elif deal.program_id == "sba_504":
        label, cap, cite = "504", SBA_504_MAX_AMOUNT, "13 CFR §120.931; SBA SOP 50 10 7"
    else:
        return _result("SBA Size Standard", True, "13 CFR §120",
                       "SBA size standard check not applicable to this program.", Severity.INFO)

    passed = amount <= cap
    verdict = "is within" if passed else "EXCEEDS"
    return _result(f"SBA Size Standard: {label} Loan Limit", passed, cite,
                   f"Loan amount of {_money(amount)} {verdict} the SBA {label} maximum of {_money(cap)}.",
                   Severity.INFO if passed else Severity.CRITICAL)


def _check_sba_504_eligibility(deal: DealInput) -> ComplianceCheckResult:
    notes: List[str] = []
    lowered = [c.lower() for c in deal.collateral_types]
    passed = any(marker in c for c in lowered for marker in _FIXED_ASSET_MARKERS)
    if not passed:
        notes.append("SBA 504 requires fixed-asset collateral (real estate or heavy equipment). "
                     "Current collateral types do not include eligible fixed assets.")
    notes.append("Borrower must have tangible net worth not exceeding $15M and average net income "
                 "not exceeding $5M for the two preceding years per 13 CFR §121.301(c).")
    return _result("SBA 504 Eligibility", passed, "13 CFR §120.100-120.111; 13 CFR §121.301",
                   " ".join(notes), Severity.WARNING if passed else Severity.CRITICAL)


def _check_hpml(deal: DealInput) -> ComplianceCheckResult:
    rate = deal.terms.interest_rate
    likely = rate > HPML_THRESHOLD
    if likely:
        note = (f"Interest rate of {_pct(rate, 3)} may exceed the APOR threshold for HPML designation. "
                "Escrow, appraisal and balloon restrictions may apply.")
    else:
        note = f"Interest rate of {_pct(rate, 3)} is unlikely to trigger HPML designation."
    return _result("Higher-Priced Mortgage Loan (HPML) Check", True,
                   "12 CFR §1026.35; Dodd-Frank Act §1411",
                   note + " Verify against the current APOR table.",
                   Severity.WARNING if likely else Severity.INFO)


def _check_atr(deal: DealInput, program: LoanProgram) -> ComplianceCheckResult:
    notes: List[str] = []
    passed = True
    ltv = deal.terms.ltv
    if ltv is not None and program.max_ltv > 0 and ltv > program.max_ltv:
        notes.append(f"LTV of {_pct(ltv)} exceeds program maximum of {_pct(program.max_ltv)}.")
        passed = False

    non_qm = deal.program_id in NON_QM_PROGRAMS
    if non_qm:
        basis = ("property cash flow analysis (DSCR-based qualification)" if deal.program_id == "dscr"
                 else "bank statement deposit analysis (12-24 month deposits)")
        notes.append(f"This is a non-QM loan; ATR compliance must be documented through {basis} "
                     "per 12 CFR §1026.43(c).")

    if not passed:
        severity = Severity.CRITICAL
    else:
        severity = Severity.WARNING if non_qm else Severity.INFO
    return _result("Ability to Repay (ATR)", passed, "12 CFR §1026.43; Dodd-Frank Act §1411",
                   " ".join(notes) or "ATR requirements satisfied per 12 CFR §1026.43.", severity)


def _check_environmental_phase1(deal: DealInput) -> ComplianceCheckResult:
    real_property = has_real_property(deal)
    note = ("A Phase I Environmental Site Assessment compliant with ASTM E1527-21 is recommended "
            "prior to closing for loans secured by real property." if real_property
            else "No real property collateral identified. Phase I ESA is not required for this transaction.")
    return _result("Environmental: Phase I ESA", True, "CERCLA 42 USC §9601 et seq.; ASTM E1527-21",
                   note, Severity.WARNING if real_property else Severity.INFO)


def _advisory(name: str, regulation: str, note: str, severity: Severity = Severity.WARNING) -> Callable[[DealInput], ComplianceCheckResult]:
    def _check(_deal: DealInput) -> ComplianceCheckResult:
        return _result(name, True, regulation, note, severity)
    return _check


def _check_ltv_limit(deal: DealInput, program: LoanProgram) -> ComplianceCheckResult:
    ltv = deal.terms.ltv
    if ltv is None:
        return _result("LTV Limit", True, f"{program.name} program guidelines",
                       "No LTV value available on deal terms. LTV limit check not performed.", Severity.INFO)
    passed = ltv <= program.max_ltv
    verdict = "is within" if passed else "EXCEEDS"
    return _result("LTV Limit", passed,
                   f"{program.name} program guidelines (max LTV {_pct(program.max_ltv, 0)})",
                   f"LTV of {_pct(ltv)} {verdict} the {program.name} maximum of {_pct(program.max_ltv, 0)}.",
                   Severity.INFO if passed else Severity.CRITICAL)


def _check_term_limit(deal: DealInput, program: LoanProgram) -> ComplianceCheckResult:
    if program.max_term == 0:
        return _result("Term Limit", True, f"{program.name} program guidelines",
                       f"{program.name} is a revolving/interest-only facility. No fixed term limit applies.",
                       Severity.INFO)
    term = deal.terms.term_months
    passed = term <= program.max_term
    verdict = "is within" if passed else "EXCEEDS"
    return _result("Term Limit", passed,
                   f"{program.name} program guidelines (max term {program.max_term} months)",
                   f"Loan term of {term} months {verdict} the {program.name} maximum of {program.max_term} months.",
                   Severity.INFO if passed else Severity.CRITICAL)


# ------------------------------ Registry -------------------------------------

CHECK_REGISTRY: Dict[str, Callable[[DealInput], ComplianceCheckResult]] = {
    "usury_check": _check_usury,
    "sba_size_standard": _check_sba_size_standard,
    "sba_504_eligibility": _check_sba_504_eligibility,
    "hpml_check": _check_hpml,
    "environmental_phase1": _check_environmental_phase1,
    "sba_credit_elsewhere": _advisory(
        "SBA Credit Elsewhere Test", "13 CFR §120.101; SBA SOP 50 10 7",
        "The lender must certify that the borrower cannot obtain credit on reasonable terms "
        "from non-Federal sources without SBA assistance."),
    "sba_use_of_proceeds": _advisory(
        "SBA Use of Proceeds", "13 CFR §120.120; SBA SOP 50 10 7",
        "Loan proceeds must be used for eligible business purposes. Verify against the stated loan purpose."),
    "job_creation": _advisory(
        "SBA 504 Job Creation/Retention", "13 CFR §120.861-120.862",
        "SBA 504 loans must create or retain one job per $95,000 of debenture funding "
        "($150,000 for small manufacturers)."),
    "ofac_screening": _advisory(
        "OFAC Screening", "31 CFR Part 501; OFAC SDN List",
        "All parties must be screened against the OFAC SDN list before closing."),
    "flood_zone": _advisory(
        "Flood Zone Determination", "42 USC §4012a; Flood Disaster Protection Act of 1973",
        "Improved real property collateral requires a Standard Flood Hazard Determination.",
        Severity.INFO),
    "bsa_aml": _advisory(
        "BSA/AML Compliance", "31 USC §5311-5332; 31 CFR §1010.230",
        "Customer identification, due diligence and beneficial ownership checks are required."),
    "source_of_funds": _advisory(
        "Source of Funds Verification", "31 CFR §1010.230; FinCEN FIN-2019-G001",
        "The origin of digital asset collateral must be traced and documented."),
    "ucc_lien_search": _advisory(
        "UCC Lien Search", "UCC §9-322; UCC §9-501",
        "A UCC lien search must be conducted in the debtor's state of organization before filing."),
}

# checks that also need the program row
_PROGRAM_CHECKS: Dict[str, Callable[[DealInput, LoanProgram], ComplianceCheckResult]] = {
    "atr_check": _check_atr,
}


def _not_implemented(label: str) -> ComplianceCheckResult:
    return _result(label, True, "Not implemented",
                   f'Compliance check "{label}" is defined on the program but has no implementation. '
                   "Manual review required.", Severity.WARNING)


# ------------------------------ Public API -----------------------------------

def run_program_checks(deal: DealInput) -> List[ComplianceCheckResult]:
    """Run every check the deal's program lists, plus the LTV and term limits."""
    program = get_program(deal.program_id)
    if program is None:
        return [_result("Program Validation", False, "Internal",
                        f'Loan program "{deal.program_id}" not found in registry. '
                        "No compliance checks could be performed.", Severity.CRITICAL)]

    results: List[ComplianceCheckResult] = []
    for label in program.compliance_checks:
        if label in CHECK_REGISTRY:
            results.append(CHECK_REGISTRY[label](deal))
        elif label in _PROGRAM_CHECKS:
            results.append(_PROGRAM_CHECKS[label](deal, program))
        else:
            LOGGER.warning("Program %s lists unknown compliance check %r", program.id, label)
            results.append(_not_implemented(label))

    results.append(_check_ltv_limit(deal, program))
    results.append(_check_term_limit(deal, program))
    return results


def to_compliance_check(result: ComplianceCheckResult) -> ComplianceCheck:
    return ComplianceCheck(
        name=result.name,
        regulation=result.regulation,
        category="regulatory" if result.severity == Severity.CRITICAL else "standard",
        passed=result.passed,
        note=result.description,
        severity=result.severity,
    )
