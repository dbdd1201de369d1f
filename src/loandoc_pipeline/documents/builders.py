# -*- coding: utf-8 -*-
"""
Document builders: deal (+ prose) -> DocumentTree.

Design
------
- Every number printed on a document comes from the DealInput; prose only
  fills the narrative articles.
- Prose-backed types share one legal-instrument layout (parties, key terms,
  one article per prose section in schema order, fees, covenants, signatures)
  plus an optional per-type tail (notary block, trustee, spousal consent).
- Zero-content builders ignore prose entirely. Disclosures and SBA/IRS forms
  are field tables filled from the deal; unknown fields stay as [brackets].
- Builders are pure: no logging, no clock reads beyond deal fields, and no
  I/O beyond the cached rule and program tables.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..models import DealInput, DocTypeId, Fee
from ..tools.formatting import (
    add_months,
    compute_first_payment_date,
    compute_maturity_date,
    format_currency,
    format_currency_detailed,
    format_date,
    format_percent,
    format_percent_short,
    number_to_words,
)
from ..tools.programs import get_program
from ..tools.usury import get_jurisdiction_rule
from .tree import DocumentTree

Builder = Callable[[DealInput, Dict[str, Any]], DocumentTree]


# ------------------------------ Shared helpers -------------------------------

def humanize(key: str) -> str:
    """camelCase section key -> 'Camel Case' article heading."""
    words = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", key).split()
    return " ".join(w if w.isupper() else w.capitalize() for w in words)


def format_threshold(value: float) -> str:
    return f"{value:.2f}"


def _maturity(deal: DealInput):
    if deal.maturity_date:
        return deal.maturity_date
    return compute_maturity_date(deal.generated_at.date(), deal.terms.term_months)


def _first_payment(deal: DealInput):
    return deal.first_payment_date or compute_first_payment_date(deal.generated_at.date())


def _state_name(deal: DealInput) -> str:
    rule = get_jurisdiction_rule(deal.state_abbr)
    if rule:
        return rule.name
    return deal.state_abbr or "[State TBD]"


def _key_terms(deal: DealInput) -> List[Tuple[str, str]]:
    t = deal.terms
    rows = [
        ("Date", format_date(deal.generated_at)),
        ("Borrower", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("Loan Program", deal.program_name or deal.program_id),
        ("Principal Amount", f"{format_currency(t.approved_amount)} "
                             f"({number_to_words(t.approved_amount).upper()} DOLLARS)"),
        ("Interest Rate", f"{format_percent(t.interest_rate)} per annum"),
        ("Term", f"{t.term_months} months"),
        ("Amortization", f"{t.amortization_months} months" if not t.interest_only else "Interest only"),
        ("Monthly Payment", format_currency_detailed(t.monthly_payment)),
        ("First Payment Date", format_date(_first_payment(deal))),
        ("Maturity Date", format_date(_maturity(deal))),
    ]
    if t.ltv is not None:
        rows.append(("Loan-to-Value", f"{t.ltv * 100:.1f}%"))
    if deal.property_address:
        rows.append(("Property", deal.property_address))
    return rows


def _fees_table(doc: DocumentTree, deal: DealInput) -> None:
    fees = deal.terms.fees
    if not fees:
        return
    doc.heading("Fees", level=2)
    rows = [[f.name, format_currency_detailed(f.amount), f.description] for f in fees]
    total = sum(f.amount for f in fees)
    rows.append(["Total", format_currency_detailed(total), ""])
    doc.table(["Fee", "Amount", "Description"], rows)


def _covenants_table(doc: DocumentTree, deal: DealInput) -> None:
    covenants = deal.terms.covenants
    if not covenants:
        return
    doc.heading("Financial Covenants", level=2)
    rows = [
        [c.name, format_threshold(c.threshold) if c.threshold is not None else "N/A", c.frequency, c.description]
        for c in covenants
    ]
    doc.table(["Covenant", "Threshold", "Testing", "Description"], rows)


def _prose_article(doc: DocumentTree, number: int, key: str, value: Any) -> None:
    doc.heading(f"{number}. {humanize(key)}")
    if isinstance(value, (list, tuple)):
        doc.bullets([str(v) for v in value])
        return
    for chunk in str(value or "").split("\n\n"):
        doc.para(chunk.strip())


def _signatures(doc: DocumentTree, deal: DealInput, with_guarantor: bool) -> None:
    doc.heading("Signatures")
    doc.signature("BORROWER", deal.borrower_name, "Authorized Signatory")
    doc.signature("LENDER", deal.lender_name, "Authorized Officer")
    if with_guarantor and deal.guarantor_name:
        doc.signature("GUARANTOR", deal.guarantor_name)


# ------------------------------ Instrument tails -----------------------------

Tail = Callable[[DocumentTree, DealInput], None]

_COMMUNITY_PROPERTY_STATES = {"AZ", "CA", "ID", "LA", "NV", "NM", "TX", "WA", "WI"}


def _notary_block(doc: DocumentTree, deal: DealInput) -> None:
    doc.heading("Notary Acknowledgment", level=2)
    doc.para(f"STATE OF {(deal.state_abbr or '___________').upper()}")
    doc.para("COUNTY OF _______________")
    doc.para("On this _____ day of _______________, 20___, before me, the undersigned notary public, "
             "personally appeared ___________________________, known to me to be the person whose name "
             "is subscribed to the within instrument, and acknowledged that they executed the same.")
    doc.para("WITNESS my hand and official seal.")
    doc.signature("NOTARY PUBLIC", "____________________________", "My Commission Expires: __________")


def _deed_of_trust_tail(doc: DocumentTree, deal: DealInput) -> None:
    doc.signature("TRUSTEE", "[Title Company Name]", "Trustee")
    _notary_block(doc, deal)


def _guaranty_tail(doc: DocumentTree, deal: DealInput) -> None:
    doc.heading("Spousal Consent", level=2)
    if (deal.state_abbr or "").upper() in _COMMUNITY_PROPERTY_STATES:
        doc.para(f"{_state_name(deal)} is a community property state. Guarantor's spouse, if any, "
                 "must execute this consent for the Guaranty to reach community property.")
    doc.para("I, the undersigned spouse of Guarantor, consent to the execution of this Guaranty and agree "
             "that my community property interest, if any, is subject to its terms.")
    doc.para("Spouse Signature: ____________________________    Date: ______________")


def _corporate_resolution_tail(doc: DocumentTree, deal: DealInput) -> None:
    entity = (deal.entity_type or "").lower()
    title = "Manager" if "llc" in entity else "General Partner" if "partnership" in entity else "Secretary"
    doc.heading("Attestation", level=2)
    doc.signature("ATTEST", "____________________________", title)


def _commitment_letter_tail(doc: DocumentTree, deal: DealInput) -> None:
    doc.heading("Accepted and Agreed", level=2)
    doc.para(f"{deal.borrower_name} accepts this Commitment Letter and agrees to its terms and conditions.")
    doc.signature("BORROWER", deal.borrower_name, "Date: ______________")


def _ucc_tail(doc: DocumentTree, deal: DealInput) -> None:
    doc.key_values([("Filing Office", f"Secretary of State, {_state_name(deal)}"),
                    ("Debtor", deal.borrower_name), ("Secured Party", deal.lender_name)])


INSTRUMENT_TAILS: Dict[DocTypeId, Tail] = {
    DocTypeId.DEED_OF_TRUST: _deed_of_trust_tail,
    DocTypeId.ASSIGNMENT_OF_LEASES: _notary_block,
    DocTypeId.GUARANTY: _guaranty_tail,
    DocTypeId.CORPORATE_RESOLUTION: _corporate_resolution_tail,
    DocTypeId.COMMITMENT_LETTER: _commitment_letter_tail,
    DocTypeId.UCC_FINANCING_STATEMENT: _ucc_tail,
}


# ------------------------------ Legal instruments ----------------------------

def legal_instrument(label: str, sections: Sequence[Tuple[str, bool]], *, guarantor_signs: bool = False,
                     tail: Optional[Tail] = None) -> Builder:
    """Builder for a prose-backed instrument; articles follow ``sections`` order."""

    def build(deal: DealInput, prose: Dict[str, Any]) -> DocumentTree:
        t = deal.terms
        doc = DocumentTree(title=label, subtitle=deal.program_name or deal.program_id)
        doc.key_values(_key_terms(deal))
        doc.para(
            f"This {label} is made as of {format_date(deal.generated_at)} by and between "
            f'{deal.borrower_name} (the "Borrower") and {deal.lender_name} (the "Lender"), '
            f"in connection with a loan in the principal amount of {format_currency(t.approved_amount)} "
            f"bearing interest at {format_percent(t.interest_rate)} per annum for a term of "
            f"{t.term_months} months."
        )
        if deal.guarantor_name:
            doc.para(f'{deal.guarantor_name} (the "Guarantor") joins this {label} where indicated.')

        for number, (key, _is_list) in enumerate(sections, start=1):
            _prose_article(doc, number, key, prose.get(key))

        if t.special_terms:
            doc.heading("Special Terms", level=2)
            doc.bullets(list(t.special_terms))
        _fees_table(doc, deal)
        _covenants_table(doc, deal)
        doc.para(f"This {label} shall be governed by the laws of the State of {_state_name(deal)}.")
        _signatures(doc, deal, with_guarantor=guarantor_signs or bool(deal.guarantor_name))
        if tail is not None:
            tail(doc, deal)
        return doc

    return build


# ------------------------------ Zero-content ---------------------------------

def build_settlement_statement(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    doc = DocumentTree(title="Settlement Statement", subtitle=deal.program_name or deal.program_id)
    doc.key_values(_key_terms(deal))
    total_fees = sum(f.amount for f in t.fees)
    doc.heading("Sources and Uses")
    rows = [["Loan Amount", format_currency_detailed(t.approved_amount)]]
    rows += [[f"Less: {f.name}", format_currency_detailed(-f.amount)] for f in t.fees]
    rows.append(["Net Proceeds to Borrower", format_currency_detailed(t.approved_amount - total_fees)])
    doc.table(["Item", "Amount"], rows)
    _fees_table(doc, deal)
    doc.para("The undersigned acknowledge receipt of this Settlement Statement and agree to the "
             "disbursement of funds as set forth above.")
    _signatures(doc, deal, with_guarantor=False)
    return doc


def build_compliance_certificate(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    doc = DocumentTree(title="Compliance Certificate", subtitle=deal.program_name or deal.program_id)
    doc.key_values([("Borrower", deal.borrower_name), ("Lender", deal.lender_name),
                    ("Reporting Period Ending", "____________")])
    doc.para(f"The undersigned officer of {deal.borrower_name} certifies to {deal.lender_name} "
             "that, as of the reporting date, the Borrower is in compliance with each financial "
             "covenant set forth below, and no Event of Default has occurred and is continuing.")
    rows = [
        [c.name, format_threshold(c.threshold) if c.threshold is not None else "N/A", c.frequency,
         "__________", "[ ] Yes  [ ] No"]
        for c in deal.terms.covenants
    ]
    doc.table(["Covenant", "Required", "Testing", "Actual", "In Compliance"], rows)
    doc.signature("BORROWER", deal.borrower_name, "Chief Financial Officer")
    return doc


def level_payment(deal: DealInput) -> float:
    """Scheduled monthly payment: the deal figure when given, else the level (or interest-only) payment."""
    t = deal.terms
    if t.monthly_payment > 0:
        return t.monthly_payment
    monthly_rate = t.interest_rate / 12
    if t.interest_only:
        return t.approved_amount * monthly_rate
    n = t.amortization_months or t.term_months
    if not n:
        return t.approved_amount
    if monthly_rate == 0:
        return t.approved_amount / n
    return t.approved_amount * monthly_rate / (1 - (1 + monthly_rate) ** -n)


def amortization_rows(deal: DealInput) -> Tuple[List[List[str]], float, float]:
    """Payment rows plus (total interest, balloon amount)."""
    t = deal.terms
    balance = t.approved_amount
    monthly_rate = t.interest_rate / 12
    payment = level_payment(deal)

    first = _first_payment(deal)
    rows: List[List[str]] = []
    total_interest = 0.0
    for month in range(1, t.term_months + 1):
        interest = balance * monthly_rate
        if t.interest_only:
            principal, paid = 0.0, interest
        else:
            principal = min(payment - interest, balance)
            paid = principal + interest
        balance = max(0.0, balance - principal)
        total_interest += interest
        rows.append([
            str(month),
            format_date(add_months(first, month - 1)),
            format_currency_detailed(paid),
            format_currency_detailed(principal),
            format_currency_detailed(interest),
            format_currency_detailed(balance),
        ])
        if balance <= 0.01 and not t.interest_only:
            break
    balloon = balance if balance > 0.01 else 0.0
    return rows, total_interest, balloon


def build_amortization_schedule(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    doc = DocumentTree(title="Amortization Schedule", subtitle=deal.program_name or deal.program_id)
    doc.para("This Amortization Schedule is attached as an exhibit to and incorporated by reference "
             "in the Promissory Note and Loan Agreement of even date herewith.")
    doc.key_values(_key_terms(deal) + [("Interest Only", "Yes" if deal.terms.interest_only else "No")])
    doc.heading("Payment Schedule")
    rows, total_interest, balloon = amortization_rows(deal)
    if balloon:
        rows.append(["Balloon", format_date(_maturity(deal)), format_currency_detailed(balloon),
                     format_currency_detailed(balloon), format_currency_detailed(0), format_currency_detailed(0)])
    doc.table(["#", "Date", "Payment", "Principal", "Interest", "Balance"], rows)
    doc.key_values([("Total Interest", format_currency_detailed(total_interest)),
                    ("Balloon Payment", format_currency_detailed(balloon))])
    return doc


def build_flood_determination(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    doc = DocumentTree(title="Standard Flood Hazard Determination",
                       subtitle="Flood Disaster Protection Act of 1973, 42 USC §4012a")
    doc.key_values([
        ("Lender", deal.lender_name),
        ("Borrower", deal.borrower_name),
        ("Property Address", deal.property_address or "[Address TBD]"),
        ("Loan Amount", format_currency(deal.terms.approved_amount)),
        ("NFIP Community Number", "[To be completed by flood vendor]"),
        ("FEMA Map Panel", "[To be completed by flood vendor]"),
        ("Flood Zone", "[To be completed by flood vendor]"),
    ])
    doc.para("If the improved property is located in a Special Flood Hazard Area, flood insurance "
             "must be obtained and maintained for the term of the loan.")
    return doc


def build_privacy_notice(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    doc = DocumentTree(title="Privacy Notice", subtitle=deal.lender_name)
    doc.para(f"{deal.lender_name} collects and shares personal information as permitted by the "
             "Gramm-Leach-Bliley Act (15 USC §6801 et seq.) and Regulation P.")
    doc.heading("What we collect", level=2)
    doc.bullets(["Identification and contact information",
                 "Financial statements, tax returns and account balances",
                 "Credit history and transaction records"])
    doc.heading("How we share", level=2)
    doc.para("We share information for everyday business purposes and as required by law. "
             "We do not share information with non-affiliates for their marketing.")
    doc.para(f"Provided to: {deal.borrower_name}")
    return doc


def build_patriot_act_notice(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    doc = DocumentTree(title="USA PATRIOT Act Notice", subtitle=deal.lender_name)
    doc.para("IMPORTANT INFORMATION ABOUT PROCEDURES FOR OPENING A NEW ACCOUNT", bold=True)
    doc.para("To help the government fight the funding of terrorism and money laundering activities, "
             "Federal law requires all financial institutions to obtain, verify, and record "
             "information that identifies each person or entity that opens an account.")
    doc.para(f"{deal.lender_name} will ask {deal.borrower_name} for its name, address, taxpayer "
             "identification number and other information that will allow us to identify it, "
             "including beneficial ownership information.")
    return doc


def build_disbursement_authorization(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    total_fees = sum(f.amount for f in t.fees)
    doc = DocumentTree(title="Disbursement Authorization", subtitle=deal.program_name or deal.program_id)
    doc.key_values([
        ("Borrower", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("Loan Amount", format_currency_detailed(t.approved_amount)),
        ("Total Fees Withheld", format_currency_detailed(total_fees)),
        ("Net Disbursement", format_currency_detailed(t.approved_amount - total_fees)),
    ])
    _fees_table(doc, deal)
    doc.para(f"{deal.borrower_name} authorizes {deal.lender_name} to disburse the loan proceeds "
             "as set forth above, net of the fees listed.")
    doc.signature("BORROWER", deal.borrower_name, "Authorized Signatory")
    return doc


# ------------------------------ Disclosures ----------------------------------

_ORIGINATION_MARKERS = ("origination", "discount", "underwriting", "processing", "application", "commitment")
_NOT_SHOPPED_MARKERS = ("appraisal", "credit report", "flood", "tax service")

_SAFE_HARBOR_NOTE = ("This disclosure is generated from the deal terms and is not the CFPB model form. "
                     "Confirm form compliance with 12 CFR 1026.37/1026.38 before delivery.")


def categorize_fees(fees: Sequence[Fee]) -> Dict[str, List[Fee]]:
    """Split fees into origination charges, services not shopped for and services shopped for."""
    out: Dict[str, List[Fee]] = {"origination": [], "not_shopped": [], "shopped": []}
    for fee in fees:
        lower = fee.name.lower()
        if any(m in lower for m in _ORIGINATION_MARKERS):
            out["origination"].append(fee)
        elif any(m in lower for m in _NOT_SHOPPED_MARKERS):
            out["not_shopped"].append(fee)
        else:
            out["shopped"].append(fee)
    return out


def annual_percentage_rate(amount_financed: float, payment: float, months: int, balloon: float = 0.0) -> float:
    """
    Actuarial APR (Reg Z Appendix J): the annual rate at which the payment
    stream, balloon included, discounts back to the amount financed.
    """
    if amount_financed <= 0 or payment <= 0 or months <= 0:
        return 0.0

    def present_value(monthly: float) -> float:
        if monthly == 0:
            return payment * months + balloon
        growth = (1 + monthly) ** -months
        return payment * (1 - growth) / monthly + balloon * growth

    if present_value(0.0) <= amount_financed:
        return 0.0
    low, high = 0.0, 1.0
    for _ in range(200):
        mid = (low + high) / 2
        if present_value(mid) > amount_financed:
            low = mid
        else:
            high = mid
    return (low + high) / 2 * 12


def loan_calculations(deal: DealInput) -> Dict[str, float]:
    """Total of payments, finance charge, amount financed, APR and TIP for the disclosures."""
    t = deal.terms
    _rows, total_interest, balloon = amortization_rows(deal)
    payment = level_payment(deal)
    prepaid = sum(f.amount for f in categorize_fees(t.fees)["origination"])
    amount_financed = t.approved_amount - prepaid
    total_of_payments = t.approved_amount + total_interest
    regular = payment if not balloon else (total_of_payments - balloon) / max(t.term_months, 1)
    return {
        "total_of_payments": total_of_payments,
        "finance_charge": total_of_payments - amount_financed,
        "amount_financed": amount_financed,
        "apr": annual_percentage_rate(amount_financed, regular, t.term_months, balloon),
        "tip": total_interest / t.approved_amount,
        "balloon": balloon,
    }


def _loan_terms_table(doc: DocumentTree, deal: DealInput, balloon: float) -> None:
    t = deal.terms
    doc.heading("Loan Terms")
    doc.table(["Term", "Value", "Details"], [
        ["Loan Amount", format_currency_detailed(t.approved_amount), "This amount cannot increase after closing."],
        ["Interest Rate", format_percent(t.interest_rate), "This rate is fixed for the loan term."],
        ["Loan Term", f"{t.term_months} months", f"Amortization: {t.amortization_months} months"],
        ["Monthly Principal & Interest", format_currency_detailed(level_payment(deal)),
         "Interest only" if t.interest_only else "Level monthly payment"],
        ["Prepayment Penalty", "YES" if t.prepayment_penalty else "NO",
         "A prepayment premium applies; see the Promissory Note." if t.prepayment_penalty else ""],
        ["Balloon Payment", "YES" if balloon else "NO",
         f"{format_currency_detailed(balloon)} due {format_date(_maturity(deal))}" if balloon else ""],
    ])


def _closing_cost_tables(doc: DocumentTree, deal: DealInput) -> float:
    """Sections A-C of the cost details; returns total loan costs."""
    groups = categorize_fees(deal.terms.fees)
    total = 0.0
    for title, key in (("A. Origination Charges", "origination"),
                       ("B. Services Borrower Did Not Shop For", "not_shopped"),
                       ("C. Services Borrower Did Shop For", "shopped")):
        fees = groups[key]
        subtotal = sum(f.amount for f in fees)
        total += subtotal
        rows = [[f.name, format_currency_detailed(f.amount)] for f in fees] or [["None", format_currency_detailed(0)]]
        rows.append(["Subtotal", format_currency_detailed(subtotal)])
        doc.heading(title, level=2)
        doc.table(["Description", "Amount"], rows)
    doc.para(f"Total Loan Costs: {format_currency_detailed(total)}", bold=True)
    return total


def _late_payment_text(deal: DealInput) -> str:
    t = deal.terms
    return (f"If a payment is more than {t.late_fee_grace_days} days late, a late fee of "
            f"{format_percent_short(t.late_fee_percent)} of the overdue payment will be charged.")


def build_closing_disclosure(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    calc = loan_calculations(deal)
    doc = DocumentTree(title="Closing Disclosure", subtitle=deal.program_name or deal.program_id)
    doc.heading("Closing Information")
    doc.key_values([
        ("Date Issued", format_date(deal.generated_at)),
        ("Closing Date", format_date(deal.generated_at)),
        ("Disbursement Date", format_date(deal.generated_at)),
        ("Settlement Agent", "[Settlement Agent Name]"),
        ("Property", deal.property_address or "[Property Address]"),
        ("Borrower", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("Purpose", deal.loan_purpose or "Business / Investment"),
    ])
    _loan_terms_table(doc, deal, calc["balloon"])

    doc.heading("Closing Cost Details")
    loan_costs = _closing_cost_tables(doc, deal)

    doc.heading("Calculating Cash to Close")
    doc.table(["Item", "Amount"], [
        ["Loan Amount", format_currency_detailed(t.approved_amount)],
        ["Total Closing Costs", format_currency_detailed(-loan_costs)],
        ["Net Proceeds to Borrower", format_currency_detailed(t.approved_amount - loan_costs)],
    ])

    doc.heading("Loan Calculations")
    doc.table(["Calculation", "Amount"], [
        ["Total of Payments", format_currency_detailed(calc["total_of_payments"])],
        ["Finance Charge", format_currency_detailed(calc["finance_charge"])],
        ["Amount Financed", format_currency_detailed(calc["amount_financed"])],
        ["Annual Percentage Rate (APR)", format_percent(calc["apr"])],
        ["Total Interest Percentage (TIP)", format_percent(calc["tip"])],
    ])

    doc.heading("Other Disclosures")
    doc.para(_late_payment_text(deal))
    doc.para("Assumption: this loan may not be assumed by a subsequent purchaser without Lender consent.")
    doc.note(_SAFE_HARBOR_NOTE)

    doc.heading("Confirm Receipt")
    doc.signature("BORROWER", deal.borrower_name, "Authorized Signatory")
    return doc


def build_loan_estimate(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    calc = loan_calculations(deal)
    doc = DocumentTree(title="Loan Estimate", subtitle=deal.program_name or deal.program_id)
    doc.key_values([
        ("Date Issued", format_date(deal.generated_at)),
        ("Applicant", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("Property", deal.property_address or "[Property Address]"),
        ("Purpose", deal.loan_purpose or "Business / Investment"),
        ("Loan Program", deal.program_name or deal.program_id),
        ("Rate Lock", "Rate is locked until closing unless otherwise noted"),
    ])
    _loan_terms_table(doc, deal, calc["balloon"])

    doc.heading("Estimated Closing Cost Details")
    loan_costs = _closing_cost_tables(doc, deal)
    doc.heading("Costs at Closing")
    doc.table(["Item", "Amount"], [
        ["Estimated Closing Costs", format_currency_detailed(loan_costs)],
        ["Estimated Net Proceeds", format_currency_detailed(t.approved_amount - loan_costs)],
    ])

    doc.heading("Comparisons")
    doc.table(["Comparison", "Value"], [
        ["Annual Percentage Rate (APR)", format_percent(calc["apr"])],
        ["Total Interest Percentage (TIP)", format_percent(calc["tip"])],
        ["Total of Payments", format_currency_detailed(calc["total_of_payments"])],
    ])

    doc.heading("Other Considerations")
    doc.para(_late_payment_text(deal))
    doc.para("Appraisal: the Lender may order an appraisal to determine the property's value.")
    doc.note(_SAFE_HARBOR_NOTE)
    doc.para("By signing, you only confirm that you have received this form.")
    doc.signature("APPLICANT", deal.borrower_name, "Authorized Signatory")
    return doc


# ------------------------------ SBA forms ------------------------------------

def _blank_signature(doc: DocumentTree, party: str, name: str = "____________________________") -> None:
    doc.signature(party, name, "Title: ____________________")
    doc.para("Date: ____________________________")


def build_sba_form_1919(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    doc = DocumentTree(title="SBA Form 1919", subtitle="Borrower Information Form")
    doc.heading("Section A: Applicant/Borrower Information")
    doc.key_values([
        ("Applicant Legal Name", deal.borrower_name),
        ("Entity Type", deal.entity_type or "[Entity Type]"),
        ("Business Address", deal.property_address or "[Business Address]"),
        ("State of Organization", _state_name(deal)),
        ("EIN", "[EIN]"),
    ])
    doc.heading("Section B: About the Loan Request")
    doc.key_values([
        ("Loan Amount Requested", format_currency(t.approved_amount)),
        ("Interest Rate", format_percent_short(t.interest_rate)),
        ("Term", f"{t.term_months} months"),
        ("Purpose of the Loan", deal.loan_purpose or "[Use of Proceeds]"),
        ("Lender", deal.lender_name),
    ])
    doc.heading("Section C: Indebtedness")
    doc.table(["Creditor", "Original Amount", "Balance", "Payment", "Maturity", "Collateral"],
              [[f"[CREDITOR {i}]", "", "", "", "", ""] for i in range(1, 4)])
    doc.heading("Section D: Management Information")
    owners = [[deal.guarantor_name, "[Title]", "[%]"]] if deal.guarantor_name else []
    owners.append(["[Owner/Officer]", "[Title]", "[%]"])
    doc.table(["Name", "Title", "Ownership"], owners)
    doc.heading("Section E: Certifications and Declarations")
    doc.table(["#", "Question", "Response"], [
        ["1", "Is the Applicant or any owner presently suspended, debarred or ineligible "
              "for Federal financial assistance?", "[ ] Yes  [ ] No"],
        ["2", "Is the Applicant or any owner presently subject to an indictment or criminal charge?",
         "[ ] Yes  [ ] No"],
        ["3", "Has the Applicant or any owner ever obtained a direct or guaranteed loan from SBA "
              "or another Federal agency that is delinquent or defaulted?", "[ ] Yes  [ ] No"],
        ["4", "Is any owner an SBA employee, or a household member of one?", "[ ] Yes  [ ] No"],
    ])
    doc.heading("Certification")
    doc.para("The undersigned certifies that the information provided in this form is true and complete "
             "and acknowledges that knowingly false statements are punishable under 18 USC §1001.")
    _blank_signature(doc, "APPLICANT/BORROWER", deal.borrower_name)
    return doc


def build_sba_form_159(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    doc = DocumentTree(title="SBA Form 159", subtitle="Fee Disclosure and Compensation Agreement")
    doc.heading("Loan Identification")
    doc.key_values([
        ("Applicant", deal.borrower_name),
        ("SBA Lender", deal.lender_name),
        ("SBA Loan Number", "[SBA Loan Number]"),
        ("Loan Amount", format_currency(t.approved_amount)),
    ])
    doc.heading("Agent/Packager Information")
    doc.key_values([("Agent Name", "[Agent Name]"), ("Agent Address", "[Agent Address]"),
                    ("Relationship", "[Packager / Referral Agent / Lender Service Provider]")])

    doc.heading("Fee Schedule")
    rows = [[f.name, format_currency_detailed(f.amount), f.description] for f in t.fees]
    rows.append(["Total", format_currency_detailed(sum(f.amount for f in t.fees)), ""])
    doc.table(["Fee Description", "Amount", "Explanation"], rows)

    program = get_program(deal.program_id)
    if program is not None and program.standard_fees:
        doc.heading("Program Standard Fees", level=2)
        doc.table(["Fee", "Basis", "Amount"], [
            [f.name, format_percent_short(f.value) if f.type == "percent" else "Flat",
             format_currency_detailed(f.amount_for(t.approved_amount))]
            for f in program.standard_fees
        ])

    doc.heading("Certification")
    doc.para("The undersigned certify that the fees listed are the only compensation paid or to be paid "
             "in connection with this loan application, as required by 13 CFR §103.5.")
    _blank_signature(doc, "AGENT/PACKAGER")
    _blank_signature(doc, "APPLICANT/BORROWER", deal.borrower_name)
    _blank_signature(doc, "LENDER", deal.lender_name)
    return doc


def build_sba_form_148(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    guarantor = deal.guarantor_name or "[Guarantor Name]"
    doc = DocumentTree(title="SBA Form 148", subtitle="Unconditional Guarantee")
    doc.heading("Party Identification")
    doc.key_values([
        ("Guarantor", guarantor),
        ("Borrower", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("Note Amount", format_currency(t.approved_amount)),
        ("Note Date", format_date(deal.generated_at)),
        ("Interest Rate", format_percent_short(t.interest_rate)),
    ])
    doc.heading("Unconditional Guarantee")
    doc.para(f"{guarantor} unconditionally guarantees payment to {deal.lender_name} of all amounts owing "
             f"under the Note of {deal.borrower_name} in the principal amount of "
             f"{format_currency(t.approved_amount)}. This Guarantee remains in effect until the Note "
             "is paid in full.")
    doc.heading("Guarantee Provisions")
    doc.bullets([
        "Lender may take any action on the Note or the collateral without notice to or consent of Guarantor.",
        "Guarantor waives notice of default, presentment, demand and any defense based on impairment of collateral.",
        "Guarantor must pay the Note on demand when Borrower defaults, whether or not Lender first "
        "pursues Borrower or the collateral.",
        "Guarantor subordinates to the Note any present or future debt owed by Borrower to Guarantor.",
    ])
    doc.heading("SBA Regulatory Reference")
    doc.para("This Guarantee is given in connection with a loan guaranteed by the U.S. Small Business "
             "Administration and is governed by 13 CFR Parts 120 and 121 and SBA SOP 50 10.")
    doc.heading("Governing Law")
    doc.para(f"When SBA is the holder, this Guarantee is construed under federal law. Otherwise, the laws "
             f"of the State of {_state_name(deal)} apply.")
    doc.signature("GUARANTOR", guarantor)
    doc.para("Address: ____________________________")
    return doc


def build_sba_form_1050(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    t = deal.terms
    total_fees = sum(f.amount for f in t.fees)
    doc = DocumentTree(title="SBA Form 1050", subtitle="Settlement Sheet")
    doc.heading("Loan Identification")
    doc.key_values([
        ("Borrower", deal.borrower_name),
        ("Lender", deal.lender_name),
        ("SBA Loan Number", "[SBA Loan Number]"),
        ("Interest Rate", format_percent_short(t.interest_rate)),
        ("Term", f"{t.term_months} months"),
    ])
    doc.heading("Gross Loan Amount")
    doc.para(format_currency_detailed(t.approved_amount), bold=True)
    doc.heading("Disbursement Breakdown")
    rows = [[f.name, format_currency_detailed(f.amount), deal.lender_name] for f in t.fees]
    rows.append(["Net proceeds to Borrower", format_currency_detailed(t.approved_amount - total_fees),
                 deal.borrower_name])
    doc.table(["Disbursement Item", "Amount", "Paid To"], rows)
    doc.heading("Settlement Summary")
    doc.table(["Description", "Amount"], [
        ["Gross Loan Amount", format_currency_detailed(t.approved_amount)],
        ["Total Fees and Costs", format_currency_detailed(total_fees)],
        ["Total Disbursed", format_currency_detailed(t.approved_amount)],
    ])
    doc.heading("Disbursement Instructions")
    doc.para("Proceeds are disbursed only for the purposes stated in the SBA Authorization. Receipts or "
             "paid invoices must be retained for each disbursement.")
    doc.heading("Certification")
    doc.para("The undersigned certify that the loan proceeds were disbursed as shown above and in "
             "accordance with the SBA Authorization.")
    _blank_signature(doc, "BORROWER", deal.borrower_name)
    _blank_signature(doc, "LENDER", deal.lender_name)
    return doc


# ------------------------------ IRS forms ------------------------------------

_RETURN_FORMS = {
    "corporation": "1120", "c_corp": "1120", "s_corp": "1120-S", "s_corporation": "1120-S",
    "partnership": "1065", "llc": "1065", "sole_proprietor": "1040", "individual": "1040",
}

_W9_CLASSES = (
    ("Individual / Sole Proprietor or Single-Member LLC", {"sole_proprietor", "individual"}),
    ("C Corporation", {"corporation", "c_corp"}),
    ("S Corporation", {"s_corp", "s_corporation"}),
    ("Partnership", {"partnership"}),
    ("Trust / Estate", {"trust", "estate"}),
    ("Limited Liability Company (LLC)", {"llc"}),
)


def _entity_key(deal: DealInput) -> str:
    return re.sub(r"[^a-z]+", "_", (deal.entity_type or "").lower()).strip("_")


def build_irs_4506c(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    year = deal.generated_at.year
    doc = DocumentTree(title="IRS Form 4506-C", subtitle="IVES Request for Transcript of Tax Return")
    doc.heading("Taxpayer Information")
    doc.table(["Line", "Description", "Entry"], [
        ["1a", "Name shown on tax return", deal.borrower_name],
        ["1b", "SSN or Employer Identification Number", "[SSN/EIN]"],
        ["3", "Current name and address", deal.property_address or "[Current Address]"],
        ["5a", "Third party name (IVES participant)", deal.lender_name],
        ["5b", "Third party address", "[Lender Address]"],
    ])
    doc.heading("Transcript Requested")
    doc.table(["Transcript Type", "Selected"], [
        ["Return Transcript", "[X]"],
        ["Account Transcript", "[ ]"],
        ["Record of Account", "[ ]"],
        ["Verification of Non-Filing", "[ ]"],
    ])
    doc.heading("Tax Form Information")
    doc.key_values([
        ("Tax Form Number", _RETURN_FORMS.get(_entity_key(deal), "[Form Number]")),
        ("Years Requested", ", ".join(f"12/31/{y}" for y in range(year - 3, year))),
    ])
    doc.heading("Authorization")
    doc.para(f"The taxpayer authorizes the IRS to release the tax information requested above to "
             f"{deal.lender_name} for the purpose of verifying information provided in connection "
             "with a loan application.")
    doc.note("Transcripts are delivered through the IRS Income Verification Express Service. "
             "The signed form must reach the IRS within 120 days of the signature date.")
    doc.heading("Signature")
    _blank_signature(doc, "TAXPAYER", deal.borrower_name)
    return doc


def build_irs_w9(deal: DealInput, _prose: Dict[str, Any]) -> DocumentTree:
    entity = _entity_key(deal)
    doc = DocumentTree(title="IRS Form W-9",
                       subtitle="Request for Taxpayer Identification Number and Certification")
    doc.heading("Name and Entity Information")
    doc.table(["Line", "Description", "Entry"], [
        ["1", "Name (as shown on your income tax return)", deal.borrower_name],
        ["2", "Business name, if different from above", "[Business Name if Different]"],
    ])
    doc.heading("Federal Tax Classification")
    rows = [[label, "[X]" if entity in keys else "[ ]"] for label, keys in _W9_CLASSES]
    rows.append(["Other (see instructions)", "[ ]" if any(entity in keys for _, keys in _W9_CLASSES) else "[X]"])
    doc.table(["Classification", "Selected"], rows)
    doc.heading("Address")
    doc.table(["Line", "Description", "Entry"], [
        ["5", "Address (number, street, and apt. or suite no.)", deal.property_address or "[Address]"],
        ["6", "City, state, and ZIP code", "[City, State, ZIP]"],
    ])
    doc.heading("Part I: Taxpayer Identification Number (TIN)")
    doc.table(["Type", "Number"], [
        ["Social Security Number (SSN)", "[SSN]"],
        ["Employer Identification Number (EIN)", "[EIN]"],
    ])
    doc.heading("Part II: Certification")
    doc.para("Under penalties of perjury, I certify that the number shown on this form is my correct "
             "taxpayer identification number, that I am not subject to backup withholding, and that "
             "I am a U.S. person.")
    doc.heading("Signature")
    _blank_signature(doc, "TAXPAYER", deal.borrower_name)
    doc.heading("Requester Information", level=2)
    doc.key_values([("Requester", deal.lender_name), ("Requester Address", "[Lender Address]")])
    doc.note("Do not send this form to the IRS. Return it to the requester.")
    return doc


# ------------------------------ Fallback trees -------------------------------

def placeholder_document(label: str, deal: DealInput) -> DocumentTree:
    doc = DocumentTree(title=label, subtitle="DRAFT")
    doc.para(f"This document template ({label}) is pending implementation.")
    doc.key_values([
        ("Deal", deal.borrower_name),
        ("Amount", format_currency(deal.terms.approved_amount)),
        ("Generated", deal.generated_at.isoformat()),
    ])
    return doc


def error_document(label: str, message: str) -> DocumentTree:
    doc = DocumentTree(title="Document Generation Error")
    doc.para(f"The {label} could not be generated.")
    doc.para(f"Error: {message[:200]}")
    doc.para("Please retry generation or create this document manually.")
    return doc
