# -*- coding: utf-8 -*-
"""
Jurisdictional usury rules (YAML-driven) and the rate evaluator.

Design
------
- Rule table is config/state_usury_rules.yaml, schema-checked once per config
  folder and cached; it is read-only after load.
- evaluate_usury() never raises. Unknown jurisdictions and an unreadable table
  both resolve to "no violation" so missing data cannot block a deal.
- Evaluation order is fixed:
    capped exemption > criminal cap surviving exemption > full exemption
    > no-limit sentinel (criminal cap only) > ordinary cap.
- Single CrewAI tool 'check_state_usury' exposes the evaluator to agents.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from crewai.tools import tool

from ..errors import ConfigError
from ..models import JurisdictionRule, UsuryEvaluation
from .config_loader import config_dir, load_config

# ------------------------------ Logger ---------------------------------------

LOGGER = logging.getLogger(__name__)

# ------------------------------ Constants ------------------------------------

RULES_FILE: str = "state_usury_rules.yaml"
NO_LIMIT: float = 999

_RATE = {"type": "number", "minimum": 0}
_AMOUNT = {"type": "number", "minimum": 0}

RULES_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["states"],
    "properties": {
        "version": {"type": "integer"},
        "states": {
            "type": "object",
            "patternProperties": {
                "^[A-Z]{2}$": {
                    "type": "object",
                    "required": ["name", "max_rate"],
                    "properties": {
                        "name": {"type": "string"},
                        "max_rate": _RATE,
                        "commercial_exemption": {"type": "boolean"},
                        "exemption_threshold": _AMOUNT,
                        "exemption_cap": _RATE,
                        "criminal_cap": _RATE,
                        "criminal_exempt_threshold": _AMOUNT,
                        "disclosure_required": {"type": "boolean"},
                        "license_required": {"type": "boolean"},
                        "disclosures": {"type": "array", "items": {"type": "string"}},
                        "statute": {"type": "string"},
                        "notes": {"type": "string"},
                    },
                    "additionalProperties": False,
                }
            },
            "additionalProperties": False,
        },
    },
}


# ------------------------------ Table loading --------------------------------

@lru_cache(maxsize=4)
def _load_table(folder: str) -> Dict[str, JurisdictionRule]:
    try:
        data = load_config(RULES_FILE, RULES_SCHEMA)
    except ConfigError as exc:
        LOGGER.warning("Usury rule table unavailable (%s); every jurisdiction treated as unknown", exc)
        return {}
    table: Dict[str, JurisdictionRule] = {}
    for abbr, row in data["states"].items():
        table[abbr] = JurisdictionRule(abbreviation=abbr, **row)
    LOGGER.debug("Loaded %d jurisdiction rules from %s", len(table), folder)
    return table


def _rules() -> Dict[str, JurisdictionRule]:
    return _load_table(str(config_dir()))


def clear_cache() -> None:
    _load_table.cache_clear()


def _pct(rate: float) -> str:
    return f"{rate * 100:.2f}%"


def _norm_abbr(jurisdiction: Optional[str]) -> str:
    return (jurisdiction or "").strip().upper()


# ------------------------------ Public API -----------------------------------

def get_jurisdiction_rule(jurisdiction: Optional[str]) -> Optional[JurisdictionRule]:
    return _rules().get(_norm_abbr(jurisdiction))


def disclosure_requirements(jurisdiction: Optional[str]) -> List[str]:
    rule = get_jurisdiction_rule(jurisdiction)
    return list(rule.disclosures) if rule else []


def all_jurisdictions() -> List[JurisdictionRule]:
    return list(_rules().values())


def _check_criminal_cap(rule: JurisdictionRule, rate: float, exempted_civil: bool) -> Optional[UsuryEvaluation]:
    if rule.criminal_cap is None or rate <= rule.criminal_cap:
        return None
    if exempted_civil:
        suffix = " (civil exemption applies but criminal cap still in effect)"
    else:
        suffix = " (no civil cap but criminal cap applies)"
    return UsuryEvaluation(
        violates=True,
        limit=rule.criminal_cap,
        message=f"Rate {_pct(rate)} exceeds {rule.name} criminal usury cap of {_pct(rule.criminal_cap)}{suffix}",
    )


def _evaluate_commercial_exemption(rule: JurisdictionRule, rate: float, amount: float) -> UsuryEvaluation:
    # Some jurisdictions raise the cap instead of removing it
    if rule.exemption_cap is not None:
        if rate > rule.exemption_cap:
            return UsuryEvaluation(
                violates=True,
                limit=rule.exemption_cap,
                message=f"Rate {_pct(rate)} exceeds {rule.name} commercial cap of {_pct(rule.exemption_cap)}",
            )
        return UsuryEvaluation(violates=False, limit=rule.exemption_cap,
                               message="Commercial exemption applies (higher cap)")

    if rule.criminal_cap is not None:
        fully_exempt = rule.criminal_exempt_threshold is not None and amount >= rule.criminal_exempt_threshold
        if not fully_exempt:
            hit = _check_criminal_cap(rule, rate, exempted_civil=True)
            if hit is not None:
                return hit

    return UsuryEvaluation(violates=False, limit=rule.max_rate, message="Commercial exemption applies")


def evaluate_usury(
    jurisdiction: Optional[str],
    annual_rate: float,
    loan_amount: float,
    is_commercial: bool,
) -> UsuryEvaluation:
    """
    Evaluate a (rate, amount) pair against the jurisdiction's usury rules.

    Returns UsuryEvaluation(violates, limit, message). Never raises.
    """
    rule = get_jurisdiction_rule(jurisdiction)
    if rule is None:
        return UsuryEvaluation(violates=False, limit=NO_LIMIT,
                               message="State not found; no usury check possible")

    if is_commercial and rule.commercial_exemption and loan_amount >= rule.exemption_threshold:
        return _evaluate_commercial_exemption(rule, annual_rate, loan_amount)

    if rule.max_rate >= NO_LIMIT:
        hit = _check_criminal_cap(rule, annual_rate, exempted_civil=False)
        if hit is not None:
            return hit
        return UsuryEvaluation(violates=False, limit=NO_LIMIT, message=f"{rule.name} has no usury limit")

    if annual_rate > rule.max_rate:
        return UsuryEvaluation(
            violates=True,
            limit=rule.max_rate,
            message=f"Rate {_pct(annual_rate)} exceeds {rule.name} usury limit of {_pct(rule.max_rate)}",
        )
    return UsuryEvaluation(violates=False, limit=rule.max_rate, message="Within state limit")


# ------------------------------ Single Tool ----------------------------------

@tool("check_state_usury")
def check_state_usury(state: str, annual_rate: float, loan_amount: float, is_commercial: bool = True) -> str:
    """
    Check an annual interest rate (decimal, 0.12 == 12%) against the state's usury rules.

    Returns JSON: {state, violates, limit, message, statute, disclosures,
                   commercial_disclosure_required, license_required}
    """
    result = evaluate_usury(state, float(annual_rate), float(loan_amount), bool(is_commercial))
    rule = get_jurisdiction_rule(state)
    out = {
        "state": _norm_abbr(state),
        "violates": result.violates,
        "limit": result.limit,
        "message": result.message,
        "statute": rule.statute if rule else "",
        "disclosures": list(rule.disclosures) if rule else [],
        "commercial_disclosure_required": rule.disclosure_required if rule else False,
        "license_required": rule.license_required if rule else False,
    }
    return json.dumps(out, ensure_ascii=False, indent=2)
