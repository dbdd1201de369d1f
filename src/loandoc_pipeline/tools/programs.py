# -*- coding: utf-8 -*-
"""
Loan program catalogue (config/loan_programs.yaml).

Supplies, per product line, the structuring limits used by program-level
compliance checks and the ordered master list of output documents.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config_loader import config_dir, load_config

LOGGER = logging.getLogger(__name__)

PROGRAMS_FILE: str = "loan_programs.yaml"

PROGRAMS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["programs"],
    "properties": {
        "version": {"type": "integer"},
        "programs": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["name", "category", "max_ltv", "max_term", "compliance_checks", "required_output_docs"],
                "properties": {
                    "name": {"type": "string"},
                    "category": {"enum": ["commercial", "residential", "specialty"]},
                    "max_ltv": {"type": "number", "minimum": 0, "maximum": 1},
                    "max_term": {"type": "integer", "minimum": 0},
                    "compliance_checks": {"type": "array", "items": {"type": "string"}},
                    "standard_fees": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "type", "value"],
                            "properties": {
                                "name": {"type": "string"},
                                "type": {"enum": ["percent", "flat"]},
                                "value": {"type": "number"},
                                "description": {"type": "string"},
                            },
                        },
                    },
                    "required_output_docs": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
                },
                "additionalProperties": False,
            },
        },
    },
}


class StandardFee(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    value: float
    description: str = ""

    def amount_for(self, principal: float) -> float:
        """Dollar amount of the fee on a loan of ``principal``."""
        return principal * self.value if self.type == "percent" else self.value


class LoanProgram(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    max_ltv: float
    max_term: int                       # months; 0 == revolving
    compliance_checks: List[str] = Field(default_factory=list)
    standard_fees: List[StandardFee] = Field(default_factory=list)
    required_output_docs: List[str] = Field(default_factory=list)


@lru_cache(maxsize=4)
def _load_programs(folder: str) -> Dict[str, LoanProgram]:
    data = load_config(PROGRAMS_FILE, PROGRAMS_SCHEMA)
    programs = {pid: LoanProgram(id=pid, **row) for pid, row in data["programs"].items()}
    LOGGER.debug("Loaded %d loan programs from %s", len(programs), folder)
    return programs


def clear_cache() -> None:
    _load_programs.cache_clear()


def all_programs() -> List[LoanProgram]:
    return list(_load_programs(str(config_dir())).values())


def get_program(program_id: Optional[str]) -> Optional[LoanProgram]:
    return _load_programs(str(config_dir())).get((program_id or "").strip())


def required_documents(program_id: Optional[str]) -> List[str]:
    """Ordered master list of document types for the program (empty if unknown)."""
    program = get_program(program_id)
    return list(program.required_output_docs) if program else []
