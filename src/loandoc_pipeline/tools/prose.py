# -*- coding: utf-8 -*-
"""
Prose shape validator.

Design
------
- Input is whatever the generator (or reviewer) produced: a dict or a model.
- Output is a NEW frozen prose model; the input is never mutated.
- Missing/blank required sections get a visible placeholder so the document
  still renders; one diagnostic lists them.
- Light coercion only: str -> [str] for list sections, list -> joined text for
  scalar sections. Extra keys are preserved.
- Idempotent: validated prose passes through unchanged, no diagnostics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Union

from pydantic import BaseModel

from ..models import DocTypeId
from ..registry import get_spec, prose_model

LOGGER = logging.getLogger(__name__)

_PLACEHOLDER = "[{key}: content generation did not produce this section. Manual review required.]"
_PLACEHOLDER_TAIL = ": content generation did not produce this section. Manual review required.]"


class ProseValidation(NamedTuple):
    prose: BaseModel
    diagnostics: List[str]


def placeholder_text(key: str) -> str:
    return _PLACEHOLDER.format(key=key)


def is_placeholder(value: Any) -> bool:
    """True for an injected placeholder string, or a list holding only one."""
    if isinstance(value, str):
        return value.startswith("[") and value.endswith(_PLACEHOLDER_TAIL)
    if isinstance(value, (list, tuple)):
        return len(value) > 0 and all(is_placeholder(v) for v in value)
    return False


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not any(str(v).strip() for v in value if v is not None)
    return False


def _coerce(value: Any, is_list: bool) -> Union[str, List[str]]:
    if is_list:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None and str(v).strip()]
        return [str(value)]
    if isinstance(value, (list, tuple)):
        return "\n\n".join(str(v) for v in value if v is not None)
    return str(value)


def _as_dict(prose: Union[BaseModel, Mapping[str, Any], None]) -> Dict[str, Any]:
    if prose is None:
        return {}
    if isinstance(prose, BaseModel):
        return prose.model_dump()
    return dict(prose)


def validate_prose(doc_type: DocTypeId, prose: Union[BaseModel, Mapping[str, Any], None]) -> ProseValidation:
    spec = get_spec(doc_type)
    model = prose_model(spec.doc_type)
    data = _as_dict(prose)

    if not spec.sections:
        return ProseValidation(model(), [])

    missing: List[str] = []
    out: Dict[str, Any] = dict(data)
    for key, is_list in spec.sections:
        value = data.get(key)
        if _is_empty(value):
            missing.append(key)
            text = placeholder_text(key)
            out[key] = [text] if is_list else text
        else:
            out[key] = _coerce(value, is_list)

    diagnostics: List[str] = []
    if missing:
        LOGGER.warning("Injected placeholders into %s for: %s", spec.doc_type.value, ", ".join(missing))
        diagnostics.append(f"{spec.doc_type.value}: missing prose sections replaced with placeholders: "
                           f"{', '.join(missing)}")
    return ProseValidation(model(**out), diagnostics)
