"""Template dispatch: registry lookup from document type to builder."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from ..models import DealInput, DocTypeId
from ..registry import get_spec
from .tree import DocumentTree


def _as_mapping(prose: Union[BaseModel, Dict[str, Any], None]) -> Dict[str, Any]:
    if prose is None:
        return {}
    if isinstance(prose, BaseModel):
        return prose.model_dump()
    return dict(prose)


def dispatch(doc_type: DocTypeId, deal: DealInput,
             prose: Union[BaseModel, Dict[str, Any], None] = None) -> Optional[DocumentTree]:
    """Build the document tree, or None when the type has no builder."""
    spec = get_spec(doc_type)
    if spec.builder is None:
        return None
    return spec.builder(deal, _as_mapping(prose))
