# -*- coding: utf-8 -*-
"""
Collaborator seams: the prose generator and the compliance reviewer.

Design
------
- Both are duck-typed (typing.Protocol); the CrewAI implementations live in
  tools/generate.py and tools/review.py, tests pass plain fakes.
- call_with_timeout() runs one collaborator call on a single-use worker and
  stops waiting after `timeout` seconds. The worker is abandoned, not joined,
  so a hung LLM call cannot stall the document that issued it.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from ..errors import CollaboratorError, CollaboratorTimeout, LoanDocError
from ..models import DealInput, DocTypeId, ReviewerVerdict

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ProseGenerator(Protocol):
    def generate(
        self,
        doc_type: DocTypeId,
        deal: DealInput,
        sections: List[str],
        feedback: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        ...


class ComplianceReviewer(Protocol):
    def review(
        self,
        doc_type: DocTypeId,
        deal: DealInput,
        prose: Dict[str, Any],
        checklist: Dict[str, List[str]],
        timeout: Optional[float] = None,
    ) -> ReviewerVerdict:
        ...


def call_with_timeout(label: str, timeout: Optional[float], fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run fn(*args, **kwargs) with a deadline.

    Raises CollaboratorTimeout on expiry. Pipeline errors pass through as-is;
    anything else is wrapped in CollaboratorError.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"collab-{label}")
    future = pool.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        LOGGER.warning("%s timed out after %ss", label, timeout)
        raise CollaboratorTimeout(f"{label} timed out after {timeout}s") from exc
    except LoanDocError:
        raise
    except Exception as exc:
        LOGGER.warning("%s failed: %s", label, exc)
        raise CollaboratorError(f"{label} failed: {exc}") from exc
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
