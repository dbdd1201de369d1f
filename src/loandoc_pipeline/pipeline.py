# -*- coding: utf-8 -*-
"""
Document generation orchestrator.

Design
------
- One document walks: prose (or skip for zero-content types) -> validate ->
  review -> dispatch/placeholder -> render -> verify -> classify.
- Every collaborator call runs under call_with_timeout; the timeout is also
  handed to the collaborator so it can pass it on to the LLM client.
- generate_one() never raises for a known document type: any failure becomes
  a FLAGGED error result carrying a rendered error payload.
- generate_all() fans out over a bounded thread pool and returns results in
  document-list order. A set cancel_event stops not-yet-started documents,
  which are simply omitted; in-flight documents finish.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Union

from pydantic import BaseModel

from .documents.builders import error_document, placeholder_document
from .documents.dispatch import dispatch
from .documents.render import PdfRenderer
from .documents.tree import DocumentTree
from .errors import UnknownProgram
from .models import (
    ComplianceCheck,
    DealInput,
    DocTypeId,
    DocumentResult,
    ReviewIssue,
    ReviewResult,
    Severity,
    Status,
    VerificationResult,
)
from .registry import DocTypeSpec, get_spec, parse_doc_type
from .tools.collaborators import ComplianceReviewer, ProseGenerator, call_with_timeout
from .tools.compliance_checks import run_program_checks, to_compliance_check
from .tools.programs import required_documents
from .tools.prose import validate_prose
from .tools.requirements import filter_required_docs
from .tools.review import review_document
from .tools.runlog import persist_runlog, summarize_run
from .tools.verify import verify_document

# ------------------------------ Logger ---------------------------------------

LOGGER = logging.getLogger(__name__)

Renderer = Callable[[DocumentTree], bytes]

DEFAULT_TIMEOUT: float = 120.0
DEFAULT_MAX_WORKERS: int = 4


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return max(1, int(raw)) if raw else default
    except ValueError:
        LOGGER.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def classify_status(review: ReviewResult, verification: VerificationResult, has_builder: bool) -> Status:
    if not review.passed or not verification.passed:
        return Status.FLAGGED
    if not has_builder:
        return Status.DRAFT
    return Status.REVIEWED


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", text).strip("_").lower() or "deal"


class DocumentPipeline:
    """Generates, reviews, renders and verifies loan documents for one deal at a time."""

    def __init__(
        self,
        generator: Optional[ProseGenerator] = None,
        reviewer: Optional[ComplianceReviewer] = None,
        renderer: Optional[Renderer] = None,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
        programs: Callable[[str], List[str]] = required_documents,
    ) -> None:
        if generator is None or reviewer is None:
            from .tools.generate import CrewProseGenerator
            from .tools.review import CrewComplianceReviewer

            generator = generator or CrewProseGenerator()
            reviewer = reviewer or CrewComplianceReviewer()
        self.generator = generator
        self.reviewer = reviewer
        self.renderer: Renderer = renderer or PdfRenderer()
        self.timeout = timeout if timeout is not None else _env_float("LOANDOC_COLLABORATOR_TIMEOUT", DEFAULT_TIMEOUT)
        self.max_workers = max_workers or _env_int("LOANDOC_MAX_WORKERS", DEFAULT_MAX_WORKERS)
        self.programs = programs

    # ------------------------------ Single document --------------------------

    def generate_one(
        self,
        doc_type: Union[DocTypeId, str],
        deal: DealInput,
        feedback: Optional[str] = None,
    ) -> DocumentResult:
        spec = get_spec(doc_type)  # UnknownDocumentType propagates to the caller
        try:
            return self._generate(spec, deal, feedback)
        except Exception as exc:
            LOGGER.exception("Generation failed for %s", spec.doc_type.value)
            return self.error_result(spec.doc_type, exc)

    def _generate(self, spec: DocTypeSpec, deal: DealInput, feedback: Optional[str]) -> DocumentResult:
        diagnostics: List[str] = []
        prose: Optional[BaseModel] = None
        checks: List[ComplianceCheck] = []

        if spec.zero_content:
            review = ReviewResult(passed=True)
        else:
            keys = [key for key, _ in spec.sections]
            raw = call_with_timeout(f"generate:{spec.doc_type.value}", self.timeout, self.generator.generate,
                                    spec.doc_type, deal, keys, feedback, self.timeout)
            validation = validate_prose(spec.doc_type, raw)
            diagnostics.extend(validation.diagnostics)
            prose = validation.prose

            outcome = review_document(spec.doc_type, deal, prose, reviewer=self.reviewer, timeout=self.timeout)
            review = outcome.result
            checks.extend(outcome.checks)
            if outcome.corrected_prose is not None:
                prose = outcome.corrected_prose

        checks = [to_compliance_check(r) for r in run_program_checks(deal)] + checks

        tree = dispatch(spec.doc_type, deal, prose)
        has_builder = tree is not None
        if tree is None:
            tree = placeholder_document(spec.label, deal)
            diagnostics.append(f"{spec.doc_type.value}: no template registered; placeholder rendered")
        payload = self.renderer(tree)

        # a placeholder makes no claims about the deal terms
        verification = verify_document(spec.doc_type, deal, prose, tree if has_builder else None)
        status = classify_status(review, verification, has_builder)
        LOGGER.info("%s -> %s", spec.doc_type.value, status.value)
        return DocumentResult(
            doc_type=spec.doc_type,
            label=spec.label,
            payload=payload,
            review=review,
            verification=verification,
            compliance_checks=checks,
            status=status,
            diagnostics=diagnostics,
        )

    def error_result(self, doc_type: DocTypeId, exc: BaseException) -> DocumentResult:
        spec = get_spec(doc_type)
        message = str(exc) or exc.__class__.__name__
        tree = error_document(spec.label, message)
        try:
            payload = self.renderer(tree)
        except Exception:
            LOGGER.exception("Rendering the error document for %s failed", spec.doc_type.value)
            payload = tree.plain_text().encode("utf-8")

        return DocumentResult(
            doc_type=spec.doc_type,
            label=spec.label,
            payload=payload,
            review=ReviewResult(passed=False, issues=[ReviewIssue(
                severity=Severity.CRITICAL,
                section="generation",
                description=f"Document generation failed: {message}",
                recommendation="Retry generation or create document manually",
            )]),
            verification=VerificationResult(passed=False, issues=[], checks_run=0, checks_passed=0),
            compliance_checks=[ComplianceCheck(
                name="Document Generation",
                regulation="Internal",
                category="regulatory",
                passed=False,
                note=f"{spec.label} could not be generated: {message[:200]}",
                severity=Severity.CRITICAL,
            )],
            status=Status.FLAGGED,
            diagnostics=[f"{spec.doc_type.value}: {exc.__class__.__name__}: {message[:200]}"],
        )

    # ------------------------------ Batch ------------------------------------

    def generate_all(
        self,
        deal: DealInput,
        required_doc_types: Iterable[Union[DocTypeId, str]],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[DocumentResult]:
        doc_types = list(dict.fromkeys(filter_required_docs(deal, required_doc_types)))
        LOGGER.info("Generating %d document(s) for %s", len(doc_types), deal.borrower_name)

        def _task(doc_type: DocTypeId) -> Optional[DocumentResult]:
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("Skipping %s: run cancelled", doc_type.value)
                return None
            return self.generate_one(doc_type, deal)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="loandoc") as pool:
            futures = [pool.submit(_task, d) for d in doc_types]
            results = [f.result() for f in futures]

        out = [r for r in results if r is not None]
        self._persist(deal, out)
        return out

    def generate_for_program(
        self,
        deal: DealInput,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[DocumentResult]:
        candidates = self.programs(deal.program_id)
        if not candidates:
            raise UnknownProgram(deal.program_id)
        return self.generate_all(deal, candidates, cancel_event)

    def regenerate(self, doc_type: Union[DocTypeId, str], deal: DealInput, feedback: str) -> DocumentResult:
        return self.generate_one(parse_doc_type(doc_type), deal, feedback=feedback)

    def _persist(self, deal: DealInput, results: List[DocumentResult]) -> None:
        if not os.getenv("RUNLOG_DIR"):
            return
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        summary = summarize_run(results)
        summary.update({"borrower": deal.borrower_name, "program_id": deal.program_id})
        try:
            persist_runlog(summary, filename=f"run_{_slug(deal.borrower_name)}_{ts}.json")
        except OSError as exc:
            LOGGER.warning("Could not persist run log: %s", exc)
