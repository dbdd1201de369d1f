# -*- coding: utf-8 -*-
"""
Run log: JSON summary of one generate_all() run written to disk.

Design
------
- Destination precedence is explicit argument > environment > default, so
  a caller that names its file (one file per run) never collides with a
  RUNLOG_FILE set for ad-hoc writes.
- Non-string payloads are JSON-encoded; datetimes fall back to str().
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from ..models import DocumentResult, Severity, Status

LOGGER = logging.getLogger(__name__)

DEFAULT_DIR: str = "runlogs"
DEFAULT_FILE: str = "runlog.json"

PathLike = Union[str, os.PathLike]


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def runlog_path(out_dir: Optional[PathLike] = None, filename: Optional[str] = None) -> Path:
    """Resolve the run-log file: arguments first, then RUNLOG_DIR / RUNLOG_FILE, then defaults."""
    folder = out_dir or os.getenv("RUNLOG_DIR") or DEFAULT_DIR
    name = filename or os.getenv("RUNLOG_FILE") or DEFAULT_FILE
    return Path(folder) / name


def persist_runlog(
    payload: Any,
    out_dir: Optional[PathLike] = None,
    filename: Optional[str] = None,
) -> Dict[str, Any]:
    """Write the payload to the resolved path and return metadata."""
    dest = runlog_path(out_dir, filename)
    dest.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(payload, str):
        text = payload
    else:
        text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    overwritten = dest.exists()

    dest.write_text(text, encoding="utf-8")
    size = len(text.encode("utf-8"))
    LOGGER.info("[persist_runlog] wrote %s (%d bytes)", dest, size)

    return {
        "saved_to": str(dest),
        "bytes": size,
        "overwritten": overwritten,
        "saved_at": _utc_stamp(),
    }


def summarize_run(results: Iterable[DocumentResult]) -> Dict[str, Any]:
    """JSON-safe run summary: per document status, issue counts and failed checks."""
    documents: Dict[str, Any] = {}
    totals = {s.value: 0 for s in Status}
    for r in results:
        totals[r.status.value] += 1
        documents[r.doc_type.value] = {
            "label": r.label,
            "status": r.status.value,
            "review_passed": r.review.passed,
            "review_issues": len(r.review.issues),
            "critical_issues": sum(1 for i in r.review.issues if i.severity == Severity.CRITICAL),
            "verification_passed": r.verification.passed,
            "verification_issues": len(r.verification.issues),
            "checks": f"{r.verification.checks_passed}/{r.verification.checks_run}",
            "compliance_failed": [c.name for c in r.compliance_checks if not c.passed],
            "diagnostics": list(r.diagnostics),
            "bytes": len(r.payload),
        }
    return {"generated_at": _utc_stamp(), "totals": totals, "documents": documents}
