import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from loandoc_pipeline.models import DealInput
from loandoc_pipeline.pipeline import DocumentPipeline

LOGGER = logging.getLogger(__name__)


def _load_deal(path: str) -> DealInput:
    with open(path, "r", encoding="utf-8") as f:
        return DealInput.model_validate(json.load(f))


def run(argv: Optional[List[str]] = None):
    """Generate the program's document set for a deal JSON and write the PDFs."""
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    args = sys.argv[1:] if argv is None else argv
    deal_file = args[0] if args else os.getenv("LOANDOC_DEAL_FILE")
    if not deal_file:
        raise SystemExit("usage: loandoc <deal.json>  (or set LOANDOC_DEAL_FILE)")

    deal = _load_deal(deal_file)
    out_dir = Path(os.getenv("LOANDOC_OUTPUT_DIR", "data/documents"))
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        results = DocumentPipeline().generate_for_program(deal)
    except Exception as e:
        raise Exception(f"An error occurred while generating documents: {e}")

    print(f"{'Document':<34} {'Status':<9} {'Review':<7} {'Verify':<7} Checks")
    for r in results:
        (out_dir / f"{r.doc_type.value}.pdf").write_bytes(r.payload)
        print(f"{r.doc_type.value:<34} {r.status.value:<9} "
              f"{'pass' if r.review.passed else 'FAIL':<7} {'pass' if r.verification.passed else 'FAIL':<7} "
              f"{r.verification.checks_passed}/{r.verification.checks_run}")
    print(f"\n{len(results)} document(s) written to {out_dir}")
    return results


if __name__ == "__main__":
    run()
