import base64
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from .errors import UnknownDocumentType, UnknownProgram
from .models import DealInput, DocumentResult
from .pipeline import DocumentPipeline
from .tools.programs import get_program, required_documents
from .tools.requirements import filter_required_docs
from .tools.usury import evaluate_usury, get_jurisdiction_rule

# Load environment variables
load_dotenv()

app = FastAPI(title="Loan Document Pipeline API")


class GenerateRequest(BaseModel):
    deal: DealInput
    documents: Optional[List[str]] = None   # default: the program's master list


class RegenerateRequest(BaseModel):
    deal: DealInput
    feedback: str = ""


@lru_cache(maxsize=1)
def get_pipeline() -> DocumentPipeline:
    return DocumentPipeline()


def _result_out(result: DocumentResult) -> Dict[str, Any]:
    out = result.model_dump(mode="json", exclude={"payload"})
    out["payload_b64"] = base64.b64encode(result.payload).decode("ascii")
    out["payload_bytes"] = len(result.payload)
    return out


@app.get("/ping")
def ping():
    return {"pong": True}


@app.post("/documents/generate")
def generate_documents(payload: GenerateRequest, pipeline: DocumentPipeline = Depends(get_pipeline)):
    try:
        if payload.documents is None:
            results = pipeline.generate_for_program(payload.deal)
        else:
            results = pipeline.generate_all(payload.deal, payload.documents)
    except UnknownProgram as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"count": len(results), "results": [_result_out(r) for r in results]}


@app.post("/documents/{doc_type}/regenerate")
def regenerate_document(doc_type: str, payload: RegenerateRequest,
                        pipeline: DocumentPipeline = Depends(get_pipeline)):
    try:
        result = pipeline.regenerate(doc_type, payload.deal, payload.feedback)
    except UnknownDocumentType as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _result_out(result)


def _program_or_404(program_id: str):
    program = get_program(program_id)
    if program is None:
        raise HTTPException(status_code=404, detail=str(UnknownProgram(program_id)))
    return program


@app.get("/programs/{program_id}/documents")
def program_documents(program_id: str):
    program = _program_or_404(program_id)
    return {"program_id": program.id, "name": program.name, "documents": required_documents(program_id)}


@app.post("/programs/{program_id}/documents")
def program_documents_for_deal(program_id: str, deal: DealInput):
    program = _program_or_404(program_id)
    docs = filter_required_docs(deal, required_documents(program_id))
    return {"program_id": program.id, "name": program.name, "documents": [d.value for d in docs]}


@app.get("/usury/{state}")
def usury(
        state: str,
        rate: float = Query(..., ge=0, description="Annual rate as a decimal (0.12 == 12%)"),
        amount: float = Query(..., gt=0, description="Loan principal"),
        commercial: bool = Query(True, description="Commercial purpose loan"),
):
    result = evaluate_usury(state, rate, amount, commercial)
    rule = get_jurisdiction_rule(state)
    return {
        "state": state.strip().upper(),
        "known": rule is not None,
        "violates": result.violates,
        "limit": result.limit,
        "message": result.message,
        "statute": rule.statute if rule else "",
        "disclosures": list(rule.disclosures) if rule else [],
        "commercial_disclosure_required": rule.disclosure_required if rule else False,
        "license_required": rule.license_required if rule else False,
    }
