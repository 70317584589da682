from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..services.languages import registry
from ..services.models import AUTO
from ..services.orchestrator import query_service
from ..services.stats import dispatch_metrics


class QueryRequest(BaseModel):
    text: str = Field(..., min_length=1)
    source_lang: str = AUTO
    target_lang: Optional[str] = None


class SectionRow(BaseModel):
    text: str
    subtitle: Optional[str] = None


class Section(BaseModel):
    kind: str
    provider: str
    title: str
    rows: List[SectionRow]


class ProviderNotice(BaseModel):
    provider: str
    error_kind: str
    message: str


class QueryResponse(BaseModel):
    sequence: int
    detection_pending: bool
    source_lang: Optional[str]
    detected_by: Optional[str]
    target_lang: Optional[str]
    sections: List[Section]
    notices: List[ProviderNotice]


class MetricsResponse(BaseModel):
    providers: Dict[str, Any]


router = APIRouter(tags=["query"])


@router.post("/query", response_model=QueryResponse)
async def query(payload: QueryRequest) -> QueryResponse:
    session = query_service.new_session()
    try:
        snapshot = await session.query(payload.text, payload.source_lang, payload.target_lang)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return QueryResponse(**snapshot.to_dict())


@router.get("/languages")
async def languages() -> List[Dict[str, Any]]:
    return [record.to_dict() for record in registry]


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics() -> MetricsResponse:
    """Per-provider outcome counters since start-up."""
    return MetricsResponse(providers=dispatch_metrics.get_summary())


@router.post("/metrics/reset")
async def reset_metrics():
    dispatch_metrics.reset()
    return {"status": "ok", "message": "Metrics reset successfully"}
