"""HTTP endpoints.

ENDPOINTS:
- GET  /api/metadata?database=main|readonly - discovered tables
- POST /api/search          - one page of a structured search
- POST /api/export          - structured search as a CSV download
- POST /api/validate        - safety gate verdict for SQL (nothing is run)
- GET  /api/nl/suggestions  - curated example prompts
- POST /api/nl/analyze      - natural language -> QueryIntent
- POST /api/nl/execute      - run confirmed SQL (403 if it fails the gate)
- POST /api/nl/feedback     - accuracy signal for a request
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from querygate.core.engine import QueryGate
from querygate.core.types import (
    CamelModel,
    DatabaseName,
    FeedbackRecord,
    QueryIntent,
    QueryResult,
    SearchRequest,
    SearchResult,
    TableMetadata,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["query"])


class MetadataResponse(CamelModel):
    tables: list[TableMetadata]
    operators: dict[str, list[str]]


class AnalyzeRequest(CamelModel):
    query: str


class ExecuteRequest(CamelModel):
    sql: str
    user_query: str | None = None


class ValidateRequest(CamelModel):
    sql: str
    database: DatabaseName = DatabaseName.READONLY


class ValidateResponse(CamelModel):
    valid: bool
    error: str | None = None
    tables_accessed: list[str] = []
    warnings: list[str] = []


class SuggestionsResponse(CamelModel):
    suggestions: list[str]


def get_gate(request: Request) -> QueryGate:
    """The QueryGate owned by the running app."""
    gate: QueryGate = request.app.state.gate
    return gate


@router.get("/metadata", response_model=MetadataResponse)
def get_metadata(
    database: DatabaseName = Query(DatabaseName.MAIN),
    gate: QueryGate = Depends(get_gate),
) -> MetadataResponse:
    return MetadataResponse(tables=gate.metadata(database), operators=gate.operators())


@router.post("/metadata/refresh", response_model=MetadataResponse)
def refresh_metadata(
    database: DatabaseName = Query(DatabaseName.MAIN),
    gate: QueryGate = Depends(get_gate),
) -> MetadataResponse:
    gate.refresh_metadata(database)
    return MetadataResponse(tables=gate.metadata(database), operators=gate.operators())


@router.post("/search", response_model=SearchResult)
def search(request: SearchRequest, gate: QueryGate = Depends(get_gate)) -> SearchResult:
    return gate.search(request)


@router.post("/export")
def export(request: SearchRequest, gate: QueryGate = Depends(get_gate)) -> StreamingResponse:
    csv_text = gate.export(request)
    filename = gate.export_filename(request.table)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/validate", response_model=ValidateResponse)
def validate(request: ValidateRequest, gate: QueryGate = Depends(get_gate)) -> ValidateResponse:
    result = gate.validate(request.sql, request.database)
    if not result.valid:
        logger.warning(f"Validation rejected ({result.error}): {request.sql!r}")
    return ValidateResponse(
        valid=result.valid,
        error=result.error,
        tables_accessed=result.tables_accessed,
        warnings=result.warnings,
    )


@router.get("/nl/suggestions", response_model=SuggestionsResponse)
def nl_suggestions(gate: QueryGate = Depends(get_gate)) -> SuggestionsResponse:
    return SuggestionsResponse(suggestions=gate.suggestions())


@router.post("/nl/analyze", response_model=QueryIntent)
def nl_analyze(request: AnalyzeRequest, gate: QueryGate = Depends(get_gate)) -> QueryIntent:
    return gate.analyze(request.query)


@router.post("/nl/execute", response_model=QueryResult)
def nl_execute(request: ExecuteRequest, gate: QueryGate = Depends(get_gate)) -> QueryResult:
    return gate.execute_nl(request.sql, request.user_query)


@router.post("/nl/feedback")
def nl_feedback(feedback: FeedbackRecord, gate: QueryGate = Depends(get_gate)) -> dict[str, Any]:
    # Storage failures are logged by the recorder; the caller always gets ok
    gate.record_feedback(feedback)
    return {"ok": True}
