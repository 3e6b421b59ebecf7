"""FastAPI application factory.

Example:
    uvicorn querygate.api.app:create_app --factory --port 8000
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from querygate import __version__
from querygate.api.routes import router
from querygate.core.config import Settings
from querygate.core.engine import QueryGate
from querygate.exceptions import (
    CompileError,
    ConfigurationError,
    ExecutionError,
    InvalidRequestError,
    QueryGateError,
    ResourceExhaustedError,
    SafetyViolationError,
    UpstreamAnalysisError,
)

logger = logging.getLogger(__name__)

# Checked in order; first match wins
STATUS_CODES: list[tuple[type[QueryGateError], int]] = [
    (CompileError, status.HTTP_400_BAD_REQUEST),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (UpstreamAnalysisError, status.HTTP_400_BAD_REQUEST),
    (SafetyViolationError, status.HTTP_403_FORBIDDEN),
    (ResourceExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExecutionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: QueryGateError) -> int:
    """HTTP status code for a QueryGate error."""
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def querygate_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render QueryGate errors as their JSON payload with a mapped status."""
    if not isinstance(exc, QueryGateError):
        raise exc
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


def create_app(gate: QueryGate | None = None, settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        gate: Pre-built QueryGate (the app does not close it). When omitted,
            one is built from ``settings`` at startup and closed at shutdown.
        settings: Configuration used when ``gate`` is omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = gate is None
        app.state.gate = gate or QueryGate(settings or Settings.from_env())
        logger.info("QueryGate API started")
        try:
            yield
        finally:
            if owned:
                app.state.gate.close()
            logger.info("QueryGate API stopped")

    app = FastAPI(
        title="QueryGate",
        description="Safe structured and natural-language read access to relational data",
        version=__version__,
        lifespan=lifespan,
    )
    if gate is not None:
        app.state.gate = gate

    app.add_exception_handler(QueryGateError, querygate_exception_handler)
    app.include_router(router)

    @app.get("/health", tags=["health"])
    def health(request: Request) -> dict[str, object]:
        qg: QueryGate = request.app.state.gate
        return {"status": "ok", "version": __version__, "analysisAvailable": qg.analysis_available}

    return app

