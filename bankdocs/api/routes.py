"""FastAPI routes for ingestion control, questions and health.

Endpoint                              Method  Description
----------------------------------------------------------------------
/api/v1/ingestion/runs                POST    Start a run (202, 409 if busy)
/api/v1/ingestion/runs                GET     List runs, newest first
/api/v1/ingestion/runs/{run_id}       GET     Run status (404 if unknown)
/api/v1/ingestion/runs/{run_id}/cancel POST   Request cancellation
/api/v1/chat                          POST    Ask a question
/api/v1/health                        GET     Store stats and provider status

Services are resolved from ``app.state`` (populated by the lifespan handler
in ``main.py``) through ``Depends`` helpers.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from bankdocs.api.schemas import ChatRequest, ErrorResponse, HealthResponse, TriggerIngestionRequest
from bankdocs.models.answers import QueryAnswer
from bankdocs.models.ingestion import IngestionRun
from bankdocs.services.ingestion.ingestion_service import IngestionService
from bankdocs.services.retrieval.answer_service import AnswerService
from bankdocs.utils.errors import BankDocsError, IngestionBusyError, RunNotFoundError
from bankdocs.utils.logging import get_logger
from bankdocs.utils.similarity import validate_filters

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def _get_answer_service(request: Request) -> AnswerService:
    return request.app.state.answer_service


IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
AnswerDep = Annotated[AnswerService, Depends(_get_answer_service)]


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@router.post("/ingestion/runs", status_code=202, response_model=IngestionRun)
async def trigger_ingestion(
    service: IngestionDep,
    body: TriggerIngestionRequest | None = None,
) -> IngestionRun:
    """Start an ingestion run in the background and return it as ``Running``."""
    try:
        return await service.trigger_ingestion(
            source_filter=body.sources if body else None,
            wait=False,
            busy_timeout=0,
        )
    except IngestionBusyError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc


@router.get("/ingestion/runs", response_model=list[IngestionRun])
async def list_runs(service: IngestionDep) -> list[IngestionRun]:
    return service.list_runs()


@router.get("/ingestion/runs/{run_id}", response_model=IngestionRun)
async def get_run(run_id: str, service: IngestionDep) -> IngestionRun:
    try:
        return service.get_run_status(run_id)
    except RunNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc


@router.post("/ingestion/runs/{run_id}/cancel", response_model=IngestionRun)
async def cancel_run(run_id: str, service: IngestionDep) -> IngestionRun:
    try:
        return service.cancel_run(run_id)
    except RunNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@router.post(
    "/chat",
    response_model=QueryAnswer,
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def chat(body: ChatRequest, service: AnswerDep) -> Any:
    """Answer a question from the knowledge base."""
    try:
        validate_filters(body.filters)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        return await service.ask(
            body.query,
            filters=body.filters,
            max_results=body.max_results,
            min_score=body.min_score,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except BankDocsError as exc:
        _logger.warning("chat_failed", error_type=type(exc).__name__, error=str(exc))
        return _query_error(retryable=exc.retryable)
    except Exception as exc:
        _logger.exception("chat_failed_unexpected", error=str(exc))
        return _query_error(retryable=False)


def _query_error(retryable: bool) -> JSONResponse:
    body = ErrorResponse(
        error="QueryFailed",
        detail="Could not process query",
        retryable=retryable,
    )
    return JSONResponse(status_code=503 if retryable else 500, content=body.model_dump())


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, service: IngestionDep) -> HealthResponse:
    state = request.app.state
    store = state.passage_store
    providers = {
        "embedding": await asyncio.to_thread(state.embedding_provider.is_available),
        "llm": state.llm_provider.is_available(),
        "store": store.is_available(),
    }
    return HealthResponse(
        status="ok" if all(providers.values()) else "degraded",
        version=state.version,
        store=await store.get_stats(),
        providers=providers,
        sources=service.source_names,
        ingestion_running=service.is_running(),
    )
