"""
Digest API endpoints.

Provides endpoints for:
- Streaming thread batches into a user's categorization session
- Generating the summary document once every thread is categorized
- Checking session status
- Standalone token-budget batching
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from digestq.config import API_BATCH_SIZE_MAX
from digestq.digest.models import SummaryDocument, Thread
from digestq.digest.orchestrator import SessionState, ThreadsNotCategorizedError
from digestq.digest.sessions import SessionRegistry
from digestq.digest.token_budget import TokenBudgeter
from digestq.llm.client import generate_response
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter

router = APIRouter(prefix="/api", tags=["digest"])
logger = get_logger(__name__)

_registry: SessionRegistry | None = None


def get_session_registry() -> SessionRegistry:
    """Get or create singleton SessionRegistry instance."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry(generate_response)
    return _registry


# ============================================================================
# Request/Response Models
# ============================================================================


class BatchRequest(BaseModel):
    """API request to categorize a batch of threads."""

    threads: list[Thread] = Field(..., max_length=API_BATCH_SIZE_MAX)
    total_threads: int = Field(..., ge=0)


class SessionStatus(BaseModel):
    user_id: str
    state: SessionState
    processed_threads: int
    total_threads_expected: int | None = None


class BatchResponse(SessionStatus):
    complete: bool


class ChunkRequest(BaseModel):
    """API request to partition threads into token-bounded chunks."""

    threads: list[Thread] = Field(..., max_length=API_BATCH_SIZE_MAX)
    token_limit: int | None = Field(None, gt=0)


class ChunkResponse(BaseModel):
    chunks: list[list[str]]


# ============================================================================
# Session Endpoints
# ============================================================================


@router.post("/digest/{user_id}/batches", response_model=BatchResponse)
async def categorize_batch(
    user_id: str,
    request: BatchRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> BatchResponse:
    """Categorize one batch; `complete` is true once the session is ready."""
    session = registry.get(user_id)
    complete = await session.categorize_batch(request.threads, user_id, request.total_threads)
    counter("api.batches")
    return BatchResponse(
        user_id=user_id,
        state=session.state,
        processed_threads=session.processed_threads,
        total_threads_expected=session.total_threads_expected,
        complete=complete,
    )


@router.post("/digest/{user_id}/summaries", response_model=SummaryDocument)
async def generate_summaries(
    user_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SummaryDocument:
    """
    Generate the digest for a fully categorized session.

    Returns 409 if the session is not ready; the session is left as it was.
    """
    session = registry.get(user_id)
    try:
        document = await session.generate_summaries(user_id)
    except ThreadsNotCategorizedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None

    registry.discard(user_id)
    return document


@router.get("/digest/{user_id}/status", response_model=SessionStatus)
async def session_status(
    user_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionStatus:
    session = registry.peek(user_id)
    if session is None:
        return SessionStatus(user_id=user_id, state=SessionState.IDLE, processed_threads=0)
    return SessionStatus(
        user_id=user_id,
        state=session.state,
        processed_threads=session.processed_threads,
        total_threads_expected=session.total_threads_expected,
    )


# ============================================================================
# Batching Endpoint
# ============================================================================


@router.post("/chunks", response_model=ChunkResponse)
async def chunk_threads(request: ChunkRequest) -> ChunkResponse:
    """Partition threads into token-bounded chunks and return their ids."""
    chunks = TokenBudgeter().chunk(request.threads, request.token_limit)
    return ChunkResponse(chunks=[[thread.id for thread in chunk] for chunk in chunks])
