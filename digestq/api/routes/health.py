"""Health check endpoint for the digest API.

Liveness for Cloud Run plus a snapshot of in-memory digest sessions, so an
operator can see whether batches are piling up without summaries.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from digestq.api.routes.digest import get_session_registry
from digestq.config import APP_VERSION, DEFAULT_TOKEN_LIMIT
from digestq.digest.sessions import SessionRegistry
from digestq.infrastructure.settings import GEMINI_MODEL

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict[str, Any]:
    """Service status, LLM credential presence and live session counts.

    Credentials are only checked for presence; no Gemini call is made.
    """
    llm_ready = bool(os.getenv("GOOGLE_API_KEY") or os.getenv("GOOGLE_CLOUD_PROJECT"))

    return {
        "status": "healthy",
        "service": "DigestQ API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {"ready": llm_ready, "model": GEMINI_MODEL},
        "digest": {
            "token_limit": registry.budgeter.token_limit,
            "default_token_limit": DEFAULT_TOKEN_LIMIT,
            "active_sessions": len(registry),
            "sessions_by_state": registry.state_counts(),
        },
    }
