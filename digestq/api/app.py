"""FastAPI server for the DigestQ thread digest pipeline"""

from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from digestq.api.routes.digest import router as digest_router
from digestq.api.routes.health import router as health_router
from digestq.config import APP_VERSION
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event
from digestq.utils.redaction import redact

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="DigestQ API", version=APP_VERSION)

# Initialize logger
logger = get_logger(__name__)


# Custom validation error handler to prevent information leakage
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Custom validation error handler that prevents leaking internal validation logic.
    """
    # Log full error for debugging (with PII redaction)
    logger.warning("Validation error on %s: %s", redact(str(request.url)), exc.errors())

    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Rejected request on %s: %s", redact(str(request.url)), exc)
    counter("api.bad_requests")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


# Include routers
app.include_router(health_router)
app.include_router(digest_router)

log_event("api.startup", service="digestq", version=APP_VERSION)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "DigestQ API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "batches": "/api/digest/{user_id}/batches",
            "summaries": "/api/digest/{user_id}/summaries",
            "status": "/api/digest/{user_id}/status",
            "chunks": "/api/chunks",
        },
    }
