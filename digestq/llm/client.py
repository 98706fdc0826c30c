"""
LLM capability for the digest pipeline.

`generate_response` is the single entry point the core depends on: prompt in,
parsed JSON out. Retries for transient failures happen inside `call_llm`;
anything that still fails is raised as LLMError / LLMSchemaError and the
caller applies the recovery policy.

Safety features:
- System instruction per prompt kind with shared JSON formatting rules
- JSON repair before parsing (fences, prose, missing/trailing commas)
- PII redaction in all logs
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Protocol

from digestq.llm.json_repair import extract_json
from digestq.llm.retry import call_llm
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event, time_block
from digestq.utils.redaction import redact

logger = get_logger(__name__)


class LLMError(RuntimeError):
    """Raised when LLM call fails (network, API, etc)."""


class LLMSchemaError(ValueError):
    """Raised when LLM output is not parseable JSON."""


class LLMCapability(Protocol):
    """Async prompt-in, JSON-out callable. May raise."""

    async def __call__(
        self,
        prompt: str,
        prompt_kind: str,
        log_tag: str,
        user_id: str | None = None,
    ) -> Any: ...


_JSON_RULES = """

CRITICAL JSON FORMATTING RULES:
1. Your response MUST be valid JSON
2. DO NOT include any text, explanations, or markdown formatting outside the JSON structure
3. Use double quotes for all property names and string values
4. DO NOT use trailing commas in arrays or objects
5. Every string that starts with a quote MUST end with a quote
6. Escape quotes inside strings with a backslash
7. Do not use raw newlines inside string values"""

SYSTEM_INSTRUCTIONS = {
    "categorization": (
        "You are an AI assistant specialized in email intelligence.\n"
        "Your response must be a valid JSON object with a 'categories' array.\n"
        "Each category must have 'name' and 'threads' fields.\n"
        "Category names must be one of: Important Info, Calendar, Payments, Travel, "
        "Newsletters, or Notifications.\n"
        "Each thread must have id, subject, and messages array."
    ),
    "summary": (
        "You are a helpful assistant that always responds with valid JSON.\n"
        "Your response must be a JSON object with category_name, key_highlights "
        "and summaries fields."
    ),
    "single_summary": (
        "You are a helpful assistant that always responds with valid JSON.\n"
        "Your response must be a JSON object with a single 'summary' string field."
    ),
}

_DEFAULT_INSTRUCTION = (
    "You are a helpful assistant that always responds with valid JSON.\n"
    "Ensure your response is properly formatted and can be parsed as JSON."
)


def system_instruction_for(prompt_kind: str) -> str:
    return SYSTEM_INSTRUCTIONS.get(prompt_kind, _DEFAULT_INSTRUCTION) + _JSON_RULES


def _redact_prompt(prompt: str) -> str:
    """Redact email content from prompt for safe logging."""
    # Return first 50 chars + hash of full prompt
    preview = prompt[:50] if len(prompt) > 50 else prompt
    full_hash = hashlib.sha256(prompt.encode()).hexdigest()[:12]
    return f"{preview}... (hash:{full_hash})"


async def generate_response(
    prompt: str,
    prompt_kind: str,
    log_tag: str,
    user_id: str | None = None,
) -> Any:
    """
    Send a prompt to Gemini and return the parsed JSON response.

    Args:
        prompt: Fully rendered prompt
        prompt_kind: "categorization", "summary", "single_summary" or anything else
            for the generic JSON instruction
        log_tag: Short label for logs and counters (e.g. "categorize_chunk")
        user_id: Optional user id for log correlation

    Returns:
        The decoded JSON value

    Raises:
        LLMError: If the call fails after retries
        LLMSchemaError: If the response cannot be parsed as JSON
    """
    log_event(
        "llm.call_start",
        kind=prompt_kind,
        tag=log_tag,
        user=redact(user_id),
        prompt_preview=_redact_prompt(prompt),
    )

    try:
        with time_block(f"llm.{prompt_kind}"):
            raw = await asyncio.to_thread(
                call_llm,
                prompt,
                counter_prefix=prompt_kind,
                system_instruction=system_instruction_for(prompt_kind),
            )
    except Exception as exc:
        counter("llm.call_error")
        log_event("llm.call_error", kind=prompt_kind, tag=log_tag, error=str(exc))
        raise LLMError(f"LLM API call failed: {exc}") from exc

    counter("llm.call_success")

    try:
        return extract_json(raw)
    except json.JSONDecodeError as exc:
        counter("llm.schema_validation_failures")
        log_event(
            "llm.json_parse_error",
            kind=prompt_kind,
            tag=log_tag,
            error=str(exc),
            response_preview=str(raw)[:100],
        )
        raise LLMSchemaError(f"LLM response is not valid JSON: {exc}") from exc
