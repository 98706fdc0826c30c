"""
Shared logging utilities for redacting sensitive information before telemetry.

Provides:
- redact(): Hash sensitive strings for correlation without exposure
- redact_subject(): Partially redact email subjects for debugging
- redact_ids(): Bounded, log-safe rendering of a list of thread ids
"""

from __future__ import annotations

from collections.abc import Iterable
from hashlib import sha256


def redact(value: str | None) -> str:
    """
    Return a stable hash representation of a sensitive string.
    """
    if not value:
        return "hash:missing"
    digest = sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"hash:{digest}"


def redact_subject(subject: str | None, max_length: int = 30) -> str:
    """
    Partially redact email subject for logging while preserving debuggability.

    Shows first N characters + hash suffix for correlation.

    Example:
        "Your invoice #123-456 is ready for review" ->
        "Your invoice #123-456 is ready..." (hash:7a8b9c)
    """
    if not subject:
        return "(no subject)"
    hashed = redact(subject)[5:11]
    if len(subject) <= max_length:
        return f"{subject} (hash:{hashed})"
    return f"{subject[:max_length]}... (hash:{hashed})"


def redact_ids(ids: Iterable[str], limit: int = 10) -> str:
    """Render at most `limit` ids, with a count of the rest."""
    items = sorted(ids)
    shown = ", ".join(items[:limit])
    if len(items) > limit:
        return f"[{shown}, ... +{len(items) - limit} more]"
    return f"[{shown}]"
