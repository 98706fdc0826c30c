"""
Shape validators for LLM responses.

LLM JSON is loosely typed, so every response is checked right after the call
and turned into a tagged outcome: `valid(value)` or `malformed(reason)`.
Callers treat a malformed outcome exactly like an empty one; nothing in here
raises on bad model output.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from digestq.digest.models import Category, SummaryInsights, SummaryItem, match_category
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ResponseOutcome(Generic[T]):
    """Result of validating one LLM response."""

    is_valid: bool
    value: T | None = None
    reason: str | None = None

    @classmethod
    def valid(cls, value: T) -> ResponseOutcome[T]:
        return cls(is_valid=True, value=value)

    @classmethod
    def malformed(cls, reason: str) -> ResponseOutcome[T]:
        counter("llm.malformed_response")
        logger.warning("Malformed LLM response: %s", reason)
        return cls(is_valid=False, reason=reason)

    def value_or(self, default: T) -> T:
        if self.is_valid and self.value is not None:
            return self.value
        return default


# ============================================================================
# Categorization
# ============================================================================

RawCategories = dict[Category, list[dict[str, Any]]]


def parse_categorization(raw: Any) -> ResponseOutcome[RawCategories]:
    """
    Validate `{"categories": [{"name": ..., "threads": [...]}, ...]}`.

    Category names are matched case-insensitively against the closed set;
    entries with unknown names, non-list thread arrays or non-dict threads
    contribute nothing. Thread entries are returned as raw dicts so the
    reconciler can apply its own validity filter.
    """
    if not isinstance(raw, dict):
        return ResponseOutcome.malformed(f"expected object, got {type(raw).__name__}")

    categories = raw.get("categories")
    if not isinstance(categories, list):
        return ResponseOutcome.malformed("missing 'categories' array")

    parsed: RawCategories = {}
    for entry in categories:
        if not isinstance(entry, dict):
            continue
        category = match_category(entry.get("name"))
        if category is None:
            logger.info("Ignoring unknown category name: %r", entry.get("name"))
            counter("categorization.unknown_category")
            continue
        threads = entry.get("threads")
        if not isinstance(threads, list):
            continue
        parsed.setdefault(category, []).extend(t for t in threads if isinstance(t, dict))

    return ResponseOutcome.valid(parsed)


# ============================================================================
# Summaries
# ============================================================================


@dataclass(frozen=True)
class SummaryBatch:
    """Items and optional narrative returned by one summarization call."""

    items: list[SummaryItem] = field(default_factory=list)
    key_highlights: str | None = None


def _coerce_score(value: Any) -> int | None:
    if value is None:
        return 0
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int | float) or not math.isfinite(value):
        return None
    return int(min(max(round(value), 0), 100))


def _coerce_insights(value: Any) -> SummaryInsights | None:
    if not isinstance(value, dict):
        return None
    data = dict(value)
    for key in ("key_highlights", "next_step"):
        if isinstance(data.get(key), str):
            data[key] = [data[key]]
    try:
        return SummaryInsights.model_validate(data)
    except ValidationError:
        return None


def _parse_item(entry: Any) -> SummaryItem | None:
    if not isinstance(entry, dict):
        return None

    message_id = entry.get("messageId", entry.get("message_id"))
    if isinstance(message_id, int) and not isinstance(message_id, bool):
        message_id = str(message_id)
    if not isinstance(message_id, str) or not message_id.strip():
        return None

    score = _coerce_score(entry.get("priorityScore", entry.get("priority_score")))
    if score is None:
        return None

    title = entry.get("title")
    headline = entry.get("headline")
    return SummaryItem(
        message_id=message_id.strip(),
        title=title if isinstance(title, str) else "",
        headline=headline if isinstance(headline, str) else "",
        priority_score=score,
        insights=_coerce_insights(entry.get("insights")),
    )


def _narrative(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_summary_items(raw: Any, category: Category) -> ResponseOutcome[SummaryBatch]:
    """
    Validate a summarization response for `category`.

    Accepts `{"summaries": [...]}` or the document-style envelope
    `{"categories": [{"title": ..., "summaries": [...]}]}` (only sections for
    `category` are read). Items without a messageId or with a non-numeric
    priorityScore are dropped; scores are clamped to 0-100.
    """
    if not isinstance(raw, dict):
        return ResponseOutcome.malformed(f"expected object, got {type(raw).__name__}")

    narrative = _narrative(raw.get("key_highlights"))
    entries: list[Any] = []

    if isinstance(raw.get("summaries"), list):
        entries.extend(raw["summaries"])
    elif isinstance(raw.get("categories"), list):
        for section in raw["categories"]:
            if not isinstance(section, dict):
                continue
            if match_category(section.get("title", section.get("name"))) != category:
                continue
            if isinstance(section.get("summaries"), list):
                entries.extend(section["summaries"])
            narrative = narrative or _narrative(section.get("key_highlights"))
    else:
        return ResponseOutcome.malformed("missing 'summaries' array")

    items = [item for item in (_parse_item(entry) for entry in entries) if item is not None]
    dropped = len(entries) - len(items)
    if dropped:
        counter("summary.invalid_items", dropped)
        logger.info("Dropped %d invalid summary item(s) for %s", dropped, category.value)

    return ResponseOutcome.valid(SummaryBatch(items=items, key_highlights=narrative))


def parse_single_summary(raw: Any) -> ResponseOutcome[str]:
    """Validate `{"summary": "..."}`."""
    if not isinstance(raw, dict):
        return ResponseOutcome.malformed(f"expected object, got {type(raw).__name__}")
    summary = _narrative(raw.get("summary"))
    if summary is None:
        return ResponseOutcome.malformed("missing 'summary' string")
    return ResponseOutcome.valid(summary)
