"""
Summary aggregation.

Each non-empty category is summarized independently (categories run
concurrently). A category's threads may be split into several token-bounded
chunks; chunk results are merged by messageId, first occurrence wins.

A category whose calls all fail, or that yields no valid items, is omitted;
the rest of the digest is still produced.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from digestq.digest.metrics import annotate_duplicates, calculate_thread_metrics
from digestq.digest.models import (
    CATEGORY_PRIORITY,
    CategorizedThread,
    Category,
    CategoryBuffer,
    CategorySummary,
    SummaryDocument,
    SummaryItem,
    Thread,
)
from digestq.digest.recovery import RecoveryPolicy
from digestq.digest.responses import SummaryBatch, parse_single_summary, parse_summary_items
from digestq.digest.token_budget import TokenBudgeter, truncate_thread_for_llm
from digestq.llm.client import LLMCapability
from digestq.llm.prompts import build_single_thread_prompt, build_summary_prompt
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event

logger = get_logger(__name__)


def merge_by_message_id(batches: Sequence[Sequence[SummaryItem]]) -> list[SummaryItem]:
    """Concatenate batches, keeping the first item for each messageId."""
    seen: set[str] = set()
    merged: list[SummaryItem] = []
    for batch in batches:
        for item in batch:
            if item.message_id in seen:
                counter("summary.duplicate_items")
                continue
            seen.add(item.message_id)
            merged.append(item)
    return merged


def sort_by_priority(items: Sequence[SummaryItem]) -> list[SummaryItem]:
    # sorted() is stable: ties keep first-seen order
    return sorted(items, key=lambda item: item.priority_score, reverse=True)


class SummaryAggregator:
    def __init__(
        self,
        llm: LLMCapability,
        budgeter: TokenBudgeter | None = None,
        policy: RecoveryPolicy | None = None,
    ):
        self.llm = llm
        self.budgeter = budgeter or TokenBudgeter()
        self.policy = policy or RecoveryPolicy()

    async def _summarize_chunk(
        self,
        category: Category,
        chunk: Sequence[CategorizedThread],
        index: int,
        user_id: str | None,
    ) -> SummaryBatch | None:
        prompt = build_summary_prompt(category, chunk)
        outcome = await self.policy.attempt(
            self.llm(prompt, "summary", f"summarize_{category.name.lower()}_{index}", user_id),
            "summary",
            category=category.value,
            chunk=index,
        )
        if not outcome.succeeded:
            return None
        return parse_summary_items(outcome.value, category).value_or(SummaryBatch())

    async def summarize(
        self,
        category: Category,
        threads: Sequence[CategorizedThread],
        user_id: str | None = None,
    ) -> CategorySummary | None:
        """
        Summarize one category.

        Returns:
            The category section with items sorted by priorityScore (descending),
            or None if the category is empty or could not be summarized.
        """
        if not threads:
            return None

        chunks = self.budgeter.chunk(threads)
        batches = await asyncio.gather(
            *(
                self._summarize_chunk(category, chunk, index, user_id)
                for index, chunk in enumerate(chunks)
            )
        )
        usable = [batch for batch in batches if batch is not None]
        items = merge_by_message_id([batch.items for batch in usable])

        if not items:
            reason = "all_calls_failed" if not usable else "no_valid_items"
            counter("summary.category_omitted")
            log_event("summary.category_omitted", category=category.value, reason=reason)
            return None

        narratives = [batch.key_highlights for batch in usable if batch.key_highlights]
        return CategorySummary(
            title=category,
            summaries=sort_by_priority(items),
            key_highlights="\n\n".join(narratives) or None,
        )

    async def aggregate(self, buffer: CategoryBuffer, user_id: str | None = None) -> SummaryDocument:
        """Summarize every non-empty bucket into an ordered SummaryDocument."""
        categories = [c for c in CATEGORY_PRIORITY if buffer.get(c)]
        sections = await asyncio.gather(
            *(self.summarize(category, buffer[category], user_id) for category in categories)
        )

        # A messageId appears once in the document: the highest-priority category keeps it
        seen: set[str] = set()
        ordered: list[CategorySummary] = []
        for section in sections:
            if section is None:
                continue
            unique = [item for item in section.summaries if item.message_id not in seen]
            seen.update(item.message_id for item in unique)
            if unique:
                ordered.append(section.model_copy(update={"summaries": unique}))

        ordered = annotate_duplicates(ordered)
        return SummaryDocument(
            categories=ordered,
            metrics=calculate_thread_metrics(buffer, ordered),
        )

    async def summarize_thread(self, thread: Thread, user_id: str | None = None) -> str | None:
        """Free-text summary of one thread, or None on any failure."""
        prompt = build_single_thread_prompt(
            truncate_thread_for_llm(thread, self.budgeter.message_max_chars)
        )
        outcome = await self.policy.attempt(
            self.llm(prompt, "single_summary", "summarize_thread", user_id),
            "single_summary",
            thread_id=thread.id,
        )
        if not outcome.succeeded:
            return None
        return parse_single_summary(outcome.value).value_or(None)
