"""
Category reconciliation.

Categorization chunks are sent to the LLM concurrently. Their responses may be
partial or malformed, so the results are merged into a complete partition:

1. Rehydrate: every returned thread id is looked up in the original-thread map
   (ids outside the request are ignored, never fabricated).
2. Filter: entries without an id, a non-empty subject or a non-empty messages
   array are discarded.
3. Detect drops: requested ids of successful chunks minus placed ids.
4. Retry once, with only the dropped threads.
5. Place whatever is still missing in the default category.
6. Dedup: a thread id is placed at most once; first placement wins.

A chunk whose initial call raised is reported in `failed_thread_ids` and
contributes nothing; the orchestrator reports the batch as incomplete.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from digestq.digest.models import (
    CategorizedThread,
    Category,
    CategoryBuffer,
    SimplifiedThread,
    Thread,
    empty_buffer,
)
from digestq.digest.recovery import CallOutcome, RecoveryPolicy
from digestq.digest.responses import RawCategories, parse_categorization
from digestq.llm.client import LLMCapability
from digestq.llm.prompts import build_categorization_prompt
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event
from digestq.utils.redaction import redact_ids

logger = get_logger(__name__)


@dataclass
class CategorizationResult:
    """Merged outcome of one categorization pass over a set of chunks."""

    buffer: CategoryBuffer = field(default_factory=empty_buffer)
    failed_thread_ids: set[str] = field(default_factory=set)
    dropped_thread_ids: set[str] = field(default_factory=set)
    fallback_thread_ids: set[str] = field(default_factory=set)
    retried: bool = False
    _placed: set[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._placed = {t.thread_id for bucket in self.buffer.values() for t in bucket}

    @property
    def placed_ids(self) -> set[str]:
        return set(self._placed)

    @property
    def complete(self) -> bool:
        return not self.failed_thread_ids

    def place(self, category: Category, thread: CategorizedThread) -> bool:
        """Add a thread unless its id is already placed. Returns True if added."""
        if thread.thread_id in self._placed:
            return False
        self._placed.add(thread.thread_id)
        self.buffer.setdefault(category, []).append(thread)
        return True


def _is_valid_entry(entry: dict[str, Any]) -> bool:
    thread_id = entry.get("id")
    subject = entry.get("subject")
    messages = entry.get("messages")
    return (
        isinstance(thread_id, str)
        and bool(thread_id.strip())
        and isinstance(subject, str)
        and bool(subject.strip())
        and isinstance(messages, list)
        and len(messages) > 0
    )


class CategoryReconciler:
    """
    Runs categorization calls and reconciles their results.

    Holds no session state; the original-thread map is passed in per call, so
    one instance can serve every session.
    """

    def __init__(self, llm: LLMCapability, policy: RecoveryPolicy | None = None):
        self.llm = llm
        self.policy = policy or RecoveryPolicy()

    async def categorize_chunk(
        self,
        chunk: Sequence[SimplifiedThread],
        user_id: str | None = None,
        log_tag: str = "categorize_chunk",
        boundary: str = "categorization",
    ) -> CallOutcome:
        """One categorization call for one chunk. Never raises."""
        prompt = build_categorization_prompt(chunk)
        return await self.policy.attempt(
            self.llm(prompt, "categorization", log_tag, user_id),
            boundary,
            tag=log_tag,
            threads=len(chunk),
        )

    async def categorize(
        self,
        chunks: Sequence[Sequence[SimplifiedThread]],
        original_threads: Mapping[str, Thread],
        user_id: str | None = None,
    ) -> CategorizationResult:
        """Categorize all chunks concurrently, then reconcile."""
        outcomes = await asyncio.gather(
            *(
                self.categorize_chunk(chunk, user_id, log_tag=f"categorize_chunk_{index}")
                for index, chunk in enumerate(chunks)
            )
        )
        return await self.reconcile(chunks, outcomes, original_threads, user_id)

    def merge(
        self,
        result: CategorizationResult,
        categories: RawCategories,
        requested_ids: set[str],
        original_threads: Mapping[str, Thread],
    ) -> int:
        """
        Rehydrate and merge one parsed response into `result`.

        Returns the number of threads newly placed.
        """
        placed = 0
        for category, entries in categories.items():
            for entry in entries:
                if not _is_valid_entry(entry):
                    counter("categorization.invalid_entries")
                    continue
                thread_id = entry["id"]
                if thread_id not in requested_ids:
                    counter("categorization.unrequested_ids")
                    continue
                original = original_threads.get(thread_id)
                if original is None:
                    counter("categorization.missing_originals")
                    continue
                if result.place(category, CategorizedThread.from_thread(original, entry["subject"])):
                    placed += 1
        return placed

    async def reconcile(
        self,
        chunks: Sequence[Sequence[SimplifiedThread]],
        outcomes: Sequence[CallOutcome],
        original_threads: Mapping[str, Thread],
        user_id: str | None = None,
    ) -> CategorizationResult:
        """Merge per-chunk outcomes into a complete partition (steps 1-6)."""
        result = CategorizationResult()
        requested: list[SimplifiedThread] = []

        for index, (chunk, outcome) in enumerate(zip(chunks, outcomes, strict=True)):
            chunk_ids = {t.id for t in chunk}
            if not outcome.succeeded:
                result.failed_thread_ids |= chunk_ids
                counter("categorization.chunk_failed")
                log_event(
                    "categorization.chunk_failed",
                    chunk=index,
                    threads=len(chunk),
                    error=outcome.error,
                )
                continue
            requested.extend(chunk)
            categories = parse_categorization(outcome.value).value_or({})
            self.merge(result, categories, chunk_ids, original_threads)

        missing = self._missing(requested, result.placed_ids)
        if not missing:
            return result

        result.dropped_thread_ids = {t.id for t in missing}
        result.retried = True
        counter("categorization.dropped", len(missing))
        log_event(
            "categorization.dropped",
            count=len(missing),
            thread_ids=redact_ids(result.dropped_thread_ids),
        )

        log_event("categorization.retry", threads=len(missing))
        retry = await self.categorize_chunk(
            missing, user_id, log_tag="categorize_retry", boundary="categorization_retry"
        )
        if retry.succeeded:
            categories = parse_categorization(retry.value).value_or({})
            self.merge(result, categories, result.dropped_thread_ids, original_threads)
            missing = self._missing(missing, result.placed_ids)

        self._place_in_default(result, (t.id for t in missing), original_threads)
        return result

    @staticmethod
    def _missing(
        threads: Sequence[SimplifiedThread], placed_ids: set[str]
    ) -> list[SimplifiedThread]:
        return [t for t in threads if t.id not in placed_ids]

    def _place_in_default(
        self,
        result: CategorizationResult,
        thread_ids: Iterable[str],
        original_threads: Mapping[str, Thread],
    ) -> None:
        category = self.policy.default_category
        for thread in self.policy.place_unassigned(thread_ids, original_threads):
            if result.place(category, thread):
                result.fallback_thread_ids.add(thread.thread_id)

        if result.fallback_thread_ids:
            counter("categorization.fallback_placed", len(result.fallback_thread_ids))
            log_event(
                "categorization.fallback_placed",
                category=category.value,
                count=len(result.fallback_thread_ids),
                thread_ids=redact_ids(result.fallback_thread_ids),
            )
