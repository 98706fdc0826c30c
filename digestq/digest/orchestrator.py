"""
Thread analysis orchestrator: one digest session.

States:
    Idle          nothing categorized yet (counters zero, buffer empty)
    Accumulating  at least one batch seen, total_threads_expected pinned
    Ready         processed_threads >= total_threads_expected

Callers stream batches through `categorize_batch` and then call
`generate_summaries`, which resets the session to Idle on success.
Calls against one instance must be serialized by the caller.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from digestq.config import PRECLASSIFY_MIN_CONFIDENCE, PREVIEW_MAX_CHARS
from digestq.digest.aggregator import SummaryAggregator
from digestq.digest.models import (
    Category,
    CategoryBuffer,
    SimplifiedThread,
    SummaryDocument,
    Thread,
    empty_buffer,
    match_category,
)
from digestq.digest.reconciler import CategoryReconciler
from digestq.digest.recovery import RecoveryPolicy
from digestq.digest.token_budget import TokenBudgeter
from digestq.llm.client import LLMCapability
from digestq.observability.logging import get_logger, session_logger
from digestq.observability.telemetry import counter, log_event
from digestq.utils.redaction import redact

logger = get_logger(__name__)

# Rule-based / ML heuristic collaborator: thread -> {"category": ..., "confidence": ...}
PreClassifier = Callable[[Thread], Mapping[str, Any] | None]


class ThreadsNotCategorizedError(RuntimeError):
    """Raised when summaries are requested before every thread is categorized."""


class SessionState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    READY = "ready"


class ThreadAnalysisOrchestrator:
    """
    Owns the session state: the category buffer, the original-thread map and
    the processed/expected counters. The budgeter, reconciler and aggregator
    it delegates to are stateless and may be shared.
    """

    def __init__(
        self,
        llm: LLMCapability,
        budgeter: TokenBudgeter | None = None,
        policy: RecoveryPolicy | None = None,
        pre_classifier: PreClassifier | None = None,
    ):
        self.policy = policy or RecoveryPolicy()
        self.budgeter = budgeter or TokenBudgeter()
        self.reconciler = CategoryReconciler(llm, self.policy)
        self.aggregator = SummaryAggregator(llm, self.budgeter, self.policy)
        self.pre_classifier = pre_classifier
        self._reset()

    def _reset(self) -> None:
        self.category_buffer: CategoryBuffer = empty_buffer()
        self.original_threads: dict[str, Thread] = {}
        self.processed_threads = 0
        self.total_threads_expected: int | None = None

    @property
    def state(self) -> SessionState:
        if self.total_threads_expected is None:
            return SessionState.IDLE
        if self.processed_threads >= self.total_threads_expected:
            return SessionState.READY
        return SessionState.ACCUMULATING

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def _hint_for(self, thread: Thread) -> Category | None:
        if self.pre_classifier is None:
            return None
        try:
            result = self.pre_classifier(thread)
        except Exception as exc:
            counter("categorization.preclassifier_errors")
            logger.warning("Pre-classifier failed for thread %s: %s", thread.id, exc)
            return None
        if not result:
            return None
        confidence = result.get("confidence")
        if not isinstance(confidence, int | float) or confidence < PRECLASSIFY_MIN_CONFIDENCE:
            return None
        return match_category(result.get("category"))

    def _simplify(self, threads: Sequence[Thread], total: int) -> list[SimplifiedThread]:
        offset = self.processed_threads
        return [
            SimplifiedThread.from_thread(
                thread,
                thread_number=offset + index,
                total_threads=total,
                category_hint=self._hint_for(thread),
                preview_chars=PREVIEW_MAX_CHARS,
            )
            for index, thread in enumerate(threads, start=1)
        ]

    async def categorize_batch(
        self,
        threads: Sequence[Thread],
        user_id: str,
        total_threads: int,
    ) -> bool:
        """
        Categorize one batch of threads into the session buffer.

        Args:
            threads: Batch of threads (may overlap earlier batches)
            user_id: Owner of the session
            total_threads: Expected session total; only the first call's value counts

        Returns:
            True if every expected thread is now categorized, False otherwise
            (including when any chunk's categorization call failed)
        """
        log = session_logger(logger, user_id)
        if self.total_threads_expected is None:
            self.total_threads_expected = total_threads
            log_event("session.started", user=redact(user_id), total_threads=total_threads)

        placed_ids = set(self.original_threads)
        batch: dict[str, Thread] = {}
        for thread in threads:
            if thread.id in placed_ids or thread.id in batch:
                counter("categorization.duplicate_submissions")
                continue
            batch[thread.id] = thread

        complete = True
        if batch:
            simplified = self._simplify(list(batch.values()), self.total_threads_expected)
            chunks = self.budgeter.chunk(simplified)
            result = await self.reconciler.categorize(chunks, batch, user_id)

            for category, bucket in result.buffer.items():
                for categorized in bucket:
                    if categorized.thread_id in self.original_threads:
                        continue
                    self.category_buffer.setdefault(category, []).append(categorized)
                    self.original_threads[categorized.thread_id] = batch[categorized.thread_id]

            complete = result.complete
            if not complete:
                log.warning(
                    "Batch incomplete: %d thread(s) in failed chunks",
                    len(result.failed_thread_ids),
                )

        self.processed_threads = max(self.processed_threads, len(self.original_threads))
        log.info(
            "Categorized batch: %d/%d threads processed",
            self.processed_threads,
            self.total_threads_expected,
        )

        if not complete:
            return False
        if self.is_ready:
            log_event("session.ready", user=redact(user_id), processed=self.processed_threads)
            return True
        return False

    async def generate_summaries(self, user_id: str) -> SummaryDocument:
        """
        Summarize the session buffer and reset the session.

        Raises:
            ThreadsNotCategorizedError: If not every expected thread is categorized.
                The session is left unchanged.
        """
        if not self.is_ready:
            counter("summary.precondition_failed")
            raise ThreadsNotCategorizedError(
                "Cannot generate summaries until all threads are categorized "
                f"({self.processed_threads}/{self.total_threads_expected or 0})"
            )

        document = await self.aggregator.aggregate(self.category_buffer, user_id)
        log_event(
            "session.reset",
            user=redact(user_id),
            categories=len(document.categories),
            items=len(document.message_ids()),
        )
        self._reset()
        return document
