"""
Recovery policy applied at every LLM call boundary.

- A call that raises becomes a failed CallOutcome (never re-raised).
- A malformed response is treated as empty (see digest.responses).
- Threads that categorization could not place go to DEFAULT_CATEGORY.

The default category is defined here and nowhere else.
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from digestq.digest.models import Category, CategorizedThread, Thread
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event

logger = get_logger(__name__)

DEFAULT_CATEGORY = Category.NOTIFICATIONS


@dataclass(frozen=True)
class CallOutcome:
    """What happened at one call boundary."""

    succeeded: bool
    value: Any = None
    error: str | None = None


@dataclass
class RecoveryPolicy:
    default_category: Category = DEFAULT_CATEGORY

    async def attempt(self, call: Awaitable[Any], boundary: str, **context: Any) -> CallOutcome:
        """
        Await an LLM call and capture its result or failure.

        Args:
            call: The awaitable LLM call
            boundary: "categorization", "categorization_retry" or "summary"
            **context: Extra fields for the failure event (chunk index, category...)
        """
        try:
            value = await call
        except Exception as exc:
            counter(f"recovery.{boundary}_failed")
            log_event(f"recovery.{boundary}_failed", error=str(exc), **context)
            logger.warning("LLM call failed at %s boundary: %s", boundary, exc)
            return CallOutcome(succeeded=False, error=str(exc))
        return CallOutcome(succeeded=True, value=value)

    def place_unassigned(
        self,
        thread_ids: Iterable[str],
        original_threads: Mapping[str, Thread],
    ) -> list[CategorizedThread]:
        """
        Minimal CategorizedThreads for the default category, built only from
        the original thread data. Ids with no original thread are skipped.
        """
        placed = []
        for thread_id in thread_ids:
            thread = original_threads.get(thread_id)
            if thread is None:
                logger.warning("Cannot place unknown thread %s in %s", thread_id, self.default_category.value)
                continue
            placed.append(CategorizedThread.from_thread(thread))
        return placed
