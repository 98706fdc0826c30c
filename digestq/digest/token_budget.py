"""
Token budgeting for LLM batches.

Token cost is estimated from the serialized JSON of an item (length / 4). A
list of threads is partitioned greedily into chunks bounded by a token limit.
A thread that is too large on its own is truncated by splitting long message
bodies into sibling "Part i/n" messages at natural text boundaries; it keeps its
thread id, so chunking never adds or drops a logical thread.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import TypeVar

from pydantic import BaseModel

from digestq.config import (
    CHARS_PER_TOKEN,
    DEFAULT_TOKEN_LIMIT,
    MESSAGE_MAX_CHARS,
    NATURAL_BREAK_RATIO,
)
from digestq.digest.models import Message
from digestq.observability.logging import get_logger
from digestq.observability.telemetry import counter, log_event

logger = get_logger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)
# Thread, CategorizedThread: any model with an `id` and a `messages` list
ThreadT = TypeVar("ThreadT", bound=BaseModel)

_PARAGRAPH_BREAK = "\n\n"
# Sentence-ending punctuation followed by whitespace
_SENTENCE_END = re.compile(r"[.!?](?=\s)")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_item_tokens(item: BaseModel) -> int:
    """Token estimate of an item as it would be serialized into a prompt."""
    return estimate_tokens(item.model_dump_json(by_alias=True))


def _find_cut(text: str, max_chars: int, break_ratio: float) -> int:
    """
    Index at which to cut `text` so the head is at most `max_chars` long.

    Preference order: paragraph break, then sentence end, then a hard cut.
    A natural boundary only counts if it falls at or after
    `break_ratio * max_chars`, so parts never get much shorter than the window.
    """
    window = text[:max_chars]
    floor = int(max_chars * break_ratio)

    paragraph = window.rfind(_PARAGRAPH_BREAK)
    if paragraph != -1 and paragraph >= floor:
        return paragraph + len(_PARAGRAPH_BREAK)

    sentence_cut = -1
    for match in _SENTENCE_END.finditer(window, floor):
        sentence_cut = match.end()
    if sentence_cut > 0:
        return sentence_cut

    return max_chars


def split_text(
    text: str,
    max_chars: int,
    break_ratio: float = NATURAL_BREAK_RATIO,
) -> list[str]:
    """
    Split text into parts of at most `max_chars` characters.

    Concatenating the parts yields the original text exactly.

    Raises:
        ValueError: If max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    parts: list[str] = []
    rest = text
    while len(rest) > max_chars:
        cut = _find_cut(rest, max_chars, break_ratio)
        parts.append(rest[:cut])
        rest = rest[cut:]
    parts.append(rest)
    return parts


def _split_message(message: Message, max_chars: int) -> list[Message]:
    parts = split_text(message.body, max_chars)
    if len(parts) == 1:
        return [message]

    total = len(parts)
    base_subject = message.headers.subject
    split: list[Message] = []
    for index, part in enumerate(parts, start=1):
        subject = f"{base_subject} (Part {index}/{total})".strip()
        split.append(
            Message(
                id=message.id if index == 1 else f"{message.id}:part{index}",
                headers=message.headers.model_copy(update={"subject": subject}),
                body=part,
                snippet=message.snippet if index == 1 else f"[Continued from part {index - 1}]",
            )
        )
    return split


def truncate_thread_for_llm(thread: ThreadT, max_chars: int = MESSAGE_MAX_CHARS) -> ThreadT:
    """
    Split every message body longer than `max_chars` into sibling part messages.

    The thread id and message order are preserved; no text is discarded.
    Returns the original thread unchanged when nothing needed splitting.
    """
    messages: list[Message] = []
    split_count = 0
    for message in thread.messages:  # type: ignore[attr-defined]
        pieces = _split_message(message, max_chars)
        if len(pieces) > 1:
            split_count += 1
        messages.extend(pieces)

    if split_count == 0:
        return thread

    counter("token_budget.messages_split", split_count)
    logger.info(
        "Split %d oversized message(s) in thread %s into %d messages",
        split_count,
        thread.id,  # type: ignore[attr-defined]
        len(messages),
    )
    return thread.model_copy(update={"messages": messages})


class TokenBudgeter:
    """
    Partitions threads (or their simplified projections) into token-bounded chunks.

    Stateless apart from its limits, so one instance can be shared across sessions.
    """

    def __init__(
        self,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        message_max_chars: int = MESSAGE_MAX_CHARS,
    ):
        if token_limit <= 0:
            raise ValueError("token_limit must be positive")
        self.token_limit = token_limit
        self.message_max_chars = message_max_chars

    estimate_tokens = staticmethod(estimate_tokens)

    def chunk(self, items: Sequence[ItemT], token_limit: int | None = None) -> list[list[ItemT]]:
        """
        Greedily partition `items` into chunks of at most `token_limit` tokens.

        - Empty input gives no chunks.
        - If everything fits, a single chunk is returned.
        - An oversized item carrying `messages` (Thread or CategorizedThread) is
          truncated first; if it still exceeds the limit it is placed alone in
          its own chunk. Every input item appears exactly once.
        """
        limit = token_limit if token_limit is not None else self.token_limit
        if limit <= 0:
            raise ValueError("token_limit must be positive")
        if not items:
            return []

        sizes = [estimate_item_tokens(item) for item in items]
        if sum(sizes) <= limit:
            return [list(items)]

        max_chars = min(self.message_max_chars, limit * CHARS_PER_TOKEN)
        chunks: list[list[ItemT]] = []
        current: list[ItemT] = []
        current_tokens = 0

        for item, size in zip(items, sizes, strict=True):
            if size > limit and getattr(item, "messages", None):
                item = truncate_thread_for_llm(item, max_chars)
                size = estimate_item_tokens(item)

            if current and current_tokens + size > limit:
                chunks.append(current)
                current = []
                current_tokens = 0

            if size > limit:
                logger.warning(
                    "Item %s still exceeds token limit (%d > %d); placing in its own chunk",
                    getattr(item, "id", "?"),
                    size,
                    limit,
                )
                counter("token_budget.oversized_items")
                chunks.append([item])
                continue

            current.append(item)
            current_tokens += size

        if current:
            chunks.append(current)

        log_event("token_budget.chunked", items=len(items), chunks=len(chunks), limit=limit)
        return chunks


def chunk_threads(
    threads: Sequence[ItemT], token_limit: int = DEFAULT_TOKEN_LIMIT
) -> list[list[ItemT]]:
    """Standalone batching entry point for callers that only need chunking."""
    return TokenBudgeter(token_limit=token_limit).chunk(threads)
