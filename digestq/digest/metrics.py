"""
Digest metrics and content-duplicate detection.

Two summary items about different threads can still describe the same thing
(e.g. the same newsletter sent twice). Items whose content signature repeats
an earlier item are annotated with `is_duplicate_of`; they are not removed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from digestq.digest.models import (
    CategoryBuffer,
    CategorySummary,
    DigestMetrics,
    SummaryItem,
)


def content_signature(item: SummaryItem) -> str:
    """Lower-cased title plus first key highlight, joined with '|'."""
    parts = [item.title.lower().strip()]
    if item.insights is not None and item.insights.key_highlights:
        parts.append(item.insights.key_highlights[0].lower().strip())
    return "|".join(p for p in parts if p)


def find_duplicate_items(items: Sequence[SummaryItem]) -> list[SummaryItem]:
    """
    Mark items whose signature was already seen on another message.

    The first item with a signature is the original; items with an empty
    signature are never marked.
    """
    originals: dict[str, str] = {}
    marked: list[SummaryItem] = []
    for item in items:
        signature = content_signature(item)
        original_id = originals.get(signature) if signature else None
        if original_id is not None and original_id != item.message_id:
            marked.append(item.model_copy(update={"is_duplicate_of": original_id}))
            continue
        if signature:
            originals.setdefault(signature, item.message_id)
        marked.append(item)
    return marked


def annotate_duplicates(sections: Sequence[CategorySummary]) -> list[CategorySummary]:
    """Apply find_duplicate_items across all sections in document order."""
    flat = [item for section in sections for item in section.summaries]
    marked = iter(find_duplicate_items(flat))
    return [
        section.model_copy(update={"summaries": [next(marked) for _ in section.summaries]})
        for section in sections
    ]


def calculate_thread_metrics(
    buffer: CategoryBuffer, sections: Iterable[CategorySummary] = ()
) -> DigestMetrics:
    threads = [thread for bucket in buffer.values() for thread in bucket]
    senders = {
        message.headers.from_.strip().lower()
        for thread in threads
        for message in thread.messages
        if message.headers.from_.strip()
    }
    duplicates = sum(
        1 for section in sections for item in section.summaries if item.is_duplicate_of
    )
    return DigestMetrics(
        total_threads_processed=len(threads),
        duplicate_items_count=duplicates,
        unique_senders_count=len(senders),
    )
