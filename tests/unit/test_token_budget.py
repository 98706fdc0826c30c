"""
Unit tests for token budgeting

Tests:
- Token estimation heuristic
- Greedy chunking and the single-chunk fast path
- Natural-boundary text splitting
- Oversized thread truncation and chunk coverage
"""

from collections import Counter

import pytest

from digestq.digest.models import CategorizedThread, SimplifiedThread
from digestq.digest.token_budget import (
    TokenBudgeter,
    chunk_threads,
    estimate_item_tokens,
    estimate_tokens,
    split_text,
    truncate_thread_for_llm,
)
from digestq.observability.telemetry import get_counter

LONG_BODY = "Sentence number one is here. " * 700  # ~20k chars


def _ids(chunks):
    return [[item.id for item in chunk] for chunk in chunks]


# ============================================================================
# Estimation
# ============================================================================


class TestEstimateTokens:
    def test_length_over_four_rounded_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_monotonic(self):
        sizes = [estimate_tokens("x" * n) for n in range(0, 50)]
        assert sizes == sorted(sizes)

    def test_budgeter_exposes_estimate(self):
        assert TokenBudgeter.estimate_tokens("abcdefgh") == 2


# ============================================================================
# Chunking
# ============================================================================


class TestChunk:
    def test_empty_input_returns_no_chunks(self):
        assert TokenBudgeter().chunk([]) == []

    def test_everything_fits_in_one_chunk(self, make_thread):
        threads = [make_thread(f"t{i}") for i in range(5)]
        chunks = TokenBudgeter(token_limit=10_000).chunk(threads)
        assert _ids(chunks) == [["t0", "t1", "t2", "t3", "t4"]]

    def test_greedy_accumulation(self, make_thread):
        threads = [make_thread(f"t{i}") for i in range(5)]
        size = estimate_item_tokens(threads[0])
        chunks = TokenBudgeter().chunk(threads, token_limit=2 * size + 1)
        assert _ids(chunks) == [["t0", "t1"], ["t2", "t3"], ["t4"]]

    def test_no_chunk_exceeds_limit_for_normal_items(self, make_thread):
        threads = [make_thread(f"t{i}", body="word " * (i * 40)) for i in range(10)]
        limit = 400
        for chunk in TokenBudgeter().chunk(threads, token_limit=limit):
            if len(chunk) > 1:
                assert sum(estimate_item_tokens(t) for t in chunk) <= limit

    def test_oversized_thread_is_truncated_and_isolated(self, make_thread):
        threads = [
            make_thread("a"),
            make_thread("b"),
            make_thread("big", body=LONG_BODY),
            make_thread("c"),
        ]
        chunks = TokenBudgeter().chunk(threads, token_limit=1000)

        assert _ids(chunks) == [["a", "b"], ["big"], ["c"]]
        big = chunks[1][0]
        assert len(big.messages) > 1
        assert "".join(m.body for m in big.messages) == LONG_BODY
        assert get_counter("token_budget.oversized_items") == 1

    def test_oversized_categorized_thread_is_split(self, make_thread):
        big = CategorizedThread.from_thread(make_thread("big", subject="Report", body=LONG_BODY))
        chunks = TokenBudgeter().chunk(
            [CategorizedThread.from_thread(make_thread("a")), big], token_limit=1000
        )

        assert _ids(chunks) == [["a"], ["big"]]
        split = chunks[1][0]
        assert isinstance(split, CategorizedThread)
        assert split.thread_id == "big"
        assert len(split.messages) > 1
        assert "".join(m.body for m in split.messages) == LONG_BODY
        assert split.messages[0].headers.subject.startswith("Report (Part 1/")

    def test_chunk_coverage_each_thread_exactly_once(self, make_thread):
        threads = [make_thread(f"t{i}", body="Some text. " * (i * 30)) for i in range(12)]
        threads.append(make_thread("huge", body=LONG_BODY))
        chunks = TokenBudgeter().chunk(threads, token_limit=500)

        assert len(chunks) >= 1
        seen = Counter(item.id for chunk in chunks for item in chunk)
        assert set(seen) == {t.id for t in threads}
        assert all(count == 1 for count in seen.values())

    def test_chunks_simplified_threads(self, make_thread):
        simplified = [
            SimplifiedThread.from_thread(make_thread(f"t{i}"), i + 1, 3) for i in range(3)
        ]
        size = estimate_item_tokens(simplified[0])
        chunks = TokenBudgeter().chunk(simplified, token_limit=size)
        assert _ids(chunks) == [["t0"], ["t1"], ["t2"]]

    def test_invalid_limit_rejected(self, make_thread):
        with pytest.raises(ValueError):
            TokenBudgeter(token_limit=0)
        with pytest.raises(ValueError):
            TokenBudgeter().chunk([make_thread("a")], token_limit=-1)

    def test_chunk_threads_helper(self, make_thread):
        threads = [make_thread("a"), make_thread("b")]
        assert _ids(chunk_threads(threads)) == [["a", "b"]]


# ============================================================================
# Text splitting
# ============================================================================


class TestSplitText:
    def test_prefers_paragraph_break(self):
        text = "a" * 85 + "\n\n" + "b" * 50
        parts = split_text(text, 100)
        assert parts[0] == "a" * 85 + "\n\n"
        assert "".join(parts) == text

    def test_falls_back_to_sentence_end(self):
        text = "x" * 84 + ". " + "y" * 50
        parts = split_text(text, 100)
        assert parts[0] == "x" * 84 + "."
        assert "".join(parts) == text

    def test_ignores_boundaries_before_eighty_percent(self):
        text = "x" * 10 + ". " + "y" * 150
        parts = split_text(text, 100)
        assert len(parts[0]) == 100

    def test_hard_cut_without_boundaries(self):
        text = "z" * 250
        assert [len(p) for p in split_text(text, 100)] == [100, 100, 50]

    def test_short_text_is_one_part(self):
        assert split_text("short", 100) == ["short"]

    def test_parts_never_exceed_max(self):
        parts = split_text(LONG_BODY, 997)
        assert all(len(p) <= 997 for p in parts)
        assert "".join(parts) == LONG_BODY

    def test_rejects_non_positive_max(self):
        with pytest.raises(ValueError):
            split_text("abc", 0)


# ============================================================================
# Thread truncation
# ============================================================================


class TestTruncateThread:
    def test_small_thread_unchanged(self, make_thread):
        thread = make_thread("t1")
        assert truncate_thread_for_llm(thread, 4000) is thread

    def test_splits_long_message_into_parts(self, make_thread):
        thread = make_thread("t1", subject="Quarterly report", body=LONG_BODY)
        truncated = truncate_thread_for_llm(thread, 4000)

        assert truncated.id == "t1"
        total = len(truncated.messages)
        assert total > 1
        assert truncated.messages[0].id == "t1"
        assert truncated.messages[1].id == "t1:part2"
        assert truncated.messages[0].headers.subject == f"Quarterly report (Part 1/{total})"
        assert truncated.messages[1].snippet == "[Continued from part 1]"
        assert "".join(m.body for m in truncated.messages) == LONG_BODY
        assert all(len(m.body) <= 4000 for m in truncated.messages)
        assert get_counter("token_budget.messages_split") == 1

    def test_keeps_message_order(self, make_thread):
        thread = make_thread("t1", body=LONG_BODY, messages=2)
        truncated = truncate_thread_for_llm(thread, 4000)
        first_second = [i for i, m in enumerate(truncated.messages) if m.id.startswith("t1-m1")]
        first_parts = [i for i, m in enumerate(truncated.messages) if m.id.split(":")[0] == "t1"]
        assert max(first_parts) < min(first_second)
