"""
Contract tests for digest models

Wire names (`from`, `messageId`, `priorityScore`) are part of the client
contract; structural input errors are rejected at model construction.
"""

import pytest
from pydantic import ValidationError

from digestq.digest.models import (
    CATEGORY_PRIORITY,
    NO_SUBJECT,
    CategorizedThread,
    Category,
    CategorySummary,
    Message,
    SimplifiedThread,
    SummaryDocument,
    SummaryItem,
    Thread,
    empty_buffer,
    match_category,
)


class TestThreadContract:
    def test_accepts_wire_format(self):
        thread = Thread.model_validate(
            {
                "id": "t1",
                "messages": [
                    {
                        "id": "m1",
                        "headers": {"from": "a@example.com", "subject": "Hi"},
                        "body": "Hello",
                    }
                ],
                "extracted_task": {"has_task": True, "task_priority": "high"},
            }
        )
        assert thread.sender == "a@example.com"
        assert thread.subject == "Hi"
        assert thread.extracted_task.has_task

    def test_empty_thread_rejected(self):
        with pytest.raises(ValidationError):
            Thread(id="t1", messages=[])

    @pytest.mark.parametrize("thread_id", ["", "   "])
    def test_blank_id_rejected(self, thread_id):
        with pytest.raises(ValidationError):
            Thread(id=thread_id, messages=[Message(id="m1")])

    def test_threads_are_immutable(self, make_thread):
        with pytest.raises(ValidationError):
            make_thread("t1").id = "t2"


class TestSimplifiedThread:
    def test_projection(self, make_thread):
        thread = make_thread("t1", body="x" * 500, has_task=True)
        simplified = SimplifiedThread.from_thread(thread, 3, 10, category_hint=Category.TRAVEL)

        assert simplified.preview == "x" * 200
        assert simplified.thread_number == 3
        assert simplified.total_threads == 10
        assert simplified.extracted_task.has_task
        assert simplified.model_dump(by_alias=True)["from"] == "alice@example.com"

    def test_preview_falls_back_to_snippet(self):
        thread = Thread(id="t1", messages=[Message(id="m1", snippet="Snippet text")])
        assert SimplifiedThread.from_thread(thread, 1, 1).preview == "Snippet text"


class TestCategories:
    def test_priority_order(self):
        assert [c.value for c in CATEGORY_PRIORITY] == [
            "Important Info",
            "Calendar",
            "Payments",
            "Travel",
            "Newsletters",
            "Notifications",
        ]
        assert list(empty_buffer()) == list(CATEGORY_PRIORITY)

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Payments", Category.PAYMENTS),
            ("important info", Category.IMPORTANT_INFO),
            (" NEWSLETTERS ", Category.NEWSLETTERS),
            ("Spam", None),
            (None, None),
            (42, None),
        ],
    )
    def test_match_category(self, name, expected):
        assert match_category(name) is expected


class TestCategorizedThread:
    def test_subject_fallbacks(self, make_thread):
        assert CategorizedThread.from_thread(make_thread("t1")).subject == "Subject t1"
        untitled = make_thread("t2", subject="")
        assert CategorizedThread.from_thread(untitled, "From LLM").subject == "From LLM"
        assert CategorizedThread.from_thread(untitled).subject == NO_SUBJECT


class TestSummaryContract:
    def test_summary_item_aliases(self):
        item = SummaryItem.model_validate({"messageId": "m1", "priorityScore": 70})
        dumped = item.model_dump(by_alias=True)
        assert dumped["messageId"] == "m1"
        assert dumped["priorityScore"] == 70

    @pytest.mark.parametrize("score", [-1, 101])
    def test_score_bounds(self, score):
        with pytest.raises(ValidationError):
            SummaryItem(message_id="m1", priority_score=score)

    def test_document_helpers(self):
        document = SummaryDocument(
            categories=[
                CategorySummary(title=Category.CALENDAR, summaries=[SummaryItem(message_id="c1")]),
                CategorySummary(title=Category.TRAVEL, summaries=[SummaryItem(message_id="t1")]),
            ]
        )
        assert document.message_ids() == ["c1", "t1"]
        assert document.section(Category.TRAVEL).summaries[0].message_id == "t1"
        assert document.section(Category.PAYMENTS) is None
        assert document.model_dump(mode="json", by_alias=True)["categories"][0]["title"] == "Calendar"
