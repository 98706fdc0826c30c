"""
Domain models (Pydantic v2) for the digest pipeline.

Threads and messages arrive from the mail-sync collaborator and are immutable
inputs. SimplifiedThread is the projection sent to the categorization prompt,
CategorizedThread is the rehydrated thread placed into a category bucket, and
SummaryDocument is the ordered output of a digest session.

Wire names follow the client contract (`from`, `messageId`, `priorityScore`);
Python attributes use snake_case and the models accept either form.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


class Category(str, Enum):
    """Closed set of digest categories. Every thread lands in exactly one."""

    IMPORTANT_INFO = "Important Info"
    CALENDAR = "Calendar"
    PAYMENTS = "Payments"
    TRAVEL = "Travel"
    NEWSLETTERS = "Newsletters"
    NOTIFICATIONS = "Notifications"


# Output order of a SummaryDocument
CATEGORY_PRIORITY: tuple[Category, ...] = (
    Category.IMPORTANT_INFO,
    Category.CALENDAR,
    Category.PAYMENTS,
    Category.TRAVEL,
    Category.NEWSLETTERS,
    Category.NOTIFICATIONS,
)

_CATEGORY_LOOKUP = {category.value.casefold(): category for category in Category}


def match_category(name: object) -> Category | None:
    """Map a free-form category name from the LLM onto the closed set."""
    if isinstance(name, Category):
        return name
    if not isinstance(name, str):
        return None
    return _CATEGORY_LOOKUP.get(" ".join(name.split()).casefold())


# ============================================================================
# Input models
# ============================================================================


class MessageHeaders(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    date: str = ""


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    headers: MessageHeaders = Field(default_factory=MessageHeaders)
    body: str = ""
    snippet: str | None = None


class ExtractedTask(BaseModel):
    """Task signal produced by the task-extraction collaborator."""

    model_config = ConfigDict(frozen=True)

    has_task: bool = False
    task_priority: str = "low"


class Thread(BaseModel):
    """
    An email conversation.

    Empty threads are a structural input error and are rejected here, before
    they can reach the token budgeter.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    messages: list[Message] = Field(..., min_length=1)
    extracted_task: ExtractedTask | None = None

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("thread id cannot be blank")
        return v

    @property
    def subject(self) -> str:
        return self.messages[0].headers.subject

    @property
    def sender(self) -> str:
        return self.messages[0].headers.from_


class SimplifiedThread(BaseModel):
    """Read-only projection of a Thread used in categorization prompts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    subject: str = ""
    from_: str = Field(default="", alias="from")
    preview: str = Field(default="", max_length=200)
    thread_number: int = Field(..., ge=1)
    total_threads: int = Field(..., ge=0)
    extracted_task: ExtractedTask | None = None
    category_hint: Category | None = None

    @classmethod
    def from_thread(
        cls,
        thread: Thread,
        thread_number: int,
        total_threads: int,
        category_hint: Category | None = None,
        preview_chars: int = 200,
    ) -> SimplifiedThread:
        first = thread.messages[0]
        preview_source = first.body or first.snippet or ""
        return cls(
            id=thread.id,
            subject=first.headers.subject,
            from_=first.headers.from_,
            preview=preview_source[:preview_chars],
            thread_number=thread_number,
            total_threads=total_threads,
            extracted_task=thread.extracted_task,
            category_hint=category_hint,
        )


# ============================================================================
# Categorization output
# ============================================================================

NO_SUBJECT = "(no subject)"


class CategorizedThread(BaseModel):
    """A thread rehydrated from the original-thread map after categorization."""

    model_config = ConfigDict(frozen=True)

    id: str
    thread_id: str
    subject: str
    messages: list[Message]

    @classmethod
    def from_thread(cls, thread: Thread, subject: str | None = None) -> CategorizedThread:
        return cls(
            id=thread.id,
            thread_id=thread.id,
            subject=thread.subject or subject or NO_SUBJECT,
            messages=list(thread.messages),
        )


CategoryBuffer = dict[Category, list[CategorizedThread]]


def empty_buffer() -> CategoryBuffer:
    """One empty bucket per category, in priority order."""
    return {category: [] for category in CATEGORY_PRIORITY}


# ============================================================================
# Summary output
# ============================================================================


class SummaryInsights(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_highlights: list[str] = Field(default_factory=list)
    why_this_matters: str | None = None
    next_step: list[str] = Field(default_factory=list)


class SummaryItem(BaseModel):
    """One summarized thread. Identity for deduplication is `message_id`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    headline: str = ""
    message_id: str = Field(..., alias="messageId", min_length=1)
    priority_score: int = Field(default=0, alias="priorityScore", ge=0, le=100)
    insights: SummaryInsights | None = None
    is_duplicate_of: str | None = Field(default=None, alias="isDuplicateOf")


class CategorySummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Category
    summaries: list[SummaryItem] = Field(default_factory=list)
    key_highlights: str | None = None


class DigestMetrics(BaseModel):
    total_threads_processed: int = 0
    duplicate_items_count: int = 0
    unique_senders_count: int = 0


class SummaryDocument(BaseModel):
    """Ordered, per-category digest. Empty categories are omitted."""

    categories: list[CategorySummary] = Field(default_factory=list)
    metrics: DigestMetrics = Field(default_factory=DigestMetrics)
    generated_at: datetime = Field(default_factory=utc_now)

    def section(self, category: Category) -> CategorySummary | None:
        for section in self.categories:
            if section.title == category:
                return section
        return None

    def message_ids(self) -> list[str]:
        return [item.message_id for section in self.categories for item in section.summaries]
