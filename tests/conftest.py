"""
Pytest configuration for digest tests

Provides thread factories and a scripted fake LLM capability shared across
unit, contract and integration tests.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import pytest

from digestq.digest.models import ExtractedTask, Message, MessageHeaders, Thread
from digestq.observability.telemetry import reset_counters, reset_latencies

_THREAD_ID_LINE = re.compile(r'^id: "(?P<id>[^"]+)"$', re.MULTILINE)


@dataclass
class LLMCall:
    """One recorded call to the fake LLM."""

    prompt: str
    prompt_kind: str
    log_tag: str
    user_id: str | None

    @property
    def thread_ids(self) -> list[str]:
        return _THREAD_ID_LINE.findall(self.prompt)


Handler = Callable[[LLMCall], Any]


@dataclass
class FakeLLM:
    """
    Async stand-in for `generate_response`.

    Each prompt kind has a handler that receives the recorded call and returns
    the decoded JSON (or raises). Handlers queued with `script` are used once,
    in order, before falling back to the default handler for that kind.
    """

    handlers: dict[str, Handler] = field(default_factory=dict)
    scripted: dict[str, list[Handler]] = field(default_factory=dict)
    calls: list[LLMCall] = field(default_factory=list)

    def script(self, prompt_kind: str, *handlers: Handler) -> None:
        self.scripted.setdefault(prompt_kind, []).extend(handlers)

    def calls_of(self, prompt_kind: str) -> list[LLMCall]:
        return [call for call in self.calls if call.prompt_kind == prompt_kind]

    async def __call__(
        self,
        prompt: str,
        prompt_kind: str,
        log_tag: str,
        user_id: str | None = None,
    ) -> Any:
        call = LLMCall(prompt, prompt_kind, log_tag, user_id)
        self.calls.append(call)
        queue = self.scripted.get(prompt_kind)
        handler = queue.pop(0) if queue else self.handlers.get(prompt_kind)
        if handler is None:
            raise RuntimeError(f"no handler for prompt kind {prompt_kind!r}")
        return handler(call)


def categorization_response(assignments: dict[str, Iterable[str]]) -> dict[str, Any]:
    """Well-formed categorization JSON for {category name: thread ids}."""
    return {
        "categories": [
            {
                "name": name,
                "threads": [
                    {"id": thread_id, "subject": f"Subject {thread_id}", "messages": [{"id": thread_id}]}
                    for thread_id in thread_ids
                ],
            }
            for name, thread_ids in assignments.items()
        ]
    }


def summary_response(items: Iterable[tuple[str, int]], key_highlights: str | None = None) -> dict:
    """Well-formed summary JSON for (messageId, priorityScore) pairs."""
    payload: dict[str, Any] = {
        "summaries": [
            {
                "messageId": message_id,
                "title": f"Title {message_id}",
                "headline": f"Headline {message_id}",
                "priorityScore": score,
            }
            for message_id, score in items
        ]
    }
    if key_highlights is not None:
        payload["key_highlights"] = key_highlights
    return payload


def everything_in(category: str) -> Handler:
    """Categorization handler placing every requested thread in one category."""
    return lambda call: categorization_response({category: call.thread_ids})


def summarize_all(score: int = 50) -> Handler:
    """Summary handler returning one item per requested thread."""
    return lambda call: summary_response((thread_id, score) for thread_id in call.thread_ids)


def fail(message: str = "LLM unavailable") -> Handler:
    def handler(call: LLMCall) -> Any:
        raise ConnectionError(message)

    return handler


@pytest.fixture(autouse=True)
def _reset_telemetry():
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def make_thread() -> Callable[..., Thread]:
    """Factory for Thread models with sensible defaults."""

    def _make(
        thread_id: str,
        subject: str | None = None,
        body: str = "Hello, this is a short email body.",
        sender: str = "alice@example.com",
        messages: int = 1,
        has_task: bool = False,
    ) -> Thread:
        return Thread(
            id=thread_id,
            messages=[
                Message(
                    id=f"{thread_id}-m{index}" if index else thread_id,
                    headers=MessageHeaders(
                        from_=sender,
                        to="me@example.com",
                        subject=subject if subject is not None else f"Subject {thread_id}",
                        date="2025-04-07T09:00:00Z",
                    ),
                    body=body,
                )
                for index in range(messages)
            ],
            extracted_task=ExtractedTask(has_task=True, task_priority="high") if has_task else None,
        )

    return _make


@pytest.fixture
def fake_llm() -> FakeLLM:
    """Fake LLM that categorizes everything as Notifications and summarizes every thread."""
    return FakeLLM(
        handlers={
            "categorization": everything_in("Notifications"),
            "summary": summarize_all(),
            "single_summary": lambda call: {"summary": "A short summary."},
        }
    )


@pytest.fixture
def llm_helpers():
    """Response builders for tests that script the fake LLM."""

    class Helpers:
        categorization_response = staticmethod(categorization_response)
        summary_response = staticmethod(summary_response)
        everything_in = staticmethod(everything_in)
        summarize_all = staticmethod(summarize_all)
        fail = staticmethod(fail)

    return Helpers
