"""Unit tests for the recovery policy used at every LLM call boundary."""

import asyncio

import pytest

from digestq.digest.models import Category
from digestq.digest.recovery import DEFAULT_CATEGORY, RecoveryPolicy
from digestq.observability.telemetry import get_counter


async def _returns(value):
    return value


async def _raises(exc):
    raise exc


def test_default_category_is_notifications():
    assert DEFAULT_CATEGORY is Category.NOTIFICATIONS
    assert RecoveryPolicy().default_category is Category.NOTIFICATIONS


@pytest.mark.asyncio
async def test_attempt_captures_value():
    outcome = await RecoveryPolicy().attempt(_returns({"ok": True}), "summary")
    assert outcome.succeeded
    assert outcome.value == {"ok": True}


@pytest.mark.asyncio
async def test_attempt_converts_exception_to_failed_outcome():
    outcome = await RecoveryPolicy().attempt(_raises(ValueError("boom")), "summary", category="Travel")
    assert not outcome.succeeded
    assert outcome.error == "boom"
    assert get_counter("recovery.summary_failed") == 1


@pytest.mark.asyncio
async def test_attempt_does_not_swallow_cancellation():
    with pytest.raises(asyncio.CancelledError):
        await RecoveryPolicy().attempt(_raises(asyncio.CancelledError()), "summary")


def test_place_unassigned_builds_minimal_threads(make_thread):
    originals = {"t1": make_thread("t1", subject=""), "t2": make_thread("t2")}
    placed = RecoveryPolicy().place_unassigned(["t1", "t2", "ghost"], originals)

    assert [t.thread_id for t in placed] == ["t1", "t2"]
    assert placed[0].subject == "(no subject)"
    assert placed[1].subject == "Subject t2"
    assert placed[1].messages == originals["t2"].messages
