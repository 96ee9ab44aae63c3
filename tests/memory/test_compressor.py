"""Tests for session compaction."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cynicalclaw.llm.models import Complexity, Personality, Tier
from cynicalclaw.llm.router import AllModelsFailedError
from cynicalclaw.memory.compressor import (
    AUTO_TAG,
    SUMMARY_MOOD,
    SUMMARY_TAG,
    MemoryCompressor,
    format_transcript,
)
from cynicalclaw.memory.store import StoredMessage


def _router(reply="SUMMARY:\n- user likes tea\n\nCONTEXT:\nsmall talk", error=None):
    router = MagicMock()
    router.route_request = AsyncMock(return_value=reply, side_effect=error)
    return router


async def _fill(store, session_id, count, ts="2024-01-01T00:00:00"):
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        await store.append_message(session_id, role, f"message {i}", timestamp=ts)


def test_format_transcript_tags_mood_and_truncates():
    messages = [
        StoredMessage(1, "s", "user", "hello", "t", {"mood": "grumpy"}),
        StoredMessage(2, "s", "assistant", "hi", "t"),
    ]
    assert format_transcript(messages) == "user [grumpy]: hello\nassistant: hi"
    assert format_transcript(messages, char_budget=5) == "user "


@pytest.mark.asyncio
async def test_below_threshold_without_force_is_noop(memory_store):
    await _fill(memory_store, "s1", 50)
    router = _router()
    compressor = MemoryCompressor(router, memory_store)

    assert await compressor.compress_session("s1") is None

    assert await memory_store.count_session_messages("s1") == 50
    router.route_request.assert_not_called()


@pytest.mark.asyncio
async def test_empty_session_is_noop(memory_store):
    router = _router()
    assert await MemoryCompressor(router, memory_store).compress_session("ghost", force=True) is None
    router.route_request.assert_not_called()


@pytest.mark.asyncio
async def test_forced_compression_replaces_messages_with_summary(memory_store):
    await _fill(memory_store, "s1", 50)
    router = _router()
    compressor = MemoryCompressor(router, memory_store)

    summary = await compressor.compress_session("s1", force=True)

    assert summary.startswith("SUMMARY:")
    assert await memory_store.count_session_messages("s1") == 0

    entries = await memory_store.find_by_tag("s1")
    assert len(entries) == 1
    entry = entries[0]
    assert entry.tags == [SUMMARY_TAG, "s1", AUTO_TAG]
    assert entry.mood == SUMMARY_MOOD
    assert entry.id.startswith("summary-s1-")
    assert entry.content.startswith("## Session Summary (50 messages)\n\n")
    assert entry.metadata["sessionId"] == "s1"
    assert entry.metadata["originalMessageCount"] == 50
    assert entry.metadata["dateRange"] == {"from": "2024-01-01T00:00:00", "to": "2024-01-01T00:00:00"}
    assert "compressedAt" in entry.metadata


@pytest.mark.asyncio
async def test_threshold_reached_compresses_without_force(memory_store):
    await _fill(memory_store, "s1", 5)
    compressor = MemoryCompressor(_router(), memory_store, threshold=5)

    assert await compressor.compress_session("s1") is not None
    assert await memory_store.count_session_messages("s1") == 0


@pytest.mark.asyncio
async def test_compression_uses_free_clinical_medium(memory_store):
    await _fill(memory_store, "s1", 3)
    router = _router()

    await MemoryCompressor(router, memory_store).compress_session("s1", force=True)

    args = router.route_request.call_args.args
    assert args[1:] == (Complexity.MEDIUM, Tier.FREE, Personality.CLINICAL)
    assert "user: message 0" in args[0][0]["content"]


@pytest.mark.asyncio
async def test_transcript_is_cut_to_budget(memory_store):
    await memory_store.append_message("s1", "user", "x" * 10_000)
    router = _router()

    await MemoryCompressor(router, memory_store, char_budget=4000).compress_session("s1", force=True)

    prompt = router.route_request.call_args.args[0][0]["content"]
    assert "x" * 3994 in prompt
    assert "x" * 3995 not in prompt


@pytest.mark.asyncio
async def test_model_failure_keeps_messages(memory_store):
    await _fill(memory_store, "s1", 10)
    compressor = MemoryCompressor(_router(error=AllModelsFailedError("down")), memory_store)

    assert await compressor.compress_session("s1", force=True) is None
    assert await memory_store.count_session_messages("s1") == 10
    assert await memory_store.find_by_tag("s1") == []


@pytest.mark.asyncio
async def test_get_session_summary(memory_store):
    await _fill(memory_store, "s1", 4)
    compressor = MemoryCompressor(_router("short summary"), memory_store)

    assert await compressor.get_session_summary("s1") is None
    await compressor.compress_session("s1", force=True)

    assert await compressor.get_session_summary("s1") == "## Session Summary (4 messages)\n\nshort summary"


@pytest.mark.asyncio
async def test_periodic_compresses_stale_sessions_only(memory_store):
    await _fill(memory_store, "stale", 25)
    await _fill(memory_store, "tiny", 5)
    await _fill(memory_store, "fresh", 25, ts="2999-01-01T00:00:00")
    compressor = MemoryCompressor(_router(), memory_store)

    count = await compressor.periodic_compression(older_than_days=7, min_messages=20)

    assert count == 1
    assert await memory_store.count_session_messages("stale") == 0
    assert await memory_store.count_session_messages("tiny") == 5
    assert await memory_store.count_session_messages("fresh") == 25


@pytest.mark.asyncio
async def test_periodic_isolates_per_session_failures(memory_store):
    await _fill(memory_store, "a", 25, ts="2024-01-01T00:00:00")
    await _fill(memory_store, "b", 25, ts="2024-01-02T00:00:00")
    router = _router()
    router.route_request.side_effect = [RuntimeError("model exploded"), "summary of b"]
    compressor = MemoryCompressor(router, memory_store)

    count = await compressor.periodic_compression(older_than_days=7, min_messages=20)

    assert count == 1
    assert await memory_store.count_session_messages("a") == 25
    assert await memory_store.count_session_messages("b") == 0


@pytest.mark.asyncio
async def test_turn_appended_during_summary_survives(memory_store):
    await _fill(memory_store, "s1", 5)

    async def summarize_while_user_types(*args, **kwargs):
        await memory_store.append_message("s1", "user", "late turn")
        return "summary of the first five"

    router = MagicMock()
    router.route_request = AsyncMock(side_effect=summarize_while_user_types)

    await MemoryCompressor(router, memory_store).compress_session("s1", force=True)

    remaining = await memory_store.get_session_messages("s1")
    assert [m.content for m in remaining] == ["late turn"]
    summary = await MemoryCompressor(router, memory_store).get_session_summary("s1")
    assert summary.startswith("## Session Summary (5 messages)")
