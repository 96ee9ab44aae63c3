"""Tests for the memory skill tools."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cynicalclaw.agent.skills import SkillRegistry, ToolExecutionError
from cynicalclaw.memory.store import MemoryEntry
from cynicalclaw.memory.tools import MemorySearchTool, MemoryStoreTool, register_memory_skill


def _embedder(vector):
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=vector)
    return embedder


@pytest.mark.asyncio
async def test_store_then_search(memory_store):
    store_tool = MemoryStoreTool(memory_store)
    search_tool = MemorySearchTool(memory_store)

    stored = await store_tool.execute(content="The user's cat is called Byte", tags=["pets"])
    found = await search_tool.execute(query="Byte")

    assert stored.success
    assert stored.output.startswith("Remembered (mem-")
    assert found.output.startswith("Found 1 memories:")
    assert "[pets] The user's cat is called Byte" in found.output


@pytest.mark.asyncio
async def test_search_without_hits(memory_store):
    result = await MemorySearchTool(memory_store).execute(query="unicorns")
    assert result.success
    assert result.output == "No memories found for: unicorns"


@pytest.mark.asyncio
async def test_store_rejects_empty_content(memory_store):
    result = await MemoryStoreTool(memory_store).execute(content="   ")
    assert not result.success
    assert result.error == "Nothing to remember"


@pytest.mark.asyncio
async def test_store_embeds_content(memory_store):
    embedder = _embedder([1.0, 0.0, 0.0])
    result = await MemoryStoreTool(memory_store, embedder).execute(content="vector me")

    entry_id = result.output.split("(")[1].split(")")[0]
    entry = await memory_store.get_entry(entry_id)
    assert entry.embedding == [1.0, 0.0, 0.0]
    embedder.embed.assert_awaited_once_with("vector me")


@pytest.mark.asyncio
async def test_search_uses_embedding_for_semantic_hits(memory_store):
    await memory_store.add_entry(
        MemoryEntry(id="sem", content="feline named Byte", embedding=[0.0, 1.0, 0.0])
    )
    embedder = _embedder([0.0, 1.0, 0.0])

    result = await MemorySearchTool(memory_store, embedder).execute(query="cat", limit=3)

    assert "feline named Byte" in result.output


@pytest.mark.asyncio
async def test_long_content_is_previewed(memory_store):
    await memory_store.add_entry(MemoryEntry(id="long", content="needle " + "z" * 500))
    result = await MemorySearchTool(memory_store).execute(query="needle")
    assert result.output.endswith("...")


@pytest.mark.asyncio
async def test_register_memory_skill(memory_store):
    registry = SkillRegistry()
    register_memory_skill(registry, memory_store)

    assert registry.list_skills() == ["memory"]
    assert registry.has_tool("memory_search")
    assert registry.has_tool("memory_store")

    output = await registry.execute("memory_store", {"content": "remember me"})
    assert "remember me" in output

    with pytest.raises(ToolExecutionError):
        await registry.execute("memory_store", {"content": ""})
