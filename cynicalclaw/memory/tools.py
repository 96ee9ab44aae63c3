"""Memory skill: lets the agent search and extend long-term memory."""

from typing import Any, Optional

from loguru import logger

from cynicalclaw.agent.skills import SkillRegistry, Tool, ToolResult
from cynicalclaw.memory.embeddings import EmbeddingClient
from cynicalclaw.memory.store import MemoryEntry, MemoryStore, new_memory_id

MEMORY_SKILL = "memory"


class MemorySearchTool(Tool):
    """Search past conversations and stored memories."""

    name = "memory_search"
    description = "Search through past conversations and memories"
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query"},
            "limit": {"type": "integer", "description": "Max results", "default": 5},
        },
        "required": ["query"],
    }

    def __init__(self, store: MemoryStore, embedder: Optional[EmbeddingClient] = None):
        self.store = store
        self.embedder = embedder

    async def execute(self, query: str, limit: int = 5, **kwargs: Any) -> ToolResult:
        embedding = await self.embedder.embed(query) if self.embedder else None
        results = await self.store.search(query, embedding=embedding, limit=int(limit))

        if not results:
            return ToolResult(success=True, output=f"No memories found for: {query}")

        lines = [f"Found {len(results)} memories:"]
        for i, entry in enumerate(results, 1):
            tags = f" [{', '.join(entry.tags)}]" if entry.tags else ""
            preview = entry.content[:200] + ("..." if len(entry.content) > 200 else "")
            lines.append(f"{i}. ({entry.timestamp[:10]}){tags} {preview}")
        return ToolResult(success=True, output="\n".join(lines))


class MemoryStoreTool(Tool):
    """Store information for later recall."""

    name = "memory_store"
    description = "Store important information for later recall"
    parameters = {
        "type": "object",
        "properties": {
            "content": {"type": "string", "description": "Content to remember"},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["content"],
    }

    def __init__(self, store: MemoryStore, embedder: Optional[EmbeddingClient] = None):
        self.store = store
        self.embedder = embedder

    async def execute(self, content: str, tags: Optional[list[str]] = None, **kwargs: Any) -> ToolResult:
        if not content.strip():
            return ToolResult(success=False, error="Nothing to remember")

        embedding = await self.embedder.embed(content) if self.embedder else None
        entry = MemoryEntry(
            id=new_memory_id(),
            content=content,
            embedding=embedding,
            tags=list(tags or []),
        )
        await self.store.add_entry(entry)
        logger.info(f"Memory stored via tool: {entry.id}")

        suffix = "..." if len(content) > 100 else ""
        return ToolResult(success=True, output=f"Remembered ({entry.id}): {content[:100]}{suffix}")


def register_memory_skill(
    registry: SkillRegistry,
    store: MemoryStore,
    embedder: Optional[EmbeddingClient] = None,
) -> None:
    """Register the memory_search / memory_store tools under the memory skill."""
    registry.register_skill(
        MEMORY_SKILL,
        [MemorySearchTool(store, embedder), MemoryStoreTool(store, embedder)],
    )
