"""Composition root: builds and tears down the control core.

Usage::

    core = await create_core(load_config())
    core.scheduler.start()
    result = await core.dispatcher.handle("what's in notes.txt?", session_id="s1")
    await core.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from cynicalclaw.agent.dispatcher import Dispatcher
from cynicalclaw.agent.loop import AgentLoop
from cynicalclaw.agent.skills import SkillRegistry
from cynicalclaw.agent.tool_router import ToolRouter
from cynicalclaw.config.schema import Config
from cynicalclaw.llm.models import MODELS, ModelCatalog
from cynicalclaw.llm.providers import ProviderRegistry
from cynicalclaw.llm.router import ModelRouter
from cynicalclaw.memory.compressor import MemoryCompressor
from cynicalclaw.memory.db import Database
from cynicalclaw.memory.embeddings import EmbeddingClient
from cynicalclaw.memory.scheduler import CompressionScheduler
from cynicalclaw.memory.store import MemoryStore
from cynicalclaw.memory.tools import register_memory_skill


@dataclass
class Core:
    """Every long-lived object of one process."""

    config: Config
    providers: ProviderRegistry
    router: ModelRouter
    skills: SkillRegistry
    tool_router: ToolRouter
    agent_loop: AgentLoop
    store: MemoryStore
    embedder: EmbeddingClient
    compressor: MemoryCompressor
    scheduler: CompressionScheduler
    dispatcher: Dispatcher

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.embedder.close()
        await self.providers.aclose()
        logger.info("Core shut down")


async def create_core(
    config: Optional[Config] = None,
    skills: Optional[SkillRegistry] = None,
    catalog: Optional[ModelCatalog] = None,
) -> Core:
    """Wire the router, skills, agent loop and memory subsystem from ``config``."""
    config = config or Config()

    providers = ProviderRegistry(config.providers)
    router = ModelRouter(providers, catalog if catalog is not None else MODELS)

    store = MemoryStore(Database(config.memory.db_path), dimension=config.memory.embedding_dimension)
    await store.initialize()

    embedder = EmbeddingClient(
        base_url=config.memory.embedding_url,
        model=config.memory.embedding_model,
        dimension=config.memory.embedding_dimension,
        timeout=config.memory.embedding_timeout,
    )

    skills = skills if skills is not None else SkillRegistry()
    register_memory_skill(skills, store, embedder)

    tool_router = ToolRouter(router, skills)
    agent_loop = AgentLoop(router, skills, max_iterations=config.agent.max_iterations)

    compressor = MemoryCompressor(
        router,
        store,
        threshold=config.memory.compression_threshold,
        char_budget=config.memory.transcript_char_budget,
    )
    scheduler = CompressionScheduler(
        compressor,
        interval_seconds=config.memory.periodic_interval_hours * 3600,
        older_than_days=config.memory.periodic_older_than_days,
        min_messages=config.memory.periodic_min_messages,
    )

    dispatcher = Dispatcher(
        router,
        tool_router,
        agent_loop,
        store=store,
        threshold=config.agent.confidence_threshold,
    )

    if config.memory.periodic_enabled:
        scheduler.start()

    logger.info(f"Core ready: {router.catalog.count()} models, {len(skills.list_tools())} tools")

    return Core(
        config=config,
        providers=providers,
        router=router,
        skills=skills,
        tool_router=tool_router,
        agent_loop=agent_loop,
        store=store,
        embedder=embedder,
        compressor=compressor,
        scheduler=scheduler,
        dispatcher=dispatcher,
    )
